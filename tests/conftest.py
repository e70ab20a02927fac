"""Pytest configuration and fixtures for reptile-genetics tests."""

import json
from pathlib import Path

import pytest

from reptile_genetics.models import Animal, Genotype, LocusCatalog
from reptile_genetics.notation import parse_het_traits, parse_visual_traits
from reptile_genetics.pedigree import PedigreeGraph
from reptile_genetics.repository import animal_from_record, locus_from_record

FIXTURES_DIR = Path(__file__).parent / "fixtures"
POPULATION_FILE = FIXTURES_DIR / "population.json"

try:
    from testcontainers.postgres import PostgresContainer

    HAS_TESTCONTAINERS = True
except ImportError:
    HAS_TESTCONTAINERS = False


@pytest.fixture(scope="session")
def population_data() -> dict:
    """Raw JSON population snapshot shared by the tests."""
    return json.loads(POPULATION_FILE.read_text(encoding="utf-8"))


@pytest.fixture(scope="session")
def catalogs(population_data) -> dict[str, LocusCatalog]:
    return {
        entry["id"]: LocusCatalog(
            entry["id"], tuple(locus_from_record(locus) for locus in entry["loci"])
        )
        for entry in population_data["species"]
    }


@pytest.fixture(scope="session")
def ball_python_catalog(catalogs) -> LocusCatalog:
    return catalogs["ball-python"]


@pytest.fixture
def family(population_data) -> dict[str, Animal]:
    """Three-generation ball python family plus one corn snake.

    gd1 x gs1 -> p1, p2 (full siblings); gd1 x gs2 -> h1 (half sibling);
    p1 x q2 -> c1 and q1 x p2 -> c2 (first cousins); p1 x p2 -> ib1.
    """
    animals = [animal_from_record(record) for record in population_data["animals"]]
    return {animal.id: animal for animal in animals}


@pytest.fixture
def family_graph(family) -> PedigreeGraph:
    return PedigreeGraph(family.values())


@pytest.fixture
def make_animal():
    """Factory for animals with keeper-notation genotypes."""

    def _factory(
        animal_id: str,
        dam_id: str | None = None,
        sire_id: str | None = None,
        visual: str = "",
        hets: str = "",
        species_id: str = "ball-python",
        **kwargs,
    ) -> Animal:
        return Animal(
            id=animal_id,
            species_id=species_id,
            dam_id=dam_id,
            sire_id=sire_id,
            genotype=Genotype(parse_visual_traits(visual), parse_het_traits(hets)),
            **kwargs,
        )

    return _factory


@pytest.fixture
def cyclic_population(make_animal) -> list[Animal]:
    """x's dam d has dam g, whose sire points back at d."""
    return [
        make_animal("x", dam_id="d", sire_id="s"),
        make_animal("d", dam_id="g"),
        make_animal("g", sire_id="d"),
        make_animal("s"),
    ]


@pytest.fixture(scope="session")
def postgres_container():
    """Create a PostgreSQL container for integration tests."""
    if not HAS_TESTCONTAINERS:
        pytest.skip("testcontainers not installed")

    with PostgresContainer("postgres:15") as postgres:
        yield postgres


@pytest.fixture
def postgres_url(postgres_container) -> str:
    url = postgres_container.get_connection_url()
    if url.startswith("postgresql+psycopg2://"):
        url = url.replace("postgresql+psycopg2://", "postgresql://")
    return url


@pytest.fixture
async def test_db(postgres_url):
    """Create an isolated schema in the test database."""
    import asyncpg

    from reptile_genetics.schema import GeneticsSchemaManager

    conn = await asyncpg.connect(postgres_url)
    schema_manager = GeneticsSchemaManager()
    await schema_manager.drop_schema(conn)
    await schema_manager.create_schema(conn)

    yield conn

    await schema_manager.drop_schema(conn)
    await conn.close()
