"""Sources of population snapshots and locus catalogs.

The engine only ever reads through ``AnimalRepository``. Failures to reach
the underlying store surface as ``DataUnavailable``.
"""

import asyncio
import json
import logging
from abc import ABC, abstractmethod
from collections.abc import Iterable, Mapping
from pathlib import Path
from typing import Any

import asyncpg

from .errors import DataUnavailable
from .models import Animal, Genotype, HetSource, HetTrait, Locus, LocusCatalog
from .notation import parse_het_trait, parse_het_traits, parse_visual_traits

logger = logging.getLogger(__name__)


def _het_from_record(item: Any) -> HetTrait:
    if isinstance(item, str):
        return parse_het_trait(item)
    return HetTrait(
        locus=item.get("trait") or item["locus"],
        percentage=float(item.get("percentage", 100.0)),
        source=HetSource(item.get("source", HetSource.BREEDING_ODDS.value)),
        verified=bool(item.get("verified", False)),
    )


def animal_from_record(record: Mapping[str, Any]) -> Animal:
    """Build an Animal from a JSON object or database row.

    ``het_traits`` may be keeper notation ("66% het albino, het pied") or a
    list of objects with trait/percentage/source/verified keys.

    Raises:
        KeyError: If id or species_id is missing
        ValueError: If a field holds an invalid value
    """
    het_traits = record.get("het_traits")
    if isinstance(het_traits, str):
        hets = parse_het_traits(het_traits)
    else:
        hets = tuple(_het_from_record(item) for item in het_traits or [])

    return Animal(
        id=str(record["id"]),
        species_id=str(record["species_id"]),
        dam_id=record.get("dam_id"),
        sire_id=record.get("sire_id"),
        genotype=Genotype(
            visual_traits=parse_visual_traits(record.get("visual_traits")),
            het_traits=hets,
        ),
        name=record.get("name"),
        sex=record.get("sex"),
    )


def locus_from_record(record: Mapping[str, Any]) -> Locus:
    return Locus(
        name=record["name"],
        dominance=record["dominance"],
        homozygous_name=record.get("homozygous_name"),
        transmission_rate=float(record.get("transmission_rate", 0.5)),
    )


class AnimalRepository(ABC):
    """Read-only source of animals and per-species locus catalogs."""

    async def connect(self) -> None:
        return None

    async def close(self) -> None:
        return None

    async def __aenter__(self) -> "AnimalRepository":
        await self.connect()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()

    @abstractmethod
    async def fetch_animal(self, animal_id: str) -> Animal | None:
        """Return one animal, or None if the id is unknown."""

    @abstractmethod
    async def fetch_population(self, species_id: str) -> list[Animal]:
        """Return every animal of a species."""

    @abstractmethod
    async def fetch_locus_catalog(self, species_id: str) -> LocusCatalog:
        """Return the loci tracked for a species."""


class InMemoryAnimalRepository(AnimalRepository):
    def __init__(
        self,
        animals: Iterable[Animal] = (),
        catalogs: Iterable[LocusCatalog] = (),
    ):
        self._animals: dict[str, Animal] = {}
        self._catalogs: dict[str, LocusCatalog] = {}
        self._load(animals, catalogs)

    def _load(self, animals: Iterable[Animal], catalogs: Iterable[LocusCatalog]) -> None:
        for animal in animals:
            self._animals[animal.id] = animal
        for catalog in catalogs:
            self._catalogs[catalog.species_id] = catalog

    @property
    def animals(self) -> list[Animal]:
        return list(self._animals.values())

    @property
    def catalogs(self) -> dict[str, LocusCatalog]:
        return dict(self._catalogs)

    async def fetch_animal(self, animal_id: str) -> Animal | None:
        return self._animals.get(animal_id)

    async def fetch_population(self, species_id: str) -> list[Animal]:
        return [a for a in self._animals.values() if a.species_id == species_id]

    async def fetch_locus_catalog(self, species_id: str) -> LocusCatalog:
        catalog = self._catalogs.get(species_id)
        if catalog is None:
            logger.debug("No locus catalog for species %s; using an empty one", species_id)
            return LocusCatalog(species_id)
        return catalog


class JsonFileAnimalRepository(InMemoryAnimalRepository):
    """Population snapshot read from a JSON file.

    Expected layout::

        {
          "species": [{"id": "ball-python", "loci": [{"name": "albino", "dominance": "recessive"}]}],
          "animals": [{"id": "a1", "species_id": "ball-python", "het_traits": "het albino"}]
        }
    """

    def __init__(self, path: Path, catalogs: Iterable[LocusCatalog] = ()):
        super().__init__()
        self.path = Path(path)
        self._extra_catalogs = tuple(catalogs)
        self._loaded = False

    async def connect(self) -> None:
        if not self._loaded:
            self._read()

    def _read(self) -> None:
        try:
            with open(self.path, encoding="utf-8") as f:
                data = json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            logger.error("Failed to read population file %s: %s", self.path, e)
            raise DataUnavailable(f"Cannot read population file {self.path}: {e}") from e

        try:
            catalogs = [
                LocusCatalog(
                    species_id=entry["id"],
                    loci=tuple(locus_from_record(locus) for locus in entry.get("loci", [])),
                )
                for entry in data.get("species", [])
            ]
            animals = [animal_from_record(record) for record in data.get("animals", [])]
        except (KeyError, TypeError, ValueError, AttributeError) as e:
            logger.error("Malformed population file %s: %s", self.path, e)
            raise DataUnavailable(f"Malformed population file {self.path}: {e}") from e

        self._load(animals, [*catalogs, *self._extra_catalogs])
        self._loaded = True
        logger.info(
            "Loaded %d animals and %d species catalogs from %s",
            len(animals),
            len(catalogs),
            self.path,
        )

    async def fetch_animal(self, animal_id: str) -> Animal | None:
        await self.connect()
        return await super().fetch_animal(animal_id)

    async def fetch_population(self, species_id: str) -> list[Animal]:
        await self.connect()
        return await super().fetch_population(species_id)

    async def fetch_locus_catalog(self, species_id: str) -> LocusCatalog:
        await self.connect()
        return await super().fetch_locus_catalog(species_id)


DATABASE_ERRORS = (
    asyncpg.PostgresError,
    asyncpg.InterfaceError,
    OSError,
    asyncio.TimeoutError,
)


class PostgresAnimalRepository(AnimalRepository):
    """Animal repository backed by PostgreSQL via an asyncpg pool."""

    def __init__(self, db_url: str, min_size: int = 1, max_size: int = 4):
        self.db_url = db_url
        self.min_size = min_size
        self.max_size = max_size
        self.pool: asyncpg.Pool | None = None

    async def connect(self) -> None:
        """Establish database connection pool."""
        if self.pool is not None:
            return
        try:
            self.pool = await asyncpg.create_pool(
                self.db_url,
                min_size=self.min_size,
                max_size=self.max_size,
                command_timeout=60,
            )
        except DATABASE_ERRORS as e:
            logger.error("Database connection failed: %s", e)
            raise DataUnavailable(f"Cannot connect to database: {e}") from e

    async def close(self) -> None:
        """Close database connection pool."""
        if self.pool:
            await self.pool.close()
            self.pool = None

    async def _fetch(self, query: str, *args: Any) -> list[asyncpg.Record]:
        await self.connect()
        try:
            async with self.pool.acquire() as conn:
                return await conn.fetch(query, *args)
        except DATABASE_ERRORS as e:
            logger.error("Database query failed: %s", e)
            raise DataUnavailable(f"Database query failed: {e}") from e

    @staticmethod
    def _row_to_animal(row: Mapping[str, Any]) -> Animal:
        record = dict(row)
        try:
            if isinstance(record.get("het_traits"), str):
                record["het_traits"] = json.loads(record["het_traits"])
            return animal_from_record(record)
        except (KeyError, TypeError, ValueError, AttributeError) as e:
            raise DataUnavailable(f"Malformed animal row {record.get('id')}: {e}") from e

    async def fetch_animal(self, animal_id: str) -> Animal | None:
        rows = await self._fetch(
            """
            SELECT id, species_id, name, sex, dam_id, sire_id, visual_traits, het_traits
            FROM animals WHERE id = $1
            """,
            animal_id,
        )
        return self._row_to_animal(rows[0]) if rows else None

    async def fetch_population(self, species_id: str) -> list[Animal]:
        rows = await self._fetch(
            """
            SELECT id, species_id, name, sex, dam_id, sire_id, visual_traits, het_traits
            FROM animals WHERE species_id = $1
            ORDER BY created_at, id
            """,
            species_id,
        )
        return [self._row_to_animal(row) for row in rows]

    async def fetch_locus_catalog(self, species_id: str) -> LocusCatalog:
        rows = await self._fetch(
            """
            SELECT name, dominance, homozygous_name, transmission_rate
            FROM species_loci WHERE species_id = $1
            ORDER BY position, name
            """,
            species_id,
        )
        try:
            return LocusCatalog(species_id, tuple(locus_from_record(row) for row in rows))
        except (KeyError, TypeError, ValueError) as e:
            raise DataUnavailable(
                f"Malformed locus catalog for species {species_id}: {e}"
            ) from e
