"""reptile-genetics: pedigree and breeding outcome analysis CLI."""

import asyncio
import json
import logging
import os
import tomllib
from pathlib import Path
from typing import Annotated
from urllib.parse import urlparse, urlunparse

import asyncpg
import typer
from rich.console import Console
from rich.table import Table
from rich.tree import Tree

from . import __version__
from .config import (
    PASSWORD_ENV_VAR,
    ConfigValidationError,
    EngineConfig,
    load_config,
    load_database_config,
    load_locus_catalogs,
)
from .engine import AnalysisResult, BreedingEngine
from .errors import EngineError
from .notation import format_genotype, format_percentage
from .pedigree import MAX_GENERATIONS, LineageNode
from .report import AdvisorySeverity, BreedingReport
from .repository import (
    AnimalRepository,
    JsonFileAnimalRepository,
    PostgresAnimalRepository,
)
from .schema import GeneticsSchemaManager


def version_callback(value: bool) -> None:
    if value:
        print(__version__)
        raise typer.Exit()


app = typer.Typer(
    name="reptile-genetics",
    help="Analyze reptile pairings: relationship, inbreeding risk and offspring odds",
)
console = Console()

CONFIG_ERRORS = (FileNotFoundError, tomllib.TOMLDecodeError, ConfigValidationError)

SEVERITY_STYLES = {
    AdvisorySeverity.HIGH: "red",
    AdvisorySeverity.MODERATE: "yellow",
    AdvisorySeverity.LOW: "cyan",
}

PopulationOption = Annotated[
    Path | None,
    typer.Option("--population", "-p", help="JSON population snapshot file"),
]
DatabaseOption = Annotated[
    str | None, typer.Option("--db", "-d", help="PostgreSQL connection URL")
]
ConfigOption = Annotated[
    Path | None, typer.Option("--config", "-c", help="TOML configuration file")
]
GenerationsOption = Annotated[
    int | None,
    typer.Option(
        "--generations",
        "-g",
        min=0,
        max=MAX_GENERATIONS,
        help="Generations of ancestry to consider",
    ),
]
JsonOption = Annotated[bool, typer.Option("--json", help="Output as JSON")]
VerboseOption = Annotated[bool, typer.Option("--verbose", "-v", help="Enable debug logging")]
QuietOption = Annotated[bool, typer.Option("--quiet", "-q", help="Suppress non-error output")]


@app.callback()
def main_callback(
    version: Annotated[
        bool | None,
        typer.Option(
            "--version", callback=version_callback, is_eager=True, help="Show version and exit"
        ),
    ] = None,
) -> None:
    pass


def setup_logging(verbose: bool, quiet: bool, default_level: str = "INFO") -> None:
    """Configure logging based on verbosity flags."""
    if quiet:
        level = logging.WARNING
    elif verbose:
        level = logging.DEBUG
    else:
        level = getattr(logging, default_level.upper(), logging.INFO)

    logging.basicConfig(
        level=level,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        datefmt="%H:%M:%S",
    )
    logging.getLogger("reptile_genetics").setLevel(level)


def _with_password(db_url: str, password: str | None) -> str:
    parsed = urlparse(db_url)
    if not password or parsed.password:
        return db_url
    netloc = f"{parsed.username or 'postgres'}:{password}@{parsed.hostname}"
    if parsed.port:
        netloc += f":{parsed.port}"
    return urlunparse(
        (parsed.scheme, netloc, parsed.path, parsed.params, parsed.query, parsed.fragment)
    )


def _resolve_database_url(db_url: str | None, config_path: Path | None) -> str | None:
    """Resolve the database URL from --db or the config file's [database] table.

    The password is taken from REPTILE_GENETICS_DB_PASSWORD when set.
    """
    password = os.environ.get(PASSWORD_ENV_VAR)
    if db_url:
        return _with_password(db_url, password)
    if config_path is not None:
        return load_database_config(config_path).to_url(password)
    return None


def _require_database_url(db_url: str | None, config_path: Path | None) -> str:
    try:
        resolved = _resolve_database_url(db_url, config_path)
    except CONFIG_ERRORS as e:
        console.print(f"[red]Configuration error: {e}[/red]")
        raise typer.Exit(1) from None
    if resolved is None:
        console.print(
            "[red]Error: Provide --db URL or a config file with database settings[/red]"
        )
        raise typer.Exit(1)
    return resolved


def _load_engine_config(
    config_path: Path | None, max_generations: int | None = None
) -> EngineConfig:
    overrides = {"max_generations": max_generations}
    if config_path is None:
        if max_generations is None:
            return EngineConfig()
        return EngineConfig(max_generations=max_generations)
    return load_config(config_path, overrides)


def _open_repository(
    population: Path | None, db_url: str | None, config_path: Path | None
) -> AnimalRepository:
    if population is not None and db_url is not None:
        console.print("[red]Error: Use either --population or --db, not both[/red]")
        raise typer.Exit(1)

    if population is not None:
        if not population.exists():
            console.print(f"[red]Error: Population file not found: {population}[/red]")
            raise typer.Exit(1)
        catalogs = load_locus_catalogs(config_path).values() if config_path else ()
        return JsonFileAnimalRepository(population, catalogs)

    resolved = _resolve_database_url(db_url, config_path)
    if resolved is None:
        console.print(
            "[red]Error: No data source. Provide --population FILE or --db URL[/red]"
        )
        raise typer.Exit(1)
    return PostgresAnimalRepository(resolved)


def _prepare(
    population: Path | None,
    db_url: str | None,
    config_path: Path | None,
    max_generations: int | None,
    verbose: bool,
    quiet: bool,
) -> tuple[AnimalRepository, EngineConfig]:
    try:
        engine_config = _load_engine_config(config_path, max_generations)
        setup_logging(verbose, quiet, engine_config.log_level)
        repository = _open_repository(population, db_url, config_path)
    except CONFIG_ERRORS as e:
        console.print(f"[red]Configuration error: {e}[/red]")
        raise typer.Exit(1) from None
    return repository, engine_config


def _print_report(report: BreedingReport) -> None:
    relationship = report.relationship
    console.print(f"[bold]{report.pair[0]} x {report.pair[1]}[/bold]")
    console.print(
        f"Relationship: [cyan]{relationship.kind.label}[/cyan] "
        f"(coefficient {format_percentage(float(relationship.coefficient) * 100)}%, "
        f"{relationship.coefficient})"
    )
    if relationship.common_ancestors:
        console.print(f"Common ancestors: {', '.join(relationship.common_ancestors)}")

    if report.advisory is not None:
        style = SEVERITY_STYLES[report.advisory.severity]
        console.print(
            f"[{style}]⚠ {report.advisory.severity.value.upper()}: "
            f"{report.advisory.message}[/{style}]"
        )
    else:
        console.print("[green]✓[/green] No shared ancestry found")

    table = Table(title="Offspring outcomes")
    table.add_column("Probability", justify="right")
    table.add_column("Genotype")
    table.add_column("Phenotype")
    for cell in report.cross.cells:
        table.add_row(
            f"{format_percentage(cell.probability * 100)}%", cell.genotype, cell.phenotype
        )
    console.print(table)
    console.print(report.cross.summary_text())


def _print_error(result: AnalysisResult) -> None:
    error = result.error
    hint = " (temporary, retry later)" if error.retryable else ""
    console.print(f"[red]Error: {error.message}{hint}[/red]")


@app.command()
def analyze(
    animal_a: str = typer.Argument(..., help="First animal id"),
    animal_b: str = typer.Argument(..., help="Second animal id"),
    population: PopulationOption = None,
    db_url: DatabaseOption = None,
    config_path: ConfigOption = None,
    max_generations: GenerationsOption = None,
    json_output: JsonOption = False,
    verbose: VerboseOption = False,
    quiet: QuietOption = False,
) -> None:
    """Analyze a candidate pairing of two animals."""
    repository, engine_config = _prepare(
        population, db_url, config_path, max_generations, verbose, quiet
    )

    async def run_analyze() -> AnalysisResult:
        async with repository:
            engine = BreedingEngine(repository, engine_config)
            return await engine.analyze_cross(animal_a, animal_b)

    try:
        result = asyncio.run(run_analyze())
    except EngineError as e:
        console.print(f"[red]Error: {e.message}[/red]")
        raise typer.Exit(1) from None

    if json_output:
        print(json.dumps(result.to_dict(), indent=2))
    elif result.ok:
        _print_report(result.report)
    else:
        _print_error(result)

    if not result.ok:
        raise typer.Exit(1)


@app.command()
def ancestry(
    animal_id: str = typer.Argument(..., help="Animal id"),
    population: PopulationOption = None,
    db_url: DatabaseOption = None,
    config_path: ConfigOption = None,
    max_generations: GenerationsOption = None,
    json_output: JsonOption = False,
    verbose: VerboseOption = False,
    quiet: QuietOption = False,
) -> None:
    """List an animal's ancestors, nearest generation first."""
    repository, engine_config = _prepare(
        population, db_url, config_path, max_generations, verbose, quiet
    )

    async def run_ancestry():
        async with repository:
            engine = BreedingEngine(repository, engine_config)
            return await engine.ancestry(animal_id)

    try:
        ancestors = asyncio.run(run_ancestry())
    except EngineError as e:
        console.print(f"[red]Error: {e.message}[/red]")
        raise typer.Exit(1) from None

    if json_output:
        print(json.dumps([animal.to_dict() for animal in ancestors], indent=2))
        return

    if not ancestors:
        if not quiet:
            console.print(f"[dim]No known ancestors for {animal_id}[/dim]")
        return

    table = Table(title=f"Ancestry of {animal_id}")
    table.add_column("ID")
    table.add_column("Name")
    table.add_column("Sex")
    table.add_column("Genotype")
    for animal in ancestors:
        table.add_row(
            animal.id, animal.name or "", animal.sex.value, format_genotype(animal.genotype)
        )
    console.print(table)


def _lineage_tree(node: LineageNode, tree: Tree) -> None:
    for role, parent in (("dam", node.dam), ("sire", node.sire)):
        if parent is not None:
            branch = tree.add(f"[magenta]{role}[/magenta] {parent.animal.display_name}")
            _lineage_tree(parent, branch)
    for child in node.offspring:
        branch = tree.add(f"[green]offspring[/green] {child.animal.display_name}")
        _lineage_tree(child, branch)


@app.command()
def lineage(
    animal_id: str = typer.Argument(..., help="Animal id"),
    population: PopulationOption = None,
    db_url: DatabaseOption = None,
    config_path: ConfigOption = None,
    max_generations: GenerationsOption = None,
    json_output: JsonOption = False,
    verbose: VerboseOption = False,
    quiet: QuietOption = False,
) -> None:
    """Show the pedigree tree around an animal."""
    repository, engine_config = _prepare(
        population, db_url, config_path, max_generations, verbose, quiet
    )

    async def run_lineage() -> LineageNode:
        async with repository:
            engine = BreedingEngine(repository, engine_config)
            return await engine.lineage(animal_id)

    try:
        root = asyncio.run(run_lineage())
    except EngineError as e:
        console.print(f"[red]Error: {e.message}[/red]")
        raise typer.Exit(1) from None

    if json_output:
        print(json.dumps(root.to_dict(), indent=2))
        return

    tree = Tree(f"[bold]{root.animal.display_name}[/bold]")
    _lineage_tree(root, tree)
    console.print(tree)


def _read_pairs(pairs_file: Path) -> list[tuple[str, str]]:
    pairs = []
    with open(pairs_file, encoding="utf-8") as f:
        for line_number, line in enumerate(f, start=1):
            line = line.strip()
            if not line or line.startswith("#"):
                continue
            ids = line.replace(",", " ").split()
            if len(ids) != 2:
                raise ValueError(f"Line {line_number}: expected two animal ids, got '{line}'")
            pairs.append((ids[0], ids[1]))
    return pairs


@app.command()
def batch(
    pairs_file: Path = typer.Argument(..., help="File with one 'A,B' pair per line"),
    population: PopulationOption = None,
    db_url: DatabaseOption = None,
    config_path: ConfigOption = None,
    max_generations: GenerationsOption = None,
    output: Annotated[
        Path | None, typer.Option("--output", "-o", help="Write JSON results to file")
    ] = None,
    json_output: JsonOption = False,
    verbose: VerboseOption = False,
    quiet: QuietOption = False,
) -> None:
    """Analyze many pairings concurrently."""
    if not pairs_file.exists():
        console.print(f"[red]Error: Pairs file not found: {pairs_file}[/red]")
        raise typer.Exit(1)

    try:
        pairs = _read_pairs(pairs_file)
    except ValueError as e:
        console.print(f"[red]Error: {e}[/red]")
        raise typer.Exit(1) from None

    repository, engine_config = _prepare(
        population, db_url, config_path, max_generations, verbose, quiet
    )

    async def run_batch() -> list[AnalysisResult]:
        async with repository:
            engine = BreedingEngine(repository, engine_config)
            return await engine.analyze_pairs(pairs)

    try:
        results = asyncio.run(run_batch())
    except EngineError as e:
        console.print(f"[red]Error: {e.message}[/red]")
        raise typer.Exit(1) from None

    payload = [result.to_dict() for result in results]
    if output is not None:
        output.write_text(json.dumps(payload, indent=2), encoding="utf-8")
        if not quiet:
            console.print(f"[green]✓[/green] Wrote {len(results)} results to {output}")

    if json_output:
        print(json.dumps(payload, indent=2))
    elif not quiet:
        table = Table(title="Pairing analysis")
        table.add_column("Pair")
        table.add_column("Relationship")
        table.add_column("Coefficient", justify="right")
        table.add_column("Most likely outcome")
        for result in results:
            pair = f"{result.pair[0]} x {result.pair[1]}"
            if result.ok:
                report = result.report
                top = report.cross.cells[0]
                table.add_row(
                    pair,
                    report.relationship.kind.label,
                    f"{format_percentage(float(report.relationship.coefficient) * 100)}%",
                    f"{top.genotype} ({format_percentage(top.probability * 100)}%)",
                )
            else:
                table.add_row(pair, f"[red]{result.error.code}[/red]", "", result.error.message)
        console.print(table)

    failed = sum(1 for result in results if not result.ok)
    if failed:
        if not quiet:
            console.print(f"[yellow]{failed} of {len(results)} pairings failed[/yellow]")
        raise typer.Exit(1)


@app.command("init-db")
def init_db(
    db_url: DatabaseOption = None,
    config_path: ConfigOption = None,
) -> None:
    """Initialize database schema.

    Creates the species_loci and animals tables read by the PostgreSQL
    repository.
    """
    resolved = _require_database_url(db_url, config_path)

    async def run_init() -> None:
        conn = await asyncpg.connect(resolved)
        try:
            await GeneticsSchemaManager().create_schema(conn)
            console.print("[green]✓[/green] Database schema initialized")
        finally:
            await conn.close()

    try:
        asyncio.run(run_init())
    except Exception as e:
        console.print(f"[red]Error: {e}[/red]")
        raise typer.Exit(1) from None


@app.command("load-population")
def load_population(
    population: Path = typer.Argument(..., help="JSON population snapshot file"),
    db_url: DatabaseOption = None,
    config_path: ConfigOption = None,
    quiet: QuietOption = False,
) -> None:
    """Load a JSON population snapshot into PostgreSQL."""
    if not population.exists():
        console.print(f"[red]Error: Population file not found: {population}[/red]")
        raise typer.Exit(1)

    resolved = _require_database_url(db_url, config_path)

    source = JsonFileAnimalRepository(population)

    async def run_load() -> int:
        await source.connect()
        conn = await asyncpg.connect(resolved)
        try:
            schema_manager = GeneticsSchemaManager()
            await schema_manager.create_schema(conn)
            async with conn.transaction():
                for species_id, catalog in source.catalogs.items():
                    for position, locus in enumerate(catalog):
                        await schema_manager.upsert_locus(conn, species_id, locus, position)
                for animal in source.animals:
                    await schema_manager.upsert_animal(conn, animal)
            return len(source.animals)
        finally:
            await conn.close()

    try:
        loaded = asyncio.run(run_load())
    except EngineError as e:
        console.print(f"[red]Error: {e.message}[/red]")
        raise typer.Exit(1) from None
    except Exception as e:
        console.print(f"[red]Error: {e}[/red]")
        raise typer.Exit(1) from None

    if not quiet:
        console.print(f"[green]✓[/green] Loaded {loaded} animals")


if __name__ == "__main__":
    app()
