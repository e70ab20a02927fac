"""Breeding analysis engine.

Fetches a consistent population snapshot from a repository and runs the
pure relationship and cross computations over it. Every request is
independent; nothing is cached between calls.
"""

import asyncio
import logging
from collections.abc import Iterable
from dataclasses import dataclass
from typing import Any

from .config import EngineConfig
from .errors import EngineError, InvalidPair, SpeciesMismatch, UnknownAnimal
from .models import Animal, LocusCatalog
from .pedigree import LineageNode, PedigreeGraph, check_generations
from .punnett import PROBABILITY_TOLERANCE, cross_animals
from .relationship import classify_relationship
from .report import BreedingReport, assemble_report
from .repository import AnimalRepository

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class AnalysisResult:
    """Outcome of one pair analysis: a report or a typed error, never both."""

    pair: tuple[str, str]
    report: BreedingReport | None = None
    error: EngineError | None = None

    @property
    def ok(self) -> bool:
        return self.error is None

    @property
    def retryable(self) -> bool:
        return self.error is not None and self.error.retryable

    def unwrap(self) -> BreedingReport:
        if self.error is not None:
            raise self.error
        return self.report

    def to_dict(self) -> dict[str, Any]:
        return {
            "pair": list(self.pair),
            "report": self.report.to_dict() if self.report else None,
            "error": self.error.to_dict() if self.error else None,
        }


def _build_graph(population: Iterable[Animal], *focal: Animal) -> PedigreeGraph:
    animals = list(population)
    known = {animal.id for animal in animals}
    for animal in focal:
        if animal.id not in known:
            animals.append(animal)
            known.add(animal.id)
    return PedigreeGraph(animals)


def analyze_snapshot(
    animal_a: Animal,
    animal_b: Animal,
    population: Iterable[Animal],
    catalog: LocusCatalog,
    max_generations: int = 3,
    tolerance: float = PROBABILITY_TOLERANCE,
) -> BreedingReport:
    """Analyze a pair against an already fetched snapshot.

    Raises:
        SpeciesMismatch: If the animals or the catalog disagree on species
        InvalidPair: If both are the same animal
        UnknownLocus: If a genotype names an untracked trait
    """
    graph = _build_graph(population, animal_a, animal_b)

    relationship = classify_relationship(animal_a, animal_b, graph, max_generations)
    for animal in (animal_a, animal_b):
        if graph.has_cycle(animal.id, max_generations):
            logger.warning(
                "Cyclic ancestry detected above %s; traversal was cut at the repeat",
                animal.id,
            )

    cross = cross_animals(animal_a, animal_b, catalog, tolerance)
    return assemble_report((animal_a.id, animal_b.id), relationship, cross)


class BreedingEngine:
    """Async facade over the pure pedigree and cross computations."""

    def __init__(self, repository: AnimalRepository, config: EngineConfig | None = None):
        self.repository = repository
        self.config = config or EngineConfig()

    async def _require_animal(self, animal_id: str) -> Animal:
        animal = await self.repository.fetch_animal(animal_id)
        if animal is None:
            raise UnknownAnimal(animal_id)
        return animal

    async def _snapshot(self, species_id: str) -> tuple[list[Animal], LocusCatalog]:
        population, catalog = await asyncio.gather(
            self.repository.fetch_population(species_id),
            self.repository.fetch_locus_catalog(species_id),
        )
        return population, catalog

    async def _analyze(self, animal_a_id: str, animal_b_id: str) -> BreedingReport:
        if animal_a_id == animal_b_id:
            raise InvalidPair(f"Cannot pair animal {animal_a_id} with itself")

        animal_a, animal_b = await asyncio.gather(
            self._require_animal(animal_a_id),
            self._require_animal(animal_b_id),
        )
        if animal_a.species_id != animal_b.species_id:
            raise SpeciesMismatch(animal_a.species_id, animal_b.species_id)

        population, catalog = await self._snapshot(animal_a.species_id)
        return analyze_snapshot(
            animal_a,
            animal_b,
            population,
            catalog,
            max_generations=self.config.max_generations,
            tolerance=self.config.probability_tolerance,
        )

    async def analyze_cross(self, animal_a_id: str, animal_b_id: str) -> AnalysisResult:
        """Analyze a candidate pairing.

        Returns:
            AnalysisResult holding the report, or the EngineError that
            prevented it. Defects propagate as exceptions.
        """
        pair = (animal_a_id, animal_b_id)
        try:
            report = await self._analyze(animal_a_id, animal_b_id)
        except EngineError as e:
            log = logger.warning if e.retryable else logger.info
            log("Analysis of %s x %s failed (%s): %s", *pair, e.code, e.message)
            return AnalysisResult(pair=pair, error=e)

        logger.debug(
            "Analyzed %s x %s: %s, %d outcome cells",
            *pair,
            report.relationship.kind.value,
            len(report.cross.cells),
        )
        return AnalysisResult(pair=pair, report=report)

    async def analyze_pairs(
        self, pairs: Iterable[tuple[str, str]]
    ) -> list[AnalysisResult]:
        """Analyze many pairs concurrently, results in input order."""
        semaphore = asyncio.Semaphore(self.config.max_concurrency)

        async def bounded(pair: tuple[str, str]) -> AnalysisResult:
            async with semaphore:
                return await self.analyze_cross(*pair)

        return list(await asyncio.gather(*(bounded(pair) for pair in pairs)))

    async def ancestry(
        self, animal_id: str, max_generations: int | None = None
    ) -> list[Animal]:
        """Ancestors of an animal, nearest generation first.

        Raises:
            UnknownAnimal: If the id is not in the repository
            DataUnavailable: If the repository cannot be read
        """
        generations = self._generations(max_generations)
        animal = await self._require_animal(animal_id)
        population = await self.repository.fetch_population(animal.species_id)
        graph = _build_graph(population, animal)
        if graph.has_cycle(animal_id, generations):
            logger.warning(
                "Cyclic ancestry detected above %s; traversal was cut at the repeat",
                animal_id,
            )
        return graph.ancestry(animal_id, generations)

    async def lineage(
        self, animal_id: str, max_generations: int | None = None
    ) -> LineageNode:
        """Pedigree tree of ancestors and direct offspring around an animal."""
        generations = self._generations(max_generations)
        animal = await self._require_animal(animal_id)
        population = await self.repository.fetch_population(animal.species_id)
        return _build_graph(population, animal).lineage(animal_id, generations)

    def _generations(self, max_generations: int | None) -> int:
        if max_generations is None:
            return self.config.max_generations
        check_generations(max_generations)
        return max_generations
