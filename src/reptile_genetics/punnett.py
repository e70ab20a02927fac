"""Offspring outcome distributions for a cross.

Each locus is crossed independently from the two parents' copy-number
distributions. With q the chance a parent's gamete carries the mutant allele
(q = P(1)/2 + P(2)), the offspring table is

    P(2) = q_a * q_b
    P(1) = q_a * (1 - q_b) + q_b * (1 - q_a)
    P(0) = (1 - q_a) * (1 - q_b)

Polygenic-incomplete loci have no copy model; a parent of visual weight w
passes the look on with chance r * w, where r is the locus transmission rate.

Loci are independent, so the multi-locus outcome is the cross product of the
per-locus tables with probabilities multiplied.
"""

import itertools
import logging
from collections.abc import Iterable
from dataclasses import dataclass
from typing import Any

from .errors import ProbabilityInvariantError, SpeciesMismatch
from .genotype import LocusState, loci_in_play, locus_state, validate_genotype
from .models import Animal, Dominance, Genotype, Locus, LocusCatalog
from .notation import format_percentage

logger = logging.getLogger(__name__)

PROBABILITY_TOLERANCE = 1e-6
NO_TRACKED_TRAITS = "no tracked traits"
NORMAL = "normal"


@dataclass(frozen=True)
class LocusOutcome:
    """One row of a single-locus Punnett table."""

    locus: str
    copies: int
    genotype: str
    phenotype: str
    probability: float
    rationale: str
    visual: bool
    carrier: bool


@dataclass(frozen=True)
class OutcomeCell:
    """One offspring class of a multi-locus cross."""

    genotype: str
    phenotype: str
    probability: float
    rationale: str
    components: tuple[LocusOutcome, ...] = ()

    def to_dict(self) -> dict[str, Any]:
        return {
            "genotype": self.genotype,
            "phenotype": self.phenotype,
            "probability": self.probability,
            "rationale": self.rationale,
        }


@dataclass(frozen=True)
class CrossOutcome:
    cells: tuple[OutcomeCell, ...]
    loci: tuple[str, ...] = ()
    empty: bool = False

    def visual_summary(self) -> dict[str, float]:
        """Probability that an offspring shows each visual phenotype."""
        summary: dict[str, float] = {}
        for cell in self.cells:
            for component in cell.components:
                if component.visual:
                    summary[component.phenotype] = (
                        summary.get(component.phenotype, 0.0) + cell.probability
                    )
        return summary

    def _copy_marginals(self) -> dict[str, dict[int, float]]:
        marginals: dict[str, dict[int, float]] = {}
        for cell in self.cells:
            for component in cell.components:
                per_locus = marginals.setdefault(component.locus, {})
                per_locus[component.copies] = (
                    per_locus.get(component.copies, 0.0) + cell.probability
                )
        return marginals

    def _recessive_loci(self) -> list[str]:
        names = []
        for cell in self.cells:
            for component in cell.components:
                if component.carrier and component.locus not in names:
                    names.append(component.locus)
        return [name for name in self.loci if name in names]

    def het_summary(self) -> dict[str, float]:
        """Probability per recessive locus that an offspring carries one copy."""
        marginals = self._copy_marginals()
        return {name: marginals[name].get(1, 0.0) for name in self._recessive_loci()}

    def possible_het_odds(self) -> dict[str, float]:
        """Probability that a non-visual offspring carries the recessive allele.

        This is the figure keepers quote as e.g. "66% possible het".
        """
        marginals = self._copy_marginals()
        odds = {}
        for name in self._recessive_loci():
            carrier = marginals[name].get(1, 0.0)
            non_visual = marginals[name].get(0, 0.0) + carrier
            if non_visual > 0:
                odds[name] = carrier / non_visual
        return odds

    def summary_text(self) -> str:
        if self.empty:
            return (
                "Neither parent expresses or carries a tracked trait; "
                "all offspring are expected to be normal."
            )

        top = self.cells[0]
        outcomes = "outcome" if len(self.cells) == 1 else "outcomes"
        loci = "locus" if len(self.loci) == 1 else "loci"
        parts = [
            f"{len(self.cells)} possible {outcomes} across "
            f"{len(self.loci)} tracked {loci} ({', '.join(self.loci)}).",
            f"Most likely: {top.genotype} at {format_percentage(top.probability * 100)}%.",
        ]
        visuals = self.visual_summary()
        if visuals:
            listed = ", ".join(
                f"{label} {format_percentage(p * 100)}%" for label, p in visuals.items()
            )
            parts.append(f"Visual odds: {listed}.")
        hets = self.het_summary()
        if hets:
            listed = ", ".join(
                f"het {name} {format_percentage(p * 100)}%" for name, p in hets.items()
            )
            parts.append(f"Carrier odds: {listed}.")
        return " ".join(parts)

    def to_dict(self) -> dict[str, Any]:
        return {
            "loci": list(self.loci),
            "empty": self.empty,
            "cells": [cell.to_dict() for cell in self.cells],
            "visual_summary": self.visual_summary(),
            "het_summary": self.het_summary(),
            "possible_het_odds": self.possible_het_odds(),
            "summary": self.summary_text(),
        }


def check_distribution(
    probabilities: Iterable[float],
    context: str,
    tolerance: float = PROBABILITY_TOLERANCE,
) -> None:
    """Assert every probability is in [0, 1] and the total is 1.

    Raises:
        ProbabilityInvariantError: If the distribution is malformed
    """
    values = list(probabilities)
    for value in values:
        if value < -tolerance or value > 1.0 + tolerance:
            raise ProbabilityInvariantError(
                f"Probability {value} out of range in {context}"
            )
    total = sum(values)
    if abs(total - 1.0) > tolerance:
        raise ProbabilityInvariantError(
            f"Probabilities in {context} sum to {total}, not 1"
        )


def _labels(locus: Locus, copies: int) -> tuple[str, str]:
    """Genotype and phenotype label for a copy count at a locus."""
    if copies == 0:
        return NORMAL, NORMAL

    if locus.dominance == Dominance.RECESSIVE:
        if copies == 2:
            return f"visual {locus.name}", locus.name
        return f"het {locus.name}", NORMAL

    if locus.dominance == Dominance.DOMINANT:
        if copies == 2:
            return locus.homozygous_name, locus.name
        return locus.name, locus.name

    if locus.dominance == Dominance.CO_DOMINANT:
        label = locus.homozygous_name if copies == 2 else locus.name
        return label, label

    return locus.name, locus.name


def _rationale(
    state_a: LocusState, state_b: LocusState, label: str, probability: float
) -> str:
    parents = " x ".join(sorted([state_a.description, state_b.description]))
    text = (
        f"{state_a.locus.name}: {parents} gives "
        f"{format_percentage(probability * 100)}% {label}"
    )
    uncertain = sorted(
        format_percentage(state.uncertain_het.percentage)
        for state in (state_a, state_b)
        if state.uncertain_het is not None
    )
    if uncertain:
        text += f" (carrier certainty of {' and '.join(p + '%' for p in uncertain)} scaled in)"
    return text


def cross_locus(
    state_a: LocusState,
    state_b: LocusState,
    tolerance: float = PROBABILITY_TOLERANCE,
) -> tuple[LocusOutcome, ...]:
    """Build the offspring table for one locus, dropping impossible rows."""
    locus = state_a.locus

    if locus.dominance == Dominance.POLYGENIC_INCOMPLETE:
        rate = locus.transmission_rate
        miss = (1.0 - rate * state_a.visual_weight) * (1.0 - rate * state_b.visual_weight)
        table = [(1, 1.0 - miss), (0, miss)]
    else:
        q_a = state_a.gamete_probability
        q_b = state_b.gamete_probability
        table = [
            (2, q_a * q_b),
            (1, q_a * (1.0 - q_b) + q_b * (1.0 - q_a)),
            (0, (1.0 - q_a) * (1.0 - q_b)),
        ]

    check_distribution((p for _, p in table), f"locus {locus.name}", tolerance)

    rows = []
    for copies, probability in table:
        if probability <= 0.0:
            continue
        genotype_label, phenotype_label = _labels(locus, copies)
        rows.append(
            LocusOutcome(
                locus=locus.name,
                copies=copies,
                genotype=genotype_label,
                phenotype=phenotype_label,
                probability=probability,
                rationale=_rationale(state_a, state_b, genotype_label, probability),
                visual=phenotype_label != NORMAL,
                carrier=locus.dominance == Dominance.RECESSIVE,
            )
        )
    return tuple(rows)


def _combine(components: tuple[LocusOutcome, ...]) -> OutcomeCell:
    probability = 1.0
    for component in components:
        probability *= component.probability

    genotype_parts = [c.genotype for c in components if c.genotype != NORMAL]
    phenotype_parts: list[str] = []
    for component in components:
        if component.visual and component.phenotype not in phenotype_parts:
            phenotype_parts.append(component.phenotype)

    return OutcomeCell(
        genotype=", ".join(genotype_parts) or NORMAL,
        phenotype=", ".join(phenotype_parts) or NORMAL,
        probability=probability,
        rationale="; ".join(c.rationale for c in components),
        components=components,
    )


def _empty_outcome() -> CrossOutcome:
    cell = OutcomeCell(
        genotype=NO_TRACKED_TRAITS,
        phenotype=NORMAL,
        probability=1.0,
        rationale="Neither parent expresses or carries a tracked trait.",
    )
    return CrossOutcome(cells=(cell,), loci=(), empty=True)


def calculate_cross(
    genotype_a: Genotype,
    genotype_b: Genotype,
    catalog: LocusCatalog,
    tolerance: float = PROBABILITY_TOLERANCE,
) -> CrossOutcome:
    """Compute the offspring distribution of a cross.

    Args:
        genotype_a: First parent's genotype
        genotype_b: Second parent's genotype
        catalog: Loci tracked for the parents' species
        tolerance: Allowed deviation of each table's total from 1

    Returns:
        CrossOutcome with cells ordered by descending probability then
        genotype label; a single "no tracked traits" cell when no locus is
        in play

    Raises:
        UnknownLocus: If either genotype names a trait outside the catalog
    """
    validate_genotype(genotype_a, catalog)
    validate_genotype(genotype_b, catalog)

    loci = loci_in_play(genotype_a, genotype_b, catalog)
    if not loci:
        return _empty_outcome()

    tables = [
        cross_locus(
            locus_state(genotype_a, locus, catalog),
            locus_state(genotype_b, locus, catalog),
            tolerance,
        )
        for locus in loci
    ]

    cells = [_combine(combination) for combination in itertools.product(*tables)]
    cells = [cell for cell in cells if cell.probability > 0.0]
    cells.sort(key=lambda cell: (-cell.probability, cell.genotype))

    check_distribution(
        (cell.probability for cell in cells), "combined cross table", tolerance
    )
    logger.debug(
        "Cross over %d loci produced %d outcome cells", len(loci), len(cells)
    )
    return CrossOutcome(
        cells=tuple(cells), loci=tuple(locus.name for locus in loci), empty=False
    )


def cross_animals(
    animal_a: Animal,
    animal_b: Animal,
    catalog: LocusCatalog,
    tolerance: float = PROBABILITY_TOLERANCE,
) -> CrossOutcome:
    """Cross two animals after checking they share the catalog's species.

    Raises:
        SpeciesMismatch: If the animals or the catalog disagree on species
        UnknownLocus: If either genotype names an untracked trait
    """
    if animal_a.species_id != animal_b.species_id:
        raise SpeciesMismatch(animal_a.species_id, animal_b.species_id)
    if catalog.species_id != animal_a.species_id:
        raise SpeciesMismatch(animal_a.species_id, catalog.species_id)
    return calculate_cross(animal_a.genotype, animal_b.genotype, catalog, tolerance)
