"""Genotype resolution against a species' locus catalog.

Turns the loosely typed trait lists on an animal into per-locus copy-number
distributions that the cross calculator can combine.
"""

import logging
from dataclasses import dataclass

from .models import Dominance, Genotype, HetTrait, Locus, LocusCatalog
from .notation import format_percentage

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class LocusState:
    """One parent's state at one locus.

    ``copies`` holds the probabilities of carrying 0, 1 and 2 mutant copies.
    ``visual_weight`` is only meaningful for polygenic-incomplete loci.
    """

    locus: Locus
    copies: tuple[float, float, float]
    visual_weight: float
    uncertain_het: HetTrait | None
    description: str

    @property
    def gamete_probability(self) -> float:
        """Probability that a gamete carries the mutant allele."""
        return self.copies[1] / 2 + self.copies[2]


def _visual_copies(genotype: Genotype, catalog: LocusCatalog) -> dict[str, int]:
    copies: dict[str, int] = {}
    for trait in sorted(genotype.visual_traits):
        locus, count = catalog.resolve_visual(trait)
        copies[locus.name] = max(copies.get(locus.name, 0), count)
    return copies


def _het_claims(genotype: Genotype, catalog: LocusCatalog) -> dict[str, HetTrait]:
    claims: dict[str, HetTrait] = {}
    for het in genotype.het_traits:
        locus = catalog.get(het.locus)
        current = claims.get(locus.name)
        if current is not None:
            logger.debug(
                "Duplicate het claim for %s (%s%% and %s%%); keeping the higher",
                locus.name,
                current.percentage,
                het.percentage,
            )
            if current.percentage >= het.percentage:
                continue
        claims[locus.name] = het
    return claims


def validate_genotype(genotype: Genotype, catalog: LocusCatalog) -> None:
    """Resolve every trait name in a genotype.

    Raises:
        UnknownLocus: On the first trait name the catalog does not track
    """
    for trait in sorted(genotype.visual_traits):
        catalog.resolve_visual(trait)
    for het in genotype.het_traits:
        catalog.get(het.locus)


def expressed_traits(genotype: Genotype, catalog: LocusCatalog) -> frozenset[str]:
    """Return the locus names whose trait is phenotypically expressed.

    Visual traits are always expressed. A certain het on a dominant or
    co-dominant locus is one copy of an allele that shows, so it is expressed
    too. Recessive hets and uncertain hets never are.

    Raises:
        UnknownLocus: If any trait name is outside the catalog
    """
    expressed = set(_visual_copies(genotype, catalog))
    for locus_name, het in _het_claims(genotype, catalog).items():
        locus = catalog.get(locus_name)
        if het.certain and locus.dominance.has_homozygous_form:
            expressed.add(locus.name)
    return frozenset(expressed)


def loci_in_play(
    genotype_a: Genotype, genotype_b: Genotype, catalog: LocusCatalog
) -> list[Locus]:
    """Loci either parent expresses or carries, in catalog order."""
    names: set[str] = set()
    for genotype in (genotype_a, genotype_b):
        names.update(_visual_copies(genotype, catalog))
        names.update(_het_claims(genotype, catalog))
    return [catalog.get(name) for name in catalog.sorted_names(names)]


def _describe_visual(locus: Locus, copies: int) -> str:
    if locus.dominance.has_homozygous_form:
        return locus.homozygous_name if copies == 2 else locus.name
    return f"visual {locus.name}"


def locus_state(genotype: Genotype, locus: Locus, catalog: LocusCatalog) -> LocusState:
    """Derive one parent's copy-number distribution at a locus."""
    visual = _visual_copies(genotype, catalog).get(locus.name)
    het = _het_claims(genotype, catalog).get(locus.name)

    if visual is not None:
        if locus.dominance == Dominance.POLYGENIC_INCOMPLETE:
            visual = 1
        copies = [0.0, 0.0, 0.0]
        copies[visual] = 1.0
        return LocusState(
            locus=locus,
            copies=(copies[0], copies[1], copies[2]),
            visual_weight=1.0,
            uncertain_het=None,
            description=_describe_visual(locus, visual),
        )

    if het is not None:
        p = het.probability
        return LocusState(
            locus=locus,
            copies=(1.0 - p, p, 0.0),
            visual_weight=p,
            uncertain_het=None if het.certain else het,
            description=f"{format_percentage(het.percentage)}% het {locus.name}",
        )

    return LocusState(
        locus=locus,
        copies=(1.0, 0.0, 0.0),
        visual_weight=0.0,
        uncertain_het=None,
        description="normal",
    )


def locus_copy_distribution(
    genotype: Genotype, locus: Locus, catalog: LocusCatalog
) -> tuple[float, float, float]:
    """Probabilities of carrying 0, 1 or 2 mutant copies at a locus."""
    return locus_state(genotype, locus, catalog).copies
