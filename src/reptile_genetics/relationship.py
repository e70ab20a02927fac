"""Relationship classification between two candidate breeding animals.

Direct relations (parent-offspring, full and half siblings) are decided from
the parent slots alone. Anything further out is found by intersecting the two
bounded ancestor sets and scored with Wright's coefficient of relationship:

    r = sum over common ancestors A, over pairs of paths (a -> A, b -> A)
        that share no animal other than A, of 0.5 ** (n_a + n_b) * (1 + F_A)

where F_A is the ancestor's own inbreeding coefficient. The sum is evaluated
with the tabular recursion in ``PedigreeGraph.additive_relationship``.
"""

import logging
from dataclasses import dataclass
from enum import Enum
from fractions import Fraction
from typing import Any

from .errors import InvalidPair, SpeciesMismatch
from .models import Animal
from .pedigree import DEFAULT_MAX_GENERATIONS, PedigreeGraph

logger = logging.getLogger(__name__)

HALF = Fraction(1, 2)
QUARTER = Fraction(1, 4)


class RelationshipKind(Enum):
    UNRELATED = "unrelated"
    PARENT_OFFSPRING = "parent_offspring"
    FULL_SIBLINGS = "full_siblings"
    HALF_SIBLINGS = "half_siblings"
    RELATED = "related"
    UNKNOWN = "unknown"

    @property
    def label(self) -> str:
        return {
            RelationshipKind.UNRELATED: "Unrelated",
            RelationshipKind.PARENT_OFFSPRING: "Parent-Offspring",
            RelationshipKind.FULL_SIBLINGS: "Full Siblings",
            RelationshipKind.HALF_SIBLINGS: "Half Siblings",
            RelationshipKind.RELATED: "Related",
            RelationshipKind.UNKNOWN: "Related (unresolved paths)",
        }[self]


@dataclass(frozen=True)
class RelationshipResult:
    """How two animals are related.

    ``common_ancestors`` is nearest first by summed generation depth. When
    one animal is a lineal ancestor of the other (a grandparent, say) it is
    listed too, at depth 0 on its own side. For direct relations it holds the
    shared parents of siblings and is empty for parent-offspring pairs.
    """

    kind: RelationshipKind
    common_ancestors: tuple[str, ...] = ()
    coefficient: Fraction = Fraction(0)

    @property
    def is_related(self) -> bool:
        return self.kind != RelationshipKind.UNRELATED

    def to_dict(self) -> dict[str, Any]:
        return {
            "kind": self.kind.value,
            "label": self.kind.label,
            "common_ancestors": list(self.common_ancestors),
            "coefficient": float(self.coefficient),
            "coefficient_fraction": str(self.coefficient),
        }


def _clamp(value: Fraction) -> Fraction:
    return max(Fraction(0), min(Fraction(1), value))


def _direct_relationship(a: Animal, b: Animal) -> RelationshipResult | None:
    if b.id in a.parent_ids or a.id in b.parent_ids:
        return RelationshipResult(RelationshipKind.PARENT_OFFSPRING, (), HALF)

    same_dam = a.dam_id is not None and a.dam_id == b.dam_id
    same_sire = a.sire_id is not None and a.sire_id == b.sire_id
    shared = tuple(
        parent_id
        for parent_id, shared_slot in ((a.dam_id, same_dam), (a.sire_id, same_sire))
        if shared_slot
    )

    if same_dam and same_sire:
        return RelationshipResult(RelationshipKind.FULL_SIBLINGS, shared, HALF)
    if same_dam or same_sire:
        return RelationshipResult(RelationshipKind.HALF_SIBLINGS, shared, QUARTER)
    return None


def coefficient_of_relationship(
    a_id: str,
    b_id: str,
    graph: PedigreeGraph,
    max_generations: int = DEFAULT_MAX_GENERATIONS,
) -> Fraction:
    """Wright's coefficient of relationship, clamped to [0, 1].

    Inbred common ancestors push the additive relationship of animals from
    closed lines above 1; the reported coefficient stops there.
    """
    return _clamp(graph.additive_relationship(a_id, b_id, max_generations))


def _common_ancestors(
    a: Animal, b: Animal, graph: PedigreeGraph, max_generations: int
) -> tuple[list[str], dict[str, int]]:
    depth_a = {a.id: 0, **graph.ancestor_ids(a.id, max_generations)}
    depth_b = {b.id: 0, **graph.ancestor_ids(b.id, max_generations)}

    traversal_order = {animal_id: index for index, animal_id in enumerate(depth_a)}
    summed = {
        animal_id: depth + depth_b[animal_id]
        for animal_id, depth in depth_a.items()
        if animal_id in depth_b
    }
    common = sorted(summed, key=lambda x: (summed[x], traversal_order[x]))
    return common, summed


def classify_relationship(
    a: Animal,
    b: Animal,
    graph: PedigreeGraph,
    max_generations: int = DEFAULT_MAX_GENERATIONS,
) -> RelationshipResult:
    """Classify how two animals are related.

    Args:
        a: First animal
        b: Second animal
        graph: Pedigree graph of the population both belong to
        max_generations: How far back to look for shared ancestry

    Returns:
        RelationshipResult; the coefficient is zero only for unrelated animals

    Raises:
        SpeciesMismatch: If the animals belong to different species
        InvalidPair: If both are the same animal
    """
    if a.species_id != b.species_id:
        raise SpeciesMismatch(a.species_id, b.species_id)
    if a.id == b.id:
        raise InvalidPair(f"Cannot pair animal {a.id} with itself")

    direct = _direct_relationship(a, b)
    if direct is not None:
        return direct

    common, summed = _common_ancestors(a, b, graph, max_generations)
    if not common:
        return RelationshipResult(RelationshipKind.UNRELATED)

    common_ids = tuple(common)
    coefficient = coefficient_of_relationship(a.id, b.id, graph, max_generations)
    if coefficient == 0:
        nearest = summed[common[0]]
        logger.warning(
            "Animals %s and %s share ancestors %s but no acyclic path reaches them; "
            "pedigree data may be inconsistent",
            a.id,
            b.id,
            ", ".join(common_ids),
        )
        return RelationshipResult(
            RelationshipKind.UNKNOWN, common_ids, Fraction(1, 2**nearest)
        )

    return RelationshipResult(RelationshipKind.RELATED, common_ids, coefficient)
