"""Pedigree graph over a population snapshot.

Animals reference their parents by id; those references may dangle or, in
bad data, loop back on themselves. Every walk here is bounded by a generation
limit. Ancestor walks visit each animal once, so their cost grows with the
number of animals in range rather than the number of paths to them.
"""

import logging
from collections import deque
from collections.abc import Iterable
from dataclasses import dataclass, field
from fractions import Fraction

from .models import Animal

logger = logging.getLogger(__name__)

DEFAULT_MAX_GENERATIONS = 3
MAX_GENERATIONS = 16


@dataclass(frozen=True)
class AncestorRecord:
    animal_id: str
    generation: int


@dataclass(frozen=True)
class LineageNode:
    """One node of a pedigree tree rooted at a focal animal."""

    animal: Animal
    generation: int = 0
    dam: "LineageNode | None" = None
    sire: "LineageNode | None" = None
    offspring: tuple["LineageNode", ...] = field(default_factory=tuple)

    def to_dict(self) -> dict:
        return {
            "id": self.animal.id,
            "name": self.animal.name,
            "sex": self.animal.sex.value,
            "generation": self.generation,
            "dam": self.dam.to_dict() if self.dam else None,
            "sire": self.sire.to_dict() if self.sire else None,
            "offspring": [child.to_dict() for child in self.offspring],
        }


def check_generations(max_generations: int) -> None:
    if not 0 <= max_generations <= MAX_GENERATIONS:
        raise ValueError(
            f"max_generations must be between 0 and {MAX_GENERATIONS}, "
            f"got {max_generations}"
        )


def _has_loop(parents: dict[str, list[str]]) -> bool:
    """Kahn's algorithm over child -> parent links; leftovers mean a loop."""
    pending_children = {node: 0 for node in parents}
    for node_parents in parents.values():
        for parent_id in node_parents:
            pending_children[parent_id] = pending_children.get(parent_id, 0) + 1

    ready = deque(node for node, count in pending_children.items() if count == 0)
    removed = 0
    while ready:
        node = ready.popleft()
        removed += 1
        for parent_id in parents.get(node, ()):
            pending_children[parent_id] -= 1
            if pending_children[parent_id] == 0:
                ready.append(parent_id)
    return removed < len(pending_children)


def _parents_first(parents: dict[str, list[str]], roots: Iterable[str]) -> list[str]:
    """Order nodes so every parent precedes its children.

    Depth-first post-order; a link to a node still on the stack closes a loop
    and is left out, which happens only in corrupted data.
    """
    order: list[str] = []
    finished: dict[str, bool] = {}
    for root in roots:
        if root in finished:
            continue
        finished[root] = False
        stack = [(root, iter(parents.get(root, ())))]
        while stack:
            node, pending = stack[-1]
            for parent_id in pending:
                if parent_id not in finished:
                    finished[parent_id] = False
                    stack.append((parent_id, iter(parents.get(parent_id, ()))))
                    break
            else:
                stack.pop()
                finished[node] = True
                order.append(node)
    return order


class PedigreeGraph:
    """Index of a population by id with bounded ancestor traversal."""

    def __init__(self, population: Iterable[Animal]):
        self._animals: dict[str, Animal] = {}
        self._children: dict[str, list[str]] = {}

        for animal in population:
            if animal.id in self._animals:
                raise ValueError(f"Duplicate animal id in population: {animal.id}")
            self._animals[animal.id] = animal

        for animal in self._animals.values():
            for parent_id in animal.parent_ids:
                self._children.setdefault(parent_id, []).append(animal.id)

    def __contains__(self, animal_id: object) -> bool:
        return animal_id in self._animals

    def __len__(self) -> int:
        return len(self._animals)

    def get(self, animal_id: str) -> Animal | None:
        return self._animals.get(animal_id)

    def _parents(self, animal_id: str) -> list[str]:
        """Resolvable parent ids of an animal, dam first."""
        animal = self._animals.get(animal_id)
        if animal is None:
            return []
        parents = []
        for parent_id in animal.parent_ids:
            if parent_id in self._animals:
                parents.append(parent_id)
            else:
                logger.debug(
                    "Parent %s of %s is not in the population", parent_id, animal_id
                )
        return parents

    def _walk(self, animal_id: str, max_generations: int) -> dict[str, int]:
        """Breadth-first walk mapping each ancestor to its lowest generation.

        Generations are visited in turn, dam before sire within each animal,
        so insertion order is generation then dam-first discovery.
        """
        check_generations(max_generations)

        generations: dict[str, int] = {}
        seen = {animal_id}
        frontier = [animal_id]
        for generation in range(1, max_generations + 1):
            next_frontier = []
            for current in frontier:
                for parent_id in self._parents(current):
                    if parent_id in seen:
                        continue
                    seen.add(parent_id)
                    generations[parent_id] = generation
                    next_frontier.append(parent_id)
            if not next_frontier:
                break
            frontier = next_frontier
        return generations

    def ancestors_of(
        self, animal_id: str, max_generations: int = DEFAULT_MAX_GENERATIONS
    ) -> tuple[AncestorRecord, ...]:
        """Walk up to max_generations of ancestors.

        Args:
            animal_id: Focal animal; it is not included in the result
            max_generations: Generation bound (parents are generation 1)

        Returns:
            Each ancestor once at its lowest generation, ordered by generation
            then dam-first discovery

        Raises:
            ValueError: If max_generations is negative or above MAX_GENERATIONS
        """
        return tuple(
            AncestorRecord(ancestor, generation)
            for ancestor, generation in self._walk(animal_id, max_generations).items()
        )

    def ancestor_ids(
        self, animal_id: str, max_generations: int = DEFAULT_MAX_GENERATIONS
    ) -> dict[str, int]:
        return self._walk(animal_id, max_generations)

    def ancestry(
        self, animal_id: str, max_generations: int = DEFAULT_MAX_GENERATIONS
    ) -> list[Animal]:
        return [
            self._animals[ancestor] for ancestor in self._walk(animal_id, max_generations)
        ]

    def _bounded_parents(
        self, roots: Iterable[str], max_generations: int
    ) -> dict[str, list[str]]:
        """Parent links of the pedigree around the roots, cut at the bound.

        An animal keeps its parent links only while it sits less than
        max_generations above at least one root.
        """
        nearest: dict[str, int] = {}
        for root in roots:
            nearest[root] = 0
            for ancestor, generation in self._walk(root, max_generations).items():
                nearest[ancestor] = min(generation, nearest.get(ancestor, generation))
        return {
            node: self._parents(node) if generation < max_generations else []
            for node, generation in nearest.items()
        }

    def has_cycle(
        self, animal_id: str, max_generations: int = DEFAULT_MAX_GENERATIONS
    ) -> bool:
        """Whether parent links loop back within the generation bound."""
        return _has_loop(self._bounded_parents([animal_id], max_generations))

    def additive_relationship(
        self,
        animal_a_id: str,
        animal_b_id: str,
        max_generations: int = DEFAULT_MAX_GENERATIONS,
    ) -> Fraction:
        """Additive relationship of two animals (twice their kinship).

        Tabular method: animals are processed parents first, and each one's
        relationship to every earlier animal is the mean over its known
        parents, while its own diagonal entry is 1 + F (half the relationship
        between its parents). Equivalent to summing 0.5^(n_a + n_b) * (1 + F_A)
        over every common ancestor A and every pair of paths meeting only at
        A, but polynomial in the number of animals rather than in the number
        of paths.

        Only the pedigree within max_generations of either animal is used;
        animals beyond it count as founders.
        """
        parents = self._bounded_parents([animal_a_id, animal_b_id], max_generations)
        order = _parents_first(parents, [animal_a_id, animal_b_id])
        position = {node: index for index, node in enumerate(order)}

        relationship: dict[tuple[str, str], Fraction] = {}

        def lookup(x: str, y: str) -> Fraction:
            if (x, y) in relationship:
                return relationship[(x, y)]
            return relationship[(y, x)]

        for index, node in enumerate(order):
            known = [p for p in parents[node] if position[p] < index]
            for other in order[:index]:
                relationship[(node, other)] = (
                    sum((lookup(p, other) for p in known), Fraction(0)) / 2
                )
            if len(known) == 2:
                relationship[(node, node)] = 1 + lookup(known[0], known[1]) / 2
            else:
                relationship[(node, node)] = Fraction(1)

        logger.debug(
            "Relationship of %s and %s computed over %d animals",
            animal_a_id,
            animal_b_id,
            len(order),
        )
        return lookup(animal_a_id, animal_b_id)

    def offspring_of(self, animal_id: str) -> list[Animal]:
        return [self._animals[child] for child in self._children.get(animal_id, [])]

    def lineage(
        self,
        animal_id: str,
        max_generations: int = DEFAULT_MAX_GENERATIONS,
        descendant_generations: int = 1,
    ) -> LineageNode | None:
        """Build a pedigree tree around an animal.

        Ancestor branches go up to max_generations; offspring branches go down
        descendant_generations. Returns None if the animal is unknown.
        """
        check_generations(max_generations)
        check_generations(descendant_generations)

        animal = self._animals.get(animal_id)
        if animal is None:
            return None

        root_path = frozenset([animal_id])
        dam, sire = self._ancestor_branches(animal, 1, max_generations, root_path)
        return LineageNode(
            animal=animal,
            generation=0,
            dam=dam,
            sire=sire,
            offspring=self._descendant_branches(
                animal, -1, descendant_generations, root_path
            ),
        )

    def _ancestor_branches(
        self, animal: Animal, generation: int, limit: int, path: frozenset[str]
    ) -> tuple[LineageNode | None, LineageNode | None]:
        if generation > limit:
            return None, None

        branches: list[LineageNode | None] = []
        for parent_id in (animal.dam_id, animal.sire_id):
            parent = self._animals.get(parent_id) if parent_id else None
            if parent is None or parent.id in path:
                branches.append(None)
                continue
            dam, sire = self._ancestor_branches(
                parent, generation + 1, limit, path | {parent.id}
            )
            branches.append(
                LineageNode(animal=parent, generation=generation, dam=dam, sire=sire)
            )
        return branches[0], branches[1]

    def _descendant_branches(
        self, animal: Animal, generation: int, limit: int, path: frozenset[str]
    ) -> tuple[LineageNode, ...]:
        if -generation > limit:
            return ()

        nodes = []
        for child in self.offspring_of(animal.id):
            if child.id in path:
                continue
            nodes.append(
                LineageNode(
                    animal=child,
                    generation=generation,
                    offspring=self._descendant_branches(
                        child, generation - 1, limit, path | {child.id}
                    ),
                )
            )
        return tuple(nodes)
