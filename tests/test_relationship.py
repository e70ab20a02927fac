"""Tests for relationship classification and Wright coefficients."""

import time
from fractions import Fraction

import pytest
from hypothesis import given, settings
from hypothesis import strategies as st

from reptile_genetics.errors import InvalidPair, SpeciesMismatch
from reptile_genetics.models import Animal
from reptile_genetics.pedigree import MAX_GENERATIONS, PedigreeGraph
from reptile_genetics.relationship import RelationshipKind, classify_relationship


class TestDirectRelationships:
    """Parent-offspring and sibling detection from parent slots."""

    def test_parent_offspring(self, family, family_graph):
        result = classify_relationship(family["p1"], family["c1"], family_graph)
        assert result.kind == RelationshipKind.PARENT_OFFSPRING
        assert result.coefficient == Fraction(1, 2)
        assert result.common_ancestors == ()

    def test_parent_offspring_either_direction(self, family, family_graph):
        result = classify_relationship(family["c1"], family["p1"], family_graph)
        assert result.kind == RelationshipKind.PARENT_OFFSPRING

    def test_sire_slot(self, family, family_graph):
        result = classify_relationship(family["c2"], family["p2"], family_graph)
        assert result.kind == RelationshipKind.PARENT_OFFSPRING

    def test_full_siblings(self, family, family_graph):
        result = classify_relationship(family["p1"], family["p2"], family_graph)
        assert result.kind == RelationshipKind.FULL_SIBLINGS
        assert result.coefficient == Fraction(1, 2)
        assert result.common_ancestors == ("gd1", "gs1")

    def test_half_siblings(self, family, family_graph):
        result = classify_relationship(family["p1"], family["h1"], family_graph)
        assert result.kind == RelationshipKind.HALF_SIBLINGS
        assert result.coefficient == Fraction(1, 4)
        assert result.common_ancestors == ("gd1",)

    def test_siblings_with_parents_outside_population(self, make_animal):
        a = make_animal("a", dam_id="off-site-dam", sire_id="off-site-sire")
        b = make_animal("b", dam_id="off-site-dam", sire_id="off-site-sire")
        result = classify_relationship(a, b, PedigreeGraph([a, b]))
        assert result.kind == RelationshipKind.FULL_SIBLINGS


class TestExtendedRelationships:
    """Shared ancestry found by traversal."""

    def test_first_cousins(self, family, family_graph):
        result = classify_relationship(family["c1"], family["c2"], family_graph)
        assert result.kind == RelationshipKind.RELATED
        assert result.coefficient == Fraction(1, 8)
        assert result.common_ancestors == ("gd1", "gs1")

    def test_grandparent(self, family, family_graph):
        result = classify_relationship(family["c1"], family["gd1"], family_graph)
        assert result.kind == RelationshipKind.RELATED
        assert result.coefficient == Fraction(1, 4)
        assert result.common_ancestors == ("gd1",)

    def test_aunt_and_niece(self, family, family_graph):
        # h1 is p1's half sibling, so c1's half aunt
        result = classify_relationship(family["h1"], family["c1"], family_graph)
        assert result.kind == RelationshipKind.RELATED
        assert result.coefficient == Fraction(1, 8)

    def test_outside_generation_bound_is_unrelated(self, family, family_graph):
        result = classify_relationship(
            family["c1"], family["c2"], family_graph, max_generations=1
        )
        assert result.kind == RelationshipKind.UNRELATED

    def test_parentless_animals_unrelated(self, family, family_graph):
        result = classify_relationship(family["q1"], family["q2"], family_graph)
        assert result.kind == RelationshipKind.UNRELATED
        assert result.coefficient == 0
        assert result.common_ancestors == ()
        assert result.is_related is False

    def test_inbred_offspring_and_grandparent(self, family, family_graph):
        # ib1's parents are full siblings, so gd1 is reached along two paths
        result = classify_relationship(family["ib1"], family["gd1"], family_graph)
        assert result.kind == RelationshipKind.RELATED
        assert result.coefficient == Fraction(1, 2)

    def test_inbred_common_ancestor_counts_its_inbreeding(self, make_animal):
        # "a" comes from a full-sibling mating, so F_a = 1/4 once its
        # grandparents are in range: 0.5 ** 4 * (1 + 1/4)
        population = [
            make_animal("f"),
            make_animal("m"),
            make_animal("s1", dam_id="f", sire_id="m"),
            make_animal("s2", dam_id="f", sire_id="m"),
            make_animal("a", dam_id="s1", sire_id="s2"),
            make_animal("x", dam_id="a"),
            make_animal("y", dam_id="a"),
            make_animal("cx", dam_id="x"),
            make_animal("cy", dam_id="y"),
        ]
        graph = PedigreeGraph(population)
        cx, cy = population[-2], population[-1]

        deep = classify_relationship(cx, cy, graph, max_generations=4)
        shallow = classify_relationship(cx, cy, graph, max_generations=3)

        assert deep.coefficient == Fraction(5, 64)
        assert deep.common_ancestors[0] == "a"
        assert shallow.coefficient == Fraction(1, 16)

    def test_to_dict(self, family, family_graph):
        data = classify_relationship(family["c1"], family["c2"], family_graph).to_dict()
        assert data["kind"] == "related"
        assert data["coefficient"] == pytest.approx(0.125)
        assert data["coefficient_fraction"] == "1/8"


class TestInvalidPairs:
    def test_same_animal(self, family, family_graph):
        with pytest.raises(InvalidPair):
            classify_relationship(family["p1"], family["p1"], family_graph)

    def test_cross_species(self, family, family_graph):
        with pytest.raises(SpeciesMismatch):
            classify_relationship(family["p1"], family["cs1"], family_graph)

    def test_species_checked_before_identity(self, make_animal):
        a = make_animal("a", species_id="ball-python")
        b = make_animal("a", species_id="corn-snake")
        with pytest.raises(SpeciesMismatch):
            classify_relationship(a, b, PedigreeGraph([a]))


@st.composite
def pedigrees(draw):
    """Acyclic populations: each animal's parents come from earlier animals."""
    size = draw(st.integers(min_value=2, max_value=12))
    animals = []
    for index in range(size):
        earlier = [None] + [f"a{i}" for i in range(index)]
        dam = draw(st.sampled_from(earlier))
        sire = draw(st.sampled_from(earlier))
        if dam is not None and dam == sire:
            sire = None
        animals.append(Animal(id=f"a{index}", species_id="x", dam_id=dam, sire_id=sire))
    first = draw(st.integers(min_value=0, max_value=size - 1))
    second = draw(st.integers(min_value=0, max_value=size - 1).filter(lambda i: i != first))
    return animals, animals[first], animals[second]


class TestRelationshipProperties:
    """Property-based tests using hypothesis."""

    @given(pedigrees())
    @settings(max_examples=100)
    def test_zero_coefficient_iff_unrelated(self, case):
        animals, a, b = case
        result = classify_relationship(a, b, PedigreeGraph(animals))
        assert (result.coefficient == 0) == (result.kind == RelationshipKind.UNRELATED)
        assert 0 <= result.coefficient <= 1

    @given(pedigrees())
    @settings(max_examples=100)
    def test_symmetric(self, case):
        animals, a, b = case
        graph = PedigreeGraph(animals)
        forward = classify_relationship(a, b, graph)
        backward = classify_relationship(b, a, graph)
        assert forward.kind == backward.kind
        assert forward.coefficient == backward.coefficient
        assert set(forward.common_ancestors) == set(backward.common_ancestors)


class TestClosedLines:
    """Deep inbred lines stay cheap to score."""

    @staticmethod
    def sibling_line(depth: int) -> list[Animal]:
        """Full siblings mated to each other for depth generations."""
        animals = [Animal(id="f0", species_id="x"), Animal(id="m0", species_id="x")]
        for gen in range(1, depth + 1):
            for sex in ("f", "m"):
                animals.append(
                    Animal(
                        id=f"{sex}{gen}",
                        species_id="x",
                        dam_id=f"f{gen - 1}",
                        sire_id=f"m{gen - 1}",
                    )
                )
        return animals

    def test_deep_sibling_line(self):
        animals = {animal.id: animal for animal in self.sibling_line(40)}
        graph = PedigreeGraph(animals.values())

        start = time.perf_counter()
        result = classify_relationship(
            animals["f40"], animals["m38"], graph, max_generations=MAX_GENERATIONS
        )
        elapsed = time.perf_counter() - start

        assert result.kind == RelationshipKind.RELATED
        assert result.coefficient == 1
        assert elapsed < 2.0

    def test_generation_bound_capped(self):
        animals = self.sibling_line(2)
        graph = PedigreeGraph(animals)
        with pytest.raises(ValueError, match="max_generations"):
            classify_relationship(
                animals[-1], animals[0], graph, max_generations=MAX_GENERATIONS + 1
            )
