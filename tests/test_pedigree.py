"""Tests for the pedigree graph."""

from fractions import Fraction

import pytest

from reptile_genetics.models import Animal
from reptile_genetics.pedigree import MAX_GENERATIONS, AncestorRecord, PedigreeGraph


class TestAncestorsOf:
    """Tests for bounded ancestor traversal."""

    def test_parents_and_grandparents(self, family_graph):
        records = family_graph.ancestors_of("c1")
        assert records == (
            AncestorRecord("p1", 1),
            AncestorRecord("q2", 1),
            AncestorRecord("gd1", 2),
            AncestorRecord("gs1", 2),
        )

    def test_animal_itself_excluded(self, family_graph):
        assert "c1" not in family_graph.ancestor_ids("c1")

    def test_shared_ancestor_reported_once(self, family_graph):
        # ib1 reaches gd1 and gs1 through both parents
        assert family_graph.ancestor_ids("ib1") == {"p1": 1, "p2": 1, "gd1": 2, "gs1": 2}

    def test_generation_bound(self, family_graph):
        assert family_graph.ancestor_ids("c1", max_generations=1) == {"p1": 1, "q2": 1}
        assert family_graph.ancestors_of("c1", max_generations=0) == ()

    def test_negative_generations_rejected(self, family_graph):
        with pytest.raises(ValueError, match="max_generations"):
            family_graph.ancestors_of("c1", max_generations=-1)

    def test_missing_parent_terminates_branch(self, make_animal):
        graph = PedigreeGraph([make_animal("a", dam_id="ghost", sire_id="s"), make_animal("s")])
        assert graph.ancestor_ids("a") == {"s": 1}

    def test_unknown_animal_has_no_ancestors(self, family_graph):
        assert family_graph.ancestors_of("nobody") == ()

    def test_lowest_generation_wins(self, make_animal):
        # g is a grandparent through the dam and a parent through the sire
        graph = PedigreeGraph(
            [
                make_animal("a", dam_id="d", sire_id="g"),
                make_animal("d", dam_id="g"),
                make_animal("g"),
            ]
        )
        assert graph.ancestors_of("a") == (AncestorRecord("d", 1), AncestorRecord("g", 1))

    def test_ancestry_resolves_animals(self, family_graph):
        names = [animal.name for animal in family_graph.ancestry("p1")]
        assert names == ["Willow", "Ghost"]

    def test_duplicate_ids_rejected(self, make_animal):
        with pytest.raises(ValueError, match="Duplicate"):
            PedigreeGraph([make_animal("a"), make_animal("a")])


class TestCyclicAncestry:
    """Corrupted parent references must not hang traversal."""

    def test_cycle_terminates(self, cyclic_population):
        graph = PedigreeGraph(cyclic_population)
        records = graph.ancestors_of("x", max_generations=10)
        assert records == (
            AncestorRecord("d", 1),
            AncestorRecord("s", 1),
            AncestorRecord("g", 2),
        )

    def test_cycle_detected(self, cyclic_population, family_graph):
        graph = PedigreeGraph(cyclic_population)
        assert graph.has_cycle("x") is True
        assert family_graph.has_cycle("ib1") is False

    def test_cycle_outside_bound_not_reported(self, cyclic_population):
        graph = PedigreeGraph(cyclic_population)
        assert graph.has_cycle("x", max_generations=1) is False

    def test_relationship_ignores_looping_link(self, cyclic_population):
        graph = PedigreeGraph(cyclic_population)
        assert graph.additive_relationship("x", "g", max_generations=10) == Fraction(1, 4)

    def test_lineage_terminates(self, cyclic_population):
        graph = PedigreeGraph(cyclic_population)
        root = graph.lineage("x", max_generations=10)
        assert root.dam.animal.id == "d"
        assert root.dam.dam.animal.id == "g"
        assert root.dam.dam.sire is None


class TestAdditiveRelationship:
    """Tabular relationship over the bounded pedigree."""

    def test_known_relatives(self, family_graph):
        assert family_graph.additive_relationship("p1", "p2") == Fraction(1, 2)
        assert family_graph.additive_relationship("c1", "c2") == Fraction(1, 8)
        assert family_graph.additive_relationship("c1", "gd1") == Fraction(1, 4)

    def test_symmetric(self, family_graph):
        assert family_graph.additive_relationship(
            "h1", "ib1"
        ) == family_graph.additive_relationship("ib1", "h1")

    def test_unrelated_founders(self, family_graph):
        assert family_graph.additive_relationship("q1", "q2") == 0

    def test_bound_cuts_shared_ancestry(self, family_graph):
        assert family_graph.additive_relationship("c1", "c2", max_generations=1) == 0

    def test_inbred_self_relationship(self, family_graph):
        # ib1's parents are full siblings: 1 + F with F = 1/4
        assert family_graph.additive_relationship("ib1", "ib1") == Fraction(5, 4)

    def test_unknown_animal(self, family_graph):
        assert family_graph.additive_relationship("nobody", "c1") == 0


class TestGenerationLimit:
    def test_limit_accepted(self, family_graph):
        assert family_graph.ancestor_ids("c1", max_generations=MAX_GENERATIONS) == {
            "p1": 1,
            "q2": 1,
            "gd1": 2,
            "gs1": 2,
        }

    def test_above_limit_rejected(self, family_graph):
        with pytest.raises(ValueError, match="max_generations"):
            family_graph.ancestors_of("c1", max_generations=MAX_GENERATIONS + 1)
        with pytest.raises(ValueError, match="max_generations"):
            family_graph.lineage("c1", max_generations=MAX_GENERATIONS + 1)

    def test_closed_line_walk_visits_each_animal_once(self):
        animals = [Animal(id="f0", species_id="x"), Animal(id="m0", species_id="x")]
        for gen in range(1, 31):
            for sex in ("f", "m"):
                animals.append(
                    Animal(
                        id=f"{sex}{gen}",
                        species_id="x",
                        dam_id=f"f{gen - 1}",
                        sire_id=f"m{gen - 1}",
                    )
                )
        graph = PedigreeGraph(animals)

        ancestors = graph.ancestor_ids("f30", max_generations=MAX_GENERATIONS)

        assert len(ancestors) == 2 * MAX_GENERATIONS
        assert ancestors["f14"] == MAX_GENERATIONS
        assert graph.has_cycle("f30", max_generations=MAX_GENERATIONS) is False


class TestOffspringAndLineage:
    def test_offspring_in_population_order(self, family_graph):
        assert [a.id for a in family_graph.offspring_of("gd1")] == ["p1", "p2", "h1"]
        assert family_graph.offspring_of("c1") == []

    def test_lineage_tree(self, family_graph):
        root = family_graph.lineage("p1", max_generations=2)
        assert root.animal.id == "p1"
        assert root.dam.animal.id == "gd1"
        assert root.sire.animal.id == "gs1"
        assert root.dam.generation == 1
        assert [child.animal.id for child in root.offspring] == ["c1", "ib1"]
        assert root.offspring[0].generation == -1

    def test_lineage_generation_bound(self, family_graph):
        root = family_graph.lineage("c1", max_generations=1)
        assert root.dam.animal.id == "p1"
        assert root.dam.dam is None

    def test_lineage_unknown_animal(self, family_graph):
        assert family_graph.lineage("nobody") is None

    def test_lineage_to_dict(self, family_graph):
        data = family_graph.lineage("h1").to_dict()
        assert data["id"] == "h1"
        assert data["dam"]["name"] == "Willow"
        assert data["sire"]["id"] == "gs2"
        assert data["offspring"] == []
