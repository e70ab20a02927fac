"""Data models for animals, loci and genotypes."""

from collections.abc import Iterable, Iterator
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from .errors import UnknownLocus


class Sex(Enum):
    MALE = "male"
    FEMALE = "female"
    UNKNOWN = "unknown"

    @classmethod
    def parse(cls, value: "str | Sex | None") -> "Sex":
        if isinstance(value, Sex):
            return value
        if not value:
            return cls.UNKNOWN
        normalized = value.strip().lower()
        aliases = {"m": "male", "f": "female", "u": "unknown", "1.0": "male", "0.1": "female"}
        normalized = aliases.get(normalized, normalized)
        try:
            return cls(normalized)
        except ValueError:
            raise ValueError(f"Invalid sex: '{value}'") from None


class Dominance(Enum):
    """Inheritance mode of a locus. Fixed per locus."""

    DOMINANT = "dominant"
    RECESSIVE = "recessive"
    CO_DOMINANT = "co-dominant"
    POLYGENIC_INCOMPLETE = "polygenic-incomplete"

    @classmethod
    def parse(cls, value: "str | Dominance") -> "Dominance":
        if isinstance(value, Dominance):
            return value
        normalized = value.strip().lower().replace("_", "-").replace(" ", "-")
        aliases = {
            "codominant": "co-dominant",
            "incomplete-dominant": "co-dominant",
            "polygenic": "polygenic-incomplete",
            "line-bred": "polygenic-incomplete",
            "simple-recessive": "recessive",
        }
        normalized = aliases.get(normalized, normalized)
        try:
            return cls(normalized)
        except ValueError:
            raise ValueError(f"Invalid dominance mode: '{value}'") from None

    @property
    def has_homozygous_form(self) -> bool:
        """Whether one and two copies are told apart by a separate visual label."""
        return self in (Dominance.DOMINANT, Dominance.CO_DOMINANT)


class HetSource(Enum):
    """Where a het claim comes from."""

    VISUAL_PARENT = "visual_parent"
    GENETIC_TEST = "genetic_test"
    BREEDING_ODDS = "breeding_odds"


@dataclass(frozen=True)
class Locus:
    """One independently segregating genetic factor of a species."""

    name: str
    dominance: Dominance
    homozygous_name: str | None = None
    # Polygenic-incomplete loci only: chance that one visual parent passes the trait on.
    transmission_rate: float = 0.5

    def __post_init__(self) -> None:
        name = self.name.strip()
        if not name:
            raise ValueError("Locus name cannot be empty")
        object.__setattr__(self, "name", name)
        object.__setattr__(self, "dominance", Dominance.parse(self.dominance))

        if not 0.0 <= self.transmission_rate <= 1.0:
            raise ValueError(
                f"transmission_rate must be between 0 and 1, got {self.transmission_rate}"
            )

        if self.dominance.has_homozygous_form:
            if not self.homozygous_name:
                object.__setattr__(self, "homozygous_name", f"super {name}")
        else:
            object.__setattr__(self, "homozygous_name", None)

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "dominance": self.dominance.value,
            "homozygous_name": self.homozygous_name,
            "transmission_rate": self.transmission_rate,
        }


@dataclass(frozen=True)
class HetTrait:
    """A (possibly uncertain) claim that an animal carries one copy of a trait."""

    locus: str
    percentage: float = 100.0
    source: HetSource = HetSource.BREEDING_ODDS
    verified: bool = False

    def __post_init__(self) -> None:
        locus = self.locus.strip()
        if not locus:
            raise ValueError("Het trait locus cannot be empty")
        object.__setattr__(self, "locus", locus)
        if isinstance(self.source, str):
            object.__setattr__(self, "source", HetSource(self.source))
        if not 0.0 <= self.percentage <= 100.0:
            raise ValueError(
                f"Het percentage must be between 0 and 100, got {self.percentage}"
            )

    @property
    def probability(self) -> float:
        return self.percentage / 100.0

    @property
    def certain(self) -> bool:
        return self.percentage == 100.0

    def to_dict(self) -> dict[str, Any]:
        return {
            "trait": self.locus,
            "percentage": self.percentage,
            "source": self.source.value,
            "verified": self.verified,
        }


@dataclass(frozen=True)
class Genotype:
    """An animal's allelic state: visible traits plus carried (het) traits."""

    visual_traits: frozenset[str] = frozenset()
    het_traits: tuple[HetTrait, ...] = ()

    def __post_init__(self) -> None:
        visuals = frozenset(t.strip() for t in self.visual_traits if t and t.strip())
        object.__setattr__(self, "visual_traits", visuals)
        object.__setattr__(self, "het_traits", tuple(self.het_traits))

    @property
    def is_empty(self) -> bool:
        return not self.visual_traits and not self.het_traits

    def to_dict(self) -> dict[str, Any]:
        return {
            "visual_traits": sorted(self.visual_traits),
            "het_traits": [het.to_dict() for het in self.het_traits],
        }


@dataclass(frozen=True)
class Animal:
    """Identity node of the pedigree graph."""

    id: str
    species_id: str
    dam_id: str | None = None
    sire_id: str | None = None
    genotype: Genotype = field(default_factory=Genotype)
    name: str | None = None
    sex: Sex = Sex.UNKNOWN

    def __post_init__(self) -> None:
        if not self.id:
            raise ValueError("Animal id cannot be empty")
        # Empty strings from forms and CSV imports mean "unknown parent"
        object.__setattr__(self, "dam_id", self.dam_id or None)
        object.__setattr__(self, "sire_id", self.sire_id or None)
        object.__setattr__(self, "sex", Sex.parse(self.sex))

        if self.dam_id == self.id or self.sire_id == self.id:
            raise ValueError(f"Animal {self.id} cannot be its own parent")

    @property
    def parent_ids(self) -> tuple[str, ...]:
        """Known parent ids, dam first."""
        return tuple(p for p in (self.dam_id, self.sire_id) if p is not None)

    @property
    def display_name(self) -> str:
        return self.name or self.id

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "species_id": self.species_id,
            "name": self.name,
            "sex": self.sex.value,
            "dam_id": self.dam_id,
            "sire_id": self.sire_id,
            **self.genotype.to_dict(),
        }


@dataclass(frozen=True)
class LocusCatalog:
    """Closed, ordered set of loci tracked for one species."""

    species_id: str
    loci: tuple[Locus, ...] = ()
    _index: dict[str, tuple[Locus, int]] = field(
        init=False, repr=False, compare=False, default_factory=dict
    )

    def __post_init__(self) -> None:
        object.__setattr__(self, "loci", tuple(self.loci))

        index: dict[str, tuple[Locus, int]] = {}
        for locus in self.loci:
            key = locus.name.lower()
            if key in index:
                raise ValueError(
                    f"Duplicate locus '{locus.name}' in catalog for species {self.species_id}"
                )
            copies = 2 if locus.dominance == Dominance.RECESSIVE else 1
            index[key] = (locus, copies)

        for locus in self.loci:
            if locus.homozygous_name:
                key = locus.homozygous_name.lower()
                if key in index:
                    raise ValueError(
                        f"Homozygous label '{locus.homozygous_name}' collides with "
                        f"another trait name for species {self.species_id}"
                    )
                index[key] = (locus, 2)

        object.__setattr__(self, "_index", index)

    def __iter__(self) -> Iterator[Locus]:
        return iter(self.loci)

    def __len__(self) -> int:
        return len(self.loci)

    def __contains__(self, trait: object) -> bool:
        return isinstance(trait, str) and trait.strip().lower() in self._index

    def get(self, name: str) -> Locus:
        """Return the locus for a trait name or homozygous label.

        Raises:
            UnknownLocus: If the name is not tracked for this species.
        """
        return self.resolve_visual(name)[0]

    def resolve_visual(self, trait: str) -> tuple[Locus, int]:
        """Resolve a visual trait label to its locus and implied copy count.

        A recessive trait only shows with two copies; dominant and co-dominant
        traits show with one, and their homozygous label means two.
        """
        try:
            return self._index[trait.strip().lower()]
        except KeyError:
            raise UnknownLocus(trait, self.species_id) from None

    def position(self, locus_name: str) -> int:
        locus = self.get(locus_name)
        return self.loci.index(locus)

    def sorted_names(self, names: Iterable[str]) -> list[str]:
        """Order locus names the way the catalog lists them."""
        return sorted(set(names), key=self.position)
