"""Breeding report assembly."""

from dataclasses import dataclass
from enum import Enum
from fractions import Fraction
from typing import Any

from .punnett import CrossOutcome
from .relationship import RelationshipResult

HIGH_RISK_COEFFICIENT = Fraction(1, 4)
MODERATE_RISK_COEFFICIENT = Fraction(1, 8)


class AdvisorySeverity(Enum):
    LOW = "low"
    MODERATE = "moderate"
    HIGH = "high"


@dataclass(frozen=True)
class InbreedingAdvisory:
    """Non-blocking warning attached to a pairing of related animals."""

    severity: AdvisorySeverity
    coefficient: Fraction
    message: str
    common_ancestors: tuple[str, ...] = ()

    def to_dict(self) -> dict[str, Any]:
        return {
            "severity": self.severity.value,
            "coefficient": float(self.coefficient),
            "message": self.message,
            "common_ancestors": list(self.common_ancestors),
        }


@dataclass(frozen=True)
class BreedingReport:
    pair: tuple[str, str]
    relationship: RelationshipResult
    cross: CrossOutcome
    advisory: InbreedingAdvisory | None = None

    @property
    def is_inbreeding(self) -> bool:
        return self.advisory is not None

    def to_dict(self) -> dict[str, Any]:
        return {
            "pair": list(self.pair),
            "relationship": self.relationship.to_dict(),
            "cross": self.cross.to_dict(),
            "advisory": self.advisory.to_dict() if self.advisory else None,
        }


def advisory_severity(coefficient: Fraction) -> AdvisorySeverity:
    if coefficient >= HIGH_RISK_COEFFICIENT:
        return AdvisorySeverity.HIGH
    if coefficient >= MODERATE_RISK_COEFFICIENT:
        return AdvisorySeverity.MODERATE
    return AdvisorySeverity.LOW


def build_advisory(relationship: RelationshipResult) -> InbreedingAdvisory | None:
    """Return an advisory for any pairing with a non-zero coefficient."""
    if relationship.coefficient <= 0:
        return None

    percent = float(relationship.coefficient) * 100
    message = (
        f"Inbreeding risk: animals are {relationship.kind.label.lower()} "
        f"(coefficient of relationship {percent:.2f}%)"
    )
    if relationship.common_ancestors:
        message += f"; common ancestors: {', '.join(relationship.common_ancestors)}"

    return InbreedingAdvisory(
        severity=advisory_severity(relationship.coefficient),
        coefficient=relationship.coefficient,
        message=message,
        common_ancestors=relationship.common_ancestors,
    )


def assemble_report(
    pair: tuple[str, str],
    relationship: RelationshipResult,
    cross: CrossOutcome,
) -> BreedingReport:
    """Merge a relationship and a cross into one report. Never rejects a pairing."""
    return BreedingReport(
        pair=pair,
        relationship=relationship,
        cross=cross,
        advisory=build_advisory(relationship),
    )
