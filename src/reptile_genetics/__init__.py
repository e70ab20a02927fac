"""reptile-genetics: pedigree and genetic-inheritance analysis for captive reptiles."""

__version__ = "0.1.0"

from .engine import AnalysisResult, BreedingEngine, analyze_snapshot
from .errors import (
    DataUnavailable,
    EngineError,
    InvalidPair,
    ProbabilityInvariantError,
    SpeciesMismatch,
    UnknownAnimal,
    UnknownLocus,
)
from .genotype import expressed_traits, validate_genotype
from .models import Animal, Dominance, Genotype, HetSource, HetTrait, Locus, LocusCatalog, Sex
from .pedigree import PedigreeGraph
from .punnett import CrossOutcome, OutcomeCell, calculate_cross, cross_animals
from .relationship import RelationshipKind, RelationshipResult, classify_relationship
from .report import BreedingReport, InbreedingAdvisory, assemble_report

__all__ = [
    "__version__",
    "AnalysisResult",
    "Animal",
    "BreedingEngine",
    "BreedingReport",
    "CrossOutcome",
    "DataUnavailable",
    "Dominance",
    "EngineError",
    "Genotype",
    "HetSource",
    "HetTrait",
    "InbreedingAdvisory",
    "InvalidPair",
    "Locus",
    "LocusCatalog",
    "OutcomeCell",
    "PedigreeGraph",
    "ProbabilityInvariantError",
    "RelationshipKind",
    "RelationshipResult",
    "Sex",
    "SpeciesMismatch",
    "UnknownAnimal",
    "UnknownLocus",
    "analyze_snapshot",
    "assemble_report",
    "calculate_cross",
    "classify_relationship",
    "cross_animals",
    "expressed_traits",
    "validate_genotype",
]
