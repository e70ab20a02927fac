"""Error taxonomy for the breeding analysis engine.

Every failure a caller can act on is an ``EngineError``. Only
``DataUnavailable`` is retryable; everything else is permanent for the
given input.
"""


class EngineError(Exception):
    """Base class for errors reported by the analysis engine."""

    code = "engine_error"
    retryable = False

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message

    def to_dict(self) -> dict[str, object]:
        return {
            "code": self.code,
            "message": self.message,
            "retryable": self.retryable,
        }


class InvalidPair(EngineError):
    """Raised when two ids cannot form a breeding pair."""

    code = "invalid_pair"


class UnknownAnimal(InvalidPair):
    """Raised when an animal id is not known to the repository."""

    code = "unknown_animal"

    def __init__(self, animal_id: str):
        super().__init__(f"Animal not found: {animal_id}")
        self.animal_id = animal_id


class SpeciesMismatch(EngineError):
    """Raised when two animals (or genotype catalogs) belong to different species."""

    code = "species_mismatch"

    def __init__(self, species_a: str, species_b: str):
        super().__init__(
            f"Cannot compare animals of different species: {species_a} vs {species_b}"
        )
        self.species_a = species_a
        self.species_b = species_b


class UnknownLocus(EngineError):
    """Raised when a trait name is not in the species' locus catalog."""

    code = "unknown_locus"

    def __init__(self, trait: str, species_id: str | None = None):
        if species_id:
            message = f"Unknown locus '{trait}' for species {species_id}"
        else:
            message = f"Unknown locus '{trait}'"
        super().__init__(message)
        self.trait = trait
        self.species_id = species_id


class DataUnavailable(EngineError):
    """Raised by repositories when the population or catalog cannot be fetched."""

    code = "data_unavailable"
    retryable = True


class ProbabilityInvariantError(RuntimeError):
    """Computed probabilities fell outside [0, 1] or did not sum to 1.

    This signals a defect in the calculator, not bad input, so it is not an
    ``EngineError`` and is never folded into an analysis result.
    """

    pass
