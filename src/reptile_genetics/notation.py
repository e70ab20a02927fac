"""Parsing of keeper trait notation.

Breeders write carried traits as free text such as ``"66% het albino"``,
``"het pied"`` or ``"50% clown"``. These helpers turn that notation into
typed ``HetTrait`` values and back.
"""

import logging
import re
from collections.abc import Iterable

from .models import Genotype, HetSource, HetTrait

logger = logging.getLogger(__name__)

SEPARATOR_PATTERN = re.compile(r"[,;\n]")
HET_PATTERN = re.compile(
    r"^(?:(?P<percent>-?\d+(?:\.\d+)?)\s*%)?\s*(?:het\b\s*)?(?P<trait>.*)$",
    re.IGNORECASE,
)


class NotationError(ValueError):
    """Raised when trait notation cannot be parsed."""

    pass


def _split_items(value: str | Iterable[str] | None) -> list[str]:
    if value is None:
        return []
    if isinstance(value, str):
        chunks = [value]
    else:
        chunks = list(value)

    items = []
    for chunk in chunks:
        for item in SEPARATOR_PATTERN.split(chunk):
            item = item.strip()
            if item:
                items.append(item)
    return items


def parse_het_trait(
    item: str,
    source: HetSource = HetSource.BREEDING_ODDS,
    verified: bool = False,
) -> HetTrait:
    """Parse a single het notation item.

    Args:
        item: Notation such as "66% het albino", "het albino" or "50% pied"
        source: Source recorded on the parsed trait
        verified: Whether the claim is confirmed by a genetic test

    Returns:
        Parsed HetTrait; a missing percentage means 100

    Raises:
        NotationError: If the percentage is out of range or no trait is named
    """
    match = HET_PATTERN.match(item.strip())
    if match is None:
        raise NotationError(f"Cannot parse het notation: '{item}'")

    trait = match.group("trait").strip()
    if not trait:
        raise NotationError(f"No trait named in het notation: '{item}'")

    percent_text = match.group("percent")
    percentage = float(percent_text) if percent_text is not None else 100.0
    if not 0.0 <= percentage <= 100.0:
        raise NotationError(
            f"Het percentage must be between 0 and 100, got {percent_text} in '{item}'"
        )

    return HetTrait(locus=trait, percentage=percentage, source=source, verified=verified)


def parse_het_traits(
    value: str | Iterable[str] | None,
    source: HetSource = HetSource.BREEDING_ODDS,
    verified: bool = False,
) -> tuple[HetTrait, ...]:
    """Parse comma-separated het notation into typed het traits."""
    traits = tuple(
        parse_het_trait(item, source=source, verified=verified)
        for item in _split_items(value)
    )
    logger.debug("Parsed %d het traits", len(traits))
    return traits


def parse_visual_traits(value: str | Iterable[str] | None) -> frozenset[str]:
    return frozenset(_split_items(value))


def format_percentage(percentage: float) -> str:
    if float(percentage).is_integer():
        return str(int(percentage))
    return f"{percentage:.2f}".rstrip("0").rstrip(".")


def format_het_trait(het: HetTrait) -> str:
    return f"{format_percentage(het.percentage)}% het {het.locus}"


def format_genotype(genotype: Genotype) -> str:
    """Render a genotype the way keepers write it, e.g. "albino, 50% het pied"."""
    parts = sorted(genotype.visual_traits)
    parts.extend(format_het_trait(het) for het in genotype.het_traits)
    return ", ".join(parts) if parts else "normal"
