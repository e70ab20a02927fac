"""Configuration file support for reptile-genetics."""

import logging
import tomllib
from dataclasses import dataclass
from pathlib import Path
from typing import Any
from urllib.parse import quote

from .models import Locus, LocusCatalog
from .pedigree import DEFAULT_MAX_GENERATIONS, MAX_GENERATIONS
from .punnett import PROBABILITY_TOLERANCE

logger = logging.getLogger(__name__)

PASSWORD_ENV_VAR = "REPTILE_GENETICS_DB_PASSWORD"

VALID_LOG_LEVELS = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}

CREDENTIAL_KEYS = {
    "password",
    "db_password",
    "secret",
    "api_key",
    "token",
    "credentials",
}


@dataclass(frozen=True)
class EngineConfig:
    """Configuration for breeding analysis."""

    max_generations: int = DEFAULT_MAX_GENERATIONS
    max_concurrency: int = 8
    probability_tolerance: float = PROBABILITY_TOLERANCE
    log_level: str = "INFO"


@dataclass(frozen=True)
class DatabaseConfig:
    """Connection settings for the PostgreSQL animal repository.

    The password is never read from the config file; it comes from the
    REPTILE_GENETICS_DB_PASSWORD environment variable.
    """

    host: str = "localhost"
    port: int = 5432
    database: str = "reptile_genetics"
    user: str = "reptile_genetics"

    def to_url(self, password: str | None = None) -> str:
        auth = quote(self.user, safe="")
        if password:
            auth += ":" + quote(password, safe="")
        return f"postgresql://{auth}@{self.host}:{self.port}/{self.database}"


class ConfigValidationError(Exception):
    """Raised when configuration validation fails."""

    pass


def detect_credentials_in_config(config_dict: dict[str, Any], path: str = "") -> list[str]:
    """Warn about secrets embedded in a configuration file.

    Args:
        config_dict: Configuration dictionary to check.
        path: Current path in nested config (for messages).

    Returns:
        List of detected credential key paths.
    """
    detected = []

    for key, value in config_dict.items():
        current_path = f"{path}.{key}" if path else key
        key_lower = key.lower()

        if any(cred_key in key_lower for cred_key in CREDENTIAL_KEYS) and value:
            detected.append(current_path)

        if isinstance(value, dict):
            detected.extend(detect_credentials_in_config(value, current_path))

    if detected and not path:
        logger.warning(
            "Potential credentials detected in config file: %s. "
            "Provide the database password via %s instead.",
            ", ".join(detected),
            PASSWORD_ENV_VAR,
        )

    return detected


def _require_positive_int(config_dict: dict[str, Any], key: str) -> None:
    if key not in config_dict:
        return
    value = config_dict[key]
    if not isinstance(value, int) or isinstance(value, bool):
        raise ConfigValidationError(f"{key} must be an integer, got {type(value).__name__}")
    if value <= 0:
        raise ConfigValidationError(f"{key} must be positive, got {value}")


def validate_config(config_dict: dict[str, Any]) -> None:
    """Validate configuration values.

    Raises:
        ConfigValidationError: If any configuration value is invalid.
    """
    if "max_generations" in config_dict:
        max_generations = config_dict["max_generations"]
        if not isinstance(max_generations, int) or isinstance(max_generations, bool):
            raise ConfigValidationError(
                f"max_generations must be an integer, got {type(max_generations).__name__}"
            )
        if not 0 <= max_generations <= MAX_GENERATIONS:
            raise ConfigValidationError(
                f"max_generations must be between 0 and {MAX_GENERATIONS}, "
                f"got {max_generations}"
            )

    _require_positive_int(config_dict, "max_concurrency")

    if "probability_tolerance" in config_dict:
        tolerance = config_dict["probability_tolerance"]
        if not isinstance(tolerance, int | float) or isinstance(tolerance, bool):
            raise ConfigValidationError(
                f"probability_tolerance must be a number, got {type(tolerance).__name__}"
            )
        if not 0 < tolerance < 1:
            raise ConfigValidationError(
                f"probability_tolerance must be between 0 and 1, got {tolerance}"
            )

    if "log_level" in config_dict:
        log_level = config_dict["log_level"]
        if not isinstance(log_level, str):
            raise ConfigValidationError(
                f"log_level must be a string, got {type(log_level).__name__}"
            )
        if log_level.upper() not in VALID_LOG_LEVELS:
            raise ConfigValidationError(
                f"log_level must be one of {sorted(VALID_LOG_LEVELS)}, got '{log_level}'"
            )


def _read_toml(config_path: Path) -> dict[str, Any]:
    if not config_path.exists():
        raise FileNotFoundError(f"Configuration file not found: {config_path}")

    with open(config_path, "rb") as f:
        return tomllib.load(f)


def load_config(config_path: Path, overrides: dict[str, Any] | None = None) -> EngineConfig:
    """Load engine configuration from a TOML file.

    Args:
        config_path: Path to the TOML configuration file.
        overrides: Optional dict of values to override loaded config.

    Returns:
        EngineConfig instance with loaded values.

    Raises:
        FileNotFoundError: If the config file doesn't exist.
        ConfigValidationError: If any configuration value is invalid.
    """
    toml_data = _read_toml(config_path)
    detect_credentials_in_config(toml_data)

    config_dict = dict(toml_data.get("reptile_genetics", {}))
    if overrides:
        config_dict.update({k: v for k, v in overrides.items() if v is not None})

    validate_config(config_dict)

    valid_fields = {"max_generations", "max_concurrency", "probability_tolerance", "log_level"}
    unknown = set(config_dict) - valid_fields
    if unknown:
        logger.warning("Ignoring unknown config keys: %s", ", ".join(sorted(unknown)))

    filtered_config = {k: v for k, v in config_dict.items() if k in valid_fields}
    if "log_level" in filtered_config:
        filtered_config["log_level"] = filtered_config["log_level"].upper()

    return EngineConfig(**filtered_config)


def load_database_config(config_path: Path) -> DatabaseConfig:
    """Load the [database] table; missing file or table gives defaults."""
    if not config_path.exists():
        return DatabaseConfig()

    db_data = _read_toml(config_path).get("database", {})
    if not db_data:
        return DatabaseConfig()

    port = db_data.get("port", 5432)
    if not isinstance(port, int) or not 0 < port < 65536:
        raise ConfigValidationError(f"database.port must be a valid port, got {port!r}")

    return DatabaseConfig(
        host=db_data.get("host", "localhost"),
        port=port,
        database=db_data.get("database", "reptile_genetics"),
        user=db_data.get("user", "reptile_genetics"),
    )


def load_locus_catalogs(config_path: Path) -> dict[str, LocusCatalog]:
    """Load per-species locus catalogs from [[species]] tables.

    Example:
        [[species]]
        id = "ball-python"

        [[species.loci]]
        name = "albino"
        dominance = "recessive"
    """
    catalogs = {}
    for entry in _read_toml(config_path).get("species", []):
        species_id = entry.get("id")
        if not species_id:
            raise ConfigValidationError("Each [[species]] table needs an 'id'")
        try:
            loci = tuple(
                Locus(
                    name=locus["name"],
                    dominance=locus["dominance"],
                    homozygous_name=locus.get("homozygous_name"),
                    transmission_rate=locus.get("transmission_rate", 0.5),
                )
                for locus in entry.get("loci", [])
            )
            catalogs[species_id] = LocusCatalog(species_id, loci)
        except (KeyError, ValueError) as e:
            raise ConfigValidationError(
                f"Invalid locus catalog for species {species_id}: {e}"
            ) from e
    return catalogs
