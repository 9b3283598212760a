"""Definitions Loader - Loads the API vocabulary and client settings.

Handles loading the bundled definition tables (verbs, fields, globals,
endpoints and normalizer tables), YAML settings files with environment
variable substitution, and credentials from the process environment.
"""

from __future__ import annotations

import functools
import logging
import os
import re
from pathlib import Path
from typing import Any, Mapping

import yaml

from ebay_fluent.errors import ConfigError, MissingCredentialError
from ebay_fluent.models import DefinitionTables, SettingsFile

logger = logging.getLogger(__name__)


DEFAULT_DEFINITIONS_PATH = Path(__file__).parent / "data" / "definitions.yaml"

# Required credentials, checked in this order. Global name -> environment variable.
CREDENTIAL_VARIABLES: tuple[tuple[str, str], ...] = (
    ("authToken", "EBAY_TOKEN"),
    ("cert", "EBAY_CERT"),
    ("app", "EBAY_APP_ID"),
    ("devName", "EBAY_DEV_ID"),
)
SANDBOX_VARIABLE = "EBAY_SANDBOX"

_TRUTHY = {"1", "true", "yes", "on"}
_ENV_PATTERN = re.compile(r"\$\{([^}]+)\}")


def _read_yaml_mapping(path: Path, what: str) -> dict[str, Any]:
    if not path.exists():
        raise ConfigError(f"{what} file not found: {path}")

    try:
        with open(path, "r", encoding="utf-8") as f:
            raw = yaml.safe_load(f)
    except yaml.YAMLError as e:
        raise ConfigError(f"Invalid YAML in {what.lower()} file: {e}") from e

    if not isinstance(raw, dict):
        raise ConfigError(f"{what} file must be a YAML mapping")
    return raw


def load_definitions(definitions_path: Path | None = None) -> DefinitionTables:
    """Load definition tables from YAML. Uses DEFAULT_DEFINITIONS_PATH if None."""
    path = definitions_path or DEFAULT_DEFINITIONS_PATH
    raw = _read_yaml_mapping(path, "Definitions")

    try:
        tables = DefinitionTables.model_validate(raw)
    except Exception as e:
        raise ConfigError(f"Invalid definitions structure: {e}") from e

    logger.debug(
        "Loaded %d verbs, %d fields, %d globals from %s",
        len(tables.verbs), len(tables.fields), len(tables.globals), path,
    )
    return tables


@functools.lru_cache(maxsize=1)
def get_definitions() -> DefinitionTables:
    """Process-wide definition tables, loaded on first use."""
    return load_definitions()


def load_settings(config_path: Path) -> SettingsFile:
    """Load a client settings file from YAML with ${ENV_VAR} substitution."""
    raw = _read_yaml_mapping(Path(config_path), "Settings")
    raw = _substitute_env_vars(raw)

    try:
        return SettingsFile.model_validate(raw)
    except Exception as e:
        raise ConfigError(f"Invalid settings structure: {e}") from e


def settings_from_env(environ: Mapping[str, str] | None = None) -> dict[str, Any]:
    """Read credentials and the sandbox flag from the environment.

    Raises:
        MissingCredentialError: naming the first unset credential variable.
    """
    env = os.environ if environ is None else environ
    settings: dict[str, Any] = {}
    for global_name, variable in CREDENTIAL_VARIABLES:
        value = env.get(variable)
        if not value:
            raise MissingCredentialError(variable)
        settings[global_name] = value

    settings["sandbox"] = parse_bool(env.get(SANDBOX_VARIABLE, ""))
    return settings


def parse_bool(value: Any) -> bool:
    """Interpret a setting that may arrive as text (environment, YAML substitution)."""
    if isinstance(value, str):
        return value.strip().lower() in _TRUTHY
    return bool(value)


def _substitute_env_vars(data: Any) -> Any:
    """Recursively substitute ${ENV_VAR} patterns in strings within data."""
    if isinstance(data, str):
        return _substitute_string(data)
    elif isinstance(data, dict):
        return {k: _substitute_env_vars(v) for k, v in data.items()}
    elif isinstance(data, list):
        return [_substitute_env_vars(item) for item in data]
    return data


def _substitute_string(s: str) -> str:
    """Substitute ${ENV_VAR} patterns. Raises ConfigError if env var is not set."""

    def replacer(match: re.Match) -> str:
        var_name = match.group(1)
        value = os.environ.get(var_name)
        if value is None:
            raise ConfigError(f"Environment variable '{var_name}' is not set")
        return value

    return _ENV_PATTERN.sub(replacer, s)
