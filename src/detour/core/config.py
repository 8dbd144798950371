"""Configuration types with environment variable support.

All settings can be configured via environment variables with the DETOUR_ prefix.
Example: DETOUR_RULES_FILE=rules.yaml sets the default rules file.
"""

from __future__ import annotations

import tomllib
from pathlib import Path
from typing import Any

import yaml
from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


def _load_yaml(content: str) -> Any:
    try:
        return yaml.safe_load(content) or {}
    except yaml.YAMLError as e:
        raise ValueError(f"Invalid YAML in rules file: {e}") from e


def _load_toml(content: str) -> Any:
    try:
        return tomllib.loads(content)
    except tomllib.TOMLDecodeError as e:
        raise ValueError(f"Invalid TOML in rules file: {e}") from e


_LOADERS = {
    ".yaml": _load_yaml,
    ".yml": _load_yaml,
    ".toml": _load_toml,
}


def load_config_from_file(path: str | Path) -> dict[str, Any]:
    """Read a rules file into a plain mapping.

    Args:
        path: Rules file ending in .yaml, .yml or .toml

    Raises:
        FileNotFoundError: If the rules file doesn't exist
        ValueError: If the file can't be decoded, doesn't parse, has an
            unknown suffix or doesn't hold a mapping at the top level
    """
    path = Path(path)
    loader = _LOADERS.get(path.suffix.lower())
    if not path.is_file():
        raise FileNotFoundError(f"Rules file not found: {path}")
    if loader is None:
        supported = ", ".join(_LOADERS)
        raise ValueError(f"Unsupported rules file format {path.suffix!r} (expected {supported})")

    try:
        data = loader(path.read_text(encoding="utf-8"))
    except UnicodeDecodeError as e:
        raise ValueError(f"Rules file {path} is not valid UTF-8: {e}") from e

    if not isinstance(data, dict):
        raise ValueError(f"Rules file {path} must hold a mapping at the top level")
    return data


class DetourSettings(BaseSettings):
    """Runtime settings for loading and evaluating rules.

    All settings can be overridden via environment variables:
    - DETOUR_RULES_FILE: Default rules file for the CLI
    - DETOUR_LOG_LEVEL: Log level (debug, info, warning, error)
    - DETOUR_APPEND_PARAMS_TO_QUERY: Default for rewrite rules
    - DETOUR_STRICT_SOURCE_MATCH: Require exact trailing slashes on sources
    """

    model_config = SettingsConfigDict(
        env_prefix="DETOUR_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    rules_file: str | None = Field(
        default=None,
        description="Rules file (.yaml, .yml or .toml) used when none is given.",
    )
    log_level: str = Field(
        default="warning",
        description="Log level: debug, info, warning or error.",
    )
    append_params_to_query: bool = Field(
        default=True,
        description="Carry captured params into the query of rewrite destinations.",
    )
    strict_source_match: bool = Field(
        default=True,
        description="Treat '/a' and '/a/' as different paths when matching rule sources.",
    )


_settings: DetourSettings | None = None


def get_settings() -> DetourSettings:
    """Get the global settings instance.

    The instance is created once from the environment and cached for the
    lifetime of the process. To reload (e.g., in tests), call clear_settings() first.
    """
    global _settings
    if _settings is None:
        _settings = DetourSettings()
    return _settings


def clear_settings() -> None:
    """Clear the cached settings.

    Call this to force reloading of environment variables on next get_settings() call.
    """
    global _settings
    _settings = None
