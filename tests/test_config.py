"""Tests for settings and config file loading."""

from __future__ import annotations

import os
from unittest.mock import patch

import pytest

from detour.core.config import (
    DetourSettings,
    clear_settings,
    get_settings,
    load_config_from_file,
)


@pytest.fixture(autouse=True)
def _fresh_settings():
    clear_settings()
    yield
    clear_settings()


class TestDetourSettings:
    """Test DetourSettings."""

    def test_default_values(self) -> None:
        """Test default values."""
        with patch.dict(os.environ, {}, clear=True):
            settings = DetourSettings(_env_file=None)
        assert settings.rules_file is None
        assert settings.log_level == "warning"
        assert settings.append_params_to_query is True
        assert settings.strict_source_match is True

    def test_env_override_rules_file(self) -> None:
        """Test DETOUR_RULES_FILE env var."""
        with patch.dict(os.environ, {"DETOUR_RULES_FILE": "rules.yaml"}):
            assert DetourSettings().rules_file == "rules.yaml"

    def test_env_override_append_params(self) -> None:
        """Test DETOUR_APPEND_PARAMS_TO_QUERY env var."""
        with patch.dict(os.environ, {"DETOUR_APPEND_PARAMS_TO_QUERY": "false"}):
            assert DetourSettings().append_params_to_query is False

    def test_env_override_strict_source_match(self) -> None:
        """Test DETOUR_STRICT_SOURCE_MATCH env var."""
        with patch.dict(os.environ, {"DETOUR_STRICT_SOURCE_MATCH": "0"}):
            assert DetourSettings().strict_source_match is False

    def test_env_override_log_level(self) -> None:
        """Test DETOUR_LOG_LEVEL env var."""
        with patch.dict(os.environ, {"DETOUR_LOG_LEVEL": "debug"}):
            assert DetourSettings().log_level == "debug"


class TestGetSettings:
    """Test the cached settings accessor."""

    def test_cached(self) -> None:
        """Test get_settings returns the same instance."""
        assert get_settings() is get_settings()

    def test_clear_reloads_environment(self) -> None:
        """Test clear_settings picks up environment changes."""
        with patch.dict(os.environ, {"DETOUR_LOG_LEVEL": "info"}):
            assert get_settings().log_level == "info"
            with patch.dict(os.environ, {"DETOUR_LOG_LEVEL": "error"}):
                assert get_settings().log_level == "info"
                clear_settings()
                assert get_settings().log_level == "error"


class TestLoadConfigFromFile:
    """Test load_config_from_file."""

    def test_yaml(self, tmp_path) -> None:
        """Test loading a YAML file."""
        path = tmp_path / "rules.yaml"
        path.write_text("rules:\n  - source: /a\n    destination: /b\n")
        assert load_config_from_file(path) == {"rules": [{"source": "/a", "destination": "/b"}]}

    def test_yml_suffix(self, tmp_path) -> None:
        """Test the .yml suffix is accepted."""
        path = tmp_path / "rules.yml"
        path.write_text("rules: []\n")
        assert load_config_from_file(path) == {"rules": []}

    def test_toml(self, tmp_path) -> None:
        """Test loading a TOML file."""
        path = tmp_path / "rules.toml"
        path.write_text('[[rules]]\nsource = "/a"\ndestination = "/b"\n')
        assert load_config_from_file(path) == {"rules": [{"source": "/a", "destination": "/b"}]}

    def test_empty_yaml(self, tmp_path) -> None:
        """Test an empty YAML file loads as an empty mapping."""
        path = tmp_path / "rules.yaml"
        path.write_text("")
        assert load_config_from_file(path) == {}

    def test_missing_file(self, tmp_path) -> None:
        """Test a missing file raises FileNotFoundError."""
        with pytest.raises(FileNotFoundError):
            load_config_from_file(tmp_path / "missing.yaml")

    def test_unsupported_format(self, tmp_path) -> None:
        """Test unknown suffixes are rejected."""
        path = tmp_path / "rules.json"
        path.write_text("{}")
        with pytest.raises(ValueError, match="Unsupported rules file format"):
            load_config_from_file(path)

    def test_invalid_yaml(self, tmp_path) -> None:
        """Test YAML syntax errors are reported as ValueError."""
        path = tmp_path / "rules.yaml"
        path.write_text("rules: [\n")
        with pytest.raises(ValueError, match="Invalid YAML"):
            load_config_from_file(path)

    def test_invalid_toml(self, tmp_path) -> None:
        """Test TOML syntax errors are reported as ValueError."""
        path = tmp_path / "rules.toml"
        path.write_text("rules = [\n")
        with pytest.raises(ValueError, match="Invalid TOML"):
            load_config_from_file(path)

    def test_top_level_must_be_mapping(self, tmp_path) -> None:
        """Test a YAML list at the top level is rejected."""
        path = tmp_path / "rules.yaml"
        path.write_text("- source: /a\n")
        with pytest.raises(ValueError, match="mapping"):
            load_config_from_file(path)
