"""Core."""

from .config import DetourSettings, clear_settings, get_settings, load_config_from_file

__all__ = [
    "DetourSettings",
    "clear_settings",
    "get_settings",
    "load_config_from_file",
]
