"""Detour exception hierarchy.

Shared by the pattern compiler, the destination resolver and the rule
config loader so callers can catch one base type.
"""

from __future__ import annotations


class DetourError(Exception):
    """Base for all detour-specific errors."""


class PatternError(DetourError, TypeError):
    """Raised by the path-pattern compiler.

    Covers lexing and parsing failures (``Missing parameter name at 3``)
    as well as compile-time parameter errors
    (``Expected "slug" to not repeat, but got an array``).
    """


class InvalidMultiMatchError(PatternError):
    """A repeated value was given for a destination param without ``*``."""

    def __init__(self, message: str | None = None) -> None:
        super().__init__(
            message
            or (
                "To use a multi-match in the destination you must add `*` at the end "
                "of the param name to signify it should repeat."
            )
        )


class RuleConfigError(DetourError, ValueError):
    """Raised when a rule definition in a config file is invalid."""
