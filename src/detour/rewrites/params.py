"""Param name sanitizing for pattern templates."""

from __future__ import annotations

from string import ascii_letters

_LETTERS = frozenset(ascii_letters)


def get_safe_param_name(param_name: str) -> str:
    """Strip *param_name* down to ASCII letters.

    Names bound from guard keys end up as ``:name`` placeholders, and only
    letters are guaranteed to survive template interpolation.

    Examples:
        >>> get_safe_param_name("x-user-id")
        'xuserid'
        >>> get_safe_param_name("123")
        ''
    """
    return "".join(char for char in param_name if char in _LETTERS)
