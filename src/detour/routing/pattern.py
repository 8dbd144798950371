"""Detour Path Pattern Compiler.

Compiles path templates into regular expressions (for matching request
paths) and into reverse compilers (for filling params back into a path).
The token grammar follows the widely used path-to-regexp 6.x syntax:

- Named params: ``/blog/:slug``
- Modifiers: ``/docs/:path*`` (zero or more), ``/docs/:path+`` (one or
  more), ``/:lang?`` (optional)
- Custom patterns: ``/user/:id(\\d+)`` or unnamed ``/(.*)``
- Groups: ``/files{/:name}?`` or ``{-:version}``
- Escapes: ``/price\\:usd`` keeps a literal ``:``

Example:
    matcher = match_path("/blog/:slug")
    result = matcher("/blog/hello")
    # result.params == {"slug": "hello"}

    to_path = compile_path("/news/:slug")
    to_path({"slug": "hello"})
    # "/news/hello"
"""

from __future__ import annotations

import re
from collections.abc import Callable, Mapping
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, TypeAlias

from detour.errors import PatternError

DEFAULT_DELIMITER = "/#?"
DEFAULT_PREFIXES = "./"

_NAME_CHARS = frozenset("0123456789ABCDEFGHIJKLMNOPQRSTUVWXYZabcdefghijklmnopqrstuvwxyz_")
_ESCAPE_RE = re.compile(r"([.+*?=^!:${}()\[\]|/\\])")


class LexTokenType(Enum):
    """Types of lexical tokens in a path template."""

    OPEN = "OPEN"
    CLOSE = "CLOSE"
    PATTERN = "PATTERN"
    NAME = "NAME"
    CHAR = "CHAR"
    ESCAPED_CHAR = "ESCAPED_CHAR"
    MODIFIER = "MODIFIER"
    END = "END"


@dataclass(frozen=True, slots=True)
class LexToken:
    """A single lexical token with its offset in the template."""

    type: LexTokenType
    index: int
    value: str


@dataclass(frozen=True, slots=True)
class Key:
    """A parameter slot parsed from a path template.

    Unnamed custom patterns such as ``/(.*)`` get integer names in
    order of appearance.
    """

    name: str | int
    prefix: str = ""
    suffix: str = ""
    pattern: str = ""
    modifier: str = ""

    @property
    def optional(self) -> bool:
        return self.modifier in ("?", "*")

    @property
    def repeat(self) -> bool:
        return self.modifier in ("+", "*")


Token: TypeAlias = str | Key
Encoder: TypeAlias = Callable[[str, Key], str]
PathFunction: TypeAlias = Callable[[Mapping[Any, Any] | None], str]


@dataclass(slots=True)
class PathMatch:
    """Result of matching a pathname against a compiled pattern."""

    path: str
    index: int
    params: dict[str | int, str | list[str]] = field(default_factory=dict)


def escape_string(value: str) -> str:
    """Escape regular expression metacharacters in *value*."""
    return _ESCAPE_RE.sub(r"\\\1", value)


def _identity(value: str, _key: Key | None = None) -> str:
    return value


def lex(template: str) -> list[LexToken]:
    """Split a path template into lexical tokens.

    Raises:
        PatternError: On a ``:`` without a name or a malformed ``(...)`` group.
    """
    tokens: list[LexToken] = []
    length = len(template)
    i = 0

    while i < length:
        char = template[i]

        if char in "*+?":
            tokens.append(LexToken(LexTokenType.MODIFIER, i, char))
            i += 1
            continue

        if char == "\\":
            tokens.append(LexToken(LexTokenType.ESCAPED_CHAR, i, template[i + 1 : i + 2]))
            i += 2
            continue

        if char == "{":
            tokens.append(LexToken(LexTokenType.OPEN, i, char))
            i += 1
            continue

        if char == "}":
            tokens.append(LexToken(LexTokenType.CLOSE, i, char))
            i += 1
            continue

        if char == ":":
            j = i + 1
            while j < length and template[j] in _NAME_CHARS:
                j += 1
            name = template[i + 1 : j]
            if not name:
                raise PatternError(f"Missing parameter name at {i}")
            tokens.append(LexToken(LexTokenType.NAME, i, name))
            i = j
            continue

        if char == "(":
            count = 1
            pattern = ""
            j = i + 1

            if template[j : j + 1] == "?":
                raise PatternError(f'Pattern cannot start with "?" at {j}')

            while j < length:
                if template[j] == "\\":
                    pattern += template[j : j + 2]
                    j += 2
                    continue

                if template[j] == ")":
                    count -= 1
                    if count == 0:
                        j += 1
                        break
                elif template[j] == "(":
                    count += 1
                    if template[j + 1 : j + 2] != "?":
                        raise PatternError(f"Capturing groups are not allowed at {j}")

                pattern += template[j]
                j += 1

            if count:
                raise PatternError(f"Unbalanced pattern at {i}")
            if not pattern:
                raise PatternError(f"Missing pattern at {i}")

            tokens.append(LexToken(LexTokenType.PATTERN, i, pattern))
            i = j
            continue

        tokens.append(LexToken(LexTokenType.CHAR, i, char))
        i += 1

    tokens.append(LexToken(LexTokenType.END, i, ""))
    return tokens


def parse(
    template: str,
    *,
    delimiter: str = DEFAULT_DELIMITER,
    prefixes: str = DEFAULT_PREFIXES,
) -> list[Token]:
    """Parse a path template into literal strings and ``Key`` slots.

    Examples::

        "/users"          -> ["/users"]
        "/users/:id"      -> ["/users", Key("id", prefix="/", pattern="[^\\/#\\?]+?")]
        "/files/:path*"   -> ["/files", Key("path", prefix="/", modifier="*", ...)]
    """
    tokens = lex(template)
    default_pattern = f"[^{escape_string(delimiter)}]+?"
    result: list[Token] = []
    key_index = 0
    i = 0
    path = ""

    def try_consume(token_type: LexTokenType) -> str | None:
        nonlocal i
        if i < len(tokens) and tokens[i].type is token_type:
            i += 1
            return tokens[i - 1].value
        return None

    def must_consume(token_type: LexTokenType) -> str:
        value = try_consume(token_type)
        if value is not None:
            return value
        token = tokens[i]
        raise PatternError(f"Unexpected {token.type.value} at {token.index}, expected {token_type.value}")

    def consume_text() -> str:
        text = ""
        while True:
            value = try_consume(LexTokenType.CHAR) or try_consume(LexTokenType.ESCAPED_CHAR)
            if not value:
                return text
            text += value

    while i < len(tokens):
        char = try_consume(LexTokenType.CHAR)
        name = try_consume(LexTokenType.NAME)
        pattern = try_consume(LexTokenType.PATTERN)

        if name or pattern:
            prefix = char or ""
            if prefix not in prefixes:
                path += prefix
                prefix = ""

            if path:
                result.append(path)
                path = ""

            key_name: str | int
            if name:
                key_name = name
            else:
                key_name = key_index
                key_index += 1

            result.append(
                Key(
                    name=key_name,
                    prefix=prefix,
                    suffix="",
                    pattern=pattern or default_pattern,
                    modifier=try_consume(LexTokenType.MODIFIER) or "",
                )
            )
            continue

        value = char or try_consume(LexTokenType.ESCAPED_CHAR)
        if value:
            path += value
            continue

        if path:
            result.append(path)
            path = ""

        if try_consume(LexTokenType.OPEN) is not None:
            prefix = consume_text()
            name = try_consume(LexTokenType.NAME) or ""
            pattern = try_consume(LexTokenType.PATTERN) or ""
            suffix = consume_text()

            must_consume(LexTokenType.CLOSE)

            group_name: str | int = name
            if not name and pattern:
                group_name = key_index
                key_index += 1

            result.append(
                Key(
                    name=group_name,
                    prefix=prefix,
                    suffix=suffix,
                    pattern=default_pattern if name and not pattern else pattern,
                    modifier=try_consume(LexTokenType.MODIFIER) or "",
                )
            )
            continue

        must_consume(LexTokenType.END)

    return result


def path_keys(
    template: str,
    *,
    delimiter: str = DEFAULT_DELIMITER,
    prefixes: str = DEFAULT_PREFIXES,
) -> list[Key]:
    """Return the parameter slots a template references, in order."""
    return [
        token
        for token in parse(template, delimiter=delimiter, prefixes=prefixes)
        if isinstance(token, Key) and token.pattern
    ]


def tokens_to_function(
    tokens: list[Token],
    *,
    sensitive: bool = False,
    encode: Encoder | None = None,
    validate: bool = True,
) -> PathFunction:
    """Build a function that renders *tokens* with a params mapping.

    With ``validate=False`` values are inserted as-is, which is what
    destination templates need when params were captured by a different
    pattern than the one being rendered.
    """
    encoder = encode or _identity
    flags = 0 if sensitive else re.IGNORECASE
    matchers: list[re.Pattern[str] | None] = [
        re.compile(f"^(?:{token.pattern})\\Z", flags)
        if validate and isinstance(token, Key)
        else None
        for token in tokens
    ]

    def render(data: Mapping[Any, Any] | None = None) -> str:
        path = ""

        for token, matcher in zip(tokens, matchers):
            if isinstance(token, str):
                path += token
                continue

            value = data.get(token.name) if data else None

            if isinstance(value, (list, tuple)):
                if not token.repeat:
                    raise PatternError(f'Expected "{token.name}" to not repeat, but got an array')

                if not value:
                    if token.optional:
                        continue
                    raise PatternError(f'Expected "{token.name}" to not be empty')

                for item in value:
                    segment = encoder(str(item), token)
                    if matcher is not None and not matcher.search(segment):
                        raise PatternError(
                            f'Expected all "{token.name}" to match "{token.pattern}", '
                            f'but got "{segment}"'
                        )
                    path += token.prefix + segment + token.suffix
                continue

            if isinstance(value, (str, int, float)) and not isinstance(value, bool):
                segment = encoder(str(value), token)
                if matcher is not None and not matcher.search(segment):
                    raise PatternError(
                        f'Expected "{token.name}" to match "{token.pattern}", but got "{segment}"'
                    )
                path += token.prefix + segment + token.suffix
                continue

            if token.optional:
                continue

            expected = "an array" if token.repeat else "a string"
            raise PatternError(f'Expected "{token.name}" to be {expected}')

        return path

    return render


def compile_path(
    template: str,
    *,
    delimiter: str = DEFAULT_DELIMITER,
    prefixes: str = DEFAULT_PREFIXES,
    sensitive: bool = False,
    encode: Encoder | None = None,
    validate: bool = True,
) -> PathFunction:
    """Compile a path template into a params -> path function.

    Raises:
        PatternError: If the template cannot be parsed. The returned
            function raises ``PatternError`` for missing or mis-shaped params.
    """
    tokens = parse(template, delimiter=delimiter, prefixes=prefixes)
    return tokens_to_function(tokens, sensitive=sensitive, encode=encode, validate=validate)


def tokens_to_regexp(
    tokens: list[Token],
    keys: list[Key] | None = None,
    *,
    strict: bool = False,
    start: bool = True,
    end: bool = True,
    sensitive: bool = False,
    delimiter: str = DEFAULT_DELIMITER,
    ends_with: str = "",
    encode: Callable[[str], str] | None = None,
) -> re.Pattern[str]:
    """Build a regular expression from parsed tokens.

    Every ``Key`` with a pattern becomes one capturing group; the keys
    are appended to *keys* in group order.
    """
    encoder = encode or _identity
    ends_with_re = f"[{escape_string(ends_with)}]|\\Z" if ends_with else "\\Z"
    delimiter_re = f"[{escape_string(delimiter)}]"
    route = "^" if start else ""

    for token in tokens:
        if isinstance(token, str):
            route += escape_string(encoder(token))
            continue

        prefix = escape_string(encoder(token.prefix))
        suffix = escape_string(encoder(token.suffix))

        if not token.pattern:
            route += f"(?:{prefix}{suffix}){token.modifier}"
            continue

        if keys is not None:
            keys.append(token)

        if prefix or suffix:
            if token.repeat:
                mod = "?" if token.modifier == "*" else ""
                route += (
                    f"(?:{prefix}((?:{token.pattern})"
                    f"(?:{suffix}{prefix}(?:{token.pattern}))*){suffix}){mod}"
                )
            else:
                route += f"(?:{prefix}({token.pattern}){suffix}){token.modifier}"
        else:
            route += f"({token.pattern}){token.modifier}"

    if end:
        if not strict:
            route += f"{delimiter_re}?"
        route += f"(?={ends_with_re})" if ends_with else "\\Z"
    else:
        end_token = tokens[-1] if tokens else None
        if isinstance(end_token, str):
            is_end_delimited = end_token[-1] in delimiter_re
        else:
            is_end_delimited = end_token is None

        if not strict:
            route += f"(?:{delimiter_re}(?={ends_with_re}))?"
        if not is_end_delimited:
            route += f"(?={delimiter_re}|{ends_with_re})"

    return re.compile(route, 0 if sensitive else re.IGNORECASE)


def path_to_regexp(
    template: str,
    keys: list[Key] | None = None,
    *,
    strict: bool = False,
    start: bool = True,
    end: bool = True,
    sensitive: bool = False,
    delimiter: str = DEFAULT_DELIMITER,
    prefixes: str = DEFAULT_PREFIXES,
    ends_with: str = "",
) -> re.Pattern[str]:
    """Compile a path template into a regular expression.

    Example:
        >>> keys = []
        >>> regexp = path_to_regexp("/users/:id", keys)
        >>> bool(regexp.match("/users/42"))
        True
        >>> [key.name for key in keys]
        ['id']
    """
    tokens = parse(template, delimiter=delimiter, prefixes=prefixes)
    return tokens_to_regexp(
        tokens,
        keys,
        strict=strict,
        start=start,
        end=end,
        sensitive=sensitive,
        delimiter=delimiter,
        ends_with=ends_with,
    )


def regexp_to_function(
    regexp: re.Pattern[str],
    keys: list[Key],
    *,
    decode: Encoder | None = None,
) -> Callable[[str], PathMatch | None]:
    """Wrap a compiled pattern into a pathname -> ``PathMatch`` function."""
    decoder = decode or _identity

    def matcher(pathname: str) -> PathMatch | None:
        found = regexp.search(pathname)
        if found is None:
            return None

        params: dict[str | int, str | list[str]] = {}
        for index, key in enumerate(keys, start=1):
            value = found.group(index)
            if value is None:
                continue

            if key.repeat:
                separator = key.prefix + key.suffix
                parts = value.split(separator) if separator else list(value)
                params[key.name] = [decoder(part, key) for part in parts]
            else:
                params[key.name] = decoder(value, key)

        return PathMatch(path=found.group(0), index=found.start(), params=params)

    return matcher


def match_path(
    template: str,
    *,
    strict: bool = False,
    end: bool = True,
    sensitive: bool = False,
    delimiter: str = DEFAULT_DELIMITER,
    prefixes: str = DEFAULT_PREFIXES,
    decode: Encoder | None = None,
) -> Callable[[str], PathMatch | None]:
    """Create a matcher that extracts params from pathnames.

    Example:
        >>> matcher = match_path("/docs/:path*")
        >>> matcher("/docs/a/b").params
        {'path': ['a', 'b']}
    """
    keys: list[Key] = []
    regexp = path_to_regexp(
        template,
        keys,
        strict=strict,
        end=end,
        sensitive=sensitive,
        delimiter=delimiter,
        prefixes=prefixes,
    )
    return regexp_to_function(regexp, keys, decode=decode)
