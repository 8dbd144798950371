"""URL parsing and formatting.

Splits relative (``/path?x=1#top``) and absolute (``https://host/path``)
URLs into pathname, query and hash. Query strings decode into a mapping
whose values are a ``str`` or, for repeated keys, a ``list[str]``.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import TypeAlias
from urllib.parse import parse_qsl, quote, urlencode, urlsplit

QueryValue: TypeAlias = str | list[str]
Query: TypeAlias = dict[str, QueryValue]


@dataclass(slots=True)
class ParsedUrl:
    """A URL split into its routing-relevant parts.

    ``protocol``, ``hostname`` and ``port`` are only set for absolute URLs.
    ``hash`` and ``search`` keep their leading ``#`` / ``?`` when non-empty.
    """

    pathname: str
    query: Query = field(default_factory=dict)
    hash: str = ""
    search: str = ""
    protocol: str | None = None
    hostname: str | None = None
    port: str | None = None

    @property
    def is_absolute(self) -> bool:
        return self.protocol is not None


def parse_query(search: str) -> Query:
    """Parse a query string into a mapping.

    Repeated keys collect their values into a list, in order.

    Example:
        >>> parse_query("?a=1&b=2&a=3")
        {'a': ['1', '3'], 'b': '2'}
    """
    query: Query = {}
    for key, value in parse_qsl(search.removeprefix("?"), keep_blank_values=True):
        existing = query.get(key)
        if existing is None:
            query[key] = value
        elif isinstance(existing, list):
            existing.append(value)
        else:
            query[key] = [existing, value]
    return query


def stringify_query(query: Mapping[str, QueryValue | None]) -> str:
    """Serialize a query mapping, percent-encoding keys and values.

    ``None`` values are skipped.
    """
    pairs: list[tuple[str, str]] = []
    for key, value in query.items():
        if value is None:
            continue
        if isinstance(value, (list, tuple)):
            pairs.extend((key, str(item)) for item in value)
        else:
            pairs.append((key, str(value)))
    return urlencode(pairs, quote_via=quote)


def _split_netloc(netloc: str) -> tuple[str, str]:
    """Split ``user:pass@host:port`` into ``(host, port)``."""
    host = netloc.rpartition("@")[2]
    if host.startswith("["):
        bracket_end = host.find("]")
        if bracket_end != -1:
            rest = host[bracket_end + 1 :]
            port = rest[1:] if rest.startswith(":") else ""
            return host[: bracket_end + 1], port
    name, sep, port = host.rpartition(":")
    if sep and port.isdigit():
        return name, port
    return host, ""


def parse_url(url: str) -> ParsedUrl:
    """Parse a relative or absolute URL.

    Example:
        >>> parsed = parse_url("/docs/:slug?ref=home#intro")
        >>> parsed.pathname, parsed.query, parsed.hash
        ('/docs/:slug', {'ref': 'home'}, '#intro')
    """
    if url.startswith("/"):
        rest, _, fragment = url.partition("#")
        pathname, _, search = rest.partition("?")
        return ParsedUrl(
            pathname=pathname,
            query=parse_query(search),
            hash=f"#{fragment}" if fragment else "",
            search=f"?{search}" if search else "",
        )

    parts = urlsplit(url)
    if not parts.scheme:
        raise ValueError(f"Invalid URL: {url!r} is neither absolute nor root-relative")
    hostname, port = _split_netloc(parts.netloc)
    return ParsedUrl(
        pathname=parts.path or "/",
        query=parse_query(parts.query),
        hash=f"#{parts.fragment}" if parts.fragment else "",
        search=f"?{parts.query}" if parts.query else "",
        protocol=f"{parts.scheme}:",
        hostname=hostname.lower(),
        port=port,
    )


def format_url(
    pathname: str,
    query: Mapping[str, QueryValue | None] | None = None,
    hash: str = "",
    *,
    protocol: str | None = None,
    hostname: str | None = None,
    port: str | None = None,
) -> str:
    """Assemble a URL string from its parts.

    Example:
        >>> format_url("/news/hello", {"ref": "a b"}, "#top")
        '/news/hello?ref=a%20b#top'
    """
    url = ""
    if protocol is not None:
        host = f"{hostname}:{port}" if port else (hostname or "")
        url = f"{protocol}//{host}" if protocol else f"//{host}"
    url += pathname
    search = stringify_query(query or {})
    if search:
        url += f"?{search}"
    if hash:
        url += hash if hash.startswith("#") else f"#{hash}"
    return url
