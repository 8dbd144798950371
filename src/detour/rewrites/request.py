"""Request view consumed by guard matching and rule evaluation."""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field

from detour.routing.url import QueryValue, parse_url


def parse_cookies(header: str | None) -> dict[str, str]:
    """Parse a ``Cookie`` header value into a name-value dict.

    Returns an empty dict for empty or missing headers.
    """
    if not header:
        return {}
    cookies: dict[str, str] = {}
    for pair in header.split(";"):
        pair = pair.strip()
        if "=" in pair:
            key, _, value = pair.partition("=")
            cookies[key.strip()] = value.strip()
    return cookies


def flatten_query_values(query: Mapping[str, QueryValue]) -> tuple[str, ...]:
    """Return every value of a query mapping in order, lists expanded."""
    values: list[str] = []
    for value in query.values():
        if isinstance(value, (list, tuple)):
            values.extend(value)
        else:
            values.append(value)
    return tuple(values)


@dataclass(frozen=True, slots=True)
class RequestView:
    """The parts of an inbound request that rules can inspect.

    Header names are stored lower-cased so lookups are case-insensitive;
    cookie and query keys keep their case. ``initial_query_values`` holds
    the query values exactly as the client sent them (decoded), before any
    upstream rewriting touched ``query``. A query guard re-encodes a value
    found there so it passes through with its original wire encoding.
    """

    method: str = "GET"
    path: str = "/"
    headers: Mapping[str, str] = field(default_factory=dict)
    cookies: Mapping[str, str] = field(default_factory=dict)
    query: Mapping[str, QueryValue] = field(default_factory=dict)
    host: str | None = None
    initial_query_values: tuple[str, ...] = ()

    def __post_init__(self) -> None:
        headers = {name.lower(): value for name, value in self.headers.items()}
        object.__setattr__(self, "headers", headers)
        object.__setattr__(self, "method", self.method.upper())
        object.__setattr__(self, "initial_query_values", tuple(self.initial_query_values))
        if self.host is None:
            object.__setattr__(self, "host", headers.get("host"))

    def header(self, name: str) -> str | None:
        """Return a header value by case-insensitive name."""
        return self.headers.get(name.lower())


def create_request_view(
    url: str,
    method: str = "GET",
    headers: Mapping[str, str] | None = None,
    cookies: Mapping[str, str] | None = None,
    initial_query_values: Iterable[str] | None = None,
) -> RequestView:
    """Helper to build a RequestView from a raw request URL.

    Args:
        url: Request URL, root-relative (``/a?b=c``) or absolute.
        method: HTTP method (default: GET).
        headers: Request headers.
        cookies: Request cookies. Parsed from the ``Cookie`` header when omitted.
        initial_query_values: Original query values. Defaults to the
            values of *url*'s own query string.

    Returns:
        RequestView for use with match_has() and RuleEngine.match().
    """
    parsed = parse_url(url)
    header_map = {name.lower(): value for name, value in (headers or {}).items()}

    if "host" not in header_map and parsed.hostname:
        header_map["host"] = f"{parsed.hostname}:{parsed.port}" if parsed.port else parsed.hostname

    if cookies is None:
        cookies = parse_cookies(header_map.get("cookie"))

    if initial_query_values is None:
        initial_query_values = flatten_query_values(parsed.query)

    return RequestView(
        method=method,
        path=parsed.pathname,
        headers=header_map,
        cookies=dict(cookies),
        query=parsed.query,
        initial_query_values=tuple(initial_query_values),
    )
