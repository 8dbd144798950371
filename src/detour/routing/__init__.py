"""Detour Routing Primitives.

Path-pattern compilation (``:name``, ``:name*``, ``:name+``, ``:name?``)
and URL parsing used by the rewrite engine.

Usage:
    from detour.routing import compile_path, match_path, parse_url

    matcher = match_path("/blog/:slug")
    matcher("/blog/hello").params  # {"slug": "hello"}

    compile_path("/news/:slug")({"slug": "hello"})  # "/news/hello"

    parse_url("/news?ref=home#top").query  # {"ref": "home"}
"""

from detour.routing.pattern import (
    Key,
    PathMatch,
    compile_path,
    escape_string,
    match_path,
    parse,
    path_keys,
    path_to_regexp,
    regexp_to_function,
    tokens_to_function,
    tokens_to_regexp,
)
from detour.routing.url import (
    ParsedUrl,
    Query,
    QueryValue,
    format_url,
    parse_query,
    parse_url,
    stringify_query,
)

__all__ = [
    # Patterns
    "Key",
    "PathMatch",
    "compile_path",
    "escape_string",
    "match_path",
    "parse",
    "path_keys",
    "path_to_regexp",
    "regexp_to_function",
    "tokens_to_function",
    "tokens_to_regexp",
    # URLs
    "ParsedUrl",
    "Query",
    "QueryValue",
    "format_url",
    "parse_query",
    "parse_url",
    "stringify_query",
]
