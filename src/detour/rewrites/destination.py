"""Detour Destination Resolution.

Fills captured params into a rule's destination template and merges the
query string sources into the final URL.

Query merge order, lowest priority to highest:
1. query values of the original request
2. captured path/guard params (rewrites only, see ``append_params_to_query``)
3. query values written in the destination template

Example:
    prepared = prepare_destination(
        "/news/:slug?ref=:source",
        params={"slug": "hello", "source": "blog"},
        query={"page": "2"},
        append_params_to_query=False,
    )
    prepared.new_url                                # "/news/hello"
    prepared.resolved_destination.query             # {"page": "2", "ref": "blog"}
"""

from __future__ import annotations

import re
from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any

import structlog

from detour.errors import InvalidMultiMatchError, PatternError
from detour.routing.pattern import compile_path, path_keys
from detour.routing.url import Query, QueryValue, format_url, parse_url

logger = structlog.get_logger()

LOCALE_QUERY_KEY = "__nextLocale"
DEFAULT_LOCALE_QUERY_KEY = "__nextDefaultLocale"
INTERNAL_LOCALE_PARAM = "nextInternalLocale"

_PATTERN_METACHARS = frozenset(":*?+(){}")
_PARAM_MODIFIERS = frozenset("*?+")
_WORD_RE = re.compile(r"\w+", re.ASCII)
_MULTI_MATCH_RE = re.compile(r"Expected .*? to not repeat, but got an array")


@dataclass(slots=True)
class ResolvedDestination:
    """The destination a rule resolved to.

    ``protocol``, ``hostname`` and ``port`` are set only when the
    destination template was an absolute URL.
    """

    pathname: str
    hash: str = ""
    query: Query = field(default_factory=dict)
    protocol: str | None = None
    hostname: str | None = None
    port: str | None = None

    def to_url(self) -> str:
        """Serialize to a URL string including the merged query."""
        return format_url(
            self.pathname,
            self.query,
            self.hash,
            protocol=self.protocol,
            hostname=self.hostname,
            port=self.port,
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "pathname": self.pathname,
            "hash": self.hash,
            "query": dict(self.query),
            "protocol": self.protocol,
            "hostname": self.hostname,
            "port": self.port,
        }


@dataclass(slots=True)
class PreparedDestination:
    """Output of prepare_destination().

    ``new_url`` is the compiled destination path plus hash, without query.
    """

    new_url: str
    resolved_destination: ResolvedDestination


def _escape_template(template: str, params: Mapping[str, Any]) -> str:
    """Escape pattern syntax in *template* except for known placeholders.

    A placeholder is ``:`` followed by a complete word that names a key of
    *params*, plus an optional ``*``, ``?`` or ``+`` modifier. Everything
    else is literal text, so ``: * ? + ( ) { }`` in it get a backslash.
    """
    escaped: list[str] = []
    length = len(template)
    i = 0

    while i < length:
        char = template[i]

        if char == ":":
            word = _WORD_RE.match(template, i + 1)
            if word is not None and word.group(0) in params:
                end = word.end()
                if end < length and template[end] in _PARAM_MODIFIERS:
                    end += 1
                escaped.append(template[i:end])
                i = end
                continue

        escaped.append(f"\\{char}" if char in _PATTERN_METACHARS else char)
        i += 1

    return "".join(escaped)


def compile_non_path_value(value: str, params: Mapping[str, Any]) -> str:
    """Interpolate params into a string that is not a path.

    Used for destination query values and header values, where only
    ``:name`` placeholders of known params are substituted and all other
    pattern syntax stays literal.

    Examples:
        >>> compile_non_path_value("ref-:slug", {"slug": "hello"})
        'ref-hello'
        >>> compile_non_path_value("a:b+c", {})
        'a:b+c'

    Raises:
        PatternError: If a placeholder cannot be rendered with its value.
    """
    if ":" not in value:
        return value

    template = _escape_template(value, params)

    # the compiler expects a path, so render under a leading slash
    return compile_path(f"/{template}", validate=False)(params)[1:]


def prepare_destination(
    destination: str,
    params: Mapping[str, Any],
    query: Mapping[str, QueryValue],
    append_params_to_query: bool,
) -> PreparedDestination:
    """Resolve a destination template against captured params.

    Args:
        destination: Destination template, e.g. ``/docs/:path*?v=:version``.
        params: Params captured from the source path and guard conditions.
        query: Query of the original request. It is not modified.
        append_params_to_query: Add params not used by the destination path
            to the destination query (rewrites).

    Returns:
        PreparedDestination with the compiled path and the resolved destination.

    Raises:
        InvalidMultiMatchError: If a param holding several values is used in
            the destination path without the ``*`` modifier.
        PatternError: For any other failure compiling the destination path.
    """
    request_query = dict(query)
    had_locale = request_query.pop(LOCALE_QUERY_KEY, None)
    request_query.pop(DEFAULT_LOCALE_QUERY_KEY, None)

    parsed = parse_url(destination)
    dest_query = parsed.query
    dest_path = f"{parsed.pathname}{parsed.hash}"
    dest_path_params = {key.name for key in path_keys(dest_path)}

    # validation is off: params come from a different pattern than the
    # destination (e.g. /a:hello(.*) -> /b/:hello)
    destination_compiler = compile_path(dest_path, validate=False)

    for key, value in list(dest_query.items()):
        if isinstance(value, list):
            dest_query[key] = [compile_non_path_value(item, params) for item in value]
        else:
            dest_query[key] = compile_non_path_value(value, params)

    param_keys = list(params)
    if had_locale:
        param_keys = [key for key in param_keys if key != INTERNAL_LOCALE_PARAM]

    # params already placed in the destination path are not repeated in its query
    if append_params_to_query and not any(key in dest_path_params for key in param_keys):
        for key in param_keys:
            if key not in dest_query:
                dest_query[key] = params[key]

    try:
        new_url = destination_compiler(params)
    except PatternError as err:
        if _MULTI_MATCH_RE.search(str(err)):
            logger.warning(
                "Destination param repeats without * modifier",
                destination=destination,
                error=str(err),
            )
            raise InvalidMultiMatchError() from err
        raise

    pathname, _, fragment = new_url.partition("#")

    resolved = ResolvedDestination(
        pathname=pathname,
        hash=f"#{fragment}" if fragment else "",
        query={**request_query, **dest_query},
        protocol=parsed.protocol,
        hostname=parsed.hostname,
        port=parsed.port,
    )
    return PreparedDestination(new_url=new_url, resolved_destination=resolved)
