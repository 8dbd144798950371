"""Detour Guard Conditions.

"has" conditions gate a rule on request facets beyond the path. Every
condition of a rule must match (AND logic); matching conditions can bind
params that the destination template interpolates.

Condition Types:
- header: Match a request header (name is case-insensitive)
- cookie: Match a cookie (name is case-sensitive)
- query: Match a query parameter (name is case-sensitive)
- host: Match the request host, port stripped and lower-cased

Value semantics:
- value=None: the facet must be present; binds ``<key letters> -> value``
  (header keys are lower-cased first)
- value="<regex>": the facet must fully match; named groups become params
- value=False: the facet must be absent

Example:
    conditions = [
        HasCondition(type=ConditionType.HOST, value=r"(?<sub>[^.]+)\\.example\\.com"),
        HasCondition(type=ConditionType.COOKIE, key="session"),
    ]
    result = match_has(request, conditions, request.query)
    if result:
        # result.params == {"sub": "docs", "session": "abc"}
        pass
"""

from __future__ import annotations

import re
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Literal, TypeAlias
from urllib.parse import quote

import structlog

from detour.rewrites.params import get_safe_param_name
from detour.rewrites.request import RequestView
from detour.routing.url import QueryValue

logger = structlog.get_logger()

ParamValue: TypeAlias = str | list[str]
Params: TypeAlias = dict[str, ParamValue]

# Characters encodeURIComponent leaves untouched
_URI_COMPONENT_SAFE = "-_.!~*'()"

_JS_NAMED_GROUP_RE = re.compile(r"(?<!\\)\(\?<(?![=!])")
_JS_BACKREFERENCE_RE = re.compile(r"\\k<([A-Za-z_][A-Za-z0-9_]*)>")


class ConditionType(Enum):
    """Request facets a guard condition can inspect."""

    HEADER = "header"
    COOKIE = "cookie"
    QUERY = "query"
    HOST = "host"


def to_python_pattern(pattern: str) -> str:
    """Translate JavaScript named-group syntax to Python ``re`` syntax.

    ``(?<name>...)`` becomes ``(?P<name>...)`` and ``\\k<name>`` becomes
    ``(?P=name)``. Lookbehinds are left alone.
    """
    pattern = _JS_NAMED_GROUP_RE.sub("(?P<", pattern)
    return _JS_BACKREFERENCE_RE.sub(r"(?P=\1)", pattern)


@dataclass
class HasCondition:
    """A single guard condition.

    Example:
        >>> condition = HasCondition(type=ConditionType.HEADER, key="x-beta")
        >>> condition.to_dict()
        {'type': 'header', 'key': 'x-beta', 'value': None}
    """

    type: ConditionType
    key: str | None = None
    value: str | Literal[False] | None = None
    _compiled: re.Pattern[str] | None = field(default=None, init=False, repr=False, compare=False)

    def __post_init__(self) -> None:
        if not isinstance(self.type, ConditionType):
            self.type = ConditionType(self.type)

        if self.type is not ConditionType.HOST and not self.key:
            raise ValueError(f"{self.type.value} condition requires 'key' field")

        if self.value is True:
            raise ValueError("condition 'value' must be a pattern string, false or omitted")

        if self.value:
            try:
                self._compiled = re.compile(f"^{to_python_pattern(self.value)}\\Z")
            except re.error as e:
                raise ValueError(f"Invalid {self.type.value} condition pattern {self.value!r}: {e}") from e

    @property
    def param_name(self) -> str:
        """Name bound for an existence match."""
        if self.type is ConditionType.HOST:
            return "host"
        if self.type is ConditionType.HEADER:
            return get_safe_param_name((self.key or "").lower())
        return get_safe_param_name(self.key or "")

    @property
    def regex(self) -> re.Pattern[str] | None:
        return self._compiled

    def to_dict(self) -> dict[str, Any]:
        return {
            "type": self.type.value,
            "key": self.key,
            "value": self.value,
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> HasCondition:
        """Create a condition from its dictionary representation.

        Raises:
            ValueError: If the type is unknown or a required key is missing.
        """
        return cls(
            type=ConditionType(data.get("type")),
            key=data.get("key"),
            value=data.get("value"),
        )


@dataclass(frozen=True, slots=True)
class HasMatch:
    """Result of evaluating a rule's guard conditions.

    Truthy only when every condition matched. ``params`` holds the values
    bound by the conditions, later conditions overwriting earlier ones.
    """

    matched: bool
    params: Params = field(default_factory=dict)

    def __bool__(self) -> bool:
        return self.matched


NOT_MATCHED = HasMatch(matched=False)


def _resolve_value(
    request: RequestView,
    condition: HasCondition,
    query: Mapping[str, QueryValue],
) -> str | None:
    """Look up the request facet a condition inspects."""
    if condition.type is ConditionType.HEADER:
        return request.headers.get((condition.key or "").lower())

    if condition.type is ConditionType.COOKIE:
        return request.cookies.get(condition.key or "")

    if condition.type is ConditionType.QUERY:
        raw = query.get(condition.key or "")
        if isinstance(raw, (list, tuple)):
            raw = raw[0] if raw else None
        if raw is not None and raw in request.initial_query_values:
            # keep the client's original encoding of the value
            raw = quote(raw, safe=_URI_COMPONENT_SAFE)
        return raw

    if condition.type is ConditionType.HOST:
        if request.host is None:
            return None
        return request.host.split(":")[0].lower()

    return None


def _evaluate(condition: HasCondition, value: str | None, params: Params) -> bool:
    """Check one condition against its resolved value, binding params."""
    if condition.value is False:
        return value is None

    if not condition.value:
        if value:
            params[condition.param_name] = value
            return True
        return False

    if not value or condition.regex is None:
        return False

    found = condition.regex.search(value)
    if found is None:
        return False

    if found.re.groupindex:
        params.update(
            {name: group for name, group in found.groupdict().items() if group is not None}
        )
    elif condition.type is ConditionType.HOST and found.group(0):
        params["host"] = found.group(0)
    return True


def match_has(
    request: RequestView,
    has: Iterable[HasCondition],
    query: Mapping[str, QueryValue] | None = None,
) -> HasMatch:
    """Evaluate guard conditions against a request.

    Args:
        request: The request being routed.
        has: Conditions that must all match.
        query: Query mapping to inspect. Defaults to ``request.query``;
            pass the upstream-rewritten query when it differs.

    Returns:
        HasMatch with the bound params, or NOT_MATCHED if any condition
        failed. An empty condition list always matches with no params.
    """
    if query is None:
        query = request.query

    params: Params = {}
    for condition in has:
        value = _resolve_value(request, condition, query)
        if not _evaluate(condition, value, params):
            logger.debug(
                "Guard condition not matched",
                condition_type=condition.type.value,
                key=condition.key,
            )
            return NOT_MATCHED

    return HasMatch(matched=True, params=params)
