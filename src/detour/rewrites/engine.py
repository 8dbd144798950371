"""Detour Rule Engine.

Evaluates redirect, rewrite and header rules against requests. A rule
applies when its source pattern matches the request path and all of its
guard conditions match; its destination is then resolved with the
captured params.

Rules are evaluated in the order they were added.

Example:
    engine = RuleEngine()
    engine.add_rule(RewriteRule(
        name="blog",
        kind=RuleKind.REWRITE,
        source="/blog/:slug",
        destination="/news/:slug",
    ))

    request = create_request_view("/blog/hello?page=2")
    result = engine.match(request)

    if result:
        # result.url == "/news/hello?page=2"
        pass
"""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

import structlog

from detour.rewrites.conditions import HasCondition, Params, match_has
from detour.rewrites.destination import (
    PreparedDestination,
    compile_non_path_value,
    prepare_destination,
)
from detour.rewrites.request import RequestView
from detour.routing.pattern import PathMatch, match_path, parse
from detour.routing.url import parse_url

logger = structlog.get_logger()


class RuleKind(Enum):
    """What a rule does once it applies."""

    REDIRECT = "redirect"
    REWRITE = "rewrite"
    HEADER = "header"


@dataclass
class HeaderDirective:
    """A response header set by a header rule.

    Both key and value may reference params as ``:name``.
    """

    key: str
    value: str

    def to_dict(self) -> dict[str, str]:
        return {"key": self.key, "value": self.value}


@dataclass
class RewriteRule:
    """A routing rule: source pattern, guards and destination.

    ``append_params_to_query`` defaults to True for rewrites and False for
    redirects, so a rewrite carries params the destination path does not
    use through to the destination query.
    """

    source: str
    """Path pattern matched against the request path, e.g. ``/blog/:slug``."""

    destination: str = ""
    """Destination template, e.g. ``/news/:slug?from=blog``. Unused by header rules."""

    kind: RuleKind = RuleKind.REWRITE
    """Redirect, rewrite or header rule."""

    has: list[HasCondition] = field(default_factory=list)
    """Guard conditions that must all match."""

    headers: list[HeaderDirective] = field(default_factory=list)
    """Headers a header rule sets."""

    name: str = ""
    """Optional unique name."""

    enabled: bool = True
    """Whether this rule is active."""

    append_params_to_query: bool | None = None
    """Carry captured params into the destination query."""

    strict: bool = True
    """Require an exact trailing-slash match on the source."""

    description: str = ""
    """Optional description of the rule's purpose."""

    _matcher: Callable[[str], PathMatch | None] | None = field(
        default=None, init=False, repr=False, compare=False
    )

    def __post_init__(self) -> None:
        if not isinstance(self.kind, RuleKind):
            self.kind = RuleKind(self.kind)
        if self.kind is not RuleKind.HEADER and not self.destination:
            raise ValueError(f"{self.kind.value} rule requires 'destination' field")
        if self.kind is RuleKind.HEADER and not self.headers:
            raise ValueError("header rule requires 'headers' list")
        if self.kind is not RuleKind.HEADER:
            # raises ValueError or PatternError for unusable templates
            destination = parse_url(self.destination)
            parse(f"{destination.pathname}{destination.hash}")
        if self.append_params_to_query is None:
            self.append_params_to_query = self.kind is RuleKind.REWRITE
        self._matcher = match_path(self.source, strict=self.strict, sensitive=False, delimiter="/")

    def match_source(self, path: str) -> Params | None:
        """Match the request path against the source pattern.

        Returns:
            Named params captured by the source, or None if it doesn't match.
            Unnamed groups such as ``(.*)`` are not returned.
        """
        if self._matcher is None:
            self._matcher = match_path(self.source, strict=self.strict, sensitive=False, delimiter="/")
        result = self._matcher(path)
        if result is None:
            return None
        return {name: value for name, value in result.params.items() if isinstance(name, str)}

    def to_dict(self) -> dict[str, Any]:
        """Convert rule to dictionary for serialization."""
        return {
            "name": self.name,
            "kind": self.kind.value,
            "source": self.source,
            "destination": self.destination,
            "has": [condition.to_dict() for condition in self.has],
            "headers": [header.to_dict() for header in self.headers],
            "enabled": self.enabled,
            "append_params_to_query": self.append_params_to_query,
            "strict": self.strict,
            "description": self.description,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> RewriteRule:
        """Create a rule from its dictionary representation."""
        return cls(
            source=data["source"],
            destination=data.get("destination", ""),
            kind=RuleKind(data.get("kind", "rewrite")),
            has=[HasCondition.from_dict(c) for c in data.get("has", [])],
            headers=[HeaderDirective(**h) for h in data.get("headers", [])],
            name=data.get("name", ""),
            enabled=data.get("enabled", True),
            append_params_to_query=data.get("append_params_to_query"),
            strict=data.get("strict", True),
            description=data.get("description", ""),
        )


@dataclass
class RuleMatch:
    """A rule that applied to a request, with its resolved output."""

    rule: RewriteRule
    params: Params
    destination: PreparedDestination | None = None
    headers: dict[str, str] = field(default_factory=dict)

    @property
    def url(self) -> str | None:
        """Full destination URL including the merged query, if any."""
        if self.destination is None:
            return None
        return self.destination.resolved_destination.to_url()

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "rule": self.rule.name,
            "kind": self.rule.kind.value,
            "params": dict(self.params),
            "url": self.url,
        }
        if self.destination is not None:
            data["new_url"] = self.destination.new_url
            data["destination"] = self.destination.resolved_destination.to_dict()
        if self.headers:
            data["headers"] = dict(self.headers)
        return data


def apply_rule(rule: RewriteRule, request: RequestView) -> RuleMatch | None:
    """Evaluate a single rule against a request.

    Returns:
        RuleMatch if the rule applies, None otherwise.

    Raises:
        InvalidMultiMatchError: If the destination uses a repeated param
            without ``*``.
        PatternError: If the destination cannot be compiled.
    """
    if not rule.enabled:
        return None

    params = rule.match_source(request.path)
    if params is None:
        return None

    if rule.has:
        has_match = match_has(request, rule.has, request.query)
        if not has_match:
            return None
        params.update(has_match.params)

    if rule.kind is RuleKind.HEADER:
        headers = {
            compile_non_path_value(header.key, params): compile_non_path_value(header.value, params)
            for header in rule.headers
        }
        logger.debug("Header rule matched", rule=rule.name, source=rule.source)
        return RuleMatch(rule=rule, params=params, headers=headers)

    prepared = prepare_destination(
        rule.destination,
        params,
        request.query,
        bool(rule.append_params_to_query),
    )
    logger.debug(
        "Rule matched",
        rule=rule.name,
        kind=rule.kind.value,
        source=rule.source,
        new_url=prepared.new_url,
    )
    return RuleMatch(rule=rule, params=params, destination=prepared)


class RuleEngine:
    """Ordered collection of rules matched against requests.

    Holds no per-request state; concurrent calls to match() are safe as
    long as rules are not added or removed at the same time.
    """

    def __init__(self, rules: list[RewriteRule] | None = None) -> None:
        """Initialize the engine with optional rules."""
        self._rules: list[RewriteRule] = []
        for rule in rules or []:
            self.add_rule(rule)

    def add_rule(self, rule: RewriteRule) -> None:
        """Append a rule.

        Raises:
            ValueError: If a named rule with the same name already exists.
        """
        if rule.name:
            for existing in self._rules:
                if existing.name == rule.name:
                    raise ValueError(f"Rule with name '{rule.name}' already exists")
        self._rules.append(rule)

    def remove_rule(self, name: str) -> bool:
        """Remove a rule by name. Returns True if it was found."""
        for i, rule in enumerate(self._rules):
            if rule.name == name:
                del self._rules[i]
                return True
        return False

    def get_rule(self, name: str) -> RewriteRule | None:
        """Get a rule by name."""
        for rule in self._rules:
            if rule.name == name:
                return rule
        return None

    def list_rules(self, kind: RuleKind | None = None) -> list[RewriteRule]:
        """List rules in evaluation order, optionally of one kind."""
        return [rule for rule in self._rules if kind is None or rule.kind is kind]

    def clear(self) -> None:
        """Remove all rules from the engine."""
        self._rules.clear()

    def match(self, request: RequestView, kind: RuleKind | None = None) -> RuleMatch | None:
        """Find the first rule that applies to a request.

        Args:
            request: The request to route.
            kind: Only consider rules of this kind.

        Returns:
            RuleMatch for the first applying rule, None if no rule applies.
        """
        for rule in self.list_rules(kind):
            result = apply_rule(rule, request)
            if result is not None:
                return result
        return None

    def match_all(self, request: RequestView, kind: RuleKind | None = None) -> list[RuleMatch]:
        """Return every rule that applies to a request, in order.

        Header rules are typically evaluated this way since all matching
        header rules contribute headers.
        """
        matches = []
        for rule in self.list_rules(kind):
            result = apply_rule(rule, request)
            if result is not None:
                matches.append(result)
        return matches

    def to_dict(self) -> dict[str, Any]:
        """Export engine configuration to dictionary."""
        return {"rules": [rule.to_dict() for rule in self._rules]}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> RuleEngine:
        """Create engine from dictionary configuration."""
        return cls([RewriteRule.from_dict(rule_data) for rule_data in data.get("rules", [])])

    def __len__(self) -> int:
        return len(self._rules)

    def __bool__(self) -> bool:
        return bool(self._rules)
