"""Detour Rewrites Module.

Matches redirect, rewrite and header rules against requests and resolves
their destinations.

Features:
- Source path patterns with named, optional and repeated params
- Guard conditions on headers, cookies, query parameters and host
- Param interpolation into destination paths, query values and headers
- Query merging with request < captured params < destination priority
- YAML/TOML rule files

Usage:
    from detour.rewrites import RewriteRule, RuleEngine, RuleKind, create_request_view

    engine = RuleEngine()
    engine.add_rule(RewriteRule(
        kind=RuleKind.REDIRECT,
        source="/blog/:slug",
        destination="/news/:slug",
    ))

    result = engine.match(create_request_view("/blog/hello"))
    if result:
        print(f"Redirect to: {result.url}")

Configuration:
    rules:
      - kind: redirect
        source: /blog/:slug
        destination: /news/:slug
"""

from detour.rewrites.conditions import (
    NOT_MATCHED,
    ConditionType,
    HasCondition,
    HasMatch,
    match_has,
)
from detour.rewrites.config import (
    HasConditionConfig,
    HeaderConfig,
    RuleConfig,
    RulesConfig,
    load_rules,
)
from detour.rewrites.destination import (
    PreparedDestination,
    ResolvedDestination,
    compile_non_path_value,
    prepare_destination,
)
from detour.rewrites.engine import (
    HeaderDirective,
    RewriteRule,
    RuleEngine,
    RuleKind,
    RuleMatch,
    apply_rule,
)
from detour.rewrites.params import get_safe_param_name
from detour.rewrites.request import RequestView, create_request_view, parse_cookies

__all__ = [
    # Engine
    "RuleEngine",
    "RewriteRule",
    "RuleKind",
    "RuleMatch",
    "HeaderDirective",
    "apply_rule",
    # Conditions
    "ConditionType",
    "HasCondition",
    "HasMatch",
    "NOT_MATCHED",
    "match_has",
    "get_safe_param_name",
    # Destinations
    "PreparedDestination",
    "ResolvedDestination",
    "compile_non_path_value",
    "prepare_destination",
    # Requests
    "RequestView",
    "create_request_view",
    "parse_cookies",
    # Configuration
    "HasConditionConfig",
    "HeaderConfig",
    "RuleConfig",
    "RulesConfig",
    "load_rules",
]
