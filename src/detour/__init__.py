"""Detour - request routing rules for redirects, rewrites and headers."""

from detour.errors import DetourError, InvalidMultiMatchError, PatternError, RuleConfigError
from detour.rewrites import (
    ConditionType,
    HasCondition,
    RequestView,
    RewriteRule,
    RuleEngine,
    RuleKind,
    compile_non_path_value,
    create_request_view,
    get_safe_param_name,
    match_has,
    prepare_destination,
)

__version__ = "0.1.0"

__all__ = [
    "ConditionType",
    "DetourError",
    "HasCondition",
    "InvalidMultiMatchError",
    "PatternError",
    "RequestView",
    "RewriteRule",
    "RuleConfigError",
    "RuleEngine",
    "RuleKind",
    "__version__",
    "compile_non_path_value",
    "create_request_view",
    "get_safe_param_name",
    "match_has",
    "prepare_destination",
]
