"""Detour Rule Configuration Models.

Provides configuration models for defining rules in YAML/TOML files.

Example YAML configuration:
    rules:
      - name: old-blog
        kind: redirect
        source: /blog/:slug
        destination: /news/:slug

      - name: beta-docs
        kind: rewrite
        source: /docs/:path*
        destination: /beta/docs/:path*
        has:
          - type: cookie
            key: beta
            value: "(?<channel>on|canary)"

      - name: tenant-header
        kind: header
        source: /(.*)
        has:
          - type: host
            value: "(?<tenant>[^.]+)\\.example\\.com"
        headers:
          - key: x-tenant
            value: ":tenant"
"""

from __future__ import annotations

from pathlib import Path
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, ValidationError, model_validator

from detour.core.config import DetourSettings, get_settings, load_config_from_file
from detour.errors import PatternError, RuleConfigError
from detour.rewrites.conditions import ConditionType, HasCondition
from detour.rewrites.engine import HeaderDirective, RewriteRule, RuleEngine, RuleKind


class HasConditionConfig(BaseModel):
    """Configuration for a single guard condition."""

    model_config = ConfigDict(extra="forbid")

    type: ConditionType = Field(description="Request facet: header, cookie, query or host.")
    key: str | None = Field(
        default=None,
        description="Header, cookie or query parameter name. Not used by host conditions.",
    )
    value: str | Literal[False] | None = Field(
        default=None,
        description="Regex the value must match, false if it must be absent, omitted for presence.",
    )

    @model_validator(mode="after")
    def _require_key(self) -> HasConditionConfig:
        if self.type is not ConditionType.HOST and not self.key:
            raise ValueError(f"{self.type.value} condition requires 'key' field")
        return self

    def to_condition(self) -> HasCondition:
        """Convert to a HasCondition instance."""
        return HasCondition(type=self.type, key=self.key, value=self.value)


class HeaderConfig(BaseModel):
    """Configuration for a header set by a header rule."""

    model_config = ConfigDict(extra="forbid")

    key: str
    value: str


class RuleConfig(BaseModel):
    """Configuration for a single rule."""

    model_config = ConfigDict(extra="forbid")

    source: str = Field(description="Path pattern matched against the request path.")
    destination: str = Field(default="", description="Destination template.")
    kind: RuleKind = Field(default=RuleKind.REWRITE, description="redirect, rewrite or header.")
    name: str = ""
    description: str = ""
    enabled: bool = True
    has: list[HasConditionConfig] = Field(default_factory=list)
    headers: list[HeaderConfig] = Field(default_factory=list)
    append_params_to_query: bool | None = Field(
        default=None,
        description="Carry captured params into the destination query. Rewrites only by default.",
    )

    @model_validator(mode="after")
    def _check_kind(self) -> RuleConfig:
        if self.kind is not RuleKind.HEADER and not self.destination:
            raise ValueError(f"{self.kind.value} rule requires 'destination' field")
        if self.kind is RuleKind.HEADER and not self.headers:
            raise ValueError("header rule requires 'headers' list")
        return self

    def to_rule(self, settings: DetourSettings | None = None) -> RewriteRule:
        """Convert configuration to a RewriteRule instance.

        Args:
            settings: Supplies defaults for options the rule leaves unset.

        Raises:
            RuleConfigError: If a condition pattern or the source is invalid.
        """
        settings = settings or get_settings()

        append = self.append_params_to_query
        if append is None:
            append = self.kind is RuleKind.REWRITE and settings.append_params_to_query

        try:
            return RewriteRule(
                source=self.source,
                destination=self.destination,
                kind=self.kind,
                has=[condition.to_condition() for condition in self.has],
                headers=[HeaderDirective(key=h.key, value=h.value) for h in self.headers],
                name=self.name,
                enabled=self.enabled,
                append_params_to_query=append,
                strict=settings.strict_source_match,
                description=self.description,
            )
        except (ValueError, PatternError) as e:
            label = self.name or self.source
            raise RuleConfigError(f"Invalid rule '{label}': {e}") from e


class RulesConfig(BaseModel):
    """Top-level rules configuration."""

    model_config = ConfigDict(extra="forbid")

    rules: list[RuleConfig] = Field(default_factory=list)

    def to_engine(self, settings: DetourSettings | None = None) -> RuleEngine:
        """Create and configure a RuleEngine from this config.

        Raises:
            RuleConfigError: If a rule is invalid or names are duplicated.
        """
        engine = RuleEngine()
        for rule_config in self.rules:
            rule = rule_config.to_rule(settings)
            try:
                engine.add_rule(rule)
            except ValueError as e:
                raise RuleConfigError(str(e)) from e
        return engine

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> RulesConfig:
        """Create configuration from dictionary.

        Args:
            data: Configuration dictionary (from YAML/TOML).

        Raises:
            RuleConfigError: If the data does not describe valid rules.
        """
        try:
            return cls.model_validate(data)
        except ValidationError as e:
            raise RuleConfigError(f"Invalid rules configuration: {e}") from e

    @classmethod
    def from_file(cls, path: str | Path) -> RulesConfig:
        """Load configuration from a YAML or TOML file.

        Raises:
            FileNotFoundError: If the file doesn't exist.
            RuleConfigError: If the file cannot be parsed or is invalid.
        """
        try:
            data = load_config_from_file(path)
        except ValueError as e:
            raise RuleConfigError(str(e)) from e
        return cls.from_dict(data)

    def to_dict(self) -> dict[str, Any]:
        """Convert configuration to dictionary."""
        return self.model_dump(mode="json", exclude_defaults=True)


def load_rules(path: str | Path, settings: DetourSettings | None = None) -> RuleEngine:
    """Load a rules file and build a RuleEngine from it."""
    return RulesConfig.from_file(path).to_engine(settings)
