"""Path rewrite rule configuration.

A rule set is a JSON (or YAML) document with a single ``rules`` array::

    {"rules": [{"bucket": "*", "pattern": "^(.*)$",
                "template": "{{ modify_date }}/{{ filename }}", "priority": 100}]}

Rules are loaded once at startup and never mutated afterwards.
"""

import json
from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from starfish_gateway.config import read_document
from starfish_gateway.exceptions import ConfigError

WILDCARD_SCOPE = "*"


class RewriteRule(BaseModel):
    """One prioritized (scope, pattern, template) rule."""

    model_config = ConfigDict(populate_by_name=True, frozen=True)

    scope: str = Field(alias="bucket")  # "*" for all buckets
    pattern: str  # Regex searched in the original key
    template: str
    priority: int = 0  # Higher applies first

    @field_validator("scope", "pattern", "template")
    @classmethod
    def _not_empty(cls, value: str) -> str:
        if not value:
            raise ValueError("cannot be empty")
        return value

    @field_validator("priority")
    @classmethod
    def _not_negative(cls, value: int) -> int:
        if value < 0:
            raise ValueError("cannot be negative")
        return value

    def applies_to(self, scope: str) -> bool:
        return self.scope == WILDCARD_SCOPE or self.scope == scope


class RewriteRuleSet(BaseModel):
    """Ordered collection of rewrite rules."""

    rules: list[RewriteRule] = Field(default_factory=list)

    @classmethod
    def from_dict(cls, data: Any) -> "RewriteRuleSet":
        """Validate a rule-set document.

        Raises:
            ConfigError: If the document or any rule is invalid
        """
        if not isinstance(data, dict):
            raise ConfigError("Rule set must be an object with a 'rules' array")
        raw_rules = data.get("rules", [])
        if not isinstance(raw_rules, list):
            raise ConfigError("'rules' must be an array")

        rules = []
        for i, raw in enumerate(raw_rules):
            try:
                rules.append(RewriteRule.model_validate(raw))
            except ValidationError as e:
                problems = "; ".join(
                    f"{'.'.join(str(p) for p in err['loc']) or 'rule'}: {err['msg']}"
                    for err in e.errors()
                )
                raise ConfigError(f"rule {i}: {problems}") from e
        return cls(rules=rules)


def load_rules(path: str | Path | None) -> RewriteRuleSet | None:
    """Load a rule set from disk.

    Args:
        path: Rule file; None or empty disables rewriting

    Returns:
        The validated rule set, or None when no path is configured

    Raises:
        ConfigError: If the file is missing, unparsable or has an invalid rule
    """
    if not path:
        return None
    path = Path(path)
    if not path.exists():
        raise ConfigError(f"Path rewrite configuration file not found: {path}")
    try:
        data = read_document(path)
    except (OSError, ValueError, yaml.YAMLError) as e:
        raise ConfigError(f"Failed to parse path rewrite configuration: {e}") from e
    return RewriteRuleSet.from_dict(data)


def save_rules(rule_set: RewriteRuleSet, path: str | Path) -> None:
    """Write a rule set as pretty-printed JSON, creating parent directories."""
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps(rule_set.model_dump(by_alias=True), indent=2) + "\n")


def default_rules() -> RewriteRuleSet:
    """Example rule set: date layout for all buckets, overrides per bucket."""
    return RewriteRuleSet(
        rules=[
            RewriteRule(
                scope=WILDCARD_SCOPE,
                pattern="^(.*)$",
                template="{{ modify_date }}/{{ filename }}",
                priority=100,
            ),
            RewriteRule(
                scope="Archive",
                pattern="^(.*)$",
                template='{{ format_unix(modify_time_unix, "%m/%d/%Y") }}/{{ filename }}',
                priority=200,
            ),
            RewriteRule(
                scope="Tagged-Data",
                pattern="^(.*)$",
                template='{{ join(tags_explicit, "/") }}/{{ filename }}',
                priority=300,
            ),
        ]
    )
