"""Rule-based derivation of presented object keys.

Rules are tried in descending priority; the first rule whose scope and
pattern match renders the key. A rule whose pattern or template cannot be
compiled, or whose template fails for an entry, counts as not matching.
"""

import re
from collections.abc import Iterable
from dataclasses import dataclass
from functools import reduce
from typing import Any, Union

from starfish_gateway.exceptions import TemplateError
from starfish_gateway.models import Entry
from starfish_gateway.observability import get_logger
from starfish_gateway.rewrite.context import build_context
from starfish_gateway.rewrite.functions import default_functions
from starfish_gateway.rewrite.rules import RewriteRule, RewriteRuleSet
from starfish_gateway.rewrite.template import FunctionTable, Template, compile_template

logger = get_logger(__name__)


@dataclass(frozen=True)
class Matched:
    """A rule matched and produced a key."""

    key: str


@dataclass(frozen=True)
class NoMatch:
    """No rule has matched yet."""


MatchResult = Union[Matched, NoMatch]


def clean_output(rendered: str) -> str:
    """Strip surrounding whitespace and a single leading slash."""
    result = rendered.strip()
    if result.startswith("/"):
        result = result[1:]
    return result


@dataclass(frozen=True)
class CompiledRule:
    """A rule with its pattern and template compiled.

    `pattern` or `template` is None when compilation failed; such a rule
    never matches.
    """

    rule: RewriteRule
    pattern: re.Pattern[str] | None
    template: Template | None

    @classmethod
    def compile(cls, rule: RewriteRule, functions: FunctionTable) -> "CompiledRule":
        pattern: re.Pattern[str] | None = None
        template: Template | None = None
        try:
            pattern = re.compile(rule.pattern)
        except re.error as e:
            logger.warning(
                "Skipping rewrite rule with invalid pattern",
                context={"scope": rule.scope, "pattern": rule.pattern, "reason": str(e)},
            )
        try:
            template = compile_template(rule.template, functions)
        except TemplateError as e:
            logger.warning(
                "Skipping rewrite rule with invalid template",
                context={"scope": rule.scope, "template": rule.template, "reason": str(e)},
            )
        return cls(rule=rule, pattern=pattern, template=template)

    @property
    def usable(self) -> bool:
        return self.pattern is not None and self.template is not None

    def apply(self, context: dict[str, Any], original_key: str) -> MatchResult:
        if self.pattern is None or self.template is None:
            return NoMatch()
        if not self.pattern.search(original_key):
            return NoMatch()
        try:
            return Matched(clean_output(self.template.render(context)))
        except TemplateError as e:
            logger.debug(
                "Rewrite template failed, trying next rule",
                context={"scope": self.rule.scope, "key": original_key, "reason": str(e)},
            )
            return NoMatch()


class PathRewriter:
    """Applies prioritized rewrite rules to derive presented keys.

    Example:
        rewriter = PathRewriter(load_rules("rules.json"))
        key = rewriter.rewrite(entry, "projects/a/report.pdf", "Archive")
    """

    def __init__(
        self,
        rules: RewriteRuleSet | Iterable[RewriteRule] | None = None,
        functions: FunctionTable | None = None,
    ) -> None:
        """Initialize rewriter.

        Args:
            rules: Rule set or rules; None or empty disables rewriting
            functions: Template function table (defaults to the full library)
        """
        if isinstance(rules, RewriteRuleSet):
            rules = rules.rules
        self.functions = functions or default_functions()
        # sorted() is stable, so equal priorities keep configuration order
        ordered = sorted(rules or [], key=lambda rule: rule.priority, reverse=True)
        self._rules = [CompiledRule.compile(rule, self.functions) for rule in ordered]

    @property
    def rules(self) -> list[RewriteRule]:
        """Rules in evaluation order."""
        return [compiled.rule for compiled in self._rules]

    def rewrite(self, entry: Entry, original_key: str, scope: str) -> str:
        """Derive the presented key for an entry.

        Returns `original_key` unchanged when no rule matches.
        """
        candidates = [c for c in self._rules if c.rule.applies_to(scope)]
        if not candidates:
            return original_key

        context = build_context(entry, original_key)

        def step(result: MatchResult, compiled: CompiledRule) -> MatchResult:
            if isinstance(result, Matched):
                return result
            return compiled.apply(context, original_key)

        result = reduce(step, candidates, NoMatch())
        if isinstance(result, Matched):
            return result.key
        return original_key
