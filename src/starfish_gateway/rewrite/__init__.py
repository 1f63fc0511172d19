"""Path rewrite engine."""

from starfish_gateway.rewrite.engine import Matched, NoMatch, PathRewriter
from starfish_gateway.rewrite.functions import default_functions, format_size
from starfish_gateway.rewrite.rules import (
    WILDCARD_SCOPE,
    RewriteRule,
    RewriteRuleSet,
    default_rules,
    load_rules,
    save_rules,
)
from starfish_gateway.rewrite.template import FunctionTable, Template, compile_template

__all__ = [
    "FunctionTable",
    "Matched",
    "NoMatch",
    "PathRewriter",
    "RewriteRule",
    "RewriteRuleSet",
    "Template",
    "WILDCARD_SCOPE",
    "compile_template",
    "default_functions",
    "default_rules",
    "format_size",
    "load_rules",
    "save_rules",
]
