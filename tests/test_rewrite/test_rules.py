"""Tests for rewrite rule loading."""

import json

import pytest
import yaml

from starfish_gateway.exceptions import ConfigError
from starfish_gateway.rewrite.rules import (
    RewriteRule,
    RewriteRuleSet,
    default_rules,
    load_rules,
    save_rules,
)


def rule_doc(**overrides) -> dict:
    rule = {"bucket": "*", "pattern": "^(.*)$", "template": "{{ filename }}", "priority": 100}
    rule.update(overrides)
    return rule


class TestRewriteRule:
    """Tests for RewriteRule."""

    def test_bucket_alias(self) -> None:
        rule = RewriteRule.model_validate(rule_doc(bucket="Archive"))
        assert rule.scope == "Archive"

    def test_priority_defaults_to_zero(self) -> None:
        doc = rule_doc()
        del doc["priority"]
        assert RewriteRule.model_validate(doc).priority == 0

    def test_applies_to(self) -> None:
        assert RewriteRule(scope="*", pattern=".", template="x").applies_to("Anything")
        archive = RewriteRule(scope="Archive", pattern=".", template="x")
        assert archive.applies_to("Archive")
        assert not archive.applies_to("Other")


class TestRewriteRuleSet:
    """Tests for RewriteRuleSet.from_dict."""

    def test_valid_document(self) -> None:
        rule_set = RewriteRuleSet.from_dict({"rules": [rule_doc(), rule_doc(bucket="Archive")]})
        assert [r.scope for r in rule_set.rules] == ["*", "Archive"]

    def test_empty_rules(self) -> None:
        assert RewriteRuleSet.from_dict({}).rules == []

    @pytest.mark.parametrize(
        "bad_rule",
        [
            rule_doc(bucket=""),
            rule_doc(pattern=""),
            rule_doc(template=""),
            rule_doc(priority=-1),
        ],
    )
    def test_invalid_rule_fails_whole_load(self, bad_rule: dict) -> None:
        with pytest.raises(ConfigError, match="rule 1"):
            RewriteRuleSet.from_dict({"rules": [rule_doc(), bad_rule]})

    def test_missing_field(self) -> None:
        doc = rule_doc()
        del doc["template"]
        with pytest.raises(ConfigError, match="template"):
            RewriteRuleSet.from_dict({"rules": [doc]})

    def test_rules_must_be_list(self) -> None:
        with pytest.raises(ConfigError):
            RewriteRuleSet.from_dict({"rules": {"bucket": "*"}})

    def test_document_must_be_object(self) -> None:
        with pytest.raises(ConfigError):
            RewriteRuleSet.from_dict([rule_doc()])


class TestLoadRules:
    """Tests for load_rules and save_rules."""

    def test_no_path_disables_rewriting(self) -> None:
        assert load_rules(None) is None
        assert load_rules("") is None

    def test_missing_file(self, tmp_path) -> None:
        with pytest.raises(ConfigError, match="not found"):
            load_rules(tmp_path / "missing.json")

    def test_invalid_json(self, tmp_path) -> None:
        path = tmp_path / "rules.json"
        path.write_text("{not json")
        with pytest.raises(ConfigError, match="parse"):
            load_rules(path)

    def test_load_json(self, tmp_path) -> None:
        path = tmp_path / "rules.json"
        path.write_text(json.dumps({"rules": [rule_doc(bucket="Archive", priority=200)]}))
        rule_set = load_rules(path)
        assert rule_set is not None
        assert rule_set.rules[0].scope == "Archive"
        assert rule_set.rules[0].priority == 200

    def test_load_yaml(self, tmp_path) -> None:
        path = tmp_path / "rules.yaml"
        path.write_text(yaml.dump({"rules": [rule_doc()]}))
        rule_set = load_rules(path)
        assert rule_set is not None
        assert len(rule_set.rules) == 1

    def test_save_then_load(self, tmp_path) -> None:
        path = tmp_path / "nested" / "rules.json"
        save_rules(default_rules(), path)

        raw = json.loads(path.read_text())
        assert raw["rules"][0]["bucket"] == "*"
        assert load_rules(path) == default_rules()


class TestDefaultRules:
    """Tests for the example rule set."""

    def test_priorities(self) -> None:
        rules = default_rules().rules
        assert {(r.scope, r.priority) for r in rules} == {
            ("*", 100),
            ("Archive", 200),
            ("Tagged-Data", 300),
        }
