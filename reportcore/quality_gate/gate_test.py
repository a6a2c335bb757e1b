"""Unit tests for quality gate evaluation."""

from __future__ import annotations

import pytest

from reportcore.errors import QualityGateRuleError
from reportcore.model.results import Label, TestResult
from reportcore.quality_gate.gate import (
    QualityGate,
    QualityGateState,
    convert_quality_gate_results_to_test_errors,
    stringify_quality_gate_results,
    validate_rulesets,
)
from reportcore.quality_gate.rules import QualityGateRule


def _tr(tr_id: str, status: str, suite: str = "core") -> TestResult:
    return TestResult(id=tr_id, name=tr_id, status=status, labels=[Label("suite", suite)])


RESULTS = [
    _tr("1", "passed"),
    _tr("2", "failed"),
    _tr("3", "failed", suite="ui"),
]


class TestQualityGate:
    """Tests for QualityGate.validate."""

    def test_passing_gate(self):
        outcome = QualityGate([{"maxFailures": 5, "minTestsCount": 1}]).validate(RESULTS)
        assert outcome.passed
        assert outcome.results == []
        assert not outcome.fast_failed

    def test_failed_rules_collected(self):
        outcome = QualityGate([{"maxFailures": 0, "minTestsCount": 10}]).validate(RESULTS)
        assert [r.rule for r in outcome.results] == ["maxFailures", "minTestsCount"]
        first = outcome.results[0]
        assert first.success is False
        assert first.actual == 2
        assert first.expected == 0
        assert first.message == "Maximum number of failed tests 2 is more, than expected 0"

    def test_ruleset_id_prefixes_rule(self):
        outcome = QualityGate([{"id": "smoke", "maxFailures": 0}]).validate(RESULTS)
        assert outcome.results[0].rule == "smoke/maxFailures"

    def test_fast_fail_stops_everything(self):
        gate = QualityGate([
            {"maxFailures": 0, "minTestsCount": 10, "fast_fail": True},
            {"maxFailures": 0},
        ])
        outcome = gate.validate(RESULTS)
        assert outcome.fast_failed
        assert [r.rule for r in outcome.results] == ["maxFailures"]

    def test_filter_selects_results(self):
        gate = QualityGate([{"id": "ui", "maxFailures": 0, "filter": lambda tr: tr.labels[0].value == "ui"}])
        outcome = gate.validate(RESULTS)
        assert outcome.results[0].actual == 1

    def test_known_issues_forwarded(self):
        outcome = QualityGate([{"maxFailures": 0}]).validate(
            [TestResult(id="1", name="a", status="failed", history_id="h")],
            known_issues=[{"historyId": "h"}],
        )
        assert outcome.passed

    def test_unknown_rule(self):
        with pytest.raises(QualityGateRuleError, match='Rule foo is not provided'):
            QualityGate([{"foo": 1}])

    def test_unknown_rule_in_later_ruleset(self):
        with pytest.raises(QualityGateRuleError, match="maxFailurez"):
            validate_rulesets([{"id": "ok", "maxFailures": 0}, {"maxFailurez": 0}])

    def test_ruleset_options_are_not_rules(self):
        validate_rulesets([{"id": "a", "fast_fail": True, "filter": None, "minTestsCount": 1}])

    def test_custom_rules_replace_defaults(self):
        always_fail = QualityGateRule(
            rule="never",
            message=lambda actual, expected: f"got {actual}",
            validate=lambda test_results, expected, known_issues=(), state=None: {
                "success": False, "actual": len(test_results), "expected": expected,
            },
        )
        gate = QualityGate([{"never": True}], use=[always_fail])
        assert gate.validate(RESULTS).results[0].message == "got 3"
        with pytest.raises(QualityGateRuleError):
            QualityGate([{"maxFailures": 0}], use=[always_fail])

    def test_state_shared_between_validations(self):
        state = QualityGateState()
        gate = QualityGate([{"id": "a", "maxFailures": 5}])
        gate.validate(RESULTS, state=state)
        assert state.get_result("a/maxFailures") == 2
        state.set_result("a/maxFailures", 0)
        assert state.for_rule("a/maxFailures").get_result() == 0


class TestFormatting:
    """Tests for result formatting helpers."""

    def test_stringify(self):
        outcome = QualityGate([{"maxFailures": 0, "minTestsCount": 10}]).validate(RESULTS)
        text = stringify_quality_gate_results(outcome.results)
        assert text.startswith("Quality Gate failed with following issues:")
        assert "[maxFailures]" in text
        assert text.endswith("2 quality gate rules have been failed.")

    def test_stringify_empty(self):
        assert stringify_quality_gate_results([]) == ""

    def test_test_errors(self):
        outcome = QualityGate([{"maxFailures": 0}]).validate(RESULTS)
        assert convert_quality_gate_results_to_test_errors(outcome.results) == [{
            "message": "Quality Gate (maxFailures): "
                       "Maximum number of failed tests 2 is more, than expected 0",
            "actual": 2,
            "expected": 0,
        }]
