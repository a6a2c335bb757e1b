"""Quality gate evaluation.

A quality gate is a list of rulesets. Each ruleset maps rule names to
expected values and may carry:

- ``id``: prefixes reported rule names as ``<id>/<rule>``
- ``fast_fail``: stop evaluating everything after the first failure
- ``filter``: predicate selecting the results the ruleset looks at

Violations are returned as data, never raised.
"""

from __future__ import annotations

from collections.abc import Callable, Iterable, Sequence
from dataclasses import dataclass, field
from typing import Any

from reportcore.errors import QualityGateRuleError
from reportcore.model.results import TestResult
from reportcore.quality_gate.rules import DEFAULT_RULES, QualityGateRule, QualityGateRuleState


# Ruleset keys that configure the ruleset instead of naming a rule
RULESET_OPTIONS = frozenset({"id", "fast_fail", "fastFail", "filter"})


@dataclass
class QualityGateValidationResult:
    """One failed rule."""

    success: bool
    rule: str
    actual: Any
    expected: Any
    message: str

    def to_dict(self) -> dict[str, Any]:
        return {
            "success": self.success,
            "rule": self.rule,
            "actual": self.actual,
            "expected": self.expected,
            "message": self.message,
        }


@dataclass
class QualityGateResult:
    results: list[QualityGateValidationResult] = field(default_factory=list)
    fast_failed: bool = False

    @property
    def passed(self) -> bool:
        return not self.results


class QualityGateState:
    """Per-rule values kept between validations."""

    def __init__(self) -> None:
        self._results: dict[str, Any] = {}

    def get_result(self, rule: str) -> Any:
        return self._results.get(rule)

    def set_result(self, rule: str, value: Any) -> None:
        self._results[rule] = value

    def for_rule(self, rule: str) -> QualityGateRuleState:
        return QualityGateRuleState(self._results, rule)


class QualityGate:
    """Evaluates rulesets against the final results of a run.

    Args:
        rules: Rulesets, e.g. ``[{"maxFailures": 0, "fast_fail": True}]``.
        use: Rules available to the rulesets; defaults to the built-ins.

    Raises:
        QualityGateRuleError: If a ruleset names a rule not in ``use``.
    """

    def __init__(
        self,
        rules: Sequence[dict[str, Any]],
        use: Sequence[QualityGateRule] | None = None,
    ) -> None:
        self.rules = list(rules)
        self.use = list(use) if use is not None else list(DEFAULT_RULES)
        validate_rulesets(self.rules, self.use)

    def validate(
        self,
        test_results: Iterable[TestResult],
        known_issues: Sequence[dict[str, Any]] = (),
        state: QualityGateState | None = None,
    ) -> QualityGateResult:
        """Run every ruleset in order."""
        state = state or QualityGateState()
        all_results = list(test_results)
        outcome = QualityGateResult()

        for ruleset in self.rules:
            ruleset_id = ruleset.get("id")
            fast_fail = bool(ruleset.get("fast_fail") or ruleset.get("fastFail"))
            result_filter: Callable[[TestResult], bool] | None = ruleset.get("filter")
            selected = (
                [tr for tr in all_results if result_filter(tr)]
                if result_filter is not None
                else all_results
            )

            for key, expected in ruleset.items():
                if key in RULESET_OPTIONS:
                    continue

                rule = _find_rule(self.use, key)
                rule_name = f"{ruleset_id}/{key}" if ruleset_id else key
                validation = rule.validate(
                    test_results=selected,
                    expected=expected,
                    known_issues=known_issues,
                    state=state.for_rule(rule_name),
                )
                if validation.get("success"):
                    continue

                actual = validation.get("actual")
                expected_value = validation.get("expected", expected)
                outcome.results.append(QualityGateValidationResult(
                    success=False,
                    rule=rule_name,
                    actual=actual,
                    expected=expected_value,
                    message=rule.message(actual=actual, expected=expected_value),
                ))
                if fast_fail:
                    outcome.fast_failed = True
                    return outcome

        return outcome

def validate_rulesets(
    rulesets: Iterable[dict[str, Any]],
    use: Sequence[QualityGateRule] | None = None,
) -> None:
    """Check that every rule named by ``rulesets`` is available.

    Raises:
        QualityGateRuleError: If a ruleset names a rule not in ``use``
            (the built-in rules by default).
    """
    available = list(use) if use is not None else list(DEFAULT_RULES)
    for ruleset in rulesets:
        for key in ruleset:
            if key not in RULESET_OPTIONS:
                _find_rule(available, key)


def _find_rule(use: Iterable[QualityGateRule], name: str) -> QualityGateRule:
    for rule in use:
        if rule.rule == name:
            return rule
    raise QualityGateRuleError(
        f"Rule {name} is not provided. Make sure you have provided it "
        f'in the "use" field of the quality gate config!'
    )


def stringify_quality_gate_results(results: Sequence[QualityGateValidationResult]) -> str:
    """Render failed rules as a human readable block; empty for no failures."""
    if not results:
        return ""

    lines = ["Quality Gate failed with following issues:"]
    for result in results:
        lines.append(f"  [{result.rule}] {result.message}")
    lines.append("")
    lines.append(f"{len(results)} quality gate rules have been failed.")
    return "\n".join(lines)


def convert_quality_gate_results_to_test_errors(
    results: Sequence[QualityGateValidationResult],
) -> list[dict[str, Any]]:
    return [
        {
            "message": f"Quality Gate ({r.rule}): {r.message}",
            "actual": r.actual,
            "expected": r.expected,
        }
        for r in results
    ]
