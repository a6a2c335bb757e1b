"""Built-in quality gate rules.

A rule receives the (optionally filtered) test results, the expected value
from the ruleset, the known issues and a per-rule state, and returns a dict
with ``success``, ``actual`` and ``expected``.
"""

from __future__ import annotations

from collections.abc import Callable, Sequence
from dataclasses import dataclass
from typing import Any

from reportcore.model.results import TestResult


class QualityGateRuleState:
    """View of the shared quality gate state bound to one rule key."""

    def __init__(self, storage: dict[str, Any], key: str) -> None:
        self._storage = storage
        self.key = key

    def get_result(self) -> Any:
        return self._storage.get(self.key)

    def set_result(self, value: Any) -> None:
        self._storage[self.key] = value


@dataclass(frozen=True)
class QualityGateRule:
    """A named rule with its validation and failure message functions."""

    rule: str
    message: Callable[..., str]
    validate: Callable[..., dict[str, Any]]


def _known_history_ids(known_issues: Sequence[dict[str, Any]]) -> set[str]:
    return {issue["historyId"] for issue in known_issues if issue.get("historyId")}


def _without_known(
    test_results: Sequence[TestResult], known_issues: Sequence[dict[str, Any]],
) -> list[TestResult]:
    known_ids = _known_history_ids(known_issues)
    return [
        tr for tr in test_results
        if not tr.known and not (tr.history_id and tr.history_id in known_ids)
    ]


def _validate_max_failures(
    test_results: Sequence[TestResult],
    expected: int,
    known_issues: Sequence[dict[str, Any]] = (),
    state: QualityGateRuleState | None = None,
) -> dict[str, Any]:
    failures = [
        tr for tr in _without_known(test_results, known_issues)
        if tr.status in ("failed", "broken")
    ]
    actual = len(failures)
    if state is not None:
        state.set_result(actual)
    return {"success": actual <= expected, "actual": actual, "expected": expected}


def _validate_min_tests_count(
    test_results: Sequence[TestResult],
    expected: int,
    known_issues: Sequence[dict[str, Any]] = (),
    state: QualityGateRuleState | None = None,
) -> dict[str, Any]:
    actual = len(test_results)
    if state is not None:
        state.set_result(actual)
    return {"success": actual >= expected, "actual": actual, "expected": expected}


def _validate_success_rate(
    test_results: Sequence[TestResult],
    expected: float,
    known_issues: Sequence[dict[str, Any]] = (),
    state: QualityGateRuleState | None = None,
) -> dict[str, Any]:
    considered = _without_known(test_results, known_issues)
    passed = sum(1 for tr in considered if tr.status == "passed")
    actual = passed / len(considered) if considered else 1.0
    return {"success": actual >= expected, "actual": actual, "expected": expected}


def _validate_max_duration(
    test_results: Sequence[TestResult],
    expected: int,
    known_issues: Sequence[dict[str, Any]] = (),
    state: QualityGateRuleState | None = None,
) -> dict[str, Any]:
    # Known issues are not excluded here.
    actual = max((tr.duration or 0 for tr in test_results), default=0)
    return {"success": actual <= expected, "actual": actual, "expected": expected}


max_failures_rule = QualityGateRule(
    rule="maxFailures",
    message=lambda actual, expected: (
        f"Maximum number of failed tests {actual} is more, than expected {expected}"
    ),
    validate=_validate_max_failures,
)

min_tests_count_rule = QualityGateRule(
    rule="minTestsCount",
    message=lambda actual, expected: (
        f"Minimum number of tests {actual} is less, than expected {expected}"
    ),
    validate=_validate_min_tests_count,
)

success_rate_rule = QualityGateRule(
    rule="successRate",
    message=lambda actual, expected: (
        f"Success rate {actual} is less, than expected {expected}"
    ),
    validate=_validate_success_rate,
)

max_duration_rule = QualityGateRule(
    rule="maxDuration",
    message=lambda actual, expected: (
        f"Maximum duration of some tests {actual} is more, than expected {expected}"
    ),
    validate=_validate_max_duration,
)

DEFAULT_RULES: tuple[QualityGateRule, ...] = (
    max_failures_rule,
    min_tests_count_rule,
    success_rate_rule,
    max_duration_rule,
)
