"""Quality gate: declarative rules evaluated against the final results."""

from reportcore.quality_gate.gate import (
    QualityGate,
    QualityGateResult,
    QualityGateState,
    QualityGateValidationResult,
    convert_quality_gate_results_to_test_errors,
    stringify_quality_gate_results,
    validate_rulesets,
)
from reportcore.quality_gate.rules import (
    DEFAULT_RULES,
    QualityGateRule,
    QualityGateRuleState,
    max_duration_rule,
    max_failures_rule,
    min_tests_count_rule,
    success_rate_rule,
)

__all__ = [
    "DEFAULT_RULES",
    "QualityGate",
    "QualityGateResult",
    "QualityGateRule",
    "QualityGateRuleState",
    "QualityGateState",
    "QualityGateValidationResult",
    "convert_quality_gate_results_to_test_errors",
    "max_duration_rule",
    "max_failures_rule",
    "min_tests_count_rule",
    "stringify_quality_gate_results",
    "success_rate_rule",
    "validate_rulesets",
]
