"""Validation module for verifying schedule correctness."""

from brokershift.validation.validator import (
    RuleViolation,
    ScheduleValidator,
    Severity,
    ValidationResult,
    ViolationRule,
)

__all__ = [
    "RuleViolation",
    "ScheduleValidator",
    "Severity",
    "ValidationResult",
    "ViolationRule",
]
