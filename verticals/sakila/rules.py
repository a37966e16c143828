"""Sakila rental guard rules — pure functions.

Re-exports the rules engine pattern for the rental vertical.
"""

from patterns.rules_engine import (
    RuleResult,
    RuleSetResult,
    check_amount_recorded,
    check_copy_availability,
    check_due_date,
    check_ownership,
    check_payment_covers,
    evaluate_rules,
)

__all__ = [
    "RuleResult",
    "RuleSetResult",
    "check_amount_recorded",
    "check_copy_availability",
    "check_due_date",
    "check_ownership",
    "check_payment_covers",
    "evaluate_rules",
]
