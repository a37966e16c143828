"""Pure-function rules engine for rental guards.

Rules are stateless functions: (entity, context) -> RuleResult.
No database, no side effects. The coordinator gathers the facts it needs,
evaluates the rules, and turns a failed rule into the matching domain error.
"""

from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal
from typing import Any


# ---------------------------------------------------------------------------
# Result types
# ---------------------------------------------------------------------------

@dataclass
class RuleResult:
    """Outcome of a single rule evaluation."""

    passed: bool
    rule_name: str
    message: str
    details: dict[str, Any] = field(default_factory=dict)


@dataclass
class RuleSetResult:
    """Aggregate outcome of multiple rules."""

    all_passed: bool
    results: list[RuleResult]
    failed: list[RuleResult] = field(default_factory=list)

    def __post_init__(self):
        self.failed = [r for r in self.results if not r.passed]
        self.all_passed = len(self.failed) == 0

    @property
    def first_failure(self) -> RuleResult | None:
        return self.failed[0] if self.failed else None


# ---------------------------------------------------------------------------
# Rental rules
# ---------------------------------------------------------------------------

def check_copy_availability(available_count: int) -> RuleResult:
    """A rental can only be created while at least one copy is free."""
    passed = available_count > 0
    return RuleResult(
        passed=passed,
        rule_name="copy_availability",
        message=(
            f"{available_count} copies available"
            if passed
            else "No copy of this film is available"
        ),
        details={"available": available_count},
    )


def check_amount_recorded(amount: Decimal | None) -> RuleResult:
    """The rental must carry a positive amount before it can be paid."""
    passed = amount is not None and amount > 0
    return RuleResult(
        passed=passed,
        rule_name="amount_recorded",
        message="Amount recorded" if passed else "Rental has no amount recorded",
        details={"amount": amount},
    )


def check_payment_covers(recorded: Decimal, offered: Decimal) -> RuleResult:
    """Payment must match or exceed the recorded amount.

    Both values are compared at cent precision.
    """
    recorded_c = recorded.quantize(Decimal("0.01"))
    offered_c = offered.quantize(Decimal("0.01"))
    passed = offered_c >= recorded_c
    return RuleResult(
        passed=passed,
        rule_name="payment_covers",
        message=(
            "Payment accepted"
            if passed
            else f"Payment of {offered_c} does not cover the amount due of {recorded_c}"
        ),
        details={"recorded": recorded_c, "offered": offered_c},
    )


def check_ownership(rental_customer_id: int, customer_id: int | None) -> RuleResult:
    """When acting for a customer, the rental must be theirs.

    Staff calls pass ``customer_id=None`` and always pass this rule.
    """
    passed = customer_id is None or int(rental_customer_id) == int(customer_id)
    return RuleResult(
        passed=passed,
        rule_name="ownership",
        message="Rental belongs to caller" if passed else "Rental not found for this customer",
        details={"rental_customer_id": rental_customer_id, "customer_id": customer_id},
    )


def check_due_date(new_due: date, today: date) -> RuleResult:
    """A due date set by staff cannot lie in the past."""
    passed = new_due >= today
    return RuleResult(
        passed=passed,
        rule_name="due_date_not_past",
        message="Due date accepted" if passed else "Due date cannot be in the past",
        details={"due_date": new_due.isoformat(), "today": today.isoformat()},
    )


# ---------------------------------------------------------------------------
# Rule composition
# ---------------------------------------------------------------------------

def evaluate_rules(*rules: RuleResult) -> RuleSetResult:
    """Compose multiple rule results into a single aggregate.

    Example::

        result = evaluate_rules(
            check_ownership(rental.customer_id, customer_id),
            check_payment_covers(rental.amount, offered),
        )
        if not result.all_passed:
            raise PaymentMismatch(result.first_failure.message)
    """
    return RuleSetResult(
        all_passed=all(r.passed for r in rules),
        results=list(rules),
    )
