"""Rental engine error taxonomy.

Every failure the engine reports on purpose derives from RentalError and
carries a stable ``code`` that routers and result objects expose to callers.
Anything that is not a RentalError is an unexpected fault.
"""

from __future__ import annotations

from typing import Any


class RentalError(Exception):
    """Base class for expected rental engine failures."""

    code = "rental_error"

    def __init__(self, message: str, **details: Any):
        super().__init__(message)
        self.message = message
        self.details = details


class NotFound(RentalError):
    """Unknown rental, film, inventory copy or customer."""

    code = "not_found"


class NoAvailableCopy(RentalError):
    """Every copy of the requested film is held by an active rental."""

    code = "no_available_copy"


class InvalidTransition(RentalError, ValueError):
    """A guard rejected the transition, or a concurrent request won the race."""

    code = "invalid_transition"


class PaymentMismatch(RentalError):
    """Offered payment does not cover the recorded rental amount."""

    code = "payment_mismatch"


class PaymentDeclined(RentalError):
    """The payment provider did not confirm the charge."""

    code = "payment_declined"


class DataIntegrityAnomaly(RentalError):
    """A persisted row breaks a ledger invariant and needs repair.

    Raised internally when a transient ``processing`` status, an unknown
    status string or a zero/null amount is met. Callers repair and retry;
    it is never shown to end users.
    """

    code = "data_integrity_anomaly"


class InvalidRequest(RentalError):
    """Request parameters fail a business rule (for example a due date in the past)."""

    code = "invalid_request"
