"""Pydantic schemas for API request/response validation."""

from datetime import date
from decimal import Decimal
from typing import Any, Optional

from pydantic import BaseModel, Field

from patterns.workflow_states import RentalStatus


# ---------------------------------------------------------------------------
# Request models
# ---------------------------------------------------------------------------

class CustomerRentalCreate(BaseModel):
    film_id: int = Field(..., ge=1)
    store_id: Optional[int] = Field(None, ge=1)


class StaffRentalCreate(BaseModel):
    customer_id: int = Field(..., ge=1)
    film_id: int = Field(..., ge=1)
    store_id: Optional[int] = Field(None, ge=1)


class PaymentRequest(BaseModel):
    amount: Decimal = Field(..., gt=0, max_digits=7, decimal_places=2)


class CheckinRequest(BaseModel):
    rental_id: int = Field(..., ge=1)


class StatusUpdate(BaseModel):
    status: RentalStatus


class DueDateUpdate(BaseModel):
    due_date: date
    reason: Optional[str] = Field(None, max_length=255)


# ---------------------------------------------------------------------------
# Response models
# ---------------------------------------------------------------------------

class ActionResult(BaseModel):
    """Outcome of a coordinator operation.

    ``error`` holds the RentalError code when ``success`` is False.
    """

    success: bool
    message: Optional[str] = None
    error: Optional[str] = None
    rental: Optional[dict[str, Any]] = None

    @classmethod
    def ok(cls, message: str, rental: dict[str, Any] | None = None) -> "ActionResult":
        return cls(success=True, message=message, rental=rental)

    @classmethod
    def failed(cls, message: str, error: str) -> "ActionResult":
        return cls(success=False, message=message, error=error)


class RentalStats(BaseModel):
    pending: int = 0
    paid: int = 0
    rented: int = 0
    returned: int = 0
    cancelled: int = 0
    total_rentals: int = 0
    paid_amount: float = 0.0
    completed_amount: float = 0.0
    total_spent: float = 0.0


class CustomerRentalsResponse(BaseModel):
    success: bool = True
    rentals: list[dict[str, Any]]
    stats: RentalStats


class AvailabilityResponse(BaseModel):
    film_id: int
    store_id: Optional[int] = None
    total_copies: int
    available_count: int
    available_inventory_ids: list[int]


class RepairReport(BaseModel):
    normalized_statuses: int = 0
    repaired_amounts: int = 0

    @property
    def total(self) -> int:
        return self.normalized_statuses + self.repaired_amounts
