"""Read models for the customer and staff screens.

Each read runs the ledger repair passes first (when enabled) so callers
never see a transient status or a missing amount.
"""

from datetime import datetime
from typing import Any

from fastapi import Depends
from sqlalchemy.ext.asyncio import AsyncSession

from core.database import get_session
from core.errors import DataIntegrityAnomaly, NotFound
from patterns.domain_config import RentalConfig
from patterns.workflow_states import RentalStatus, allowed_events, parse_status
from verticals.sakila.clock import as_utc, utcnow
from verticals.sakila.config import config as default_config
from verticals.sakila.maintenance import LedgerMaintenance
from verticals.sakila.models.schemas import CustomerRentalsResponse, RentalStats
from verticals.sakila.repository import CustomerRepository, RentalRepository

_OVERDUE_STATUSES = {RentalStatus.PAID, RentalStatus.RENTED}


def present_rental(row: dict[str, Any], now: datetime | None = None) -> dict[str, Any]:
    """Shape a joined rental row for JSON, with label, actions and lateness."""
    now = now or utcnow()
    due_date = as_utc(row.get("due_date"))
    return_date = as_utc(row.get("return_date"))

    try:
        status = parse_status(row.get("status"), row.get("rental_id"))
    except DataIntegrityAnomaly:
        status = None

    days_overdue = 0
    if status in _OVERDUE_STATUSES and return_date is None and due_date and now > due_date:
        days_overdue = (now - due_date).days

    out = {
        key: value
        for key, value in row.items()
        if key not in ("rental_date", "due_date", "return_date", "amount", "rental_rate")
    }
    out.update({
        "rental_date": as_utc(row.get("rental_date")).isoformat() if row.get("rental_date") else None,
        "due_date": due_date.isoformat() if due_date else None,
        "return_date": return_date.isoformat() if return_date else None,
        "amount": float(row["amount"]) if row.get("amount") is not None else None,
        "rental_rate": float(row["rental_rate"]) if row.get("rental_rate") is not None else None,
        "status_label": status.label if status else row.get("status"),
        "actions": [e.value for e in allowed_events(status)] if status else [],
        "days_overdue": days_overdue,
    })
    return out


class RentalReadService:
    def __init__(self, session: AsyncSession, config: RentalConfig | None = None):
        self.config = config or default_config
        self.rentals = RentalRepository(session)
        self.customers = CustomerRepository(session)
        self.maintenance = LedgerMaintenance(session, self.config)

    async def customer_rentals(self, customer_id: int) -> CustomerRentalsResponse:
        """All rentals of one customer plus per-status counts and totals."""
        await self.maintenance.run_if_enabled("read")
        now = utcnow()
        rows = await self.rentals.for_customer(customer_id)
        raw = await self.rentals.customer_stats(customer_id)

        stats = RentalStats(
            total_rentals=raw["total_rentals"],
            paid_amount=raw["paid_amount"],
            completed_amount=raw["completed_amount"],
            total_spent=raw["total_spent"],
        )
        for status, count in raw["counts"].items():
            if status in RentalStats.model_fields:
                setattr(stats, status, count)

        return CustomerRentalsResponse(
            rentals=[present_rental(row, now) for row in rows],
            stats=stats,
        )

    async def staff_rentals(
        self,
        status: RentalStatus | None = None,
        page: int = 1,
        limit: int = 20,
    ) -> dict[str, Any]:
        await self.maintenance.run_if_enabled("read")
        now = utcnow()
        rows, total = await self.rentals.search(
            status=status.value if status else None, page=page, limit=limit
        )
        return {
            "data": [present_rental(row, now) for row in rows],
            "pagination": {
                "page": page,
                "limit": limit,
                "total": total,
                "total_pages": (total + limit - 1) // limit,
            },
        }

    async def overdue_rentals(self) -> list[dict[str, Any]]:
        now = utcnow()
        return [present_rental(row, now) for row in await self.rentals.overdue(now)]

    async def rental_detail(self, rental_id: int) -> dict[str, Any]:
        await self.maintenance.run_if_enabled("read")
        row = await self.rentals.detail(rental_id)
        if row is None:
            raise NotFound(f"Rental {rental_id} not found", rental_id=rental_id)
        return present_rental(row)

    async def customer_summary(self, customer_id: int) -> dict[str, Any]:
        customer = await self.customers.get(customer_id)
        if customer is None:
            raise NotFound(f"Customer {customer_id} not found", customer_id=customer_id)
        return {**customer.to_dict(), **await self.customers.summary(customer_id)}


def get_read_service(
    session: AsyncSession = Depends(get_session),
) -> RentalReadService:
    """FastAPI dependency for RentalReadService."""
    return RentalReadService(session)
