"""Sakila repositories — async database access for the rental engine.

Extends BaseRepository with the queries the rental engine needs: copy
occupancy, status-guarded single-row updates, ledger repair statements and
the joined read models used by the customer and staff screens.
"""

from datetime import datetime
from typing import Any, Iterable

from sqlalchemy import and_, case, func, or_, select, update

from patterns.repository import BaseRepository
from patterns.workflow_states import OCCUPYING_STATUSES, RentalStatus
from verticals.sakila.models.db_models import Customer, Film, Inventory, Rental

_OCCUPYING_VALUES = [s.value for s in OCCUPYING_STATUSES]
_KNOWN_STATUSES = [s.value for s in RentalStatus]


def _occupies_copy():
    """SQL predicate: the rental keeps its inventory copy out of stock.

    A missing status with no return date is read as pending.
    """
    return and_(
        Rental.return_date.is_(None),
        or_(Rental.status.in_(_OCCUPYING_VALUES), Rental.status.is_(None)),
    )


def _film_rate():
    """Correlated scalar: rental rate of the film behind the rental's copy."""
    return (
        select(Film.rental_rate)
        .join(Inventory, Inventory.film_id == Film.film_id)
        .where(Inventory.inventory_id == Rental.inventory_id)
        .scalar_subquery()
    )


def _missing_amount():
    return or_(Rental.amount == 0, Rental.amount.is_(None))


def _rental_columns():
    return (
        Rental.rental_id,
        Rental.rental_date,
        Rental.due_date,
        Rental.return_date,
        Rental.status,
        Rental.amount,
        Rental.customer_id,
        Rental.inventory_id,
        Rental.staff_id,
        Film.film_id,
        Film.title.label("film_title"),
        Film.rental_rate,
        Film.rental_duration,
    )


# ---------------------------------------------------------------------------
# Film repository
# ---------------------------------------------------------------------------

class FilmRepository(BaseRepository[Film]):
    """Film lookups."""

    model = Film
    id_column = "film_id"

    async def for_inventory(self, inventory_id: int) -> Film | None:
        stmt = (
            select(Film)
            .join(Inventory, Inventory.film_id == Film.film_id)
            .where(Inventory.inventory_id == inventory_id)
        )
        return (await self.session.execute(stmt)).scalar_one_or_none()


# ---------------------------------------------------------------------------
# Inventory repository
# ---------------------------------------------------------------------------

class InventoryRepository(BaseRepository[Inventory]):
    """Physical copies and their occupancy."""

    model = Inventory
    id_column = "inventory_id"

    async def copy_ids(self, film_id: int, store_id: int | None = None) -> list[int]:
        stmt = select(Inventory.inventory_id).where(Inventory.film_id == film_id)
        if store_id is not None:
            stmt = stmt.where(Inventory.store_id == store_id)
        result = await self.session.execute(stmt.order_by(Inventory.inventory_id))
        return list(result.scalars().all())

    async def occupied_ids(self, inventory_ids: Iterable[int]) -> set[int]:
        ids = list(inventory_ids)
        if not ids:
            return set()
        stmt = (
            select(Rental.inventory_id)
            .where(Rental.inventory_id.in_(ids), _occupies_copy())
            .distinct()
        )
        result = await self.session.execute(stmt)
        return set(result.scalars().all())

    async def lock_copy(self, inventory_id: int) -> Inventory | None:
        """Lock the inventory row for the rest of the transaction.

        SQLite ignores FOR UPDATE; its writer lock serialises instead.
        """
        stmt = (
            select(Inventory)
            .where(Inventory.inventory_id == inventory_id)
            .with_for_update()
        )
        return (await self.session.execute(stmt)).scalar_one_or_none()


# ---------------------------------------------------------------------------
# Customer repository
# ---------------------------------------------------------------------------

class CustomerRepository(BaseRepository[Customer]):
    """Customer reads and rental aggregates."""

    model = Customer
    id_column = "customer_id"

    async def summary(self, customer_id: int) -> dict[str, Any]:
        """Total rentals and total spent, excluding cancelled rentals from spend."""
        spent = func.sum(
            case(
                (Rental.status == RentalStatus.CANCELLED.value, 0),
                else_=func.coalesce(Rental.amount, 0),
            )
        )
        stmt = select(func.count(Rental.rental_id), spent).where(Rental.customer_id == customer_id)
        total_rentals, total_spent = (await self.session.execute(stmt)).one()
        return {
            "total_rentals": int(total_rentals or 0),
            "total_spent": float(total_spent or 0),
        }


# ---------------------------------------------------------------------------
# Rental repository
# ---------------------------------------------------------------------------

class RentalRepository(BaseRepository[Rental]):
    """The rental ledger."""

    model = Rental
    id_column = "rental_id"

    # -- Guarded writes --

    async def guarded_update(
        self,
        rental_id: int,
        expected_status: str,
        values: dict[str, Any],
    ) -> bool:
        """Apply ``values`` only if the row still has ``expected_status``.

        Returns False when no row matched, i.e. another request changed the
        rental first (or it does not exist).
        """
        stmt = (
            update(Rental)
            .where(Rental.rental_id == rental_id, Rental.status == expected_status)
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        result = await self.session.execute(stmt)
        return result.rowcount == 1

    # -- Ledger repair --

    async def normalize_statuses(self) -> dict[str, int]:
        """Rewrite transient, missing or unknown statuses to their resting value.

        Returns the row count per rule.
        """
        rules = {
            "processing_to_pending": (
                and_(Rental.status == RentalStatus.PROCESSING.value, Rental.return_date.is_(None)),
                RentalStatus.PENDING,
            ),
            "processing_to_returned": (
                and_(Rental.status == RentalStatus.PROCESSING.value, Rental.return_date.is_not(None)),
                RentalStatus.RETURNED,
            ),
            "missing_to_pending": (
                and_(Rental.status.is_(None), Rental.return_date.is_(None)),
                RentalStatus.PENDING,
            ),
            "missing_to_returned": (
                and_(Rental.status.is_(None), Rental.return_date.is_not(None)),
                RentalStatus.RETURNED,
            ),
            "unknown_to_pending": (
                and_(Rental.status.not_in(_KNOWN_STATUSES), Rental.return_date.is_(None)),
                RentalStatus.PENDING,
            ),
            "unknown_to_returned": (
                and_(Rental.status.not_in(_KNOWN_STATUSES), Rental.return_date.is_not(None)),
                RentalStatus.RETURNED,
            ),
        }
        counts: dict[str, int] = {}
        for name, (predicate, target) in rules.items():
            stmt = (
                update(Rental)
                .where(predicate)
                .values(status=target.value)
                .execution_options(synchronize_session=False)
            )
            result = await self.session.execute(stmt)
            counts[name] = result.rowcount or 0
        return counts

    async def repair_zero_amounts(self) -> int:
        """Set amount to the film rate wherever it is zero or NULL and the rate is positive."""
        film_rate = _film_rate()
        stmt = (
            update(Rental)
            .where(_missing_amount(), film_rate > 0)
            .values(amount=film_rate)
            .execution_options(synchronize_session=False)
        )
        result = await self.session.execute(stmt)
        return result.rowcount or 0

    async def count_unrepairable_amounts(self) -> int:
        """Rows with a zero or NULL amount whose film has no positive rate."""
        film_rate = _film_rate()
        stmt = select(func.count(Rental.rental_id)).where(
            _missing_amount(), or_(film_rate.is_(None), film_rate <= 0)
        )
        return (await self.session.execute(stmt)).scalar_one()

    # -- Read models --

    async def for_customer(self, customer_id: int) -> list[dict[str, Any]]:
        stmt = (
            select(*_rental_columns())
            .join(Inventory, Inventory.inventory_id == Rental.inventory_id)
            .join(Film, Film.film_id == Inventory.film_id)
            .where(Rental.customer_id == customer_id)
            .order_by(Rental.rental_date.desc(), Rental.rental_id.desc())
        )
        result = await self.session.execute(stmt)
        return [dict(row._mapping) for row in result.all()]

    async def detail(self, rental_id: int) -> dict[str, Any] | None:
        stmt = (
            select(
                *_rental_columns(),
                Customer.first_name,
                Customer.last_name,
                Customer.email,
            )
            .join(Inventory, Inventory.inventory_id == Rental.inventory_id)
            .join(Film, Film.film_id == Inventory.film_id)
            .join(Customer, Customer.customer_id == Rental.customer_id)
            .where(Rental.rental_id == rental_id)
        )
        row = (await self.session.execute(stmt)).first()
        return dict(row._mapping) if row else None

    async def search(
        self,
        status: str | None = None,
        page: int = 1,
        limit: int = 20,
    ) -> tuple[list[dict[str, Any]], int]:
        """Staff listing, newest first, with an optional status filter."""
        stmt = (
            select(*_rental_columns(), Customer.first_name, Customer.last_name)
            .join(Inventory, Inventory.inventory_id == Rental.inventory_id)
            .join(Film, Film.film_id == Inventory.film_id)
            .join(Customer, Customer.customer_id == Rental.customer_id)
        )
        count_stmt = select(func.count()).select_from(Rental)
        if status:
            stmt = stmt.where(Rental.status == status)
            count_stmt = count_stmt.where(Rental.status == status)

        offset = (page - 1) * limit
        stmt = stmt.order_by(Rental.rental_date.desc(), Rental.rental_id.desc()).offset(offset).limit(limit)

        rows = [dict(row._mapping) for row in (await self.session.execute(stmt)).all()]
        total = (await self.session.execute(count_stmt)).scalar() or 0
        return rows, total

    async def overdue(self, now: datetime) -> list[dict[str, Any]]:
        """Active rentals whose due date has passed."""
        active = [RentalStatus.PAID.value, RentalStatus.RENTED.value]
        stmt = (
            select(*_rental_columns(), Customer.first_name, Customer.last_name)
            .join(Inventory, Inventory.inventory_id == Rental.inventory_id)
            .join(Film, Film.film_id == Inventory.film_id)
            .join(Customer, Customer.customer_id == Rental.customer_id)
            .where(
                Rental.status.in_(active),
                Rental.return_date.is_(None),
                Rental.due_date.is_not(None),
                Rental.due_date < now,
            )
            .order_by(Rental.due_date)
        )
        return [dict(row._mapping) for row in (await self.session.execute(stmt)).all()]

    async def customer_stats(self, customer_id: int) -> dict[str, Any]:
        """Per-status counts and money totals for one customer."""
        amount = func.coalesce(Rental.amount, 0)
        by_status = (
            select(Rental.status, func.count(Rental.rental_id))
            .where(Rental.customer_id == customer_id)
            .group_by(Rental.status)
        )
        counts = {status: count for status, count in (await self.session.execute(by_status)).all()}

        paid_like = [RentalStatus.PAID.value, RentalStatus.RENTED.value]
        totals = select(
            func.sum(case((Rental.status.in_(paid_like), amount), else_=0)),
            func.sum(case((Rental.status == RentalStatus.RETURNED.value, amount), else_=0)),
            func.sum(case((Rental.status == RentalStatus.CANCELLED.value, 0), else_=amount)),
        ).where(Rental.customer_id == customer_id)
        paid_amount, completed_amount, total_spent = (await self.session.execute(totals)).one()

        return {
            "counts": counts,
            "total_rentals": sum(counts.values()),
            "paid_amount": float(paid_amount or 0),
            "completed_amount": float(completed_amount or 0),
            "total_spent": float(total_spent or 0),
        }

