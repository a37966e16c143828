"""SQLAlchemy models for the sakila rental vertical.

Only the tables the rental engine touches are mapped. Each model exposes
to_dict(), the serialisation interface used by repositories and routers.
Money columns are Numeric and surface as Decimal; to_dict() turns them into
floats for JSON.
"""

from datetime import datetime
from decimal import Decimal

from sqlalchemy import Boolean, DateTime, ForeignKey, Integer, Numeric, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from core.models.base import AuditMixin, Base


def _iso(value: datetime | None) -> str | None:
    return value.isoformat() if value else None


def _money(value: Decimal | None) -> float | None:
    return float(value) if value is not None else None


class Film(AuditMixin, Base):
    """A film title with its canonical rental price."""

    __tablename__ = "film"

    film_id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    title: Mapped[str] = mapped_column(String(255), nullable=False, index=True)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    rental_duration: Mapped[int] = mapped_column(Integer, nullable=False, default=3)
    rental_rate: Mapped[Decimal] = mapped_column(Numeric(4, 2), nullable=False, default=Decimal("4.99"))

    def to_dict(self) -> dict:
        return {
            "film_id": self.film_id,
            "title": self.title,
            "description": self.description,
            "rental_duration": self.rental_duration,
            "rental_rate": _money(self.rental_rate),
        }


class Inventory(AuditMixin, Base):
    """One physical copy of a film held by a store."""

    __tablename__ = "inventory"

    inventory_id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    film_id: Mapped[int] = mapped_column(Integer, ForeignKey("film.film_id"), nullable=False, index=True)
    store_id: Mapped[int] = mapped_column(Integer, nullable=False, default=1, index=True)

    def to_dict(self) -> dict:
        return {
            "inventory_id": self.inventory_id,
            "film_id": self.film_id,
            "store_id": self.store_id,
        }


class Customer(AuditMixin, Base):
    """A renter. The engine only reads customers."""

    __tablename__ = "customer"

    customer_id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    store_id: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    first_name: Mapped[str] = mapped_column(String(45), nullable=False)
    last_name: Mapped[str] = mapped_column(String(45), nullable=False)
    email: Mapped[str | None] = mapped_column(String(50), nullable=True)
    active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    def to_dict(self) -> dict:
        return {
            "customer_id": self.customer_id,
            "store_id": self.store_id,
            "first_name": self.first_name,
            "last_name": self.last_name,
            "email": self.email,
            "active": self.active,
        }


class Rental(AuditMixin, Base):
    """An entry in the rental ledger.

    ``status`` is stored as plain text so legacy values (``processing``,
    NULL) can be read and repaired; the engine only ever writes values of
    patterns.workflow_states.RentalStatus.
    """

    __tablename__ = "rental"

    rental_id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    rental_date: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    inventory_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("inventory.inventory_id"), nullable=False, index=True
    )
    customer_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("customer.customer_id"), nullable=False, index=True
    )
    staff_id: Mapped[int | None] = mapped_column(Integer, nullable=True)
    due_date: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    return_date: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    amount: Mapped[Decimal | None] = mapped_column(Numeric(5, 2), nullable=True)
    status: Mapped[str | None] = mapped_column(String(20), nullable=True, index=True, default="pending")

    def to_dict(self) -> dict:
        return {
            "rental_id": self.rental_id,
            "rental_date": _iso(self.rental_date),
            "inventory_id": self.inventory_id,
            "customer_id": self.customer_id,
            "staff_id": self.staff_id,
            "due_date": _iso(self.due_date),
            "return_date": _iso(self.return_date),
            "amount": _money(self.amount),
            "status": self.status,
        }
