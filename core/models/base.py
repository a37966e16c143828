"""Base model and mixins for all SQLAlchemy models.

Provides:
- Base: Declarative base class for all models
- AuditMixin: Adds the last_update timestamp every table in the rental
  schema carries

Primary keys are plain integers declared per model, matching the sakila
schema the storefront runs against.
"""

from datetime import datetime

from sqlalchemy import DateTime, func
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


class Base(DeclarativeBase):
    """Declarative base for all storefront models."""
    pass


class AuditMixin:
    """Mixin providing the standard audit column.

    Adds:
    - last_update: Timestamp set on insert and refreshed on every change
    """

    last_update: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        onupdate=func.now(),
        nullable=False,
    )
