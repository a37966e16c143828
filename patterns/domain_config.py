"""Dataclass-based domain configuration.

The rental engine's thresholds and feature flags live in frozen
dataclasses: typed, defaulted, immutable, and overridable from the
environment with a ``SAKILA_`` prefix.
"""

import os
from dataclasses import dataclass, field
from decimal import Decimal


# ---------------------------------------------------------------------------
# Nested config sections
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class PricingConfig:
    """Currency and rounding for rental amounts."""

    currency: str = "EUR"
    amount_quantum: Decimal = Decimal("0.01")


@dataclass(frozen=True)
class LendingConfig:
    """Rental period rules."""

    default_rental_duration_days: int = 3
    extension_days: int = 7
    # paid -> rented is an explicit staff hand-over unless this is set
    hand_over_on_payment: bool = False


@dataclass(frozen=True)
class MaintenanceConfig:
    """When the ledger repair passes run."""

    repair_on_startup: bool = True
    repair_on_read: bool = True


# ---------------------------------------------------------------------------
# Top-level domain config
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class RentalConfig:
    """Complete configuration for the rental engine.

    Usage::

        config = RentalConfig.from_env()
        due = now + timedelta(days=config.lending.extension_days)
    """

    pricing: PricingConfig = field(default_factory=PricingConfig)
    lending: LendingConfig = field(default_factory=LendingConfig)
    maintenance: MaintenanceConfig = field(default_factory=MaintenanceConfig)

    idempotency_ttl_seconds: int = 3600

    @classmethod
    def default(cls) -> "RentalConfig":
        """Create config with all defaults."""
        return cls()

    @classmethod
    def from_env(cls, prefix: str = "SAKILA_") -> "RentalConfig":
        """Create config from environment variables.

        Example: SAKILA_EXTENSION_DAYS=14, SAKILA_HAND_OVER_ON_PAYMENT=true
        """
        def _flag(name: str, default: bool) -> bool:
            raw = os.getenv(f"{prefix}{name}")
            if raw is None:
                return default
            return raw.strip().lower() in {"1", "true", "yes", "on"}

        def _int(name: str, default: int) -> int:
            raw = os.getenv(f"{prefix}{name}")
            return int(raw) if raw else default

        lending = LendingConfig(
            default_rental_duration_days=_int(
                "DEFAULT_RENTAL_DURATION_DAYS", LendingConfig.default_rental_duration_days
            ),
            extension_days=_int("EXTENSION_DAYS", LendingConfig.extension_days),
            hand_over_on_payment=_flag("HAND_OVER_ON_PAYMENT", LendingConfig.hand_over_on_payment),
        )
        maintenance = MaintenanceConfig(
            repair_on_startup=_flag("REPAIR_ON_STARTUP", MaintenanceConfig.repair_on_startup),
            repair_on_read=_flag("REPAIR_ON_READ", MaintenanceConfig.repair_on_read),
        )
        pricing = PricingConfig(currency=os.getenv(f"{prefix}CURRENCY", PricingConfig.currency))

        return cls(
            pricing=pricing,
            lending=lending,
            maintenance=maintenance,
            idempotency_ttl_seconds=_int("IDEMPOTENCY_TTL_SECONDS", cls.idempotency_ttl_seconds),
        )
