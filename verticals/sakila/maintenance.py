"""Ledger repair passes.

Two invariants are enforced continuously rather than by one-off scripts:
a rental never rests in the transient ``processing`` status, and a rental
never carries a zero or NULL amount. Both passes are idempotent and run at
startup and before customer/staff reads.
"""

import logging

from sqlalchemy.ext.asyncio import AsyncSession

from patterns.domain_config import RentalConfig
from verticals.sakila.models.schemas import RepairReport
from verticals.sakila.pricing import PricingResolver
from verticals.sakila.repository import RentalRepository

logger = logging.getLogger(__name__)


class LedgerMaintenance:
    def __init__(self, session: AsyncSession, config: RentalConfig | None = None):
        self.config = config or RentalConfig.default()
        self.rentals = RentalRepository(session)
        self.pricing = PricingResolver(session, self.config.pricing)

    async def recover_processing(self) -> int:
        """Normalise transient and missing statuses. Returns rows changed."""
        counts = await self.rentals.normalize_statuses()
        total = sum(counts.values())
        if total:
            logger.warning("Normalised %d rental statuses: %s", total, counts)
        return total

    async def run(self) -> RepairReport:
        """Run both repair passes and report what changed."""
        report = RepairReport(
            normalized_statuses=await self.recover_processing(),
            repaired_amounts=await self.pricing.repair_zero_amounts(),
        )
        await self.rentals.session.flush()
        return report

    async def run_if_enabled(self, on: str) -> RepairReport | None:
        """Run when the maintenance flag for ``on`` ("startup" or "read") is set."""
        enabled = {
            "startup": self.config.maintenance.repair_on_startup,
            "read": self.config.maintenance.repair_on_read,
        }[on]
        if not enabled:
            return None
        return await self.run()
