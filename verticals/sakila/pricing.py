"""Pricing resolver.

A rental's amount is the film's rental rate at creation time. Rows that
ended up with a zero or NULL amount are repaired from the rate of the film
behind their inventory copy. Rows whose film has no positive rate cannot be
repaired and are left as they are.
"""

import logging
from decimal import Decimal

from sqlalchemy.ext.asyncio import AsyncSession

from core.errors import DataIntegrityAnomaly, NotFound
from patterns.domain_config import PricingConfig
from verticals.sakila.models.db_models import Rental
from verticals.sakila.repository import FilmRepository, RentalRepository

logger = logging.getLogger(__name__)


class PricingResolver:
    def __init__(self, session: AsyncSession, config: PricingConfig | None = None):
        self.config = config or PricingConfig()
        self.films = FilmRepository(session)
        self.rentals = RentalRepository(session)

    def quantize(self, amount: Decimal) -> Decimal:
        return Decimal(amount).quantize(self.config.amount_quantum)

    async def resolve_amount(self, film_id: int) -> Decimal | None:
        """Current rental rate of ``film_id``, None when the film has none."""
        film = await self.films.get(film_id)
        if film is None:
            raise NotFound(f"Film {film_id} not found", film_id=film_id)
        if film.rental_rate is None:
            return None
        return self.quantize(film.rental_rate)

    async def repair_zero_amounts(self) -> int:
        """Backfill every zero/NULL amount from a positive film rate.

        Idempotent: repaired rows no longer match, and rows without a
        positive rate to copy are never touched, so a second run reports 0.
        """
        count = await self.rentals.repair_zero_amounts()
        if count:
            logger.warning("Repaired %d rental amounts from film rates", count)
        stuck = await self.rentals.count_unrepairable_amounts()
        if stuck:
            logger.error("%d rentals have no amount and no positive film rate to repair from", stuck)
        return count

    async def repair_amount(self, rental: Rental) -> Decimal:
        """Repair a single rental's amount in place and return it."""
        film = await self.films.for_inventory(rental.inventory_id)
        if film is None:
            raise NotFound(
                f"No film found for inventory copy {rental.inventory_id}",
                rental_id=rental.rental_id,
                inventory_id=rental.inventory_id,
            )
        rate = film.rental_rate
        if rate is None or rate <= 0:
            raise DataIntegrityAnomaly(
                f"Rental {rental.rental_id} has no amount and its film has no rental rate",
                rental_id=rental.rental_id,
                inventory_id=rental.inventory_id,
            )
        rental.amount = self.quantize(rate)
        await self.rentals.session.flush()
        logger.warning("Repaired amount of rental %s to %s", rental.rental_id, rental.amount)
        return rental.amount
