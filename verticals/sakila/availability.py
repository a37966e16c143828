"""Inventory availability checker.

Availability is derived from the rental ledger on every call, never stored:
a copy is free unless a rental that still holds it (pending, paid, rented,
or an unrepaired processing row) has no return date.
"""

from dataclasses import dataclass, field

from sqlalchemy.ext.asyncio import AsyncSession

from core.errors import NoAvailableCopy, NotFound
from verticals.sakila.repository import FilmRepository, InventoryRepository


@dataclass
class Availability:
    """Copy counts for one film, optionally scoped to a store."""

    film_id: int
    store_id: int | None
    total_copies: int
    available_inventory_ids: list[int] = field(default_factory=list)

    @property
    def available_count(self) -> int:
        return len(self.available_inventory_ids)

    def to_dict(self) -> dict:
        return {
            "film_id": self.film_id,
            "store_id": self.store_id,
            "total_copies": self.total_copies,
            "available_count": self.available_count,
            "available_inventory_ids": self.available_inventory_ids,
        }


class AvailabilityChecker:
    """Read-only view of which copies can be rented right now."""

    def __init__(self, session: AsyncSession):
        self.films = FilmRepository(session)
        self.inventory = InventoryRepository(session)

    async def available_count(self, film_id: int, store_id: int | None = None) -> Availability:
        """Count rentable copies of ``film_id``.

        Raises NotFound for an unknown film.
        """
        if await self.films.get(film_id) is None:
            raise NotFound(f"Film {film_id} not found", film_id=film_id)

        copy_ids = await self.inventory.copy_ids(film_id, store_id)
        occupied = await self.inventory.occupied_ids(copy_ids)
        return Availability(
            film_id=film_id,
            store_id=store_id,
            total_copies=len(copy_ids),
            available_inventory_ids=[i for i in copy_ids if i not in occupied],
        )

    async def find_available_copy(self, film_id: int, store_id: int | None = None) -> int:
        """Pick the lowest-numbered free copy.

        Raises NoAvailableCopy when every copy is out.
        """
        availability = await self.available_count(film_id, store_id)
        if availability.available_count == 0:
            raise NoAvailableCopy(
                "No copy of this film is available right now",
                film_id=film_id,
                store_id=store_id,
                total_copies=availability.total_copies,
            )
        return availability.available_inventory_ids[0]

    async def is_copy_available(self, inventory_id: int) -> bool:
        """Whether one specific copy is free. Raises NotFound for an unknown copy."""
        if await self.inventory.get(inventory_id) is None:
            raise NotFound(f"Inventory copy {inventory_id} not found", inventory_id=inventory_id)
        return inventory_id not in await self.inventory.occupied_ids([inventory_id])
