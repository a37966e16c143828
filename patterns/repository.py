"""Async repository pattern for database access.

Provides a generic base repository with lookup by primary key and creation. Verticals subclass this to add domain-specific queries.

Rows in the rental ledger are never deleted, so the base class offers no
delete operation.
"""

from typing import Any, Generic, TypeVar

from sqlalchemy.ext.asyncio import AsyncSession

from core.models.base import Base

# ---------------------------------------------------------------------------
# Type variable for model classes
# ---------------------------------------------------------------------------

ModelT = TypeVar("ModelT", bound=Base)


# ---------------------------------------------------------------------------
# Base repository
# ---------------------------------------------------------------------------

class BaseRepository(Generic[ModelT]):
    """Generic async repository with get + create.

    Subclass and set ``model`` and ``id_column`` to your SQLAlchemy model::

        class FilmRepository(BaseRepository[Film]):
            model = Film
            id_column = "film_id"

            async def by_title(self, title: str):
                stmt = select(self.model).where(self.model.title.ilike(f"%{title}%"))
                result = await self.session.execute(stmt)
                return list(result.scalars().all())
    """

    model: type[ModelT]
    id_column: str = "id"

    def __init__(self, session: AsyncSession):
        self.session = session

    # -- Get by ID --

    async def get(self, item_id: int, refresh: bool = False) -> ModelT | None:
        """Get a single row by primary key.

        ``refresh=True`` bypasses the identity map so the caller sees the
        committed state, not a cached copy.
        """
        return await self.session.get(self.model, item_id, populate_existing=refresh)

    # -- Create --

    async def create(self, data: dict[str, Any]) -> ModelT:
        """Create and flush a new row so its generated key is available."""
        item = self.model(**data)
        self.session.add(item)
        await self.session.flush()
        return item
