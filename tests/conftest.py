"""Shared fixtures: an in-memory SQLite ledger seeded with a small catalogue."""
import os

os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")

from datetime import timedelta
from decimal import Decimal

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import create_async_engine
from sqlalchemy.pool import StaticPool

from core.database import build_session_factory, init_db
from patterns.domain_config import RentalConfig
from verticals.sakila.clock import utcnow
from verticals.sakila.coordinator import RentalCoordinator
from verticals.sakila.models.db_models import Customer, Film, Inventory, Rental

# film_id -> (title, rate, duration, [(inventory_id, store_id), ...])
CATALOGUE = {
    1: ("ACADEMY DINOSAUR", Decimal("2.99"), 6, [(1, 1), (2, 1)]),
    2: ("ACE GOLDFINGER", Decimal("4.99"), 3, [(3, 2)]),
    3: ("ADAPTATION HOLES", Decimal("0.99"), 7, []),
}


@pytest_asyncio.fixture
async def engine():
    engine = create_async_engine(
        "sqlite+aiosqlite:///:memory:",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    await init_db(engine)
    yield engine
    await engine.dispose()


async def _seed(factory):
    async with factory() as session:
        for film_id, (title, rate, duration, copies) in CATALOGUE.items():
            session.add(Film(film_id=film_id, title=title, rental_rate=rate, rental_duration=duration))
            for inventory_id, store_id in copies:
                session.add(Inventory(inventory_id=inventory_id, film_id=film_id, store_id=store_id))
        session.add(Customer(customer_id=1, first_name="MARY", last_name="SMITH", email="mary.smith@example.org"))
        session.add(Customer(customer_id=2, first_name="PATRICIA", last_name="JOHNSON"))
        await session.commit()


@pytest_asyncio.fixture
async def session_factory(engine):
    factory = build_session_factory(engine)
    await _seed(factory)
    return factory


@pytest_asyncio.fixture
async def file_session_factory(tmp_path):
    """Seeded ledger in a SQLite file, so separate connections really contend."""
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'ledger.db'}")
    await init_db(engine)
    factory = build_session_factory(engine)
    await _seed(factory)
    yield factory
    await engine.dispose()


@pytest_asyncio.fixture
async def session(session_factory):
    async with session_factory() as session:
        yield session


@pytest.fixture
def config():
    return RentalConfig.default()


@pytest.fixture
def coordinator(session, config):
    return RentalCoordinator(session, config=config)


@pytest.fixture
def make_rental(session):
    """Insert a ledger row directly, legacy values (NULL status, zero amount) included."""

    async def _make(
        inventory_id=1,
        customer_id=1,
        status="pending",
        amount=Decimal("2.99"),
        returned=False,
        days_ago=0,
        duration_days=3,
    ):
        rental_date = utcnow() - timedelta(days=days_ago)
        result = await session.execute(
            Rental.__table__.insert().values(
                rental_date=rental_date,
                inventory_id=inventory_id,
                customer_id=customer_id,
                status=status,
                amount=amount,
                due_date=rental_date + timedelta(days=duration_days),
                return_date=utcnow() if returned else None,
            )
        )
        await session.commit()
        return result.inserted_primary_key[0]

    return _make


@pytest.fixture
def fetch_rental(session):
    """Re-read a rental from the database, bypassing the identity map."""

    async def _fetch(rental_id) -> Rental:
        return await session.get(Rental, rental_id, populate_existing=True)

    return _fetch
