"""Test the customer and staff read models."""
from datetime import timedelta
from decimal import Decimal

import pytest

from core.errors import NotFound
from patterns.domain_config import MaintenanceConfig, RentalConfig
from patterns.workflow_states import RentalStatus
from verticals.sakila.clock import utcnow
from verticals.sakila.read_models import RentalReadService, present_rental


@pytest.mark.asyncio
async def test_customer_rentals_stats(session, make_rental):
    await make_rental(inventory_id=1, status="pending", amount=Decimal("2.99"))
    await make_rental(inventory_id=3, status="paid", amount=Decimal("4.99"))
    await make_rental(inventory_id=2, status="returned", amount=Decimal("2.99"), returned=True)
    await make_rental(inventory_id=2, status="cancelled", amount=Decimal("2.99"))
    await make_rental(inventory_id=2, customer_id=2, status="rented")

    response = await RentalReadService(session, RentalConfig.default()).customer_rentals(1)
    stats = response.stats
    assert response.success
    assert len(response.rentals) == 4
    assert (stats.pending, stats.paid, stats.rented, stats.returned, stats.cancelled) == (1, 1, 0, 1, 1)
    assert stats.total_rentals == 4
    assert stats.paid_amount == pytest.approx(4.99)
    assert stats.completed_amount == pytest.approx(2.99)
    assert stats.total_spent == pytest.approx(10.97)


@pytest.mark.asyncio
async def test_customer_rentals_repairs_before_reading(session, make_rental):
    await make_rental(inventory_id=1, status="processing", amount=Decimal("0"))

    response = await RentalReadService(session, RentalConfig.default()).customer_rentals(1)
    rental = response.rentals[0]
    assert rental["status"] == "pending"
    assert rental["amount"] == pytest.approx(2.99)
    assert rental["film_title"] == "ACADEMY DINOSAUR"
    assert rental["actions"] == ["pay", "cancel", "hand_over"]
    assert response.stats.pending == 1


@pytest.mark.asyncio
async def test_read_repair_can_be_disabled(session, make_rental):
    await make_rental(inventory_id=1, status="processing")
    config = RentalConfig(maintenance=MaintenanceConfig(repair_on_read=False))

    response = await RentalReadService(session, config).customer_rentals(1)
    rental = response.rentals[0]
    assert rental["status"] == "processing"
    assert rental["actions"] == []


@pytest.mark.asyncio
async def test_staff_rentals_filter_and_pages(session, make_rental):
    for _ in range(3):
        await make_rental(inventory_id=1, status="returned", returned=True)
    await make_rental(inventory_id=2, status="rented")

    reads = RentalReadService(session, RentalConfig.default())
    page = await reads.staff_rentals(page=1, limit=2)
    assert len(page["data"]) == 2
    assert page["pagination"] == {"page": 1, "limit": 2, "total": 4, "total_pages": 2}

    rented = await reads.staff_rentals(status=RentalStatus.RENTED)
    assert rented["pagination"]["total"] == 1
    assert rented["data"][0]["first_name"] == "MARY"


@pytest.mark.asyncio
async def test_overdue_rentals(session, make_rental):
    late = await make_rental(inventory_id=1, status="rented", days_ago=10, duration_days=3)
    await make_rental(inventory_id=2, status="rented")
    await make_rental(inventory_id=3, status="returned", returned=True, days_ago=10)

    overdue = await RentalReadService(session, RentalConfig.default()).overdue_rentals()
    assert [r["rental_id"] for r in overdue] == [late]
    assert overdue[0]["days_overdue"] == 7


@pytest.mark.asyncio
async def test_rental_detail(session, make_rental):
    rental_id = await make_rental(inventory_id=3, status="paid", amount=Decimal("4.99"))
    reads = RentalReadService(session, RentalConfig.default())

    detail = await reads.rental_detail(rental_id)
    assert detail["film_title"] == "ACE GOLDFINGER"
    assert detail["email"] == "mary.smith@example.org"
    assert detail["status_label"] == "Paid"
    assert detail["actions"] == ["hand_over"]
    with pytest.raises(NotFound):
        await reads.rental_detail(999)


@pytest.mark.asyncio
async def test_customer_summary(session, make_rental):
    await make_rental(inventory_id=1, status="returned", amount=Decimal("2.99"), returned=True)
    await make_rental(inventory_id=2, status="cancelled", amount=Decimal("2.99"))
    reads = RentalReadService(session, RentalConfig.default())

    summary = await reads.customer_summary(1)
    assert summary["first_name"] == "MARY"
    assert summary["total_rentals"] == 2
    assert summary["total_spent"] == pytest.approx(2.99)
    with pytest.raises(NotFound):
        await reads.customer_summary(999)


def test_present_rental_shapes_row():
    now = utcnow()
    row = {
        "rental_id": 1,
        "status": "rented",
        "rental_date": now - timedelta(days=5),
        "due_date": now - timedelta(days=2, hours=1),
        "return_date": None,
        "amount": Decimal("2.99"),
        "rental_rate": Decimal("2.99"),
        "film_title": "ACADEMY DINOSAUR",
    }
    out = present_rental(row, now)
    assert out["amount"] == 2.99
    assert out["status_label"] == "Rented out"
    assert out["actions"] == ["return", "extend"]
    assert out["days_overdue"] == 2
    assert out["return_date"] is None
    assert out["film_title"] == "ACADEMY DINOSAUR"
