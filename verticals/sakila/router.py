"""Sakila API routers — customer self-service and staff back office.

Demonstrates the standard router pattern:
- Caller identity via middleware ContextVars
- Coordinator / read service injection via FastAPI Depends
- ActionResult bodies ({success, message, ...}) with HTTP status by error code
- Optional Idempotency-Key replay on mutating endpoints
"""

from typing import Awaitable, Callable, Optional

from fastapi import APIRouter, Depends, Header, HTTPException, Query
from fastapi.responses import JSONResponse
from sqlalchemy.ext.asyncio import AsyncSession

from api.middleware import require_customer, require_staff
from core.database import get_session
from core.errors import NotFound
from core.resilience import IdempotencyStatus, IdempotencyStore, generate_idempotency_key
from patterns.workflow_states import RentalStatus
from verticals.sakila.availability import AvailabilityChecker
from verticals.sakila.config import config
from verticals.sakila.coordinator import RentalCoordinator, get_rental_coordinator
from verticals.sakila.maintenance import LedgerMaintenance
from verticals.sakila.models.schemas import (
    ActionResult,
    AvailabilityResponse,
    CheckinRequest,
    CustomerRentalCreate,
    DueDateUpdate,
    PaymentRequest,
    StaffRentalCreate,
    StatusUpdate,
)
from verticals.sakila.read_models import RentalReadService, get_read_service

customer_router = APIRouter()
staff_router = APIRouter()

idempotency_store = IdempotencyStore(default_ttl_seconds=config.idempotency_ttl_seconds)

_HTTP_STATUS_BY_ERROR = {
    "not_found": 404,
    "no_available_copy": 409,
    "invalid_transition": 409,
    "request_in_progress": 409,
    "payment_mismatch": 400,
    "invalid_request": 400,
    "payment_declined": 402,
    "storage_error": 500,
}


def _respond(result: ActionResult, success_status: int = 200) -> JSONResponse:
    status_code = success_status if result.success else _HTTP_STATUS_BY_ERROR.get(result.error, 400)
    return JSONResponse(status_code=status_code, content=result.model_dump(exclude_none=True))


async def _idempotent(
    operation: str,
    client_key: Optional[str],
    run: Callable[[], Awaitable[ActionResult]],
    **params,
) -> ActionResult:
    """Run ``run`` once per client key; replay the stored success on retries."""
    if not client_key:
        return await run()

    key = generate_idempotency_key(operation, client_key=client_key, **params)
    if idempotency_store.reserve(key, operation) is None:
        record = idempotency_store.check(key)
        if record is not None and record.status == IdempotencyStatus.COMPLETED:
            return ActionResult(**record.result)
        return ActionResult.failed("The same request is still being processed", "request_in_progress")

    try:
        result = await run()
    except Exception:
        idempotency_store.release(key)
        raise

    if result.success:
        idempotency_store.complete(key, result.model_dump())
    else:
        idempotency_store.release(key)
    return result


# ============================================================================
# Customer Endpoints
# ============================================================================

@customer_router.get("/rentals-data")
async def customer_rentals_data(
    customer_id: int = Depends(require_customer),
    reads: RentalReadService = Depends(get_read_service),
):
    """All of the caller's rentals with status counts and money totals."""
    response = await reads.customer_rentals(customer_id)
    return response.model_dump()


@customer_router.post("/rentals")
async def customer_create_rental(
    request: CustomerRentalCreate,
    customer_id: int = Depends(require_customer),
    coordinator: RentalCoordinator = Depends(get_rental_coordinator),
):
    """Reserve a copy of a film; the rental starts out pending payment."""
    result = await coordinator.create_rental(customer_id, request.film_id, request.store_id)
    return _respond(result, success_status=201)


@customer_router.get("/rentals/{rental_id}")
async def customer_rental_detail(
    rental_id: int,
    customer_id: int = Depends(require_customer),
    reads: RentalReadService = Depends(get_read_service),
):
    try:
        rental = await reads.rental_detail(rental_id)
    except NotFound:
        rental = None
    if rental is None or rental["customer_id"] != customer_id:
        raise HTTPException(status_code=404, detail="Rental not found")
    return {"success": True, "rental": rental}


@customer_router.post("/rentals/{rental_id}/pay")
async def customer_pay_rental(
    rental_id: int,
    request: PaymentRequest,
    customer_id: int = Depends(require_customer),
    coordinator: RentalCoordinator = Depends(get_rental_coordinator),
    idempotency_key: Optional[str] = Header(None, alias="Idempotency-Key"),
):
    """Pay a pending rental. The amount must cover the recorded amount."""
    result = await _idempotent(
        "pay",
        idempotency_key,
        lambda: coordinator.pay(rental_id, request.amount, customer_id=customer_id),
        rental_id=rental_id,
        customer_id=customer_id,
        amount=str(request.amount),
    )
    return _respond(result)


@customer_router.delete("/rentals/{rental_id}/cancel")
async def customer_cancel_rental(
    rental_id: int,
    customer_id: int = Depends(require_customer),
    coordinator: RentalCoordinator = Depends(get_rental_coordinator),
    idempotency_key: Optional[str] = Header(None, alias="Idempotency-Key"),
):
    """Cancel a rental that has not been paid yet."""
    result = await _idempotent(
        "cancel",
        idempotency_key,
        lambda: coordinator.cancel(rental_id, customer_id=customer_id),
        rental_id=rental_id,
        customer_id=customer_id,
    )
    return _respond(result)


@customer_router.post("/rentals/{rental_id}/return")
async def customer_return_rental(
    rental_id: int,
    customer_id: int = Depends(require_customer),
    coordinator: RentalCoordinator = Depends(get_rental_coordinator),
    idempotency_key: Optional[str] = Header(None, alias="Idempotency-Key"),
):
    result = await _idempotent(
        "return",
        idempotency_key,
        lambda: coordinator.return_rental(rental_id, customer_id=customer_id),
        rental_id=rental_id,
        customer_id=customer_id,
    )
    return _respond(result)


@customer_router.post("/rentals/{rental_id}/extend")
async def customer_extend_rental(
    rental_id: int,
    customer_id: int = Depends(require_customer),
    coordinator: RentalCoordinator = Depends(get_rental_coordinator),
    idempotency_key: Optional[str] = Header(None, alias="Idempotency-Key"),
):
    """Push the due date of a rented film back by the extension period."""
    result = await _idempotent(
        "extend",
        idempotency_key,
        lambda: coordinator.extend(rental_id, customer_id=customer_id),
        rental_id=rental_id,
        customer_id=customer_id,
    )
    return _respond(result)


# ============================================================================
# Staff Rental Endpoints
# ============================================================================

@staff_router.post("/rentals")
async def staff_create_rental(
    request: StaffRentalCreate,
    staff_id: int = Depends(require_staff),
    coordinator: RentalCoordinator = Depends(get_rental_coordinator),
):
    """Quick rental at the counter for a customer and film."""
    result = await coordinator.create_rental(
        request.customer_id, request.film_id, request.store_id, staff_id=staff_id
    )
    if not result.success:
        return _respond(result)
    return JSONResponse(
        status_code=201,
        content={
            "success": True,
            "rental_id": result.rental["rental_id"],
            "return_date": result.rental["due_date"],
            "message": result.message,
        },
    )


@staff_router.get("/rentals")
async def staff_list_rentals(
    status: Optional[RentalStatus] = None,
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    staff_id: int = Depends(require_staff),
    reads: RentalReadService = Depends(get_read_service),
):
    """List rentals, newest first, optionally filtered by status."""
    return await reads.staff_rentals(status=status, page=page, limit=limit)


@staff_router.get("/rentals/overdue")
async def staff_overdue_rentals(
    staff_id: int = Depends(require_staff),
    reads: RentalReadService = Depends(get_read_service),
):
    rentals = await reads.overdue_rentals()
    return {"success": True, "rentals": rentals, "count": len(rentals)}


@staff_router.get("/rentals/{rental_id}")
async def staff_rental_detail(
    rental_id: int,
    staff_id: int = Depends(require_staff),
    reads: RentalReadService = Depends(get_read_service),
):
    try:
        rental = await reads.rental_detail(rental_id)
    except NotFound:
        raise HTTPException(status_code=404, detail="Rental not found")
    return {"success": True, "rental": rental}


@staff_router.post("/rentals/return")
async def staff_checkin(
    request: CheckinRequest,
    staff_id: int = Depends(require_staff),
    coordinator: RentalCoordinator = Depends(get_rental_coordinator),
    idempotency_key: Optional[str] = Header(None, alias="Idempotency-Key"),
):
    """Check a returned copy back in."""
    result = await _idempotent(
        "return",
        idempotency_key,
        lambda: coordinator.return_rental(request.rental_id, staff_id=staff_id),
        rental_id=request.rental_id,
    )
    return _respond(result)


@staff_router.post("/rentals/{rental_id}/hand-over")
async def staff_hand_over(
    rental_id: int,
    staff_id: int = Depends(require_staff),
    coordinator: RentalCoordinator = Depends(get_rental_coordinator),
):
    """Record that the copy was handed to the customer (pending/paid -> rented)."""
    return _respond(await coordinator.hand_over(rental_id, staff_id=staff_id))


@staff_router.put("/rentals/{rental_id}/status")
async def staff_update_status(
    rental_id: int,
    request: StatusUpdate,
    staff_id: int = Depends(require_staff),
    coordinator: RentalCoordinator = Depends(get_rental_coordinator),
):
    """Move a rental to a new status through the matching lifecycle event."""
    return _respond(await coordinator.set_status(rental_id, request.status, staff_id=staff_id))


@staff_router.put("/rentals/{rental_id}/due-date")
async def staff_update_due_date(
    rental_id: int,
    request: DueDateUpdate,
    staff_id: int = Depends(require_staff),
    coordinator: RentalCoordinator = Depends(get_rental_coordinator),
):
    result = await coordinator.update_due_date(
        rental_id, request.due_date, staff_id=staff_id, reason=request.reason
    )
    return _respond(result)


# ============================================================================
# Staff Inventory, Customer & Maintenance Endpoints
# ============================================================================

@staff_router.get("/films/{film_id}/availability", response_model=AvailabilityResponse)
async def staff_film_availability(
    film_id: int,
    store_id: Optional[int] = Query(None, ge=1),
    staff_id: int = Depends(require_staff),
    session: AsyncSession = Depends(get_session),
):
    """How many copies of a film can be rented right now."""
    try:
        availability = await AvailabilityChecker(session).available_count(film_id, store_id)
    except NotFound:
        raise HTTPException(status_code=404, detail="Film not found")
    return availability.to_dict()


@staff_router.get("/customers/{customer_id}")
async def staff_customer_summary(
    customer_id: int,
    staff_id: int = Depends(require_staff),
    reads: RentalReadService = Depends(get_read_service),
):
    """Customer record with total rentals and total spent."""
    try:
        customer = await reads.customer_summary(customer_id)
    except NotFound:
        raise HTTPException(status_code=404, detail="Customer not found")
    return {"success": True, "customer": customer}


@staff_router.post("/maintenance/repair")
async def staff_repair_ledger(
    staff_id: int = Depends(require_staff),
    session: AsyncSession = Depends(get_session),
):
    """Run the status and amount repair passes now."""
    report = await LedgerMaintenance(session, config).run()
    return {"success": True, **report.model_dump(), "total": report.total}
