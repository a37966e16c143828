"""Rental action coordinator.

Every mutating rental operation runs as one unit: re-read the rental,
evaluate the state machine and guard rules, write with a single
status-guarded UPDATE, commit. A guarded UPDATE that matches no row means
another request changed the rental first; that is reported as an invalid
transition, never retried here.

Domain errors are translated into ActionResult failures at this boundary.
Storage errors, and ledger anomalies that cannot be repaired, roll the unit
back and become a generic failure result.
"""

import logging
from datetime import date, datetime, time, timedelta, timezone
from decimal import Decimal
from typing import Any, Awaitable, Callable, Protocol

from fastapi import Depends, Request
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from core.database import get_session
from core.errors import (
    DataIntegrityAnomaly,
    InvalidRequest,
    InvalidTransition,
    NoAvailableCopy,
    NotFound,
    PaymentDeclined,
    PaymentMismatch,
    RentalError,
)
from core.observability.otel_setup import action_span
from patterns.domain_config import RentalConfig
from patterns.workflow_states import (
    RentalEvent,
    RentalStatus,
    RentalWorkflow,
    WorkflowTransition,
    event_for_target,
)
from verticals.sakila.availability import AvailabilityChecker
from verticals.sakila.clock import as_utc, utcnow
from verticals.sakila.config import config as default_config
from verticals.sakila.maintenance import LedgerMaintenance
from verticals.sakila.models.db_models import Film, Rental
from verticals.sakila.models.schemas import ActionResult
from verticals.sakila.pricing import PricingResolver
from verticals.sakila.repository import (
    CustomerRepository,
    FilmRepository,
    InventoryRepository,
    RentalRepository,
)
from verticals.sakila.rules import (
    check_amount_recorded,
    check_copy_availability,
    check_due_date,
    check_ownership,
    check_payment_covers,
    evaluate_rules,
)

logger = logging.getLogger(__name__)

GENERIC_FAILURE = "Something went wrong while processing the rental, please try again"


# ---------------------------------------------------------------------------
# Payment confirmation
# ---------------------------------------------------------------------------

class PaymentGateway(Protocol):
    """Synchronous (from the engine's view) confirmation of a charge."""

    async def confirm(self, rental_id: int, amount: Decimal) -> bool: ...


class CounterPayment:
    """Payment taken at the counter or already captured by the storefront."""

    async def confirm(self, rental_id: int, amount: Decimal) -> bool:
        return True


# ---------------------------------------------------------------------------
# Coordinator
# ---------------------------------------------------------------------------

class RentalCoordinator:
    """The mutating rental operations.

    ``customer_id`` arguments scope an operation to that customer's own
    rentals (self-service); staff calls leave it as None.
    """

    def __init__(
        self,
        session: AsyncSession,
        config: RentalConfig | None = None,
        payments: PaymentGateway | None = None,
        tracer=None,
    ):
        self.session = session
        self.config = config or default_config
        self.payments = payments or CounterPayment()
        self.tracer = tracer

        self.rentals = RentalRepository(session)
        self.films = FilmRepository(session)
        self.inventory = InventoryRepository(session)
        self.customers = CustomerRepository(session)
        self.availability = AvailabilityChecker(session)
        self.pricing = PricingResolver(session, self.config.pricing)
        self.maintenance = LedgerMaintenance(session, self.config)

    # -- Public operations --

    async def create_rental(
        self,
        customer_id: int,
        film_id: int,
        store_id: int | None = None,
        staff_id: int | None = None,
    ) -> ActionResult:
        return await self._run(
            "create", None, lambda: self._create(customer_id, film_id, store_id, staff_id)
        )

    async def pay(
        self,
        rental_id: int,
        amount: Decimal,
        customer_id: int | None = None,
    ) -> ActionResult:
        return await self._run(
            "pay", rental_id, lambda: self._pay(rental_id, Decimal(str(amount)), customer_id)
        )

    async def cancel(self, rental_id: int, customer_id: int | None = None) -> ActionResult:
        return await self._run("cancel", rental_id, lambda: self._cancel(rental_id, customer_id))

    async def return_rental(
        self,
        rental_id: int,
        customer_id: int | None = None,
        staff_id: int | None = None,
    ) -> ActionResult:
        return await self._run(
            "return", rental_id, lambda: self._return(rental_id, customer_id, staff_id)
        )

    async def extend(self, rental_id: int, customer_id: int | None = None) -> ActionResult:
        return await self._run("extend", rental_id, lambda: self._extend(rental_id, customer_id))

    async def hand_over(self, rental_id: int, staff_id: int | None = None) -> ActionResult:
        return await self._run("hand_over", rental_id, lambda: self._hand_over(rental_id, staff_id))

    async def set_status(
        self,
        rental_id: int,
        status: RentalStatus,
        staff_id: int | None = None,
    ) -> ActionResult:
        return await self._run(
            "set_status", rental_id, lambda: self._set_status(rental_id, status, staff_id)
        )

    async def update_due_date(
        self,
        rental_id: int,
        due_date: date,
        staff_id: int | None = None,
        reason: str | None = None,
    ) -> ActionResult:
        return await self._run(
            "update_due_date",
            rental_id,
            lambda: self._update_due_date(rental_id, due_date, staff_id, reason),
        )

    # -- Unit of work --

    async def _run(
        self,
        action: str,
        rental_id: int | None,
        operation: Callable[[], Awaitable[tuple[str, Rental]]],
    ) -> ActionResult:
        with action_span(self.tracer, action, rental_id=rental_id):
            try:
                message, rental = await operation()
                await self.session.commit()
            except DataIntegrityAnomaly as exc:
                await self.session.rollback()
                logger.error("Rental %s %s stopped on unrepaired ledger data: %s", rental_id, action, exc.message)
                return ActionResult.failed(GENERIC_FAILURE, "storage_error")
            except RentalError as exc:
                await self.session.rollback()
                logger.info("Rental %s %s rejected (%s): %s", rental_id, action, exc.code, exc.message)
                return ActionResult.failed(exc.message, exc.code)
            except SQLAlchemyError:
                await self.session.rollback()
                logger.exception("Rental %s %s failed in storage", rental_id, action)
                return ActionResult.failed(GENERIC_FAILURE, "storage_error")
        return ActionResult.ok(message, rental.to_dict())

    async def _load(self, rental_id: int, customer_id: int | None = None) -> tuple[Rental, RentalWorkflow]:
        """Fresh read of the rental and its workflow, repairing anomalies first."""
        rental = await self.rentals.get(rental_id, refresh=True)
        if rental is None or not check_ownership(rental.customer_id, customer_id).passed:
            raise NotFound(f"Rental {rental_id} not found", rental_id=rental_id)

        try:
            workflow = RentalWorkflow.from_record(rental.rental_id, rental.status)
        except DataIntegrityAnomaly as anomaly:
            logger.warning("Rental %s: %s; normalising", rental_id, anomaly.message)
            await self.maintenance.recover_processing()
            # the repair stands even if the action itself is rejected
            await self.session.commit()
            rental = await self.rentals.get(rental_id, refresh=True)
            workflow = RentalWorkflow.from_record(rental.rental_id, rental.status)
        return rental, workflow

    async def _persist(
        self,
        rental: Rental,
        transition: WorkflowTransition,
        values: dict[str, Any] | None = None,
    ) -> Rental:
        changed = await self.rentals.guarded_update(
            rental.rental_id,
            expected_status=transition.from_state,
            values={"status": transition.to_state, **(values or {})},
        )
        if not changed:
            raise InvalidTransition(
                f"Rental {rental.rental_id} was changed by another request",
                rental_id=rental.rental_id,
                event=transition.event,
            )
        logger.info(
            "Rental %s: %s -> %s on %s by %s",
            rental.rental_id,
            transition.from_state,
            transition.to_state,
            transition.event,
            transition.actor,
        )
        return await self.rentals.get(rental.rental_id, refresh=True)

    async def _film_for(self, rental: Rental) -> Film:
        film = await self.films.for_inventory(rental.inventory_id)
        if film is None:
            raise NotFound(
                f"No film found for inventory copy {rental.inventory_id}",
                rental_id=rental.rental_id,
            )
        return film

    def _duration(self, film: Film) -> timedelta:
        days = film.rental_duration or self.config.lending.default_rental_duration_days
        return timedelta(days=days)

    # -- Operations --

    async def _create(
        self,
        customer_id: int,
        film_id: int,
        store_id: int | None,
        staff_id: int | None,
    ) -> tuple[str, Rental]:
        if await self.customers.get(customer_id) is None:
            raise NotFound(f"Customer {customer_id} not found", customer_id=customer_id)

        inventory_id = await self.availability.find_available_copy(film_id, store_id)

        # Lock the chosen copy, then make sure nobody took it in the meantime.
        await self.inventory.lock_copy(inventory_id)
        still_free = await self.availability.is_copy_available(inventory_id)
        amount = await self.pricing.resolve_amount(film_id)
        guards = evaluate_rules(
            check_copy_availability(1 if still_free else 0),
            check_amount_recorded(amount),
        )
        failure = guards.first_failure
        if failure is not None and failure.rule_name == "copy_availability":
            raise NoAvailableCopy(failure.message, film_id=film_id, inventory_id=inventory_id)
        if failure is not None:
            raise DataIntegrityAnomaly(f"Film {film_id} has no rental rate", film_id=film_id)

        film = await self.films.get(film_id)
        now = utcnow()
        rental = await self.rentals.create({
            "rental_date": now,
            "inventory_id": inventory_id,
            "customer_id": customer_id,
            "staff_id": staff_id,
            "status": RentalStatus.PENDING.value,
            "amount": amount,
            "due_date": now + self._duration(film),
        })
        logger.info(
            "Rental %s created: customer %s, film %s, copy %s, amount %s",
            rental.rental_id, customer_id, film_id, inventory_id, amount,
        )
        return f'Rental of "{film.title}" created, please proceed to payment', rental

    async def _pay(
        self,
        rental_id: int,
        amount: Decimal | None,
        customer_id: int | None,
        staff_id: int | None = None,
    ) -> tuple[str, Rental]:
        rental, workflow = await self._load(rental_id, customer_id)
        actor = f"staff:{staff_id}" if staff_id else f"customer:{customer_id or rental.customer_id}"
        transition = workflow.apply(RentalEvent.PAY, actor=actor)

        if not check_amount_recorded(rental.amount).passed:
            await self.pricing.repair_amount(rental)
            await self.session.commit()
        if amount is None:
            amount = rental.amount

        rule = check_payment_covers(rental.amount, amount)
        if not rule.passed:
            raise PaymentMismatch(rule.message, rental_id=rental_id, **rule.details)

        film = await self._film_for(rental)
        values: dict[str, Any] = {"due_date": utcnow() + self._duration(film)}
        if staff_id is not None:
            values["staff_id"] = staff_id

        # Claim the row before charging. A concurrent payer blocks on the row
        # and then fails the status guard; a decline rolls the claim back.
        rental = await self._persist(rental, transition, values)
        if not await self.payments.confirm(rental.rental_id, amount):
            raise PaymentDeclined("The payment was not confirmed", rental_id=rental_id)

        if self.config.lending.hand_over_on_payment:
            hand_over = workflow.apply(RentalEvent.HAND_OVER, actor="system")
            rental = await self._persist(rental, hand_over)

        currency = self.config.pricing.currency
        return f'Payment of {rental.amount} {currency} for "{film.title}" received', rental

    async def _cancel(self, rental_id: int, customer_id: int | None) -> tuple[str, Rental]:
        rental, workflow = await self._load(rental_id, customer_id)
        transition = workflow.apply(RentalEvent.CANCEL, actor=f"customer:{customer_id or rental.customer_id}")
        film = await self._film_for(rental)
        rental = await self._persist(rental, transition)
        return f'Rental of "{film.title}" cancelled, the film is available again', rental

    async def _return(
        self,
        rental_id: int,
        customer_id: int | None,
        staff_id: int | None = None,
    ) -> tuple[str, Rental]:
        rental, workflow = await self._load(rental_id, customer_id)
        actor = f"staff:{staff_id}" if staff_id else f"customer:{customer_id or rental.customer_id}"
        transition = workflow.apply(RentalEvent.RETURN, actor=actor)
        film = await self._film_for(rental)
        values: dict[str, Any] = {"return_date": utcnow()}
        if staff_id is not None:
            values["staff_id"] = staff_id
        rental = await self._persist(rental, transition, values)
        return f'"{film.title}" returned', rental

    async def _extend(self, rental_id: int, customer_id: int | None) -> tuple[str, Rental]:
        rental, workflow = await self._load(rental_id, customer_id)
        transition = workflow.apply(RentalEvent.EXTEND, actor=f"customer:{customer_id or rental.customer_id}")
        film = await self._film_for(rental)
        current_due = as_utc(rental.due_date) or utcnow()
        new_due = current_due + timedelta(days=self.config.lending.extension_days)
        rental = await self._persist(rental, transition, {"due_date": new_due})
        return f'Rental of "{film.title}" extended until {new_due.date().isoformat()}', rental

    async def _hand_over(self, rental_id: int, staff_id: int | None) -> tuple[str, Rental]:
        rental, workflow = await self._load(rental_id)
        transition = workflow.apply(RentalEvent.HAND_OVER, actor=f"staff:{staff_id}")
        film = await self._film_for(rental)
        values: dict[str, Any] = {}
        if staff_id is not None:
            values["staff_id"] = staff_id
        if rental.due_date is None:
            values["due_date"] = utcnow() + self._duration(film)
        rental = await self._persist(rental, transition, values)
        return f'"{film.title}" handed over to the customer', rental

    async def _set_status(
        self,
        rental_id: int,
        status: RentalStatus,
        staff_id: int | None,
    ) -> tuple[str, Rental]:
        rental, workflow = await self._load(rental_id)
        event = event_for_target(workflow.current_state, status)
        if event is None:
            raise InvalidTransition(
                f"Cannot move a {workflow.current_state.value} rental to {status.value}",
                rental_id=rental_id,
                status=workflow.current_state.value,
            )

        if event is RentalEvent.PAY:
            return await self._pay(rental_id, None, None, staff_id)
        if event is RentalEvent.CANCEL:
            return await self._cancel(rental_id, None)
        if event is RentalEvent.HAND_OVER:
            return await self._hand_over(rental_id, staff_id)
        if event is RentalEvent.RETURN:
            return await self._return(rental_id, None, staff_id)
        raise InvalidTransition(f"Status update cannot apply {event.value}", rental_id=rental_id)

    async def _update_due_date(
        self,
        rental_id: int,
        due_date: date,
        staff_id: int | None,
        reason: str | None = None,
    ) -> tuple[str, Rental]:
        rental, workflow = await self._load(rental_id)
        if workflow.is_terminal:
            raise InvalidTransition(
                f"Cannot change the due date of a {workflow.current_state.value} rental",
                rental_id=rental_id,
            )
        rule = check_due_date(due_date, utcnow().date())
        if not rule.passed:
            raise InvalidRequest(rule.message, **rule.details)

        new_due = datetime.combine(due_date, time(23, 59, 59), tzinfo=timezone.utc)
        values: dict[str, Any] = {"status": workflow.current_state.value, "due_date": new_due}
        if staff_id is not None:
            values["staff_id"] = staff_id
        changed = await self.rentals.guarded_update(rental_id, workflow.current_state.value, values)
        if not changed:
            raise InvalidTransition(f"Rental {rental_id} was changed by another request", rental_id=rental_id)
        logger.info(
            "Rental %s due date set to %s by staff %s (%s)", rental_id, due_date, staff_id, reason or "no reason given"
        )
        rental = await self.rentals.get(rental_id, refresh=True)
        return f"Due date updated to {due_date.isoformat()}", rental


# ---------------------------------------------------------------------------
# FastAPI dependency factory
# ---------------------------------------------------------------------------

def get_rental_coordinator(
    request: Request,
    session: AsyncSession = Depends(get_session),
) -> RentalCoordinator:
    """FastAPI dependency for RentalCoordinator, traced when the app has a tracer."""
    return RentalCoordinator(session, tracer=getattr(request.app.state, "tracer", None))
