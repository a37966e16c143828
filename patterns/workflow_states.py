"""Enum-based rental lifecycle state machine.

Rental statuses and the events that move between them are closed Python
enums with an explicit transition table. The machine is pure: it validates
and records transitions, while the coordinator persists the outcome with a
status-guarded UPDATE.

    pending --pay--> paid --hand_over--> rented --return--> returned
       |                                   |  ^
       +--cancel--> cancelled              +--+ extend
       +--hand_over--> rented

``processing`` is a legacy transient value. It is never written by the
engine and is normalised away by the recovery pass.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any

from core.errors import DataIntegrityAnomaly, InvalidTransition


# ---------------------------------------------------------------------------
# State & event definitions
# ---------------------------------------------------------------------------

class RentalStatus(str, Enum):
    """Persisted rental statuses."""

    PENDING = "pending"
    PAID = "paid"
    RENTED = "rented"
    RETURNED = "returned"
    CANCELLED = "cancelled"
    PROCESSING = "processing"  # transient, must not persist

    @property
    def is_terminal(self) -> bool:
        return self in TERMINAL_STATUSES

    @property
    def is_transient(self) -> bool:
        return self in TRANSIENT_STATUSES

    @property
    def holds_copy(self) -> bool:
        """Whether a rental in this status keeps its inventory copy out of stock."""
        return self in OCCUPYING_STATUSES

    @property
    def label(self) -> str:
        return _STATUS_LABELS[self]


class RentalEvent(str, Enum):
    """Business events a caller can apply to an existing rental."""

    PAY = "pay"
    CANCEL = "cancel"
    HAND_OVER = "hand_over"
    RETURN = "return"
    EXTEND = "extend"


TERMINAL_STATUSES = frozenset({RentalStatus.RETURNED, RentalStatus.CANCELLED})
TRANSIENT_STATUSES = frozenset({RentalStatus.PROCESSING})
OCCUPYING_STATUSES = frozenset(
    {RentalStatus.PENDING, RentalStatus.PAID, RentalStatus.RENTED, RentalStatus.PROCESSING}
)
_STORED_VALUES = frozenset(s.value for s in RentalStatus)


# ---------------------------------------------------------------------------
# Transition rules
# ---------------------------------------------------------------------------

# {current_status: {event: next_status}}
_RENTAL_TRANSITIONS: dict[RentalStatus, dict[RentalEvent, RentalStatus]] = {
    RentalStatus.PENDING: {
        RentalEvent.PAY: RentalStatus.PAID,
        RentalEvent.CANCEL: RentalStatus.CANCELLED,
        RentalEvent.HAND_OVER: RentalStatus.RENTED,
    },
    RentalStatus.PAID: {
        RentalEvent.HAND_OVER: RentalStatus.RENTED,
    },
    RentalStatus.RENTED: {
        RentalEvent.RETURN: RentalStatus.RETURNED,
        RentalEvent.EXTEND: RentalStatus.RENTED,
    },
    RentalStatus.RETURNED: {},    # terminal
    RentalStatus.CANCELLED: {},   # terminal
    RentalStatus.PROCESSING: {},  # repaired before any event applies
}

_STATUS_LABELS: dict[RentalStatus, str] = {
    RentalStatus.PENDING: "Awaiting payment",
    RentalStatus.PAID: "Paid",
    RentalStatus.RENTED: "Rented out",
    RentalStatus.RETURNED: "Returned",
    RentalStatus.CANCELLED: "Cancelled",
    RentalStatus.PROCESSING: "Processing",
}

# Adding a status without wiring it into every table is a programming error.
for _table in (_RENTAL_TRANSITIONS, _STATUS_LABELS):
    _missing = set(RentalStatus) - set(_table)
    if _missing:
        raise RuntimeError(f"Rental status table incomplete, missing: {sorted(s.value for s in _missing)}")


def allowed_events(status: RentalStatus) -> list[RentalEvent]:
    """Events that are valid from ``status``, in declaration order."""
    return list(_RENTAL_TRANSITIONS[status])


def next_status(status: RentalStatus, event: RentalEvent) -> RentalStatus | None:
    return _RENTAL_TRANSITIONS[status].get(event)


def event_for_target(status: RentalStatus, target: RentalStatus) -> RentalEvent | None:
    """Find the event that moves ``status`` to ``target``, if one exists.

    Only state-changing events are considered, so asking for the current
    status returns None.
    """
    for event, to_status in _RENTAL_TRANSITIONS[status].items():
        if to_status == target and to_status != status:
            return event
    return None


# ---------------------------------------------------------------------------
# Normalisation of persisted values
# ---------------------------------------------------------------------------

def parse_status(raw: str | None, rental_id: Any = None) -> RentalStatus:
    """Turn a stored status string into a RentalStatus.

    Raises DataIntegrityAnomaly for null or unknown values.
    """
    if raw is None:
        raise DataIntegrityAnomaly("Rental has no status", rental_id=rental_id)
    try:
        return RentalStatus(raw)
    except ValueError:
        raise DataIntegrityAnomaly(
            f"Rental has unknown status {raw!r}", rental_id=rental_id, status=raw
        ) from None


def normalize_status(raw: str | None, return_date: datetime | None) -> RentalStatus | None:
    """Return the status a stored row should be repaired to, or None if it is sound.

    - ``processing`` without a return date goes back to ``pending``
    - ``processing`` with a return date was in fact returned
    - a missing or unknown status is derived from the return date
    """
    if raw in _STORED_VALUES and raw != RentalStatus.PROCESSING.value:
        return None
    return RentalStatus.RETURNED if return_date is not None else RentalStatus.PENDING


# ---------------------------------------------------------------------------
# State machine
# ---------------------------------------------------------------------------

@dataclass
class WorkflowTransition:
    """Record of a single state transition."""

    event: str
    from_state: str
    to_state: str
    timestamp: datetime
    actor: str = "system"
    metadata: dict[str, Any] = field(default_factory=dict)


@dataclass
class RentalWorkflow:
    """State tracking for one rental.

    Usage::

        wf = RentalWorkflow.from_record(rental.rental_id, rental.status)
        wf.apply(RentalEvent.PAY, actor="customer:12")
        wf.apply(RentalEvent.HAND_OVER, actor="staff:1")
    """

    rental_id: Any
    current_state: RentalStatus

    @classmethod
    def from_record(cls, rental_id: Any, raw_status: str | None) -> "RentalWorkflow":
        """Build a workflow from a stored status.

        Transient or unreadable statuses raise DataIntegrityAnomaly so the
        caller repairs the row before acting on it.
        """
        status = parse_status(raw_status, rental_id)
        if status.is_transient:
            raise DataIntegrityAnomaly(
                f"Rental {rental_id} rests in transient status {status.value!r}",
                rental_id=rental_id,
                status=status.value,
            )
        return cls(rental_id=rental_id, current_state=status)

    def apply(
        self,
        event: RentalEvent,
        actor: str = "system",
        metadata: dict[str, Any] | None = None,
    ) -> WorkflowTransition:
        """Execute a transition.

        Raises InvalidTransition if the event is not allowed; the state is
        left untouched in that case.
        """
        to_state = next_status(self.current_state, event)
        if to_state is None:
            allowed_names = [e.value for e in allowed_events(self.current_state)]
            raise InvalidTransition(
                f"Cannot {event.value} a rental that is {self.current_state.value}. "
                f"Allowed: {allowed_names}",
                rental_id=self.rental_id,
                status=self.current_state.value,
                event=event.value,
            )

        record = WorkflowTransition(
            event=event.value,
            from_state=self.current_state.value,
            to_state=to_state.value,
            timestamp=datetime.now(timezone.utc),
            actor=actor,
            metadata=metadata or {},
        )
        self.current_state = to_state
        return record

    @property
    def is_terminal(self) -> bool:
        """Check if the rental is in a terminal state."""
        return self.current_state.is_terminal
