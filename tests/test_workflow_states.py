"""Test the rental state machine."""
import pytest

from core.errors import DataIntegrityAnomaly, InvalidTransition
from patterns.workflow_states import (
    RentalEvent,
    RentalStatus,
    RentalWorkflow,
    allowed_events,
    event_for_target,
    next_status,
    normalize_status,
    parse_status,
)


def test_happy_path_transitions():
    wf = RentalWorkflow(rental_id=1, current_state=RentalStatus.PENDING)
    wf.apply(RentalEvent.PAY, actor="customer:1")
    wf.apply(RentalEvent.HAND_OVER, actor="staff:1")
    wf.apply(RentalEvent.RETURN, actor="staff:1")
    assert wf.current_state == RentalStatus.RETURNED
    assert wf.is_terminal


def test_transition_record():
    wf = RentalWorkflow(rental_id=7, current_state=RentalStatus.PENDING)
    record = wf.apply(RentalEvent.CANCEL, actor="customer:3", metadata={"via": "web"})
    assert record.event == "cancel"
    assert record.from_state == "pending"
    assert record.to_state == "cancelled"
    assert record.actor == "customer:3"
    assert record.metadata == {"via": "web"}
    assert record.timestamp.tzinfo is not None


def test_pay_twice_rejected():
    wf = RentalWorkflow(rental_id=1, current_state=RentalStatus.PENDING)
    wf.apply(RentalEvent.PAY)
    with pytest.raises(InvalidTransition) as exc:
        wf.apply(RentalEvent.PAY)
    assert "Cannot pay a rental that is paid" in str(exc.value)
    assert exc.value.details["status"] == "paid"
    assert wf.current_state == RentalStatus.PAID


def test_cancel_only_from_pending():
    for status in (RentalStatus.PAID, RentalStatus.RENTED, RentalStatus.RETURNED, RentalStatus.CANCELLED):
        assert RentalEvent.CANCEL not in allowed_events(status)


def test_return_and_extend_only_from_rented():
    assert next_status(RentalStatus.RENTED, RentalEvent.RETURN) == RentalStatus.RETURNED
    assert next_status(RentalStatus.RENTED, RentalEvent.EXTEND) == RentalStatus.RENTED
    for status in (RentalStatus.PENDING, RentalStatus.PAID, RentalStatus.RETURNED):
        assert next_status(status, RentalEvent.RETURN) is None
        assert next_status(status, RentalEvent.EXTEND) is None


def test_terminal_states_have_no_events():
    assert allowed_events(RentalStatus.RETURNED) == []
    assert allowed_events(RentalStatus.CANCELLED) == []
    assert RentalStatus.RETURNED.is_terminal
    assert RentalStatus.CANCELLED.is_terminal
    assert not RentalStatus.RENTED.is_terminal


def test_copy_occupancy_by_status():
    assert RentalStatus.PENDING.holds_copy
    assert RentalStatus.PAID.holds_copy
    assert RentalStatus.RENTED.holds_copy
    assert RentalStatus.PROCESSING.holds_copy
    assert not RentalStatus.RETURNED.holds_copy
    assert not RentalStatus.CANCELLED.holds_copy


def test_every_status_has_label():
    for status in RentalStatus:
        assert status.label


def test_event_for_target():
    assert event_for_target(RentalStatus.PENDING, RentalStatus.PAID) == RentalEvent.PAY
    assert event_for_target(RentalStatus.PENDING, RentalStatus.CANCELLED) == RentalEvent.CANCEL
    assert event_for_target(RentalStatus.PAID, RentalStatus.RENTED) == RentalEvent.HAND_OVER
    assert event_for_target(RentalStatus.RENTED, RentalStatus.RETURNED) == RentalEvent.RETURN
    # extend loops on rented and is not a status change
    assert event_for_target(RentalStatus.RENTED, RentalStatus.RENTED) is None
    assert event_for_target(RentalStatus.RETURNED, RentalStatus.PENDING) is None


def test_parse_status():
    assert parse_status("rented") == RentalStatus.RENTED
    with pytest.raises(DataIntegrityAnomaly):
        parse_status(None, rental_id=4)
    with pytest.raises(DataIntegrityAnomaly) as exc:
        parse_status("lost", rental_id=4)
    assert exc.value.details == {"rental_id": 4, "status": "lost"}


def test_from_record_rejects_processing():
    with pytest.raises(DataIntegrityAnomaly):
        RentalWorkflow.from_record(9, "processing")
    wf = RentalWorkflow.from_record(9, "paid")
    assert wf.current_state == RentalStatus.PAID


def test_normalize_status():
    marker = object()
    assert normalize_status("processing", None) == RentalStatus.PENDING
    assert normalize_status("processing", marker) == RentalStatus.RETURNED
    assert normalize_status(None, None) == RentalStatus.PENDING
    assert normalize_status(None, marker) == RentalStatus.RETURNED
    assert normalize_status("paid", None) is None
    assert normalize_status("lost", None) == RentalStatus.PENDING
    assert normalize_status("lost", marker) == RentalStatus.RETURNED
    assert normalize_status("cancelled", None) is None
