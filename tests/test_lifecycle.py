"""Tests for the appointment status machine."""

import pytest

from app.core.exceptions import StateConflictException
from app.scheduling.lifecycle import (
    TERMINAL_STATUSES,
    TRANSITIONS,
    AppointmentStatus,
    can_transition,
    ensure_transition,
    is_terminal,
)
from app.services.lifecycle_service import append_cancellation_reason, transition_values

S = AppointmentStatus


@pytest.mark.parametrize(
    ("current", "target"),
    [
        (S.SCHEDULED, S.CONFIRMED),
        (S.SCHEDULED, S.IN_PROGRESS),
        (S.CONFIRMED, S.IN_PROGRESS),
        (S.IN_PROGRESS, S.COMPLETED),
        (S.SCHEDULED, S.CANCELLED),
        (S.CONFIRMED, S.CANCELLED),
        (S.IN_PROGRESS, S.CANCELLED),
        (S.SCHEDULED, S.NO_SHOW),
        (S.CONFIRMED, S.NO_SHOW),
    ],
)
def test_allowed_transitions(current, target) -> None:
    assert can_transition(current, target)
    assert ensure_transition(current, target) == target


@pytest.mark.parametrize(
    ("current", "target"),
    [
        (S.SCHEDULED, S.COMPLETED),
        (S.CONFIRMED, S.SCHEDULED),
        (S.IN_PROGRESS, S.NO_SHOW),
        (S.COMPLETED, S.CANCELLED),
        (S.NO_SHOW, S.SCHEDULED),
    ],
)
def test_undefined_transitions_raise(current, target) -> None:
    with pytest.raises(StateConflictException) as exc_info:
        ensure_transition(current, target)

    assert exc_info.value.status_code == 409
    assert exc_info.value.current_status == current.value
    assert exc_info.value.target_status == target.value


def test_terminal_statuses_have_no_exits() -> None:
    for status in TERMINAL_STATUSES:
        assert is_terminal(status)
        assert TRANSITIONS[status] == frozenset()
    assert not is_terminal("scheduled")


def test_cancelling_twice_reports_already_cancelled() -> None:
    with pytest.raises(StateConflictException, match="already cancelled"):
        ensure_transition("cancelled", "cancelled")


def test_confirm_records_confirmer() -> None:
    """Confirmation stores who confirmed and when."""
    actor = "3f0b3c1e-0000-4000-8000-000000000001"
    values = transition_values({"status": "scheduled", "notes": None}, S.CONFIRMED, actor)

    assert values["status"] == "confirmed"
    assert values["confirmed_by"] == actor
    assert values["confirmed_at"] is not None


def test_cancel_appends_reason_to_notes() -> None:
    values = transition_values(
        {"status": "confirmed", "notes": "Bring previous scans"},
        S.CANCELLED,
        reason="Patient sick",
    )

    assert values["status"] == "cancelled"
    assert values["cancelled_at"] is not None
    assert values["notes"] == "Bring previous scans\nCancelled: Patient sick"


def test_append_cancellation_reason() -> None:
    assert append_cancellation_reason(None, "Weather") == "Cancelled: Weather"
    assert append_cancellation_reason("Note", None) == "Note"
