"""Appointment status machine."""

from enum import Enum

from app.core.exceptions import StateConflictException


class AppointmentStatus(str, Enum):
    """Appointment status enum."""

    SCHEDULED = "scheduled"
    CONFIRMED = "confirmed"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    NO_SHOW = "no_show"


TERMINAL_STATUSES = frozenset(
    {AppointmentStatus.COMPLETED, AppointmentStatus.CANCELLED, AppointmentStatus.NO_SHOW}
)

# Allowed target statuses per current status
TRANSITIONS: dict[AppointmentStatus, frozenset[AppointmentStatus]] = {
    AppointmentStatus.SCHEDULED: frozenset(
        {
            AppointmentStatus.CONFIRMED,
            AppointmentStatus.IN_PROGRESS,
            AppointmentStatus.CANCELLED,
            AppointmentStatus.NO_SHOW,
        }
    ),
    AppointmentStatus.CONFIRMED: frozenset(
        {
            AppointmentStatus.IN_PROGRESS,
            AppointmentStatus.CANCELLED,
            AppointmentStatus.NO_SHOW,
        }
    ),
    AppointmentStatus.IN_PROGRESS: frozenset(
        {AppointmentStatus.COMPLETED, AppointmentStatus.CANCELLED}
    ),
    AppointmentStatus.COMPLETED: frozenset(),
    AppointmentStatus.CANCELLED: frozenset(),
    AppointmentStatus.NO_SHOW: frozenset(),
}


def is_terminal(status: AppointmentStatus | str) -> bool:
    """Check if no further transition is possible from a status."""
    return AppointmentStatus(status) in TERMINAL_STATUSES


def can_transition(current: AppointmentStatus | str, target: AppointmentStatus | str) -> bool:
    """Check if ``current -> target`` is a defined transition."""
    return AppointmentStatus(target) in TRANSITIONS[AppointmentStatus(current)]


def ensure_transition(
    current: AppointmentStatus | str,
    target: AppointmentStatus | str,
) -> AppointmentStatus:
    """
    Validate a status change.

    Args:
        current: Status the appointment is in now
        target: Requested status

    Returns:
        The target status

    Raises:
        StateConflictException: If the transition is not defined
    """
    current_status = AppointmentStatus(current)
    target_status = AppointmentStatus(target)

    if current_status == target_status and current_status == AppointmentStatus.CANCELLED:
        raise StateConflictException(
            "Appointment is already cancelled",
            current_status=current_status.value,
            target_status=target_status.value,
        )

    if target_status not in TRANSITIONS[current_status]:
        raise StateConflictException(
            f"Cannot change appointment status from {current_status.value} "
            f"to {target_status.value}",
            current_status=current_status.value,
            target_status=target_status.value,
        )
    return target_status
