"""Appointment status transitions."""

from collections.abc import Mapping
from datetime import UTC, datetime
from typing import Any
from uuid import UUID

import structlog
from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.exceptions import NotFoundException
from app.database import unit_of_work
from app.models.appointments import appointments
from app.scheduling.lifecycle import AppointmentStatus, ensure_transition
from app.schemas.planning import AppointmentResponse
from app.services.job_scheduler_service import JobSchedulerService

logger = structlog.get_logger(__name__)

# Statuses after which queued reminders are pointless
JOB_CANCELLING_STATUSES = frozenset({AppointmentStatus.CANCELLED, AppointmentStatus.NO_SHOW})


def append_cancellation_reason(notes: str | None, reason: str | None) -> str | None:
    """Append ``Cancelled: <reason>`` to existing notes."""
    if not reason:
        return notes
    line = f"Cancelled: {reason}"
    return f"{notes}\n{line}" if notes else line


def transition_values(
    appointment: Mapping[str, Any],
    target: AppointmentStatus | str,
    actor_id: UUID | None = None,
    reason: str | None = None,
    now: datetime | None = None,
) -> dict[str, Any]:
    """
    Column values for moving an appointment to ``target``.

    Args:
        appointment: Current appointment row mapping
        target: Requested status
        actor_id: Staff member performing the change
        reason: Cancellation reason, appended to notes
        now: Timestamp to record

    Returns:
        Values for an UPDATE statement

    Raises:
        StateConflictException: If the transition is not allowed
    """
    status = ensure_transition(appointment["status"], target)
    now = now or datetime.now(UTC)
    values: dict[str, Any] = {"status": status.value, "updated_at": now}

    if status == AppointmentStatus.CONFIRMED:
        values["confirmed_at"] = now
        values["confirmed_by"] = actor_id
    elif status == AppointmentStatus.CANCELLED:
        values["cancelled_at"] = now
        values["notes"] = append_cancellation_reason(appointment.get("notes"), reason)

    return values


class LifecycleService:
    """Service applying status transitions to single appointments."""

    def __init__(self, db: AsyncSession):
        """Initialize service with database session."""
        self.db = db
        self.jobs = JobSchedulerService(db)

    async def change_status(
        self,
        appointment_id: UUID,
        target: AppointmentStatus,
        actor_id: UUID | None = None,
        reason: str | None = None,
    ) -> AppointmentResponse:
        """
        Move an appointment to a new status.

        Args:
            appointment_id: Appointment ID
            target: Requested status
            actor_id: Staff member performing the change
            reason: Cancellation reason

        Returns:
            Updated appointment

        Raises:
            NotFoundException: If appointment not found
            StateConflictException: If the transition is not allowed
        """
        async with unit_of_work(self.db):
            result = await self.db.execute(
                select(appointments).where(appointments.c.id == appointment_id).with_for_update()
            )
            row = result.fetchone()
            if not row:
                raise NotFoundException("Appointment not found")

            current = dict(row._mapping)
            values = transition_values(current, target, actor_id=actor_id, reason=reason)
            result = await self.db.execute(
                update(appointments)
                .where(appointments.c.id == appointment_id)
                .values(**values)
                .returning(appointments)
            )
            updated = AppointmentResponse.model_validate(dict(result.fetchone()._mapping))

        logger.info(
            "appointment_status_changed",
            appointment_id=str(appointment_id),
            from_status=current["status"],
            to_status=updated.status.value,
        )

        if updated.status in JOB_CANCELLING_STATUSES:
            await self.cancel_pending_jobs([appointment_id])

        return updated

    async def cancel_pending_jobs(self, appointment_ids: list[UUID]) -> None:
        """Drop queued jobs of appointments that will no longer take place."""
        for appointment_id in appointment_ids:
            try:
                await self.jobs.cancel_jobs_for_appointment(appointment_id)
            except Exception as e:
                await self.db.rollback()
                logger.warning(
                    "scheduled_jobs_cancel_failed",
                    appointment_id=str(appointment_id),
                    error=str(e),
                )
