"""Queueing of timed actions for appointments."""

from collections.abc import Mapping
from datetime import UTC, datetime, timedelta
from typing import Any
from uuid import UUID
from zoneinfo import ZoneInfo

import structlog
from sqlalchemy import insert, update
from sqlalchemy.ext.asyncio import AsyncSession

from app.config import settings
from app.models.scheduled_jobs import scheduled_jobs
from app.scheduling.time_utils import parse_date, parse_time

logger = structlog.get_logger(__name__)

APPOINTMENT_CONFIRMATION = "appointment_confirmation"
APPOINTMENT_REFERENCE = "appointment"


def appointment_starts_at(appointment: Mapping[str, Any]) -> datetime:
    """Aware datetime of an appointment's start in the clinic's timezone."""
    start = datetime.combine(
        parse_date(appointment["appointment_date"]),
        parse_time(appointment["start_time"]),
    )
    return start.replace(tzinfo=ZoneInfo(settings.clinic_timezone))


class JobSchedulerService:
    """
    Writes jobs to the ``scheduled_jobs`` queue.

    A separate worker executes the jobs; this service only enqueues and
    cancels them.
    """

    def __init__(self, db: AsyncSession):
        """Initialize service with database session."""
        self.db = db

    async def schedule_timed_actions(
        self,
        appointment: Mapping[str, Any],
        now: datetime | None = None,
    ) -> list[UUID]:
        """
        Queue the confirmation request for a new appointment and commit.

        The job runs ``CONFIRMATION_LEAD_HOURS`` before the start and is
        skipped when that moment has already passed.

        Args:
            appointment: Appointment row mapping
            now: Current time, for tests

        Returns:
            IDs of the queued jobs
        """
        now = now or datetime.now(UTC)
        execute_at = appointment_starts_at(appointment) - timedelta(
            hours=settings.confirmation_lead_hours
        )

        if execute_at <= now:
            logger.debug(
                "timed_action_skipped_in_past",
                appointment_id=str(appointment["id"]),
                execute_at=execute_at.isoformat(),
            )
            return []

        stmt = (
            insert(scheduled_jobs)
            .values(
                job_type=APPOINTMENT_CONFIRMATION,
                reference_type=APPOINTMENT_REFERENCE,
                reference_id=appointment["id"],
                execute_at=execute_at,
                status="pending",
                payload={
                    "appointment_id": str(appointment["id"]),
                    "appointment_number": appointment.get("appointment_number"),
                    "patient_id": str(appointment["patient_id"]),
                },
            )
            .returning(scheduled_jobs.c.id)
        )
        result = await self.db.execute(stmt)
        job_id = result.scalar_one()
        await self.db.commit()

        logger.info(
            "timed_action_scheduled",
            appointment_id=str(appointment["id"]),
            job_id=str(job_id),
            execute_at=execute_at.isoformat(),
        )
        return [job_id]

    async def cancel_jobs_for_appointment(self, appointment_id: UUID) -> int:
        """
        Cancel every pending job of an appointment and commit.

        Returns:
            Number of jobs cancelled
        """
        stmt = (
            update(scheduled_jobs)
            .where(
                scheduled_jobs.c.reference_type == APPOINTMENT_REFERENCE,
                scheduled_jobs.c.reference_id == appointment_id,
                scheduled_jobs.c.status == "pending",
            )
            .values(status="cancelled", updated_at=datetime.now(UTC))
        )
        result = await self.db.execute(stmt)
        await self.db.commit()

        if result.rowcount:
            logger.info(
                "scheduled_jobs_cancelled",
                appointment_id=str(appointment_id),
                count=result.rowcount,
            )
        return result.rowcount
