"""Appointment service for single-appointment reads and edits."""

from datetime import UTC, datetime
from uuid import UUID

import structlog
from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.exceptions import (
    NotFoundException,
    StateConflictException,
    ValidationException,
)
from app.database import unit_of_work
from app.models.appointments import appointments
from app.scheduling.lifecycle import AppointmentStatus, is_terminal
from app.scheduling.provider_rules import AppointmentCategory
from app.scheduling.time_utils import make_window, parse_time
from app.schemas.planning import (
    AppointmentReschedule,
    AppointmentResponse,
    AppointmentUpdate,
    CalendarFilters,
    CalendarResponse,
)
from app.services.conflict_service import (
    ConflictService,
    PlannedSegment,
    ensure_segments_available,
)
from app.services.lifecycle_service import LifecycleService
from app.services.resource_service import ResourceService

logger = structlog.get_logger(__name__)


class AppointmentService:
    """Service for managing individual appointments."""

    def __init__(self, db: AsyncSession):
        """Initialize service with database session."""
        self.db = db
        self.conflicts = ConflictService(db)
        self.resources = ResourceService(db)
        self.lifecycle = LifecycleService(db)

    async def get_appointment(self, appointment_id: UUID) -> AppointmentResponse:
        """
        Get appointment by ID.

        Args:
            appointment_id: Appointment ID

        Returns:
            Appointment details

        Raises:
            NotFoundException: If appointment not found
        """
        result = await self.db.execute(
            select(appointments).where(appointments.c.id == appointment_id)
        )
        row = result.fetchone()

        if not row:
            raise NotFoundException("Appointment not found")

        return AppointmentResponse.model_validate(dict(row._mapping))

    async def list_calendar(self, filters: CalendarFilters) -> CalendarResponse:
        """
        List appointments in a date range.

        Args:
            filters: Date range and resource/status filters

        Returns:
            Appointments ordered by date and start time
        """
        conditions = [
            appointments.c.appointment_date >= filters.start_date,
            appointments.c.appointment_date <= filters.end_date,
        ]
        if filters.category:
            conditions.append(appointments.c.category == filters.category.value)
        if filters.machine_id:
            conditions.append(appointments.c.machine_id == filters.machine_id)
        if filters.provider_id:
            conditions.append(appointments.c.provider_id == filters.provider_id)
        if filters.patient_id:
            conditions.append(appointments.c.patient_id == filters.patient_id)
        if filters.status:
            conditions.append(appointments.c.status == filters.status.value)

        stmt = (
            select(appointments)
            .where(*conditions)
            .order_by(
                appointments.c.appointment_date,
                appointments.c.start_time,
                appointments.c.link_sequence,
            )
        )
        result = await self.db.execute(stmt)
        items = [AppointmentResponse.model_validate(dict(row._mapping)) for row in result.fetchall()]

        return CalendarResponse(
            start_date=filters.start_date,
            end_date=filters.end_date,
            total=len(items),
            appointments=items,
        )

    async def update_appointment(
        self,
        appointment_id: UUID,
        data: AppointmentUpdate,
    ) -> AppointmentResponse:
        """
        Update descriptive fields of an appointment.

        Args:
            appointment_id: Appointment ID
            data: Fields to change

        Returns:
            Updated appointment

        Raises:
            NotFoundException: If appointment not found
        """
        await self.get_appointment(appointment_id)

        update_data = data.model_dump(exclude_unset=True, mode="json")
        if not update_data:
            return await self.get_appointment(appointment_id)

        if data.assistant_id is not None:
            update_data["assistant_id"] = data.assistant_id
        update_data["updated_at"] = datetime.now(UTC)

        async with unit_of_work(self.db):
            result = await self.db.execute(
                update(appointments)
                .where(appointments.c.id == appointment_id)
                .values(**update_data)
                .returning(appointments)
            )
            row = result.fetchone()

        return AppointmentResponse.model_validate(dict(row._mapping))

    async def reschedule_appointment(
        self,
        appointment_id: UUID,
        data: AppointmentReschedule,
    ) -> AppointmentResponse:
        """
        Move a standalone appointment, checked against everything but itself.

        Args:
            appointment_id: Appointment ID
            data: New date, start, duration and/or resources

        Returns:
            Updated appointment

        Raises:
            NotFoundException: If the appointment or a new resource is missing
            ValidationException: If the appointment belongs to a group
            StateConflictException: If the appointment is finished or cancelled
            ResourceConflictException: If the new window is taken
        """
        if data.machine_id is not None:
            await self.resources.ensure_machine(data.machine_id)
        if data.provider_id is not None:
            await self.resources.ensure_provider(data.provider_id)

        async with unit_of_work(self.db):
            result = await self.db.execute(
                select(appointments).where(appointments.c.id == appointment_id).with_for_update()
            )
            row = result.fetchone()
            if not row:
                raise NotFoundException("Appointment not found")

            if row.linked_appointment_id is not None or row.link_sequence is not None:
                raise ValidationException(
                    "Appointment belongs to a group, reschedule the group instead",
                    details={"group_id": str(row.linked_appointment_id or row.id)},
                )
            if is_terminal(row.status):
                raise StateConflictException(
                    f"Cannot reschedule a {row.status} appointment",
                    current_status=row.status,
                )

            new_date = data.date or row.appointment_date
            duration = data.duration or row.duration_minutes
            try:
                window = make_window(parse_time(data.start_time or row.start_time), duration)
            except ValueError as e:
                raise ValidationException(str(e)) from e

            segment = PlannedSegment(
                index=0,
                category=AppointmentCategory(row.category),
                window=window,
                duration_minutes=duration,
                machine_id=data.machine_id or row.machine_id,
                provider_id=data.provider_id or row.provider_id,
            )
            await ensure_segments_available(
                self.conflicts,
                row.patient_id,
                new_date,
                [segment],
                exclude_ids=[row.id],
                check_patient=not data.skip_patient_overlap_check,
            )

            result = await self.db.execute(
                update(appointments)
                .where(appointments.c.id == appointment_id)
                .values(
                    appointment_date=new_date,
                    start_time=window.start,
                    end_time=window.end,
                    duration_minutes=duration,
                    machine_id=segment.machine_id,
                    provider_id=segment.provider_id,
                    updated_at=datetime.now(UTC),
                )
                .returning(appointments)
            )
            updated = result.fetchone()

        logger.info(
            "appointment_rescheduled",
            appointment_id=str(appointment_id),
            date=str(new_date),
            window=str(window),
        )
        return AppointmentResponse.model_validate(dict(updated._mapping))

    async def cancel_appointment(
        self,
        appointment_id: UUID,
        reason: str | None = None,
        actor_id: UUID | None = None,
    ) -> AppointmentResponse:
        """
        Cancel an appointment; the row is kept.

        Raises:
            NotFoundException: If appointment not found
            StateConflictException: If already cancelled or finished
        """
        return await self.lifecycle.change_status(
            appointment_id,
            AppointmentStatus.CANCELLED,
            actor_id=actor_id,
            reason=reason,
        )
