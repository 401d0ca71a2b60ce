"""Atomic creation, rescheduling and cancellation of appointment groups.

A single booking is handled as a group of one: it goes through the same
validate-all then commit-all path but is stored without link fields.
"""

import secrets
from datetime import UTC, date, datetime, time
from typing import Any
from uuid import UUID, uuid4

import structlog
from sqlalchemy import insert, or_, select, update
from sqlalchemy.engine import Row
from sqlalchemy.ext.asyncio import AsyncSession

from app.config import settings
from app.core.exceptions import (
    NotFoundException,
    StateConflictException,
    ValidationException,
)
from app.core.redis_client import CacheManager
from app.database import unit_of_work
from app.models.appointments import appointments
from app.scheduling.lifecycle import AppointmentStatus, is_terminal
from app.scheduling.provider_rules import AppointmentCategory
from app.scheduling.time_utils import TimeWindow, chain_windows, parse_time
from app.schemas.planning import (
    MAX_DURATION_MINUTES,
    MIN_DURATION_MINUTES,
    AppointmentCreate,
    AppointmentResponse,
    GroupCreate,
    GroupReschedule,
    GroupResponse,
    SegmentCreate,
)
from app.services.catalog_service import CatalogService
from app.services.conflict_service import (
    ConflictService,
    PlannedSegment,
    ensure_segments_available,
)
from app.services.job_scheduler_service import JobSchedulerService
from app.services.lifecycle_service import LifecycleService, transition_values
from app.services.resource_service import ResourceService

logger = structlog.get_logger(__name__)

DEFAULT_DURATION_MINUTES = 30


def generate_appointment_number(appointment_date: date) -> str:
    """Human-facing booking reference, e.g. ``A20260301-9F2C41AB``."""
    return f"A{appointment_date:%Y%m%d}-{secrets.token_hex(4).upper()}"


def plan_windows(start: time, durations: list[int], first_index: int = 0) -> list[TimeWindow]:
    """
    Chain windows for a run of segments.

    Raises:
        ValidationException: If the chain would run past midnight
    """
    try:
        return chain_windows(start, durations)
    except ValueError as e:
        raise ValidationException(
            str(e),
            details={"segment_index": first_index + len(durations) - 1},
        ) from e


class GroupService:
    """Group transaction coordinator."""

    def __init__(
        self,
        db: AsyncSession,
        cache_manager: CacheManager | None = None,
        clinic_id: str | None = None,
    ):
        """Initialize service with database session and collaborators."""
        self.db = db
        self.conflicts = ConflictService(db)
        self.catalog = CatalogService(db, cache_manager, clinic_id)
        self.resources = ResourceService(db)
        self.jobs = JobSchedulerService(db)
        self.lifecycle = LifecycleService(db)

    # ------------------------------------------------------------------
    # Planning helpers
    # ------------------------------------------------------------------

    async def _resolve_segment(
        self,
        index: int,
        segment: SegmentCreate,
        group_provider_id: UUID | None,
        group_assistant_id: UUID | None,
    ) -> dict[str, Any]:
        """Read the catalog and check references for one requested segment."""
        provider_id = segment.provider_id or group_provider_id
        machine_id = segment.machine_id
        duration = segment.duration
        title = segment.title

        if segment.treatment_id is not None:
            treatment = await self.catalog.require_treatment(segment.treatment_id)
            duration = duration or treatment.duration
            title = title or treatment.title
            if treatment.is_overlappable:
                # overlappable treatments never hold a machine
                machine_id = None
            elif machine_id is None and segment.category == AppointmentCategory.TREATMENT:
                raise ValidationException(
                    f"Treatment '{treatment.title}' requires a machine",
                    details={"segment_index": index, "treatment_id": str(treatment.id)},
                )

        if segment.category == AppointmentCategory.CONSULTATION and provider_id is None:
            raise ValidationException(
                "A provider is required for consultations",
                details={"segment_index": index},
            )

        duration = duration or DEFAULT_DURATION_MINUTES
        if not MIN_DURATION_MINUTES <= duration <= MAX_DURATION_MINUTES:
            raise ValidationException(
                f"Duration of {duration} minutes is outside "
                f"{MIN_DURATION_MINUTES}-{MAX_DURATION_MINUTES}",
                details={"segment_index": index, "duration": duration},
            )

        if machine_id is not None:
            await self.resources.ensure_machine(machine_id)
        if provider_id is not None:
            await self.resources.ensure_provider(provider_id)

        return {
            "category": segment.category,
            "treatment_id": segment.treatment_id,
            "machine_id": machine_id,
            "provider_id": provider_id,
            "assistant_id": segment.assistant_id or group_assistant_id,
            "duration_minutes": duration,
            "title": title,
            "color": segment.color,
        }

    async def _plan_segments(
        self,
        segments: list[SegmentCreate],
        start: time,
        group_provider_id: UUID | None = None,
        group_assistant_id: UUID | None = None,
        first_index: int = 0,
    ) -> list[PlannedSegment]:
        """Resolve requested segments and lay them out back to back from ``start``."""
        resolved = [
            await self._resolve_segment(
                first_index + i, segment, group_provider_id, group_assistant_id
            )
            for i, segment in enumerate(segments)
        ]
        windows = plan_windows(start, [r["duration_minutes"] for r in resolved], first_index)
        return [
            PlannedSegment(index=first_index + i, window=window, **values)
            for i, (values, window) in enumerate(zip(resolved, windows))
        ]

    def _check_group_size(self, count: int) -> None:
        if count > settings.max_group_segments:
            raise ValidationException(
                f"A group cannot have more than {settings.max_group_segments} segments",
                details={"segment_count": count},
            )

    async def _insert_segment(
        self,
        segment: PlannedSegment,
        *,
        appointment_id: UUID,
        patient_id: UUID,
        appointment_date: date,
        common: dict[str, Any],
        linked_appointment_id: UUID | None,
        link_sequence: int | None,
    ) -> Row:
        values = {
            "id": appointment_id,
            "appointment_number": generate_appointment_number(appointment_date),
            "category": segment.category.value,
            "appointment_date": appointment_date,
            "start_time": segment.window.start,
            "end_time": segment.window.end,
            "duration_minutes": segment.duration_minutes,
            "patient_id": patient_id,
            "provider_id": segment.provider_id,
            "machine_id": segment.machine_id,
            "assistant_id": segment.assistant_id,
            "service_id": segment.treatment_id,
            "status": AppointmentStatus.SCHEDULED.value,
            "linked_appointment_id": linked_appointment_id,
            "link_sequence": link_sequence,
            "title": segment.title,
            "color": segment.color,
            **common,
        }
        result = await self.db.execute(insert(appointments).values(**values).returning(appointments))
        return result.fetchone()

    async def _load_members(self, appointment_id: UUID, lock: bool = True) -> list[Row]:
        """
        Rebuild a group from any of its members.

        Rows are locked for update unless ``lock`` is False.

        Returns:
            Members ordered by link sequence (a single row for a standalone
            booking)

        Raises:
            NotFoundException: If no appointment has this ID
        """
        result = await self.db.execute(
            select(appointments.c.id, appointments.c.linked_appointment_id).where(
                appointments.c.id == appointment_id
            )
        )
        anchor = result.fetchone()
        if not anchor:
            raise NotFoundException("Appointment group not found")

        group_id = anchor.linked_appointment_id or anchor.id
        stmt = (
            select(appointments)
            .where(
                or_(
                    appointments.c.id == group_id,
                    appointments.c.linked_appointment_id == group_id,
                )
            )
            .order_by(appointments.c.link_sequence, appointments.c.start_time)
        )
        if lock:
            stmt = stmt.with_for_update()
        result = await self.db.execute(stmt)
        return list(result.fetchall())

    async def _schedule_confirmation(self, row_mapping: dict[str, Any]) -> None:
        """Queue the confirmation job; never fails the booking."""
        try:
            await self.jobs.schedule_timed_actions(row_mapping)
        except Exception as e:
            await self.db.rollback()
            logger.warning(
                "timed_action_scheduling_failed",
                appointment_id=str(row_mapping["id"]),
                error=str(e),
            )

    @staticmethod
    def _to_group_response(rows: list[Any]) -> GroupResponse:
        members = [
            r if isinstance(r, AppointmentResponse) else AppointmentResponse.model_validate(
                dict(r._mapping)
            )
            for r in rows
        ]
        first = members[0]
        return GroupResponse(
            group_id=first.linked_appointment_id or first.id,
            patient_id=first.patient_id,
            date=first.date,
            start_time=first.start_time,
            end_time=members[-1].end_time,
            total_duration=sum(m.duration_minutes for m in members),
            appointments=members,
        )

    # ------------------------------------------------------------------
    # Create
    # ------------------------------------------------------------------

    async def _book(
        self,
        patient_id: UUID,
        appointment_date: date,
        planned: list[PlannedSegment],
        common: dict[str, Any],
        grouped: bool,
        check_patient: bool,
    ) -> list[AppointmentResponse]:
        """Validate every segment, then write them all in one unit of work."""
        async with unit_of_work(self.db):
            await ensure_segments_available(
                self.conflicts,
                patient_id,
                appointment_date,
                planned,
                check_patient=check_patient,
            )

            first_id = uuid4()
            rows = []
            for position, segment in enumerate(planned):
                rows.append(
                    await self._insert_segment(
                        segment,
                        appointment_id=first_id if position == 0 else uuid4(),
                        patient_id=patient_id,
                        appointment_date=appointment_date,
                        common=common,
                        linked_appointment_id=first_id if grouped and position > 0 else None,
                        link_sequence=position + 1 if grouped else None,
                    )
                )
            created = [AppointmentResponse.model_validate(dict(r._mapping)) for r in rows]

        await self._schedule_confirmation(dict(rows[0]._mapping))
        return created

    async def create_appointment(self, data: AppointmentCreate) -> AppointmentResponse:
        """
        Book a single appointment.

        Args:
            data: Appointment creation data

        Returns:
            Created appointment

        Raises:
            ValidationException: If required resources are missing
            NotFoundException: If a referenced resource does not exist
            ResourceConflictException: If a resource is already booked
        """
        await self.resources.ensure_patient(data.patient_id)

        segment = SegmentCreate(
            treatment_id=data.treatment_id or data.service_id,
            category=data.category,
            duration=data.duration,
            machine_id=data.machine_id,
            provider_id=data.provider_id,
            assistant_id=data.assistant_id,
            title=data.title,
            color=data.color,
        )
        planned = await self._plan_segments([segment], parse_time(data.start_time))

        common = {
            "type": data.type.value,
            "reason": data.reason,
            "notes": data.notes,
            "priority": data.priority.value,
        }
        created = await self._book(
            data.patient_id,
            data.date,
            planned,
            common,
            grouped=False,
            check_patient=not data.skip_patient_overlap_check,
        )

        logger.info(
            "appointment_created",
            appointment_id=str(created[0].id),
            category=data.category.value,
            date=str(data.date),
        )
        return created[0]

    async def create_group(self, data: GroupCreate) -> GroupResponse:
        """
        Book a chain of back-to-back segments, all or nothing.

        Args:
            data: Group creation data

        Returns:
            The created group

        Raises:
            ValidationException: If a segment is invalid or the group too large
            NotFoundException: If a referenced resource does not exist
            ResourceConflictException: If any segment conflicts; nothing is saved
        """
        self._check_group_size(len(data.segments))
        await self.resources.ensure_patient(data.patient_id)

        planned = await self._plan_segments(
            data.segments,
            parse_time(data.start_time),
            group_provider_id=data.provider_id,
            group_assistant_id=data.assistant_id,
        )
        common = {
            "type": data.type.value,
            "notes": data.notes,
            "priority": data.priority.value,
        }
        created = await self._book(
            data.patient_id,
            data.date,
            planned,
            common,
            grouped=True,
            check_patient=not data.skip_patient_overlap_check,
        )

        logger.info(
            "appointment_group_created",
            group_id=str(created[0].id),
            segments=len(created),
            date=str(data.date),
        )
        return self._to_group_response(created)

    # ------------------------------------------------------------------
    # Read
    # ------------------------------------------------------------------

    async def get_group(self, appointment_id: UUID) -> GroupResponse:
        """
        Get a group by the ID of any of its members.

        Raises:
            NotFoundException: If no appointment has this ID
        """
        members = await self._load_members(appointment_id, lock=False)
        return self._to_group_response(members)

    # ------------------------------------------------------------------
    # Reschedule
    # ------------------------------------------------------------------

    async def reschedule_group(
        self,
        appointment_id: UUID,
        data: GroupReschedule,
        actor_id: UUID | None = None,
    ) -> GroupResponse:
        """
        Move a whole group and apply group-wide changes atomically.

        Members are re-chained from the new start in link order and
        rechecked against every booking outside the group. New segments are
        appended after the last member.

        Args:
            appointment_id: ID of any group member
            data: Changes to apply
            actor_id: Staff member performing the change

        Returns:
            The updated group

        Raises:
            NotFoundException: If the group does not exist
            StateConflictException: If a member is finished or cancelled
            ResourceConflictException: If any member or new segment conflicts
        """
        async with unit_of_work(self.db):
            members = await self._load_members(appointment_id)
            self._check_group_size(len(members) + len(data.new_segments))

            for member in members:
                if is_terminal(member.status):
                    raise StateConflictException(
                        f"Cannot reschedule a group containing a {member.status} appointment",
                        current_status=member.status,
                        target_status=data.status.value if data.status else None,
                    )

            first = members[0]
            group_id = first.id
            member_ids = [m.id for m in members]
            new_date = data.date or first.appointment_date
            new_start = parse_time(data.start_time or first.start_time)

            if data.provider_id is not None:
                await self.resources.ensure_provider(data.provider_id)

            windows = plan_windows(new_start, [m.duration_minutes for m in members])
            planned = [
                PlannedSegment(
                    index=i,
                    category=AppointmentCategory(m.category),
                    window=window,
                    duration_minutes=m.duration_minutes,
                    machine_id=m.machine_id,
                    provider_id=data.provider_id or m.provider_id,
                    assistant_id=data.assistant_id or m.assistant_id,
                    treatment_id=m.service_id,
                    title=m.title,
                    color=m.color,
                )
                for i, (m, window) in enumerate(zip(members, windows))
            ]
            appended = []
            if data.new_segments:
                appended = await self._plan_segments(
                    data.new_segments,
                    planned[-1].window.end,
                    group_provider_id=data.provider_id or first.provider_id,
                    group_assistant_id=data.assistant_id or first.assistant_id,
                    first_index=len(planned),
                )

            await ensure_segments_available(
                self.conflicts,
                first.patient_id,
                new_date,
                [*planned, *appended],
                exclude_ids=member_ids,
                check_patient=not data.skip_patient_overlap_check,
            )

            now = datetime.now(UTC)
            grouped = len(members) > 1 or bool(appended)
            for member, segment in zip(members, planned):
                values: dict[str, Any] = {
                    "appointment_date": new_date,
                    "start_time": segment.window.start,
                    "end_time": segment.window.end,
                    "provider_id": segment.provider_id,
                    "assistant_id": segment.assistant_id,
                    "updated_at": now,
                }
                if grouped and member.id == group_id and member.link_sequence is None:
                    values["link_sequence"] = 1
                if data.priority is not None:
                    values["priority"] = data.priority.value
                if data.notes is not None and member.id == group_id:
                    values["notes"] = data.notes
                if data.status is not None and data.status.value != member.status:
                    values.update(
                        transition_values(
                            {**member._mapping, **values},
                            data.status,
                            actor_id=actor_id,
                            now=now,
                        )
                    )
                await self.db.execute(
                    update(appointments).where(appointments.c.id == member.id).values(**values)
                )

            next_sequence = max((m.link_sequence or 1) for m in members) + 1
            common = {
                "type": first.type,
                "priority": (data.priority.value if data.priority else first.priority),
            }
            for offset, segment in enumerate(appended):
                await self._insert_segment(
                    segment,
                    appointment_id=uuid4(),
                    patient_id=first.patient_id,
                    appointment_date=new_date,
                    common=common,
                    linked_appointment_id=group_id,
                    link_sequence=next_sequence + offset,
                )

            updated = await self._load_members(group_id)

        logger.info(
            "appointment_group_rescheduled",
            group_id=str(group_id),
            date=str(new_date),
            members=len(updated),
            appended=len(appended),
        )
        return self._to_group_response(updated)

    # ------------------------------------------------------------------
    # Cancel
    # ------------------------------------------------------------------

    async def cancel_group(
        self,
        appointment_id: UUID,
        reason: str | None = None,
        actor_id: UUID | None = None,
    ) -> GroupResponse:
        """
        Cancel every member of a group atomically.

        Args:
            appointment_id: ID of any group member
            reason: Cancellation reason, appended to each member's notes
            actor_id: Staff member performing the change

        Returns:
            The cancelled group

        Raises:
            NotFoundException: If the group does not exist
            StateConflictException: If the group is already cancelled or a
                member has already taken place
        """
        async with unit_of_work(self.db):
            members = await self._load_members(appointment_id)
            group_id = members[0].id

            pending = [m for m in members if m.status != AppointmentStatus.CANCELLED.value]
            if not pending:
                raise StateConflictException(
                    "Appointment group is already cancelled",
                    current_status=AppointmentStatus.CANCELLED.value,
                    target_status=AppointmentStatus.CANCELLED.value,
                )

            now = datetime.now(UTC)
            # every member is validated before any row changes
            changes = [
                (
                    m.id,
                    transition_values(
                        dict(m._mapping),
                        AppointmentStatus.CANCELLED,
                        actor_id=actor_id,
                        reason=reason,
                        now=now,
                    ),
                )
                for m in pending
            ]
            for member_id, values in changes:
                await self.db.execute(
                    update(appointments).where(appointments.c.id == member_id).values(**values)
                )

            updated = await self._load_members(group_id)

        logger.info(
            "appointment_group_cancelled",
            group_id=str(group_id),
            cancelled=len(changes),
            actor_id=str(actor_id) if actor_id else None,
        )
        await self.lifecycle.cancel_pending_jobs([member_id for member_id, _ in changes])
        return self._to_group_response(updated)
