"""Conflict detection against existing bookings."""

from collections.abc import Iterable, Sequence
from dataclasses import dataclass, field
from datetime import date, time
from uuid import UUID

import structlog
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.exceptions import ResourceConflictException
from app.models.appointments import appointments
from app.models.patients import patients
from app.scheduling.bookings import (
    Booking,
    ResourceKind,
    overlapping,
    patient_overlapping,
    provider_blocking,
)
from app.scheduling.lifecycle import AppointmentStatus
from app.scheduling.provider_rules import AppointmentCategory
from app.scheduling.time_utils import TimeWindow

logger = structlog.get_logger(__name__)

_RESOURCE_COLUMNS = {
    ResourceKind.MACHINE: appointments.c.machine_id,
    ResourceKind.PROVIDER: appointments.c.provider_id,
    ResourceKind.PATIENT: appointments.c.patient_id,
}


@dataclass
class ProviderConflictResult:
    """Outcome of a provider check, with the bookings that caused it."""

    conflicts: list[Booking] = field(default_factory=list)
    has_consultation_conflict: bool = False
    has_treatment_conflict: bool = False

    @property
    def has_conflict(self) -> bool:
        return bool(self.conflicts)


class ConflictService:
    """
    Read-only checks of machine, provider and patient availability.

    Cancelled bookings never conflict. Every check takes ids to ignore so a
    reschedule can be validated against everything except the bookings
    being moved.
    """

    def __init__(self, db: AsyncSession):
        """Initialize service with database session."""
        self.db = db

    async def load_bookings(
        self,
        resource_kind: ResourceKind,
        resource_id: UUID,
        appointment_date: date,
        exclude_ids: Iterable[UUID] = (),
    ) -> list[Booking]:
        """
        Load the non-cancelled bookings holding a resource on one day.

        Args:
            resource_kind: Machine, provider or patient
            resource_id: Resource ID
            appointment_date: Calendar date
            exclude_ids: Appointment IDs to leave out

        Returns:
            Bookings ordered by start time
        """
        column = _RESOURCE_COLUMNS[ResourceKind(resource_kind)]
        stmt = (
            select(
                appointments.c.id,
                appointments.c.category,
                appointments.c.start_time,
                appointments.c.end_time,
                appointments.c.title,
                patients.c.first_name.label("patient_first_name"),
                patients.c.last_name.label("patient_last_name"),
            )
            .select_from(
                appointments.outerjoin(patients, patients.c.id == appointments.c.patient_id)
            )
            .where(
                column == resource_id,
                appointments.c.appointment_date == appointment_date,
                appointments.c.status != AppointmentStatus.CANCELLED.value,
            )
            .order_by(appointments.c.start_time, appointments.c.id)
        )

        excluded = [e for e in exclude_ids if e is not None]
        if excluded:
            stmt = stmt.where(appointments.c.id.not_in(excluded))

        result = await self.db.execute(stmt)
        return [Booking.from_row(row) for row in result.fetchall()]

    async def has_conflict(
        self,
        resource_kind: ResourceKind | str,
        resource_id: UUID,
        appointment_date: date,
        start_time: time,
        end_time: time,
        exclude_appointment_id: UUID | None = None,
        *,
        new_category: AppointmentCategory | str = AppointmentCategory.TREATMENT,
        exclude_ids: Iterable[UUID] = (),
    ) -> bool:
        """
        Check whether a window on a resource is already taken.

        Args:
            resource_kind: Machine, provider or patient
            resource_id: Resource ID
            appointment_date: Calendar date
            start_time: Window start
            end_time: Window end (exclusive)
            exclude_appointment_id: Booking being moved, ignored by the check
            new_category: Category of the booking being placed (provider rule)
            exclude_ids: Further booking IDs to ignore

        Returns:
            True if the window conflicts
        """
        conflicts = await self.find_conflicts(
            resource_kind,
            resource_id,
            appointment_date,
            start_time,
            end_time,
            exclude_ids=[exclude_appointment_id, *exclude_ids],
            new_category=new_category,
        )
        return bool(conflicts)

    async def find_conflicts(
        self,
        resource_kind: ResourceKind | str,
        resource_id: UUID,
        appointment_date: date,
        start_time: time,
        end_time: time,
        *,
        exclude_ids: Iterable[UUID | None] = (),
        new_category: AppointmentCategory | str = AppointmentCategory.TREATMENT,
    ) -> list[Booking]:
        """Return the bookings that block the window under the resource's rule."""
        kind = ResourceKind(resource_kind)
        window = TimeWindow(start_time, end_time)
        bookings = await self.load_bookings(
            kind, resource_id, appointment_date, [e for e in exclude_ids if e is not None]
        )

        if kind == ResourceKind.PROVIDER:
            return provider_blocking(bookings, window, new_category)
        return overlapping(bookings, window)

    async def check_machine(
        self,
        machine_id: UUID,
        appointment_date: date,
        window: TimeWindow,
        exclude_ids: Iterable[UUID] = (),
    ) -> list[Booking]:
        """Bookings on the machine overlapping the window."""
        bookings = await self.load_bookings(
            ResourceKind.MACHINE, machine_id, appointment_date, exclude_ids
        )
        return overlapping(bookings, window)

    async def check_provider(
        self,
        provider_id: UUID,
        appointment_date: date,
        window: TimeWindow,
        new_category: AppointmentCategory | str,
        exclude_ids: Iterable[UUID] = (),
    ) -> ProviderConflictResult:
        """
        Apply the provider rule and describe what blocks the window.

        Args:
            provider_id: Provider ID
            appointment_date: Calendar date
            window: Proposed window
            new_category: Category of the booking being placed
            exclude_ids: Booking IDs to ignore

        Returns:
            Blocking bookings plus which categories are involved
        """
        bookings = await self.load_bookings(
            ResourceKind.PROVIDER, provider_id, appointment_date, exclude_ids
        )
        overlaps = overlapping(bookings, window)
        blocking = provider_blocking(overlaps, window, new_category)

        return ProviderConflictResult(
            conflicts=blocking,
            has_consultation_conflict=any(
                b.category == AppointmentCategory.CONSULTATION for b in overlaps
            ),
            has_treatment_conflict=any(
                b.category == AppointmentCategory.TREATMENT for b in overlaps
            ),
        )

    async def check_patient(
        self,
        patient_id: UUID,
        segments: Sequence[tuple[date, TimeWindow]],
        exclude_ids: Iterable[UUID] = (),
    ) -> list[Booking]:
        """
        Check several proposed windows for one patient at once.

        Args:
            patient_id: Patient ID
            segments: Proposed (date, window) pairs
            exclude_ids: Booking IDs to ignore, e.g. a group being moved

        Returns:
            Patient bookings overlapping any proposed window
        """
        excluded = list(exclude_ids)
        windows_by_date: dict[date, list[TimeWindow]] = {}
        for appointment_date, window in segments:
            windows_by_date.setdefault(appointment_date, []).append(window)

        conflicts: list[Booking] = []
        for appointment_date, windows in sorted(windows_by_date.items()):
            bookings = await self.load_bookings(
                ResourceKind.PATIENT, patient_id, appointment_date, excluded
            )
            conflicts.extend(patient_overlapping(bookings, windows))

        if conflicts:
            logger.info(
                "patient_overlap_detected",
                patient_id=str(patient_id),
                conflicting_ids=[str(c.id) for c in conflicts],
            )
        return conflicts


@dataclass(frozen=True)
class PlannedSegment:
    """A segment with its resources resolved and its window computed."""

    index: int
    category: AppointmentCategory
    window: TimeWindow
    duration_minutes: int
    machine_id: UUID | None = None
    provider_id: UUID | None = None
    assistant_id: UUID | None = None
    treatment_id: UUID | None = None
    title: str | None = None
    color: str | None = None


def _conflict_error(
    message: str,
    resource_kind: ResourceKind,
    resource_id: UUID,
    conflicts: list[Booking],
    segment_index: int,
) -> ResourceConflictException:
    logger.info(
        "resource_conflict_detected",
        resource_kind=resource_kind.value,
        resource_id=str(resource_id),
        segment_index=segment_index,
        conflicting_ids=[str(c.id) for c in conflicts],
    )
    return ResourceConflictException(
        message,
        resource_kind=resource_kind.value,
        resource_id=resource_id,
        conflicting_ids=[c.id for c in conflicts],
        segment_index=segment_index,
        conflicts=[c.to_dict() for c in conflicts],
    )


async def ensure_segments_available(
    conflicts: ConflictService,
    patient_id: UUID,
    appointment_date: date,
    segments: Sequence[PlannedSegment],
    exclude_ids: Iterable[UUID] = (),
    check_patient: bool = True,
) -> None:
    """
    Validate every segment's resources before anything is written.

    Machines and providers are checked segment by segment, then the patient
    across all windows at once.

    Raises:
        ResourceConflictException: On the first segment that cannot be placed
    """
    excluded = list(exclude_ids)

    for segment in segments:
        if segment.machine_id is not None:
            blocking = await conflicts.check_machine(
                segment.machine_id, appointment_date, segment.window, excluded
            )
            if blocking:
                raise _conflict_error(
                    f"Machine is already booked for segment {segment.index + 1} "
                    f"({segment.window})",
                    ResourceKind.MACHINE,
                    segment.machine_id,
                    blocking,
                    segment.index,
                )

        if segment.provider_id is not None:
            provider_result = await conflicts.check_provider(
                segment.provider_id,
                appointment_date,
                segment.window,
                segment.category,
                excluded,
            )
            if provider_result.has_conflict:
                raise _conflict_error(
                    f"Provider is not available for segment {segment.index + 1} "
                    f"({segment.window})",
                    ResourceKind.PROVIDER,
                    segment.provider_id,
                    provider_result.conflicts,
                    segment.index,
                )

    if check_patient and segments:
        blocking = await conflicts.check_patient(
            patient_id,
            [(appointment_date, s.window) for s in segments],
            excluded,
        )
        if blocking:
            first = next(
                s for s in segments if any(b.window.overlaps(s.window) for b in blocking)
            )
            raise _conflict_error(
                "Patient already has an appointment at this time",
                ResourceKind.PATIENT,
                patient_id,
                blocking,
                first.index,
            )
