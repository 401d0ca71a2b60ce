"""Planning endpoints: slot search, bookings, groups and availability checks."""

import datetime as dt
from typing import Annotated
from uuid import UUID

from fastapi import APIRouter, Query, status
from pydantic import TypeAdapter, ValidationError

from app.core.exceptions import ValidationException
from app.dependencies import (
    Cache,
    ClinicSession,
    Creator,
    Deleter,
    Reader,
    Updater,
    ensure_patient_overlap_override,
)
from app.scheduling.provider_rules import AppointmentCategory
from app.scheduling.time_utils import TimeWindow
from app.schemas.planning import (
    AppointmentCreate,
    AppointmentReschedule,
    AppointmentResponse,
    AppointmentStatusUpdate,
    AppointmentUpdate,
    CalendarFilters,
    CalendarResponse,
    GroupCreate,
    GroupReschedule,
    GroupResponse,
    MachineAvailabilityResponse,
    MultiSlotSearchRequest,
    PatientOverlapResponse,
    PatientSegment,
    ProviderAvailabilityResponse,
    SlotSearchQuery,
    SlotSearchResponse,
    booking_payloads,
)
from app.services.appointment_service import AppointmentService
from app.services.conflict_service import ConflictService
from app.services.group_service import GroupService
from app.services.lifecycle_service import LifecycleService
from app.services.resource_service import ResourceService
from app.services.slot_service import SlotService

router = APIRouter()

_patient_segments = TypeAdapter(list[PatientSegment])


def _window(start_time: dt.time, end_time: dt.time) -> TimeWindow:
    if end_time <= start_time:
        raise ValidationException("end_time must be after start_time")
    return TimeWindow(start_time.replace(second=0), end_time.replace(second=0))


# ---------------------------------------------------------------------------
# Slot search
# ---------------------------------------------------------------------------


@router.get(
    "/slots",
    response_model=SlotSearchResponse,
    status_code=status.HTTP_200_OK,
    summary="Find available slots",
)
async def get_slots(
    query: Annotated[SlotSearchQuery, Query()],
    principal: Reader,
    db: ClinicSession,
    cache: Cache,
) -> SlotSearchResponse:
    """
    Find start times for a treatment, a consultation or a machine.

    Args:
        query: Date, resource and duration to search for
        principal: Authenticated principal
        db: Clinic database session
        cache: Cache manager

    Returns:
        Candidate slots; an empty list when nothing fits
    """
    service = SlotService(db, cache, principal.clinic_id)
    return await service.search(query)


@router.post(
    "/slots/multi-treatment",
    response_model=SlotSearchResponse,
    status_code=status.HTTP_200_OK,
    summary="Find slots for a multi-treatment session",
)
async def get_multi_treatment_slots(
    data: MultiSlotSearchRequest,
    principal: Reader,
    db: ClinicSession,
    cache: Cache,
) -> SlotSearchResponse:
    """
    Find start times at which every segment fits back to back.

    Args:
        data: Date and ordered segments
        principal: Authenticated principal
        db: Clinic database session
        cache: Cache manager

    Returns:
        Candidate slots with per-segment placement
    """
    service = SlotService(db, cache, principal.clinic_id)
    return await service.search_multi_treatment(data)


# ---------------------------------------------------------------------------
# Calendar and single appointments
# ---------------------------------------------------------------------------


@router.get(
    "/calendar",
    response_model=CalendarResponse,
    status_code=status.HTTP_200_OK,
    summary="List appointments in a date range",
)
async def get_calendar(
    filters: Annotated[CalendarFilters, Query()],
    principal: Reader,
    db: ClinicSession,
) -> CalendarResponse:
    """
    List appointments for the calendar view.

    Args:
        filters: Date range plus category, resource and status filters
        principal: Authenticated principal
        db: Clinic database session

    Returns:
        Matching appointments
    """
    service = AppointmentService(db)
    return await service.list_calendar(filters)


@router.post(
    "/appointments",
    response_model=AppointmentResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Book an appointment",
)
async def create_appointment(
    data: AppointmentCreate,
    principal: Creator,
    db: ClinicSession,
    cache: Cache,
) -> AppointmentResponse:
    """
    Book a single treatment or consultation.

    Args:
        data: Appointment creation data
        principal: Authenticated principal
        db: Clinic database session
        cache: Cache manager

    Returns:
        Created appointment
    """
    ensure_patient_overlap_override(principal, data.skip_patient_overlap_check)
    service = GroupService(db, cache, principal.clinic_id)
    return await service.create_appointment(data)


@router.post(
    "/appointments/multi-treatment",
    response_model=GroupResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Book a multi-treatment session",
)
async def create_multi_treatment(
    data: GroupCreate,
    principal: Creator,
    db: ClinicSession,
    cache: Cache,
) -> GroupResponse:
    """
    Book back-to-back segments as one group, all or nothing.

    Args:
        data: Group creation data
        principal: Authenticated principal
        db: Clinic database session
        cache: Cache manager

    Returns:
        Created group
    """
    ensure_patient_overlap_override(principal, data.skip_patient_overlap_check)
    service = GroupService(db, cache, principal.clinic_id)
    return await service.create_group(data)


@router.get(
    "/appointments/group/{group_id}",
    response_model=GroupResponse,
    status_code=status.HTTP_200_OK,
    summary="Get appointment group",
)
async def get_group(
    group_id: UUID,
    principal: Reader,
    db: ClinicSession,
) -> GroupResponse:
    """Get a multi-treatment group by the ID of any member."""
    service = GroupService(db, clinic_id=principal.clinic_id)
    return await service.get_group(group_id)


@router.put(
    "/appointments/group/{group_id}",
    response_model=GroupResponse,
    status_code=status.HTTP_200_OK,
    summary="Reschedule appointment group",
)
async def reschedule_group(
    group_id: UUID,
    data: GroupReschedule,
    principal: Updater,
    db: ClinicSession,
    cache: Cache,
) -> GroupResponse:
    """
    Move a group and apply group-wide changes.

    Args:
        group_id: ID of any group member
        data: New date/start, group-wide fields and segments to append
        principal: Authenticated principal
        db: Clinic database session
        cache: Cache manager

    Returns:
        Updated group
    """
    ensure_patient_overlap_override(principal, data.skip_patient_overlap_check)
    service = GroupService(db, cache, principal.clinic_id)
    return await service.reschedule_group(group_id, data, actor_id=principal.user_id)


@router.delete(
    "/appointments/group/{group_id}",
    response_model=GroupResponse,
    status_code=status.HTTP_200_OK,
    summary="Cancel appointment group",
)
async def cancel_group(
    group_id: UUID,
    principal: Deleter,
    db: ClinicSession,
    reason: str | None = Query(None, max_length=1000),
) -> GroupResponse:
    """
    Cancel every member of a group.

    Args:
        group_id: ID of any group member
        principal: Authenticated principal
        db: Clinic database session
        reason: Cancellation reason

    Returns:
        Cancelled group
    """
    service = GroupService(db, clinic_id=principal.clinic_id)
    return await service.cancel_group(group_id, reason=reason, actor_id=principal.user_id)


@router.get(
    "/appointments/{appointment_id}",
    response_model=AppointmentResponse,
    status_code=status.HTTP_200_OK,
    summary="Get appointment by ID",
)
async def get_appointment(
    appointment_id: UUID,
    principal: Reader,
    db: ClinicSession,
) -> AppointmentResponse:
    """Get appointment details by ID."""
    service = AppointmentService(db)
    return await service.get_appointment(appointment_id)


@router.put(
    "/appointments/{appointment_id}",
    response_model=AppointmentResponse,
    status_code=status.HTTP_200_OK,
    summary="Update appointment details",
)
async def update_appointment(
    appointment_id: UUID,
    data: AppointmentUpdate,
    principal: Updater,
    db: ClinicSession,
) -> AppointmentResponse:
    """
    Update descriptive fields (title, reason, notes, priority, color, type, assistant).

    Args:
        appointment_id: Appointment ID
        data: Fields to change
        principal: Authenticated principal
        db: Clinic database session

    Returns:
        Updated appointment
    """
    service = AppointmentService(db)
    return await service.update_appointment(appointment_id, data)


@router.put(
    "/appointments/{appointment_id}/reschedule",
    response_model=AppointmentResponse,
    status_code=status.HTTP_200_OK,
    summary="Reschedule appointment",
)
async def reschedule_appointment(
    appointment_id: UUID,
    data: AppointmentReschedule,
    principal: Updater,
    db: ClinicSession,
) -> AppointmentResponse:
    """
    Move a standalone appointment to a new date, time or resource.

    Args:
        appointment_id: Appointment ID
        data: New date, start, duration and/or resources
        principal: Authenticated principal
        db: Clinic database session

    Returns:
        Updated appointment
    """
    ensure_patient_overlap_override(principal, data.skip_patient_overlap_check)
    service = AppointmentService(db)
    return await service.reschedule_appointment(appointment_id, data)


@router.patch(
    "/appointments/{appointment_id}/status",
    response_model=AppointmentResponse,
    status_code=status.HTTP_200_OK,
    summary="Change appointment status",
)
async def update_appointment_status(
    appointment_id: UUID,
    data: AppointmentStatusUpdate,
    principal: Updater,
    db: ClinicSession,
) -> AppointmentResponse:
    """
    Apply a lifecycle transition (confirm, start, complete, cancel, no-show).

    Args:
        appointment_id: Appointment ID
        data: Target status and optional cancellation reason
        principal: Authenticated principal
        db: Clinic database session

    Returns:
        Updated appointment
    """
    service = LifecycleService(db)
    return await service.change_status(
        appointment_id,
        data.status,
        actor_id=principal.user_id,
        reason=data.reason,
    )


@router.delete(
    "/appointments/{appointment_id}",
    response_model=AppointmentResponse,
    status_code=status.HTTP_200_OK,
    summary="Cancel appointment",
)
async def cancel_appointment(
    appointment_id: UUID,
    principal: Deleter,
    db: ClinicSession,
    reason: str | None = Query(None, max_length=1000),
) -> AppointmentResponse:
    """Cancel an appointment. The row is kept with status ``cancelled``."""
    service = AppointmentService(db)
    return await service.cancel_appointment(
        appointment_id, reason=reason, actor_id=principal.user_id
    )


# ---------------------------------------------------------------------------
# Availability checks
# ---------------------------------------------------------------------------


@router.get(
    "/providers/{provider_id}/check-availability",
    response_model=ProviderAvailabilityResponse,
    status_code=status.HTTP_200_OK,
    summary="Check provider availability",
)
async def check_provider_availability(
    provider_id: UUID,
    principal: Reader,
    db: ClinicSession,
    date: dt.date = Query(...),
    start_time: dt.time = Query(...),
    end_time: dt.time = Query(...),
    category: AppointmentCategory = Query(AppointmentCategory.CONSULTATION),
    exclude_appointment_id: UUID | None = Query(None),
) -> ProviderAvailabilityResponse:
    """
    Check whether a provider can take a booking of ``category`` in a window.

    Args:
        provider_id: Provider ID
        principal: Authenticated principal
        db: Clinic database session
        date: Calendar date
        start_time: Window start (HH:MM)
        end_time: Window end (HH:MM)
        category: Category of the booking to place
        exclude_appointment_id: Booking to ignore, e.g. the one being moved

    Returns:
        Availability with the bookings in the way
    """
    window = _window(start_time, end_time)
    await ResourceService(db).ensure_provider(provider_id)

    result = await ConflictService(db).check_provider(
        provider_id,
        date,
        window,
        category,
        exclude_ids=[exclude_appointment_id] if exclude_appointment_id else [],
    )
    return ProviderAvailabilityResponse(
        provider_id=provider_id,
        date=date,
        start_time=window.start,
        end_time=window.end,
        available=not result.has_conflict,
        has_consultation_conflict=result.has_consultation_conflict,
        has_treatment_conflict=result.has_treatment_conflict,
        conflicts=booking_payloads(result.conflicts),
    )


@router.get(
    "/machines/{machine_id}/check-availability",
    response_model=MachineAvailabilityResponse,
    status_code=status.HTTP_200_OK,
    summary="Check machine availability",
)
async def check_machine_availability(
    machine_id: UUID,
    principal: Reader,
    db: ClinicSession,
    date: dt.date = Query(...),
    start_time: dt.time = Query(...),
    end_time: dt.time = Query(...),
    exclude_appointment_id: UUID | None = Query(None),
) -> MachineAvailabilityResponse:
    """
    Check whether a machine is free in a window.

    Args:
        machine_id: Machine ID
        principal: Authenticated principal
        db: Clinic database session
        date: Calendar date
        start_time: Window start (HH:MM)
        end_time: Window end (HH:MM)
        exclude_appointment_id: Booking to ignore

    Returns:
        Availability with the overlapping bookings
    """
    window = _window(start_time, end_time)
    await ResourceService(db).ensure_machine(machine_id)

    conflicts = await ConflictService(db).check_machine(
        machine_id,
        date,
        window,
        exclude_ids=[exclude_appointment_id] if exclude_appointment_id else [],
    )
    return MachineAvailabilityResponse(
        machine_id=machine_id,
        date=date,
        start_time=window.start,
        end_time=window.end,
        available=not conflicts,
        conflicts=booking_payloads(conflicts),
    )


@router.get(
    "/patients/{patient_id}/check-overlap",
    response_model=PatientOverlapResponse,
    status_code=status.HTTP_200_OK,
    summary="Check patient overlap",
)
async def check_patient_overlap(
    patient_id: UUID,
    principal: Reader,
    db: ClinicSession,
    date: dt.date | None = Query(None),
    start_time: dt.time | None = Query(None),
    end_time: dt.time | None = Query(None),
    segments: str | None = Query(None, description="JSON list of {date, start_time, end_time}"),
    exclude_appointment_ids: list[UUID] = Query([]),
) -> PatientOverlapResponse:
    """
    Check one window or several proposed segments for a patient at once.

    Args:
        patient_id: Patient ID
        principal: Authenticated principal
        db: Clinic database session
        date: Calendar date of a single window
        start_time: Single window start
        end_time: Single window end
        segments: JSON-encoded list of windows, checked together
        exclude_appointment_ids: Bookings to ignore, e.g. a group being moved

    Returns:
        Whether the patient is busy, with the overlapping bookings
    """
    proposed: list[tuple[dt.date, TimeWindow]] = []
    if segments:
        try:
            parsed = _patient_segments.validate_json(segments)
        except ValidationError as e:
            raise ValidationException(
                "Invalid segments", details={"errors": e.errors(include_url=False)}
            ) from e
        proposed.extend((s.date, TimeWindow(s.start_time, s.end_time)) for s in parsed)
    if date and start_time and end_time:
        proposed.append((date, _window(start_time, end_time)))
    if not proposed:
        raise ValidationException("Provide date, start_time and end_time, or segments")

    await ResourceService(db).ensure_patient(patient_id)
    conflicts = await ConflictService(db).check_patient(
        patient_id, proposed, exclude_ids=exclude_appointment_ids
    )
    return PatientOverlapResponse(
        patient_id=patient_id,
        has_overlap=bool(conflicts),
        conflicts=booking_payloads(conflicts),
    )
