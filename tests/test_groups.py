"""Tests for atomic group creation, rescheduling and cancellation."""

from datetime import date, time

import pytest
from sqlalchemy import func, select, update

from app.core.exceptions import (
    NotFoundException,
    ResourceConflictException,
    StateConflictException,
    ValidationException,
)
from app.models.appointments import appointments
from app.models.products_services import products_services
from app.models.scheduled_jobs import scheduled_jobs
from app.schemas.planning import AppointmentCreate, GroupCreate, GroupReschedule
from app.services.group_service import GroupService


def three_segment_group(clinic, day: date, start: str = "09:00") -> GroupCreate:
    return GroupCreate(
        patient_id=clinic.patient,
        date=day,
        start_time=start,
        segments=[
            {"treatment_id": clinic.laser, "machine_id": clinic.laser_a},
            {"treatment_id": clinic.massage},
            {"treatment_id": clinic.facial, "machine_id": clinic.facial_machine},
        ],
    )


async def count_patient_rows(db_session, patient_id) -> int:
    result = await db_session.execute(
        select(func.count()).select_from(appointments).where(appointments.c.patient_id == patient_id)
    )
    return result.scalar_one()


async def test_create_group_chains_segments(db_session, clinic, planning_date) -> None:
    """09:00 with [30, 20, 45] gives three back-to-back linked bookings."""
    service = GroupService(db_session)

    group = await service.create_group(three_segment_group(clinic, planning_date))

    windows = [(a.start_time, a.end_time) for a in group.appointments]
    assert windows == [
        (time(9, 0), time(9, 30)),
        (time(9, 30), time(9, 50)),
        (time(9, 50), time(10, 35)),
    ]
    first, second, third = group.appointments
    assert [a.link_sequence for a in group.appointments] == [1, 2, 3]
    assert first.linked_appointment_id is None
    assert second.linked_appointment_id == first.id
    assert third.linked_appointment_id == first.id
    assert group.group_id == first.id
    assert group.total_duration == 95
    assert all(a.is_linked for a in group.appointments)


async def test_overlappable_segment_holds_no_machine(db_session, clinic, planning_date) -> None:
    service = GroupService(db_session)

    group = await service.create_group(three_segment_group(clinic, planning_date))

    assert group.appointments[0].machine_id == clinic.laser_a
    assert group.appointments[1].machine_id is None
    assert group.appointments[1].title == "Massage"


async def test_group_is_all_or_nothing(db_session, clinic, planning_date) -> None:
    """A conflict on the last segment leaves no member behind."""
    service = GroupService(db_session)
    blocker = await service.create_appointment(
        AppointmentCreate(
            category="treatment",
            patient_id=clinic.other_patient,
            date=planning_date,
            start_time="10:00",
            duration=30,
            treatment_id=clinic.facial,
            machine_id=clinic.facial_machine,
        )
    )

    with pytest.raises(ResourceConflictException) as exc_info:
        await service.create_group(three_segment_group(clinic, planning_date))

    error = exc_info.value
    assert error.segment_index == 2
    assert error.resource_kind == "machine"
    assert error.resource_id == clinic.facial_machine
    assert error.conflicting_ids == [str(blocker.id)]
    assert await count_patient_rows(db_session, clinic.patient) == 0


async def test_group_runs_past_midnight_is_rejected(db_session, clinic, planning_date) -> None:
    service = GroupService(db_session)

    with pytest.raises(ValidationException, match="before midnight"):
        await service.create_group(three_segment_group(clinic, planning_date, start="23:00"))
    assert await count_patient_rows(db_session, clinic.patient) == 0


async def test_treatment_without_machine_is_rejected(db_session, clinic, planning_date) -> None:
    service = GroupService(db_session)
    data = GroupCreate(
        patient_id=clinic.patient,
        date=planning_date,
        start_time="09:00",
        segments=[{"treatment_id": clinic.laser}],
    )

    with pytest.raises(ValidationException, match="requires a machine"):
        await service.create_group(data)


@pytest.mark.parametrize("catalog_duration", [600, 3])
async def test_catalog_duration_out_of_range_is_rejected(
    db_session, clinic, planning_date, catalog_duration
) -> None:
    """The catalog duration gets the same 5-480 bounds as a requested one."""
    await db_session.execute(
        update(products_services)
        .where(products_services.c.id == clinic.facial)
        .values(duration=catalog_duration)
    )
    await db_session.commit()
    service = GroupService(db_session)

    with pytest.raises(ValidationException) as exc_info:
        await service.create_group(three_segment_group(clinic, planning_date))

    assert exc_info.value.status_code == 422
    assert exc_info.value.details == {"segment_index": 2, "duration": catalog_duration}
    assert await count_patient_rows(db_session, clinic.patient) == 0


async def test_unknown_patient_is_not_found(db_session, clinic, planning_date) -> None:
    service = GroupService(db_session)
    data = three_segment_group(clinic, planning_date)
    data.patient_id = clinic.laser

    with pytest.raises(NotFoundException, match="Patient not found"):
        await service.create_group(data)


async def test_create_group_queues_confirmation(db_session, clinic, planning_date) -> None:
    """One confirmation job is queued for the first member."""
    service = GroupService(db_session)

    group = await service.create_group(three_segment_group(clinic, planning_date))

    result = await db_session.execute(select(scheduled_jobs))
    jobs = result.fetchall()
    assert len(jobs) == 1
    assert jobs[0].reference_id == group.group_id
    assert jobs[0].job_type == "appointment_confirmation"
    assert jobs[0].status == "pending"


async def test_get_group_from_any_member(db_session, clinic, planning_date) -> None:
    service = GroupService(db_session)
    created = await service.create_group(three_segment_group(clinic, planning_date))

    fetched = await service.get_group(created.appointments[2].id)

    assert fetched.group_id == created.group_id
    assert [a.id for a in fetched.appointments] == [a.id for a in created.appointments]


async def test_get_unknown_group(db_session, clinic) -> None:
    service = GroupService(db_session)

    with pytest.raises(NotFoundException):
        await service.get_group(clinic.patient)


async def test_reschedule_group_overlapping_itself(db_session, clinic, planning_date) -> None:
    """Moving by 15 minutes only overlaps the group's own bookings."""
    service = GroupService(db_session)
    created = await service.create_group(three_segment_group(clinic, planning_date))

    moved = await service.reschedule_group(
        created.group_id, GroupReschedule(start_time="09:15", notes="Moved by phone")
    )

    assert [a.start_time for a in moved.appointments] == [time(9, 15), time(9, 45), time(10, 5)]
    assert moved.end_time == time(10, 50)
    assert moved.appointments[0].notes == "Moved by phone"
    assert moved.appointments[1].notes is None


async def test_reschedule_group_conflict_keeps_group(db_session, clinic, planning_date) -> None:
    service = GroupService(db_session)
    created = await service.create_group(three_segment_group(clinic, planning_date))
    await service.create_appointment(
        AppointmentCreate(
            category="treatment",
            patient_id=clinic.other_patient,
            date=planning_date,
            start_time="11:00",
            treatment_id=clinic.laser,
            machine_id=clinic.laser_a,
        )
    )

    with pytest.raises(ResourceConflictException) as exc_info:
        await service.reschedule_group(created.group_id, GroupReschedule(start_time="11:00"))

    assert exc_info.value.segment_index == 0
    unchanged = await service.get_group(created.group_id)
    assert unchanged.start_time == time(9, 0)


async def test_reschedule_appends_segments(db_session, clinic, planning_date) -> None:
    service = GroupService(db_session)
    created = await service.create_group(three_segment_group(clinic, planning_date))

    extended = await service.reschedule_group(
        created.group_id,
        GroupReschedule(new_treatments=[{"treatment_id": clinic.laser, "machine_id": clinic.laser_b}]),
    )

    assert len(extended.appointments) == 4
    appended = extended.appointments[3]
    assert appended.link_sequence == 4
    assert appended.linked_appointment_id == created.group_id
    assert (appended.start_time, appended.end_time) == (time(10, 35), time(11, 5))


async def test_append_to_standalone_booking_makes_a_group(db_session, clinic, planning_date) -> None:
    service = GroupService(db_session)
    single = await service.create_appointment(
        AppointmentCreate(
            category="treatment",
            patient_id=clinic.patient,
            date=planning_date,
            start_time="09:00",
            treatment_id=clinic.laser,
            machine_id=clinic.laser_a,
        )
    )
    assert single.link_sequence is None

    group = await service.reschedule_group(
        single.id, GroupReschedule(new_segments=[{"treatment_id": clinic.massage}])
    )

    assert [a.link_sequence for a in group.appointments] == [1, 2]
    assert group.appointments[1].linked_appointment_id == single.id


async def test_cancel_group_twice(db_session, clinic, planning_date) -> None:
    """The second cancel is a state conflict and members stay cancelled."""
    service = GroupService(db_session)
    created = await service.create_group(three_segment_group(clinic, planning_date))

    cancelled = await service.cancel_group(created.group_id, reason="Patient sick")
    assert {a.status.value for a in cancelled.appointments} == {"cancelled"}
    assert all(a.cancelled_at is not None for a in cancelled.appointments)
    assert cancelled.appointments[0].notes == "Cancelled: Patient sick"

    with pytest.raises(StateConflictException, match="already cancelled"):
        await service.cancel_group(created.appointments[1].id)

    again = await service.get_group(created.group_id)
    assert {a.status.value for a in again.appointments} == {"cancelled"}


async def test_cancel_group_cancels_pending_jobs(db_session, clinic, planning_date) -> None:
    service = GroupService(db_session)
    created = await service.create_group(three_segment_group(clinic, planning_date))

    await service.cancel_group(created.group_id)

    result = await db_session.execute(select(scheduled_jobs.c.status))
    assert [row.status for row in result.fetchall()] == ["cancelled"]


async def test_cancelled_group_cannot_be_rescheduled(db_session, clinic, planning_date) -> None:
    service = GroupService(db_session)
    created = await service.create_group(three_segment_group(clinic, planning_date))
    await service.cancel_group(created.group_id)

    with pytest.raises(StateConflictException):
        await service.reschedule_group(created.group_id, GroupReschedule(start_time="10:00"))


async def test_cancellation_frees_the_machine(db_session, clinic, planning_date) -> None:
    service = GroupService(db_session)
    created = await service.create_group(three_segment_group(clinic, planning_date))
    await service.cancel_group(created.group_id)

    rebooked = await service.create_group(three_segment_group(clinic, planning_date))

    assert rebooked.group_id != created.group_id
    assert rebooked.start_time == time(9, 0)
