"""Tests for slot search against clinic and provider hours."""

from datetime import time, timedelta

from sqlalchemy import insert

from app.models.practitioner_weekly_availability import practitioner_weekly_availability
from app.schemas.planning import (
    AppointmentCreate,
    MultiSlotSearchRequest,
    SlotSearchQuery,
)
from app.services.group_service import GroupService
from app.services.slot_service import SlotService


def starts(response) -> list[str]:
    return [f"{s.start_time:%H:%M}" for s in response.slots]


async def book_laser(db_session, clinic, day, start, machine, patient=None):
    return await GroupService(db_session).create_appointment(
        AppointmentCreate(
            category="treatment",
            patient_id=patient or clinic.other_patient,
            date=day,
            start_time=start,
            treatment_id=clinic.laser,
            machine_id=machine,
        )
    )


async def test_treatment_slots_cover_the_day(db_session, clinic, planning_date) -> None:
    """08:00-12:00 at 15 minutes, 30 minute laser: 08:00 to 11:30."""
    response = await SlotService(db_session).search(
        SlotSearchQuery(date=planning_date, treatment_id=clinic.laser)
    )

    assert response.duration == 30
    assert response.slot_interval == 15
    assert not response.closed
    assert starts(response)[0] == "08:00"
    assert starts(response)[-1] == "11:30"
    assert len(response.slots) == 15
    assert response.slots[0].machine_id == clinic.laser_a
    assert response.slots[0].available_machine_ids == [clinic.laser_a, clinic.laser_b]


async def test_busy_machine_falls_back_to_next(db_session, clinic, planning_date) -> None:
    await book_laser(db_session, clinic, planning_date, "09:00", clinic.laser_a)

    response = await SlotService(db_session).search(
        SlotSearchQuery(date=planning_date, treatment_id=clinic.laser)
    )
    by_start = {f"{s.start_time:%H:%M}": s for s in response.slots}

    assert by_start["09:00"].machine_id == clinic.laser_b
    assert by_start["09:00"].available_machine_ids == [clinic.laser_b]
    assert by_start["09:30"].machine_id == clinic.laser_a


async def test_machine_search_skips_booked_starts(db_session, clinic, planning_date) -> None:
    await book_laser(db_session, clinic, planning_date, "09:00", clinic.laser_a)

    response = await SlotService(db_session).search(
        SlotSearchQuery(date=planning_date, machine_id=clinic.laser_a, duration=30)
    )

    assert "09:00" not in starts(response)
    assert "08:45" not in starts(response)
    assert "08:30" in starts(response)
    assert "09:30" in starts(response)


async def test_search_is_deterministic(db_session, clinic, planning_date) -> None:
    await book_laser(db_session, clinic, planning_date, "10:00", clinic.laser_b)
    service = SlotService(db_session)
    query = SlotSearchQuery(date=planning_date, treatment_id=clinic.laser)

    assert await service.search(query) == await service.search(query)


async def test_closed_date(db_session, clinic, closed_date) -> None:
    response = await SlotService(db_session).search(
        SlotSearchQuery(date=closed_date, treatment_id=clinic.laser)
    )

    assert response.closed
    assert response.closed_reason == "Public holiday"
    assert response.slots == []


async def test_day_without_hours(db_session, clinic, planning_date) -> None:
    sunday = planning_date - timedelta(days=1)

    response = await SlotService(db_session).search(
        SlotSearchQuery(date=sunday, treatment_id=clinic.laser)
    )

    assert response.closed
    assert response.slots == []


async def test_duration_longer_than_day(db_session, clinic, planning_date) -> None:
    response = await SlotService(db_session).search(
        SlotSearchQuery(date=planning_date, treatment_id=clinic.laser, duration=300)
    )

    assert response.slots == []
    assert not response.closed


async def test_after_hours_extension(db_session, clinic, planning_date) -> None:
    response = await SlotService(db_session).search(
        SlotSearchQuery(date=planning_date, treatment_id=clinic.laser, allow_after_hours=True)
    )
    by_start = {f"{s.start_time:%H:%M}": s for s in response.slots}

    assert not by_start["11:30"].after_hours
    assert by_start["11:45"].after_hours
    assert starts(response)[-1] == "14:30"


async def test_treatment_without_machine_config_warns(db_session, clinic, planning_date) -> None:
    response = await SlotService(db_session).search(
        SlotSearchQuery(date=planning_date, treatment_id=clinic.unconfigured)
    )

    assert [w.code for w in response.warnings] == ["no_machine_config"]
    assert response.warnings[0].treatment_id == clinic.unconfigured
    assert len(response.slots) == 15


async def test_patient_constraint(db_session, clinic, planning_date) -> None:
    await book_laser(
        db_session, clinic, planning_date, "09:00", clinic.laser_a, patient=clinic.patient
    )

    response = await SlotService(db_session).search(
        SlotSearchQuery(
            date=planning_date,
            treatment_id=clinic.massage,
            patient_id=clinic.patient,
        )
    )

    assert "09:00" not in starts(response)
    assert "08:45" not in starts(response)
    assert "09:30" in starts(response)


async def test_consultation_uses_provider_hours(db_session, clinic, planning_date) -> None:
    """Provider availability replaces clinic hours and is split at the break."""
    await db_session.execute(
        insert(practitioner_weekly_availability).values(
            provider_id=clinic.provider,
            day_of_week=planning_date.weekday(),
            start_time=time(9, 0),
            end_time=time(11, 0),
            break_start=time(10, 0),
            break_end=time(10, 30),
        )
    )
    await db_session.commit()

    response = await SlotService(db_session).search(
        SlotSearchQuery(date=planning_date, provider_id=clinic.provider, duration=30)
    )

    assert starts(response) == ["09:00", "09:15", "09:30", "10:30"]
    assert all(s.provider_id == clinic.provider for s in response.slots)


async def test_multi_treatment_slots(db_session, clinic, planning_date) -> None:
    """Laser then facial: every start places both segments back to back."""
    response = await SlotService(db_session).search_multi_treatment(
        MultiSlotSearchRequest(
            date=planning_date,
            treatments=[{"treatment_id": clinic.laser}, {"treatment_id": clinic.facial}],
        )
    )

    assert response.duration == 75
    assert len(response.slots) == 12
    first = response.slots[0]
    assert [s.sequence for s in first.segments] == [1, 2]
    assert first.segments[1].start_time == time(8, 30)
    assert first.segments[1].machine_id == clinic.facial_machine
    assert first.end_time == time(9, 15)


async def test_multi_treatment_rejects_at_failing_segment(
    db_session, clinic, planning_date
) -> None:
    await GroupService(db_session).create_appointment(
        AppointmentCreate(
            category="treatment",
            patient_id=clinic.other_patient,
            date=planning_date,
            start_time="08:30",
            duration=30,
            treatment_id=clinic.facial,
            machine_id=clinic.facial_machine,
        )
    )

    response = await SlotService(db_session).search_multi_treatment(
        MultiSlotSearchRequest(
            date=planning_date,
            segments=[{"treatment_id": clinic.laser}, {"treatment_id": clinic.facial}],
        )
    )

    # the facial segment of an 08:00 start would sit at 08:30-09:15
    assert "08:00" not in starts(response)
    assert starts(response)[0] == "08:30"
