"""Tests for the in-memory slot sweep."""

from datetime import time
from uuid import uuid4

from app.scheduling.bookings import Booking, ResourceKind
from app.scheduling.provider_rules import AppointmentCategory
from app.scheduling.slots import (
    OperatingRange,
    SegmentRequirement,
    sweep_slots,
    sweep_starts,
)
from app.scheduling.time_utils import TimeWindow, format_time

MORNING = [OperatingRange(time(8, 0), time(10, 0))]


def booking(start: str, end: str, category=AppointmentCategory.TREATMENT) -> Booking:
    h1, m1 = map(int, start.split(":"))
    h2, m2 = map(int, end.split(":"))
    return Booking(id=uuid4(), category=category, window=TimeWindow(time(h1, m1), time(h2, m2)))


def starts(candidates) -> list[str]:
    return [format_time(c.start) for c in candidates]


def test_sweep_starts_fit_before_close() -> None:
    """The last start leaves room for the whole duration."""
    result = [format_time(s) for s, _ in sweep_starts(MORNING, 45, 15)]
    assert result[0] == "08:00"
    assert result[-1] == "09:15"


def test_duration_longer_than_day_yields_nothing() -> None:
    assert list(sweep_starts(MORNING, 180, 15)) == []


def test_ranges_are_swept_separately() -> None:
    """No candidate straddles a lunch break."""
    ranges = [
        OperatingRange(time(8, 0), time(9, 0)),
        OperatingRange(time(10, 0), time(11, 0)),
    ]
    result = [format_time(s) for s, _ in sweep_starts(ranges, 30, 30)]
    assert result == ["08:00", "08:30", "10:00", "10:30"]


def test_after_hours_starts_are_flagged() -> None:
    ranges = [OperatingRange(time(8, 0), time(9, 0), extended_end=time(10, 0))]
    flags = {format_time(s): after for s, after in sweep_starts(ranges, 30, 30)}
    assert flags == {"08:00": False, "08:30": False, "09:00": True, "09:30": True}


def test_machine_bookings_remove_starts() -> None:
    machine = uuid4()
    bookings = {(ResourceKind.MACHINE, machine): [booking("08:30", "09:00")]}
    segments = [SegmentRequirement(30, machine_ids=(machine,))]

    result = starts(sweep_slots(MORNING, segments, bookings, 30))
    assert result == ["08:00", "09:00", "09:30"]


def test_first_free_machine_is_proposed() -> None:
    """Machines are tried in the given order; every free one is listed."""
    laser_a, laser_b = uuid4(), uuid4()
    bookings = {(ResourceKind.MACHINE, laser_a): [booking("08:00", "08:30")]}
    segments = [SegmentRequirement(30, machine_ids=(laser_a, laser_b))]

    candidates = list(sweep_slots(MORNING, segments, bookings, 30))
    assert candidates[0].machine_id == laser_b
    assert candidates[0].available_machine_ids == (laser_b,)
    assert candidates[1].machine_id == laser_a
    assert candidates[1].available_machine_ids == (laser_a, laser_b)


def test_provider_treatment_does_not_block_treatment() -> None:
    provider = uuid4()
    bookings = {(ResourceKind.PROVIDER, provider): [booking("08:00", "10:00")]}

    treatment = [SegmentRequirement(30, provider_id=provider)]
    consultation = [
        SegmentRequirement(30, category=AppointmentCategory.CONSULTATION, provider_id=provider)
    ]

    assert len(list(sweep_slots(MORNING, treatment, bookings, 30))) == 4
    assert list(sweep_slots(MORNING, consultation, bookings, 30)) == []


def test_multi_segment_chain_rejected_at_failing_segment() -> None:
    """Every back-to-back segment must pass for a start to be kept."""
    first, second = uuid4(), uuid4()
    bookings = {(ResourceKind.MACHINE, second): [booking("08:30", "09:15")]}
    segments = [
        SegmentRequirement(30, machine_ids=(first,)),
        SegmentRequirement(30, machine_ids=(second,)),
    ]

    candidates = list(sweep_slots(MORNING, segments, bookings, 30))
    assert starts(candidates) == ["09:00"]
    assert [str(p.window) for p in candidates[0].segments] == ["09:00-09:30", "09:30-10:00"]


def test_patient_constraint() -> None:
    patient = uuid4()
    bookings = {(ResourceKind.PATIENT, patient): [booking("09:00", "09:30")]}
    segments = [SegmentRequirement(30)]

    assert starts(sweep_slots(MORNING, segments, bookings, 30, patient)) == [
        "08:00",
        "08:30",
        "09:30",
    ]


def test_sweep_is_deterministic() -> None:
    machine = uuid4()
    bookings = {(ResourceKind.MACHINE, machine): [booking("08:15", "08:45")]}
    segments = [SegmentRequirement(20, machine_ids=(machine,))]

    assert list(sweep_slots(MORNING, segments, bookings, 15)) == list(
        sweep_slots(MORNING, segments, bookings, 15)
    )
