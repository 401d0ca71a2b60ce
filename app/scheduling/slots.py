"""Pure slot sweep over operating ranges.

The sweep never touches the database: callers prefetch the day's bookings
for every resource involved and hand them in as a ``BookingIndex``. This
keeps a search deterministic for a given calendar snapshot.
"""

from collections.abc import Iterator, Sequence
from dataclasses import dataclass, field
from datetime import time
from uuid import UUID

from app.scheduling.bookings import (
    Booking,
    ResourceKind,
    overlapping,
    patient_overlapping,
    provider_blocking,
)
from app.scheduling.provider_rules import AppointmentCategory
from app.scheduling.time_utils import (
    MINUTES_PER_DAY,
    TimeWindow,
    chain_windows,
    minutes_to_time,
    time_to_minutes,
)

BookingIndex = dict[tuple[ResourceKind, UUID], list[Booking]]


@dataclass(frozen=True)
class OperatingRange:
    """Bookable range of a day; ``extended_end`` allows after-hours slots."""

    start: time
    end: time
    extended_end: time | None = None


@dataclass(frozen=True)
class SegmentRequirement:
    """What one segment of a candidate slot needs to be free."""

    duration_minutes: int
    category: AppointmentCategory = AppointmentCategory.TREATMENT
    machine_ids: tuple[UUID, ...] = ()
    provider_id: UUID | None = None
    treatment_id: UUID | None = None


@dataclass(frozen=True)
class SegmentPlacement:
    """A segment placed at a concrete window with the machine it would use."""

    window: TimeWindow
    duration_minutes: int
    machine_id: UUID | None = None
    available_machine_ids: tuple[UUID, ...] = ()
    provider_id: UUID | None = None
    treatment_id: UUID | None = None


@dataclass(frozen=True)
class SlotCandidate:
    """A start time at which every segment fits."""

    start: time
    end: time
    after_hours: bool = False
    segments: tuple[SegmentPlacement, ...] = field(default_factory=tuple)

    @property
    def machine_id(self) -> UUID | None:
        return self.segments[0].machine_id if self.segments else None

    @property
    def available_machine_ids(self) -> tuple[UUID, ...]:
        return self.segments[0].available_machine_ids if self.segments else ()


def sweep_starts(
    ranges: Sequence[OperatingRange],
    total_duration: int,
    interval: int,
) -> Iterator[tuple[time, bool]]:
    """
    Yield ``(start, after_hours)`` for every interval step whose window fits.

    Args:
        ranges: Operating ranges of the day, in order
        total_duration: Minutes the whole chain needs
        interval: Step between candidate starts

    Yields:
        Candidate start and whether it runs past the regular close
    """
    if total_duration <= 0 or interval <= 0:
        return

    for operating_range in ranges:
        opens = time_to_minutes(operating_range.start)
        closes = time_to_minutes(operating_range.end)
        limit = closes
        if operating_range.extended_end is not None:
            limit = max(closes, time_to_minutes(operating_range.extended_end))
        # windows must end before midnight
        limit = min(limit, MINUTES_PER_DAY - 1)

        minute = opens
        while minute + total_duration <= limit:
            yield minutes_to_time(minute), minute + total_duration > closes
            minute += interval


def place_segments(
    start: time,
    segments: Sequence[SegmentRequirement],
    bookings: BookingIndex,
    patient_id: UUID | None = None,
) -> tuple[SegmentPlacement, ...] | None:
    """
    Try to place back-to-back segments from ``start``.

    Stops at the first segment that cannot be placed.

    Returns:
        The placements, or None if any segment (or the patient) is busy
    """
    windows = chain_windows(start, [s.duration_minutes for s in segments])
    placements: list[SegmentPlacement] = []

    for segment, window in zip(segments, windows):
        if segment.provider_id is not None:
            provider_bookings = bookings.get((ResourceKind.PROVIDER, segment.provider_id), [])
            if provider_blocking(provider_bookings, window, segment.category):
                return None

        free_machines = tuple(
            machine_id
            for machine_id in segment.machine_ids
            if not overlapping(bookings.get((ResourceKind.MACHINE, machine_id), []), window)
        )
        if segment.machine_ids and not free_machines:
            return None

        placements.append(
            SegmentPlacement(
                window=window,
                duration_minutes=segment.duration_minutes,
                machine_id=free_machines[0] if free_machines else None,
                available_machine_ids=free_machines,
                provider_id=segment.provider_id,
                treatment_id=segment.treatment_id,
            )
        )

    if patient_id is not None:
        patient_bookings = bookings.get((ResourceKind.PATIENT, patient_id), [])
        if patient_overlapping(patient_bookings, windows):
            return None

    return tuple(placements)


def sweep_slots(
    ranges: Sequence[OperatingRange],
    segments: Sequence[SegmentRequirement],
    bookings: BookingIndex,
    interval: int,
    patient_id: UUID | None = None,
) -> Iterator[SlotCandidate]:
    """
    Lazily yield every start at which all segments fit, in time order.

    Args:
        ranges: Operating ranges of the day
        segments: Ordered segment requirements (one for a single booking)
        bookings: Prefetched bookings per resource
        interval: Minutes between candidate starts
        patient_id: Optional patient who must also be free

    Yields:
        Slot candidates
    """
    total = sum(s.duration_minutes for s in segments)
    for start, after_hours in sweep_starts(ranges, total, interval):
        placements = place_segments(start, segments, bookings, patient_id)
        if placements is None:
            continue
        yield SlotCandidate(
            start=start,
            end=placements[-1].window.end,
            after_hours=after_hours,
            segments=placements,
        )
