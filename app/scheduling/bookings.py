"""In-memory view of existing bookings and the overlap rules applied to them."""

from collections.abc import Iterable
from dataclasses import dataclass
from enum import Enum
from typing import Any
from uuid import UUID

from app.scheduling.provider_rules import AppointmentCategory, provider_blocks
from app.scheduling.time_utils import TimeWindow, format_time, parse_time


class ResourceKind(str, Enum):
    """Contended resources a booking can hold."""

    MACHINE = "machine"
    PROVIDER = "provider"
    PATIENT = "patient"


@dataclass(frozen=True)
class Booking:
    """Non-cancelled appointment occupying a resource on one day."""

    id: UUID
    category: AppointmentCategory
    window: TimeWindow
    title: str | None = None
    patient_name: str | None = None

    @classmethod
    def from_row(cls, row: Any) -> "Booking":
        """Build a booking from an appointments row (optionally joined to patients)."""
        mapping = row._mapping
        first_name = mapping.get("patient_first_name")
        last_name = mapping.get("patient_last_name")
        patient_name = " ".join(p for p in (first_name, last_name) if p) or None
        return cls(
            id=mapping["id"],
            category=AppointmentCategory(mapping["category"]),
            window=TimeWindow(parse_time(mapping["start_time"]), parse_time(mapping["end_time"])),
            title=mapping.get("title"),
            patient_name=patient_name,
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "category": self.category.value,
            "start_time": format_time(self.window.start),
            "end_time": format_time(self.window.end),
            "title": self.title,
            "patient_name": self.patient_name,
        }


def overlapping(bookings: Iterable[Booking], window: TimeWindow) -> list[Booking]:
    """Bookings whose window intersects ``window``."""
    return [b for b in bookings if b.window.overlaps(window)]


def provider_blocking(
    bookings: Iterable[Booking],
    window: TimeWindow,
    new_category: AppointmentCategory | str,
) -> list[Booking]:
    """Overlapping provider bookings that forbid a new booking of ``new_category``."""
    return [b for b in overlapping(bookings, window) if provider_blocks(b.category, new_category)]


def patient_overlapping(bookings: Iterable[Booking], windows: Iterable[TimeWindow]) -> list[Booking]:
    """Patient bookings that intersect any of the proposed windows, without duplicates."""
    windows = list(windows)
    return [b for b in bookings if any(b.window.overlaps(w) for w in windows)]
