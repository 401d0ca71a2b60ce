"""Clinic configuration: operating hours, closed dates and slot settings."""

from datetime import date
from typing import Any

import structlog
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.config import settings
from app.core.redis_client import CacheManager, clinic_cache_key
from app.models.clinic_settings import clinic_settings
from app.scheduling.slots import OperatingRange
from app.scheduling.time_utils import (
    MINUTES_PER_DAY,
    minutes_to_time,
    parse_date,
    parse_time,
    time_to_minutes,
)

logger = structlog.get_logger(__name__)

WEEKDAY_NAMES = ("monday", "tuesday", "wednesday", "thursday", "friday", "saturday", "sunday")

# Used when a clinic has no settings row, or no entry for a weekday
DEFAULT_OPERATING_HOURS: dict[str, dict[str, Any]] = {
    "monday": {"enabled": True, "start": "08:00", "end": "18:00"},
    "tuesday": {"enabled": True, "start": "08:00", "end": "18:00"},
    "wednesday": {"enabled": True, "start": "08:00", "end": "18:00"},
    "thursday": {"enabled": True, "start": "08:00", "end": "18:00"},
    "friday": {"enabled": True, "start": "08:00", "end": "17:00"},
    "saturday": {"enabled": True, "start": "09:00", "end": "13:00"},
    "sunday": {"enabled": False},
}


def parse_day_hours(day_hours: dict[str, Any] | None) -> list[OperatingRange] | None:
    """
    Turn one weekday's configuration into ordered ranges.

    Accepts ``{enabled, start, end}`` or the lunch-break form
    ``{enabled, hasLunchBreak, morning: {start, end}, afternoon: {start, end}}``.

    Returns:
        Ranges, an empty list when the day is disabled, or None when the
        entry is missing or unusable
    """
    if not day_hours:
        return None
    if not day_hours.get("enabled", False):
        return []

    if day_hours.get("start") and day_hours.get("end"):
        return [OperatingRange(parse_time(day_hours["start"]), parse_time(day_hours["end"]))]

    morning = day_hours.get("morning") or {}
    afternoon = day_hours.get("afternoon") or {}
    ranges: list[OperatingRange] = []
    if morning.get("start") and morning.get("end"):
        ranges.append(OperatingRange(parse_time(morning["start"]), parse_time(morning["end"])))
    if day_hours.get("hasLunchBreak") and afternoon.get("start") and afternoon.get("end"):
        ranges.append(OperatingRange(parse_time(afternoon["start"]), parse_time(afternoon["end"])))

    return ranges or None


def extend_after_hours(ranges: list[OperatingRange], minutes: int) -> list[OperatingRange]:
    """Let the last range of the day run ``minutes`` past its close."""
    if not ranges:
        return ranges
    last = ranges[-1]
    extended = min(time_to_minutes(last.end) + minutes, MINUTES_PER_DAY - 1)
    return [*ranges[:-1], OperatingRange(last.start, last.end, minutes_to_time(extended))]


def find_closed_date(closed_dates: list[Any] | None, day: date) -> dict[str, Any] | None:
    """Return the closed-date entry matching ``day``, if any."""
    for entry in closed_dates or []:
        raw = entry.get("date") if isinstance(entry, dict) else entry
        try:
            if raw and parse_date(raw) == day:
                return entry if isinstance(entry, dict) else {"date": raw}
        except ValueError:
            logger.warning("invalid_closed_date_entry", entry=entry)
    return None


class ClinicSettingsService:
    """Read clinic configuration, with an optional Redis cache in front."""

    def __init__(
        self,
        db: AsyncSession,
        cache_manager: CacheManager | None = None,
        clinic_id: str | None = None,
    ):
        """Initialize service with database session and optional cache."""
        self.db = db
        self.cache = cache_manager
        self.clinic_id = clinic_id

    async def get_settings(self) -> dict[str, Any]:
        """
        Load the clinic's settings row.

        Returns:
            Dict with ``operating_hours``, ``slot_settings`` and
            ``closed_dates`` (each possibly None when not configured)
        """
        cache_key = None
        if self.cache is not None and self.clinic_id is not None:
            cache_key = clinic_cache_key(self.clinic_id, "settings")
            cached = self.cache.get_json(cache_key)
            if cached:
                return cached

        stmt = select(
            clinic_settings.c.operating_hours,
            clinic_settings.c.slot_settings,
            clinic_settings.c.closed_dates,
        ).limit(1)
        result = await self.db.execute(stmt)
        row = result.fetchone()

        if row is None:
            logger.debug("clinic_settings_missing_using_defaults", clinic_id=self.clinic_id)
            data: dict[str, Any] = {
                "operating_hours": None,
                "slot_settings": None,
                "closed_dates": None,
            }
        else:
            data = dict(row._mapping)

        if cache_key:
            self.cache.set_json(cache_key, data, ttl=settings.clinic_settings_cache_ttl)
        return data

    async def get_slot_interval(self) -> int:
        """Minutes between candidate slot starts."""
        slot_settings = (await self.get_settings()).get("slot_settings") or {}
        interval = slot_settings.get("slotInterval")
        if isinstance(interval, int) and interval > 0:
            return interval
        return settings.default_slot_interval_minutes

    async def get_closed_reason(self, day: date) -> str | None:
        """
        Check the exceptional closures list for a date.

        Returns:
            The closure reason, or None when the date is not listed
        """
        data = await self.get_settings()
        closed = find_closed_date(data.get("closed_dates"), day)
        if closed is None:
            return None
        return closed.get("reason") or "Clinic closed"

    async def get_operating_ranges(
        self,
        day: date,
        allow_after_hours: bool = False,
    ) -> list[OperatingRange]:
        """
        Bookable ranges of the clinic on a date.

        Args:
            day: Calendar date
            allow_after_hours: Extend the last range for after-hours booking

        Returns:
            Ranges in time order; empty when closed
        """
        data = await self.get_settings()
        if find_closed_date(data.get("closed_dates"), day) is not None:
            return []

        # weekday entries missing from the clinic's config use the defaults
        weekday = WEEKDAY_NAMES[day.weekday()]
        operating_hours = data.get("operating_hours") or {}
        ranges = parse_day_hours(operating_hours.get(weekday))
        if ranges is None:
            ranges = parse_day_hours(DEFAULT_OPERATING_HOURS[weekday]) or []

        if allow_after_hours:
            ranges = extend_after_hours(ranges, settings.after_hours_extension_minutes)
        return ranges
