"""Slot search over clinic or provider hours."""

from collections.abc import AsyncIterator, Sequence
from dataclasses import replace
from datetime import date
from uuid import UUID

import structlog
from sqlalchemy.ext.asyncio import AsyncSession

from app.config import settings
from app.core.redis_client import CacheManager
from app.scheduling.bookings import ResourceKind
from app.scheduling.provider_rules import AppointmentCategory
from app.scheduling.slots import (
    BookingIndex,
    OperatingRange,
    SegmentRequirement,
    SlotCandidate,
    sweep_slots,
)
from app.schemas.planning import (
    MultiSlotSearchRequest,
    SlotResponse,
    SlotSearchQuery,
    SlotSearchResponse,
    SlotSegmentQuery,
    SlotSegmentResponse,
    SlotWarning,
)
from app.services.catalog_service import CatalogService
from app.services.clinic_settings_service import ClinicSettingsService, extend_after_hours
from app.services.conflict_service import ConflictService
from app.services.resource_service import ResourceService

logger = structlog.get_logger(__name__)

DEFAULT_DURATION_MINUTES = 30


class SlotService:
    """
    Finds start times at which every required resource is free.

    Bookings for the day are read once per resource, then the sweep runs in
    memory, so two searches with no writes in between return the same
    candidates.
    """

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
        self.clinic_settings = ClinicSettingsService(db, cache_manager, clinic_id)
        self.resources = ResourceService(db)

    async def _prefetch_bookings(
        self,
        appointment_date: date,
        requirements: Sequence[SegmentRequirement],
        patient_id: UUID | None,
    ) -> BookingIndex:
        keys: list[tuple[ResourceKind, UUID]] = []
        for requirement in requirements:
            keys.extend((ResourceKind.MACHINE, m) for m in requirement.machine_ids)
            if requirement.provider_id is not None:
                keys.append((ResourceKind.PROVIDER, requirement.provider_id))
        if patient_id is not None:
            keys.append((ResourceKind.PATIENT, patient_id))

        index: BookingIndex = {}
        for kind, resource_id in dict.fromkeys(keys):
            index[(kind, resource_id)] = await self.conflicts.load_bookings(
                kind, resource_id, appointment_date
            )
        return index

    async def iter_slots(
        self,
        requirements: Sequence[SegmentRequirement],
        appointment_date: date,
        ranges: Sequence[OperatingRange],
        interval: int,
        patient_id: UUID | None = None,
    ) -> AsyncIterator[SlotCandidate]:
        """
        Lazily yield candidate slots in time order.

        Args:
            requirements: Ordered segment requirements
            appointment_date: Calendar date
            ranges: Bookable ranges of the day
            interval: Minutes between candidate starts
            patient_id: Patient who must also be free

        Yields:
            Slot candidates
        """
        bookings = await self._prefetch_bookings(appointment_date, requirements, patient_id)
        for candidate in sweep_slots(ranges, requirements, bookings, interval, patient_id):
            yield candidate

    async def _ranges_for(
        self,
        appointment_date: date,
        requirements: Sequence[SegmentRequirement],
        allow_after_hours: bool,
    ) -> list[OperatingRange]:
        """Provider hours for a consultation search, clinic hours otherwise."""
        first = requirements[0]
        if first.category == AppointmentCategory.CONSULTATION and first.provider_id is not None:
            provider_ranges = await self.resources.get_provider_ranges(
                first.provider_id, appointment_date
            )
            if provider_ranges is not None:
                if allow_after_hours:
                    return extend_after_hours(
                        provider_ranges, settings.after_hours_extension_minutes
                    )
                return provider_ranges

        return await self.clinic_settings.get_operating_ranges(
            appointment_date, allow_after_hours=allow_after_hours
        )

    async def find_slots(
        self,
        requirements: Sequence[SegmentRequirement],
        appointment_date: date,
        duration: int | None = None,
        *,
        patient_id: UUID | None = None,
        allow_after_hours: bool = False,
    ) -> list[SlotCandidate]:
        """
        Enumerate candidate starts for a set of resource requirements.

        Args:
            requirements: Ordered segment requirements
            appointment_date: Calendar date
            duration: Overrides the duration of a single-segment request
            patient_id: Patient who must also be free
            allow_after_hours: Extend the day's last range

        Returns:
            Candidates in time order; empty when nothing fits or the clinic
            is closed
        """
        if not requirements:
            return []
        if duration is not None and len(requirements) == 1:
            requirements = [replace(requirements[0], duration_minutes=duration)]

        if await self.clinic_settings.get_closed_reason(appointment_date):
            return []

        ranges = await self._ranges_for(appointment_date, requirements, allow_after_hours)
        interval = await self.clinic_settings.get_slot_interval()
        return [
            candidate
            async for candidate in self.iter_slots(
                requirements, appointment_date, ranges, interval, patient_id
            )
        ]

    async def _build_requirement(
        self,
        segment: SlotSegmentQuery,
        warnings: list[SlotWarning],
    ) -> SegmentRequirement:
        """Turn a requested segment into the resources it must hold."""
        duration = segment.duration
        machine_ids: tuple[UUID, ...] = ()
        category = segment.category

        if segment.provider_id is not None:
            await self.resources.ensure_provider(segment.provider_id)

        if segment.treatment_id is not None:
            treatment = await self.catalog.require_treatment(segment.treatment_id)
            duration = duration or treatment.duration
            if treatment.is_overlappable:
                machine_ids = ()
            elif segment.machine_id is not None:
                await self.resources.ensure_machine(segment.machine_id)
                machine_ids = (segment.machine_id,)
            else:
                machine_ids = tuple(
                    await self.resources.get_treatment_machine_ids(segment.treatment_id)
                )
                if not machine_ids:
                    logger.warning(
                        "treatment_without_machine_config",
                        treatment_id=str(segment.treatment_id),
                    )
                    warnings.append(
                        SlotWarning(
                            code="no_machine_config",
                            message=f"No machine is configured for '{treatment.title}'",
                            treatment_id=segment.treatment_id,
                        )
                    )
        elif segment.machine_id is not None:
            await self.resources.ensure_machine(segment.machine_id)
            machine_ids = (segment.machine_id,)

        return SegmentRequirement(
            duration_minutes=duration or DEFAULT_DURATION_MINUTES,
            category=category,
            machine_ids=machine_ids,
            provider_id=segment.provider_id,
            treatment_id=segment.treatment_id,
        )

    async def _search(
        self,
        appointment_date: date,
        segments: list[SlotSegmentQuery],
        patient_id: UUID | None,
        allow_after_hours: bool,
    ) -> SlotSearchResponse:
        warnings: list[SlotWarning] = []
        requirements = [await self._build_requirement(s, warnings) for s in segments]
        total = sum(r.duration_minutes for r in requirements)
        interval = await self.clinic_settings.get_slot_interval()

        closed_reason = await self.clinic_settings.get_closed_reason(appointment_date)
        if closed_reason:
            return SlotSearchResponse(
                date=appointment_date,
                duration=total,
                slot_interval=interval,
                closed=True,
                closed_reason=closed_reason,
                slots=[],
                warnings=warnings,
            )

        ranges = await self._ranges_for(appointment_date, requirements, allow_after_hours)
        if not ranges:
            return SlotSearchResponse(
                date=appointment_date,
                duration=total,
                slot_interval=interval,
                closed=True,
                closed_reason="No operating hours on this day",
                slots=[],
                warnings=warnings,
            )

        candidates = [
            c
            async for c in self.iter_slots(
                requirements, appointment_date, ranges, interval, patient_id
            )
        ]
        logger.debug(
            "slot_search_completed",
            date=str(appointment_date),
            segments=len(requirements),
            candidates=len(candidates),
        )

        return SlotSearchResponse(
            date=appointment_date,
            duration=total,
            slot_interval=interval,
            slots=[self._to_slot_response(c) for c in candidates],
            warnings=warnings,
        )

    @staticmethod
    def _to_slot_response(candidate: SlotCandidate) -> SlotResponse:
        segments = [
            SlotSegmentResponse(
                sequence=i + 1,
                treatment_id=p.treatment_id,
                start_time=p.window.start,
                end_time=p.window.end,
                duration=p.duration_minutes,
                machine_id=p.machine_id,
                available_machine_ids=list(p.available_machine_ids),
                provider_id=p.provider_id,
            )
            for i, p in enumerate(candidate.segments)
        ]
        return SlotResponse(
            start_time=candidate.start,
            end_time=candidate.end,
            after_hours=candidate.after_hours,
            machine_id=candidate.machine_id,
            available_machine_ids=list(candidate.available_machine_ids),
            provider_id=candidate.segments[0].provider_id if candidate.segments else None,
            segments=segments,
        )

    async def search(self, query: SlotSearchQuery) -> SlotSearchResponse:
        """
        Single-resource slot search (treatment, consultation or machine).

        Args:
            query: Search parameters

        Returns:
            Candidate slots, possibly empty
        """
        category = query.category
        if category is None:
            category = (
                AppointmentCategory.CONSULTATION
                if query.treatment_id is None and query.machine_id is None
                else AppointmentCategory.TREATMENT
            )
        segment = SlotSegmentQuery(
            treatment_id=query.treatment_id,
            category=category,
            duration=query.duration,
            machine_id=query.machine_id,
            provider_id=query.provider_id,
        )
        return await self._search(
            query.date, [segment], query.patient_id, query.allow_after_hours
        )

    async def search_multi_treatment(self, request: MultiSlotSearchRequest) -> SlotSearchResponse:
        """
        Find starts at which a whole chain of segments fits back to back.

        Args:
            request: Ordered segments and search options

        Returns:
            Candidate slots with the placement of every segment
        """
        return await self._search(
            request.date, request.segments, request.patient_id, request.allow_after_hours
        )
