"""Lookups of tenant resources referenced by bookings."""

from datetime import date
from uuid import UUID

from sqlalchemy import Table, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.exceptions import NotFoundException
from app.models.healthcare_providers import healthcare_providers
from app.models.machines import machine_treatments, machines
from app.models.patients import patients
from app.models.practitioner_weekly_availability import practitioner_weekly_availability
from app.scheduling.slots import OperatingRange


class ResourceService:
    """Existence checks and scheduling-relevant reads for clinic resources."""

    def __init__(self, db: AsyncSession):
        """Initialize service with database session."""
        self.db = db

    async def _exists(self, table: Table, resource_id: UUID) -> bool:
        result = await self.db.execute(select(table.c.id).where(table.c.id == resource_id))
        return result.first() is not None

    async def ensure_patient(self, patient_id: UUID) -> None:
        """Raise NotFoundException if the patient does not exist."""
        if not await self._exists(patients, patient_id):
            raise NotFoundException("Patient not found")

    async def ensure_provider(self, provider_id: UUID) -> None:
        """Raise NotFoundException if the provider does not exist."""
        if not await self._exists(healthcare_providers, provider_id):
            raise NotFoundException("Healthcare provider not found")

    async def ensure_machine(self, machine_id: UUID) -> None:
        """Raise NotFoundException if the machine does not exist."""
        if not await self._exists(machines, machine_id):
            raise NotFoundException("Machine not found")

    async def get_treatment_machine_ids(self, treatment_id: UUID) -> list[UUID]:
        """
        Active machines able to run a treatment.

        Args:
            treatment_id: Catalog treatment ID

        Returns:
            Machine IDs ordered by machine name
        """
        stmt = (
            select(machines.c.id)
            .select_from(
                machine_treatments.join(machines, machines.c.id == machine_treatments.c.machine_id)
            )
            .where(
                machine_treatments.c.treatment_id == treatment_id,
                machines.c.is_active.is_(True),
            )
            .order_by(machines.c.name, machines.c.id)
        )
        result = await self.db.execute(stmt)
        return [row.id for row in result.fetchall()]

    async def get_provider_ranges(
        self,
        provider_id: UUID,
        appointment_date: date,
    ) -> list[OperatingRange] | None:
        """
        Working ranges of a provider on a date, split around breaks.

        Returns:
            Ranges in time order, or None if the provider has no weekly
            availability for that weekday (callers fall back to clinic hours)
        """
        stmt = (
            select(practitioner_weekly_availability)
            .where(
                practitioner_weekly_availability.c.provider_id == provider_id,
                practitioner_weekly_availability.c.day_of_week == appointment_date.weekday(),
                practitioner_weekly_availability.c.is_active.is_(True),
            )
            .order_by(practitioner_weekly_availability.c.start_time)
        )
        result = await self.db.execute(stmt)
        rows = result.fetchall()
        if not rows:
            return None

        ranges: list[OperatingRange] = []
        for row in rows:
            if row.break_start and row.break_end and row.start_time < row.break_start < row.end_time:
                ranges.append(OperatingRange(row.start_time, row.break_start))
                if row.break_end < row.end_time:
                    ranges.append(OperatingRange(row.break_end, row.end_time))
            else:
                ranges.append(OperatingRange(row.start_time, row.end_time))
        return ranges
