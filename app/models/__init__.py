"""Database models."""

from app.models import (
    appointments as _appointments,
    clinic_settings as _clinic_settings,
    healthcare_providers as _healthcare_providers,
    machines as _machines,
    patients as _patients,
    practitioner_weekly_availability as _availability,
    products_services as _products_services,
    scheduled_jobs as _scheduled_jobs,
)
from app.models.appointments import appointments
from app.models.clinic_settings import clinic_settings
from app.models.healthcare_providers import healthcare_providers
from app.models.machines import machine_treatments, machines
from app.models.patients import patients
from app.models.practitioner_weekly_availability import practitioner_weekly_availability
from app.models.products_services import products_services
from app.models.scheduled_jobs import scheduled_jobs

# Every module keeps its own MetaData; schema tools walk them all
ALL_METADATA = (
    _patients.metadata,
    _healthcare_providers.metadata,
    _machines.metadata,
    _products_services.metadata,
    _availability.metadata,
    _clinic_settings.metadata,
    _appointments.metadata,
    _scheduled_jobs.metadata,
)

__all__ = [
    "ALL_METADATA",
    "appointments",
    "clinic_settings",
    "healthcare_providers",
    "machine_treatments",
    "machines",
    "patients",
    "practitioner_weekly_availability",
    "products_services",
    "scheduled_jobs",
]
