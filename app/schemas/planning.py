"""Planning schemas for request/response validation."""

import datetime as dt
from enum import Enum
from typing import Annotated, Any
from uuid import UUID

from pydantic import (
    AliasChoices,
    BaseModel,
    BeforeValidator,
    Field,
    PlainSerializer,
    computed_field,
    field_validator,
    model_validator,
)

from app.scheduling.lifecycle import AppointmentStatus
from app.scheduling.provider_rules import AppointmentCategory
from app.scheduling.time_utils import format_time, parse_time

# "HH:MM" on the wire, datetime.time in Python
ClockTime = Annotated[
    dt.time,
    BeforeValidator(parse_time),
    PlainSerializer(format_time, return_type=str),
]
MIN_DURATION_MINUTES = 5
MAX_DURATION_MINUTES = 480
DurationMinutes = Annotated[int, Field(ge=MIN_DURATION_MINUTES, le=MAX_DURATION_MINUTES)]
HexColor = Annotated[str, Field(pattern=r"^#[0-9A-Fa-f]{6}$")]


class AppointmentType(str, Enum):
    """Appointment type enumeration."""

    CONSULTATION = "consultation"
    FOLLOWUP = "followup"
    EMERGENCY = "emergency"
    CHECKUP = "checkup"
    PROCEDURE = "procedure"
    TELECONSULTATION = "teleconsultation"
    SPECIALIST = "specialist"
    VACCINATION = "vaccination"
    SURGERY = "surgery"


class AppointmentPriority(str, Enum):
    """Appointment priority enumeration."""

    LOW = "low"
    NORMAL = "normal"
    HIGH = "high"
    URGENT = "urgent"


# ---------------------------------------------------------------------------
# Appointments
# ---------------------------------------------------------------------------


class AppointmentCreate(BaseModel):
    """Schema for booking a single appointment."""

    category: AppointmentCategory
    patient_id: UUID
    date: dt.date
    start_time: ClockTime
    duration: DurationMinutes | None = None
    machine_id: UUID | None = None
    treatment_id: UUID | None = None
    provider_id: UUID | None = None
    service_id: UUID | None = None
    assistant_id: UUID | None = None
    title: str | None = Field(None, max_length=255)
    reason: str | None = None
    notes: str | None = None
    type: AppointmentType = AppointmentType.PROCEDURE
    priority: AppointmentPriority = AppointmentPriority.NORMAL
    color: HexColor | None = None
    skip_patient_overlap_check: bool = False

    @model_validator(mode="after")
    def check_category_requirements(self) -> "AppointmentCreate":
        """Consultations need a provider, treatments need a catalog entry."""
        if self.category == AppointmentCategory.CONSULTATION and self.provider_id is None:
            raise ValueError("provider_id is required for consultations")
        if self.category == AppointmentCategory.TREATMENT and (
            self.treatment_id is None and self.service_id is None
        ):
            raise ValueError("treatment_id is required for treatments")
        return self


class SegmentCreate(BaseModel):
    """One segment of a multi-treatment session."""

    treatment_id: UUID | None = None
    category: AppointmentCategory = AppointmentCategory.TREATMENT
    duration: DurationMinutes | None = None
    machine_id: UUID | None = None
    provider_id: UUID | None = None
    assistant_id: UUID | None = None
    title: str | None = Field(None, max_length=255)
    color: HexColor | None = None

    @model_validator(mode="after")
    def check_treatment(self) -> "SegmentCreate":
        """Treatment segments must reference the catalog."""
        if self.category == AppointmentCategory.TREATMENT and self.treatment_id is None:
            raise ValueError("treatment_id is required for treatment segments")
        return self


class GroupCreate(BaseModel):
    """Schema for booking a chain of back-to-back segments."""

    patient_id: UUID
    date: dt.date
    start_time: ClockTime
    segments: list[SegmentCreate] = Field(
        ...,
        min_length=1,
        max_length=10,
        validation_alias=AliasChoices("segments", "treatments"),
    )
    provider_id: UUID | None = None
    assistant_id: UUID | None = None
    notes: str | None = None
    type: AppointmentType = AppointmentType.PROCEDURE
    priority: AppointmentPriority = AppointmentPriority.NORMAL
    skip_patient_overlap_check: bool = False


class AppointmentUpdate(BaseModel):
    """Descriptive fields that can change without a conflict check."""

    title: str | None = Field(None, max_length=255)
    reason: str | None = None
    notes: str | None = None
    priority: AppointmentPriority | None = None
    color: HexColor | None = None
    type: AppointmentType | None = None
    assistant_id: UUID | None = None

    @field_validator("priority", "type")
    @classmethod
    def reject_null(cls, value: Any) -> Any:
        """Priority and type can be changed but never cleared."""
        if value is None:
            raise ValueError("may be omitted but not set to null")
        return value


class AppointmentReschedule(BaseModel):
    """Move a standalone appointment and optionally swap its resources."""

    date: dt.date | None = None
    start_time: ClockTime | None = None
    duration: DurationMinutes | None = None
    machine_id: UUID | None = None
    provider_id: UUID | None = None
    skip_patient_overlap_check: bool = False

    @model_validator(mode="after")
    def check_not_empty(self) -> "AppointmentReschedule":
        """At least one field must change."""
        if all(
            value is None
            for value in (
                self.date,
                self.start_time,
                self.duration,
                self.machine_id,
                self.provider_id,
            )
        ):
            raise ValueError("Nothing to reschedule")
        return self


class AppointmentStatusUpdate(BaseModel):
    """Schema for a lifecycle transition."""

    status: AppointmentStatus
    reason: str | None = Field(None, max_length=1000)


class GroupReschedule(BaseModel):
    """Move a whole group and optionally append segments to it."""

    date: dt.date | None = None
    start_time: ClockTime | None = None
    status: AppointmentStatus | None = None
    provider_id: UUID | None = None
    assistant_id: UUID | None = None
    priority: AppointmentPriority | None = None
    notes: str | None = None
    new_segments: list[SegmentCreate] = Field(
        default_factory=list,
        max_length=10,
        validation_alias=AliasChoices("new_segments", "new_treatments"),
    )
    skip_patient_overlap_check: bool = False


class AppointmentResponse(BaseModel):
    """Schema for appointment response."""

    id: UUID
    appointment_number: str
    category: AppointmentCategory
    type: str
    title: str | None = None
    date: dt.date = Field(validation_alias=AliasChoices("appointment_date", "date"))
    start_time: ClockTime
    end_time: ClockTime
    duration_minutes: int
    status: AppointmentStatus
    priority: str
    reason: str | None = None
    notes: str | None = None
    color: str | None = None
    linked_appointment_id: UUID | None = None
    link_sequence: int | None = None
    patient_id: UUID
    provider_id: UUID | None = None
    machine_id: UUID | None = None
    assistant_id: UUID | None = None
    service_id: UUID | None = None
    confirmed_at: dt.datetime | None = None
    confirmed_by: UUID | None = None
    cancelled_at: dt.datetime | None = None
    created_at: dt.datetime
    updated_at: dt.datetime

    model_config = {"from_attributes": True}

    @computed_field  # type: ignore[prop-decorator]
    @property
    def is_linked(self) -> bool:
        """Whether this appointment belongs to a multi-treatment group."""
        return self.linked_appointment_id is not None or self.link_sequence == 1


class GroupResponse(BaseModel):
    """A multi-treatment group reconstructed from its members."""

    group_id: UUID
    patient_id: UUID
    date: dt.date
    start_time: ClockTime
    end_time: ClockTime
    total_duration: int
    appointments: list[AppointmentResponse]


class CalendarResponse(BaseModel):
    """Appointments in a date range."""

    start_date: dt.date
    end_date: dt.date
    total: int
    appointments: list[AppointmentResponse]


class CalendarFilters(BaseModel):
    """Schema for calendar filtering."""

    start_date: dt.date
    end_date: dt.date
    category: AppointmentCategory | None = None
    machine_id: UUID | None = None
    provider_id: UUID | None = None
    patient_id: UUID | None = None
    status: AppointmentStatus | None = None

    @model_validator(mode="after")
    def check_range(self) -> "CalendarFilters":
        """End date cannot precede start date."""
        if self.end_date < self.start_date:
            raise ValueError("end_date must not be before start_date")
        return self


# ---------------------------------------------------------------------------
# Slot search
# ---------------------------------------------------------------------------


class SlotSearchQuery(BaseModel):
    """Schema for single-resource slot search."""

    date: dt.date
    category: AppointmentCategory | None = None
    treatment_id: UUID | None = None
    provider_id: UUID | None = None
    machine_id: UUID | None = None
    patient_id: UUID | None = None
    duration: DurationMinutes | None = None
    allow_after_hours: bool = False

    @model_validator(mode="after")
    def check_resource(self) -> "SlotSearchQuery":
        """A search needs something to search for."""
        if self.treatment_id is None and self.provider_id is None and self.machine_id is None:
            raise ValueError("One of treatment_id, provider_id or machine_id is required")
        if self.category == AppointmentCategory.CONSULTATION and self.provider_id is None:
            raise ValueError("provider_id is required for consultation slots")
        return self


class SlotSegmentQuery(BaseModel):
    """One segment of a multi-treatment slot search."""

    treatment_id: UUID | None = None
    category: AppointmentCategory = AppointmentCategory.TREATMENT
    duration: DurationMinutes | None = None
    machine_id: UUID | None = None
    provider_id: UUID | None = None


class MultiSlotSearchRequest(BaseModel):
    """Schema for multi-treatment slot search."""

    date: dt.date
    segments: list[SlotSegmentQuery] = Field(
        ...,
        min_length=1,
        max_length=10,
        validation_alias=AliasChoices("segments", "treatments"),
    )
    patient_id: UUID | None = None
    allow_after_hours: bool = False


class SlotWarning(BaseModel):
    """Non-fatal note about how a search was run."""

    code: str
    message: str
    treatment_id: UUID | None = None


class SlotSegmentResponse(BaseModel):
    """Where one segment of a candidate slot would sit."""

    sequence: int
    treatment_id: UUID | None = None
    start_time: ClockTime
    end_time: ClockTime
    duration: int
    machine_id: UUID | None = None
    available_machine_ids: list[UUID] = Field(default_factory=list)
    provider_id: UUID | None = None


class SlotResponse(BaseModel):
    """Candidate start time."""

    start_time: ClockTime
    end_time: ClockTime
    after_hours: bool = False
    machine_id: UUID | None = None
    available_machine_ids: list[UUID] = Field(default_factory=list)
    provider_id: UUID | None = None
    segments: list[SlotSegmentResponse] = Field(default_factory=list)


class SlotSearchResponse(BaseModel):
    """Result of a slot search; an empty list is a valid answer."""

    date: dt.date
    duration: int
    slot_interval: int
    closed: bool = False
    closed_reason: str | None = None
    slots: list[SlotResponse]
    warnings: list[SlotWarning] = Field(default_factory=list)


# ---------------------------------------------------------------------------
# Availability checks
# ---------------------------------------------------------------------------


class ConflictingBooking(BaseModel):
    """An existing booking that blocks a requested window."""

    id: UUID
    category: AppointmentCategory
    start_time: ClockTime
    end_time: ClockTime
    title: str | None = None
    patient_name: str | None = None


class ProviderAvailabilityResponse(BaseModel):
    """Provider conflict check result."""

    provider_id: UUID
    date: dt.date
    start_time: ClockTime
    end_time: ClockTime
    available: bool
    has_consultation_conflict: bool
    has_treatment_conflict: bool
    conflicts: list[ConflictingBooking]


class MachineAvailabilityResponse(BaseModel):
    """Machine conflict check result."""

    machine_id: UUID
    date: dt.date
    start_time: ClockTime
    end_time: ClockTime
    available: bool
    conflicts: list[ConflictingBooking]


class PatientSegment(BaseModel):
    """Proposed window for a patient overlap check."""

    date: dt.date
    start_time: ClockTime
    end_time: ClockTime

    @model_validator(mode="after")
    def check_window(self) -> "PatientSegment":
        """Window must be non-empty."""
        if self.end_time <= self.start_time:
            raise ValueError("end_time must be after start_time")
        return self


class PatientOverlapResponse(BaseModel):
    """Patient overlap check result."""

    patient_id: UUID
    has_overlap: bool
    conflicts: list[ConflictingBooking]


def booking_payloads(bookings: list[Any]) -> list[ConflictingBooking]:
    """Convert scheduling bookings into response models."""
    return [ConflictingBooking.model_validate(b.to_dict()) for b in bookings]
