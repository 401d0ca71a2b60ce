"""Appointments table model using SQLAlchemy Core."""

from uuid import uuid4

from sqlalchemy import (
    CheckConstraint,
    Column,
    Date,
    DateTime,
    Index,
    Integer,
    MetaData,
    String,
    Table,
    Text,
    Time,
    Uuid,
    func,
)

# Metadata for all tables
metadata = MetaData()

# Appointments table
appointments = Table(
    "appointments",
    metadata,
    Column("id", Uuid, primary_key=True, default=uuid4),
    Column("appointment_number", String(32), nullable=False, unique=True),
    # Kind of booking
    Column("category", String(20), nullable=False),
    Column("type", String(30), nullable=False, server_default="consultation"),
    # Window (never crosses midnight)
    Column("appointment_date", Date, nullable=False),
    Column("start_time", Time, nullable=False),
    Column("end_time", Time, nullable=False),
    Column("duration_minutes", Integer, nullable=False),
    # Contended resources
    Column("patient_id", Uuid, nullable=False),
    Column("provider_id", Uuid, nullable=True),
    Column("machine_id", Uuid, nullable=True),
    Column("assistant_id", Uuid, nullable=True),
    Column("service_id", Uuid, nullable=True),
    # Status management
    Column("status", String(20), nullable=False, server_default="scheduled"),
    # Multi-treatment group linkage
    Column("linked_appointment_id", Uuid, nullable=True),
    Column("link_sequence", Integer, nullable=True),
    # Descriptive fields
    Column("title", Text, nullable=True),
    Column("reason", Text, nullable=True),
    Column("notes", Text, nullable=True),
    Column("priority", String(10), nullable=False, server_default="normal"),
    Column("color", String(7), nullable=True),
    # Audit fields
    Column("confirmed_at", DateTime(timezone=True), nullable=True),
    Column("confirmed_by", Uuid, nullable=True),
    Column("cancelled_at", DateTime(timezone=True), nullable=True),
    Column("created_at", DateTime(timezone=True), nullable=False, server_default=func.now()),
    Column("updated_at", DateTime(timezone=True), nullable=False, server_default=func.now()),
    # Constraints
    CheckConstraint(
        "category IN ('treatment', 'consultation')",
        name="appointments_category_check",
    ),
    CheckConstraint(
        "status IN ('scheduled', 'confirmed', 'in_progress', 'completed', 'cancelled', 'no_show')",
        name="appointments_status_check",
    ),
    CheckConstraint(
        "priority IN ('low', 'normal', 'high', 'urgent')",
        name="appointments_priority_check",
    ),
    CheckConstraint("end_time > start_time", name="appointments_window_check"),
    CheckConstraint(
        "duration_minutes BETWEEN 5 AND 480",
        name="appointments_duration_check",
    ),
    Index("ix_appointments_date_machine", "appointment_date", "machine_id"),
    Index("ix_appointments_date_provider", "appointment_date", "provider_id"),
    Index("ix_appointments_date_patient", "appointment_date", "patient_id"),
    Index("ix_appointments_linked", "linked_appointment_id"),
)
