"""Clinic configuration table model using SQLAlchemy Core."""

from uuid import uuid4

from sqlalchemy import JSON, Column, DateTime, MetaData, Table, Uuid, func

metadata = MetaData()

# One row per clinic database
clinic_settings = Table(
    "clinic_settings",
    metadata,
    Column("id", Uuid, primary_key=True, default=uuid4),
    Column("operating_hours", JSON),
    Column("slot_settings", JSON),
    Column("closed_dates", JSON),
    Column("created_at", DateTime(timezone=True), nullable=False, server_default=func.now()),
    Column("updated_at", DateTime(timezone=True), nullable=False, server_default=func.now()),
)
