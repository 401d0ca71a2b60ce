"""Healthcare providers table model using SQLAlchemy Core."""

from uuid import uuid4

from sqlalchemy import JSON, Boolean, Column, DateTime, MetaData, String, Table, Text, Uuid, func

metadata = MetaData()

healthcare_providers = Table(
    "healthcare_providers",
    metadata,
    Column("id", Uuid, primary_key=True, default=uuid4),
    Column("first_name", Text, nullable=False),
    Column("last_name", Text, nullable=False),
    Column("specialties", JSON),
    Column("color", String(7)),
    Column("is_active", Boolean, nullable=False, server_default="1"),
    Column("created_at", DateTime(timezone=True), nullable=False, server_default=func.now()),
    Column("updated_at", DateTime(timezone=True), nullable=False, server_default=func.now()),
)
