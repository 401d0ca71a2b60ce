"""Patient model definition using SQLAlchemy Core."""

from uuid import uuid4

from sqlalchemy import Boolean, Column, DateTime, MetaData, String, Table, Text, Uuid, func

metadata = MetaData()

patients = Table(
    "patients",
    metadata,
    Column("id", Uuid, primary_key=True, default=uuid4),
    Column("first_name", Text, nullable=False),
    Column("last_name", Text, nullable=False),
    Column("email", String(255)),
    Column("phone", String(20)),
    Column("is_active", Boolean, nullable=False, server_default="1"),
    Column("created_at", DateTime(timezone=True), nullable=False, server_default=func.now()),
    Column("updated_at", DateTime(timezone=True), nullable=False, server_default=func.now()),
)
