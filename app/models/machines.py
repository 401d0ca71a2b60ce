"""Treatment machines and the treatments each machine can run."""

from uuid import uuid4

from sqlalchemy import (
    Boolean,
    Column,
    DateTime,
    MetaData,
    String,
    Table,
    Text,
    UniqueConstraint,
    Uuid,
    func,
)

metadata = MetaData()

machines = Table(
    "machines",
    metadata,
    Column("id", Uuid, primary_key=True, default=uuid4),
    Column("name", Text, nullable=False),
    Column("color", String(7)),
    Column("location", Text),
    Column("is_active", Boolean, nullable=False, server_default="1"),
    Column("created_at", DateTime(timezone=True), nullable=False, server_default=func.now()),
    Column("updated_at", DateTime(timezone=True), nullable=False, server_default=func.now()),
)

machine_treatments = Table(
    "machine_treatments",
    metadata,
    Column("id", Uuid, primary_key=True, default=uuid4),
    Column("machine_id", Uuid, nullable=False, index=True),
    Column("treatment_id", Uuid, nullable=False, index=True),
    Column("created_at", DateTime(timezone=True), nullable=False, server_default=func.now()),
    UniqueConstraint("machine_id", "treatment_id", name="uq_machine_treatment"),
)
