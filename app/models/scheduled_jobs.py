"""Scheduled jobs queue table model using SQLAlchemy Core."""

from uuid import uuid4

from sqlalchemy import (
    JSON,
    CheckConstraint,
    Column,
    DateTime,
    Index,
    MetaData,
    String,
    Table,
    Text,
    Uuid,
    func,
)

metadata = MetaData()

scheduled_jobs = Table(
    "scheduled_jobs",
    metadata,
    Column("id", Uuid, primary_key=True, default=uuid4),
    Column("job_type", String(50), nullable=False),
    Column("reference_type", String(50), nullable=False),
    Column("reference_id", Uuid, nullable=False),
    Column("execute_at", DateTime(timezone=True), nullable=False),
    Column("status", String(20), nullable=False, server_default="pending"),
    Column("payload", JSON),
    Column("error", Text),
    Column("created_at", DateTime(timezone=True), nullable=False, server_default=func.now()),
    Column("updated_at", DateTime(timezone=True), nullable=False, server_default=func.now()),
    CheckConstraint(
        "status IN ('pending', 'running', 'completed', 'failed', 'cancelled')",
        name="scheduled_jobs_status_check",
    ),
    Index("ix_scheduled_jobs_reference", "reference_type", "reference_id"),
    Index("ix_scheduled_jobs_pending", "status", "execute_at"),
)
