"""Weekly working hours of healthcare providers."""

from uuid import uuid4

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Column,
    DateTime,
    Integer,
    MetaData,
    Table,
    Time,
    Uuid,
    func,
)

metadata = MetaData()

practitioner_weekly_availability = Table(
    "practitioner_weekly_availability",
    metadata,
    Column("id", Uuid, primary_key=True, default=uuid4),
    Column("provider_id", Uuid, nullable=False, index=True),
    # 0 = Monday ... 6 = Sunday
    Column("day_of_week", Integer, nullable=False),
    Column("start_time", Time, nullable=False),
    Column("end_time", Time, nullable=False),
    Column("break_start", Time, nullable=True),
    Column("break_end", Time, nullable=True),
    Column("is_active", Boolean, nullable=False, server_default="1"),
    Column("created_at", DateTime(timezone=True), nullable=False, server_default=func.now()),
    Column("updated_at", DateTime(timezone=True), nullable=False, server_default=func.now()),
    CheckConstraint("day_of_week BETWEEN 0 AND 6", name="availability_day_of_week_check"),
    CheckConstraint("end_time > start_time", name="availability_window_check"),
)
