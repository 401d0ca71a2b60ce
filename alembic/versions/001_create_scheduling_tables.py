"""Create scheduling tables.

Revision ID: 001
Revises:
Create Date: 2026-09-28 00:00:00.000000

"""

from typing import Sequence, Union

import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

from alembic import op

# revision identifiers, used by Alembic.
revision: str = "001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _id_column() -> sa.Column:
    return sa.Column(
        "id", postgresql.UUID(), server_default=sa.text("gen_random_uuid()"), nullable=False
    )


def _timestamps() -> list[sa.Column]:
    return [
        sa.Column(
            "created_at",
            postgresql.TIMESTAMP(timezone=True),
            server_default=sa.text("NOW()"),
            nullable=False,
        ),
        sa.Column(
            "updated_at",
            postgresql.TIMESTAMP(timezone=True),
            server_default=sa.text("NOW()"),
            nullable=False,
        ),
    ]


def upgrade() -> None:
    """Upgrade database schema."""
    op.execute('CREATE EXTENSION IF NOT EXISTS "pgcrypto"')

    op.create_table(
        "patients",
        _id_column(),
        sa.Column("first_name", sa.Text(), nullable=False),
        sa.Column("last_name", sa.Text(), nullable=False),
        sa.Column("email", sa.Text(), nullable=True),
        sa.Column("phone", sa.VARCHAR(length=20), nullable=True),
        sa.Column("is_active", sa.Boolean(), server_default=sa.text("true"), nullable=False),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id"),
    )

    op.create_table(
        "healthcare_providers",
        _id_column(),
        sa.Column("first_name", sa.Text(), nullable=False),
        sa.Column("last_name", sa.Text(), nullable=False),
        sa.Column("specialties", postgresql.JSONB(), nullable=True),
        sa.Column("color", sa.VARCHAR(length=7), nullable=True),
        sa.Column("is_active", sa.Boolean(), server_default=sa.text("true"), nullable=False),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id"),
    )

    op.create_table(
        "machines",
        _id_column(),
        sa.Column("name", sa.Text(), nullable=False),
        sa.Column("color", sa.VARCHAR(length=7), nullable=True),
        sa.Column("location", sa.Text(), nullable=True),
        sa.Column("is_active", sa.Boolean(), server_default=sa.text("true"), nullable=False),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id"),
    )

    op.create_table(
        "products_services",
        _id_column(),
        sa.Column("title", sa.Text(), nullable=False),
        sa.Column("item_type", sa.VARCHAR(length=20), nullable=False),
        sa.Column("duration", sa.Integer(), nullable=True),
        sa.Column(
            "is_overlappable", sa.Boolean(), server_default=sa.text("false"), nullable=False
        ),
        sa.Column("is_active", sa.Boolean(), server_default=sa.text("true"), nullable=False),
        *_timestamps(),
        sa.CheckConstraint(
            "item_type IN ('treatment', 'service', 'product')",
            name="products_services_item_type_check",
        ),
        sa.PrimaryKeyConstraint("id"),
    )

    op.create_table(
        "machine_treatments",
        _id_column(),
        sa.Column("machine_id", postgresql.UUID(), nullable=False),
        sa.Column("treatment_id", postgresql.UUID(), nullable=False),
        sa.Column(
            "created_at",
            postgresql.TIMESTAMP(timezone=True),
            server_default=sa.text("NOW()"),
            nullable=False,
        ),
        sa.ForeignKeyConstraint(["machine_id"], ["machines.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["treatment_id"], ["products_services.id"], ondelete="CASCADE"),
        sa.UniqueConstraint("machine_id", "treatment_id", name="uq_machine_treatment"),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_machine_treatments_treatment_id", "machine_treatments", ["treatment_id"])

    op.create_table(
        "practitioner_weekly_availability",
        _id_column(),
        sa.Column("provider_id", postgresql.UUID(), nullable=False),
        sa.Column("day_of_week", sa.Integer(), nullable=False),
        sa.Column("start_time", sa.Time(), nullable=False),
        sa.Column("end_time", sa.Time(), nullable=False),
        sa.Column("break_start", sa.Time(), nullable=True),
        sa.Column("break_end", sa.Time(), nullable=True),
        sa.Column("is_active", sa.Boolean(), server_default=sa.text("true"), nullable=False),
        *_timestamps(),
        sa.ForeignKeyConstraint(
            ["provider_id"], ["healthcare_providers.id"], ondelete="CASCADE"
        ),
        sa.CheckConstraint(
            "day_of_week BETWEEN 0 AND 6", name="availability_day_of_week_check"
        ),
        sa.CheckConstraint(
            "end_time > start_time", name="availability_window_check"
        ),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(
        "ix_practitioner_weekly_availability_provider_id",
        "practitioner_weekly_availability",
        ["provider_id"],
    )

    op.create_table(
        "clinic_settings",
        _id_column(),
        sa.Column("operating_hours", postgresql.JSONB(), nullable=True),
        sa.Column("slot_settings", postgresql.JSONB(), nullable=True),
        sa.Column("closed_dates", postgresql.JSONB(), nullable=True),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id"),
    )

    op.create_table(
        "appointments",
        _id_column(),
        sa.Column("appointment_number", sa.VARCHAR(length=32), nullable=False),
        sa.Column("category", sa.VARCHAR(length=20), nullable=False),
        sa.Column("type", sa.VARCHAR(length=30), server_default="consultation", nullable=False),
        sa.Column("appointment_date", sa.Date(), nullable=False),
        sa.Column("start_time", sa.Time(), nullable=False),
        sa.Column("end_time", sa.Time(), nullable=False),
        sa.Column("duration_minutes", sa.Integer(), nullable=False),
        sa.Column("patient_id", postgresql.UUID(), nullable=False),
        sa.Column("provider_id", postgresql.UUID(), nullable=True),
        sa.Column("machine_id", postgresql.UUID(), nullable=True),
        sa.Column("assistant_id", postgresql.UUID(), nullable=True),
        sa.Column("service_id", postgresql.UUID(), nullable=True),
        sa.Column("status", sa.VARCHAR(length=20), server_default="scheduled", nullable=False),
        sa.Column("linked_appointment_id", postgresql.UUID(), nullable=True),
        sa.Column("link_sequence", sa.Integer(), nullable=True),
        sa.Column("title", sa.Text(), nullable=True),
        sa.Column("reason", sa.Text(), nullable=True),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column("priority", sa.VARCHAR(length=10), server_default="normal", nullable=False),
        sa.Column("color", sa.VARCHAR(length=7), nullable=True),
        sa.Column("confirmed_at", postgresql.TIMESTAMP(timezone=True), nullable=True),
        sa.Column("confirmed_by", postgresql.UUID(), nullable=True),
        sa.Column("cancelled_at", postgresql.TIMESTAMP(timezone=True), nullable=True),
        *_timestamps(),
        sa.CheckConstraint(
            "category IN ('treatment', 'consultation')",
            name="appointments_category_check",
        ),
        sa.CheckConstraint(
            "status IN ('scheduled', 'confirmed', 'in_progress', 'completed', 'cancelled', 'no_show')",
            name="appointments_status_check",
        ),
        sa.CheckConstraint(
            "priority IN ('low', 'normal', 'high', 'urgent')",
            name="appointments_priority_check",
        ),
        sa.CheckConstraint("end_time > start_time", name="appointments_window_check"),
        sa.CheckConstraint(
            "duration_minutes BETWEEN 5 AND 480",
            name="appointments_duration_check",
        ),
        sa.ForeignKeyConstraint(
            ["patient_id"], ["patients.id"], name="fk_appointments_patient_id", ondelete="CASCADE"
        ),
        sa.ForeignKeyConstraint(
            ["provider_id"],
            ["healthcare_providers.id"],
            name="fk_appointments_provider_id",
            ondelete="SET NULL",
        ),
        sa.ForeignKeyConstraint(
            ["machine_id"], ["machines.id"], name="fk_appointments_machine_id", ondelete="SET NULL"
        ),
        sa.ForeignKeyConstraint(
            ["service_id"],
            ["products_services.id"],
            name="fk_appointments_service_id",
            ondelete="SET NULL",
        ),
        sa.ForeignKeyConstraint(
            ["linked_appointment_id"],
            ["appointments.id"],
            name="fk_appointments_linked_appointment_id",
        ),
        sa.UniqueConstraint("appointment_number", name="uq_appointments_number"),
        sa.PrimaryKeyConstraint("id"),
    )

    op.create_index(
        "ix_appointments_date_machine", "appointments", ["appointment_date", "machine_id"]
    )
    op.create_index(
        "ix_appointments_date_provider", "appointments", ["appointment_date", "provider_id"]
    )
    op.create_index(
        "ix_appointments_date_patient", "appointments", ["appointment_date", "patient_id"]
    )
    op.create_index("ix_appointments_linked", "appointments", ["linked_appointment_id"])

    op.create_table(
        "scheduled_jobs",
        _id_column(),
        sa.Column("job_type", sa.VARCHAR(length=50), nullable=False),
        sa.Column("reference_type", sa.VARCHAR(length=50), nullable=False),
        sa.Column("reference_id", postgresql.UUID(), nullable=False),
        sa.Column("execute_at", postgresql.TIMESTAMP(timezone=True), nullable=False),
        sa.Column("status", sa.VARCHAR(length=20), server_default="pending", nullable=False),
        sa.Column("payload", postgresql.JSONB(), nullable=True),
        sa.Column("error", sa.Text(), nullable=True),
        *_timestamps(),
        sa.CheckConstraint(
            "status IN ('pending', 'running', 'completed', 'failed', 'cancelled')",
            name="scheduled_jobs_status_check",
        ),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(
        "ix_scheduled_jobs_reference", "scheduled_jobs", ["reference_type", "reference_id"]
    )
    op.create_index("ix_scheduled_jobs_pending", "scheduled_jobs", ["status", "execute_at"])


def downgrade() -> None:
    """Downgrade database schema."""
    op.drop_index("ix_scheduled_jobs_pending", table_name="scheduled_jobs")
    op.drop_index("ix_scheduled_jobs_reference", table_name="scheduled_jobs")
    op.drop_table("scheduled_jobs")

    op.drop_index("ix_appointments_linked", table_name="appointments")
    op.drop_index("ix_appointments_date_patient", table_name="appointments")
    op.drop_index("ix_appointments_date_provider", table_name="appointments")
    op.drop_index("ix_appointments_date_machine", table_name="appointments")
    op.drop_table("appointments")

    op.drop_table("clinic_settings")
    op.drop_index(
        "ix_practitioner_weekly_availability_provider_id",
        table_name="practitioner_weekly_availability",
    )
    op.drop_table("practitioner_weekly_availability")
    op.drop_index("ix_machine_treatments_treatment_id", table_name="machine_treatments")
    op.drop_table("machine_treatments")
    op.drop_table("products_services")
    op.drop_table("machines")
    op.drop_table("healthcare_providers")
    op.drop_table("patients")
