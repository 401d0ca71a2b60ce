"""Add exclusion constraint on active machine windows.

Revision ID: 002
Revises: 001
Create Date: 2026-09-28 00:00:00.000000

"""

from typing import Sequence, Union

from alembic import op

# revision identifiers, used by Alembic.
revision: str = "002"
down_revision: Union[str, None] = "001"
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    """Reject two non-cancelled bookings of one machine with overlapping windows."""
    op.execute('CREATE EXTENSION IF NOT EXISTS "btree_gist"')

    # Half-open ranges: back-to-back bookings do not collide. Deferred so a
    # group can shift its members within one transaction.
    op.execute(
        """
        ALTER TABLE appointments
        ADD CONSTRAINT appointments_machine_no_overlap
        EXCLUDE USING gist (
            machine_id WITH =,
            tsrange(
                appointment_date + start_time,
                appointment_date + end_time,
                '[)'
            ) WITH &&
        )
        WHERE (machine_id IS NOT NULL AND status <> 'cancelled')
        DEFERRABLE INITIALLY DEFERRED
        """
    )


def downgrade() -> None:
    """Drop the machine exclusion constraint."""
    op.execute(
        "ALTER TABLE appointments DROP CONSTRAINT IF EXISTS appointments_machine_no_overlap"
    )
