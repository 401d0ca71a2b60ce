"""Script to run database migrations.

Usage:
    python scripts/migrate.py                  # default database
    python scripts/migrate.py clinic <id>...   # one or more clinic databases
    python scripts/migrate.py create <message>
"""

import os
import sys

from alembic import command
from alembic.config import Config


def run_migrations(clinic_id: str | None = None) -> None:
    """Run database migrations to latest version."""
    alembic_cfg = Config("alembic.ini")
    label = clinic_id or "default"

    if clinic_id:
        os.environ["CLINIC_ID"] = clinic_id
    else:
        os.environ.pop("CLINIC_ID", None)

    try:
        print(f"Running database migrations ({label})...")
        command.upgrade(alembic_cfg, "head")
        print(f"✓ Migrations completed successfully! ({label})")
    except Exception as e:
        print(f"✗ Migration failed for {label}: {e}", file=sys.stderr)
        sys.exit(1)


def create_migration(message: str) -> None:
    """Create a new migration."""
    alembic_cfg = Config("alembic.ini")

    try:
        print(f"Creating migration: {message}")
        command.revision(alembic_cfg, message=message, autogenerate=True)
        print("✓ Migration created successfully!")
    except Exception as e:
        print(f"✗ Migration creation failed: {e}", file=sys.stderr)
        sys.exit(1)


if __name__ == "__main__":
    if len(sys.argv) > 1:
        if sys.argv[1] == "create" and len(sys.argv) > 2:
            create_migration(" ".join(sys.argv[2:]))
        elif sys.argv[1] == "clinic" and len(sys.argv) > 2:
            for clinic in sys.argv[2:]:
                run_migrations(clinic)
        else:
            print("Usage: python scripts/migrate.py [create <message> | clinic <id>...]")
    else:
        run_migrations()
