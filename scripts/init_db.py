"""Script to initialize a clinic database."""

import asyncio
import sys

from sqlalchemy import insert, select, text

from app.config import settings
from app.database import create_clinic_engine, engine
from app.models import ALL_METADATA, clinic_settings
from app.services.clinic_settings_service import DEFAULT_OPERATING_HOURS


async def init_db(clinic_id: str | None = None) -> None:
    """
    Create all tables and a default settings row.

    Args:
        clinic_id: Clinic to initialize through CLINIC_DATABASE_URL_TEMPLATE;
            the default database when omitted
    """
    target = engine
    if clinic_id and settings.clinic_database_url_template:
        target = create_clinic_engine(
            settings.clinic_database_url_template.format(clinic_id=clinic_id)
        )

    async with target.begin() as conn:
        # gen_random_uuid() and the machine exclusion constraint
        await conn.execute(text('CREATE EXTENSION IF NOT EXISTS "pgcrypto"'))
        await conn.execute(text('CREATE EXTENSION IF NOT EXISTS "btree_gist"'))

        for metadata in ALL_METADATA:
            await conn.run_sync(metadata.create_all)

        existing = await conn.execute(select(clinic_settings.c.id).limit(1))
        if existing.first() is None:
            await conn.execute(
                insert(clinic_settings).values(
                    operating_hours=DEFAULT_OPERATING_HOURS,
                    slot_settings={"slotInterval": settings.default_slot_interval_minutes},
                    closed_dates=[],
                )
            )

    await target.dispose()
    print(f"✓ Database initialized successfully! ({clinic_id or 'default'})")


if __name__ == "__main__":
    asyncio.run(init_db(sys.argv[1] if len(sys.argv) > 1 else None))
