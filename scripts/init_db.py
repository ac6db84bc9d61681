"""Create the scheduling tables directly, without Alembic.

Useful for throwaway development databases; production schemas are managed
with ``python scripts/migrate.py``.
"""

import asyncio

import structlog
from sqlalchemy import text

from app.database import engine
from app.middleware.logging import configure_logging
from app.models.appointments import metadata as appointments_metadata
from app.models.doctor_schedules import metadata as doctor_schedules_metadata
from app.models.doctors import metadata as doctors_metadata
from app.models.patients import metadata as patients_metadata

logger = structlog.get_logger()


async def init_db() -> None:
    """Initialize the database by creating all tables."""
    async with engine.begin() as conn:
        await conn.execute(text('CREATE EXTENSION IF NOT EXISTS "pgcrypto"'))
        await conn.execute(text('CREATE EXTENSION IF NOT EXISTS "btree_gist"'))

        # Module metadata keeps the appointments after_create hook attached
        for metadata in (
            doctors_metadata,
            patients_metadata,
            doctor_schedules_metadata,
            appointments_metadata,
        ):
            await conn.run_sync(metadata.create_all)

    await engine.dispose()
    logger.info("database_initialized")


if __name__ == "__main__":
    configure_logging()
    asyncio.run(init_db())
