#!/usr/bin/env python3
"""Initialize settlement database tables (development and tests).

Production schemas are managed with Alembic (`alembic upgrade head`).
"""

import asyncio
import sys

from loguru import logger
from sqlalchemy.ext.asyncio import create_async_engine

from app.config.settings import settings
from app.models import Base

# Configure logger for script
logger.remove()
logger.add(sys.stderr, level="INFO")


async def init_database(database_url: str | None = None) -> None:
    """Create all settlement tables that do not exist yet."""
    database_url = database_url or settings.database_url

    logger.info("Connecting to database...")
    engine = create_async_engine(database_url, echo=False)

    try:
        async with engine.begin() as conn:
            logger.info("Creating tables (checkfirst=True)...")
            await conn.run_sync(Base.metadata.create_all, checkfirst=True)
    finally:
        await engine.dispose()

    logger.success(
        f"Settlement tables ready: {', '.join(sorted(Base.metadata.tables))}"
    )


if __name__ == "__main__":
    asyncio.run(init_database(sys.argv[1] if len(sys.argv) > 1 else None))
