"""
Script to create all database tables.

Creates every table defined in the models without going through Alembic.
Handy for local development against a throwaway PostgreSQL.
"""
import asyncio
import sys

from hookrelay.database import engine
from hookrelay.logging_config import logger
from hookrelay.models.base import Base

# Import all models to register them with Base
from hookrelay.models.organisation import Organisation  # noqa: F401
from hookrelay.models.webhook import WebhookEndpoint, WebhookDelivery, WebhookDeliveryAttempt  # noqa: F401
from hookrelay.models.inbound import ProcessedInboundEvent  # noqa: F401


async def create_all_tables():
    """Create all tables in the database."""
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    logger.info("tables_created", tables=sorted(Base.metadata.tables))


async def drop_all_tables():
    """Drop all tables in the database (for testing)."""
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
    logger.info("tables_dropped")


async def main(argv: list[str]):
    if "--drop" in argv:
        await drop_all_tables()
    await create_all_tables()
    await engine.dispose()


if __name__ == "__main__":
    asyncio.run(main(sys.argv[1:]))
