"""
Apply the HabitRPG schema to DATABASE_URL

Every statement in schema.sql is idempotent, so this is safe to re-run.
"""
import asyncio
import logging
from importlib import resources

from habitrpg.db.connection import db

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)


def load_schema() -> str:
    return resources.files("habitrpg.db").joinpath("schema.sql").read_text(encoding="utf-8")


async def main():
    """Create tables and indexes"""
    await db.init_pool()

    try:
        schema = load_schema()
        async with db.transaction() as conn:
            await conn.execute(schema)
        logger.info("✅ Schema applied")
    finally:
        await db.close_pool()


if __name__ == "__main__":
    asyncio.run(main())
