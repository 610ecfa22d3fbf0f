import asyncio

import asyncpg
from loguru import logger


def asyncpg_dsn(url: str) -> str:
    """Strip the SQLAlchemy driver suffix so asyncpg accepts the URL."""
    for prefix in ("postgresql+asyncpg://", "postgresql+psycopg://"):
        if url.startswith(prefix):
            return url.replace(prefix, "postgresql://", 1)
    return url


async def wait_for_db(dsn: str, retries: int = 10, delay: float = 3) -> None:
    """Wait until the database is available before starting the service."""
    dsn = asyncpg_dsn(dsn)
    if not dsn.startswith("postgresql://"):
        return
    for attempt in range(retries):
        try:
            conn = await asyncpg.connect(dsn)
            await conn.close()
            logger.info("✅ Database is ready")
            return
        except (OSError, asyncpg.PostgresError) as e:
            logger.warning(f"DB not ready yet ({attempt + 1}/{retries}): {e}")
            await asyncio.sleep(delay)
    raise RuntimeError("❌ Database connection failed after retries")
