"""Process-wide asyncpg pool for the detection repositories."""

from __future__ import annotations

import asyncio
import logging
from pathlib import Path
from typing import Optional

import asyncpg

from sentinel.settings import settings

logger = logging.getLogger(__name__)

MIGRATIONS_DIR = Path(__file__).resolve().parents[2] / "migrations"

_pool: Optional[asyncpg.Pool] = None
_pool_lock = asyncio.Lock()


async def init_pool() -> asyncpg.Pool:
    """Open the shared pool on first use; concurrent callers get the same pool."""
    global _pool
    async with _pool_lock:
        if _pool is None:
            _pool = await asyncpg.create_pool(
                dsn=settings.postgres_url,
                min_size=settings.postgres_min_pool_size,
                max_size=settings.postgres_max_pool_size,
                # queries slower than this are abandoned by the server connection
                command_timeout=settings.detection_store_timeout_seconds * 5,
            )
            logger.info("postgres_pool_opened", extra={"max_size": settings.postgres_max_pool_size})
    return _pool


async def get_pool() -> asyncpg.Pool:
    return _pool if _pool is not None else await init_pool()


async def ping(timeout: float) -> None:
    pool = await get_pool()
    async with pool.acquire() as conn:
        await asyncio.wait_for(conn.execute("SELECT 1"), timeout=timeout)


async def apply_migrations(pool: asyncpg.Pool, directory: Path = MIGRATIONS_DIR) -> list[str]:
    """Run every ``*.sql`` file in name order; statements are written to be re-runnable."""
    applied: list[str] = []
    for script in sorted(directory.glob("*.sql")):
        await pool.execute(script.read_text(encoding="utf-8"))
        applied.append(script.name)
    return applied


async def close_pool() -> None:
    global _pool
    pool, _pool = _pool, None
    if pool is not None:
        await pool.close()
