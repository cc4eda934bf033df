import asyncio
import contextlib
import json
from collections.abc import AsyncIterator

import asyncpg

from src.utils.config import get_database_url
from src.utils.logging import get_logger

logger = get_logger(__name__)


async def init_connection(conn: asyncpg.Connection) -> None:
    """An initializer run on every new connection from the sync DB pool."""
    await conn.set_type_codec(
        "jsonb",
        # Callsites always json.dumps() explicitly, so the encoder is a no-op to
        # avoid double-encoding documents.
        encoder=lambda x: x,
        decoder=json.loads,
        schema="pg_catalog",
    )


class SyncDBManager:
    """Owns the asyncpg pool for the synced store, created on first use."""

    def __init__(self, database_url: str | None = None, max_size: int = 10) -> None:
        self._database_url = database_url
        self._max_size = max_size
        # Lazily initialized to avoid binding to an event loop at import time
        # (CLI commands call asyncio.run() more than once)
        self._lock: asyncio.Lock | None = None
        self.pool: asyncpg.Pool | None = None

    @property
    def _pool_lock(self) -> asyncio.Lock:
        if self._lock is None:
            self._lock = asyncio.Lock()
        return self._lock

    async def get_pool(self) -> asyncpg.Pool:
        if self.pool is None:
            async with self._pool_lock:
                # Double-check in case the pool was created while acquiring the lock
                if self.pool is None:
                    self.pool = await asyncpg.create_pool(
                        self._database_url or get_database_url(),
                        min_size=0,
                        max_size=self._max_size,
                        timeout=30,  # connection acquisition timeout
                        command_timeout=30,
                        init=init_connection,
                    )
                    logger.info("Sync database pool initialized")
        return self.pool

    async def close(self) -> None:
        if self.pool is not None:
            await self.pool.close()
            self.pool = None
            logger.info("Sync database pool closed")

    @contextlib.asynccontextmanager
    async def acquire_pool(self) -> AsyncIterator[asyncpg.Pool]:
        """Yield the pool and close it afterwards. Meant for one-shot CLI commands."""
        try:
            yield await self.get_pool()
        finally:
            await self.close()
