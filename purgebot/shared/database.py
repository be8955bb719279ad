"""asyncpg pool for the purge_configs store.

The bot keeps one pool for its whole lifetime. A DSN on port 6543 is taken to
point at a PgBouncer transaction pooler, which cannot keep prepared statements
or session settings, so the pool is built without them.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any
from urllib.parse import urlparse

import asyncpg

logger = logging.getLogger(__name__)

TRANSACTION_POOLER_PORT = 6543


class PoolerMode(str, Enum):
    SESSION = "session"
    TRANSACTION = "transaction"

    @classmethod
    def from_dsn(cls, dsn: str) -> PoolerMode:
        port = urlparse(dsn).port
        return cls.TRANSACTION if port == TRANSACTION_POOLER_PORT else cls.SESSION


@dataclass
class PoolConfig:
    min_size: int = 1
    max_size: int = 4
    acquire_timeout: float = 5.0
    command_timeout: float = 15.0
    idle_lifetime: float = 300.0
    ssl: str | None = "require"

    connect_attempts: int = 3
    backoff_base: float = 3.0

    keepalive_idle: int = 30
    keepalive_interval: int = 10
    keepalive_count: int = 3

    def backoff(self, attempt: int) -> float:
        """Delay before retrying after the ``attempt``-th failed connect."""
        return self.backoff_base * 2 ** (attempt - 1)


class DatabaseManager:
    """Opens, checks and closes the bot's asyncpg pool."""

    def __init__(self, database_url: str, config: PoolConfig | None = None):
        self.database_url = database_url
        self.config = config or PoolConfig()
        self.mode = PoolerMode.from_dsn(database_url)
        self._pool: asyncpg.Pool | None = None

    @property
    def safe_target(self) -> str:
        """host:port/db without credentials, for logs."""
        parsed = urlparse(self.database_url)
        return f"{parsed.hostname or 'unknown'}:{parsed.port or 5432}{parsed.path}"

    @property
    def pool(self) -> asyncpg.Pool:
        if self._pool is None:
            raise RuntimeError("Database pool not initialized. Call connect() first.")
        return self._pool

    def pool_kwargs(self) -> dict[str, Any]:
        cfg = self.config
        kwargs: dict[str, Any] = {
            "dsn": self.database_url,
            "max_size": cfg.max_size,
            "timeout": cfg.acquire_timeout,
            "command_timeout": cfg.command_timeout,
            "ssl": cfg.ssl,
        }
        if self.mode is PoolerMode.TRANSACTION:
            # idle connections are dropped by the pooler
            kwargs.update(min_size=0, statement_cache_size=0, max_inactive_connection_lifetime=0)
            return kwargs

        kwargs.update(
            min_size=cfg.min_size,
            statement_cache_size=100,
            max_inactive_connection_lifetime=cfg.idle_lifetime,
            server_settings={
                "tcp_keepalives_idle": str(cfg.keepalive_idle),
                "tcp_keepalives_interval": str(cfg.keepalive_interval),
                "tcp_keepalives_count": str(cfg.keepalive_count),
            },
            init=self._on_new_connection,
        )
        return kwargs

    async def _on_new_connection(self, conn: asyncpg.Connection) -> None:
        await conn.execute(f"SET statement_timeout = {int(self.config.command_timeout * 1000)}")

    async def _open_verified_pool(self, kwargs: dict[str, Any]) -> asyncpg.Pool:
        pool = await asyncpg.create_pool(**kwargs)
        try:
            async with pool.acquire() as conn:
                await conn.fetchval("SELECT 1")
        except BaseException:
            await pool.close()
            raise
        return pool

    async def connect(self) -> None:
        if self._pool is not None:
            logger.warning("Database pool already initialized")
            return

        kwargs = self.pool_kwargs()
        attempts = self.config.connect_attempts
        logger.info(f"Connecting to {self.safe_target} ({self.mode.value} pooler)")

        for attempt in range(1, attempts + 1):
            try:
                self._pool = await self._open_verified_pool(kwargs)
            except Exception as e:
                if attempt == attempts:
                    logger.exception(f"Database unreachable after {attempts} attempts: {type(e).__name__}: {e}")
                    raise
                delay = self.config.backoff(attempt)
                logger.warning(
                    f"Database connect {attempt}/{attempts} failed ({type(e).__name__}: {e}), "
                    f"next try in {delay:g}s"
                )
                await asyncio.sleep(delay)
            else:
                logger.info(f"Database pool ready (size {kwargs['min_size']}-{self.config.max_size})")
                return

    async def disconnect(self) -> None:
        pool, self._pool = self._pool, None
        if pool is None:
            return
        try:
            await pool.close()
        except Exception as e:
            logger.exception(f"Error closing database pool: {e}")
        else:
            logger.info("Database pool closed")

    async def check_health(self) -> bool:
        """True if a pooled connection answers ``SELECT 1`` within two seconds."""
        if self._pool is None:
            return False
        try:
            async with self._pool.acquire(timeout=2.0) as conn:
                return await conn.fetchval("SELECT 1") == 1
        except (asyncpg.PostgresError, asyncpg.InterfaceError, OSError, asyncio.TimeoutError):
            return False
