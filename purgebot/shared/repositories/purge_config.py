"""Repository for the purge_configs table."""

from __future__ import annotations

from datetime import datetime

import asyncpg

from purgebot.shared.cache import StatusCache
from purgebot.shared.models.purge_config import PurgeConfig

status_cache = StatusCache(maxsize=256, ttl=30)

_COLUMNS = (
    "guild_id, channel_id, interval_ms, media_types, user_id, log_channel_id, "
    "active, last_run, created_at, updated_at"
)


class PurgeConfigRepository:
    """Pure SQL operations for purge configurations."""

    def __init__(self, pool: asyncpg.Pool) -> None:
        self.pool = pool

    async def get(self, channel_id: int) -> PurgeConfig | None:
        async with self.pool.acquire() as conn:
            row = await conn.fetchrow(
                f"SELECT {_COLUMNS} FROM purge_configs WHERE channel_id = $1",
                channel_id,
            )
            return PurgeConfig.from_row(row) if row else None

    async def list_active(self) -> list[PurgeConfig]:
        """Every active config across all guilds (startup rehydration)."""
        async with self.pool.acquire() as conn:
            rows = await conn.fetch(
                f"SELECT {_COLUMNS} FROM purge_configs WHERE active = TRUE ORDER BY channel_id"
            )
            return [PurgeConfig.from_row(row) for row in rows]

    async def list_active_for_guild(self, guild_id: int) -> list[PurgeConfig]:
        """Active configs of one guild, served from the status cache."""
        return await status_cache.load(guild_id, lambda: self._fetch_active_for_guild(guild_id))

    async def _fetch_active_for_guild(self, guild_id: int) -> list[PurgeConfig]:
        async with self.pool.acquire() as conn:
            rows = await conn.fetch(
                f"SELECT {_COLUMNS} FROM purge_configs "
                "WHERE guild_id = $1 AND active = TRUE ORDER BY channel_id",
                guild_id,
            )
            return [PurgeConfig.from_row(row) for row in rows]

    async def upsert(self, config: PurgeConfig) -> PurgeConfig:
        """Insert or replace the config for ``config.channel_id`` and mark it active.

        A single statement so racing setups for one channel cannot interleave.
        ``last_run`` of an existing row is preserved.
        """
        async with self.pool.acquire() as conn:
            row = await conn.fetchrow(
                f"""
                INSERT INTO purge_configs
                    (guild_id, channel_id, interval_ms, media_types, user_id, log_channel_id, active)
                VALUES ($1, $2, $3, $4, $5, $6, TRUE)
                ON CONFLICT (channel_id) DO UPDATE SET
                    guild_id       = EXCLUDED.guild_id,
                    interval_ms    = EXCLUDED.interval_ms,
                    media_types    = EXCLUDED.media_types,
                    user_id        = EXCLUDED.user_id,
                    log_channel_id = EXCLUDED.log_channel_id,
                    active         = TRUE,
                    updated_at     = NOW()
                RETURNING {_COLUMNS}
                """,
                config.guild_id,
                config.channel_id,
                config.interval_ms,
                [media.value for media in config.media_types],
                config.user_id,
                config.log_channel_id,
            )
        status_cache.invalidate(config.guild_id)
        return PurgeConfig.from_row(row)

    async def deactivate(self, channel_id: int) -> bool:
        """Set ``active = FALSE``. Returns True only if the row was active."""
        async with self.pool.acquire() as conn:
            guild_id = await conn.fetchval(
                """
                UPDATE purge_configs SET active = FALSE, updated_at = NOW()
                WHERE channel_id = $1 AND active = TRUE
                RETURNING guild_id
                """,
                channel_id,
            )
        if guild_id is None:
            return False
        status_cache.invalidate(guild_id)
        return True

    async def activate(self, channel_id: int) -> PurgeConfig | None:
        """Set ``active = TRUE`` on an existing row, keeping its settings."""
        async with self.pool.acquire() as conn:
            row = await conn.fetchrow(
                f"""
                UPDATE purge_configs SET active = TRUE, updated_at = NOW()
                WHERE channel_id = $1
                RETURNING {_COLUMNS}
                """,
                channel_id,
            )
        if row is None:
            return None
        config = PurgeConfig.from_row(row)
        status_cache.invalidate(config.guild_id)
        return config

    async def mark_run(self, channel_id: int, ran_at: datetime) -> None:
        async with self.pool.acquire() as conn:
            guild_id = await conn.fetchval(
                "UPDATE purge_configs SET last_run = $2 WHERE channel_id = $1 RETURNING guild_id",
                channel_id,
                ran_at,
            )
        if guild_id is not None:
            status_cache.invalidate(guild_id)
