"""Apply the bundled SQL schema files in order, once each."""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from pathlib import Path

import asyncpg

logger = logging.getLogger(__name__)

VERSIONS_DIR = Path(__file__).resolve().parent / "versions"

# Any fixed key; held for the duration of one migration transaction
ADVISORY_LOCK_KEY = 0x70757267

_VERSION_NAME = re.compile(r"^(\d{3})_\w+$")


@dataclass(frozen=True)
class Migration:
    version: str
    path: Path

    @property
    def sql(self) -> str:
        return self.path.read_text(encoding="utf-8")


def discover(versions_dir: Path = VERSIONS_DIR) -> list[Migration]:
    """``NNN_name.sql`` files sorted by number. Raises on a malformed or duplicate number."""
    migrations: dict[str, Migration] = {}
    for path in sorted(versions_dir.glob("*.sql")):
        match = _VERSION_NAME.match(path.stem)
        if match is None:
            raise ValueError(f"Migration file name must look like NNN_name.sql: {path.name}")
        number = match.group(1)
        if number in migrations:
            raise ValueError(f"Duplicate migration number {number}: {path.name}, {migrations[number].path.name}")
        migrations[number] = Migration(version=path.stem, path=path)
    return [migrations[number] for number in sorted(migrations)]


class MigrationRunner:
    """Tracks applied versions in ``schema_migrations``.

    Each migration runs in its own transaction under an advisory lock, so two
    bot instances starting together apply it once.
    """

    TRACKING_TABLE = "schema_migrations"

    def __init__(self, pool: asyncpg.Pool, versions_dir: Path | None = None) -> None:
        self.pool = pool
        self.versions_dir = versions_dir or VERSIONS_DIR

    async def ensure_table(self) -> None:
        async with self.pool.acquire() as conn:
            await conn.execute(
                f"CREATE TABLE IF NOT EXISTS {self.TRACKING_TABLE} ("
                "version TEXT PRIMARY KEY, name TEXT NOT NULL, applied_at TIMESTAMPTZ DEFAULT NOW())"
            )

    async def get_applied(self) -> set[str]:
        async with self.pool.acquire() as conn:
            rows = await conn.fetch(f"SELECT version FROM {self.TRACKING_TABLE}")  # noqa: S608
        return {row["version"] for row in rows}

    async def pending(self) -> list[Migration]:
        await self.ensure_table()
        applied = await self.get_applied()
        return [m for m in discover(self.versions_dir) if m.version not in applied]

    async def run_pending(self) -> list[str]:
        """Apply what is pending; returns the versions applied by this call."""
        newly_applied = []
        for migration in await self.pending():
            if await self._apply(migration):
                newly_applied.append(migration.version)

        if newly_applied:
            logger.info(f"Applied {len(newly_applied)} migration(s): {', '.join(newly_applied)}")
        else:
            logger.info("Database schema is up to date")
        return newly_applied

    async def _apply(self, migration: Migration) -> bool:
        async with self.pool.acquire() as conn:
            async with conn.transaction():
                await conn.execute("SELECT pg_advisory_xact_lock($1)", ADVISORY_LOCK_KEY)
                # another instance may have applied it while we waited for the lock
                done = await conn.fetchval(
                    f"SELECT 1 FROM {self.TRACKING_TABLE} WHERE version = $1",  # noqa: S608
                    migration.version,
                )
                if done:
                    return False
                logger.info(f"Applying migration {migration.version}")
                await conn.execute(migration.sql)
                await conn.execute(
                    f"INSERT INTO {self.TRACKING_TABLE} (version, name) VALUES ($1, $2)",
                    migration.version,
                    migration.path.name,
                )
        return True
