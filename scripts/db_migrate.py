"""Apply or list purge bot schema migrations.

Usage:
    python scripts/db_migrate.py          # apply pending migrations
    python scripts/db_migrate.py --dry    # list pending migrations only

Reads DATABASE_URL (and DATABASE_SSL) from the environment or .env.
"""

import asyncio
import sys

from dotenv import load_dotenv

load_dotenv(encoding="utf-8")

from purgebot.config import BotConfig  # noqa: E402
from purgebot.core import setup_logging  # noqa: E402
from purgebot.shared.database import DatabaseManager, PoolConfig  # noqa: E402
from purgebot.shared.migrations import MigrationRunner  # noqa: E402


async def main(dry_run: bool) -> int:
    if not BotConfig.DATABASE_URL:
        print("DATABASE_URL is not set.")
        return 1

    database = DatabaseManager(
        BotConfig.DATABASE_URL,
        PoolConfig(min_size=1, max_size=2, ssl="require" if BotConfig.DATABASE_SSL else None),
    )
    await database.connect()
    try:
        runner = MigrationRunner(database.pool)
        if dry_run:
            pending = await runner.pending()
            print(f"{len(pending)} pending migration(s)")
            for migration in pending:
                print(f"  -> {migration.version}")
        else:
            applied = await runner.run_pending()
            print(f"Applied {len(applied)} migration(s).")
    finally:
        await database.disconnect()
    return 0


if __name__ == "__main__":
    setup_logging()
    sys.exit(asyncio.run(main("--dry" in sys.argv[1:])))
