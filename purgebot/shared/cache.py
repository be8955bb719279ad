"""Per-guild cache of active purge configs.

``/purge-status`` is read far more often than configs change, so the active
list of each guild is kept in a cachetools.TTLCache for a short while. Every
write in the repository drops the guild's entry.

The last list successfully read for a guild is also kept without expiry, and
``load`` answers with it when the database cannot be reached.
"""

from __future__ import annotations

import asyncio
import logging
from collections import OrderedDict
from collections.abc import Awaitable, Callable
from typing import TYPE_CHECKING

from cachetools import TTLCache  # type: ignore[import-untyped]

if TYPE_CHECKING:
    from purgebot.shared.models.purge_config import PurgeConfig

logger = logging.getLogger(__name__)

Loader = Callable[[], Awaitable["list[PurgeConfig]"]]


class StatusCache:
    def __init__(
        self,
        maxsize: int = 256,
        ttl: float = 30.0,
        *,
        attempts: int = 2,
        retry_delay: float = 0.5,
    ) -> None:
        self.maxsize = maxsize
        self.attempts = attempts
        self.retry_delay = retry_delay
        self._fresh: TTLCache = TTLCache(maxsize=maxsize, ttl=ttl)
        self._last_good: OrderedDict[int, list[PurgeConfig]] = OrderedDict()
        self._loading: dict[int, asyncio.Lock] = {}

    def __len__(self) -> int:
        return len(self._fresh)

    def peek(self, guild_id: int) -> list[PurgeConfig] | None:
        """Fresh entry for ``guild_id``, or None when absent or expired."""
        return self._fresh.get(guild_id)

    def store(self, guild_id: int, configs: list[PurgeConfig]) -> None:
        self._fresh[guild_id] = configs
        self._last_good[guild_id] = configs
        self._last_good.move_to_end(guild_id)
        if len(self._last_good) > self.maxsize:
            self._last_good.popitem(last=False)

    def invalidate(self, guild_id: int) -> None:
        self._fresh.pop(guild_id, None)

    def clear(self) -> None:
        """Drop every fresh entry; last-known-good lists stay."""
        self._fresh.clear()

    def _lock_for(self, guild_id: int) -> asyncio.Lock:
        lock = self._loading.get(guild_id)
        if lock is None:
            if len(self._loading) >= self.maxsize:
                for key in [k for k, v in self._loading.items() if not v.locked()]:
                    del self._loading[key]
            lock = self._loading[guild_id] = asyncio.Lock()
        return lock

    async def load(self, guild_id: int, loader: Loader) -> list[PurgeConfig]:
        """Return the cached list or read it through ``loader``.

        Concurrent misses for one guild share a single read. After
        ``attempts`` failed reads the last-known-good list is returned if
        there is one; otherwise the last error propagates.
        """
        configs = self.peek(guild_id)
        if configs is not None:
            return configs

        async with self._lock_for(guild_id):
            configs = self.peek(guild_id)
            if configs is not None:
                return configs

            error: Exception | None = None
            for attempt in range(1, self.attempts + 1):
                try:
                    configs = await loader()
                except asyncio.CancelledError:
                    raise
                except Exception as e:
                    error = e
                    if attempt < self.attempts:
                        logger.warning(
                            f"Status read for guild {guild_id} failed "
                            f"({attempt}/{self.attempts}): {type(e).__name__}"
                        )
                        await asyncio.sleep(self.retry_delay * attempt)
                    continue
                self.store(guild_id, configs)
                return configs

            if guild_id in self._last_good:
                logger.warning(f"Serving last known status for guild {guild_id} ({type(error).__name__})")
                return self._last_good[guild_id]
            raise error  # type: ignore[misc]
