"""Host-facing purge operations used by the slash commands and startup."""

from __future__ import annotations

import asyncio
import logging
import weakref
from dataclasses import dataclass
from typing import TYPE_CHECKING

from purgebot.shared.models.purge_config import PurgeConfig

from .errors import PersistenceFailure
from .wizard import DEFAULT_ATTEMPTS, DEFAULT_TIMEOUT, SetupWizard, WizardOutcome

if TYPE_CHECKING:
    from collections.abc import Iterable

    from purgebot.shared.repositories.purge_config import PurgeConfigRepository

    from .executor import PurgeResult
    from .gateway import DialogueTransport, MessagingGateway
    from .scheduler import TaskScheduler

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class StopResult:
    was_active: bool


class PurgeService:
    """Persistence first, scheduler second: a failed write never changes running jobs.

    Each write and the scheduler call that follows it run under the channel's
    lock, so a stored ``active`` flag always matches whether a job is running.
    """

    def __init__(
        self,
        repository: PurgeConfigRepository,
        scheduler: TaskScheduler,
        gateway: MessagingGateway,
        *,
        wizard_attempts: int = DEFAULT_ATTEMPTS,
        wizard_timeout: float = DEFAULT_TIMEOUT,
    ) -> None:
        self.repository = repository
        self.scheduler = scheduler
        self.gateway = gateway
        self.wizard_attempts = wizard_attempts
        self.wizard_timeout = wizard_timeout
        # a lock lives only while someone holds or waits on it
        self._channel_locks: weakref.WeakValueDictionary[int, asyncio.Lock] = weakref.WeakValueDictionary()

    def channel_lock(self, channel_id: int) -> asyncio.Lock:
        lock = self._channel_locks.get(channel_id)
        if lock is None:
            lock = self._channel_locks[channel_id] = asyncio.Lock()
        return lock

    async def configure(
        self,
        guild_id: int,
        channel_id: int,
        caller_id: int,
        transport: DialogueTransport,
        *,
        log_channel_id: int | None = None,
    ) -> WizardOutcome:
        """Run the setup wizard for ``caller_id`` in ``channel_id``."""
        logger.info(f"Purge setup started by {caller_id} in {channel_id} (guild {guild_id})")
        wizard = SetupWizard(
            guild_id=guild_id,
            transport=transport,
            gateway=self.gateway,
            repository=self.repository,
            scheduler=self.scheduler,
            log_channel_id=log_channel_id,
            attempts=self.wizard_attempts,
            timeout=self.wizard_timeout,
            channel_lock=self.channel_lock,
        )
        outcome = await wizard.run()
        logger.info(f"Purge setup by {caller_id} ended: {type(outcome).__name__}")
        return outcome

    async def stop(self, channel_id: int) -> StopResult:
        async with self.channel_lock(channel_id):
            try:
                was_active = await self.repository.deactivate(channel_id)
            except Exception as e:
                raise PersistenceFailure(f"deactivating {channel_id} failed: {e}") from e
            stopped = await self.scheduler.stop(channel_id)
        if stopped and not was_active:
            logger.warning(f"Stopped a job for {channel_id} that had no active config")
        return StopResult(was_active=was_active)

    async def resume(self, channel_id: int) -> PurgeConfig | None:
        """Reactivate a stopped config with its saved settings. None if never configured."""
        async with self.channel_lock(channel_id):
            try:
                config = await self.repository.activate(channel_id)
            except Exception as e:
                raise PersistenceFailure(f"activating {channel_id} failed: {e}") from e
            if config is None:
                return None
            await self.scheduler.start(config)
        return config

    async def status(self, guild_id: int) -> list[PurgeConfig]:
        return await self.repository.list_active_for_guild(guild_id)

    async def purge_now(self, channel_id: int) -> PurgeResult | None:
        """One immediate pass with the channel's saved config. None if never configured."""
        config = await self.repository.get(channel_id)
        if config is None:
            return None
        return await self.scheduler.run_now(config)

    async def on_startup(self, configs: Iterable[PurgeConfig] | None = None) -> int:
        """Rehydrate jobs from ``configs`` or, if not given, from every active row."""
        if configs is None:
            configs = await self.repository.list_active()
        return await self.scheduler.rehydrate(configs)
