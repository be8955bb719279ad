"""Per-channel recurring purge jobs."""

from __future__ import annotations

import asyncio
import functools
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import TYPE_CHECKING

from purgebot.shared.models.purge_config import PurgeConfig

if TYPE_CHECKING:
    from collections.abc import Iterable

    from .executor import PurgeExecutor, PurgeResult

logger = logging.getLogger(__name__)


@dataclass
class _ChannelJob:
    config: PurgeConfig
    stop_event: asyncio.Event = field(default_factory=asyncio.Event)
    task: asyncio.Task | None = None


class TaskScheduler:
    """Owns at most one recurring purge job per channel.

    Jobs for different channels run independently. Passes on the same channel
    never overlap: every pass, recurring or immediate, runs under that
    channel's lock, which survives job replacement. A firing that comes due
    while a pass is still running is skipped.

    A replaced or stopped job's task is kept until it ends, so a pass it is
    still running can be cancelled on shutdown. A channel's lock and last
    result are dropped once it has no job, no such task and no immediate pass.
    """

    def __init__(self, executor: PurgeExecutor) -> None:
        self.executor = executor
        self._jobs: dict[int, _ChannelJob] = {}
        self._registry_lock = asyncio.Lock()
        self._channel_locks: dict[int, asyncio.Lock] = {}
        self._last_results: dict[int, PurgeResult] = {}
        self._retired: dict[int, set[asyncio.Task]] = {}
        self._immediate: dict[int, int] = {}

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def start(self, config: PurgeConfig) -> None:
        """Start (or replace) the recurring job for ``config.channel_id``."""
        async with self._registry_lock:
            previous = self._jobs.pop(config.channel_id, None)

            job = _ChannelJob(config=config)
            job.task = asyncio.create_task(
                self._run_job(job), name=f"purge:{config.channel_id}"
            )
            self._jobs[config.channel_id] = job
            if previous is not None:
                self._retire(previous)

        logger.info(
            f"Scheduled purge for {config.channel_id} every {config.interval_seconds:g}s"
            + (" (replaced previous job)" if previous is not None else "")
        )

    async def stop(self, channel_id: int) -> bool:
        """Stop the job for ``channel_id``. Returns False if there was none.

        A pass already running finishes; no further pass starts.
        """
        async with self._registry_lock:
            job = self._jobs.pop(channel_id, None)
            if job is None:
                return False
            self._retire(job)
        logger.info(f"Stopped purge job for {channel_id}")
        return True

    async def rehydrate(self, configs: Iterable[PurgeConfig]) -> int:
        """Start a job for every active config; returns how many were started."""
        started = 0
        for config in configs:
            if not config.active:
                continue
            await self.start(config)
            started += 1
        logger.info(f"Rehydrated {started} purge job(s)")
        return started

    async def run_now(self, config: PurgeConfig) -> PurgeResult:
        """Run a single pass immediately, queued behind any pass in flight."""
        channel_id = config.channel_id
        self._immediate[channel_id] = self._immediate.get(channel_id, 0) + 1
        try:
            async with self._channel_lock(channel_id):
                result = await self.executor.run_once(config)
            self._last_results[channel_id] = result
        finally:
            self._immediate[channel_id] -= 1
            if not self._immediate[channel_id]:
                del self._immediate[channel_id]
        self._prune(channel_id)
        return result

    def is_running(self, channel_id: int) -> bool:
        return channel_id in self._jobs

    def active_channels(self) -> list[int]:
        return list(self._jobs)

    def last_result(self, channel_id: int) -> PurgeResult | None:
        return self._last_results.get(channel_id)

    async def shutdown(self) -> None:
        """Cancel every job, including passes in flight of replaced or stopped jobs."""
        async with self._registry_lock:
            jobs = list(self._jobs.values())
            self._jobs.clear()
            retired = [task for tasks in self._retired.values() for task in tasks]
        tasks = []
        for job in jobs:
            job.stop_event.set()
            if job.task is not None:
                job.task.cancel()
                tasks.append(job.task)
        for task in retired:
            task.cancel()
            tasks.append(task)
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
        logger.info(f"Scheduler shut down ({len(tasks)} job(s) cancelled)")

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _channel_lock(self, channel_id: int) -> asyncio.Lock:
        lock = self._channel_locks.get(channel_id)
        if lock is None:
            lock = self._channel_locks[channel_id] = asyncio.Lock()
        return lock

    def _retire(self, job: _ChannelJob) -> None:
        job.stop_event.set()
        channel_id = job.config.channel_id
        if job.task is None or job.task.done():
            self._prune(channel_id)
            return
        self._retired.setdefault(channel_id, set()).add(job.task)
        job.task.add_done_callback(functools.partial(self._on_retired_done, channel_id))

    def _on_retired_done(self, channel_id: int, task: asyncio.Task) -> None:
        tasks = self._retired.get(channel_id)
        if tasks is not None:
            tasks.discard(task)
            if not tasks:
                del self._retired[channel_id]
        self._prune(channel_id)

    def _prune(self, channel_id: int) -> None:
        if channel_id in self._jobs or channel_id in self._retired or channel_id in self._immediate:
            return
        self._channel_locks.pop(channel_id, None)
        self._last_results.pop(channel_id, None)

    @staticmethod
    def initial_delay(config: PurgeConfig, now: datetime | None = None) -> float:
        """Seconds until the first firing; catches up on time elapsed since ``last_run``."""
        interval = config.interval_seconds
        if config.last_run is None:
            return interval
        now = now or datetime.now(timezone.utc)
        last_run = config.last_run
        if last_run.tzinfo is None:
            last_run = last_run.replace(tzinfo=timezone.utc)
        elapsed = (now - last_run).total_seconds()
        return min(interval, max(0.0, interval - elapsed))

    async def _wait_for_stop(self, job: _ChannelJob, timeout: float) -> bool:
        if timeout <= 0:
            return job.stop_event.is_set()
        try:
            await asyncio.wait_for(job.stop_event.wait(), timeout)
        except asyncio.TimeoutError:
            return False
        return True

    async def _run_job(self, job: _ChannelJob) -> None:
        config = job.config
        interval = config.interval_seconds
        loop = asyncio.get_running_loop()
        next_fire = loop.time() + self.initial_delay(config)

        while True:
            if await self._wait_for_stop(job, next_fire - loop.time()):
                return

            async with self._channel_lock(config.channel_id):
                # stop() may have landed while waiting for the lock
                if job.stop_event.is_set():
                    return
                await self._tick(config)

            now = loop.time()
            next_fire += interval
            if next_fire <= now:
                skipped = int((now - next_fire) // interval) + 1
                next_fire += skipped * interval
                logger.debug(f"Purge of {config.channel_id} overran; skipped {skipped} firing(s)")

    async def _tick(self, config: PurgeConfig) -> None:
        try:
            result = await self.executor.run_once(config)
        except asyncio.CancelledError:
            raise
        except Exception:
            logger.exception(f"Purge tick for {config.channel_id} failed")
            return
        self._last_results[config.channel_id] = result
        if result.error is not None:
            logger.warning(f"Purge tick for {config.channel_id}: {result.error}")
