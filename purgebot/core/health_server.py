"""Liveness and status endpoints for the hosting platform.

``/health`` always answers 200 so the process is not restarted while the
gateway is still connecting. ``/status`` reports the scheduled purge jobs and
whether the database answers.
"""

import asyncio
import logging
import time
from typing import TYPE_CHECKING, Any

from aiohttp import web

if TYPE_CHECKING:
    from purgebot.bot import PurgeBot

logger = logging.getLogger(__name__)

HEARTBEAT_INTERVAL = 300


class HealthCheckServer:
    def __init__(self, bot: "PurgeBot | None" = None, host: str = "0.0.0.0", port: int = 8080) -> None:
        self.bot: Any = bot
        self.host = host
        self.port = port
        self.started_at = time.monotonic()
        self.runner: web.AppRunner | None = None
        self._heartbeat_task: asyncio.Task | None = None

        self.app = web.Application()
        self.app.add_routes(
            [
                web.get("/", self.handle_root),
                web.get("/health", self.handle_health),
                web.get("/status", self.handle_status),
                web.get("/ping", self.handle_ping),
            ]
        )

    @property
    def uptime(self) -> int:
        return int(time.monotonic() - self.started_at)

    @property
    def ready(self) -> bool:
        return self.bot is not None and self.bot.is_ready()

    def _jobs(self) -> list[int]:
        scheduler = getattr(self.bot, "scheduler", None)
        return scheduler.active_channels() if scheduler is not None else []

    def _failing_jobs(self, channels: list[int]) -> list[int]:
        """Scheduled channels whose last pass ended with an error."""
        scheduler = getattr(self.bot, "scheduler", None)
        if scheduler is None:
            return []
        failing = []
        for channel_id in channels:
            result = scheduler.last_result(channel_id)
            if result is not None and result.error is not None:
                failing.append(channel_id)
        return failing

    async def handle_root(self, request: web.Request) -> web.Response:
        return web.json_response({"service": "purgebot", "status": "running"})

    async def handle_health(self, request: web.Request) -> web.Response:
        ready = self.ready
        return web.json_response({"status": "healthy" if ready else "starting", "ready": ready})

    async def handle_status(self, request: web.Request) -> web.Response:
        ready = self.ready
        database = getattr(self.bot, "database", None)
        db_ok = database is not None and await database.check_health()
        channels = self._jobs()
        return web.json_response(
            {
                "service": "purgebot",
                "bot_id": str(self.bot.user.id) if ready and self.bot.user else None,
                "uptime_seconds": self.uptime,
                "guilds": len(self.bot.guilds) if ready else 0,
                "scheduled_purges": len(channels),
                "failing_purges": [str(c) for c in self._failing_jobs(channels)],
                "database": "ok" if db_ok else "unavailable",
            }
        )

    async def handle_ping(self, request: web.Request) -> web.Response:
        return web.Response(text="pong")

    async def _heartbeat(self) -> None:
        while True:
            await asyncio.sleep(HEARTBEAT_INTERVAL)
            channels = self._jobs()
            logger.info(
                f"Heartbeat: uptime={self.uptime}s ready={self.ready} "
                f"purges={len(channels)} failing={len(self._failing_jobs(channels))}"
            )

    async def start(self) -> None:
        self.runner = web.AppRunner(self.app, access_log=None)
        await self.runner.setup()
        try:
            await web.TCPSite(self.runner, self.host, self.port).start()
        except OSError:
            logger.exception(f"Health server could not bind {self.host}:{self.port}")
            await self.runner.cleanup()
            self.runner = None
            raise
        self._heartbeat_task = asyncio.create_task(self._heartbeat(), name="health-heartbeat")
        logger.info(f"Health server listening on {self.host}:{self.port}")

    async def stop(self) -> None:
        if self._heartbeat_task is not None:
            self._heartbeat_task.cancel()
            self._heartbeat_task = None
        if self.runner is not None:
            await self.runner.cleanup()
            self.runner = None
            logger.info("Health server stopped")
