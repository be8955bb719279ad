"""pytest configuration and in-memory fakes for the purge core."""

import asyncio
from dataclasses import replace
from datetime import datetime

import pytest
import pytest_asyncio

from purgebot.purge.errors import ValidationError
from purgebot.purge.executor import PurgeExecutor
from purgebot.purge.filter import MessageSnapshot
from purgebot.purge.parsing import parse_channel_reference
from purgebot.purge.scheduler import TaskScheduler
from purgebot.shared.models.purge_config import MediaType, PurgeConfig

GUILD_ID = 500
GENERAL_ID = 1001
MEDIA_ID = 1002
LOG_ID = 1003
CALLER_ID = 42
MEMBER_ID = 777

TIMEOUT = object()


def make_config(channel_id: int = GENERAL_ID, **overrides) -> PurgeConfig:
    values = dict(
        guild_id=GUILD_ID,
        channel_id=channel_id,
        interval_ms=30_000,
        media_types=(MediaType.ATTACHMENTS,),
    )
    values.update(overrides)
    return PurgeConfig(**values)


def make_message(message_id: int, **overrides) -> MessageSnapshot:
    values = dict(id=message_id, author_id=MEMBER_ID)
    values.update(overrides)
    return MessageSnapshot(**values)


class FakeRepository:
    """Dict-backed stand-in for PurgeConfigRepository."""

    def __init__(self) -> None:
        self.rows: dict[int, PurgeConfig] = {}
        self.fail_writes = False
        self.runs: list[tuple[int, datetime]] = []

    def _check(self) -> None:
        if self.fail_writes:
            raise ConnectionError("database is down")

    async def get(self, channel_id: int) -> PurgeConfig | None:
        return self.rows.get(channel_id)

    async def list_active(self) -> list[PurgeConfig]:
        return [row for row in self.rows.values() if row.active]

    async def list_active_for_guild(self, guild_id: int) -> list[PurgeConfig]:
        return [row for row in self.rows.values() if row.active and row.guild_id == guild_id]

    async def upsert(self, config: PurgeConfig) -> PurgeConfig:
        self._check()
        existing = self.rows.get(config.channel_id)
        saved = replace(config, active=True, last_run=existing.last_run if existing else None)
        self.rows[config.channel_id] = saved
        return saved

    async def deactivate(self, channel_id: int) -> bool:
        self._check()
        row = self.rows.get(channel_id)
        if row is None or not row.active:
            return False
        self.rows[channel_id] = replace(row, active=False)
        return True

    async def activate(self, channel_id: int) -> PurgeConfig | None:
        self._check()
        row = self.rows.get(channel_id)
        if row is None:
            return None
        self.rows[channel_id] = replace(row, active=True)
        return self.rows[channel_id]

    async def mark_run(self, channel_id: int, ran_at: datetime) -> None:
        self._check()
        self.runs.append((channel_id, ran_at))
        if channel_id in self.rows:
            self.rows[channel_id] = replace(self.rows[channel_id], last_run=ran_at)


class FakeGateway:
    """Channels are plain ids; each holds a list of MessageSnapshot."""

    def __init__(self) -> None:
        self.windows: dict[int, list[MessageSnapshot]] = {}
        self.channel_names = {"general": GENERAL_ID, "media": MEDIA_ID}
        self.members = {CALLER_ID, MEMBER_ID}
        self.deleted: list[int] = []
        self.undeletable: set[int] = set()
        self.notifications: list[tuple[int, str]] = []
        self.fail_fetch = False
        self.fail_notify = False
        self.fetch_limits: list[int] = []

    async def resolve_channel(self, channel_id: int):
        return channel_id if channel_id in self.windows else None

    async def fetch_recent(self, channel, limit: int) -> list[MessageSnapshot]:
        if self.fail_fetch:
            raise ConnectionError("history unavailable")
        self.fetch_limits.append(limit)
        return list(self.windows[channel][:limit])

    async def delete_message(self, channel, message_id: int) -> None:
        if message_id in self.undeletable:
            raise PermissionError("missing permissions")
        self.deleted.append(message_id)
        self.windows[channel] = [m for m in self.windows[channel] if m.id != message_id]

    async def send_notification(self, channel_id: int, text: str) -> None:
        if self.fail_notify:
            raise ConnectionError("cannot send")
        self.notifications.append((channel_id, text))

    async def resolve_text_channel(self, guild_id: int, reference: str) -> int:
        ref = parse_channel_reference(reference)
        if isinstance(ref, int):
            if ref in self.channel_names.values():
                return ref
        elif ref in self.channel_names:
            return self.channel_names[ref]
        raise ValidationError(f"`{reference}` is not a text channel in this server.")

    async def resolve_member(self, guild_id: int, user_id: int) -> int | None:
        return user_id if user_id in self.members else None


class ScriptedDialogue:
    """Replies come from a script; ``TIMEOUT`` entries simulate silence."""

    def __init__(self, *replies) -> None:
        self.replies = list(replies)
        self.sent: list[str] = []
        self.timeouts: list[float] = []

    async def send(self, text: str) -> None:
        self.sent.append(text)

    async def receive(self, timeout: float) -> str:
        self.timeouts.append(timeout)
        if not self.replies:
            raise asyncio.TimeoutError
        reply = self.replies.pop(0)
        if reply is TIMEOUT:
            raise asyncio.TimeoutError
        return reply


@pytest.fixture
def repository():
    return FakeRepository()


@pytest.fixture
def gateway():
    return FakeGateway()


@pytest.fixture
def executor(gateway, repository):
    return PurgeExecutor(gateway, repository, window_size=100)


@pytest_asyncio.fixture
async def scheduler(executor):
    scheduler = TaskScheduler(executor)
    yield scheduler
    await scheduler.shutdown()
