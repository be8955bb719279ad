"""One purge pass over one channel's recent window."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import TYPE_CHECKING

from purgebot.shared.models.purge_config import MediaType, PurgeConfig

from .errors import ChannelUnavailable, DeletionFailure, PersistenceFailure, PurgeError
from .filter import matched_types
from .parsing import format_interval

if TYPE_CHECKING:
    from purgebot.shared.repositories.purge_config import PurgeConfigRepository

    from .gateway import MessagingGateway

logger = logging.getLogger(__name__)

DEFAULT_WINDOW_SIZE = 100


@dataclass
class PurgeResult:
    channel_id: int
    deleted_count: int = 0
    matched_types: list[MediaType] = field(default_factory=list)
    failures: list[DeletionFailure] = field(default_factory=list)
    error: PurgeError | None = None

    @property
    def failed_count(self) -> int:
        return len(self.failures)

    @property
    def ok(self) -> bool:
        return self.error is None


class PurgeExecutor:
    """Fetch, classify and delete; never raises for platform or database errors."""

    def __init__(
        self,
        gateway: MessagingGateway,
        repository: PurgeConfigRepository,
        *,
        window_size: int = DEFAULT_WINDOW_SIZE,
        delete_delay: float = 0.0,
    ) -> None:
        self.gateway = gateway
        self.repository = repository
        self.window_size = window_size
        self.delete_delay = delete_delay

    async def run_once(self, config: PurgeConfig) -> PurgeResult:
        result = PurgeResult(channel_id=config.channel_id)

        channel = await self.gateway.resolve_channel(config.channel_id)
        if channel is None:
            result.error = ChannelUnavailable(config.channel_id)
            logger.warning(f"Purge skipped: channel {config.channel_id} is unavailable")
            return result

        try:
            window = await self.gateway.fetch_recent(channel, self.window_size)
        except asyncio.CancelledError:
            raise
        except Exception as e:
            result.error = PurgeError(f"fetching messages failed: {type(e).__name__}: {e}")
            logger.warning(f"Purge of {config.channel_id} could not read history: {e}")
            return result

        for message in window:
            types = matched_types(message, config)
            if not types:
                continue
            try:
                await self.gateway.delete_message(channel, message.id)
            except asyncio.CancelledError:
                raise
            except Exception as e:
                result.failures.append(DeletionFailure(message.id, f"{type(e).__name__}: {e}"))
                continue
            result.deleted_count += 1
            for media in types:
                if media not in result.matched_types:
                    result.matched_types.append(media)
            if self.delete_delay:
                await asyncio.sleep(self.delete_delay)

        if result.failures:
            logger.warning(
                f"Purge of {config.channel_id}: {result.failed_count} deletion(s) failed, "
                f"first: {result.failures[0]}"
            )

        try:
            await self.repository.mark_run(config.channel_id, datetime.now(timezone.utc))
        except asyncio.CancelledError:
            raise
        except Exception as e:
            result.error = PersistenceFailure(f"recording last run failed: {e}")
            logger.error(f"Could not record last run for {config.channel_id}: {e}")

        logger.info(
            f"Purged {result.deleted_count}/{len(window)} message(s) in {config.channel_id}"
        )

        if config.log_channel_id is not None and result.deleted_count > 0:
            await self._send_summary(config, result)

        return result

    async def _send_summary(self, config: PurgeConfig, result: PurgeResult) -> None:
        types = ", ".join(media.value for media in result.matched_types)
        text = (
            f"🧹 Purged **{result.deleted_count}** message(s) from <#{config.channel_id}> "
            f"(types: {types}, every {format_interval(config.interval_ms)})"
        )
        if result.failed_count:
            text += f"; {result.failed_count} could not be deleted"
        try:
            await self.gateway.send_notification(config.log_channel_id, text)  # type: ignore[arg-type]
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.warning(f"Purge summary to {config.log_channel_id} not delivered: {e}")
