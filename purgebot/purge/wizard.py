"""Guided purge setup dialogue.

The wizard walks one caller through four steps (channel, interval, media types,
optional user filter). Every step goes through :func:`ask`, which gives the
caller a fixed number of attempts and a per-reply timeout. Nothing is written
until the final ``Committing`` state, which upserts the config and (re)starts
the channel's job.
"""

from __future__ import annotations

import asyncio
import inspect
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, TypeVar, Union

from purgebot.shared.models.purge_config import MediaType, PurgeConfig

from .errors import AttemptsExhausted, CancelledByUser, PersistenceFailure, ValidationError
from .parsing import describe_config, parse_interval, parse_media_types, parse_user_reference

if TYPE_CHECKING:
    from purgebot.shared.repositories.purge_config import PurgeConfigRepository

    from .gateway import DialogueTransport, MessagingGateway
    from .scheduler import TaskScheduler

logger = logging.getLogger(__name__)

T = TypeVar("T")

CANCEL_KEYWORD = "cancel"
DEFAULT_ATTEMPTS = 3
DEFAULT_TIMEOUT = 60.0


# ==================== States ====================


@dataclass(frozen=True)
class AwaitingChannel:
    pass


@dataclass(frozen=True)
class AwaitingInterval:
    channel_id: int


@dataclass(frozen=True)
class AwaitingMediaTypes:
    channel_id: int
    interval_ms: int


@dataclass(frozen=True)
class AwaitingUser:
    channel_id: int
    interval_ms: int
    media_types: tuple[MediaType, ...]


@dataclass(frozen=True)
class Committing:
    config: PurgeConfig


@dataclass(frozen=True)
class Done:
    config: PurgeConfig


@dataclass(frozen=True)
class Cancelled:
    step: str


@dataclass(frozen=True)
class Aborted:
    step: str
    attempts: int


WizardState = Union[
    AwaitingChannel, AwaitingInterval, AwaitingMediaTypes, AwaitingUser, Committing, Done, Cancelled, Aborted
]
WizardOutcome = Union[Done, Cancelled, Aborted]
TERMINAL_STATES = (Done, Cancelled, Aborted)


# ==================== Prompt primitive ====================


async def ask(
    transport: DialogueTransport,
    prompt: str,
    validate: Callable[[str], T | Awaitable[T]],
    *,
    step: str,
    attempts: int = DEFAULT_ATTEMPTS,
    timeout: float = DEFAULT_TIMEOUT,
) -> T:
    """Prompt until ``validate`` accepts a reply.

    Invalid replies and timeouts each use one attempt and re-prompt. Raises
    CancelledByUser on the cancel keyword and AttemptsExhausted when the
    attempts run out.
    """
    message = prompt
    for attempt in range(1, attempts + 1):
        await transport.send(message)
        left = attempts - attempt

        try:
            reply = await transport.receive(timeout)
        except asyncio.TimeoutError:
            logger.debug(f"No reply at {step} (attempt {attempt}/{attempts})")
            message = f"⏰ No reply within {timeout:g}s ({left} attempt(s) left).\n{prompt}"
            continue

        if reply.strip().lower() == CANCEL_KEYWORD:
            raise CancelledByUser(step)

        try:
            value = validate(reply)
            if inspect.isawaitable(value):
                value = await value
            return value  # type: ignore[return-value]
        except ValidationError as e:
            logger.debug(f"Invalid reply at {step} (attempt {attempt}/{attempts}): {e}")
            message = f"⚠️ {e} ({left} attempt(s) left)\n{prompt}"

    raise AttemptsExhausted(step, attempts)


# ==================== Wizard ====================


class SetupWizard:
    """One setup dialogue for one caller; ``run`` returns the terminal state."""

    PROMPTS = {
        "channel": (
            "**Step 1/4** Which channel should be purged? Mention it, e.g. #general.\n"
            f"Reply `{CANCEL_KEYWORD}` at any step to stop."
        ),
        "interval": "**Step 2/4** How often? e.g. `30s`, `15m`, `2h`, `1d`.",
        "media types": (
            "**Step 3/4** Which media? Comma-separated from: "
            + ", ".join(media.value for media in MediaType)
            + "."
        ),
        "user": "**Step 4/4** Only purge one user's messages? Mention them, or reply `none`.",
    }

    def __init__(
        self,
        *,
        guild_id: int,
        transport: DialogueTransport,
        gateway: MessagingGateway,
        repository: PurgeConfigRepository,
        scheduler: TaskScheduler,
        log_channel_id: int | None = None,
        attempts: int = DEFAULT_ATTEMPTS,
        timeout: float = DEFAULT_TIMEOUT,
        channel_lock: Callable[[int], asyncio.Lock] | None = None,
    ) -> None:
        self.guild_id = guild_id
        self.transport = transport
        self.gateway = gateway
        self.repository = repository
        self.scheduler = scheduler
        self.log_channel_id = log_channel_id
        self.attempts = attempts
        self.timeout = timeout
        self.channel_lock = channel_lock or (lambda channel_id: asyncio.Lock())
        self.state: WizardState = AwaitingChannel()

        self._handlers: dict[type, Callable[[Any], Awaitable[WizardState]]] = {
            AwaitingChannel: self._on_channel,
            AwaitingInterval: self._on_interval,
            AwaitingMediaTypes: self._on_media_types,
            AwaitingUser: self._on_user,
            Committing: self._on_commit,
        }

    async def run(self) -> WizardOutcome:
        """Drive the dialogue to a terminal state and acknowledge it once.

        Raises PersistenceFailure if the final write fails; the caller is told
        and no job is started.
        """
        try:
            while not isinstance(self.state, TERMINAL_STATES):
                self.state = await self._handlers[type(self.state)](self.state)
        except CancelledByUser as e:
            self.state = Cancelled(e.step)
        except AttemptsExhausted as e:
            self.state = Aborted(e.step, e.attempts)
        except PersistenceFailure:
            await self.transport.send("❌ The configuration could not be saved. Nothing was changed.")
            raise

        await self._acknowledge(self.state)  # type: ignore[arg-type]
        return self.state  # type: ignore[return-value]

    async def _ask(self, step: str, validate: Callable[[str], Any]) -> Any:
        return await ask(
            self.transport,
            self.PROMPTS[step],
            validate,
            step=step,
            attempts=self.attempts,
            timeout=self.timeout,
        )

    # --- steps ---

    async def _on_channel(self, state: AwaitingChannel) -> WizardState:
        channel_id = await self._ask(
            "channel", lambda reply: self.gateway.resolve_text_channel(self.guild_id, reply)
        )
        return AwaitingInterval(channel_id=channel_id)

    async def _on_interval(self, state: AwaitingInterval) -> WizardState:
        interval_ms = await self._ask("interval", parse_interval)
        return AwaitingMediaTypes(channel_id=state.channel_id, interval_ms=interval_ms)

    async def _on_media_types(self, state: AwaitingMediaTypes) -> WizardState:
        media_types = await self._ask("media types", parse_media_types)
        return AwaitingUser(
            channel_id=state.channel_id,
            interval_ms=state.interval_ms,
            media_types=media_types,
        )

    async def _on_user(self, state: AwaitingUser) -> WizardState:
        try:
            user_id = await self._ask("user", self._validate_user)
        except AttemptsExhausted:
            # the only step allowed to fail soft
            user_id = None
            await self.transport.send("No valid user given, continuing without a user filter.")

        return Committing(
            config=PurgeConfig(
                guild_id=self.guild_id,
                channel_id=state.channel_id,
                interval_ms=state.interval_ms,
                media_types=state.media_types,
                user_id=user_id,
                log_channel_id=self.log_channel_id,
            )
        )

    async def _on_commit(self, state: Committing) -> WizardState:
        # the write and the job start must not interleave with a stop of the same channel
        async with self.channel_lock(state.config.channel_id):
            try:
                saved = await self.repository.upsert(state.config)
            except Exception as e:
                logger.error(f"Saving purge config for {state.config.channel_id} failed: {e}")
                raise PersistenceFailure(str(e)) from e
            await self.scheduler.start(saved)

        logger.info(f"Purge configured: {describe_config(saved)}")
        return Done(config=saved)

    async def _validate_user(self, reply: str) -> int | None:
        user_id = parse_user_reference(reply)
        if user_id is None:
            return None
        resolved = await self.gateway.resolve_member(self.guild_id, user_id)
        if resolved is None:
            raise ValidationError("That user is not a member of this server.")
        return resolved

    # --- acknowledgement ---

    async def _acknowledge(self, outcome: WizardOutcome) -> None:
        if isinstance(outcome, Done):
            text = f"✅ Purge configured: {describe_config(outcome.config)}"
        elif isinstance(outcome, Cancelled):
            text = "Setup cancelled. Nothing was changed."
        else:
            text = (
                f"❌ Too many failed attempts at the {outcome.step} step. "
                "Setup aborted, nothing was saved."
            )
        await self.transport.send(text)
