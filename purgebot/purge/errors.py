"""Exceptions raised by the purge core."""

from __future__ import annotations


class PurgeError(Exception):
    """Base class for purge errors."""


class ValidationError(PurgeError):
    """A wizard reply did not pass its step's validation. The message is shown to the caller."""


class CancelledByUser(PurgeError):
    """The caller replied with the cancel keyword."""

    def __init__(self, step: str) -> None:
        super().__init__(f"cancelled at {step}")
        self.step = step


class AttemptsExhausted(PurgeError):
    """A wizard step ran out of attempts (invalid replies or timeouts)."""

    def __init__(self, step: str, attempts: int) -> None:
        super().__init__(f"{attempts} failed attempts at {step}")
        self.step = step
        self.attempts = attempts


class ChannelUnavailable(PurgeError):
    """The purge target channel is deleted or inaccessible."""

    def __init__(self, channel_id: int) -> None:
        super().__init__(f"channel {channel_id} is unavailable")
        self.channel_id = channel_id


class DeletionFailure(PurgeError):
    def __init__(self, message_id: int, reason: str) -> None:
        super().__init__(f"could not delete message {message_id}: {reason}")
        self.message_id = message_id
        self.reason = reason


class PersistenceFailure(PurgeError):
    """A configuration write did not reach the database."""
