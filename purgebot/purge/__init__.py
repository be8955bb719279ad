"""Recurring purge core: filter, executor, scheduler, setup wizard and service."""

from .errors import (
    AttemptsExhausted,
    CancelledByUser,
    ChannelUnavailable,
    DeletionFailure,
    PersistenceFailure,
    PurgeError,
    ValidationError,
)
from .executor import PurgeExecutor, PurgeResult
from .filter import MessageSnapshot, matched_types, matches
from .scheduler import TaskScheduler
from .service import PurgeService, StopResult
from .wizard import Aborted, Cancelled, Done, SetupWizard, ask

__all__ = [
    # Core
    "MessageSnapshot",
    "matches",
    "matched_types",
    "PurgeExecutor",
    "PurgeResult",
    "TaskScheduler",
    "SetupWizard",
    "ask",
    "PurgeService",
    "StopResult",
    # Outcomes
    "Done",
    "Cancelled",
    "Aborted",
    # Errors
    "PurgeError",
    "ValidationError",
    "CancelledByUser",
    "AttemptsExhausted",
    "ChannelUnavailable",
    "DeletionFailure",
    "PersistenceFailure",
]
