"""
Backup notifications.

The orchestrator emits plain event objects; notifiers decide how to surface
them. Delivery problems are logged and never affect a backup run.
"""

import logging
from dataclasses import dataclass
from typing import List, Optional

from snapvault.utils.units import format_duration, format_size


logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class BackupStarted:
    source_id: str
    is_full: bool


@dataclass(frozen=True)
class BackupFinished:
    source_id: str
    duration: float  # seconds
    archive_size: int
    total_output_size: int


@dataclass(frozen=True)
class BackupFailed:
    source_id: str
    phase: str
    error: str


@dataclass(frozen=True)
class BackupWarning:
    source_id: str
    message: str


def describe(event) -> str:
    """Render an event as a one-line message."""
    if isinstance(event, BackupStarted):
        kind = 'full' if event.is_full else 'incremental'
        return f"Backup of {event.source_id} started ({kind})..."
    if isinstance(event, BackupFinished):
        return (
            f"Backup of {event.source_id} finished in {format_duration(event.duration)} "
            f"({format_size(event.archive_size)}, total {format_size(event.total_output_size)})"
        )
    if isinstance(event, BackupFailed):
        return f"Backup of {event.source_id} failed during {event.phase}: {event.error}"
    if isinstance(event, BackupWarning):
        return f"Backup of {event.source_id}: {event.message}"
    return str(event)


class Notifier:
    """Base notifier; subclasses override notify()."""

    def notify(self, event):
        raise NotImplementedError


class LoggingNotifier(Notifier):
    """Writes events to a logger."""

    def __init__(self, logger_name: str = 'snapvault.notifications'):
        self.logger = logging.getLogger(logger_name)

    def notify(self, event):
        if isinstance(event, BackupFailed):
            level = logging.ERROR
        elif isinstance(event, BackupWarning):
            level = logging.WARNING
        else:
            level = logging.INFO
        self.logger.log(level, describe(event))


class RecordingNotifier(Notifier):
    """Keeps events in memory (status endpoint, tests)."""

    def __init__(self, limit: Optional[int] = 100):
        self.events: List[object] = []
        self.limit = limit

    def notify(self, event):
        self.events.append(event)
        if self.limit is not None and len(self.events) > self.limit:
            del self.events[:-self.limit]


class CompositeNotifier(Notifier):
    """Fans an event out to several notifiers."""

    def __init__(self, notifiers: List[Notifier]):
        self.notifiers = list(notifiers)

    def notify(self, event):
        for notifier in self.notifiers:
            deliver(notifier, event)


def deliver(notifier: Optional[Notifier], event):
    """Send an event, logging instead of raising if delivery fails."""
    if notifier is None:
        return
    try:
        notifier.notify(event)
    except Exception as e:
        logger.warning(f"Notifier {type(notifier).__name__} failed to deliver {type(event).__name__}: {e}")
