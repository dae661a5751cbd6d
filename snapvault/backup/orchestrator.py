"""
Backup orchestration for one source tree.

The orchestrator owns the source tree's BackupState, decides when a
snapshot is due and makes sure at most one snapshot of the tree runs at a
time. A trigger that arrives while a run is in progress is dropped; the next
periodic check re-evaluates whether a backup is due.
"""

import logging
import threading
from datetime import datetime
from typing import Callable, Optional

from snapvault import db
from snapvault.config import BackupSettings, ConfigError
from snapvault.models import BackupHistory, BackupState
from snapvault.utils.timeutil import utcnow
from .executor import BackupExecutor
from .planner import plan_snapshot


logger = logging.getLogger(__name__)


class BackupOrchestrator:
    """
    Runs scheduled and manual snapshots of a single source tree.

    All methods touching state must be called inside a Flask app context.
    """

    def __init__(self, source, settings_provider: Callable[[], BackupSettings], notifier=None):
        """
        Initialize backup orchestrator.

        Args:
            source: Source owner exposing root_path, identity,
                acquire_quiescence() and release(token)
            settings_provider: Returns the current policy snapshot
            notifier: Receives backup events (optional)
        """
        self.source = source
        self.settings_provider = settings_provider
        self.notifier = notifier
        self._run_lock = threading.Lock()

    @property
    def is_running(self) -> bool:
        return self._run_lock.locked()

    def run_if_due(self, now: Optional[datetime] = None) -> Optional[BackupHistory]:
        """
        Take a snapshot if one is due.

        Args:
            now: Current time (naive UTC); defaults to utcnow()

        Returns:
            BackupHistory of the run, or None if nothing ran (disabled,
            paused, not due, or another run in progress)
        """
        if not self._run_lock.acquire(blocking=False):
            logger.info(f"Backup of {self.source.identity} already running, trigger ignored")
            return None

        try:
            settings = self._load_settings()
            if settings is None or not settings.enabled:
                return None

            state = BackupState.load(self.source.identity)
            if state.paused:
                logger.debug(f"Backups of {self.source.identity} are paused")
                return None

            now = now or utcnow()
            plan = plan_snapshot(
                now,
                state,
                settings.min_interval,
                settings.full_interval,
                settings.only_incremental,
                since_full=settings.since_full
            )
            if not plan.should_run:
                return None

            executor = BackupExecutor(self.source, state, plan, settings, now, notifier=self.notifier)
            return executor.execute()
        finally:
            self._run_lock.release()

    def run_now(self, quiet: bool = False, now: Optional[datetime] = None) -> Optional[BackupHistory]:
        """
        Take a snapshot immediately.

        Ignores the interval, the pause flag and the enabled switch. Whether
        the snapshot is full follows the same full-backup timer as scheduled
        runs.

        Args:
            quiet: Suppress started/finished notifications
            now: Current time (naive UTC); defaults to utcnow()

        Returns:
            BackupHistory of the run, or None if another run is in progress
            or the settings are invalid
        """
        if not self._run_lock.acquire(blocking=False):
            logger.info(f"Backup of {self.source.identity} already running, manual trigger ignored")
            return None

        try:
            settings = self._load_settings()
            if settings is None:
                return None

            state = BackupState.load(self.source.identity)
            now = now or utcnow()
            plan = plan_snapshot(
                now,
                state,
                settings.min_interval,
                settings.full_interval,
                settings.only_incremental,
                since_full=settings.since_full,
                force=True
            )

            executor = BackupExecutor(
                self.source, state, plan, settings, now,
                notifier=self.notifier, quiet=quiet, manual=True
            )
            return executor.execute()
        finally:
            self._run_lock.release()

    def set_paused(self, paused: bool) -> BackupState:
        """Pause or resume scheduled backups; persisted across restarts."""
        state = BackupState.load(self.source.identity)
        state.paused = paused
        db.session.commit()
        logger.info(f"Backups of {self.source.identity} {'paused' if paused else 'resumed'}")
        return state

    def _load_settings(self) -> Optional[BackupSettings]:
        try:
            return self.settings_provider()
        except ConfigError as e:
            logger.error(f"Invalid backup configuration, skipping run: {e}")
            return None
