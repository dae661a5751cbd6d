"""
Backup executor - runs one snapshot of a source tree.

Workflow:
1. Create BackupHistory record (status: running)
2. Acquire quiescence token from the source owner
3. Enforce archive count limit (leave room for the new archive)
4. Build the compressed archive
5. Enforce total size limit (includes the new archive)
6. Record snapshot times in BackupState
7. Release the token and update BackupHistory (status: success/failed)

A failed run leaves BackupState untouched so the next due check retries it.
"""

import logging
import os
import time
from datetime import datetime

from snapvault import db
from snapvault.config import BackupSettings
from snapvault.models import BackupHistory, BackupState
from snapvault.notifications import (
    BackupFailed, BackupFinished, BackupStarted, BackupWarning, deliver
)
from snapvault.utils.timeutil import utcnow
from .compression import build_archive
from .planner import SnapshotPlan
from .retention import RetentionManager, total_size


logger = logging.getLogger(__name__)


class BackupExecutor:
    """
    Executes a single planned snapshot.

    Must be used inside a Flask app context.
    """

    def __init__(
        self,
        source,
        state: BackupState,
        plan: SnapshotPlan,
        settings: BackupSettings,
        now: datetime,
        notifier=None,
        quiet: bool = False,
        manual: bool = False
    ):
        """
        Initialize backup executor.

        Args:
            source: Source owner (root_path, identity, acquire_quiescence, release)
            state: Persisted state of the source tree
            plan: Plan computed for this run
            settings: Policy snapshot for this run
            now: Snapshot time recorded in the state on success
            notifier: Receives started/finished/failed events
            quiet: Suppress started/finished notifications
            manual: Run was triggered by hand
        """
        self.source = source
        self.state = state
        self.plan = plan
        self.settings = settings
        self.now = now
        self.notifier = notifier
        self.quiet = quiet
        self.manual = manual
        self.history_record = None
        self.archive_path = None
        self.phase = 'quiesce'
        self.logs = []
        self._log_flush_counter = 0

    def execute(self) -> BackupHistory:
        """
        Execute the backup.

        Returns:
            BackupHistory record with execution results
        """
        self.history_record = BackupHistory(
            source_id=self.source.identity,
            status='running',
            is_full=self.plan.is_full,
            manual=self.manual,
            started_at=utcnow()
        )
        db.session.add(self.history_record)
        db.session.commit()

        kind = 'full' if self.plan.is_full else f"incremental (since {self.plan.cutoff_time:%Y-%m-%d %H:%M:%S})"
        self._log(f"Starting {kind} backup of {self.source.identity}")

        try:
            self._execute_workflow()

            self.history_record.status = 'success'
            self.history_record.completed_at = utcnow()
            self._log("Backup completed successfully")

        except Exception as e:
            db.session.rollback()
            self.history_record.status = 'failed'
            self.history_record.completed_at = utcnow()
            self.history_record.failed_phase = self.phase
            self.history_record.error_message = str(e)
            self._log(f"Backup failed during {self.phase}: {e}", level=logging.ERROR)
            deliver(self.notifier, BackupFailed(self.source.identity, self.phase, str(e)))

        finally:
            self.history_record.logs = '\n'.join(self.logs)
            db.session.commit()

        return self.history_record

    def _execute_workflow(self):
        """Execute the main backup workflow steps."""
        settings = self.settings
        retention = RetentionManager()

        # Step 1: Freeze the source tree
        self.phase = 'quiesce'
        token = self.source.acquire_quiescence()
        self._log("Source tree quiesced")

        try:
            started = time.monotonic()
            self._announce(BackupStarted(self.source.identity, self.plan.is_full))

            # Step 2: Make room for the new archive
            self.phase = 'retention'
            retention.enforce_count(settings.output_dir, settings.max_archive_count)
            self._collect(retention)

            # Step 3: Build the archive
            self.phase = 'build'
            result = build_archive(
                self.source.root_path,
                settings.output_dir,
                self.plan,
                identity=self.source.identity,
                moment=self.now,
                compression_level=settings.compression_level,
                skip_names=settings.lock_file_names
            )
            self.archive_path = result.path
            self.history_record.archive_name = os.path.basename(result.path)
            self.history_record.file_size_bytes = result.size_bytes
            self._log(
                f"Archive created: {self.history_record.archive_name} "
                f"({result.file_count} files, {result.size_bytes / 1024 / 1024:.2f} MB)"
            )
            self._flush_logs_to_db()

            # Step 4: Bound total disk usage
            self.phase = 'retention'
            size_result = retention.enforce_size(settings.output_dir, settings.max_total_bytes)
            self._collect(retention)
            if size_result.cannot_reclaim:
                deliver(self.notifier, BackupWarning(
                    self.source.identity,
                    "Cannot delete old files to save disk space. Only one backup file left!"
                ))

            # Step 5: Remember the snapshot
            self.phase = 'state'
            self.state.record_snapshot(self.now, self.plan.is_full)
            db.session.commit()
            duration = time.monotonic() - started

        finally:
            self.source.release(token)
            self._log("Source tree released", flush=False)

        self._announce(BackupFinished(
            self.source.identity,
            duration=duration,
            archive_size=result.size_bytes,
            total_output_size=total_size(settings.output_dir)
        ))

    def _announce(self, event):
        """Deliver started/finished events unless the run is quiet."""
        if self.quiet or not self.settings.send_messages:
            return
        deliver(self.notifier, event)

    def _collect(self, retention: RetentionManager):
        self.logs.extend(retention.logs)
        retention.logs = []

    def _log(self, message: str, level: int = logging.INFO, flush: bool = True):
        """
        Add a log message with timestamp.

        Args:
            message: Log message
            level: Logging level for the module logger
            flush: Allow a periodic flush of the logs to the database
        """
        timestamp = utcnow().strftime('%Y-%m-%d %H:%M:%S UTC')
        self.logs.append(f"[{timestamp}] {message}")
        logger.log(level, message)

        # Flush logs every 5 entries
        self._log_flush_counter += 1
        if flush and self._log_flush_counter >= 5:
            self._flush_logs_to_db()

    def _flush_logs_to_db(self):
        """Flush accumulated logs to database for real-time visibility."""
        if self.history_record:
            self.history_record.logs = '\n'.join(self.logs)
            db.session.commit()
            self._log_flush_counter = 0
