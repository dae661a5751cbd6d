"""
Unit tests for notifications (snapvault/notifications.py).
"""

import logging
from unittest.mock import MagicMock

from snapvault.notifications import (
    BackupFailed,
    BackupFinished,
    BackupStarted,
    BackupWarning,
    CompositeNotifier,
    LoggingNotifier,
    RecordingNotifier,
    deliver,
    describe,
)


class TestDescribe:
    """Test event messages."""

    def test_started(self):
        assert describe(BackupStarted('world', True)) == "Backup of world started (full)..."
        assert describe(BackupStarted('world', False)) == "Backup of world started (incremental)..."

    def test_finished(self):
        message = describe(BackupFinished('world', duration=1.5, archive_size=1536, total_output_size=25 * 1024 ** 3))

        assert message == "Backup of world finished in 1.500s (1.50 KB, total 25 GB)"

    def test_failed(self):
        message = describe(BackupFailed('world', 'build', 'disk full'))

        assert message == "Backup of world failed during build: disk full"


class TestNotifiers:
    """Test notifier implementations."""

    def test_logging_notifier_levels(self, caplog):
        notifier = LoggingNotifier()

        with caplog.at_level(logging.INFO, logger='snapvault.notifications'):
            notifier.notify(BackupStarted('world', True))
            notifier.notify(BackupWarning('world', 'one file left'))
            notifier.notify(BackupFailed('world', 'quiesce', 'locked'))

        levels = [record.levelno for record in caplog.records]
        assert levels == [logging.INFO, logging.WARNING, logging.ERROR]

    def test_recording_notifier_limit(self):
        notifier = RecordingNotifier(limit=2)

        for i in range(3):
            notifier.notify(BackupWarning('world', str(i)))

        assert [event.message for event in notifier.events] == ['1', '2']

    def test_composite_isolates_failures(self):
        broken = MagicMock()
        broken.notify.side_effect = RuntimeError('webhook down')
        recorder = RecordingNotifier()

        CompositeNotifier([broken, recorder]).notify(BackupStarted('world', True))

        assert len(recorder.events) == 1

    def test_deliver_swallows_and_logs_errors(self, caplog):
        broken = MagicMock()
        broken.notify.side_effect = RuntimeError('chat offline')

        with caplog.at_level(logging.WARNING):
            deliver(broken, BackupStarted('world', True))

        assert 'chat offline' in caplog.text

    def test_deliver_without_notifier(self):
        deliver(None, BackupStarted('world', True))
