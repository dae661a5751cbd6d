"""
Shared pytest fixtures for Snapvault tests.

This module provides fixtures for:
- Flask app and test client with in-memory SQLite
- Source trees and output directories on tmp_path
- Backup settings and orchestrators
- Helpers for setting file modification times and creating archives
"""

import os
from datetime import datetime, timedelta
from unittest.mock import MagicMock, patch

import pytest

from snapvault import create_app, db as _db
from snapvault.backup.orchestrator import BackupOrchestrator
from snapvault.backup.sources import DirectorySource
from snapvault.config import BackupSettings
from snapvault.notifications import RecordingNotifier
from snapvault.utils.timeutil import to_timestamp


def _set_mtime(path, moment):
    """Set a file's access and modification time to a naive UTC datetime."""
    ts = to_timestamp(moment) if isinstance(moment, datetime) else moment
    os.utime(path, (ts, ts))


def _make_archive_file(directory, name, size=10, mtime=None):
    """Create an archive-named file of the given size."""
    directory.mkdir(parents=True, exist_ok=True)
    path = directory / name
    path.write_bytes(b"x" * size)
    if mtime is not None:
        _set_mtime(path, mtime)
    return path


@pytest.fixture
def set_mtime():
    return _set_mtime


@pytest.fixture
def make_archive_file():
    return _make_archive_file


@pytest.fixture
def source_tree(tmp_path):
    """
    Create a small world directory.

    Creates:
    - world/level.dat
    - world/region/r.0.0.mca
    - world/playerdata/player.dat
    - world/session.lock (never archived)
    """
    world = tmp_path / 'world'
    (world / 'region').mkdir(parents=True)
    (world / 'playerdata').mkdir()

    (world / 'level.dat').write_bytes(b'level data')
    (world / 'region' / 'r.0.0.mca').write_bytes(b'\x00\x01region bytes' * 100)
    (world / 'playerdata' / 'player.dat').write_text('player')
    (world / 'session.lock').write_text('lock')

    return world


@pytest.fixture
def output_dir(tmp_path):
    return tmp_path / 'backups'


@pytest.fixture
def settings(output_dir):
    """Default policy: always full, keep 10, 25 GB cap."""
    return BackupSettings(
        enabled=True,
        backup_type='full',
        min_interval=timedelta(minutes=120),
        full_interval=timedelta(days=365),
        max_archive_count=10,
        max_total_bytes=25 * 1024 ** 3,
        compression_level=-1,
        output_dir=str(output_dir),
        send_messages=True,
        lock_file_names=('session.lock',)
    )


@pytest.fixture(scope='function')
def app(tmp_path, source_tree, output_dir):
    """
    Create Flask app with test configuration.

    Uses in-memory SQLite database and temp directories; the scheduler is
    not started.
    """
    app = create_app('testing', {
        'DATA_DIR': str(tmp_path),
        'SOURCE_DIR': str(source_tree),
        'SOURCE_ID': 'world',
        'OUTPUT_DIR': str(output_dir),
    })

    yield app


@pytest.fixture(scope='function')
def db(app):
    """
    Database with all tables.

    Each test gets a fresh database.
    """
    with app.app_context():
        _db.create_all()
        yield _db
        _db.session.remove()
        _db.drop_all()


@pytest.fixture(scope='function')
def client(app):
    """Flask test client for making HTTP requests."""
    return app.test_client()


@pytest.fixture
def notifier():
    return RecordingNotifier()


@pytest.fixture
def directory_source(source_tree):
    return DirectorySource(str(source_tree), identity='world', timeout=0.1)


@pytest.fixture
def orchestrator(db, directory_source, settings, notifier):
    """BackupOrchestrator over the temp source tree with fixed settings."""
    return BackupOrchestrator(directory_source, lambda: settings, notifier=notifier)


@pytest.fixture
def mock_source(source_tree):
    """Source owner double whose quiescence calls can be inspected."""
    source = MagicMock()
    source.identity = 'world'
    source.root_path = str(source_tree)
    source.acquire_quiescence.return_value = 'token'
    return source


@pytest.fixture(scope='function')
def mock_scheduler():
    """
    Mock APScheduler for testing scheduler functionality.
    """
    with patch('snapvault.scheduler.BackgroundScheduler') as mock_sched:
        scheduler_instance = MagicMock()
        mock_sched.return_value = scheduler_instance

        scheduler_instance.running = False
        scheduler_instance.state = 0
        scheduler_instance.get_jobs.return_value = []

        yield scheduler_instance
