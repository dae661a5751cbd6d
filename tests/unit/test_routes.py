"""
Unit tests for the HTTP API (snapvault/routes/backup_routes.py).
"""

from datetime import datetime
from unittest.mock import MagicMock, patch

from snapvault import scheduler as scheduler_module
from snapvault.models import BackupHistory, BackupState


def add_history(db, status='success', started_at=None, **kwargs):
    record = BackupHistory(
        source_id='world',
        status=status,
        is_full=True,
        started_at=started_at or datetime(2024, 1, 15, 12, 0, 0),
        **kwargs
    )
    db.session.add(record)
    db.session.commit()
    return record


class TestHealth:

    def test_health(self, client):
        response = client.get('/health')

        assert response.status_code == 200
        assert response.get_json() == {'status': 'healthy'}


class TestStatus:
    """Test GET /api/backup/status."""

    def test_status_before_first_snapshot(self, client, db, source_tree):
        response = client.get('/api/backup/status')

        assert response.status_code == 200
        data = response.get_json()
        assert data['source_id'] == 'world'
        assert data['source_dir'] == str(source_tree)
        assert data['last_snapshot_at'] is None
        assert data['last_full_snapshot_at'] is None
        assert data['paused'] is False
        assert data['running'] is False
        assert data['scheduler_status'] == 'stopped'
        assert data['scheduled_jobs'] == []
        assert data['archive_count'] == 0
        assert data['total_size_bytes'] == 0

    def test_status_lists_scheduled_jobs(self, client, db):
        job = MagicMock()
        job.id = 'backup_check'
        job.name = 'Backup Due Check'
        job.next_run_time = datetime(2024, 1, 15, 12, 1, 0)
        job.trigger = 'interval[0:01:00]'
        running_scheduler = MagicMock()
        running_scheduler.running = True
        running_scheduler.get_jobs.return_value = [job]

        with patch.object(scheduler_module, 'scheduler', running_scheduler):
            data = client.get('/api/backup/status').get_json()

        assert data['scheduler_status'] == 'running'
        assert data['scheduled_jobs'] == [{
            'id': 'backup_check',
            'name': 'Backup Due Check',
            'next_run': '2024-01-15T12:01:00',
            'trigger': 'interval[0:01:00]'
        }]

    def test_status_after_snapshot(self, client, db, output_dir, make_archive_file):
        state = BackupState.load('world')
        state.record_snapshot(datetime(2024, 1, 15, 12, 0, 0), is_full=True)
        db.session.commit()
        make_archive_file(output_dir, 'world_2024-01-15_12-00-00.zip', size=1536)

        data = client.get('/api/backup/status').get_json()

        assert data['last_snapshot_at'] == '2024-01-15T12:00:00'
        assert data['last_full_snapshot_at'] == '2024-01-15T12:00:00'
        assert data['archive_count'] == 1
        assert data['total_size_bytes'] == 1536
        assert data['total_size'] == '1.50 KB'


class TestRun:
    """Test POST /api/backup/run."""

    @patch('snapvault.routes.backup_routes.trigger_backup_now', return_value='manual_1')
    def test_run_triggers_job(self, mock_trigger, client, db):
        response = client.post('/api/backup/run', json={'quiet': True})

        assert response.status_code == 202
        assert response.get_json()['job_id'] == 'manual_1'
        mock_trigger.assert_called_once_with(quiet=True)

    @patch('snapvault.routes.backup_routes.trigger_backup_now', return_value='manual_1')
    def test_run_without_body(self, mock_trigger, client, db):
        response = client.post('/api/backup/run')

        assert response.status_code == 202
        mock_trigger.assert_called_once_with(quiet=False)

    @patch('snapvault.routes.backup_routes.trigger_backup_now')
    def test_run_while_running(self, mock_trigger, app, client, db):
        orchestrator = app.extensions['snapvault']
        orchestrator._run_lock.acquire()
        try:
            response = client.post('/api/backup/run')
        finally:
            orchestrator._run_lock.release()

        assert response.status_code == 409
        mock_trigger.assert_not_called()

    def test_run_without_scheduler(self, client, db):
        response = client.post('/api/backup/run')

        assert response.status_code == 503
        assert 'Scheduler not initialized' in response.get_json()['error']


class TestPauseResume:
    """Test POST /api/backup/pause and /resume."""

    def test_pause_and_resume(self, client, db):
        response = client.post('/api/backup/pause')

        assert response.status_code == 200
        assert response.get_json() == {'source_id': 'world', 'paused': True}
        assert client.get('/api/backup/status').get_json()['paused'] is True

        response = client.post('/api/backup/resume')

        assert response.get_json()['paused'] is False
        db.session.expire_all()
        assert BackupState.load('world').paused is False


class TestHistory:
    """Test GET /api/backup/history."""

    def test_history_newest_first(self, client, db):
        add_history(db, started_at=datetime(2024, 1, 14), archive_name='world_2024-01-14_00-00-00.zip')
        add_history(db, status='failed', started_at=datetime(2024, 1, 15), failed_phase='build')

        data = client.get('/api/backup/history').get_json()

        assert [record['status'] for record in data] == ['failed', 'success']
        assert data[0]['failed_phase'] == 'build'

    def test_history_limit(self, client, db):
        for day in range(1, 6):
            add_history(db, started_at=datetime(2024, 1, day))

        data = client.get('/api/backup/history?limit=2').get_json()

        assert len(data) == 2
        assert data[0]['started_at'] == '2024-01-05T00:00:00'


class TestArchives:
    """Test GET /api/backup/archives."""

    def test_archives_newest_first(self, client, db, output_dir, make_archive_file):
        make_archive_file(output_dir, 'world_2024-01-01_12-00-00.zip', mtime=datetime(2024, 1, 1, 12))
        make_archive_file(output_dir, 'world_2024-01-02_12-00-00.zip', mtime=datetime(2024, 1, 2, 12))
        (output_dir / 'notes.txt').write_text('not an archive')

        data = client.get('/api/backup/archives').get_json()

        assert [archive['name'] for archive in data] == [
            'world_2024-01-02_12-00-00.zip',
            'world_2024-01-01_12-00-00.zip',
        ]
        assert data[0]['modified_at'] == '2024-01-02T12:00:00'


class TestSettings:
    """Test GET /api/backup/settings."""

    def test_settings(self, app, client, db):
        app.config['MAX_DISK_SIZE'] = '2 GB'
        app.config['BACKUPS_TO_KEEP'] = 4

        data = client.get('/api/backup/settings').get_json()

        assert data['backups_to_keep'] == 4
        assert data['max_disk_size_bytes'] == 2 * 1024 ** 3
        assert data['max_disk_size'] == '2 GB'

    def test_invalid_settings(self, app, client, db):
        app.config['BACKUPS_TO_KEEP'] = 0

        response = client.get('/api/backup/settings')

        assert response.status_code == 500
        assert 'BACKUPS_TO_KEEP' in response.get_json()['error']
