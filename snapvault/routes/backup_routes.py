"""
Backup routes - status, manual trigger, pause/resume and history.
"""

from flask import Blueprint, current_app, jsonify, request

from snapvault.config import BackupSettings, ConfigError
from snapvault.models import BackupHistory, BackupState
from snapvault.backup.retention import list_archives
from snapvault.scheduler import get_scheduled_jobs, is_scheduler_running, trigger_backup_now
from snapvault.utils.units import format_size


bp = Blueprint('backup', __name__, url_prefix='/api/backup')


def _orchestrator():
    return current_app.extensions['snapvault']


def _isoformat(value):
    return value.isoformat() if value else None


@bp.route('/status', methods=['GET'])
def get_status():
    """
    Get backup status for the configured source tree.

    Returns:
        JSON with state timestamps, pause flag, running flag, scheduled jobs
        and output size
    """
    orchestrator = _orchestrator()
    state = BackupState.load(orchestrator.source.identity)
    archives = list_archives(current_app.config['OUTPUT_DIR'])
    total = sum(a.size_bytes for a in archives)

    return jsonify({
        'source_id': state.source_id,
        'source_dir': orchestrator.source.root_path,
        'last_snapshot_at': _isoformat(state.last_snapshot_at) if state.has_snapshot else None,
        'last_full_snapshot_at': _isoformat(state.last_full_snapshot_at) if state.has_snapshot else None,
        'paused': state.paused,
        'running': orchestrator.is_running,
        'scheduler_status': 'running' if is_scheduler_running() else 'stopped',
        'scheduled_jobs': get_scheduled_jobs(),
        'archive_count': len(archives),
        'total_size_bytes': total,
        'total_size': format_size(total)
    })


@bp.route('/run', methods=['POST'])
def run_backup():
    """
    Trigger a backup immediately.

    Request JSON (optional):
        quiet: Suppress started/finished notifications

    Returns:
        202 with the scheduled job id, or 409 if a backup is already running
    """
    data = request.get_json(silent=True) or {}
    quiet = bool(data.get('quiet', False))

    if _orchestrator().is_running:
        return jsonify({'error': 'A backup is already running'}), 409

    try:
        job_id = trigger_backup_now(quiet=quiet)
    except RuntimeError as e:
        return jsonify({'error': str(e)}), 503

    return jsonify({'message': 'Backup triggered', 'job_id': job_id, 'quiet': quiet}), 202


@bp.route('/pause', methods=['POST'])
def pause_backups():
    """Pause scheduled backups."""
    state = _orchestrator().set_paused(True)
    return jsonify({'source_id': state.source_id, 'paused': state.paused})


@bp.route('/resume', methods=['POST'])
def resume_backups():
    """Resume scheduled backups."""
    state = _orchestrator().set_paused(False)
    return jsonify({'source_id': state.source_id, 'paused': state.paused})


@bp.route('/history', methods=['GET'])
def get_history():
    """
    Get recent backup runs.

    Query params:
        limit: Number of records (default 20, max 100)
    """
    limit = min(request.args.get('limit', 20, type=int), 100)
    records = BackupHistory.query.filter_by(
        source_id=_orchestrator().source.identity
    ).order_by(BackupHistory.started_at.desc(), BackupHistory.id.desc()).limit(limit).all()

    return jsonify([record.to_dict() for record in records])


@bp.route('/archives', methods=['GET'])
def get_archives():
    """List archives in the output directory, newest first."""
    archives = list_archives(current_app.config['OUTPUT_DIR'])

    return jsonify([
        {
            'name': archive.name,
            'size_bytes': archive.size_bytes,
            'size': format_size(archive.size_bytes),
            'modified_at': archive.modified_at.isoformat()
        }
        for archive in reversed(archives)
    ])


@bp.route('/settings', methods=['GET'])
def get_settings():
    """Show the effective backup policy."""
    try:
        settings = BackupSettings.from_config(current_app.config)
    except ConfigError as e:
        return jsonify({'error': str(e)}), 500

    return jsonify({
        'enabled': settings.enabled,
        'backup_type': settings.backup_type,
        'interval_minutes': int(settings.min_interval.total_seconds() // 60),
        'full_interval_minutes': int(settings.full_interval.total_seconds() // 60),
        'backups_to_keep': settings.max_archive_count,
        'max_disk_size_bytes': settings.max_total_bytes,
        'max_disk_size': format_size(settings.max_total_bytes),
        'compression_level': settings.compression_level,
        'output_dir': settings.output_dir,
        'send_messages': settings.send_messages
    })
