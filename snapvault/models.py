from datetime import datetime
from snapvault import db
from snapvault.utils.timeutil import EPOCH, utcnow


class BackupState(db.Model):
    """Persistent snapshot bookkeeping for one source tree"""
    __tablename__ = 'backup_state'

    id = db.Column(db.Integer, primary_key=True)
    source_id = db.Column(db.String(255), unique=True, nullable=False)
    last_snapshot_at = db.Column(db.DateTime, default=EPOCH, nullable=False)  # UTC
    last_full_snapshot_at = db.Column(db.DateTime, default=EPOCH, nullable=False)  # UTC
    paused = db.Column(db.Boolean, default=False, nullable=False)
    updated_at = db.Column(db.DateTime, default=utcnow, onupdate=utcnow, nullable=False)

    @property
    def has_snapshot(self) -> bool:
        return self.last_snapshot_at is not None and self.last_snapshot_at > EPOCH

    @classmethod
    def load(cls, source_id: str) -> 'BackupState':
        """
        Get the state row for a source tree, creating it on first use.

        A new row carries epoch timestamps, which forces a full snapshot.
        """
        state = cls.query.filter_by(source_id=source_id).first()
        if state is None:
            state = cls(
                source_id=source_id,
                last_snapshot_at=EPOCH,
                last_full_snapshot_at=EPOCH,
                paused=False
            )
            db.session.add(state)
            db.session.commit()
        return state

    def record_snapshot(self, taken_at: datetime, is_full: bool):
        self.last_snapshot_at = taken_at
        if is_full:
            self.last_full_snapshot_at = taken_at

    def __repr__(self):
        return f'<BackupState {self.source_id} last={self.last_snapshot_at} paused={self.paused}>'


class BackupHistory(db.Model):
    """Backup run history and logs"""
    __tablename__ = 'backup_history'

    id = db.Column(db.Integer, primary_key=True)
    source_id = db.Column(db.String(255), nullable=False, index=True)
    status = db.Column(db.String(20), nullable=False)  # running, success, failed
    is_full = db.Column(db.Boolean, nullable=False)
    manual = db.Column(db.Boolean, default=False, nullable=False)
    started_at = db.Column(db.DateTime, default=utcnow, nullable=False)
    completed_at = db.Column(db.DateTime)
    archive_name = db.Column(db.String(500))
    file_size_bytes = db.Column(db.BigInteger)
    failed_phase = db.Column(db.String(20))  # quiesce, retention, build, state
    error_message = db.Column(db.Text)
    logs = db.Column(db.Text)  # Detailed execution logs

    def to_dict(self) -> dict:
        return {
            'id': self.id,
            'source_id': self.source_id,
            'status': self.status,
            'is_full': self.is_full,
            'manual': self.manual,
            'started_at': self.started_at.isoformat() if self.started_at else None,
            'completed_at': self.completed_at.isoformat() if self.completed_at else None,
            'archive_name': self.archive_name,
            'file_size_bytes': self.file_size_bytes,
            'failed_phase': self.failed_phase,
            'error_message': self.error_message
        }

    def __repr__(self):
        return f'<BackupHistory {self.source_id} status={self.status}>'
