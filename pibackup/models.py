from datetime import datetime, timezone
from pibackup import db


def utcnow():
    return datetime.now(timezone.utc).replace(tzinfo=None)


class BackupRun(db.Model):
    """Backup run history and logs"""
    __tablename__ = 'backup_runs'

    id = db.Column(db.Integer, primary_key=True)
    hostname = db.Column(db.String(255), nullable=False)
    status = db.Column(db.String(20), nullable=False)  # running, success, failed, interrupted
    rotation_state = db.Column(db.String(20))  # archive_only, working_only, both, neither
    started_at = db.Column(db.DateTime, default=utcnow, nullable=False)
    completed_at = db.Column(db.DateTime)
    backup_path = db.Column(db.String(500))  # Newly created image
    archived_path = db.Column(db.String(500))  # Previous image moved into the archive
    removed_path = db.Column(db.String(500))  # Archive image evicted by this run
    file_size_bytes = db.Column(db.BigInteger)
    error_type = db.Column(db.String(100))
    error_message = db.Column(db.Text)
    logs = db.Column(db.Text)  # Detailed execution logs

    @property
    def duration_seconds(self):
        if not self.completed_at:
            return None
        return int((self.completed_at - self.started_at).total_seconds())

    def __repr__(self):
        return f'<BackupRun {self.hostname} status={self.status}>'
