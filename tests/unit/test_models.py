"""
Unit tests for database models (pibackup/models.py).
"""

from datetime import timedelta

from freezegun import freeze_time

from pibackup.models import BackupRun, utcnow


class TestBackupRunModel:
    """Test BackupRun model."""

    def test_create_run(self, db):
        run = BackupRun(hostname='testpi', status='running')
        db.session.add(run)
        db.session.commit()

        assert run.id is not None
        assert run.started_at is not None
        assert run.completed_at is None
        assert run.logs is None

    @freeze_time('2024-06-15 02:00:00')
    def test_started_at_is_utc(self, db):
        run = BackupRun(hostname='testpi', status='running')
        db.session.add(run)
        db.session.commit()

        assert run.started_at == utcnow()
        assert run.started_at.tzinfo is None

    def test_duration(self, db):
        started = utcnow()
        run = BackupRun(
            hostname='testpi',
            status='success',
            started_at=started,
            completed_at=started + timedelta(minutes=42, seconds=5)
        )
        db.session.add(run)
        db.session.commit()

        assert run.duration_seconds == 42 * 60 + 5

    def test_duration_while_running(self, db):
        run = BackupRun(hostname='testpi', status='running')
        db.session.add(run)
        db.session.commit()

        assert run.duration_seconds is None

    def test_large_image_size(self, db):
        run = BackupRun(hostname='testpi', status='success', file_size_bytes=64 * 1024 ** 3)
        db.session.add(run)
        db.session.commit()

        assert db.session.get(BackupRun, run.id).file_size_bytes == 64 * 1024 ** 3

    def test_repr(self, db):
        run = BackupRun(hostname='testpi', status='failed')

        assert repr(run) == '<BackupRun testpi status=failed>'
