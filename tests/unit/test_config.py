"""
Unit tests for configuration (pibackup/config.py).
"""

import dataclasses
from pathlib import Path

import pytest

from pibackup.config import GIB, BackupSettings, config


class TestBackupSettings:

    def test_from_config(self, app):
        app.config.update({
            'BACKUP_WORKING_DIR': '/mnt/backup',
            'BACKUP_ARCHIVE_DIR': '/mnt/archive',
            'BACKUP_DEVICE': '/dev/sda',
            'COOLDOWN_SECONDS': '60',
        })

        settings = BackupSettings.from_config(app.config)

        assert settings.hostname == 'testpi'
        assert settings.working_dir == Path('/mnt/backup')
        assert settings.archive_dir == Path('/mnt/archive')
        assert settings.device == '/dev/sda'
        assert settings.cooldown_seconds == 60
        assert settings.log_retain_days == 30
        assert settings.required_free_bytes == 10 * GIB
        assert settings.copy_block_size == 4 * 1024 * 1024
        assert settings.verify_mounts is False

    def test_derived_paths(self):
        settings = BackupSettings(
            hostname='mypi',
            working_dir=Path('/mnt/backup'),
            archive_dir=Path('/mnt/archive'),
            device='/dev/mmcblk0'
        )

        assert settings.log_dir == Path('/mnt/backup/backup_logs')
        assert settings.lock_path == Path('/mnt/backup/backup_logs/.backup.lock')

    def test_settings_are_frozen(self, settings):
        with pytest.raises(dataclasses.FrozenInstanceError):
            settings.cooldown_seconds = 10


class TestConfigClasses:

    def test_environments(self):
        assert set(config) == {'development', 'production', 'testing', 'default'}
        assert config['default'] is config['production']

    def test_testing_defaults(self):
        assert config['testing'].SQLALCHEMY_DATABASE_URI == 'sqlite:///:memory:'
        assert config['testing'].SCHEDULER_ENABLED is False
        assert config['testing'].COOLDOWN_SECONDS == 0

    def test_production_defaults(self):
        production = config['production']

        assert isinstance(production.VERIFY_MOUNTS, bool)
        assert production.BACKUP_SCHEDULE_CRON
        assert production.COPY_BLOCK_SIZE > 0
