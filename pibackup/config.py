import os
import socket
from dataclasses import dataclass
from pathlib import Path


GIB = 1024 * 1024 * 1024


class Config:
    """Base configuration"""

    # Identity and locations
    BACKUP_HOSTNAME = os.environ.get('BACKUP_HOSTNAME') or socket.gethostname()
    BACKUP_WORKING_DIR = os.environ.get('BACKUP_WORKING_DIR') or '/mnt/backup'
    BACKUP_ARCHIVE_DIR = os.environ.get('BACKUP_ARCHIVE_DIR') or '/mnt/archive'
    BACKUP_DEVICE = os.environ.get('BACKUP_DEVICE') or '/dev/mmcblk0'

    # Rotation and safety checks
    LOG_RETAIN_DAYS = int(os.environ.get('LOG_RETAIN_DAYS', 30))
    COOLDOWN_SECONDS = int(os.environ.get('COOLDOWN_SECONDS', 300))  # 5 minutes
    REQUIRED_FREE_BYTES = int(os.environ.get('REQUIRED_FREE_BYTES', 10 * GIB))
    COPY_BLOCK_SIZE = int(os.environ.get('COPY_BLOCK_SIZE', 4 * 1024 * 1024))
    VERIFY_MOUNTS = os.environ.get('VERIFY_MOUNTS', 'true').lower() == 'true'
    CREATE_LOG_DIR = os.environ.get('CREATE_LOG_DIR', 'true').lower() == 'true'
    STRICT_ARTIFACTS = os.environ.get('STRICT_ARTIFACTS', 'false').lower() == 'true'

    # Database
    SQLALCHEMY_DATABASE_URI = os.environ.get('DATABASE_URL') or 'sqlite:////var/lib/pibackup/pibackup.db'
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    # Application log
    APP_LOG_DIR = os.environ.get('APP_LOG_DIR') or '/var/log/pibackup'

    # Scheduler
    BACKUP_SCHEDULE_CRON = os.environ.get('BACKUP_SCHEDULE_CRON') or '0 2 * * 0'  # Sundays at 2 AM
    SCHEDULER_ENABLED = os.environ.get('SCHEDULER_ENABLED', 'false').lower() == 'true'
    SCHEDULER_TIMEZONE = os.environ.get('SCHEDULER_TIMEZONE') or 'UTC'


class DevelopmentConfig(Config):
    """Development configuration"""
    DEBUG = True

    # Use local data directory for development
    BASE_DIR = os.path.abspath(os.path.dirname(os.path.dirname(__file__)))
    DATA_DIR = os.path.join(BASE_DIR, 'data')
    SQLALCHEMY_DATABASE_URI = f'sqlite:///{os.path.join(DATA_DIR, "pibackup.db")}'
    APP_LOG_DIR = os.path.join(DATA_DIR, 'logs')
    BACKUP_WORKING_DIR = os.environ.get('BACKUP_WORKING_DIR') or os.path.join(DATA_DIR, 'working')
    BACKUP_ARCHIVE_DIR = os.environ.get('BACKUP_ARCHIVE_DIR') or os.path.join(DATA_DIR, 'archive')

    # Plain directories stand in for the mounted drives
    VERIFY_MOUNTS = False
    COOLDOWN_SECONDS = int(os.environ.get('COOLDOWN_SECONDS', 5))


class ProductionConfig(Config):
    """Production configuration"""
    DEBUG = False


class TestingConfig(Config):
    """Test configuration"""
    TESTING = True
    DEBUG = False
    SQLALCHEMY_DATABASE_URI = 'sqlite:///:memory:'
    APP_LOG_DIR = None
    BACKUP_HOSTNAME = 'testpi'
    VERIFY_MOUNTS = False
    COOLDOWN_SECONDS = 0
    SCHEDULER_ENABLED = False


# Configuration dictionary
config = {
    'development': DevelopmentConfig,
    'production': ProductionConfig,
    'testing': TestingConfig,
    'default': ProductionConfig
}


@dataclass(frozen=True)
class BackupSettings:
    """
    Immutable snapshot of the settings a single backup run works with.

    Built from the Flask config once per run so that a run never observes
    configuration changes half way through.
    """

    hostname: str
    working_dir: Path
    archive_dir: Path
    device: str
    log_retain_days: int = 30
    cooldown_seconds: int = 300
    required_free_bytes: int = 10 * GIB
    copy_block_size: int = 4 * 1024 * 1024
    verify_mounts: bool = True
    create_log_dir: bool = True
    strict_artifacts: bool = False

    @property
    def log_dir(self) -> Path:
        return self.working_dir / 'backup_logs'

    @property
    def lock_path(self) -> Path:
        return self.log_dir / '.backup.lock'

    @classmethod
    def from_config(cls, app_config) -> 'BackupSettings':
        """
        Build settings from a Flask config mapping.

        Args:
            app_config: Flask ``app.config`` (or any mapping with the same keys)

        Returns:
            BackupSettings instance
        """
        return cls(
            hostname=app_config['BACKUP_HOSTNAME'],
            working_dir=Path(app_config['BACKUP_WORKING_DIR']),
            archive_dir=Path(app_config['BACKUP_ARCHIVE_DIR']),
            device=app_config['BACKUP_DEVICE'],
            log_retain_days=int(app_config['LOG_RETAIN_DAYS']),
            cooldown_seconds=int(app_config['COOLDOWN_SECONDS']),
            required_free_bytes=int(app_config['REQUIRED_FREE_BYTES']),
            copy_block_size=int(app_config['COPY_BLOCK_SIZE']),
            verify_mounts=bool(app_config['VERIFY_MOUNTS']),
            create_log_dir=bool(app_config['CREATE_LOG_DIR']),
            strict_artifacts=bool(app_config['STRICT_ARTIFACTS']),
        )
