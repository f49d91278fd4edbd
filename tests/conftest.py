"""
Shared pytest fixtures for pibackup tests.

This module provides fixtures for:
- Flask app and test client
- Database setup with in-memory SQLite
- Working/archive/log directories in a temporary location
- A fake source device (a regular file)
- Backup settings and helpers to create existing images
- Mocked free-space probe
"""

from pathlib import Path
from unittest.mock import patch

import pytest

from pibackup import create_app, db as _db
from pibackup.config import GIB, BackupSettings

HOSTNAME = 'testpi'
DEVICE_SIZE = 3 * 1024 * 1024 + 4321  # not a multiple of the block size


@pytest.fixture(scope='function')
def app():
    """
    Create Flask app with test configuration.

    Uses in-memory SQLite database for fast, isolated tests.
    """
    app = create_app('testing')
    yield app


@pytest.fixture(scope='function')
def db(app):
    """
    Create database with all tables.

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
def backup_dirs(tmp_path):
    """
    Create working, archive and log directories.

    Returns:
        Dict with 'working', 'archive' and 'logs' paths
    """
    working = tmp_path / 'working'
    archive = tmp_path / 'archive'
    logs = working / 'backup_logs'
    working.mkdir()
    archive.mkdir()
    logs.mkdir()
    return {'working': working, 'archive': archive, 'logs': logs}


@pytest.fixture
def device(tmp_path):
    """A regular file standing in for the block device."""
    path = tmp_path / 'device.bin'
    block = bytes(range(256))
    data = block * (DEVICE_SIZE // len(block)) + block[:DEVICE_SIZE % len(block)]
    path.write_bytes(data)
    return path


@pytest.fixture
def settings(backup_dirs, device):
    """BackupSettings pointing at the temporary directories."""
    return BackupSettings(
        hostname=HOSTNAME,
        working_dir=backup_dirs['working'],
        archive_dir=backup_dirs['archive'],
        device=str(device),
        log_retain_days=30,
        cooldown_seconds=0,
        copy_block_size=1024 * 1024,
        verify_mounts=False,
    )


@pytest.fixture
def configured_app(app, db, backup_dirs, device):
    """App whose backup settings point at the temporary directories."""
    app.config.update({
        'BACKUP_HOSTNAME': HOSTNAME,
        'BACKUP_WORKING_DIR': str(backup_dirs['working']),
        'BACKUP_ARCHIVE_DIR': str(backup_dirs['archive']),
        'BACKUP_DEVICE': str(device),
        'COOLDOWN_SECONDS': 0,
        'COPY_BLOCK_SIZE': 1024 * 1024,
        'VERIFY_MOUNTS': False,
    })
    return app


@pytest.fixture
def plenty_of_space():
    """Report 100 GiB free at the working location."""
    with patch('pibackup.backup.checks.free_space', return_value=100 * GIB) as mock_free:
        yield mock_free


@pytest.fixture
def make_artifact():
    """
    Factory creating an existing image file.

    Usage:
        make_artifact(directory, '06-01-2024')
    """
    def _make(directory: Path, day: str, hostname: str = HOSTNAME, content: bytes = b'old image') -> Path:
        path = Path(directory) / f"{hostname}_backup_{day}.img"
        path.write_bytes(content)
        return path

    return _make


@pytest.fixture
def list_images():
    """Factory listing the image names in a directory, sorted."""
    def _list(directory: Path) -> list:
        return sorted(p.name for p in Path(directory).iterdir() if p.suffix == '.img')

    return _list
