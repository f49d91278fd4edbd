"""
Unit tests for the device block copy (pibackup/backup/imaging.py).
"""

from unittest.mock import patch

import pytest

from pibackup.backup.imaging import (
    BackupCreationError,
    copy_device_to_file,
    get_device_size
)

MIB = 1024 * 1024
DEVICE_SIZE = 3 * MIB + 4321  # matches the device fixture


class TestGetDeviceSize:

    def test_regular_file(self, device):
        assert get_device_size(device) == DEVICE_SIZE

    def test_missing_device(self, tmp_path):
        assert get_device_size(tmp_path / 'missing') is None


class TestCopyDeviceToFile:
    """Test block copy behavior."""

    def test_exact_copy(self, device, tmp_path):
        """Test the image is byte-identical, including the short last block."""
        destination = tmp_path / 'image.img'

        copied = copy_device_to_file(device, destination, block_size=MIB)

        assert copied == DEVICE_SIZE
        assert destination.read_bytes() == device.read_bytes()

    def test_overwrites_existing_image(self, device, tmp_path):
        destination = tmp_path / 'image.img'
        destination.write_bytes(b'x' * (DEVICE_SIZE + 100))

        copy_device_to_file(device, destination, block_size=MIB)

        assert destination.stat().st_size == DEVICE_SIZE

    def test_progress_reports(self, device, tmp_path):
        calls = []

        copy_device_to_file(
            device, tmp_path / 'image.img',
            progress=lambda copied, total: calls.append((copied, total)),
            block_size=MIB
        )

        assert calls == [
            (MIB, DEVICE_SIZE),
            (2 * MIB, DEVICE_SIZE),
            (3 * MIB, DEVICE_SIZE),
            (DEVICE_SIZE, DEVICE_SIZE),
        ]

    def test_missing_device(self, tmp_path):
        destination = tmp_path / 'image.img'

        with pytest.raises(BackupCreationError, match='Failed to copy'):
            copy_device_to_file(tmp_path / 'missing', destination)

        assert not destination.exists()

    def test_missing_destination_directory(self, device, tmp_path):
        with pytest.raises(BackupCreationError):
            copy_device_to_file(device, tmp_path / 'absent' / 'image.img')

    def test_partial_image_removed_on_write_failure(self, device, tmp_path):
        """Test a copy failing half way leaves no partial image behind."""
        destination = tmp_path / 'image.img'
        calls = []

        def fail_after_first_block(copied, total):
            calls.append(copied)
            raise OSError(28, 'No space left on device')

        with pytest.raises(BackupCreationError, match='No space left'):
            copy_device_to_file(device, destination, progress=fail_after_first_block, block_size=MIB)

        assert calls == [MIB]
        assert not destination.exists()

    @patch('pibackup.backup.imaging.os.fsync')
    def test_fsync_failure(self, mock_fsync, device, tmp_path):
        mock_fsync.side_effect = OSError(5, 'Input/output error')
        destination = tmp_path / 'image.img'

        with pytest.raises(BackupCreationError):
            copy_device_to_file(device, destination, block_size=MIB)

        assert not destination.exists()

    @pytest.mark.parametrize('block_size', [0, -1])
    def test_invalid_block_size(self, device, tmp_path, block_size):
        with pytest.raises(ValueError):
            copy_device_to_file(device, tmp_path / 'image.img', block_size=block_size)
