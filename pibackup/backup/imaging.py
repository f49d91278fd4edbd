"""
Block copy of a whole device into an image file.

Equivalent of ``dd bs=4M if=<device> of=<image>`` followed by ``sync``:
the device is read in fixed-size blocks, written to the image, and the
image is flushed to stable storage before the copy is reported done.
"""

import os
from pathlib import Path
from typing import Callable, Optional


DEFAULT_BLOCK_SIZE = 4 * 1024 * 1024  # 4 MiB

ProgressCallback = Callable[[int, Optional[int]], None]


class BackupCreationError(Exception):
    """Raised when the device image cannot be created."""
    pass


def get_device_size(source_device) -> Optional[int]:
    """
    Get the size of a block device or regular file.

    Block devices report st_size 0, so the size is found by seeking to the end.

    Args:
        source_device: Path to device or file

    Returns:
        Size in bytes, or None if it cannot be determined
    """
    try:
        fd = os.open(str(source_device), os.O_RDONLY)
    except OSError:
        return None

    try:
        return os.lseek(fd, 0, os.SEEK_END)
    except OSError:
        return None
    finally:
        os.close(fd)


def copy_device_to_file(
    source_device,
    destination_path,
    progress: Optional[ProgressCallback] = None,
    block_size: int = DEFAULT_BLOCK_SIZE
) -> int:
    """
    Copy a device into an image file.

    Args:
        source_device: Device to read (e.g. /dev/mmcblk0)
        destination_path: Image file to create; an existing file is overwritten
        progress: Optional callback receiving (bytes_copied, total_bytes)
        block_size: Read/write block size in bytes

    Returns:
        Number of bytes copied

    Raises:
        BackupCreationError: If reading, writing or syncing fails
    """
    if block_size <= 0:
        raise ValueError(f"Invalid block size: {block_size}")

    destination_path = Path(destination_path)
    total = get_device_size(source_device)
    copied = 0

    try:
        with open(source_device, 'rb', buffering=0) as src, open(destination_path, 'wb') as dst:
            while True:
                block = src.read(block_size)
                if not block:
                    break
                dst.write(block)
                copied += len(block)
                if progress:
                    progress(copied, total)

            # Ensure all data is written to disk
            dst.flush()
            os.fsync(dst.fileno())

        os.sync()

    except OSError as e:
        # Clean up partial image on failure
        if destination_path.exists():
            try:
                destination_path.unlink()
            except OSError:
                pass
        raise BackupCreationError(f"Failed to copy {source_device} to {destination_path}: {e}")

    return copied
