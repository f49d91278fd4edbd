"""
Precondition checks run before a backup touches any image.

Checks, in order:
- working and archive locations are mount points
- working, archive and log directories exist
- enough free space at the working location

Every failure is fatal for the run; nothing is retried.
"""

import os
from typing import Callable, Optional

from pibackup.config import GIB, BackupSettings
from .storage import free_space


class PreconditionError(Exception):
    """Raised when a run cannot start safely."""
    pass


class MountError(PreconditionError):
    """Raised when a backup location is not a mounted filesystem."""

    def __init__(self, path):
        self.path = path
        super().__init__(f"{path} is not mounted")


class DirectoryMissingError(PreconditionError):
    """Raised when a required directory does not exist."""

    def __init__(self, path):
        self.path = path
        super().__init__(f"Directory {path} does not exist")


class InsufficientSpaceError(PreconditionError):
    """Raised when the working location has less free space than required."""

    def __init__(self, required: int, available: int):
        self.required = required
        self.available = available
        super().__init__(
            f"Insufficient disk space. Required: {required // GIB}GB, "
            f"Available: {available // GIB}GB"
        )


def is_mount_point(path) -> bool:
    return os.path.ismount(str(path))


class PreconditionChecker:
    """
    Verifies a run may proceed.

    Pure checks: nothing here creates, moves or deletes files, so running the
    checker twice against an unchanged filesystem gives the same result.
    """

    def __init__(self, settings: BackupSettings, log: Optional[Callable[[str], None]] = None):
        """
        Initialize precondition checker.

        Args:
            settings: Settings of the current run
            log: Optional callback receiving progress messages
        """
        self.settings = settings
        self._log_callback = log

    def check_mounts(self):
        """
        Raises:
            MountError: If the working or archive location is not mounted
        """
        if not self.settings.verify_mounts:
            self._log("Mount verification disabled, skipping")
            return

        for mount in (self.settings.working_dir, self.settings.archive_dir):
            if not is_mount_point(mount):
                raise MountError(mount)

        self._log("All mount points verified")

    def check_directories(self, include_log_dir: bool = True):
        """
        Args:
            include_log_dir: Also require the log directory

        Raises:
            DirectoryMissingError: If the archive, working or log directory is missing
        """
        directories = [self.settings.archive_dir, self.settings.working_dir]
        if include_log_dir:
            directories.append(self.settings.log_dir)

        for directory in directories:
            if not directory.is_dir():
                raise DirectoryMissingError(directory)

    def check_disk_space(self) -> int:
        """
        Returns:
            Free bytes at the working location

        Raises:
            InsufficientSpaceError: If free space is below the required amount
        """
        available = free_space(self.settings.working_dir)
        required = self.settings.required_free_bytes

        if available < required:
            raise InsufficientSpaceError(required, available)

        self._log(f"Disk space check passed. Available: {available // GIB}GB")
        return available

    def run_all(self) -> int:
        """
        Run every check in order.

        Returns:
            Free bytes at the working location

        Raises:
            PreconditionError: On the first failing check
        """
        self.check_mounts()
        self.check_directories()
        return self.check_disk_space()

    def _log(self, message: str):
        if self._log_callback:
            self._log_callback(message)
