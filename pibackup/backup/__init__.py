"""
Backup module for pibackup.

This module handles the core backup functionality including:
- Precondition checks (mounts, directories, free space)
- Run log retention
- Two-slot image rotation (working + archive)
- Block copy of the device into an image
- Summary reports and run orchestration
"""

from .executor import BackupExecutor, BackupInterrupted, check_backup, run_backup
from .checks import (
    PreconditionChecker,
    PreconditionError,
    MountError,
    DirectoryMissingError,
    InsufficientSpaceError
)
from .imaging import copy_device_to_file, BackupCreationError
from .lock import RunLock, ConcurrentRunError
from .retention import LogRetentionManager
from .rotation import RotationOrchestrator, RotationState, RotationError
from .storage import ArtifactLocation, BackupArtifact, StorageError, AmbiguousArtifactError

__all__ = [
    'BackupExecutor',
    'BackupInterrupted',
    'check_backup',
    'run_backup',
    'PreconditionChecker',
    'PreconditionError',
    'MountError',
    'DirectoryMissingError',
    'InsufficientSpaceError',
    'copy_device_to_file',
    'BackupCreationError',
    'RunLock',
    'ConcurrentRunError',
    'LogRetentionManager',
    'RotationOrchestrator',
    'RotationState',
    'RotationError',
    'ArtifactLocation',
    'BackupArtifact',
    'StorageError',
    'AmbiguousArtifactError'
]
