"""
Artifact locations for device images.

A location is one of the two directories the rotation works with:
- working: holds the current (most recent) image
- archive: holds the previous image, if any

Images are named ``{hostname}_backup_{MM-DD-YYYY}.img``.
"""

import glob
import logging
import os
import re
import shutil
from dataclasses import dataclass
from datetime import date, datetime
from pathlib import Path
from typing import List, Optional

logger = logging.getLogger(__name__)

ARTIFACT_DATE_FORMAT = '%m-%d-%Y'
ARTIFACT_SUFFIX = '.img'

_DATE_PATTERN = re.compile(r'_backup_(\d{2}-\d{2}-\d{4})\.img$')


class StorageError(Exception):
    """Raised when a storage operation fails."""
    pass


class AmbiguousArtifactError(StorageError):
    """Raised when a location holds more than one image and strict mode is on."""

    def __init__(self, location: Path, paths: List[Path]):
        self.location = location
        self.paths = paths
        names = ', '.join(p.name for p in paths)
        super().__init__(f"Multiple backups found in {location}: {names}")


@dataclass(frozen=True)
class BackupArtifact:
    """Single full-device image file."""

    path: Path
    size_bytes: int
    modified: datetime

    @property
    def name(self) -> str:
        return self.path.name

    @property
    def backup_date(self) -> Optional[date]:
        return parse_artifact_date(self.path.name)


def artifact_filename(hostname: str, when: date) -> str:
    """
    Generate the image filename for a backup taken on a given day.

    Args:
        hostname: System identity
        when: Backup date

    Returns:
        Filename like 'mypi_backup_06-15-2024.img'
    """
    return f"{hostname}_backup_{when.strftime(ARTIFACT_DATE_FORMAT)}{ARTIFACT_SUFFIX}"


def parse_artifact_date(filename: str) -> Optional[date]:
    """Extract the backup date from an image filename, or None if it has none."""
    match = _DATE_PATTERN.search(filename)
    if not match:
        return None
    try:
        return datetime.strptime(match.group(1), ARTIFACT_DATE_FORMAT).date()
    except ValueError:
        return None


def free_space(path) -> int:
    """Return the bytes available to unprivileged users on the filesystem holding path."""
    return shutil.disk_usage(str(path)).free


def format_size(size_bytes: Optional[int]) -> str:
    """
    Format a byte count the way ``du -h``/``df -h`` do (1024 based, one decimal below 10).

    Args:
        size_bytes: Number of bytes, or None

    Returns:
        Human readable size like '7.4G', '512M' or 'N/A'
    """
    if size_bytes is None:
        return 'N/A'

    size = float(size_bytes)
    for unit in ('B', 'K', 'M', 'G', 'T'):
        if size < 1024 or unit == 'T':
            break
        size /= 1024

    if unit == 'B':
        return f"{int(size)}B"
    if size < 10:
        return f"{size:.1f}{unit}"
    return f"{size:.0f}{unit}"


class ArtifactLocation:
    """
    Handler for one backup location (working or archive directory).

    Only looks at the top level of the directory; log files and anything
    else that does not match the image naming pattern are ignored.
    """

    def __init__(self, path, hostname: str, label: str):
        """
        Initialize artifact location handler.

        Args:
            path: Directory holding images
            hostname: System identity used as the image name prefix
            label: Human readable name for log messages ('working' or 'archive')
        """
        self.path = Path(path)
        self.hostname = hostname
        self.label = label

    @property
    def pattern(self) -> str:
        return f"{glob.escape(self.hostname)}_backup_*{ARTIFACT_SUFFIX}"

    def list_artifacts(self) -> List[BackupArtifact]:
        """
        List all images for this host in the location, newest first.

        Ordering uses the date in the filename, then the modification time,
        so the result does not depend on directory enumeration order.

        Returns:
            List of BackupArtifact

        Raises:
            StorageError: If listing fails
        """
        if not self.path.is_dir():
            return []

        try:
            artifacts = []
            for file_path in self.path.glob(self.pattern):
                if not file_path.is_file():
                    continue
                stat = file_path.stat()
                artifacts.append(BackupArtifact(
                    path=file_path,
                    size_bytes=stat.st_size,
                    modified=datetime.fromtimestamp(stat.st_mtime)
                ))
        except OSError as e:
            raise StorageError(f"Failed to list backups in {self.path}: {e}")

        artifacts.sort(
            key=lambda a: (a.backup_date or date.min, a.modified, a.name),
            reverse=True
        )
        return artifacts

    def find_artifact(self, strict: bool = False) -> Optional[BackupArtifact]:
        """
        Find the image the rotation should act on.

        Args:
            strict: Raise instead of picking the newest when several images exist

        Returns:
            Newest BackupArtifact, or None if the location holds none

        Raises:
            AmbiguousArtifactError: If strict and more than one image exists
        """
        artifacts = self.list_artifacts()
        if not artifacts:
            return None

        if len(artifacts) > 1:
            if strict:
                raise AmbiguousArtifactError(self.path, [a.path for a in artifacts])
            ignored = ', '.join(a.name for a in artifacts[1:])
            logger.warning(
                f"Multiple backups in {self.label} location {self.path}; "
                f"using {artifacts[0].name}, ignoring: {ignored}"
            )

        return artifacts[0]

    def move_in(self, artifact: BackupArtifact) -> Path:
        """
        Move an image from another location into this one.

        Args:
            artifact: Image to move

        Returns:
            New path of the image

        Raises:
            StorageError: If the move fails
        """
        dest_path = self.path / artifact.name

        try:
            shutil.move(str(artifact.path), str(dest_path))
            return dest_path
        except PermissionError as e:
            raise StorageError(f"Permission denied moving {artifact.path} to {self.path}: {e}")
        except OSError as e:
            raise StorageError(f"Failed to move {artifact.path} to {self.path}: {e}")

    def delete(self, artifact: BackupArtifact):
        """
        Delete an image from this location.

        Raises:
            StorageError: If deletion fails
        """
        try:
            os.remove(artifact.path)
        except PermissionError as e:
            raise StorageError(f"Permission denied deleting {artifact.path}: {e}")
        except OSError as e:
            raise StorageError(f"Failed to delete {artifact.path}: {e}")

    def free_bytes(self) -> int:
        return free_space(self.path)
