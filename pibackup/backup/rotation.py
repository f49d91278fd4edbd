"""
Two-slot rotation of device images.

The state is derived from the filesystem on every run:

    ArchiveOnly  working: no   archive: yes  -> create
    WorkingOnly  working: yes  archive: no   -> move to archive, create
    Both         working: yes  archive: yes  -> delete archive, cooldown,
                                                move to archive, create
    Neither      working: no   archive: no   -> create

Rotation is not atomic. Steps already taken are not rolled back when a
later step fails: in the Both case a failed copy leaves the previous image
in the archive and no image in the working location.
"""

import logging
import time
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Callable, Optional, Tuple

from .storage import ArtifactLocation, BackupArtifact, StorageError


class RotationError(Exception):
    """Raised when moving or deleting an image during rotation fails."""
    pass


class RotationState(Enum):
    ARCHIVE_ONLY = 'archive_only'
    WORKING_ONLY = 'working_only'
    BOTH = 'both'
    NEITHER = 'neither'


class RotationStep(Enum):
    DELETE_ARCHIVE = 'delete_archive'
    COOLDOWN = 'cooldown'
    MOVE_TO_ARCHIVE = 'move_to_archive'
    CREATE_BACKUP = 'create_backup'


ROTATION_PLANS = {
    RotationState.ARCHIVE_ONLY: (RotationStep.CREATE_BACKUP,),
    RotationState.WORKING_ONLY: (RotationStep.MOVE_TO_ARCHIVE, RotationStep.CREATE_BACKUP),
    RotationState.BOTH: (
        RotationStep.DELETE_ARCHIVE,
        RotationStep.COOLDOWN,
        RotationStep.MOVE_TO_ARCHIVE,
        RotationStep.CREATE_BACKUP,
    ),
    RotationState.NEITHER: (RotationStep.CREATE_BACKUP,),
}

_STATE_MESSAGES = {
    RotationState.ARCHIVE_ONLY: "Current backup missing, archive exists. Making current backup.",
    RotationState.WORKING_ONLY: "Archive backup does not exist",
    RotationState.BOTH: "All backups exist! Starting rotation process",
    RotationState.NEITHER: "No backups exist! Creating initial backup.",
}


def determine_state(working: Optional[BackupArtifact], archive: Optional[BackupArtifact]) -> RotationState:
    if working is None and archive is not None:
        return RotationState.ARCHIVE_ONLY
    if working is not None and archive is None:
        return RotationState.WORKING_ONLY
    if working is not None and archive is not None:
        return RotationState.BOTH
    return RotationState.NEITHER


@dataclass
class RotationResult:
    state: RotationState
    backup_path: Path
    archived_path: Optional[Path] = None
    removed_path: Optional[Path] = None


class RotationOrchestrator:
    """
    Runs the rotation decision once and carries out its plan.
    """

    def __init__(
        self,
        working: ArtifactLocation,
        archive: ArtifactLocation,
        create_backup: Callable[[Path], None],
        cooldown_seconds: int = 300,
        strict: bool = False,
        log: Optional[Callable[..., None]] = None,
        sleep: Callable[[float], None] = time.sleep
    ):
        """
        Initialize rotation orchestrator.

        Args:
            working: Location receiving new images
            archive: Location holding the previous image
            create_backup: Block copy writing a new image to the given path;
                raises BackupCreationError on failure
            cooldown_seconds: Pause between deleting the old archive and moving
                the working image (Both case only); 0 disables it
            strict: Abort when a location holds more than one image
            log: Optional callback receiving (message, level)
            sleep: Sleep function used for the cooldown
        """
        self.working = working
        self.archive = archive
        self.create_backup = create_backup
        self.cooldown_seconds = cooldown_seconds
        self.strict = strict
        self._log_callback = log
        self._sleep = sleep
        self.last_result = None

    def inspect(self) -> Tuple[RotationState, Optional[BackupArtifact], Optional[BackupArtifact]]:
        """
        Look for existing images and derive the rotation state.

        Returns:
            (state, working_artifact, archive_artifact)

        Raises:
            AmbiguousArtifactError: If strict and a location holds several images
            StorageError: If a location cannot be listed
        """
        archive_artifact = self.archive.find_artifact(strict=self.strict)
        working_artifact = self.working.find_artifact(strict=self.strict)
        return determine_state(working_artifact, archive_artifact), working_artifact, archive_artifact

    def rotate(self, backup_path: Path) -> RotationResult:
        """
        Rotate existing images and create the new one.

        Args:
            backup_path: Path of the image to create in the working location

        Returns:
            RotationResult describing what was done

        Raises:
            RotationError: If deleting or moving an image fails
            BackupCreationError: If the block copy fails
        """
        state, working_artifact, archive_artifact = self.inspect()
        result = RotationResult(state=state, backup_path=backup_path)
        # Filled in step by step so a failed run still shows how far it got
        self.last_result = result

        self._log(_STATE_MESSAGES[state])

        for step in ROTATION_PLANS[state]:
            if step is RotationStep.DELETE_ARCHIVE:
                self._log(f"Removing old archive: {archive_artifact.path}")
                try:
                    self.archive.delete(archive_artifact)
                except StorageError as e:
                    raise RotationError(str(e)) from e
                result.removed_path = archive_artifact.path

            elif step is RotationStep.COOLDOWN:
                if self.cooldown_seconds > 0:
                    self._log(f"Waiting {self.cooldown_seconds} seconds before proceeding...")
                    self._sleep(self.cooldown_seconds)

            elif step is RotationStep.MOVE_TO_ARCHIVE:
                self._log(f"Moving current backup to archive: {working_artifact.path}")
                try:
                    result.archived_path = self.archive.move_in(working_artifact)
                except StorageError as e:
                    raise RotationError(str(e)) from e

            elif step is RotationStep.CREATE_BACKUP:
                self._log("Creating new backup")
                self.create_backup(backup_path)

        return result

    def _log(self, message: str, level: int = logging.INFO):
        if self._log_callback:
            self._log_callback(message, level)
