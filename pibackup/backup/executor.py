"""
Backup executor - orchestrates a complete backup run.

Workflow:
1. Create BackupRun record (status: running)
2. Verify mounts, directories and free space
3. Enforce run log retention
4. Rotate existing images and create the new one
5. Write the summary report
6. Update BackupRun (status: success/failed/interrupted)
"""

import logging
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, Optional

from flask import current_app

from pibackup import db
from pibackup.config import GIB, BackupSettings
from pibackup.models import BackupRun, utcnow
from .checks import PreconditionChecker
from .imaging import BackupCreationError, copy_device_to_file
from .lock import RunLock
from .retention import LogRetentionManager
from .rotation import ROTATION_PLANS, RotationOrchestrator
from .storage import ARTIFACT_DATE_FORMAT, ArtifactLocation, artifact_filename, format_size
from .summary import write_summary

logger = logging.getLogger(__name__)

SEPARATOR = '-' * 40


class BackupInterrupted(Exception):
    """Raised inside a run when the process receives a termination signal."""

    def __init__(self, signum: int):
        self.signum = signum
        super().__init__(f"Interrupted by signal {signum}")


def run_log_path(settings: BackupSettings, when) -> Path:
    return settings.log_dir / f"backup_{when.strftime(ARTIFACT_DATE_FORMAT)}.log"


class BackupExecutor:
    """
    Orchestrates one backup run.
    """

    def __init__(self, settings: BackupSettings):
        """
        Initialize backup executor.

        Args:
            settings: Settings of the run
        """
        self.settings = settings
        self.run_record = None
        self.orchestrator = None
        self.backup_date = None
        self.backup_path = None
        self.run_log_path = None
        self.logs = []
        self._log_flush_counter = 0
        self._progress_step = 0

    def execute(self) -> BackupRun:
        """
        Execute the backup run.

        Failures are caught, logged and recorded on the returned BackupRun;
        nothing is rolled back.

        Returns:
            BackupRun record with execution results
        """
        self.backup_date = datetime.now().date()
        self.backup_path = self.settings.working_dir / artifact_filename(
            self.settings.hostname, self.backup_date
        )

        self.run_record = BackupRun(
            hostname=self.settings.hostname,
            status='running'
        )
        db.session.add(self.run_record)
        db.session.commit()

        self._log("Starting backup script")
        self._log(SEPARATOR)

        try:
            self._execute_workflow()

            self.run_record.status = 'success'
            self._log("Backup script completed successfully")
            self._log(SEPARATOR)

        except BackupInterrupted as e:
            self.run_record.status = 'interrupted'
            self.run_record.error_type = type(e).__name__
            self.run_record.error_message = str(e)
            self._log("Script interrupted. No cleanup performed.", logging.ERROR)

        except Exception as e:
            self.run_record.status = 'failed'
            self.run_record.error_type = type(e).__name__
            self.run_record.error_message = str(e)
            self._log(f"ERROR: {e}", logging.ERROR)
            self._log(f"Backup failed ({type(e).__name__})", logging.ERROR)

        finally:
            self._record_rotation()
            self.run_record.completed_at = utcnow()
            self.run_record.logs = '\n'.join(self.logs)
            db.session.commit()

        return self.run_record

    def _execute_workflow(self):
        """Execute the main backup workflow steps."""
        settings = self.settings
        checker = PreconditionChecker(settings, log=self._log)

        # Step 1: Preconditions
        # Open the run log early so a failed check is recorded in it
        self._open_run_log()
        checker.check_mounts()
        self._prepare_log_dir()
        self._open_run_log()
        checker.check_directories()

        with RunLock(settings.lock_path):
            checker.check_disk_space()

            # Step 2: Log retention
            LogRetentionManager(settings.log_dir, settings.log_retain_days, log=self._log).enforce()
            self._flush_logs_to_db()

            # Step 3: Rotation and image creation
            self.orchestrator = RotationOrchestrator(
                working=ArtifactLocation(settings.working_dir, settings.hostname, 'working'),
                archive=ArtifactLocation(settings.archive_dir, settings.hostname, 'archive'),
                create_backup=self._create_backup,
                cooldown_seconds=settings.cooldown_seconds,
                strict=settings.strict_artifacts,
                log=self._log
            )
            self.orchestrator.rotate(self.backup_path)
            self.run_record.file_size_bytes = self.backup_path.stat().st_size

            # Step 4: Summary
            summary = write_summary(settings, self.backup_path, self.backup_date)
            self._log(f"Created backup summary at {summary}")

    def _prepare_log_dir(self):
        """Create the log directory once the working location is known to be mounted."""
        log_dir = self.settings.log_dir
        if not self.settings.create_log_dir or log_dir.is_dir():
            return
        if not self.settings.working_dir.is_dir():
            return

        try:
            log_dir.mkdir()
            self._log(f"Created log directory {log_dir}")
        except OSError as e:
            self._log(f"Warning: Failed to create log directory {log_dir}: {e}", logging.WARNING)

    def _open_run_log(self):
        """Start appending to the per-day run log, including lines logged so far."""
        if self.run_log_path or not self.settings.log_dir.is_dir():
            return

        self.run_log_path = run_log_path(self.settings, self.backup_date)
        try:
            with self.run_log_path.open('a', encoding='utf-8') as handle:
                for entry in self.logs:
                    handle.write(entry + '\n')
        except OSError as e:
            logger.warning(f"Cannot write run log {self.run_log_path}: {e}")
            self.run_log_path = None

    def _create_backup(self, destination: Path):
        """
        Block copy the configured device into a new image.

        Raises:
            BackupCreationError: If the copy fails
        """
        self._log(f"Starting backup creation to {destination}")
        self._progress_step = 0
        try:
            copied = copy_device_to_file(
                self.settings.device,
                destination,
                progress=self._report_progress,
                block_size=self.settings.copy_block_size
            )
        except BackupCreationError:
            self._log("ERROR: Backup creation failed", logging.ERROR)
            raise

        self._log(f"Backup created successfully ({format_size(copied)})")

    def _report_progress(self, copied: int, total: Optional[int]):
        """Log copy progress every 10% (every GiB when the device size is unknown)."""
        if total:
            step = copied * 10 // total
            if step > self._progress_step:
                self._progress_step = step
                self._log(f"Copied {format_size(copied)} of {format_size(total)} ({step * 10}%)")
        else:
            step = copied // GIB
            if step > self._progress_step:
                self._progress_step = step
                self._log(f"Copied {format_size(copied)}")

    def _record_rotation(self):
        """Copy what the rotation did onto the run record, even after a failure."""
        result = self.orchestrator.last_result if self.orchestrator else None
        if result is None:
            return

        self.run_record.rotation_state = result.state.value
        self.run_record.removed_path = str(result.removed_path) if result.removed_path else None
        self.run_record.archived_path = str(result.archived_path) if result.archived_path else None
        if self.run_record.status == 'success':
            self.run_record.backup_path = str(result.backup_path)

    def _log(self, message: str, level: int = logging.INFO):
        """
        Add a log message with timestamp.

        Args:
            message: Log message
            level: Logging level for the application log
        """
        timestamp = datetime.now().strftime('%Y-%m-%d %H:%M:%S')
        log_entry = f"[{timestamp}] {message}"
        self.logs.append(log_entry)
        logger.log(level, message)

        if self.run_log_path:
            try:
                with self.run_log_path.open('a', encoding='utf-8') as handle:
                    handle.write(log_entry + '\n')
            except OSError as e:
                logger.warning(f"Cannot write run log {self.run_log_path}: {e}")

        # Flush logs every 5 entries
        self._log_flush_counter += 1
        if self._log_flush_counter >= 5:
            self._flush_logs_to_db()

    def _flush_logs_to_db(self):
        """Flush accumulated logs to database for real-time visibility."""
        if self.run_record:
            self.run_record.logs = '\n'.join(self.logs)
            db.session.commit()
            self._log_flush_counter = 0


def check_backup(settings: BackupSettings) -> Dict[str, Any]:
    """
    Run the precondition checks and work out the planned rotation.

    Nothing is created, moved or deleted.

    Args:
        settings: Settings to check

    Returns:
        Dict with keys 'state', 'steps', 'working', 'archive', 'available_bytes'

    Raises:
        PreconditionError: If a check fails
        StorageError: If a location cannot be listed
    """
    checker = PreconditionChecker(settings, log=logger.info)
    checker.check_mounts()
    checker.check_directories(include_log_dir=not settings.create_log_dir)
    available = checker.check_disk_space()

    orchestrator = RotationOrchestrator(
        working=ArtifactLocation(settings.working_dir, settings.hostname, 'working'),
        archive=ArtifactLocation(settings.archive_dir, settings.hostname, 'archive'),
        create_backup=_never_called,
        strict=settings.strict_artifacts
    )
    state, working, archive = orchestrator.inspect()

    return {
        'state': state.value,
        'steps': [step.value for step in ROTATION_PLANS[state]],
        'working': str(working.path) if working else None,
        'archive': str(archive.path) if archive else None,
        'available_bytes': available
    }


def _never_called(destination: Path):
    raise RuntimeError("check_backup must not create images")


def run_backup(app_config=None) -> BackupRun:
    """
    Execute a backup run with the current application's configuration.

    Args:
        app_config: Config mapping to use instead of current_app.config

    Returns:
        BackupRun record with execution results
    """
    settings = BackupSettings.from_config(app_config if app_config is not None else current_app.config)
    executor = BackupExecutor(settings)
    return executor.execute()
