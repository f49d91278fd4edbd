"""
Retention policy enforcement for backup run logs.

Deletes per-day run logs (``backup_*.log``) once they are older than the
configured number of days. Best-effort: a file that cannot be inspected or
deleted is reported and skipped, the backup run carries on.
"""

import logging
import os
from datetime import datetime
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional

logger = logging.getLogger(__name__)

LOG_FILE_PATTERN = 'backup_*.log'

SECONDS_PER_DAY = 86400


def log_age_days(modified: datetime, now: datetime) -> int:
    """
    Age in whole days, rounded down.

    Matches ``find -mtime``: a file 30 days and 23 hours old is 30 days old.
    """
    return int((now - modified).total_seconds() // SECONDS_PER_DAY)


class LogRetentionManager:
    """
    Manages retention of run logs in the backup log directory.
    """

    def __init__(self, log_dir, retain_days: int, log: Optional[Callable[..., None]] = None):
        """
        Initialize retention manager.

        Args:
            log_dir: Directory holding run logs
            retain_days: Logs older than this many whole days are deleted
            log: Optional callback receiving (message, level)
        """
        self.log_dir = Path(log_dir)
        self.retain_days = retain_days
        self._log_callback = log

    def expired_logs(self, now: Optional[datetime] = None) -> List[Path]:
        """
        List run logs older than the retention window.

        Args:
            now: Reference time (defaults to the current time)

        Returns:
            Paths of expired logs, oldest first
        """
        now = now or datetime.now()
        expired = []

        for log_path in self.log_dir.glob(LOG_FILE_PATTERN):
            try:
                if not log_path.is_file():
                    continue
                modified = datetime.fromtimestamp(log_path.stat().st_mtime)
            except OSError as e:
                self._log(f"Warning: Failed to inspect {log_path}: {e}", logging.WARNING)
                continue

            if log_age_days(modified, now) > self.retain_days:
                expired.append((modified, log_path))

        return [path for _, path in sorted(expired)]

    def enforce(self, now: Optional[datetime] = None) -> Dict[str, Any]:
        """
        Delete expired run logs.

        Args:
            now: Reference time (defaults to the current time)

        Returns:
            Dict with summary of cleanup:
            {
                'deleted': List[str],
                'errors': List[str]
            }
        """
        self._log("Starting log rotation")

        summary = {
            'deleted': [],
            'errors': []
        }

        for log_path in self.expired_logs(now):
            try:
                os.remove(log_path)
                summary['deleted'].append(str(log_path))
            except OSError as e:
                error_msg = f"Failed to delete log {log_path}: {e}"
                self._log(f"Warning: {error_msg}", logging.WARNING)
                summary['errors'].append(error_msg)

        self._log(
            f"Completed log rotation - removed {len(summary['deleted'])} logs "
            f"older than {self.retain_days} days"
        )
        return summary

    def _log(self, message: str, level: int = logging.INFO):
        if self._log_callback:
            self._log_callback(message, level)
        else:
            logger.log(level, message)
