"""
Human readable summary written after a successful backup.
"""

from datetime import date
from pathlib import Path
from typing import Optional

from pibackup.config import BackupSettings
from .storage import ARTIFACT_DATE_FORMAT, format_size, free_space

SEPARATOR = '-' * 40


def summary_path(settings: BackupSettings, when: date) -> Path:
    return settings.log_dir / f"backup_summary_{when.strftime(ARTIFACT_DATE_FORMAT)}.txt"


def _size_or_none(path: Path) -> Optional[int]:
    try:
        return path.stat().st_size
    except OSError:
        return None


def _free_or_none(path: Path) -> Optional[int]:
    try:
        return free_space(path)
    except OSError:
        return None


def write_summary(settings: BackupSettings, backup_path: Path, when: date) -> Path:
    """
    Write the summary report for a backup.

    Sizes that cannot be read are reported as 'N/A'.

    Args:
        settings: Settings of the run
        backup_path: Image created by the run
        when: Backup date

    Returns:
        Path of the summary file
    """
    path = summary_path(settings, when)
    backup_date = when.strftime(ARTIFACT_DATE_FORMAT)

    lines = [
        f"Backup Summary - {backup_date}",
        SEPARATOR,
        f"System: {settings.hostname}",
        f"Backup File: {backup_path}",
        f"Backup Size: {format_size(_size_or_none(backup_path))}",
        f"Available Space: {format_size(_free_or_none(settings.working_dir))}",
        f"Archive Space: {format_size(_free_or_none(settings.archive_dir))}",
        SEPARATOR,
    ]

    path.write_text('\n'.join(lines) + '\n', encoding='utf-8')
    return path
