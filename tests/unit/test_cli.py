"""
Unit tests for the command line entry point (pibackup/cli.py).
"""

import json
import os
import signal
from unittest.mock import patch

import pytest

from pibackup.backup.executor import BackupInterrupted
from pibackup.cli import (
    EXIT_FAILURE,
    EXIT_INTERRUPTED,
    EXIT_SUCCESS,
    exit_code_for,
    install_signal_handlers,
    main
)


@pytest.fixture(autouse=True)
def restore_signals():
    """Put back the original SIGINT/SIGTERM handlers."""
    original = {sig: signal.getsignal(sig) for sig in (signal.SIGINT, signal.SIGTERM)}
    yield
    for sig, handler in original.items():
        signal.signal(sig, handler)


@pytest.fixture
def settings_file(tmp_path, backup_dirs, device, monkeypatch):
    """Settings file pointing the CLI at the temporary directories."""
    # setenv first so monkeypatch restores the original state after main() mutates os.environ
    for name in ('PIBACKUP_SETTINGS', 'SCHEDULER_WORKER', 'WERKZEUG_RUN_MAIN'):
        monkeypatch.setenv(name, '')
        monkeypatch.delenv(name)

    path = tmp_path / 'pibackup.cfg'
    path.write_text(
        f"BACKUP_WORKING_DIR = {str(backup_dirs['working'])!r}\n"
        f"BACKUP_ARCHIVE_DIR = {str(backup_dirs['archive'])!r}\n"
        f"BACKUP_DEVICE = {str(device)!r}\n"
        "REQUIRED_FREE_BYTES = 1\n"
        "COOLDOWN_SECONDS = 0\n"
        "VERIFY_MOUNTS = False\n"
    )
    return path


class TestExitCodes:

    @pytest.mark.parametrize('status,expected', [
        ('success', EXIT_SUCCESS),
        ('failed', EXIT_FAILURE),
        ('interrupted', EXIT_INTERRUPTED),
    ])
    def test_exit_code_for(self, status, expected):
        assert exit_code_for(status) == expected

    def test_interrupted_is_130(self):
        assert EXIT_INTERRUPTED == 130


class TestSignalHandlers:

    def test_sigterm_raises_backup_interrupted(self):
        install_signal_handlers()

        with pytest.raises(BackupInterrupted) as exc_info:
            os.kill(os.getpid(), signal.SIGTERM)

        assert exc_info.value.signum == signal.SIGTERM


class TestMain:
    """Test running the CLI end to end against temporary directories."""

    def test_single_run_succeeds(self, settings_file, backup_dirs, list_images):
        code = main(['--env', 'testing', '--config', str(settings_file)])

        assert code == EXIT_SUCCESS
        assert len(list_images(backup_dirs['working'])) == 1

    def test_copy_failure_exits_1(self, settings_file, backup_dirs):
        with settings_file.open('a') as handle:
            handle.write(f"BACKUP_DEVICE = {str(backup_dirs['working'] / 'missing')!r}\n")

        assert main(['--env', 'testing', '--config', str(settings_file)]) == EXIT_FAILURE

    @patch('pibackup.backup.executor.copy_device_to_file')
    def test_interrupted_run_exits_130(self, mock_copy, settings_file):
        mock_copy.side_effect = BackupInterrupted(signal.SIGINT)

        assert main(['--env', 'testing', '--config', str(settings_file)]) == EXIT_INTERRUPTED

    def test_check_prints_plan(self, settings_file, backup_dirs, make_artifact, capsys, list_images):
        make_artifact(backup_dirs['working'], '06-01-2024')

        code = main(['--env', 'testing', '--config', str(settings_file), '--check'])

        assert code == EXIT_SUCCESS
        plan = json.loads(capsys.readouterr().out)
        assert plan['state'] == 'working_only'
        assert plan['steps'] == ['move_to_archive', 'create_backup']
        assert list_images(backup_dirs['working']) == ['testpi_backup_06-01-2024.img']
        assert list_images(backup_dirs['archive']) == []

    def test_check_failure_exits_1(self, settings_file, backup_dirs):
        with settings_file.open('a') as handle:
            handle.write("REQUIRED_FREE_BYTES = 1024 ** 6\n")

        assert main(['--env', 'testing', '--config', str(settings_file), '--check']) == EXIT_FAILURE

    @patch('pibackup.scheduler.run_daemon')
    def test_daemon_interrupted_exits_130(self, mock_daemon, settings_file):
        mock_daemon.return_value = 'interrupted'

        assert main(['--env', 'testing', '--config', str(settings_file), '--daemon']) == EXIT_INTERRUPTED

    @patch('pibackup.scheduler.run_daemon')
    def test_daemon_signal_exits_130(self, mock_daemon, settings_file):
        mock_daemon.side_effect = BackupInterrupted(signal.SIGTERM)

        assert main(['--env', 'testing', '--config', str(settings_file), '--daemon']) == EXIT_INTERRUPTED

    def test_check_and_daemon_are_exclusive(self, settings_file):
        with pytest.raises(SystemExit):
            main(['--check', '--daemon'])
