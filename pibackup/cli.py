"""Command line entry point for pibackup.

Runs a single backup by default. All settings come from the environment
(or the file named by PIBACKUP_SETTINGS), never from per-run flags.

Usage:
    pibackup
    pibackup --check
    pibackup --daemon
    pibackup --env development --config /etc/pibackup.cfg
"""

import argparse
import json
import logging
import os
import signal
import sys

from pibackup.backup.executor import BackupInterrupted

logger = logging.getLogger("pibackup")

EXIT_SUCCESS = 0
EXIT_FAILURE = 1
EXIT_INTERRUPTED = 130


def _raise_interrupted(signum, frame):
    raise BackupInterrupted(signum)


def install_signal_handlers():
    """Turn SIGINT/SIGTERM into BackupInterrupted on the main thread."""
    signal.signal(signal.SIGINT, _raise_interrupted)
    signal.signal(signal.SIGTERM, _raise_interrupted)


def exit_code_for(status: str) -> int:
    if status == 'success':
        return EXIT_SUCCESS
    if status == 'interrupted':
        return EXIT_INTERRUPTED
    return EXIT_FAILURE


def build_parser():
    parser = argparse.ArgumentParser(
        prog="pibackup",
        description="Full-device image backup with working/archive rotation",
    )
    mode = parser.add_mutually_exclusive_group()
    mode.add_argument(
        "--check",
        action="store_true",
        help="Run the precondition checks and print the planned rotation without changing anything",
    )
    mode.add_argument(
        "--daemon",
        action="store_true",
        help="Stay running and back up on BACKUP_SCHEDULE_CRON",
    )
    parser.add_argument(
        "--env",
        default=None,
        choices=["development", "production", "testing"],
        help="Configuration to use (default: $PIBACKUP_ENV or production)",
    )
    parser.add_argument(
        "--config",
        default=None,
        help="Python settings file layered over the environment (sets PIBACKUP_SETTINGS)",
    )
    return parser


def run_check(app) -> int:
    from pibackup.backup.checks import PreconditionError
    from pibackup.backup.executor import check_backup
    from pibackup.backup.storage import StorageError
    from pibackup.config import BackupSettings

    settings = BackupSettings.from_config(app.config)
    try:
        plan = check_backup(settings)
    except (PreconditionError, StorageError) as e:
        logger.error(f"ERROR: {e}")
        return EXIT_FAILURE

    print(json.dumps(plan, indent=2))
    return EXIT_SUCCESS


def run_once(app) -> int:
    from pibackup.backup.executor import run_backup

    with app.app_context():
        run = run_backup()
        return exit_code_for(run.status)


def run_scheduled(app) -> int:
    from pibackup.scheduler import run_daemon

    try:
        last_status = run_daemon(app)
    except BackupInterrupted as e:
        logger.info(f"Daemon stopped by signal {e.signum}")
        return EXIT_INTERRUPTED
    if last_status == 'interrupted':
        return EXIT_INTERRUPTED
    return EXIT_SUCCESS


def main(argv=None) -> int:
    args = build_parser().parse_args(argv)

    if args.config:
        os.environ["PIBACKUP_SETTINGS"] = os.path.abspath(args.config)

    # The CLI runs backups itself, never through the background scheduler
    os.environ["SCHEDULER_WORKER"] = "false"
    os.environ.pop("WERKZEUG_RUN_MAIN", None)

    from pibackup import create_app

    app = create_app(args.env)
    install_signal_handlers()

    try:
        if args.check:
            return run_check(app)
        if args.daemon:
            return run_scheduled(app)
        return run_once(app)
    except BackupInterrupted as e:
        logger.error(f"Script interrupted by signal {e.signum}")
        return EXIT_INTERRUPTED


if __name__ == "__main__":
    sys.exit(main())
