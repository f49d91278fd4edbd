"""
Status routes - Current rotation state and storage overview.
"""

import logging

from flask import Blueprint, current_app, jsonify

from pibackup.backup.rotation import ROTATION_PLANS, determine_state
from pibackup.backup.storage import (
    AmbiguousArtifactError,
    ArtifactLocation,
    StorageError,
    format_size,
    free_space
)
from pibackup.config import BackupSettings
from pibackup.models import BackupRun
from pibackup.routes.history_routes import serialize_run
from pibackup.scheduler import get_scheduled_jobs, is_scheduler_running


bp = Blueprint('status', __name__, url_prefix='/api/status')

logger = logging.getLogger(__name__)


def _describe_location(location: ArtifactLocation) -> dict:
    """Artifacts and free space of one location; errors are reported, not raised."""
    info = {
        'path': str(location.path),
        'exists': location.path.is_dir(),
        'artifacts': [],
        'free_bytes': None,
        'free': 'N/A',
    }

    try:
        info['artifacts'] = [
            {
                'name': artifact.name,
                'size_bytes': artifact.size_bytes,
                'modified': artifact.modified.isoformat(),
            }
            for artifact in location.list_artifacts()
        ]
    except StorageError as e:
        info['error'] = str(e)

    try:
        info['free_bytes'] = free_space(location.path)
        info['free'] = format_size(info['free_bytes'])
    except OSError as e:
        logger.debug(f"Cannot read free space of {location.path}: {e}")

    return info


@bp.route('/', methods=['GET'])
def get_status():
    """
    Get the current backup status.

    Returns:
        JSON with:
        - hostname, device: configured identity and source device
        - working, archive: artifacts and free space per location
        - rotation_state, planned_steps: what the next run would do
        - plan_error: why a strict run would abort instead, or null
        - scheduler: running flag and scheduled jobs
        - last_run: most recent backup run
    """
    settings = BackupSettings.from_config(current_app.config)
    working = ArtifactLocation(settings.working_dir, settings.hostname, 'working')
    archive = ArtifactLocation(settings.archive_dir, settings.hostname, 'archive')

    working_info = _describe_location(working)
    archive_info = _describe_location(archive)

    # Newest artifact first, same choice the rotation makes
    state = determine_state(
        working_info['artifacts'][0] if working_info['artifacts'] else None,
        archive_info['artifacts'][0] if archive_info['artifacts'] else None
    )
    rotation_state = state.value
    planned_steps = [step.value for step in ROTATION_PLANS[state]]

    # A strict run aborts before rotating when a location holds several images
    plan_error = None
    if settings.strict_artifacts:
        for location, info in ((archive, archive_info), (working, working_info)):
            if len(info['artifacts']) > 1:
                paths = [location.path / artifact['name'] for artifact in info['artifacts']]
                plan_error = str(AmbiguousArtifactError(location.path, paths))
                rotation_state = None
                planned_steps = []
                break

    last_run = BackupRun.query.order_by(BackupRun.started_at.desc(), BackupRun.id.desc()).first()

    return jsonify({
        'hostname': settings.hostname,
        'device': settings.device,
        'working': working_info,
        'archive': archive_info,
        'rotation_state': rotation_state,
        'planned_steps': planned_steps,
        'plan_error': plan_error,
        'scheduler': {
            'running': is_scheduler_running(),
            'jobs': get_scheduled_jobs()
        },
        'last_run': serialize_run(last_run) if last_run else None
    })
