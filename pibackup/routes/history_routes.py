"""
Backup history routes - View backup run history.
"""

from datetime import datetime, timedelta

from flask import Blueprint, jsonify, request

from pibackup.models import BackupRun, utcnow


bp = Blueprint('history', __name__, url_prefix='/api/history')

VALID_STATUSES = ['running', 'success', 'failed', 'interrupted']


def _isoformat(value: datetime):
    return value.isoformat() + 'Z' if value else None


def serialize_run(record: BackupRun, include_logs: bool = False) -> dict:
    data = {
        'id': record.id,
        'hostname': record.hostname,
        'status': record.status,
        'rotation_state': record.rotation_state,
        'started_at': _isoformat(record.started_at),
        'completed_at': _isoformat(record.completed_at),
        'duration_seconds': record.duration_seconds,
        'backup_path': record.backup_path,
        'archived_path': record.archived_path,
        'removed_path': record.removed_path,
        'file_size_bytes': record.file_size_bytes,
        'file_size_gb': round(record.file_size_bytes / 1024 ** 3, 2) if record.file_size_bytes else None,
        'error_type': record.error_type,
        'error_message': record.error_message,
    }
    if include_logs:
        data['logs'] = record.logs
    else:
        data['has_logs'] = bool(record.logs)
    return data


@bp.route('/', methods=['GET'])
def list_history():
    """
    Get backup history with filtering and pagination.

    Query params:
        - status: Filter by status (running/success/failed/interrupted)
        - days: Only show runs from last N days
        - limit: Max number of records (default: 50, max: 200)
        - offset: Number of records to skip (default: 0)

    Returns:
        JSON with history records and metadata
    """
    status_filter = request.args.get('status')
    days_filter = request.args.get('days', type=int)
    limit = request.args.get('limit', 50, type=int)
    offset = request.args.get('offset', 0, type=int)

    # Enforce limits
    if limit > 200:
        limit = 200
    if limit < 1:
        limit = 50
    if offset < 0:
        offset = 0

    query = BackupRun.query

    if status_filter:
        if status_filter not in VALID_STATUSES:
            return jsonify({'error': 'Invalid status filter'}), 400
        query = query.filter(BackupRun.status == status_filter)

    if days_filter and days_filter > 0:
        cutoff_date = utcnow() - timedelta(days=days_filter)
        query = query.filter(BackupRun.started_at >= cutoff_date)

    # Get total count before pagination
    total_count = query.count()

    records = query.order_by(
        BackupRun.started_at.desc(), BackupRun.id.desc()
    ).limit(limit).offset(offset).all()

    return jsonify({
        'records': [serialize_run(record) for record in records],
        'total': total_count,
        'limit': limit,
        'offset': offset
    })


@bp.route('/<int:run_id>', methods=['GET'])
def get_history_detail(run_id):
    """
    Get full information for a backup run, including logs.
    """
    record = BackupRun.query.get_or_404(run_id)
    return jsonify(serialize_run(record, include_logs=True))


@bp.route('/<int:run_id>/logs', methods=['GET'])
def get_history_logs(run_id):
    """
    Get logs for a backup run.
    """
    record = BackupRun.query.get_or_404(run_id)

    return jsonify({
        'id': record.id,
        'status': record.status,
        'logs': record.logs or 'No logs available'
    })


@bp.route('/summary', methods=['GET'])
def get_history_summary():
    """
    Get summary statistics for backup history.

    Query params:
        - days: Calculate summary for last N days (default: 30)

    Returns:
        JSON with summary statistics
    """
    days = request.args.get('days', 30, type=int)
    if days < 1:
        days = 30
    if days > 365:
        days = 365

    cutoff_date = utcnow() - timedelta(days=days)

    query = BackupRun.query.filter(BackupRun.started_at >= cutoff_date)

    total = query.count()
    success = query.filter(BackupRun.status == 'success').count()
    failed = query.filter(BackupRun.status == 'failed').count()
    interrupted = query.filter(BackupRun.status == 'interrupted').count()

    completed = success + failed + interrupted
    success_rate = round((success / completed * 100) if completed > 0 else 0, 1)

    last_success = BackupRun.query.filter_by(status='success').order_by(
        BackupRun.started_at.desc()
    ).first()

    return jsonify({
        'days': days,
        'total_runs': total,
        'successful': success,
        'failed': failed,
        'interrupted': interrupted,
        'success_rate': success_rate,
        'last_success': serialize_run(last_success) if last_success else None
    })
