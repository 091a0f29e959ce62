"""
Backup routes - run status, manual trigger and retention endpoints.
"""

from flask import Blueprint, current_app, jsonify

from chunkvault.backup.retention import enforce_retention
from chunkvault.scheduler import (
    get_last_result,
    get_scheduled_jobs,
    is_scheduler_running,
    trigger_backup_now
)


bp = Blueprint('backup', __name__, url_prefix='/api/backup')


@bp.route('/status', methods=['GET'])
def get_status():
    """
    Get scheduler state and the most recent run result.

    Returns:
        JSON with scheduler_status, jobs and last_result (null before the first run)
    """
    last_result = get_last_result()

    return jsonify({
        'scheduler_status': 'running' if is_scheduler_running() else 'stopped',
        'jobs': get_scheduled_jobs(),
        'last_result': last_result.to_dict() if last_result else None
    })


@bp.route('/run', methods=['POST'])
def run_now():
    """
    Trigger an immediate backup run.

    Returns:
        202 with the scheduler job id, or 503 if the scheduler is not running
    """
    try:
        job_id = trigger_backup_now()
    except RuntimeError as e:
        return jsonify({'error': str(e)}), 503

    return jsonify({'message': 'Backup triggered', 'job_id': job_id}), 202


@bp.route('/sweep', methods=['POST'])
def sweep_now():
    """
    Apply local retention to the staging area now.

    Returns:
        JSON with removed count and per-file errors
    """
    summary = enforce_retention(
        current_app.config['STAGING_DIR'],
        int(current_app.config['RETENTION_DAYS'])
    )
    return jsonify(summary)
