# Gunicorn configuration for pibackup
# Only one worker may own the backup scheduler: two schedulers would start
# two image copies against the same working/archive locations.

import os
import logging

logger = logging.getLogger('gunicorn.error')

bind = os.environ.get('BIND', '127.0.0.1:5000')
workers = int(os.environ.get('WEB_CONCURRENCY', 2))
wsgi_app = 'pibackup:create_app()'


def post_fork(server, worker):
    """
    Called in the worker right after it is forked, before the app is loaded.

    Designates the first worker (worker.age == 1) as the scheduler owner.
    A worker respawned later gets a new age and no scheduler; the run lock
    still keeps overlapping backups out.
    create_app() only starts APScheduler in that worker.

    Args:
        server: Gunicorn arbiter
        worker: Gunicorn worker instance (uses 'age' attribute: 1, 2, 3, ...)
    """
    if worker.age == 1:
        os.environ['SCHEDULER_WORKER'] = 'true'
        logger.info(f"Worker PID {worker.pid} (age={worker.age}): Designated as SCHEDULER OWNER")
    else:
        os.environ['SCHEDULER_WORKER'] = 'false'
        logger.info(f"Worker PID {worker.pid} (age={worker.age}): Standard HTTP worker (scheduler disabled)")
