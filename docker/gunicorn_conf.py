# Gunicorn configuration for chunkvault
# Only one worker may own the backup scheduler

import os
import logging

logger = logging.getLogger('gunicorn.error')

bind = os.environ.get('GUNICORN_BIND', '0.0.0.0:5000')
workers = int(os.environ.get('GUNICORN_WORKERS', 2))
timeout = 60
wsgi_app = 'chunkvault:create_app()'


def post_fork(server, worker):
    """
    Mark the first spawned worker (age 1) as the scheduler owner before it loads the app.

    create_app() reads SCHEDULER_WORKER to decide whether this process starts
    APScheduler; every other worker only serves the status API.
    """
    owner = worker.age == 1
    os.environ['SCHEDULER_WORKER'] = 'true' if owner else 'false'
    role = 'scheduler owner' if owner else 'HTTP worker'
    logger.info(f"Worker PID {worker.pid} (age={worker.age}): {role}")
