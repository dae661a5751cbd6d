# Gunicorn configuration for Snapvault
# Only one worker may own the backup scheduler

import os
import logging

logger = logging.getLogger('gunicorn.error')

bind = os.environ.get('GUNICORN_BIND', '0.0.0.0:5000')
# Manual triggers are only accepted by the scheduler owner (others answer 503)
workers = int(os.environ.get('GUNICORN_WORKERS', 1))


def post_worker_init(worker):
    """
    Designate the first worker (worker.age == 0) as the scheduler owner.

    Backups of a source tree must never run in two processes at once, so
    every other worker skips scheduler initialization.
    """
    owner = worker.age == 0
    os.environ['SCHEDULER_WORKER'] = 'true' if owner else 'false'
    role = 'scheduler owner' if owner else 'HTTP only'
    logger.info(f"Worker PID {worker.pid} (age={worker.age}): {role}")
