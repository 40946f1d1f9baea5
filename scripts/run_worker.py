"""
Start a job worker consuming every named queue
"""

import sys
import os

# Add current directory to path to allow imports from core, models, etc.
sys.path.append(os.getcwd())

from core.config import settings
from core.logging import setup_logging
from jobs.queues import celery_app, QueueName
import jobs.worker  # noqa: F401  registers the task


def worker_argv():
    return [
        "worker",
        f"--concurrency={settings.JOB_WORKER_CONCURRENCY}",
        f"--queues={','.join(queue.value for queue in QueueName)}",
        f"--loglevel={settings.LOG_LEVEL}",
    ]


if __name__ == "__main__":
    setup_logging()
    celery_app.worker_main(worker_argv())
