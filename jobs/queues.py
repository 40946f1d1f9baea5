"""
Named job queues on a Celery/Redis broker.

Delivery is at-least-once: a job is acknowledged only after its handler
returns, so a worker crash puts the job back on the queue and it can run
again.
"""

from typing import Dict, Any, Optional
import enum
import logging

from celery import Celery
from kombu import Queue
from kombu.exceptions import OperationalError

from core.config import settings
from core.exceptions import UnknownQueueError, QueueUnavailableError

logger = logging.getLogger(__name__)

PROCESS_TASK_NAME = "jobs.process_queue_job"
PROMOTE_PENDING_JOB = "promote-pending"


class QueueName(str, enum.Enum):
    NOTIFICATIONS = "notifications"
    AGENT_RECOMMENDATIONS = "agent-recommendations"
    REWARDS = "rewards"
    INGESTION = "ingestion"


celery_app = Celery(
    "deal_pipeline",
    broker=settings.CELERY_BROKER_URL,
    backend=settings.CELERY_RESULT_BACKEND,
    include=["jobs.worker"],
)

celery_app.conf.update(
    task_queues=[Queue(queue.value) for queue in QueueName],
    task_default_queue=QueueName.INGESTION.value,
    task_acks_late=True,
    task_reject_on_worker_lost=True,
    worker_prefetch_multiplier=1,
    worker_concurrency=settings.JOB_WORKER_CONCURRENCY,
    task_serializer="json",
    accept_content=["json"],
    result_serializer="json",
    timezone="UTC",
    enable_utc=True,
)


def resolve_queue(queue_name: str) -> QueueName:
    """Map a queue name onto a known queue"""
    try:
        return QueueName(queue_name)
    except ValueError:
        raise UnknownQueueError(
            f"Unknown queue: {queue_name}",
            context={"queue": queue_name, "known_queues": [q.value for q in QueueName]}
        )


def enqueue_job(
    queue_name: str,
    job_name: str,
    payload: Optional[Dict[str, Any]] = None,
    options: Optional[Dict[str, Any]] = None,
):
    """
    Publish a job onto a named queue.

    Args:
        queue_name: One of the QueueName values
        job_name: Handler-specific job name (e.g. "process-batch")
        payload: JSON-serializable job payload
        options: Extra Celery publish options (countdown, eta, priority, ...)

    Returns:
        celery AsyncResult handle for the job

    Raises:
        UnknownQueueError: If the queue is not one of the named queues
        QueueUnavailableError: If the broker cannot be reached
    """
    queue = resolve_queue(queue_name)
    publish_options = dict(options or {})
    publish_options.pop("queue", None)

    try:
        result = celery_app.send_task(
            PROCESS_TASK_NAME,
            args=[queue.value, job_name, payload or {}],
            queue=queue.value,
            **publish_options
        )
    except OperationalError as e:
        raise QueueUnavailableError(
            "Queue broker is unavailable",
            context={"queue": queue.value, "job_name": job_name},
            original_exception=e
        )

    logger.info(f"Enqueued job {job_name} on {queue.value} ({result.id})")
    return result
