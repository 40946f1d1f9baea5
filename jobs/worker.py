"""
Worker-side job dispatch.

Every queue message runs through one Celery task that looks up the handler
registered for its queue. Handlers must tolerate being invoked more than once
for the same payload.
"""

from typing import Dict, Any, Callable, Optional
import asyncio
import logging

from core.config import settings
from core.database import async_session_maker
from core.exceptions import NonRetryableError, UnknownQueueError
from ingestion.recorder import IngestionRecorder
from ingestion.promotion import PromotionEngine
from jobs.queues import celery_app, QueueName, PROCESS_TASK_NAME, PROMOTE_PENDING_JOB, resolve_queue

logger = logging.getLogger(__name__)


Handler = Callable[[str, Dict[str, Any]], Any]

HANDLERS: Dict[str, Handler] = {}


def register_handler(queue_name: str):
    """Decorator registering the handler for a queue, replacing any previous one"""
    queue = resolve_queue(queue_name)

    def decorator(func: Handler) -> Handler:
        HANDLERS[queue.value] = func
        return func

    return decorator


def dispatch(queue_name: str, job_name: str, payload: Dict[str, Any]) -> Any:
    handler = HANDLERS.get(queue_name)
    if handler is None:
        raise UnknownQueueError(
            f"No handler registered for queue {queue_name}",
            context={"queue": queue_name, "job_name": job_name}
        )
    return handler(job_name, payload)


# ============================================================================
# Handlers
# ============================================================================

async def record_ingestion_batch(payload: Dict[str, Any]) -> Dict[str, Any]:
    async with async_session_maker() as session:
        result = await IngestionRecorder(session).process_payload(payload)
    return result.model_dump()


async def promote_pending(limit: Optional[int] = None) -> Dict[str, Any]:
    async with async_session_maker() as session:
        stats = await PromotionEngine(session).promote_pending_ingested_deals(limit=limit)
    return stats.model_dump()


@register_handler(QueueName.INGESTION)
def handle_ingestion(job_name: str, payload: Dict[str, Any]) -> Dict[str, Any]:
    if job_name == PROMOTE_PENDING_JOB:
        return asyncio.run(promote_pending(payload.get("limit")))
    return asyncio.run(record_ingestion_batch(payload))


def acknowledge(job_name: str, payload: Dict[str, Any]) -> Dict[str, Any]:
    """Consume a job whose processing lives outside this service"""
    logger.info(f"Acknowledged job {job_name} ({len(payload)} payload keys)")
    return {"status": "acknowledged", "job_name": job_name}


for _queue in (QueueName.NOTIFICATIONS, QueueName.AGENT_RECOMMENDATIONS, QueueName.REWARDS):
    register_handler(_queue)(acknowledge)


# ============================================================================
# Task
# ============================================================================

@celery_app.task(
    name=PROCESS_TASK_NAME,
    bind=True,
    autoretry_for=(Exception,),
    dont_autoretry_for=(NonRetryableError,),
    retry_backoff=True,
    retry_backoff_max=600,
    retry_jitter=True,
    max_retries=settings.MAX_RETRIES,
)
def process_queue_job(self, queue_name: str, job_name: str, payload: Optional[Dict[str, Any]] = None):
    """Run one queued job; failures are retried by the broker with backoff"""
    logger.info(f"Processing job {job_name} from {queue_name} (attempt {self.request.retries + 1})")
    return dispatch(queue_name, job_name, payload or {})
