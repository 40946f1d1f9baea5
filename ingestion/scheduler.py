import asyncio
import logging
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.cron import CronTrigger
from core.config import settings
from core.exceptions import QueueError
from jobs.queues import enqueue_job, QueueName, PROMOTE_PENDING_JOB

logger = logging.getLogger(__name__)

NIGHTLY_REFRESH_JOB = "nightly-refresh"
HOURLY_NUDGE_JOB = "hourly-nudge-sweep"


class DealScheduler:
    """Turns wall-clock time into queue messages; holds no other state"""

    def __init__(self, auto_promote: bool = None):
        self.scheduler = AsyncIOScheduler(timezone="UTC")
        self.auto_promote = settings.AUTO_PROMOTE_ENABLED if auto_promote is None else auto_promote

    def enqueue(self, queue_name: str, job_name: str, payload: dict = None):
        """Job body: publish one message, never raise into the scheduler"""
        try:
            enqueue_job(queue_name, job_name, payload or {})
        except QueueError as e:
            logger.error(f"Scheduler: failed to enqueue {job_name} on {queue_name} - {e}")

    def register_jobs(self):
        self.scheduler.add_job(
            self.enqueue,
            trigger=CronTrigger(hour=2, minute=30, timezone="UTC"),
            args=[QueueName.AGENT_RECOMMENDATIONS.value, NIGHTLY_REFRESH_JOB, {"scope": "all"}],
            id=NIGHTLY_REFRESH_JOB,
            replace_existing=True
        )
        self.scheduler.add_job(
            self.enqueue,
            trigger=CronTrigger(minute=0, timezone="UTC"),
            args=[QueueName.NOTIFICATIONS.value, HOURLY_NUDGE_JOB, {}],
            id=HOURLY_NUDGE_JOB,
            replace_existing=True
        )
        if self.auto_promote:
            self.scheduler.add_job(
                self.enqueue,
                trigger=CronTrigger(hour=3, minute=0, timezone="UTC"),
                args=[QueueName.INGESTION.value, PROMOTE_PENDING_JOB, {"limit": settings.PROMOTION_BATCH_LIMIT}],
                id=PROMOTE_PENDING_JOB,
                replace_existing=True
            )

    def start(self):
        """Start the scheduler"""
        self.register_jobs()
        self.scheduler.start()
        logger.info(f"Deal scheduler started with {len(self.scheduler.get_jobs())} jobs")

    async def stop(self):
        """Shut the scheduler down and wait for the loop to apply it"""
        if not self.scheduler.running:
            return
        self.scheduler.shutdown()
        # AsyncIOScheduler may hand the shutdown to the event loop
        await asyncio.sleep(0)
        logger.info("Deal scheduler stopped")
