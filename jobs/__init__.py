from jobs.queues import celery_app, enqueue_job, QueueName

__all__ = ["celery_app", "enqueue_job", "QueueName"]
