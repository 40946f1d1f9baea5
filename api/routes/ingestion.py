"""
Producer-facing ingestion endpoint.

Batches are validated here and handed to the ingestion queue; the worker
records them.
"""

from fastapi import APIRouter, HTTPException, Request, status
from schemas.ingestion import IngestionRequest
from schemas.api import EnqueuedJobResponse
from jobs.queues import enqueue_job, QueueName
from core.exceptions import QueueUnavailableError
import logging

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/ingestion", tags=["Ingestion"])

INGEST_BATCH_JOB = "process-batch"


@router.post("/jobs", response_model=EnqueuedJobResponse, status_code=status.HTTP_202_ACCEPTED)
async def submit_ingestion_batch(request: Request, batch: IngestionRequest):
    request_id = getattr(request.state, "request_id", None)
    logger.info(
        f"[{request_id}] POST /ingestion/jobs - source={batch.source}, "
        f"scope={batch.scope}, deals={len(batch.deals)}"
    )

    try:
        handle = enqueue_job(QueueName.INGESTION.value, INGEST_BATCH_JOB, batch.model_dump())
    except QueueUnavailableError as e:
        logger.error(f"[{request_id}] {e}")
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Ingestion queue unavailable"
        )

    return EnqueuedJobResponse(
        job_id=str(handle.id),
        queue=QueueName.INGESTION.value,
        job_name=INGEST_BATCH_JOB,
    )
