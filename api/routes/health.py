"""
Health check endpoint with database and ingestion status
"""

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, func, text
from api.dependencies import get_db
from schemas.api import HealthCheckResponse, IngestionJobInfo
from models.ingestion_job import IngestionJob
from models.raw_deal import RawIngestedDeal
from models.base import JobStatus, RawDealStatus
import logging

logger = logging.getLogger(__name__)
router = APIRouter(tags=["Health"])

RECENT_JOB_LIMIT = 10


@router.get("/health", response_model=HealthCheckResponse)
async def health_check(db: AsyncSession = Depends(get_db)):
    """
    Health check endpoint.

    Returns:
    - Database connectivity status
    - The most recent ingestion jobs
    - Number of raw deals waiting for review
    """

    db_connected = False

    try:
        await db.execute(text("SELECT 1"))
        db_connected = True
    except Exception as e:
        logger.error(f"Database connection failed: {str(e)}")

    recent_jobs = []
    failed_jobs = 0
    pending_deals = 0

    if db_connected:
        try:
            result = await db.execute(
                select(IngestionJob)
                .order_by(IngestionJob.started_at.desc(), IngestionJob.id.desc())
                .limit(RECENT_JOB_LIMIT)
            )
            jobs = result.scalars().all()
            recent_jobs = [IngestionJobInfo.model_validate(job) for job in jobs]
            failed_jobs = sum(1 for job in jobs if job.status == JobStatus.FAILED)

            pending_result = await db.execute(
                select(func.count()).select_from(RawIngestedDeal).where(
                    RawIngestedDeal.status == RawDealStatus.PENDING
                )
            )
            pending_deals = pending_result.scalar() or 0
        except Exception as e:
            logger.error(f"Failed to fetch ingestion status: {str(e)}")

    return HealthCheckResponse(
        database_connected=db_connected,
        recent_jobs=recent_jobs,
        failed_jobs=failed_jobs,
        pending_deals=pending_deals,
    )
