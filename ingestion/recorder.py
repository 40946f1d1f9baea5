# ============================================================================
# File: ingestion/recorder.py
# Description: Records producer batches as raw deal rows behind the quality gate
# ============================================================================
"""
Ingestion Recorder - turns one producer batch into an ingestion job.

This module provides:
- Job tracking with final statistics (total, recorded, errors)
- Date clamping and quality gating of every submitted deal
- Partial failure support (one bad deal never aborts the batch)
- An audit row for every auto-rejection and insert failure
"""

from typing import Dict, Any, List, Optional
from datetime import datetime
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.exc import SQLAlchemyError
import hashlib
import json
import logging

from ingestion.quality import DealQualityScorer
from ingestion.transformers.fields import DealFieldExtractor
from models.ingestion_job import IngestionJob
from models.raw_deal import RawIngestedDeal
from models.ingestion_error import IngestionError
from models.base import JobStatus, RawDealStatus, ErrorStage
from schemas.ingestion import DealSubmission, IngestionStats, IngestionResult
from schemas.deal import QualityAssessment
from core.exceptions import MissingSourceError, InvalidPayloadError, InvalidStatusTransition, DatabaseError

logger = logging.getLogger(__name__)


def json_safe(value: Any) -> Any:
    """Round-trip through JSON so the value fits a JSON column"""
    if value is None:
        return None
    return json.loads(json.dumps(value, default=str))


def content_hash(raw: Dict[str, Any], normalized: Optional[Dict[str, Any]]) -> str:
    """SHA-256 of the canonical JSON of both payloads"""
    canonical = json.dumps({"raw": raw, "normalized": normalized}, sort_keys=True, default=str)
    return hashlib.sha256(canonical.encode("utf-8")).hexdigest()


class IngestionRecorder:
    """
    Ingestion Recorder

    Responsibilities:
    - Open and finalize the ingestion job
    - Quality-gate each deal in input order
    - Persist survivors as pending rows and failures as auto-rejected rows
    - Convert per-deal failures into audit records

    Every submission creates a fresh job and fresh raw rows, so re-delivering
    the same queue message records the batch again instead of dropping it.
    """

    def __init__(
        self,
        db_session: AsyncSession,
        scorer: Optional[DealQualityScorer] = None,
        extractor: Optional[DealFieldExtractor] = None,
    ):
        self.db = db_session
        self.scorer = scorer or DealQualityScorer()
        self.extractor = extractor or DealFieldExtractor()

    async def process_payload(self, payload: Dict[str, Any]) -> IngestionResult:
        """Queue-facing entry point taking ``{source, scope, deals}``"""
        if not isinstance(payload, dict):
            raise InvalidPayloadError(
                "Ingestion payload must be an object",
                context={"payload_type": type(payload).__name__}
            )

        return await self.process_ingestion_job(
            source=payload.get("source"),
            scope=payload.get("scope"),
            deals=payload.get("deals"),
        )

    async def process_ingestion_job(
        self,
        source: Optional[str],
        scope: Optional[str] = None,
        deals: Optional[List[Any]] = None,
    ) -> IngestionResult:
        """
        Record one batch of deals.

        Args:
            source: Producer identifier (required)
            scope: Free-text batch label
            deals: Producer deals, each a DealSubmission-shaped object

        Returns:
            IngestionResult with the job id and stats, where
            stats.recorded + stats.errors == stats.total

        Raises:
            MissingSourceError: If source is empty (no job is created)
            InvalidPayloadError: If deals is not a list (no job is created)
            Exception: Any job-level failure, after finalizing the job as failed
        """
        if not source:
            raise MissingSourceError(
                "source is required to process ingestion job",
                context={"scope": scope}
            )

        if deals is None:
            deals = []
        if not isinstance(deals, list):
            raise InvalidPayloadError(
                "deals must be a list",
                context={"source": source, "payload_type": type(deals).__name__}
            )

        stats = IngestionStats(total=len(deals))
        job_id: Optional[int] = None

        try:
            # --------------------------------------------------
            # PHASE 1: OPEN JOB
            # --------------------------------------------------
            job_id = await self._open_job(source, scope)
            logger.info(f"Ingestion job {job_id} started for {source} ({stats.total} deals)")

            if not deals:
                await self._finalize_job(job_id, JobStatus.SUCCEEDED, stats)
                return IngestionResult(job_id=job_id, stats=stats)

            # --------------------------------------------------
            # PHASE 2: QUALITY GATE + RAW INSERT (sequential)
            # --------------------------------------------------
            for index, deal in enumerate(deals):
                try:
                    recorded = await self._record_deal(job_id, deal)

                except Exception as e:
                    await self.db.rollback()
                    stats.errors += 1

                    error_detail = {
                        "phase": ErrorStage.RAW_INSERT.value,
                        "job_id": job_id,
                        "deal_index": index,
                        "error_type": type(e).__name__,
                        "error_message": str(e)
                    }
                    logger.error(
                        f"Raw insert failed for job {job_id}, deal #{index}: {str(e)}",
                        extra={"error_context": error_detail}
                    )

                    await self._record_error(job_id, ErrorStage.RAW_INSERT, str(e), json_safe(deal))
                    await self.db.commit()
                    continue

                if recorded:
                    stats.recorded += 1
                else:
                    stats.errors += 1

            # --------------------------------------------------
            # PHASE 3: FINALIZE JOB
            # --------------------------------------------------
            status = JobStatus.SUCCEEDED if stats.errors == 0 else JobStatus.HAS_ERRORS
            await self._finalize_job(job_id, status, stats)

            logger.info(
                f"Ingestion job {job_id} {status.value} - "
                f"Total: {stats.total}, Recorded: {stats.recorded}, Errors: {stats.errors}"
            )

            return IngestionResult(job_id=job_id, stats=stats)

        except Exception as e:
            logger.exception(f"Ingestion job {job_id} for {source} failed")

            await self.db.rollback()

            if job_id is not None:
                await self._record_error(job_id, ErrorStage.JOB, str(e))
                await self._finalize_job(job_id, JobStatus.FAILED, stats, error_message=str(e))

            raise

    async def _record_deal(self, job_id: int, deal: Any) -> bool:
        """
        Insert one deal. Returns True when it was recorded as pending, False
        when the quality gate auto-rejected it.
        """
        submission = DealSubmission.from_input(deal)
        raw = json_safe(submission.raw_payload) or {}
        normalized = json_safe(submission.normalized_payload)

        fields = self.extractor.extract(raw, normalized, now=datetime.utcnow())
        raw = self.extractor.apply_dates(raw, fields)

        assessment = self.scorer.assess(fields)
        status = RawDealStatus.AUTO_REJECTED if assessment.should_auto_reject else RawDealStatus.PENDING

        self.db.add(RawIngestedDeal(
            job_id=job_id,
            merchant_alias=submission.merchant_alias,
            raw_payload=raw,
            normalized_payload=normalized,
            status=status,
            confidence=submission.confidence,
            content_hash=content_hash(raw, normalized),
            created_at=datetime.utcnow(),
        ))

        if assessment.should_auto_reject:
            logger.info(
                f"Auto-rejected deal \"{fields.title or 'Untitled'}\" in job {job_id} "
                f"(quality: {assessment.score * 100:.0f}%)"
            )
            await self._record_error(
                job_id,
                ErrorStage.QUALITY_CHECK,
                self._rejection_message(assessment),
                {
                    "qualityAssessment": assessment.model_dump(),
                    "deal": json_safe(deal if not isinstance(deal, DealSubmission) else deal.model_dump()),
                },
            )

        await self.db.commit()
        return not assessment.should_auto_reject

    def _rejection_message(self, assessment: QualityAssessment) -> str:
        return (
            f"Auto-rejected: Quality {assessment.score * 100:.0f}% < "
            f"{self.scorer.auto_reject_score * 100:.0f}%. "
            f"Issues: {', '.join(assessment.reasons[:3])}"
        )

    async def _open_job(self, source: str, scope: Optional[str]) -> int:
        """Create the job row with status RUNNING"""
        job = IngestionJob(
            source=str(source)[:100],
            scope=str(scope)[:255] if scope is not None else None,
            status=JobStatus.RUNNING,
            started_at=datetime.utcnow(),
        )
        self.db.add(job)
        try:
            await self.db.commit()
        except SQLAlchemyError as e:
            raise DatabaseError(
                "Failed to create ingestion job",
                context={"operation": "INSERT", "table_name": "ingestion_jobs", "source": source},
                original_exception=e
            )
        await self.db.refresh(job)
        return job.id

    async def _record_error(
        self,
        job_id: Optional[int],
        stage: ErrorStage,
        message: str,
        payload: Optional[Any] = None,
    ):
        """Append an audit row (committed by the caller)"""
        self.db.add(IngestionError(
            job_id=job_id,
            stage=stage.value,
            error_message=message,
            payload=payload,
            created_at=datetime.utcnow(),
        ))

    async def _finalize_job(
        self,
        job_id: int,
        status: JobStatus,
        stats: IngestionStats,
        error_message: Optional[str] = None,
    ):
        """Finalize the job exactly once with its stats"""
        job = await self.db.get(IngestionJob, job_id, populate_existing=True)

        if not job.status.can_transition_to(status):
            raise InvalidStatusTransition(
                "Ingestion job already finalized",
                context={
                    "entity": "ingestion_jobs",
                    "entity_id": job_id,
                    "from_status": job.status.value,
                    "to_status": status.value,
                }
            )

        job.status = status
        job.stats = stats.model_dump()
        job.finished_at = datetime.utcnow()
        job.duration_seconds = (job.finished_at - job.started_at).total_seconds()
        job.error_message = error_message

        await self.db.commit()
