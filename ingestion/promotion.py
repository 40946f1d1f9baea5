"""
Promotion Engine - converts pending raw deal rows into catalog deals.

Each row is promoted inside its own transaction. The quality gate runs again
on the extracted fields, and nothing below the auto-reject floor reaches the
catalog, not even through an operator-selected promotion.
"""

from typing import Dict, Any, List, Optional, Iterable, NamedTuple
from datetime import datetime, timedelta
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, update, func
import logging

from ingestion.quality import DealQualityScorer, PLACEHOLDER_TITLE_PREFIX
from ingestion.resolver import MerchantResolver
from ingestion.transformers.fields import DealFieldExtractor, derive_alias
from models.raw_deal import RawIngestedDeal
from models.ingestion_job import IngestionJob
from models.ingestion_error import IngestionError
from models.deal import Deal, DealSource
from models.base import RawDealStatus, DealStatus, ErrorStage
from schemas.ingestion import PromotionStats, RejectResult
from schemas.deal import DealFields, QualityAssessment
from core.exceptions import PromotionError, MerchantResolutionError
from core.config import settings

logger = logging.getLogger(__name__)


class PendingRow(NamedTuple):
    """Detached snapshot of a raw row taken before promotion starts"""
    id: int
    job_id: int
    merchant_alias: Optional[str]
    raw_payload: Dict[str, Any]
    normalized_payload: Dict[str, Any]
    confidence: Optional[float]

    @classmethod
    def from_model(cls, row: RawIngestedDeal) -> "PendingRow":
        return cls(
            id=row.id,
            job_id=row.job_id,
            merchant_alias=row.merchant_alias,
            raw_payload=dict(row.raw_payload or {}),
            normalized_payload=dict(row.normalized_payload or {}),
            confidence=row.confidence,
        )


class PendingReview(NamedTuple):
    """Pending raw row with the context of the job that recorded it"""
    deal: RawIngestedDeal
    job_source: Optional[str] = None
    job_scope: Optional[str] = None
    job_started_at: Optional[datetime] = None
    job_finished_at: Optional[datetime] = None


class JobInfo(NamedTuple):
    source: Optional[str] = None
    scope: Optional[str] = None


def default_deal_status(confidence: Optional[float]) -> DealStatus:
    """Status a deal would get from producer confidence alone"""
    if confidence is not None and confidence >= settings.AUTO_ACTIVATE_CONFIDENCE:
        return DealStatus.ACTIVE
    return DealStatus.PENDING_REVIEW


def normalize_ids(ids: Optional[Iterable[Any]]) -> List[int]:
    """Integer ids in first-seen order, dropping anything unparseable"""
    cleaned: List[int] = []
    for value in ids or []:
        if isinstance(value, bool):
            continue
        try:
            row_id = int(value)
        except (ValueError, TypeError):
            continue
        if row_id not in cleaned:
            cleaned.append(row_id)
    return cleaned


class PromotionEngine:
    """
    Promote, reject and list raw ingested deals.

    Usage:
        async with async_session_maker() as session:
            engine = PromotionEngine(session)
            stats = await engine.promote_pending_ingested_deals(limit=20)
    """

    def __init__(
        self,
        db_session: AsyncSession,
        scorer: Optional[DealQualityScorer] = None,
        extractor: Optional[DealFieldExtractor] = None,
        resolver: Optional[MerchantResolver] = None,
    ):
        self.db = db_session
        self.scorer = scorer or DealQualityScorer()
        self.extractor = extractor or DealFieldExtractor()
        self.resolver = resolver or MerchantResolver(db_session)

    # ------------------------------------------------------------------
    # Entry points
    # ------------------------------------------------------------------

    async def promote_pending_ingested_deals(self, limit: Optional[int] = None) -> PromotionStats:
        """Promote the oldest pending rows, up to limit"""
        limit = limit if limit is not None else settings.PROMOTION_BATCH_LIMIT
        if limit <= 0:
            return PromotionStats()

        result = await self.db.execute(
            select(RawIngestedDeal)
            .where(RawIngestedDeal.status == RawDealStatus.PENDING)
            .order_by(RawIngestedDeal.id.asc())
            .limit(limit)
        )
        rows = [PendingRow.from_model(row) for row in result.scalars().all()]
        await self.db.commit()

        return await self._promote_rows(rows)

    async def promote_ingested_deals_by_ids(self, ids: Optional[Iterable[Any]]) -> PromotionStats:
        """Promote the given rows; ids that are not pending are skipped"""
        row_ids = normalize_ids(ids)
        if not row_ids:
            return PromotionStats()

        result = await self.db.execute(
            select(RawIngestedDeal)
            .where(
                RawIngestedDeal.id.in_(row_ids),
                RawIngestedDeal.status == RawDealStatus.PENDING,
            )
            .order_by(RawIngestedDeal.id.asc())
        )
        rows = [PendingRow.from_model(row) for row in result.scalars().all()]
        await self.db.commit()

        return await self._promote_rows(rows)

    async def reject_ingested_deals_by_ids(self, ids: Optional[Iterable[Any]]) -> RejectResult:
        """Mark pending rows rejected; rows in any other status are left alone"""
        row_ids = normalize_ids(ids)
        if not row_ids:
            return RejectResult(updated=0)

        result = await self.db.execute(
            update(RawIngestedDeal)
            .where(
                RawIngestedDeal.id.in_(row_ids),
                RawIngestedDeal.status == RawDealStatus.PENDING,
            )
            .values(status=RawDealStatus.REJECTED)
            .execution_options(synchronize_session=False)
        )
        await self.db.commit()

        updated = result.rowcount or 0
        logger.info(f"Rejected {updated} of {len(row_ids)} requested ingested deals")
        return RejectResult(updated=updated)

    async def list_pending_ingested_deals(self, limit: int = 50) -> List[PendingReview]:
        """Oldest pending rows first, in the order promotion consumes them"""
        result = await self.db.execute(
            select(
                RawIngestedDeal,
                IngestionJob.source,
                IngestionJob.scope,
                IngestionJob.started_at,
                IngestionJob.finished_at,
            )
            .outerjoin(IngestionJob, IngestionJob.id == RawIngestedDeal.job_id)
            .where(RawIngestedDeal.status == RawDealStatus.PENDING)
            .order_by(RawIngestedDeal.id.asc())
            .limit(limit)
        )
        return [PendingReview(*row) for row in result.all()]

    async def count_recent_auto_rejected(self, days: int = 7) -> int:
        """Rows the quality gate rejected within the last days"""
        since = datetime.utcnow() - timedelta(days=days)
        result = await self.db.execute(
            select(func.count(RawIngestedDeal.id))
            .where(RawIngestedDeal.status == RawDealStatus.AUTO_REJECTED)
            .where(RawIngestedDeal.created_at > since)
        )
        return result.scalar_one()

    # ------------------------------------------------------------------
    # Per-row procedure
    # ------------------------------------------------------------------

    async def _promote_rows(self, rows: List[PendingRow]) -> PromotionStats:
        job_cache: Dict[int, JobInfo] = {}
        stats = PromotionStats(fetched=len(rows))

        for row in rows:
            await self._promote_row(row, job_cache, stats)

        logger.info(
            f"Promotion batch complete - "
            f"Fetched: {stats.fetched}, Promoted: {stats.promoted}, Errors: {stats.errors}"
        )
        return stats

    async def _promote_row(self, row: PendingRow, job_cache: Dict[int, JobInfo], stats: PromotionStats):
        raw = row.raw_payload
        normalized = row.normalized_payload
        alias = derive_alias(row.merchant_alias, raw, normalized)

        try:
            job_info = await self._get_job_info(job_cache, row.job_id)

            merchant = await self.resolver.find_or_create_merchant(alias, raw, normalized, job_info.source)
            if merchant is None or merchant.id is None:
                raise MerchantResolutionError(
                    "Merchant not found or created",
                    context={"raw_deal_id": row.id, "alias": alias}
                )
            merchant_id = merchant.id

            await self.resolver.ensure_merchant_alias(merchant_id, alias, job_info.source, row.confidence)
            location = await self.resolver.find_or_create_location(merchant_id, raw, normalized)

            fields = self.extractor.extract(
                raw,
                normalized,
                fallback_title=f"{PLACEHOLDER_TITLE_PREFIX}{row.id}",
                job_source=job_info.source,
                job_scope=job_info.scope,
            )
            assessment = self.scorer.assess(fields)

            if assessment.should_auto_reject:
                await self.db.rollback()
                await self._auto_reject(row, assessment)
                stats.errors += 1
                return

            source_details = {
                "jobId": row.job_id,
                "scope": job_info.scope,
                "normalizedPayload": normalized,
                "rawPayload": raw,
            }
            if not assessment.is_valid:
                logger.warning(
                    f"Deal quality check warning for row {row.id}: {', '.join(assessment.reasons)}. "
                    f"Recommendations: {', '.join(assessment.recommendations)}"
                )
                source_details["qualityAssessment"] = assessment.model_dump()

            # operator promotion overrides the confidence-based default
            default_status = default_deal_status(row.confidence)
            deal = self._build_deal(
                merchant_id,
                location.id if location is not None else None,
                fields,
                source_details,
                row.confidence,
            )
            self.db.add(deal)
            await self.db.flush()
            deal_id = deal.id

            self.db.add(DealSource(
                deal_id=deal_id,
                source=fields.source_type,
                raw_url=fields.source_reference,
                fetched_at=datetime.utcnow(),
                confidence=row.confidence,
                source_metadata={
                    "jobId": row.job_id,
                    "scope": job_info.scope,
                    "merchantAlias": row.merchant_alias,
                },
            ))

            result = await self.db.execute(
                update(RawIngestedDeal)
                .where(
                    RawIngestedDeal.id == row.id,
                    RawIngestedDeal.status == RawDealStatus.PENDING,
                )
                .values(
                    status=RawDealStatus.PROMOTED,
                    matched_merchant_id=merchant_id,
                    confidence=row.confidence,
                )
                .execution_options(synchronize_session=False)
            )
            if result.rowcount != 1:
                raise PromotionError(
                    "Raw deal is no longer pending",
                    context={"raw_deal_id": row.id}
                )

            await self.db.commit()
            stats.promoted += 1
            logger.info(
                f"Promoted deal {deal_id} (merchant_id: {merchant_id}, status: active, "
                f"default: {default_status.value}) from ingested row {row.id}"
            )

        except Exception as e:
            await self.db.rollback()
            stats.errors += 1

            error_detail = {
                "phase": ErrorStage.PROMOTION.value,
                "raw_deal_id": row.id,
                "job_id": row.job_id,
                "error_type": type(e).__name__,
                "error_message": str(e)
            }
            logger.error(
                f"Failed to promote ingested row {row.id}: {str(e)}",
                extra={"error_context": error_detail}
            )

            await self._mark_error(row, e)

    def _build_deal(
        self,
        merchant_id: int,
        location_id: Optional[int],
        fields: DealFields,
        source_details: Dict[str, Any],
        confidence: Optional[float],
    ) -> Deal:
        now = datetime.utcnow()
        return Deal(
            merchant_id=merchant_id,
            location_id=location_id,
            title=fields.title[:500],
            description=fields.description,
            category=fields.category[:100] if fields.category else None,
            subcategory=fields.subcategory[:100] if fields.subcategory else None,
            original_price=fields.original_price,
            deal_price=fields.deal_price,
            discount_percentage=fields.discount_percentage,
            start_date=fields.start_date,
            end_date=fields.end_date,
            max_redemptions=fields.max_redemptions,
            current_redemptions=0,
            inventory_remaining=fields.inventory_remaining,
            status=DealStatus.ACTIVE,
            visibility="public",
            source_type=fields.source_type,
            source_reference=fields.source_reference,
            source_details=source_details,
            confidence_score=confidence,
            image_url=fields.image_url,
            terms_conditions=fields.terms,
            last_seen_at=now,
            created_at=now,
            updated_at=now,
        )

    async def _get_job_info(self, job_cache: Dict[int, JobInfo], job_id: Optional[int]) -> JobInfo:
        """Source and scope of the owning job, looked up once per batch"""
        if not job_id:
            return JobInfo()
        if job_id in job_cache:
            return job_cache[job_id]

        result = await self.db.execute(
            select(IngestionJob.source, IngestionJob.scope).where(IngestionJob.id == job_id)
        )
        found = result.first()
        info = JobInfo(source=found.source, scope=found.scope) if found else JobInfo()
        job_cache[job_id] = info
        return info

    async def _auto_reject(self, row: PendingRow, assessment: QualityAssessment):
        """Record the failed reassessment on the raw row"""
        normalized = dict(row.normalized_payload)
        normalized["qualityAssessment"] = assessment.model_dump()
        normalized["rejectionReason"] = (
            f"Quality score {assessment.score * 100:.0f}% below auto-reject threshold"
        )

        await self.db.execute(
            update(RawIngestedDeal)
            .where(
                RawIngestedDeal.id == row.id,
                RawIngestedDeal.status == RawDealStatus.PENDING,
            )
            .values(status=RawDealStatus.AUTO_REJECTED, normalized_payload=normalized)
            .execution_options(synchronize_session=False)
        )
        await self.db.commit()

        logger.info(
            f"Auto-rejected ingested row {row.id} on promotion "
            f"(quality: {assessment.score * 100:.0f}%): {', '.join(assessment.reasons)}"
        )

    async def _mark_error(self, row: PendingRow, error: Exception):
        await self.db.execute(
            update(RawIngestedDeal)
            .where(
                RawIngestedDeal.id == row.id,
                RawIngestedDeal.status == RawDealStatus.PENDING,
            )
            .values(status=RawDealStatus.ERROR)
            .execution_options(synchronize_session=False)
        )
        self.db.add(IngestionError(
            job_id=row.job_id,
            stage=ErrorStage.PROMOTION.value,
            error_message=str(error),
            payload=row.raw_payload,
            created_at=datetime.utcnow(),
        ))
        await self.db.commit()
