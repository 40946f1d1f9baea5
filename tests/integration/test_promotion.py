"""
Integration tests for promoting and rejecting ingested deals
"""

import pytest
from datetime import datetime
from ingestion.recorder import IngestionRecorder
from ingestion.promotion import PromotionEngine
from models.ingestion_job import IngestionJob
from models.raw_deal import RawIngestedDeal
from models.ingestion_error import IngestionError
from models.merchant import Merchant, MerchantLocation
from models.deal import Deal, DealSource
from models.base import JobStatus, RawDealStatus, DealStatus, ErrorStage


async def insert_pending_row(db_session, raw_payload, merchant_alias=None, normalized_payload=None, confidence=None):
    """Insert a pending row directly, skipping the ingestion quality gate"""
    job = IngestionJob(source="manual", scope="fixture", status=JobStatus.SUCCEEDED, started_at=datetime.utcnow())
    db_session.add(job)
    await db_session.flush()

    row = RawIngestedDeal(
        job_id=job.id,
        merchant_alias=merchant_alias,
        raw_payload=raw_payload,
        normalized_payload=normalized_payload,
        status=RawDealStatus.PENDING,
        confidence=confidence,
    )
    db_session.add(row)
    await db_session.commit()
    return row.id


@pytest.mark.asyncio
async def test_promotes_pending_row_into_catalog(db_session, fetch_all, clearance_deal):
    await IngestionRecorder(db_session).process_ingestion_job(
        source="web_crawl:lansing-brewery", scope="mid-michigan-pilot", deals=[clearance_deal]
    )

    stats = await PromotionEngine(db_session).promote_pending_ingested_deals(limit=20)

    assert stats.fetched == 1
    assert stats.promoted == 1
    assert stats.errors == 0

    deals = await fetch_all(db_session, Deal)
    assert len(deals) == 1
    deal = deals[0]
    assert deal.status == DealStatus.ACTIVE
    assert deal.title == "50% Off Everything Sale"
    assert deal.category == "shopping"
    assert deal.discount_percentage == 50
    assert deal.deal_price == 50
    assert deal.current_redemptions == 0
    assert deal.visibility == "public"
    assert deal.source_type == "web_crawl:lansing-brewery"
    assert deal.source_reference == "https://lansingbrewingcompany.com/specials"
    assert deal.source_details["scope"] == "mid-michigan-pilot"
    assert "qualityAssessment" not in deal.source_details
    assert deal.confidence_score == 0.8
    assert deal.end_date > datetime.utcnow()

    sources = await fetch_all(db_session, DealSource)
    assert sources[0].deal_id == deal.id
    assert sources[0].source_metadata["merchantAlias"] == "Lansing Brewing Company"

    merchants = await fetch_all(db_session, Merchant)
    assert [m.business_name for m in merchants] == ["Lansing Brewing Company"]
    locations = await fetch_all(db_session, MerchantLocation)
    assert deal.location_id == locations[0].id
    assert locations[0].is_primary is True

    rows = await fetch_all(db_session, RawIngestedDeal)
    assert rows[0].status == RawDealStatus.PROMOTED
    assert rows[0].matched_merchant_id == merchants[0].id


@pytest.mark.asyncio
async def test_promotion_never_passes_below_floor(db_session, fetch_all):
    row_id = await insert_pending_row(db_session, {"title": "Menu", "category": "Dining"}, merchant_alias="Soup Spoon")

    stats = await PromotionEngine(db_session).promote_ingested_deals_by_ids([row_id])

    assert stats.fetched == 1
    assert stats.promoted == 0
    assert stats.errors == 1
    assert await fetch_all(db_session, Deal) == []
    # the merchant created inside the rolled-back transaction is gone too
    assert await fetch_all(db_session, Merchant) == []

    rows = await fetch_all(db_session, RawIngestedDeal)
    assert rows[0].status == RawDealStatus.AUTO_REJECTED
    assert rows[0].normalized_payload["qualityAssessment"]["should_auto_reject"] is True
    assert rows[0].normalized_payload["rejectionReason"] == "Quality score 20% below auto-reject threshold"


@pytest.mark.asyncio
async def test_low_but_acceptable_quality_is_flagged(db_session, fetch_all, future_iso):
    row_id = await insert_pending_row(
        db_session,
        {"title": "Weekly Menu", "category": "Dining", "price": 12, "endDate": future_iso(10)},
        merchant_alias="Soup Spoon",
        confidence=0.3,
    )

    stats = await PromotionEngine(db_session).promote_ingested_deals_by_ids([row_id])

    assert stats.promoted == 1
    deals = await fetch_all(db_session, Deal)
    # operator promotion overrides the confidence-based default
    assert deals[0].status == DealStatus.ACTIVE
    assert deals[0].source_details["qualityAssessment"]["is_valid"] is False


@pytest.mark.asyncio
async def test_missing_title_uses_placeholder(db_session, fetch_all, future_iso):
    row_id = await insert_pending_row(
        db_session,
        {
            "description": "Two-for-one tacos every Tuesday at the patio bar.",
            "discountPercentage": 50,
            "category": "Dining",
            "endDate": future_iso(10),
        },
        merchant_alias="Taco Patio",
    )

    await PromotionEngine(db_session).promote_ingested_deals_by_ids([row_id])

    deals = await fetch_all(db_session, Deal)
    assert deals[0].title == f"Deal {row_id}"


@pytest.mark.asyncio
async def test_same_alias_across_batches_shares_merchant(db_session, fetch_all, clearance_deal, event_deal):
    recorder = IngestionRecorder(db_session)
    await recorder.process_ingestion_job(source="agent", deals=[clearance_deal])

    event_deal["merchantAlias"] = "LANSING BREWING COMPANY"
    await recorder.process_ingestion_job(source="web_crawl", deals=[event_deal])

    stats = await PromotionEngine(db_session).promote_pending_ingested_deals(limit=20)

    assert stats.promoted == 2
    merchants = await fetch_all(db_session, Merchant)
    assert len(merchants) == 1
    deals = await fetch_all(db_session, Deal)
    assert {deal.merchant_id for deal in deals} == {merchants[0].id}


@pytest.mark.asyncio
async def test_promote_pending_respects_limit_and_order(db_session, fetch_all, clearance_deal, event_deal):
    await IngestionRecorder(db_session).process_ingestion_job(
        source="agent", deals=[clearance_deal, event_deal]
    )

    stats = await PromotionEngine(db_session).promote_pending_ingested_deals(limit=1)

    assert stats.fetched == 1
    rows = await fetch_all(db_session, RawIngestedDeal)
    assert [row.status for row in rows] == [RawDealStatus.PROMOTED, RawDealStatus.PENDING]


@pytest.mark.asyncio
async def test_promotion_failure_marks_row_error(db_session, fetch_all, clearance_deal, event_deal):
    await IngestionRecorder(db_session).process_ingestion_job(
        source="agent", deals=[clearance_deal, event_deal]
    )
    engine = PromotionEngine(db_session)
    original = engine.resolver.find_or_create_merchant

    async def fail_first(*args, **kwargs):
        if not fail_first.failed:
            fail_first.failed = True
            raise RuntimeError("merchant lookup failed")
        return await original(*args, **kwargs)

    fail_first.failed = False
    engine.resolver.find_or_create_merchant = fail_first

    stats = await engine.promote_pending_ingested_deals(limit=20)

    assert stats.fetched == 2
    assert stats.promoted == 1
    assert stats.errors == 1

    rows = await fetch_all(db_session, RawIngestedDeal)
    assert [row.status for row in rows] == [RawDealStatus.ERROR, RawDealStatus.PROMOTED]

    errors = await fetch_all(db_session, IngestionError, IngestionError.stage == ErrorStage.PROMOTION.value)
    assert len(errors) == 1
    assert errors[0].error_message == "merchant lookup failed"
    assert errors[0].job_id == rows[0].job_id


@pytest.mark.asyncio
async def test_reject_only_touches_pending_rows(db_session, fetch_all, clearance_deal, event_deal):
    await IngestionRecorder(db_session).process_ingestion_job(
        source="agent", deals=[clearance_deal, event_deal]
    )
    rows = await fetch_all(db_session, RawIngestedDeal)
    promoted_id, pending_id = rows[0].id, rows[1].id

    engine = PromotionEngine(db_session)
    await engine.promote_ingested_deals_by_ids([promoted_id])

    result = await engine.reject_ingested_deals_by_ids([promoted_id, pending_id, 999])

    assert result.updated == 1
    rows = await fetch_all(db_session, RawIngestedDeal)
    assert rows[0].status == RawDealStatus.PROMOTED
    assert rows[1].status == RawDealStatus.REJECTED


@pytest.mark.asyncio
async def test_non_pending_ids_are_skipped(db_session, fetch_all, clearance_deal):
    await IngestionRecorder(db_session).process_ingestion_job(source="agent", deals=[clearance_deal])
    rows = await fetch_all(db_session, RawIngestedDeal)

    engine = PromotionEngine(db_session)
    await engine.reject_ingested_deals_by_ids([rows[0].id])
    stats = await engine.promote_ingested_deals_by_ids([rows[0].id])

    assert stats.fetched == 0
    assert stats.promoted == 0
    assert await fetch_all(db_session, Deal) == []


@pytest.mark.asyncio
async def test_empty_selections(db_session):
    engine = PromotionEngine(db_session)

    assert (await engine.promote_ingested_deals_by_ids([])).fetched == 0
    assert (await engine.reject_ingested_deals_by_ids(None)).updated == 0
    assert (await engine.promote_pending_ingested_deals(limit=0)).fetched == 0


@pytest.mark.asyncio
async def test_list_pending_excludes_decided_rows(db_session, clearance_deal, menu_deal, event_deal):
    await IngestionRecorder(db_session).process_ingestion_job(
        source="agent", deals=[clearance_deal, menu_deal, event_deal]
    )

    pending = await PromotionEngine(db_session).list_pending_ingested_deals(limit=50)

    assert len(pending) == 2
    assert all(review.deal.status == RawDealStatus.PENDING for review in pending)


@pytest.mark.asyncio
async def test_list_pending_is_oldest_first_with_job_context(db_session, clearance_deal, event_deal):
    result = await IngestionRecorder(db_session).process_ingestion_job(
        source="web_crawl:lansing-brewery", scope="mid-michigan-pilot", deals=[clearance_deal, event_deal]
    )

    pending = await PromotionEngine(db_session).list_pending_ingested_deals(limit=50)

    ids = [review.deal.id for review in pending]
    assert ids == sorted(ids)
    assert all(review.deal.job_id == result.job_id for review in pending)
    assert pending[0].job_source == "web_crawl:lansing-brewery"
    assert pending[0].job_scope == "mid-michigan-pilot"
    assert pending[0].job_started_at is not None
    assert pending[0].job_finished_at is not None


@pytest.mark.asyncio
async def test_counts_recent_auto_rejections(db_session, clearance_deal, menu_deal):
    await IngestionRecorder(db_session).process_ingestion_job(source="agent", deals=[clearance_deal, menu_deal])

    engine = PromotionEngine(db_session)

    assert await engine.count_recent_auto_rejected(days=7) == 1
    assert await engine.count_recent_auto_rejected(days=0) == 0
