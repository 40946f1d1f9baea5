"""
Integration tests for the ingestion recorder
"""

import pytest
from datetime import datetime
from unittest.mock import AsyncMock, patch
from sqlalchemy.exc import OperationalError
from ingestion.recorder import IngestionRecorder, content_hash
from models.ingestion_job import IngestionJob
from models.raw_deal import RawIngestedDeal
from models.ingestion_error import IngestionError
from models.base import JobStatus, RawDealStatus, ErrorStage
from core.exceptions import MissingSourceError, InvalidPayloadError, DatabaseError, RetryableError


@pytest.mark.asyncio
async def test_good_deal_is_recorded_pending(db_session, fetch_all, clearance_deal):
    recorder = IngestionRecorder(db_session)

    result = await recorder.process_ingestion_job(
        source="web_crawl:lansing-brewery",
        scope="mid-michigan-pilot",
        deals=[clearance_deal],
    )

    assert result.stats.total == 1
    assert result.stats.recorded == 1
    assert result.stats.errors == 0

    rows = await fetch_all(db_session, RawIngestedDeal)
    assert len(rows) == 1
    assert rows[0].status == RawDealStatus.PENDING
    assert rows[0].job_id == result.job_id
    assert rows[0].merchant_alias == "Lansing Brewing Company"
    assert rows[0].confidence == 0.8
    assert len(rows[0].content_hash) == 64

    jobs = await fetch_all(db_session, IngestionJob)
    assert jobs[0].status == JobStatus.SUCCEEDED
    assert jobs[0].stats == {"total": 1, "recorded": 1, "errors": 0}
    assert jobs[0].finished_at is not None
    assert jobs[0].duration_seconds >= 0


@pytest.mark.asyncio
async def test_low_quality_deal_is_auto_rejected(db_session, fetch_all, menu_deal):
    recorder = IngestionRecorder(db_session)

    result = await recorder.process_ingestion_job(source="agent", deals=[menu_deal])

    assert result.stats.recorded == 0
    assert result.stats.errors == 1

    rows = await fetch_all(db_session, RawIngestedDeal)
    assert rows[0].status == RawDealStatus.AUTO_REJECTED

    errors = await fetch_all(db_session, IngestionError)
    assert len(errors) == 1
    assert errors[0].stage == ErrorStage.QUALITY_CHECK.value
    assert errors[0].job_id == result.job_id
    assert errors[0].error_message.startswith("Auto-rejected: Quality 20% < 25%.")
    assert errors[0].payload["qualityAssessment"]["score"] == 0.2

    jobs = await fetch_all(db_session, IngestionJob)
    assert jobs[0].status == JobStatus.HAS_ERRORS


@pytest.mark.asyncio
async def test_every_deal_is_accounted_for(db_session, fetch_all, clearance_deal, menu_deal, event_deal):
    recorder = IngestionRecorder(db_session)
    deals = [clearance_deal, menu_deal, "not-a-deal", event_deal, 42]

    result = await recorder.process_ingestion_job(source="agent", scope="batch-7", deals=deals)

    assert result.stats.total == 5
    assert result.stats.recorded == 2
    assert result.stats.errors == 3
    assert result.stats.recorded + result.stats.errors == result.stats.total

    rows = await fetch_all(db_session, RawIngestedDeal)
    assert [row.status for row in rows] == [
        RawDealStatus.PENDING,
        RawDealStatus.AUTO_REJECTED,
        RawDealStatus.PENDING,
    ]

    errors = await fetch_all(db_session, IngestionError)
    assert sorted(error.stage for error in errors) == ["quality_check", "raw_insert", "raw_insert"]


@pytest.mark.asyncio
async def test_empty_batch_succeeds_immediately(db_session, fetch_all):
    result = await IngestionRecorder(db_session).process_ingestion_job(source="agent", deals=[])

    assert result.stats.total == 0
    jobs = await fetch_all(db_session, IngestionJob)
    assert jobs[0].status == JobStatus.SUCCEEDED
    assert jobs[0].stats == {"total": 0, "recorded": 0, "errors": 0}


@pytest.mark.asyncio
async def test_missing_source_creates_no_job(db_session, fetch_all, clearance_deal):
    with pytest.raises(MissingSourceError):
        await IngestionRecorder(db_session).process_ingestion_job(source="", deals=[clearance_deal])

    assert await fetch_all(db_session, IngestionJob) == []


@pytest.mark.asyncio
async def test_payload_must_be_an_object(db_session):
    recorder = IngestionRecorder(db_session)

    with pytest.raises(InvalidPayloadError):
        await recorder.process_payload(["not", "a", "batch"])

    with pytest.raises(InvalidPayloadError):
        await recorder.process_payload({"source": "agent", "deals": {"title": "x"}})


@pytest.mark.asyncio
async def test_process_payload_accepts_snake_case(db_session, fetch_all):
    result = await IngestionRecorder(db_session).process_payload({
        "source": "agent",
        "deals": [{
            "merchant_alias": "Robin Theatre",
            "raw_payload": {
                "title": "Free popcorn with any ticket",
                "description": "Free small popcorn with every film ticket this month.",
                "category": "Entertainment",
                "price": 8,
            },
        }],
    })

    assert result.stats.recorded == 1
    rows = await fetch_all(db_session, RawIngestedDeal)
    assert rows[0].merchant_alias == "Robin Theatre"


@pytest.mark.asyncio
async def test_stale_dates_are_rewritten_in_stored_payload(db_session, fetch_all, clearance_deal):
    clearance_deal["rawPayload"]["startDate"] = "2023-01-01"
    clearance_deal["rawPayload"]["endDate"] = "2023-02-01"

    await IngestionRecorder(db_session).process_ingestion_job(source="agent", deals=[clearance_deal])

    rows = await fetch_all(db_session, RawIngestedDeal)
    start = datetime.fromisoformat(rows[0].raw_payload["startDate"])
    end = datetime.fromisoformat(rows[0].raw_payload["endDate"])
    assert start.year == datetime.utcnow().year
    assert (end - start).days == 60


@pytest.mark.asyncio
async def test_resubmission_records_duplicates(db_session, fetch_all, clearance_deal):
    recorder = IngestionRecorder(db_session)

    first = await recorder.process_ingestion_job(source="agent", deals=[clearance_deal])
    second = await recorder.process_ingestion_job(source="agent", deals=[clearance_deal])

    assert first.job_id != second.job_id
    rows = await fetch_all(db_session, RawIngestedDeal)
    assert len(rows) == 2
    assert rows[0].content_hash == rows[1].content_hash


def test_content_hash_ignores_key_order():
    assert content_hash({"a": 1, "b": 2}, None) == content_hash({"b": 2, "a": 1}, None)
    assert content_hash({"a": 1}, None) != content_hash({"a": 1}, {"title": "x"})


@pytest.mark.asyncio
async def test_job_level_failure_marks_job_failed(db_session, fetch_all):
    recorder = IngestionRecorder(db_session)
    # the per-row error handler itself fails, which escapes row handling
    recorder._record_error = AsyncMock(side_effect=[RuntimeError("connection lost"), None])

    with pytest.raises(RuntimeError, match="connection lost"):
        await recorder.process_ingestion_job(source="agent", deals=["not-a-deal"])

    jobs = await fetch_all(db_session, IngestionJob)
    assert jobs[0].status == JobStatus.FAILED
    assert jobs[0].error_message == "connection lost"
    assert jobs[0].stats["errors"] >= 1


@pytest.mark.asyncio
async def test_job_creation_failure_is_retryable(db_session, fetch_all, clearance_deal):
    recorder = IngestionRecorder(db_session)
    broken_commit = AsyncMock(side_effect=OperationalError("INSERT", {}, Exception("database unavailable")))

    with patch.object(db_session, "commit", broken_commit):
        with pytest.raises(DatabaseError) as exc_info:
            await recorder.process_ingestion_job(source="agent", deals=[clearance_deal])

    assert isinstance(exc_info.value, RetryableError)
    assert await fetch_all(db_session, IngestionJob) == []


@pytest.mark.asyncio
async def test_infinite_inventory_does_not_block_recording(db_session, fetch_all, clearance_deal):
    clearance_deal["rawPayload"]["maxRedemptions"] = float("inf")

    result = await IngestionRecorder(db_session).process_ingestion_job(source="agent", deals=[clearance_deal])

    assert result.stats.recorded == 1
    assert result.stats.errors == 0


@pytest.mark.asyncio
async def test_out_of_range_confidence_is_clamped(db_session, fetch_all, clearance_deal, event_deal):
    clearance_deal["confidence"] = 1.7
    event_deal["confidence"] = "not-a-number"

    result = await IngestionRecorder(db_session).process_ingestion_job(
        source="agent", deals=[clearance_deal, event_deal]
    )

    assert result.stats.recorded == 2
    rows = await fetch_all(db_session, RawIngestedDeal)
    assert rows[0].confidence == 1.0
    assert rows[1].confidence is None
