"""
Deal ingestion pipeline components.

Modules:
    quality: Deal quality scorer (pure, deterministic)
    recorder: Ingestion recorder that quality-gates and stores producer batches
    resolver: Find-or-create merchants, aliases and locations
    promotion: Promotion engine turning pending raw rows into catalog deals
    scheduler: APScheduler cron triggers that publish recurring queue jobs

Subpackages:
    transformers: Field extraction with explicit precedence lists and date clamping

Architecture:
    Producers submit batches to the ingestion queue. The recorder stores each
    deal as a raw row, pending or auto-rejected. Operators (or the nightly
    job) promote pending rows; promotion re-runs the quality gate, resolves
    the merchant and writes the catalog deal with its provenance record.

    Per-row failures become row status plus an ingestion_errors record and
    never abort the batch.

Usage:
    from ingestion.recorder import IngestionRecorder
    from ingestion.promotion import PromotionEngine

Example:
    async with async_session_maker() as session:
        result = await IngestionRecorder(session).process_ingestion_job(
            source="web_crawl:lansing-brewery",
            deals=[{"rawPayload": {"title": "15% off flights"}}],
        )
        stats = await PromotionEngine(session).promote_pending_ingested_deals(limit=20)
"""

__all__ = [
    "DealQualityScorer",
    "IngestionRecorder",
    "MerchantResolver",
    "PromotionEngine",
    "DealScheduler",
]
