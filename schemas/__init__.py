"""
Pydantic schemas for data validation and serialization.

Schemas:
    ingestion: Producer batch contract, ingestion/promotion/rejection results
    deal: Canonical deal fields and quality assessments
    api: HTTP request/response models

Usage:
    from schemas.ingestion import DealSubmission, IngestionResult
    from schemas.deal import DealFields, QualityAssessment

Example:
    submission = DealSubmission.from_input({
        "merchantAlias": "Lansing Brewing Company",
        "rawPayload": {"title": "Michigan Mondays"},
    })
    assert submission.merchant_alias == "Lansing Brewing Company"
"""

__all__ = [
    "DealSubmission",
    "IngestionRequest",
    "IngestionStats",
    "IngestionResult",
    "PromotionStats",
    "RejectResult",
    "DealFields",
    "QualityAssessment",
]
