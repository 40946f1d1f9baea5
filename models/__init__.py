"""
SQLAlchemy ORM models for database tables.

This package defines the database schema using SQLAlchemy ORM models:

Models:
    base: Declarative base, status enums and their transition tables
    ingestion_job: One producer batch with aggregate stats
    raw_deal: Producer-submitted candidate deals awaiting promotion
    ingestion_error: Append-only audit log of pipeline problems
    merchant: Canonical merchants, their aliases and locations
    deal: Canonical catalog deals and their provenance records

Database Schema:
    All models inherit from the Base declarative class. JSON columns use
    PostgreSQL JSONB, falling back to JSON on other dialects.

Usage:
    from models import RawIngestedDeal, IngestionJob
    from models.base import RawDealStatus, JobStatus

Example:
    raw = RawIngestedDeal(
        job_id=job.id,
        merchant_alias="Lansing Brewing Company",
        raw_payload={"title": "15% off flights"},
        status=RawDealStatus.PENDING,
    )
    session.add(raw)
    await session.commit()

Relationships:
    - IngestionJob → RawIngestedDeal (one-to-many)
    - IngestionJob → IngestionError (one-to-many)
    - Merchant → MerchantAlias / MerchantLocation (one-to-many)
    - Deal → DealSource (one-to-many provenance)
"""

from models.base import Base, JobStatus, RawDealStatus, DealStatus, ErrorStage
from models.ingestion_job import IngestionJob
from models.raw_deal import RawIngestedDeal
from models.ingestion_error import IngestionError
from models.merchant import Merchant, MerchantAlias, MerchantLocation
from models.deal import Deal, DealSource

__all__ = [
    "Base",
    "JobStatus",
    "RawDealStatus",
    "DealStatus",
    "ErrorStage",
    "IngestionJob",
    "RawIngestedDeal",
    "IngestionError",
    "Merchant",
    "MerchantAlias",
    "MerchantLocation",
    "Deal",
    "DealSource",
]
