"""
Pydantic schemas for the ingestion and promotion contracts
"""

from pydantic import BaseModel, Field, validator
from typing import Optional, List, Dict, Any
import math


class DealSubmission(BaseModel):
    """
    One producer-submitted deal.

    Accepts both camelCase (merchantAlias, rawPayload, ...) and snake_case
    keys, matching what the different producers emit.
    """

    merchant_alias: Optional[str] = Field(None, alias="merchantAlias", max_length=255)
    raw_payload: Dict[str, Any] = Field(default_factory=dict, alias="rawPayload")
    normalized_payload: Optional[Dict[str, Any]] = Field(None, alias="normalizedPayload")
    confidence: Optional[float] = None

    @validator("merchant_alias", pre=True)
    def clean_alias(cls, v):
        """Blank aliases are treated as absent"""
        if v is None:
            return None
        v = str(v).strip()
        return v or None

    @validator("confidence", pre=True)
    def clamp_confidence(cls, v):
        """Producer confidence is kept within [0, 1]; unparseable values are absent"""
        if v is None or isinstance(v, bool):
            return None
        try:
            v = float(v)
        except (ValueError, TypeError):
            return None
        if math.isnan(v):
            return None
        return min(max(v, 0.0), 1.0)

    @classmethod
    def from_input(cls, deal: Any) -> "DealSubmission":
        """
        Parse a producer deal. A deal that carries no raw payload block is
        itself the raw payload.
        """
        if isinstance(deal, cls):
            return deal
        if not isinstance(deal, dict):
            raise ValueError(f"Deal must be an object, got {type(deal).__name__}")

        if "rawPayload" in deal or "raw_payload" in deal:
            return cls.parse_obj(deal)

        return cls.parse_obj({
            "merchantAlias": deal.get("merchantAlias", deal.get("merchant_alias")),
            "rawPayload": deal,
            "normalizedPayload": deal.get("normalizedPayload", deal.get("normalized_payload")),
            "confidence": deal.get("confidence"),
        })

    class Config:
        populate_by_name = True


class IngestionRequest(BaseModel):
    """Batch submitted by a producer"""

    source: str = Field(..., min_length=1, max_length=100)
    scope: Optional[str] = Field(None, max_length=255)
    deals: List[Dict[str, Any]] = Field(default_factory=list)

    class Config:
        json_schema_extra = {
            "example": {
                "source": "web_crawl:lansing-brewery",
                "scope": "mid-michigan-pilot",
                "deals": [
                    {
                        "merchantAlias": "Lansing Brewing Company",
                        "rawPayload": {
                            "title": "Michigan Mondays - 15% Off Local Pours",
                            "description": "15% off all Michigan-made drafts and flights every Monday.",
                            "discountPercentage": 15,
                            "category": "Dining",
                            "city": "Lansing",
                            "state": "MI",
                        },
                        "confidence": 0.8,
                    }
                ],
            }
        }


class IngestionStats(BaseModel):
    total: int = 0
    recorded: int = 0
    errors: int = 0


class IngestionResult(BaseModel):
    job_id: int
    stats: IngestionStats


class PromotionStats(BaseModel):
    fetched: int = 0
    promoted: int = 0
    errors: int = 0


class RejectResult(BaseModel):
    updated: int = 0
