"""
Canonical deal fields and quality assessment schemas
"""

from pydantic import BaseModel, Field
from typing import Optional, List
from datetime import datetime


class DealFields(BaseModel):
    """
    Canonical view of a candidate deal, extracted from raw + normalized payloads.

    The quality gate only looks at title, description, discount_percentage,
    original_price, deal_price, category, end_date and terms; the remaining
    fields feed the catalog row written on promotion.
    """

    title: Optional[str] = None
    description: Optional[str] = None
    category: Optional[str] = None
    subcategory: Optional[str] = None

    original_price: Optional[float] = None
    deal_price: Optional[float] = None
    discount_percentage: Optional[float] = None

    start_date: Optional[datetime] = None
    end_date: Optional[datetime] = None

    terms: Optional[str] = None
    image_url: Optional[str] = None

    source_type: Optional[str] = None
    source_reference: Optional[str] = None

    max_redemptions: Optional[int] = None
    inventory_remaining: Optional[int] = None


class QualityAssessment(BaseModel):
    """Outcome of the quality gate for one set of deal fields"""

    score: float = Field(..., ge=0, le=1)
    reasons: List[str] = Field(default_factory=list)
    is_valid: bool
    should_auto_reject: bool
    recommendations: List[str] = Field(default_factory=list)

    def summary(self, max_reasons: int = 3) -> str:
        """Short human-readable line for audit records"""
        issues = ", ".join(self.reasons[:max_reasons]) or "none"
        return f"Quality {self.score * 100:.0f}%. Issues: {issues}"
