"""
Deal quality gate.

Separates real deals from listings and placeholders. A deal has to offer the
consumer something: a discount, a price cut, a special offer, or a clearly
priced event. The score is additive and capped at 1.0:

    title (meaningful)              +0.15
    description  > 20 chars         +0.25   (11-20 chars: +0.15)
    discount >= minimum             +0.30   (below minimum: +0.15)
    savings >= minimum              +0.30   (smaller savings: +0.15,
                                             price only: +0.10)
    special-offer wording           +0.20
    category                        +0.05
    expiration date                 +0.10
    terms                           +0.05
"""

from typing import Optional, List
from schemas.deal import DealFields, QualityAssessment
from core.config import settings

PLACEHOLDER_TITLE_PREFIX = "Deal "
EVENT_CATEGORIES = frozenset({"events", "entertainment", "activities"})


class DealQualityScorer:
    """
    Pure scorer: identical fields always produce an identical assessment.

    Thresholds default to the configured values and can be overridden per
    instance.
    """

    def __init__(
        self,
        min_quality_score: Optional[float] = None,
        auto_reject_score: Optional[float] = None,
        min_discount_percentage: Optional[float] = None,
        min_price_difference: Optional[float] = None,
    ):
        self.min_quality_score = _default(min_quality_score, settings.MIN_DEAL_QUALITY_SCORE)
        self.auto_reject_score = _default(auto_reject_score, settings.AUTO_REJECT_QUALITY_SCORE)
        self.min_discount_percentage = _default(min_discount_percentage, settings.MIN_DISCOUNT_PERCENTAGE)
        self.min_price_difference = _default(min_price_difference, settings.MIN_PRICE_DIFFERENCE)

    def score(self, fields: DealFields):
        """Return (score, reasons) for a field set"""
        score = 0.0
        reasons: List[str] = []

        if self.has_meaningful_title(fields):
            score += 0.15
        else:
            reasons.append("Missing or generic title")

        description_length = len(fields.description or "")
        if description_length > 20:
            score += 0.25
        elif description_length > 10:
            score += 0.15
            reasons.append("Description is too short")
        else:
            reasons.append("Missing description")

        discount = fields.discount_percentage
        if discount is not None and discount >= self.min_discount_percentage:
            score += 0.30
        elif discount is not None and discount > 0:
            score += 0.15
            reasons.append(f"Discount is below {self.min_discount_percentage:g}%")

        if fields.original_price is not None and fields.deal_price is not None:
            savings = fields.original_price - fields.deal_price
            if savings >= self.min_price_difference:
                score += 0.30
            elif savings > 0:
                score += 0.15
                reasons.append(f"Savings is less than ${self.min_price_difference:g}")
        elif fields.deal_price is not None:
            score += 0.10
            reasons.append("Has price but no comparison price")

        if self.has_special_offer(fields):
            score += 0.20

        if fields.category:
            score += 0.05
        else:
            reasons.append("Missing category")

        if fields.end_date is not None:
            score += 0.10
        else:
            reasons.append("No expiration date")

        if fields.terms:
            score += 0.05

        # rounding keeps threshold comparisons free of float drift
        return round(min(score, 1.0), 4), reasons

    def assess(self, fields: DealFields) -> QualityAssessment:
        """Score a field set and decide validity and auto-rejection"""
        score, reasons = self.score(fields)

        has_title = self.has_meaningful_title(fields)
        has_description = len(fields.description or "") > 10
        has_price = fields.deal_price is not None
        is_event = (fields.category or "").lower() in EVENT_CATEGORIES

        # for events a described, priced listing is enough
        structurally_valid = has_title and (
            has_description
            or self.has_qualifying_discount(fields)
            or (is_event and has_description and has_price)
        )
        is_valid = score >= self.min_quality_score and structurally_valid

        return QualityAssessment(
            score=score,
            reasons=reasons,
            is_valid=is_valid,
            should_auto_reject=score < self.auto_reject_score,
            recommendations=[] if is_valid else self._recommendations(fields),
        )

    @staticmethod
    def has_meaningful_title(fields: DealFields) -> bool:
        title = fields.title or ""
        return len(title) > 3 and not title.startswith(PLACEHOLDER_TITLE_PREFIX)

    @staticmethod
    def has_special_offer(fields: DealFields) -> bool:
        for text in ((fields.title or "").lower(), (fields.description or "").lower()):
            if "buy" in text and "get" in text:
                return True
            if "bogo" in text or "free" in text or "special" in text:
                return True
        return False

    def has_qualifying_discount(self, fields: DealFields) -> bool:
        if fields.discount_percentage is not None and fields.discount_percentage >= self.min_discount_percentage:
            return True
        if fields.original_price is not None and fields.deal_price is not None:
            return fields.original_price - fields.deal_price >= self.min_price_difference
        return False

    def _recommendations(self, fields: DealFields) -> List[str]:
        recommendations = []
        if len(fields.description or "") < 20:
            recommendations.append("Add a detailed description explaining the offer")
        if not fields.discount_percentage and (fields.original_price is None or fields.deal_price is None):
            recommendations.append("Include discount percentage or price comparison")
        if fields.discount_percentage is not None and fields.discount_percentage < self.min_discount_percentage:
            recommendations.append(
                f"Discount should be at least {self.min_discount_percentage:g}% to be considered a deal"
            )
        return recommendations


def _default(value, fallback):
    return fallback if value is None else value
