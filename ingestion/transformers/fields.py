"""
Extract canonical deal fields from producer payloads.

Producers disagree on field names: scrapers send flat camelCase keys
(``price``, ``dealPrice``, ``startDate``), discovery agents send a nested
normalized block (``price.amount``, ``schedule.rule.startsAt``). Every logical
field therefore has an explicit precedence list of payload paths; the first
non-empty value wins.
"""

from typing import Dict, Any, Optional, List, Callable, NamedTuple
from datetime import datetime, timedelta, timezone
from schemas.deal import DealFields
from core.config import settings
import logging

logger = logging.getLogger(__name__)

RAW = "raw"
NORMALIZED = "normalized"

DEFAULT_SOURCE_TYPE = "web_crawl"


def _is_percentage_discount(normalized: Dict[str, Any]) -> bool:
    discount = normalized.get("discount")
    if not isinstance(discount, dict):
        return False
    return discount.get("type") in (None, "percentage")


class PayloadPath(NamedTuple):
    """A dotted key inside the raw or normalized payload"""
    payload: str
    key: str
    when: Optional[Callable[[Dict[str, Any]], bool]] = None


FIELD_PRECEDENCE: Dict[str, List[PayloadPath]] = {
    "title": [PayloadPath(NORMALIZED, "title"), PayloadPath(RAW, "title")],
    "description": [PayloadPath(NORMALIZED, "description"), PayloadPath(RAW, "description")],
    "category": [PayloadPath(NORMALIZED, "category"), PayloadPath(RAW, "category")],
    "subcategory": [PayloadPath(NORMALIZED, "subcategory"), PayloadPath(RAW, "subcategory")],
    "original_price": [PayloadPath(NORMALIZED, "price.original"), PayloadPath(RAW, "originalPrice")],
    "deal_price": [
        PayloadPath(NORMALIZED, "price.amount"),
        PayloadPath(RAW, "price"),
        PayloadPath(RAW, "dealPrice"),
    ],
    # a normalized discount only counts when it is a percentage
    "discount_percentage": [
        PayloadPath(NORMALIZED, "discount.value", when=_is_percentage_discount),
        PayloadPath(RAW, "discountPercentage"),
        PayloadPath(RAW, "discount"),
    ],
    "start_date": [
        PayloadPath(NORMALIZED, "schedule.rule.startsAt"),
        PayloadPath(RAW, "startDate"),
        PayloadPath(RAW, "startsAt"),
    ],
    "end_date": [
        PayloadPath(NORMALIZED, "schedule.rule.endsAt"),
        PayloadPath(RAW, "endDate"),
        PayloadPath(RAW, "endsAt"),
    ],
    "terms": [PayloadPath(RAW, "terms"), PayloadPath(NORMALIZED, "terms")],
    "image_url": [PayloadPath(RAW, "imageUrl"), PayloadPath(NORMALIZED, "imageUrl")],
    "source_reference": [PayloadPath(RAW, "sourceUrl"), PayloadPath(NORMALIZED, "sourceUrl")],
    "max_redemptions": [
        PayloadPath(NORMALIZED, "inventory.maxRedemptions"),
        PayloadPath(NORMALIZED, "inventory.max"),
        PayloadPath(RAW, "maxRedemptions"),
    ],
    "inventory_remaining": [
        PayloadPath(NORMALIZED, "inventory.remaining"),
        PayloadPath(RAW, "inventoryRemaining"),
    ],
}

# Used when the raw row itself carries no merchant alias
ALIAS_PRECEDENCE: List[PayloadPath] = [
    PayloadPath(RAW, "merchantAlias"),
    PayloadPath(RAW, "businessName"),
    PayloadPath(RAW, "merchantName"),
    PayloadPath(NORMALIZED, "merchantName"),
    PayloadPath(NORMALIZED, "location.name"),
]


def lookup(payload: Optional[Dict[str, Any]], key: str) -> Any:
    """Resolve a dotted key inside a nested dict, None when any hop is missing"""
    current: Any = payload
    for part in key.split("."):
        if not isinstance(current, dict):
            return None
        current = current.get(part)
    return current


def _is_empty(value: Any) -> bool:
    return value is None or (isinstance(value, str) and not value.strip())


def first_present(
    paths: List[PayloadPath],
    raw: Optional[Dict[str, Any]],
    normalized: Optional[Dict[str, Any]],
) -> Any:
    """Return the first non-empty value along a precedence list"""
    payloads = {RAW: raw or {}, NORMALIZED: normalized or {}}
    for path in paths:
        payload = payloads[path.payload]
        if path.when is not None and not path.when(payload):
            continue
        value = lookup(payload, path.key)
        if not _is_empty(value):
            return value
    return None


def derive_alias(
    row_alias: Optional[str],
    raw: Optional[Dict[str, Any]],
    normalized: Optional[Dict[str, Any]],
) -> Optional[str]:
    """Merchant alias for a raw row: the row's own alias, then payload hints"""
    if not _is_empty(row_alias):
        return row_alias.strip()
    value = first_present(ALIAS_PRECEDENCE, raw, normalized)
    return str(value).strip() if value is not None else None


class DateWindow(NamedTuple):
    start: Optional[datetime]
    end: Optional[datetime]


class DealFieldExtractor:
    """
    Map raw + normalized payloads onto DealFields.

    Handles:
    - Field precedence across producer shapes
    - Type conversion
    - Date clamping (stale or malformed start/end dates)
    """

    def __init__(
        self,
        min_accepted_year: Optional[int] = None,
        validity_days: Optional[int] = None,
    ):
        self.min_accepted_year = (
            min_accepted_year if min_accepted_year is not None else settings.MIN_ACCEPTED_YEAR
        )
        self.validity_days = (
            validity_days if validity_days is not None else settings.DEFAULT_DEAL_VALIDITY_DAYS
        )

    def extract(
        self,
        raw: Optional[Dict[str, Any]],
        normalized: Optional[Dict[str, Any]],
        now: Optional[datetime] = None,
        fallback_title: Optional[str] = None,
        job_source: Optional[str] = None,
        job_scope: Optional[str] = None,
    ) -> DealFields:
        """
        Build the canonical field set.

        Args:
            raw: Producer-native payload
            normalized: Producer-canonicalized payload (may be None)
            now: Reference time for date clamping (defaults to current UTC)
            fallback_title: Title used when no payload carries one
            job_source / job_scope: Owning ingestion job metadata
        """
        raw = raw or {}
        normalized = normalized or {}

        def pick(field: str) -> Any:
            return first_present(FIELD_PRECEDENCE[field], raw, normalized)

        title = pick("title")
        category = pick("category")

        window = self.clamp_dates(pick("start_date"), pick("end_date"), now=now)

        return DealFields(
            title=str(title) if title is not None else fallback_title,
            description=self._parse_str(pick("description")),
            category=str(category).lower() if category is not None else None,
            subcategory=self._parse_str(pick("subcategory")),
            original_price=self._parse_float(pick("original_price")),
            deal_price=self._parse_float(pick("deal_price")),
            discount_percentage=self._parse_float(pick("discount_percentage")),
            start_date=window.start,
            end_date=window.end,
            terms=self._parse_str(pick("terms")),
            image_url=self._parse_str(pick("image_url")),
            source_type=job_source or self._parse_str(raw.get("sourceType")) or DEFAULT_SOURCE_TYPE,
            source_reference=self._parse_str(pick("source_reference")) or job_scope,
            max_redemptions=self._parse_int(pick("max_redemptions")),
            inventory_remaining=self._parse_int(pick("inventory_remaining")),
        )

    def clamp_dates(
        self,
        start_value: Any,
        end_value: Any,
        now: Optional[datetime] = None,
    ) -> DateWindow:
        """
        Rewrite stale or malformed dates.

        A present start date that is in the past, unparseable, or earlier than
        the minimum accepted year becomes ``now``. A present end date that is
        unparseable, not after the (possibly rewritten) start, or earlier than
        the minimum year becomes start + the default validity window. Absent
        dates stay absent.
        """
        now = self._to_naive_utc(now) if now is not None else datetime.utcnow()
        validity = timedelta(days=self.validity_days)

        start = None
        if not _is_empty(start_value):
            parsed = self._parse_datetime(start_value)
            if parsed is None or parsed < now or parsed.year < self.min_accepted_year:
                logger.warning(f"Fixing invalid start date: {start_value} -> {now.isoformat()}")
                start = now
            else:
                start = parsed

        end = None
        if not _is_empty(end_value):
            reference = start or now
            parsed = self._parse_datetime(end_value)
            if parsed is None or parsed <= reference or parsed.year < self.min_accepted_year:
                end = reference + validity
                logger.warning(f"Fixing invalid end date: {end_value} -> {end.isoformat()}")
            else:
                end = parsed

        return DateWindow(start=start, end=end)

    @staticmethod
    def apply_dates(raw: Dict[str, Any], fields: DealFields) -> Dict[str, Any]:
        """Copy of the raw payload with clamped dates written back as ISO strings"""
        updated = dict(raw)
        if fields.start_date is not None:
            updated["startDate"] = fields.start_date.isoformat()
        if fields.end_date is not None:
            updated["endDate"] = fields.end_date.isoformat()
        return updated

    @staticmethod
    def _parse_str(value: Any) -> Optional[str]:
        if _is_empty(value):
            return None
        return str(value)

    @staticmethod
    def _parse_float(value: Any) -> Optional[float]:
        """Safely parse float value"""
        if value is None or value == "" or isinstance(value, bool):
            return None
        try:
            return float(value)
        except (ValueError, TypeError):
            return None

    @staticmethod
    def _parse_int(value: Any) -> Optional[int]:
        """Safely parse int value"""
        if value is None or value == "" or isinstance(value, bool):
            return None
        try:
            return int(float(value))  # Handle "10.0" strings
        except (ValueError, TypeError, OverflowError):
            return None

    @staticmethod
    def _to_naive_utc(value: datetime) -> datetime:
        if value.tzinfo is not None:
            return value.astimezone(timezone.utc).replace(tzinfo=None)
        return value

    @classmethod
    def _parse_datetime(cls, value: Any) -> Optional[datetime]:
        """Safely parse datetime value into naive UTC"""
        if value is None or value == "":
            return None
        if isinstance(value, datetime):
            return cls._to_naive_utc(value)
        try:
            return cls._to_naive_utc(datetime.fromisoformat(str(value).strip().replace("Z", "+00:00")))
        except ValueError:
            return None
