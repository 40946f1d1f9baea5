"""
Resolve or create canonical merchants and locations for ingested deals
"""

from typing import Dict, Any, Optional
from datetime import datetime
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, func, or_, and_
from models.merchant import Merchant, MerchantAlias, MerchantLocation
from ingestion.transformers.fields import PayloadPath, first_present, RAW, NORMALIZED
import logging

logger = logging.getLogger(__name__)

IMPORTED_MERCHANT_STATUS = "imported"

MERCHANT_NAME_PRECEDENCE = [
    PayloadPath(NORMALIZED, "merchantName"),
    PayloadPath(RAW, "merchantName"),
    PayloadPath(RAW, "businessName"),
    PayloadPath(RAW, "merchant"),
    PayloadPath(RAW, "title"),
]

ADDRESS_PRECEDENCE = {
    "address_line1": [
        PayloadPath(NORMALIZED, "address.line1"),
        PayloadPath(RAW, "addressLine1"),
        PayloadPath(RAW, "address_line1"),
        PayloadPath(RAW, "address"),
    ],
    "address_line2": [
        PayloadPath(NORMALIZED, "address.line2"),
        PayloadPath(RAW, "addressLine2"),
        PayloadPath(RAW, "address_line2"),
    ],
    "city": [PayloadPath(NORMALIZED, "location.city"), PayloadPath(RAW, "city")],
    "state": [PayloadPath(NORMALIZED, "location.state"), PayloadPath(RAW, "state")],
    "postal_code": [
        PayloadPath(NORMALIZED, "location.postalCode"),
        PayloadPath(RAW, "postalCode"),
        PayloadPath(RAW, "zip"),
    ],
    "latitude": [PayloadPath(NORMALIZED, "location.latitude"), PayloadPath(RAW, "latitude")],
    "longitude": [PayloadPath(NORMALIZED, "location.longitude"), PayloadPath(RAW, "longitude")],
}

LOCATION_NAME_PRECEDENCE = [PayloadPath(RAW, "locationName"), PayloadPath(NORMALIZED, "location.name")]

# Column widths of merchant_locations
ADDRESS_LIMITS = {
    "address_line1": 255,
    "address_line2": 255,
    "city": 100,
    "state": 50,
    "postal_code": 20,
}

CONTACT_PRECEDENCE = {
    "contact_name": [PayloadPath(RAW, "contactName"), PayloadPath(RAW, "contact_name")],
    "phone": [PayloadPath(RAW, "phone"), PayloadPath(RAW, "phoneNumber")],
    "website": [
        PayloadPath(RAW, "website"),
        PayloadPath(NORMALIZED, "website"),
        PayloadPath(RAW, "sourceUrl"),
        PayloadPath(NORMALIZED, "sourceUrl"),
    ],
    "description": [PayloadPath(RAW, "description"), PayloadPath(NORMALIZED, "description")],
}


def _to_float(value: Any) -> Optional[float]:
    if value is None or value == "" or isinstance(value, bool):
        return None
    try:
        return float(value)
    except (ValueError, TypeError):
        return None


def _clean(value: Any, limit: Optional[int] = None) -> Optional[str]:
    if value is None:
        return None
    text = str(value).strip()
    if not text:
        return None
    return text[:limit] if limit else text


def extract_address(
    raw: Optional[Dict[str, Any]],
    normalized: Optional[Dict[str, Any]],
) -> Dict[str, Any]:
    """Address block of a deal payload, truncated to column widths"""
    address = {
        field: _clean(first_present(paths, raw, normalized), ADDRESS_LIMITS[field])
        for field, paths in ADDRESS_PRECEDENCE.items()
        if field in ADDRESS_LIMITS
    }
    address["latitude"] = _to_float(first_present(ADDRESS_PRECEDENCE["latitude"], raw, normalized))
    address["longitude"] = _to_float(first_present(ADDRESS_PRECEDENCE["longitude"], raw, normalized))
    return address


class MerchantResolver:
    """
    Find-or-create merchants, aliases and locations.

    Ensures:
    - An alias (any letter case) resolves to the merchant it was first linked to
    - Existing merchants are referenced, never overwritten
    - A merchant's first location is its primary one

    Alias linking is a check-then-insert; two sessions resolving the same new
    alias concurrently can each create a merchant.
    """

    def __init__(self, db_session: AsyncSession):
        self.db = db_session

    async def find_merchant_by_alias(self, alias: str) -> Optional[Merchant]:
        """Case-insensitive alias lookup, falling back to business name"""
        if not alias:
            return None

        result = await self.db.execute(
            select(Merchant)
            .join(MerchantAlias, MerchantAlias.merchant_id == Merchant.id)
            .where(func.lower(MerchantAlias.alias) == alias.lower())
            .order_by(MerchantAlias.id)
            .limit(1)
        )
        merchant = result.scalars().first()
        if merchant is not None:
            return merchant

        result = await self.db.execute(
            select(Merchant)
            .where(func.lower(Merchant.business_name) == alias.lower())
            .order_by(Merchant.id)
            .limit(1)
        )
        return result.scalars().first()

    async def ensure_merchant_alias(
        self,
        merchant_id: int,
        alias: Optional[str],
        source: Optional[str] = None,
        confidence: Optional[float] = None,
    ) -> Optional[MerchantAlias]:
        """Link alias to merchant unless that link already exists"""
        alias = _clean(alias, 255)
        if not alias:
            return None

        result = await self.db.execute(
            select(MerchantAlias).where(
                MerchantAlias.merchant_id == merchant_id,
                func.lower(MerchantAlias.alias) == alias.lower(),
            ).limit(1)
        )
        existing = result.scalars().first()
        if existing is not None:
            return existing

        link = MerchantAlias(
            merchant_id=merchant_id,
            alias=alias,
            source=str(source)[:100] if source else None,
            confidence=_to_float(confidence),
            created_at=datetime.utcnow(),
        )
        self.db.add(link)
        await self.db.flush()
        return link

    async def find_or_create_merchant(
        self,
        alias: Optional[str],
        raw: Optional[Dict[str, Any]] = None,
        normalized: Optional[Dict[str, Any]] = None,
        source: Optional[str] = None,
    ) -> Merchant:
        """
        Resolve a merchant for an alias.

        1. Alias match (case-insensitive), then business-name match
        2. Otherwise create an 'imported' merchant named after the alias or
           the best merchant-like payload field
        """
        raw = raw or {}
        normalized = normalized or {}
        alias = _clean(alias)
        confidence = raw.get("confidence")

        if alias:
            existing = await self.find_merchant_by_alias(alias)
            if existing is not None:
                await self.ensure_merchant_alias(existing.id, alias, source, confidence)
                return existing

        name = alias or _clean(first_present(MERCHANT_NAME_PRECEDENCE, raw, normalized))
        if not name:
            name = f"Unclaimed Merchant {int(datetime.utcnow().timestamp() * 1000)}"

        merchant = await self._insert_merchant(name, raw, normalized)
        logger.info(f"Created merchant {merchant.id} ('{merchant.business_name}') from source={source}")

        if alias:
            await self.ensure_merchant_alias(merchant.id, alias, source, confidence)

        return merchant

    async def _insert_merchant(
        self,
        business_name: str,
        raw: Dict[str, Any],
        normalized: Dict[str, Any],
    ) -> Merchant:
        address = extract_address(raw, normalized)

        def contact(field: str) -> Optional[str]:
            return _clean(first_present(CONTACT_PRECEDENCE[field], raw, normalized))

        merchant = Merchant(
            business_name=business_name[:255],
            contact_name=contact("contact_name"),
            phone=contact("phone"),
            website=contact("website"),
            description=contact("description"),
            address=address["address_line1"],
            city=address["city"],
            state=address["state"],
            zip_code=address["postal_code"],
            latitude=address["latitude"],
            longitude=address["longitude"],
            status=IMPORTED_MERCHANT_STATUS,
            level=1,
            created_at=datetime.utcnow(),
        )
        self.db.add(merchant)
        await self.db.flush()
        return merchant

    async def find_or_create_location(
        self,
        merchant_id: int,
        raw: Optional[Dict[str, Any]] = None,
        normalized: Optional[Dict[str, Any]] = None,
    ) -> Optional[MerchantLocation]:
        """
        Match a location by (address line + postal code) or (city + state).

        Returns None when the payload has neither an address line nor a city.
        """
        raw = raw or {}
        normalized = normalized or {}
        address = extract_address(raw, normalized)

        if not address["address_line1"] and not address["city"]:
            return None

        result = await self.db.execute(
            select(MerchantLocation).where(
                MerchantLocation.merchant_id == merchant_id,
                or_(
                    and_(
                        MerchantLocation.address_line1.is_not_distinct_from(address["address_line1"]),
                        MerchantLocation.postal_code.is_not_distinct_from(address["postal_code"]),
                    ),
                    and_(
                        MerchantLocation.city.is_not_distinct_from(address["city"]),
                        MerchantLocation.state.is_not_distinct_from(address["state"]),
                    ),
                ),
            ).order_by(MerchantLocation.id).limit(1)
        )
        location = result.scalars().first()
        if location is not None:
            return location

        count_result = await self.db.execute(
            select(func.count()).select_from(MerchantLocation).where(
                MerchantLocation.merchant_id == merchant_id
            )
        )
        has_locations = count_result.scalar() > 0

        location = MerchantLocation(
            merchant_id=merchant_id,
            name=_clean(first_present(LOCATION_NAME_PRECEDENCE, raw, normalized), 255),
            is_primary=not has_locations,
            created_at=datetime.utcnow(),
            **address,
        )
        self.db.add(location)
        await self.db.flush()
        return location
