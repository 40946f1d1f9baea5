from sqlalchemy import Column, String, Enum, Text, Float, Integer, DateTime, ForeignKey, Index
from sqlalchemy.orm import relationship
from datetime import datetime
from models.base import Base, IdType, JSONType, DealStatus, enum_values


class Deal(Base):
    """
    Canonical catalog entry.

    Created only by the promotion engine, one row per promoted raw deal.

    Field Mapping Strategy (normalized payload first, then raw payload):
    - title <- normalized.title | raw.title
    - category <- normalized.category | raw.category (lower-cased)
    - deal_price <- normalized.price.amount | raw.price | raw.dealPrice
    - original_price <- normalized.price.original | raw.originalPrice
    - discount_percentage <- normalized.discount.value | raw.discountPercentage | raw.discount
    - start_date / end_date <- normalized.schedule.rule.startsAt/endsAt | raw.startDate/endDate
    - source_details <- snapshot of raw + normalized payloads and job scope
    """
    __tablename__ = "deals"

    id = Column(IdType, primary_key=True, autoincrement=True)
    merchant_id = Column(IdType, ForeignKey("merchants.id"), nullable=False, index=True)
    location_id = Column(IdType, ForeignKey("merchant_locations.id"), nullable=True)

    # Core fields
    title = Column(String(500), nullable=False)
    description = Column(Text, nullable=True)
    category = Column(String(100), nullable=True, index=True)
    subcategory = Column(String(100), nullable=True)

    # Pricing
    original_price = Column(Float, nullable=True)
    deal_price = Column(Float, nullable=True)
    discount_percentage = Column(Float, nullable=True)

    # Validity
    start_date = Column(DateTime, nullable=True)
    end_date = Column(DateTime, nullable=True, index=True)

    # Inventory
    max_redemptions = Column(Integer, nullable=True)
    current_redemptions = Column(Integer, nullable=False, default=0)
    inventory_remaining = Column(Integer, nullable=True)

    # Lifecycle
    status = Column(
        Enum(DealStatus, name="deal_status", values_callable=enum_values),
        default=DealStatus.PENDING_REVIEW,
        nullable=False,
        index=True
    )
    visibility = Column(String(20), nullable=False, default="public")

    # Provenance
    source_type = Column(String(100), nullable=True)
    source_reference = Column(String(2048), nullable=True)
    source_details = Column(JSONType, nullable=True)
    confidence_score = Column(Float, nullable=True)

    image_url = Column(String(2048), nullable=True)
    terms_conditions = Column(Text, nullable=True)

    # Timestamps
    last_seen_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, nullable=False, default=datetime.utcnow, index=True)
    updated_at = Column(DateTime, nullable=False, default=datetime.utcnow, onupdate=datetime.utcnow)

    # Relationships
    merchant = relationship("Merchant")
    location = relationship("MerchantLocation")
    sources = relationship("DealSource", back_populates="deal")

    __table_args__ = (
        Index("idx_deal_status_end", "status", "end_date"),
    )

    def __repr__(self):
        return f"<Deal(id={self.id}, merchant_id={self.merchant_id}, status='{self.status}')>"


class DealSource(Base):
    """Append-only provenance note linking a deal back to where it came from"""
    __tablename__ = "deal_sources"

    id = Column(IdType, primary_key=True, autoincrement=True)
    deal_id = Column(IdType, ForeignKey("deals.id"), nullable=False, index=True)

    source = Column(String(100), nullable=True)
    raw_url = Column(String(2048), nullable=True)
    fetched_at = Column(DateTime, nullable=False, default=datetime.utcnow)
    confidence = Column(Float, nullable=True)
    source_metadata = Column("metadata", JSONType, nullable=True)

    deal = relationship("Deal", back_populates="sources")
