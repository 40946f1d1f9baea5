from sqlalchemy import Column, String, Enum, Float, DateTime, ForeignKey, Index
from sqlalchemy.orm import relationship
from datetime import datetime
from models.base import Base, IdType, JSONType, RawDealStatus, enum_values


class RawIngestedDeal(Base):
    """
    Stores one producer-submitted candidate deal prior to promotion.

    Purpose:
    - Review queue for operators (status PENDING)
    - Immutable record of what the producer sent
    - Disposition of every submitted deal

    Design Decisions:
    - raw_payload keeps producer-native fields; normalized_payload holds the
      producer's canonicalized view when one was supplied
    - status moves out of PENDING at most once (see RAW_DEAL_TRANSITIONS)
    - content_hash is informational; duplicates are kept, not dropped
    """
    __tablename__ = "ingested_deal_raw"

    id = Column(IdType, primary_key=True, autoincrement=True)
    job_id = Column(IdType, ForeignKey("ingestion_jobs.id"), nullable=False, index=True)

    merchant_alias = Column(String(255), nullable=True)
    raw_payload = Column(JSONType, nullable=False)
    normalized_payload = Column(JSONType, nullable=True)

    status = Column(
        Enum(RawDealStatus, name="raw_deal_status", values_callable=enum_values),
        default=RawDealStatus.PENDING,
        nullable=False,
        index=True
    )
    matched_merchant_id = Column(IdType, ForeignKey("merchants.id"), nullable=True, index=True)
    confidence = Column(Float, nullable=True)

    content_hash = Column(String(64), nullable=True)
    created_at = Column(DateTime, nullable=False, default=datetime.utcnow, index=True)

    # Relationships
    job = relationship("IngestionJob", back_populates="raw_deals")

    __table_args__ = (
        Index("idx_raw_deal_status_id", "status", "id"),
        Index("idx_raw_deal_content_hash", "content_hash"),
    )

    def __repr__(self):
        return f"<RawIngestedDeal(id={self.id}, job_id={self.job_id}, status='{self.status}')>"
