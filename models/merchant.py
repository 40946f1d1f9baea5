from sqlalchemy import Column, String, Integer, Float, Text, Boolean, DateTime, ForeignKey, Index
from sqlalchemy.orm import relationship
from datetime import datetime
from models.base import Base, IdType


class Merchant(Base):
    """
    Canonical merchant.

    The pipeline creates a merchant only when neither an alias nor a business
    name matches; afterwards it only references the row and never overwrites it.
    """
    __tablename__ = "merchants"

    id = Column(IdType, primary_key=True, autoincrement=True)
    business_name = Column(String(255), nullable=False, index=True)

    # Contact
    contact_name = Column(String(200), nullable=True)
    phone = Column(String(50), nullable=True)
    website = Column(String(2048), nullable=True)
    description = Column(Text, nullable=True)

    # Address
    address = Column(String(255), nullable=True)
    city = Column(String(100), nullable=True)
    state = Column(String(50), nullable=True)
    zip_code = Column(String(20), nullable=True)
    latitude = Column(Float, nullable=True)
    longitude = Column(Float, nullable=True)

    # 'imported' for pipeline-created merchants
    status = Column(String(50), nullable=False, default="imported")
    level = Column(Integer, nullable=False, default=1)

    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)

    aliases = relationship("MerchantAlias", back_populates="merchant")
    locations = relationship("MerchantLocation", back_populates="merchant")

    def __repr__(self):
        return f"<Merchant(id={self.id}, business_name='{self.business_name}')>"


class MerchantAlias(Base):
    """
    Free-text name known to resolve to a merchant.

    Uniqueness of (merchant_id, lower(alias)) is enforced by a guarded insert,
    not by a constraint; concurrent resolvers of the same new alias may each
    create a merchant.
    """
    __tablename__ = "merchant_aliases"

    id = Column(IdType, primary_key=True, autoincrement=True)
    merchant_id = Column(IdType, ForeignKey("merchants.id"), nullable=False, index=True)
    alias = Column(String(255), nullable=False)
    source = Column(String(100), nullable=True)
    confidence = Column(Float, nullable=True)
    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)

    merchant = relationship("Merchant", back_populates="aliases")

    __table_args__ = (
        Index("idx_merchant_alias_alias", "alias"),
    )


class MerchantLocation(Base):
    """Physical location of a merchant; the first one recorded is primary"""
    __tablename__ = "merchant_locations"

    id = Column(IdType, primary_key=True, autoincrement=True)
    merchant_id = Column(IdType, ForeignKey("merchants.id"), nullable=False, index=True)
    name = Column(String(255), nullable=True)

    address_line1 = Column(String(255), nullable=True)
    address_line2 = Column(String(255), nullable=True)
    city = Column(String(100), nullable=True)
    state = Column(String(50), nullable=True)
    postal_code = Column(String(20), nullable=True)
    latitude = Column(Float, nullable=True)
    longitude = Column(Float, nullable=True)

    is_primary = Column(Boolean, nullable=False, default=False)
    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)

    merchant = relationship("Merchant", back_populates="locations")
