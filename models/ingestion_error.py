from sqlalchemy import Column, String, Text, DateTime, ForeignKey
from sqlalchemy.orm import relationship
from datetime import datetime
from models.base import Base, IdType, JSONType


class IngestionError(Base):
    """
    Append-only audit log of ingestion and promotion problems.

    stage is one of ErrorStage: raw_insert, quality_check, promotion, job.
    payload keeps a JSON snapshot of whatever was being processed.
    """
    __tablename__ = "ingestion_errors"

    id = Column(IdType, primary_key=True, autoincrement=True)
    job_id = Column(IdType, ForeignKey("ingestion_jobs.id"), nullable=True, index=True)

    stage = Column(String(50), nullable=False, index=True)
    error_message = Column(Text, nullable=False)
    payload = Column(JSONType, nullable=True)

    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)

    job = relationship("IngestionJob", back_populates="errors")

    def __repr__(self):
        return f"<IngestionError(id={self.id}, job_id={self.job_id}, stage='{self.stage}')>"
