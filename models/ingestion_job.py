from sqlalchemy import Column, String, Enum, DateTime, Float, Text, Index
from sqlalchemy.orm import relationship
from datetime import datetime
from models.base import Base, IdType, JSONType, JobStatus, enum_values


class IngestionJob(Base):
    """
    One batch submission from a producer.

    Purpose:
    - Audit trail of every ingestion batch
    - Aggregate statistics (total, recorded, errors)
    - Owner of the raw rows and errors recorded for the batch

    Created with status RUNNING at batch start and finalized exactly once.
    """
    __tablename__ = "ingestion_jobs"

    id = Column(IdType, primary_key=True, autoincrement=True)

    # Producer identification
    source = Column(String(100), nullable=False, index=True)
    scope = Column(String(255), nullable=True)

    status = Column(
        Enum(JobStatus, name="ingestion_job_status", values_callable=enum_values),
        default=JobStatus.RUNNING,
        nullable=False,
        index=True
    )

    # Timestamps
    started_at = Column(DateTime, nullable=False, default=datetime.utcnow, index=True)
    finished_at = Column(DateTime, nullable=True)
    duration_seconds = Column(Float, nullable=True)

    # {"total": n, "recorded": n, "errors": n}
    stats = Column(JSONType, nullable=True)
    error_message = Column(Text, nullable=True)

    # Relationships
    raw_deals = relationship("RawIngestedDeal", back_populates="job")
    errors = relationship("IngestionError", back_populates="job")

    __table_args__ = (
        Index("idx_ingestion_job_source_started", "source", "started_at"),
    )

    def __repr__(self):
        return f"<IngestionJob(id={self.id}, source='{self.source}', status='{self.status}')>"
