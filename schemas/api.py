"""
Pydantic schemas for API request/response models
"""

from pydantic import BaseModel, Field, validator
from typing import Optional, List, Dict, Any
from datetime import datetime
from models.base import JobStatus, RawDealStatus


# ============================================================================
# Health Check Schemas
# ============================================================================

class IngestionJobInfo(BaseModel):
    """Recent ingestion job for health check"""
    id: int
    source: str
    scope: Optional[str] = None
    status: JobStatus
    started_at: datetime
    finished_at: Optional[datetime] = None
    stats: Optional[Dict[str, Any]] = None
    error_message: Optional[str] = None

    class Config:
        from_attributes = True
        use_enum_values = True


class HealthCheckResponse(BaseModel):
    """Health check response model"""
    database_connected: bool
    recent_jobs: List[IngestionJobInfo] = Field(default_factory=list)
    failed_jobs: int = 0
    pending_deals: int = 0
    status: str = Field("healthy", description="Overall system status: healthy, degraded, unhealthy")
    timestamp: datetime = Field(default_factory=datetime.utcnow)

    @validator("status", pre=True, always=True)
    def determine_status(cls, v, values):
        """Determine overall health status"""
        if not values.get("database_connected", False):
            return "unhealthy"

        recent = values.get("recent_jobs") or []
        if recent and values.get("failed_jobs", 0) >= len(recent):
            return "degraded"

        return "healthy"

    class Config:
        json_schema_extra = {
            "example": {
                "status": "healthy",
                "timestamp": "2025-06-02T10:30:00Z",
                "database_connected": True,
                "failed_jobs": 0,
                "pending_deals": 12,
                "recent_jobs": [
                    {
                        "id": 42,
                        "source": "web_crawl:lansing-brewery",
                        "scope": "mid-michigan-pilot",
                        "status": "succeeded",
                        "started_at": "2025-06-02T10:00:00Z",
                        "finished_at": "2025-06-02T10:00:03Z",
                        "stats": {"total": 5, "recorded": 5, "errors": 0}
                    }
                ]
            }
        }


# ============================================================================
# Ingestion Review Schemas
# ============================================================================

class RawDealResponse(BaseModel):
    """Pending raw deal as shown to operators"""
    id: int
    job_id: int
    merchant_alias: Optional[str] = None
    raw_payload: Dict[str, Any]
    normalized_payload: Optional[Dict[str, Any]] = None
    status: RawDealStatus
    confidence: Optional[float] = None
    created_at: datetime
    job_source: Optional[str] = None
    job_scope: Optional[str] = None
    job_started_at: Optional[datetime] = None
    job_finished_at: Optional[datetime] = None

    @classmethod
    def from_review(cls, review) -> "RawDealResponse":
        """Build from a pending row joined with its job"""
        return cls.model_validate(review.deal).model_copy(update={
            "job_source": review.job_source,
            "job_scope": review.job_scope,
            "job_started_at": review.job_started_at,
            "job_finished_at": review.job_finished_at,
        })

    class Config:
        from_attributes = True
        use_enum_values = True


class PendingDealsResponse(BaseModel):
    items: List[RawDealResponse]
    count: int
    auto_rejected_last_7_days: int = 0


class IdsRequest(BaseModel):
    """Raw deal ids selected by an operator"""
    ids: List[int] = Field(..., min_length=1, max_length=500)


class EnqueuedJobResponse(BaseModel):
    """Handle of a job published onto a queue"""
    job_id: str
    queue: str
    job_name: str


# ============================================================================
# Error Response Schema
# ============================================================================

class ErrorResponse(BaseModel):
    """Standard error response"""
    error: str
    detail: Optional[str] = None
    timestamp: datetime = Field(default_factory=datetime.utcnow)

    class Config:
        json_schema_extra = {
            "example": {
                "error": "Unauthorized",
                "detail": "Invalid admin token",
                "timestamp": "2025-06-02T10:30:00Z"
            }
        }
