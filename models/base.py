from typing import Dict, FrozenSet
from sqlalchemy import BigInteger, Integer, JSON
from sqlalchemy.orm import declarative_base
from sqlalchemy.dialects.postgresql import JSONB
import enum

Base = declarative_base()

# JSONB on PostgreSQL, plain JSON elsewhere (SQLite in tests)
JSONType = JSON().with_variant(JSONB(), "postgresql")

# SQLite only autoincrements INTEGER PRIMARY KEY
IdType = BigInteger().with_variant(Integer(), "sqlite")


def enum_values(enum_cls):
    """Persist enum values ('pending') rather than member names ('PENDING')"""
    return [member.value for member in enum_cls]


# ============================================================================
# ENUMS
# ============================================================================

class JobStatus(str, enum.Enum):
    """Ingestion job status"""
    RUNNING = "running"
    SUCCEEDED = "succeeded"
    HAS_ERRORS = "has_errors"
    FAILED = "failed"

    def can_transition_to(self, target: "JobStatus") -> bool:
        return target in JOB_TRANSITIONS.get(self, frozenset())

    @property
    def is_terminal(self) -> bool:
        return not JOB_TRANSITIONS.get(self)


class RawDealStatus(str, enum.Enum):
    """Lifecycle of a producer-submitted raw deal row"""
    PENDING = "pending"
    AUTO_REJECTED = "auto_rejected"
    PROMOTED = "promoted"
    REJECTED = "rejected"
    ERROR = "error"

    def can_transition_to(self, target: "RawDealStatus") -> bool:
        return target in RAW_DEAL_TRANSITIONS.get(self, frozenset())

    @property
    def is_terminal(self) -> bool:
        return not RAW_DEAL_TRANSITIONS.get(self)


class DealStatus(str, enum.Enum):
    """Canonical catalog deal status"""
    PENDING_REVIEW = "pending_review"
    ACTIVE = "active"
    INACTIVE = "inactive"
    EXPIRED = "expired"

    def can_transition_to(self, target: "DealStatus") -> bool:
        return target in DEAL_TRANSITIONS.get(self, frozenset())


class ErrorStage(str, enum.Enum):
    """Pipeline stage an ingestion error was recorded at"""
    RAW_INSERT = "raw_insert"
    QUALITY_CHECK = "quality_check"
    PROMOTION = "promotion"
    JOB = "job"


# ============================================================================
# TRANSITION TABLES
# ============================================================================

JOB_TRANSITIONS: Dict[JobStatus, FrozenSet[JobStatus]] = {
    JobStatus.RUNNING: frozenset({JobStatus.SUCCEEDED, JobStatus.HAS_ERRORS, JobStatus.FAILED}),
}

# Terminal rows only come back through a resubmission that creates a new row
RAW_DEAL_TRANSITIONS: Dict[RawDealStatus, FrozenSet[RawDealStatus]] = {
    RawDealStatus.PENDING: frozenset({
        RawDealStatus.PROMOTED,
        RawDealStatus.REJECTED,
        RawDealStatus.AUTO_REJECTED,
        RawDealStatus.ERROR,
    }),
}

DEAL_TRANSITIONS: Dict[DealStatus, FrozenSet[DealStatus]] = {
    DealStatus.PENDING_REVIEW: frozenset({DealStatus.ACTIVE, DealStatus.INACTIVE}),
    DealStatus.ACTIVE: frozenset({DealStatus.INACTIVE, DealStatus.EXPIRED}),
    DealStatus.INACTIVE: frozenset({DealStatus.ACTIVE}),
}
