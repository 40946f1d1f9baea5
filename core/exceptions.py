"""
Custom exceptions for the deal ingestion pipeline with structured error context.

Per-row problems (a deal that fails the quality gate, a row that cannot be
inserted or promoted) are converted into row status and audit records and are
never raised to callers. The exceptions below cover batch framing, queue and
state-machine failures that callers are expected to see.

Exception Hierarchy:
    PipelineException (base)
    ├── IngestionJobError
    │   ├── MissingSourceError
    │   └── InvalidPayloadError
    ├── InvalidStatusTransition
    ├── PromotionError
    │   └── MerchantResolutionError
    ├── DatabaseError (retryable)
    ├── QueueError
    │   ├── UnknownQueueError
    │   └── QueueUnavailableError
    └── RetryableError / NonRetryableError (mixins)
"""

from typing import Optional, Dict, Any
from datetime import datetime


class PipelineException(Exception):
    """
    Base exception for all pipeline errors.

    Attributes:
        message: Human-readable error message
        context: Additional context information (job id, row id, queue, etc.)
        original_exception: The original exception that was caught (if any)
    """

    def __init__(
        self,
        message: str,
        context: Optional[Dict[str, Any]] = None,
        original_exception: Optional[Exception] = None
    ):
        self.message = message
        self.context = context or {}
        self.original_exception = original_exception
        self.timestamp = datetime.utcnow()

        self.context["error_timestamp"] = self.timestamp.isoformat()

        super().__init__(message)
        if original_exception:
            self.__cause__ = original_exception

    def __str__(self) -> str:
        """Format error message with context."""
        base_msg = f"{self.__class__.__name__}: {self.message}"

        if self.context:
            context_str = ", ".join(f"{k}={v}" for k, v in self.context.items())
            base_msg += f" | Context: {context_str}"

        if self.original_exception:
            base_msg += f" | Caused by: {type(self.original_exception).__name__}: {str(self.original_exception)}"

        return base_msg

    def to_dict(self) -> Dict[str, Any]:
        """Convert exception to dictionary for logging/storage."""
        return {
            "error_type": self.__class__.__name__,
            "message": self.message,
            "context": self.context,
            "timestamp": self.timestamp.isoformat(),
            "original_error": str(self.original_exception) if self.original_exception else None
        }


# ============================================================================
# Retry Strategy Mixins
# ============================================================================

class RetryableError(PipelineException):
    """
    Mixin for errors that the queue broker should retry.

    Use this for transient errors like:
    - Broker unreachable
    - Temporary database connection issues
    """
    pass


class NonRetryableError(PipelineException):
    """
    Mixin for errors that should NOT be retried.

    Resubmitting the same payload would fail the same way:
    - Missing batch source
    - Malformed batch payload
    - Illegal status transition
    """
    pass


# ============================================================================
# Ingestion Errors
# ============================================================================

class IngestionJobError(PipelineException):
    """Base exception for failures that frame a whole ingestion batch."""
    pass


class MissingSourceError(NonRetryableError, IngestionJobError):
    """Raised before any job row is created when the batch has no source."""
    pass


class InvalidPayloadError(NonRetryableError, IngestionJobError):
    """
    Raised when a batch payload cannot be interpreted at all.

    Context should include:
        - payload_type: Type name of the offending payload
    """
    pass


# ============================================================================
# State Machine Errors
# ============================================================================

class InvalidStatusTransition(NonRetryableError):
    """
    Raised when a status change is not allowed by the transition table.

    Context should include:
        - entity: Table or model name
        - entity_id: Primary key of the row
        - from_status / to_status
    """
    pass


# ============================================================================
# Promotion Errors
# ============================================================================

class PromotionError(PipelineException):
    """Base exception for failures while promoting a single raw row."""
    pass


class MerchantResolutionError(PromotionError):
    """
    Raised when no merchant could be resolved or created for a row.

    Context should include:
        - raw_deal_id: ID of the raw row
        - alias: Alias that was attempted
    """
    pass


class DatabaseError(RetryableError):
    """
    Exception raised when database operations fail.

    Context should include:
        - operation: Type of database operation (INSERT, UPDATE, SELECT)
        - table_name: Name of the table
    """
    pass


# ============================================================================
# Queue Errors
# ============================================================================

class QueueError(PipelineException):
    """Base exception for job queue failures."""
    pass


class UnknownQueueError(NonRetryableError, QueueError):
    """Raised when enqueuing to or dispatching from an unregistered queue."""
    pass


class QueueUnavailableError(RetryableError, QueueError):
    """Raised when the broker cannot accept a message."""
    pass
