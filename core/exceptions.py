"""
Custom exceptions for the weather ingestion pipeline with structured error context.

Each exception carries a human-readable message, a context dictionary
for logging, and the original exception (if any) chained as its cause.

Exception Hierarchy:
    ETLException (base)
    ├── ExtractionError
    │   ├── APIExtractionError
    │   │   └── NetworkError (retryable)
    │   ├── BatchUnavailableError (non-retryable, HTTP 404)
    │   └── DataFormatError (non-retryable)
    ├── LoadError
    │   └── DatabaseError
    └── RetryableError / NonRetryableError (mixins)
"""

from typing import Optional, Dict, Any
from datetime import datetime, timezone


class ETLException(Exception):
    """
    Base exception for all ingestion-related errors.

    Attributes:
        message: Human-readable error message
        context: Additional context information (batch_id, url, etc.)
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
        self.timestamp = datetime.now(timezone.utc)

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
        """Convert exception to dictionary for logging."""
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

class RetryableError(ETLException):
    """
    Errors that the upstream client retries transparently:
    connection failures, timeouts and non-404 error statuses.
    """
    pass


class NonRetryableError(ETLException):
    """
    Errors that must surface to the caller on the first occurrence.
    """
    pass


# ============================================================================
# Extraction Errors
# ============================================================================

class ExtractionError(ETLException):
    """Base exception for upstream data extraction failures."""
    pass


class APIExtractionError(ExtractionError):
    """
    Exception raised when a call to the upstream weather API fails.

    Context should include:
        - api_url: The endpoint that failed
        - status_code: HTTP status code (if applicable)
        - retry_count: Number of attempts made
    """
    pass


class NetworkError(RetryableError, APIExtractionError):
    """Transient upstream fault that persisted after every retry attempt."""
    pass


class BatchUnavailableError(NonRetryableError, ExtractionError):
    """
    The upstream API answered 404 for a batch: it vanished upstream.

    This is an expected outcome, not a bug. Callers clean up the
    batch's partial state instead of treating it as a generic failure.
    """

    def __init__(
        self,
        batch_id: str,
        context: Optional[Dict[str, Any]] = None,
        original_exception: Optional[Exception] = None
    ):
        self.batch_id = batch_id
        context = dict(context or {})
        context.setdefault("batch_id", batch_id)
        super().__init__(
            f"Batch {batch_id} is no longer available upstream",
            context,
            original_exception
        )


class DataFormatError(NonRetryableError, ExtractionError):
    """Upstream payload did not match the expected shape."""
    pass


# ============================================================================
# Load Errors
# ============================================================================

class LoadError(ETLException):
    """Base exception for store write failures."""
    pass


class DatabaseError(LoadError):
    """
    Exception raised when a store operation fails.

    Context should include:
        - operation: Type of database operation (INSERT, UPDATE, DELETE, SELECT)
        - table_name: Name of the table
        - batch_id: Batch the operation targeted (if any)
    """
    pass
