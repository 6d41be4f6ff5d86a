"""
Custom exceptions for the formation sync pipeline with structured error context.

Each exception carries context information so that failures can be logged
and stored on the SyncJob record without losing detail.

Exception Hierarchy:
    SyncException (base)
    ├── AuthenticationError
    ├── TransientFetchError
    ├── ParseError
    ├── StoreError
    ├── JobFatalError
    ├── ExportError
    └── RetryableError / NonRetryableError (mixins)
"""

from typing import Optional, Dict, Any
from datetime import datetime


class SyncException(Exception):
    """
    Base exception for all sync-related errors.

    Attributes:
        message: Human-readable error message
        context: Additional context information (formation id, url, etc.)
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
            base_msg += (
                f" | Caused by: {type(self.original_exception).__name__}: "
                f"{self.original_exception}"
            )

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

class RetryableError(SyncException):
    """
    Mixin for errors that should trigger retry logic.

    Use this for transient errors like:
    - Network timeouts
    - Non-200 responses on a candidate URL
    - Pages with no recognizable data shape
    """

    def __init__(
        self,
        message: str,
        context: Optional[Dict[str, Any]] = None,
        original_exception: Optional[Exception] = None,
        max_retries: int = 3,
        retry_delay: float = 1.0
    ):
        super().__init__(message, context, original_exception)
        self.max_retries = max_retries
        self.retry_delay = retry_delay


class NonRetryableError(SyncException):
    """Mixin for errors that should NOT trigger retry logic."""
    pass


# ============================================================================
# Fetch / Parse Errors
# ============================================================================

class AuthenticationError(NonRetryableError):
    """
    Credentials missing or rejected, or post-login verification failed.

    Context should include:
        - stage: Login stage that failed (credentials, login_page, submit, verify)
        - status_code: HTTP status code (if applicable)
    """
    pass


class TransientFetchError(RetryableError):
    """
    Network failure, timeout, or non-200 response on a candidate URL.

    Context should include:
        - url: Request URL
        - status_code: HTTP status code (if applicable)
    """
    pass


class ParseError(RetryableError):
    """
    No recognized data shape found in a fetched page.

    Context should include:
        - url: Page URL
        - content_type: Response content type
    """
    pass


# ============================================================================
# Store Errors
# ============================================================================

class StoreError(SyncException):
    """
    Persistence-layer failure on upsert.

    Context should include:
        - source_id: Natural key of the record being written
        - operation: INSERT or UPDATE
    """
    pass


# ============================================================================
# Job-level Errors
# ============================================================================

class JobFatalError(NonRetryableError):
    """
    Failure that terminates a sync job: authentication, or listing
    discovery failing on every endpoint.

    Context should include:
        - sync_job_id: Job identifier
        - phase: Phase that failed
    """
    pass


class ExportError(SyncException):
    """
    Formation could not be converted to the requested output format.

    Context should include:
        - formation_id: Formation identifier
        - format: Requested export format
    """
    pass
