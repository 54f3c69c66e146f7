"""
BacklogSync Error Hierarchy

Base error and specific error types for all BacklogSync components.
Errors carry metadata for structured logging.

Driver-level integrity errors (sqlite3.IntegrityError, psycopg.IntegrityError)
are not wrapped: they propagate to the caller unchanged.
"""

from typing import Any, Dict, Optional


class BacklogSyncError(RuntimeError):
    """
    Base error for BacklogSync components. Carries metadata for structured logging.

    Attributes:
        category: Error category for classification (e.g., "storage", "validation")
        retryable: Whether the operation can be retried
        metadata: Additional context for logging and debugging
    """

    category: str = "runtime"
    retryable: bool = True

    def __init__(
        self,
        message: str,
        *,
        metadata: Optional[Dict[str, Any]] = None,
        retryable: Optional[bool] = None,
    ) -> None:
        super().__init__(message)
        self.metadata = metadata or {}
        if retryable is not None:
            self.retryable = retryable


# Validation Errors
class ValidationError(BacklogSyncError, ValueError):
    """Raised when an extraction payload or argument fails validation."""

    category = "validation"
    retryable = False


# Configuration Errors
class ConfigError(BacklogSyncError):
    """Raised when configuration is invalid or missing."""

    category = "config"
    retryable = False


# Storage Errors
class StorageError(BacklogSyncError):
    """Raised when database operations fail."""

    category = "storage"


class EntityNotFoundError(StorageError, KeyError):
    """Raised when a requested entity is not found in storage."""

    category = "storage"
    retryable = False

    def __str__(self) -> str:
        # KeyError would otherwise repr() the message
        return str(self.args[0]) if self.args else ""


# Reconciliation Errors
class ReconciliationError(BacklogSyncError):
    """Raised when a reconciliation pass cannot complete."""

    category = "reconciliation"
    retryable = False
