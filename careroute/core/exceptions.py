"""
Exception hierarchy for the CareRoute core.

Validation problems are detected locally and never reach storage; storage
failures are reported separately from "record not found" so callers can
tell a missing provider from a broken store.
"""
from typing import Optional, Dict, Any


class CareRouteError(Exception):
    """Base exception for all CareRoute errors."""

    def __init__(
        self,
        message: str,
        code: str = "UNKNOWN_ERROR",
        details: Optional[Dict[str, Any]] = None
    ):
        super().__init__(message)
        self.message = message
        self.code = code
        self.details = details or {}

    def to_dict(self) -> Dict[str, Any]:
        """Convert exception to dictionary for API responses."""
        return {
            "error": self.code,
            "message": self.message,
            "details": self.details
        }


class ValidationError(CareRouteError):
    """Bad input shape or range."""

    def __init__(
        self,
        message: str,
        field: str = "unknown",
        details: Optional[Dict[str, Any]] = None
    ):
        super().__init__(
            message=message,
            code="VALIDATION_ERROR",
            details={"field": field, **(details or {})}
        )
        self.field = field


class NotFoundError(CareRouteError):
    """A record the operation depends on does not exist."""

    def __init__(
        self,
        message: str,
        resource: str = "record",
        key: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None
    ):
        super().__init__(
            message=message,
            code="NOT_FOUND",
            details={"resource": resource, "key": key, **(details or {})}
        )
        self.resource = resource
        self.key = key


class ProviderNotFoundError(NotFoundError):
    """Capacity update addressed a provider that is not registered."""

    def __init__(self, provider_id: str):
        super().__init__(
            message="Provider not found",
            resource="provider",
            key=provider_id
        )
        self.provider_id = provider_id


class StorageError(CareRouteError):
    """Generic I/O failure reported by the storage collaborator."""

    def __init__(
        self,
        message: str,
        operation: str = "unknown",
        details: Optional[Dict[str, Any]] = None
    ):
        super().__init__(
            message=message,
            code="STORAGE_ERROR",
            details={"operation": operation, **(details or {})}
        )
        self.operation = operation


class ConditionalCheckFailedError(CareRouteError):
    """Precondition of a conditional update did not hold."""

    def __init__(self, table: str, key: str):
        super().__init__(
            message=f"Condition check failed for {table}/{key}",
            code="CONDITION_FAILED",
            details={"table": table, "key": key}
        )
        self.table = table
        self.key = key


class BatchUpdateError(CareRouteError):
    """One or more updates in a batch failed; the rest were applied."""

    def __init__(self, failures: Dict[str, str], total: int):
        super().__init__(
            message=f"Failed to update {len(failures)} of {total} providers",
            code="BATCH_UPDATE_ERROR",
            details={"failures": failures, "total": total}
        )
        self.failures = failures
        self.total = total
