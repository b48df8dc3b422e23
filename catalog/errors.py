"""
Exception types shared by the store clients, the services and the API layer.
"""

from __future__ import annotations

from enum import Enum
from typing import Any, Optional


class StoreErrorKind(Enum):
    """Closed set of failure kinds a DbClient may report."""

    CONFLICT = "conflict"
    NOT_FOUND = "not_found"
    UNAVAILABLE = "unavailable"
    OTHER = "other"


class StoreError(Exception):
    """Raised by DbClient implementations for any failed store operation."""

    def __init__(self, kind: StoreErrorKind, message: str):
        super().__init__(message)
        self.kind = kind
        self.message = message

    @property
    def retryable(self) -> bool:
        return self.kind is StoreErrorKind.CONFLICT


class CatalogError(Exception):
    """
    Base exception for errors that are reported to API callers.

    The FastAPI app turns these into JSON responses via `to_dict`.
    """

    status_code: int = 500

    def __init__(self, message: str, details: Optional[Any] = None):
        super().__init__(message)
        self.message = message
        self.details = details

    def to_dict(self) -> dict[str, Any]:
        body: dict[str, Any] = {"error": self.message}
        if self.details is not None:
            body["details"] = self.details
        return body


class InvalidIdentityError(CatalogError):
    """Raised when claims lack a usable subject identifier."""

    status_code = 400

    def __init__(self, message: str = "Cannot ensure user without a valid subject"):
        super().__init__(message)


class RecordServiceError(CatalogError):
    """Generic failure of a record operation."""

    status_code = 500


class WriteConflictError(CatalogError):
    """Raised when an update keeps hitting optimistic-concurrency conflicts."""

    status_code = 409

    def __init__(self, message: str = "Write conflict, please retry"):
        super().__init__(message)
