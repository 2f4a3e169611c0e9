# Overview: Domain error taxonomy and the tagged result returned by the ledger and session manager.

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any


class ServiceError(Exception):
    """Base class for recoverable domain failures. `code` is stable and machine-readable."""

    code = "service_error"
    http_status = 400

    def __init__(self, message: str, **details: Any):
        super().__init__(message)
        self.message = message
        self.details = details


class NotFoundError(ServiceError):
    """Referenced user/phone/repair/piece does not exist or is not owned by the caller."""

    code = "not_found"
    http_status = 404


class InvalidCredentialError(ServiceError):
    """PIN mismatch or malformed PIN."""

    code = "invalid_credential"
    http_status = 401


class InsufficientStockError(ServiceError):
    """Requested consumption exceeds on-hand quantity."""

    code = "insufficient_stock"
    http_status = 409

    def __init__(self, available: int, requested: int):
        super().__init__(
            f"Insufficient stock: {available} available, {requested} requested",
            available=available,
            requested=requested,
        )
        self.available = available
        self.requested = requested


class ValidationError(ServiceError, ValueError):
    """Malformed or out-of-range input."""

    code = "validation_error"
    http_status = 400


class ConflictError(ServiceError):
    """Another mutation on the same record is already running."""

    code = "conflict"
    http_status = 409


class NotAuthenticatedError(ServiceError):
    """No authenticated session to act on."""

    code = "not_authenticated"
    http_status = 401


class SessionLockedError(ServiceError):
    """The session is locked; only unlock or logout are accepted."""

    code = "session_locked"
    http_status = 423


class TransientStoreError(ServiceError):
    """The database call failed; the caller may retry."""

    code = "transient_store_error"
    http_status = 503


@dataclass
class ServiceResult:
    """
    Tagged success/failure value.

    Returned instead of raising by operations whose callers render inline
    feedback (session lifecycle, stock ledger).
    """
    success: bool
    data: Any = None
    error: str | None = None
    code: str | None = None
    details: dict = field(default_factory=dict)

    @classmethod
    def ok(cls, data: Any = None) -> "ServiceResult":
        return cls(success=True, data=data)

    @classmethod
    def fail(cls, exc: ServiceError) -> "ServiceResult":
        return cls(success=False, error=exc.message, code=exc.code, details=dict(exc.details))

    def __bool__(self) -> bool:
        return self.success

    def to_dict(self) -> dict:
        if self.success:
            return {"success": True, "data": self.data}
        payload = {"success": False, "error": self.error, "code": self.code}
        if self.details:
            payload["details"] = self.details
        return payload
