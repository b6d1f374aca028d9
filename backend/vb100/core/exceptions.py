"""
Custom Exceptions for VB100 Results
===================================

Every error the results service raises derives from VB100Error so the API
layer can translate it into a consistent response body, and the autosave
client can catch one base class without crashing its loop.

Usage:
    from vb100.core.exceptions import LockedPeriodError

    if meta.locked:
        raise LockedPeriodError(year, month)
"""

from typing import Optional, Any, Dict


class VB100Error(Exception):
    """Base exception for all VB100 results errors"""

    status_code: int = 500

    def __init__(
        self,
        message: str,
        code: str = "INTERNAL_ERROR",
        details: Optional[Dict[str, Any]] = None
    ):
        self.message = message
        self.code = code
        self.details = details or {}
        super().__init__(self.message)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "code": self.code,
            "message": self.message,
            "details": self.details
        }


# ============================================
# Validation Errors (422-type)
# ============================================

class ValidationError(VB100Error):
    """Input validation failed (malformed period, malformed field)"""

    status_code = 422

    def __init__(self, message: str, field: Optional[str] = None):
        details = {"field": field} if field else {}
        super().__init__(message, code="VALIDATION_ERROR", details=details)


class InvalidPeriodError(ValidationError):
    """Year/month pair is not a valid period"""

    def __init__(self, year: Any, month: Any):
        super().__init__(f"Invalid period: year={year!r}, month={month!r}")
        self.code = "INVALID_PERIOD"
        self.details = {"year": year, "month": month}


# ============================================
# Lock Errors (423-type)
# ============================================

class LockedPeriodError(VB100Error):
    """Write attempted against a period that has been snapshotted"""

    status_code = 423

    def __init__(self, year: int, month: int, snapshot_at: Optional[str] = None):
        super().__init__(
            f"Period {year}-{month:02d} is locked",
            code="PERIOD_LOCKED",
            details={"year": year, "month": month, "snapshot_at": snapshot_at}
        )


# ============================================
# Store Errors (503-type)
# ============================================

class TransientStoreError(VB100Error):
    """Database or network failure - the write may be retried by the caller"""

    status_code = 503

    def __init__(self, message: str = "Result store unavailable"):
        super().__init__(message, code="STORE_UNAVAILABLE")


# ============================================
# Resource Errors (404-type)
# ============================================

class NotFoundError(VB100Error):
    """Resource not found"""

    status_code = 404

    def __init__(self, resource_type: str, resource_id: str):
        super().__init__(
            f"{resource_type} with ID '{resource_id}' not found",
            code="NOT_FOUND",
            details={"resource_type": resource_type, "resource_id": resource_id}
        )


# ============================================
# Helper function for API responses
# ============================================

def error_response(error: VB100Error) -> Dict[str, Any]:
    """Convert exception to API error response format"""
    return {
        "success": False,
        "error": error.to_dict()
    }


def error_from_response(status_code: int, body: Any) -> VB100Error:
    """
    Rebuild a VB100Error from an API error response.

    Used by the HTTP client so callers see the same exception classes
    on both sides of the wire.
    """
    error = body.get("error", {}) if isinstance(body, dict) else {}
    message = error.get("message") or (body.get("detail") if isinstance(body, dict) else None) or f"HTTP {status_code}"
    details = error.get("details") or {}

    if status_code == 423:
        exc = LockedPeriodError(details.get("year", 0), details.get("month", 0), details.get("snapshot_at"))
        exc.message = message
        return exc
    if status_code in (400, 422):
        return ValidationError(str(message), field=details.get("field"))
    if status_code == 404:
        return NotFoundError(details.get("resource_type", "Resource"), str(details.get("resource_id", "")))
    if status_code >= 500:
        return TransientStoreError(str(message))
    return VB100Error(str(message), code=error.get("code", "HTTP_ERROR"), details=details)
