"""
Custom exceptions for the document pipeline and adherence engine.

Every error carries an HTTP status and a short ``error`` label so the API layer
can render it as a flat ``{"error": ..., "details": ...}`` body.
"""
from typing import Any, Dict, Optional


class HealthTrackError(Exception):
    """Base exception for all HealthTrack errors."""

    status_code: int = 500
    error: str = "Internal error"

    def __init__(self, details: str, status_code: Optional[int] = None):
        super().__init__(details)
        self.details = details
        if status_code is not None:
            self.status_code = status_code

    def to_dict(self) -> Dict[str, Any]:
        return {"error": self.error, "details": self.details}


class ValidationError(HealthTrackError):
    """Missing or malformed required request fields."""
    status_code = 400
    error = "Invalid request"


class NotFoundError(HealthTrackError):
    """Referenced record does not exist."""
    status_code = 404
    error = "Not found"


class UpstreamServiceError(HealthTrackError):
    """Non-2xx response from the extraction, rasterization, storage or messaging service."""
    status_code = 502
    error = "Upstream service error"

    def __init__(self, service: str, status: Optional[int], body: str = ""):
        self.service = service
        self.upstream_status = status
        self.body = body
        message = f"{service} returned status {status}" if status else f"{service} request failed"
        if body:
            message = f"{message}: {body}"
        # Pass through upstream client errors, anything else is a bad gateway
        super().__init__(message, status_code=status if status and 400 <= status < 600 else 502)


class MessagingTimeout(UpstreamServiceError):
    """Outbound messaging call exceeded its timeout and was cancelled."""
    error = "Messaging timeout"

    def __init__(self, timeout: float):
        super().__init__("WhatsApp API", None, f"request timed out after {timeout:g}s")
        self.status_code = 504


class ConversionFailed(HealthTrackError):
    """PDF rasterization failed or produced no pages."""
    status_code = 502
    error = "Error converting document"


class ClassificationFailed(HealthTrackError):
    """Extraction service returned no structured document type."""
    status_code = 502
    error = "Error classifying medical document"


class ExtractionFailed(HealthTrackError):
    """A batch failed or returned no structured extraction."""
    status_code = 502
    error = "Error analyzing medical document"


class StorageFailed(HealthTrackError):
    """Backing store write failed."""
    status_code = 500
    error = "Error storing results"


class MedicationMismatch(HealthTrackError):
    """Reminder reply names a medicine that differs from the active prescription."""
    status_code = 409
    error = "Medication mismatch"
