"""
Shared exception classes and error handling utilities for the MedLog service.

This module provides:
- Custom exception hierarchy for domain-specific errors
- Consistent error response formatting
- Exception handlers for FastAPI integration

Usage:
    from core.exceptions import RecordNotFoundError, BackupDecryptError

    # In service layer - raise domain exceptions
    raise RecordNotFoundError(record_id=42)

    # In FastAPI - register handlers via setup_exception_handlers(app)
"""
import logging
from typing import Any, Dict, Optional

from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse

logger = logging.getLogger(__name__)


# =============================================================================
# BASE EXCEPTION CLASSES
# =============================================================================

class MedLogError(Exception):
    """
    Base exception for all MedLog domain errors.

    All custom exceptions should inherit from this class.
    Provides consistent error structure with status code and detail message.
    """

    status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR
    detail: str = "An unexpected error occurred"

    def __init__(
        self,
        detail: Optional[str] = None,
        status_code: Optional[int] = None,
        **kwargs: Any
    ):
        """
        Initialize the exception.

        Args:
            detail: Human-readable error message. Uses class default if not provided.
            status_code: HTTP status code. Uses class default if not provided.
            **kwargs: Additional context to include in error response.
        """
        self.detail = detail or self.__class__.detail
        self.status_code = status_code or self.__class__.status_code
        self.context = kwargs
        super().__init__(self.detail)

    def to_dict(self) -> Dict[str, Any]:
        """Convert exception to dictionary for JSON response."""
        result = {"detail": self.detail}
        if self.context:
            result["context"] = self.context
        return result


# =============================================================================
# RECORD EXCEPTIONS
# =============================================================================

class RecordNotFoundError(MedLogError):
    """Raised when a visit record is not found."""

    status_code = status.HTTP_404_NOT_FOUND
    detail = "Record not found"

    def __init__(self, record_id: Optional[int] = None, **kwargs: Any):
        detail = f"Record {record_id} not found" if record_id is not None else self.detail
        super().__init__(detail=detail, record_id=record_id, **kwargs)


class AttachmentNotFoundError(MedLogError):
    """Raised when an attachment is not found on its record."""

    status_code = status.HTTP_404_NOT_FOUND
    detail = "Attachment not found"

    def __init__(self, attachment_id: Optional[int] = None, **kwargs: Any):
        detail = f"Attachment {attachment_id} not found" if attachment_id is not None else self.detail
        super().__init__(detail=detail, attachment_id=attachment_id, **kwargs)


class InvalidRecordDataError(MedLogError):
    """Raised when record data fails validation."""

    status_code = status.HTTP_400_BAD_REQUEST
    detail = "Invalid record data"


class AttachmentTooLargeError(MedLogError):
    """Raised when an uploaded attachment exceeds the size limit."""

    status_code = status.HTTP_413_CONTENT_TOO_LARGE
    detail = "Attachment too large"

    def __init__(self, max_size: Optional[int] = None, **kwargs: Any):
        detail = f"Attachment exceeds {max_size} bytes" if max_size else self.detail
        super().__init__(detail=detail, max_size=max_size, **kwargs)


# =============================================================================
# MEDICATION EXCEPTIONS
# =============================================================================

class MedicationNotFoundError(MedLogError):
    """Raised when a medication is not found."""

    status_code = status.HTTP_404_NOT_FOUND
    detail = "Medication not found"

    def __init__(self, medication_id: Optional[int] = None, **kwargs: Any):
        detail = f"Medication {medication_id} not found" if medication_id is not None else self.detail
        super().__init__(detail=detail, medication_id=medication_id, **kwargs)


class DoseLogNotFoundError(MedLogError):
    """Raised when undoing a dose that was never logged."""

    status_code = status.HTTP_404_NOT_FOUND
    detail = "Dose log not found"


class InvalidMedicationDataError(MedLogError):
    """Raised when medication or dose log data fails validation."""

    status_code = status.HTTP_400_BAD_REQUEST
    detail = "Invalid medication data"


# =============================================================================
# DATABASE EXCEPTIONS
# =============================================================================

class DatabaseError(MedLogError):
    """Raised when a database operation fails."""

    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
    detail = "Save failed"

    def __init__(self, operation: Optional[str] = None, reason: Optional[str] = None, **kwargs: Any):
        if operation and reason:
            detail = f"Save failed during {operation}: {reason}"
        elif operation:
            detail = f"Save failed during {operation}"
        else:
            detail = self.detail
        super().__init__(detail=detail, operation=operation, **kwargs)


# =============================================================================
# BACKUP EXCEPTIONS
# =============================================================================

class BackupError(MedLogError):
    """Base exception for backup and restore errors."""

    status_code = status.HTTP_400_BAD_REQUEST
    detail = "Backup failed"


class BackupPasswordRequiredError(BackupError):
    """Raised when a backup or restore is attempted without a passphrase."""

    detail = "A backup password is required"


class BackupDecryptError(BackupError):
    """Raised when a backup cannot be decrypted or parsed."""

    detail = "Wrong password or corrupted file"


class BackupNotFoundError(BackupError):
    """Raised when a backup file does not exist."""

    status_code = status.HTTP_404_NOT_FOUND
    detail = "Backup file not found"

    def __init__(self, file_name: Optional[str] = None, **kwargs: Any):
        detail = f"Backup file '{file_name}' not found" if file_name else self.detail
        super().__init__(detail=detail, file_name=file_name, **kwargs)


class InvalidBackupPreferencesError(BackupError):
    """Raised when backup preferences are inconsistent."""

    detail = "Automatic backup requires a password"


class RestoreNotConfirmedError(BackupError):
    """Raised when a destructive restore is requested without confirmation."""

    status_code = status.HTTP_409_CONFLICT
    detail = "Restore replaces all records and attachments; resend with confirm=true"


# =============================================================================
# EXTERNAL SERVICE EXCEPTIONS
# =============================================================================

class ExternalServiceError(MedLogError):
    """Raised when an external service call fails."""

    status_code = status.HTTP_502_BAD_GATEWAY
    detail = "External service error"


class GeminiServiceError(ExternalServiceError):
    """Raised when Gemini AI service fails."""

    detail = "Gemini AI service error"


class ServiceUnavailableError(ExternalServiceError):
    """Raised when an optional external service is not configured."""

    status_code = status.HTTP_503_SERVICE_UNAVAILABLE
    detail = "Service not configured"


# =============================================================================
# EXCEPTION HANDLERS
# =============================================================================

async def medlog_exception_handler(
    request: Request,
    exc: MedLogError
) -> JSONResponse:
    """
    Handle MedLogError exceptions and return consistent JSON responses.

    This handler logs the error and returns a standardized JSON error response.
    """
    logger.warning(
        f"MedLogError: {exc.detail}",
        extra={
            "status_code": exc.status_code,
            "path": request.url.path,
            "method": request.method,
            "context": exc.context
        }
    )
    return JSONResponse(
        status_code=exc.status_code,
        content=exc.to_dict()
    )


async def generic_exception_handler(
    request: Request,
    exc: Exception
) -> JSONResponse:
    """
    Handle unexpected exceptions with a generic error response.

    Logs the full exception for debugging but returns a safe error message.
    """
    logger.exception(
        f"Unhandled exception: {exc}",
        extra={
            "path": request.url.path,
            "method": request.method
        }
    )
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={"detail": "An internal server error occurred"}
    )


def setup_exception_handlers(app: FastAPI) -> None:
    """
    Register exception handlers with the FastAPI application.

    Args:
        app: The FastAPI application instance.
    """
    app.add_exception_handler(MedLogError, medlog_exception_handler)
    app.add_exception_handler(Exception, generic_exception_handler)
