"""
Core module for application configuration, logging, and shared constants.

This module provides:
- Settings: Application configuration via pydantic-settings
- Exceptions: Domain-specific exception classes with HTTP status codes
- Datetime utilities: UTC-first datetime handling

Dependency injection lives in core.dependencies and is imported from there
directly, since it pulls in the repository and service layers.
"""
from core.config import settings, Settings

# Exception classes for consistent error handling
from core.exceptions import (
    MedLogError,
    RecordNotFoundError,
    AttachmentNotFoundError,
    AttachmentTooLargeError,
    InvalidRecordDataError,
    MedicationNotFoundError,
    DoseLogNotFoundError,
    InvalidMedicationDataError,
    DatabaseError,
    BackupError,
    BackupPasswordRequiredError,
    BackupDecryptError,
    BackupNotFoundError,
    InvalidBackupPreferencesError,
    RestoreNotConfirmedError,
    ExternalServiceError,
    GeminiServiceError,
    ServiceUnavailableError,
    setup_exception_handlers,
)

# UTC datetime utilities
from core.datetime_utils import (
    utc_now,
    to_utc,
    parse_datetime,
    parse_calendar_date,
    format_iso,
    format_date,
)
from core.config import (
    DATABASE_PATH,
    API_HOST,
    API_PORT,
    API_RELOAD,
    BACKUP_DIR,
    MAX_AUTO_BACKUPS,
    GEMINI_API_KEY,
)

__all__ = [
    # Settings
    "settings",
    "Settings",
    # Exceptions
    "MedLogError",
    "RecordNotFoundError",
    "AttachmentNotFoundError",
    "AttachmentTooLargeError",
    "InvalidRecordDataError",
    "MedicationNotFoundError",
    "DoseLogNotFoundError",
    "InvalidMedicationDataError",
    "DatabaseError",
    "BackupError",
    "BackupPasswordRequiredError",
    "BackupDecryptError",
    "BackupNotFoundError",
    "InvalidBackupPreferencesError",
    "RestoreNotConfirmedError",
    "ExternalServiceError",
    "GeminiServiceError",
    "ServiceUnavailableError",
    "setup_exception_handlers",
    # Datetime utilities
    "utc_now",
    "to_utc",
    "parse_datetime",
    "parse_calendar_date",
    "format_iso",
    "format_date",
    # Config constants
    "DATABASE_PATH",
    "API_HOST",
    "API_PORT",
    "API_RELOAD",
    "BACKUP_DIR",
    "MAX_AUTO_BACKUPS",
    "GEMINI_API_KEY",
]
