"""
Configuration module for the MedLog service.
Uses Pydantic BaseSettings for validation - app fails fast if required config is missing.
"""
import sys
import logging
from pathlib import Path
from typing import List

from pydantic import Field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

logger = logging.getLogger(__name__)


class Settings(BaseSettings):
    """
    Application settings with validation.
    Required fields will cause the app to fail fast if not provided.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Database Configuration
    medlog_db_dir: str = Field(default="data", description="Database directory")
    medlog_db_file: str = Field(default="medlog.db", description="Database filename")
    medlog_db_busy_timeout: int = Field(default=5000, description="SQLite busy timeout in milliseconds")

    # API Configuration
    medlog_host: str = Field(default="127.0.0.1", description="API host")
    medlog_port: int = Field(default=8000, description="API port")
    medlog_reload: bool = Field(default=False, description="Enable hot reload")

    # Attachment Configuration
    medlog_max_attachment_size: int = Field(
        default=20 * 1024 * 1024,
        ge=1,
        description="Maximum attachment size in bytes",
    )

    # Backup Configuration
    medlog_backup_dir: str = Field(default="MedicalBackups", description="Directory holding encrypted backup files")
    medlog_max_auto_backups: int = Field(default=30, ge=1, description="Number of automatic backups to keep")
    medlog_backup_kdf_iterations: int = Field(
        default=200_000,
        ge=1000,
        description="PBKDF2 iterations used to derive backup keys from the passphrase",
    )

    # Assistant keyword extraction (comma-separated, empty means built-in defaults)
    medlog_keyword_stop_phrases: str = Field(default="", description="Question phrases stripped from keyword queries")
    medlog_keyword_verb_prefixes: str = Field(default="", description="Leading verbs stripped from keyword queries")

    # Google Gemini API Configuration (Optional, enables OCR and record extraction)
    gemini_api_key: str = Field(default="", description="Google Gemini API key")

    # API Authentication Configuration
    medlog_api_key: str = Field(
        ...,  # Required - no default means fail fast if missing
        description="API key for authenticating requests to the MedLog API",
        min_length=32,
    )

    @model_validator(mode="after")
    def validate_secrets(self) -> "Settings":
        """
        Validate configuration at startup and fail fast with clear error messages.
        """
        errors = []

        if not self.gemini_api_key:
            logger.warning(
                "GEMINI_API_KEY not set - OCR and document extraction features will be disabled"
            )

        if Path(self.medlog_backup_dir).resolve() == Path(self.medlog_db_dir).resolve():
            errors.append("MEDLOG_BACKUP_DIR must differ from MEDLOG_DB_DIR")

        if errors:
            error_msg = "Configuration validation failed:\n" + "\n".join(f"  - {e}" for e in errors)
            logger.critical(error_msg)
            sys.exit(1)

        return self

    @property
    def database_path(self) -> str:
        """Get the full database path."""
        return str(Path(self.medlog_db_dir) / self.medlog_db_file)

    @property
    def keyword_stop_phrases(self) -> List[str]:
        """Get the configured stop phrases as a list (empty if unset)."""
        return _split_csv(self.medlog_keyword_stop_phrases)

    @property
    def keyword_verb_prefixes(self) -> List[str]:
        """Get the configured verb prefixes as a list (empty if unset)."""
        return _split_csv(self.medlog_keyword_verb_prefixes)

    def ensure_directories(self) -> None:
        """Ensure required directories exist."""
        Path(self.medlog_db_dir).mkdir(parents=True, exist_ok=True)
        Path(self.medlog_backup_dir).mkdir(parents=True, exist_ok=True)


def _split_csv(value: str) -> List[str]:
    return [item.strip() for item in value.split(",") if item.strip()]


# Create global settings instance - fails fast if required config is missing
settings = Settings()

# Ensure directories exist on import
settings.ensure_directories()

DATABASE_DIR = settings.medlog_db_dir
DATABASE_FILE = settings.medlog_db_file
DATABASE_PATH = settings.database_path
DATABASE_BUSY_TIMEOUT = settings.medlog_db_busy_timeout

API_HOST = settings.medlog_host
API_PORT = settings.medlog_port
API_RELOAD = settings.medlog_reload

MAX_ATTACHMENT_SIZE = settings.medlog_max_attachment_size

BACKUP_DIR = settings.medlog_backup_dir
MAX_AUTO_BACKUPS = settings.medlog_max_auto_backups
BACKUP_KDF_ITERATIONS = settings.medlog_backup_kdf_iterations

GEMINI_API_KEY = settings.gemini_api_key

API_KEY = settings.medlog_api_key
