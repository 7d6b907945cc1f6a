"""
FastAPI Dependency Injection configuration for the MedLog API.

Architecture Flow:
    API Layer (Routers)
         ↓ Depends()
    Service Layer (Business Logic)
         ↓ Depends()
    Repository Layer (Data Access)
         ↓ Depends()
    Database (SQLite Connection)

Every factory below declares what it needs with Depends(), so overriding a
single provider replaces it for the whole chain.

Usage in Routers:
    from core.dependencies import get_record_service

    @router.get("/records")
    async def list_records(record_service: RecordService = Depends(get_record_service)):
        return record_service.get_all_records()

Testing:
    # Override dependencies in tests
    app.dependency_overrides[get_database] = lambda: test_database
"""
import logging
from functools import lru_cache
from typing import Optional

from fastapi import Depends

from core.config import settings
from core.exceptions import ServiceUnavailableError
from repositories import Database, MedicationRepository, PreferencesRepository, RecordRepository
from services.record_service import RecordService
from services.medication_service import MedicationService
from services.intent_engine import IntentEngine, KeywordExtractor
from services.backup_service import BackupCodec, BackupManager, BackupService
from services.stats_service import StatsService
from services.ocr_service import OcrService
from services.gemini_service import GeminiService

logger = logging.getLogger(__name__)


# =============================================================================
# DATABASE DEPENDENCY
# =============================================================================

_database_instance: Optional[Database] = None


def get_database() -> Database:
    """
    Get the database instance (singleton).

    Created on first use; schema creation happens then.
    """
    global _database_instance

    if _database_instance is None:
        logger.info(f"Initializing database: {settings.database_path}")
        _database_instance = Database(
            db_path=settings.database_path,
            busy_timeout=settings.medlog_db_busy_timeout,
        )

    return _database_instance


def reset_database() -> None:
    """
    Reset the database instance (for testing only).
    """
    global _database_instance
    _database_instance = None


# =============================================================================
# REPOSITORY DEPENDENCIES
# =============================================================================

def get_record_repository(db: Database = Depends(get_database)) -> RecordRepository:
    return RecordRepository(db=db)


def get_medication_repository(db: Database = Depends(get_database)) -> MedicationRepository:
    return MedicationRepository(db=db)


def get_preferences_repository(db: Database = Depends(get_database)) -> PreferencesRepository:
    return PreferencesRepository(db=db)


# =============================================================================
# SERVICE DEPENDENCIES
# =============================================================================

def get_record_service(
    record_repo: RecordRepository = Depends(get_record_repository),
) -> RecordService:
    return RecordService(record_repository=record_repo)


def get_medication_service(
    medication_repo: MedicationRepository = Depends(get_medication_repository),
) -> MedicationService:
    return MedicationService(medication_repository=medication_repo)


def get_keyword_extractor() -> KeywordExtractor:
    """Keyword extractor configured from MEDLOG_KEYWORD_* settings (built-in lists when unset)."""
    return KeywordExtractor(
        stop_phrases=settings.keyword_stop_phrases,
        verb_prefixes=settings.keyword_verb_prefixes,
    )


def get_intent_engine(
    record_service: RecordService = Depends(get_record_service),
    medication_service: MedicationService = Depends(get_medication_service),
    keyword_extractor: KeywordExtractor = Depends(get_keyword_extractor),
) -> IntentEngine:
    return IntentEngine(
        record_service=record_service,
        medication_service=medication_service,
        keyword_extractor=keyword_extractor,
    )


def get_backup_manager() -> BackupManager:
    return BackupManager(
        backup_dir=settings.medlog_backup_dir,
        max_auto_backups=settings.medlog_max_auto_backups,
    )


def get_backup_service(
    record_repo: RecordRepository = Depends(get_record_repository),
    preferences_repo: PreferencesRepository = Depends(get_preferences_repository),
    manager: BackupManager = Depends(get_backup_manager),
) -> BackupService:
    return BackupService(
        record_repository=record_repo,
        preferences_repository=preferences_repo,
        manager=manager,
        codec=BackupCodec(iterations=settings.medlog_backup_kdf_iterations),
    )


def get_stats_service(
    record_service: RecordService = Depends(get_record_service),
) -> StatsService:
    return StatsService(record_service=record_service)


@lru_cache(maxsize=1)
def _gemini_service_for(api_key: str) -> GeminiService:
    return GeminiService(api_key=api_key)


def get_optional_gemini_service() -> Optional[GeminiService]:
    """
    GeminiService when GEMINI_API_KEY is set, otherwise None.

    One client is built per key and reused across requests.
    """
    if not settings.gemini_api_key:
        return None
    return _gemini_service_for(settings.gemini_api_key)


def reset_gemini_service() -> None:
    """
    Drop the cached Gemini client (for testing only).
    """
    _gemini_service_for.cache_clear()


def get_gemini_service(
    gemini: Optional[GeminiService] = Depends(get_optional_gemini_service),
) -> GeminiService:
    """
    GeminiService for endpoints that cannot work without it.

    Raises:
        ServiceUnavailableError: If GEMINI_API_KEY is not configured.
    """
    if gemini is None:
        raise ServiceUnavailableError("GEMINI_API_KEY is not configured")
    return gemini


def get_ocr_service(
    record_service: RecordService = Depends(get_record_service),
    record_repo: RecordRepository = Depends(get_record_repository),
    gemini: Optional[GeminiService] = Depends(get_optional_gemini_service),
) -> OcrService:
    return OcrService(
        record_service=record_service,
        record_repository=record_repo,
        extractor=gemini,
    )
