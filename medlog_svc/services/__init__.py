"""
Service layer for business logic.

This module contains all business logic and orchestration services.

Note: Some services are not re-exported here to avoid pulling in optional
third-party clients. Import them directly from their modules:
- from services.gemini_service import GeminiService
- from services.ocr_service import OcrService
"""
from services.record_service import RecordService
from services.medication_service import MedicationService
from services.intent_engine import IntentEngine, KeywordExtractor
from services.backup_service import BackupService, BackupManager, BackupCodec, BackupConfig
from services.stats_service import StatsService

__all__ = [
    "RecordService",
    "MedicationService",
    "IntentEngine",
    "KeywordExtractor",
    "BackupService",
    "BackupManager",
    "BackupCodec",
    "BackupConfig",
    "StatsService",
]
