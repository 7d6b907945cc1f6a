"""
Pydantic schemas for API request/response validation.

This module contains all Pydantic models used at API boundaries.
"""
from schemas.record import (
    AttachmentResponse,
    AttachmentUpload,
    CostItemInput,
    CostItemResponse,
    OcrResponse,
    RecordCreate,
    RecordResponse,
    RecordUpdate,
)
from schemas.medication import (
    DoseSlotResponse,
    MedicationCreate,
    MedicationLogCreate,
    MedicationLogResponse,
    MedicationResponse,
    MedicationUpdate,
    PrescriptionParseRequest,
    PrescriptionParseResponse,
)
from schemas.assistant import AIAnswerResponse, AskRequest, AskResponse, VisitExtractionResponse
from schemas.backup import (
    BackupFileResponse,
    BackupPreferencesResponse,
    BackupPreferencesUpdate,
    BackupRequest,
    ExportResponse,
    RestoreBlobRequest,
    RestoreRequest,
    RestoreResponse,
)
from schemas.stats import StatsResponse

__all__ = [
    # Record schemas
    "AttachmentResponse",
    "AttachmentUpload",
    "CostItemInput",
    "CostItemResponse",
    "OcrResponse",
    "RecordCreate",
    "RecordResponse",
    "RecordUpdate",
    # Medication schemas
    "DoseSlotResponse",
    "MedicationCreate",
    "MedicationLogCreate",
    "MedicationLogResponse",
    "MedicationResponse",
    "MedicationUpdate",
    "PrescriptionParseRequest",
    "PrescriptionParseResponse",
    # Assistant schemas
    "AIAnswerResponse",
    "AskRequest",
    "AskResponse",
    "VisitExtractionResponse",
    # Backup schemas
    "BackupFileResponse",
    "BackupPreferencesResponse",
    "BackupPreferencesUpdate",
    "BackupRequest",
    "ExportResponse",
    "RestoreBlobRequest",
    "RestoreRequest",
    "RestoreResponse",
    # Stats schemas
    "StatsResponse",
]
