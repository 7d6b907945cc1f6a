"""
Domain models for the MedLog service.

This module contains the internal domain models shared by repositories and services.
"""
from models.record import (
    VisitRecord,
    CostLineItem,
    Attachment,
    AttachmentModule,
    OcrStatus,
    VISIT_TYPES,
)
from models.medication import (
    Medication,
    MedicationLog,
    MedicationStatus,
    DoseStatus,
    compute_end_date,
)

__all__ = [
    "VisitRecord",
    "CostLineItem",
    "Attachment",
    "AttachmentModule",
    "OcrStatus",
    "VISIT_TYPES",
    "Medication",
    "MedicationLog",
    "MedicationStatus",
    "DoseStatus",
    "compute_end_date",
]
