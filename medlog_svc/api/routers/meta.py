"""
Meta router - choice lists used to build record and medication forms.

No authentication required for read-only metadata access.
"""
from typing import List

from fastapi import APIRouter
from pydantic import BaseModel

from models.record import VISIT_TYPES, AttachmentModule, OcrStatus
from models.medication import DoseStatus, MedicationStatus

router = APIRouter(
    prefix="/api/v1/meta",
    tags=["Metadata"],
)


class FormOptionsResponse(BaseModel):
    visit_types: List[str]
    attachment_modules: List[str]
    ocr_statuses: List[str]
    medication_statuses: List[str]
    dose_statuses: List[str]


@router.get(
    "/options",
    response_model=FormOptionsResponse,
    summary="List form choices",
    description="Suggested visit types and the allowed values of the enumerated fields.",
)
async def get_form_options() -> FormOptionsResponse:
    return FormOptionsResponse(
        visit_types=list(VISIT_TYPES),
        attachment_modules=[m.value for m in AttachmentModule],
        ocr_statuses=[s.value for s in OcrStatus],
        medication_statuses=[s.value for s in MedicationStatus],
        dose_statuses=[s.value for s in DoseStatus],
    )
