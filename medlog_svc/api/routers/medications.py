"""
Medications router - medication courses, dose reminders and adherence logs.

All endpoints require API key authentication.
"""
import logging
from typing import List, Optional

from fastapi import APIRouter, Depends, Query, Response

from schemas import (
    DoseSlotResponse,
    MedicationCreate,
    MedicationLogCreate,
    MedicationLogResponse,
    MedicationResponse,
    MedicationUpdate,
    PrescriptionParseRequest,
    PrescriptionParseResponse,
)
from models.medication import Medication, MedicationStatus
from services import MedicationService
from services.ocr_parsers import parse_prescription
from core.auth import verify_api_key
from core.dependencies import get_medication_service
from core.exceptions import DoseLogNotFoundError, InvalidMedicationDataError

logger = logging.getLogger(__name__)

router = APIRouter(
    prefix="/api/v1/medications",
    tags=["Medications"],
    dependencies=[Depends(verify_api_key)],
)


def _to_response(service: MedicationService, medication: Medication) -> MedicationResponse:
    return MedicationResponse(
        **medication.to_dict(),
        days_remaining=service.days_remaining(medication),
        today_doses=[DoseSlotResponse(**slot.to_dict()) for slot in service.get_today_doses(medication)],
    )


# =============================================================================
# MEDICATIONS
# =============================================================================

@router.post("", response_model=MedicationResponse, status_code=201, summary="Start a medication course")
async def create_medication(
    payload: MedicationCreate,
    medication_service: MedicationService = Depends(get_medication_service),
):
    """
    Start a course. The end date is derived as start_date + duration - 1.

    Raises:
    - 400 Bad Request: unparseable start date or malformed reminder time
    """
    try:
        medication = payload.to_medication()
    except ValueError as e:
        raise InvalidMedicationDataError(str(e)) from e
    medication = medication_service.add_medication(medication)
    return _to_response(medication_service, medication)


@router.get("", response_model=List[MedicationResponse], summary="List medications")
async def list_medications(
    status: Optional[MedicationStatus] = Query(None, description="Filter by status"),
    medication_service: MedicationService = Depends(get_medication_service),
):
    medications = medication_service.get_all_medications(status.value if status else None)
    return [_to_response(medication_service, m) for m in medications]


@router.get("/active", response_model=List[MedicationResponse], summary="List active medications")
async def list_active_medications(
    medication_service: MedicationService = Depends(get_medication_service),
):
    return [_to_response(medication_service, m) for m in medication_service.get_active_medications()]


@router.post(
    "/parse-prescription",
    response_model=PrescriptionParseResponse,
    summary="Pre-fill a medication from prescription text",
    description="Reads name, dosage, per-dose amount, frequency, usage and duration out of "
                "OCR text. Fields that cannot be found are returned as null.",
)
async def parse_prescription_text(payload: PrescriptionParseRequest):
    return PrescriptionParseResponse(**parse_prescription(payload.text))


# =============================================================================
# DOSE LOGS
# =============================================================================

@router.get("/logs/today", response_model=List[MedicationLogResponse], summary="Today's dose logs")
async def list_today_logs(
    medication_service: MedicationService = Depends(get_medication_service),
):
    return [MedicationLogResponse.from_log(log) for log in medication_service.get_today_logs()]


@router.get("/logs/recent", response_model=List[MedicationLogResponse], summary="Recent dose logs")
async def list_recent_logs(
    days: int = Query(7, ge=1, le=365, description="How many days back to include"),
    medication_service: MedicationService = Depends(get_medication_service),
):
    return [MedicationLogResponse.from_log(log) for log in medication_service.get_recent_logs(days)]


@router.get("/{medication_id}", response_model=MedicationResponse, summary="Get a medication")
async def get_medication(
    medication_id: int,
    medication_service: MedicationService = Depends(get_medication_service),
):
    return _to_response(medication_service, medication_service.get_medication(medication_id))


@router.put("/{medication_id}", response_model=MedicationResponse, summary="Update a medication")
async def update_medication(
    medication_id: int,
    payload: MedicationUpdate,
    medication_service: MedicationService = Depends(get_medication_service),
):
    """Only fields present in the body are changed; the end date is recomputed."""
    medication = medication_service.update_medication(
        medication_id, payload.model_dump(exclude_unset=True)
    )
    return _to_response(medication_service, medication)


@router.delete("/{medication_id}", status_code=204, summary="Delete a medication and its logs")
async def delete_medication(
    medication_id: int,
    medication_service: MedicationService = Depends(get_medication_service),
):
    medication_service.delete_medication(medication_id)
    return Response(status_code=204)


@router.post("/{medication_id}/stop", response_model=MedicationResponse, summary="Stop a course early")
async def stop_medication(
    medication_id: int,
    medication_service: MedicationService = Depends(get_medication_service),
):
    return _to_response(medication_service, medication_service.stop_medication(medication_id))


@router.post("/{medication_id}/complete", response_model=MedicationResponse, summary="Mark a course completed")
async def complete_medication(
    medication_id: int,
    medication_service: MedicationService = Depends(get_medication_service),
):
    return _to_response(medication_service, medication_service.complete_medication(medication_id))


@router.get(
    "/{medication_id}/logs",
    response_model=List[MedicationLogResponse],
    summary="Dose logs of one medication",
)
async def list_medication_logs(
    medication_id: int,
    medication_service: MedicationService = Depends(get_medication_service),
):
    return [
        MedicationLogResponse.from_log(log)
        for log in medication_service.get_medication_logs(medication_id)
    ]


@router.post(
    "/{medication_id}/logs",
    response_model=MedicationLogResponse,
    summary="Record a dose as taken or skipped",
    description="At most one log exists per medication, date and time; logging the same dose "
                "again replaces its status.",
)
async def log_dose(
    medication_id: int,
    payload: MedicationLogCreate,
    medication_service: MedicationService = Depends(get_medication_service),
):
    log = medication_service.add_medication_log(
        medication_id, payload.date, payload.time, payload.status
    )
    return MedicationLogResponse.from_log(log)


@router.delete("/{medication_id}/logs", status_code=204, summary="Undo a dose log")
async def delete_dose_log(
    medication_id: int,
    date: str = Query(..., min_length=10, max_length=10, description="Dose date (YYYY-MM-DD)"),
    time: str = Query(..., min_length=5, max_length=5, description="Reminder time (HH:MM)"),
    medication_service: MedicationService = Depends(get_medication_service),
):
    if not medication_service.delete_medication_log(medication_id, date, time):
        raise DoseLogNotFoundError(f"No log for medication {medication_id} at {date} {time}")
    return Response(status_code=204)
