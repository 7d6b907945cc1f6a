"""
Records router - visit records, their attachments and attachment OCR.

All endpoints require API key authentication.

Architecture:
    HTTP Request → Router (this file) → Services → Repositories → Database

Attachments can be sent inline as base64 with a create/update, or uploaded
one at a time as multipart form data. Gemini calls (OCR, extraction) run in a
worker thread so they do not hold up the event loop.
"""
import asyncio
import logging
from typing import List, Optional

from fastapi import APIRouter, Depends, File, Form, Query, Response, UploadFile

from schemas import (
    AttachmentResponse,
    OcrResponse,
    RecordCreate,
    RecordResponse,
    RecordUpdate,
    VisitExtractionResponse,
)
from models.record import Attachment, AttachmentModule
from services import RecordService
from services.gemini_service import GeminiService
from services.ocr_service import OcrService
from core.auth import verify_api_key
from core.config import MAX_ATTACHMENT_SIZE
from core.dependencies import get_gemini_service, get_ocr_service, get_record_service
from core.exceptions import AttachmentTooLargeError, InvalidRecordDataError

logger = logging.getLogger(__name__)

router = APIRouter(
    prefix="/api/v1/records",
    tags=["Records"],
    dependencies=[Depends(verify_api_key)],
)


async def _read_upload(file: UploadFile) -> bytes:
    data = await file.read()
    if len(data) > MAX_ATTACHMENT_SIZE:
        raise AttachmentTooLargeError(MAX_ATTACHMENT_SIZE)
    if not data:
        raise InvalidRecordDataError("Uploaded file is empty")
    return data


# =============================================================================
# RECORDS
# =============================================================================

@router.post(
    "",
    response_model=RecordResponse,
    status_code=201,
    summary="Create a visit record",
    description="Store a record together with any inline attachments in one transaction.",
)
async def create_record(
    payload: RecordCreate,
    record_service: RecordService = Depends(get_record_service),
):
    """
    Create a record.

    Cost totals are computed from cost_items; totals in the request are ignored.

    Raises:
    - 400 Bad Request: invalid visit date (InvalidRecordDataError)
    - 500 Internal Server Error: transaction failed, nothing stored (DatabaseError)
    """
    record = record_service.add_record(
        payload.to_record(),
        [a.to_attachment() for a in payload.attachments],
    )
    return RecordResponse.from_record(record)


@router.get(
    "",
    response_model=List[RecordResponse],
    summary="List or search records",
    description="All records, newest visit first. With q, only records whose hospital, "
                "department, title, type or attachment OCR text contains q (case-insensitive).",
)
async def list_records(
    q: Optional[str] = Query(None, max_length=200, description="Search text"),
    record_service: RecordService = Depends(get_record_service),
):
    records = record_service.search_records(q)
    return [RecordResponse.from_record(r) for r in records]


@router.post(
    "/extract",
    response_model=VisitExtractionResponse,
    summary="Read visit fields from document images",
    description="Send one or more page images of the same document to the vision model "
                "and get back the fields it could read. Nothing is stored.",
)
async def extract_visit(
    files: List[UploadFile] = File(..., description="Page images"),
    gemini_service: GeminiService = Depends(get_gemini_service),
):
    images = [await _read_upload(f) for f in files]
    fields = await asyncio.to_thread(gemini_service.extract_visit_record, images)
    return VisitExtractionResponse(**fields)


@router.get("/{record_id}", response_model=RecordResponse, summary="Get a record with its attachments")
async def get_record(
    record_id: int,
    record_service: RecordService = Depends(get_record_service),
):
    return RecordResponse.from_record(record_service.get_record(record_id))


@router.put(
    "/{record_id}",
    response_model=RecordResponse,
    summary="Update a record",
    description="Only fields present in the body are changed. New attachments are added and "
                "deleted_attachment_ids removed in the same transaction.",
)
async def update_record(
    record_id: int,
    payload: RecordUpdate,
    record_service: RecordService = Depends(get_record_service),
):
    record = record_service.update_record(
        record_id,
        payload.field_updates(),
        new_attachments=[a.to_attachment() for a in payload.new_attachments],
        deleted_attachment_ids=payload.deleted_attachment_ids,
    )
    return RecordResponse.from_record(record)


@router.delete("/{record_id}", status_code=204, summary="Delete a record and its attachments")
async def delete_record(
    record_id: int,
    record_service: RecordService = Depends(get_record_service),
):
    record_service.delete_record(record_id)
    return Response(status_code=204)


# =============================================================================
# ATTACHMENTS
# =============================================================================

@router.get(
    "/{record_id}/attachments",
    response_model=List[AttachmentResponse],
    summary="List a record's attachments",
)
async def list_attachments(
    record_id: int,
    record_service: RecordService = Depends(get_record_service),
):
    return [AttachmentResponse.from_attachment(a) for a in record_service.list_attachments(record_id)]


@router.post(
    "/{record_id}/attachments",
    response_model=AttachmentResponse,
    status_code=201,
    summary="Upload an attachment",
)
async def upload_attachment(
    record_id: int,
    file: UploadFile = File(..., description="Image or PDF"),
    module: Optional[AttachmentModule] = Form(None, description="diagnosis, medical_advice, cost_ocr or empty"),
    record_service: RecordService = Depends(get_record_service),
):
    data = await _read_upload(file)
    attachment = Attachment(
        name=file.filename or "",
        mime_type=file.content_type or "application/octet-stream",
        data=data,
        module=module.value if module else None,
    )
    record_service.update_record(record_id, {}, new_attachments=[attachment])
    logger.info(f"Attachment {attachment.id} added to record {record_id}")
    return AttachmentResponse.from_attachment(attachment)


@router.get(
    "/{record_id}/attachments/{attachment_id}",
    summary="Download an attachment",
    response_class=Response,
)
async def download_attachment(
    record_id: int,
    attachment_id: int,
    record_service: RecordService = Depends(get_record_service),
):
    attachment = record_service.get_attachment(record_id, attachment_id)
    return Response(content=attachment.data, media_type=attachment.mime_type)


@router.post(
    "/{record_id}/attachments/{attachment_id}/ocr",
    response_model=OcrResponse,
    summary="Run OCR on an attachment",
    description="Extract the attachment's text and apply it to the record according to the "
                "attachment's module. OCR failures are reported in the body with status 'error'.",
)
async def scan_attachment(
    record_id: int,
    attachment_id: int,
    ocr_service: OcrService = Depends(get_ocr_service),
):
    result = await asyncio.to_thread(ocr_service.scan_attachment, record_id, attachment_id)
    return OcrResponse(
        attachment_id=result.attachment_id,
        status=result.status,
        text=result.text,
        error=result.error,
        record=RecordResponse.from_record(result.record) if result.record else None,
    )
