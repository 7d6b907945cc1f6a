"""
OCR flow for record attachments.

An attachment is scanned through a text extractor (GeminiService by
default), its text and status are stored, and the text is applied to the
owning record according to the attachment's module:

- diagnosis / medical_advice: text appended to that field
- cost_ocr: receipt parsed into a new cost line item linked to the attachment

A failing extractor marks the attachment "error" and leaves the record as it
was, so the rest of the record stays editable.
"""
import logging
from dataclasses import dataclass
from typing import Optional, Protocol

from models.record import AttachmentModule, OcrStatus, VisitRecord
from services.ocr_parsers import parse_cost_receipt
from services.record_service import RecordService
from repositories import RecordRepository
from core.exceptions import ExternalServiceError

logger = logging.getLogger(__name__)


class TextExtractor(Protocol):
    def extract_text(self, image_data: bytes) -> str:
        ...


@dataclass
class OcrResult:
    attachment_id: int
    status: str
    text: Optional[str] = None
    record: Optional[VisitRecord] = None
    error: Optional[str] = None


def _append(existing: Optional[str], text: str) -> str:
    if not existing:
        return text
    return f"{existing}\n{text}"


class OcrService:
    """Runs OCR on stored attachments and folds the results into their records."""

    def __init__(
        self,
        record_service: RecordService,
        record_repository: RecordRepository,
        extractor: Optional[TextExtractor],
    ):
        self._records = record_service
        self._repo = record_repository
        self._extractor = extractor

    def scan_attachment(self, record_id: int, attachment_id: int) -> OcrResult:
        """
        Scan one attachment of a record.

        Returns:
            OcrResult: status "done" with the text and the updated record, or
                status "error" with the failure message. PDFs are left idle.

        Raises:
            RecordNotFoundError / AttachmentNotFoundError: If the record or
                attachment does not exist.
        """
        attachment = self._records.get_attachment(record_id, attachment_id)
        if attachment.is_pdf:
            logger.info(f"Skipping OCR for PDF attachment {attachment_id}")
            return OcrResult(attachment_id=attachment_id, status=attachment.ocr_status)

        if self._extractor is None:
            self._repo.update_attachment_ocr(attachment_id, OcrStatus.ERROR.value)
            return OcrResult(
                attachment_id=attachment_id,
                status=OcrStatus.ERROR.value,
                error="OCR service not configured",
            )

        self._repo.update_attachment_ocr(attachment_id, OcrStatus.SCANNING.value)
        try:
            text = self._extractor.extract_text(attachment.data)
        except ExternalServiceError as e:
            logger.warning(f"OCR failed for attachment {attachment_id}: {e.detail}")
            self._repo.update_attachment_ocr(attachment_id, OcrStatus.ERROR.value)
            return OcrResult(attachment_id=attachment_id, status=OcrStatus.ERROR.value, error=e.detail)

        self._repo.update_attachment_ocr(attachment_id, OcrStatus.DONE.value, text)
        record = self._apply(record_id, attachment_id, attachment.module, text)
        logger.info(f"OCR done for attachment {attachment_id} ({len(text)} chars)")
        return OcrResult(
            attachment_id=attachment_id,
            status=OcrStatus.DONE.value,
            text=text,
            record=record,
        )

    def _apply(
        self, record_id: int, attachment_id: int, module: Optional[str], text: str
    ) -> VisitRecord:
        record = self._records.get_record(record_id)
        if not text.strip() or module is None:
            return record

        if module == AttachmentModule.COST_RECEIPT.value:
            item = parse_cost_receipt(text, attachment_id=attachment_id)
            items = [existing.to_dict() for existing in record.cost_items] + [item.to_dict()]
            return self._records.update_record(record_id, {"cost_items": items})

        if module == AttachmentModule.DIAGNOSIS.value:
            return self._records.update_record(
                record_id, {"diagnosis": _append(record.diagnosis, text)}
            )

        if module == AttachmentModule.MEDICAL_ADVICE.value:
            return self._records.update_record(
                record_id, {"medical_advice": _append(record.medical_advice, text)}
            )

        return record
