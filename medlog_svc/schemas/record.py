"""
Pydantic schemas for visit record and attachment API operations.

Amounts travel as strings so no precision is lost. Incoming amounts may be
numbers, numeric strings or blank; blank and unparseable values count as 0.
Cost totals are never accepted as input.
"""
import base64
import binascii
from typing import List, Optional, Union

from pydantic import BaseModel, Field, field_validator

from models.record import Attachment, AttachmentModule, VisitRecord

AmountInput = Union[str, int, float, None]


class CostItemInput(BaseModel):
    """One cost line item as entered by the user."""
    id: Optional[str] = Field(None, description="Client-side id; generated when missing")
    self_pay: AmountInput = Field(None, description="Self-paid amount", examples=["20.00"])
    pool_pay: AmountInput = Field(None, description="Amount paid by the insurance pool", examples=["60.00"])
    personal_pay: AmountInput = Field(None, description="Amount paid from the personal medical account", examples=["20.00"])
    attachment_id: Optional[int] = Field(None, description="Receipt attachment this item was scanned from")


class AttachmentUpload(BaseModel):
    """An attachment sent inline as base64."""
    name: str = Field("", max_length=255, description="Original file name", examples=["receipt.jpg"])
    mime_type: str = Field("application/octet-stream", max_length=100, examples=["image/jpeg"])
    data: str = Field(..., min_length=1, description="Base64 encoded file content")
    module: Optional[AttachmentModule] = Field(
        None,
        description="Field the attachment was captured for: diagnosis, medical_advice, cost_ocr, or null for general",
    )

    @field_validator("data")
    @classmethod
    def validate_base64(cls, value: str) -> str:
        try:
            base64.b64decode(value, validate=True)
        except (binascii.Error, ValueError) as e:
            raise ValueError("data must be valid base64") from e
        return value

    def to_attachment(self) -> Attachment:
        return Attachment(
            name=self.name,
            mime_type=self.mime_type,
            data=base64.b64decode(self.data),
            module=self.module.value if self.module else None,
        )


class RecordCreate(BaseModel):
    """Schema for creating a visit record.

    The date is required; every other field is optional free text.
    """
    date: str = Field(..., min_length=1, description="Visit date (ISO 8601)", examples=["2024-03-01"])
    hospital: str = Field("", max_length=200, examples=["协和医院"])
    department: str = Field("", max_length=200, examples=["口腔科"])
    doctor: Optional[str] = Field(None, max_length=100)
    type: str = Field("", max_length=50, description="Visit type, e.g. 首次就诊, 复诊, 体检", examples=["复诊"])
    title: str = Field("", max_length=200, examples=["补牙"])
    diagnosis: Optional[str] = None
    medical_advice: Optional[str] = None
    notes: str = ""
    cost_items: List[CostItemInput] = Field(default_factory=list)
    attachments: List[AttachmentUpload] = Field(default_factory=list)

    def to_record(self) -> VisitRecord:
        return VisitRecord.from_dict(self.model_dump(exclude={"attachments"}))


class RecordUpdate(BaseModel):
    """Schema for updating a record. Only the fields sent are changed."""
    date: Optional[str] = Field(None, min_length=1)
    hospital: Optional[str] = Field(None, max_length=200)
    department: Optional[str] = Field(None, max_length=200)
    doctor: Optional[str] = Field(None, max_length=100)
    type: Optional[str] = Field(None, max_length=50)
    title: Optional[str] = Field(None, max_length=200)
    diagnosis: Optional[str] = None
    medical_advice: Optional[str] = None
    notes: Optional[str] = None
    cost_items: Optional[List[CostItemInput]] = None
    new_attachments: List[AttachmentUpload] = Field(default_factory=list)
    deleted_attachment_ids: Optional[List[int]] = Field(
        None, description="Attachments to remove; omit to keep all existing attachments"
    )

    def field_updates(self) -> dict:
        return self.model_dump(
            exclude_unset=True,
            exclude={"new_attachments", "deleted_attachment_ids"},
        )


class AttachmentResponse(BaseModel):
    """Attachment metadata; the file itself is served by the download endpoint."""
    id: int
    record_id: int
    name: str
    mime_type: str
    ocr_text: Optional[str] = None
    ocr_status: str
    module: Optional[str] = None

    @classmethod
    def from_attachment(cls, attachment: Attachment) -> "AttachmentResponse":
        return cls(**attachment.to_dict(include_data=False))


class CostItemResponse(BaseModel):
    id: str
    self_pay: str
    pool_pay: str
    personal_pay: str
    attachment_id: Optional[int] = None


class RecordResponse(BaseModel):
    """A stored record with derived cost totals."""
    id: int
    date: str
    hospital: str
    department: str
    doctor: Optional[str] = None
    type: str
    title: str
    diagnosis: Optional[str] = None
    medical_advice: Optional[str] = None
    notes: str
    cost_items: List[CostItemResponse]
    cost_self: str
    cost_pool: str
    cost_personal: str
    cost_total: str
    timestamp: Optional[str] = None
    attachments: List[AttachmentResponse] = Field(default_factory=list)

    @classmethod
    def from_record(cls, record: VisitRecord) -> "RecordResponse":
        data = record.to_dict()
        data["attachments"] = [AttachmentResponse.from_attachment(a) for a in record.attachments]
        return cls(**data)


class OcrResponse(BaseModel):
    attachment_id: int
    status: str
    text: Optional[str] = None
    error: Optional[str] = None
    record: Optional[RecordResponse] = None
