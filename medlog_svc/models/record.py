"""
Domain models for visit records, their cost line items and attachments.

Cost totals are never stored independently of the line items: the four
``cost_*`` values on a VisitRecord are properties computed from
``cost_items`` every time they are read.
"""
import base64
import uuid
from dataclasses import dataclass, field
from decimal import Decimal, InvalidOperation
from enum import Enum
from typing import Any, Dict, List, Optional

ZERO = Decimal("0")

# Suggested visit types (first visit, emergency, follow-up, checkup, therapy, exam order).
# The field itself is free text.
VISIT_TYPES = ("首次就诊", "急诊", "复诊", "体检", "理疗", "开检查")


class OcrStatus(str, Enum):
    IDLE = "idle"
    SCANNING = "scanning"
    DONE = "done"
    ERROR = "error"


class AttachmentModule(str, Enum):
    """Which record field an attachment was captured for. None means general."""
    DIAGNOSIS = "diagnosis"
    MEDICAL_ADVICE = "medical_advice"
    COST_RECEIPT = "cost_ocr"


def to_amount(value: Any) -> Decimal:
    """
    Coerce user input to a Decimal amount.

    Blank, missing and unparseable values become 0, the same way the entry
    form treats them.
    """
    if value is None or isinstance(value, bool):
        return ZERO
    if isinstance(value, Decimal):
        return value if value.is_finite() else ZERO
    text = str(value).strip()
    if not text:
        return ZERO
    try:
        amount = Decimal(text)
    except InvalidOperation:
        return ZERO
    return amount if amount.is_finite() else ZERO


@dataclass
class CostLineItem:
    """One itemized charge split into self-pay, pool-pay and personal-account amounts."""

    self_pay: Decimal = ZERO
    pool_pay: Decimal = ZERO
    personal_pay: Decimal = ZERO
    id: Optional[str] = None
    attachment_id: Optional[int] = None

    def __post_init__(self) -> None:
        self.self_pay = to_amount(self.self_pay)
        self.pool_pay = to_amount(self.pool_pay)
        self.personal_pay = to_amount(self.personal_pay)
        if self.id is None:
            self.id = uuid.uuid4().hex[:12]
        else:
            self.id = str(self.id)

    @property
    def total(self) -> Decimal:
        return self.self_pay + self.pool_pay + self.personal_pay

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "self_pay": str(self.self_pay),
            "pool_pay": str(self.pool_pay),
            "personal_pay": str(self.personal_pay),
            "attachment_id": self.attachment_id,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "CostLineItem":
        return cls(
            self_pay=data.get("self_pay"),
            pool_pay=data.get("pool_pay"),
            personal_pay=data.get("personal_pay"),
            id=data.get("id"),
            attachment_id=data.get("attachment_id"),
        )


@dataclass
class Attachment:
    """An image or PDF owned by exactly one record."""

    name: str = ""
    mime_type: str = "application/octet-stream"
    data: bytes = b""
    ocr_text: Optional[str] = None
    ocr_status: str = OcrStatus.IDLE.value
    module: Optional[str] = None
    id: Optional[int] = None
    record_id: Optional[int] = None

    @property
    def is_pdf(self) -> bool:
        return self.mime_type == "application/pdf" or self.name.lower().endswith(".pdf")

    def to_dict(self, include_data: bool = True) -> Dict[str, Any]:
        """Convert to a JSON-safe dictionary. Binary data is base64 encoded."""
        result = {
            "id": self.id,
            "record_id": self.record_id,
            "name": self.name,
            "mime_type": self.mime_type,
            "ocr_text": self.ocr_text,
            "ocr_status": self.ocr_status,
            "module": self.module,
        }
        if include_data:
            result["data"] = base64.b64encode(self.data).decode("ascii")
        return result

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Attachment":
        raw = data.get("data") or b""
        if isinstance(raw, str):
            raw = base64.b64decode(raw, validate=True)
        return cls(
            id=data.get("id"),
            record_id=data.get("record_id"),
            name=data.get("name") or "",
            mime_type=data.get("mime_type") or "application/octet-stream",
            data=raw,
            ocr_text=data.get("ocr_text"),
            ocr_status=data.get("ocr_status") or OcrStatus.IDLE.value,
            module=data.get("module"),
        )


@dataclass
class VisitRecord:
    """One logged medical visit."""

    date: str
    hospital: str = ""
    department: str = ""
    visit_type: str = ""
    title: str = ""
    doctor: Optional[str] = None
    diagnosis: Optional[str] = None
    medical_advice: Optional[str] = None
    notes: str = ""
    cost_items: List[CostLineItem] = field(default_factory=list)
    id: Optional[int] = None
    timestamp: Optional[str] = None
    attachments: List[Attachment] = field(default_factory=list)

    @property
    def cost_self(self) -> Decimal:
        return sum((item.self_pay for item in self.cost_items), ZERO)

    @property
    def cost_pool(self) -> Decimal:
        return sum((item.pool_pay for item in self.cost_items), ZERO)

    @property
    def cost_personal(self) -> Decimal:
        return sum((item.personal_pay for item in self.cost_items), ZERO)

    @property
    def cost_total(self) -> Decimal:
        return self.cost_self + self.cost_pool + self.cost_personal

    def to_dict(self, include_attachments: bool = False) -> Dict[str, Any]:
        """
        Convert the record to a JSON-safe dictionary.

        Amounts are rendered as strings so no precision is lost in transit.
        """
        result = {
            "id": self.id,
            "date": self.date,
            "hospital": self.hospital,
            "department": self.department,
            "doctor": self.doctor,
            "type": self.visit_type,
            "title": self.title,
            "diagnosis": self.diagnosis,
            "medical_advice": self.medical_advice,
            "notes": self.notes,
            "cost_items": [item.to_dict() for item in self.cost_items],
            "cost_self": str(self.cost_self),
            "cost_pool": str(self.cost_pool),
            "cost_personal": str(self.cost_personal),
            "cost_total": str(self.cost_total),
            "timestamp": self.timestamp,
        }
        if include_attachments:
            result["attachments"] = [a.to_dict() for a in self.attachments]
        return result

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "VisitRecord":
        """
        Build a record from a dictionary (API payload, database row or backup).

        Incoming cost totals are ignored; they are recomputed from the line
        items. Rows written before line items existed carry only totals, and
        are upgraded into a single line item.
        """
        items = [
            item if isinstance(item, CostLineItem) else CostLineItem.from_dict(item)
            for item in data.get("cost_items") or []
        ]
        if not items:
            legacy = CostLineItem(
                self_pay=data.get("cost_self"),
                pool_pay=data.get("cost_pool"),
                personal_pay=data.get("cost_personal"),
                id="legacy",
            )
            if legacy.total != ZERO:
                items = [legacy]

        return cls(
            id=data.get("id"),
            date=data.get("date") or "",
            hospital=data.get("hospital") or "",
            department=data.get("department") or "",
            doctor=data.get("doctor"),
            visit_type=data.get("type") or "",
            title=data.get("title") or "",
            diagnosis=data.get("diagnosis"),
            medical_advice=data.get("medical_advice"),
            notes=data.get("notes") or "",
            cost_items=items,
            timestamp=data.get("timestamp"),
        )
