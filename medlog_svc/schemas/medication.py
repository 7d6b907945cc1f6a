"""
Pydantic schemas for medication and dose log API operations.
"""
from typing import List, Optional

from pydantic import BaseModel, Field

from models.medication import DEFAULT_REMINDER_TIMES, Medication, MedicationLog

TIME_PATTERN = r"^([01]\d|2[0-3]):[0-5]\d$"


class MedicationCreate(BaseModel):
    """Schema for starting a medication course."""
    name: str = Field(..., min_length=1, max_length=200, examples=["阿莫西林胶囊"])
    start_date: str = Field(..., min_length=10, description="First day of the course (YYYY-MM-DD)", examples=["2024-03-01"])
    duration: int = Field(7, ge=1, le=3650, description="Course length in days")
    dosage: str = Field("", max_length=100, examples=["0.25g"])
    per_dose: str = Field("", max_length=100, examples=["2粒"])
    frequency: str = Field("每日1次", max_length=50)
    usage: Optional[str] = Field(None, max_length=100, examples=["饭后服用"])
    times: List[str] = Field(default_factory=lambda: list(DEFAULT_REMINDER_TIMES))
    linked_record_id: Optional[int] = None
    notes: str = ""

    def to_medication(self) -> Medication:
        return Medication(**self.model_dump())


class MedicationUpdate(BaseModel):
    """Schema for updating a medication. Only the fields sent are changed."""
    name: Optional[str] = Field(None, min_length=1, max_length=200)
    start_date: Optional[str] = Field(None, min_length=10)
    duration: Optional[int] = Field(None, ge=1, le=3650)
    dosage: Optional[str] = Field(None, max_length=100)
    per_dose: Optional[str] = Field(None, max_length=100)
    frequency: Optional[str] = Field(None, max_length=50)
    usage: Optional[str] = Field(None, max_length=100)
    times: Optional[List[str]] = None
    linked_record_id: Optional[int] = None
    notes: Optional[str] = None


class DoseSlotResponse(BaseModel):
    time: str
    is_past: bool
    is_coming: bool


class MedicationResponse(BaseModel):
    id: int
    name: str
    dosage: str
    per_dose: str
    frequency: str
    usage: Optional[str] = None
    times: List[str]
    start_date: str
    duration: int
    end_date: str
    status: str
    linked_record_id: Optional[int] = None
    notes: str
    created_at: Optional[str] = None
    stopped_at: Optional[str] = None
    completed_at: Optional[str] = None
    days_remaining: int
    today_doses: List[DoseSlotResponse]


class MedicationLogCreate(BaseModel):
    """A taken/skipped tap for one dose."""
    date: str = Field(..., min_length=10, max_length=10, description="Dose date (YYYY-MM-DD)", examples=["2024-03-01"])
    time: str = Field(..., pattern=TIME_PATTERN, description="Reminder time (HH:MM)", examples=["08:00"])
    status: str = Field(..., pattern=r"^(taken|skipped)$", examples=["taken"])


class MedicationLogResponse(BaseModel):
    id: int
    medication_id: int
    date: str
    time: str
    status: str
    timestamp: Optional[str] = None

    @classmethod
    def from_log(cls, log: MedicationLog) -> "MedicationLogResponse":
        return cls(**log.to_dict())


class PrescriptionParseRequest(BaseModel):
    text: str = Field(..., min_length=1, max_length=10000, description="OCR text of a prescription")


class PrescriptionParseResponse(BaseModel):
    """Fields found in the prescription text; missing ones are null."""
    name: Optional[str] = None
    dosage: Optional[str] = None
    per_dose: Optional[str] = None
    frequency: Optional[str] = None
    times: Optional[List[str]] = None
    usage: Optional[str] = None
    duration: Optional[int] = None
