"""
Domain models for medication courses and adherence logs.
"""
from dataclasses import dataclass, field
from datetime import date
from enum import Enum
from typing import Any, Dict, List, Optional

from core.datetime_utils import add_days, format_date, parse_calendar_date

DEFAULT_REMINDER_TIMES = ["08:00"]


class MedicationStatus(str, Enum):
    ACTIVE = "active"
    STOPPED = "stopped"
    COMPLETED = "completed"


class DoseStatus(str, Enum):
    TAKEN = "taken"
    SKIPPED = "skipped"


def compute_end_date(start_date: str, duration: int) -> str:
    """
    Last day of a course: start + duration - 1.

    Raises:
        ValueError: If the start date cannot be parsed or duration is not positive.
    """
    start = parse_calendar_date(start_date)
    if start is None:
        raise ValueError(f"Invalid start date: '{start_date}'")
    if duration < 1:
        raise ValueError("Duration must be at least one day")
    return format_date(add_days(start, duration - 1))


@dataclass
class Medication:
    """An ongoing or finished medication course."""

    name: str
    start_date: str
    duration: int = 7
    dosage: str = ""
    per_dose: str = ""
    frequency: str = "每日1次"
    usage: Optional[str] = None
    times: List[str] = field(default_factory=lambda: list(DEFAULT_REMINDER_TIMES))
    status: str = MedicationStatus.ACTIVE.value
    linked_record_id: Optional[int] = None
    notes: str = ""
    id: Optional[int] = None
    end_date: Optional[str] = None
    created_at: Optional[str] = None
    stopped_at: Optional[str] = None
    completed_at: Optional[str] = None

    def __post_init__(self) -> None:
        if self.end_date is None:
            self.end_date = compute_end_date(self.start_date, self.duration)

    @property
    def end(self) -> Optional[date]:
        return parse_calendar_date(self.end_date)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "dosage": self.dosage,
            "per_dose": self.per_dose,
            "frequency": self.frequency,
            "usage": self.usage,
            "times": list(self.times),
            "start_date": self.start_date,
            "duration": self.duration,
            "end_date": self.end_date,
            "status": self.status,
            "linked_record_id": self.linked_record_id,
            "notes": self.notes,
            "created_at": self.created_at,
            "stopped_at": self.stopped_at,
            "completed_at": self.completed_at,
        }


@dataclass
class MedicationLog:
    """One taken/skipped event, unique per (medication_id, date, time)."""

    medication_id: int
    date: str
    time: str
    status: str
    id: Optional[int] = None
    timestamp: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "medication_id": self.medication_id,
            "date": self.date,
            "time": self.time,
            "status": self.status,
            "timestamp": self.timestamp,
        }
