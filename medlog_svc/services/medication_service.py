"""
Service layer for medication courses and dose logging.

Architecture:
    API Layer (routers) → MedicationService → MedicationRepository → Database

"Today" is the UTC calendar date of the service clock, matching how dose
logs are dated when they are written.
"""
import logging
import math
import re
import sqlite3
from dataclasses import dataclass
from datetime import datetime, time as clock_time, timezone
from typing import Any, Callable, Dict, List, Optional

from repositories import MedicationRepository
from models.medication import (
    DoseStatus,
    Medication,
    MedicationLog,
    MedicationStatus,
    compute_end_date,
)
from core.datetime_utils import add_days, format_date, format_iso, parse_calendar_date, utc_now
from core.exceptions import (
    DatabaseError,
    InvalidMedicationDataError,
    MedicationNotFoundError,
)

logger = logging.getLogger(__name__)

_TIME_PATTERN = re.compile(r"^([01]\d|2[0-3]):[0-5]\d$")

# Fields a caller may not set through update_medication.
_PROTECTED_FIELDS = ("id", "end_date", "created_at")

SECONDS_PER_DAY = 86400
UPCOMING_WINDOW_SECONDS = 3600


@dataclass
class DoseSlot:
    """One of today's reminder times for a medication."""

    time: str
    is_past: bool
    is_coming: bool

    def to_dict(self) -> Dict[str, Any]:
        return {"time": self.time, "is_past": self.is_past, "is_coming": self.is_coming}


def _validate_times(times: List[str]) -> None:
    for value in times:
        if not _TIME_PATTERN.match(value):
            raise InvalidMedicationDataError(f"Invalid reminder time: '{value}' (expected HH:MM)")


class MedicationService:
    """Business logic for medications and their adherence logs."""

    def __init__(
        self,
        medication_repository: MedicationRepository,
        clock: Callable[[], datetime] = utc_now,
    ):
        self._repo = medication_repository
        self._clock = clock

    # -------------------------------------------------------------------------
    # Medications
    # -------------------------------------------------------------------------

    def add_medication(self, medication: Medication) -> Medication:
        """
        Start a new medication course.

        The course is always created active; end_date is derived from
        start_date and duration.

        Raises:
            InvalidMedicationDataError: If the name, dates or times are invalid.
        """
        if not medication.name or not medication.name.strip():
            raise InvalidMedicationDataError("Medication name is required")
        _validate_times(medication.times)
        try:
            medication.end_date = compute_end_date(medication.start_date, medication.duration)
        except ValueError as e:
            raise InvalidMedicationDataError(str(e)) from e

        medication.id = None
        medication.status = MedicationStatus.ACTIVE.value
        medication.created_at = format_iso(self._clock())
        medication.stopped_at = None
        medication.completed_at = None

        try:
            return self._repo.create(medication)
        except sqlite3.Error as e:
            logger.error(f"Failed to add medication: {e}")
            raise DatabaseError(operation="add_medication", reason=str(e)) from e

    def get_all_medications(self, status: Optional[str] = None) -> List[Medication]:
        return self._repo.get_all(status=status)

    def get_active_medications(self) -> List[Medication]:
        return self._repo.get_active()

    def get_medication(self, medication_id: int) -> Medication:
        medication = self._repo.get_by_id(medication_id)
        if medication is None:
            raise MedicationNotFoundError(medication_id)
        return medication

    def update_medication(self, medication_id: int, updates: Dict[str, Any]) -> Medication:
        """
        Update fields of a medication. end_date is recomputed from the
        resulting start_date and duration.

        Raises:
            MedicationNotFoundError: If no medication has this id.
            InvalidMedicationDataError: If the resulting values are invalid.
        """
        medication = self.get_medication(medication_id)
        for key, value in updates.items():
            if key in _PROTECTED_FIELDS or not hasattr(medication, key):
                continue
            setattr(medication, key, value)

        if not medication.name or not medication.name.strip():
            raise InvalidMedicationDataError("Medication name is required")
        _validate_times(medication.times)
        try:
            medication.end_date = compute_end_date(medication.start_date, medication.duration)
        except ValueError as e:
            raise InvalidMedicationDataError(str(e)) from e

        try:
            self._repo.update(medication)
        except sqlite3.Error as e:
            logger.error(f"Failed to update medication {medication_id}: {e}")
            raise DatabaseError(operation="update_medication", reason=str(e)) from e
        return medication

    def delete_medication(self, medication_id: int) -> None:
        """Delete a medication together with all of its logs."""
        try:
            deleted = self._repo.delete(medication_id)
        except sqlite3.Error as e:
            logger.error(f"Failed to delete medication {medication_id}: {e}")
            raise DatabaseError(operation="delete_medication", reason=str(e)) from e
        if not deleted:
            raise MedicationNotFoundError(medication_id)

    def stop_medication(self, medication_id: int) -> Medication:
        return self._transition(medication_id, MedicationStatus.STOPPED)

    def complete_medication(self, medication_id: int) -> Medication:
        return self._transition(medication_id, MedicationStatus.COMPLETED)

    def _transition(self, medication_id: int, status: MedicationStatus) -> Medication:
        medication = self.get_medication(medication_id)
        medication.status = status.value
        stamp = format_iso(self._clock())
        if status is MedicationStatus.STOPPED:
            medication.stopped_at = stamp
        else:
            medication.completed_at = stamp
        self._repo.update(medication)
        logger.info(f"Medication {medication_id} marked {status.value}")
        return medication

    # -------------------------------------------------------------------------
    # Course progress
    # -------------------------------------------------------------------------

    def days_remaining(self, medication: Medication) -> int:
        """
        Whole days until the course ends, rounded up and never negative.

        The end date is taken as midnight UTC at the start of that day.
        """
        end = medication.end
        if end is None:
            return 0
        end_at = datetime.combine(end, clock_time.min, tzinfo=timezone.utc)
        diff = math.ceil((end_at - self._clock()).total_seconds() / SECONDS_PER_DAY)
        return diff if diff > 0 else 0

    def get_today_doses(self, medication: Medication) -> List[DoseSlot]:
        """Today's reminder times, flagged as already past or coming within the hour."""
        now = self._clock()
        slots = []
        for value in medication.times:
            hour, minute = value.split(":")
            dose_at = now.replace(hour=int(hour), minute=int(minute), second=0, microsecond=0)
            delta = (dose_at - now).total_seconds()
            slots.append(DoseSlot(
                time=value,
                is_past=dose_at < now,
                is_coming=0 < delta < UPCOMING_WINDOW_SECONDS,
            ))
        return slots

    # -------------------------------------------------------------------------
    # Logs
    # -------------------------------------------------------------------------

    def add_medication_log(
        self, medication_id: int, date: str, time: str, status: str
    ) -> MedicationLog:
        """
        Record a taken/skipped dose. Logging the same (medication, date, time)
        again overwrites the earlier status.

        Raises:
            MedicationNotFoundError: If the medication does not exist.
            InvalidMedicationDataError: If date, time or status is invalid.
        """
        if status not in {s.value for s in DoseStatus}:
            raise InvalidMedicationDataError(f"Invalid dose status: '{status}'")
        if parse_calendar_date(date) is None:
            raise InvalidMedicationDataError(f"Invalid log date: '{date}'")
        _validate_times([time])
        self.get_medication(medication_id)

        log = MedicationLog(
            medication_id=medication_id,
            date=date[:10],
            time=time,
            status=status,
            timestamp=format_iso(self._clock()),
        )
        try:
            return self._repo.upsert_log(log)
        except sqlite3.Error as e:
            logger.error(f"Failed to log dose for medication {medication_id}: {e}")
            raise DatabaseError(operation="add_medication_log", reason=str(e)) from e

    def delete_medication_log(self, medication_id: int, date: str, time: str) -> bool:
        """Undo a dose log. Returns False when there was nothing to delete."""
        return self._repo.delete_log(medication_id, date[:10], time)

    def today(self) -> str:
        return format_date(self._clock().date())

    def get_today_logs(self) -> List[MedicationLog]:
        today = self.today()
        return self._repo.get_logs_between(today, today)

    def get_recent_logs(self, days: int = 7) -> List[MedicationLog]:
        """Logs dated from `days` days ago onward."""
        start = add_days(self._clock().date(), -days)
        return self._repo.get_logs_between(format_date(start))

    def get_medication_logs(self, medication_id: int) -> List[MedicationLog]:
        self.get_medication(medication_id)
        return self._repo.get_logs_for_medication(medication_id)
