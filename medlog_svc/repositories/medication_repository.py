"""
Repository for medication courses and adherence logs.

Deleting a medication removes its logs in the same transaction. Log writes
are upserts on (medication_id, date, time), so tapping the same dose twice
leaves exactly one row carrying the latest status.
"""
import json
import logging
import sqlite3
from typing import List, Optional

from repositories.base import Database
from models.medication import Medication, MedicationLog, MedicationStatus

logger = logging.getLogger(__name__)

_MEDICATION_COLUMNS = (
    "id, name, dosage, per_dose, frequency, usage, times, start_date, duration, "
    "end_date, status, linked_record_id, notes, created_at, stopped_at, completed_at"
)
_LOG_COLUMNS = "id, medication_id, date, time, status, timestamp"


def _row_to_medication(row: sqlite3.Row) -> Medication:
    data = dict(row)
    data["times"] = json.loads(data.get("times") or "[]")
    return Medication(**data)


def _row_to_log(row: sqlite3.Row) -> MedicationLog:
    return MedicationLog(**dict(row))


class MedicationRepository:
    """
    Repository for medication and medication log CRUD operations.

    It should be instantiated via core.dependencies.get_medication_repository().
    """

    def __init__(self, db: Database):
        self._db = db

    # -------------------------------------------------------------------------
    # Medications
    # -------------------------------------------------------------------------

    def create(self, medication: Medication) -> Medication:
        """Insert a medication and fill in its id."""
        conn = self._db.get_connection()
        try:
            cursor = conn.execute(
                """
                INSERT INTO medications
                (name, dosage, per_dose, frequency, usage, times, start_date, duration,
                 end_date, status, linked_record_id, notes, created_at, stopped_at, completed_at)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    medication.name,
                    medication.dosage,
                    medication.per_dose,
                    medication.frequency,
                    medication.usage,
                    json.dumps(medication.times),
                    medication.start_date,
                    medication.duration,
                    medication.end_date,
                    medication.status,
                    medication.linked_record_id,
                    medication.notes,
                    medication.created_at,
                    medication.stopped_at,
                    medication.completed_at,
                ),
            )
            conn.commit()
            medication.id = cursor.lastrowid
        finally:
            conn.close()

        logger.info(f"Created medication {medication.id}")
        return medication

    def update(self, medication: Medication) -> bool:
        """
        Overwrite every field of an existing medication.

        Returns:
            bool: False if no medication has this id.
        """
        conn = self._db.get_connection()
        try:
            cursor = conn.execute(
                """
                UPDATE medications SET
                    name = ?, dosage = ?, per_dose = ?, frequency = ?, usage = ?,
                    times = ?, start_date = ?, duration = ?, end_date = ?, status = ?,
                    linked_record_id = ?, notes = ?, stopped_at = ?, completed_at = ?
                WHERE id = ?
                """,
                (
                    medication.name,
                    medication.dosage,
                    medication.per_dose,
                    medication.frequency,
                    medication.usage,
                    json.dumps(medication.times),
                    medication.start_date,
                    medication.duration,
                    medication.end_date,
                    medication.status,
                    medication.linked_record_id,
                    medication.notes,
                    medication.stopped_at,
                    medication.completed_at,
                    medication.id,
                ),
            )
            conn.commit()
            return cursor.rowcount > 0
        finally:
            conn.close()

    def get_by_id(self, medication_id: int) -> Optional[Medication]:
        conn = self._db.get_connection()
        try:
            row = conn.execute(
                f"SELECT {_MEDICATION_COLUMNS} FROM medications WHERE id = ?",
                (medication_id,),
            ).fetchone()
        finally:
            conn.close()
        return _row_to_medication(row) if row else None

    def get_all(self, status: Optional[str] = None) -> List[Medication]:
        """All medications, most recently created first. Optionally filtered by status."""
        query = f"SELECT {_MEDICATION_COLUMNS} FROM medications"
        params: list = []
        if status:
            query += " WHERE status = ?"
            params.append(status)
        query += " ORDER BY created_at DESC, id DESC"

        conn = self._db.get_connection()
        try:
            rows = conn.execute(query, params).fetchall()
        finally:
            conn.close()
        return [_row_to_medication(row) for row in rows]

    def get_active(self) -> List[Medication]:
        return self.get_all(status=MedicationStatus.ACTIVE.value)

    def delete(self, medication_id: int) -> bool:
        """
        Delete a medication and all of its logs in one transaction.

        Returns:
            bool: True if a medication was deleted.
        """
        with self._db.transaction() as conn:
            conn.execute("DELETE FROM medication_logs WHERE medication_id = ?", (medication_id,))
            cursor = conn.execute("DELETE FROM medications WHERE id = ?", (medication_id,))
            deleted = cursor.rowcount > 0

        if deleted:
            logger.info(f"Deleted medication {medication_id} and its logs")
        return deleted

    # -------------------------------------------------------------------------
    # Logs
    # -------------------------------------------------------------------------

    def upsert_log(self, log: MedicationLog) -> MedicationLog:
        """
        Insert a log, or overwrite status and timestamp of the existing log
        for the same (medication_id, date, time).
        """
        conn = self._db.get_connection()
        try:
            conn.execute(
                """
                INSERT INTO medication_logs (medication_id, date, time, status, timestamp)
                VALUES (?, ?, ?, ?, ?)
                ON CONFLICT (medication_id, date, time)
                DO UPDATE SET status = excluded.status, timestamp = excluded.timestamp
                """,
                (log.medication_id, log.date, log.time, log.status, log.timestamp),
            )
            row = conn.execute(
                f"""
                SELECT {_LOG_COLUMNS} FROM medication_logs
                WHERE medication_id = ? AND date = ? AND time = ?
                """,
                (log.medication_id, log.date, log.time),
            ).fetchone()
            conn.commit()
        finally:
            conn.close()
        return _row_to_log(row)

    def delete_log(self, medication_id: int, date: str, time: str) -> bool:
        """Remove the log for this key. Returns False (and does nothing) if absent."""
        conn = self._db.get_connection()
        try:
            cursor = conn.execute(
                "DELETE FROM medication_logs WHERE medication_id = ? AND date = ? AND time = ?",
                (medication_id, date, time),
            )
            conn.commit()
            return cursor.rowcount > 0
        finally:
            conn.close()

    def get_logs_between(self, start_date: str, end_date: Optional[str] = None) -> List[MedicationLog]:
        """Logs dated on or after start_date, and on or before end_date when given."""
        query = f"SELECT {_LOG_COLUMNS} FROM medication_logs WHERE date >= ?"
        params = [start_date]
        if end_date is not None:
            query += " AND date <= ?"
            params.append(end_date)
        query += " ORDER BY date DESC, time ASC, id ASC"

        conn = self._db.get_connection()
        try:
            rows = conn.execute(query, params).fetchall()
        finally:
            conn.close()
        return [_row_to_log(row) for row in rows]

    def get_logs_for_medication(self, medication_id: int) -> List[MedicationLog]:
        conn = self._db.get_connection()
        try:
            rows = conn.execute(
                f"""
                SELECT {_LOG_COLUMNS} FROM medication_logs
                WHERE medication_id = ?
                ORDER BY date DESC, time ASC
                """,
                (medication_id,),
            ).fetchall()
        finally:
            conn.close()
        return [_row_to_log(row) for row in rows]
