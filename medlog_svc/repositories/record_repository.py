"""
Repository for visit record and attachment database operations.

Records and their attachments live in two tables joined by
attachments.record_id. Every mutation touching both tables runs inside
Database.transaction(), so a failure leaves neither table changed.

Architecture:
    RecordRepository is the data access layer for records and attachments.
    It should be injected via core.dependencies.get_record_repository().

All SQL is encapsulated in this repository - no SQL in service or API layers.
"""
import json
import logging
import sqlite3
from typing import Iterable, List, Optional

from repositories.base import Database
from models.record import Attachment, VisitRecord

logger = logging.getLogger(__name__)

_RECORD_COLUMNS = (
    "id, date, hospital, department, doctor, type, title, diagnosis, "
    "medical_advice, notes, cost_items, cost_self, cost_pool, cost_personal, "
    "cost_total, timestamp"
)
_ATTACHMENT_COLUMNS = "id, record_id, name, mime_type, data, ocr_text, ocr_status, module"
_ATTACHMENT_META_COLUMNS = "id, record_id, name, mime_type, ocr_text, ocr_status, module"

_ORDER = "ORDER BY date DESC, id DESC"


def _casefold(value: Optional[str]) -> str:
    return value.casefold() if value else ""


def _row_to_record(row: sqlite3.Row) -> VisitRecord:
    data = dict(row)
    data["cost_items"] = json.loads(data.get("cost_items") or "[]")
    return VisitRecord.from_dict(data)


def _row_to_attachment(row: sqlite3.Row) -> Attachment:
    keys = row.keys()
    return Attachment(
        id=row["id"],
        record_id=row["record_id"],
        name=row["name"],
        mime_type=row["mime_type"],
        data=bytes(row["data"]) if "data" in keys and row["data"] is not None else b"",
        ocr_text=row["ocr_text"],
        ocr_status=row["ocr_status"],
        module=row["module"],
    )


def _record_params(record: VisitRecord) -> tuple:
    return (
        record.date,
        record.hospital,
        record.department,
        record.doctor,
        record.visit_type,
        record.title,
        record.diagnosis,
        record.medical_advice,
        record.notes,
        json.dumps([item.to_dict() for item in record.cost_items], ensure_ascii=False),
        str(record.cost_self),
        str(record.cost_pool),
        str(record.cost_personal),
        str(record.cost_total),
        record.timestamp,
    )


class RecordRepository:
    """
    Repository for record and attachment CRUD operations.

    It should be instantiated via core.dependencies.get_record_repository().
    """

    def __init__(self, db: Database):
        """
        Initialize the record repository.

        Args:
            db: Database instance for data access.
                Injected via core.dependencies.get_record_repository().
        """
        self._db = db

    # -------------------------------------------------------------------------
    # Records
    # -------------------------------------------------------------------------

    def create(self, record: VisitRecord, attachments: Iterable[Attachment] = ()) -> VisitRecord:
        """
        Insert a record and its attachments in one transaction.

        The record's id and the attachments' ids/record_id are filled in on
        the passed objects.

        Returns:
            VisitRecord: The stored record with attachments attached.
        """
        attachments = list(attachments)
        with self._db.transaction() as conn:
            cursor = conn.execute(
                """
                INSERT INTO records
                (date, hospital, department, doctor, type, title, diagnosis,
                 medical_advice, notes, cost_items, cost_self, cost_pool,
                 cost_personal, cost_total, timestamp)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                _record_params(record),
            )
            record.id = cursor.lastrowid
            self._insert_attachments(conn, record.id, attachments)

        record.attachments = attachments
        logger.info(f"Created record {record.id} with {len(attachments)} attachment(s)")
        return record

    def update(
        self,
        record: VisitRecord,
        new_attachments: Iterable[Attachment] = (),
        deleted_attachment_ids: Optional[Iterable[int]] = None,
    ) -> bool:
        """
        Overwrite a record's fields, add attachments and delete others.

        Only attachments owned by this record are deleted; ids belonging to
        other records are ignored. Passing None for deleted_attachment_ids
        leaves existing attachments untouched.

        Returns:
            bool: False if the record does not exist (nothing is written).
        """
        new_attachments = list(new_attachments)
        with self._db.transaction() as conn:
            cursor = conn.execute(
                """
                UPDATE records SET
                    date = ?, hospital = ?, department = ?, doctor = ?, type = ?,
                    title = ?, diagnosis = ?, medical_advice = ?, notes = ?,
                    cost_items = ?, cost_self = ?, cost_pool = ?, cost_personal = ?,
                    cost_total = ?, timestamp = ?
                WHERE id = ?
                """,
                _record_params(record) + (record.id,),
            )
            if cursor.rowcount == 0:
                return False

            for attachment_id in deleted_attachment_ids or ():
                conn.execute(
                    "DELETE FROM attachments WHERE id = ? AND record_id = ?",
                    (attachment_id, record.id),
                )
            self._insert_attachments(conn, record.id, new_attachments)

        logger.info(f"Updated record {record.id}")
        return True

    def get_by_id(self, record_id: int, include_attachments: bool = True) -> Optional[VisitRecord]:
        """Get a record, with its attachments by default. Returns None if absent."""
        conn = self._db.get_connection()
        try:
            row = conn.execute(
                f"SELECT {_RECORD_COLUMNS} FROM records WHERE id = ?", (record_id,)
            ).fetchone()
            if row is None:
                return None
            record = _row_to_record(row)
            if include_attachments:
                rows = conn.execute(
                    f"SELECT {_ATTACHMENT_COLUMNS} FROM attachments WHERE record_id = ? ORDER BY id",
                    (record_id,),
                ).fetchall()
                record.attachments = [_row_to_attachment(r) for r in rows]
            return record
        finally:
            conn.close()

    def get_all(self) -> List[VisitRecord]:
        """All records, newest visit date first, ties broken by id descending."""
        conn = self._db.get_connection()
        try:
            rows = conn.execute(f"SELECT {_RECORD_COLUMNS} FROM records {_ORDER}").fetchall()
        finally:
            conn.close()
        return [_row_to_record(row) for row in rows]

    def search(self, query: str) -> List[VisitRecord]:
        """
        Case-insensitive substring search.

        Matches on hospital, department, title or type, or on the OCR text of
        any attachment. Each record appears at most once.
        """
        needle = query.casefold()
        conn = self._db.get_connection()
        try:
            conn.create_function("casefold", 1, _casefold, deterministic=True)
            rows = conn.execute(
                f"""
                SELECT {_RECORD_COLUMNS} FROM records
                WHERE instr(casefold(hospital), :q) > 0
                   OR instr(casefold(department), :q) > 0
                   OR instr(casefold(title), :q) > 0
                   OR instr(casefold(type), :q) > 0
                   OR id IN (
                       SELECT record_id FROM attachments
                       WHERE instr(casefold(ocr_text), :q) > 0
                   )
                {_ORDER}
                """,
                {"q": needle},
            ).fetchall()
        finally:
            conn.close()
        return [_row_to_record(row) for row in rows]

    def delete(self, record_id: int) -> bool:
        """
        Delete a record and its attachments in one transaction.

        Returns:
            bool: True if a record was deleted.
        """
        with self._db.transaction() as conn:
            conn.execute("DELETE FROM attachments WHERE record_id = ?", (record_id,))
            cursor = conn.execute("DELETE FROM records WHERE id = ?", (record_id,))
            deleted = cursor.rowcount > 0

        if deleted:
            logger.info(f"Deleted record {record_id}")
        return deleted

    def count(self) -> int:
        conn = self._db.get_connection()
        try:
            return conn.execute("SELECT COUNT(*) FROM records").fetchone()[0]
        finally:
            conn.close()

    # -------------------------------------------------------------------------
    # Attachments
    # -------------------------------------------------------------------------

    def get_attachment(self, attachment_id: int) -> Optional[Attachment]:
        conn = self._db.get_connection()
        try:
            row = conn.execute(
                f"SELECT {_ATTACHMENT_COLUMNS} FROM attachments WHERE id = ?", (attachment_id,)
            ).fetchone()
        finally:
            conn.close()
        return _row_to_attachment(row) if row else None

    def list_attachments(self, record_id: int, include_data: bool = False) -> List[Attachment]:
        """Attachments of one record. Binary data is only loaded when asked for."""
        columns = _ATTACHMENT_COLUMNS if include_data else _ATTACHMENT_META_COLUMNS
        conn = self._db.get_connection()
        try:
            rows = conn.execute(
                f"SELECT {columns} FROM attachments WHERE record_id = ? ORDER BY id",
                (record_id,),
            ).fetchall()
        finally:
            conn.close()
        return [_row_to_attachment(row) for row in rows]

    def update_attachment_ocr(
        self, attachment_id: int, ocr_status: str, ocr_text: Optional[str] = None
    ) -> bool:
        """Set OCR status, and text when given. Returns False if the attachment is gone."""
        conn = self._db.get_connection()
        try:
            if ocr_text is None:
                cursor = conn.execute(
                    "UPDATE attachments SET ocr_status = ? WHERE id = ?",
                    (ocr_status, attachment_id),
                )
            else:
                cursor = conn.execute(
                    "UPDATE attachments SET ocr_status = ?, ocr_text = ? WHERE id = ?",
                    (ocr_status, ocr_text, attachment_id),
                )
            conn.commit()
            return cursor.rowcount > 0
        finally:
            conn.close()

    def get_all_attachments(self) -> List[Attachment]:
        """Every attachment with its data, used for backup export."""
        conn = self._db.get_connection()
        try:
            rows = conn.execute(
                f"SELECT {_ATTACHMENT_COLUMNS} FROM attachments ORDER BY id"
            ).fetchall()
        finally:
            conn.close()
        return [_row_to_attachment(row) for row in rows]

    # -------------------------------------------------------------------------
    # Bulk replace (backup restore)
    # -------------------------------------------------------------------------

    def replace_all(self, records: List[VisitRecord], attachments: List[Attachment]) -> None:
        """
        Clear both tables and insert the given rows with their own ids.

        Runs in a single transaction: if any insert fails, the previous
        contents are kept.
        """
        with self._db.transaction() as conn:
            conn.execute("DELETE FROM attachments")
            conn.execute("DELETE FROM records")
            for record in records:
                conn.execute(
                    """
                    INSERT INTO records
                    (date, hospital, department, doctor, type, title, diagnosis,
                     medical_advice, notes, cost_items, cost_self, cost_pool,
                     cost_personal, cost_total, timestamp, id)
                    VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                    """,
                    _record_params(record) + (record.id,),
                )
            for attachment in attachments:
                conn.execute(
                    """
                    INSERT INTO attachments
                    (id, record_id, name, mime_type, data, ocr_text, ocr_status, module)
                    VALUES (?, ?, ?, ?, ?, ?, ?, ?)
                    """,
                    (
                        attachment.id,
                        attachment.record_id,
                        attachment.name,
                        attachment.mime_type,
                        attachment.data,
                        attachment.ocr_text,
                        attachment.ocr_status,
                        attachment.module,
                    ),
                )

        logger.info(f"Replaced store contents: {len(records)} records, {len(attachments)} attachments")

    @staticmethod
    def _insert_attachments(
        conn: sqlite3.Connection, record_id: int, attachments: List[Attachment]
    ) -> None:
        for attachment in attachments:
            cursor = conn.execute(
                """
                INSERT INTO attachments
                (record_id, name, mime_type, data, ocr_text, ocr_status, module)
                VALUES (?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    record_id,
                    attachment.name,
                    attachment.mime_type,
                    attachment.data,
                    attachment.ocr_text,
                    attachment.ocr_status,
                    attachment.module,
                ),
            )
            attachment.id = cursor.lastrowid
            attachment.record_id = record_id
