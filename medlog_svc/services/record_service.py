"""
Service layer for visit records and their attachments.

Architecture:
    API Layer (routers) → RecordService → RecordRepository → Database

Dependency Injection:
    RecordService receives its repository via constructor injection.
    Use core.dependencies.get_record_service() in routers with Depends().
"""
import logging
import sqlite3
from datetime import datetime
from typing import Any, Callable, Dict, Iterable, List, Optional

from repositories import RecordRepository
from models.record import Attachment, VisitRecord
from core.datetime_utils import format_iso, parse_calendar_date, utc_now
from core.exceptions import (
    AttachmentNotFoundError,
    DatabaseError,
    InvalidRecordDataError,
    RecordNotFoundError,
)

logger = logging.getLogger(__name__)

# Derived fields; recomputed from cost_items and never taken from input.
_DERIVED_FIELDS = ("cost_self", "cost_pool", "cost_personal", "cost_total")


class RecordService:
    """
    Service layer for record operations.

    Stamps modification times, validates visit dates and turns storage
    failures into DatabaseError so the API reports "Save failed".
    """

    def __init__(
        self,
        record_repository: RecordRepository,
        clock: Callable[[], datetime] = utc_now,
    ):
        """
        Initialize the record service.

        Args:
            record_repository: RecordRepository instance for data access.
                               Injected via core.dependencies.get_record_service().
            clock: Returns the current UTC time. Replaced in tests.
        """
        self._repo = record_repository
        self._clock = clock

    @staticmethod
    def _validate(record: VisitRecord) -> None:
        if parse_calendar_date(record.date) is None:
            raise InvalidRecordDataError(f"Invalid visit date: '{record.date}'")

    def add_record(
        self, record: VisitRecord, attachments: Iterable[Attachment] = ()
    ) -> VisitRecord:
        """
        Store a new record together with its attachments.

        Raises:
            InvalidRecordDataError: If the visit date is missing or unparseable.
            DatabaseError: If the transaction fails; nothing is stored.
        """
        self._validate(record)
        record.id = None
        record.timestamp = format_iso(self._clock())

        try:
            return self._repo.create(record, attachments)
        except sqlite3.Error as e:
            logger.error(f"Failed to add record: {e}")
            raise DatabaseError(operation="add_record", reason=str(e)) from e

    def update_record(
        self,
        record_id: int,
        updates: Dict[str, Any],
        new_attachments: Iterable[Attachment] = (),
        deleted_attachment_ids: Optional[Iterable[int]] = None,
    ) -> VisitRecord:
        """
        Apply field updates, attach new files and drop deleted ones atomically.

        Args:
            record_id: Record to update.
            updates: Field values keyed as in VisitRecord.to_dict(). Keys not
                present keep their stored value. Cost totals are ignored.
            new_attachments: Attachments to add to the record.
            deleted_attachment_ids: Attachments to remove. None leaves all
                existing attachments in place.

        Returns:
            VisitRecord: The updated record with its attachments.

        Raises:
            RecordNotFoundError: If no record has this id.
            InvalidRecordDataError: If the resulting visit date is invalid.
            DatabaseError: If the transaction fails; nothing is changed.
        """
        existing = self._repo.get_by_id(record_id, include_attachments=False)
        if existing is None:
            raise RecordNotFoundError(record_id)

        merged = existing.to_dict()
        merged.update(updates)
        for key in _DERIVED_FIELDS:
            merged.pop(key, None)
        merged["id"] = record_id

        record = VisitRecord.from_dict(merged)
        self._validate(record)
        record.timestamp = format_iso(self._clock())

        try:
            updated = self._repo.update(record, new_attachments, deleted_attachment_ids)
        except sqlite3.Error as e:
            logger.error(f"Failed to update record {record_id}: {e}")
            raise DatabaseError(operation="update_record", reason=str(e)) from e

        if not updated:
            raise RecordNotFoundError(record_id)

        logger.info(f"Updated record {record_id}")
        return self.get_record(record_id)

    def get_record(self, record_id: int) -> VisitRecord:
        """
        Get a record with its attachments.

        Raises:
            RecordNotFoundError: If no record has this id.
        """
        record = self._repo.get_by_id(record_id)
        if record is None:
            raise RecordNotFoundError(record_id)
        return record

    def get_all_records(self) -> List[VisitRecord]:
        return self._repo.get_all()

    def search_records(self, query: Optional[str]) -> List[VisitRecord]:
        """Substring search over record fields and OCR text. Blank query returns everything."""
        if query is None or not query.strip():
            return self.get_all_records()
        return self._repo.search(query.strip())

    def delete_record(self, record_id: int) -> None:
        """
        Delete a record and all of its attachments.

        Raises:
            RecordNotFoundError: If no record has this id.
            DatabaseError: If the transaction fails; nothing is deleted.
        """
        try:
            deleted = self._repo.delete(record_id)
        except sqlite3.Error as e:
            logger.error(f"Failed to delete record {record_id}: {e}")
            raise DatabaseError(operation="delete_record", reason=str(e)) from e

        if not deleted:
            raise RecordNotFoundError(record_id)

    def count_records(self) -> int:
        return self._repo.count()

    def get_attachment(self, record_id: int, attachment_id: int) -> Attachment:
        """
        Get one attachment of a record, including its data.

        Raises:
            AttachmentNotFoundError: If the attachment does not exist or
                belongs to another record.
        """
        attachment = self._repo.get_attachment(attachment_id)
        if attachment is None or attachment.record_id != record_id:
            raise AttachmentNotFoundError(attachment_id)
        return attachment

    def list_attachments(self, record_id: int) -> List[Attachment]:
        """Attachment metadata for a record (no binary data)."""
        if self._repo.get_by_id(record_id, include_attachments=False) is None:
            raise RecordNotFoundError(record_id)
        return self._repo.list_attachments(record_id)
