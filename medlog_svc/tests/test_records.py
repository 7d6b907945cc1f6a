"""
Tests for the record store: RecordRepository and RecordService.
"""
import sqlite3
from decimal import Decimal
from unittest.mock import MagicMock

import pytest

from models.record import Attachment, CostLineItem, OcrStatus, VisitRecord
from services import RecordService
from core.exceptions import (
    AttachmentNotFoundError,
    DatabaseError,
    InvalidRecordDataError,
    RecordNotFoundError,
)


def _attachment(name="scan.jpg", data=b"image-bytes", **kwargs):
    return Attachment(name=name, mime_type="image/jpeg", data=data, **kwargs)


# =============================================================================
# ADD / GET
# =============================================================================

class TestAddRecord:

    def test_add_record_with_attachments(self, record_service):
        record = record_service.add_record(
            VisitRecord(date="2024-03-01", hospital="协和医院", title="补牙"),
            [_attachment("a.jpg"), _attachment("b.jpg")],
        )

        assert record.id is not None
        assert record.timestamp == "2024-06-15T09:30:00Z"
        stored = record_service.get_record(record.id)
        assert stored.hospital == "协和医院"
        assert [a.name for a in stored.attachments] == ["a.jpg", "b.jpg"]
        assert all(a.record_id == record.id for a in stored.attachments)
        assert stored.attachments[0].data == b"image-bytes"
        assert stored.attachments[0].ocr_status == OcrStatus.IDLE.value

    def test_cost_items_round_trip_with_derived_totals(self, record_service):
        record = record_service.add_record(VisitRecord(date="2024-03-01", cost_items=[
            CostLineItem(self_pay="20", pool_pay="60", personal_pay="20"),
            CostLineItem(self_pay="12.5"),
        ]))

        stored = record_service.get_record(record.id)
        assert len(stored.cost_items) == 2
        assert stored.cost_total == Decimal("112.5")
        assert stored.cost_self == Decimal("32.5")

    @pytest.mark.parametrize("date", ["", "not-a-date", "2024-13-45"])
    def test_invalid_date_rejected(self, record_service, date):
        with pytest.raises(InvalidRecordDataError):
            record_service.add_record(VisitRecord(date=date))
        assert record_service.count_records() == 0

    def test_get_missing_record_raises(self, record_service):
        with pytest.raises(RecordNotFoundError):
            record_service.get_record(404)

    def test_storage_failure_becomes_database_error(self):
        repo = MagicMock()
        repo.create.side_effect = sqlite3.OperationalError("disk I/O error")
        service = RecordService(record_repository=repo)

        with pytest.raises(DatabaseError) as exc_info:
            service.add_record(VisitRecord(date="2024-03-01"))
        assert "Save failed" in exc_info.value.detail
        assert "disk I/O error" in exc_info.value.detail


# =============================================================================
# ORDERING / SEARCH
# =============================================================================

class TestOrderingAndSearch:

    def test_all_records_newest_first(self, make_record, record_service):
        make_record("2024-01-10", title="old")
        make_record("2024-05-01", title="new")
        make_record("2024-03-15", title="middle")

        assert [r.title for r in record_service.get_all_records()] == ["new", "middle", "old"]

    def test_same_date_newest_id_first(self, make_record, record_service):
        first = make_record("2024-05-01")
        second = make_record("2024-05-01")

        assert [r.id for r in record_service.get_all_records()] == [second.id, first.id]

    @pytest.mark.parametrize("query", ["", "   ", None])
    def test_blank_search_equals_get_all(self, make_record, record_service, query):
        make_record("2024-01-10", hospital="A")
        make_record("2024-05-01", hospital="B")

        expected = [r.id for r in record_service.get_all_records()]
        assert [r.id for r in record_service.search_records(query)] == expected

    def test_search_matches_fields_case_insensitively(self, make_record, record_service):
        make_record("2024-01-10", hospital="Peking Union Hospital")
        make_record("2024-02-10", department="口腔科")
        make_record("2024-03-10", title="Dental cleaning")
        make_record("2024-04-10", visit_type="体检")

        assert len(record_service.search_records("union")) == 1
        assert len(record_service.search_records("口腔")) == 1
        assert len(record_service.search_records("DENTAL")) == 1
        assert len(record_service.search_records("体检")) == 1
        assert record_service.search_records("nothing matches") == []

    def test_search_unions_ocr_matches_without_duplicates(self, record_service, record_repo):
        both = record_service.add_record(
            VisitRecord(date="2024-01-10", title="blood test"),
            [_attachment(ocr_text="Blood glucose 5.4", ocr_status="done"),
             _attachment(ocr_text="blood pressure", ocr_status="done")],
        )
        ocr_only = record_service.add_record(
            VisitRecord(date="2024-02-10", title="checkup"),
            [_attachment(ocr_text="BLOOD count", ocr_status="done")],
        )
        record_service.add_record(VisitRecord(date="2024-03-10", title="x-ray"))

        ids = [r.id for r in record_service.search_records("blood")]
        assert ids == [ocr_only.id, both.id]


# =============================================================================
# UPDATE
# =============================================================================

class TestUpdateRecord:

    def test_only_given_fields_change(self, make_record, record_service):
        record = make_record("2024-03-01", hospital="协和医院", title="补牙")

        updated = record_service.update_record(record.id, {"title": "根管治疗"})

        assert updated.title == "根管治疗"
        assert updated.hospital == "协和医院"
        assert updated.date == "2024-03-01"

    def test_totals_recomputed_and_input_totals_ignored(self, make_record, record_service):
        record = make_record("2024-03-01", self_pay="10")

        updated = record_service.update_record(record.id, {
            "cost_items": [{"self_pay": "30"}, {"pool_pay": "70"}],
            "cost_total": "1",
        })

        assert updated.cost_total == Decimal("100")
        assert updated.cost_self == Decimal("30")

    def test_add_and_delete_attachments(self, record_service):
        record = record_service.add_record(
            VisitRecord(date="2024-03-01"), [_attachment("keep.jpg"), _attachment("drop.jpg")]
        )
        drop_id = record.attachments[1].id

        updated = record_service.update_record(
            record.id, {}, new_attachments=[_attachment("new.jpg")], deleted_attachment_ids=[drop_id]
        )

        assert sorted(a.name for a in updated.attachments) == ["keep.jpg", "new.jpg"]

    def test_deleting_another_records_attachment_is_ignored(self, record_service):
        mine = record_service.add_record(VisitRecord(date="2024-03-01"))
        other = record_service.add_record(VisitRecord(date="2024-03-02"), [_attachment()])

        record_service.update_record(mine.id, {}, deleted_attachment_ids=[other.attachments[0].id])

        assert len(record_service.get_record(other.id).attachments) == 1

    def test_none_deleted_ids_keeps_attachments(self, record_service):
        record = record_service.add_record(VisitRecord(date="2024-03-01"), [_attachment()])

        updated = record_service.update_record(record.id, {"notes": "复查"}, deleted_attachment_ids=None)

        assert len(updated.attachments) == 1

    def test_update_missing_record_raises(self, record_service):
        with pytest.raises(RecordNotFoundError):
            record_service.update_record(99, {"title": "x"})

    def test_update_to_invalid_date_rejected(self, make_record, record_service):
        record = make_record("2024-03-01")
        with pytest.raises(InvalidRecordDataError):
            record_service.update_record(record.id, {"date": "garbage"})
        assert record_service.get_record(record.id).date == "2024-03-01"


# =============================================================================
# DELETE / ATTACHMENTS
# =============================================================================

class TestDeleteRecord:

    @pytest.mark.parametrize("attachment_count", [0, 1, 3])
    def test_delete_removes_all_attachments(self, record_service, record_repo, attachment_count):
        record = record_service.add_record(
            VisitRecord(date="2024-03-01"),
            [_attachment(f"{i}.jpg") for i in range(attachment_count)],
        )

        record_service.delete_record(record.id)

        assert record_repo.list_attachments(record.id) == []
        assert record_repo.get_all_attachments() == []
        with pytest.raises(RecordNotFoundError):
            record_service.get_record(record.id)

    def test_delete_missing_record_raises(self, record_service):
        with pytest.raises(RecordNotFoundError):
            record_service.delete_record(12)


# =============================================================================
# ALL-OR-NOTHING WRITES
# =============================================================================

class TestAllOrNothingWrites:
    """A failing statement inside a write leaves the store exactly as it was."""

    def test_failed_add_stores_nothing(self, record_service, record_repo):
        with pytest.raises(DatabaseError):
            record_service.add_record(
                VisitRecord(date="2024-03-01", hospital="协和医院"),
                [_attachment("a.jpg"), _attachment("b.jpg", data=None)],
            )

        assert record_service.count_records() == 0
        assert record_repo.get_all_attachments() == []

    def test_failed_update_keeps_fields_and_attachments(self, record_service):
        record = record_service.add_record(
            VisitRecord(date="2024-03-01", hospital="协和医院"),
            [_attachment("a.jpg"), _attachment("b.jpg")],
        )
        before = record_service.get_record(record.id)

        with pytest.raises(DatabaseError):
            record_service.update_record(
                record.id,
                {"hospital": "人民医院", "title": "复查"},
                new_attachments=[_attachment("c.jpg", data=None)],
                deleted_attachment_ids=[before.attachments[1].id],
            )

        after = record_service.get_record(record.id)
        assert after.hospital == "协和医院"
        assert after.title == ""
        assert [a.name for a in after.attachments] == ["a.jpg", "b.jpg"]
        assert after.to_dict(include_attachments=True) == before.to_dict(include_attachments=True)

    def test_failed_delete_keeps_record_and_attachments(self, record_service, record_repo, temp_db):
        record = record_service.add_record(
            VisitRecord(date="2024-03-01"),
            [_attachment("a.jpg"), _attachment("b.jpg")],
        )
        # Attachments are deleted first; the record delete then aborts.
        conn = temp_db.get_connection()
        try:
            conn.execute(
                "CREATE TRIGGER block_record_delete BEFORE DELETE ON records "
                "BEGIN SELECT RAISE(ABORT, 'record delete blocked'); END"
            )
            conn.commit()
        finally:
            conn.close()

        with pytest.raises(DatabaseError) as exc_info:
            record_service.delete_record(record.id)

        assert "record delete blocked" in exc_info.value.detail
        assert record_service.get_record(record.id).id == record.id
        assert len(record_repo.list_attachments(record.id)) == 2


class TestAttachments:

    def test_get_attachment_checks_owner(self, record_service):
        first = record_service.add_record(VisitRecord(date="2024-03-01"), [_attachment()])
        second = record_service.add_record(VisitRecord(date="2024-03-02"))
        attachment_id = first.attachments[0].id

        assert record_service.get_attachment(first.id, attachment_id).data == b"image-bytes"
        with pytest.raises(AttachmentNotFoundError):
            record_service.get_attachment(second.id, attachment_id)
        with pytest.raises(AttachmentNotFoundError):
            record_service.get_attachment(first.id, 9999)

    def test_list_attachments_omits_data(self, record_service):
        record = record_service.add_record(VisitRecord(date="2024-03-01"), [_attachment()])

        listed = record_service.list_attachments(record.id)

        assert len(listed) == 1
        assert listed[0].data == b""
        assert listed[0].name == "scan.jpg"

    def test_list_attachments_of_missing_record(self, record_service):
        with pytest.raises(RecordNotFoundError):
            record_service.list_attachments(5)

    def test_update_attachment_ocr(self, record_service, record_repo):
        record = record_service.add_record(VisitRecord(date="2024-03-01"), [_attachment()])
        attachment_id = record.attachments[0].id

        assert record_repo.update_attachment_ocr(attachment_id, "done", "诊断：龋齿")
        stored = record_repo.get_attachment(attachment_id)
        assert stored.ocr_status == "done"
        assert stored.ocr_text == "诊断：龋齿"
        assert not record_repo.update_attachment_ocr(9999, "done")


# =============================================================================
# SCHEMA
# =============================================================================

def test_schema_upgrade_adds_missing_columns(tmp_path):
    """An attachments table from before OCR status and module existed gets the new columns."""
    from repositories import Database

    db_path = str(tmp_path / "old.db")
    conn = sqlite3.connect(db_path)
    conn.execute(
        "CREATE TABLE attachments (id INTEGER PRIMARY KEY AUTOINCREMENT, record_id INTEGER, "
        "name TEXT, mime_type TEXT, data BLOB, ocr_text TEXT)"
    )
    conn.commit()
    conn.close()

    db = Database(db_path=db_path)

    conn = db.get_connection()
    try:
        columns = {row["name"] for row in conn.execute("PRAGMA table_info(attachments)")}
    finally:
        conn.close()
    assert {"ocr_status", "module"} <= columns
