"""
Tests for encrypted backup and restore: BackupCodec, BackupManager and BackupService.
"""
import base64
from datetime import datetime, timedelta

import pytest

from models.record import Attachment, CostLineItem, VisitRecord
from services import BackupCodec, BackupConfig, BackupManager
from services.backup_service import MAGIC, build_payload, parse_payload
from core.exceptions import (
    BackupDecryptError,
    BackupNotFoundError,
    BackupPasswordRequiredError,
    InvalidBackupPreferencesError,
    RestoreNotConfirmedError,
)

PASSWORD = "correct horse battery staple"


@pytest.fixture
def codec():
    return BackupCodec(iterations=1000)


@pytest.fixture
def populated(record_service):
    """Two records, one with an attachment, stored in the live database."""
    first = record_service.add_record(
        VisitRecord(
            date="2024-03-01",
            hospital="协和医院",
            department="口腔科",
            visit_type="复诊",
            title="补牙",
            diagnosis="龋齿",
            cost_items=[CostLineItem(self_pay="20", pool_pay="80", id="item-1")],
        ),
        [Attachment(name="receipt.jpg", mime_type="image/jpeg", data=b"\xff\xd8jpeg",
                    ocr_text="自费 20.00", ocr_status="done", module="cost_ocr")],
    )
    second = record_service.add_record(VisitRecord(date="2024-05-20", hospital="人民医院"))
    return [first, second]


# =============================================================================
# CODEC
# =============================================================================

class TestBackupCodec:

    def test_round_trip(self, codec):
        payload = {"version": 1, "records": [{"id": 1, "title": "补牙"}], "attachments": []}

        blob = codec.encrypt(payload, BackupConfig(password=PASSWORD))

        assert codec.decrypt(blob, BackupConfig(password=PASSWORD)) == payload

    def test_blob_is_base64_with_magic_header(self, codec):
        blob = codec.encrypt({"records": []}, BackupConfig(password=PASSWORD))
        assert base64.b64decode(blob)[:4] == MAGIC

    def test_same_payload_encrypts_differently(self, codec):
        config = BackupConfig(password=PASSWORD)
        assert codec.encrypt({"a": 1}, config) != codec.encrypt({"a": 1}, config)

    def test_wrong_password_fails(self, codec):
        blob = codec.encrypt({"records": []}, BackupConfig(password=PASSWORD))
        with pytest.raises(BackupDecryptError):
            codec.decrypt(blob, BackupConfig(password="wrong"))

    def test_iterations_travel_with_blob(self):
        blob = BackupCodec(iterations=1500).encrypt({"x": 1}, BackupConfig(password=PASSWORD))
        assert BackupCodec(iterations=999).decrypt(blob, BackupConfig(password=PASSWORD)) == {"x": 1}

    @pytest.mark.parametrize("blob", ["", "not base64!!", base64.b64encode(b"short").decode()])
    def test_garbage_fails(self, codec, blob):
        with pytest.raises(BackupDecryptError):
            codec.decrypt(blob, BackupConfig(password=PASSWORD))

    def test_tampering_detected(self, codec):
        raw = bytearray(base64.b64decode(codec.encrypt({"a": 1}, BackupConfig(password=PASSWORD))))
        raw[-1] ^= 0x01
        with pytest.raises(BackupDecryptError):
            codec.decrypt(base64.b64encode(bytes(raw)).decode(), BackupConfig(password=PASSWORD))

    def test_password_required(self, codec):
        with pytest.raises(BackupPasswordRequiredError):
            codec.encrypt({}, BackupConfig(password=""))
        with pytest.raises(BackupPasswordRequiredError):
            codec.decrypt("abc", BackupConfig(password=""))


class TestPayload:

    def test_attachments_must_reference_records(self):
        payload = build_payload(
            [VisitRecord(date="2024-01-01", id=1)],
            [Attachment(name="x", data=b"1", id=1, record_id=2)],
            "2024-06-15T09:30:00Z",
        )
        with pytest.raises(BackupDecryptError):
            parse_payload(payload)

    def test_records_need_unique_ids(self):
        payload = build_payload(
            [VisitRecord(date="2024-01-01", id=1), VisitRecord(date="2024-01-02", id=1)],
            [],
            "2024-06-15T09:30:00Z",
        )
        with pytest.raises(BackupDecryptError):
            parse_payload(payload)

    def test_missing_records_list(self):
        with pytest.raises(BackupDecryptError):
            parse_payload({"version": 1})


# =============================================================================
# FILES
# =============================================================================

class TestBackupManager:

    def test_names_encode_origin_and_time(self, backup_manager):
        assert backup_manager.write_backup("blob", auto=True) == "auto_backup_20240615_093000.enc"
        assert backup_manager.write_backup("blob") == "manual_backup_20240615_093000.enc"
        # Same second again gets a suffix instead of overwriting.
        assert backup_manager.write_backup("blob") == "manual_backup_20240615_093000_001.enc"

    def test_retention_keeps_newest_auto_backups(self, tmp_path):
        moments = iter(datetime(2024, 1, 1) + timedelta(minutes=i) for i in range(40))
        manager = BackupManager(str(tmp_path), max_auto_backups=30, clock=lambda: next(moments))
        manager.write_backup("manual")
        written = [manager.write_backup(f"auto {i}", auto=True) for i in range(35)]

        remaining = manager.list_backups()
        auto_names = [f.name for f in remaining if f.is_auto]
        assert len(auto_names) == 30
        assert sorted(auto_names) == sorted(written[5:])
        assert len([f for f in remaining if not f.is_auto]) == 1

    def test_same_second_backups_keep_creation_order(self, tmp_path):
        manager = BackupManager(str(tmp_path), clock=lambda: datetime(2024, 1, 1, 8, 0, 0))
        written = [manager.write_backup(f"blob {i}") for i in range(12)]

        assert written[11] == "manual_backup_20240101_080000_011.enc"
        assert [f.name for f in manager.list_backups()] == written[::-1]

    def test_retention_within_one_second(self, tmp_path):
        manager = BackupManager(str(tmp_path), max_auto_backups=3, clock=lambda: datetime(2024, 1, 1, 8, 0, 0))
        written = [manager.write_backup(f"auto {i}", auto=True) for i in range(12)]

        assert [f.name for f in manager.list_backups()] == written[:-4:-1]

    def test_list_newest_first(self, tmp_path):
        moments = iter([datetime(2024, 1, 1), datetime(2024, 2, 1)])
        manager = BackupManager(str(tmp_path), clock=lambda: next(moments))
        old = manager.write_backup("a")
        new = manager.write_backup("b")

        assert [f.name for f in manager.list_backups()] == [new, old]

    @pytest.mark.parametrize("name", ["../etc/passwd", "notes.txt", ".hidden.enc", ""])
    def test_rejects_unsafe_names(self, backup_manager, name):
        with pytest.raises(BackupNotFoundError):
            backup_manager.read_backup(name)

    def test_read_and_delete(self, backup_manager):
        name = backup_manager.write_backup("blob-text")
        assert backup_manager.read_backup(name) == "blob-text"

        backup_manager.delete_backup(name)

        assert backup_manager.list_backups() == []
        with pytest.raises(BackupNotFoundError):
            backup_manager.delete_backup(name)


# =============================================================================
# SERVICE
# =============================================================================

class TestBackupPreferences:

    def test_defaults(self, backup_service):
        config = backup_service.get_config()
        assert config.password == ""
        assert config.auto_backup is False

    def test_save_and_load(self, backup_service):
        backup_service.save_config(BackupConfig(password=PASSWORD, auto_backup=True))

        config = backup_service.get_config()
        assert config.password == PASSWORD
        assert config.auto_backup is True

    def test_auto_backup_requires_password(self, backup_service):
        with pytest.raises(InvalidBackupPreferencesError):
            backup_service.save_config(BackupConfig(password="", auto_backup=True))


class TestBackupAndRestore:

    def test_round_trip_reproduces_records(self, backup_service, record_service, populated):
        before = [r.to_dict(include_attachments=True) for r in
                  (record_service.get_record(r.id) for r in populated)]
        blob = backup_service.export_blob(PASSWORD)

        record_service.delete_record(populated[0].id)
        record_service.add_record(VisitRecord(date="2024-06-01", title="added after backup"))

        result = backup_service.restore_from_blob(blob, PASSWORD, confirm=True)

        assert result.records == 2
        assert result.attachments == 1
        assert result.backup_timestamp == "2024-06-15T09:30:00Z"
        after = [record_service.get_record(r.id).to_dict(include_attachments=True) for r in populated]
        assert after == before
        assert record_service.count_records() == 2

    def test_wrong_password_leaves_store_untouched(self, backup_service, record_service, populated):
        blob = backup_service.export_blob(PASSWORD)
        record_service.delete_record(populated[1].id)

        with pytest.raises(BackupDecryptError):
            backup_service.restore_from_blob(blob, "wrong password", confirm=True)

        assert [r.id for r in record_service.get_all_records()] == [populated[0].id]

    def test_restore_requires_confirmation(self, backup_service, record_service, populated):
        blob = backup_service.export_blob(PASSWORD)

        with pytest.raises(RestoreNotConfirmedError):
            backup_service.restore_from_blob(blob, PASSWORD)

        assert record_service.count_records() == 2

    def test_saved_password_is_used(self, backup_service, populated):
        backup_service.save_config(BackupConfig(password=PASSWORD))

        name = backup_service.create_backup()
        result = backup_service.restore_from_file(name, confirm=True)

        assert result.records == 2

    def test_missing_password(self, backup_service, populated):
        with pytest.raises(BackupPasswordRequiredError):
            backup_service.export_blob()

    def test_auto_backup_skipped_unless_enabled(self, backup_service, populated):
        assert backup_service.run_auto_backup() is None

        backup_service.save_config(BackupConfig(password=PASSWORD, auto_backup=False))
        assert backup_service.run_auto_backup() is None

    def test_auto_backup_skipped_without_records(self, backup_service):
        backup_service.save_config(BackupConfig(password=PASSWORD, auto_backup=True))
        assert backup_service.run_auto_backup() is None

    def test_auto_backup_written(self, backup_service, populated):
        backup_service.save_config(BackupConfig(password=PASSWORD, auto_backup=True))

        name = backup_service.run_auto_backup()

        assert name.startswith("auto_backup_")
        assert [f.name for f in backup_service.list_backups()] == [name]
