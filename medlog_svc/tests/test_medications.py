"""
Tests for MedicationService: courses, reminders and adherence logs.

All tests run at FIXED_NOW (2024-06-15 09:30 UTC).
"""
import pytest

from models.medication import Medication, MedicationStatus
from core.exceptions import InvalidMedicationDataError, MedicationNotFoundError


@pytest.fixture
def course(medication_service):
    return medication_service.add_medication(Medication(
        name="阿莫西林胶囊",
        start_date="2024-06-15",
        duration=7,
        dosage="0.25g",
        frequency="每日3次",
        times=["08:00", "10:00", "20:00"],
    ))


class TestMedicationCourses:

    def test_add_medication_sets_derived_fields(self, course):
        assert course.id is not None
        assert course.end_date == "2024-06-21"
        assert course.status == MedicationStatus.ACTIVE.value
        assert course.created_at == "2024-06-15T09:30:00Z"

    def test_add_medication_is_always_active(self, medication_service):
        medication = medication_service.add_medication(Medication(
            name="布洛芬", start_date="2024-06-01", status=MedicationStatus.STOPPED.value
        ))
        assert medication.status == MedicationStatus.ACTIVE.value

    def test_add_medication_rejects_blank_name(self, medication_service):
        with pytest.raises(InvalidMedicationDataError):
            medication_service.add_medication(Medication(name="  ", start_date="2024-06-01"))

    def test_add_medication_rejects_bad_time(self, medication_service):
        with pytest.raises(InvalidMedicationDataError):
            medication_service.add_medication(
                Medication(name="布洛芬", start_date="2024-06-01", times=["25:00"])
            )

    def test_update_recomputes_end_date(self, medication_service, course):
        updated = medication_service.update_medication(course.id, {"duration": 3, "end_date": "2030-01-01"})

        assert updated.duration == 3
        assert updated.end_date == "2024-06-17"
        assert medication_service.get_medication(course.id).end_date == "2024-06-17"

    def test_stop_and_complete(self, medication_service, course):
        stopped = medication_service.stop_medication(course.id)
        assert stopped.status == MedicationStatus.STOPPED.value
        assert stopped.stopped_at == "2024-06-15T09:30:00Z"
        assert medication_service.get_active_medications() == []

        completed = medication_service.complete_medication(course.id)
        assert completed.status == MedicationStatus.COMPLETED.value
        assert completed.completed_at == "2024-06-15T09:30:00Z"

    def test_filter_by_status(self, medication_service, course):
        other = medication_service.add_medication(Medication(name="维生素C片", start_date="2024-06-01"))
        medication_service.stop_medication(other.id)

        assert [m.id for m in medication_service.get_all_medications()] == [other.id, course.id]
        assert [m.id for m in medication_service.get_all_medications("stopped")] == [other.id]
        assert [m.id for m in medication_service.get_active_medications()] == [course.id]

    def test_missing_medication_raises(self, medication_service):
        with pytest.raises(MedicationNotFoundError):
            medication_service.get_medication(42)
        with pytest.raises(MedicationNotFoundError):
            medication_service.stop_medication(42)
        with pytest.raises(MedicationNotFoundError):
            medication_service.delete_medication(42)

    def test_delete_removes_logs(self, medication_service, medication_repo, course):
        medication_service.add_medication_log(course.id, "2024-06-15", "08:00", "taken")

        medication_service.delete_medication(course.id)

        assert medication_repo.get_logs_for_medication(course.id) == []
        assert medication_service.get_all_medications() == []


class TestReminders:

    @pytest.mark.parametrize("start,duration,expected", [
        ("2024-06-15", 7, 6),
        ("2024-06-15", 2, 1),
        ("2024-06-15", 1, 0),
        ("2024-05-01", 3, 0),
    ])
    def test_days_remaining(self, medication_service, start, duration, expected):
        medication = Medication(name="x", start_date=start, duration=duration)
        assert medication_service.days_remaining(medication) == expected

    def test_today_doses_flags(self, medication_service, course):
        slots = {slot.time: slot for slot in medication_service.get_today_doses(course)}

        assert slots["08:00"].is_past and not slots["08:00"].is_coming
        assert not slots["10:00"].is_past and slots["10:00"].is_coming
        assert not slots["20:00"].is_past and not slots["20:00"].is_coming


class TestDoseLogs:

    def test_logging_twice_keeps_one_row_with_latest_status(self, medication_service, course):
        medication_service.add_medication_log(course.id, "2024-06-15", "08:00", "taken")
        log = medication_service.add_medication_log(course.id, "2024-06-15", "08:00", "skipped")

        logs = medication_service.get_medication_logs(course.id)
        assert len(logs) == 1
        assert logs[0].status == "skipped"
        assert log.id == logs[0].id

    def test_invalid_status_rejected(self, medication_service, course):
        with pytest.raises(InvalidMedicationDataError):
            medication_service.add_medication_log(course.id, "2024-06-15", "08:00", "maybe")

    def test_log_for_missing_medication(self, medication_service):
        with pytest.raises(MedicationNotFoundError):
            medication_service.add_medication_log(7, "2024-06-15", "08:00", "taken")

    def test_delete_log(self, medication_service, course):
        medication_service.add_medication_log(course.id, "2024-06-15", "08:00", "taken")

        assert medication_service.delete_medication_log(course.id, "2024-06-15", "08:00")
        assert not medication_service.delete_medication_log(course.id, "2024-06-15", "08:00")
        assert medication_service.get_medication_logs(course.id) == []

    def test_today_and_recent_logs(self, medication_service, course):
        medication_service.add_medication_log(course.id, "2024-06-15", "08:00", "taken")
        medication_service.add_medication_log(course.id, "2024-06-10", "08:00", "taken")
        medication_service.add_medication_log(course.id, "2024-06-01", "08:00", "skipped")

        assert [log.date for log in medication_service.get_today_logs()] == ["2024-06-15"]
        assert [log.date for log in medication_service.get_recent_logs(7)] == ["2024-06-15", "2024-06-10"]
        assert len(medication_service.get_recent_logs(30)) == 3
