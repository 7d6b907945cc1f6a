"""
Tests for the domain models: amount coercion, derived cost totals and
medication end dates.
"""
from decimal import Decimal

import pytest

from models.record import Attachment, CostLineItem, VisitRecord, to_amount
from models.medication import Medication, compute_end_date


class TestToAmount:

    @pytest.mark.parametrize("value,expected", [
        ("12.50", Decimal("12.50")),
        (7, Decimal("7")),
        (0.5, Decimal("0.5")),
        ("", Decimal("0")),
        (None, Decimal("0")),
        ("abc", Decimal("0")),
        ("NaN", Decimal("0")),
        (True, Decimal("0")),
    ])
    def test_coercion(self, value, expected):
        assert to_amount(value) == expected


class TestCostTotals:

    def test_totals_are_sums_of_line_items(self):
        record = VisitRecord(date="2024-03-01", cost_items=[
            CostLineItem(self_pay="20", pool_pay="60", personal_pay="20"),
            CostLineItem(self_pay="5.5", pool_pay="", personal_pay=None),
        ])
        assert record.cost_self == Decimal("25.5")
        assert record.cost_pool == Decimal("60")
        assert record.cost_personal == Decimal("20")
        assert record.cost_total == Decimal("105.5")

    def test_totals_follow_item_changes(self):
        record = VisitRecord(date="2024-03-01", cost_items=[CostLineItem(self_pay="10")])
        record.cost_items.append(CostLineItem(pool_pay="30"))
        assert record.cost_total == Decimal("40")
        record.cost_items.pop(0)
        assert record.cost_total == Decimal("30")

    def test_no_items_means_zero(self):
        assert VisitRecord(date="2024-03-01").cost_total == Decimal("0")

    def test_incoming_totals_are_ignored(self):
        record = VisitRecord.from_dict({
            "date": "2024-03-01",
            "cost_items": [{"self_pay": "10"}],
            "cost_total": "999",
            "cost_self": "999",
        })
        assert record.cost_total == Decimal("10")
        assert record.cost_self == Decimal("10")

    def test_legacy_totals_become_a_line_item(self):
        record = VisitRecord.from_dict({
            "date": "2024-03-01",
            "cost_self": "20",
            "cost_pool": "80",
        })
        assert len(record.cost_items) == 1
        assert record.cost_items[0].id == "legacy"
        assert record.cost_total == Decimal("100")

    def test_line_items_get_ids(self):
        first, second = CostLineItem(), CostLineItem()
        assert first.id and second.id
        assert first.id != second.id


class TestSerialization:

    def test_record_dict_uses_type_key_and_string_amounts(self):
        record = VisitRecord(
            date="2024-03-01",
            visit_type="复诊",
            cost_items=[CostLineItem(self_pay="20.00", id="a")],
        )
        data = record.to_dict()
        assert data["type"] == "复诊"
        assert data["cost_total"] == "20.00"
        assert data["cost_items"][0] == {
            "id": "a",
            "self_pay": "20.00",
            "pool_pay": "0",
            "personal_pay": "0",
            "attachment_id": None,
        }
        assert VisitRecord.from_dict(data).visit_type == "复诊"

    def test_attachment_data_is_base64_in_dict(self):
        attachment = Attachment(name="a.png", mime_type="image/png", data=b"\x89PNG")
        data = attachment.to_dict()
        assert data["data"] == "iVBORw=="
        assert Attachment.from_dict(data).data == b"\x89PNG"
        assert "data" not in attachment.to_dict(include_data=False)

    def test_pdf_detection(self):
        assert Attachment(mime_type="application/pdf").is_pdf
        assert Attachment(name="REPORT.PDF").is_pdf
        assert not Attachment(name="scan.jpg", mime_type="image/jpeg").is_pdf


class TestMedicationEndDate:

    def test_end_date_is_start_plus_duration_minus_one(self):
        assert compute_end_date("2024-03-01", 7) == "2024-03-07"
        assert compute_end_date("2024-02-28", 2) == "2024-02-29"
        assert compute_end_date("2024-03-01", 1) == "2024-03-01"

    def test_medication_derives_end_date(self):
        medication = Medication(name="阿莫西林", start_date="2024-12-30", duration=5)
        assert medication.end_date == "2025-01-03"

    @pytest.mark.parametrize("start,duration", [("not a date", 3), ("2024-03-01", 0)])
    def test_invalid_input_raises(self, start, duration):
        with pytest.raises(ValueError):
            compute_end_date(start, duration)
