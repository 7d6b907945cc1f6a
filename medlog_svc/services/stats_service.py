"""
Aggregate statistics over all visit records.
"""
import logging
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Any, Dict, List, Tuple

from models.record import ZERO

logger = logging.getLogger(__name__)

TOP_N = 6
UNKNOWN_LABEL = "其他"


@dataclass
class RecordStats:
    total_records: int = 0
    total_cost: Decimal = ZERO
    hospital_count: int = 0
    department_count: int = 0
    top_hospitals: List[Tuple[str, int]] = field(default_factory=list)
    top_departments: List[Tuple[str, int]] = field(default_factory=list)
    cost_trend: List[Tuple[str, Decimal]] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "total_records": self.total_records,
            "total_cost": f"{self.total_cost:.2f}",
            "hospital_count": self.hospital_count,
            "department_count": self.department_count,
            "top_hospitals": [{"name": n, "value": v} for n, v in self.top_hospitals],
            "top_departments": [{"name": n, "value": v} for n, v in self.top_departments],
            "cost_trend": [{"month": m, "amount": f"{a:.2f}"} for m, a in self.cost_trend],
        }


def _top(counts: Dict[str, int]) -> List[Tuple[str, int]]:
    # sorted() is stable: equal counts keep first-seen order
    return sorted(counts.items(), key=lambda pair: pair[1], reverse=True)[:TOP_N]


class StatsService:
    """Computes summary numbers for the statistics view."""

    def __init__(self, record_service):
        self._records = record_service

    def get_stats(self) -> RecordStats:
        records = self._records.get_all_records()

        total_cost = ZERO
        hospitals: Dict[str, int] = {}
        departments: Dict[str, int] = {}
        monthly: Dict[str, Decimal] = {}

        for record in records:
            cost = record.cost_total
            total_cost += cost

            hospital = record.hospital or UNKNOWN_LABEL
            hospitals[hospital] = hospitals.get(hospital, 0) + 1

            department = record.department or UNKNOWN_LABEL
            departments[department] = departments.get(department, 0) + 1

            month = record.date[:7]
            monthly[month] = monthly.get(month, ZERO) + cost

        return RecordStats(
            total_records=len(records),
            total_cost=total_cost,
            hospital_count=len(hospitals),
            department_count=len(departments),
            top_hospitals=_top(hospitals),
            top_departments=_top(departments),
            cost_trend=sorted(monthly.items()),
        )
