"""
Pydantic schemas for the statistics endpoint.
"""
from typing import List

from pydantic import BaseModel


class NamedCount(BaseModel):
    name: str
    value: int


class MonthlyCost(BaseModel):
    month: str
    amount: str


class StatsResponse(BaseModel):
    total_records: int
    total_cost: str
    hospital_count: int
    department_count: int
    top_hospitals: List[NamedCount]
    top_departments: List[NamedCount]
    cost_trend: List[MonthlyCost]
