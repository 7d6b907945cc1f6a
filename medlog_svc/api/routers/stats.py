"""
Stats router - totals, top hospitals/departments and the monthly cost trend.
"""
from fastapi import APIRouter, Depends

from schemas import StatsResponse
from services import StatsService
from core.auth import verify_api_key
from core.dependencies import get_stats_service

router = APIRouter(
    prefix="/api/v1/stats",
    tags=["Statistics"],
    dependencies=[Depends(verify_api_key)],
)


@router.get("", response_model=StatsResponse, summary="Record statistics")
async def get_stats(stats_service: StatsService = Depends(get_stats_service)):
    return StatsResponse(**stats_service.get_stats().to_dict())
