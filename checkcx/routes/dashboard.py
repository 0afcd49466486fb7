from typing import Optional
from fastapi import APIRouter, Depends, HTTPException, Query, status

from checkcx.schemas.dashboard import DashboardData
from checkcx.services import get_dashboard_service
from checkcx.services.dashboard_service import DashboardService


router = APIRouter(tags=["dashboard"])


@router.get("/dashboard", response_model=DashboardData)
async def get_dashboard(
    trend_period: Optional[str] = Query(None, alias="trendPeriod"),
    dashboard_service: DashboardService = Depends(get_dashboard_service)
):
    """
    Full dashboard payload: per-provider timelines, grouped timelines,
    availability stats and downsampled trends.

    Unknown trend periods fall back to 7 days.
    """
    return await dashboard_service.load(trend_period)


@router.get("/group/{group_name}", response_model=DashboardData)
async def get_group_dashboard(
    group_name: str,
    trend_period: Optional[str] = Query(None, alias="trendPeriod"),
    dashboard_service: DashboardService = Depends(get_dashboard_service)
):
    """Dashboard payload restricted to one provider group"""
    data = await dashboard_service.load(trend_period, group_name)
    if data is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Group does not exist or has no providers"
        )
    return data
