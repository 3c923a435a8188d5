"""
Mindak Reservations Backend — Admin Analytics Routes
====================================================

What:  Read-only aggregates for the admin dashboard.
"""

from typing import List

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from mindak.database import get_db_session
from mindak.routes.dependencies import ReservationKind
from mindak.schemas.analytics import (
    DashboardMetrics,
    RecentActivity,
    TopService,
    TrendAnalysis,
    TypeAnalytics,
)
from mindak.schemas.common import ErrorResponse
from mindak.services.analytics_service import analytics_service

router = APIRouter(
    prefix="/api/admin/analytics",
    tags=["Admin: Analytics"],
    responses={400: {"description": "Parameter out of range", "model": ErrorResponse}},
)


@router.get("/dashboard", response_model=DashboardMetrics)
async def dashboard(db: AsyncSession = Depends(get_db_session)) -> DashboardMetrics:
    return await analytics_service.get_dashboard_metrics(db)


@router.get("/types/{kind}", response_model=TypeAnalytics)
async def type_analytics(
    kind: ReservationKind,
    db: AsyncSession = Depends(get_db_session),
) -> TypeAnalytics:
    return await analytics_service.get_type_analytics(db, kind.reservation_type)


@router.get("/trends", response_model=TrendAnalysis, summary="Daily submissions per type")
async def trends(
    days: int = Query(default=30, description="1 to 365"),
    db: AsyncSession = Depends(get_db_session),
) -> TrendAnalysis:
    return await analytics_service.get_trend_analysis(db, days)


@router.get("/top-services", response_model=List[TopService])
async def top_services(
    limit: int = Query(default=5, ge=1, le=50),
    db: AsyncSession = Depends(get_db_session),
) -> List[TopService]:
    return await analytics_service.get_top_services(db, limit)


@router.get("/recent-activity", response_model=RecentActivity)
async def recent_activity(
    hours: int = Query(default=24, description="1 to 720"),
    db: AsyncSession = Depends(get_db_session),
) -> RecentActivity:
    return await analytics_service.get_recent_activity(db, hours)
