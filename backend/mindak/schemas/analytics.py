"""
Mindak Reservations Backend — Analytics Schemas
===============================================

What:  Read-only aggregate views returned by /api/admin/analytics.
"""

import uuid
from datetime import date, datetime
from typing import Dict, List, Optional

from pydantic import BaseModel, Field

from mindak.models.reservation import ReservationType


class DashboardMetrics(BaseModel):
    total_reservations: int
    podcast_reservations: int
    service_reservations: int
    pending_reservations: int
    status_counts: Dict[str, int]
    recent_submissions: int = Field(description="Submissions inside the dashboard window")
    window_days: int


class TypeAnalytics(BaseModel):
    reservation_type: ReservationType
    total: int
    status_breakdown: Dict[str, int]
    conversion_rate: float = Field(description="(confirmed + completed) / total")


class TrendPoint(BaseModel):
    day: date
    podcast: int = 0
    service: int = 0


class TrendAnalysis(BaseModel):
    days: int
    points: List[TrendPoint]


class TopService(BaseModel):
    service_id: uuid.UUID
    name: str
    reservation_count: int


class RecentSubmission(BaseModel):
    id: uuid.UUID
    reservation_type: ReservationType
    confirmation_id: str
    status: str
    created_at: datetime


class RecentActivity(BaseModel):
    hours: int
    event_counts: Dict[str, int]
    latest_submissions: List[RecentSubmission]
    since: Optional[datetime] = None
