"""
Mindak Reservations Backend — Analytics Service
===============================================

What:  Records analytics events and answers the admin dashboard queries.
How:   Events are plain inserts in the caller's transaction. Aggregates are
       GROUP BY queries over `reservations` and `analytics_events`; the few
       that need per-day bucketing or JSON list expansion are finished in
       Python so they behave the same on PostgreSQL and SQLite.
Who:   ReservationService / FormQuestionService / CatalogService (events),
       admin analytics router (reads).
"""

import logging
import uuid
from collections import Counter
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Optional

from sqlalchemy import func, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from mindak.config import settings
from mindak.exceptions import DatabaseError, ValidationError
from mindak.models.analytics import AnalyticsEvent, AnalyticsEventType
from mindak.models.reservation import Reservation, ReservationStatus, ReservationType
from mindak.models.service import Service
from mindak.schemas.analytics import (
    DashboardMetrics,
    RecentActivity,
    RecentSubmission,
    TopService,
    TrendAnalysis,
    TrendPoint,
    TypeAnalytics,
)

logger = logging.getLogger(__name__)


def _empty_status_counts() -> Dict[str, int]:
    return {status.value: 0 for status in ReservationStatus}


class AnalyticsService:

    async def record_event(
        self,
        db: AsyncSession,
        event_type: AnalyticsEventType,
        data: Optional[Dict[str, Any]] = None,
    ) -> AnalyticsEvent:
        """Adds one event to the current transaction."""
        event = AnalyticsEvent(event_type=event_type.value, event_data=data or {})
        db.add(event)
        await db.flush()
        logger.debug("Analytics event recorded: %s", event_type.value)
        return event

    async def get_dashboard_metrics(self, db: AsyncSession) -> DashboardMetrics:
        window_days = settings.analytics_dashboard_window_days
        since = datetime.now(timezone.utc) - timedelta(days=window_days)
        try:
            rows = (
                await db.execute(
                    select(Reservation.reservation_type, Reservation.status, func.count())
                    .group_by(Reservation.reservation_type, Reservation.status)
                )
            ).all()
            recent = (
                await db.execute(
                    select(func.count(Reservation.id)).where(Reservation.created_at >= since)
                )
            ).scalar() or 0
        except SQLAlchemyError as e:
            logger.error("Dashboard metrics query failed: %s", str(e), exc_info=True)
            raise DatabaseError(message="Could not load dashboard metrics.")

        per_type: Dict[str, int] = Counter()
        status_counts = _empty_status_counts()
        for reservation_type, status, count in rows:
            per_type[reservation_type] += count
            status_counts[status] = status_counts.get(status, 0) + count

        return DashboardMetrics(
            total_reservations=sum(per_type.values()),
            podcast_reservations=per_type[ReservationType.PODCAST.value],
            service_reservations=per_type[ReservationType.SERVICE.value],
            pending_reservations=status_counts[ReservationStatus.PENDING.value],
            status_counts=status_counts,
            recent_submissions=recent,
            window_days=window_days,
        )

    async def get_type_analytics(
        self, db: AsyncSession, reservation_type: ReservationType
    ) -> TypeAnalytics:
        """Status breakdown and conversion rate for one reservation type."""
        try:
            rows = (
                await db.execute(
                    select(Reservation.status, func.count())
                    .where(Reservation.reservation_type == reservation_type.value)
                    .group_by(Reservation.status)
                )
            ).all()
        except SQLAlchemyError as e:
            logger.error("Type analytics query failed: %s", str(e), exc_info=True)
            raise DatabaseError(message="Could not load reservation analytics.")

        breakdown = _empty_status_counts()
        for status, count in rows:
            breakdown[status] = count
        total = sum(breakdown.values())
        converted = (
            breakdown[ReservationStatus.CONFIRMED.value]
            + breakdown[ReservationStatus.COMPLETED.value]
        )
        return TypeAnalytics(
            reservation_type=reservation_type,
            total=total,
            status_breakdown=breakdown,
            conversion_rate=round(converted / total, 4) if total else 0.0,
        )

    async def get_trend_analysis(self, db: AsyncSession, days: int = 30) -> TrendAnalysis:
        """
        Per-day submission counts for the last `days` days (today included),
        zero-filled, oldest first. Days are UTC calendar days.
        """
        if days < 1 or days > 365:
            raise ValidationError(
                code="invalid_range",
                message="days must be between 1 and 365",
                field="days",
            )

        today = datetime.now(timezone.utc).date()
        first_day = today - timedelta(days=days - 1)
        since = datetime(first_day.year, first_day.month, first_day.day, tzinfo=timezone.utc)

        try:
            rows = (
                await db.execute(
                    select(Reservation.reservation_type, Reservation.created_at)
                    .where(Reservation.created_at >= since)
                )
            ).all()
        except SQLAlchemyError as e:
            logger.error("Trend query failed: %s", str(e), exc_info=True)
            raise DatabaseError(message="Could not load reservation trends.")

        points = {
            first_day + timedelta(days=offset): TrendPoint(day=first_day + timedelta(days=offset))
            for offset in range(days)
        }
        for reservation_type, created_at in rows:
            point = points.get(created_at.date())
            if point is None:
                continue
            if reservation_type == ReservationType.PODCAST.value:
                point.podcast += 1
            else:
                point.service += 1

        return TrendAnalysis(days=days, points=[points[day] for day in sorted(points)])

    async def get_top_services(self, db: AsyncSession, limit: int = 5) -> List[TopService]:
        """Services ranked by how many service reservations name them."""
        try:
            id_lists = (
                await db.execute(
                    select(Reservation.service_ids).where(
                        Reservation.reservation_type == ReservationType.SERVICE.value
                    )
                )
            ).scalars().all()

            counts: Counter = Counter()
            for service_ids in id_lists:
                counts.update(service_ids or [])
            if not counts:
                return []

            ids = [uuid.UUID(service_id) for service_id in counts]
            names = dict(
                (
                    await db.execute(select(Service.id, Service.name).where(Service.id.in_(ids)))
                ).all()
            )
        except SQLAlchemyError as e:
            logger.error("Top services query failed: %s", str(e), exc_info=True)
            raise DatabaseError(message="Could not load top services.")

        ranked = sorted(counts.items(), key=lambda item: (-item[1], item[0]))
        top = []
        for service_id, count in ranked:
            service_uuid = uuid.UUID(service_id)
            if service_uuid not in names:
                continue
            top.append(
                TopService(service_id=service_uuid, name=names[service_uuid], reservation_count=count)
            )
            if len(top) == limit:
                break
        return top

    async def get_recent_activity(self, db: AsyncSession, hours: int = 24) -> RecentActivity:
        if hours < 1 or hours > 24 * 30:
            raise ValidationError(
                code="invalid_range",
                message="hours must be between 1 and 720",
                field="hours",
            )
        since = datetime.now(timezone.utc) - timedelta(hours=hours)

        try:
            event_rows = (
                await db.execute(
                    select(AnalyticsEvent.event_type, func.count())
                    .where(AnalyticsEvent.created_at >= since)
                    .group_by(AnalyticsEvent.event_type)
                )
            ).all()
            latest = (
                await db.execute(
                    select(Reservation)
                    .order_by(Reservation.created_at.desc())
                    .limit(settings.analytics_recent_limit)
                )
            ).scalars().all()
        except SQLAlchemyError as e:
            logger.error("Recent activity query failed: %s", str(e), exc_info=True)
            raise DatabaseError(message="Could not load recent activity.")

        event_counts = {event_type.value: 0 for event_type in AnalyticsEventType}
        for event_type, count in event_rows:
            event_counts[event_type] = count

        return RecentActivity(
            hours=hours,
            since=since,
            event_counts=event_counts,
            latest_submissions=[
                RecentSubmission(
                    id=r.id,
                    reservation_type=r.reservation_type,
                    confirmation_id=r.confirmation_id,
                    status=r.status,
                    created_at=r.created_at,
                )
                for r in latest
            ],
        )


analytics_service = AnalyticsService()
