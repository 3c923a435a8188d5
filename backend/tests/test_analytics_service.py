"""
Mindak Reservations Backend — Analytics Service Tests
=====================================================

What:  Dashboard aggregates over reservations and analytics events.
"""

import uuid

import pytest

from mindak.exceptions import ValidationError
from mindak.models.analytics import AnalyticsEventType
from mindak.models.reservation import ReservationStatus, ReservationType
from mindak.services.analytics_service import AnalyticsService
from mindak.services.reservation_service import reservation_service

ADMIN = uuid.uuid4()


class TestAnalytics:

    def setup_method(self):
        self.service = AnalyticsService()

    @pytest.mark.asyncio
    async def test_empty_database(self, db_session):
        metrics = await self.service.get_dashboard_metrics(db_session)
        assert metrics.total_reservations == 0
        assert metrics.status_counts == {
            "pending": 0, "confirmed": 0, "cancelled": 0, "completed": 0,
        }

        podcast = await self.service.get_type_analytics(db_session, ReservationType.PODCAST)
        assert podcast.total == 0
        assert podcast.conversion_rate == 0.0

        assert await self.service.get_top_services(db_session) == []

    @pytest.mark.asyncio
    async def test_dashboard_and_conversion(self, db_session, valid_podcast_answers):
        ids = []
        for _ in range(4):
            submitted = await reservation_service.submit_podcast_reservation(
                db_session, valid_podcast_answers
            )
            ids.append(submitted.id)
        await reservation_service.transition(db_session, ids[0], ReservationStatus.CONFIRMED, actor_id=ADMIN)
        await reservation_service.transition(db_session, ids[1], ReservationStatus.CONFIRMED, actor_id=ADMIN)
        await reservation_service.transition(db_session, ids[1], ReservationStatus.COMPLETED, actor_id=ADMIN)
        await reservation_service.transition(db_session, ids[2], ReservationStatus.CANCELLED, actor_id=ADMIN)
        await db_session.commit()

        metrics = await self.service.get_dashboard_metrics(db_session)
        assert metrics.total_reservations == 4
        assert metrics.podcast_reservations == 4
        assert metrics.service_reservations == 0
        assert metrics.pending_reservations == 1
        assert metrics.recent_submissions == 4

        podcast = await self.service.get_type_analytics(db_session, ReservationType.PODCAST)
        assert podcast.status_breakdown["completed"] == 1
        assert podcast.conversion_rate == 0.5

    @pytest.mark.asyncio
    async def test_trend_is_zero_filled(self, db_session, valid_podcast_answers):
        await reservation_service.submit_podcast_reservation(db_session, valid_podcast_answers)
        await db_session.commit()

        trend = await self.service.get_trend_analysis(db_session, days=7)
        assert trend.days == 7
        assert len(trend.points) == 7
        assert trend.points[-1].podcast == 1
        assert sum(p.podcast + p.service for p in trend.points[:-1]) == 0
        assert trend.points[0].day < trend.points[-1].day

    @pytest.mark.asyncio
    async def test_range_checks(self, db_session):
        with pytest.raises(ValidationError) as exc_info:
            await self.service.get_trend_analysis(db_session, days=0)
        assert exc_info.value.code == "invalid_range"
        with pytest.raises(ValidationError):
            await self.service.get_recent_activity(db_session, hours=1000)

    @pytest.mark.asyncio
    async def test_top_services(self, db_session, catalog):
        for service_ids in (
            [catalog.mixing.id],
            [catalog.mixing.id, catalog.editing.id],
            [catalog.mixing.id],
        ):
            await reservation_service.submit_service_reservation(db_session, service_ids, {})
        await db_session.commit()

        top = await self.service.get_top_services(db_session, limit=5)
        assert [(t.name, t.reservation_count) for t in top] == [("Mixing", 3), ("Editing", 1)]
        assert len(await self.service.get_top_services(db_session, limit=1)) == 1

    @pytest.mark.asyncio
    async def test_recent_activity(self, db_session, valid_podcast_answers):
        submitted = await reservation_service.submit_podcast_reservation(
            db_session, valid_podcast_answers
        )
        await self.service.record_event(db_session, AnalyticsEventType.FORM_VIEWED, {"form_type": "podcast"})
        await db_session.commit()

        activity = await self.service.get_recent_activity(db_session, hours=24)
        assert activity.event_counts["reservation_submitted"] == 1
        assert activity.event_counts["form_viewed"] == 1
        assert activity.event_counts["service_viewed"] == 0
        assert [s.id for s in activity.latest_submissions] == [submitted.id]
