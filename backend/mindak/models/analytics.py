"""
Mindak Reservations Backend — Analytics Event Model
===================================================

What:  Append-only `analytics_events` table. Submissions, status changes and
       form/service views each record one event; AnalyticsService aggregates
       them together with the reservations table.
"""

import enum
import uuid
from datetime import datetime
from typing import Any, Dict

from sqlalchemy import DateTime, Index, String, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from mindak.database import Base, utcnow
from mindak.models.reservation import JSONType


class AnalyticsEventType(str, enum.Enum):
    RESERVATION_SUBMITTED = "reservation_submitted"
    RESERVATION_CONFIRMED = "reservation_confirmed"
    RESERVATION_CANCELLED = "reservation_cancelled"
    RESERVATION_COMPLETED = "reservation_completed"
    FORM_VIEWED = "form_viewed"
    SERVICE_VIEWED = "service_viewed"


class AnalyticsEvent(Base):
    __tablename__ = "analytics_events"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    event_type: Mapped[str] = mapped_column(String(50), nullable=False)
    event_data: Mapped[Dict[str, Any]] = mapped_column(JSONType, nullable=False, default=dict)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow
    )

    __table_args__ = (
        Index("idx_analytics_events_type_created", "event_type", "created_at"),
    )

    def __repr__(self) -> str:
        return f"<AnalyticsEvent(type='{self.event_type}', created_at='{self.created_at}')>"
