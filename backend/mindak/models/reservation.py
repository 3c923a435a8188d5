"""
Mindak Reservations Backend — Reservation Models
================================================

What:  `reservations` (podcast and service variants in one table),
       the append-only `reservation_status_history` and `reservation_notes`.
Who:   ReservationService, the status workflow, AnalyticsService.

Table Design Rationale:
    - `reservation_type` discriminates the two variants; `service_ids` is
      only populated for service reservations.
    - `client_answers` is the frozen answer snapshot (JSON list). It is
      written once at submission and never updated.
    - `confirmation_id` is unique and immutable: shown to clients as their
      reference code.
    - History rows carry a per-reservation `sequence`; (reservation_id,
      sequence) is unique, so two writers can never both append "the next"
      record for the same reservation.

Query Patterns:
    - Admin list: WHERE reservation_type = :t [AND status = :s]
      ORDER BY created_at DESC  → idx_reservations_type_created
    - Confirmation lookup: WHERE confirmation_id = :c → unique index
"""

import enum
import uuid
from datetime import datetime
from typing import Any, Dict, List, Optional

from sqlalchemy import (
    JSON,
    CheckConstraint,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
    Uuid,
)
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import Mapped, mapped_column

from mindak.database import Base, utcnow

# JSONB on PostgreSQL, plain JSON elsewhere (SQLite in tests)
JSONType = JSON().with_variant(JSONB(), "postgresql")


class ReservationType(str, enum.Enum):
    PODCAST = "podcast"
    SERVICE = "service"


class ReservationStatus(str, enum.Enum):
    PENDING = "pending"
    CONFIRMED = "confirmed"
    CANCELLED = "cancelled"
    COMPLETED = "completed"


class Reservation(Base):
    """
    A client's reservation request.

    Lifecycle:
        1. Created by a client submission (status = 'pending')
        2. Status changes only through the status workflow
        3. Removed only by an explicit admin delete
    """

    __tablename__ = "reservations"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    reservation_type: Mapped[str] = mapped_column(String(20), nullable=False)

    # Anonymous submissions are allowed
    client_id: Mapped[Optional[uuid.UUID]] = mapped_column(Uuid, nullable=True)

    confirmation_id: Mapped[str] = mapped_column(String(32), nullable=False, unique=True)
    status: Mapped[str] = mapped_column(
        String(20), nullable=False, default=ReservationStatus.PENDING.value
    )

    client_answers: Mapped[List[Dict[str, Any]]] = mapped_column(
        JSONType, nullable=False, default=list
    )
    # Service reservations only: ordered, distinct service ids (as strings)
    service_ids: Mapped[Optional[List[str]]] = mapped_column(JSONType, nullable=True)

    client_ip: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    user_agent: Mapped[Optional[str]] = mapped_column(String(512), nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow
    )

    __table_args__ = (
        CheckConstraint(
            "status IN ('pending', 'confirmed', 'cancelled', 'completed')",
            name="ck_reservations_status",
        ),
        CheckConstraint(
            "reservation_type IN ('podcast', 'service')",
            name="ck_reservations_type",
        ),
        Index("idx_reservations_type_created", "reservation_type", "created_at"),
        Index("idx_reservations_status", "status"),
    )

    def __repr__(self) -> str:
        return (
            f"<Reservation(id={self.id}, type='{self.reservation_type}', "
            f"confirmation='{self.confirmation_id}', status='{self.status}')>"
        )


class ReservationStatusHistory(Base):
    """One row per status change, including the initial (None → pending)."""

    __tablename__ = "reservation_status_history"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    reservation_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("reservations.id", ondelete="CASCADE"), nullable=False
    )
    sequence: Mapped[int] = mapped_column(Integer, nullable=False)
    previous_status: Mapped[Optional[str]] = mapped_column(String(20), nullable=True)
    new_status: Mapped[str] = mapped_column(String(20), nullable=False)
    # Null only for the creation row of an anonymous submission
    changed_by: Mapped[Optional[uuid.UUID]] = mapped_column(Uuid, nullable=True)
    changed_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow
    )
    reason: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    __table_args__ = (
        UniqueConstraint("reservation_id", "sequence", name="uq_status_history_sequence"),
    )

    def __repr__(self) -> str:
        return (
            f"<ReservationStatusHistory(reservation={self.reservation_id}, "
            f"#{self.sequence} {self.previous_status} -> {self.new_status})>"
        )


class ReservationNote(Base):
    __tablename__ = "reservation_notes"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    reservation_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("reservations.id", ondelete="CASCADE"), nullable=False, index=True
    )
    author_id: Mapped[uuid.UUID] = mapped_column(Uuid, nullable=False)
    text: Mapped[str] = mapped_column(Text, nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow
    )

    def __repr__(self) -> str:
        return f"<ReservationNote(id={self.id}, reservation={self.reservation_id})>"
