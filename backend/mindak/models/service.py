"""
Mindak Reservations Backend — Service Catalog Models
====================================================

What:  `service_categories` and `services`: what clients can book through
       the services form.
Who:   CatalogService (admin CRUD), ReservationService (validates the
       service ids of a service reservation), FormQuestionService
       (service-specific questions hang off a service).

Services are soft-deleted (is_active = false); service reservations keep
their service ids in a JSON list, so rows must outlive the reservations
that mention them.
"""

import uuid
from datetime import datetime
from decimal import Decimal
from typing import Optional

from sqlalchemy import (
    Boolean,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    Text,
    Uuid,
    text,
)
from sqlalchemy.orm import Mapped, mapped_column

from mindak.database import Base, utcnow


class ServiceCategory(Base):
    __tablename__ = "service_categories"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    name: Mapped[str] = mapped_column(String(255), nullable=False, unique=True)
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    is_active: Mapped[bool] = mapped_column(
        Boolean, nullable=False, default=True, server_default=text("true")
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow
    )

    def __repr__(self) -> str:
        return f"<ServiceCategory(id={self.id}, name='{self.name}', active={self.is_active})>"


class Service(Base):
    """A bookable service with its price and position inside its category."""

    __tablename__ = "services"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    # NUMERIC(10, 2): money is never stored as float
    price: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False, default=Decimal("0"))

    category_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("service_categories.id", ondelete="RESTRICT"), nullable=False
    )
    is_active: Mapped[bool] = mapped_column(
        Boolean, nullable=False, default=True, server_default=text("true")
    )
    display_order: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow
    )

    __table_args__ = (
        Index("idx_services_category_order", "category_id", "display_order"),
    )

    def __repr__(self) -> str:
        return f"<Service(id={self.id}, name='{self.name}', active={self.is_active})>"
