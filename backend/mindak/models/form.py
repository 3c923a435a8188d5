"""
Mindak Reservations Backend — Form Definition Models
====================================================

What:  ORM models for the dynamic reservation forms: `form_questions` and
       their answer options `form_question_answers`.
Who:   Used by FormQuestionService (admin CRUD, reorder) and by
       ReservationService when it freezes answer snapshots.

Table Design Rationale:
    - Questions are grouped by (form_type, section_type, service_id).
      `order` is 1-based and contiguous among the ACTIVE rows of a group;
      the partial unique index only covers active rows so deactivated
      questions keep their last position without blocking new ones.
    - Rows are never edited in a way that changes what a stored snapshot
      meant: `is_referenced` is set once a reservation embeds the question,
      after which text/type edits create a new row (`supersedes_id` points
      back) and deactivate the old one.
"""

import enum
import uuid
from datetime import datetime
from typing import Optional

from sqlalchemy import (
    Boolean,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    Uuid,
    text,
)
from sqlalchemy.orm import Mapped, mapped_column

from mindak.database import Base, utcnow


class FormType(str, enum.Enum):
    PODCAST = "podcast"
    SERVICES = "services"


class SectionType(str, enum.Enum):
    GENERAL = "general"
    SERVICE_SPECIFIC = "service_specific"


class QuestionType(str, enum.Enum):
    TEXT = "text"
    EMAIL = "email"
    PHONE = "phone"
    TEXTAREA = "textarea"
    DATE = "date"
    SELECT = "select"
    CHECKBOX = "checkbox"
    RADIO = "radio"


# Question types whose answers must resolve to a FormQuestionAnswer row
CHOICE_QUESTION_TYPES = frozenset(
    {QuestionType.SELECT.value, QuestionType.CHECKBOX.value, QuestionType.RADIO.value}
)


class FormQuestion(Base):
    """
    One question of a reservation form.

    Lifecycle:
        1. Created by an admin, appended at the end of its group
        2. Reordered / edited in place while no reservation references it
        3. Once referenced: text/type edits supersede it, deletes deactivate it
    """

    __tablename__ = "form_questions"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)

    # ── Grouping ──────────────────────────────────────────────────────────
    form_type: Mapped[str] = mapped_column(
        String(20), nullable=False, comment="podcast | services"
    )
    section_type: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
        default=SectionType.GENERAL.value,
        comment="general | service_specific",
    )
    # Set only for service-specific questions
    service_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        Uuid, ForeignKey("services.id", ondelete="CASCADE"), nullable=True
    )

    # ── Definition ────────────────────────────────────────────────────────
    question_text: Mapped[str] = mapped_column(Text, nullable=False)
    question_type: Mapped[str] = mapped_column(String(20), nullable=False)
    required: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    order: Mapped[int] = mapped_column(Integer, nullable=False)
    placeholder: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    help_text: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    # ── Validity ──────────────────────────────────────────────────────────
    is_active: Mapped[bool] = mapped_column(
        Boolean, nullable=False, default=True, server_default=text("true")
    )
    is_referenced: Mapped[bool] = mapped_column(
        Boolean,
        nullable=False,
        default=False,
        server_default=text("false"),
        comment="True once any reservation snapshot embeds this question",
    )
    supersedes_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        Uuid, ForeignKey("form_questions.id", ondelete="SET NULL"), nullable=True
    )

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow
    )

    __table_args__ = (
        Index(
            "uq_form_questions_active_order",
            "form_type",
            "section_type",
            "service_id",
            "order",
            unique=True,
            postgresql_where=text("is_active"),
            postgresql_nulls_not_distinct=True,
            sqlite_where=text("is_active = 1"),
        ),
        Index("idx_form_questions_group", "form_type", "section_type", "service_id"),
    )

    @property
    def is_choice(self) -> bool:
        return self.question_type in CHOICE_QUESTION_TYPES

    def __repr__(self) -> str:
        return (
            f"<FormQuestion(id={self.id}, form='{self.form_type}', "
            f"section='{self.section_type}', order={self.order}, active={self.is_active})>"
        )


class FormQuestionAnswer(Base):
    """An answer option of a select / radio / checkbox question."""

    __tablename__ = "form_question_answers"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    question_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("form_questions.id", ondelete="CASCADE"), nullable=False
    )
    answer_text: Mapped[str] = mapped_column(String(255), nullable=False)
    answer_value: Mapped[str] = mapped_column(String(255), nullable=False)
    order: Mapped[int] = mapped_column(Integer, nullable=False)

    # Relative URL returned by the image storage; bytes never live in the DB
    image_url: Mapped[Optional[str]] = mapped_column(String(500), nullable=True)

    is_active: Mapped[bool] = mapped_column(
        Boolean, nullable=False, default=True, server_default=text("true")
    )
    is_referenced: Mapped[bool] = mapped_column(
        Boolean, nullable=False, default=False, server_default=text("false")
    )

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow
    )

    __table_args__ = (
        Index(
            "uq_form_question_answers_active_order",
            "question_id",
            "order",
            unique=True,
            postgresql_where=text("is_active"),
            sqlite_where=text("is_active = 1"),
        ),
    )

    def __repr__(self) -> str:
        return (
            f"<FormQuestionAnswer(id={self.id}, value='{self.answer_value}', "
            f"order={self.order}, active={self.is_active})>"
        )
