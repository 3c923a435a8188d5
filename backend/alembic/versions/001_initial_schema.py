"""Initial reservation schema

Revision ID: 001
Revises: None
Create Date: 2026-10-17 00:00:00.000000+00:00

What:  Catalog (service_categories, services), form definitions
       (form_questions, form_question_answers), reservations with their
       status history and notes, and analytics_events.
How:   PostgreSQL: UUID keys, TIMESTAMP WITH TIME ZONE, JSONB snapshots and
       partial unique indexes that enforce dense ordering among active rows.

Rollback: downgrade() drops every table (all data lost).
"""

from typing import Sequence, Union
from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# revision identifiers
revision: str = "001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _timestamp(name: str) -> sa.Column:
    return sa.Column(
        name,
        sa.TIMESTAMP(timezone=True),
        server_default=sa.text("CURRENT_TIMESTAMP"),
        nullable=False,
    )


def _uuid_pk() -> sa.Column:
    return sa.Column(
        "id",
        postgresql.UUID(as_uuid=True),
        server_default=sa.text("gen_random_uuid()"),
        nullable=False,
    )


def upgrade() -> None:
    # ── Catalog ───────────────────────────────────────────────────────────
    op.create_table(
        "service_categories",
        _uuid_pk(),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.text("true")),
        _timestamp("created_at"),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("name"),
    )

    op.create_table(
        "services",
        _uuid_pk(),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("price", sa.Numeric(10, 2), nullable=False, server_default=sa.text("0")),
        sa.Column("category_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.text("true")),
        sa.Column("display_order", sa.Integer(), nullable=False, server_default=sa.text("0")),
        _timestamp("created_at"),
        _timestamp("updated_at"),
        sa.PrimaryKeyConstraint("id"),
        sa.ForeignKeyConstraint(["category_id"], ["service_categories.id"], ondelete="RESTRICT"),
    )
    op.create_index("idx_services_category_order", "services", ["category_id", "display_order"])

    # ── Form definitions ──────────────────────────────────────────────────
    op.create_table(
        "form_questions",
        _uuid_pk(),
        sa.Column("form_type", sa.String(20), nullable=False, comment="podcast | services"),
        sa.Column("section_type", sa.String(20), nullable=False, server_default=sa.text("'general'")),
        sa.Column("service_id", postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column("question_text", sa.Text(), nullable=False),
        sa.Column("question_type", sa.String(20), nullable=False),
        sa.Column("required", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        sa.Column("order", sa.Integer(), nullable=False),
        sa.Column("placeholder", sa.String(255), nullable=True),
        sa.Column("help_text", sa.Text(), nullable=True),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.text("true")),
        sa.Column("is_referenced", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        sa.Column("supersedes_id", postgresql.UUID(as_uuid=True), nullable=True),
        _timestamp("created_at"),
        _timestamp("updated_at"),
        sa.PrimaryKeyConstraint("id"),
        sa.ForeignKeyConstraint(["service_id"], ["services.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["supersedes_id"], ["form_questions.id"], ondelete="SET NULL"),
    )
    # NULLS NOT DISTINCT (PostgreSQL 15+): general sections have service_id NULL
    op.create_index(
        "uq_form_questions_active_order",
        "form_questions",
        ["form_type", "section_type", "service_id", "order"],
        unique=True,
        postgresql_where=sa.text("is_active"),
        postgresql_nulls_not_distinct=True,
    )
    op.create_index(
        "idx_form_questions_group",
        "form_questions",
        ["form_type", "section_type", "service_id"],
    )

    op.create_table(
        "form_question_answers",
        _uuid_pk(),
        sa.Column("question_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("answer_text", sa.String(255), nullable=False),
        sa.Column("answer_value", sa.String(255), nullable=False),
        sa.Column("order", sa.Integer(), nullable=False),
        sa.Column("image_url", sa.String(500), nullable=True),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.text("true")),
        sa.Column("is_referenced", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        _timestamp("created_at"),
        _timestamp("updated_at"),
        sa.PrimaryKeyConstraint("id"),
        sa.ForeignKeyConstraint(["question_id"], ["form_questions.id"], ondelete="CASCADE"),
    )
    op.create_index(
        "uq_form_question_answers_active_order",
        "form_question_answers",
        ["question_id", "order"],
        unique=True,
        postgresql_where=sa.text("is_active"),
    )

    # ── Reservations ──────────────────────────────────────────────────────
    op.create_table(
        "reservations",
        _uuid_pk(),
        sa.Column("reservation_type", sa.String(20), nullable=False),
        sa.Column("client_id", postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column("confirmation_id", sa.String(32), nullable=False),
        sa.Column("status", sa.String(20), nullable=False, server_default=sa.text("'pending'")),
        sa.Column(
            "client_answers",
            postgresql.JSONB(),
            nullable=False,
            server_default=sa.text("'[]'::jsonb"),
            comment="Answer snapshots frozen at submission",
        ),
        sa.Column("service_ids", postgresql.JSONB(), nullable=True),
        sa.Column("client_ip", sa.String(64), nullable=True),
        sa.Column("user_agent", sa.String(512), nullable=True),
        _timestamp("created_at"),
        _timestamp("updated_at"),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("confirmation_id"),
        sa.CheckConstraint(
            "status IN ('pending', 'confirmed', 'cancelled', 'completed')",
            name="ck_reservations_status",
        ),
        sa.CheckConstraint(
            "reservation_type IN ('podcast', 'service')",
            name="ck_reservations_type",
        ),
    )
    op.create_index("idx_reservations_type_created", "reservations", ["reservation_type", "created_at"])
    op.create_index("idx_reservations_status", "reservations", ["status"])

    op.create_table(
        "reservation_status_history",
        _uuid_pk(),
        sa.Column("reservation_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("sequence", sa.Integer(), nullable=False),
        sa.Column("previous_status", sa.String(20), nullable=True),
        sa.Column("new_status", sa.String(20), nullable=False),
        sa.Column("changed_by", postgresql.UUID(as_uuid=True), nullable=True),
        _timestamp("changed_at"),
        sa.Column("reason", sa.Text(), nullable=True),
        sa.PrimaryKeyConstraint("id"),
        sa.ForeignKeyConstraint(["reservation_id"], ["reservations.id"], ondelete="CASCADE"),
        sa.UniqueConstraint("reservation_id", "sequence", name="uq_status_history_sequence"),
    )

    op.create_table(
        "reservation_notes",
        _uuid_pk(),
        sa.Column("reservation_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("author_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("text", sa.Text(), nullable=False),
        _timestamp("created_at"),
        sa.PrimaryKeyConstraint("id"),
        sa.ForeignKeyConstraint(["reservation_id"], ["reservations.id"], ondelete="CASCADE"),
    )
    op.create_index("ix_reservation_notes_reservation_id", "reservation_notes", ["reservation_id"])

    # ── Analytics ─────────────────────────────────────────────────────────
    op.create_table(
        "analytics_events",
        _uuid_pk(),
        sa.Column("event_type", sa.String(50), nullable=False),
        sa.Column("event_data", postgresql.JSONB(), nullable=False, server_default=sa.text("'{}'::jsonb")),
        _timestamp("created_at"),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("idx_analytics_events_type_created", "analytics_events", ["event_type", "created_at"])


def downgrade() -> None:
    """Drop every table, dependants first. Destructive."""
    op.drop_index("idx_analytics_events_type_created", table_name="analytics_events")
    op.drop_table("analytics_events")
    op.drop_index("ix_reservation_notes_reservation_id", table_name="reservation_notes")
    op.drop_table("reservation_notes")
    op.drop_table("reservation_status_history")
    op.drop_index("idx_reservations_status", table_name="reservations")
    op.drop_index("idx_reservations_type_created", table_name="reservations")
    op.drop_table("reservations")
    op.drop_index("uq_form_question_answers_active_order", table_name="form_question_answers")
    op.drop_table("form_question_answers")
    op.drop_index("idx_form_questions_group", table_name="form_questions")
    op.drop_index("uq_form_questions_active_order", table_name="form_questions")
    op.drop_table("form_questions")
    op.drop_index("idx_services_category_order", table_name="services")
    op.drop_table("services")
    op.drop_table("service_categories")
