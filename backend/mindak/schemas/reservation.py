"""
Mindak Reservations Backend — Reservation Schemas
=================================================

What:  API contracts for reservation submission, confirmation lookup, admin
       listing/details, status transitions and notes, plus the frozen
       answer snapshot that is stored inside each reservation.
Who:   Public and admin reservation routers, ReservationService, the
       snapshot builder.

Snapshot storage:
    `AnsweredQuestionSnapshot.model_dump(mode="json")` is what lands in
    `reservations.client_answers`; reading a reservation validates the stored
    JSON back into the same model.
"""

import uuid
from datetime import datetime
from typing import Any, Dict, List, Optional, Union

from pydantic import BaseModel, Field, field_validator

from mindak.models.form import QuestionType, SectionType
from mindak.models.reservation import ReservationStatus, ReservationType

# answer_metadata values are restricted to scalars
MetadataValue = Union[str, int, float, bool, None]


# ══════════════════════════════════════════════════════════════════════════
# Answer Snapshot
# ══════════════════════════════════════════════════════════════════════════


class AnsweredQuestionSnapshot(BaseModel):
    """
    One answered (or unanswered optional) question, frozen at submission.

    `value` is the normalized client value: a string for free-text and
    single-choice questions, a list of option values for checkboxes, or
    null when an optional question was left blank.
    """
    question_id: uuid.UUID
    question_text: str
    question_type: QuestionType
    section_type: SectionType = SectionType.GENERAL
    service_id: Optional[uuid.UUID] = None
    service_name: Optional[str] = None
    value: Union[str, List[str], None] = None
    answer_id: Optional[uuid.UUID] = None
    answer_ids: Optional[List[uuid.UUID]] = None
    answer_text: Optional[str] = None
    answer_metadata: Dict[str, MetadataValue] = Field(default_factory=dict)

    model_config = {"frozen": True}


# ══════════════════════════════════════════════════════════════════════════
# Submission (public)
# ══════════════════════════════════════════════════════════════════════════


class PodcastReservationCreate(BaseModel):
    """
    Body of POST /api/public/reservations/podcast.

    `answers` maps question id → value. Keys are kept as strings so that a
    malformed id is reported as an unknown question rather than a schema
    error.
    """
    answers: Dict[str, Any] = Field(default_factory=dict)
    client_id: Optional[uuid.UUID] = None


class ServiceReservationCreate(PodcastReservationCreate):
    service_ids: List[uuid.UUID] = Field(default_factory=list)


class ReservationSubmitResponse(BaseModel):
    id: uuid.UUID
    reservation_type: ReservationType
    confirmation_id: str
    status: ReservationStatus
    created_at: datetime
    answers: List[AnsweredQuestionSnapshot]


class ConfirmationResponse(BaseModel):
    """What a client may see about its own reservation by confirmation id."""
    confirmation_id: str
    reservation_type: ReservationType
    status: ReservationStatus
    created_at: datetime
    service_names: List[str] = Field(default_factory=list)


# ══════════════════════════════════════════════════════════════════════════
# Admin
# ══════════════════════════════════════════════════════════════════════════


class ReservationListItem(BaseModel):
    id: uuid.UUID
    reservation_type: ReservationType
    confirmation_id: str
    status: ReservationStatus
    client_id: Optional[uuid.UUID] = None
    service_ids: Optional[List[uuid.UUID]] = None
    answer_count: int
    created_at: datetime


class ReservationListResponse(BaseModel):
    """
    Cursor-paginated reservation list.

    next_cursor encodes the created_at and id of the last item; pass it back
    as `cursor` for the next page.
    """
    reservations: List[ReservationListItem]
    total_count: int
    next_cursor: Optional[str] = None
    has_more: bool


class ReservationListParams(BaseModel):
    status: Optional[ReservationStatus] = None
    search: Optional[str] = Field(
        default=None, max_length=100, description="Confirmation id substring"
    )
    from_date: Optional[str] = Field(default=None, description="Filter start (ISO 8601)")
    to_date: Optional[str] = Field(default=None, description="Filter end (ISO 8601); a bare date includes the whole day")
    limit: int = Field(default=20, ge=1, le=100)
    cursor: Optional[str] = Field(default=None, description="next_cursor from the previous page")
    sort: str = Field(default="created_at_desc")

    @field_validator("sort")
    @classmethod
    def validate_sort(cls, v: str) -> str:
        valid = {"created_at_desc", "created_at_asc"}
        if v not in valid:
            raise ValueError(f"Invalid sort '{v}'. Must be one of: {valid}")
        return v


class StatusHistoryResponse(BaseModel):
    id: uuid.UUID
    sequence: int
    previous_status: Optional[ReservationStatus] = None
    new_status: ReservationStatus
    changed_by: Optional[uuid.UUID] = None
    changed_at: datetime
    reason: Optional[str] = None

    model_config = {"from_attributes": True}


class StatusTransitionRequest(BaseModel):
    status: ReservationStatus
    reason: Optional[str] = Field(default=None, max_length=2000)


class StatusTransitionResponse(BaseModel):
    id: uuid.UUID
    confirmation_id: str
    status: ReservationStatus
    history: StatusHistoryResponse


class NoteCreate(BaseModel):
    # Blank text is rejected by the service with code "empty_note"
    text: str = Field(max_length=5000)


class NoteResponse(BaseModel):
    id: uuid.UUID
    reservation_id: uuid.UUID
    author_id: uuid.UUID
    text: str
    created_at: datetime

    model_config = {"from_attributes": True}


class ServiceRef(BaseModel):
    id: uuid.UUID
    name: str


class ReservationDetailsResponse(BaseModel):
    id: uuid.UUID
    reservation_type: ReservationType
    confirmation_id: str
    status: ReservationStatus
    client_id: Optional[uuid.UUID] = None
    client_ip: Optional[str] = None
    user_agent: Optional[str] = None
    created_at: datetime
    updated_at: datetime
    answers: List[AnsweredQuestionSnapshot]
    services: List[ServiceRef] = Field(default_factory=list)
    history: List[StatusHistoryResponse]
    notes: List[NoteResponse]
