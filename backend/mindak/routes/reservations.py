"""
Mindak Reservations Backend — Admin Reservation Routes
======================================================

What:  Listing, detail, status transitions, notes and deletion for one
       reservation kind (/podcast or /services).
How:   Ids of the other kind answer 404. Mutations require the
       X-Actor-ID header; the actor is recorded in history and on notes.
"""

import logging
import uuid
from typing import List

from fastapi import APIRouter, Depends, Query, Response
from sqlalchemy.ext.asyncio import AsyncSession

from mindak.database import get_db_session
from mindak.routes.dependencies import ReservationKind, get_actor_id
from mindak.schemas.common import ErrorResponse
from mindak.schemas.reservation import (
    NoteCreate,
    NoteResponse,
    ReservationDetailsResponse,
    ReservationListParams,
    ReservationListResponse,
    StatusTransitionRequest,
    StatusTransitionResponse,
)
from mindak.services.reservation_service import reservation_service

logger = logging.getLogger(__name__)

router = APIRouter(
    prefix="/api/admin/reservations/{kind}",
    tags=["Admin: Reservations"],
    responses={
        404: {"description": "Reservation not found", "model": ErrorResponse},
        500: {"description": "Server error", "model": ErrorResponse},
    },
)


@router.get(
    "",
    response_model=ReservationListResponse,
    summary="List reservations with cursor pagination",
    description=(
        "Newest first by default. Pass next_cursor from the previous page as "
        "`cursor`. The total count is also sent as X-Total-Count."
    ),
)
async def list_reservations(
    kind: ReservationKind,
    response: Response,
    params: ReservationListParams = Query(),
    db: AsyncSession = Depends(get_db_session),
) -> ReservationListResponse:
    result = await reservation_service.list_reservations(db, kind.reservation_type, params)
    response.headers["X-Total-Count"] = str(result.total_count)
    return result


@router.get("/{reservation_id}", response_model=ReservationDetailsResponse)
async def get_reservation(
    kind: ReservationKind,
    reservation_id: uuid.UUID,
    db: AsyncSession = Depends(get_db_session),
) -> ReservationDetailsResponse:
    return await reservation_service.get_reservation_details(
        db, reservation_id, kind.reservation_type
    )


@router.post(
    "/{reservation_id}/status",
    response_model=StatusTransitionResponse,
    responses={
        400: {"description": "Missing or invalid actor", "model": ErrorResponse},
        409: {"description": "Transition not allowed or lost a race", "model": ErrorResponse},
    },
    summary="Change reservation status",
)
async def change_status(
    kind: ReservationKind,
    reservation_id: uuid.UUID,
    body: StatusTransitionRequest,
    actor_id: uuid.UUID = Depends(get_actor_id),
    db: AsyncSession = Depends(get_db_session),
) -> StatusTransitionResponse:
    return await reservation_service.transition(
        db,
        reservation_id,
        body.status,
        actor_id=actor_id,
        reason=body.reason,
        reservation_type=kind.reservation_type,
    )


@router.get("/{reservation_id}/notes", response_model=List[NoteResponse])
async def list_notes(
    kind: ReservationKind,
    reservation_id: uuid.UUID,
    db: AsyncSession = Depends(get_db_session),
) -> List[NoteResponse]:
    return await reservation_service.list_notes(db, reservation_id, kind.reservation_type)


@router.post("/{reservation_id}/notes", status_code=201, response_model=NoteResponse)
async def add_note(
    kind: ReservationKind,
    reservation_id: uuid.UUID,
    body: NoteCreate,
    actor_id: uuid.UUID = Depends(get_actor_id),
    db: AsyncSession = Depends(get_db_session),
) -> NoteResponse:
    return await reservation_service.add_note(
        db, reservation_id, author_id=actor_id, text=body.text,
        reservation_type=kind.reservation_type,
    )


@router.delete("/{reservation_id}", status_code=204, response_class=Response)
async def delete_reservation(
    kind: ReservationKind,
    reservation_id: uuid.UUID,
    actor_id: uuid.UUID = Depends(get_actor_id),
    db: AsyncSession = Depends(get_db_session),
) -> Response:
    await reservation_service.delete_reservation(db, reservation_id, kind.reservation_type)
    logger.info("Reservation %s deleted by %s", reservation_id, actor_id)
    return Response(status_code=204)
