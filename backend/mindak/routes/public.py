"""
Mindak Reservations Backend — Public Routes
===========================================

What:  Everything an anonymous client needs: the two forms, the service
       catalog, reservation submission and confirmation lookup.
Who:   The public booking site.

Submissions (POST /api/public/reservations/...) are rate limited per IP by
RateLimitMiddleware.
"""

import logging
import uuid
from typing import List

from fastapi import APIRouter, Depends, Query, Request
from sqlalchemy.ext.asyncio import AsyncSession

from mindak.database import get_db_session
from mindak.models.form import FormType
from mindak.schemas.common import ErrorResponse
from mindak.schemas.form import ClientFormResponse
from mindak.schemas.reservation import (
    ConfirmationResponse,
    PodcastReservationCreate,
    ReservationSubmitResponse,
    ServiceReservationCreate,
)
from mindak.schemas.service import PublicService, ServiceResponse
from mindak.services.catalog_service import catalog_service
from mindak.services.form_service import form_service
from mindak.services.reservation_service import reservation_service

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/public", tags=["Public"])

SUBMIT_RESPONSES = {
    400: {"description": "Answer validation failed", "model": ErrorResponse},
    404: {"description": "Unknown or inactive service", "model": ErrorResponse},
    429: {"description": "Too many submissions", "model": ErrorResponse},
}


def _client_meta(request: Request) -> dict:
    return {
        "client_ip": request.client.host if request.client else None,
        "user_agent": request.headers.get("user-agent"),
    }


# ── Forms ─────────────────────────────────────────────────────────────────


@router.get("/forms/podcast", response_model=ClientFormResponse, summary="Podcast form")
async def get_podcast_form(db: AsyncSession = Depends(get_db_session)) -> ClientFormResponse:
    return await form_service.get_client_questions(db, FormType.PODCAST)


@router.get(
    "/forms/services",
    response_model=ClientFormResponse,
    summary="Services form",
    description=(
        "General questions, followed by the questions of each selected service "
        "in the order the services are given."
    ),
)
async def get_services_form(
    service_ids: List[uuid.UUID] = Query(default=[]),
    db: AsyncSession = Depends(get_db_session),
) -> ClientFormResponse:
    return await form_service.get_client_questions(db, FormType.SERVICES, service_ids)


# ── Catalog ───────────────────────────────────────────────────────────────


@router.get("/services", response_model=List[PublicService], summary="Bookable services")
async def list_active_services(db: AsyncSession = Depends(get_db_session)) -> List[PublicService]:
    return await catalog_service.get_active_services(db)


@router.get(
    "/services/{service_id}",
    response_model=ServiceResponse,
    responses={404: {"model": ErrorResponse}},
    summary="One bookable service",
)
async def get_public_service(
    service_id: uuid.UUID,
    db: AsyncSession = Depends(get_db_session),
) -> ServiceResponse:
    return await catalog_service.get_service(db, service_id, record_view=True)


# ── Reservations ──────────────────────────────────────────────────────────


@router.post(
    "/reservations/podcast",
    status_code=201,
    response_model=ReservationSubmitResponse,
    responses=SUBMIT_RESPONSES,
    summary="Submit a podcast reservation",
)
async def submit_podcast_reservation(
    body: PodcastReservationCreate,
    request: Request,
    db: AsyncSession = Depends(get_db_session),
) -> ReservationSubmitResponse:
    return await reservation_service.submit_podcast_reservation(
        db,
        answers=body.answers,
        client_id=body.client_id,
        **_client_meta(request),
    )


@router.post(
    "/reservations/services",
    status_code=201,
    response_model=ReservationSubmitResponse,
    responses=SUBMIT_RESPONSES,
    summary="Submit a service reservation",
)
async def submit_service_reservation(
    body: ServiceReservationCreate,
    request: Request,
    db: AsyncSession = Depends(get_db_session),
) -> ReservationSubmitResponse:
    return await reservation_service.submit_service_reservation(
        db,
        service_ids=body.service_ids,
        answers=body.answers,
        client_id=body.client_id,
        **_client_meta(request),
    )


@router.get(
    "/reservations/confirmation/{confirmation_id}",
    response_model=ConfirmationResponse,
    responses={404: {"model": ErrorResponse}},
    summary="Look up a reservation by confirmation id",
)
async def get_confirmation(
    confirmation_id: str,
    db: AsyncSession = Depends(get_db_session),
) -> ConfirmationResponse:
    return await reservation_service.get_confirmation(db, confirmation_id)
