"""
Mindak Reservations Backend — Admin Catalog Routes
==================================================

What:  Service categories and services.

DELETE deactivates a service together with its form questions; toggle only
flips the service's own flag.
"""

import uuid
from typing import List, Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from mindak.database import get_db_session
from mindak.routes.dependencies import get_actor_id
from mindak.schemas.common import ErrorResponse
from mindak.schemas.service import (
    BulkStatusRequest,
    BulkStatusResponse,
    CategoryCreate,
    CategoryResponse,
    ServiceCreate,
    ServiceResponse,
    ServiceUpdate,
)
from mindak.services.catalog_service import catalog_service

ERROR_RESPONSES = {
    400: {"description": "Invalid input", "model": ErrorResponse},
    404: {"description": "Not found", "model": ErrorResponse},
}

category_router = APIRouter(
    prefix="/api/admin/service-categories",
    tags=["Admin: Services"],
    responses=ERROR_RESPONSES,
)
router = APIRouter(
    prefix="/api/admin/services",
    tags=["Admin: Services"],
    responses=ERROR_RESPONSES,
)


# ── Categories ────────────────────────────────────────────────────────────


@category_router.get("", response_model=List[CategoryResponse])
async def list_categories(
    include_inactive: bool = Query(default=False),
    db: AsyncSession = Depends(get_db_session),
) -> List[CategoryResponse]:
    return await catalog_service.list_categories(db, include_inactive)


@category_router.post("", status_code=201, response_model=CategoryResponse)
async def create_category(
    body: CategoryCreate,
    actor_id: uuid.UUID = Depends(get_actor_id),
    db: AsyncSession = Depends(get_db_session),
) -> CategoryResponse:
    return await catalog_service.create_category(db, body)


# ── Services ──────────────────────────────────────────────────────────────


@router.get("", response_model=List[ServiceResponse])
async def list_services(
    category_id: Optional[uuid.UUID] = Query(default=None),
    is_active: Optional[bool] = Query(default=None),
    db: AsyncSession = Depends(get_db_session),
) -> List[ServiceResponse]:
    return await catalog_service.list_services(db, category_id, is_active)


@router.post("", status_code=201, response_model=ServiceResponse)
async def create_service(
    body: ServiceCreate,
    actor_id: uuid.UUID = Depends(get_actor_id),
    db: AsyncSession = Depends(get_db_session),
) -> ServiceResponse:
    return await catalog_service.create_service(db, body)


@router.post("/bulk-status", response_model=BulkStatusResponse)
async def bulk_update_status(
    body: BulkStatusRequest,
    actor_id: uuid.UUID = Depends(get_actor_id),
    db: AsyncSession = Depends(get_db_session),
) -> BulkStatusResponse:
    updated = await catalog_service.bulk_update_status(db, body.ids, body.is_active)
    return BulkStatusResponse(updated=updated)


@router.get("/{service_id}", response_model=ServiceResponse)
async def get_service(
    service_id: uuid.UUID,
    db: AsyncSession = Depends(get_db_session),
) -> ServiceResponse:
    return await catalog_service.get_service(db, service_id)


@router.patch("/{service_id}", response_model=ServiceResponse)
async def update_service(
    service_id: uuid.UUID,
    body: ServiceUpdate,
    actor_id: uuid.UUID = Depends(get_actor_id),
    db: AsyncSession = Depends(get_db_session),
) -> ServiceResponse:
    return await catalog_service.update_service(db, service_id, body)


@router.delete("/{service_id}", response_model=ServiceResponse)
async def delete_service(
    service_id: uuid.UUID,
    actor_id: uuid.UUID = Depends(get_actor_id),
    db: AsyncSession = Depends(get_db_session),
) -> ServiceResponse:
    return await catalog_service.delete_service(db, service_id)


@router.post("/{service_id}/toggle", response_model=ServiceResponse)
async def toggle_service(
    service_id: uuid.UUID,
    actor_id: uuid.UUID = Depends(get_actor_id),
    db: AsyncSession = Depends(get_db_session),
) -> ServiceResponse:
    return await catalog_service.toggle_service_status(db, service_id)
