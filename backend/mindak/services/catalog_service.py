"""
Mindak Reservations Backend — Service Catalog
=============================================

What:  CRUD for service categories and services, and the public catalog.
Who:   Admin services router, public router, ReservationService (through
       `get_bookable_services`).

Services are never hard-deleted: service reservations keep their ids in a
JSON list, and service-specific questions hang off the service row.
Deleting a service deactivates it together with its questions.
"""

import logging
import uuid
from typing import Dict, List, Optional, Sequence

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from mindak.database import utcnow
from mindak.exceptions import DatabaseError, MindakError, NotFoundError, ValidationError
from mindak.models.analytics import AnalyticsEventType
from mindak.models.form import FormQuestion
from mindak.models.service import Service, ServiceCategory
from mindak.schemas.service import (
    CategoryCreate,
    CategoryResponse,
    PublicService,
    ServiceCreate,
    ServiceResponse,
    ServiceUpdate,
)
from mindak.services.analytics_service import analytics_service

logger = logging.getLogger(__name__)


class CatalogService:

    # ── Categories ────────────────────────────────────────────────────────

    async def list_categories(
        self, db: AsyncSession, include_inactive: bool = False
    ) -> List[CategoryResponse]:
        query = select(ServiceCategory).order_by(ServiceCategory.name)
        if not include_inactive:
            query = query.where(ServiceCategory.is_active.is_(True))
        try:
            categories = (await db.execute(query)).scalars().all()
        except SQLAlchemyError as e:
            logger.error("Database error listing categories: %s", str(e), exc_info=True)
            raise DatabaseError(message="Could not retrieve service categories.")
        return [CategoryResponse.model_validate(c) for c in categories]

    async def create_category(self, db: AsyncSession, data: CategoryCreate) -> CategoryResponse:
        """
        Raises:
            ValidationError("duplicate_category"): the name is already taken
        """
        try:
            existing = (
                await db.execute(select(ServiceCategory.id).where(ServiceCategory.name == data.name))
            ).scalar_one_or_none()
            if existing is not None:
                raise ValidationError(
                    code="duplicate_category",
                    message=f"A category named '{data.name}' already exists",
                    field="name",
                )
            category = ServiceCategory(name=data.name, description=data.description, is_active=True)
            db.add(category)
            await db.flush()
        except MindakError:
            raise
        except IntegrityError:
            raise ValidationError(
                code="duplicate_category",
                message=f"A category named '{data.name}' already exists",
                field="name",
            )
        except SQLAlchemyError as e:
            logger.error("Database error creating category: %s", str(e), exc_info=True)
            raise DatabaseError(message="Could not create the service category.")

        logger.info("Service category created: %s (%s)", category.name, category.id)
        return CategoryResponse.model_validate(category)

    async def _get_category(self, db: AsyncSession, category_id: uuid.UUID) -> ServiceCategory:
        category = (
            await db.execute(select(ServiceCategory).where(ServiceCategory.id == category_id))
        ).scalar_one_or_none()
        if category is None:
            raise NotFoundError(resource="service category", resource_id=str(category_id))
        return category

    # ── Services ──────────────────────────────────────────────────────────

    async def _get_service(self, db: AsyncSession, service_id: uuid.UUID) -> Service:
        service = (
            await db.execute(select(Service).where(Service.id == service_id))
        ).scalar_one_or_none()
        if service is None:
            raise NotFoundError(resource="service", resource_id=str(service_id))
        return service

    async def list_services(
        self,
        db: AsyncSession,
        category_id: Optional[uuid.UUID] = None,
        is_active: Optional[bool] = None,
    ) -> List[ServiceResponse]:
        query = select(Service).order_by(Service.display_order, Service.name)
        if category_id is not None:
            query = query.where(Service.category_id == category_id)
        if is_active is not None:
            query = query.where(Service.is_active.is_(is_active))
        try:
            services = (await db.execute(query)).scalars().all()
        except SQLAlchemyError as e:
            logger.error("Database error listing services: %s", str(e), exc_info=True)
            raise DatabaseError(message="Could not retrieve services.")
        return [ServiceResponse.model_validate(s) for s in services]

    async def get_service(
        self,
        db: AsyncSession,
        service_id: uuid.UUID,
        record_view: bool = False,
    ) -> ServiceResponse:
        """
        Single service. Public lookups pass `record_view=True`, which only
        finds active services and records a `service_viewed` event.
        """
        service = await self._get_service(db, service_id)
        if record_view:
            if not service.is_active:
                raise NotFoundError(resource="service", resource_id=str(service_id))
            await analytics_service.record_event(
                db,
                AnalyticsEventType.SERVICE_VIEWED,
                {"service_id": str(service.id), "service_name": service.name},
            )
        return ServiceResponse.model_validate(service)

    async def create_service(self, db: AsyncSession, data: ServiceCreate) -> ServiceResponse:
        try:
            await self._get_category(db, data.category_id)
            service = Service(
                name=data.name,
                description=data.description,
                price=data.price,
                category_id=data.category_id,
                is_active=data.is_active,
                display_order=data.display_order,
            )
            db.add(service)
            await db.flush()
        except MindakError:
            raise
        except SQLAlchemyError as e:
            logger.error("Database error creating service: %s", str(e), exc_info=True)
            raise DatabaseError(message="Could not create the service.")

        logger.info("Service created: %s (%s)", service.name, service.id)
        return ServiceResponse.model_validate(service)

    async def update_service(
        self, db: AsyncSession, service_id: uuid.UUID, changes: ServiceUpdate
    ) -> ServiceResponse:
        try:
            service = await self._get_service(db, service_id)
            values = changes.model_dump(exclude_unset=True)
            if values.get("category_id") is not None:
                await self._get_category(db, values["category_id"])
            for field, value in values.items():
                if value is None and field not in ("description",):
                    continue
                setattr(service, field, value)
            await db.flush()
        except MindakError:
            raise
        except SQLAlchemyError as e:
            logger.error("Database error updating service %s: %s", service_id, str(e), exc_info=True)
            raise DatabaseError(message="Could not update the service.")

        logger.info("Service %s updated: %s", service_id, sorted(values))
        return ServiceResponse.model_validate(service)

    async def delete_service(self, db: AsyncSession, service_id: uuid.UUID) -> ServiceResponse:
        """Soft delete: deactivates the service and its service-specific questions."""
        try:
            service = await self._get_service(db, service_id)
            service.is_active = False
            result = await db.execute(
                update(FormQuestion)
                .where(FormQuestion.service_id == service_id, FormQuestion.is_active.is_(True))
                .values(is_active=False, updated_at=utcnow())
                .execution_options(synchronize_session="fetch")
            )
            await db.flush()
        except MindakError:
            raise
        except SQLAlchemyError as e:
            logger.error("Database error deleting service %s: %s", service_id, str(e), exc_info=True)
            raise DatabaseError(message="Could not delete the service.")

        logger.info(
            "Service %s deactivated with %d service-specific question(s)",
            service_id, result.rowcount,
        )
        return ServiceResponse.model_validate(service)

    async def toggle_service_status(self, db: AsyncSession, service_id: uuid.UUID) -> ServiceResponse:
        """Flips availability. Unlike delete, the service's questions are kept as they are."""
        try:
            service = await self._get_service(db, service_id)
            service.is_active = not service.is_active
            await db.flush()
        except MindakError:
            raise
        except SQLAlchemyError as e:
            logger.error("Database error toggling service %s: %s", service_id, str(e), exc_info=True)
            raise DatabaseError(message="Could not update the service.")

        logger.info("Service %s is_active=%s", service_id, service.is_active)
        return ServiceResponse.model_validate(service)

    async def bulk_update_status(
        self, db: AsyncSession, ids: Sequence[uuid.UUID], is_active: bool
    ) -> int:
        """
        Sets is_active on every listed service.

        Raises:
            NotFoundError: any id is unknown; nothing is changed
        """
        wanted = list(dict.fromkeys(ids))
        try:
            services = (
                await db.execute(select(Service).where(Service.id.in_(wanted)))
            ).scalars().all()
            found = {s.id for s in services}
            for service_id in wanted:
                if service_id not in found:
                    raise NotFoundError(resource="service", resource_id=str(service_id))
            for service in services:
                service.is_active = is_active
            await db.flush()
        except MindakError:
            raise
        except SQLAlchemyError as e:
            logger.error("Database error in bulk status update: %s", str(e), exc_info=True)
            raise DatabaseError(message="Could not update services.")

        logger.info("Bulk status update: %d service(s) set is_active=%s", len(services), is_active)
        return len(services)

    async def get_active_services(self, db: AsyncSession) -> List[PublicService]:
        """Active services of active categories, by category name then display order."""
        try:
            rows = (
                await db.execute(
                    select(Service, ServiceCategory.name)
                    .join(ServiceCategory, Service.category_id == ServiceCategory.id)
                    .where(Service.is_active.is_(True), ServiceCategory.is_active.is_(True))
                    .order_by(ServiceCategory.name, Service.display_order, Service.name)
                )
            ).all()
        except SQLAlchemyError as e:
            logger.error("Database error listing active services: %s", str(e), exc_info=True)
            raise DatabaseError(message="Could not retrieve services.")

        return [
            PublicService(
                id=service.id,
                name=service.name,
                description=service.description,
                price=service.price,
                category_id=service.category_id,
                category_name=category_name,
                display_order=service.display_order,
            )
            for service, category_name in rows
        ]

    async def get_bookable_services(
        self, db: AsyncSession, service_ids: Sequence[uuid.UUID]
    ) -> Dict[uuid.UUID, Service]:
        """
        Loads the services of a submission; every id must be an active service.

        Raises:
            NotFoundError: first unknown or inactive id, in submission order
        """
        services = (
            await db.execute(select(Service).where(Service.id.in_(list(service_ids))))
        ).scalars().all()
        by_id = {s.id: s for s in services if s.is_active}
        for service_id in service_ids:
            if service_id not in by_id:
                raise NotFoundError(resource="service", resource_id=str(service_id))
        return by_id


catalog_service = CatalogService()
