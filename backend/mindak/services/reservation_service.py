"""
Mindak Reservations Backend — Reservation Service
=================================================

What:  Reservation intake, status workflow, notes and admin reads.
Who:   Public and admin reservation routers.

Submission Flow:
    ┌────────────┐   ┌──────────────┐   ┌──────────────┐   ┌──────────────┐
    │ load active│──▶│ build + check│──▶│ insert row + │──▶│ flag defs as │
    │ definitions│   │ snapshot     │   │ history #1   │   │ referenced   │
    └────────────┘   └──────────────┘   └──────────────┘   └──────────────┘

Transition Flow:
    load → check table → UPDATE ... WHERE id = :id AND status = :old
         → 0 rows: ConflictError (another request changed it first)
         → 1 row:  append history row (next sequence) + analytics event

Everything runs in the request session; get_db_session commits the status
update and its history row together or rolls both back.
"""

import logging
import uuid
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Mapping, Optional, Sequence, Tuple

from sqlalchemy import and_, asc, delete, desc, func, or_, select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm.attributes import set_committed_value

from mindak.database import utcnow
from mindak.exceptions import (
    ConflictError,
    DatabaseError,
    MindakError,
    NotFoundError,
    ValidationError,
)
from mindak.models.analytics import AnalyticsEventType
from mindak.models.form import FormType
from mindak.models.reservation import (
    Reservation,
    ReservationNote,
    ReservationStatus,
    ReservationStatusHistory,
    ReservationType,
)
from mindak.models.service import Service
from mindak.schemas.reservation import (
    AnsweredQuestionSnapshot,
    ConfirmationResponse,
    NoteResponse,
    ReservationDetailsResponse,
    ReservationListItem,
    ReservationListParams,
    ReservationListResponse,
    ReservationSubmitResponse,
    ServiceRef,
    StatusHistoryResponse,
    StatusTransitionResponse,
)
from mindak.services.analytics_service import analytics_service
from mindak.services.catalog_service import catalog_service
from mindak.services.confirmation import generate_confirmation_id
from mindak.services.form_service import form_service
from mindak.services.snapshot_builder import build_snapshot
from mindak.services.status_workflow import INITIAL_STATUS, validate_transition

logger = logging.getLogger(__name__)

# next_cursor is "<created_at ISO 8601>|<reservation id>"
CURSOR_SEPARATOR = "|"

STATUS_EVENTS = {
    ReservationStatus.CONFIRMED: AnalyticsEventType.RESERVATION_CONFIRMED,
    ReservationStatus.CANCELLED: AnalyticsEventType.RESERVATION_CANCELLED,
    ReservationStatus.COMPLETED: AnalyticsEventType.RESERVATION_COMPLETED,
}


def _parse_datetime(value: str, field: str) -> datetime:
    """ISO 8601 date or date-time; naive values are taken as UTC."""
    try:
        parsed = datetime.fromisoformat(value.strip())
    except ValueError:
        raise ValidationError(
            code="invalid_format",
            message=f"'{value}' is not an ISO 8601 date/time",
            field=field,
        )
    if parsed.tzinfo is None:
        return parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)


def _is_date_only(value: str) -> bool:
    return len(value.strip()) == 10


def _encode_cursor(reservation: Reservation) -> str:
    return f"{reservation.created_at.isoformat()}{CURSOR_SEPARATOR}{reservation.id}"


def _decode_cursor(value: str) -> Tuple[datetime, uuid.UUID]:
    timestamp, _, raw_id = value.partition(CURSOR_SEPARATOR)
    try:
        cursor_id = uuid.UUID(raw_id)
    except ValueError:
        raise ValidationError(
            code="invalid_format",
            message=f"'{value}' is not a pagination cursor",
            field="cursor",
        )
    return _parse_datetime(timestamp, "cursor"), cursor_id


def _escape_like(value: str) -> str:
    """Escapes LIKE wildcards so user input matches literally (escape char: backslash)."""
    return value.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


def _load_snapshots(reservation: Reservation) -> List[AnsweredQuestionSnapshot]:
    return [AnsweredQuestionSnapshot.model_validate(item) for item in reservation.client_answers or []]


def _service_uuids(reservation: Reservation) -> List[uuid.UUID]:
    return [uuid.UUID(sid) for sid in reservation.service_ids or []]


class ReservationService:
    """
    Business logic for reservations.

    Error Handling Strategy:
        Domain errors (ValidationError, NotFoundError, InvalidTransitionError,
        ConflictError) propagate unchanged. SQLAlchemy failures are logged
        and re-raised as DatabaseError with a generic message.
    """

    # ══════════════════════════════════════════════════════════════════════
    # Submission
    # ══════════════════════════════════════════════════════════════════════

    async def submit_podcast_reservation(
        self,
        db: AsyncSession,
        answers: Mapping[str, Any],
        client_id: Optional[uuid.UUID] = None,
        client_ip: Optional[str] = None,
        user_agent: Optional[str] = None,
    ) -> ReservationSubmitResponse:
        try:
            questions, options = await form_service.load_active_form(db, FormType.PODCAST)
            snapshots = build_snapshot(questions, options, answers)
            return await self._create_reservation(
                db,
                ReservationType.PODCAST,
                snapshots,
                service_ids=None,
                client_id=client_id,
                client_ip=client_ip,
                user_agent=user_agent,
            )
        except MindakError:
            raise
        except SQLAlchemyError as e:
            logger.error("Database error submitting podcast reservation: %s", str(e), exc_info=True)
            raise DatabaseError(message="Could not save your reservation. Please try again.")

    async def submit_service_reservation(
        self,
        db: AsyncSession,
        service_ids: Sequence[uuid.UUID],
        answers: Mapping[str, Any],
        client_id: Optional[uuid.UUID] = None,
        client_ip: Optional[str] = None,
        user_agent: Optional[str] = None,
    ) -> ReservationSubmitResponse:
        """
        Raises:
            ValidationError("missing_services"): no service id given
            NotFoundError: a service id is unknown or inactive
            ValidationError: any snapshot builder failure
        """
        ordered_ids = list(dict.fromkeys(service_ids))
        if not ordered_ids:
            raise ValidationError(
                code="missing_services",
                message="Select at least one service",
                field="service_ids",
            )
        try:
            services = await catalog_service.get_bookable_services(db, ordered_ids)
            questions, options = await form_service.load_active_form(
                db, FormType.SERVICES, ordered_ids
            )
            snapshots = build_snapshot(
                questions,
                options,
                answers,
                service_names={sid: s.name for sid, s in services.items()},
            )
            return await self._create_reservation(
                db,
                ReservationType.SERVICE,
                snapshots,
                service_ids=[str(sid) for sid in ordered_ids],
                client_id=client_id,
                client_ip=client_ip,
                user_agent=user_agent,
            )
        except MindakError:
            raise
        except SQLAlchemyError as e:
            logger.error("Database error submitting service reservation: %s", str(e), exc_info=True)
            raise DatabaseError(message="Could not save your reservation. Please try again.")

    async def _create_reservation(
        self,
        db: AsyncSession,
        reservation_type: ReservationType,
        snapshots: List[AnsweredQuestionSnapshot],
        service_ids: Optional[List[str]],
        client_id: Optional[uuid.UUID],
        client_ip: Optional[str],
        user_agent: Optional[str],
    ) -> ReservationSubmitResponse:
        confirmation_id = await generate_confirmation_id(db, reservation_type)
        reservation = Reservation(
            reservation_type=reservation_type.value,
            client_id=client_id,
            confirmation_id=confirmation_id,
            status=INITIAL_STATUS.value,
            client_answers=[s.model_dump(mode="json") for s in snapshots],
            service_ids=service_ids,
            client_ip=client_ip,
            user_agent=user_agent[:512] if user_agent else None,
        )
        db.add(reservation)
        await db.flush()

        db.add(
            ReservationStatusHistory(
                reservation_id=reservation.id,
                sequence=1,
                previous_status=None,
                new_status=INITIAL_STATUS.value,
                changed_by=client_id,
            )
        )

        answer_ids: List[uuid.UUID] = []
        for snapshot in snapshots:
            if snapshot.answer_id is not None:
                answer_ids.append(snapshot.answer_id)
            answer_ids.extend(snapshot.answer_ids or [])
        await form_service.mark_referenced(db, [s.question_id for s in snapshots], answer_ids)

        await analytics_service.record_event(
            db,
            AnalyticsEventType.RESERVATION_SUBMITTED,
            {
                "reservation_id": str(reservation.id),
                "reservation_type": reservation_type.value,
                "confirmation_id": confirmation_id,
                "service_ids": service_ids or [],
            },
        )

        logger.info(
            "Reservation %s submitted (%s, %d answers)",
            confirmation_id, reservation_type.value, len(snapshots),
        )
        return ReservationSubmitResponse(
            id=reservation.id,
            reservation_type=reservation_type,
            confirmation_id=confirmation_id,
            status=INITIAL_STATUS,
            created_at=reservation.created_at,
            answers=snapshots,
        )

    # ══════════════════════════════════════════════════════════════════════
    # Status workflow
    # ══════════════════════════════════════════════════════════════════════

    async def _load_reservation(
        self,
        db: AsyncSession,
        reservation_id: uuid.UUID,
        reservation_type: Optional[ReservationType] = None,
    ) -> Reservation:
        reservation = (
            await db.execute(select(Reservation).where(Reservation.id == reservation_id))
        ).scalar_one_or_none()
        if reservation is None or (
            reservation_type is not None and reservation.reservation_type != reservation_type.value
        ):
            raise NotFoundError(resource="reservation", resource_id=str(reservation_id))
        return reservation

    async def transition(
        self,
        db: AsyncSession,
        reservation_id: uuid.UUID,
        new_status: ReservationStatus,
        actor_id: uuid.UUID,
        reason: Optional[str] = None,
        reservation_type: Optional[ReservationType] = None,
    ) -> StatusTransitionResponse:
        """
        Moves a reservation to `new_status` and appends its history row.

        Raises:
            NotFoundError: unknown id (or wrong reservation type)
            InvalidTransitionError: pair not in the allowed table; nothing written
            ConflictError: status changed underneath us between load and update
        """
        try:
            reservation = await self._load_reservation(db, reservation_id, reservation_type)
            previous = reservation.status
            target = validate_transition(previous, new_status)

            result = await db.execute(
                update(Reservation)
                .where(Reservation.id == reservation.id, Reservation.status == previous)
                .values(status=target.value, updated_at=utcnow())
                .execution_options(synchronize_session=False)
            )
            if result.rowcount != 1:
                logger.warning(
                    "Lost status race on reservation %s (%s -> %s)",
                    reservation.id, previous, target.value,
                )
                raise ConflictError(
                    context={"reservation_id": str(reservation.id), "expected_status": previous}
                )
            set_committed_value(reservation, "status", target.value)

            last_sequence = (
                await db.execute(
                    select(func.max(ReservationStatusHistory.sequence)).where(
                        ReservationStatusHistory.reservation_id == reservation.id
                    )
                )
            ).scalar() or 0
            history = ReservationStatusHistory(
                reservation_id=reservation.id,
                sequence=last_sequence + 1,
                previous_status=previous,
                new_status=target.value,
                changed_by=actor_id,
                reason=reason.strip() if reason and reason.strip() else None,
            )
            db.add(history)
            await db.flush()

            await analytics_service.record_event(
                db,
                STATUS_EVENTS[target],
                {
                    "reservation_id": str(reservation.id),
                    "reservation_type": reservation.reservation_type,
                    "previous_status": previous,
                },
            )
        except MindakError:
            raise
        except SQLAlchemyError as e:
            logger.error("Database error in status transition %s: %s", reservation_id, str(e), exc_info=True)
            raise DatabaseError(message="Could not update the reservation status. Please try again.")

        logger.info(
            "Reservation %s: %s -> %s by %s", reservation.confirmation_id, previous, target.value, actor_id
        )
        return StatusTransitionResponse(
            id=reservation.id,
            confirmation_id=reservation.confirmation_id,
            status=target,
            history=StatusHistoryResponse.model_validate(history),
        )

    # ══════════════════════════════════════════════════════════════════════
    # Notes
    # ══════════════════════════════════════════════════════════════════════

    async def add_note(
        self,
        db: AsyncSession,
        reservation_id: uuid.UUID,
        author_id: uuid.UUID,
        text: str,
        reservation_type: Optional[ReservationType] = None,
    ) -> NoteResponse:
        stripped = (text or "").strip()
        if not stripped:
            raise ValidationError(code="empty_note", message="Note text cannot be empty", field="text")
        try:
            await self._load_reservation(db, reservation_id, reservation_type)
            note = ReservationNote(reservation_id=reservation_id, author_id=author_id, text=stripped)
            db.add(note)
            await db.flush()
        except MindakError:
            raise
        except SQLAlchemyError as e:
            logger.error("Database error adding note to %s: %s", reservation_id, str(e), exc_info=True)
            raise DatabaseError(message="Could not save the note. Please try again.")

        logger.info("Note %s added to reservation %s", note.id, reservation_id)
        return NoteResponse.model_validate(note)

    async def _notes(self, db: AsyncSession, reservation_id: uuid.UUID) -> List[ReservationNote]:
        return list(
            (
                await db.execute(
                    select(ReservationNote)
                    .where(ReservationNote.reservation_id == reservation_id)
                    .order_by(asc(ReservationNote.created_at))
                )
            ).scalars().all()
        )

    async def list_notes(
        self,
        db: AsyncSession,
        reservation_id: uuid.UUID,
        reservation_type: Optional[ReservationType] = None,
    ) -> List[NoteResponse]:
        """Notes oldest first."""
        try:
            await self._load_reservation(db, reservation_id, reservation_type)
            notes = await self._notes(db, reservation_id)
        except MindakError:
            raise
        except SQLAlchemyError as e:
            logger.error("Database error listing notes of %s: %s", reservation_id, str(e), exc_info=True)
            raise DatabaseError(message="Could not retrieve notes. Please try again.")
        return [NoteResponse.model_validate(n) for n in notes]

    # ══════════════════════════════════════════════════════════════════════
    # Reads
    # ══════════════════════════════════════════════════════════════════════

    async def get_confirmation(self, db: AsyncSession, confirmation_id: str) -> ConfirmationResponse:
        try:
            reservation = (
                await db.execute(
                    select(Reservation).where(Reservation.confirmation_id == confirmation_id.strip().upper())
                )
            ).scalar_one_or_none()
            if reservation is None:
                raise NotFoundError(resource="reservation", resource_id=confirmation_id)
            names = await self._service_names(db, _service_uuids(reservation))
        except MindakError:
            raise
        except SQLAlchemyError as e:
            logger.error("Database error looking up %s: %s", confirmation_id, str(e), exc_info=True)
            raise DatabaseError(message="Could not retrieve the reservation. Please try again.")

        return ConfirmationResponse(
            confirmation_id=reservation.confirmation_id,
            reservation_type=reservation.reservation_type,
            status=reservation.status,
            created_at=reservation.created_at,
            service_names=[ref.name for ref in names],
        )

    async def _service_names(
        self, db: AsyncSession, service_ids: Sequence[uuid.UUID]
    ) -> List[ServiceRef]:
        if not service_ids:
            return []
        names: Dict[uuid.UUID, str] = dict(
            (
                await db.execute(select(Service.id, Service.name).where(Service.id.in_(list(service_ids))))
            ).all()
        )
        return [ServiceRef(id=sid, name=names[sid]) for sid in service_ids if sid in names]

    async def list_reservations(
        self,
        db: AsyncSession,
        reservation_type: ReservationType,
        params: ReservationListParams,
    ) -> ReservationListResponse:
        """
        Cursor-paginated listing on (created_at, id).

        Fetches limit + 1 rows to learn whether another page exists; the
        total count honours the filters but not the cursor. A date-only
        to_date includes that whole day.
        """
        filters = [Reservation.reservation_type == reservation_type.value]
        if params.status is not None:
            filters.append(Reservation.status == params.status.value)
        if params.search and params.search.strip():
            pattern = _escape_like(params.search.strip())
            filters.append(Reservation.confirmation_id.ilike(f"%{pattern}%", escape="\\"))
        if params.from_date:
            filters.append(Reservation.created_at >= _parse_datetime(params.from_date, "from_date"))
        if params.to_date:
            upper = _parse_datetime(params.to_date, "to_date")
            if _is_date_only(params.to_date):
                filters.append(Reservation.created_at < upper + timedelta(days=1))
            else:
                filters.append(Reservation.created_at <= upper)

        query = select(Reservation).where(*filters)
        descending = params.sort == "created_at_desc"
        if params.cursor:
            cursor_dt, cursor_id = _decode_cursor(params.cursor)
            if descending:
                after_cursor = or_(
                    Reservation.created_at < cursor_dt,
                    and_(Reservation.created_at == cursor_dt, Reservation.id < cursor_id),
                )
            else:
                after_cursor = or_(
                    Reservation.created_at > cursor_dt,
                    and_(Reservation.created_at == cursor_dt, Reservation.id > cursor_id),
                )
            query = query.where(after_cursor)
        if descending:
            query = query.order_by(desc(Reservation.created_at), desc(Reservation.id))
        else:
            query = query.order_by(asc(Reservation.created_at), asc(Reservation.id))
        query = query.limit(params.limit + 1)

        try:
            reservations = list((await db.execute(query)).scalars().all())
            total_count = (
                await db.execute(select(func.count(Reservation.id)).where(*filters))
            ).scalar() or 0
        except SQLAlchemyError as e:
            logger.error("Database error listing reservations: %s", str(e), exc_info=True)
            raise DatabaseError(message="Could not retrieve reservations. Please try again.")

        has_more = len(reservations) > params.limit
        if has_more:
            reservations = reservations[: params.limit]
        next_cursor = _encode_cursor(reservations[-1]) if has_more and reservations else None

        return ReservationListResponse(
            reservations=[
                ReservationListItem(
                    id=r.id,
                    reservation_type=r.reservation_type,
                    confirmation_id=r.confirmation_id,
                    status=r.status,
                    client_id=r.client_id,
                    service_ids=_service_uuids(r) if r.service_ids is not None else None,
                    answer_count=len(r.client_answers or []),
                    created_at=r.created_at,
                )
                for r in reservations
            ],
            total_count=total_count,
            next_cursor=next_cursor,
            has_more=has_more,
        )

    async def get_reservation_details(
        self,
        db: AsyncSession,
        reservation_id: uuid.UUID,
        reservation_type: Optional[ReservationType] = None,
    ) -> ReservationDetailsResponse:
        try:
            reservation = await self._load_reservation(db, reservation_id, reservation_type)
            history = (
                await db.execute(
                    select(ReservationStatusHistory)
                    .where(ReservationStatusHistory.reservation_id == reservation.id)
                    .order_by(ReservationStatusHistory.sequence)
                )
            ).scalars().all()
            notes = await self._notes(db, reservation.id)
            services = await self._service_names(db, _service_uuids(reservation))
        except MindakError:
            raise
        except SQLAlchemyError as e:
            logger.error("Database error loading reservation %s: %s", reservation_id, str(e), exc_info=True)
            raise DatabaseError(message="Could not retrieve the reservation. Please try again.")

        return ReservationDetailsResponse(
            id=reservation.id,
            reservation_type=reservation.reservation_type,
            confirmation_id=reservation.confirmation_id,
            status=reservation.status,
            client_id=reservation.client_id,
            client_ip=reservation.client_ip,
            user_agent=reservation.user_agent,
            created_at=reservation.created_at,
            updated_at=reservation.updated_at,
            answers=_load_snapshots(reservation),
            services=services,
            history=[StatusHistoryResponse.model_validate(h) for h in history],
            notes=[NoteResponse.model_validate(n) for n in notes],
        )

    async def delete_reservation(
        self,
        db: AsyncSession,
        reservation_id: uuid.UUID,
        reservation_type: Optional[ReservationType] = None,
    ) -> None:
        """Hard delete, together with its history and notes."""
        try:
            reservation = await self._load_reservation(db, reservation_id, reservation_type)
            await db.execute(
                delete(ReservationStatusHistory).where(
                    ReservationStatusHistory.reservation_id == reservation.id
                )
            )
            await db.execute(
                delete(ReservationNote).where(ReservationNote.reservation_id == reservation.id)
            )
            await db.delete(reservation)
            await db.flush()
        except MindakError:
            raise
        except SQLAlchemyError as e:
            logger.error("Database error deleting reservation %s: %s", reservation_id, str(e), exc_info=True)
            raise DatabaseError(message="Could not delete the reservation. Please try again.")

        logger.info("Reservation %s deleted", reservation.confirmation_id)


reservation_service = ReservationService()
