"""
Mindak Reservations Backend — Form Question Service
===================================================

What:  Admin management of form questions and their answer options, plus the
       read paths used by the public form and by reservation submission.
Who:   Admin forms router, public router, ReservationService.

Ordering model:
    Questions are grouped by (form_type, section_type, service_id); answer
    options by question_id. Inside a group, ACTIVE rows carry orders 1..n
    with no gaps. Every write that changes membership (create, deactivate,
    delete) or order (reorder) rewrites the group's orders in two phases:

        phase 1: order = -1, -2, ... (temporary, flushed)
        phase 2: order =  1,  2, ... (final, flushed)

    so the partial unique index over active rows never sees a duplicate,
    whatever order the UPDATEs are emitted in. Group rows are read with
    SELECT ... FOR UPDATE, which serializes concurrent reorders of the same
    group on PostgreSQL.

Versioning:
    Once a reservation snapshot embeds a question (or option), its
    `is_referenced` flag is set. From then on, edits to its text/type (or
    option text/value) create a new row that takes over the position while
    the old row is deactivated, and deletes become deactivations.
"""

import logging
import uuid
from typing import Dict, Iterable, List, Optional, Sequence, Tuple

from sqlalchemy import delete, func, select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from mindak.exceptions import ConflictError, DatabaseError, MindakError, NotFoundError, ValidationError
from mindak.models.analytics import AnalyticsEventType
from mindak.models.form import (
    CHOICE_QUESTION_TYPES,
    FormQuestion,
    FormQuestionAnswer,
    FormType,
    SectionType,
)
from mindak.models.service import Service
from mindak.schemas.form import (
    AnswerOptionCreate,
    AnswerOptionResponse,
    AnswerOptionUpdate,
    ClientFormResponse,
    ClientQuestion,
    QuestionCreate,
    QuestionResponse,
    QuestionUpdate,
)
from mindak.services.analytics_service import analytics_service
from mindak.services.file_service import file_service

logger = logging.getLogger(__name__)


async def _apply_orders(db: AsyncSession, rows: Sequence) -> None:
    """Two-phase rewrite of `order` to 1..n following the sequence of `rows`."""
    for index, row in enumerate(rows, start=1):
        row.order = -index
    await db.flush()
    for index, row in enumerate(rows, start=1):
        row.order = index
    await db.flush()


def _check_reorder_ids(current_ids: Iterable[uuid.UUID], ids: Sequence[uuid.UUID]) -> None:
    current = set(current_ids)
    requested = list(ids)
    if len(requested) != len(set(requested)) or set(requested) != current:
        missing = [str(i) for i in current - set(requested)]
        extra = [str(i) for i in set(requested) - current]
        raise ValidationError(
            code="reorder_mismatch",
            message="Reorder ids must list every active item of the group exactly once",
            field="ids",
            context={"missing": sorted(missing), "unexpected": sorted(extra)},
        )


def _order_conflict(error: IntegrityError) -> ConflictError:
    """A concurrent write took the same order slot; the caller may retry."""
    logger.warning("Order constraint violated: %s", str(error.orig))
    return ConflictError(
        message="The question group was changed by another request. Refresh and try again.",
        context={"constraint": "order"},
    )


def _answer_response(answer: FormQuestionAnswer) -> AnswerOptionResponse:
    return AnswerOptionResponse.model_validate(answer)


def _question_response(
    question: FormQuestion, answers: Sequence[FormQuestionAnswer] = ()
) -> QuestionResponse:
    return QuestionResponse(
        id=question.id,
        form_type=question.form_type,
        section_type=question.section_type,
        service_id=question.service_id,
        question_text=question.question_text,
        question_type=question.question_type,
        required=question.required,
        order=question.order,
        placeholder=question.placeholder,
        help_text=question.help_text,
        is_active=question.is_active,
        supersedes_id=question.supersedes_id,
        answers=[_answer_response(a) for a in answers] if question.is_choice else [],
        created_at=question.created_at,
        updated_at=question.updated_at,
    )


class FormQuestionService:
    """
    Question / answer-option CRUD with ordering and versioning rules.

    All methods take the request session first and only flush; the
    request-scoped session commits or rolls back everything together.
    """

    # ══════════════════════════════════════════════════════════════════════
    # Loading helpers
    # ══════════════════════════════════════════════════════════════════════

    async def _get_question(self, db: AsyncSession, question_id: uuid.UUID) -> FormQuestion:
        question = (
            await db.execute(select(FormQuestion).where(FormQuestion.id == question_id))
        ).scalar_one_or_none()
        if question is None:
            raise NotFoundError(resource="question", resource_id=str(question_id))
        return question

    async def _get_answer(self, db: AsyncSession, answer_id: uuid.UUID) -> FormQuestionAnswer:
        answer = (
            await db.execute(select(FormQuestionAnswer).where(FormQuestionAnswer.id == answer_id))
        ).scalar_one_or_none()
        if answer is None:
            raise NotFoundError(resource="answer option", resource_id=str(answer_id))
        return answer

    async def ensure_question_in_form(
        self, db: AsyncSession, question_id: uuid.UUID, form_type: FormType
    ) -> None:
        """NotFoundError unless the question belongs to `form_type`."""
        question = await self._get_question(db, question_id)
        if question.form_type != form_type.value:
            raise NotFoundError(resource="question", resource_id=str(question_id))

    async def ensure_answer_in_form(
        self, db: AsyncSession, answer_id: uuid.UUID, form_type: FormType
    ) -> None:
        answer = await self._get_answer(db, answer_id)
        question = await self._get_question(db, answer.question_id)
        if question.form_type != form_type.value:
            raise NotFoundError(resource="answer option", resource_id=str(answer_id))

    async def _serialize_group(
        self,
        db: AsyncSession,
        form_type: str,
        section_type: str,
        service_id: Optional[uuid.UUID],
    ) -> None:
        """
        Transaction-scoped advisory lock on the group key (PostgreSQL).

        Row locks only cover rows that already exist, so two appends to the
        same group would both read the same length. The advisory lock makes
        the second wait, and its following SELECT sees the first's commit.
        SQLite allows a single writer per database and needs nothing here.
        """
        connection = await db.connection()
        if connection.dialect.name != "postgresql":
            return
        key = f"form_questions:{form_type}:{section_type}:{service_id or '-'}"
        await db.execute(select(func.pg_advisory_xact_lock(func.hashtext(key))))

    async def _lock_group(
        self,
        db: AsyncSession,
        form_type: str,
        section_type: str,
        service_id: Optional[uuid.UUID],
    ) -> List[FormQuestion]:
        """Active questions of a group, ordered, locked for this transaction."""
        await self._serialize_group(db, form_type, section_type, service_id)
        query = (
            select(FormQuestion)
            .where(
                FormQuestion.form_type == form_type,
                FormQuestion.section_type == section_type,
                FormQuestion.is_active.is_(True),
            )
            .order_by(FormQuestion.order)
            .with_for_update()
        )
        if service_id is None:
            query = query.where(FormQuestion.service_id.is_(None))
        else:
            query = query.where(FormQuestion.service_id == service_id)
        return list((await db.execute(query)).scalars().all())

    async def _lock_answers(self, db: AsyncSession, question_id: uuid.UUID) -> List[FormQuestionAnswer]:
        """Active options of a question, ordered; the parent row lock serializes appends."""
        await db.execute(
            select(FormQuestion.id).where(FormQuestion.id == question_id).with_for_update()
        )
        return list(
            (
                await db.execute(
                    select(FormQuestionAnswer)
                    .where(
                        FormQuestionAnswer.question_id == question_id,
                        FormQuestionAnswer.is_active.is_(True),
                    )
                    .order_by(FormQuestionAnswer.order)
                    .with_for_update()
                )
            ).scalars().all()
        )

    async def _answers_by_question(
        self,
        db: AsyncSession,
        question_ids: Sequence[uuid.UUID],
        include_inactive: bool = False,
    ) -> Dict[uuid.UUID, List[FormQuestionAnswer]]:
        grouped: Dict[uuid.UUID, List[FormQuestionAnswer]] = {qid: [] for qid in question_ids}
        if not question_ids:
            return grouped
        query = (
            select(FormQuestionAnswer)
            .where(FormQuestionAnswer.question_id.in_(list(question_ids)))
            .order_by(FormQuestionAnswer.question_id, FormQuestionAnswer.order)
        )
        if not include_inactive:
            query = query.where(FormQuestionAnswer.is_active.is_(True))
        for answer in (await db.execute(query)).scalars().all():
            grouped[answer.question_id].append(answer)
        return grouped

    async def _active_section(
        self,
        db: AsyncSession,
        form_type: str,
        section_type: str,
        service_id: Optional[uuid.UUID] = None,
    ) -> List[FormQuestion]:
        query = (
            select(FormQuestion)
            .where(
                FormQuestion.form_type == form_type,
                FormQuestion.section_type == section_type,
                FormQuestion.is_active.is_(True),
            )
            .order_by(FormQuestion.order)
        )
        if service_id is None:
            query = query.where(FormQuestion.service_id.is_(None))
        else:
            query = query.where(FormQuestion.service_id == service_id)
        return list((await db.execute(query)).scalars().all())

    async def load_active_form(
        self,
        db: AsyncSession,
        form_type: FormType,
        service_ids: Sequence[uuid.UUID] = (),
    ) -> Tuple[List[FormQuestion], Dict[uuid.UUID, List[FormQuestionAnswer]]]:
        """
        The active question set a submission is validated against.

        Podcast form: the general section. Services form: the general section
        followed by each service's own section, in the order of `service_ids`.
        Returns the ordered questions and their active options.
        """
        questions = await self._active_section(db, form_type.value, SectionType.GENERAL.value)
        if form_type == FormType.SERVICES:
            for service_id in service_ids:
                questions.extend(
                    await self._active_section(
                        db, form_type.value, SectionType.SERVICE_SPECIFIC.value, service_id
                    )
                )
        options = await self._answers_by_question(db, [q.id for q in questions])
        return questions, options

    # ══════════════════════════════════════════════════════════════════════
    # Questions
    # ══════════════════════════════════════════════════════════════════════

    async def list_questions(
        self,
        db: AsyncSession,
        form_type: FormType,
        section_type: SectionType = SectionType.GENERAL,
        service_id: Optional[uuid.UUID] = None,
        include_inactive: bool = False,
    ) -> List[QuestionResponse]:
        """Questions of one group sorted by order (active only unless asked)."""
        try:
            query = select(FormQuestion).where(
                FormQuestion.form_type == form_type.value,
                FormQuestion.section_type == section_type.value,
            )
            if service_id is None:
                query = query.where(FormQuestion.service_id.is_(None))
            else:
                query = query.where(FormQuestion.service_id == service_id)
            if not include_inactive:
                query = query.where(FormQuestion.is_active.is_(True))
            # Inactive rows keep stale orders; active ones sort first on ties
            query = query.order_by(
                FormQuestion.order, FormQuestion.is_active.desc(), FormQuestion.created_at
            )
            questions = list((await db.execute(query)).scalars().all())
            answers = await self._answers_by_question(
                db, [q.id for q in questions], include_inactive=include_inactive
            )
        except SQLAlchemyError as e:
            logger.error("Database error listing questions: %s", str(e), exc_info=True)
            raise DatabaseError(message="Could not retrieve questions. Please try again.")

        return [_question_response(q, answers[q.id]) for q in questions]

    async def get_client_questions(
        self,
        db: AsyncSession,
        form_type: FormType,
        service_ids: Sequence[uuid.UUID] = (),
    ) -> ClientFormResponse:
        """
        The public form: active questions with their active options.

        For the services form, only active services contribute a section;
        unknown or inactive ids are skipped. Records a `form_viewed` event.
        """
        try:
            active_ids: List[uuid.UUID] = []
            if form_type == FormType.SERVICES and service_ids:
                found = set(
                    (
                        await db.execute(
                            select(Service.id).where(
                                Service.id.in_(list(service_ids)), Service.is_active.is_(True)
                            )
                        )
                    ).scalars().all()
                )
                active_ids = [sid for sid in dict.fromkeys(service_ids) if sid in found]

            questions, options = await self.load_active_form(db, form_type, active_ids)
            await analytics_service.record_event(
                db,
                AnalyticsEventType.FORM_VIEWED,
                {"form_type": form_type.value, "service_ids": [str(s) for s in active_ids]},
            )
        except SQLAlchemyError as e:
            logger.error("Database error loading client form: %s", str(e), exc_info=True)
            raise DatabaseError(message="Could not load the form. Please try again.")

        return ClientFormResponse(
            form_type=form_type,
            questions=[
                ClientQuestion(
                    id=q.id,
                    section_type=q.section_type,
                    service_id=q.service_id,
                    question_text=q.question_text,
                    question_type=q.question_type,
                    required=q.required,
                    order=q.order,
                    placeholder=q.placeholder,
                    help_text=q.help_text,
                    answers=[_answer_response(a) for a in options[q.id]] if q.is_choice else [],
                )
                for q in questions
            ],
        )

    async def _validate_group(
        self,
        db: AsyncSession,
        form_type: FormType,
        section_type: SectionType,
        service_id: Optional[uuid.UUID],
    ) -> None:
        if form_type == FormType.PODCAST and section_type != SectionType.GENERAL:
            raise ValidationError(
                code="invalid_section",
                message="Podcast form questions are always in the general section",
                field="section_type",
            )
        if section_type == SectionType.SERVICE_SPECIFIC and service_id is None:
            raise ValidationError(
                code="missing_service",
                message="Service-specific questions need a service_id",
                field="service_id",
            )
        if section_type == SectionType.GENERAL and service_id is not None:
            raise ValidationError(
                code="unexpected_service",
                message="General questions cannot be tied to a service",
                field="service_id",
            )
        if service_id is not None:
            exists = (
                await db.execute(select(Service.id).where(Service.id == service_id))
            ).scalar_one_or_none()
            if exists is None:
                raise NotFoundError(resource="service", resource_id=str(service_id))

    @staticmethod
    def _check_unique_values(values: Iterable[str]) -> None:
        seen = set()
        for value in values:
            if value in seen:
                raise ValidationError(
                    code="duplicate_answer_value",
                    message=f"Answer value '{value}' is used more than once",
                    field="answer_value",
                )
            seen.add(value)

    async def create_question(
        self,
        db: AsyncSession,
        form_type: FormType,
        data: QuestionCreate,
    ) -> QuestionResponse:
        """
        Appends a question at the end of its group.

        Raises:
            ValidationError: inconsistent form/section/service, or inline
                answers on a non-choice question
            NotFoundError: service_id does not exist
        """
        try:
            await self._validate_group(db, form_type, data.section_type, data.service_id)
            if data.answers and data.question_type.value not in CHOICE_QUESTION_TYPES:
                raise ValidationError(
                    code="unexpected_answers",
                    message=f"'{data.question_type.value}' questions do not take answer options",
                    field="answers",
                )
            self._check_unique_values(a.answer_value for a in data.answers)

            group = await self._lock_group(
                db, form_type.value, data.section_type.value, data.service_id
            )
            question = FormQuestion(
                form_type=form_type.value,
                section_type=data.section_type.value,
                service_id=data.service_id,
                question_text=data.question_text,
                question_type=data.question_type.value,
                required=data.required,
                order=len(group) + 1,
                placeholder=data.placeholder,
                help_text=data.help_text,
                is_active=True,
                is_referenced=False,
            )
            db.add(question)
            await db.flush()

            answers = []
            for index, option in enumerate(data.answers, start=1):
                answer = FormQuestionAnswer(
                    question_id=question.id,
                    answer_text=option.answer_text,
                    answer_value=option.answer_value,
                    order=index,
                    is_active=True,
                    is_referenced=False,
                )
                db.add(answer)
                answers.append(answer)
            if answers:
                await db.flush()

            logger.info(
                "Question %s created in %s/%s at order %d",
                question.id, form_type.value, data.section_type.value, question.order,
            )
            return _question_response(question, answers)

        except MindakError:
            raise
        except IntegrityError as e:
            raise _order_conflict(e)
        except SQLAlchemyError as e:
            logger.error("Database error creating question: %s", str(e), exc_info=True)
            raise DatabaseError(message="Could not create the question. Please try again.")

    async def update_question(
        self,
        db: AsyncSession,
        question_id: uuid.UUID,
        changes: QuestionUpdate,
    ) -> QuestionResponse:
        """
        Edits a question; referenced questions are superseded on text/type change.

        The returned question is the one now active at that position, which
        is a new row when superseding happened.
        """
        try:
            question = await self._get_question(db, question_id)
            if not question.is_active:
                raise ValidationError(
                    code="question_inactive",
                    message="Inactive questions cannot be edited",
                    question_id=question_id,
                )

            new_text = changes.question_text if changes.question_text is not None else question.question_text
            new_type = (
                changes.question_type.value if changes.question_type is not None else question.question_type
            )
            definition_changed = (
                new_text != question.question_text or new_type != question.question_type
            )
            fields_set = changes.model_fields_set

            if definition_changed and question.is_referenced:
                return await self._supersede_question(db, question, new_text, new_type, changes)

            question.question_text = new_text
            question.question_type = new_type
            if changes.required is not None:
                question.required = changes.required
            if "placeholder" in fields_set:
                question.placeholder = changes.placeholder
            if "help_text" in fields_set:
                question.help_text = changes.help_text
            await db.flush()

            answers = (await self._answers_by_question(db, [question.id]))[question.id]
            logger.info("Question %s updated in place", question.id)
            return _question_response(question, answers)

        except MindakError:
            raise
        except IntegrityError as e:
            raise _order_conflict(e)
        except SQLAlchemyError as e:
            logger.error("Database error updating question %s: %s", question_id, str(e), exc_info=True)
            raise DatabaseError(message="Could not update the question. Please try again.")

    async def _supersede_question(
        self,
        db: AsyncSession,
        old: FormQuestion,
        new_text: str,
        new_type: str,
        changes: QuestionUpdate,
    ) -> QuestionResponse:
        fields_set = changes.model_fields_set
        position = old.order

        # Lock the group so nobody reorders between deactivate and insert
        await self._lock_group(db, old.form_type, old.section_type, old.service_id)
        old.is_active = False
        await db.flush()

        replacement = FormQuestion(
            form_type=old.form_type,
            section_type=old.section_type,
            service_id=old.service_id,
            question_text=new_text,
            question_type=new_type,
            required=changes.required if changes.required is not None else old.required,
            order=position,
            placeholder=changes.placeholder if "placeholder" in fields_set else old.placeholder,
            help_text=changes.help_text if "help_text" in fields_set else old.help_text,
            is_active=True,
            is_referenced=False,
            supersedes_id=old.id,
        )
        db.add(replacement)
        await db.flush()

        copied: List[FormQuestionAnswer] = []
        if new_type in CHOICE_QUESTION_TYPES:
            for option in (await self._answers_by_question(db, [old.id]))[old.id]:
                copy = FormQuestionAnswer(
                    question_id=replacement.id,
                    answer_text=option.answer_text,
                    answer_value=option.answer_value,
                    order=option.order,
                    image_url=option.image_url,
                    is_active=True,
                    is_referenced=False,
                )
                db.add(copy)
                copied.append(copy)
            if copied:
                await db.flush()

        logger.info("Question %s superseded by %s", old.id, replacement.id)
        return _question_response(replacement, copied)

    async def reorder(
        self,
        db: AsyncSession,
        form_type: FormType,
        section_type: SectionType,
        service_id: Optional[uuid.UUID],
        ids: Sequence[uuid.UUID],
    ) -> List[QuestionResponse]:
        """
        Sets the order of a group's active questions to the sequence of `ids`.

        Raises:
            ValidationError("reorder_mismatch"): `ids` is not exactly the
                group's active set; no order is changed
        """
        try:
            group = await self._lock_group(db, form_type.value, section_type.value, service_id)
            _check_reorder_ids((q.id for q in group), ids)

            by_id = {q.id: q for q in group}
            ordered = [by_id[qid] for qid in ids]
            await _apply_orders(db, ordered)
            answers = await self._answers_by_question(db, [q.id for q in ordered])
            logger.info(
                "Reordered %d questions in %s/%s", len(ordered), form_type.value, section_type.value
            )
            return [_question_response(q, answers[q.id]) for q in ordered]

        except MindakError:
            raise
        except IntegrityError as e:
            raise _order_conflict(e)
        except SQLAlchemyError as e:
            logger.error("Database error reordering questions: %s", str(e), exc_info=True)
            raise DatabaseError(message="Could not reorder questions. Please try again.")

    async def deactivate_question(self, db: AsyncSession, question_id: uuid.UUID) -> QuestionResponse:
        """Marks the question inactive and closes the gap it leaves."""
        try:
            question = await self._get_question(db, question_id)
            if question.is_active:
                await self._remove_from_group(db, question)
                logger.info("Question %s deactivated", question.id)
            answers = (await self._answers_by_question(db, [question.id]))[question.id]
            return _question_response(question, answers)

        except MindakError:
            raise
        except IntegrityError as e:
            raise _order_conflict(e)
        except SQLAlchemyError as e:
            logger.error("Database error deactivating question %s: %s", question_id, str(e), exc_info=True)
            raise DatabaseError(message="Could not deactivate the question. Please try again.")

    async def _remove_from_group(self, db: AsyncSession, question: FormQuestion) -> None:
        group = await self._lock_group(
            db, question.form_type, question.section_type, question.service_id
        )
        question.is_active = False
        await db.flush()
        await _apply_orders(db, [q for q in group if q.id != question.id])

    async def delete_question(self, db: AsyncSession, question_id: uuid.UUID) -> bool:
        """
        Removes a question. Returns True for a hard delete, False when the
        question is referenced by a snapshot and was only deactivated.
        """
        try:
            question = await self._get_question(db, question_id)
            if question.is_referenced:
                if question.is_active:
                    await self._remove_from_group(db, question)
                logger.info("Question %s is referenced; deactivated instead of deleted", question.id)
                return False

            was_active = question.is_active
            group_key = (question.form_type, question.section_type, question.service_id)
            await db.execute(
                delete(FormQuestionAnswer).where(FormQuestionAnswer.question_id == question.id)
            )
            await db.delete(question)
            await db.flush()
            if was_active:
                remaining = await self._lock_group(db, *group_key)
                await _apply_orders(db, remaining)
            logger.info("Question %s deleted", question_id)
            return True

        except MindakError:
            raise
        except IntegrityError as e:
            raise _order_conflict(e)
        except SQLAlchemyError as e:
            logger.error("Database error deleting question %s: %s", question_id, str(e), exc_info=True)
            raise DatabaseError(message="Could not delete the question. Please try again.")

    # ══════════════════════════════════════════════════════════════════════
    # Answer options
    # ══════════════════════════════════════════════════════════════════════

    async def list_answers(
        self,
        db: AsyncSession,
        question_id: uuid.UUID,
        include_inactive: bool = False,
    ) -> List[AnswerOptionResponse]:
        await self._get_question(db, question_id)
        answers = await self._answers_by_question(db, [question_id], include_inactive)
        return [_answer_response(a) for a in answers[question_id]]

    async def _choice_question(self, db: AsyncSession, question_id: uuid.UUID) -> FormQuestion:
        question = await self._get_question(db, question_id)
        if not question.is_choice:
            raise ValidationError(
                code="not_choice_question",
                message=f"'{question.question_type}' questions do not take answer options",
                question_id=question_id,
            )
        if not question.is_active:
            raise ValidationError(
                code="question_inactive",
                message="Inactive questions cannot be edited",
                question_id=question_id,
            )
        return question

    async def create_answer(
        self,
        db: AsyncSession,
        question_id: uuid.UUID,
        data: AnswerOptionCreate,
    ) -> AnswerOptionResponse:
        try:
            await self._choice_question(db, question_id)
            options = await self._lock_answers(db, question_id)
            self._check_unique_values([o.answer_value for o in options] + [data.answer_value])

            answer = FormQuestionAnswer(
                question_id=question_id,
                answer_text=data.answer_text,
                answer_value=data.answer_value,
                order=len(options) + 1,
                is_active=True,
                is_referenced=False,
            )
            db.add(answer)
            await db.flush()
            logger.info("Answer option %s added to question %s", answer.id, question_id)
            return _answer_response(answer)

        except MindakError:
            raise
        except IntegrityError as e:
            raise _order_conflict(e)
        except SQLAlchemyError as e:
            logger.error("Database error creating answer option: %s", str(e), exc_info=True)
            raise DatabaseError(message="Could not create the answer option. Please try again.")

    async def update_answer(
        self,
        db: AsyncSession,
        answer_id: uuid.UUID,
        changes: AnswerOptionUpdate,
    ) -> AnswerOptionResponse:
        """Edits an option; referenced options are superseded instead."""
        try:
            answer = await self._get_answer(db, answer_id)
            if not answer.is_active:
                raise ValidationError(
                    code="answer_inactive",
                    message="Inactive answer options cannot be edited",
                    field="answer_id",
                )
            options = await self._lock_answers(db, answer.question_id)

            new_text = changes.answer_text or answer.answer_text
            new_value = changes.answer_value or answer.answer_value
            self._check_unique_values(
                [o.answer_value for o in options if o.id != answer.id] + [new_value]
            )
            if new_text == answer.answer_text and new_value == answer.answer_value:
                return _answer_response(answer)

            if answer.is_referenced:
                position = answer.order
                answer.is_active = False
                await db.flush()
                replacement = FormQuestionAnswer(
                    question_id=answer.question_id,
                    answer_text=new_text,
                    answer_value=new_value,
                    order=position,
                    image_url=answer.image_url,
                    is_active=True,
                    is_referenced=False,
                )
                db.add(replacement)
                await db.flush()
                logger.info("Answer option %s superseded by %s", answer.id, replacement.id)
                return _answer_response(replacement)

            answer.answer_text = new_text
            answer.answer_value = new_value
            await db.flush()
            return _answer_response(answer)

        except MindakError:
            raise
        except IntegrityError as e:
            raise _order_conflict(e)
        except SQLAlchemyError as e:
            logger.error("Database error updating answer option %s: %s", answer_id, str(e), exc_info=True)
            raise DatabaseError(message="Could not update the answer option. Please try again.")

    async def delete_answer(self, db: AsyncSession, answer_id: uuid.UUID) -> bool:
        """Hard delete when unreferenced, otherwise deactivation. Orders are compacted."""
        try:
            answer = await self._get_answer(db, answer_id)
            options = await self._lock_answers(db, answer.question_id)
            remaining = [o for o in options if o.id != answer.id]

            if answer.is_referenced:
                answer.is_active = False
                hard_deleted = False
            else:
                await db.delete(answer)
                hard_deleted = True
            await db.flush()
            await _apply_orders(db, remaining)
            logger.info(
                "Answer option %s %s", answer_id, "deleted" if hard_deleted else "deactivated"
            )
            return hard_deleted

        except MindakError:
            raise
        except IntegrityError as e:
            raise _order_conflict(e)
        except SQLAlchemyError as e:
            logger.error("Database error deleting answer option %s: %s", answer_id, str(e), exc_info=True)
            raise DatabaseError(message="Could not delete the answer option. Please try again.")

    async def reorder_answers(
        self,
        db: AsyncSession,
        question_id: uuid.UUID,
        ids: Sequence[uuid.UUID],
    ) -> List[AnswerOptionResponse]:
        try:
            await self._get_question(db, question_id)
            options = await self._lock_answers(db, question_id)
            _check_reorder_ids((o.id for o in options), ids)

            by_id = {o.id: o for o in options}
            ordered = [by_id[aid] for aid in ids]
            await _apply_orders(db, ordered)
            return [_answer_response(o) for o in ordered]

        except MindakError:
            raise
        except IntegrityError as e:
            raise _order_conflict(e)
        except SQLAlchemyError as e:
            logger.error("Database error reordering answers of %s: %s", question_id, str(e), exc_info=True)
            raise DatabaseError(message="Could not reorder answer options. Please try again.")

    async def attach_answer_image(
        self,
        db: AsyncSession,
        answer_id: uuid.UUID,
        filename: str,
        content: bytes,
        content_length: Optional[int] = None,
    ) -> AnswerOptionResponse:
        """
        Stores an uploaded image and points the option at it.

        A previously attached file is left on disk: existing snapshots may
        carry its URL in their answer metadata.
        """
        answer = await self._get_answer(db, answer_id)
        absolute_path, relative_path = await file_service.validate_and_store(
            filename=filename,
            content=content,
            content_length=content_length,
        )
        try:
            answer.image_url = file_service.public_url(relative_path)
            await db.flush()
        except SQLAlchemyError as e:
            await file_service.cleanup_file(absolute_path)
            logger.error("Database error attaching image to %s: %s", answer_id, str(e), exc_info=True)
            raise DatabaseError(message="Could not save the image. Please try again.")

        logger.info("Image attached to answer option %s: %s", answer_id, relative_path)
        return _answer_response(answer)

    # ══════════════════════════════════════════════════════════════════════
    # Snapshot bookkeeping
    # ══════════════════════════════════════════════════════════════════════

    async def mark_referenced(
        self,
        db: AsyncSession,
        question_ids: Sequence[uuid.UUID],
        answer_ids: Sequence[uuid.UUID],
    ) -> None:
        """Flags definitions that a snapshot now embeds."""
        if question_ids:
            questions = (
                await db.execute(
                    select(FormQuestion).where(
                        FormQuestion.id.in_(list(question_ids)),
                        FormQuestion.is_referenced.is_(False),
                    )
                )
            ).scalars().all()
            for question in questions:
                question.is_referenced = True
        if answer_ids:
            answers = (
                await db.execute(
                    select(FormQuestionAnswer).where(
                        FormQuestionAnswer.id.in_(list(answer_ids)),
                        FormQuestionAnswer.is_referenced.is_(False),
                    )
                )
            ).scalars().all()
            for answer in answers:
                answer.is_referenced = True
        await db.flush()


form_service = FormQuestionService()
