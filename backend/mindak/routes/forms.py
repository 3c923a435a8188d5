"""
Mindak Reservations Backend — Admin Form Routes
===============================================

What:  Question and answer-option management for one form type.
How:   Every route is scoped by the {form_type} path segment; ids that
       belong to the other form answer 404.
"""

import logging
import uuid
from typing import List, Optional

from fastapi import APIRouter, Depends, File, Query, UploadFile
from sqlalchemy.ext.asyncio import AsyncSession

from mindak.database import get_db_session
from mindak.models.form import FormType, SectionType
from mindak.routes.dependencies import get_actor_id
from mindak.schemas.common import DeleteResponse, ErrorResponse
from mindak.schemas.form import (
    AnswerOptionCreate,
    AnswerOptionResponse,
    AnswerOptionUpdate,
    QuestionCreate,
    QuestionResponse,
    QuestionUpdate,
    ReorderRequest,
)
from mindak.services.form_service import form_service

logger = logging.getLogger(__name__)

router = APIRouter(
    prefix="/api/admin/forms/{form_type}",
    tags=["Admin: Forms"],
    responses={
        400: {"description": "Invalid input", "model": ErrorResponse},
        404: {"description": "Not found", "model": ErrorResponse},
    },
)


# ── Questions ─────────────────────────────────────────────────────────────


@router.get("/questions", response_model=List[QuestionResponse])
async def list_questions(
    form_type: FormType,
    section_type: SectionType = Query(default=SectionType.GENERAL),
    service_id: Optional[uuid.UUID] = Query(default=None),
    include_inactive: bool = Query(default=False),
    db: AsyncSession = Depends(get_db_session),
) -> List[QuestionResponse]:
    return await form_service.list_questions(
        db, form_type, section_type, service_id, include_inactive
    )


@router.post("/questions", status_code=201, response_model=QuestionResponse)
async def create_question(
    form_type: FormType,
    body: QuestionCreate,
    actor_id: uuid.UUID = Depends(get_actor_id),
    db: AsyncSession = Depends(get_db_session),
) -> QuestionResponse:
    question = await form_service.create_question(db, form_type, body)
    logger.info("Question %s created by %s", question.id, actor_id)
    return question


@router.put(
    "/questions/order",
    response_model=List[QuestionResponse],
    summary="Reorder the active questions of one section",
)
async def reorder_questions(
    form_type: FormType,
    body: ReorderRequest,
    actor_id: uuid.UUID = Depends(get_actor_id),
    db: AsyncSession = Depends(get_db_session),
) -> List[QuestionResponse]:
    return await form_service.reorder(db, form_type, body.section_type, body.service_id, body.ids)


@router.patch("/questions/{question_id}", response_model=QuestionResponse)
async def update_question(
    form_type: FormType,
    question_id: uuid.UUID,
    body: QuestionUpdate,
    actor_id: uuid.UUID = Depends(get_actor_id),
    db: AsyncSession = Depends(get_db_session),
) -> QuestionResponse:
    await form_service.ensure_question_in_form(db, question_id, form_type)
    return await form_service.update_question(db, question_id, body)


@router.post("/questions/{question_id}/deactivate", response_model=QuestionResponse)
async def deactivate_question(
    form_type: FormType,
    question_id: uuid.UUID,
    actor_id: uuid.UUID = Depends(get_actor_id),
    db: AsyncSession = Depends(get_db_session),
) -> QuestionResponse:
    await form_service.ensure_question_in_form(db, question_id, form_type)
    return await form_service.deactivate_question(db, question_id)


@router.delete("/questions/{question_id}", response_model=DeleteResponse)
async def delete_question(
    form_type: FormType,
    question_id: uuid.UUID,
    actor_id: uuid.UUID = Depends(get_actor_id),
    db: AsyncSession = Depends(get_db_session),
) -> DeleteResponse:
    await form_service.ensure_question_in_form(db, question_id, form_type)
    hard_deleted = await form_service.delete_question(db, question_id)
    logger.info("Question %s removed by %s (hard=%s)", question_id, actor_id, hard_deleted)
    return DeleteResponse(id=question_id, hard_deleted=hard_deleted)


# ── Answer options ────────────────────────────────────────────────────────


@router.get("/questions/{question_id}/answers", response_model=List[AnswerOptionResponse])
async def list_answers(
    form_type: FormType,
    question_id: uuid.UUID,
    include_inactive: bool = Query(default=False),
    db: AsyncSession = Depends(get_db_session),
) -> List[AnswerOptionResponse]:
    await form_service.ensure_question_in_form(db, question_id, form_type)
    return await form_service.list_answers(db, question_id, include_inactive)


@router.post(
    "/questions/{question_id}/answers",
    status_code=201,
    response_model=AnswerOptionResponse,
)
async def create_answer(
    form_type: FormType,
    question_id: uuid.UUID,
    body: AnswerOptionCreate,
    actor_id: uuid.UUID = Depends(get_actor_id),
    db: AsyncSession = Depends(get_db_session),
) -> AnswerOptionResponse:
    await form_service.ensure_question_in_form(db, question_id, form_type)
    return await form_service.create_answer(db, question_id, body)


@router.put("/questions/{question_id}/answers/order", response_model=List[AnswerOptionResponse])
async def reorder_answers(
    form_type: FormType,
    question_id: uuid.UUID,
    body: ReorderRequest,
    actor_id: uuid.UUID = Depends(get_actor_id),
    db: AsyncSession = Depends(get_db_session),
) -> List[AnswerOptionResponse]:
    await form_service.ensure_question_in_form(db, question_id, form_type)
    return await form_service.reorder_answers(db, question_id, body.ids)


@router.patch("/answers/{answer_id}", response_model=AnswerOptionResponse)
async def update_answer(
    form_type: FormType,
    answer_id: uuid.UUID,
    body: AnswerOptionUpdate,
    actor_id: uuid.UUID = Depends(get_actor_id),
    db: AsyncSession = Depends(get_db_session),
) -> AnswerOptionResponse:
    await form_service.ensure_answer_in_form(db, answer_id, form_type)
    return await form_service.update_answer(db, answer_id, body)


@router.delete("/answers/{answer_id}", response_model=DeleteResponse)
async def delete_answer(
    form_type: FormType,
    answer_id: uuid.UUID,
    actor_id: uuid.UUID = Depends(get_actor_id),
    db: AsyncSession = Depends(get_db_session),
) -> DeleteResponse:
    await form_service.ensure_answer_in_form(db, answer_id, form_type)
    hard_deleted = await form_service.delete_answer(db, answer_id)
    return DeleteResponse(id=answer_id, hard_deleted=hard_deleted)


@router.post(
    "/answers/{answer_id}/image",
    response_model=AnswerOptionResponse,
    summary="Attach an image to an answer option",
    description="PNG, JPEG, GIF or WebP, up to 5MB by default.",
)
async def upload_answer_image(
    form_type: FormType,
    answer_id: uuid.UUID,
    file: UploadFile = File(...),
    actor_id: uuid.UUID = Depends(get_actor_id),
    db: AsyncSession = Depends(get_db_session),
) -> AnswerOptionResponse:
    await form_service.ensure_answer_in_form(db, answer_id, form_type)
    try:
        content = await file.read()
        logger.info(
            "Image upload for answer %s: filename=%s, size=%d bytes",
            answer_id, file.filename or "unknown", len(content),
        )
        return await form_service.attach_answer_image(
            db,
            answer_id,
            filename=file.filename or "",
            content=content,
            content_length=file.size,
        )
    finally:
        await file.close()
