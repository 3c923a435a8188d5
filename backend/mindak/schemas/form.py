"""
Mindak Reservations Backend — Form Definition Schemas
=====================================================

What:  API contracts for admin form management (questions, answer options,
       reorder) and for the public form served to clients.
Who:   Admin form router, public router, FormQuestionService.

Enum-valued fields are validated here so that services only ever see
known form/section/question types.
"""

import uuid
from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, Field, field_validator

from mindak.models.form import FormType, QuestionType, SectionType


# ══════════════════════════════════════════════════════════════════════════
# Answer Options
# ══════════════════════════════════════════════════════════════════════════


class AnswerOptionCreate(BaseModel):
    answer_text: str = Field(min_length=1, max_length=255)
    answer_value: str = Field(min_length=1, max_length=255)

    @field_validator("answer_text", "answer_value")
    @classmethod
    def strip_text(cls, v: str) -> str:
        stripped = v.strip()
        if not stripped:
            raise ValueError("must not be blank")
        return stripped


class AnswerOptionUpdate(BaseModel):
    answer_text: Optional[str] = Field(default=None, min_length=1, max_length=255)
    answer_value: Optional[str] = Field(default=None, min_length=1, max_length=255)

    @field_validator("answer_text", "answer_value")
    @classmethod
    def strip_text(cls, v: Optional[str]) -> Optional[str]:
        if v is None:
            return v
        stripped = v.strip()
        if not stripped:
            raise ValueError("must not be blank")
        return stripped


class AnswerOptionResponse(BaseModel):
    id: uuid.UUID
    question_id: uuid.UUID
    answer_text: str
    answer_value: str
    order: int
    image_url: Optional[str] = None
    is_active: bool

    model_config = {"from_attributes": True}


# ══════════════════════════════════════════════════════════════════════════
# Questions
# ══════════════════════════════════════════════════════════════════════════


class QuestionCreate(BaseModel):
    """
    Body of POST /api/admin/forms/{form_type}/questions.

    `form_type` comes from the URL. `answers` may only be given for
    select / checkbox / radio questions; they are created in list order.
    """
    section_type: SectionType = SectionType.GENERAL
    service_id: Optional[uuid.UUID] = None
    question_text: str = Field(min_length=1)
    question_type: QuestionType
    required: bool = False
    placeholder: Optional[str] = Field(default=None, max_length=255)
    help_text: Optional[str] = None
    answers: List[AnswerOptionCreate] = Field(default_factory=list)

    @field_validator("question_text")
    @classmethod
    def strip_question_text(cls, v: str) -> str:
        stripped = v.strip()
        if not stripped:
            raise ValueError("question_text must not be blank")
        return stripped


class QuestionUpdate(BaseModel):
    """Partial update; omitted fields keep their current value."""
    question_text: Optional[str] = Field(default=None, min_length=1)
    question_type: Optional[QuestionType] = None
    required: Optional[bool] = None
    placeholder: Optional[str] = Field(default=None, max_length=255)
    help_text: Optional[str] = None

    @field_validator("question_text")
    @classmethod
    def strip_question_text(cls, v: Optional[str]) -> Optional[str]:
        if v is None:
            return v
        stripped = v.strip()
        if not stripped:
            raise ValueError("question_text must not be blank")
        return stripped


class QuestionResponse(BaseModel):
    id: uuid.UUID
    form_type: FormType
    section_type: SectionType
    service_id: Optional[uuid.UUID] = None
    question_text: str
    question_type: QuestionType
    required: bool
    order: int
    placeholder: Optional[str] = None
    help_text: Optional[str] = None
    is_active: bool
    supersedes_id: Optional[uuid.UUID] = None
    answers: List[AnswerOptionResponse] = Field(default_factory=list)
    created_at: datetime
    updated_at: datetime

    model_config = {"from_attributes": True}


class ReorderRequest(BaseModel):
    """
    Full ordered id list of the group's active rows.

    For question reorders the group is given by section_type / service_id;
    answer reorders ignore both.
    """
    section_type: SectionType = SectionType.GENERAL
    service_id: Optional[uuid.UUID] = None
    ids: List[uuid.UUID] = Field(min_length=1)


# ══════════════════════════════════════════════════════════════════════════
# Public Form
# ══════════════════════════════════════════════════════════════════════════


class ClientQuestion(BaseModel):
    id: uuid.UUID
    section_type: SectionType
    service_id: Optional[uuid.UUID] = None
    question_text: str
    question_type: QuestionType
    required: bool
    order: int
    placeholder: Optional[str] = None
    help_text: Optional[str] = None
    answers: List[AnswerOptionResponse] = Field(default_factory=list)


class ClientFormResponse(BaseModel):
    form_type: FormType
    questions: List[ClientQuestion]
