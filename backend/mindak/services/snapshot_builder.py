"""
Mindak Reservations Backend — Answer Snapshot Builder
=====================================================

What:  Turns a raw client submission (question id → value) into the ordered,
       denormalized list of AnsweredQuestionSnapshot stored on a reservation.
How:   Pure functions over already-loaded question/option rows. No database
       access happens here; ReservationService loads the active definitions
       and persists the result in the same transaction.
Who:   ReservationService.submit_podcast_reservation / submit_service_reservation.

Validation order (first failure wins):
    1. required question without a value      → "missing_required_answer"
       (required choice question without options → "missing_answer_options")
    2. submitted id outside the active set     → "unknown_question"
    3. choice value not among active options   → "invalid_answer_option"
    4. free-text value of the wrong shape      → "invalid_format"

Snapshots are frozen pydantic models; the caller dumps them to JSON once.
"""

import logging
import re
import uuid
from datetime import date, datetime
from typing import Any, Dict, List, Mapping, Optional, Sequence

from mindak.exceptions import ValidationError
from mindak.models.form import FormQuestion, FormQuestionAnswer, QuestionType
from mindak.schemas.reservation import AnsweredQuestionSnapshot

logger = logging.getLogger(__name__)

# ── Format Patterns ───────────────────────────────────────────────────────
EMAIL_PATTERN = re.compile(r"^[a-zA-Z0-9._%+-]+@[a-zA-Z0-9.-]+\.[a-zA-Z]{2,}$")
PHONE_PATTERN = re.compile(r"^\+?[0-9 ().-]{7,20}$")
MIN_PHONE_DIGITS = 7

CHECKBOX_TEXT_SEPARATOR = ", "

# Checkbox snapshots keep one image per selected option: "image_url:<answer_value>"
CHECKBOX_IMAGE_KEY_PREFIX = "image_url:"


def is_blank(value: Any) -> bool:
    """None, whitespace-only strings and empty lists count as "no value"."""
    if value is None:
        return True
    if isinstance(value, str):
        return not value.strip()
    if isinstance(value, (list, tuple)):
        return len(value) == 0
    return False


def normalize_question_id(raw: Any) -> Optional[str]:
    """Canonical string form of a submitted question id, or None if it is not a UUID."""
    try:
        return str(uuid.UUID(str(raw)))
    except (ValueError, TypeError, AttributeError):
        return None


# ── Free-text Validators ──────────────────────────────────────────────────


def is_valid_email(value: str) -> bool:
    return bool(EMAIL_PATTERN.match(value))


def is_valid_phone(value: str) -> bool:
    if not PHONE_PATTERN.match(value):
        return False
    return sum(ch.isdigit() for ch in value) >= MIN_PHONE_DIGITS


def parse_calendar_date(value: str) -> Optional[date]:
    """
    Parses an ISO calendar date. A full ISO datetime is accepted and
    truncated to its date part.
    """
    try:
        return date.fromisoformat(value)
    except ValueError:
        pass
    try:
        return datetime.fromisoformat(value).date()
    except ValueError:
        return None


def _format_error(question: FormQuestion, message: str) -> ValidationError:
    return ValidationError(
        code="invalid_format",
        message=f"{message} for '{question.question_text}'",
        question_id=question.id,
    )


def _option_error(question: FormQuestion, value: Any) -> ValidationError:
    return ValidationError(
        code="invalid_answer_option",
        message=f"'{value}' is not a valid option for '{question.question_text}'",
        question_id=question.id,
    )


def _normalize_free_text(question: FormQuestion, value: Any) -> Optional[str]:
    if value is None:
        return None
    if not isinstance(value, str):
        raise _format_error(question, "A text value is required")

    text = value.strip()
    if not text:
        return None

    qtype = question.question_type
    if qtype == QuestionType.EMAIL.value and not is_valid_email(text):
        raise _format_error(question, "A valid email address is required")
    if qtype == QuestionType.PHONE.value and not is_valid_phone(text):
        raise _format_error(question, "A valid phone number is required")
    if qtype == QuestionType.DATE.value:
        parsed = parse_calendar_date(text)
        if parsed is None:
            raise _format_error(question, "A valid date (YYYY-MM-DD) is required")
        return parsed.isoformat()
    return text


def _resolve_single_choice(
    question: FormQuestion,
    value: Any,
    options: Mapping[str, FormQuestionAnswer],
) -> Dict[str, Any]:
    if not isinstance(value, str):
        raise _option_error(question, value)
    option = options.get(value.strip())
    if option is None:
        raise _option_error(question, value)

    metadata: Dict[str, Any] = {}
    if option.image_url:
        metadata["image_url"] = option.image_url
    return {
        "value": option.answer_value,
        "answer_id": option.id,
        "answer_text": option.answer_text,
        "answer_metadata": metadata,
    }


def _resolve_checkbox(
    question: FormQuestion,
    value: Any,
    options: Mapping[str, FormQuestionAnswer],
) -> Dict[str, Any]:
    raw_values = [value] if isinstance(value, str) else value
    if not isinstance(raw_values, (list, tuple)):
        raise _option_error(question, value)

    selected: List[FormQuestionAnswer] = []
    seen = set()
    for item in raw_values:
        if not isinstance(item, str):
            raise _option_error(question, item)
        option = options.get(item.strip())
        if option is None:
            raise _option_error(question, item)
        if option.answer_value in seen:
            continue
        seen.add(option.answer_value)
        selected.append(option)

    metadata: Dict[str, Any] = {}
    for opt in selected:
        if opt.image_url:
            metadata[f"{CHECKBOX_IMAGE_KEY_PREFIX}{opt.answer_value}"] = opt.image_url
    return {
        "value": [opt.answer_value for opt in selected],
        "answer_ids": [opt.id for opt in selected],
        "answer_text": CHECKBOX_TEXT_SEPARATOR.join(opt.answer_text for opt in selected),
        "answer_metadata": metadata,
    }


def build_snapshot(
    questions: Sequence[FormQuestion],
    options_by_question: Mapping[uuid.UUID, Sequence[FormQuestionAnswer]],
    answers: Mapping[str, Any],
    service_names: Optional[Mapping[uuid.UUID, str]] = None,
) -> List[AnsweredQuestionSnapshot]:
    """
    Validate `answers` against the active question set and freeze them.

    Args:
        questions: Active questions in display order (general section first,
            then each submitted service's section in submission order)
        options_by_question: Active options per question id, in option order
        answers: Raw submission, question id (string) → value
        service_names: Service id → name, for service-specific snapshots

    Returns:
        One snapshot per question, in the order of `questions`

    Raises:
        ValidationError: see the module docstring for codes and their order
    """
    service_names = service_names or {}
    by_id = {str(q.id): q for q in questions}

    submitted: Dict[str, Any] = {}
    unknown: List[str] = []
    for raw_id, value in answers.items():
        key = normalize_question_id(raw_id)
        if key is None or key not in by_id:
            unknown.append(str(raw_id))
            continue
        submitted[key] = value

    # ── 1. Required answers ───────────────────────────────────────────────
    for question in questions:
        if not question.required:
            continue
        if question.is_choice and not options_by_question.get(question.id):
            raise ValidationError(
                code="missing_answer_options",
                message=f"Question '{question.question_text}' has no answer options",
                question_id=question.id,
            )
        if is_blank(submitted.get(str(question.id))):
            raise ValidationError(
                code="missing_required_answer",
                message=f"An answer is required for '{question.question_text}'",
                question_id=question.id,
            )

    # ── 2. Unknown question ids ───────────────────────────────────────────
    if unknown:
        logger.info("Submission referenced %d unknown question id(s)", len(unknown))
        raise ValidationError(
            code="unknown_question",
            message=f"Question '{unknown[0]}' is not part of this form",
            question_id=unknown[0],
        )

    # ── 3. Choice resolution, then 4. free-text formats ───────────────────
    resolved: Dict[str, Dict[str, Any]] = {}
    for question in questions:
        key = str(question.id)
        value = submitted.get(key)
        if not question.is_choice or is_blank(value):
            continue
        options = {opt.answer_value: opt for opt in options_by_question.get(question.id, ())}
        if question.question_type == QuestionType.CHECKBOX.value:
            resolved[key] = _resolve_checkbox(question, value, options)
        else:
            resolved[key] = _resolve_single_choice(question, value, options)

    for question in questions:
        key = str(question.id)
        if question.is_choice:
            continue
        resolved[key] = {"value": _normalize_free_text(question, submitted.get(key))}

    snapshots = []
    for question in questions:
        fields = resolved.get(str(question.id), {"value": None})
        snapshots.append(
            AnsweredQuestionSnapshot(
                question_id=question.id,
                question_text=question.question_text,
                question_type=question.question_type,
                section_type=question.section_type,
                service_id=question.service_id,
                service_name=service_names.get(question.service_id) if question.service_id else None,
                **fields,
            )
        )
    return snapshots
