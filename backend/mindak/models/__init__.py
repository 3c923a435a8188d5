# Importing every model registers it on Base.metadata (Alembic, create_all)
from mindak.models.analytics import AnalyticsEvent, AnalyticsEventType
from mindak.models.form import (
    CHOICE_QUESTION_TYPES,
    FormQuestion,
    FormQuestionAnswer,
    FormType,
    QuestionType,
    SectionType,
)
from mindak.models.reservation import (
    Reservation,
    ReservationNote,
    ReservationStatus,
    ReservationStatusHistory,
    ReservationType,
)
from mindak.models.service import Service, ServiceCategory

__all__ = [
    "AnalyticsEvent",
    "AnalyticsEventType",
    "CHOICE_QUESTION_TYPES",
    "FormQuestion",
    "FormQuestionAnswer",
    "FormType",
    "QuestionType",
    "Reservation",
    "ReservationNote",
    "ReservationStatus",
    "ReservationStatusHistory",
    "ReservationType",
    "SectionType",
    "Service",
    "ServiceCategory",
]
