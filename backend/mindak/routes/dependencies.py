"""
Shared FastAPI dependencies: acting admin identity and path enums.
"""

import enum
import uuid
from typing import Optional

from fastapi import Header

from mindak.exceptions import ValidationError
from mindak.models.reservation import ReservationType

ACTOR_HEADER = "X-Actor-ID"


async def get_actor_id(
    x_actor_id: Optional[str] = Header(
        default=None,
        alias=ACTOR_HEADER,
        description="UUID of the admin performing the change",
    ),
) -> uuid.UUID:
    """
    Identity is established upstream; this only reads the actor id it passes on.

    Raises:
        ValidationError: header missing or not a UUID
    """
    if not x_actor_id or not x_actor_id.strip():
        raise ValidationError(
            code="missing_actor",
            message=f"The {ACTOR_HEADER} header is required for this operation",
            field=ACTOR_HEADER,
        )
    try:
        return uuid.UUID(x_actor_id.strip())
    except ValueError:
        raise ValidationError(
            code="invalid_actor",
            message=f"The {ACTOR_HEADER} header must be a UUID",
            field=ACTOR_HEADER,
        )


class ReservationKind(str, enum.Enum):
    """Path segment of the admin reservation routes."""
    PODCAST = "podcast"
    SERVICES = "services"

    @property
    def reservation_type(self) -> ReservationType:
        if self is ReservationKind.PODCAST:
            return ReservationType.PODCAST
        return ReservationType.SERVICE
