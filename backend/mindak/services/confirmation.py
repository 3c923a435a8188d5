"""
Mindak Reservations Backend — Confirmation Id Generator
=======================================================

What:  Human-readable reservation reference codes, e.g. POD-2024-001234.
How:   `<PREFIX>-<YEAR>-<6 random digits>`. Digits come from `secrets`, so
       codes are not guessable from neighbouring reservations. A drawn code
       that already exists is redrawn; the unique constraint on
       `reservations.confirmation_id` backs this up for concurrent inserts.
"""

import logging
import secrets
from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from mindak.config import settings
from mindak.exceptions import ConflictError
from mindak.models.reservation import Reservation, ReservationType

logger = logging.getLogger(__name__)

CONFIRMATION_DIGITS = 6


def prefix_for(reservation_type: ReservationType) -> str:
    if reservation_type == ReservationType.PODCAST:
        return settings.podcast_confirmation_prefix
    return settings.service_confirmation_prefix


def draw_confirmation_id(prefix: str, now: Optional[datetime] = None) -> str:
    year = (now or datetime.now(timezone.utc)).year
    number = secrets.randbelow(10 ** CONFIRMATION_DIGITS)
    return f"{prefix}-{year}-{number:0{CONFIRMATION_DIGITS}d}"


async def generate_confirmation_id(
    db: AsyncSession,
    reservation_type: ReservationType,
) -> str:
    """
    Draws codes until one is unused.

    Raises:
        ConflictError: every attempt collided (the year's number space is
            close to exhausted or something is badly wrong)
    """
    prefix = prefix_for(reservation_type)
    for attempt in range(1, settings.confirmation_max_attempts + 1):
        candidate = draw_confirmation_id(prefix)
        result = await db.execute(
            select(Reservation.id).where(Reservation.confirmation_id == candidate)
        )
        if result.scalar_one_or_none() is None:
            return candidate
        logger.warning("Confirmation id collision on attempt %d: %s", attempt, candidate)

    raise ConflictError(
        message="Could not allocate a confirmation id. Please try again.",
        context={"attempts": settings.confirmation_max_attempts},
    )
