"""
Mindak Reservations Backend — Reservation Status Workflow
=========================================================

What:  The allowed-transition table for reservation status and its check.

    pending ──▶ confirmed ──▶ completed
       │            │
       └──▶ cancelled ◀──┘

cancelled and completed are terminal. Same-status "transitions" are
rejected like any other pair outside the table.
"""

from typing import Dict, FrozenSet, Optional

from mindak.exceptions import InvalidTransitionError
from mindak.models.reservation import ReservationStatus

INITIAL_STATUS = ReservationStatus.PENDING

ALLOWED_TRANSITIONS: Dict[ReservationStatus, FrozenSet[ReservationStatus]] = {
    ReservationStatus.PENDING: frozenset(
        {ReservationStatus.CONFIRMED, ReservationStatus.CANCELLED}
    ),
    ReservationStatus.CONFIRMED: frozenset(
        {ReservationStatus.COMPLETED, ReservationStatus.CANCELLED}
    ),
    ReservationStatus.CANCELLED: frozenset(),
    ReservationStatus.COMPLETED: frozenset(),
}


def _coerce(status: str) -> Optional[ReservationStatus]:
    try:
        return ReservationStatus(status)
    except ValueError:
        return None


def is_allowed(from_status: str, to_status: str) -> bool:
    current = _coerce(from_status)
    target = _coerce(to_status)
    if current is None or target is None:
        return False
    return target in ALLOWED_TRANSITIONS[current]


def validate_transition(from_status: str, to_status: str) -> ReservationStatus:
    """
    Returns the target status if the change is allowed.

    Raises:
        InvalidTransitionError: for every pair outside ALLOWED_TRANSITIONS,
            including unknown status names
    """
    if not is_allowed(from_status, to_status):
        raise InvalidTransitionError(
            from_status=_plain(from_status),
            to_status=_plain(to_status),
        )
    return ReservationStatus(to_status)


def _plain(status: str) -> str:
    return status.value if isinstance(status, ReservationStatus) else str(status)
