"""
Event lifecycle state machine.

    waiting_result ──open──▶ open ──close──▶ closed ──declare──▶ resulted
                               ▲               │                    │
                               └────reopen─────┘        rollover (recurring)
                                                                    │
    waiting_result ◀────────────────────────────────────────────────┘

Every transition is operator-triggered; nothing here looks at the clock
except :func:`check_accepts_bets`, which enforces a match's scheduled start.
The functions take plain values (or any object with the relevant attributes)
and raise :class:`StateError` on an illegal move, so they are usable from
services and tests alike.
"""

from datetime import datetime, timezone
from typing import Dict, Final, Optional, Tuple

from betbook.core.errors import StateError, ValidationError
from betbook.core.game_config import FAMILY_CRICKET_TOSS, FAMILY_NUMERIC, FAMILY_TEAM_MATCH

WAITING_RESULT: Final[str] = "waiting_result"
OPEN: Final[str] = "open"
CLOSED: Final[str] = "closed"
RESULTED: Final[str] = "resulted"
STATUSES: Final[tuple] = (WAITING_RESULT, OPEN, CLOSED, RESULTED)

#: action → (allowed source states, target state)
TRANSITIONS: Final[Dict[str, Tuple[tuple, str]]] = {
    "open": ((WAITING_RESULT,), OPEN),
    "close": ((OPEN,), CLOSED),
    "reopen": ((CLOSED,), OPEN),
    "declare": ((CLOSED,), RESULTED),
    "rollover": ((RESULTED,), WAITING_RESULT),
}

_STATUS_MESSAGES = {
    WAITING_RESULT: "Event is not yet open for betting",
    CLOSED: "Event is closed for betting and waiting for results",
    RESULTED: "Event results have been declared",
}


def transition(status: str, action: str) -> str:
    """Return the status reached by ``action`` from ``status``.

    Raises:
        StateError: the action is not allowed from ``status``.
    """
    if action not in TRANSITIONS:
        raise ValidationError(f"unknown lifecycle action {action!r}")
    sources, target = TRANSITIONS[action]
    if status not in sources:
        raise StateError(
            f"cannot {action} an event in '{status}' status "
            f"(allowed from: {', '.join(sources)})"
        )
    return target


def is_time_bound(family: str) -> bool:
    return family in (FAMILY_TEAM_MATCH, FAMILY_CRICKET_TOSS)


def is_two_phase(family: str) -> bool:
    return family == FAMILY_NUMERIC


def as_naive_utc(value: Optional[datetime]) -> Optional[datetime]:
    """Event times are stored as naive UTC; convert an aware value, pass naive through."""
    if value is None or value.tzinfo is None:
        return value
    return value.astimezone(timezone.utc).replace(tzinfo=None)


def check_accepts_bets(event, now: Optional[datetime] = None) -> None:
    """Raise :class:`StateError` unless ``event`` can take a new bet now."""
    if event.status != OPEN:
        raise StateError(_STATUS_MESSAGES.get(event.status, "Event is not available for betting"))
    if is_time_bound(event.family) and event.match_time is not None:
        now = now or datetime.utcnow()
        if event.match_time <= now:
            raise StateError("Match has already started")


def check_can_reopen(event) -> None:
    transition(event.status, "reopen")
    if event.close_result is not None or event.result is not None:
        raise StateError("cannot reopen an event whose final result is declared")


def check_can_declare(event, phase: str = "final") -> None:
    """Validate a result declaration.

    ``phase`` is ``"open"`` for the side-settlement of a two-phase event and
    ``"final"`` for the declaration that moves the event to ``resulted``.
    """
    if event.status == RESULTED:
        raise StateError("result already declared for this event")
    if event.status != CLOSED:
        raise StateError(
            f"results can only be declared for closed events (status is '{event.status}')"
        )
    if phase == "open":
        if not is_two_phase(event.family):
            raise StateError("open-phase results only apply to two-phase markets")
        if event.open_result is not None:
            raise StateError("open result already declared for this event")
