"""
Operator actions on events: create, clone, reschedule, open, close, reopen.

Result declaration lives in ``settlement`` because it fires settlement.
Every public function here commits its own unit of work and leaves the
database untouched when it raises.
"""

import logging
from datetime import datetime
from typing import Dict, List, Optional

from sqlalchemy import func, select, update
from sqlalchemy.orm import Session

from betbook.core import lifecycle
from betbook.core.errors import NotFoundError, StateError, ValidationError
from betbook.core.evaluator import Odds
from betbook.core.game_config import (
    DRAW,
    FAMILY_NUMERIC,
    FAMILY_TEAM_MATCH,
    EVENT_FAMILIES,
    MARKET_TYPES,
    MATCH_CATEGORIES,
    MIN_ODDS,
    NUMERIC_MODES,
    TEAM_A,
    TEAM_B,
    GameConfig,
    get_game_config,
)
from betbook.core.recurrence import PATTERNS
from betbook.models import Bet, Event, transactional

logger = logging.getLogger(__name__)

#: Fields an operator may set on creation / clone.
EVENT_FIELDS = (
    "name", "family", "market_type", "team_a", "team_b", "category", "description",
    "match_time", "open_time", "close_time", "result_time",
    "odds_a", "odds_b", "odds_draw", "mode_odds",
    "is_recurring", "recurrence_pattern",
)

#: Fields editable while an event is still waiting_result.
SCHEDULE_FIELDS = ("open_time", "close_time", "result_time", "match_time")


# ---------------------------------------------------------------------------
# Lookups
# ---------------------------------------------------------------------------

def get_event(db: Session, event_id: int, *, for_update: bool = False) -> Event:
    stmt = select(Event).where(Event.id == event_id)
    if for_update:
        stmt = stmt.with_for_update()
    event = db.execute(stmt).scalar_one_or_none()
    if event is None:
        raise NotFoundError(f"Event {event_id} not found")
    return event


def list_events(
    db: Session,
    family: Optional[str] = None,
    status: Optional[str] = None,
) -> List[Event]:
    stmt = select(Event)
    if family:
        stmt = stmt.where(Event.family == family)
    if status:
        stmt = stmt.where(Event.status == status)
    return list(db.execute(stmt.order_by(Event.id.desc())).scalars())


def event_odds(event: Event, mode: str, config: Optional[GameConfig] = None) -> Odds:
    """Odds that apply to a bet of ``mode`` on ``event``."""
    config = config or get_game_config()
    if event.family == FAMILY_NUMERIC:
        return (event.mode_odds or {}).get(mode) or config.mode_odds(mode)
    odds = {TEAM_A: event.odds_a, TEAM_B: event.odds_b}
    if event.family == FAMILY_TEAM_MATCH:
        odds[DRAW] = event.odds_draw if event.odds_draw is not None else config.odds_draw
    return odds


# ---------------------------------------------------------------------------
# Validation
# ---------------------------------------------------------------------------

def _check_odds(name: str, value) -> None:
    if value is None:
        return
    if isinstance(value, bool) or not isinstance(value, int) or value < MIN_ODDS:
        raise ValidationError(f"{name} must be an integer >= {MIN_ODDS} (x100 odds), got {value!r}")


def _validate(fields: Dict, config: GameConfig) -> Dict:
    for key in SCHEDULE_FIELDS:
        if key in fields:
            fields[key] = lifecycle.as_naive_utc(fields[key])
    family = fields.get("family")
    if family not in EVENT_FAMILIES:
        raise ValidationError(f"family must be one of {', '.join(EVENT_FAMILIES)}")
    if not (fields.get("name") or "").strip():
        if family == FAMILY_NUMERIC:
            raise ValidationError("name is required")
        fields["name"] = f"{fields.get('team_a')} vs {fields.get('team_b')}"

    open_time, close_time = fields.get("open_time"), fields.get("close_time")
    if open_time and close_time and close_time <= open_time:
        raise ValidationError("close_time must be after open_time")

    if family == FAMILY_NUMERIC:
        if fields.get("market_type") not in MARKET_TYPES:
            raise ValidationError(f"market_type must be one of {', '.join(MARKET_TYPES)}")
        if not open_time or not close_time:
            raise ValidationError("numeric markets need open_time and close_time")
        given = fields.get("mode_odds") or {}
        unknown = set(given) - set(NUMERIC_MODES)
        if unknown:
            raise ValidationError(f"unknown game modes in mode_odds: {', '.join(sorted(unknown))}")
        for mode, value in given.items():
            _check_odds(f"mode_odds[{mode}]", value)
        fields["mode_odds"] = {**config.default_mode_odds(), **given}
        for key in ("team_a", "team_b", "match_time", "odds_a", "odds_b", "odds_draw"):
            fields.pop(key, None)
    else:
        if not fields.get("team_a") or not fields.get("team_b"):
            raise ValidationError("team_a and team_b are required")
        if not fields.get("match_time"):
            raise ValidationError("match_time is required")
        category = fields.get("category") or "cricket"
        if category not in MATCH_CATEGORIES:
            raise ValidationError(f"category must be one of {', '.join(MATCH_CATEGORIES)}")
        fields["category"] = category
        fields["odds_a"] = fields.get("odds_a") or config.odds_team
        fields["odds_b"] = fields.get("odds_b") or config.odds_team
        if family == FAMILY_TEAM_MATCH:
            fields["odds_draw"] = fields.get("odds_draw") or config.odds_draw
        else:
            fields["odds_draw"] = None
        for key in ("odds_a", "odds_b", "odds_draw"):
            _check_odds(key, fields.get(key))
        fields.pop("market_type", None)
        fields.pop("mode_odds", None)

    if fields.get("is_recurring"):
        if fields.get("recurrence_pattern") not in PATTERNS:
            raise ValidationError(f"recurrence_pattern must be one of {', '.join(PATTERNS)}")
        if not open_time or not close_time:
            raise ValidationError("recurring events need open_time and close_time")
    else:
        fields["is_recurring"] = False
        fields["recurrence_pattern"] = None
    return fields


# ---------------------------------------------------------------------------
# Creation
# ---------------------------------------------------------------------------

def create_event(db: Session, config: Optional[GameConfig] = None, **fields) -> Event:
    """Create an event in ``waiting_result``."""
    config = config or get_game_config()
    unknown = set(fields) - set(EVENT_FIELDS)
    if unknown:
        raise ValidationError(f"unknown event fields: {', '.join(sorted(unknown))}")
    data = _validate(dict(fields), config)

    with transactional(db):
        event = Event(status=lifecycle.WAITING_RESULT, cycle=1, **data)
        db.add(event)
        db.flush()
    logger.info("Event %d created: %s (%s)", event.id, event.name, event.family)
    return event


def clone_event(
    db: Session,
    template_id: int,
    config: Optional[GameConfig] = None,
    **overrides,
) -> Event:
    """Create a fresh ``waiting_result`` event from a prior one, results cleared."""
    config = config or get_game_config()
    template = get_event(db, template_id)
    fields = {name: getattr(template, name) for name in EVENT_FIELDS}
    if fields.get("mode_odds") is not None:
        fields["mode_odds"] = dict(fields["mode_odds"])
    fields.update(overrides)
    unknown = set(fields) - set(EVENT_FIELDS)
    if unknown:
        raise ValidationError(f"unknown event fields: {', '.join(sorted(unknown))}")
    data = _validate(fields, config)

    with transactional(db):
        event = Event(status=lifecycle.WAITING_RESULT, cycle=1, template_id=template.id, **data)
        db.add(event)
        db.flush()
    logger.info("Event %d cloned from template %d", event.id, template.id)
    return event


def update_event_schedule(db: Session, event_id: int, **schedule) -> Event:
    """Edit open/close/result/match times.  Only while ``waiting_result``."""
    unknown = set(schedule) - set(SCHEDULE_FIELDS)
    if unknown:
        raise ValidationError(f"only schedule fields can be edited: {', '.join(sorted(unknown))}")
    schedule = {key: lifecycle.as_naive_utc(value) for key, value in schedule.items()}

    with transactional(db):
        event = get_event(db, event_id, for_update=True)
        if event.status != lifecycle.WAITING_RESULT:
            raise StateError(
                f"schedule can only be edited while waiting_result (status is '{event.status}')"
            )
        open_time = schedule.get("open_time", event.open_time)
        close_time = schedule.get("close_time", event.close_time)
        if open_time and close_time and close_time <= open_time:
            raise ValidationError("close_time must be after open_time")
        if event.family == FAMILY_NUMERIC and (not open_time or not close_time):
            raise ValidationError("numeric markets need open_time and close_time")
        for key, value in schedule.items():
            setattr(event, key, value)
        event.updated_at = datetime.utcnow()
    logger.info("Event %d schedule updated: %s", event_id, sorted(schedule))
    return event


def delete_event(db: Session, event_id: int) -> None:
    """Remove an unused event (typically a template).  Refused once bets exist."""
    with transactional(db):
        event = get_event(db, event_id, for_update=True)
        used = db.execute(
            select(func.count(Bet.id)).where(Bet.event_id == event_id)
        ).scalar_one()
        if used:
            raise StateError("cannot delete an event that has bets")
        # Clones outlive their template
        db.execute(
            update(Event).where(Event.template_id == event_id).values(template_id=None)
        )
        db.delete(event)
    logger.info("Event %d deleted", event_id)


# ---------------------------------------------------------------------------
# Status transitions
# ---------------------------------------------------------------------------

def _apply(db: Session, event_id: int, action: str) -> Event:
    with transactional(db):
        event = get_event(db, event_id, for_update=True)
        if action == "reopen":
            lifecycle.check_can_reopen(event)
        previous = event.status
        event.status = lifecycle.transition(event.status, action)
        event.updated_at = datetime.utcnow()
    logger.info("Event %d: %s → %s (%s)", event_id, previous, event.status, action)
    return event


def open_event(db: Session, event_id: int) -> Event:
    return _apply(db, event_id, "open")


def close_event(db: Session, event_id: int) -> Event:
    return _apply(db, event_id, "close")


def reopen_event(db: Session, event_id: int) -> Event:
    """Explicit operator reopen of a closed event that has no final result."""
    return _apply(db, event_id, "reopen")

