"""
Result declaration and bet settlement.

Operator actions:
  declare_open_result(db, event_id, result)   - numeric side-settlement, status unchanged
  declare_close_result(db, event_id, result)  - numeric final result → resulted
  declare_match_result(db, event_id, result)  - team match / toss result → resulted
  override_bet_result(db, bet_id, result)     - corrective re-score of one settled bet

Scheduled job:
  resume_pending_settlements()                - every N minutes: finish interrupted
                                                settlements and rollovers

Settlement walks the pending bets of an event one at a time.  Each bet is
re-read under a row lock, scored, credited and committed on its own, so a
failure part-way leaves processed bets settled and the rest pending, and a
second run never pays twice.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Dict, List, Optional, Tuple

from sqlalchemy import func, or_, select
from sqlalchemy.orm import Session

from betbook.core import lifecycle
from betbook.core.errors import EvaluationError, NotFoundError, RecurrenceError, StateError, ValidationError
from betbook.core.evaluator import evaluate
from betbook.core.game_config import (
    FAMILY_NUMERIC,
    FAMILY_TEAM_MATCH,
    GAME_COIN_FLIP,
    MODE_TEAM,
    MODE_TOSS,
    PHASE_CLOSE,
    PHASE_OPEN,
    RESULT_PENDING,
    GameConfig,
    get_game_config,
)
from betbook.core.predictions import OUTCOME_TOKENS, parse_two_digit
from betbook.core.recurrence import next_cycle
from betbook.models import Account, Bet, Event, new_session, transactional
from betbook.services import ledger
from betbook.services.events import event_odds, get_event

logger = logging.getLogger(__name__)


@dataclass
class SettlementSummary:
    event_id: int
    phase: Optional[str]
    declared_result: str
    settled: int = 0
    won: int = 0
    lost: int = 0
    unclassified: int = 0       # scored as a loss because evaluation failed
    total_payout: int = 0
    rolled_over: bool = False
    errors: List[str] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "event_id": self.event_id,
            "phase": self.phase,
            "declared_result": self.declared_result,
            "settled": self.settled,
            "won": self.won,
            "lost": self.lost,
            "unclassified": self.unclassified,
            "total_payout": self.total_payout,
            "rolled_over": self.rolled_over,
            "errors": self.errors,
        }


# ---------------------------------------------------------------------------
# Scoring a single bet
# ---------------------------------------------------------------------------

def _score(bet: Bet, event: Event, declared_result: str, config: GameConfig):
    """Evaluate ``bet``; an unclassifiable bet comes back as a loss."""
    odds = event_odds(event, bet.mode, config)
    try:
        return evaluate(event.family, bet.mode, bet.prediction, declared_result, odds, bet.stake), False
    except EvaluationError as exc:
        logger.warning(
            "Bet %d (%s %r) could not be evaluated against %r, settling as loss: %s",
            bet.id, bet.mode, bet.prediction, declared_result, exc.message,
        )
        return None, True


def _settle_one(
    db: Session,
    bet_id: int,
    event: Event,
    declared_result: str,
    performed_by: Optional[int],
    config: GameConfig,
) -> Optional[Tuple[bool, int, bool]]:
    """Score one bet inside the caller's transaction; ``None`` if already settled."""
    bet = db.execute(
        select(Bet).where(Bet.id == bet_id).with_for_update()
    ).scalar_one()
    if bet.result != RESULT_PENDING:
        return None  # settled by a concurrent run

    evaluation, unclassified = _score(bet, event, declared_result, config)
    won = evaluation is not None and evaluation.won
    payout = evaluation.payout if won else 0

    if payout > 0:
        entry = ledger.credit(
            db, bet.account_id, payout,
            kind=ledger.BET_PAYOUT,
            performed_by=performed_by,
            bet_id=bet.id,
            description=f"Payout for bet {bet.id} on event {event.id} ({declared_result})",
        )
        bet.balance_after = entry.balance_after

    bet.result = declared_result
    bet.outcome = 1 if won else 0
    bet.payout = payout
    bet.settled_at = datetime.utcnow()
    return won, payout, unclassified


def pending_bet_count(db: Session, event_id: int, phase: Optional[str] = None) -> int:
    stmt = select(func.count(Bet.id)).where(
        Bet.event_id == event_id, Bet.result == RESULT_PENDING
    )
    if phase is not None:
        stmt = stmt.where(Bet.phase == phase)
    return db.execute(stmt).scalar_one()


def settle_event_bets(
    db: Session,
    event: Event,
    declared_result: str,
    phase: Optional[str] = None,
    performed_by: Optional[int] = None,
    config: Optional[GameConfig] = None,
) -> SettlementSummary:
    """
    Score every pending bet on ``event`` (optionally one ``phase`` only).

    Idempotent: settled bets are skipped.  A bet whose evaluation fails is
    settled as a loss; a bet whose DB work fails is rolled back and stays
    pending for the next run.
    """
    config = config or get_game_config()
    summary = SettlementSummary(event_id=event.id, phase=phase, declared_result=declared_result)

    stmt = select(Bet.id).where(Bet.event_id == event.id, Bet.result == RESULT_PENDING)
    if phase is not None:
        stmt = stmt.where(Bet.phase == phase)
    bet_ids = list(db.execute(stmt.order_by(Bet.id)).scalars())

    for bet_id in bet_ids:
        try:
            with transactional(db):
                scored = _settle_one(db, bet_id, event, declared_result, performed_by, config)
        except Exception as exc:
            summary.errors.append(f"Bet {bet_id}: {exc}")
            logger.error("Error settling bet %d: %s", bet_id, exc, exc_info=True)
            continue
        if scored is None:
            continue

        won, payout, unclassified = scored
        summary.settled += 1
        if won:
            summary.won += 1
            summary.total_payout += payout
        else:
            summary.lost += 1
        if unclassified:
            summary.unclassified += 1
        logger.info("%s: bet %d | payout %d", "WIN" if won else "LOSS", bet_id, payout)

    logger.info(
        "Event %d settlement (%s=%s): %d settled, %d won, %d lost, %d unclassified, payout %d, %d errors",
        event.id, phase or "result", declared_result, summary.settled, summary.won,
        summary.lost, summary.unclassified, summary.total_payout, len(summary.errors),
    )
    return summary


# ---------------------------------------------------------------------------
# Recurrence
# ---------------------------------------------------------------------------

def roll_over_event(db: Session, event_id: int) -> Event:
    """
    Move a fully settled recurring event to its next cycle.

    The new cycle waits in ``waiting_result``; an operator opens it.

    Raises:
        StateError: not recurring, not resulted, or bets still pending.
        RecurrenceError: the next window cannot be computed (nothing changes).
    """
    with transactional(db):
        event = get_event(db, event_id, for_update=True)
        if not event.is_recurring:
            raise StateError(f"Event {event_id} is not recurring")
        if pending_bet_count(db, event.id):
            raise StateError(f"Event {event_id} still has pending bets")
        status = lifecycle.transition(event.status, "rollover")
        window = next_cycle(
            event.open_time, event.close_time, event.recurrence_pattern,
            event.result_time, event.match_time,
        )

        event.open_time = window.open_time
        event.close_time = window.close_time
        event.result_time = window.result_time
        if window.match_time is not None:
            event.match_time = window.match_time
        event.next_open_time = window.open_time
        event.next_close_time = window.close_time
        event.open_result = None
        event.close_result = None
        event.result = None
        event.cycle = (event.cycle or 1) + 1
        event.status = status
        event.updated_at = datetime.utcnow()

    logger.info(
        "Event %d rolled over to cycle %d (%s): opens %s, closes %s",
        event.id, event.cycle, event.recurrence_pattern,
        event.open_time.isoformat(), event.close_time.isoformat(),
    )
    return event


def _finalize(db: Session, event: Event, summary: SettlementSummary) -> None:
    """Roll a recurring event over once nothing on it is pending."""
    if not event.is_recurring or event.status != lifecycle.RESULTED:
        return
    if summary.errors or pending_bet_count(db, event.id):
        logger.warning("Event %d not rolled over: bets still pending", event.id)
        return
    try:
        roll_over_event(db, event.id)
        summary.rolled_over = True
    except (RecurrenceError, StateError) as exc:
        summary.errors.append(f"Rollover: {exc.message}")
        logger.error("Rollover of event %d failed: %s", event.id, exc.message)


# ---------------------------------------------------------------------------
# Declarations
# ---------------------------------------------------------------------------

def declare_open_result(
    db: Session,
    event_id: int,
    result: str,
    performed_by: Optional[int] = None,
    config: Optional[GameConfig] = None,
) -> SettlementSummary:
    """Record a numeric market's open result and settle open-phase bets."""
    value = parse_two_digit(result, "open result")
    with transactional(db):
        event = get_event(db, event_id, for_update=True)
        if event.family != FAMILY_NUMERIC:
            raise StateError("open results only apply to numeric markets")
        lifecycle.check_can_declare(event, "open")
        event.open_result = value
        event.updated_at = datetime.utcnow()
    logger.info("Event %d open result declared: %s", event_id, value)

    return settle_event_bets(db, event, value, PHASE_OPEN, performed_by, config)


def declare_close_result(
    db: Session,
    event_id: int,
    result: str,
    performed_by: Optional[int] = None,
    config: Optional[GameConfig] = None,
) -> SettlementSummary:
    """Record a numeric market's close result, move it to resulted and settle."""
    value = parse_two_digit(result, "close result")
    with transactional(db):
        event = get_event(db, event_id, for_update=True)
        if event.family != FAMILY_NUMERIC:
            raise StateError("close results only apply to numeric markets")
        lifecycle.check_can_declare(event, "final")
        if event.open_result is None and pending_bet_count(db, event.id, PHASE_OPEN):
            raise StateError("declare the open result first: open-phase bets are pending")
        event.close_result = value
        event.status = lifecycle.transition(event.status, "declare")
        event.updated_at = datetime.utcnow()
    logger.info("Event %d close result declared: %s", event_id, value)

    summary = settle_event_bets(db, event, value, PHASE_CLOSE, performed_by, config)
    _finalize(db, event, summary)
    return summary


def declare_match_result(
    db: Session,
    event_id: int,
    result: str,
    performed_by: Optional[int] = None,
    config: Optional[GameConfig] = None,
) -> SettlementSummary:
    """Record a team match / toss result, move it to resulted and settle."""
    with transactional(db):
        event = get_event(db, event_id, for_update=True)
        if event.family == FAMILY_NUMERIC:
            raise StateError("numeric markets take open/close results")
        mode = MODE_TEAM if event.family == FAMILY_TEAM_MATCH else MODE_TOSS
        if result not in OUTCOME_TOKENS[mode]:
            raise ValidationError(
                f"result must be one of {', '.join(OUTCOME_TOKENS[mode])}, got {result!r}"
            )
        lifecycle.check_can_declare(event, "final")
        event.result = result
        event.status = lifecycle.transition(event.status, "declare")
        event.updated_at = datetime.utcnow()
    logger.info("Event %d result declared: %s", event_id, result)

    summary = settle_event_bets(db, event, result, None, performed_by, config)
    _finalize(db, event, summary)
    return summary


def list_event_bets(
    db: Session,
    event_id: int,
    status: str = "all",
    subadmin_id: Optional[int] = None,
) -> List[Bet]:
    """Bets on one event, oldest first; ``subadmin_id`` limits to its players."""
    get_event(db, event_id)
    stmt = select(Bet).where(Bet.event_id == event_id)
    if status == "pending":
        stmt = stmt.where(Bet.result == RESULT_PENDING)
    elif status == "settled":
        stmt = stmt.where(Bet.result != RESULT_PENDING)
    elif status != "all":
        raise ValidationError("status must be one of: all, pending, settled")
    if subadmin_id is not None:
        stmt = stmt.where(Bet.account_id.in_(
            select(Account.id).where(Account.assigned_to == subadmin_id)
        ))
    return list(db.execute(stmt.order_by(Bet.id)).scalars())


# ---------------------------------------------------------------------------
# Corrective override
# ---------------------------------------------------------------------------

def override_bet_result(
    db: Session,
    bet_id: int,
    result: str,
    performed_by: Optional[int] = None,
    config: Optional[GameConfig] = None,
) -> Bet:
    """
    Re-score one settled bet against a corrected outcome.

    The payout difference is booked as a single ``override`` transaction
    (credit or debit); a debit the account cannot cover is refused.
    """
    config = config or get_game_config()
    with transactional(db):
        bet = db.execute(select(Bet).where(Bet.id == bet_id).with_for_update()).scalar_one_or_none()
        if bet is None:
            raise NotFoundError(f"Bet {bet_id} not found")
        if bet.result == RESULT_PENDING:
            raise StateError("bet is still pending; declare the event result instead")

        event = db.get(Event, bet.event_id) if bet.event_id is not None else None
        family = event.family if event is not None else GAME_COIN_FLIP
        odds = event_odds(event, bet.mode, config) if event is not None else config.coin_flip_odds
        try:
            evaluation = evaluate(family, bet.mode, bet.prediction, result, odds, bet.stake)
        except EvaluationError as exc:
            raise ValidationError(f"cannot re-score bet {bet_id}: {exc.message}") from exc

        old_payout = bet.payout
        diff = evaluation.payout - old_payout
        description = f"Override of bet {bet.id}: {bet.result} → {result}"
        if diff > 0:
            bet.balance_after = ledger.credit(
                db, bet.account_id, diff, kind=ledger.OVERRIDE,
                performed_by=performed_by, bet_id=bet.id, description=description,
            ).balance_after
        elif diff < 0:
            bet.balance_after = ledger.debit(
                db, bet.account_id, -diff, kind=ledger.OVERRIDE,
                performed_by=performed_by, bet_id=bet.id, description=description,
            ).balance_after

        bet.result = result
        bet.outcome = 1 if evaluation.won else 0
        bet.payout = evaluation.payout
        bet.settled_at = datetime.utcnow()

    logger.info("Bet %d overridden to %s: payout %d → %d", bet_id, result, old_payout, bet.payout)
    return bet


# ---------------------------------------------------------------------------
# Job: resume_pending_settlements
# ---------------------------------------------------------------------------

def _declared_phases(event: Event) -> Dict[Optional[str], str]:
    if event.family == FAMILY_NUMERIC:
        phases = {}
        if event.open_result is not None:
            phases[PHASE_OPEN] = event.open_result
        if event.status == lifecycle.RESULTED and event.close_result is not None:
            phases[PHASE_CLOSE] = event.close_result
        return phases
    if event.status == lifecycle.RESULTED and event.result is not None:
        return {None: event.result}
    return {}


def resume_pending_settlements(
    db: Optional[Session] = None,
    config: Optional[GameConfig] = None,
) -> Dict:
    """
    Finish settlements interrupted part-way and rollovers that never ran.

    Called by scheduler; safe to run at any time.
    """
    logger.info("Starting resume_pending_settlements")
    own_session = db is None
    db = db or new_session()

    events_checked = 0
    bets_settled = 0
    rolled_over = 0
    errors: List[str] = []

    try:
        pending_events = select(Bet.event_id).where(
            Bet.result == RESULT_PENDING, Bet.event_id.isnot(None)
        )
        candidates = list(db.execute(
            select(Event).where(
                or_(
                    Event.id.in_(pending_events),
                    (Event.status == lifecycle.RESULTED) & Event.is_recurring.is_(True),
                )
            ).order_by(Event.id)
        ).scalars())

        for event in candidates:
            phases = _declared_phases(event)
            if not phases and not event.is_recurring:
                continue
            events_checked += 1
            for phase, declared in phases.items():
                if not pending_bet_count(db, event.id, phase):
                    continue
                summary = settle_event_bets(db, event, declared, phase, None, config)
                bets_settled += summary.settled
                errors.extend(summary.errors)

            if event.is_recurring and event.status == lifecycle.RESULTED:
                rollover = SettlementSummary(event_id=event.id, phase=None, declared_result="")
                _finalize(db, event, rollover)
                rolled_over += int(rollover.rolled_over)
                errors.extend(rollover.errors)

    except Exception as exc:
        logger.error("Fatal error in resume_pending_settlements: %s", exc, exc_info=True)
        db.rollback()
        errors.append(f"Fatal: {exc}")
    finally:
        if own_session:
            db.close()

    result = _job_summary(events_checked, bets_settled, rolled_over, errors)
    logger.info("resume_pending_settlements done: %s", result)
    return result


def _job_summary(events: int, settled: int, rolled_over: int, errors: List[str]) -> Dict:
    return {
        "events_checked": events,
        "bets_settled": settled,
        "events_rolled_over": rolled_over,
        "errors": errors,
        "timestamp": datetime.utcnow().isoformat(),
    }
