"""
Bet placement.

Public API:
  place_bet(db, account_id, event_id, mode, prediction, stake, phase)  → Bet
  place_bets(db, account_id, event_id, slips)                          → List[Bet]
  play_coin_flip(db, account_id, prediction, stake, rng)               → Bet
  list_account_bets(db, account_id, status)                            → List[Bet]
  list_account_transactions(db, account_id)                            → List[Transaction]

Placement order: account usable → event open (and not started) → stake and
prediction valid → bet row inserted → stake debited.  All of it runs in one
DB transaction, so a rejection at any step leaves balance and bets as they
were.
"""

import logging
import random
from dataclasses import dataclass
from datetime import datetime
from typing import Iterable, List, Optional

from sqlalchemy import select
from sqlalchemy.orm import Session

from betbook.core import lifecycle
from betbook.core.errors import NotFoundError, PermissionDeniedError, StateError, ValidationError
from betbook.core.evaluator import evaluate
from betbook.core.game_config import (
    FAMILY_MODES,
    FAMILY_NUMERIC,
    GAME_COIN_FLIP,
    HEADS,
    MODE_COIN,
    PHASE_CLOSE,
    PHASE_OPEN,
    RESULT_PENDING,
    TAILS,
    GameConfig,
    get_game_config,
)
from betbook.core.predictions import Prediction, parse_prediction
from betbook.models import Account, Bet, Event, Transaction, transactional
from betbook.services import ledger

logger = logging.getLogger(__name__)


@dataclass
class BetSlip:
    """One requested wager, before validation."""

    mode: str
    prediction: str
    stake: int
    phase: Optional[str] = None


@dataclass
class _ValidSlip:
    mode: str
    prediction: Prediction
    stake: int
    phase: Optional[str]


# ---------------------------------------------------------------------------
# Validation helpers
# ---------------------------------------------------------------------------

def get_account(db: Session, account_id: int) -> Account:
    account = db.get(Account, account_id)
    if account is None:
        raise NotFoundError(f"Account {account_id} not found")
    return account


def _active_account(db: Session, account_id: int) -> Account:
    account = get_account(db, account_id)
    if account.is_blocked:
        raise PermissionDeniedError("Your account is blocked")
    return account


def _check_stake(stake, config: GameConfig) -> int:
    if isinstance(stake, bool) or not isinstance(stake, int) or stake <= 0:
        raise ValidationError(f"stake must be a positive integer, got {stake!r}")
    if stake < config.min_stake:
        raise ValidationError(f"minimum stake is {config.min_stake}")
    if config.max_stake is not None and stake > config.max_stake:
        raise ValidationError(f"maximum stake is {config.max_stake}")
    return stake


def _validate_slip(event: Event, slip: BetSlip, config: GameConfig) -> _ValidSlip:
    stake = _check_stake(slip.stake, config)
    allowed = FAMILY_MODES[event.family]
    if slip.mode not in allowed:
        raise ValidationError(
            f"mode {slip.mode!r} is not available on {event.family} events "
            f"(allowed: {', '.join(allowed)})"
        )
    prediction = parse_prediction(slip.mode, slip.prediction)

    phase = slip.phase
    if event.family == FAMILY_NUMERIC:
        phase = phase or PHASE_CLOSE
        if phase not in (PHASE_OPEN, PHASE_CLOSE):
            raise ValidationError(f"phase must be '{PHASE_OPEN}' or '{PHASE_CLOSE}'")
        if phase == PHASE_OPEN and event.open_result is not None:
            raise StateError("open result already declared; open-phase betting is over")
    elif phase is not None:
        raise ValidationError("phase only applies to numeric markets")

    return _ValidSlip(mode=slip.mode, prediction=prediction, stake=stake, phase=phase)


def _load_open_event(db: Session, event_id: int, now: Optional[datetime]) -> Event:
    # Shared lock: a concurrent close/declare waits for this placement to commit.
    event = db.execute(
        select(Event).where(Event.id == event_id).with_for_update(read=True)
    ).scalar_one_or_none()
    if event is None:
        raise NotFoundError(f"Event {event_id} not found")
    lifecycle.check_accepts_bets(event, now)
    return event


def _book(db: Session, account: Account, event: Event, slip: _ValidSlip) -> Bet:
    bet = Bet(
        account_id=account.id,
        event_id=event.id,
        game_type=event.family,
        mode=slip.mode,
        phase=slip.phase,
        cycle=event.cycle,
        stake=slip.stake,
        prediction=slip.prediction.canonical(),
        result=RESULT_PENDING,
        payout=0,
    )
    db.add(bet)
    db.flush()
    entry = ledger.debit(
        db, account.id, slip.stake,
        kind=ledger.BET_STAKE,
        performed_by=account.id,
        bet_id=bet.id,
        description=f"Stake on event {event.id} ({slip.mode} {bet.prediction})",
    )
    bet.balance_after = entry.balance_after
    return bet


# ---------------------------------------------------------------------------
# Placement
# ---------------------------------------------------------------------------

def place_bet(
    db: Session,
    account_id: int,
    event_id: int,
    mode: str,
    prediction: str,
    stake: int,
    phase: Optional[str] = None,
    config: Optional[GameConfig] = None,
    now: Optional[datetime] = None,
) -> Bet:
    """
    Place a single wager against an open event.

    Raises:
        NotFoundError, PermissionDeniedError, StateError, ValidationError,
        InsufficientFundsError.  A rejected bet has no partial effect.
    """
    config = config or get_game_config()
    with transactional(db):
        account = _active_account(db, account_id)
        event = _load_open_event(db, event_id, now)
        slip = _validate_slip(event, BetSlip(mode, prediction, stake, phase), config)
        bet = _book(db, account, event, slip)

    logger.info(
        "Bet %d placed: account %d, event %d, %s %s (%s) stake %d",
        bet.id, account_id, event_id, bet.mode, bet.prediction, bet.phase or "-", bet.stake,
    )
    return bet


def place_bets(
    db: Session,
    account_id: int,
    event_id: int,
    slips: Iterable[BetSlip],
    config: Optional[GameConfig] = None,
    now: Optional[datetime] = None,
) -> List[Bet]:
    """Place several wagers on one event, all or nothing."""
    config = config or get_game_config()
    slips = list(slips)
    if not slips:
        raise ValidationError("at least one bet is required")

    with transactional(db):
        account = _active_account(db, account_id)
        event = _load_open_event(db, event_id, now)
        valid = [_validate_slip(event, slip, config) for slip in slips]
        bets = [_book(db, account, event, slip) for slip in valid]

    logger.info(
        "%d bets placed: account %d, event %d, total stake %d",
        len(bets), account_id, event_id, sum(b.stake for b in bets),
    )
    return bets


def play_coin_flip(
    db: Session,
    account_id: int,
    prediction: str,
    stake: int,
    config: Optional[GameConfig] = None,
    rng: Optional[random.Random] = None,
) -> Bet:
    """Instant game: debit, flip, settle, all in one transaction."""
    config = config or get_game_config()
    rng = rng or random.SystemRandom()

    with transactional(db):
        account = _active_account(db, account_id)
        stake = _check_stake(stake, config)
        parsed = parse_prediction(MODE_COIN, prediction)

        bet = Bet(
            account_id=account.id,
            game_type=GAME_COIN_FLIP,
            mode=MODE_COIN,
            stake=stake,
            prediction=parsed.canonical(),
            result=RESULT_PENDING,
            payout=0,
        )
        db.add(bet)
        db.flush()
        entry = ledger.debit(
            db, account.id, stake, kind=ledger.BET_STAKE,
            performed_by=account.id, bet_id=bet.id, description="Coin flip stake",
        )

        flip = rng.choice([HEADS, TAILS])
        evaluation = evaluate(GAME_COIN_FLIP, MODE_COIN, parsed, flip, config.coin_flip_odds, stake)
        balance_after = entry.balance_after
        if evaluation.won and evaluation.payout > 0:
            balance_after = ledger.credit(
                db, account.id, evaluation.payout, kind=ledger.BET_PAYOUT,
                bet_id=bet.id, description="Coin flip payout",
            ).balance_after

        bet.result = flip
        bet.outcome = 1 if evaluation.won else 0
        bet.payout = evaluation.payout
        bet.balance_after = balance_after
        bet.settled_at = datetime.utcnow()

    logger.info(
        "Coin flip %d: account %d picked %s, landed %s, payout %d",
        bet.id, account_id, bet.prediction, bet.result, bet.payout,
    )
    return bet


# ---------------------------------------------------------------------------
# History
# ---------------------------------------------------------------------------

def list_account_bets(
    db: Session,
    account_id: int,
    status: str = "all",
    limit: int = 100,
) -> List[Bet]:
    """A player's own bets, newest first.  ``status``: all | pending | settled."""
    get_account(db, account_id)
    stmt = select(Bet).where(Bet.account_id == account_id)
    if status == "pending":
        stmt = stmt.where(Bet.result == RESULT_PENDING)
    elif status == "settled":
        stmt = stmt.where(Bet.result != RESULT_PENDING)
    elif status != "all":
        raise ValidationError("status must be one of: all, pending, settled")
    return list(db.execute(stmt.order_by(Bet.id.desc()).limit(limit)).scalars())


def list_account_transactions(db: Session, account_id: int, limit: int = 100) -> List[Transaction]:
    get_account(db, account_id)
    stmt = (
        select(Transaction)
        .where(Transaction.account_id == account_id)
        .order_by(Transaction.id.desc())
        .limit(limit)
    )
    return list(db.execute(stmt).scalars())
