"""Tests for betting.py: placement, bulk slips, coin flip and history."""

import random
from datetime import datetime, timedelta
from unittest.mock import MagicMock

import pytest
from sqlalchemy import func, select

from betbook.core.errors import (
    InsufficientFundsError,
    NotFoundError,
    PermissionDeniedError,
    StateError,
    ValidationError,
)
from betbook.core.game_config import GameConfig
from betbook.models import Bet, Transaction
from betbook.services import betting, settlement, wallet
from betbook.services.betting import BetSlip


def _bet_count(db):
    return db.execute(select(func.count(Bet.id))).scalar_one()


# ---------------------------------------------------------------------------
# Scenario A: a placed bet debits the stake and stays pending
# ---------------------------------------------------------------------------

def test_place_jodi_bet(db, make_account, make_numeric_event, balance_of):
    player = make_account(balance=1000)
    event = make_numeric_event(mode_odds={"jodi": 900})

    bet = betting.place_bet(db, player.id, event.id, "jodi", "42", 100)

    assert balance_of(player.id) == 900
    assert bet.result == "pending"
    assert bet.payout == 0
    assert bet.phase == "close"
    assert bet.balance_after == 900
    assert bet.cycle == 1

    stake_txn = db.execute(select(Transaction).where(Transaction.bet_id == bet.id)).scalar_one()
    assert stake_txn.amount == -100
    assert stake_txn.kind == "bet_stake"


def test_prediction_stored_canonically(db, make_account, make_numeric_event):
    player = make_account(balance=1000)
    event = make_numeric_event()
    bet = betting.place_bet(db, player.id, event.id, "crossing", "Combinations of 5,1,3", 10)
    assert bet.prediction == "1,3,5"


# ---------------------------------------------------------------------------
# Scenario E and other rejections leave everything untouched
# ---------------------------------------------------------------------------

@pytest.mark.parametrize("status", ["waiting_result", "closed"])
def test_rejects_event_not_open(db, make_account, make_numeric_event, balance_of, status):
    player = make_account(balance=1000)
    event = make_numeric_event(status=status)
    with pytest.raises(StateError):
        betting.place_bet(db, player.id, event.id, "jodi", "42", 100)
    assert balance_of(player.id) == 1000
    assert _bet_count(db) == 0


@pytest.mark.parametrize("mode, prediction, stake", [
    ("jodi", "4", 100),          # malformed prediction
    ("jodi", "42", 0),           # non-positive stake
    ("jodi", "42", -5),
    ("team", "team_a", 100),     # mode not offered on numeric markets
    ("harf", "L12", 100),
])
def test_rejects_invalid_input(db, make_account, make_numeric_event, balance_of, mode, prediction, stake):
    player = make_account(balance=1000)
    event = make_numeric_event()
    with pytest.raises(ValidationError):
        betting.place_bet(db, player.id, event.id, mode, prediction, stake)
    assert balance_of(player.id) == 1000
    assert _bet_count(db) == 0


def test_rejects_insufficient_funds(db, make_account, make_numeric_event, balance_of):
    player = make_account(balance=50)
    event = make_numeric_event()
    with pytest.raises(InsufficientFundsError):
        betting.place_bet(db, player.id, event.id, "jodi", "42", 100)
    assert balance_of(player.id) == 50
    assert _bet_count(db) == 0


def test_rejects_blocked_account(db, make_account, make_numeric_event):
    admin = make_account(role="admin")
    player = make_account(balance=1000)
    wallet.block_account(db, player.id, admin)
    event = make_numeric_event()
    with pytest.raises(PermissionDeniedError):
        betting.place_bet(db, player.id, event.id, "jodi", "42", 100)


def test_unknown_event_and_account(db, make_account):
    player = make_account(balance=1000)
    with pytest.raises(NotFoundError):
        betting.place_bet(db, player.id, 404, "jodi", "42", 100)
    with pytest.raises(NotFoundError):
        betting.place_bet(db, 404, 1, "jodi", "42", 100)


def test_stake_limits(db, make_account, make_numeric_event):
    player = make_account(balance=10000)
    event = make_numeric_event()
    config = GameConfig(min_stake=10, max_stake=500)
    with pytest.raises(ValidationError, match="minimum"):
        betting.place_bet(db, player.id, event.id, "jodi", "42", 5, config=config)
    with pytest.raises(ValidationError, match="maximum"):
        betting.place_bet(db, player.id, event.id, "jodi", "42", 501, config=config)
    betting.place_bet(db, player.id, event.id, "jodi", "42", 500, config=config)


# ---------------------------------------------------------------------------
# Phases on two-phase markets
# ---------------------------------------------------------------------------

def test_phase_only_on_numeric(db, make_account, make_match_event):
    player = make_account(balance=1000)
    event = make_match_event()
    with pytest.raises(ValidationError):
        betting.place_bet(db, player.id, event.id, "team", "team_a", 100, phase="open")


def test_open_phase_closed_after_open_result(db, make_account, make_numeric_event):
    from betbook.services import events

    player = make_account(balance=1000)
    event = make_numeric_event(status="closed")
    settlement.declare_open_result(db, event.id, "37")
    events.reopen_event(db, event.id)

    with pytest.raises(StateError):
        betting.place_bet(db, player.id, event.id, "harf", "L3", 10, phase="open")
    bet = betting.place_bet(db, player.id, event.id, "harf", "L3", 10, phase="close")
    assert bet.phase == "close"


# ---------------------------------------------------------------------------
# Matches
# ---------------------------------------------------------------------------

def test_match_closes_at_start_time(db, make_account, make_match_event, balance_of):
    player = make_account(balance=1000)
    start = datetime.utcnow() + timedelta(hours=1)
    event = make_match_event(match_time=start)

    betting.place_bet(db, player.id, event.id, "team", "team_a", 100, now=start - timedelta(minutes=5))
    with pytest.raises(StateError):
        betting.place_bet(db, player.id, event.id, "team", "team_b", 100, now=start)
    assert balance_of(player.id) == 900


def test_toss_has_no_draw(db, make_account, make_match_event):
    player = make_account(balance=1000)
    event = make_match_event(family="cricket_toss")
    with pytest.raises(ValidationError):
        betting.place_bet(db, player.id, event.id, "toss", "draw", 100)


# ---------------------------------------------------------------------------
# Bulk placement
# ---------------------------------------------------------------------------

def test_bulk_all_or_nothing(db, make_account, make_numeric_event, balance_of):
    player = make_account(balance=1000)
    event = make_numeric_event()
    slips = [
        BetSlip("jodi", "42", 100),
        BetSlip("odd_even", "even", 100),
        BetSlip("harf", "bad", 100),
    ]
    with pytest.raises(ValidationError):
        betting.place_bets(db, player.id, event.id, slips)
    assert balance_of(player.id) == 1000
    assert _bet_count(db) == 0


def test_bulk_funds_checked_across_slips(db, make_account, make_numeric_event, balance_of):
    player = make_account(balance=150)
    event = make_numeric_event()
    with pytest.raises(InsufficientFundsError):
        betting.place_bets(db, player.id, event.id, [BetSlip("jodi", "42", 100), BetSlip("jodi", "24", 100)])
    assert balance_of(player.id) == 150


def test_bulk_success(db, make_account, make_numeric_event, balance_of):
    player = make_account(balance=1000)
    event = make_numeric_event()
    bets = betting.place_bets(
        db, player.id, event.id,
        [BetSlip("jodi", "42", 100), BetSlip("crossing", "1,2", 50, phase="open")],
    )
    assert [b.balance_after for b in bets] == [900, 850]
    assert balance_of(player.id) == 850


def test_bulk_needs_slips(db, make_account, make_numeric_event):
    player = make_account(balance=1000)
    event = make_numeric_event()
    with pytest.raises(ValidationError):
        betting.place_bets(db, player.id, event.id, [])


# ---------------------------------------------------------------------------
# Coin flip
# ---------------------------------------------------------------------------

def _rng(side):
    rng = MagicMock(spec=random.Random)
    rng.choice.return_value = side
    return rng


def test_coin_flip_win(db, make_account, balance_of):
    player = make_account(balance=1000)
    bet = betting.play_coin_flip(db, player.id, "heads", 100, rng=_rng("heads"))
    assert bet.result == "heads"
    assert bet.outcome == 1
    assert bet.payout == 195
    assert bet.event_id is None
    assert bet.balance_after == balance_of(player.id) == 1095


def test_coin_flip_loss(db, make_account, balance_of):
    player = make_account(balance=1000)
    bet = betting.play_coin_flip(db, player.id, "heads", 100, rng=_rng("tails"))
    assert bet.outcome == 0
    assert bet.payout == 0
    assert balance_of(player.id) == 900


def test_coin_flip_validates_before_debit(db, make_account, balance_of):
    player = make_account(balance=1000)
    with pytest.raises(ValidationError):
        betting.play_coin_flip(db, player.id, "edge", 100, rng=_rng("heads"))
    with pytest.raises(InsufficientFundsError):
        betting.play_coin_flip(db, player.id, "heads", 5000, rng=_rng("heads"))
    assert balance_of(player.id) == 1000
    assert _bet_count(db) == 0


# ---------------------------------------------------------------------------
# History
# ---------------------------------------------------------------------------

def test_history_filters(db, make_account, make_numeric_event):
    player = make_account(balance=1000)
    event = make_numeric_event()
    betting.place_bet(db, player.id, event.id, "jodi", "42", 10)
    betting.play_coin_flip(db, player.id, "tails", 10, rng=_rng("tails"))

    assert len(betting.list_account_bets(db, player.id)) == 2
    assert [b.mode for b in betting.list_account_bets(db, player.id, status="pending")] == ["jodi"]
    assert [b.mode for b in betting.list_account_bets(db, player.id, status="settled")] == ["coin"]
    with pytest.raises(ValidationError):
        betting.list_account_bets(db, player.id, status="lost")

    kinds = [t.kind for t in betting.list_account_transactions(db, player.id)]
    assert kinds == ["bet_payout", "bet_stake", "bet_stake", "opening_balance"]
