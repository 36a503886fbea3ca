"""Tests for evaluator.py: win/lose rules and payout arithmetic."""

import pytest

from betbook.core.errors import EvaluationError
from betbook.core.evaluator import evaluate, payout_for
from betbook.core.predictions import parse_prediction


def _numeric(mode, prediction, result, odds=900, stake=100):
    return evaluate("numeric", mode, prediction, result, odds, stake)


# ---------------------------------------------------------------------------
# Payout arithmetic
# ---------------------------------------------------------------------------

@pytest.mark.parametrize("stake", [1, 3, 50, 99, 1000, 123457])
def test_odds_200_pays_exactly_double(stake):
    assert payout_for(stake, 200) == stake * 2


@pytest.mark.parametrize("stake, odds, expected", [
    (100, 900, 900),
    (1, 195, 1),      # floor(1.95)
    (3, 195, 5),      # floor(5.85)
    (7, 180, 12),     # floor(12.6)
])
def test_payout_floors(stake, odds, expected):
    assert payout_for(stake, odds) == expected


# ---------------------------------------------------------------------------
# Numeric modes
# ---------------------------------------------------------------------------

@pytest.mark.parametrize("mode, prediction, result, won", [
    ("jodi", "42", "42", True),
    ("jodi", "42", "24", False),
    ("jodi", "07", "07", True),
    ("harf", "4", "42", True),
    ("harf", "2", "42", True),
    ("harf", "L4", "42", True),
    ("harf", "L2", "42", False),
    ("harf", "R2", "42", True),
    ("harf", "R4", "42", False),
    ("crossing", "4", "42", True),
    ("crossing", "4", "13", False),
    ("crossing", "1,2,4", "42", True),
    ("crossing", "1,2,4", "24", True),
    ("crossing", "1,2,4", "44", False),   # pairs use two distinct digits
    ("crossing", "1,2,4", "45", False),
    ("crossing", "Combinations of 2,4", "42", True),
    ("odd_even", "even", "42", True),
    ("odd_even", "even", "43", False),
    ("odd_even", "odd", "43", True),
    ("odd_even", "even", "00", True),
])
def test_numeric_rules(mode, prediction, result, won):
    evaluation = _numeric(mode, prediction, result)
    assert evaluation.won is won
    assert evaluation.payout == (900 if won else 0)


def test_parsed_prediction_is_accepted():
    evaluation = _numeric("jodi", parse_prediction("jodi", "42"), "42", odds=9000, stake=10)
    assert evaluation.won
    assert evaluation.payout == 900
    assert evaluation.odds == 9000


def test_crossing_summary_cannot_be_scored():
    with pytest.raises(EvaluationError):
        _numeric("crossing", "3 digits (6 combinations)", "42")


@pytest.mark.parametrize("prediction, result", [
    ("4x", "42"),     # stored prediction corrupt
    ("42", "4"),      # bad declared result
    ("42", "team_a"),
])
def test_unclassifiable_raises(prediction, result):
    with pytest.raises(EvaluationError):
        _numeric("jodi", prediction, result)


def test_numeric_mode_needs_single_odds():
    with pytest.raises(EvaluationError):
        evaluate("numeric", "jodi", "42", "42", {"team_a": 200}, 10)


# ---------------------------------------------------------------------------
# Binary outcome modes
# ---------------------------------------------------------------------------

MATCH_ODDS = {"team_a": 180, "team_b": 250, "draw": 400}


@pytest.mark.parametrize("prediction, result, won, payout", [
    ("team_a", "team_a", True, 180),
    ("team_b", "team_b", True, 250),
    ("draw", "draw", True, 400),
    ("team_a", "draw", False, 0),
    ("team_b", "team_a", False, 0),
])
def test_team_match(prediction, result, won, payout):
    evaluation = evaluate("team_match", "team", prediction, result, MATCH_ODDS, 100)
    assert evaluation.won is won
    assert evaluation.payout == payout


def test_toss_rejects_draw_result():
    with pytest.raises(EvaluationError):
        evaluate("cricket_toss", "toss", "team_a", "draw", {"team_a": 200, "team_b": 200}, 10)


def test_missing_side_odds():
    with pytest.raises(EvaluationError):
        evaluate("team_match", "team", "draw", "draw", {"team_a": 200, "team_b": 200}, 10)


def test_coin_flip_single_odds():
    evaluation = evaluate("coin_flip", "coin", "heads", "heads", 195, 100)
    assert evaluation.won
    assert evaluation.payout == 195


def test_mode_family_mismatch():
    with pytest.raises(EvaluationError):
        evaluate("team_match", "jodi", "42", "42", 900, 10)
