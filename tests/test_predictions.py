"""Tests for predictions.py: per-mode prediction parsing."""

import pytest

from betbook.core.errors import ValidationError
from betbook.core.predictions import (
    CrossingPrediction,
    HarfPrediction,
    JodiPrediction,
    OutcomePrediction,
    ParityPrediction,
    parse_prediction,
    parse_two_digit,
)


# ---------------------------------------------------------------------------
# Two-digit values
# ---------------------------------------------------------------------------

@pytest.mark.parametrize("raw", ["00", "42", "99", " 07 "])
def test_two_digit_accepts(raw):
    assert parse_two_digit(raw) == raw.strip()


@pytest.mark.parametrize("raw", ["", "4", "100", "4a", "-1", None])
def test_two_digit_rejects(raw):
    with pytest.raises(ValidationError):
        parse_two_digit(raw)


def test_jodi():
    assert parse_prediction("jodi", "42") == JodiPrediction(pair="42")


# ---------------------------------------------------------------------------
# Harf
# ---------------------------------------------------------------------------

@pytest.mark.parametrize("raw, digit, position, canonical", [
    ("7",  "7", None, "7"),
    ("L3", "3", "L",  "L3"),
    ("R0", "0", "R",  "R0"),
])
def test_harf_forms(raw, digit, position, canonical):
    p = parse_prediction("harf", raw)
    assert p == HarfPrediction(digit=digit, position=position)
    assert p.canonical() == canonical


@pytest.mark.parametrize("raw", ["12", "X3", "L", "l3"])
def test_harf_rejects(raw):
    with pytest.raises(ValidationError):
        parse_prediction("harf", raw)


# ---------------------------------------------------------------------------
# Crossing
# ---------------------------------------------------------------------------

def test_crossing_single_digit():
    p = parse_prediction("crossing", "5")
    assert p.is_single
    assert p.canonical() == "5"


def test_crossing_digit_list_is_canonicalised():
    p = parse_prediction("crossing", "5,1,3")
    assert p.digits == frozenset({"1", "3", "5"})
    assert p.combinations == 6
    assert p.canonical() == "1,3,5"


def test_crossing_combinations_of():
    p = parse_prediction("crossing", "Combinations of 2,4")
    assert p.digits == frozenset({"2", "4"})
    assert p.combinations == 2


def test_crossing_summary_form_has_no_digits():
    p = parse_prediction("crossing", "3 digits (6 combinations)")
    assert p == CrossingPrediction(digits=None, digit_count=3, combinations=6)
    assert p.canonical() == "3 digits (6 combinations)"


@pytest.mark.parametrize("raw", [
    "1,1,2",                       # repeated digit
    "3 digits (5 combinations)",   # inconsistent count
    "1 digits (0 combinations)",
    "12,3",
    "one,two",
])
def test_crossing_rejects(raw):
    with pytest.raises(ValidationError):
        parse_prediction("crossing", raw)


# ---------------------------------------------------------------------------
# Parity and outcome tokens
# ---------------------------------------------------------------------------

def test_parity():
    assert parse_prediction("odd_even", "even") == ParityPrediction(parity="even")
    with pytest.raises(ValidationError):
        parse_prediction("odd_even", "EVEN")


@pytest.mark.parametrize("mode, token", [
    ("team", "team_a"), ("team", "draw"), ("toss", "team_b"), ("coin", "heads"),
])
def test_outcome_tokens(mode, token):
    assert parse_prediction(mode, token) == OutcomePrediction(mode=mode, token=token)


def test_toss_has_no_draw():
    with pytest.raises(ValidationError):
        parse_prediction("toss", "draw")


@pytest.mark.parametrize("mode, raw", [("jodi", ""), ("jodi", "   "), ("jodi", None), ("roulette", "1")])
def test_missing_or_unknown(mode, raw):
    with pytest.raises(ValidationError):
        parse_prediction(mode, raw)
