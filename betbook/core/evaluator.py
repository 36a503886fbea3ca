"""
Prediction evaluator — pure scoring rules per game mode.

Public API:
  evaluate(family, mode, prediction, declared_result, odds, stake) → Evaluation
  payout_for(stake, odds)                                          → int

Odds are integers scaled by 100.  Binary modes (team, toss, coin) take a
mapping of outcome token → odds and pay at the odds of the predicted side;
the numeric modes take a single integer.

Any prediction/result pair that cannot be classified raises
:class:`EvaluationError`; settlement decides what to do with it.
"""

from dataclasses import dataclass
from typing import Mapping, Union

from betbook.core.errors import EvaluationError, ValidationError
from betbook.core.game_config import FAMILY_MODES, NUMERIC_MODES
from betbook.core.predictions import (
    OUTCOME_TOKENS,
    CrossingPrediction,
    HarfPrediction,
    JodiPrediction,
    OutcomePrediction,
    ParityPrediction,
    Prediction,
    parse_prediction,
    parse_two_digit,
)

Odds = Union[int, Mapping[str, int]]


@dataclass(frozen=True)
class Evaluation:
    won: bool
    payout: int
    odds: int


def payout_for(stake: int, odds: int) -> int:
    """``floor(stake * odds / 100)`` in integer arithmetic."""
    return (stake * odds) // 100


# ---------------------------------------------------------------------------
# Per-mode rules
# ---------------------------------------------------------------------------

def _jodi_wins(p: JodiPrediction, result: str) -> bool:
    return p.pair == result


def _harf_wins(p: HarfPrediction, result: str) -> bool:
    left, right = result[0], result[1]
    if p.position == "L":
        return p.digit == left
    if p.position == "R":
        return p.digit == right
    return p.digit in (left, right)


def _crossing_wins(p: CrossingPrediction, result: str) -> bool:
    if p.digits is None:
        raise EvaluationError(
            f"crossing prediction '{p.canonical()}' carries no digit selection"
        )
    left, right = result[0], result[1]
    if p.is_single:
        return left in p.digits or right in p.digits
    # Ordered pairs of two distinct selected digits.
    return left != right and left in p.digits and right in p.digits


def _parity_wins(p: ParityPrediction, result: str) -> bool:
    is_odd = int(result) % 2 == 1
    return (p.parity == "odd") == is_odd


_NUMERIC_RULES = {
    JodiPrediction: _jodi_wins,
    HarfPrediction: _harf_wins,
    CrossingPrediction: _crossing_wins,
    ParityPrediction: _parity_wins,
}


# ---------------------------------------------------------------------------
# Entry point
# ---------------------------------------------------------------------------

def evaluate(
    family: str,
    mode: str,
    prediction: Union[str, Prediction],
    declared_result: str,
    odds: Odds,
    stake: int,
) -> Evaluation:
    """
    Decide win/lose for one bet and compute its payout.

    Args:
        family: Event family (or ``"coin_flip"``) the bet belongs to.
        mode: Game mode the bet was placed under.
        prediction: Stored prediction text or an already parsed variant.
        declared_result: Two-digit result for numeric modes, outcome token
            otherwise.
        odds: x100 odds; a side → odds mapping for binary modes.
        stake: Stake in minor units.

    Raises:
        EvaluationError: mode/family mismatch, unparsable prediction or
            result, missing odds, or a prediction that cannot be scored.
    """
    if mode not in FAMILY_MODES.get(family, ()):
        raise EvaluationError(f"mode {mode!r} is not played on {family!r} events")

    if isinstance(prediction, str):
        try:
            prediction = parse_prediction(mode, prediction)
        except ValidationError as exc:
            raise EvaluationError(f"stored prediction is not valid: {exc.message}") from exc

    if mode in NUMERIC_MODES:
        try:
            result = parse_two_digit(declared_result)
        except ValidationError as exc:
            raise EvaluationError(exc.message) from exc
        rule = _NUMERIC_RULES.get(type(prediction))
        if rule is None:
            raise EvaluationError(f"no rule for {type(prediction).__name__} in mode {mode!r}")
        if isinstance(odds, Mapping):
            raise EvaluationError(f"numeric mode {mode!r} needs a single odds value")
        won = rule(prediction, result)
        applied = odds
    else:
        if not isinstance(prediction, OutcomePrediction):
            raise EvaluationError(f"no rule for {type(prediction).__name__} in mode {mode!r}")
        if declared_result not in OUTCOME_TOKENS[mode]:
            raise EvaluationError(f"{declared_result!r} is not a {mode} outcome")
        won = prediction.token == declared_result
        if isinstance(odds, Mapping):
            if prediction.token not in odds or odds[prediction.token] is None:
                raise EvaluationError(f"no odds for side {prediction.token!r}")
            applied = odds[prediction.token]
        else:
            applied = odds

    if applied is None or applied < 0:
        raise EvaluationError(f"invalid odds {applied!r}")

    return Evaluation(
        won=won,
        payout=payout_for(stake, applied) if won else 0,
        odds=applied,
    )
