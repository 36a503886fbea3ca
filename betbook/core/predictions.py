"""
Typed prediction variants, one per game mode.

A raw prediction string is only ever interpreted through the mode the bet
was placed under: ``parse_prediction("harf", "L4")`` yields a
:class:`HarfPrediction`, while the same string under ``"jodi"`` is rejected.
Parsing happens at placement (before any debit) and again at settlement from
the stored canonical text.

Accepted formats
----------------
jodi       ``"42"``                      exactly two digits
harf       ``"4"`` | ``"L4"`` | ``"R4"``  digit, optionally pinned left/right
crossing   ``"4"``                       single digit, either position
           ``"2,3,5"``                   distinct digits, comma separated
           ``"Combinations of 2,3,5"``   same digits, descriptive form
           ``"3 digits (6 combinations)"`` summary only, digits unknown
odd_even   ``"odd"`` | ``"even"``
team       ``"team_a"`` | ``"team_b"`` | ``"draw"``
toss       ``"team_a"`` | ``"team_b"``
coin       ``"heads"`` | ``"tails"``
"""

import re
from dataclasses import dataclass
from typing import FrozenSet, Optional, Union

from betbook.core.errors import ValidationError
from betbook.core.game_config import (
    DRAW,
    HEADS,
    MODE_COIN,
    MODE_CROSSING,
    MODE_HARF,
    MODE_JODI,
    MODE_ODD_EVEN,
    MODE_TEAM,
    MODE_TOSS,
    TAILS,
    TEAM_A,
    TEAM_B,
)

_TWO_DIGITS = re.compile(r"^[0-9]{2}$")
_HARF = re.compile(r"^([LR]?)([0-9])$")
_DIGIT_LIST = re.compile(r"^[0-9](,[0-9])+$")
_COMBINATIONS_OF = re.compile(r"^Combinations of ([0-9](?:,[0-9])*)$")
_SUMMARY = re.compile(r"^([0-9]+) digits \(([0-9]+) combinations\)$")

#: Outcome tokens accepted per binary mode.
OUTCOME_TOKENS = {
    MODE_TEAM: (TEAM_A, TEAM_B, DRAW),
    MODE_TOSS: (TEAM_A, TEAM_B),
    MODE_COIN: (HEADS, TAILS),
}


# ---------------------------------------------------------------------------
# Variants
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class JodiPrediction:
    pair: str

    def canonical(self) -> str:
        return self.pair


@dataclass(frozen=True)
class HarfPrediction:
    digit: str
    position: Optional[str] = None   # "L", "R" or None for either

    def canonical(self) -> str:
        return f"{self.position or ''}{self.digit}"


@dataclass(frozen=True)
class CrossingPrediction:
    """A digit selection.  ``digits`` is None for the summary-only form."""

    digits: Optional[FrozenSet[str]]
    digit_count: int
    combinations: int

    @property
    def is_single(self) -> bool:
        return self.digits is not None and len(self.digits) == 1

    def canonical(self) -> str:
        if self.digits is None:
            return f"{self.digit_count} digits ({self.combinations} combinations)"
        return ",".join(sorted(self.digits))


@dataclass(frozen=True)
class ParityPrediction:
    parity: str   # "odd" | "even"

    def canonical(self) -> str:
        return self.parity


@dataclass(frozen=True)
class OutcomePrediction:
    mode: str
    token: str

    def canonical(self) -> str:
        return self.token


Prediction = Union[
    JodiPrediction,
    HarfPrediction,
    CrossingPrediction,
    ParityPrediction,
    OutcomePrediction,
]


# ---------------------------------------------------------------------------
# Parsers
# ---------------------------------------------------------------------------

def parse_two_digit(raw: str, what: str = "result") -> str:
    """Validate a two-digit value ``00``-``99`` and return it."""
    value = (raw or "").strip()
    if not _TWO_DIGITS.match(value):
        raise ValidationError(f"{what} must be a two-digit number (00-99), got {raw!r}")
    return value


def _parse_jodi(raw: str) -> JodiPrediction:
    return JodiPrediction(pair=parse_two_digit(raw, "jodi prediction"))


def _parse_harf(raw: str) -> HarfPrediction:
    match = _HARF.match(raw)
    if not match:
        raise ValidationError(f"harf prediction must be a digit, 'L<digit>' or 'R<digit>', got {raw!r}")
    return HarfPrediction(digit=match.group(2), position=match.group(1) or None)


def _digit_set(csv: str, raw: str) -> FrozenSet[str]:
    parts = csv.split(",")
    digits = frozenset(parts)
    if len(digits) != len(parts):
        raise ValidationError(f"crossing prediction repeats a digit: {raw!r}")
    return digits


def _parse_crossing(raw: str) -> CrossingPrediction:
    if re.match(r"^[0-9]$", raw):
        return CrossingPrediction(digits=frozenset([raw]), digit_count=1, combinations=0)

    csv = None
    if _DIGIT_LIST.match(raw):
        csv = raw
    else:
        match = _COMBINATIONS_OF.match(raw)
        if match:
            csv = match.group(1)
    if csv is not None:
        digits = _digit_set(csv, raw)
        n = len(digits)
        return CrossingPrediction(digits=digits, digit_count=n, combinations=n * (n - 1))

    match = _SUMMARY.match(raw)
    if match:
        n, combos = int(match.group(1)), int(match.group(2))
        if not 2 <= n <= 10 or combos != n * (n - 1):
            raise ValidationError(f"crossing summary is inconsistent: {raw!r}")
        return CrossingPrediction(digits=None, digit_count=n, combinations=combos)

    raise ValidationError(f"unrecognised crossing prediction {raw!r}")


def _parse_parity(raw: str) -> ParityPrediction:
    if raw not in ("odd", "even"):
        raise ValidationError(f"odd_even prediction must be 'odd' or 'even', got {raw!r}")
    return ParityPrediction(parity=raw)


def _parse_outcome(mode: str, raw: str) -> OutcomePrediction:
    allowed = OUTCOME_TOKENS[mode]
    if raw not in allowed:
        raise ValidationError(
            f"{mode} prediction must be one of {', '.join(allowed)}, got {raw!r}"
        )
    return OutcomePrediction(mode=mode, token=raw)


_PARSERS = {
    MODE_JODI: _parse_jodi,
    MODE_HARF: _parse_harf,
    MODE_CROSSING: _parse_crossing,
    MODE_ODD_EVEN: _parse_parity,
}


def parse_prediction(mode: str, raw: str) -> Prediction:
    """
    Parse ``raw`` under ``mode``.

    Raises:
        ValidationError: unknown mode, or a format the mode does not accept.
    """
    if raw is None:
        raise ValidationError("prediction is required")
    text = str(raw).strip()
    if not text:
        raise ValidationError("prediction is required")

    if mode in _PARSERS:
        return _PARSERS[mode](text)
    if mode in OUTCOME_TOKENS:
        return _parse_outcome(mode, text)
    raise ValidationError(f"unknown game mode {mode!r}")
