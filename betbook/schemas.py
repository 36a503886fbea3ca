"""
Pydantic request/response schemas for the Betbook API.

Using explicit schemas instead of raw dicts prevents mass-assignment
on ORM models and generates accurate OpenAPI docs.  Field-level checks
here are the cheap ones; game rules are enforced in the services.
"""

from __future__ import annotations

from datetime import datetime
from typing import Dict, List, Literal, Optional

from pydantic import BaseModel, Field, field_validator

from betbook.core.lifecycle import as_naive_utc


# ---------------------------------------------------------------------------
# Bets
# ---------------------------------------------------------------------------

class BetCreate(BaseModel):
    """
    Payload for POST /api/events/{event_id}/bets.

    ``prediction`` is a string in the mode's format: "42" (jodi),
    "7" / "L7" (harf), "1,3,5" or "Combinations of 1,3,5" (crossing),
    "odd" / "even", "team_a" / "team_b" / "draw".
    """

    mode: Literal["jodi", "harf", "crossing", "odd_even", "team", "toss"]
    prediction: str = Field(..., min_length=1, max_length=64)
    stake: int = Field(..., gt=0, description="Minor currency units")
    phase: Optional[Literal["open", "close"]] = Field(
        None, description="Numeric markets only; defaults to close"
    )

    @field_validator("prediction")
    @classmethod
    def strip_prediction(cls, v: str) -> str:
        return v.strip()

    model_config = {
        "json_schema_extra": {
            "example": {"mode": "jodi", "prediction": "42", "stake": 100, "phase": "close"}
        }
    }


class BulkBetCreate(BaseModel):
    bets: List[BetCreate] = Field(..., min_length=1, max_length=100)


class CoinFlipCreate(BaseModel):
    prediction: Literal["heads", "tails"]
    stake: int = Field(..., gt=0)


class BetResponse(BaseModel):
    id: int
    account_id: int
    event_id: Optional[int]
    game_type: str
    mode: str
    phase: Optional[str]
    cycle: Optional[int]
    stake: int
    prediction: str
    result: str
    outcome: Optional[int]
    payout: int
    balance_after: Optional[int]
    created_at: Optional[datetime]
    settled_at: Optional[datetime]

    model_config = {"from_attributes": True}


class OverrideRequest(BaseModel):
    """Payload for PUT /admin/bets/{bet_id}/override."""
    result: str = Field(..., min_length=1, max_length=20, description='Corrected outcome, e.g. "42" or "team_b"')


# ---------------------------------------------------------------------------
# Events
# ---------------------------------------------------------------------------

class ScheduleUpdate(BaseModel):
    """
    Event times.  Offset-aware values are converted to UTC and stored naive,
    the same clock bet placement checks against.
    """
    match_time: Optional[datetime] = None
    open_time: Optional[datetime] = None
    close_time: Optional[datetime] = None
    result_time: Optional[datetime] = None

    @field_validator("match_time", "open_time", "close_time", "result_time")
    @classmethod
    def to_naive_utc(cls, v: Optional[datetime]) -> Optional[datetime]:
        return as_naive_utc(v)


class EventCreate(ScheduleUpdate):
    """
    Payload for POST /admin/events.

    Numeric markets need ``market_type``, ``open_time`` and ``close_time``;
    team matches and tosses need ``team_a``, ``team_b`` and ``match_time``.
    Odds are integers x100 (200 = 2.00x); omitted odds use configured defaults.
    """

    name: Optional[str] = Field(None, max_length=120)
    family: Literal["numeric", "team_match", "cricket_toss"]
    market_type: Optional[Literal["dishawar", "gali", "mumbai", "kalyan"]] = None
    team_a: Optional[str] = Field(None, max_length=80)
    team_b: Optional[str] = Field(None, max_length=80)
    category: Optional[str] = None
    description: Optional[str] = Field(None, max_length=2000)
    odds_a: Optional[int] = Field(None, ge=100)
    odds_b: Optional[int] = Field(None, ge=100)
    odds_draw: Optional[int] = Field(None, ge=100)
    mode_odds: Optional[Dict[str, int]] = None
    is_recurring: bool = False
    recurrence_pattern: Optional[Literal["daily", "weekdays", "weekly", "custom"]] = None

    model_config = {
        "json_schema_extra": {
            "example": {
                "name": "Gali Evening",
                "family": "numeric",
                "market_type": "gali",
                "open_time": "2026-03-02T15:00:00",
                "close_time": "2026-03-02T17:00:00",
                "mode_odds": {"jodi": 9000},
                "is_recurring": True,
                "recurrence_pattern": "daily",
            }
        }
    }


class EventClone(ScheduleUpdate):
    """Overrides applied on top of the template when cloning."""
    name: Optional[str] = Field(None, max_length=120)


class TwoDigitResult(BaseModel):
    result: str = Field(..., pattern=r"^\d{2}$", description='"00"-"99"')


class MatchResult(BaseModel):
    result: Literal["team_a", "team_b", "draw"]


class EventResponse(BaseModel):
    id: int
    name: str
    family: str
    status: str
    market_type: Optional[str]
    open_result: Optional[str]
    close_result: Optional[str]
    mode_odds: Optional[Dict[str, int]]
    team_a: Optional[str]
    team_b: Optional[str]
    category: Optional[str]
    description: Optional[str]
    match_time: Optional[datetime]
    result: Optional[str]
    odds_a: Optional[int]
    odds_b: Optional[int]
    odds_draw: Optional[int]
    open_time: Optional[datetime]
    close_time: Optional[datetime]
    result_time: Optional[datetime]
    is_recurring: bool
    recurrence_pattern: Optional[str]
    next_open_time: Optional[datetime]
    next_close_time: Optional[datetime]
    cycle: int
    template_id: Optional[int]

    model_config = {"from_attributes": True}


class SettlementResponse(BaseModel):
    """Response from the result-declaration endpoints."""
    event_id: int
    phase: Optional[str]
    declared_result: str
    settled: int
    won: int
    lost: int
    unclassified: int
    total_payout: int
    rolled_over: bool
    errors: List[str]


# ---------------------------------------------------------------------------
# Accounts & wallet
# ---------------------------------------------------------------------------

class AccountCreate(BaseModel):
    username: str = Field(..., min_length=3, max_length=64)
    role: Literal["admin", "subadmin", "player"] = "player"
    opening_balance: int = Field(0, ge=0)
    assigned_to: Optional[int] = None
    api_key: Optional[str] = Field(None, min_length=16, max_length=128)


class AccountResponse(BaseModel):
    id: int
    username: str
    role: str
    balance: int
    assigned_to: Optional[int]
    is_blocked: bool
    created_at: Optional[datetime]

    model_config = {"from_attributes": True}


class BalanceAdjust(BaseModel):
    amount: int = Field(..., description="Positive to top up, negative to deduct")
    description: Optional[str] = Field(None, max_length=200)

    @field_validator("amount")
    @classmethod
    def non_zero(cls, v: int) -> int:
        if v == 0:
            raise ValueError("amount cannot be 0")
        return v


class AccountAssign(BaseModel):
    subadmin_id: Optional[int] = Field(None, description="null detaches the player")


class TransactionResponse(BaseModel):
    id: int
    account_id: int
    amount: int
    balance_after: int
    kind: str
    performed_by: Optional[int]
    request_id: Optional[int]
    bet_id: Optional[int]
    description: Optional[str]
    created_at: Optional[datetime]

    model_config = {"from_attributes": True}


class WalletRequestCreate(BaseModel):
    amount: int = Field(..., gt=0)
    request_type: Literal["deposit", "withdrawal"]
    payment_mode: Literal["upi", "bank", "cash"]
    payment_details: Optional[Dict[str, str]] = None
    notes: Optional[str] = Field(None, max_length=500)

    model_config = {
        "json_schema_extra": {
            "example": {
                "amount": 50000,
                "request_type": "deposit",
                "payment_mode": "upi",
                "payment_details": {"upi_id": "player@upi", "reference": "TXN123"},
            }
        }
    }


class WalletReview(BaseModel):
    status: Literal["approved", "rejected"]
    notes: Optional[str] = Field(None, max_length=500)


class WalletRequestResponse(BaseModel):
    id: int
    account_id: int
    amount: int
    request_type: str
    payment_mode: str
    payment_details: Optional[Dict]
    status: str
    notes: Optional[str]
    reviewed_by: Optional[int]
    created_at: Optional[datetime]
    updated_at: Optional[datetime]

    model_config = {"from_attributes": True}
