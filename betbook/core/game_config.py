"""Game-level configuration — all odds defaults and limits in one place.

This module is the **registry** for every constant that differs between
game types.  Nowhere else in the codebase should default odds, stake limits
or outcome tokens be hard-coded.

Architecture
------------
:class:`GameConfig` is a frozen dataclass carrying the platform constants.
:meth:`GameConfig.from_env` builds an instance from environment variables
(loaded from ``.env``), falling back to the house defaults below.  Services
take the config as an argument so tests can inject their own.

Odds are always integers scaled by 100: ``200`` means a 2.00x multiplier,
so a winning stake of 50 pays ``50 * 200 // 100 == 100``.

Typical usage::

    from betbook.core.game_config import GameConfig

    cfg = GameConfig.from_env()
    cfg.mode_odds("jodi")          # -> 9000

    # Override a single constant for a promotion:
    from dataclasses import replace
    promo_cfg = replace(cfg, coin_flip_odds=198)
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Dict, Final, Optional

from dotenv import load_dotenv

load_dotenv()


# ---------------------------------------------------------------------------
# Identifiers used in API payloads and DB records
# ---------------------------------------------------------------------------

#: Event families.
FAMILY_NUMERIC: Final[str] = "numeric"
FAMILY_TEAM_MATCH: Final[str] = "team_match"
FAMILY_CRICKET_TOSS: Final[str] = "cricket_toss"
EVENT_FAMILIES: Final[tuple] = (FAMILY_NUMERIC, FAMILY_TEAM_MATCH, FAMILY_CRICKET_TOSS)

#: Bet game types (event families plus the standalone coin flip).
GAME_COIN_FLIP: Final[str] = "coin_flip"

#: Game modes.  The four numeric modes share a two-digit result.
MODE_JODI: Final[str] = "jodi"
MODE_HARF: Final[str] = "harf"
MODE_CROSSING: Final[str] = "crossing"
MODE_ODD_EVEN: Final[str] = "odd_even"
MODE_TEAM: Final[str] = "team"
MODE_TOSS: Final[str] = "toss"
MODE_COIN: Final[str] = "coin"

NUMERIC_MODES: Final[tuple] = (MODE_JODI, MODE_HARF, MODE_CROSSING, MODE_ODD_EVEN)

#: Which modes each bet game type accepts.
FAMILY_MODES: Final[Dict[str, tuple]] = {
    FAMILY_NUMERIC: NUMERIC_MODES,
    FAMILY_TEAM_MATCH: (MODE_TEAM,),
    FAMILY_CRICKET_TOSS: (MODE_TOSS,),
    GAME_COIN_FLIP: (MODE_COIN,),
}

#: Numeric market brands.
MARKET_TYPES: Final[tuple] = ("dishawar", "gali", "mumbai", "kalyan")

#: Match categories.
MATCH_CATEGORIES: Final[tuple] = ("cricket", "football", "basketball", "other")

#: Outcome tokens for single-phase and instant games.
TEAM_A: Final[str] = "team_a"
TEAM_B: Final[str] = "team_b"
DRAW: Final[str] = "draw"
HEADS: Final[str] = "heads"
TAILS: Final[str] = "tails"

#: Numeric bet phases.
PHASE_OPEN: Final[str] = "open"
PHASE_CLOSE: Final[str] = "close"

#: Bet result placeholder until settlement.
RESULT_PENDING: Final[str] = "pending"

#: Account roles.
ROLE_ADMIN: Final[str] = "admin"
ROLE_SUBADMIN: Final[str] = "subadmin"
ROLE_PLAYER: Final[str] = "player"
ROLES: Final[tuple] = (ROLE_ADMIN, ROLE_SUBADMIN, ROLE_PLAYER)

#: Minimum odds value: anything below 100 pays back less than the stake.
MIN_ODDS: Final[int] = 100


def _env_int(name: str, default: Optional[int]) -> Optional[int]:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    return int(raw)


@dataclass(frozen=True)
class GameConfig:
    """Immutable configuration bundle for the wagering engine.

    Attributes:
        odds_jodi: Exact-pair payout, x100.  House default 90x.
        odds_harf: Single-digit payout, x100.  House default 9x.
        odds_crossing: Combination payout, x100.  House default 9x.
        odds_odd_even: Parity payout, x100.  House default 1.8x.
        odds_team: Default per-side odds for new team matches and tosses.
        odds_draw: Default draw odds for new team matches.
        coin_flip_odds: Coin-flip payout, x100.  House default 1.95x.
        min_stake: Smallest accepted stake in minor units.
        max_stake: Largest accepted stake; ``None`` disables the cap.
    """

    odds_jodi: int = 9000
    odds_harf: int = 900
    odds_crossing: int = 900
    odds_odd_even: int = 180
    odds_team: int = 200
    odds_draw: int = 300
    coin_flip_odds: int = 195
    min_stake: int = 1
    max_stake: Optional[int] = None

    @classmethod
    def from_env(cls) -> "GameConfig":
        """Build a config from environment variables, defaulting per field."""
        base = cls()
        return cls(
            odds_jodi=_env_int("DEFAULT_ODDS_JODI", base.odds_jodi),
            odds_harf=_env_int("DEFAULT_ODDS_HARF", base.odds_harf),
            odds_crossing=_env_int("DEFAULT_ODDS_CROSSING", base.odds_crossing),
            odds_odd_even=_env_int("DEFAULT_ODDS_ODD_EVEN", base.odds_odd_even),
            odds_team=_env_int("DEFAULT_ODDS_TEAM", base.odds_team),
            odds_draw=_env_int("DEFAULT_ODDS_DRAW", base.odds_draw),
            coin_flip_odds=_env_int("COIN_FLIP_ODDS", base.coin_flip_odds),
            min_stake=_env_int("MIN_STAKE", base.min_stake),
            max_stake=_env_int("MAX_STAKE", base.max_stake),
        )

    def mode_odds(self, mode: str) -> int:
        """Default odds for a numeric game mode."""
        table = {
            MODE_JODI: self.odds_jodi,
            MODE_HARF: self.odds_harf,
            MODE_CROSSING: self.odds_crossing,
            MODE_ODD_EVEN: self.odds_odd_even,
        }
        if mode not in table:
            raise KeyError(f"No default odds for mode {mode!r}")
        return table[mode]

    def default_mode_odds(self) -> Dict[str, int]:
        return {m: self.mode_odds(m) for m in NUMERIC_MODES}


_config: Optional[GameConfig] = None


def get_game_config() -> GameConfig:
    """Return the process-wide config, built from the environment on first use."""
    global _config
    if _config is None:
        _config = GameConfig.from_env()
    return _config
