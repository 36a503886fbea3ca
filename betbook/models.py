"""
Database models for the Betbook wagering engine
SQLAlchemy ORM with PostgreSQL (SQLite for tests)
"""

from sqlalchemy import (
    create_engine,
    Column,
    Integer,
    String,
    DateTime,
    Boolean,
    JSON,
    Text,
    ForeignKey,
    CheckConstraint,
    Index,
)
from sqlalchemy.orm import declarative_base, relationship, sessionmaker
from contextlib import contextmanager
from datetime import datetime
import logging
import os
from dotenv import load_dotenv

# Load .env before reading DATABASE_URL
load_dotenv()

logger = logging.getLogger(__name__)

DATABASE_URL = os.getenv("DATABASE_URL", "postgresql://postgres@127.0.0.1:5432/betbook")

Base = declarative_base()

# Bound lazily so importing the models never opens (or requires) a database.
SessionLocal = sessionmaker(autocommit=False, autoflush=False)
_engine = None


def make_engine(url: str = None, **kwargs):
    """Create an engine for ``url`` (defaults to DATABASE_URL)."""
    url = url or DATABASE_URL
    if url.startswith("sqlite"):
        kwargs.setdefault("connect_args", {"check_same_thread": False})
    else:
        # pool_pre_ping keeps long-lived pooled connections usable
        kwargs.setdefault("pool_pre_ping", True)
    return create_engine(url, echo=False, **kwargs)


def configure_engine(engine) -> None:
    """Bind SessionLocal to ``engine``.  Called once at startup (or by tests)."""
    global _engine
    _engine = engine
    SessionLocal.configure(bind=engine)


def get_engine():
    if _engine is None:
        configure_engine(make_engine())
    return _engine


def new_session():
    get_engine()
    return SessionLocal()


# Dependency for FastAPI
def get_db():
    db = new_session()
    try:
        yield db
    finally:
        db.close()


@contextmanager
def transactional(db):
    """Commit the block's writes as one unit; roll everything back on error."""
    try:
        yield db
        db.commit()
    except Exception:
        db.rollback()
        raise


class Account(Base):
    """Player, sub-admin or admin wallet"""

    __tablename__ = "accounts"

    id = Column(Integer, primary_key=True, index=True)
    username = Column(String(64), unique=True, nullable=False)
    role = Column(String(16), nullable=False, default="player")  # admin | subadmin | player
    balance = Column(Integer, nullable=False, default=0)  # minor units (paisa)
    assigned_to = Column(Integer, ForeignKey("accounts.id"), index=True)
    is_blocked = Column(Boolean, nullable=False, default=False)
    api_key = Column(String(128), unique=True)  # resolves the caller, see betbook.auth

    created_at = Column(DateTime, default=datetime.utcnow)

    parent = relationship("Account", remote_side=[id])
    bets = relationship("Bet", back_populates="account")
    transactions = relationship(
        "Transaction", back_populates="account", foreign_keys="Transaction.account_id"
    )

    __table_args__ = (CheckConstraint("balance >= 0", name="ck_accounts_balance_non_negative"),)


class Event(Base):
    """A bettable market (two-phase numeric) or match (single result)"""

    __tablename__ = "events"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(120), nullable=False)
    family = Column(String(20), nullable=False, index=True)  # numeric | team_match | cricket_toss
    status = Column(String(20), nullable=False, default="waiting_result", index=True)

    # Numeric markets
    market_type = Column(String(20))  # dishawar | gali | mumbai | kalyan
    open_result = Column(String(2))   # "00"-"99"
    close_result = Column(String(2))
    mode_odds = Column(JSON)          # {"jodi": 9000, ...}; missing modes use config defaults

    # Team matches and tosses
    team_a = Column(String(80))
    team_b = Column(String(80))
    category = Column(String(20))
    description = Column(Text)
    match_time = Column(DateTime)     # bets close automatically once the match starts
    result = Column(String(10))       # team_a | team_b | draw
    odds_a = Column(Integer)          # x100, 200 = 2.00x
    odds_b = Column(Integer)
    odds_draw = Column(Integer)

    # Schedule
    open_time = Column(DateTime)
    close_time = Column(DateTime)
    result_time = Column(DateTime)

    # Recurrence
    is_recurring = Column(Boolean, nullable=False, default=False)
    recurrence_pattern = Column(String(10))  # daily | weekdays | weekly | custom
    next_open_time = Column(DateTime)
    next_close_time = Column(DateTime)
    cycle = Column(Integer, nullable=False, default=1)

    template_id = Column(Integer, ForeignKey("events.id"))

    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    bets = relationship("Bet", back_populates="event")


class Bet(Base):
    """One wager.  Append-only; result moves from 'pending' to the declared outcome once."""

    __tablename__ = "bets"

    id = Column(Integer, primary_key=True, index=True)
    account_id = Column(Integer, ForeignKey("accounts.id"), nullable=False, index=True)
    event_id = Column(Integer, ForeignKey("events.id"), index=True)  # NULL for coin flip

    game_type = Column(String(20), nullable=False)  # numeric | team_match | cricket_toss | coin_flip
    mode = Column(String(20), nullable=False)       # jodi | harf | crossing | odd_even | team | toss | coin
    phase = Column(String(5))                       # open | close (numeric only)
    cycle = Column(Integer)

    stake = Column(Integer, nullable=False)
    prediction = Column(String(64), nullable=False)

    # Outcome (filled at settlement)
    result = Column(String(20), nullable=False, default="pending")
    outcome = Column(Integer)  # 1=win, 0=loss, null=pending
    payout = Column(Integer, nullable=False, default=0)
    balance_after = Column(Integer)

    created_at = Column(DateTime, default=datetime.utcnow, index=True)
    settled_at = Column(DateTime)

    account = relationship("Account", back_populates="bets")
    event = relationship("Event", back_populates="bets")

    __table_args__ = (
        CheckConstraint("stake > 0", name="ck_bets_stake_positive"),
        Index("ix_bets_event_pending", "event_id", "result"),
    )


class Transaction(Base):
    """Ledger row: one per balance mutation"""

    __tablename__ = "transactions"

    id = Column(Integer, primary_key=True, index=True)
    account_id = Column(Integer, ForeignKey("accounts.id"), nullable=False, index=True)
    amount = Column(Integer, nullable=False)         # signed, minor units
    balance_after = Column(Integer, nullable=False)
    kind = Column(String(20), nullable=False)        # bet_stake | bet_payout | deposit | ...
    performed_by = Column(Integer, ForeignKey("accounts.id"))  # NULL = system
    request_id = Column(Integer, ForeignKey("wallet_requests.id"))
    bet_id = Column(Integer, ForeignKey("bets.id"), index=True)
    description = Column(String(200))

    created_at = Column(DateTime, default=datetime.utcnow, index=True)

    account = relationship("Account", back_populates="transactions", foreign_keys=[account_id])


class WalletRequest(Base):
    """Manual deposit / withdrawal request awaiting operator review"""

    __tablename__ = "wallet_requests"

    id = Column(Integer, primary_key=True, index=True)
    account_id = Column(Integer, ForeignKey("accounts.id"), nullable=False, index=True)
    amount = Column(Integer, nullable=False)
    request_type = Column(String(12), nullable=False)   # deposit | withdrawal
    payment_mode = Column(String(8), nullable=False)    # upi | bank | cash
    payment_details = Column(JSON)
    status = Column(String(10), nullable=False, default="pending", index=True)
    notes = Column(Text)
    reviewed_by = Column(Integer, ForeignKey("accounts.id"))

    created_at = Column(DateTime, default=datetime.utcnow, index=True)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    account = relationship("Account", foreign_keys=[account_id])

    __table_args__ = (CheckConstraint("amount > 0", name="ck_wallet_requests_amount_positive"),)


def init_db(engine=None):
    """Create all tables"""
    Base.metadata.create_all(bind=engine or get_engine())
    logger.info("Database tables created")


if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO)
    init_db()
