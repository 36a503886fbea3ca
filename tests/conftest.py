"""Shared fixtures: an in-memory SQLite database and small factories."""

from datetime import datetime, timedelta

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from betbook.core.game_config import GameConfig
from betbook.models import Account, Base
from betbook.services import events, wallet


@pytest.fixture
def engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(bind=engine, autocommit=False, autoflush=False)


@pytest.fixture
def db(session_factory):
    session = session_factory()
    yield session
    session.close()


@pytest.fixture
def config():
    return GameConfig()


@pytest.fixture
def balance_of(db):
    """Fresh read of an account balance."""
    def _read(account_id):
        db.expire_all()
        return db.get(Account, account_id).balance

    return _read


@pytest.fixture
def make_account(db):
    counter = {"n": 0}

    def _make(balance=0, role="player", assigned_to=None, username=None, api_key=None):
        counter["n"] += 1
        name = username or f"{role}{counter['n']}"
        return wallet.create_account(
            db, name, role=role, opening_balance=balance,
            assigned_to=assigned_to, api_key=api_key,
        )

    return _make


@pytest.fixture
def make_numeric_event(db, config):
    def _make(status="open", mode_odds=None, is_recurring=False, pattern=None,
              open_time=None, close_time=None, name="Gali"):
        open_time = open_time or datetime(2026, 3, 2, 9, 0)
        close_time = close_time or open_time + timedelta(hours=8)
        event = events.create_event(
            db, config,
            name=name,
            family="numeric",
            market_type="gali",
            open_time=open_time,
            close_time=close_time,
            mode_odds=mode_odds or {},
            is_recurring=is_recurring,
            recurrence_pattern=pattern,
        )
        return _drive(db, event, status)

    return _make


@pytest.fixture
def make_match_event(db, config):
    def _make(status="open", family="team_match", odds_a=200, odds_b=250, odds_draw=None,
              match_time=None):
        event = events.create_event(
            db, config,
            family=family,
            team_a="Mumbai",
            team_b="Chennai",
            match_time=match_time or datetime.utcnow() + timedelta(days=1),
            odds_a=odds_a,
            odds_b=odds_b,
            odds_draw=odds_draw,
        )
        return _drive(db, event, status)

    return _make


def _drive(db, event, status):
    if status in ("open", "closed"):
        event = events.open_event(db, event.id)
    if status == "closed":
        event = events.close_event(db, event.id)
    return event
