#!/usr/bin/env python3
"""
Database initialization script
Creates all tables and optionally seeds demo accounts and events
"""

import sys
import os

# Add parent directory to path
sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), '..')))

# Load .env file
from dotenv import load_dotenv
load_dotenv()

from betbook.models import Base, get_engine, new_session
from betbook.core.game_config import ROLE_ADMIN, ROLE_PLAYER, ROLE_SUBADMIN
from betbook.services import events, wallet
from datetime import datetime, timedelta
import logging
import secrets
from sqlalchemy import text, inspect

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)


def init_database(drop_existing: bool = False):
    """
    Initialize database tables

    Args:
        drop_existing: If True, drops all tables first (DANGER: data loss!)
    """
    logger.info("Initializing Betbook database...")
    engine = get_engine()

    if drop_existing:
        logger.warning("Dropping all existing tables!")
        response = input("Are you sure? This will delete all data. Type 'yes' to confirm: ")
        if response.lower() != 'yes':
            logger.info("Aborted.")
            return

        Base.metadata.drop_all(bind=engine)
        logger.info("Existing tables dropped")

    # Create all tables
    Base.metadata.create_all(bind=engine)
    logger.info("Database tables created successfully")

    # List created tables
    inspector = inspect(engine)
    tables = inspector.get_table_names()
    logger.info(f"Tables: {', '.join(tables)}")

    return True


def seed_demo_data():
    """Add demo accounts and events for development"""
    logger.info("Seeding demo data...")

    db = new_session()

    try:
        admin_key = os.getenv("ADMIN_API_KEY") or secrets.token_urlsafe(24)
        admin = wallet.create_account(db, "admin", role=ROLE_ADMIN, api_key=admin_key)
        agent = wallet.create_account(
            db, "agent1", role=ROLE_SUBADMIN, opening_balance=500000,
            api_key=secrets.token_urlsafe(24), performed_by=admin.id,
        )
        player = wallet.create_account(
            db, "player1", role=ROLE_PLAYER, opening_balance=10000, assigned_to=agent.id,
            api_key=secrets.token_urlsafe(24), performed_by=admin.id,
        )

        today = datetime.utcnow().replace(hour=0, minute=0, second=0, microsecond=0)
        gali = events.create_event(
            db,
            name="Gali",
            family="numeric",
            market_type="gali",
            open_time=today + timedelta(hours=9),
            close_time=today + timedelta(hours=17),
            is_recurring=True,
            recurrence_pattern="daily",
        )
        match = events.create_event(
            db,
            family="team_match",
            team_a="Mumbai",
            team_b="Chennai",
            category="cricket",
            match_time=today + timedelta(days=1, hours=14),
            odds_a=180,
            odds_b=220,
        )
        events.open_event(db, gali.id)
        events.open_event(db, match.id)

        logger.info("Demo data seeded")
        logger.info("Admin API key: %s", admin_key)
        logger.info("Player %s API key: %s", player.username, player.api_key)

    except Exception as e:
        logger.error(f"Error seeding data: {e}")
        db.rollback()

    finally:
        db.close()


def check_connection():
    """Test database connection"""
    try:
        db = new_session()
        db.execute(text("SELECT 1"))
        db.close()
        logger.info("Database connection successful")
        return True
    except Exception as e:
        logger.error(f"Database connection failed: {e}")
        return False


if __name__ == "__main__":
    import argparse

    parser = argparse.ArgumentParser(description="Initialize Betbook database")
    parser.add_argument("--drop", action="store_true", help="Drop existing tables (DANGER!)")
    parser.add_argument("--seed", action="store_true", help="Seed demo accounts and events")
    parser.add_argument("--check", action="store_true", help="Only check connection")

    args = parser.parse_args()

    if args.check:
        check_connection()
    else:
        if check_connection():
            init_database(drop_existing=args.drop)

            if args.seed:
                seed_demo_data()

            logger.info("Database initialization complete!")
        else:
            logger.error("Cannot initialize database - connection failed")
            sys.exit(1)
