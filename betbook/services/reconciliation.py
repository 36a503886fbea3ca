"""
Ledger reconciliation.

Public API:
  reconcile_accounts(db)   → List[Mismatch]
  run_reconciliation()     → List[Mismatch]  (entry point for scheduler)

An account's balance must equal the sum of its transaction amounts; every
mutation path books exactly one transaction, so any drift points at a write
that bypassed the ledger.
"""

import logging
from dataclasses import dataclass
from typing import List

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from betbook.models import Account, Transaction, new_session

logger = logging.getLogger(__name__)


@dataclass
class Mismatch:
    account_id: int
    username: str
    balance: int
    ledger_total: int

    @property
    def difference(self) -> int:
        return self.balance - self.ledger_total

    def to_dict(self) -> dict:
        return {
            "account_id": self.account_id,
            "username": self.username,
            "balance": self.balance,
            "ledger_total": self.ledger_total,
            "difference": self.difference,
        }


def reconcile_accounts(db: Session) -> List[Mismatch]:
    """Compare every balance with the fold of its transactions."""
    totals = (
        select(Transaction.account_id, func.sum(Transaction.amount).label("total"))
        .group_by(Transaction.account_id)
        .subquery()
    )
    rows = db.execute(
        select(Account.id, Account.username, Account.balance, totals.c.total)
        .outerjoin(totals, totals.c.account_id == Account.id)
        .order_by(Account.id)
    ).all()

    mismatches: List[Mismatch] = []
    for account_id, username, balance, total in rows:
        total = int(total or 0)
        if balance != total:
            mismatch = Mismatch(account_id, username, balance, total)
            logger.warning(
                "Ledger mismatch on account %d (%s): balance %d, transactions sum %d (diff %+d)",
                account_id, username, balance, total, mismatch.difference,
            )
            mismatches.append(mismatch)

    logger.info("Reconciled %d accounts: %d mismatches", len(rows), len(mismatches))
    return mismatches


def run_reconciliation() -> List[Mismatch]:
    """
    Scheduler entry point.  Opens its own session; never raises.
    """
    db = new_session()
    try:
        return reconcile_accounts(db)
    except Exception as exc:
        logger.error("Reconciliation failed: %s", exc, exc_info=True)
        return []
    finally:
        db.close()
