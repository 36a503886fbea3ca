"""
Balance & transaction ledger.

Public API:
  debit(db, account_id, amount, ...)                → LedgerEntry
  credit(db, account_id, amount, ...)               → LedgerEntry
  transfer(db, source_id, target_id, amount, ...)   → (LedgerEntry, LedgerEntry)
  open_account(db, username, ...)                   → Account
  account_balance(db, account_id)                   → int

Every balance change in the system goes through debit/credit.  Each is a
single conditional UPDATE (``balance = balance ± x``), so two requests
touching the same account can never both act on a stale read; the row stays
locked until the caller's transaction ends.  Each mutation writes exactly one
Transaction row with the post-update balance.

These functions never commit.  The caller owns the unit of work so the
ledger row and its companion change (bet inserted, bet settled, request
approved) commit or roll back together.
"""

import logging
from dataclasses import dataclass
from typing import Optional, Tuple

from sqlalchemy import select, update
from sqlalchemy.orm import Session

from betbook.core.errors import InsufficientFundsError, NotFoundError, ValidationError
from betbook.core.game_config import ROLE_PLAYER, ROLES
from betbook.models import Account, Transaction

logger = logging.getLogger(__name__)

# Transaction kinds
OPENING_BALANCE = "opening_balance"
BET_STAKE = "bet_stake"
BET_PAYOUT = "bet_payout"
DEPOSIT = "deposit"
WITHDRAWAL = "withdrawal"
ADJUSTMENT = "adjustment"
TRANSFER = "transfer"
OVERRIDE = "override"


@dataclass
class LedgerEntry:
    transaction: Transaction
    balance_after: int


def _check_amount(amount) -> None:
    if isinstance(amount, bool) or not isinstance(amount, int) or amount <= 0:
        raise ValidationError(f"amount must be a positive integer, got {amount!r}")


def account_balance(db: Session, account_id: int) -> int:
    balance = db.execute(
        select(Account.balance).where(Account.id == account_id)
    ).scalar_one_or_none()
    if balance is None:
        raise NotFoundError(f"Account {account_id} not found")
    return balance


def _record(
    db: Session,
    account_id: int,
    amount: int,
    balance_after: int,
    kind: str,
    performed_by: Optional[int],
    bet_id: Optional[int],
    request_id: Optional[int],
    description: Optional[str],
) -> LedgerEntry:
    txn = Transaction(
        account_id=account_id,
        amount=amount,
        balance_after=balance_after,
        kind=kind,
        performed_by=performed_by,
        bet_id=bet_id,
        request_id=request_id,
        description=description,
    )
    db.add(txn)
    db.flush()
    logger.info(
        "Ledger %s: account %d %+d → %d (bet=%s request=%s by=%s)",
        kind, account_id, amount, balance_after, bet_id, request_id, performed_by,
    )
    return LedgerEntry(transaction=txn, balance_after=balance_after)


def _apply(db: Session, account_id: int, delta: int, *conditions) -> Optional[int]:
    """Single conditional UPDATE; returns the new balance or None if no row matched."""
    db.flush()
    return db.execute(
        update(Account)
        .where(Account.id == account_id, *conditions)
        .values(balance=Account.balance + delta)
        .returning(Account.balance)
        .execution_options(synchronize_session="fetch")
    ).scalar_one_or_none()


def debit(
    db: Session,
    account_id: int,
    amount: int,
    *,
    kind: str = BET_STAKE,
    performed_by: Optional[int] = None,
    bet_id: Optional[int] = None,
    request_id: Optional[int] = None,
    description: Optional[str] = None,
) -> LedgerEntry:
    """
    Atomically subtract ``amount`` from the account.

    Raises:
        ValidationError: amount not a positive integer.
        NotFoundError: unknown account.
        InsufficientFundsError: balance would go negative (nothing changes).
    """
    _check_amount(amount)
    balance_after = _apply(db, account_id, -amount, Account.balance >= amount)
    if balance_after is None:
        balance = account_balance(db, account_id)  # raises NotFoundError
        raise InsufficientFundsError(
            f"Insufficient balance: account {account_id} has {balance}, needs {amount}"
        )
    return _record(db, account_id, -amount, balance_after, kind, performed_by, bet_id, request_id, description)


def credit(
    db: Session,
    account_id: int,
    amount: int,
    *,
    kind: str = BET_PAYOUT,
    performed_by: Optional[int] = None,
    bet_id: Optional[int] = None,
    request_id: Optional[int] = None,
    description: Optional[str] = None,
) -> LedgerEntry:
    """Atomically add ``amount`` to the account and record it."""
    _check_amount(amount)
    balance_after = _apply(db, account_id, amount)
    if balance_after is None:
        raise NotFoundError(f"Account {account_id} not found")
    return _record(db, account_id, amount, balance_after, kind, performed_by, bet_id, request_id, description)


def transfer(
    db: Session,
    source_id: int,
    target_id: int,
    amount: int,
    *,
    performed_by: Optional[int] = None,
    description: Optional[str] = None,
) -> Tuple[LedgerEntry, LedgerEntry]:
    """Move funds between two accounts inside the caller's transaction."""
    if source_id == target_id:
        raise ValidationError("cannot transfer funds to the same account")
    out = debit(
        db, source_id, amount, kind=TRANSFER, performed_by=performed_by,
        description=description or f"Transfer to account {target_id}",
    )
    into = credit(
        db, target_id, amount, kind=TRANSFER, performed_by=performed_by,
        description=description or f"Transfer from account {source_id}",
    )
    return out, into


def open_account(
    db: Session,
    username: str,
    *,
    role: str = ROLE_PLAYER,
    opening_balance: int = 0,
    assigned_to: Optional[int] = None,
    api_key: Optional[str] = None,
    performed_by: Optional[int] = None,
) -> Account:
    """
    Create an account.  A non-zero starting balance is booked as an
    ``opening_balance`` transaction so the balance always equals the sum of
    the account's transactions.
    """
    if not username or not username.strip():
        raise ValidationError("username is required")
    if role not in ROLES:
        raise ValidationError(f"role must be one of {', '.join(ROLES)}")
    if isinstance(opening_balance, bool) or not isinstance(opening_balance, int) or opening_balance < 0:
        raise ValidationError("opening_balance must be a non-negative integer")
    if db.execute(select(Account.id).where(Account.username == username.strip())).first():
        raise ValidationError(f"username {username.strip()!r} is already taken")
    if assigned_to is not None and db.get(Account, assigned_to) is None:
        raise NotFoundError(f"Account {assigned_to} not found")

    account = Account(
        username=username.strip(),
        role=role,
        balance=0,
        assigned_to=assigned_to,
        api_key=api_key,
    )
    db.add(account)
    db.flush()
    if opening_balance:
        credit(
            db, account.id, opening_balance, kind=OPENING_BALANCE,
            performed_by=performed_by, description="Opening balance",
        )
    return account
