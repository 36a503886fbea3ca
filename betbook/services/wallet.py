"""
Accounts and the manual wallet.

Players file deposit / withdrawal requests; an operator reviews them.
Operators can also top up or deduct directly.  Sub-admins act only on the
players assigned to them, and their top-ups come out of (and deductions go
into) their own balance.

Every balance change still goes through ``ledger``.
"""

import logging
from datetime import datetime
from typing import Dict, List, Optional

from sqlalchemy import select
from sqlalchemy.orm import Session

from betbook.core.errors import (
    InsufficientFundsError,
    NotFoundError,
    PermissionDeniedError,
    StateError,
    ValidationError,
)
from betbook.core.game_config import ROLE_ADMIN, ROLE_PLAYER, ROLE_SUBADMIN
from betbook.models import Account, WalletRequest, transactional
from betbook.services import ledger
from betbook.services.betting import get_account

logger = logging.getLogger(__name__)

DEPOSIT = "deposit"
WITHDRAWAL = "withdrawal"
REQUEST_TYPES = (DEPOSIT, WITHDRAWAL)
PAYMENT_MODES = ("upi", "bank", "cash")

PENDING = "pending"
APPROVED = "approved"
REJECTED = "rejected"


# ---------------------------------------------------------------------------
# Permission helpers
# ---------------------------------------------------------------------------

def check_scope(actor: Account, account: Account) -> None:
    """Admins manage everyone; sub-admins only their assigned players."""
    if actor.role == ROLE_ADMIN:
        return
    if actor.role == ROLE_SUBADMIN and account.assigned_to == actor.id:
        return
    raise PermissionDeniedError(f"Account {account.id} is not managed by {actor.username}")


# ---------------------------------------------------------------------------
# Accounts
# ---------------------------------------------------------------------------

def create_account(
    db: Session,
    username: str,
    role: str = ROLE_PLAYER,
    opening_balance: int = 0,
    assigned_to: Optional[int] = None,
    api_key: Optional[str] = None,
    performed_by: Optional[int] = None,
) -> Account:
    with transactional(db):
        account = ledger.open_account(
            db, username,
            role=role,
            opening_balance=opening_balance,
            assigned_to=assigned_to,
            api_key=api_key,
            performed_by=performed_by,
        )
    logger.info("Account %d created: %s (%s), balance %d", account.id, account.username, role, opening_balance)
    return account


def _set_blocked(db: Session, account_id: int, actor: Account, blocked: bool) -> Account:
    with transactional(db):
        account = get_account(db, account_id)
        check_scope(actor, account)
        if account.role == ROLE_ADMIN:
            raise PermissionDeniedError("admin accounts cannot be blocked")
        account.is_blocked = blocked
    logger.info("Account %d %s by %s", account_id, "blocked" if blocked else "unblocked", actor.username)
    return account


def block_account(db: Session, account_id: int, actor: Account) -> Account:
    return _set_blocked(db, account_id, actor, True)


def unblock_account(db: Session, account_id: int, actor: Account) -> Account:
    return _set_blocked(db, account_id, actor, False)


def assign_account(db: Session, account_id: int, subadmin_id: Optional[int]) -> Account:
    """Place a player under a sub-admin (``None`` detaches it).  Admin only."""
    with transactional(db):
        account = get_account(db, account_id)
        if account.role != ROLE_PLAYER:
            raise ValidationError("only player accounts can be assigned")
        if subadmin_id is not None:
            parent = get_account(db, subadmin_id)
            if parent.role != ROLE_SUBADMIN:
                raise ValidationError(f"Account {subadmin_id} is not a sub-admin")
        account.assigned_to = subadmin_id
    logger.info("Account %d assigned to %s", account_id, subadmin_id)
    return account


# ---------------------------------------------------------------------------
# Operator adjustments
# ---------------------------------------------------------------------------

def adjust_balance(
    db: Session,
    account_id: int,
    amount: int,
    actor: Account,
    description: Optional[str] = None,
) -> int:
    """
    Top up (``amount`` > 0) or deduct (``amount`` < 0) an account balance.

    Admins mint/burn as an ``adjustment``.  A sub-admin's change is a
    ``transfer`` against its own balance, so a sub-admin cannot hand out
    more than it holds.

    Returns the account's new balance.
    """
    if isinstance(amount, bool) or not isinstance(amount, int) or amount == 0:
        raise ValidationError(f"amount must be a non-zero integer, got {amount!r}")

    with transactional(db):
        account = get_account(db, account_id)
        check_scope(actor, account)
        if actor.id == account.id:
            raise PermissionDeniedError("operators cannot adjust their own balance")

        if actor.role == ROLE_SUBADMIN:
            if amount > 0:
                _, entry = ledger.transfer(
                    db, actor.id, account.id, amount, performed_by=actor.id,
                    description=description or f"Top-up from {actor.username}",
                )
            else:
                entry, _ = ledger.transfer(
                    db, account.id, actor.id, -amount, performed_by=actor.id,
                    description=description or f"Deduction by {actor.username}",
                )
        elif amount > 0:
            entry = ledger.credit(
                db, account.id, amount, kind=ledger.ADJUSTMENT,
                performed_by=actor.id, description=description or "Balance top-up",
            )
        else:
            entry = ledger.debit(
                db, account.id, -amount, kind=ledger.ADJUSTMENT,
                performed_by=actor.id, description=description or "Balance deduction",
            )

    logger.info(
        "Balance of account %d adjusted %+d by %s → %d",
        account_id, amount, actor.username, entry.balance_after,
    )
    return entry.balance_after


# ---------------------------------------------------------------------------
# Wallet requests
# ---------------------------------------------------------------------------

def create_wallet_request(
    db: Session,
    account_id: int,
    amount: int,
    request_type: str,
    payment_mode: str,
    payment_details: Optional[Dict] = None,
    notes: Optional[str] = None,
) -> WalletRequest:
    if isinstance(amount, bool) or not isinstance(amount, int) or amount <= 0:
        raise ValidationError(f"amount must be a positive integer, got {amount!r}")
    if request_type not in REQUEST_TYPES:
        raise ValidationError(f"request_type must be one of {', '.join(REQUEST_TYPES)}")
    if payment_mode not in PAYMENT_MODES:
        raise ValidationError(f"payment_mode must be one of {', '.join(PAYMENT_MODES)}")

    with transactional(db):
        account = get_account(db, account_id)
        if account.is_blocked:
            raise PermissionDeniedError("Your account is blocked")
        if request_type == WITHDRAWAL and account.balance < amount:
            raise InsufficientFundsError(
                f"Insufficient balance: account {account_id} has {account.balance}, needs {amount}"
            )
        request = WalletRequest(
            account_id=account_id,
            amount=amount,
            request_type=request_type,
            payment_mode=payment_mode,
            payment_details=payment_details or {},
            status=PENDING,
            notes=notes,
        )
        db.add(request)
        db.flush()
    logger.info("Wallet request %d: account %d %s %d via %s", request.id, account_id, request_type, amount, payment_mode)
    return request


def list_account_requests(db: Session, account_id: int, limit: int = 100) -> List[WalletRequest]:
    stmt = (
        select(WalletRequest)
        .where(WalletRequest.account_id == account_id)
        .order_by(WalletRequest.id.desc())
        .limit(limit)
    )
    return list(db.execute(stmt).scalars())


def list_wallet_requests(
    db: Session,
    actor: Account,
    status: Optional[str] = None,
    limit: int = 100,
) -> List[WalletRequest]:
    """Requests visible to an operator; sub-admins see their players' only."""
    stmt = select(WalletRequest)
    if status:
        stmt = stmt.where(WalletRequest.status == status)
    if actor.role == ROLE_SUBADMIN:
        players = select(Account.id).where(Account.assigned_to == actor.id)
        stmt = stmt.where(WalletRequest.account_id.in_(players))
    elif actor.role != ROLE_ADMIN:
        raise PermissionDeniedError("operator access required")
    return list(db.execute(stmt.order_by(WalletRequest.id.desc()).limit(limit)).scalars())


def review_wallet_request(
    db: Session,
    request_id: int,
    actor: Account,
    approve: bool,
    notes: Optional[str] = None,
) -> WalletRequest:
    """
    Approve or reject a pending request.

    Approval books the deposit credit / withdrawal debit (tagged with the
    request id) in the same transaction as the status change; a withdrawal
    the balance no longer covers is refused and the request stays pending.
    """
    with transactional(db):
        request = db.execute(
            select(WalletRequest).where(WalletRequest.id == request_id).with_for_update()
        ).scalar_one_or_none()
        if request is None:
            raise NotFoundError(f"Wallet request {request_id} not found")
        if request.status != PENDING:
            raise StateError(f"request already {request.status}")
        check_scope(actor, get_account(db, request.account_id))

        if approve:
            if request.request_type == DEPOSIT:
                ledger.credit(
                    db, request.account_id, request.amount, kind=ledger.DEPOSIT,
                    performed_by=actor.id, request_id=request.id,
                    description=f"Deposit via {request.payment_mode}",
                )
            else:
                ledger.debit(
                    db, request.account_id, request.amount, kind=ledger.WITHDRAWAL,
                    performed_by=actor.id, request_id=request.id,
                    description=f"Withdrawal via {request.payment_mode}",
                )

        request.status = APPROVED if approve else REJECTED
        request.reviewed_by = actor.id
        if notes:
            request.notes = notes
        request.updated_at = datetime.utcnow()

    logger.info("Wallet request %d %s by %s", request_id, request.status, actor.username)
    return request
