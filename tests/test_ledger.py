"""Tests for ledger.py: atomic debits/credits and the transaction trail."""

import pytest
from sqlalchemy import func, select

from betbook.core.errors import InsufficientFundsError, NotFoundError, ValidationError
from betbook.models import Transaction, transactional
from betbook.services import ledger


def _transactions(db, account_id):
    return list(db.execute(
        select(Transaction).where(Transaction.account_id == account_id).order_by(Transaction.id)
    ).scalars())


# ---------------------------------------------------------------------------
# Opening balances
# ---------------------------------------------------------------------------

def test_opening_balance_is_a_transaction(db, make_account):
    account = make_account(balance=1000)
    txns = _transactions(db, account.id)
    assert len(txns) == 1
    assert txns[0].kind == ledger.OPENING_BALANCE
    assert txns[0].amount == 1000
    assert txns[0].balance_after == 1000


def test_zero_opening_balance_books_nothing(db, make_account):
    account = make_account(balance=0)
    assert _transactions(db, account.id) == []


def test_duplicate_username(db, make_account):
    make_account(username="ravi")
    with pytest.raises(ValidationError):
        make_account(username="ravi")


# ---------------------------------------------------------------------------
# Debit / credit
# ---------------------------------------------------------------------------

def test_debit_and_credit(db, make_account, balance_of):
    account = make_account(balance=1000)
    with transactional(db):
        out = ledger.debit(db, account.id, 300, description="stake")
        back = ledger.credit(db, account.id, 50, kind=ledger.ADJUSTMENT)
    assert out.balance_after == 700
    assert back.balance_after == 750
    assert balance_of(account.id) == 750

    txns = _transactions(db, account.id)
    assert [t.amount for t in txns] == [1000, -300, 50]
    assert [t.balance_after for t in txns] == [1000, 700, 750]


def test_debit_cannot_overdraw(db, make_account, balance_of):
    account = make_account(balance=100)
    with pytest.raises(InsufficientFundsError):
        with transactional(db):
            ledger.debit(db, account.id, 101)
    assert balance_of(account.id) == 100
    assert len(_transactions(db, account.id)) == 1


def test_exact_balance_can_be_spent(db, make_account, balance_of):
    account = make_account(balance=100)
    with transactional(db):
        ledger.debit(db, account.id, 100)
    assert balance_of(account.id) == 0


@pytest.mark.parametrize("amount", [0, -5, 1.5, True, "10"])
def test_amount_must_be_positive_int(db, make_account, amount):
    account = make_account(balance=100)
    with pytest.raises(ValidationError):
        ledger.debit(db, account.id, amount)
    with pytest.raises(ValidationError):
        ledger.credit(db, account.id, amount)


def test_unknown_account(db):
    with pytest.raises(NotFoundError):
        ledger.debit(db, 999, 10)
    with pytest.raises(NotFoundError):
        ledger.credit(db, 999, 10)


def test_rollback_discards_transaction_row(db, make_account, balance_of):
    account = make_account(balance=500)
    with pytest.raises(RuntimeError):
        with transactional(db):
            ledger.debit(db, account.id, 200)
            raise RuntimeError("companion write failed")
    assert balance_of(account.id) == 500
    assert len(_transactions(db, account.id)) == 1


# ---------------------------------------------------------------------------
# Transfer
# ---------------------------------------------------------------------------

def test_transfer_moves_funds(db, make_account, balance_of):
    source = make_account(balance=1000, role="subadmin")
    target = make_account(balance=0)
    with transactional(db):
        ledger.transfer(db, source.id, target.id, 400)
    assert balance_of(source.id) == 600
    assert balance_of(target.id) == 400
    assert _transactions(db, target.id)[-1].kind == ledger.TRANSFER


def test_transfer_short_source_changes_nothing(db, make_account, balance_of):
    source = make_account(balance=100, role="subadmin")
    target = make_account(balance=0)
    with pytest.raises(InsufficientFundsError):
        with transactional(db):
            ledger.transfer(db, source.id, target.id, 400)
    assert balance_of(source.id) == 100
    assert balance_of(target.id) == 0


def test_transfer_to_self(db, make_account):
    account = make_account(balance=100)
    with pytest.raises(ValidationError):
        ledger.transfer(db, account.id, account.id, 10)


def test_balance_is_fold_of_transactions(db, make_account, balance_of):
    account = make_account(balance=250)
    with transactional(db):
        ledger.debit(db, account.id, 40)
        ledger.credit(db, account.id, 90)
        ledger.debit(db, account.id, 300)
    total = db.execute(
        select(func.sum(Transaction.amount)).where(Transaction.account_id == account.id)
    ).scalar_one()
    assert total == balance_of(account.id) == 0
