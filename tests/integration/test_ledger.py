"""Integration tests for the wallet ledger"""

import pytest
from decimal import Decimal
from compensation_engine.domain.exceptions import InsufficientBalanceError, InvalidTransferError
from compensation_engine.domain.models import TransactionStatus, TransactionType, WalletType
from compensation_engine.infrastructure.database.models import WalletTransaction
from compensation_engine.infrastructure.database.repositories import TransactionRepository
from compensation_engine.services.ledger import WalletLedger


def test_credit_appends_row_and_moves_balance(db, make_member):
    member = make_member(balance="100")

    txn = WalletLedger(db).credit(member, WalletType.NORMAL, Decimal("25.555555555"), TransactionType.COMMISSION, "Bonus")
    db.commit()

    assert txn.amount == Decimal("25.55555556")
    assert member.normal_balance == Decimal("125.55555556")
    assert WalletLedger(db).balance_matches_history(member, WalletType.NORMAL)


def test_credit_rejects_non_positive_amount(db, make_member):
    member = make_member()
    with pytest.raises(ValueError):
        WalletLedger(db).credit(member, WalletType.NORMAL, Decimal("0"), TransactionType.DEPOSIT, "Nothing")


def test_debit_records_negative_amount(db, make_member):
    member = make_member(balance="100")

    txn = WalletLedger(db).debit(member, WalletType.NORMAL, Decimal("40"), TransactionType.WITHDRAWAL, "Payout")
    db.commit()

    assert txn.amount == Decimal("-40.00")
    assert member.normal_balance == Decimal("60.00")
    assert TransactionRepository(db).sum_approved(member.id, WalletType.NORMAL) == Decimal("60.00")


def test_transfer_between_wallets(db, make_member):
    member = make_member(balance="300")

    result = WalletLedger(db).transfer_between_wallets(member.id, WalletType.NORMAL, WalletType.INVESTMENT, Decimal("120"))
    db.commit()

    assert result.normal_balance == Decimal("180.00")
    assert result.investment_balance == Decimal("120.00")
    ledger = WalletLedger(db)
    assert ledger.balance_matches_history(member, WalletType.NORMAL)
    assert ledger.balance_matches_history(member, WalletType.INVESTMENT)


def test_transfer_insufficient_balance_changes_nothing(db, make_member):
    member = make_member(balance="50")

    with pytest.raises(InsufficientBalanceError):
        WalletLedger(db).transfer_between_wallets(member.id, WalletType.NORMAL, WalletType.INVESTMENT, Decimal("50.01"))
    db.rollback()

    assert member.normal_balance == Decimal("50.00")
    assert member.investment_balance == Decimal("0.00")
    assert TransactionRepository(db).count_by_type(member.id, WalletType.NORMAL, TransactionType.TRANSFER.value) == 0


@pytest.mark.parametrize(
    "source,target,amount",
    [
        (WalletType.NORMAL, WalletType.NORMAL, "10"),
        (WalletType.NORMAL, WalletType.INVESTMENT, "0"),
        (WalletType.NORMAL, WalletType.INVESTMENT, "-5"),
    ],
)
def test_transfer_rejects_invalid_requests(db, make_member, source, target, amount):
    member = make_member(balance="100")
    with pytest.raises(InvalidTransferError):
        WalletLedger(db).transfer_between_wallets(member.id, source, target, Decimal(amount))


def test_pending_rows_do_not_count_towards_balance(db, make_member):
    member = make_member(balance="100")
    db.add(
        WalletTransaction(
            member_id=member.id,
            wallet=WalletType.NORMAL.value,
            type=TransactionType.WITHDRAWAL.value,
            amount=Decimal("-30"),
            description="Awaiting approval",
            status=TransactionStatus.PENDING.value,
        )
    )
    db.commit()

    assert WalletLedger(db).balance_matches_history(member, WalletType.NORMAL)
