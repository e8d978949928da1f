"""Wallet ledger: every balance change is a balance update plus one appended row"""

import logging
from datetime import datetime
from decimal import Decimal
from typing import Optional

from sqlalchemy.orm import Session

from compensation_engine.domain.exceptions import InsufficientBalanceError, InvalidTransferError
from compensation_engine.domain.income import quantize_amount
from compensation_engine.domain.models import (
    TransactionStatus,
    TransactionType,
    TransferResult,
    WalletType,
)
from compensation_engine.infrastructure.database.models import Member, WalletTransaction
from compensation_engine.infrastructure.database.repositories import MemberRepository, TransactionRepository
from compensation_engine.utils.date_utils import utc_now

logger = logging.getLogger(__name__)


def require_balance(member: Member, wallet: WalletType, amount: Decimal) -> None:
    """Call-site check before a debit"""
    available = member.balance_of(wallet)
    if available < amount:
        raise InsufficientBalanceError(
            f"Insufficient {wallet.value} wallet balance: {available} available, {amount} requested"
        )


class WalletLedger:
    """
    Credits and debits against a member loaded in the caller's session.

    The balance assignment and the transaction insert are flushed together
    and committed by the caller, so both land or neither does. Callers load
    the member with MemberRepository.get_for_update so the row is locked and
    its version checked on flush.
    """

    def __init__(self, db: Session):
        self.db = db
        self.members = MemberRepository(db)
        self.transactions = TransactionRepository(db)

    def _append(
        self,
        member: Member,
        wallet: WalletType,
        amount: Decimal,
        txn_type: TransactionType,
        description: str,
        now: Optional[datetime],
    ) -> WalletTransaction:
        txn = WalletTransaction(
            member_id=member.id,
            wallet=wallet.value,
            type=txn_type.value,
            amount=amount,
            description=description,
            status=TransactionStatus.APPROVED.value,
            created_at=now or utc_now(),
        )
        member.set_balance(wallet, member.balance_of(wallet) + amount)
        self.db.add(txn)
        self.db.flush()
        return txn

    def credit(
        self,
        member: Member,
        wallet: WalletType,
        amount: Decimal,
        txn_type: TransactionType,
        description: str,
        now: Optional[datetime] = None,
    ) -> WalletTransaction:
        """Append an approved credit and raise the wallet balance by `amount`"""
        amount = quantize_amount(amount)
        if amount <= 0:
            raise ValueError(f"Credit amount must be positive, got {amount}")
        txn = self._append(member, wallet, amount, txn_type, description, now)
        logger.debug(
            "Wallet credited",
            extra={"member_id": member.id, "wallet": wallet.value, "type": txn_type.value, "amount": str(amount)},
        )
        return txn

    def debit(
        self,
        member: Member,
        wallet: WalletType,
        amount: Decimal,
        txn_type: TransactionType,
        description: str,
        now: Optional[datetime] = None,
    ) -> WalletTransaction:
        """Append an approved negative row; run require_balance first"""
        amount = quantize_amount(amount)
        if amount <= 0:
            raise ValueError(f"Debit amount must be positive, got {amount}")
        return self._append(member, wallet, -amount, txn_type, description, now)

    def transfer_between_wallets(
        self,
        member_id: int,
        source: WalletType,
        target: WalletType,
        amount: Decimal,
        now: Optional[datetime] = None,
    ) -> TransferResult:
        """Move funds between a member's own wallets; caller commits"""
        if source is target:
            raise InvalidTransferError("Cannot transfer to the same wallet")
        amount = quantize_amount(amount)
        if amount <= 0:
            raise InvalidTransferError("Transfer amount must be positive")

        member = self.members.get_for_update(member_id)
        require_balance(member, source, amount)

        self.debit(member, source, amount, TransactionType.TRANSFER, f"Transfer to {target.value} wallet", now)
        self.credit(member, target, amount, TransactionType.TRANSFER, f"Transfer from {source.value} wallet", now)

        return TransferResult(
            member_id=member.id,
            source=source,
            target=target,
            amount=amount,
            normal_balance=member.normal_balance,
            investment_balance=member.investment_balance,
        )

    def balance_matches_history(self, member: Member, wallet: WalletType) -> bool:
        """Balance invariant: balance equals the sum of approved transaction amounts"""
        return quantize_amount(member.balance_of(wallet)) == self.transactions.sum_approved(member.id, wallet)
