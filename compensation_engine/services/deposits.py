"""Approved-deposit crediting and the outbox relay for referrer bonuses"""

import logging
from datetime import datetime
from decimal import Decimal
from typing import Any, Callable, Dict, Optional

from sqlalchemy.orm import Session, sessionmaker

from compensation_engine.config import Settings, settings
from compensation_engine.domain.income import quantize_amount
from compensation_engine.domain.models import JobRunSummary, TransactionType, WalletType
from compensation_engine.domain.plan import CompensationPlan
from compensation_engine.infrastructure.database.models import WalletTransaction
from compensation_engine.infrastructure.database.repositories import (
    ConfigRepository,
    MemberRepository,
    OutboxRepository,
    TransactionRepository,
)
from compensation_engine.services.ledger import WalletLedger
from compensation_engine.services.levels import LevelService
from compensation_engine.utils.date_utils import as_utc, utc_now

logger = logging.getLogger(__name__)

REFERRAL_BONUS_EVENT = "referral_bonus"


class DepositCreditService:
    """
    Entry point for the deposit-approval collaborator.

    The depositor's own credits (deposit, first-deposit bonus) are written
    directly. The referrer's bonus touches another member, so it is queued
    as an outbox event in the same transaction and applied later by
    OutboxRelay in the referrer's own transaction.
    """

    def __init__(self, db: Session, plan: CompensationPlan, config: Settings = settings):
        self.db = db
        self.config = config
        self.level_service = LevelService(db, plan, config.tz)
        self.members = MemberRepository(db)
        self.transactions = TransactionRepository(db)
        self.ledger = WalletLedger(db)
        self.outbox = OutboxRepository(db)
        self.config_store = ConfigRepository(db)

    def apply_approved_deposit(
        self,
        member_id: int,
        wallet: WalletType,
        amount: Decimal,
        method: str = "manual",
        now: Optional[datetime] = None,
    ) -> WalletTransaction:
        now = as_utc(now) if now else utc_now()
        member = self.members.get_for_update(member_id)
        first_normal_deposit = (
            wallet is WalletType.NORMAL
            and self.transactions.count_by_type(member.id, WalletType.NORMAL, TransactionType.DEPOSIT.value) == 0
        )

        deposit = self.ledger.credit(member, wallet, amount, TransactionType.DEPOSIT, f"Deposit approved - {method}", now)

        if first_normal_deposit and member.referred_by_id is not None:
            bonus = quantize_amount(deposit.amount * self.config.referral_bonus_percentage / 100)
            if bonus > 0:
                self.outbox.enqueue(
                    REFERRAL_BONUS_EVENT,
                    {
                        "referrer_id": member.referred_by_id,
                        "referred_id": member.id,
                        "amount": str(bonus),
                        "deposit_transaction_id": str(deposit.id),
                    },
                )

        if not member.first_deposit_bonus_received:
            percentage = self.config_store.first_deposit_bonus_percentage(self.config.first_deposit_bonus_percentage)
            bonus = quantize_amount(deposit.amount * percentage / 100)
            if bonus > 0:
                self.ledger.credit(
                    member,
                    WalletType.NORMAL,
                    bonus,
                    TransactionType.REFERRAL_BONUS,
                    f"First deposit bonus ({percentage}%)",
                    now,
                )
            member.first_deposit_bonus_received = True

        self.db.flush()
        self.level_service.on_wallet_change(member.id, now)
        return deposit


class OutboxRelay:
    """Applies pending outbox events, one event per transaction"""

    def __init__(self, session_factory: sessionmaker, max_attempts: int = settings.outbox_max_attempts):
        self.session_factory = session_factory
        self.max_attempts = max_attempts
        self._handlers: Dict[str, Callable[[Session, Dict[str, Any], datetime], None]] = {
            REFERRAL_BONUS_EVENT: self._credit_referral_bonus,
        }

    def process_pending(self, limit: int = 100, now: Optional[datetime] = None) -> JobRunSummary:
        now = as_utc(now) if now else utc_now()
        summary = JobRunSummary(job="outbox_relay", started_at=now)

        with self.session_factory() as db:
            event_ids = OutboxRepository(db).pending_ids(limit)
        summary.total = len(event_ids)

        for event_id in event_ids:
            with self.session_factory() as db:
                try:
                    applied = self._apply(db, event_id, now)
                    db.commit()
                except Exception as e:
                    db.rollback()
                    logger.error(f"Outbox event {event_id} failed: {e}", extra={"event_id": str(event_id)})
                    self._record_failure(event_id, e, now)
                    summary.errors += 1
                    continue

            summary.processed += 1
            if applied:
                summary.updated += 1
            else:
                summary.skipped += 1

        return summary

    def _apply(self, db: Session, event_id: Any, now: datetime) -> bool:
        event = OutboxRepository(db).get_for_update(event_id)
        if event is None or event.status != "pending":
            return False

        handler = self._handlers.get(event.event_type)
        if handler is None:
            raise ValueError(f"No handler for outbox event type {event.event_type!r}")

        handler(db, event.payload, now)
        event.status = "processed"
        event.attempts += 1
        event.last_attempt_at = now
        event.processed_at = now
        db.flush()
        return True

    def _credit_referral_bonus(self, db: Session, payload: Dict[str, Any], now: datetime) -> None:
        referrer = MemberRepository(db).get_for_update(int(payload["referrer_id"]))
        WalletLedger(db).credit(
            referrer,
            WalletType.NORMAL,
            Decimal(payload["amount"]),
            TransactionType.REFERRAL_BONUS,
            f"Referral bonus from member {payload['referred_id']}",
            now,
        )

    def _record_failure(self, event_id: Any, error: Exception, now: datetime) -> None:
        with self.session_factory() as db:
            event = OutboxRepository(db).get_for_update(event_id)
            if event is None:
                return
            event.attempts += 1
            event.last_error = str(error)[:500]
            event.last_attempt_at = now
            if event.attempts >= self.max_attempts:
                event.status = "failed"
            db.commit()
