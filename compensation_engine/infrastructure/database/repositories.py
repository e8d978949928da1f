"""Data access layer for members, ledger rows, level records, outbox and config"""

from decimal import Decimal
from typing import Any, List, Optional, Sequence

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from compensation_engine.domain.exceptions import MemberNotFoundError
from compensation_engine.domain.income import quantize_amount
from compensation_engine.domain.models import TransactionStatus, WalletType
from compensation_engine.infrastructure.database.models import (
    ConfigEntry,
    LevelRecord,
    Member,
    OutboxEvent,
    WalletTransaction,
)


class MemberRepository:
    """Repository for member records; also the referral graph's directory"""

    def __init__(self, db: Session):
        self.db = db

    def create(
        self,
        name: str,
        email: Optional[str] = None,
        referred_by_id: Optional[int] = None,
        is_active: bool = True,
    ) -> Member:
        if referred_by_id is not None and self.get_member(referred_by_id) is None:
            raise MemberNotFoundError(referred_by_id)
        member = Member(name=name, email=email, referred_by_id=referred_by_id, is_active=is_active)
        self.db.add(member)
        self.db.flush()  # Get ID without committing
        return member

    def get_member(self, member_id: int) -> Optional[Member]:
        return self.db.get(Member, member_id)

    def get(self, member_id: int) -> Member:
        member = self.get_member(member_id)
        if member is None:
            raise MemberNotFoundError(member_id)
        return member

    def get_for_update(self, member_id: int) -> Member:
        """Load a member with a row lock for a balance mutation"""
        member = self.db.execute(
            select(Member)
            .where(Member.id == member_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()
        if member is None:
            raise MemberNotFoundError(member_id)
        return member

    def get_referrals_of(self, member_ids: Sequence[int]) -> List[Member]:
        """Direct referrals of any of the given members, oldest first"""
        if not member_ids:
            return []
        return list(
            self.db.execute(
                select(Member)
                .where(Member.referred_by_id.in_(list(member_ids)))
                .order_by(Member.created_at, Member.id)
            ).scalars()
        )

    def get_direct_referrals(self, member_id: int) -> List[Member]:
        return self.get_referrals_of([member_id])

    def list_ids(self, active_only: bool = False, exclude_blocked: bool = False) -> List[int]:
        stmt = select(Member.id).order_by(Member.id)
        if active_only:
            stmt = stmt.where(Member.is_active.is_(True))
        if exclude_blocked:
            stmt = stmt.where(Member.is_blocked.is_(False))
        return list(self.db.execute(stmt).scalars())


class TransactionRepository:
    """Read side of the wallet ledger"""

    def __init__(self, db: Session):
        self.db = db

    def list_for_wallet(self, member_id: int, wallet: WalletType, limit: int = 50) -> List[WalletTransaction]:
        return list(
            self.db.execute(
                select(WalletTransaction)
                .where(WalletTransaction.member_id == member_id, WalletTransaction.wallet == wallet.value)
                .order_by(WalletTransaction.created_at.desc())
                .limit(limit)
            ).scalars()
        )

    def sum_approved(self, member_id: int, wallet: WalletType) -> Decimal:
        total = self.db.execute(
            select(func.coalesce(func.sum(WalletTransaction.amount), 0)).where(
                WalletTransaction.member_id == member_id,
                WalletTransaction.wallet == wallet.value,
                WalletTransaction.status == TransactionStatus.APPROVED.value,
            )
        ).scalar_one()
        return quantize_amount(Decimal(str(total)))

    def count_by_type(self, member_id: int, wallet: WalletType, txn_type: str) -> int:
        return self.db.execute(
            select(func.count(WalletTransaction.id)).where(
                WalletTransaction.member_id == member_id,
                WalletTransaction.wallet == wallet.value,
                WalletTransaction.type == txn_type,
                WalletTransaction.status == TransactionStatus.APPROVED.value,
            )
        ).scalar_one()


class LevelRepository:
    """Repository for per-member level records"""

    def __init__(self, db: Session):
        self.db = db

    def get(self, member_id: int) -> Optional[LevelRecord]:
        return self.db.execute(
            select(LevelRecord).where(LevelRecord.member_id == member_id)
        ).scalar_one_or_none()

    def get_for_update(self, member_id: int) -> LevelRecord:
        """Fresh, locked level record (created if missing) for a claim"""
        level = self.db.execute(
            select(LevelRecord)
            .where(LevelRecord.member_id == member_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()
        return level if level is not None else self.get_or_create(member_id)

    def get_or_create(self, member_id: int) -> LevelRecord:
        level = self.get(member_id)
        if level is None:
            level = LevelRecord(member_id=member_id, direct_members=[])
            self.db.add(level)
            self.db.flush()
        return level

    def list_all(self) -> List[LevelRecord]:
        return list(self.db.execute(select(LevelRecord).order_by(LevelRecord.member_id)).scalars())


class OutboxRepository:
    """Repository for queued cross-member events"""

    def __init__(self, db: Session):
        self.db = db

    def enqueue(self, event_type: str, payload: dict) -> OutboxEvent:
        event = OutboxEvent(event_type=event_type, payload=payload, status="pending", attempts=0)
        self.db.add(event)
        self.db.flush()
        return event

    def pending_ids(self, limit: int = 100) -> List[Any]:
        return list(
            self.db.execute(
                select(OutboxEvent.id)
                .where(OutboxEvent.status == "pending")
                .order_by(OutboxEvent.created_at)
                .limit(limit)
            ).scalars()
        )

    def get_for_update(self, event_id: Any) -> Optional[OutboxEvent]:
        return self.db.execute(
            select(OutboxEvent)
            .where(OutboxEvent.id == event_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()

    def list_by_status(self, status: str) -> List[OutboxEvent]:
        return list(self.db.execute(select(OutboxEvent).where(OutboxEvent.status == status)).scalars())


class ConfigRepository:
    """Key/value configuration store"""

    FIRST_DEPOSIT_BONUS_PERCENTAGE = "first_deposit_bonus_percentage"

    def __init__(self, db: Session):
        self.db = db

    def get_value(self, key: str, default: Any = None) -> Any:
        entry = self.db.get(ConfigEntry, key)
        return entry.value if entry is not None else default

    def set_value(self, key: str, value: Any) -> ConfigEntry:
        entry = self.db.get(ConfigEntry, key)
        if entry is None:
            entry = ConfigEntry(key=key, value=value)
            self.db.add(entry)
        else:
            entry.value = value
        self.db.flush()
        return entry

    def first_deposit_bonus_percentage(self, default: Decimal) -> Decimal:
        return Decimal(str(self.get_value(self.FIRST_DEPOSIT_BONUS_PERCENTAGE, default)))
