"""SQLAlchemy ORM models for members, wallet ledger, level records and outbox"""

import uuid
from decimal import Decimal

from sqlalchemy import (
    JSON,
    Boolean,
    Column,
    DateTime,
    ForeignKey,
    Integer,
    Numeric,
    Text,
    Uuid,
)
from sqlalchemy.orm import declarative_base, relationship
from sqlalchemy.sql import func

from compensation_engine.domain.models import WalletType

Base = declarative_base()

# Wallet precision matches domain.income.PRECISION
Money = Numeric(20, 8)


class Member(Base):
    """Member record: identity, upline pointer and both wallet balances"""

    __tablename__ = "member"

    id = Column(Integer, primary_key=True, autoincrement=True)
    name = Column(Text, nullable=False)
    email = Column(Text, nullable=True, unique=True)
    is_active = Column(Boolean, nullable=False, default=True)
    is_blocked = Column(Boolean, nullable=False, default=False)
    referred_by_id = Column(Integer, ForeignKey("member.id", ondelete="SET NULL"), nullable=True, index=True)

    normal_balance = Column(Money, nullable=False, default=Decimal("0"))
    investment_balance = Column(Money, nullable=False, default=Decimal("0"))

    # Self-income counters (batch job only)
    self_income_total_earned = Column(Money, nullable=False, default=Decimal("0"))
    self_income_today_earned = Column(Money, nullable=False, default=Decimal("0"))
    self_income_last_credited_at = Column(DateTime(timezone=True), nullable=True)

    first_deposit_bonus_received = Column(Boolean, nullable=False, default=False)

    # Optimistic lock: every balance change bumps it, a stale writer gets StaleDataError
    version = Column(Integer, nullable=False)

    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())

    __mapper_args__ = {"version_id_col": version}

    transactions = relationship(
        "WalletTransaction",
        back_populates="member",
        cascade="all, delete-orphan",
        order_by="WalletTransaction.created_at",
    )
    level = relationship("LevelRecord", back_populates="member", uselist=False, cascade="all, delete-orphan")

    def balance_of(self, wallet: WalletType) -> Decimal:
        if wallet is WalletType.NORMAL:
            return self.normal_balance or Decimal("0")
        return self.investment_balance or Decimal("0")

    def set_balance(self, wallet: WalletType, value: Decimal) -> None:
        if wallet is WalletType.NORMAL:
            self.normal_balance = value
        else:
            self.investment_balance = value


class WalletTransaction(Base):
    """Append-only ledger row; amount is signed (debits negative)"""

    __tablename__ = "wallet_transaction"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    member_id = Column(Integer, ForeignKey("member.id", ondelete="CASCADE"), nullable=False, index=True)
    wallet = Column(Text, nullable=False)
    type = Column(Text, nullable=False)
    amount = Column(Money, nullable=False)
    description = Column(Text, nullable=False, default="")
    status = Column(Text, nullable=False, default="approved")
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())

    member = relationship("Member", back_populates="transactions")


class LevelRecord(Base):
    """Character/digit level assignment and daily income tracking for one member"""

    __tablename__ = "member_level"

    id = Column(Integer, primary_key=True, autoincrement=True)
    member_id = Column(Integer, ForeignKey("member.id", ondelete="CASCADE"), nullable=False, unique=True)
    plan_version = Column(Text, nullable=True)

    character_current = Column(Text, nullable=True, index=True)
    character_total_earned = Column(Money, nullable=False, default=Decimal("0"))
    character_last_calculated = Column(DateTime(timezone=True), nullable=True)

    digit_current = Column(Text, nullable=True, index=True)
    digit_total_earned = Column(Money, nullable=False, default=Decimal("0"))
    digit_last_calculated = Column(DateTime(timezone=True), nullable=True)
    direct_members = Column(JSON, nullable=False, default=list)

    daily_character_income = Column(Money, nullable=False, default=Decimal("0"))
    daily_digit_income = Column(Money, nullable=False, default=Decimal("0"))
    daily_income_calculated_at = Column(DateTime(timezone=True), nullable=True)
    last_claimed_at = Column(DateTime(timezone=True), nullable=True)

    last_level_check = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())

    member = relationship("Member", back_populates="level")


class OutboxEvent(Base):
    """Cross-member mutation queued in the originating transaction, applied by the relay"""

    __tablename__ = "outbox_event"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    event_type = Column(Text, nullable=False)
    payload = Column(JSON, nullable=False)
    status = Column(Text, nullable=False, default="pending", index=True)
    attempts = Column(Integer, nullable=False, default=0)
    last_error = Column(Text, nullable=True)
    last_attempt_at = Column(DateTime(timezone=True), nullable=True)
    processed_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())


class ConfigEntry(Base):
    """Key/value overrides (first-deposit bonus percentage)"""

    __tablename__ = "config_entry"

    key = Column(Text, primary_key=True)
    value = Column(JSON, nullable=False)
    updated_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now(), onupdate=func.now())
