"""Domain models - pure Python dataclasses representing business entities"""

from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import List, Optional


class WalletType(str, Enum):
    """The two wallets every member owns"""

    NORMAL = "normal"
    INVESTMENT = "investment"


class TransactionType(str, Enum):
    DEPOSIT = "deposit"
    WITHDRAWAL = "withdrawal"
    TRANSFER = "transfer"
    TRANSFER_TO_USER = "transfer_to_user"
    TRANSFER_FROM_USER = "transfer_from_user"
    REFERRAL_BONUS = "referral_bonus"
    DAILY_INCOME = "daily_income"
    LEVEL_INCOME = "level_income"
    TEAM_INCOME = "team_income"
    COMMISSION = "commission"
    LUCKY_DRAW_PRIZE = "lucky_draw_prize"


class TransactionStatus(str, Enum):
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"


class CharacterLevel(str, Enum):
    """Tier derived from upline depth (A = no referrer)"""

    A = "A"
    B = "B"
    C = "C"
    D = "D"
    E = "E"


class DigitLevel(str, Enum):
    """Tier derived from valid direct referrals and own wallet balance"""

    LVL1 = "Lvl1"
    LVL2 = "Lvl2"
    LVL3 = "Lvl3"
    LVL4 = "Lvl4"
    LVL5 = "Lvl5"


@dataclass
class DirectMember:
    """Snapshot of a direct referral taken during digit classification"""

    member_id: int
    joined_at: Optional[datetime]
    wallet_balance: Decimal

    def to_dict(self) -> dict:
        return {
            "member_id": self.member_id,
            "joined_at": self.joined_at.isoformat() if self.joined_at else None,
            "wallet_balance": str(self.wallet_balance),
        }


@dataclass
class DigitClassification:
    """Outcome of evaluating the digit tiers for one member"""

    level: Optional[DigitLevel]
    valid_members: int
    direct_members: List[DirectMember]


@dataclass
class IncomeBreakdown:
    """Daily level income components"""

    character_income: Decimal
    digit_income: Decimal

    @property
    def total(self) -> Decimal:
        return self.character_income + self.digit_income


@dataclass
class LevelChange:
    """Before/after view of a level recalculation"""

    member_id: int
    character_before: Optional[CharacterLevel]
    character_after: Optional[CharacterLevel]
    digit_before: Optional[DigitLevel]
    digit_after: Optional[DigitLevel]

    @property
    def changed(self) -> bool:
        return self.character_before != self.character_after or self.digit_before != self.digit_after


@dataclass
class ClaimResult:
    """Outcome of a successful income claim"""

    member_id: int
    transaction_type: TransactionType
    character_income: Decimal
    digit_income: Decimal
    total_income: Decimal
    new_balance: Decimal
    claimed_at: datetime


@dataclass
class TransferResult:
    member_id: int
    source: WalletType
    target: WalletType
    amount: Decimal
    normal_balance: Decimal
    investment_balance: Decimal


@dataclass
class JobRunSummary:
    """Per-run counters reported by every batch job"""

    job: str
    status: str = "completed"  # completed | skipped
    total: int = 0
    processed: int = 0
    updated: int = 0
    skipped: int = 0
    errors: int = 0
    failed_member_ids: List[int] = field(default_factory=list)
    total_amount: Decimal = Decimal("0")
    started_at: Optional[datetime] = None
    duration_seconds: float = 0.0
