"""Level classification persistence, income computation and level views"""

import logging
from dataclasses import dataclass, field
from datetime import datetime, tzinfo
from decimal import Decimal
from typing import Dict, List, Optional, Set

from sqlalchemy.orm import Session

from compensation_engine.config import settings
from compensation_engine.domain.graph import ReferralGraph
from compensation_engine.domain.income import calculate_daily_income
from compensation_engine.domain.levels import (
    classify_character_level,
    classify_digit_level,
    count_valid_members,
)
from compensation_engine.domain.models import (
    CharacterLevel,
    DigitClassification,
    DigitLevel,
    DirectMember,
    IncomeBreakdown,
    LevelChange,
)
from compensation_engine.domain.plan import CompensationPlan
from compensation_engine.infrastructure.database.models import LevelRecord, Member
from compensation_engine.infrastructure.database.repositories import LevelRepository, MemberRepository
from compensation_engine.utils.date_utils import as_utc, same_local_day, utc_now

logger = logging.getLogger(__name__)


def parse_character_level(value: Optional[str]) -> Optional[CharacterLevel]:
    try:
        return CharacterLevel(value) if value else None
    except ValueError:
        return None


def parse_digit_level(value: Optional[str]) -> Optional[DigitLevel]:
    try:
        return DigitLevel(value) if value else None
    except ValueError:
        return None


def snapshot_direct_members(referrals: List[Member]) -> List[DirectMember]:
    return [
        DirectMember(member_id=ref.id, joined_at=ref.created_at, wallet_balance=ref.normal_balance or Decimal("0"))
        for ref in referrals
    ]


@dataclass
class LevelStatus:
    member_id: int
    character_level: Optional[CharacterLevel]
    character_total_earned: Decimal
    character_last_calculated: Optional[datetime]
    digit_level: Optional[DigitLevel]
    digit_total_earned: Decimal
    digit_last_calculated: Optional[datetime]
    direct_member_count: int
    valid_members: int
    potential_income: IncomeBreakdown
    daily_income: IncomeBreakdown
    last_claimed_at: Optional[datetime]
    can_claim: bool


@dataclass
class ReferralNetwork:
    member_id: int
    direct_referrals: List[Member]
    upline: List[Member]
    downline_counts: Dict[int, int] = field(default_factory=dict)
    valid_members: int = 0


class LevelService:
    """
    Recomputes and persists level assignments for members.

    Assignments are a pure function of the referral graph and balances; this
    service only loads state, calls the domain classifiers and writes the
    results into the member's LevelRecord. Callers own the commit.
    """

    def __init__(self, db: Session, plan: CompensationPlan, tz: Optional[tzinfo] = None):
        self.db = db
        self.plan = plan
        self.tz = tz or settings.tz
        self.members = MemberRepository(db)
        self.levels = LevelRepository(db)
        self.graph = ReferralGraph(self.members)

    def initialize_level(self, member_id: int) -> LevelRecord:
        """Get or lazily create the member's level record"""
        self.members.get(member_id)
        return self.levels.get_or_create(member_id)

    def recalculate_character_level(self, member_id: int, now: Optional[datetime] = None) -> bool:
        """Recompute from upline depth; returns True when the tier changed"""
        now = as_utc(now) if now else utc_now()
        level = self.initialize_level(member_id)

        depth = self.graph.upline_depth(member_id, cap=self.plan.max_character_depth)
        new_level = classify_character_level(depth, self.plan)
        new_value = new_level.value if new_level else None

        changed = level.character_current != new_value
        if changed:
            logger.info(
                "Character level changed",
                extra={"member_id": member_id, "from": level.character_current, "to": new_value},
            )
            level.character_current = new_value
        level.character_last_calculated = now
        level.last_level_check = now
        level.plan_version = self.plan.version
        self.db.flush()
        return changed

    def classify_digit(self, member: Member) -> DigitClassification:
        referrals = self.members.get_direct_referrals(member.id)
        return classify_digit_level(member.normal_balance, snapshot_direct_members(referrals), self.plan)

    def recalculate_digit_level(self, member_id: int, now: Optional[datetime] = None) -> bool:
        """Recompute from direct referrals and own balance; refreshes the snapshot"""
        now = as_utc(now) if now else utc_now()
        member = self.members.get(member_id)
        level = self.levels.get_or_create(member_id)

        result = self.classify_digit(member)
        new_value = result.level.value if result.level else None
        level.direct_members = [m.to_dict() for m in result.direct_members]

        changed = level.digit_current != new_value
        if changed:
            logger.info(
                "Digit level changed",
                extra={"member_id": member_id, "from": level.digit_current, "to": new_value},
            )
            level.digit_current = new_value
        level.digit_last_calculated = now
        level.last_level_check = now
        level.plan_version = self.plan.version
        self.db.flush()
        return changed

    def recalculate_levels(self, member_id: int, now: Optional[datetime] = None) -> LevelChange:
        now = as_utc(now) if now else utc_now()
        level = self.initialize_level(member_id)
        character_before = parse_character_level(level.character_current)
        digit_before = parse_digit_level(level.digit_current)

        self.recalculate_character_level(member_id, now)
        self.recalculate_digit_level(member_id, now)

        return LevelChange(
            member_id=member_id,
            character_before=character_before,
            character_after=parse_character_level(level.character_current),
            digit_before=digit_before,
            digit_after=parse_digit_level(level.digit_current),
        )

    def compute_income(self, member_id: int) -> IncomeBreakdown:
        """Fresh character/digit income from the currently assigned levels"""
        member = self.members.get(member_id)
        level = self.levels.get_or_create(member_id)

        parent_balance = None
        if member.referred_by_id is not None:
            parent = self.members.get_member(member.referred_by_id)
            if parent is not None:
                parent_balance = parent.normal_balance

        return calculate_daily_income(
            parent_balance=parent_balance,
            own_balance=member.normal_balance,
            character_level=parse_character_level(level.character_current),
            digit_level=parse_digit_level(level.digit_current),
            plan=self.plan,
        )

    def refresh_daily_income(self, member_id: int, now: Optional[datetime] = None) -> IncomeBreakdown:
        """Store today's income amounts for display; moves no money"""
        income = self.compute_income(member_id)
        level = self.levels.get_or_create(member_id)
        level.daily_character_income = income.character_income
        level.daily_digit_income = income.digit_income
        level.daily_income_calculated_at = now or utc_now()
        self.db.flush()
        return income

    def propagate_upline(self, member_id: int, now: Optional[datetime] = None, seen: Optional[Set[int]] = None) -> int:
        """
        Recompute character levels of every ancestor of a member.

        `seen` holds members already recomputed during the current run and
        is updated in place. Returns the number of ancestors whose tier changed.
        """
        seen = seen if seen is not None else set()
        changed = 0
        for ancestor in self.graph.upline_chain(member_id, max_depth=None):
            if ancestor.id in seen:
                continue
            if self.recalculate_character_level(ancestor.id, now):
                changed += 1
            seen.add(ancestor.id)
        return changed

    def on_member_joined(self, member_id: int, now: Optional[datetime] = None) -> LevelChange:
        """Classify a new member and refresh its upline and referrer"""
        change = self.recalculate_levels(member_id, now)
        member = self.members.get(member_id)
        if member.referred_by_id is not None:
            self.propagate_upline(member_id, now, seen={member_id})
            self.recalculate_digit_level(member.referred_by_id, now)
        return change

    def register_member(
        self,
        name: str,
        email: Optional[str] = None,
        referred_by_id: Optional[int] = None,
        now: Optional[datetime] = None,
    ) -> Member:
        """Create a member and its level record at signup. Caller commits."""
        member = self.members.create(name=name, email=email, referred_by_id=referred_by_id)
        self.on_member_joined(member.id, now)
        logger.info(
            f"Registered member {member.id}",
            extra={"member_id": member.id, "referred_by_id": referred_by_id},
        )
        return member

    def on_wallet_change(self, member_id: int, now: Optional[datetime] = None) -> None:
        """A balance change moves the member's and its referrer's digit criteria"""
        member = self.members.get(member_id)
        self.recalculate_digit_level(member_id, now)
        if member.referred_by_id is not None:
            self.recalculate_digit_level(member.referred_by_id, now)
        for referral in self.members.get_direct_referrals(member_id):
            self.recalculate_character_level(referral.id, now)

    def get_level_status(self, member_id: int, now: Optional[datetime] = None) -> LevelStatus:
        """Recalculate levels and report potential income and claimability"""
        now = as_utc(now) if now else utc_now()
        self.recalculate_levels(member_id, now)
        level = self.levels.get_or_create(member_id)
        income = self.compute_income(member_id)

        snapshot = [
            DirectMember(
                member_id=entry["member_id"],
                joined_at=None,
                wallet_balance=Decimal(entry["wallet_balance"]),
            )
            for entry in level.direct_members or []
        ]
        lowest_min = min((r.member_wallet_min for r in self.plan.digit_tiers), default=Decimal("0"))

        return LevelStatus(
            member_id=member_id,
            character_level=parse_character_level(level.character_current),
            character_total_earned=level.character_total_earned,
            character_last_calculated=level.character_last_calculated,
            digit_level=parse_digit_level(level.digit_current),
            digit_total_earned=level.digit_total_earned,
            digit_last_calculated=level.digit_last_calculated,
            direct_member_count=len(snapshot),
            valid_members=count_valid_members(snapshot, lowest_min),
            potential_income=income,
            daily_income=IncomeBreakdown(
                character_income=level.daily_character_income,
                digit_income=level.daily_digit_income,
            ),
            last_claimed_at=level.last_claimed_at,
            can_claim=not same_local_day(level.last_claimed_at, now, self.tz),
        )

    def referral_network(self, member_id: int, max_level: int = 5) -> ReferralNetwork:
        member = self.members.get(member_id)
        direct = self.members.get_direct_referrals(member.id)
        downline = self.graph.downline_by_level(member.id, max_level=max_level)
        lowest_min = min((r.member_wallet_min for r in self.plan.digit_tiers), default=Decimal("0"))
        return ReferralNetwork(
            member_id=member.id,
            direct_referrals=direct,
            upline=self.graph.upline_chain(member.id, max_depth=None),
            downline_counts={level: len(members) for level, members in downline.items()},
            valid_members=count_valid_members(snapshot_direct_members(direct), lowest_min),
        )

    def level_statistics(self) -> dict:
        records = self.levels.list_all()
        character_counts = {level.value: 0 for level in CharacterLevel}
        digit_counts = {level.value: 0 for level in DigitLevel}
        character_counts["none"] = 0
        digit_counts["none"] = 0

        for record in records:
            character = parse_character_level(record.character_current)
            digit = parse_digit_level(record.digit_current)
            character_counts[character.value if character else "none"] += 1
            digit_counts[digit.value if digit else "none"] += 1

        return {
            "total_members": len(records),
            "character_levels": character_counts,
            "digit_levels": digit_counts,
            "total_earned": {
                "character": sum((r.character_total_earned for r in records), Decimal("0")),
                "digit": sum((r.digit_total_earned for r in records), Decimal("0")),
            },
        }

    def repair_invalid_levels(self) -> int:
        """Null out stored tiers that are not part of the level enums"""
        fixed = 0
        for record in self.levels.list_all():
            dirty = False
            if record.character_current and parse_character_level(record.character_current) is None:
                logger.warning(
                    "Invalid character level reset",
                    extra={"member_id": record.member_id, "value": record.character_current},
                )
                record.character_current = None
                dirty = True
            if record.digit_current and parse_digit_level(record.digit_current) is None:
                logger.warning(
                    "Invalid digit level reset",
                    extra={"member_id": record.member_id, "value": record.digit_current},
                )
                record.digit_current = None
                dirty = True
            if dirty:
                fixed += 1
        self.db.flush()
        return fixed
