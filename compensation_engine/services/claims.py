"""Once-per-day level income claims"""

import logging
from dataclasses import dataclass
from datetime import datetime, tzinfo
from typing import Optional

from sqlalchemy.orm import Session
from sqlalchemy.orm.exc import StaleDataError

from compensation_engine.config import settings
from compensation_engine.domain.exceptions import (
    AlreadyClaimedError,
    ConcurrentClaimError,
    NoIncomeAvailableError,
    TeamCriteriaNotMetError,
)
from compensation_engine.domain.levels import unmet_criteria
from compensation_engine.domain.models import ClaimResult, IncomeBreakdown, TransactionType, WalletType
from compensation_engine.domain.plan import CompensationPlan
from compensation_engine.infrastructure.database.models import LevelRecord, Member
from compensation_engine.infrastructure.database.repositories import LevelRepository, MemberRepository
from compensation_engine.services.ledger import WalletLedger
from compensation_engine.services.levels import LevelService, parse_digit_level, snapshot_direct_members
from compensation_engine.utils.date_utils import as_utc, same_local_day, utc_now

logger = logging.getLogger(__name__)


@dataclass
class ClaimStatus:
    member_id: int
    can_claim: bool
    potential_income: IncomeBreakdown
    last_claimed_at: Optional[datetime]


class ClaimService:
    """
    Credits character + digit income to the normal wallet at most once per
    local calendar day.

    The member row is loaded FOR UPDATE and carries a version column, so of
    two concurrent claims only one can commit; the loser surfaces as
    ConcurrentClaimError (stale version) or AlreadyClaimedError (waited on
    the lock, then saw the new last_claimed_at). Nothing is written before
    every precondition has passed. Callers commit on success and roll back
    on any exception.
    """

    def __init__(self, db: Session, plan: CompensationPlan, tz: Optional[tzinfo] = None):
        self.db = db
        self.plan = plan
        self.tz = tz or settings.tz
        self.members = MemberRepository(db)
        self.levels = LevelRepository(db)
        self.level_service = LevelService(db, plan, self.tz)
        self.ledger = WalletLedger(db)

    def claim_daily_income(self, member_id: int, now: Optional[datetime] = None) -> ClaimResult:
        return self._claim(member_id, TransactionType.LEVEL_INCOME, now, validate_team=False)

    def claim_team_income(self, member_id: int, now: Optional[datetime] = None) -> ClaimResult:
        """Same as the daily claim, gated on the live team still meeting the assigned digit tier"""
        return self._claim(member_id, TransactionType.TEAM_INCOME, now, validate_team=True)

    def claim_status(self, member_id: int, now: Optional[datetime] = None) -> ClaimStatus:
        now = as_utc(now) if now else utc_now()
        self.members.get(member_id)
        level = self.levels.get_or_create(member_id)
        return ClaimStatus(
            member_id=member_id,
            can_claim=not same_local_day(level.last_claimed_at, now, self.tz),
            potential_income=self.level_service.compute_income(member_id),
            last_claimed_at=level.last_claimed_at,
        )

    def _validate_team(self, member: Member, level: LevelRecord) -> None:
        current = parse_digit_level(level.digit_current)
        rule = self.plan.digit_rule(current)
        if rule is None:
            raise TeamCriteriaNotMetError("No digit level assigned", ["no digit level assigned"])

        team = snapshot_direct_members(self.members.get_direct_referrals(member.id))
        missing = unmet_criteria(rule, member.normal_balance, team)
        if missing:
            raise TeamCriteriaNotMetError(f"Team no longer meets {rule.level.value} criteria", missing)

    def _claim(
        self,
        member_id: int,
        txn_type: TransactionType,
        now: Optional[datetime],
        validate_team: bool,
    ) -> ClaimResult:
        now = as_utc(now) if now else utc_now()
        try:
            member = self.members.get_for_update(member_id)
            level = self.levels.get_for_update(member_id)

            if same_local_day(level.last_claimed_at, now, self.tz):
                raise AlreadyClaimedError("Daily income already claimed today")

            if validate_team:
                self._validate_team(member, level)

            income = self.level_service.compute_income(member_id)
            if income.total <= 0:
                raise NoIncomeAvailableError("No income available to claim")

            label = "Team income" if txn_type is TransactionType.TEAM_INCOME else "Level income"
            self.ledger.credit(
                member,
                WalletType.NORMAL,
                income.total,
                txn_type,
                f"{label} - Character: {income.character_income}, Digit: {income.digit_income}",
                now,
            )

            level.daily_character_income = income.character_income
            level.daily_digit_income = income.digit_income
            level.last_claimed_at = now
            level.character_total_earned = (level.character_total_earned or 0) + income.character_income
            level.digit_total_earned = (level.digit_total_earned or 0) + income.digit_income
            self.db.flush()

        except StaleDataError as e:
            logger.warning("Concurrent claim lost the race", extra={"member_id": member_id})
            raise ConcurrentClaimError(f"Member {member_id} was modified concurrently, claim not applied") from e

        return ClaimResult(
            member_id=member_id,
            transaction_type=txn_type,
            character_income=income.character_income,
            digit_income=income.digit_income,
            total_income=income.total,
            new_balance=member.normal_balance,
            claimed_at=now,
        )
