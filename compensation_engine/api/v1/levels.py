"""Level status, recalculation, referral network and statistics endpoints"""

import logging
from typing import List

from fastapi import APIRouter, Depends, HTTPException, Query, Request
from sqlalchemy.orm import Session

from compensation_engine.api.dependencies import get_plan, get_request_id
from compensation_engine.api.v1.schemas import (
    IncomeSchema,
    LevelStatisticsResponse,
    LevelStatusResponse,
    MemberSummary,
    RecalculateResponse,
    ReferralNetworkResponse,
)
from compensation_engine.domain.exceptions import GraphCycleError, MemberNotFoundError
from compensation_engine.domain.models import IncomeBreakdown
from compensation_engine.domain.plan import CompensationPlan
from compensation_engine.infrastructure.database.models import Member
from compensation_engine.infrastructure.database.session import get_db
from compensation_engine.services.levels import LevelService

router = APIRouter()


def income_schema(income: IncomeBreakdown) -> IncomeSchema:
    return IncomeSchema(
        character_income=income.character_income,
        digit_income=income.digit_income,
        total=income.total,
    )


def member_summaries(members: List[Member]) -> List[MemberSummary]:
    return [
        MemberSummary(member_id=m.id, name=m.name, normal_balance=m.normal_balance, joined_at=m.created_at)
        for m in members
    ]


@router.get("/members/{member_id}/levels", response_model=LevelStatusResponse)
def get_member_levels(
    member_id: int,
    request: Request,
    db: Session = Depends(get_db),
    plan: CompensationPlan = Depends(get_plan),
):
    """
    Current character and digit level of a member.

    Levels are recalculated before reporting, so the response reflects the
    live referral graph and balances.
    """
    request_id = get_request_id(request)
    try:
        status = LevelService(db, plan).get_level_status(member_id)
        db.commit()
    except MemberNotFoundError as e:
        db.rollback()
        raise HTTPException(status_code=404, detail=str(e))
    except GraphCycleError as e:
        db.rollback()
        logging.error(f"Referral cycle: {e}", extra={"request_id": request_id, "member_id": member_id})
        raise HTTPException(status_code=409, detail=str(e))

    return LevelStatusResponse(
        member_id=status.member_id,
        character_level=status.character_level.value if status.character_level else None,
        character_total_earned=status.character_total_earned,
        character_last_calculated=status.character_last_calculated,
        digit_level=status.digit_level.value if status.digit_level else None,
        digit_total_earned=status.digit_total_earned,
        digit_last_calculated=status.digit_last_calculated,
        direct_member_count=status.direct_member_count,
        valid_members=status.valid_members,
        potential_income=income_schema(status.potential_income),
        daily_income=income_schema(status.daily_income),
        last_claimed_at=status.last_claimed_at,
        can_claim=status.can_claim,
    )


@router.post("/members/{member_id}/levels/recalculate", response_model=RecalculateResponse)
def recalculate_member_levels(
    member_id: int,
    request: Request,
    db: Session = Depends(get_db),
    plan: CompensationPlan = Depends(get_plan),
):
    request_id = get_request_id(request)
    try:
        change = LevelService(db, plan).recalculate_levels(member_id)
        db.commit()
    except MemberNotFoundError as e:
        db.rollback()
        raise HTTPException(status_code=404, detail=str(e))
    except GraphCycleError as e:
        db.rollback()
        logging.error(f"Referral cycle: {e}", extra={"request_id": request_id, "member_id": member_id})
        raise HTTPException(status_code=409, detail=str(e))

    logging.info(
        "Levels recalculated",
        extra={"request_id": request_id, "member_id": member_id, "changed": change.changed},
    )
    return RecalculateResponse(
        member_id=member_id,
        changed=change.changed,
        character_before=change.character_before.value if change.character_before else None,
        character_after=change.character_after.value if change.character_after else None,
        digit_before=change.digit_before.value if change.digit_before else None,
        digit_after=change.digit_after.value if change.digit_after else None,
    )


@router.get("/members/{member_id}/referral-network", response_model=ReferralNetworkResponse)
def get_referral_network(
    member_id: int,
    request: Request,
    max_level: int = Query(5, ge=1, le=10, description="Downline depth to count"),
    db: Session = Depends(get_db),
    plan: CompensationPlan = Depends(get_plan),
):
    """Direct referrals, upline chain and downline size per level"""
    try:
        network = LevelService(db, plan).referral_network(member_id, max_level=max_level)
    except MemberNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except GraphCycleError as e:
        logging.error(f"Referral cycle: {e}", extra={"request_id": get_request_id(request)})
        raise HTTPException(status_code=409, detail=str(e))

    return ReferralNetworkResponse(
        member_id=network.member_id,
        direct_referrals=member_summaries(network.direct_referrals),
        upline=member_summaries(network.upline),
        downline_counts=network.downline_counts,
        valid_members=network.valid_members,
    )


@router.get("/levels/statistics", response_model=LevelStatisticsResponse)
def get_level_statistics(
    db: Session = Depends(get_db),
    plan: CompensationPlan = Depends(get_plan),
):
    """Member counts per tier and total income earned through levels"""
    return LevelStatisticsResponse(**LevelService(db, plan).level_statistics())
