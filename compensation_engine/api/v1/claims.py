"""Daily and team income claim endpoints"""

import time
import logging

from fastapi import APIRouter, Depends, HTTPException, Request
from sqlalchemy.orm import Session

from compensation_engine.api.dependencies import get_plan, get_request_id
from compensation_engine.api.v1.levels import income_schema
from compensation_engine.api.v1.schemas import ClaimResponse, ClaimStatusResponse
from compensation_engine.domain.exceptions import (
    AlreadyClaimedError,
    ConcurrentClaimError,
    GraphCycleError,
    MemberNotFoundError,
    NoIncomeAvailableError,
    TeamCriteriaNotMetError,
)
from compensation_engine.domain.models import ClaimResult
from compensation_engine.domain.plan import CompensationPlan
from compensation_engine.infrastructure.database.session import get_db
from compensation_engine.infrastructure.observability.logging import log_claim
from compensation_engine.infrastructure.observability.metrics import claim_counter, record_income
from compensation_engine.services.claims import ClaimService

router = APIRouter()


def claim_response(result: ClaimResult) -> ClaimResponse:
    return ClaimResponse(
        member_id=result.member_id,
        transaction_type=result.transaction_type.value,
        character_income=result.character_income,
        digit_income=result.digit_income,
        total_income=result.total_income,
        new_balance=result.new_balance,
        claimed_at=result.claimed_at,
    )


def run_claim(kind: str, member_id: int, request: Request, db: Session, plan: CompensationPlan) -> ClaimResponse:
    """
    Execute a claim and translate domain errors to HTTP responses.

    Flow:
    1. Lock member + level record, check the once-per-day gate
    2. (team) validate the live team against the assigned digit tier
    3. Credit income to the normal wallet and commit
    4. Record metrics and the audit log line
    """
    start_time = time.time()
    request_id = get_request_id(request)
    service = ClaimService(db, plan)

    try:
        if kind == "team":
            result = service.claim_team_income(member_id)
        else:
            result = service.claim_daily_income(member_id)
        db.commit()

    except MemberNotFoundError as e:
        db.rollback()
        claim_counter.labels(kind=kind, outcome="not_found").inc()
        raise HTTPException(status_code=404, detail=str(e))

    except AlreadyClaimedError as e:
        db.rollback()
        claim_counter.labels(kind=kind, outcome="already_claimed").inc()
        logging.info(f"Claim rejected: {e}", extra={"request_id": request_id, "member_id": member_id})
        raise HTTPException(status_code=409, detail=str(e))

    except ConcurrentClaimError as e:
        db.rollback()
        claim_counter.labels(kind=kind, outcome="conflict").inc()
        logging.warning(f"Claim conflict: {e}", extra={"request_id": request_id, "member_id": member_id})
        raise HTTPException(status_code=409, detail=str(e))

    except NoIncomeAvailableError as e:
        db.rollback()
        claim_counter.labels(kind=kind, outcome="no_income").inc()
        raise HTTPException(status_code=422, detail=str(e))

    except TeamCriteriaNotMetError as e:
        db.rollback()
        claim_counter.labels(kind=kind, outcome="criteria_not_met").inc()
        raise HTTPException(status_code=422, detail={"message": str(e), "missing": e.missing})

    except GraphCycleError as e:
        db.rollback()
        claim_counter.labels(kind=kind, outcome="error").inc()
        logging.error(f"Referral cycle: {e}", extra={"request_id": request_id, "member_id": member_id})
        raise HTTPException(status_code=409, detail=str(e))

    except Exception as e:
        db.rollback()
        claim_counter.labels(kind=kind, outcome="error").inc()
        logging.error(f"Unexpected error: {e}", extra={"request_id": request_id, "member_id": member_id})
        raise HTTPException(status_code=500, detail="Internal server error")

    duration_ms = (time.time() - start_time) * 1000
    claim_counter.labels(kind=kind, outcome="credited").inc()
    record_income(result.transaction_type.value, result.total_income)
    log_claim(request_id, result, duration_ms)

    return claim_response(result)


@router.get("/members/{member_id}/claims/daily-income", response_model=ClaimStatusResponse)
def get_claim_status(
    member_id: int,
    db: Session = Depends(get_db),
    plan: CompensationPlan = Depends(get_plan),
):
    """Whether the member can claim today and how much it would receive"""
    try:
        status = ClaimService(db, plan).claim_status(member_id)
        db.commit()
    except MemberNotFoundError as e:
        db.rollback()
        raise HTTPException(status_code=404, detail=str(e))

    return ClaimStatusResponse(
        member_id=status.member_id,
        can_claim=status.can_claim,
        potential_income=income_schema(status.potential_income),
        last_claimed_at=status.last_claimed_at,
    )


@router.post("/members/{member_id}/claims/daily-income", response_model=ClaimResponse)
def claim_daily_income(
    member_id: int,
    request: Request,
    db: Session = Depends(get_db),
    plan: CompensationPlan = Depends(get_plan),
):
    return run_claim("daily", member_id, request, db, plan)


@router.post("/members/{member_id}/claims/team-income", response_model=ClaimResponse)
def claim_team_income(
    member_id: int,
    request: Request,
    db: Session = Depends(get_db),
    plan: CompensationPlan = Depends(get_plan),
):
    return run_claim("team", member_id, request, db, plan)
