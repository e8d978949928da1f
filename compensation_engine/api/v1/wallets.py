"""Wallet balances, recent ledger rows and own-wallet transfers"""

import logging

from fastapi import APIRouter, Depends, HTTPException, Query, Request
from sqlalchemy.orm import Session

from compensation_engine.api.dependencies import get_plan, get_request_id
from compensation_engine.api.v1.schemas import (
    TransactionItem,
    TransferRequest,
    TransferResponse,
    WalletSchema,
    WalletsResponse,
)
from compensation_engine.domain.exceptions import (
    InsufficientBalanceError,
    InvalidTransferError,
    MemberNotFoundError,
)
from compensation_engine.domain.models import WalletType
from compensation_engine.domain.plan import CompensationPlan
from compensation_engine.infrastructure.database.repositories import MemberRepository, TransactionRepository
from compensation_engine.infrastructure.database.session import get_db
from compensation_engine.services.ledger import WalletLedger
from compensation_engine.services.levels import LevelService

router = APIRouter()


@router.get("/members/{member_id}/wallets", response_model=WalletsResponse)
def get_wallets(
    member_id: int,
    limit: int = Query(20, ge=1, le=200, description="Recent transactions per wallet"),
    db: Session = Depends(get_db),
):
    try:
        member = MemberRepository(db).get(member_id)
    except MemberNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))

    transaction_repo = TransactionRepository(db)
    wallets = []
    for wallet in WalletType:
        rows = transaction_repo.list_for_wallet(member.id, wallet, limit=limit)
        wallets.append(
            WalletSchema(
                wallet=wallet,
                balance=member.balance_of(wallet),
                transactions=[
                    TransactionItem(
                        transaction_id=str(t.id),
                        type=t.type,
                        amount=t.amount,
                        description=t.description,
                        status=t.status,
                        created_at=t.created_at,
                    )
                    for t in rows
                ],
            )
        )

    return WalletsResponse(member_id=member.id, wallets=wallets)


@router.post("/members/{member_id}/wallets/transfer", response_model=TransferResponse)
def transfer_between_wallets(
    member_id: int,
    request_body: TransferRequest,
    request: Request,
    db: Session = Depends(get_db),
    plan: CompensationPlan = Depends(get_plan),
):
    """Move funds between the member's normal and investment wallets"""
    request_id = get_request_id(request)
    try:
        result = WalletLedger(db).transfer_between_wallets(
            member_id, request_body.source, request_body.target, request_body.amount
        )
        LevelService(db, plan).on_wallet_change(member_id)
        db.commit()

    except MemberNotFoundError as e:
        db.rollback()
        raise HTTPException(status_code=404, detail=str(e))

    except InvalidTransferError as e:
        db.rollback()
        raise HTTPException(status_code=400, detail=str(e))

    except InsufficientBalanceError as e:
        db.rollback()
        logging.info(f"Transfer rejected: {e}", extra={"request_id": request_id, "member_id": member_id})
        raise HTTPException(status_code=422, detail=str(e))

    except Exception as e:
        db.rollback()
        logging.error(f"Unexpected error: {e}", extra={"request_id": request_id, "member_id": member_id})
        raise HTTPException(status_code=500, detail="Internal server error")

    logging.info(
        "Wallet transfer completed",
        extra={
            "request_id": request_id,
            "member_id": member_id,
            "source": result.source.value,
            "target": result.target.value,
            "amount": str(result.amount),
        },
    )
    return TransferResponse(
        member_id=result.member_id,
        source=result.source,
        target=result.target,
        amount=result.amount,
        normal_balance=result.normal_balance,
        investment_balance=result.investment_balance,
    )
