"""Pydantic schemas for API request/response validation"""

from datetime import datetime
from decimal import Decimal
from typing import Dict, List, Optional

from pydantic import BaseModel, Field

from compensation_engine.domain.models import WalletType


class IncomeSchema(BaseModel):
    character_income: Decimal
    digit_income: Decimal
    total: Decimal


class LevelStatusResponse(BaseModel):
    """Response for GET /v1/members/{member_id}/levels"""

    member_id: int
    character_level: Optional[str] = None
    character_total_earned: Decimal
    character_last_calculated: Optional[datetime] = None
    digit_level: Optional[str] = None
    digit_total_earned: Decimal
    digit_last_calculated: Optional[datetime] = None
    direct_member_count: int
    valid_members: int
    potential_income: IncomeSchema
    daily_income: IncomeSchema
    last_claimed_at: Optional[datetime] = None
    can_claim: bool


class RecalculateResponse(BaseModel):
    """Response for POST /v1/members/{member_id}/levels/recalculate"""

    member_id: int
    changed: bool
    character_before: Optional[str] = None
    character_after: Optional[str] = None
    digit_before: Optional[str] = None
    digit_after: Optional[str] = None


class MemberSummary(BaseModel):
    member_id: int
    name: str
    normal_balance: Decimal
    joined_at: Optional[datetime] = None


class ReferralNetworkResponse(BaseModel):
    """Response for GET /v1/members/{member_id}/referral-network"""

    member_id: int
    direct_referrals: List[MemberSummary]
    upline: List[MemberSummary]
    downline_counts: Dict[int, int]
    valid_members: int


class LevelStatisticsResponse(BaseModel):
    """Response for GET /v1/levels/statistics"""

    total_members: int
    character_levels: Dict[str, int]
    digit_levels: Dict[str, int]
    total_earned: Dict[str, Decimal]


class ClaimStatusResponse(BaseModel):
    """Response for GET /v1/members/{member_id}/claims/daily-income"""

    member_id: int
    can_claim: bool
    potential_income: IncomeSchema
    last_claimed_at: Optional[datetime] = None


class ClaimResponse(BaseModel):
    """Response for POST /v1/members/{member_id}/claims/*"""

    member_id: int
    transaction_type: str
    character_income: Decimal
    digit_income: Decimal
    total_income: Decimal
    new_balance: Decimal
    claimed_at: datetime


class TransactionItem(BaseModel):
    """Single ledger row"""

    transaction_id: str
    type: str
    amount: Decimal
    description: str
    status: str
    created_at: Optional[datetime] = None


class WalletSchema(BaseModel):
    wallet: WalletType
    balance: Decimal
    transactions: List[TransactionItem]


class WalletsResponse(BaseModel):
    """Response for GET /v1/members/{member_id}/wallets"""

    member_id: int
    wallets: List[WalletSchema]


class TransferRequest(BaseModel):
    """Request body for POST /v1/members/{member_id}/wallets/transfer"""

    source: WalletType
    target: WalletType
    amount: Decimal = Field(..., gt=0, description="Amount to move between own wallets")


class TransferResponse(BaseModel):
    member_id: int
    source: WalletType
    target: WalletType
    amount: Decimal
    normal_balance: Decimal
    investment_balance: Decimal


class JobStatusItem(BaseModel):
    name: str
    running: bool
    next_run_time: Optional[datetime] = None


class JobRunResponse(BaseModel):
    """Response for POST /v1/jobs/{job_name}/trigger"""

    job: str
    status: str
    total: int
    processed: int
    updated: int
    skipped: int
    errors: int
    failed_member_ids: List[int]
    total_amount: Decimal
    duration_seconds: float
