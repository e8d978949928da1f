"""Income calculation - daily amounts derived from current levels and balances"""

from decimal import ROUND_HALF_UP, Decimal
from typing import Optional

from compensation_engine.domain.models import CharacterLevel, DigitLevel, IncomeBreakdown
from compensation_engine.domain.plan import CompensationPlan

# Storage scale of wallet amounts (Numeric(20, 8)); sub-cent incomes are kept
PRECISION = Decimal("0.00000001")
ZERO = Decimal("0")


def quantize_amount(amount: Decimal) -> Decimal:
    """Round to wallet storage precision (8 places, half up)"""
    return Decimal(amount).quantize(PRECISION, rounding=ROUND_HALF_UP)


def character_income(
    parent_balance: Optional[Decimal],
    level: Optional[CharacterLevel],
    plan: CompensationPlan,
) -> Decimal:
    """
    Character income = immediate referrer's normal balance x tier % / 100.

    Zero when the member has no referrer (parent_balance is None) or no
    character level.
    """
    if parent_balance is None or level is None:
        return ZERO
    return quantize_amount(parent_balance * plan.character_percentage(level) / 100)


def digit_income(own_balance: Decimal, level: Optional[DigitLevel], plan: CompensationPlan) -> Decimal:
    """Digit income = own normal balance x tier % / 100, zero without a tier"""
    if level is None:
        return ZERO
    return quantize_amount(own_balance * plan.digit_percentage(level) / 100)


def self_income(balance: Decimal, plan: CompensationPlan) -> Decimal:
    """Flat scheduled credit, independent of levels"""
    if balance <= 0:
        return ZERO
    return quantize_amount(balance * plan.self_income_percentage / 100)


def calculate_daily_income(
    parent_balance: Optional[Decimal],
    own_balance: Decimal,
    character_level: Optional[CharacterLevel],
    digit_level: Optional[DigitLevel],
    plan: CompensationPlan,
) -> IncomeBreakdown:
    return IncomeBreakdown(
        character_income=character_income(parent_balance, character_level, plan),
        digit_income=digit_income(own_balance, digit_level, plan),
    )
