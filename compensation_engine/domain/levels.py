"""Level classification - pure functions over graph state and wallet balances"""

from decimal import Decimal
from typing import Iterable, List, Optional

from compensation_engine.domain.models import CharacterLevel, DigitClassification, DirectMember
from compensation_engine.domain.plan import CompensationPlan, DigitTierRule


def classify_character_level(upline_depth: int, plan: CompensationPlan) -> Optional[CharacterLevel]:
    """
    Map upline depth to a character tier.

    Depth 0 (no referrer) is the first tier; depths at or beyond the number
    of tiers get no character level.
    """
    return plan.character_level_for_depth(upline_depth)


def count_valid_members(direct_members: Iterable[DirectMember], minimum: Decimal) -> int:
    """Direct referrals whose balance meets the tier's member wallet minimum"""
    return sum(1 for m in direct_members if m.wallet_balance >= minimum)


def unmet_criteria(
    rule: DigitTierRule,
    own_balance: Decimal,
    direct_members: List[DirectMember],
) -> List[str]:
    """
    List the criteria of one digit tier the member does not satisfy.

    Empty list means the tier is fully met.
    """
    missing = []
    valid = count_valid_members(direct_members, rule.member_wallet_min)
    if valid < rule.direct_members:
        missing.append(
            f"{rule.level.value} needs {rule.direct_members} direct members with balance >= "
            f"{rule.member_wallet_min}, has {valid}"
        )
    if own_balance < rule.self_wallet_min:
        missing.append(
            f"{rule.level.value} needs own wallet balance >= {rule.self_wallet_min}, has {own_balance}"
        )
    return missing


def classify_digit_level(
    own_balance: Decimal,
    direct_members: List[DirectMember],
    plan: CompensationPlan,
) -> DigitClassification:
    """
    Pick the highest digit tier whose criteria all hold.

    Tiers are checked from the top down and the first match wins, so a
    member qualifying for Lvl5 and Lvl1 is Lvl5. No direct referrals means
    no digit level regardless of balance.
    """
    if not direct_members:
        return DigitClassification(level=None, valid_members=0, direct_members=[])

    lowest_min = min((r.member_wallet_min for r in plan.digit_tiers), default=Decimal("0"))
    valid = count_valid_members(direct_members, lowest_min)

    for rule in plan.digit_tiers_highest_first():
        if not unmet_criteria(rule, own_balance, direct_members):
            return DigitClassification(level=rule.level, valid_members=valid, direct_members=direct_members)

    return DigitClassification(level=None, valid_members=valid, direct_members=direct_members)
