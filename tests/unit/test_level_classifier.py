"""Unit tests for character and digit level classification"""

import pytest
from decimal import Decimal
from typing import List
from compensation_engine.domain.levels import (
    classify_character_level,
    classify_digit_level,
    count_valid_members,
    unmet_criteria,
)
from compensation_engine.domain.models import CharacterLevel, DigitLevel, DirectMember
from compensation_engine.domain.plan import default_plan


def members(count: int, balance: str = "100") -> List[DirectMember]:
    return [DirectMember(member_id=i, joined_at=None, wallet_balance=Decimal(balance)) for i in range(1, count + 1)]


@pytest.mark.parametrize(
    "depth,expected",
    [
        (0, CharacterLevel.A),
        (1, CharacterLevel.B),
        (2, CharacterLevel.C),
        (3, CharacterLevel.D),
        (4, CharacterLevel.E),
        (5, None),
        (12, None),
    ],
)
def test_character_level_by_depth(depth, expected):
    assert classify_character_level(depth, default_plan()) == expected


def test_digit_level_minimum_boundary_qualifies():
    """Exactly 5 valid members and 200 own balance is Lvl1"""
    result = classify_digit_level(Decimal("200"), members(5), default_plan())
    assert result.level == DigitLevel.LVL1
    assert result.valid_members == 5


def test_digit_level_four_members_not_enough():
    result = classify_digit_level(Decimal("200"), members(4), default_plan())
    assert result.level is None
    assert result.valid_members == 4


def test_digit_level_balance_just_below_minimum():
    result = classify_digit_level(Decimal("199"), members(5), default_plan())
    assert result.level is None


def test_digit_level_highest_tier_wins():
    """A member meeting Lvl5 also meets Lvl1..Lvl4; the top tier is assigned"""
    result = classify_digit_level(Decimal("10000"), members(80), default_plan())
    assert result.level == DigitLevel.LVL5


def test_digit_level_lvl3_needs_twenty_members():
    plan = default_plan()
    assert classify_digit_level(Decimal("1100"), members(20), plan).level == DigitLevel.LVL3
    assert classify_digit_level(Decimal("1100"), members(19), plan).level == DigitLevel.LVL2


def test_digit_level_limited_by_own_balance():
    """Enough members for Lvl4 but own balance only reaches Lvl2"""
    result = classify_digit_level(Decimal("600"), members(40), default_plan())
    assert result.level == DigitLevel.LVL2


def test_digit_level_counts_only_funded_members():
    direct = members(5, balance="50") + members(3, balance="49.99")
    result = classify_digit_level(Decimal("500"), direct, default_plan())
    assert result.valid_members == 5
    assert result.level == DigitLevel.LVL1


def test_digit_level_no_referrals_means_no_level():
    result = classify_digit_level(Decimal("50000"), [], default_plan())
    assert result.level is None
    assert result.valid_members == 0


def test_count_valid_members():
    direct = members(2, balance="10") + members(3, balance="75")
    assert count_valid_members(direct, Decimal("50")) == 3


def test_unmet_criteria_lists_each_missing_requirement():
    rule = default_plan().digit_rule(DigitLevel.LVL2)

    missing = unmet_criteria(rule, Decimal("100"), members(3))

    assert len(missing) == 2
    assert "10 direct members" in missing[0]
    assert "own wallet balance >= 500" in missing[1]


def test_unmet_criteria_empty_when_met():
    rule = default_plan().digit_rule(DigitLevel.LVL1)
    assert unmet_criteria(rule, Decimal("250"), members(6)) == []
