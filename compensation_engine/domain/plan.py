"""Compensation plan: versioned tier tables injected into classification and income"""

import json
from decimal import Decimal
from pathlib import Path
from typing import List, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, model_validator

from compensation_engine.domain.models import CharacterLevel, DigitLevel


class CharacterTierRule(BaseModel):
    """Character tier reached at a given upline depth"""

    model_config = ConfigDict(frozen=True)

    level: CharacterLevel
    depth: int = Field(..., ge=0)
    percentage: Decimal = Field(..., ge=0)  # % of the immediate referrer's balance


class DigitTierRule(BaseModel):
    """Criteria and payout of one digit tier"""

    model_config = ConfigDict(frozen=True)

    level: DigitLevel
    direct_members: int = Field(..., ge=0)
    member_wallet_min: Decimal = Field(..., ge=0)
    self_wallet_min: Decimal = Field(..., ge=0)
    percentage: Decimal = Field(..., ge=0)  # % of own balance


class CompensationPlan(BaseModel):
    """
    Tier tables for both level systems plus the flat self-income rate.

    Character tiers are indexed by upline depth; any depth at or beyond the
    number of tiers has no character level. Digit tiers are listed lowest
    first and evaluated highest first.
    """

    model_config = ConfigDict(frozen=True)

    version: str = "v1"
    character_tiers: List[CharacterTierRule]
    digit_tiers: List[DigitTierRule]
    self_income_percentage: Decimal = Field(Decimal("0.50"), ge=0)

    @model_validator(mode="after")
    def _check_tables(self) -> "CompensationPlan":
        depths = [rule.depth for rule in self.character_tiers]
        if depths != list(range(len(depths))):
            raise ValueError("character tiers must cover depths 0..n-1 in order")

        levels = [rule.level for rule in self.digit_tiers]
        if len(set(levels)) != len(levels):
            raise ValueError("digit tiers must not repeat a level")
        return self

    @property
    def max_character_depth(self) -> int:
        return len(self.character_tiers)

    def character_level_for_depth(self, depth: int) -> Optional[CharacterLevel]:
        if 0 <= depth < len(self.character_tiers):
            return self.character_tiers[depth].level
        return None

    def character_percentage(self, level: Optional[CharacterLevel]) -> Decimal:
        for rule in self.character_tiers:
            if rule.level == level:
                return rule.percentage
        return Decimal("0")

    def digit_rule(self, level: Optional[DigitLevel]) -> Optional[DigitTierRule]:
        for rule in self.digit_tiers:
            if rule.level == level:
                return rule
        return None

    def digit_percentage(self, level: Optional[DigitLevel]) -> Decimal:
        rule = self.digit_rule(level)
        return rule.percentage if rule else Decimal("0")

    def digit_tiers_highest_first(self) -> List[DigitTierRule]:
        return list(reversed(self.digit_tiers))


def default_plan() -> CompensationPlan:
    """Built-in plan (Lvl3 requires 20 valid members)"""
    character = [
        (CharacterLevel.A, "0.05"),
        (CharacterLevel.B, "0.025"),
        (CharacterLevel.C, "0.0125"),
        (CharacterLevel.D, "0.00625"),
        (CharacterLevel.E, "0.003125"),
    ]
    digit = [
        (DigitLevel.LVL1, 5, "200", "0.35"),
        (DigitLevel.LVL2, 10, "500", "0.70"),
        (DigitLevel.LVL3, 20, "1100", "1.40"),
        (DigitLevel.LVL4, 40, "2500", "2.50"),
        (DigitLevel.LVL5, 80, "10000", "4.00"),
    ]
    return CompensationPlan(
        version="v1",
        character_tiers=[
            CharacterTierRule(level=level, depth=depth, percentage=Decimal(pct))
            for depth, (level, pct) in enumerate(character)
        ],
        digit_tiers=[
            DigitTierRule(
                level=level,
                direct_members=members,
                member_wallet_min=Decimal("50"),
                self_wallet_min=Decimal(self_min),
                percentage=Decimal(pct),
            )
            for level, members, self_min, pct in digit
        ],
    )


def load_plan(path: Union[str, Path, None] = None) -> CompensationPlan:
    """Load a plan from a JSON file, falling back to the built-in tables"""
    if path is None:
        return default_plan()
    data = json.loads(Path(path).read_text())
    return CompensationPlan.model_validate(data)
