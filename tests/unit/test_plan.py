"""Unit tests for the compensation plan tables"""

import json
import pytest
from decimal import Decimal
from pydantic import ValidationError
from compensation_engine.domain.models import CharacterLevel, DigitLevel
from compensation_engine.domain.plan import CompensationPlan, default_plan, load_plan


def test_default_plan_tables():
    plan = default_plan()

    assert plan.max_character_depth == 5
    assert plan.character_percentage(CharacterLevel.A) == Decimal("0.05")
    assert plan.character_percentage(CharacterLevel.E) == Decimal("0.003125")
    assert plan.digit_rule(DigitLevel.LVL3).direct_members == 20
    assert [r.level for r in plan.digit_tiers_highest_first()][0] == DigitLevel.LVL5


def test_unknown_level_has_zero_percentage():
    plan = default_plan()
    assert plan.character_percentage(None) == Decimal("0")
    assert plan.digit_percentage(None) == Decimal("0")


def test_load_plan_without_path_returns_default():
    assert load_plan() == default_plan()


def test_load_plan_from_json(tmp_path):
    data = default_plan().model_dump(mode="json")
    data["version"] = "v2"
    data["self_income_percentage"] = "0.25"
    path = tmp_path / "plan.json"
    path.write_text(json.dumps(data))

    plan = load_plan(path)

    assert plan.version == "v2"
    assert plan.self_income_percentage == Decimal("0.25")


def test_plan_rejects_gap_in_character_depths():
    data = default_plan().model_dump()
    data["character_tiers"] = data["character_tiers"][1:]

    with pytest.raises(ValidationError):
        CompensationPlan.model_validate(data)


def test_plan_rejects_repeated_digit_level():
    data = default_plan().model_dump()
    data["digit_tiers"] = data["digit_tiers"] + data["digit_tiers"][:1]

    with pytest.raises(ValidationError):
        CompensationPlan.model_validate(data)
