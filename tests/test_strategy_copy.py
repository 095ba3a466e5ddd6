import copy

import pytest

from dropiq.engine.strategy_copy import CopySettings, adjust_risk_level, copy_values, personalize_content

ORIGINAL = {
    "id": 7,
    "title": "Bridge farming on Arbitrum",
    "description": "Route small bridges through Arbitrum weekly.",
    "content": "Step 1: bridge. Step 2: swap.",
    "category": "layer2",
    "difficulty": "intermediate",
    "risk_level": "medium",
    "estimated_time": 60,
    "estimated_reward": 100.0,
    "tags": ["arbitrum", "copy"],
    "tips": ["Use off-peak hours"],
    "requirements": ["0.05 ETH"],
}


def _settings(**kwargs):
    values = {"title": "My bridge plan", "description": "Tuned for me"}
    values.update(kwargs)
    return CopySettings(**values)


def test_risk_ladder_clamps():
    assert adjust_risk_level("low", "conservative") == "low"
    assert adjust_risk_level("extreme", "aggressive") == "extreme"
    assert adjust_risk_level("medium", "aggressive") == "high"
    assert adjust_risk_level("medium", "conservative") == "low"
    assert adjust_risk_level("medium", "moderate") == "medium"
    assert adjust_risk_level("unknown", "aggressive") == "unknown"


def test_copy_does_not_mutate_original():
    before = copy.deepcopy(ORIGINAL)
    copy_values(ORIGINAL, _settings(risk_adjustment="aggressive"))
    assert ORIGINAL == before


def test_copy_values():
    values = copy_values(ORIGINAL, _settings(timeline_multiplier=1.5, budget_multiplier=0.5))
    assert values["tags"] == ["arbitrum", "copy", "personalized"]
    assert values["estimated_time"] == 90
    assert values["estimated_reward"] == 50.0
    assert values["is_public"] is False
    assert values["original_strategy_id"] == 7
    assert values["tips"] == ["Use off-peak hours"]
    assert values["copy_settings"]["timeline_multiplier"] == 1.5


def test_tips_and_requirements_can_be_dropped():
    values = copy_values(ORIGINAL, _settings(include_tips=False, include_requirements=False))
    assert values["tips"] == []
    assert values["requirements"] == []


def test_missing_reward_stays_missing():
    original = dict(ORIGINAL, estimated_reward=None)
    assert copy_values(original, _settings(budget_multiplier=2))["estimated_reward"] is None


@pytest.mark.parametrize("kwargs", [
    {"title": "  "},
    {"description": ""},
    {"risk_adjustment": "reckless"},
    {"timeline_multiplier": 0.4},
    {"timeline_multiplier": 2.5},
    {"budget_multiplier": 3.5},
])
def test_invalid_settings(kwargs):
    with pytest.raises(ValueError):
        copy_values(ORIGINAL, _settings(**kwargs))


def test_personalized_content_layout():
    content = personalize_content(
        ORIGINAL["content"],
        _settings(risk_adjustment="conservative", timeline_multiplier=2, custom_notes="Only weekends", adapt_to_user=True),
        "medium",
    )
    assert content.startswith("# Personalized Strategy Copy")
    assert "**Adjusted Risk Level:** low" in content
    assert "## Custom Notes\n\nOnly weekends" in content
    assert "**200%** of the original timeline" in content
    assert "## Budget Adjustment" not in content
    assert "## Personalized for Your Profile" in content
    assert content.endswith("## Original Strategy Content\n\n" + ORIGINAL["content"])
