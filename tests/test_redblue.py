"""
Pytest tests for the red/blue-team simulation module.
"""

from __future__ import annotations

import pytest

from safe_suite.core.exceptions import ModuleInputError
from safe_suite.modules.redblue import TECHNIQUES, RedBlueModule, detection_probability


def simulate(**payload):
    return RedBlueModule().run("simulate_exercise", payload)


def test_same_seed_same_timeline():
    payload = {
        "red_team": [{"technique": "prompt_injection"}, {"technique": "evasion", "skill": 0.8}],
        "blue_team": [{"control": "input_filtering", "strength": 0.6}],
        "rounds": 25,
        "seed": 42,
    }
    a = simulate(**payload)
    b = simulate(**payload)
    assert a["timeline"] == b["timeline"]
    assert a["summary"] == b["summary"]
    assert a["summary"]["attempts"] == 50
    assert len(a["timeline"]) == 50


def test_uncovered_techniques_get_recommendations():
    out = simulate(red_team=[{"technique": "denial_of_wallet"}], rounds=5, include_timeline=False)
    assert out["uncovered_techniques"] == ["denial_of_wallet"]
    assert "rate_limiting" in out["recommendations"][0]
    assert "timeline" not in out
    assert out["techniques"][0]["detection_probability"] == 0.0
    assert out["summary"]["detections"] == 0


def test_full_strength_control_detects_everything():
    out = simulate(
        red_team=[{"technique": "denial_of_wallet"}],
        blue_team=[{"control": "rate_limiting", "strength": 1.0}],
        rounds=20,
    )
    assert out["summary"]["detections"] == 20
    assert out["summary"]["breaches"] == 0
    assert out["summary"]["winner"] == "blue"
    assert out["uncovered_techniques"] == []


def test_duplicate_controls_stack():
    tech = TECHNIQUES["denial_of_wallet"]
    assert detection_probability(tech, {"rate_limiting": 0.75}) == pytest.approx(0.75)
    out = simulate(
        red_team=[{"technique": "denial_of_wallet"}],
        blue_team=[{"control": "rate_limiting", "strength": 0.5}, {"control": "rate_limiting", "strength": 0.5}],
        rounds=1,
    )
    assert out["techniques"][0]["detection_probability"] == pytest.approx(0.75)


def test_unknown_technique_or_control_rejected():
    with pytest.raises(ModuleInputError):
        simulate(red_team=[{"technique": "telepathy"}])
    with pytest.raises(ModuleInputError):
        simulate(red_team=[{"technique": "evasion"}], blue_team=[{"control": "moat"}])


def test_list_catalog():
    out = RedBlueModule().run("list_catalog", {})
    assert len(out["techniques"]) == 7
    assert len(out["controls"]) == 7
