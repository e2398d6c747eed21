"""
Pytest tests for the bias detection module.
"""

from __future__ import annotations

import pytest

from safe_suite.core.exceptions import ModuleInputError
from safe_suite.modules.bias import BiasModule


def run(payload):
    return BiasModule().run("detect_bias", payload)


def test_disparate_impact_below_four_fifths_is_flagged():
    # Group a: 8/10 selected; group b: 2/5 selected
    out = run({
        "predictions": [1] * 8 + [0] * 2 + [1] * 2 + [0] * 3,
        "groups": ["a"] * 10 + ["b"] * 5,
    })
    assert out["privileged_group"] == "a"
    assert out["groups"]["a"]["selection_rate"] == pytest.approx(0.8)
    assert out["groups"]["b"]["selection_rate"] == pytest.approx(0.4)
    comparison = out["comparisons"][0]
    assert comparison["group"] == "b"
    assert comparison["disparate_impact"] == pytest.approx(0.5)
    assert comparison["statistical_parity_difference"] == pytest.approx(-0.4)
    metrics = {f["metric"] for f in out["findings"]}
    assert metrics == {"disparate_impact", "statistical_parity_difference"}
    assert out["bias_detected"] is True


def test_equal_rates_are_not_flagged():
    out = run({
        "predictions": [1, 0, 1, 0],
        "labels": [1, 0, 1, 0],
        "groups": ["x", "x", "y", "y"],
        "privileged_group": "y",
    })
    assert out["privileged_group"] == "y"
    row = out["comparisons"][0]
    assert row["disparate_impact"] == 1.0
    assert row["equal_opportunity_difference"] == 0.0
    assert row["average_odds_difference"] == 0.0
    assert out["findings"] == []
    assert out["bias_detected"] is False


def test_zero_privileged_rate_leaves_disparate_impact_undefined():
    out = run({"predictions": [0, 0, 0, 1], "groups": ["a", "a", "a", "b"]})
    assert out["comparisons"][0]["disparate_impact"] is None


@pytest.mark.parametrize(
    "payload",
    [
        {"predictions": [1, 0], "groups": ["a"]},
        {"predictions": [1, 2], "groups": ["a", "b"]},
        {"predictions": [1, 0], "groups": ["a", "a"]},
        {"predictions": [1, 0], "groups": ["a", "b"], "privileged_group": "c"},
        {"predictions": [1, 0], "labels": [1], "groups": ["a", "b"]},
    ],
)
def test_invalid_inputs(payload):
    with pytest.raises(ModuleInputError):
        run(payload)
