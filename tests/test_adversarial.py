"""
Pytest tests for the adversarial module and the shared linear model.
"""

from __future__ import annotations

import numpy as np
import pytest

from safe_suite.core.exceptions import ModuleInputError
from safe_suite.modules.adversarial import AdversarialModule
from safe_suite.modules.linear import LinearModel, LinearModelData

# Binary model: class 1 iff x0 > 0
BINARY_MODEL = {"weights": [1.0, 0.0], "bias": 0.0}
INPUTS = [[0.05, 0.0], [0.5, 0.0], [-0.05, 0.0], [-0.5, 0.0]]
LABELS = [1, 1, 0, 0]


def attack(method: str, epsilon: float = 0.1, **extra):
    params = {"method": method, "epsilon": epsilon, "inputs": INPUTS, "labels": LABELS}
    params.update(extra)
    return AdversarialModule().run("simulate_attack", {"model_data": BINARY_MODEL, "attack_params": params})


def test_binary_model_becomes_two_classes():
    model = LinearModel.from_data(LinearModelData(**BINARY_MODEL))
    assert model.n_classes == 2
    assert model.n_features == 2
    np.testing.assert_allclose(model.probabilities(np.array([[0.0, 0.0]])), [[0.5, 0.5]])


def test_multiclass_bias_length_checked():
    with pytest.raises(ValueError, match="bias"):
        LinearModel.from_data(LinearModelData(weights=[[1.0], [2.0]], bias=[0.0]))


def test_fgsm_flips_points_near_the_boundary():
    out = attack("fgsm")
    assert out["clean_accuracy"] == 1.0
    assert out["adversarial_accuracy"] == 0.5
    assert out["attack_success_rate"] == 0.5
    assert out["robustness_score"] == 0.5
    assert out["mean_linf_perturbation"] == pytest.approx(0.1)
    assert out["adversarial_predictions"] == [0, 1, 1, 0]


def test_pgd_stays_inside_epsilon_ball():
    out = attack("pgd", epsilon=0.1, steps=20, return_examples=True)
    x = np.asarray(INPUTS)
    x_adv = np.asarray(out["adversarial_examples"])
    assert np.abs(x_adv - x).max() <= 0.1 + 1e-9
    assert out["adversarial_accuracy"] == 0.5


def test_noise_is_seeded_and_clipped():
    a = attack("noise", epsilon=0.2, seed=7, return_examples=True, clip_min=-0.5, clip_max=0.5)
    b = attack("noise", epsilon=0.2, seed=7, return_examples=True, clip_min=-0.5, clip_max=0.5)
    assert a["adversarial_examples"] == b["adversarial_examples"]
    x_adv = np.asarray(a["adversarial_examples"])
    assert x_adv.min() >= -0.5 and x_adv.max() <= 0.5


def test_labels_out_of_range_rejected():
    with pytest.raises(ModuleInputError, match="labels"):
        AdversarialModule().run(
            "simulate_attack",
            {"model_data": BINARY_MODEL, "attack_params": {"inputs": [[1.0, 0.0]], "labels": [3]}},
        )


def test_feature_count_mismatch_rejected():
    with pytest.raises(ModuleInputError, match="features"):
        AdversarialModule().run(
            "simulate_attack",
            {"model_data": BINARY_MODEL, "attack_params": {"inputs": [[1.0, 0.0, 2.0]], "labels": [1]}},
        )


def test_evaluate_robustness_curve_and_critical_epsilon():
    out = AdversarialModule().run(
        "evaluate_robustness",
        {"model_data": BINARY_MODEL, "inputs": INPUTS, "labels": LABELS, "epsilons": [1.0, 0.01, 0.1]},
    )
    assert [p["epsilon"] for p in out["curve"]] == [0.01, 0.1, 1.0]
    assert [p["adversarial_accuracy"] for p in out["curve"]] == [1.0, 0.5, 0.0]
    assert out["critical_epsilon"] == 1.0


def test_inputs_outside_clip_range_rejected():
    with pytest.raises(ModuleInputError) as exc:
        AdversarialModule().run(
            "simulate_attack",
            {
                "model_data": BINARY_MODEL,
                "attack_params": {"inputs": [[5.0, 0.0]], "labels": [1], "clip_min": 0.0, "clip_max": 1.0},
            },
        )
    assert "inputs must lie within [clip_min, clip_max]" in exc.value.errors[0]["msg"]
    with pytest.raises(ModuleInputError) as exc:
        AdversarialModule().run(
            "evaluate_robustness",
            {"model_data": BINARY_MODEL, "inputs": [[0.5, -2.0]], "labels": [1], "clip_min": 0.0},
        )
    assert "inputs must lie within [clip_min, clip_max]" in exc.value.errors[0]["msg"]


def test_clipped_fgsm_stays_inside_epsilon_ball():
    out = attack("fgsm", epsilon=0.1, return_examples=True, clip_min=-0.5, clip_max=0.5)
    x_adv = np.asarray(out["adversarial_examples"])
    assert np.abs(x_adv - np.asarray(INPUTS)).max() <= 0.1 + 1e-9
    assert x_adv.min() >= -0.5 and x_adv.max() <= 0.5


@pytest.mark.parametrize("bad", [float("nan"), float("inf"), float("-inf")])
def test_non_finite_inputs_rejected(bad):
    with pytest.raises(ModuleInputError) as exc:
        attack("fgsm", inputs=[[bad, 0.0], [0.5, 0.0], [-0.05, 0.0], [-0.5, 0.0]])
    assert exc.value.errors[0]["type"] == "finite_number"


def test_non_finite_model_weights_rejected():
    with pytest.raises(ModuleInputError):
        AdversarialModule().run(
            "simulate_attack",
            {
                "model_data": {"weights": [float("nan"), 0.0], "bias": 0.0},
                "attack_params": {"inputs": INPUTS, "labels": LABELS},
            },
        )


def test_huge_label_is_an_input_error():
    with pytest.raises(ModuleInputError, match="labels"):
        AdversarialModule().run(
            "simulate_attack",
            {"model_data": BINARY_MODEL, "attack_params": {"inputs": [[1.0, 0.0]], "labels": [10**20]}},
        )
