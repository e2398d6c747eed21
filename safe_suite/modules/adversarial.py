"""
Adversarial robustness module.

Simulates evasion attacks (FGSM, PGD, random sign noise) against a supplied
linear softmax classifier and reports how much accuracy survives. Every
perturbation stays inside the L-inf ball of radius epsilon around the clean
input and inside the optional [clip_min, clip_max] range.
"""

from __future__ import annotations

from typing import Any, Literal

import numpy as np
from pydantic import ConfigDict, Field, model_validator

from safe_suite.modules.base import ModuleRequest, OperationSpec, SafetyModule
from safe_suite.modules.linear import LinearModel, LinearModelData
from safe_suite.safe_logging import get_logger

logger = get_logger(__name__)

ATTACK_FGSM = "fgsm"
ATTACK_PGD = "pgd"
ATTACK_NOISE = "noise"

DEFAULT_EPSILON = 0.1
DEFAULT_PGD_STEPS = 10


def _check_clip_range(inputs: list[list[float]], clip_min: float | None, clip_max: float | None) -> None:
    if clip_min is not None and clip_max is not None and clip_min > clip_max:
        raise ValueError("clip_min must be <= clip_max")
    values = [v for row in inputs for v in row]
    if (clip_min is not None and any(v < clip_min for v in values)) or (
        clip_max is not None and any(v > clip_max for v in values)
    ):
        raise ValueError("inputs must lie within [clip_min, clip_max]")


class AttackParams(ModuleRequest):
    method: Literal["fgsm", "pgd", "noise"] = ATTACK_FGSM
    epsilon: float = Field(DEFAULT_EPSILON, gt=0)
    steps: int = Field(DEFAULT_PGD_STEPS, ge=1, le=1000)
    step_size: float | None = Field(None, gt=0, description="PGD step; defaults to epsilon / 4")
    clip_min: float | None = None
    clip_max: float | None = None
    seed: int = 0
    inputs: list[list[float]] = Field(..., min_length=1)
    labels: list[int] = Field(..., min_length=1)
    return_examples: bool = False

    @model_validator(mode="after")
    def _check(self) -> "AttackParams":
        if len(self.inputs) != len(self.labels):
            raise ValueError("inputs and labels must have the same length")
        _check_clip_range(self.inputs, self.clip_min, self.clip_max)
        return self


class SimulateAttackRequest(ModuleRequest):
    model_config = ConfigDict(protected_namespaces=())

    model_data: LinearModelData
    attack_params: AttackParams


class EvaluateRobustnessRequest(ModuleRequest):
    model_config = ConfigDict(protected_namespaces=())

    model_data: LinearModelData
    inputs: list[list[float]] = Field(..., min_length=1)
    labels: list[int] = Field(..., min_length=1)
    epsilons: list[float] = Field(default_factory=lambda: [0.01, 0.05, 0.1, 0.2, 0.5], min_length=1)
    clip_min: float | None = None
    clip_max: float | None = None

    @model_validator(mode="after")
    def _check(self) -> "EvaluateRobustnessRequest":
        if len(self.inputs) != len(self.labels):
            raise ValueError("inputs and labels must have the same length")
        if any(e <= 0 for e in self.epsilons):
            raise ValueError("epsilons must be positive")
        _check_clip_range(self.inputs, self.clip_min, self.clip_max)
        return self


def _clip(x: np.ndarray, clip_min: float | None, clip_max: float | None) -> np.ndarray:
    if clip_min is None and clip_max is None:
        return x
    return np.clip(x, clip_min, clip_max)


def fgsm(model: LinearModel, x: np.ndarray, y: np.ndarray, epsilon: float,
         clip_min: float | None = None, clip_max: float | None = None) -> np.ndarray:
    """Single signed-gradient step of size epsilon."""
    grad = model.input_gradient(x, y)
    return _clip(x + epsilon * np.sign(grad), clip_min, clip_max)


def pgd(model: LinearModel, x: np.ndarray, y: np.ndarray, epsilon: float, steps: int, step_size: float,
        clip_min: float | None = None, clip_max: float | None = None) -> np.ndarray:
    """Iterated FGSM projected back onto the epsilon ball after each step."""
    x_adv = x.copy()
    for _ in range(steps):
        grad = model.input_gradient(x_adv, y)
        x_adv = x_adv + step_size * np.sign(grad)
        x_adv = np.clip(x_adv, x - epsilon, x + epsilon)
        x_adv = _clip(x_adv, clip_min, clip_max)
    return x_adv


def random_noise(x: np.ndarray, epsilon: float, seed: int,
                 clip_min: float | None = None, clip_max: float | None = None) -> np.ndarray:
    """Random +/-epsilon per feature: the no-knowledge baseline."""
    rng = np.random.default_rng(seed)
    signs = rng.choice(np.array([-1.0, 1.0]), size=x.shape)
    return _clip(x + epsilon * signs, clip_min, clip_max)


def _check_labels(model: LinearModel, labels: list[int]) -> np.ndarray:
    # Checked before the int64 conversion
    if any(label < 0 or label >= model.n_classes for label in labels):
        raise ValueError(f"labels must be in [0, {model.n_classes - 1}]")
    return np.asarray(labels, dtype=int)


def _summarize(model: LinearModel, x: np.ndarray, x_adv: np.ndarray, y: np.ndarray) -> dict[str, Any]:
    clean_pred = model.predict(x)
    adv_pred = model.predict(x_adv)
    clean_correct = clean_pred == y
    adv_correct = adv_pred == y
    clean_acc = float(clean_correct.mean())
    adv_acc = float(adv_correct.mean())
    n_correct = int(clean_correct.sum())
    flipped = int((clean_correct & ~adv_correct).sum())
    return {
        "samples": int(len(y)),
        "clean_accuracy": round(clean_acc, 6),
        "adversarial_accuracy": round(adv_acc, 6),
        "attack_success_rate": round(flipped / n_correct, 6) if n_correct else 0.0,
        "robustness_score": round(adv_acc / clean_acc, 6) if clean_acc > 0 else 0.0,
        "mean_linf_perturbation": round(float(np.abs(x_adv - x).max(axis=1).mean()), 6),
        "clean_predictions": clean_pred.tolist(),
        "adversarial_predictions": adv_pred.tolist(),
    }


class AdversarialModule(SafetyModule):
    name = "adversarial"
    description = "Adversarial robustness: FGSM/PGD/noise evasion attacks on linear classifiers."
    tags = ("robustness", "attack")

    def operations(self) -> dict[str, OperationSpec]:
        return {
            "simulate_attack": OperationSpec(
                SimulateAttackRequest, self.simulate_attack, "Run one evasion attack and report accuracy loss"
            ),
            "evaluate_robustness": OperationSpec(
                EvaluateRobustnessRequest, self.evaluate_robustness, "FGSM accuracy curve over epsilons"
            ),
        }

    def simulate_attack(self, req: SimulateAttackRequest) -> dict[str, Any]:
        model = LinearModel.from_data(req.model_data)
        params = req.attack_params
        x = model.check_inputs(params.inputs)
        y = _check_labels(model, params.labels)
        if params.method == ATTACK_FGSM:
            x_adv = fgsm(model, x, y, params.epsilon, params.clip_min, params.clip_max)
        elif params.method == ATTACK_PGD:
            step = params.step_size or params.epsilon / 4.0
            x_adv = pgd(model, x, y, params.epsilon, params.steps, step, params.clip_min, params.clip_max)
        else:
            x_adv = random_noise(x, params.epsilon, params.seed, params.clip_min, params.clip_max)
        out = {"method": params.method, "epsilon": params.epsilon}
        out.update(_summarize(model, x, x_adv, y))
        if params.return_examples:
            out["adversarial_examples"] = x_adv.tolist()
        logger.info(
            "adversarial_attack_simulated",
            method=params.method,
            epsilon=params.epsilon,
            samples=out["samples"],
            adversarial_accuracy=out["adversarial_accuracy"],
        )
        return out

    def evaluate_robustness(self, req: EvaluateRobustnessRequest) -> dict[str, Any]:
        model = LinearModel.from_data(req.model_data)
        x = model.check_inputs(req.inputs)
        y = _check_labels(model, req.labels)
        clean_acc = float((model.predict(x) == y).mean())
        curve = []
        critical = None
        for eps in sorted(req.epsilons):
            x_adv = fgsm(model, x, y, eps, req.clip_min, req.clip_max)
            adv_acc = float((model.predict(x_adv) == y).mean())
            curve.append({"epsilon": eps, "adversarial_accuracy": round(adv_acc, 6)})
            if critical is None and clean_acc > 0 and adv_acc < clean_acc / 2.0:
                critical = eps
        return {
            "clean_accuracy": round(clean_acc, 6),
            "curve": curve,
            "critical_epsilon": critical,
        }
