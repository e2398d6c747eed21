"""
Explainability module — feature attributions for linear classifiers.

linear:    contribution_i = W[c, i] * (x_i - baseline_i). Their sum equals
           logit_c(x) - logit_c(baseline) exactly (completeness).
occlusion: drop in the target-class probability when feature i is replaced
           by its baseline value.
"""

from __future__ import annotations

from typing import Any, Literal

import numpy as np
from pydantic import ConfigDict, Field

from safe_suite.modules.base import ModuleRequest, OperationSpec, SafetyModule
from safe_suite.modules.linear import LinearModel, LinearModelData


class ExplainPredictionRequest(ModuleRequest):
    model_config = ConfigDict(protected_namespaces=())

    model_data: LinearModelData
    instance: list[float] = Field(..., min_length=1)
    baseline: list[float] | None = None
    target_class: int | None = Field(None, ge=0)
    method: Literal["linear", "occlusion"] = "linear"
    top_k: int | None = Field(None, ge=1)


class GlobalImportanceRequest(ModuleRequest):
    model_config = ConfigDict(protected_namespaces=())

    model_data: LinearModelData
    inputs: list[list[float]] = Field(..., min_length=1)
    baseline: list[float] | None = None


def _baseline(model: LinearModel, baseline: list[float] | None) -> np.ndarray:
    if baseline is None:
        return np.zeros(model.n_features)
    b = np.asarray(baseline, dtype=float)
    if b.shape != (model.n_features,):
        raise ValueError(f"baseline must have {model.n_features} entries")
    return b


def linear_attributions(model: LinearModel, x: np.ndarray, baseline: np.ndarray, target: int) -> np.ndarray:
    return model.weights[target] * (x - baseline)


def occlusion_attributions(model: LinearModel, x: np.ndarray, baseline: np.ndarray, target: int) -> np.ndarray:
    p_full = model.probabilities(x.reshape(1, -1))[0, target]
    occluded = np.tile(x, (model.n_features, 1))
    idx = np.arange(model.n_features)
    occluded[idx, idx] = baseline
    p_occluded = model.probabilities(occluded)[:, target]
    return p_full - p_occluded


class ExplainabilityModule(SafetyModule):
    name = "explainability"
    description = "Explainability: linear and occlusion feature attributions."
    tags = ("transparency",)

    def operations(self) -> dict[str, OperationSpec]:
        return {
            "explain_prediction": OperationSpec(
                ExplainPredictionRequest, self.explain_prediction, "Per-feature attribution for one instance"
            ),
            "global_importance": OperationSpec(
                GlobalImportanceRequest, self.global_importance, "Mean absolute attribution over a dataset"
            ),
        }

    def explain_prediction(self, req: ExplainPredictionRequest) -> dict[str, Any]:
        model = LinearModel.from_data(req.model_data)
        x = model.check_inputs(req.instance)[0]
        baseline = _baseline(model, req.baseline)
        probs = model.probabilities(x.reshape(1, -1))[0]
        predicted = int(np.argmax(probs))
        target = predicted if req.target_class is None else req.target_class
        if target >= model.n_classes:
            raise ValueError(f"target_class must be < {model.n_classes}")

        if req.method == "linear":
            contrib = linear_attributions(model, x, baseline, target)
        else:
            contrib = occlusion_attributions(model, x, baseline, target)

        order = np.argsort(-np.abs(contrib), kind="stable")
        if req.top_k is not None:
            order = order[: req.top_k]
        attributions = [
            {
                "feature": model.feature_names[i],
                "index": int(i),
                "value": float(x[i]),
                "contribution": round(float(contrib[i]), 8),
            }
            for i in order
        ]
        out: dict[str, Any] = {
            "method": req.method,
            "predicted_class": predicted,
            "target_class": target,
            "probabilities": [round(float(p), 8) for p in probs],
            "attributions": attributions,
        }
        if req.method == "linear":
            logit_gap = float(model.logits(x.reshape(1, -1))[0, target] - model.logits(baseline.reshape(1, -1))[0, target])
            out["completeness_gap"] = round(abs(logit_gap - float(contrib.sum())), 10)
        return out

    def global_importance(self, req: GlobalImportanceRequest) -> dict[str, Any]:
        model = LinearModel.from_data(req.model_data)
        x = model.check_inputs(req.inputs)
        baseline = _baseline(model, req.baseline)
        preds = model.predict(x)
        contrib = np.abs(model.weights[preds] * (x - baseline))
        mean_abs = contrib.mean(axis=0)
        total = float(mean_abs.sum())
        normalized = mean_abs / total if total > 0 else np.zeros_like(mean_abs)
        ranking = np.argsort(-normalized, kind="stable")
        return {
            "samples": int(x.shape[0]),
            "importance": [
                {
                    "feature": model.feature_names[i],
                    "index": int(i),
                    "importance": round(float(normalized[i]), 8),
                    "mean_abs_contribution": round(float(mean_abs[i]), 8),
                }
                for i in ranking
            ],
        }
