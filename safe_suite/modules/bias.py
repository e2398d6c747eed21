"""
Bias detection module — group fairness metrics for binary decisions.

Compares each unprivileged group against the privileged group:
statistical parity difference, disparate impact (four-fifths rule), and,
when ground-truth labels are supplied, equal opportunity and average odds
differences. Every finding names the metric, the group, and the threshold.
"""

from __future__ import annotations

from collections import Counter
from typing import Any

import numpy as np
from pydantic import Field, model_validator

from safe_suite.modules.base import ModuleRequest, OperationSpec, SafetyModule

DEFAULT_DI_THRESHOLD = 0.8
DEFAULT_TOLERANCE = 0.1


class DetectBiasRequest(ModuleRequest):
    predictions: list[int] = Field(..., min_length=1)
    labels: list[int] | None = None
    groups: list[str] = Field(..., min_length=1)
    privileged_group: str | None = None
    disparate_impact_threshold: float = Field(DEFAULT_DI_THRESHOLD, gt=0, le=1)
    tolerance: float = Field(DEFAULT_TOLERANCE, ge=0, le=1)

    @model_validator(mode="after")
    def _check(self) -> "DetectBiasRequest":
        n = len(self.predictions)
        if len(self.groups) != n:
            raise ValueError("groups must have the same length as predictions")
        if self.labels is not None and len(self.labels) != n:
            raise ValueError("labels must have the same length as predictions")
        if any(p not in (0, 1) for p in self.predictions):
            raise ValueError("predictions must be 0 or 1")
        if self.labels is not None and any(v not in (0, 1) for v in self.labels):
            raise ValueError("labels must be 0 or 1")
        if self.privileged_group is not None and self.privileged_group not in set(self.groups):
            raise ValueError(f"privileged_group {self.privileged_group!r} not present in groups")
        if len(set(self.groups)) < 2:
            raise ValueError("at least two groups are required")
        return self


def _rate(mask: np.ndarray, values: np.ndarray) -> float | None:
    if not mask.any():
        return None
    return float(values[mask].mean())


def group_stats(pred: np.ndarray, labels: np.ndarray | None, groups: np.ndarray, group: str) -> dict[str, Any]:
    in_group = groups == group
    stats: dict[str, Any] = {
        "count": int(in_group.sum()),
        "selection_rate": float(pred[in_group].mean()),
    }
    if labels is not None:
        stats["true_positive_rate"] = _rate(in_group & (labels == 1), pred)
        stats["false_positive_rate"] = _rate(in_group & (labels == 0), pred)
    return stats


def _diff(a: float | None, b: float | None) -> float | None:
    if a is None or b is None:
        return None
    return round(a - b, 6)


class BiasModule(SafetyModule):
    name = "bias"
    description = "Bias detection: group fairness metrics (parity, disparate impact, equalized odds)."
    tags = ("fairness",)

    def operations(self) -> dict[str, OperationSpec]:
        return {
            "detect_bias": OperationSpec(DetectBiasRequest, self.detect_bias, "Group fairness metrics"),
        }

    def detect_bias(self, req: DetectBiasRequest) -> dict[str, Any]:
        pred = np.asarray(req.predictions, dtype=float)
        labels = np.asarray(req.labels, dtype=int) if req.labels is not None else None
        groups = np.asarray(req.groups, dtype=object)
        counts = Counter(req.groups)
        # Ties broken by first appearance (Counter preserves insertion order)
        privileged = req.privileged_group or counts.most_common(1)[0][0]

        per_group = {g: group_stats(pred, labels, groups, g) for g in counts}
        priv = per_group[privileged]
        comparisons = []
        findings = []
        for g, stats in per_group.items():
            if g == privileged:
                continue
            spd = round(stats["selection_rate"] - priv["selection_rate"], 6)
            di = round(stats["selection_rate"] / priv["selection_rate"], 6) if priv["selection_rate"] > 0 else None
            row: dict[str, Any] = {
                "group": g,
                "statistical_parity_difference": spd,
                "disparate_impact": di,
            }
            if di is not None and di < req.disparate_impact_threshold:
                findings.append({
                    "group": g,
                    "metric": "disparate_impact",
                    "value": di,
                    "threshold": req.disparate_impact_threshold,
                    "message": f"Selection rate of {g} is {di:.2f}x that of {privileged} "
                               f"(below {req.disparate_impact_threshold})",
                })
            if abs(spd) > req.tolerance:
                findings.append({
                    "group": g,
                    "metric": "statistical_parity_difference",
                    "value": spd,
                    "threshold": req.tolerance,
                    "message": f"Selection rate differs from {privileged} by {spd:+.2f}",
                })
            if labels is not None:
                eod = _diff(stats["true_positive_rate"], priv["true_positive_rate"])
                fpr_diff = _diff(stats["false_positive_rate"], priv["false_positive_rate"])
                aod = round((eod + fpr_diff) / 2.0, 6) if eod is not None and fpr_diff is not None else None
                row["equal_opportunity_difference"] = eod
                row["average_odds_difference"] = aod
                for metric, value in (("equal_opportunity_difference", eod), ("average_odds_difference", aod)):
                    if value is not None and abs(value) > req.tolerance:
                        findings.append({
                            "group": g,
                            "metric": metric,
                            "value": value,
                            "threshold": req.tolerance,
                            "message": f"{metric.replace('_', ' ')} vs {privileged} is {value:+.2f}",
                        })
            comparisons.append(row)

        return {
            "privileged_group": privileged,
            "groups": per_group,
            "comparisons": comparisons,
            "findings": findings,
            "bias_detected": bool(findings),
        }
