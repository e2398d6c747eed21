"""
Data-poisoning detection module.

Two complementary detectors over a labelled dataset:

- kNN label disagreement: a sample whose k nearest neighbours mostly carry a
  different label is a label-flip candidate.
- Spectral signature: within each class, project centred features onto the
  top singular vector; backdoored samples tend to sit far out along it.
  Scores are judged with a robust (median/MAD) z-score.
"""

from __future__ import annotations

from collections import Counter
from typing import Any

import numpy as np
from pydantic import Field, model_validator
from sklearn.neighbors import NearestNeighbors

from safe_suite.modules.base import ModuleRequest, OperationSpec, SafetyModule
from safe_suite.safe_logging import get_logger

logger = get_logger(__name__)

REASON_LABEL_DISAGREEMENT = "label_disagreement"
REASON_SPECTRAL_OUTLIER = "spectral_outlier"
MIN_CLASS_SIZE = 4


class DetectPoisoningRequest(ModuleRequest):
    samples: list[list[float]] = Field(..., min_length=2)
    labels: list[int | str] = Field(..., min_length=2)
    k: int = Field(5, ge=1)
    disagreement_threshold: float = Field(0.6, gt=0, le=1)
    z_threshold: float = Field(3.5, gt=0)

    @model_validator(mode="after")
    def _check(self) -> "DetectPoisoningRequest":
        if len(self.samples) != len(self.labels):
            raise ValueError("samples and labels must have the same length")
        widths = {len(s) for s in self.samples}
        if len(widths) != 1 or 0 in widths:
            raise ValueError("samples must be non-empty rows of equal length")
        return self


def knn_disagreement(x: np.ndarray, labels: np.ndarray, k: int) -> np.ndarray:
    """Fraction of each sample's k nearest neighbours (excluding itself) with another label."""
    k = min(k, len(x) - 1)
    nn = NearestNeighbors(n_neighbors=k + 1).fit(x)
    _, idx = nn.kneighbors(x)
    out = np.empty(len(x))
    for i, row in enumerate(idx):
        neighbours = [j for j in row if j != i][:k]
        out[i] = float(np.mean(labels[neighbours] != labels[i]))
    return out


def spectral_scores(x: np.ndarray) -> np.ndarray:
    centred = x - x.mean(axis=0)
    _, _, vt = np.linalg.svd(centred, full_matrices=False)
    return (centred @ vt[0]) ** 2


def robust_z(values: np.ndarray) -> np.ndarray:
    median = np.median(values)
    mad = np.median(np.abs(values - median))
    if mad == 0:
        return np.zeros_like(values)
    return 0.6745 * (values - median) / mad


class PoisoningModule(SafetyModule):
    name = "poisoning"
    description = "Data-poisoning detection: kNN label disagreement and spectral-signature outliers."
    tags = ("data", "integrity")

    def operations(self) -> dict[str, OperationSpec]:
        return {
            "detect_poisoning": OperationSpec(
                DetectPoisoningRequest, self.detect_poisoning, "Find suspicious training samples"
            ),
        }

    def detect_poisoning(self, req: DetectPoisoningRequest) -> dict[str, Any]:
        x = np.asarray(req.samples, dtype=float)
        labels = np.asarray([str(v) for v in req.labels], dtype=object)
        reasons: dict[int, list[dict[str, Any]]] = {}

        disagreement = knn_disagreement(x, labels, req.k)
        for i, frac in enumerate(disagreement):
            if frac >= req.disagreement_threshold:
                reasons.setdefault(i, []).append({
                    "reason": REASON_LABEL_DISAGREEMENT,
                    "score": round(float(frac), 6),
                    "threshold": req.disagreement_threshold,
                })

        per_class = []
        for label, count in sorted(Counter(labels.tolist()).items()):
            members = np.flatnonzero(labels == label)
            summary: dict[str, Any] = {"label": label, "count": int(count), "spectral_outliers": 0}
            if count >= MIN_CLASS_SIZE:
                z = robust_z(spectral_scores(x[members]))
                for idx, score in zip(members, z):
                    if score > req.z_threshold:
                        summary["spectral_outliers"] += 1
                        reasons.setdefault(int(idx), []).append({
                            "reason": REASON_SPECTRAL_OUTLIER,
                            "score": round(float(score), 6),
                            "threshold": req.z_threshold,
                        })
            else:
                summary["skipped"] = f"fewer than {MIN_CLASS_SIZE} samples"
            summary["suspicious"] = int(sum(1 for i in members if int(i) in reasons))
            per_class.append(summary)

        suspicious = sorted(reasons)
        logger.info("poisoning_scan_completed", samples=len(x), suspicious=len(suspicious))
        return {
            "samples": int(len(x)),
            "suspicious_indices": suspicious,
            "details": [{"index": i, "label": labels[i], "reasons": reasons[i]} for i in suspicious],
            "classes": per_class,
            "estimated_poison_rate": round(len(suspicious) / len(x), 6),
        }
