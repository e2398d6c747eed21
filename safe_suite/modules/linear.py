"""
Linear softmax classifier shared by the adversarial and explainability modules.

model_data is {"weights": [[...], ...], "bias": [...]} with one weight row per
class, or a flat weight list plus scalar bias for a binary logistic model
(treated as two classes with logits [0, w·x + b]).
"""

from __future__ import annotations

from typing import Any

import numpy as np
from pydantic import Field

from safe_suite.modules.base import ModuleRequest


class LinearModelData(ModuleRequest):
    weights: list[list[float]] | list[float] = Field(..., min_length=1)
    bias: list[float] | float = 0.0
    feature_names: list[str] | None = None


class LinearModel:
    """logits = x @ W.T + b; probabilities by softmax."""

    def __init__(self, weights: np.ndarray, bias: np.ndarray, feature_names: list[str] | None = None) -> None:
        self.weights = weights
        self.bias = bias
        self.feature_names = feature_names or [f"x{i}" for i in range(weights.shape[1])]

    @classmethod
    def from_data(cls, data: LinearModelData) -> "LinearModel":
        raw = data.weights
        if raw and isinstance(raw[0], list):
            weights = np.asarray(raw, dtype=float)
            if weights.ndim != 2 or weights.shape[1] == 0:
                raise ValueError("weights must be a non-empty matrix")
            bias = np.asarray(data.bias if isinstance(data.bias, list) else [data.bias] * weights.shape[0], dtype=float)
            if bias.shape != (weights.shape[0],):
                raise ValueError(f"bias must have {weights.shape[0]} entries, got {bias.size}")
            if weights.shape[0] < 2:
                raise ValueError("a multi-class model needs at least 2 weight rows")
        else:
            w = np.asarray(raw, dtype=float)
            if isinstance(data.bias, list):
                if len(data.bias) != 1:
                    raise ValueError("binary model takes a scalar bias")
                b = float(data.bias[0])
            else:
                b = float(data.bias)
            weights = np.vstack([np.zeros_like(w), w])
            bias = np.array([0.0, b])
        names = data.feature_names
        if names is not None and len(names) != weights.shape[1]:
            raise ValueError(f"feature_names must have {weights.shape[1]} entries, got {len(names)}")
        return cls(weights, bias, names)

    @property
    def n_features(self) -> int:
        return int(self.weights.shape[1])

    @property
    def n_classes(self) -> int:
        return int(self.weights.shape[0])

    def check_inputs(self, inputs: Any) -> np.ndarray:
        x = np.asarray(inputs, dtype=float)
        if x.ndim == 1:
            x = x.reshape(1, -1)
        if x.ndim != 2 or x.shape[1] != self.n_features:
            raise ValueError(f"inputs must have {self.n_features} features per row")
        return x

    def logits(self, x: np.ndarray) -> np.ndarray:
        return x @ self.weights.T + self.bias

    def probabilities(self, x: np.ndarray) -> np.ndarray:
        z = self.logits(x)
        z = z - z.max(axis=1, keepdims=True)
        e = np.exp(z)
        return e / e.sum(axis=1, keepdims=True)

    def predict(self, x: np.ndarray) -> np.ndarray:
        return np.argmax(self.logits(x), axis=1)

    def input_gradient(self, x: np.ndarray, labels: np.ndarray) -> np.ndarray:
        """Gradient of cross-entropy loss w.r.t. the input rows."""
        p = self.probabilities(x)
        onehot = np.zeros_like(p)
        onehot[np.arange(len(labels)), labels] = 1.0
        return (p - onehot) @ self.weights
