"""
Pytest tests for the data-poisoning detection module.
"""

from __future__ import annotations

import numpy as np
import pytest

from safe_suite.core.exceptions import ModuleInputError
from safe_suite.modules.poisoning import PoisoningModule, knn_disagreement, robust_z

CLASS_0 = [[0.0, 0.0], [0.2, 0.01], [0.4, 0.0], [0.6, 0.02], [0.8, 0.01]]
CLASS_1 = [[5.0, 5.0], [5.2, 5.01], [5.4, 5.0], [5.6, 5.02], [5.8, 5.01]]


def detect(samples, labels, **extra):
    return PoisoningModule().run("detect_poisoning", {"samples": samples, "labels": labels, **extra})


def test_clean_clusters_have_no_suspects():
    out = detect(CLASS_0 + CLASS_1, [0] * 5 + [1] * 5, k=3)
    assert out["suspicious_indices"] == []
    assert out["estimated_poison_rate"] == 0.0
    assert [c["label"] for c in out["classes"]] == ["0", "1"]


def test_flipped_label_is_found():
    samples = CLASS_0 + CLASS_1 + [[0.4, 0.005]]
    labels = [0] * 5 + [1] * 5 + [1]
    out = detect(samples, labels, k=3)
    assert out["suspicious_indices"] == [10]
    detail = out["details"][0]
    assert detail["label"] == "1"
    reasons = {r["reason"] for r in detail["reasons"]}
    assert "label_disagreement" in reasons
    assert out["estimated_poison_rate"] == pytest.approx(1 / 11, abs=1e-6)


def test_small_classes_skip_spectral_check():
    out = detect([[0.0], [1.0], [10.0], [11.0]], ["a", "a", "b", "b"], k=1)
    assert all("skipped" in c for c in out["classes"])


def test_k_is_capped_by_dataset_size():
    x = np.array([[0.0], [1.0], [2.0]])
    labels = np.array(["a", "a", "b"], dtype=object)
    out = knn_disagreement(x, labels, k=10)
    assert out.shape == (3,)
    assert out[2] == pytest.approx(1.0)


def test_robust_z_constant_input_is_zero():
    assert robust_z(np.array([2.0, 2.0, 2.0])).tolist() == [0.0, 0.0, 0.0]


def test_mismatched_lengths_rejected():
    with pytest.raises(ModuleInputError):
        detect([[0.0], [1.0]], [0])
    with pytest.raises(ModuleInputError):
        detect([[0.0], [1.0, 2.0]], [0, 1])
