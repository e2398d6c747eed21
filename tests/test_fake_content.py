"""
Pytest tests for the fake-content detection module.
"""

from __future__ import annotations

import pytest

from safe_suite.modules.fake_content import FakeContentModule

SENSATIONAL = (
    "SHOCKING!!! You won't believe this SECRET miracle cure. "
    "SHOCKING!!! You won't believe this SECRET miracle cure. "
    "SHOCKING!!! You won't believe this SECRET miracle cure. "
    "BANNED bombshell!!!"
)

NEWS = (
    "The committee met on Tuesday to review the annual budget. "
    "After a long discussion about maintenance costs, members agreed to postpone the new library wing until spring. "
    "Funding for schools was approved. "
    "Several residents asked questions about parking near the station, and staff promised a report next month."
)


def detect(text: str, **extra):
    return FakeContentModule().run("detect_fake_text", {"text": text, **extra})


def test_sensational_repetitive_text_is_likely_fake():
    out = detect(SENSATIONAL)
    assert out["label"] == "likely_fake"
    assert out["fake_score"] >= 0.6
    assert out["signals"]["sensational_language"] == 1.0
    assert out["signals"]["repetition"] == 1.0
    assert "shocking" in out["stats"]["sensational_phrases"]


def test_plain_reporting_is_likely_authentic():
    out = detect(NEWS)
    assert out["label"] == "likely_authentic"
    assert out["fake_score"] < 0.35
    assert out["stats"]["sensational_phrases"] == []


def test_short_text_is_insufficient():
    out = detect("Too short to judge.")
    assert out["label"] == "insufficient_text"
    assert out["fake_score"] is None
    assert out["stats"] == {"words": 4}


def test_min_words_is_configurable():
    out = detect("Too short to judge.", min_words=3)
    assert out["label"] != "insufficient_text"
    assert 0.0 <= out["fake_score"] <= 1.0


@pytest.mark.parametrize("text", [SENSATIONAL, NEWS])
def test_signals_are_bounded(text):
    out = detect(text)
    assert all(0.0 <= v <= 1.0 for v in out["signals"].values())
