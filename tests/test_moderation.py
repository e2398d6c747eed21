"""
Pytest tests for the content moderation module.
"""

from __future__ import annotations

import time

import pytest

from safe_suite.core.exceptions import ModuleInputError
from safe_suite.modules.moderation import ModerationModule, normalize


def moderate(text: str, **extra):
    return ModerationModule().run("moderate_text", {"text": text, **extra})


def test_benign_text_is_allowed():
    out = moderate("Have a lovely day at the park with your family.")
    assert out["verdict"] == "allow"
    assert out["max_severity"] == 0
    assert out["categories"] == []


def test_self_harm_is_critical_and_blocks():
    out = moderate("Sometimes I want to kill myself.")
    assert out["verdict"] == "block"
    slugs = {c["slug"] for c in out["categories"]}
    assert "self_harm" in slugs


def test_spam_is_flagged():
    out = moderate("Click here for a limited time offer, you have won a prize!")
    assert out["verdict"] == "flag"
    spam = next(c for c in out["categories"] if c["slug"] == "spam")
    assert spam["score"] == 3
    assert spam["triggered"] is True
    assert "you have won" in spam["matches"]


def test_leetspeak_is_normalized():
    assert normalize("I kn0w wh3re  y0u l1ve") == "i know where you live"
    out = moderate("I kn0w wh3re y0u l1ve")
    assert out["verdict"] == "block"
    assert out["max_severity"] == 5


def test_category_filter_and_threshold_override():
    out = moderate("Click here", categories=["spam"], threshold=2)
    assert out["verdict"] == "flag"
    assert [c["slug"] for c in out["categories"]] == ["spam"]
    out = moderate("Sometimes I want to kill myself.", categories=["spam"])
    assert out["verdict"] == "allow"


def test_unknown_category_rejected():
    with pytest.raises(ModuleInputError, match="unknown categories"):
        moderate("hello", categories=["astrology"])


def test_batch_summary_counts_verdicts():
    out = ModerationModule().run(
        "moderate_batch",
        {"texts": ["Nice weather today.", "Click here, you have won!", "I want to kill myself"]},
    )
    assert [r["verdict"] for r in out["results"]] == ["allow", "flag", "block"]
    assert out["summary"] == {"allow": 1, "flag": 1, "block": 1}


def test_list_categories():
    out = ModerationModule().run("list_categories", {})
    slugs = [c["slug"] for c in out["categories"]]
    assert slugs == ["hate", "harassment", "self_harm", "violence", "sexual", "spam"]
    assert next(c for c in out["categories"] if c["slug"] == "self_harm")["critical"] is True


def test_three_links_count_as_spam():
    out = moderate("see http://a.example http://b.example and https://c.example", categories=["spam"])
    spam = out["categories"][0]
    assert spam["score"] == 3
    assert "3+ links" in spam["matches"]
    assert out["verdict"] == "flag"


def test_two_long_links_scan_in_linear_time():
    text = "http://" + "a" * 5000 + " http://" + "b" * 5000
    start = time.perf_counter()
    out = moderate(text, categories=["spam"])
    assert time.perf_counter() - start < 1.0
    assert out["verdict"] == "allow"
    assert out["categories"] == []


def test_ordered_terms_block_and_scan_in_linear_time():
    out = moderate("Selling underage nude photos", categories=["sexual"])
    assert out["verdict"] == "block"
    assert out["categories"][0]["score"] == 5

    assert moderate("nude beach, then a child's birthday", categories=["sexual"])["verdict"] == "allow"

    start = time.perf_counter()
    out = moderate("child " * 15000, categories=["sexual"])
    assert time.perf_counter() - start < 1.0
    assert out["verdict"] == "allow"
