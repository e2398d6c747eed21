"""
Content moderation module.

Each category maps keyword stems, multi-word phrases, regex patterns, ordered
pattern pairs and (for spam) a link count to a severity (0–5).
A category's score is the highest severity it matched.

Verdicts:
* ``block`` – a critical category reached its threshold, or any score is 5.
* ``flag``  – any category reached its threshold.
* ``allow`` – otherwise.
"""

from __future__ import annotations

import re
from collections import Counter
from dataclasses import dataclass, field
from typing import Any, Pattern

from pydantic import Field

from safe_suite.modules.base import ModuleRequest, OperationSpec, SafetyModule

VERDICT_ALLOW = "allow"
VERDICT_FLAG = "flag"
VERDICT_BLOCK = "block"
MAX_SEVERITY = 5


@dataclass
class ModerationCategory:
    slug: str
    name: str
    threshold: int = 3
    critical: bool = False
    keywords: list[tuple[str, int]] = field(default_factory=list)
    phrases: list[tuple[str, int]] = field(default_factory=list)
    patterns: list[tuple[Pattern[str], int]] = field(default_factory=list)
    sequences: list[tuple[Pattern[str], Pattern[str], int]] = field(default_factory=list)
    """(first, later, severity): fires when 'later' matches somewhere after 'first'."""
    link_rule: tuple[int, int] | None = None
    """(min links, severity): fires when the raw text holds at least that many URLs."""


def _p(pattern: str) -> Pattern[str]:
    return re.compile(pattern, re.IGNORECASE)


CATEGORIES: dict[str, ModerationCategory] = {}


def _register(cat: ModerationCategory) -> None:
    CATEGORIES[cat.slug] = cat


_register(ModerationCategory(
    slug="hate",
    name="Hate",
    threshold=2,
    keywords=[("subhuman", 4), ("vermin", 3), ("untermensch", 5), ("infest", 2)],
    phrases=[("go back to your country", 4), ("master race", 5), ("ethnic cleansing", 5), ("race war", 5)],
    patterns=[(_p(r"\b(death\s+to|kill\s+all)\s+\w+"), 5)],
))

_register(ModerationCategory(
    slug="harassment",
    name="Harassment / Threats",
    threshold=2,
    keywords=[("stalk", 3), ("dox", 4), ("swat", 3)],
    phrases=[("i know where you live", 5), ("watch your back", 3), ("you deserve to die", 5), ("i will find you", 4)],
    patterns=[
        (_p(r"\bi('?m| am)\s+going\s+to\s+(kill|hurt|destroy)\s+you\b"), 5),
        (_p(r"\byou\s+(will|should)\s+(die|suffer)\b"), 4),
    ],
))

_register(ModerationCategory(
    slug="self_harm",
    name="Self-harm",
    threshold=2,
    critical=True,
    phrases=[("kill myself", 4), ("end my life", 4), ("better off dead", 4), ("want to die", 3)],
    patterns=[(_p(r"\b(easiest|best|painless)\s+way\s+to\s+die\b"), 5)],
))

_register(ModerationCategory(
    slug="violence",
    name="Violence / Weapons",
    threshold=3,
    keywords=[("pipe bomb", 5), ("napalm", 4), ("ricin", 5), ("sarin", 5), ("massacre", 3), ("behead", 4)],
    phrases=[("how to make a bomb", 5), ("build a weapon", 4), ("mass shooting", 4)],
    patterns=[(_p(r"\bhow\s+(to|do\s+i)\s+(make|build)\s+(a\s+)?(bomb|explosive|gun)\b"), 5)],
))

_register(ModerationCategory(
    slug="sexual",
    name="Sexual Content",
    threshold=3,
    keywords=[("porn", 3), ("xxx", 3), ("erotic", 2), ("nsfw", 2)],
    phrases=[("explicit content", 2)],
    sequences=[(_p(r"\b(child|minor|underage)\b"), _p(r"\b(sex|nude|naked|porn)\b"), 5)],
))

_register(ModerationCategory(
    slug="spam",
    name="Spam / Scams",
    threshold=3,
    keywords=[("viagra", 3), ("crypto giveaway", 4), ("airdrop", 2)],
    phrases=[("click here", 2), ("limited time offer", 2), ("you have won", 3), ("wire transfer", 2),
             ("100% free", 2), ("act now", 2)],
    patterns=[(_p(r"\bsend\s+\d+\s*(btc|eth|usdt)\b"), 4)],
    link_rule=(3, 3),
))

_LEET_MAP = str.maketrans({"0": "o", "1": "i", "3": "e", "4": "a", "5": "s", "7": "t", "@": "a", "$": "s"})
_WORD_RE = re.compile(r"[a-z0-9]+")
_URL_RE = re.compile(r"https?://\S+", re.IGNORECASE)


def normalize(text: str) -> str:
    """Lowercase, reverse basic leetspeak, collapse whitespace ("k1ll" -> "kill")."""
    return " ".join(text.lower().translate(_LEET_MAP).split())


def _keyword_hit(stem: str, normalized: str, lowered: str, words: list[str]) -> bool:
    if " " in stem:
        return stem in normalized or stem in lowered
    return any(w.startswith(stem) for w in words)


def _in_order(first: Pattern[str], later: Pattern[str], text: str) -> bool:
    m = first.search(text)
    return m is not None and later.search(text, m.end()) is not None


def score_category(cat: ModerationCategory, raw: str, normalized: str, words: list[str]) -> dict[str, Any]:
    score = 0
    matches: list[str] = []
    lowered = " ".join(raw.lower().split())
    for stem, sev in cat.keywords:
        if _keyword_hit(stem, normalized, lowered, words):
            score = max(score, sev)
            matches.append(stem)
    for phrase, sev in cat.phrases:
        if phrase in normalized or phrase in lowered:
            score = max(score, sev)
            matches.append(phrase)
    for pattern, sev in cat.patterns:
        if pattern.search(raw) or pattern.search(normalized):
            score = max(score, sev)
            matches.append(pattern.pattern)
    for first, later, sev in cat.sequences:
        if _in_order(first, later, raw) or _in_order(first, later, normalized):
            score = max(score, sev)
            matches.append(f"{first.pattern} ... {later.pattern}")
    if cat.link_rule is not None:
        min_links, sev = cat.link_rule
        if len(_URL_RE.findall(raw)) >= min_links:
            score = max(score, sev)
            matches.append(f"{min_links}+ links")
    return {"slug": cat.slug, "name": cat.name, "score": score, "threshold": cat.threshold, "matches": matches}


def moderate(text: str, categories: list[str] | None = None, threshold: int | None = None) -> dict[str, Any]:
    selected = [CATEGORIES[s] for s in categories] if categories else list(CATEGORIES.values())
    normalized = normalize(text)
    words = _WORD_RE.findall(normalized)
    results = []
    verdict = VERDICT_ALLOW
    for cat in selected:
        res = score_category(cat, text, normalized, words)
        limit = threshold if threshold is not None else cat.threshold
        res["threshold"] = limit
        res["triggered"] = res["score"] > 0 and res["score"] >= limit
        if res["triggered"]:
            if cat.critical or res["score"] >= MAX_SEVERITY:
                verdict = VERDICT_BLOCK
            elif verdict != VERDICT_BLOCK:
                verdict = VERDICT_FLAG
        results.append(res)
    return {
        "verdict": verdict,
        "max_severity": max((r["score"] for r in results), default=0),
        "categories": [r for r in results if r["score"] > 0],
    }


class _CategoryFilter(ModuleRequest):
    categories: list[str] | None = None
    threshold: int | None = Field(None, ge=1, le=MAX_SEVERITY)

    def check_categories(self) -> None:
        unknown = [c for c in self.categories or [] if c not in CATEGORIES]
        if unknown:
            raise ValueError(f"unknown categories: {', '.join(unknown)}")


class ModerateTextRequest(_CategoryFilter):
    text: str = Field(..., max_length=100_000)


class ModerateBatchRequest(_CategoryFilter):
    texts: list[str] = Field(..., min_length=1, max_length=1000)


class ListCategoriesRequest(ModuleRequest):
    pass


class ModerationModule(SafetyModule):
    name = "moderation"
    description = "Content moderation: lexicon and pattern scoring across harm categories."
    tags = ("content",)

    def operations(self) -> dict[str, OperationSpec]:
        return {
            "moderate_text": OperationSpec(ModerateTextRequest, self.moderate_text, "Moderate one text"),
            "moderate_batch": OperationSpec(ModerateBatchRequest, self.moderate_batch, "Moderate many texts"),
            "list_categories": OperationSpec(ListCategoriesRequest, self.list_categories, "Category catalogue"),
        }

    def moderate_text(self, req: ModerateTextRequest) -> dict[str, Any]:
        req.check_categories()
        return moderate(req.text, req.categories, req.threshold)

    def moderate_batch(self, req: ModerateBatchRequest) -> dict[str, Any]:
        req.check_categories()
        results = [moderate(t, req.categories, req.threshold) for t in req.texts]
        tally = Counter(r["verdict"] for r in results)
        return {
            "results": results,
            "summary": {v: tally.get(v, 0) for v in (VERDICT_ALLOW, VERDICT_FLAG, VERDICT_BLOCK)},
        }

    def list_categories(self, req: ListCategoriesRequest) -> dict[str, Any]:
        return {
            "categories": [
                {"slug": c.slug, "name": c.name, "threshold": c.threshold, "critical": c.critical}
                for c in CATEGORIES.values()
            ]
        }
