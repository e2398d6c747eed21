"""
Fake-content detection module — stylometric heuristics for synthetic or
misleading text.

Signals, each scaled to 0–1 where 1 looks more fake:
- low lexical diversity (type-token ratio)
- repeated word trigrams
- uniform sentence lengths (low burstiness)
- sensational / clickbait phrasing
- shouting (uppercase words) and exclamation density

fake_score is the weighted sum; labels use fixed cut-offs.
"""

from __future__ import annotations

import re
from collections import Counter
from typing import Any

import numpy as np
from pydantic import Field

from safe_suite.modules.base import ModuleRequest, OperationSpec, SafetyModule

LABEL_FAKE = "likely_fake"
LABEL_UNCERTAIN = "uncertain"
LABEL_AUTHENTIC = "likely_authentic"
LABEL_INSUFFICIENT = "insufficient_text"

FAKE_THRESHOLD = 0.6
UNCERTAIN_THRESHOLD = 0.35
DEFAULT_MIN_WORDS = 20

SIGNAL_WEIGHTS = {
    "low_lexical_diversity": 0.2,
    "repetition": 0.25,
    "uniform_sentences": 0.15,
    "sensational_language": 0.25,
    "shouting": 0.15,
}

SENSATIONAL_PHRASES = (
    "you won't believe", "shocking", "breaking", "exposed", "they don't want you to know",
    "miracle", "secret", "unbelievable", "doctors hate", "share before", "100% proven",
    "mainstream media", "wake up", "banned", "bombshell",
)

_WORD_RE = re.compile(r"[A-Za-z0-9']+")
_SENTENCE_RE = re.compile(r"[^.!?]+[.!?]*")


class DetectFakeTextRequest(ModuleRequest):
    text: str = Field(..., max_length=200_000)
    min_words: int = Field(DEFAULT_MIN_WORDS, ge=1)


def _label(score: float) -> str:
    if score >= FAKE_THRESHOLD:
        return LABEL_FAKE
    if score >= UNCERTAIN_THRESHOLD:
        return LABEL_UNCERTAIN
    return LABEL_AUTHENTIC


def compute_signals(text: str) -> tuple[dict[str, float], dict[str, Any]]:
    words = _WORD_RE.findall(text)
    lower = [w.lower() for w in words]
    n = len(lower)

    ttr = len(set(lower)) / n
    # Short texts naturally have high TTR; only very low diversity is suspicious.
    low_diversity = float(np.clip((0.6 - ttr) / 0.4, 0.0, 1.0))

    trigrams = [tuple(lower[i:i + 3]) for i in range(n - 2)]
    repeated = sum(c for c in Counter(trigrams).values() if c > 1)
    repetition_ratio = repeated / len(trigrams) if trigrams else 0.0
    repetition = float(np.clip(repetition_ratio / 0.3, 0.0, 1.0))

    sentences = [s for s in (m.group(0).strip() for m in _SENTENCE_RE.finditer(text)) if _WORD_RE.search(s)]
    lengths = np.array([len(_WORD_RE.findall(s)) for s in sentences], dtype=float)
    if len(lengths) >= 3 and lengths.mean() > 0:
        burstiness = float(lengths.std() / lengths.mean())
        uniform = float(np.clip((0.35 - burstiness) / 0.35, 0.0, 1.0))
    else:
        burstiness = None
        uniform = 0.0

    lowered_text = " ".join(lower)
    sensational_hits = [p for p in SENSATIONAL_PHRASES if p in lowered_text or p in text.lower()]
    sensational = float(np.clip(len(sensational_hits) / 3.0, 0.0, 1.0))

    upper_words = sum(1 for w in words if len(w) > 2 and w.isupper())
    upper_ratio = upper_words / n
    exclamation_density = text.count("!") / max(len(sentences), 1)
    shouting = float(np.clip(upper_ratio / 0.2 + exclamation_density / 2.0, 0.0, 1.0))

    signals = {
        "low_lexical_diversity": round(low_diversity, 6),
        "repetition": round(repetition, 6),
        "uniform_sentences": round(uniform, 6),
        "sensational_language": round(sensational, 6),
        "shouting": round(shouting, 6),
    }
    stats = {
        "words": n,
        "sentences": len(sentences),
        "type_token_ratio": round(ttr, 6),
        "repeated_trigram_ratio": round(repetition_ratio, 6),
        "sentence_burstiness": round(burstiness, 6) if burstiness is not None else None,
        "uppercase_ratio": round(upper_ratio, 6),
        "exclamation_density": round(exclamation_density, 6),
        "sensational_phrases": sensational_hits,
    }
    return signals, stats


class FakeContentModule(SafetyModule):
    name = "fake_content"
    description = "Fake-content detection: stylometric heuristics for synthetic or sensational text."
    tags = ("content", "misinformation")

    def operations(self) -> dict[str, OperationSpec]:
        return {
            "detect_fake_text": OperationSpec(DetectFakeTextRequest, self.detect_fake_text, "Score one text"),
        }

    def detect_fake_text(self, req: DetectFakeTextRequest) -> dict[str, Any]:
        n_words = len(_WORD_RE.findall(req.text))
        if n_words < req.min_words:
            return {
                "label": LABEL_INSUFFICIENT,
                "fake_score": None,
                "signals": {},
                "stats": {"words": n_words},
            }
        signals, stats = compute_signals(req.text)
        score = sum(SIGNAL_WEIGHTS[k] * v for k, v in signals.items())
        score = round(float(np.clip(score, 0.0, 1.0)), 6)
        return {
            "label": _label(score),
            "fake_score": score,
            "signals": signals,
            "stats": stats,
        }
