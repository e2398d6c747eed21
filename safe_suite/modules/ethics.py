"""
Ethical assistant module.

Reviews a proposed AI use case, feature, or prompt against a fixed set of
principles. Each principle lists trigger terms with a severity and the
guidance to give when triggered; mitigation terms already present in the
text (e.g. "anonymized", "opt-in") lower that concern by one level.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Any

from pydantic import Field

from safe_suite.modules.base import ModuleRequest, OperationSpec, SafetyModule

SEVERITY_LOW = "low"
SEVERITY_MEDIUM = "medium"
SEVERITY_HIGH = "high"
_SEVERITY_ORDER = (SEVERITY_LOW, SEVERITY_MEDIUM, SEVERITY_HIGH)


@dataclass(frozen=True)
class Principle:
    slug: str
    name: str
    triggers: tuple[tuple[str, str], ...]
    mitigations: tuple[str, ...]
    guidance: str


PRINCIPLES: dict[str, Principle] = {p.slug: p for p in (
    Principle(
        "privacy", "Privacy",
        (("personal data", SEVERITY_MEDIUM), ("biometric", SEVERITY_HIGH), ("facial recognition", SEVERITY_HIGH),
         ("location tracking", SEVERITY_HIGH), ("medical record", SEVERITY_HIGH), ("scrape", SEVERITY_MEDIUM),
         ("email address", SEVERITY_LOW), ("social security", SEVERITY_HIGH)),
        ("anonymi", "pseudonymi", "encrypt", "data minimi", "aggregate"),
        "Minimise and protect personal data; document retention and lawful basis.",
    ),
    Principle(
        "fairness", "Fairness",
        (("race", SEVERITY_HIGH), ("ethnicity", SEVERITY_HIGH), ("gender", SEVERITY_MEDIUM),
         ("religion", SEVERITY_HIGH), ("age", SEVERITY_LOW), ("credit score", SEVERITY_MEDIUM),
         ("hiring", SEVERITY_MEDIUM), ("loan approval", SEVERITY_MEDIUM), ("zip code", SEVERITY_LOW)),
        ("bias audit", "fairness metric", "disparate impact", "balanced dataset"),
        "Audit outcomes across protected groups before and after deployment.",
    ),
    Principle(
        "transparency", "Transparency",
        (("black box", SEVERITY_MEDIUM), ("without telling", SEVERITY_HIGH), ("hidden", SEVERITY_MEDIUM),
         ("undisclosed", SEVERITY_HIGH), ("impersonat", SEVERITY_HIGH)),
        ("disclose", "explain", "model card", "notify users"),
        "Disclose AI involvement and provide explanations users can act on.",
    ),
    Principle(
        "safety", "Safety",
        (("autonomous weapon", SEVERITY_HIGH), ("medical diagnosis", SEVERITY_HIGH), ("self-driving", SEVERITY_HIGH),
         ("critical infrastructure", SEVERITY_HIGH), ("children", SEVERITY_MEDIUM), ("unsupervised", SEVERITY_MEDIUM)),
        ("human review", "human in the loop", "fail-safe", "red team", "staged rollout"),
        "Keep a human in the loop for high-stakes decisions and test failure modes.",
    ),
    Principle(
        "accountability", "Accountability",
        (("fully automated decision", SEVERITY_HIGH), ("no appeal", SEVERITY_HIGH), ("no oversight", SEVERITY_HIGH),
         ("automatically reject", SEVERITY_MEDIUM), ("automatically deny", SEVERITY_MEDIUM)),
        ("audit log", "appeal process", "oversight board", "human review"),
        "Assign an owner, keep audit logs, and give affected people a way to appeal.",
    ),
    Principle(
        "consent", "Consent",
        (("without consent", SEVERITY_HIGH), ("without permission", SEVERITY_HIGH), ("covert", SEVERITY_HIGH),
         ("secretly", SEVERITY_HIGH), ("opt-out", SEVERITY_LOW), ("deepfake", SEVERITY_HIGH)),
        ("opt-in", "informed consent", "explicit consent", "with permission"),
        "Obtain informed, revocable consent from the people whose data or likeness is used.",
    ),
)}


class ReviewRequest(ModuleRequest):
    text: str = Field(..., min_length=1, max_length=50_000)
    context: str | None = Field(None, max_length=10_000)


class ListPrinciplesRequest(ModuleRequest):
    pass


def _contains(term: str, text: str) -> bool:
    # Word-start match; short terms must be whole words ("age" vs "agent")
    pattern = r"(?<![a-z])" + re.escape(term)
    if len(term) <= 4:
        pattern += r"(?![a-z])"
    return re.search(pattern, text) is not None


def review(text: str, context: str | None = None) -> dict[str, Any]:
    body = f"{text}\n{context or ''}".lower()
    concerns = []
    for principle in PRINCIPLES.values():
        hits = [(term, sev) for term, sev in principle.triggers if _contains(term, body)]
        if not hits:
            continue
        severity = max((sev for _, sev in hits), key=_SEVERITY_ORDER.index)
        mitigations = [m for m in principle.mitigations if _contains(m, body)]
        if mitigations:
            severity = _SEVERITY_ORDER[max(0, _SEVERITY_ORDER.index(severity) - 1)]
        concerns.append({
            "principle": principle.slug,
            "name": principle.name,
            "severity": severity,
            "evidence": [term for term, _ in hits],
            "mitigations_found": mitigations,
            "guidance": principle.guidance,
        })
    concerns.sort(key=lambda c: (-_SEVERITY_ORDER.index(c["severity"]), c["principle"]))
    risk = concerns[0]["severity"] if concerns else "none"
    return {
        "approved": not any(c["severity"] == SEVERITY_HIGH for c in concerns),
        "risk_level": risk,
        "concerns": concerns,
        "recommendations": [c["guidance"] for c in concerns if c["severity"] != SEVERITY_LOW],
    }


class EthicsModule(SafetyModule):
    name = "ethics"
    description = "Ethical assistant: principle-based review of proposed AI uses."
    tags = ("governance",)

    def operations(self) -> dict[str, OperationSpec]:
        return {
            "review": OperationSpec(ReviewRequest, self.review, "Review a proposal against principles"),
            "list_principles": OperationSpec(ListPrinciplesRequest, self.list_principles, "Principle catalogue"),
        }

    def review(self, req: ReviewRequest) -> dict[str, Any]:
        return review(req.text, req.context)

    def list_principles(self, req: ListPrinciplesRequest) -> dict[str, Any]:
        return {
            "principles": [
                {"slug": p.slug, "name": p.name, "guidance": p.guidance, "triggers": [t for t, _ in p.triggers]}
                for p in PRINCIPLES.values()
            ]
        }
