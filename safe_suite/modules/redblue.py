"""
Red team / blue team simulation module.

A seeded Monte Carlo exercise: each round every red-team technique attempts
an attack; blue-team controls that counter the technique try to detect it.

    detection = 1 - prod(1 - strength_c)  over deployed controls countering it
    success   = base_success * skill * (1 - detection)

Outcomes per attempt are drawn from numpy's default_rng(seed), so the same
request always produces the same timeline.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

import numpy as np
from pydantic import Field, field_validator

from safe_suite.modules.base import ModuleRequest, OperationSpec, SafetyModule


@dataclass(frozen=True)
class Technique:
    name: str
    description: str
    base_success: float
    countered_by: tuple[str, ...]


@dataclass(frozen=True)
class Control:
    name: str
    description: str


TECHNIQUES: dict[str, Technique] = {t.name: t for t in (
    Technique("prompt_injection", "Instructions smuggled into model inputs", 0.6,
              ("input_filtering", "output_monitoring")),
    Technique("jailbreak", "Role-play or obfuscation to bypass safety policy", 0.5,
              ("input_filtering", "output_monitoring", "adversarial_training")),
    Technique("data_exfiltration", "Extracting sensitive training or context data", 0.4,
              ("output_monitoring", "access_control")),
    Technique("model_extraction", "Cloning the model through high-volume querying", 0.3,
              ("rate_limiting", "anomaly_detection")),
    Technique("data_poisoning", "Corrupting training data to plant behaviour", 0.35,
              ("data_validation", "anomaly_detection")),
    Technique("evasion", "Adversarial inputs that flip model decisions", 0.55,
              ("adversarial_training", "anomaly_detection")),
    Technique("denial_of_wallet", "Expensive queries to exhaust compute budgets", 0.45,
              ("rate_limiting",)),
)}

CONTROLS: dict[str, Control] = {c.name: c for c in (
    Control("input_filtering", "Screen prompts for injected instructions"),
    Control("output_monitoring", "Inspect responses for policy violations and leaks"),
    Control("rate_limiting", "Cap request volume per client"),
    Control("adversarial_training", "Harden the model against perturbed inputs"),
    Control("data_validation", "Vet training data provenance and labels"),
    Control("access_control", "Restrict who may query sensitive capabilities"),
    Control("anomaly_detection", "Detect unusual usage or data distributions"),
)}


class RedMember(ModuleRequest):
    technique: str
    skill: float = Field(1.0, ge=0, le=1)


class BlueMember(ModuleRequest):
    control: str
    strength: float = Field(0.5, ge=0, le=1)


class SimulateExerciseRequest(ModuleRequest):
    red_team: list[RedMember] = Field(..., min_length=1)
    blue_team: list[BlueMember] = Field(default_factory=list)
    rounds: int = Field(10, ge=1, le=10_000)
    seed: int = 0
    include_timeline: bool = True

    @field_validator("red_team")
    @classmethod
    def _known_techniques(cls, value: list[RedMember]) -> list[RedMember]:
        unknown = [m.technique for m in value if m.technique not in TECHNIQUES]
        if unknown:
            raise ValueError(f"unknown techniques: {', '.join(unknown)}")
        return value

    @field_validator("blue_team")
    @classmethod
    def _known_controls(cls, value: list[BlueMember]) -> list[BlueMember]:
        unknown = [m.control for m in value if m.control not in CONTROLS]
        if unknown:
            raise ValueError(f"unknown controls: {', '.join(unknown)}")
        return value


class ListCatalogRequest(ModuleRequest):
    pass


def detection_probability(technique: Technique, strengths: dict[str, float]) -> float:
    miss = 1.0
    for control in technique.countered_by:
        if control in strengths:
            miss *= 1.0 - strengths[control]
    return 1.0 - miss


def simulate(req: SimulateExerciseRequest) -> dict[str, Any]:
    rng = np.random.default_rng(req.seed)
    strengths: dict[str, float] = {}
    for member in req.blue_team:
        # Duplicate controls stack as independent layers
        prior = strengths.get(member.control, 0.0)
        strengths[member.control] = 1.0 - (1.0 - prior) * (1.0 - member.strength)

    stats: dict[str, dict[str, Any]] = {}
    timeline: list[dict[str, Any]] = []
    for member in req.red_team:
        stats.setdefault(member.technique, {"attempts": 0, "successes": 0, "detections": 0})

    for rnd in range(1, req.rounds + 1):
        for member in req.red_team:
            tech = TECHNIQUES[member.technique]
            p_detect = detection_probability(tech, strengths)
            p_success = tech.base_success * member.skill * (1.0 - p_detect)
            detected = bool(rng.random() < p_detect)
            succeeded = bool(rng.random() < p_success) and not detected
            row = stats[tech.name]
            row["attempts"] += 1
            row["successes"] += int(succeeded)
            row["detections"] += int(detected)
            if req.include_timeline:
                timeline.append({
                    "round": rnd,
                    "technique": tech.name,
                    "outcome": "detected" if detected else ("breach" if succeeded else "failed"),
                })

    per_technique = []
    uncovered = []
    for name, row in stats.items():
        tech = TECHNIQUES[name]
        deployed = [c for c in tech.countered_by if c in strengths]
        if not deployed:
            uncovered.append(name)
        per_technique.append({
            "technique": name,
            **row,
            "detection_probability": round(detection_probability(tech, strengths), 6),
            "breach_rate": round(row["successes"] / row["attempts"], 6),
            "detection_rate": round(row["detections"] / row["attempts"], 6),
            "deployed_counters": deployed,
        })

    attempts = sum(r["attempts"] for r in stats.values())
    successes = sum(r["successes"] for r in stats.values())
    detections = sum(r["detections"] for r in stats.values())
    recommendations = []
    for name in uncovered:
        options = ", ".join(TECHNIQUES[name].countered_by)
        recommendations.append(f"No control counters {name}; deploy one of: {options}")
    for row in per_technique:
        if row["technique"] not in uncovered and row["breach_rate"] > 0.2:
            recommendations.append(
                f"{row['technique']} breached in {row['breach_rate']:.0%} of attempts; strengthen "
                f"{', '.join(row['deployed_counters'])}"
            )

    out: dict[str, Any] = {
        "rounds": req.rounds,
        "seed": req.seed,
        "summary": {
            "attempts": attempts,
            "breaches": successes,
            "detections": detections,
            "breach_rate": round(successes / attempts, 6),
            "detection_rate": round(detections / attempts, 6),
            "winner": "red" if successes > detections else "blue",
        },
        "techniques": per_technique,
        "uncovered_techniques": uncovered,
        "recommendations": recommendations,
    }
    if req.include_timeline:
        out["timeline"] = timeline
    return out


class RedBlueModule(SafetyModule):
    name = "redblue"
    description = "Red/blue-team simulation: seeded attack-vs-control exercises for AI systems."
    tags = ("simulation", "attack")

    def operations(self) -> dict[str, OperationSpec]:
        return {
            "simulate_exercise": OperationSpec(SimulateExerciseRequest, simulate, "Run a seeded exercise"),
            "list_catalog": OperationSpec(ListCatalogRequest, self.list_catalog, "Techniques and controls"),
        }

    def list_catalog(self, req: ListCatalogRequest) -> dict[str, Any]:
        return {
            "techniques": [
                {"name": t.name, "description": t.description, "base_success": t.base_success,
                 "countered_by": list(t.countered_by)}
                for t in TECHNIQUES.values()
            ],
            "controls": [{"name": c.name, "description": c.description} for c in CONTROLS.values()],
        }
