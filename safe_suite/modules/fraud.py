"""
Rule-based fraud detection for transaction streams.

Flags amount outliers (robust median/MAD z-score per account), bursts of
activity in a trailing window, country changes, and large absolute amounts.
Fully explainable: each flag has a rule name, severity, and a message with
the threshold vs the actual value. Account risk starts at 100 and loses a
fixed penalty per flag severity.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any

import numpy as np
import pandas as pd
from pydantic import Field, field_validator

from safe_suite.modules.base import ModuleRequest, OperationSpec, SafetyModule
from safe_suite.safe_logging import get_logger

logger = get_logger(__name__)

RISK_LOW = "LOW"
RISK_MEDIUM = "MEDIUM"
RISK_HIGH = "HIGH"

# Consistency constant making MAD comparable to a standard deviation
_MAD_SCALE = 0.6745


class FlagSeverity(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


class FlagType(str, Enum):
    AMOUNT_OUTLIER = "amount_outlier"
    HIGH_VELOCITY = "high_velocity"
    COUNTRY_CHANGE = "country_change"
    LARGE_AMOUNT = "large_amount"


# Deductions per flag severity
SEVERITY_PENALTY = {
    FlagSeverity.CRITICAL: 25,
    FlagSeverity.HIGH: 15,
    FlagSeverity.MEDIUM: 8,
    FlagSeverity.LOW: 3,
}


@dataclass
class FraudFlag:
    """Single explainable flag on one transaction."""

    type: FlagType
    severity: FlagSeverity
    message: str
    rule_name: str
    details: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {
            "type": self.type.value,
            "severity": self.severity.value,
            "message": self.message,
            "rule_name": self.rule_name,
            "details": self.details,
        }


class Transaction(ModuleRequest):
    id: str
    account: str = Field(..., min_length=1)
    amount: float = Field(..., ge=0)
    timestamp: int = Field(..., ge=0, description="Unix seconds")
    country: str | None = None
    counterparty: str | None = None

    @field_validator("id", mode="before")
    @classmethod
    def _id_to_str(cls, value: Any) -> Any:
        return str(value) if isinstance(value, int) else value


class FraudConfig(ModuleRequest):
    z_threshold: float = Field(3.5, gt=0)
    min_history: int = Field(5, ge=3, description="Account tx count before amount outliers are judged")
    velocity_window_sec: int = Field(3600, ge=1)
    velocity_max_tx: int = Field(10, ge=1)
    large_amount: float = Field(10_000.0, gt=0)


class DetectFraudRequest(ModuleRequest):
    transactions: list[Transaction] = Field(..., min_length=1)
    config: FraudConfig = Field(default_factory=FraudConfig)

    @field_validator("transactions")
    @classmethod
    def _unique_ids(cls, value: list[Transaction]) -> list[Transaction]:
        ids = [t.id for t in value]
        if len(set(ids)) != len(ids):
            raise ValueError("transaction ids must be unique")
        return value


def _robust_z(amounts: np.ndarray) -> np.ndarray:
    """Modified z-score; falls back to mean absolute deviation when MAD is 0."""
    median = np.median(amounts)
    deviation = np.abs(amounts - median)
    mad = np.median(deviation)
    if mad > 0:
        return _MAD_SCALE * (amounts - median) / mad
    mean_ad = deviation.mean()
    if mean_ad > 0:
        return (amounts - median) / (1.253314 * mean_ad)
    return np.zeros_like(amounts)


def _check_amount_outliers(group: pd.DataFrame, cfg: FraudConfig, flags: dict[str, list[FraudFlag]]) -> None:
    if len(group) < cfg.min_history:
        return
    z = _robust_z(group["amount"].to_numpy(dtype=float))
    for tx_id, amount, score in zip(group["id"], group["amount"], z):
        if score <= cfg.z_threshold:
            continue
        severity = FlagSeverity.HIGH if score > 2 * cfg.z_threshold else FlagSeverity.MEDIUM
        flags[tx_id].append(FraudFlag(
            type=FlagType.AMOUNT_OUTLIER,
            severity=severity,
            message=f"Amount {amount:.2f} is {score:.1f} robust deviations above the account median "
                    f"(threshold: {cfg.z_threshold})",
            rule_name="robust_amount_z",
            details={"z_score": round(float(score), 4), "threshold": cfg.z_threshold},
        ))


def _check_velocity(group: pd.DataFrame, cfg: FraudConfig, flags: dict[str, list[FraudFlag]]) -> None:
    ts = group["timestamp"].to_numpy(dtype=np.int64)
    starts = np.searchsorted(ts, ts - cfg.velocity_window_sec, side="right")
    counts = np.arange(len(ts)) - starts + 1
    for tx_id, count in zip(group["id"], counts):
        if count > cfg.velocity_max_tx:
            flags[tx_id].append(FraudFlag(
                type=FlagType.HIGH_VELOCITY,
                severity=FlagSeverity.MEDIUM,
                message=f"{int(count)} transactions within {cfg.velocity_window_sec}s "
                        f"(threshold: {cfg.velocity_max_tx})",
                rule_name="velocity_window",
                details={"count": int(count), "window_sec": cfg.velocity_window_sec},
            ))


def _check_country(group: pd.DataFrame, flags: dict[str, list[FraudFlag]]) -> None:
    tagged = group.dropna(subset=["country"])
    if len(tagged) < 2:
        return
    counts = tagged["country"].value_counts()
    if len(counts) > 1 and counts.iloc[0] == counts.iloc[1]:
        return  # no clear home country
    usual = counts.index[0]
    for tx_id, country in zip(tagged["id"], tagged["country"]):
        if country != usual:
            flags[tx_id].append(FraudFlag(
                type=FlagType.COUNTRY_CHANGE,
                severity=FlagSeverity.LOW,
                message=f"Transaction from {country}; account usually transacts from {usual}",
                rule_name="usual_country",
                details={"country": country, "usual_country": usual},
            ))


def _check_large(df: pd.DataFrame, cfg: FraudConfig, flags: dict[str, list[FraudFlag]]) -> None:
    for tx_id, amount in zip(df["id"], df["amount"]):
        if amount < cfg.large_amount:
            continue
        severity = FlagSeverity.CRITICAL if amount >= 5 * cfg.large_amount else FlagSeverity.MEDIUM
        flags[tx_id].append(FraudFlag(
            type=FlagType.LARGE_AMOUNT,
            severity=severity,
            message=f"Amount {amount:.2f} at or above {cfg.large_amount:.2f}",
            rule_name="large_amount",
            details={"amount": float(amount), "threshold": cfg.large_amount},
        ))


def compute_risk_score(flags: list[FraudFlag], *, base_score: float = 100.0) -> float:
    score = base_score - sum(SEVERITY_PENALTY.get(f.severity, 0) for f in flags)
    return max(0.0, min(base_score, score))


def risk_level(score: float) -> str:
    if score >= 80:
        return RISK_LOW
    if score >= 50:
        return RISK_MEDIUM
    return RISK_HIGH


def detect_fraud(transactions: list[Transaction], cfg: FraudConfig) -> dict[str, Any]:
    df = pd.DataFrame([t.model_dump() for t in transactions])
    df = df.sort_values(["account", "timestamp"], kind="stable").reset_index(drop=True)
    flags: dict[str, list[FraudFlag]] = {tx_id: [] for tx_id in df["id"]}

    for _, group in df.groupby("account", sort=True):
        _check_amount_outliers(group, cfg, flags)
        _check_velocity(group, cfg, flags)
        _check_country(group, flags)
    _check_large(df, cfg, flags)

    flagged = []
    for tx_id, account in zip(df["id"], df["account"]):
        if flags[tx_id]:
            flagged.append({"id": tx_id, "account": account, "flags": [f.to_dict() for f in flags[tx_id]]})

    accounts = []
    for account, group in df.groupby("account", sort=True):
        account_flags = [f for tx_id in group["id"] for f in flags[tx_id]]
        score = compute_risk_score(account_flags)
        accounts.append({
            "account": account,
            "tx_count": int(len(group)),
            "flag_count": len(account_flags),
            "risk_score": round(score, 2),
            "risk_level": risk_level(score),
        })
    logger.info(
        "fraud_scan_completed",
        transactions=len(df),
        flagged=len(flagged),
        high_risk_accounts=sum(1 for a in accounts if a["risk_level"] == RISK_HIGH),
    )
    return {"flagged_transactions": flagged, "accounts": accounts}


class FraudModule(SafetyModule):
    name = "fraud"
    description = "Fraud detection: explainable rules over transaction streams with per-account risk."
    tags = ("fraud", "anomaly")

    def operations(self) -> dict[str, OperationSpec]:
        return {
            "detect_fraud": OperationSpec(DetectFraudRequest, self.detect_fraud, "Flag suspicious transactions"),
        }

    def detect_fraud(self, req: DetectFraudRequest) -> dict[str, Any]:
        return detect_fraud(req.transactions, req.config)
