"""
Pytest tests for the fraud detection module: rules, severities, and
per-account risk scores.
"""

from __future__ import annotations

import pytest

from safe_suite.core.exceptions import ModuleInputError
from safe_suite.modules.fraud import (
    FlagSeverity,
    FlagType,
    FraudFlag,
    FraudModule,
    compute_risk_score,
    risk_level,
)

DAY = 86_400


def tx(tx_id, account, amount, timestamp, country="US"):
    return {"id": tx_id, "account": account, "amount": amount, "timestamp": timestamp, "country": country}


def scan(transactions, **config):
    payload = {"transactions": transactions}
    if config:
        payload["config"] = config
    return FraudModule().run("detect_fraud", payload)


def flags_by_id(out):
    return {row["id"]: row["flags"] for row in out["flagged_transactions"]}


def test_amount_outlier_is_high_severity():
    amounts = [100, 102, 98, 101, 99, 5000]
    out = scan([tx(f"a{i}", "alice", amt, i * DAY) for i, amt in enumerate(amounts)])
    flags = flags_by_id(out)
    assert list(flags) == ["a5"]
    (flag,) = flags["a5"]
    assert flag["type"] == FlagType.AMOUNT_OUTLIER.value
    assert flag["severity"] == FlagSeverity.HIGH.value
    assert flag["rule_name"] == "robust_amount_z"
    assert flag["details"]["threshold"] == 3.5
    account = out["accounts"][0]
    assert account["risk_score"] == 85.0
    assert account["risk_level"] == "LOW"


def test_outliers_need_minimum_history():
    out = scan([tx("1", "bob", 10, 0), tx("2", "bob", 10_000_000 - 1, DAY)], large_amount=1e12)
    assert out["flagged_transactions"] == []


def test_velocity_window():
    txs = [tx(f"v{i}", "carol", 20, i * 60) for i in range(12)]
    out = scan(txs)
    flags = flags_by_id(out)
    assert sorted(flags) == ["v10", "v11"]
    assert all(f["type"] == "high_velocity" for fl in flags.values() for f in fl)
    assert out["accounts"][0]["risk_score"] == 84.0


def test_country_change_and_tie_skipped():
    txs = [tx("c1", "dave", 10, 0), tx("c2", "dave", 10, DAY), tx("c3", "dave", 10, 2 * DAY, "FR")]
    flags = flags_by_id(scan(txs))
    assert list(flags) == ["c3"]
    assert flags["c3"][0]["details"] == {"country": "FR", "usual_country": "US"}

    tie = [tx("t1", "erin", 10, 0), tx("t2", "erin", 10, DAY, "FR")]
    assert scan(tie)["flagged_transactions"] == []


def test_large_amount_critical_at_five_times_threshold():
    out = scan([tx("big", "frank", 60_000, 0), tx("mid", "grace", 12_000, 0)])
    flags = flags_by_id(out)
    assert flags["big"][0]["severity"] == "critical"
    assert flags["mid"][0]["severity"] == "medium"
    accounts = {a["account"]: a for a in out["accounts"]}
    assert accounts["frank"]["risk_score"] == 75.0
    assert accounts["frank"]["risk_level"] == "MEDIUM"


def test_integer_ids_are_accepted():
    out = scan([{"id": 7, "account": "h", "amount": 1, "timestamp": 0}])
    assert out["accounts"][0]["tx_count"] == 1


def test_duplicate_ids_rejected():
    with pytest.raises(ModuleInputError):
        scan([tx("x", "a", 1, 0), tx("x", "a", 2, 1)])


def test_risk_score_is_clamped():
    flags = [FraudFlag(FlagType.LARGE_AMOUNT, FlagSeverity.CRITICAL, "m", "r")] * 5
    assert compute_risk_score(flags) == 0.0
    assert compute_risk_score([]) == 100.0
    assert risk_level(80) == "LOW"
    assert risk_level(50) == "MEDIUM"
    assert risk_level(49.9) == "HIGH"
