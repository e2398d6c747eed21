"""
Test that safe_logging can be imported without circular import and logger works.
"""

from __future__ import annotations


def test_logging_import():
    """Import get_logger from safe_logging and use the logger."""
    from safe_suite.safe_logging import bind_request, get_logger

    logger = get_logger("test")
    assert logger is not None
    assert hasattr(logger, "info")
    assert hasattr(logger, "debug")
    assert hasattr(logger, "warning")
    assert hasattr(logger, "error")
    # Smoke test: call info (should not raise)
    logger.info("test_message", key="value")
    bind_request("req-1").info("test_bound_message")


def test_processors_rename_event_and_add_timestamp():
    from safe_suite.safe_logging.logger import _add_timestamp, _normalize_event

    record = _normalize_event(None, "info", {"event": "module_invocation", "module": "bias"})
    record = _add_timestamp(None, "info", record)
    assert record["event_type"] == "module_invocation"
    assert "event" not in record
    assert record["message"] == "module_invocation"
    assert record["module"] == "bias"
    assert "timestamp" in record


def test_configure_structlog_applies_level_and_format_to_existing_loggers(capsys):
    import json

    from safe_suite.safe_logging import configure_structlog, get_logger

    logger = get_logger("safe_suite.test")
    configure_structlog("WARNING", "json")
    logger.info("hidden_event")
    logger.warning("shown_event", module="bias")
    lines = [json.loads(line) for line in capsys.readouterr().out.splitlines() if line.strip()]
    assert [r["event_type"] for r in lines] == ["shown_event"]
    assert lines[0]["level"] == "warning"
    assert lines[0]["logger"] == "safe_suite.test"

    configure_structlog("INFO", "console")
    logger.info("console_event")
    out = capsys.readouterr().out
    assert "console_event" in out
    assert not out.lstrip().startswith("{")


def test_bind_request_carries_request_fields(capsys):
    import json

    from safe_suite.safe_logging import bind_request, configure_structlog

    configure_structlog("INFO", "json")
    bind_request("req-9", "safe_suite.routing.router", module="bias").info("module_invocation", status="ok")
    record = json.loads(capsys.readouterr().out.strip().splitlines()[-1])
    assert record["request_id"] == "req-9"
    assert record["module"] == "bias"
    assert record["event_type"] == "module_invocation"
