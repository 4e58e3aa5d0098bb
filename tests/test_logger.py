"""Tests for logging helpers."""

import structlog
from structlog.dev import ConsoleRenderer
from structlog.processors import JSONRenderer
from structlog.testing import capture_logs

from transfer_reconciliation import logger as logger_module


class RecordingLogger:
    def __init__(self) -> None:
        self.calls: list[tuple[str, str, dict]] = []

    def warning(self, event: str, **kwargs) -> None:
        self.calls.append(("warning", event, kwargs))

    def error(self, event: str, **kwargs) -> None:
        self.calls.append(("error", event, kwargs))


def test_select_renderer_uses_console_in_debug(monkeypatch) -> None:
    monkeypatch.setattr(logger_module.settings, "debug", True)
    assert isinstance(logger_module._select_renderer(), ConsoleRenderer)


def test_select_renderer_uses_json_in_production(monkeypatch) -> None:
    monkeypatch.setattr(logger_module.settings, "debug", False)
    assert isinstance(logger_module._select_renderer(), JSONRenderer)


def test_log_timing_records_duration_and_context() -> None:
    with capture_logs() as logs:
        log = structlog.get_logger("timing-test")
        with logger_module.log_timing("find_matches", logger=log, records=3) as timing:
            timing["accepted"] = 1

    assert timing["duration_ms"] >= 0
    assert len(logs) == 1
    entry = logs[0]
    assert entry["event"] == "find_matches completed"
    assert entry["records"] == 3
    assert entry["accepted"] == 1
    assert entry["log_level"] == "info"


def test_log_exception_includes_error_details() -> None:
    log = RecordingLogger()
    exc = ValueError("bad window")

    logger_module.log_exception(log, exc, "Rejected request", level="warning", include_traceback=False, pair="a-b")
    logger_module.log_exception(log, exc, "Failed")

    level, event, kwargs = log.calls[0]
    assert (level, event) == ("warning", "Rejected request")
    assert kwargs == {
        "error": "bad window",
        "error_type": "ValueError",
        "error_module": "builtins",
        "pair": "a-b",
    }
    assert log.calls[1][0] == "error"
    assert log.calls[1][2]["exc_info"] is exc
