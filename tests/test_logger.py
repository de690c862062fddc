"""Tests for structured log formatting."""

from __future__ import annotations

import json
import logging
from pathlib import Path

import pytest

from engine_config import LoggingConfig
from portfolio_engine.logger import CompressingTimedRotatingFileHandler, StructuredFormatter, configure_logging


def _record(**extra) -> logging.LogRecord:
    record = logging.LogRecord("portfolio_engine.planner", logging.INFO, __file__, 1, "Plan ready", None, None)
    for key, value in extra.items():
        setattr(record, key, value)
    return record


def test_text_format_appends_extra_fields() -> None:
    line = StructuredFormatter("text").format(_record(plan_id="plan-abc"))

    assert " - portfolio_engine.planner - INFO - Plan ready" in line
    assert line.endswith("[plan_id=plan-abc]")


def test_json_format_includes_extra_fields() -> None:
    payload = json.loads(StructuredFormatter("json").format(_record(plan_id="plan-abc")))

    assert payload["message"] == "Plan ready"
    assert payload["level"] == "INFO"
    assert payload["plan_id"] == "plan-abc"
    assert "pathname" not in payload


@pytest.fixture
def _restore_root_logger():
    root = logging.getLogger()
    handlers = list(root.handlers)
    level = root.level
    yield
    for handler in list(root.handlers):
        root.removeHandler(handler)
        handler.close()
    for handler in handlers:
        root.addHandler(handler)
    root.setLevel(level)


def test_configure_logging_with_file(tmp_path: Path, _restore_root_logger) -> None:
    log_file = tmp_path / "logs" / "engine.log"

    root = configure_logging(LoggingConfig(level="DEBUG", format="json", file_path=str(log_file)))

    assert root.level == logging.DEBUG
    assert any(isinstance(h, CompressingTimedRotatingFileHandler) for h in root.handlers)
    logging.getLogger("portfolio_engine.test").info("hello", extra={"plan_id": "plan-1"})
    for handler in root.handlers:
        handler.flush()
    assert json.loads(log_file.read_text(encoding="utf-8").splitlines()[-1])["plan_id"] == "plan-1"


def test_reconfiguring_does_not_duplicate_handlers(_restore_root_logger) -> None:
    configure_logging(LoggingConfig())
    root = configure_logging(LoggingConfig())
    assert len(root.handlers) == 1
