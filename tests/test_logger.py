from __future__ import annotations

import io
import json

import structlog
from structlog.testing import capture_logs

from logger import configure_logging, get_logger


def test_loggers_carry_a_correlation_id() -> None:
    with capture_logs() as logs:
        get_logger().info("first")
        get_logger("fixed-id", url="https://example.com/").info("second")
    assert logs[0]["correlation_id"]
    assert logs[1]["correlation_id"] == "fixed-id"
    assert logs[1]["url"] == "https://example.com/"


def test_json_output_has_service_fields() -> None:
    out = io.StringIO()
    try:
        configure_logging(json_output=True, level="INFO", stream=out)
        log = get_logger("abc")
        log.debug("hidden")
        log.info("page_render_start", url="https://example.com/")
        lines = [line for line in out.getvalue().splitlines() if line.strip()]
    finally:
        structlog.reset_defaults()

    assert len(lines) == 1
    event = json.loads(lines[0])
    assert event["event"] == "page_render_start"
    assert event["level"] == "info"
    assert event["correlation_id"] == "abc"
    assert event["service"] == "accessibility-snapshot-auditor"
    assert "timestamp" in event
