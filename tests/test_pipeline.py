from __future__ import annotations

import asyncio
from pathlib import Path

import pytest
from bs4 import BeautifulSoup
from playwright.async_api import TimeoutError as PlaywrightTimeoutError
from structlog.testing import capture_logs

from browser_session import BrowserSession
from config import AuditConfig
from errors import AccessibilityError, ErrorCode
from fakes import FakePage, FakeSession
from pipeline import SNAPSHOT_NOTE, AccessibilityPipeline, OutputMode, error_response, run_scan


@pytest.fixture
def config(tmp_path: Path) -> AuditConfig:
    axe = tmp_path / "axe.min.js"
    axe.write_text("window.axe = {};", encoding="utf-8")
    return AuditConfig(axe_source=str(axe), data_dir=str(tmp_path), audit_wait_ms=0)


@pytest.fixture(autouse=True)
def _reset_sessions():
    FakeSession.instances.clear()
    yield
    FakeSession.instances.clear()


async def _no_css(urls, log):
    return {}


def test_invalid_url_never_opens_a_browser(config: AuditConfig) -> None:
    with capture_logs() as logs:
        pipeline = AccessibilityPipeline(config=config, session_factory=FakeSession)
        with pytest.raises(AccessibilityError) as excinfo:
            asyncio.run(pipeline.run("http://127.0.0.1/admin"))
    assert excinfo.value.code is ErrorCode.INVALID_URL
    assert excinfo.value.message == "Private IP addresses are not allowed"
    assert FakeSession.instances == []
    assert [e["event"] for e in logs] == ["validation_failed"]
    body, status = error_response(excinfo.value)
    assert status == 400
    assert body["error"]["code"] == "INVALID_URL"


def test_run_scan_blocks_and_raises(config: AuditConfig) -> None:
    with pytest.raises(AccessibilityError) as excinfo:
        run_scan("ftp://example.com/file", config=config)
    assert excinfo.value.code is ErrorCode.INVALID_URL


def test_snapshot_mode_payload(config: AuditConfig) -> None:
    with capture_logs() as logs:
        pipeline = AccessibilityPipeline(config=config, session_factory=FakeSession)
        result = asyncio.run(pipeline.run("https://Example.com/page"))
    payload = result.to_payload()

    assert set(payload) == {"meta", "snapshot", "issues", "summary"}
    meta = payload["meta"]
    assert meta["url"] == "https://example.com/page"
    assert meta["viewport"] == {"width": 1366, "height": 768}
    assert meta["engine"]["accessibility"] == "axe-core"
    assert meta["scanTime"].endswith("Z")

    issues = payload["issues"]
    assert [i["id"] for i in issues] == ["a11y-001", "a11y-002", "a11y-003", "a11y-004"]
    assert issues[0]["boundingBox"] == {"x": 10, "y": 21, "width": 300, "height": 151}
    for issue in issues:
        assert issue["visualizable"] == (issue["boundingBox"] is not None)

    summary = payload["summary"]
    assert summary["total"] == 4
    assert summary["critical"] + summary["serious"] + summary["moderate"] + summary["minor"] == 4
    assert summary["visualizable"] == 1 and summary["nonVisual"] == 3

    snapshot = payload["snapshot"]
    assert snapshot["note"] == SNAPSHOT_NOTE
    assert snapshot["scrollHeight"] == 2400
    soup = BeautifulSoup(snapshot["html"], "html.parser")
    assert soup.find("script") is None
    assert soup.find("p", class_="faint").get("onclick") is None
    assert soup.find("img", id="hero")["src"] == "https://example.com/hero.png"

    session = FakeSession.instances[0]
    assert session.cleanup_calls == 1
    events = [e["event"] for e in logs]
    assert events[0] == "test_start" and events[-1] == "test_complete"
    assert "snapshot_extraction_complete" in events
    assert len({e["correlation_id"] for e in logs}) == 1


def test_overlay_mode_payload(config: AuditConfig) -> None:
    fetched = []

    async def css(urls, log):
        fetched.extend(urls)
        return {u: "body{}" for u in urls}

    pipeline = AccessibilityPipeline(config=config, session_factory=FakeSession, css_fetcher=css)
    result = asyncio.run(pipeline.run("https://example.com/", OutputMode.OVERLAY))
    payload = result.to_payload()

    assert set(payload) == {"summary", "annotatedHtml"}
    assert fetched == ["https://example.com/site.css"]
    soup = BeautifulSoup(payload["annotatedHtml"], "html.parser")
    assert soup.find(id="hero")["data-issue-id"] == "a11y-001"
    assert soup.find("style", id="a11y-overlay-styles") is not None
    assert result.snapshot is None
    assert FakeSession.instances[0].cleanup_calls == 1


def test_mode_accepts_plain_string(config: AuditConfig) -> None:
    pipeline = AccessibilityPipeline(config=config, session_factory=FakeSession, css_fetcher=_no_css)
    result = asyncio.run(pipeline.run("https://example.com/", "overlay"))
    assert result.mode is OutputMode.OVERLAY


def test_navigation_timeout_fails_once_and_closes_browser(config: AuditConfig) -> None:
    page = FakePage(goto_error=PlaywrightTimeoutError("Timeout 30000ms exceeded."))
    opened = []

    class StubbedBrowserSession(BrowserSession):
        async def initialize(self) -> None:
            self.page = page
            opened.append(self)

    with capture_logs() as logs:
        pipeline = AccessibilityPipeline(config=config, session_factory=StubbedBrowserSession)
        with pytest.raises(AccessibilityError) as excinfo:
            asyncio.run(pipeline.run("https://example.com/slow"))

    assert excinfo.value.code is ErrorCode.PAGE_LOAD_TIMEOUT
    failures = [e for e in logs if e["event"] == "test_failed"]
    assert len(failures) == 1
    assert failures[0]["error_code"] == "PAGE_LOAD_TIMEOUT"
    assert failures[0]["stage"] == "navigation"
    assert page.closed
    assert opened[0].closed
    assert error_response(excinfo.value)[1] == 502


def test_audit_failure_still_cleans_up(config: AuditConfig) -> None:
    def factory(cfg, log):
        return FakeSession(cfg, log, page=FakePage(axe_result={"error": "axe not loaded"}))

    pipeline = AccessibilityPipeline(config=config, session_factory=factory)
    with pytest.raises(AccessibilityError) as excinfo:
        asyncio.run(pipeline.run("https://example.com/"))
    assert excinfo.value.code is ErrorCode.AUDIT_FAILED
    assert FakeSession.instances[0].cleanup_calls == 1


def test_deadline_is_internal_error_with_cleanup(tmp_path: Path, config: AuditConfig) -> None:
    fast = AuditConfig(axe_source=config.axe_source, data_dir=str(tmp_path), audit_wait_ms=0,
                       max_scan_timeout_s=0.05)

    def factory(cfg, log):
        return FakeSession(cfg, log, render_delay=5)

    with capture_logs() as logs:
        pipeline = AccessibilityPipeline(config=fast, session_factory=factory)
        with pytest.raises(AccessibilityError) as excinfo:
            asyncio.run(pipeline.run("https://example.com/"))

    assert excinfo.value.code is ErrorCode.INTERNAL_ERROR
    assert excinfo.value.message == "Maximum scan timeout exceeded"
    assert FakeSession.instances[0].cleanup_calls == 1
    assert [e["error_code"] for e in logs if e["event"] == "test_failed"] == ["INTERNAL_ERROR"]


def test_unexpected_stage_error_is_classified(config: AuditConfig) -> None:
    class Broken(FakeSession):
        async def content(self) -> str:
            raise RuntimeError("renderer crashed")

    pipeline = AccessibilityPipeline(config=config, session_factory=Broken)
    with pytest.raises(AccessibilityError) as excinfo:
        asyncio.run(pipeline.run("https://example.com/"))
    assert excinfo.value.code is ErrorCode.INTERNAL_ERROR
    assert excinfo.value.message == "Failed to extract page snapshot"
    assert Broken.instances[0].cleanup_calls == 1
