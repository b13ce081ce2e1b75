from __future__ import annotations

import asyncio

import pytest
from playwright.async_api import TimeoutError as PlaywrightTimeoutError
from structlog.testing import capture_logs

import browser_session
from browser_session import BrowserSession
from config import AuditConfig
from errors import AccessibilityError, ErrorCode
from fakes import FakePage
from logger import get_logger


class Closable:
    def __init__(self, fail: bool = False):
        self.fail = fail
        self.calls = 0

    async def close(self) -> None:
        self.calls += 1
        if self.fail:
            raise RuntimeError("Target page, context or browser has been closed")

    async def stop(self) -> None:
        await self.close()


def _session(page: FakePage) -> BrowserSession:
    session = BrowserSession(AuditConfig(), get_logger())
    session.page = page
    return session


def test_render_returns_dimensions() -> None:
    dims = asyncio.run(_session(FakePage()).render("https://example.com/"))
    assert dims.scroll_height == 2400
    assert dims.viewport_width == 1366
    assert dims.status == 200


def test_http_error_status_is_page_load_failed() -> None:
    with pytest.raises(AccessibilityError) as excinfo:
        asyncio.run(_session(FakePage(status=404)).render("https://example.com/missing"))
    assert excinfo.value.code is ErrorCode.PAGE_LOAD_FAILED
    assert excinfo.value.message == "Failed to load page: Page returned HTTP 404"


def test_navigation_timeout_is_page_load_timeout() -> None:
    page = FakePage(goto_error=PlaywrightTimeoutError("Timeout 30000ms exceeded."))
    with capture_logs() as logs:
        session = _session(page)
        with pytest.raises(AccessibilityError) as excinfo:
            asyncio.run(session.render("https://example.com/"))
    assert excinfo.value.code is ErrorCode.PAGE_LOAD_TIMEOUT
    assert excinfo.value.message == "The page did not load within 30 seconds"
    assert [e["event"] for e in logs] == ["page_render_start", "page_render_failed"]


def test_network_error_is_page_load_failed() -> None:
    page = FakePage(goto_error=RuntimeError("net::ERR_NAME_NOT_RESOLVED at https://nope.example/"))
    with pytest.raises(AccessibilityError) as excinfo:
        asyncio.run(_session(page).render("https://nope.example/"))
    assert excinfo.value.code is ErrorCode.PAGE_LOAD_FAILED


def test_unknown_navigation_error_is_page_load_failed() -> None:
    with pytest.raises(AccessibilityError) as excinfo:
        asyncio.run(_session(FakePage(goto_error=RuntimeError("weird"))).render("https://example.com/"))
    assert excinfo.value.code is ErrorCode.PAGE_LOAD_FAILED
    assert excinfo.value.message == "Failed to load page: weird"


def test_render_without_page_is_browser_failure() -> None:
    session = BrowserSession(AuditConfig(), get_logger())
    with pytest.raises(AccessibilityError) as excinfo:
        asyncio.run(session.render("https://example.com/"))
    assert excinfo.value.code is ErrorCode.BROWSER_FAILURE


def test_page_helpers_go_through_the_session() -> None:
    page = FakePage(title="Council Home")
    session = _session(page)

    async def go():
        await session.inject_script("/tmp/axe.min.js")
        await session.pause(1)
        return await session.evaluate("() => window.axe", ["wcag2a"]), await session.document_title()

    result, title = asyncio.run(go())
    assert page.scripts == ["/tmp/axe.min.js"]
    assert result is page.axe_result
    assert title == "Council Home"

    idle = BrowserSession(AuditConfig(), get_logger())
    with pytest.raises(AccessibilityError) as excinfo:
        asyncio.run(idle.document_title())
    assert excinfo.value.code is ErrorCode.BROWSER_FAILURE


def test_locate_never_raises() -> None:
    page = FakePage(boxes={"#a": {"x": 0.5, "y": 1.2, "width": 10, "height": 20}})
    session = _session(page)

    async def go():
        return (await session.locate("#a"), await session.locate("#b"), await session.locate("div[bad"))

    hit, miss, bad = asyncio.run(go())
    assert hit.found and hit.box.to_dict() == {"x": 1, "y": 1, "width": 10, "height": 20}
    assert not miss.found and miss.reason == "no matching element"
    assert not bad.found


def test_locate_reports_missing_layout_box() -> None:
    page = FakePage(boxes={"#hidden": None})
    result = asyncio.run(_session(page).locate("#hidden"))
    assert not result.found
    assert result.reason == "element has no layout box"


def test_initialize_failure_is_browser_failure(monkeypatch) -> None:
    class Driver:
        async def start(self):
            raise RuntimeError("Executable doesn't exist at /ms-playwright/chromium")

    monkeypatch.setattr(browser_session, "async_playwright", lambda: Driver())
    session = BrowserSession(AuditConfig(), get_logger())
    with pytest.raises(AccessibilityError) as excinfo:
        asyncio.run(session.initialize())
    assert excinfo.value.code is ErrorCode.BROWSER_FAILURE
    assert excinfo.value.message == "Failed to initialize browser"


def test_cleanup_closes_everything_once_and_swallows_errors() -> None:
    page, context, browser, driver = FakePage(), Closable(fail=True), Closable(), Closable()
    with capture_logs() as logs:
        session = _session(page)
        session.context, session.browser, session._playwright = context, browser, driver

        async def go():
            await session.cleanup()
            await session.cleanup()

        asyncio.run(go())

    assert page.closed
    assert (context.calls, browser.calls, driver.calls) == (1, 1, 1)
    assert session.closed
    events = [e["event"] for e in logs]
    assert events == ["cleanup_start", "cleanup_failed", "cleanup_complete"]
    assert logs[-1]["clean"] is False
