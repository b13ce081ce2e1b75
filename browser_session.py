"""One headless Chromium and one page per scan, always released."""
from __future__ import annotations

from typing import Any, List, Optional

from playwright.async_api import async_playwright

from config import AuditConfig
from errors import AccessibilityError, ErrorCode, classify_error
from logger import get_logger
from models import BoundingBox, LocateResult, PageDimensions

DIMENSIONS_JS = """
() => ({
    scrollHeight: document.documentElement.scrollHeight,
    scrollWidth: document.documentElement.scrollWidth,
    viewportWidth: window.innerWidth,
    viewportHeight: window.innerHeight
})
"""

STYLESHEETS_JS = """
() => Array.from(document.querySelectorAll('link[rel="stylesheet"]'))
    .map(link => link.href)
    .filter(Boolean)
"""


def _first_line(error: BaseException) -> str:
    text = str(error).strip()
    return text.splitlines()[0] if text else error.__class__.__name__


class BrowserSession:
    """Owns the renderer process and page for a single request.

    ``cleanup`` is idempotent and never raises, so callers can run it from
    ``finally`` blocks on every exit path (or use ``async with``).
    """

    def __init__(self, config: AuditConfig, log: Any = None):
        self.config = config
        self.log = log or get_logger()
        self._playwright = None
        self.browser = None
        self.context = None
        self.page = None

    async def __aenter__(self) -> "BrowserSession":
        await self.initialize()
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.cleanup()

    @property
    def closed(self) -> bool:
        return self.page is None and self.context is None and self.browser is None and self._playwright is None

    def _require_page(self) -> Any:
        if self.page is None:
            raise AccessibilityError(ErrorCode.BROWSER_FAILURE, "Browser session is not initialized")
        return self.page

    async def initialize(self) -> None:
        self.log.info("browser_init_start")
        try:
            self._playwright = await async_playwright().start()
            launch_kwargs = {"headless": True, "args": list(self.config.launch_args)}
            if self.config.executable_path:
                launch_kwargs["executable_path"] = self.config.executable_path
            self.browser = await self._playwright.chromium.launch(**launch_kwargs)
            self.context = await self.browser.new_context(
                viewport=self.config.viewport_dict,
                user_agent=self.config.user_agent,
            )
            self.page = await self.context.new_page()
        except Exception as exc:
            self.log.error("browser_init_failed", error=_first_line(exc))
            raise AccessibilityError(ErrorCode.BROWSER_FAILURE, "Failed to initialize browser", exc) from exc
        self.log.info("browser_init_complete")

    async def render(self, url: str) -> PageDimensions:
        page = self._require_page()
        self.log.info("page_render_start", url=url)
        try:
            response = await page.goto(url, wait_until="networkidle", timeout=self.config.navigation_timeout_ms)
            if response is None:
                raise RuntimeError("No response received from page")
            status = response.status
            if status >= 400:
                raise RuntimeError(f"Page returned HTTP {status}")
            dims = await page.evaluate(DIMENSIONS_JS)
        except Exception as exc:
            self.log.error("page_render_failed", url=url, error=_first_line(exc))
            code = classify_error(exc)
            if code == ErrorCode.PAGE_LOAD_TIMEOUT:
                message = f"The page did not load within {self.config.navigation_timeout_s:g} seconds"
            else:
                if code == ErrorCode.INTERNAL_ERROR:
                    code = ErrorCode.PAGE_LOAD_FAILED
                message = f"Failed to load page: {_first_line(exc)}"
            raise AccessibilityError(code, message, exc) from exc

        dimensions = PageDimensions(
            scroll_height=int(dims.get("scrollHeight") or 0),
            scroll_width=int(dims.get("scrollWidth") or 0),
            viewport_width=int(dims.get("viewportWidth") or 0),
            viewport_height=int(dims.get("viewportHeight") or 0),
            status=status,
        )
        self.log.info("page_render_complete", url=url, status=status, scroll_height=dimensions.scroll_height)
        return dimensions

    async def content(self) -> str:
        return await self._require_page().content()

    async def document_title(self) -> str:
        return await self._require_page().title()

    async def inject_script(self, path: str) -> None:
        await self._require_page().add_script_tag(path=path)

    async def pause(self, ms: int) -> None:
        await self._require_page().wait_for_timeout(ms)

    async def evaluate(self, script: str, arg: Any = None) -> Any:
        return await self._require_page().evaluate(script, arg)

    async def stylesheet_urls(self) -> List[str]:
        urls = await self._require_page().evaluate(STYLESHEETS_JS)
        return [u for u in (urls or []) if isinstance(u, str)]

    async def locate(self, selector: str) -> LocateResult:
        """Bounding box of the first element matching ``selector``. Never raises."""
        if self.page is None:
            return LocateResult.miss("no page")
        try:
            handle = await self.page.query_selector(selector)
            if handle is None:
                return LocateResult.miss("no matching element")
            box = await handle.bounding_box()
        except Exception as exc:
            return LocateResult.miss(f"query failed: {_first_line(exc)}")
        if box is None:
            return LocateResult.miss("element has no layout box")
        return LocateResult.hit(BoundingBox.from_raw(box))

    async def _close(self, name: str, resource: Optional[Any], method: str = "close") -> bool:
        if resource is None:
            return True
        try:
            await getattr(resource, method)()
            return True
        except Exception as exc:
            self.log.warning("cleanup_failed", resource=name, error=_first_line(exc))
            return False

    async def cleanup(self) -> None:
        if self.closed:
            return
        self.log.info("cleanup_start")
        page, context, browser, driver = self.page, self.context, self.browser, self._playwright
        self.page = self.context = self.browser = self._playwright = None

        ok = await self._close("page", page)
        ok = await self._close("context", context) and ok
        ok = await self._close("browser", browser) and ok
        ok = await self._close("playwright", driver, method="stop") and ok
        self.log.info("cleanup_complete", clean=ok)
