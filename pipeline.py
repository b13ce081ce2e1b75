"""Scan orchestration: validate, render, audit, resolve, transform, summarize.

One ``AccessibilityPipeline.run`` call owns one browser session. The session
is released on every exit path, including the overall deadline firing.
"""
from __future__ import annotations

import asyncio
import time
from dataclasses import dataclass
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, Iterable, List, Optional, Tuple, Union

from annotator import fetch_all_css, generate_modified_html
from browser_session import BrowserSession
from config import AuditConfig
from errors import (AccessibilityError, ErrorCode, as_accessibility_error, failure_stage,
                    http_status)
from logger import get_logger
from models import Finding, PageDimensions, ResolvedIssue, Snapshot, Summary
from sanitizer import sanitize_html
from scanner_web import run_audit
from url_validator import require_valid_url
from utils import now_iso
from visual_resolver import resolve_issues

SNAPSHOT_NOTE = "Static visual snapshot captured at scan time. JavaScript disabled."
ENGINE = {"accessibility": "axe-core", "browser": "playwright (chromium)"}

CssFetcher = Callable[[Iterable[str], Any], Awaitable[Dict[str, str]]]


class OutputMode(str, Enum):
    SNAPSHOT = "snapshot"
    OVERLAY = "overlay"


@dataclass
class ScanResult:
    url: str
    mode: OutputMode
    scan_time: str
    duration_ms: int
    viewport: Dict[str, int]
    dimensions: PageDimensions
    findings: List[Finding]
    issues: List[ResolvedIssue]
    summary: Summary
    document_title: str = ""
    snapshot: Optional[Snapshot] = None
    annotated_html: Optional[str] = None

    def meta(self) -> Dict[str, Any]:
        return {
            "url": self.url,
            "scanTime": self.scan_time,
            "durationMs": self.duration_ms,
            "engine": dict(ENGINE),
            "viewport": dict(self.viewport),
        }

    def to_payload(self) -> Dict[str, Any]:
        if self.mode is OutputMode.OVERLAY:
            return {"summary": self.summary.to_dict(), "annotatedHtml": self.annotated_html}
        return {
            "meta": self.meta(),
            "snapshot": self.snapshot.to_dict() if self.snapshot else None,
            "issues": [issue.to_dict() for issue in self.issues],
            "summary": self.summary.to_dict(),
        }


def error_response(error: BaseException) -> Tuple[Dict[str, Any], int]:
    """Caller-facing error body and HTTP status. Carries no stack trace."""
    err = as_accessibility_error(error)
    return {"error": {"code": err.code.value, "message": err.message}}, http_status(err.code)


class AccessibilityPipeline:

    def __init__(self, config: Optional[AuditConfig] = None, log: Any = None,
                 session_factory: Optional[Callable[[AuditConfig, Any], Any]] = None,
                 css_fetcher: Optional[CssFetcher] = None):
        self.config = config or AuditConfig.from_env()
        self.log = log or get_logger()
        self.session_factory = session_factory or BrowserSession
        self.css_fetcher = css_fetcher or fetch_all_css

    async def run(self, url: Any, mode: Union[OutputMode, str] = OutputMode.SNAPSHOT) -> ScanResult:
        started = time.monotonic()
        mode = OutputMode(mode)

        try:
            target = require_valid_url(url)
        except AccessibilityError as err:
            self.log.warning("validation_failed", reason="invalid_url", detail=err.message)
            raise
        self.log.info("test_start", url=target, mode=mode.value)

        session = self.session_factory(self.config, self.log)
        try:
            result = await asyncio.wait_for(self._run_stages(session, target, mode, started),
                                            timeout=self.config.max_scan_timeout_s)
        except asyncio.TimeoutError as exc:
            err = AccessibilityError(ErrorCode.INTERNAL_ERROR, "Maximum scan timeout exceeded", exc)
            self._log_failure(err, target, started)
            raise err from exc
        except Exception as exc:
            err = as_accessibility_error(exc)
            self._log_failure(err, target, started)
            if err is exc:
                raise
            raise err from exc
        finally:
            await session.cleanup()

        self.log.info("test_complete", url=target, duration_ms=result.duration_ms,
                      total_issues=result.summary.total, mode=mode.value)
        return result

    def _log_failure(self, err: AccessibilityError, url: str, started: float) -> None:
        cause = err.original or err
        self.log.error(
            "test_failed",
            url=url,
            error_code=err.code.value,
            error_message=err.message,
            stage=failure_stage(err.code),
            duration_ms=int((time.monotonic() - started) * 1000),
            exc_info=cause,
        )

    async def _run_stages(self, session: Any, url: str, mode: OutputMode, started: float) -> ScanResult:
        await session.initialize()
        dimensions = await session.render(url)
        audit = await run_audit(session, self.config, self.log)
        issues = await resolve_issues(audit.findings, session.locate, self.log)

        snapshot = annotated = None
        if mode is OutputMode.SNAPSHOT:
            snapshot = await self._extract_snapshot(session, url, dimensions)
        else:
            annotated = await self._annotate(session, audit.findings)

        summary = Summary.from_issues(issues)
        return ScanResult(
            url=url,
            mode=mode,
            scan_time=now_iso(),
            duration_ms=int((time.monotonic() - started) * 1000),
            viewport=self.config.viewport_dict,
            dimensions=dimensions,
            findings=list(audit.findings),
            issues=issues,
            summary=summary,
            document_title=audit.document_title,
            snapshot=snapshot,
            annotated_html=annotated,
        )

    async def _extract_snapshot(self, session: Any, url: str, dimensions: PageDimensions) -> Snapshot:
        self.log.info("snapshot_extraction_start")
        try:
            html = await session.content()
            sanitized = await asyncio.to_thread(sanitize_html, html, url)
        except Exception as exc:
            self.log.error("snapshot_extraction_failed", error=str(exc))
            raise AccessibilityError(ErrorCode.INTERNAL_ERROR, "Failed to extract page snapshot", exc) from exc
        self.log.info("snapshot_extraction_complete", original_size=len(html), sanitized_size=len(sanitized))
        return Snapshot(html=sanitized, scroll_height=dimensions.scroll_height, note=SNAPSHOT_NOTE)

    async def _annotate(self, session: Any, findings: List[Finding]) -> str:
        self.log.info("annotation_start", count=len(findings))
        try:
            stylesheet_urls = await session.stylesheet_urls()
        except Exception as exc:
            self.log.debug("stylesheet_discovery_failed", error=str(exc))
            stylesheet_urls = []
        css_content = await self.css_fetcher(stylesheet_urls, self.log)
        self.log.info("stylesheet_fetch_complete", requested=len(stylesheet_urls), fetched=len(css_content))
        try:
            html = await session.content()
            annotated = await asyncio.to_thread(generate_modified_html, html, findings, css_content, self.log)
        except Exception as exc:
            self.log.error("annotation_failed", error=str(exc))
            raise AccessibilityError(ErrorCode.INTERNAL_ERROR, "Failed to annotate page", exc) from exc
        self.log.info("annotation_complete", size=len(annotated))
        return annotated


def run_scan(url: str, mode: Union[OutputMode, str] = OutputMode.SNAPSHOT,
             config: Optional[AuditConfig] = None, log: Any = None) -> ScanResult:
    """Blocking entry point for callers without a running event loop."""
    pipeline = AccessibilityPipeline(config=config, log=log)
    return asyncio.run(pipeline.run(url, mode))
