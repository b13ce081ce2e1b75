"""Error taxonomy shared by every pipeline stage."""
from __future__ import annotations

from enum import Enum
from typing import Optional

from playwright.async_api import TimeoutError as PlaywrightTimeoutError


class ErrorCode(str, Enum):
    INVALID_URL = "INVALID_URL"
    PAGE_LOAD_TIMEOUT = "PAGE_LOAD_TIMEOUT"
    PAGE_LOAD_FAILED = "PAGE_LOAD_FAILED"
    BROWSER_FAILURE = "BROWSER_FAILURE"
    AUDIT_FAILED = "AUDIT_FAILED"
    INTERNAL_ERROR = "INTERNAL_ERROR"


class AccessibilityError(Exception):
    """A classified failure. ``message`` is safe to show to the caller."""

    def __init__(self, code: ErrorCode, message: str, original: Optional[BaseException] = None):
        super().__init__(message)
        self.code = code
        self.message = message
        self.original = original

    def __str__(self) -> str:
        return f"[{self.code.value}] {self.message}"


_NETWORK_MARKERS = ("net::err_", "dns", "ssl", "certificate", "failed to navigate")
_BROWSER_MARKERS = ("browser", "chromium", "playwright", "target closed")
_AUDIT_MARKERS = ("axe", "audit")


def classify_error(error: BaseException) -> ErrorCode:
    if isinstance(error, AccessibilityError):
        return error.code
    if isinstance(error, PlaywrightTimeoutError):
        return ErrorCode.PAGE_LOAD_TIMEOUT

    message = str(error).lower()
    if "timeout" in message or "timed out" in message:
        return ErrorCode.PAGE_LOAD_TIMEOUT
    if any(marker in message for marker in _NETWORK_MARKERS):
        return ErrorCode.PAGE_LOAD_FAILED
    if any(marker in message for marker in _BROWSER_MARKERS):
        return ErrorCode.BROWSER_FAILURE
    if any(marker in message for marker in _AUDIT_MARKERS):
        return ErrorCode.AUDIT_FAILED
    return ErrorCode.INTERNAL_ERROR


_USER_MESSAGES = {
    ErrorCode.INVALID_URL: "The provided URL is invalid",
    ErrorCode.PAGE_LOAD_TIMEOUT: "The page did not load within the navigation timeout",
    ErrorCode.PAGE_LOAD_FAILED: "Failed to load the page. Please check the URL is accessible.",
    ErrorCode.BROWSER_FAILURE: "Browser initialization failed. Please try again.",
    ErrorCode.AUDIT_FAILED: "Accessibility audit failed. Please try again.",
    ErrorCode.INTERNAL_ERROR: "An unexpected error occurred. Please try again.",
}

_HTTP_STATUS = {
    ErrorCode.INVALID_URL: 400,
    ErrorCode.PAGE_LOAD_TIMEOUT: 502,
    ErrorCode.PAGE_LOAD_FAILED: 502,
    ErrorCode.BROWSER_FAILURE: 500,
    ErrorCode.AUDIT_FAILED: 500,
    ErrorCode.INTERNAL_ERROR: 500,
}

_STAGES = {
    ErrorCode.INVALID_URL: "validation",
    ErrorCode.PAGE_LOAD_TIMEOUT: "navigation",
    ErrorCode.PAGE_LOAD_FAILED: "navigation",
    ErrorCode.BROWSER_FAILURE: "browser_init",
    ErrorCode.AUDIT_FAILED: "accessibility_scan",
}


def user_message(code: ErrorCode) -> str:
    return _USER_MESSAGES.get(code, _USER_MESSAGES[ErrorCode.INTERNAL_ERROR])


def http_status(code: ErrorCode) -> int:
    return _HTTP_STATUS.get(code, 500)


def failure_stage(code: ErrorCode) -> str:
    return _STAGES.get(code, "unknown")


def as_accessibility_error(error: BaseException) -> AccessibilityError:
    """Wrap any exception into the taxonomy, keeping classified errors as they are."""
    if isinstance(error, AccessibilityError):
        return error
    code = classify_error(error)
    return AccessibilityError(code, user_message(code), error)
