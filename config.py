"""Runtime configuration for the snapshot auditor.

Everything is read from the environment once and frozen into an
``AuditConfig`` value that is passed explicitly to each pipeline run.
"""
from __future__ import annotations

import os
import platform
import tempfile
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, Optional, Tuple

# -----------------------------
# Fixed renderer settings
# -----------------------------
VIEWPORT: Dict[str, int] = {"width": 1366, "height": 768}
NAVIGATION_TIMEOUT_MS = 30000
AUDIT_TIMEOUT_MS = 30000
AUDIT_WAIT_MS = 1000
MAX_SCAN_TIMEOUT_S = 45.0

USER_AGENT = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36 A11yTestBot/3.0"
)
LAUNCH_ARGS: Tuple[str, ...] = (
    "--no-sandbox",
    "--disable-setuid-sandbox",
    "--disable-dev-shm-usage",
    "--disable-gpu",
    "--disable-web-security",
    "--disable-features=VizDisplayCompositor",
)

AXE_CDN = "https://cdnjs.cloudflare.com/ajax/libs/axe-core/4.9.1/axe.min.js"

SERVICE_NAME = "accessibility-snapshot-auditor"
SERVICE_VERSION = "3.0.0"

STANDARDS = ("WCAG2A", "WCAG2AA", "WCAG2AAA")


def _env_flag(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    return raw.strip().lower() in ("1", "true", "yes", "on")


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    try:
        return int(raw) if raw else default
    except ValueError:
        return default


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    try:
        return float(raw) if raw else default
    except ValueError:
        return default


# -----------------------------
# Data dirs
# -----------------------------
def resolve_data_dir() -> str:
    env_dir = os.getenv("DATA_DIR")
    if env_dir:
        try:
            Path(env_dir).mkdir(parents=True, exist_ok=True)
            return env_dir
        except PermissionError:
            pass
    tmp_dir = os.path.join(tempfile.gettempdir(), "a11y-snapshot-auditor")
    Path(tmp_dir).mkdir(parents=True, exist_ok=True)
    return tmp_dir


# -----------------------------
# Chrome discovery
# -----------------------------
def get_chrome_executable_path() -> Optional[str]:
    """Return a system Chrome binary, or None to use Playwright's bundled Chromium."""
    env_path = os.getenv("CHROME_EXECUTABLE_PATH")
    if env_path:
        return env_path

    system = platform.system()
    if system == "Windows":
        local_app_data = os.getenv("LOCALAPPDATA", "")
        candidates = [
            r"C:\Program Files\Google\Chrome\Application\chrome.exe",
            r"C:\Program Files (x86)\Google\Chrome\Application\chrome.exe",
        ]
        if local_app_data:
            candidates.append(os.path.join(local_app_data, "Google", "Chrome", "Application", "chrome.exe"))
    elif system == "Darwin":
        candidates = ["/Applications/Google Chrome.app/Contents/MacOS/Google Chrome"]
    else:
        candidates = ["/usr/bin/google-chrome-stable", "/usr/bin/google-chrome"]

    for candidate in candidates:
        if os.path.exists(candidate):
            return candidate
    return None


@dataclass(frozen=True)
class AuditConfig:
    standard: str = "WCAG2AA"
    include_notices: bool = False
    include_warnings: bool = True
    navigation_timeout_ms: int = NAVIGATION_TIMEOUT_MS
    audit_timeout_ms: int = AUDIT_TIMEOUT_MS
    audit_wait_ms: int = AUDIT_WAIT_MS
    max_scan_timeout_s: float = MAX_SCAN_TIMEOUT_S
    viewport: Tuple[int, int] = (VIEWPORT["width"], VIEWPORT["height"])
    user_agent: str = USER_AGENT
    launch_args: Tuple[str, ...] = LAUNCH_ARGS
    executable_path: Optional[str] = None
    axe_source: str = AXE_CDN
    data_dir: str = field(default_factory=lambda: os.path.join(tempfile.gettempdir(), "a11y-snapshot-auditor"))

    @classmethod
    def from_env(cls) -> "AuditConfig":
        standard = (os.getenv("A11Y_STANDARD") or "WCAG2AA").strip().upper()
        if standard not in STANDARDS:
            standard = "WCAG2AA"
        return cls(
            standard=standard,
            include_notices=_env_flag("A11Y_INCLUDE_NOTICES", False),
            include_warnings=_env_flag("A11Y_INCLUDE_WARNINGS", True),
            navigation_timeout_ms=_env_int("A11Y_NAVIGATION_TIMEOUT_MS", NAVIGATION_TIMEOUT_MS),
            audit_timeout_ms=_env_int("A11Y_AUDIT_TIMEOUT_MS", AUDIT_TIMEOUT_MS),
            audit_wait_ms=_env_int("A11Y_AUDIT_WAIT_MS", AUDIT_WAIT_MS),
            max_scan_timeout_s=_env_float("A11Y_MAX_SCAN_TIMEOUT_S", MAX_SCAN_TIMEOUT_S),
            executable_path=get_chrome_executable_path(),
            axe_source=os.getenv("AXE_SOURCE", AXE_CDN),
            data_dir=resolve_data_dir(),
        )

    @property
    def viewport_dict(self) -> Dict[str, int]:
        return {"width": self.viewport[0], "height": self.viewport[1]}

    @property
    def navigation_timeout_s(self) -> float:
        return self.navigation_timeout_ms / 1000.0

    @property
    def assets_dir(self) -> str:
        return os.path.join(self.data_dir, "assets")

    @property
    def reports_dir(self) -> str:
        return os.path.join(self.data_dir, "reports")

    @property
    def exports_dir(self) -> str:
        return os.path.join(self.data_dir, "exports")

    def ensure_dirs(self) -> None:
        for _d in (self.assets_dir, self.reports_dir, self.exports_dir):
            Path(_d).mkdir(parents=True, exist_ok=True)
