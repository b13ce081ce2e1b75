import datetime as dt
import pathlib
from typing import Dict, Optional

import requests
from requests.adapters import HTTPAdapter
from slugify import slugify
from urllib3.util.retry import Retry

from config import AXE_CDN, USER_AGENT


def session_with_retries() -> requests.Session:
    s = requests.Session()
    retries = Retry(total=3, backoff_factor=0.5, status_forcelist=[429, 500, 502, 503, 504],
                    allowed_methods=frozenset(["GET", "HEAD"]), raise_on_status=False)
    s.mount("http://", HTTPAdapter(max_retries=retries))
    s.mount("https://", HTTPAdapter(max_retries=retries))
    s.headers.update({"User-Agent": USER_AGENT})
    return s


def ensure_axe_js(assets_dir: str, source: Optional[str] = None) -> str:
    """Ensure axe.min.js exists locally, download from CDN if missing."""
    source = source or AXE_CDN
    if not source.lower().startswith(("http://", "https://")):
        local = pathlib.Path(source)
        if local.is_file() and local.stat().st_size > 0:
            return str(local)
        raise FileNotFoundError(f"axe bundle not found at {source}")

    axe_path = pathlib.Path(assets_dir) / "axe.min.js"
    if axe_path.exists() and axe_path.stat().st_size > 0:
        return str(axe_path)
    axe_path.parent.mkdir(parents=True, exist_ok=True)
    r = session_with_retries().get(source, timeout=20)
    r.raise_for_status()
    if not r.content:
        raise ValueError(f"empty axe bundle from {source}")
    axe_path.write_bytes(r.content)
    return str(axe_path)


def safe_filename(name: str) -> str:
    return slugify(name or "report")


def now_iso() -> str:
    return dt.datetime.now(dt.timezone.utc).isoformat().replace("+00:00", "Z")


def inline_style_dict(style: str) -> Dict[str, str]:
    out = {}
    for part in (style or "").split(";"):
        if ":" in part:
            k, v = part.split(":", 1); out[k.strip().lower()] = v.strip()
    return out


def style_dict_to_str(style: Dict[str, str]) -> str:
    return "; ".join(f"{k}: {v}" for k, v in style.items() if v != "") + (";" if style else "")
