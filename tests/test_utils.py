from __future__ import annotations

from pathlib import Path

import pytest

import utils
from utils import ensure_axe_js, inline_style_dict, now_iso, safe_filename, style_dict_to_str


class FakeResponse:
    def __init__(self, content: bytes, status: int = 200):
        self.content = content
        self.status_code = status

    def raise_for_status(self) -> None:
        if self.status_code >= 400:
            raise RuntimeError(f"HTTP {self.status_code}")


class FakeHTTP:
    def __init__(self, response: FakeResponse):
        self.response = response
        self.urls = []

    def get(self, url, timeout=None):
        self.urls.append(url)
        return self.response


def test_local_axe_bundle(tmp_path: Path) -> None:
    bundle = tmp_path / "axe.js"
    bundle.write_text("window.axe={}", encoding="utf-8")
    assert ensure_axe_js(str(tmp_path / "assets"), str(bundle)) == str(bundle)
    with pytest.raises(FileNotFoundError):
        ensure_axe_js(str(tmp_path / "assets"), str(tmp_path / "missing.js"))


def test_axe_bundle_downloaded_once(tmp_path: Path, monkeypatch) -> None:
    http = FakeHTTP(FakeResponse(b"window.axe={}"))
    monkeypatch.setattr(utils, "session_with_retries", lambda: http)
    first = ensure_axe_js(str(tmp_path), "https://cdn.example.com/axe.min.js")
    second = ensure_axe_js(str(tmp_path), "https://cdn.example.com/axe.min.js")
    assert first == second == str(tmp_path / "axe.min.js")
    assert Path(first).read_bytes() == b"window.axe={}"
    assert http.urls == ["https://cdn.example.com/axe.min.js"]


def test_empty_download_is_rejected(tmp_path: Path, monkeypatch) -> None:
    monkeypatch.setattr(utils, "session_with_retries", lambda: FakeHTTP(FakeResponse(b"")))
    with pytest.raises(ValueError):
        ensure_axe_js(str(tmp_path), "https://cdn.example.com/axe.min.js")
    assert not (tmp_path / "axe.min.js").exists()


def test_retry_session_mounts_adapters() -> None:
    s = utils.session_with_retries()
    assert s.get_adapter("https://example.com").max_retries.total == 3
    assert "A11yTestBot" in s.headers["User-Agent"]


def test_small_helpers() -> None:
    assert safe_filename("Home | Example Council") == "home-example-council"
    assert safe_filename("") == "report"
    assert now_iso().endswith("Z")
    style = inline_style_dict("Color: red; ; border:1px solid")
    assert style == {"color": "red", "border": "1px solid"}
    assert style_dict_to_str(style) == "color: red; border: 1px solid;"
    assert style_dict_to_str({}) == ""
