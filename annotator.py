"""Overlay mode: highlight flagged elements in the captured page.

Unlike the snapshot sanitizer this output keeps one small script, the
click-to-inspect handler for the numbered markers.
"""
from __future__ import annotations

from typing import Any, Dict, Iterable, List, Optional, Sequence, Tuple

import httpx
from bs4 import BeautifulSoup, Tag

from config import USER_AGENT
from logger import get_logger
from models import Finding
from sanitizer import ensure_head, strip_executable
from utils import inline_style_dict, style_dict_to_str
from visual_resolver import issue_id

DEFAULT_CSS_TIMEOUT = 15.0

BORDER_BY_TYPE = {
    "error": "2px dotted red",
    "warning": "2px dotted orange",
}
DEFAULT_BORDER = "2px dotted blue"

VOID_ELEMENTS = frozenset({
    "area", "base", "br", "col", "embed", "hr", "img", "input",
    "link", "meta", "param", "source", "track", "wbr",
})

MARKER_CSS = """
/* Accessibility issue highlighting styles */
.a11y-issue-marker {
  position: absolute;
  top: -5px;
  right: -5px;
  background-color: red;
  color: white;
  border-radius: 50%;
  width: 20px;
  height: 20px;
  display: flex;
  justify-content: center;
  align-items: center;
  font-size: 12px;
  z-index: 9999;
  cursor: pointer;
}
.a11y-issue[data-issue-type="warning"] .a11y-issue-marker,
.a11y-issue[data-issue-type="warning"] + .a11y-issue-marker {
  background-color: orange;
}
.a11y-issue[data-issue-type="notice"] .a11y-issue-marker,
.a11y-issue[data-issue-type="notice"] + .a11y-issue-marker {
  background-color: blue;
}
.a11y-issue:hover::after {
  content: attr(data-issue-message);
  position: absolute;
  top: 20px;
  left: 0;
  background: rgba(0, 0, 0, 0.8);
  color: white;
  padding: 5px 10px;
  border-radius: 3px;
  font-size: 14px;
  z-index: 10000;
  max-width: 300px;
  white-space: normal;
}
"""

INSPECT_JS = """
document.addEventListener('DOMContentLoaded', function() {
  var issues = document.querySelectorAll('.a11y-issue');
  issues.forEach(function(issue) {
    issue.addEventListener('click', function() {
      var message = this.getAttribute('data-issue-message');
      var code = this.getAttribute('data-issue-code');
      var type = this.getAttribute('data-issue-type') || '';
      alert('Accessibility Issue:\\nType: ' + type.toUpperCase() +
            '\\nMessage: ' + message +
            '\\nCode: ' + code);
    });
  });
});
"""


# -----------------------------
# Stylesheet fetching
# -----------------------------
async def _fetch_css(client: httpx.AsyncClient, url: str) -> Tuple[Optional[str], Optional[str]]:
    try:
        r = await client.get(url)
    except httpx.HTTPError as e:
        return None, f"{e.__class__.__name__}: {e}"
    if not 200 <= r.status_code < 300:
        return None, f"HTTP {r.status_code}"
    return r.text, None


async def fetch_all_css(urls: Iterable[str], log: Any = None,
                        client: Optional[httpx.AsyncClient] = None,
                        timeout: float = DEFAULT_CSS_TIMEOUT) -> Dict[str, str]:
    """Fetch stylesheets one at a time; unreachable ones are logged and left out."""
    log = log or get_logger()
    own_client = client is None
    if own_client:
        client = httpx.AsyncClient(headers={"User-Agent": USER_AGENT, "Accept": "text/css,*/*;q=0.1"},
                                   timeout=httpx.Timeout(timeout), follow_redirects=True)
    css_content: Dict[str, str] = {}
    try:
        for url in dict.fromkeys(u for u in urls if u):
            text, err = await _fetch_css(client, url)
            if err is None:
                css_content[url] = text
            else:
                log.debug("stylesheet_fetch_failed", url=url, error=err)
    finally:
        if own_client:
            await client.aclose()
    return css_content


# -----------------------------
# HTML decoration
# -----------------------------
def _add_class(el: Tag, name: str) -> None:
    classes = el.get("class") or []
    if isinstance(classes, str):
        classes = classes.split()
    if name not in classes:
        el["class"] = list(classes) + [name]


def _decorate(soup: BeautifulSoup, el: Tag, finding: Finding, marker_id: str, number: int) -> None:
    _add_class(el, "a11y-issue")
    el["data-issue-id"] = marker_id
    el["data-issue-type"] = finding.type or ""
    el["data-issue-code"] = finding.code or ""
    el["data-issue-message"] = finding.message or ""

    style = inline_style_dict(el.get("style") or "")
    style["border"] = BORDER_BY_TYPE.get(finding.type, DEFAULT_BORDER)
    style["position"] = "relative"
    el["style"] = style_dict_to_str(style)

    marker = soup.new_tag("div", attrs={"class": "a11y-issue-marker", "data-issue-id": marker_id})
    marker.string = str(number)
    if el.name in VOID_ELEMENTS:
        el.insert_after(marker)
    else:
        el.append(marker)


def _combined_css(css_content: Dict[str, str]) -> str:
    parts = ["\n/* Combined CSS */\n"]
    for url, content in css_content.items():
        parts.append(f"\n/* From: {url} */\n{content}\n")
    parts.append(MARKER_CSS)
    # A stray closing tag inside fetched CSS would end the style element early.
    return "".join(parts).replace("</style", "<\\/style")


def generate_modified_html(html: Optional[str], findings: Sequence[Finding],
                           css_content: Dict[str, str], log: Any = None) -> str:
    log = log or get_logger()
    soup = BeautifulSoup(html or "", "html.parser")

    # Match every selector before mutating, so inserted markers cannot shift later matches.
    matches: List[Tuple[int, Finding, List[Tag]]] = []
    for position, finding in enumerate(findings, start=1):
        if not finding.selector:
            continue
        try:
            elements = soup.select(finding.selector)
        except Exception as exc:
            log.debug("annotation_selector_failed", selector=finding.selector, error=str(exc))
            continue
        if elements:
            matches.append((position, finding, elements))

    # The inspector appended below is the only script the overlay keeps.
    strip_executable(soup)

    for position, finding, elements in matches:
        for el in elements:
            _decorate(soup, el, finding, issue_id(position), position)

    head = ensure_head(soup)
    style = soup.new_tag("style", id="a11y-overlay-styles")
    style.string = _combined_css(css_content)
    head.append(style)

    body = soup.find("body") or soup.find("html") or soup
    script = soup.new_tag("script", id="a11y-overlay-inspector")
    script.string = INSPECT_JS
    body.append(script)
    return str(soup)
