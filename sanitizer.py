"""Static snapshot sanitization.

``sanitize_html`` turns a captured DOM into a document that can be shown
later without running any of the page's scripts: executable content is
removed, URLs are made absolute so styling and images keep working, and
layout is frozen. It never touches the network.
"""
from __future__ import annotations

import re
from typing import Optional
from urllib.parse import urljoin, urlsplit

from bs4 import BeautifulSoup, Doctype, Tag

INLINE_JS_ATTRIBUTES = (
    "onclick", "ondblclick", "onmousedown", "onmouseup", "onmouseover",
    "onmousemove", "onmouseout", "onmouseenter", "onmouseleave",
    "onkeydown", "onkeypress", "onkeyup",
    "onfocus", "onblur", "onchange", "oninput", "onsubmit", "onreset",
    "onload", "onerror", "onabort", "onunload", "onbeforeunload",
    "onscroll", "onresize", "onhashchange", "onpopstate",
    "ondrag", "ondragstart", "ondragend", "ondragenter", "ondragleave", "ondragover", "ondrop",
    "oncopy", "oncut", "onpaste",
    "ontouchstart", "ontouchmove", "ontouchend", "ontouchcancel",
    "onanimationstart", "onanimationend", "onanimationiteration",
    "ontransitionend", "onwheel", "oncontextmenu",
)
_HANDLER_SET = frozenset(INLINE_JS_ATTRIBUTES)

REMOVE_TAGS = ("script", "noscript")

# (tag, attribute, is_srcset)
URL_ATTRIBUTES = (
    ("a", "href", False),
    ("img", "src", False),
    ("img", "srcset", True),
    ("link", "href", False),
    ("source", "src", False),
    ("source", "srcset", True),
    ("video", "src", False),
    ("video", "poster", False),
    ("audio", "src", False),
    ("object", "data", False),
    ("embed", "src", False),
    ("track", "src", False),
)

PASSTHROUGH_PREFIXES = ("data:", "javascript:", "mailto:", "tel:", "#", "//")

SNAPSHOT_META_NAME = "a11y-snapshot"
SNAPSHOT_META_CONTENT = "static-visual-snapshot"
SNAPSHOT_CSP = "script-src 'none'; object-src 'none'"

DISABLE_ANIMATIONS_CSS = """
*, *::before, *::after {
    animation-duration: 0s !important;
    animation-delay: 0s !important;
    transition-duration: 0s !important;
    transition-delay: 0s !important;
}
"""

FREEZE_FIXED_CSS = """
[style*="position: fixed"],
[style*="position:fixed"],
[style*="position: sticky"],
[style*="position:sticky"] {
    position: absolute !important;
}
"""

_CSS_URL_RE = re.compile(r"""url\(\s*(['"]?)(.*?)\1\s*\)""", re.IGNORECASE | re.DOTALL)


def resolve_url(url: Optional[str], base_url: str) -> Optional[str]:
    if not url:
        return url
    stripped = url.strip()
    if stripped.lower().startswith(PASSTHROUGH_PREFIXES):
        return url
    try:
        return urljoin(base_url, stripped)
    except ValueError:
        return url


def rewrite_srcset(value: str, base_url: str) -> str:
    """Absolutize each srcset candidate, keeping its width/density descriptor."""
    candidates = []
    pos, n = 0, len(value)
    while pos < n:
        while pos < n and (value[pos].isspace() or value[pos] == ","):
            pos += 1
        if pos >= n:
            break
        start = pos
        while pos < n and not value[pos].isspace():
            pos += 1
        url = value[start:pos]
        descriptor = ""
        if url.endswith(","):
            url = url.rstrip(",")
        else:
            start, depth = pos, 0
            while pos < n:
                ch = value[pos]
                if ch == "(":
                    depth += 1
                elif ch == ")" and depth:
                    depth -= 1
                elif ch == "," and depth == 0:
                    break
                pos += 1
            descriptor = value[start:pos].strip()
        resolved = resolve_url(url, base_url)
        candidates.append(f"{resolved} {descriptor}" if descriptor else resolved)
    return ", ".join(candidates)


def rewrite_style_urls(style: str, base_url: str) -> str:
    def _sub(match: "re.Match[str]") -> str:
        raw = match.group(2).strip()
        resolved = resolve_url(raw, base_url)
        if resolved == raw:
            return match.group(0)
        return 'url("%s")' % resolved.replace('"', "%22")

    return _CSS_URL_RE.sub(_sub, style)


def _attr_text(tag: Tag, name: str) -> Optional[str]:
    value = tag.get(name)
    if isinstance(value, list):
        return " ".join(value)
    return value


def ensure_head(soup: BeautifulSoup) -> Tag:
    head = soup.find("head")
    if head is not None:
        return head
    head = soup.new_tag("head")
    html = soup.find("html")
    if html is not None:
        html.insert(0, head)
        return head
    index = 0
    for i, child in enumerate(soup.contents):
        if isinstance(child, Doctype):
            index = i + 1
    soup.insert(index, head)
    return head


def strip_executable(soup: BeautifulSoup) -> None:
    """Remove script elements, inline handlers and javascript: links in place."""
    for tag in soup.find_all(list(REMOVE_TAGS)):
        tag.extract()

    for tag in soup.find_all(True):
        for attr in list(tag.attrs):
            name = attr.lower()
            if name in _HANDLER_SET or name.startswith("on") or name == "srcdoc":
                del tag[attr]
        for href_attr in ("href", "xlink:href"):
            href = _attr_text(tag, href_attr)
            if href and href.strip().lower().startswith("javascript:"):
                tag[href_attr] = "#"


def _neutralize_forms(soup: BeautifulSoup) -> None:
    for form in soup.find_all("form"):
        form["action"] = "#"
    for button in soup.find_all("button"):
        if (_attr_text(button, "type") or "submit").strip().lower() == "submit":
            button["type"] = "button"
    for field in soup.find_all("input"):
        if (_attr_text(field, "type") or "").strip().lower() == "submit":
            field["type"] = "button"


def _remove_third_party_iframes(soup: BeautifulSoup, base_url: str) -> None:
    base_host = urlsplit(base_url).hostname
    for iframe in soup.find_all("iframe"):
        src = _attr_text(iframe, "src")
        if not src:
            continue
        try:
            host = urlsplit(urljoin(base_url, src.strip())).hostname
        except ValueError:
            iframe.extract()
            continue
        if host != base_host:
            iframe.extract()


def _absolutize_urls(soup: BeautifulSoup, base_url: str) -> None:
    for tag_name, attr, is_srcset in URL_ATTRIBUTES:
        for tag in soup.find_all(tag_name):
            value = _attr_text(tag, attr)
            if not value:
                continue
            tag[attr] = rewrite_srcset(value, base_url) if is_srcset else resolve_url(value, base_url)

    for tag in soup.find_all(style=True):
        style = _attr_text(tag, "style")
        if style and "url(" in style.lower():
            tag["style"] = rewrite_style_urls(style, base_url)


def _style_tag(soup: BeautifulSoup, tag_id: str, css: str) -> Tag:
    style = soup.new_tag("style", id=tag_id)
    style.string = css
    return style


def sanitize_html(html: Optional[str], base_url: str, disable_animations: bool = True,
                  freeze_fixed_elements: bool = True, remove_third_party_iframes: bool = True) -> str:
    soup = BeautifulSoup(html or "", "html.parser")

    strip_executable(soup)
    _neutralize_forms(soup)
    if remove_third_party_iframes:
        _remove_third_party_iframes(soup, base_url)
    _absolutize_urls(soup, base_url)

    head = ensure_head(soup)
    if disable_animations:
        head.append(_style_tag(soup, "a11y-snapshot-disable-animations", DISABLE_ANIMATIONS_CSS))
    if freeze_fixed_elements:
        head.append(_style_tag(soup, "a11y-snapshot-freeze-fixed", FREEZE_FIXED_CSS))

    head.insert(0, soup.new_tag("meta", attrs={"http-equiv": "Content-Security-Policy", "content": SNAPSHOT_CSP}))
    head.insert(0, soup.new_tag("meta", attrs={"name": "a11y-snapshot-source", "content": base_url}))
    head.insert(0, soup.new_tag("meta", attrs={"name": SNAPSHOT_META_NAME, "content": SNAPSHOT_META_CONTENT}))
    if head.find("base") is None:
        head.insert(0, soup.new_tag("base", href=base_url))

    return str(soup)
