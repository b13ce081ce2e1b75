"""Turns raw findings into resolved issues with ids, impact, WCAG refs and boxes."""
from __future__ import annotations

import re
from typing import Any, Awaitable, Callable, List, Optional, Union

from models import Finding, LocateResult, ResolvedIssue

Locator = Callable[[str], Awaitable[LocateResult]]

# axe rule id -> WCAG success criterion
WCAG_MAPPINGS = {
    "image-alt": "1.1.1",
    "input-image-alt": "1.1.1",
    "area-alt": "1.1.1",
    "object-alt": "1.1.1",
    "svg-img-alt": "1.1.1",
    "role-img-alt": "1.1.1",
    "image-redundant-alt": "1.1.1",
    "video-caption": "1.2.2",
    "audio-caption": "1.2.1",
    "form-field-multiple-labels": "1.3.1",
    "label": "1.3.1",
    "landmark-one-main": "1.3.1",
    "region": "1.3.1",
    "heading-order": "1.3.1",
    "empty-heading": "1.3.1",
    "list": "1.3.1",
    "listitem": "1.3.1",
    "definition-list": "1.3.1",
    "dlitem": "1.3.1",
    "th-has-data-cells": "1.3.1",
    "td-headers-attr": "1.3.1",
    "autocomplete-valid": "1.3.5",
    "link-in-text-block": "1.4.1",
    "color-contrast": "1.4.3",
    "meta-viewport": "1.4.4",
    "color-contrast-enhanced": "1.4.6",
    "meta-refresh": "2.2.1",
    "blink": "2.2.2",
    "marquee": "2.2.2",
    "meta-refresh-no-exceptions": "2.2.4",
    "bypass": "2.4.1",
    "accesskeys": "2.4.1",
    "frame-title": "2.4.1",
    "skip-link": "2.4.1",
    "document-title": "2.4.2",
    "focus-order-semantics": "2.4.3",
    "tabindex": "2.4.3",
    "link-name": "2.4.4",
    "focus-visible": "2.4.7",
    "target-size": "2.5.5",
    "html-has-lang": "3.1.1",
    "html-lang-valid": "3.1.1",
    "duplicate-id": "4.1.1",
    "duplicate-id-active": "4.1.1",
    "duplicate-id-aria": "4.1.1",
    "button-name": "4.1.2",
    "aria-allowed-attr": "4.1.2",
    "aria-hidden-body": "4.1.2",
    "aria-required-attr": "4.1.2",
    "aria-required-children": "4.1.2",
    "aria-required-parent": "4.1.2",
    "aria-roles": "4.1.2",
    "aria-valid-attr": "4.1.2",
    "aria-valid-attr-value": "4.1.2",
}

_CRITERION_RE = re.compile(r"(\d+)_(\d+)_(\d+)")

_IMPACT_BY_TYPE = {
    1: "critical",
    "error": "critical",
    2: "serious",
    "warning": "serious",
    3: "moderate",
    "notice": "moderate",
}


def extract_rule_code(code: Optional[str]) -> str:
    """Last dot-segment of an engine code, e.g. ``...1_1_1.H37`` -> ``H37``."""
    if not code:
        return "unknown"
    return code.split(".")[-1] or code


def normalize_impact(type_code: Optional[int], issue_type: Optional[str] = None) -> str:
    key: Union[int, str, None] = type_code or issue_type
    return _IMPACT_BY_TYPE.get(key, "minor")


def wcag_reference(code: Optional[str]) -> Optional[str]:
    if not code:
        return None
    mapped = WCAG_MAPPINGS.get(extract_rule_code(code).lower())
    if mapped:
        return mapped
    m = _CRITERION_RE.search(code)
    if m:
        return ".".join(m.groups())
    return None


def issue_id(position: int) -> str:
    return f"a11y-{position:03d}"


async def resolve_issues(findings: List[Finding], locate: Locator, log: Any) -> List[ResolvedIssue]:
    """Resolve findings in order; a box that cannot be found only clears ``visualizable``."""
    log.info("visual_resolution_start", count=len(findings))
    resolved: List[ResolvedIssue] = []

    for position, finding in enumerate(findings, start=1):
        box = None
        if finding.selector:
            try:
                lookup = await locate(finding.selector)
            except Exception as exc:
                lookup = LocateResult.miss(f"locator error: {exc}")
            if lookup.found:
                box = lookup.box
            else:
                log.debug("bounding_box_failed", selector=finding.selector, reason=lookup.reason)

        resolved.append(ResolvedIssue(
            id=issue_id(position),
            rule=extract_rule_code(finding.code),
            message=finding.message,
            impact=normalize_impact(finding.type_code, finding.type),
            wcag=wcag_reference(finding.code),
            selector=finding.selector or None,
            context=finding.context or None,
            bounding_box=box,
        ))

    log.info("visual_resolution_complete", total=len(resolved),
             visualizable=sum(1 for issue in resolved if issue.visualizable))
    return resolved
