from __future__ import annotations

import asyncio

import pytest
from structlog.testing import capture_logs

from logger import get_logger
from models import BoundingBox, Finding, LocateResult
from visual_resolver import (extract_rule_code, issue_id, normalize_impact, resolve_issues,
                             wcag_reference)

HTMLCS_CODE = "WCAG2AA.Principle1.Guideline1_1.1_1_1.H37"


def _finding(code: str = "image-alt", selector=None, type_code: int = 1, issue_type: str = "error") -> Finding:
    return Finding(code=code, message="msg", type=issue_type, type_code=type_code,
                   selector=selector, context="<img>")


def test_extract_rule_code() -> None:
    assert extract_rule_code(HTMLCS_CODE) == "H37"
    assert extract_rule_code("color-contrast") == "color-contrast"
    assert extract_rule_code(None) == "unknown"
    assert extract_rule_code("") == "unknown"


@pytest.mark.parametrize("code, expected", [
    (HTMLCS_CODE, "1.1.1"),
    ("color-contrast", "1.4.3"),
    ("image-alt", "1.1.1"),
    ("html-has-lang", "3.1.1"),
    ("WCAG2AA.Principle4.Guideline4_1.4_1_2.H91.A.NoContent", "4.1.2"),
    ("some-new-rule", None),
    (None, None),
])
def test_wcag_reference(code, expected) -> None:
    assert wcag_reference(code) == expected


@pytest.mark.parametrize("type_code, issue_type, impact", [
    (1, "error", "critical"),
    (2, "warning", "serious"),
    (3, "notice", "moderate"),
    (None, "error", "critical"),
    (7, None, "minor"),
    (None, None, "minor"),
])
def test_normalize_impact(type_code, issue_type, impact) -> None:
    assert normalize_impact(type_code, issue_type) == impact


def test_issue_ids_are_zero_padded() -> None:
    assert issue_id(1) == "a11y-001"
    assert issue_id(42) == "a11y-042"
    assert issue_id(1000) == "a11y-1000"


def test_resolve_keeps_order_and_marks_visualizable() -> None:
    box = BoundingBox(x=1, y=2, width=3, height=4)
    calls = []

    async def locate(selector: str) -> LocateResult:
        calls.append(selector)
        if selector == "#found":
            return LocateResult.hit(box)
        if selector == "#explodes":
            raise RuntimeError("detached")
        return LocateResult.miss("no matching element")

    findings = [
        _finding(selector="#found"),
        _finding(code=HTMLCS_CODE),
        _finding(code="color-contrast", selector="#missing", type_code=2, issue_type="warning"),
        _finding(selector="#explodes"),
    ]
    with capture_logs() as logs:
        issues = asyncio.run(resolve_issues(findings, locate, get_logger()))

    assert [i.id for i in issues] == ["a11y-001", "a11y-002", "a11y-003", "a11y-004"]
    assert calls == ["#found", "#missing", "#explodes"]
    assert issues[0].bounding_box == box and issues[0].visualizable
    assert issues[1].selector is None and not issues[1].visualizable
    assert issues[1].wcag == "1.1.1" and issues[1].rule == "H37"
    assert issues[2].impact == "serious" and not issues[2].visualizable
    assert not issues[3].visualizable
    for issue in issues:
        assert issue.visualizable == (issue.bounding_box is not None)

    events = [e["event"] for e in logs]
    assert events[0] == "visual_resolution_start"
    assert events[-1] == "visual_resolution_complete"
    assert events.count("bounding_box_failed") == 2
    assert logs[-1]["visualizable"] == 1
