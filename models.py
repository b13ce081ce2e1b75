"""Shared data models for the snapshot pipeline."""
from __future__ import annotations

import math
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional


def _js_round(value: float) -> int:
    # Half-up rounding, matching how browsers report rounded pixel values.
    return int(math.floor(float(value) + 0.5))


@dataclass(frozen=True)
class Finding:
    """One raw rule violation as reported by the audit engine."""
    code: str
    message: str
    type: str              # "error", "warning", "notice"
    type_code: int         # 1, 2, 3
    selector: Optional[str] = None
    context: Optional[str] = None
    runner: str = "axe"
    runner_extras: Dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class BoundingBox:
    x: int
    y: int
    width: int
    height: int

    @classmethod
    def from_raw(cls, box: Dict[str, float]) -> "BoundingBox":
        return cls(
            x=_js_round(box["x"]),
            y=_js_round(box["y"]),
            width=_js_round(box["width"]),
            height=_js_round(box["height"]),
        )

    def to_dict(self) -> Dict[str, int]:
        return {"x": self.x, "y": self.y, "width": self.width, "height": self.height}


@dataclass(frozen=True)
class LocateResult:
    """Outcome of a bounding-box lookup: a box, or the reason there is none."""
    box: Optional[BoundingBox] = None
    reason: Optional[str] = None

    @property
    def found(self) -> bool:
        return self.box is not None

    @classmethod
    def hit(cls, box: BoundingBox) -> "LocateResult":
        return cls(box=box)

    @classmethod
    def miss(cls, reason: str) -> "LocateResult":
        return cls(reason=reason)


@dataclass(frozen=True)
class ResolvedIssue:
    id: str
    rule: str
    message: str
    impact: str
    wcag: Optional[str]
    selector: Optional[str]
    context: Optional[str]
    bounding_box: Optional[BoundingBox] = None

    @property
    def visualizable(self) -> bool:
        return self.bounding_box is not None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "rule": self.rule,
            "message": self.message,
            "impact": self.impact,
            "wcag": self.wcag,
            "selector": self.selector,
            "context": self.context,
            "boundingBox": self.bounding_box.to_dict() if self.bounding_box else None,
            "visualizable": self.visualizable,
        }


@dataclass(frozen=True)
class Summary:
    total: int = 0
    critical: int = 0
    serious: int = 0
    moderate: int = 0
    minor: int = 0
    visualizable: int = 0
    non_visual: int = 0

    @classmethod
    def from_issues(cls, issues: List[ResolvedIssue]) -> "Summary":
        counts = {"critical": 0, "serious": 0, "moderate": 0, "minor": 0}
        visual = 0
        for issue in issues:
            bucket = issue.impact if issue.impact in counts else "minor"
            counts[bucket] += 1
            if issue.visualizable:
                visual += 1
        return cls(total=len(issues), visualizable=visual, non_visual=len(issues) - visual, **counts)

    def to_dict(self) -> Dict[str, int]:
        return {
            "total": self.total,
            "critical": self.critical,
            "serious": self.serious,
            "moderate": self.moderate,
            "minor": self.minor,
            "visualizable": self.visualizable,
            "nonVisual": self.non_visual,
        }


@dataclass(frozen=True)
class PageDimensions:
    scroll_height: int
    scroll_width: int
    viewport_width: int
    viewport_height: int
    status: Optional[int] = None


@dataclass(frozen=True)
class Snapshot:
    html: str
    scroll_height: int
    note: str

    def to_dict(self) -> Dict[str, Any]:
        return {"html": self.html, "scrollHeight": self.scroll_height, "note": self.note}


@dataclass(frozen=True)
class AuditResult:
    findings: List[Finding]
    document_title: str = ""
