"""Saved scan reports: one JSON document per report on disk."""
from __future__ import annotations

import asyncio
import json
import os
import uuid
from dataclasses import asdict, dataclass, field, fields
from pathlib import Path
from typing import Any, Dict, List, Optional, Protocol, Tuple

from logger import get_logger
from pipeline import AccessibilityPipeline, OutputMode, ScanResult


@dataclass
class Report:
    report_id: str
    report_url: str
    report_datetime: str
    report_issues: List[Dict[str, Any]] = field(default_factory=list)
    report_issue_count: int = 0
    document_title: str = ""
    summary: Dict[str, int] = field(default_factory=dict)
    snapshot: Optional[Dict[str, Any]] = None
    report_modified_html: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Report":
        known = {f.name for f in fields(cls)}
        return cls(**{k: v for k, v in data.items() if k in known})


def build_report(result: ScanResult, report_id: Optional[str] = None) -> Report:
    return Report(
        report_id=report_id or uuid.uuid4().hex,
        report_url=result.url,
        report_datetime=result.scan_time,
        report_issues=[issue.to_dict() for issue in result.issues],
        report_issue_count=len(result.issues),
        document_title=result.document_title,
        summary=result.summary.to_dict(),
        snapshot=result.snapshot.to_dict() if result.snapshot else None,
        report_modified_html=result.annotated_html,
    )


class ReportStore(Protocol):

    async def add(self, report: Report) -> str:
        ...

    async def find_by_test_id(self, test_id: str) -> Optional[Tuple[str, Report]]:
        ...

    async def update(self, doc_id: str, values: Dict[str, Any]) -> None:
        ...


class JsonFileReportStore:
    """ReportStore backed by ``<directory>/<doc_id>.json`` files."""

    def __init__(self, directory: str, log: Any = None):
        self.directory = Path(directory)
        self.log = log or get_logger()
        self.directory.mkdir(parents=True, exist_ok=True)

    def _path(self, doc_id: str) -> Path:
        if not doc_id or os.sep in doc_id or (os.altsep and os.altsep in doc_id) or doc_id.startswith("."):
            raise ValueError(f"Invalid document id: {doc_id!r}")
        return self.directory / f"{doc_id}.json"

    def _write(self, doc_id: str, data: Dict[str, Any]) -> None:
        path = self._path(doc_id)
        tmp = path.with_suffix(".json.tmp")
        with open(tmp, "w", encoding="utf-8") as f:
            json.dump(data, f, ensure_ascii=False, indent=2)
        os.replace(tmp, path)

    def _read(self, path: Path) -> Dict[str, Any]:
        with open(path, "r", encoding="utf-8") as f:
            return json.load(f)

    def _load(self, path: Path) -> Optional[Report]:
        try:
            data = self._read(path)
            if not isinstance(data, dict):
                raise ValueError("report document is not an object")
            return Report.from_dict(data)
        except (OSError, ValueError, TypeError) as exc:
            self.log.warning("report_unreadable", path=str(path), error=str(exc))
            return None

    def _find(self, test_id: str) -> Optional[Tuple[str, Report]]:
        for path in sorted(self.directory.glob("*.json")):
            report = self._load(path)
            if report is not None and report.report_id == test_id:
                return path.stem, report
        return None

    def _update(self, doc_id: str, values: Dict[str, Any]) -> None:
        path = self._path(doc_id)
        if not path.exists():
            raise KeyError(doc_id)
        data = self._read(path)
        data.update(values)
        self._write(doc_id, data)

    def list_reports(self) -> List[Tuple[str, Report]]:
        """Saved reports, newest first. Unreadable files are logged and skipped."""
        out = []
        for path in self.directory.glob("*.json"):
            report = self._load(path)
            if report is not None:
                out.append((path.stem, report))
        return sorted(out, key=lambda item: item[1].report_datetime, reverse=True)

    async def add(self, report: Report) -> str:
        doc_id = uuid.uuid4().hex
        await asyncio.to_thread(self._write, doc_id, report.to_dict())
        return doc_id

    async def find_by_test_id(self, test_id: str) -> Optional[Tuple[str, Report]]:
        return await asyncio.to_thread(self._find, test_id)

    async def update(self, doc_id: str, values: Dict[str, Any]) -> None:
        await asyncio.to_thread(self._update, doc_id, values)


async def persist_scan(store: ReportStore, result: ScanResult, log: Any = None) -> Tuple[str, Report]:
    log = log or get_logger()
    report = build_report(result)
    doc_id = await store.add(report)
    log.info("report_saved", doc_id=doc_id, report_id=report.report_id, issue_count=report.report_issue_count)
    return doc_id, report


async def regenerate_annotated_html(store: ReportStore, test_id: str,
                                    pipeline: AccessibilityPipeline) -> Optional[str]:
    """Re-scan a saved report's URL in overlay mode and store the new HTML.

    Returns ``None`` when no report has ``test_id``.
    """
    found = await store.find_by_test_id(test_id)
    if found is None:
        pipeline.log.warning("report_not_found", report_id=test_id)
        return None
    doc_id, report = found
    result = await pipeline.run(report.report_url, OutputMode.OVERLAY)
    await store.update(doc_id, {"report_modified_html": result.annotated_html})
    pipeline.log.info("report_regenerated", doc_id=doc_id, report_id=test_id)
    return result.annotated_html
