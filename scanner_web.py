import asyncio
from typing import Any, Dict, List, Optional

from config import AuditConfig
from errors import AccessibilityError, ErrorCode
from models import AuditResult, Finding
from utils import ensure_axe_js

AXE_TAGS: Dict[str, List[str]] = {
    "WCAG2A": ["wcag2a", "wcag21a"],
    "WCAG2AA": ["wcag2a", "wcag2aa", "wcag21a", "wcag21aa", "wcag22aa"],
    "WCAG2AAA": ["wcag2a", "wcag2aa", "wcag2aaa", "wcag21a", "wcag21aa", "wcag22aa"],
}

TYPE_CODES = {"error": 1, "warning": 2, "notice": 3}

AXE_RUN_JS = """
async (tags) => {
    if (!window.axe || !window.axe.run) {
        return {error: 'axe not loaded'};
    }
    const res = await window.axe.run(document, {
        resultTypes: ['violations', 'incomplete'],
        runOnly: {type: 'tag', values: tags}
    });
    return {violations: res.violations, incomplete: res.incomplete};
}
"""


def standard_tags(standard: str) -> List[str]:
    return AXE_TAGS.get((standard or "").upper(), AXE_TAGS["WCAG2AA"])


def _selector_from_target(target: Any) -> Optional[str]:
    # Compound targets (iframe / shadow DOM paths) cannot be queried from the top document.
    if isinstance(target, str):
        return target or None
    if isinstance(target, list) and len(target) == 1 and isinstance(target[0], str):
        return target[0] or None
    return None


def _wanted(issue_type: str, include_warnings: bool, include_notices: bool) -> bool:
    if issue_type == "warning":
        return include_warnings
    if issue_type == "notice":
        return include_notices
    return True


def findings_from_axe(result: Dict[str, Any], include_warnings: bool = True,
                      include_notices: bool = False) -> List[Finding]:
    """Flatten axe results into one Finding per affected node, violations first."""
    findings: List[Finding] = []
    for bucket, issue_type in (("violations", "error"), ("incomplete", "warning")):
        if not _wanted(issue_type, include_warnings, include_notices):
            continue
        for rule in result.get(bucket) or []:
            help_text = rule.get("help") or rule.get("description") or rule.get("id") or ""
            help_url = rule.get("helpUrl") or ""
            message = f"{help_text} ({help_url})" if help_url else help_text
            for node in rule.get("nodes") or []:
                findings.append(Finding(
                    code=rule.get("id") or "unknown",
                    message=message,
                    type=issue_type,
                    type_code=TYPE_CODES[issue_type],
                    selector=_selector_from_target(node.get("target")),
                    context=node.get("html") or None,
                    runner="axe",
                    runner_extras={
                        "impact": node.get("impact") or rule.get("impact"),
                        "description": rule.get("description"),
                        "helpUrl": help_url or None,
                        "tags": list(rule.get("tags") or []),
                    },
                ))
    return findings


async def _run_axe(session: Any, axe_path: str, config: AuditConfig) -> Dict[str, Any]:
    await session.inject_script(axe_path)
    if config.audit_wait_ms > 0:
        await session.pause(config.audit_wait_ms)
    return await session.evaluate(AXE_RUN_JS, standard_tags(config.standard))


async def run_audit(session: Any, config: AuditConfig, log: Any) -> AuditResult:
    """Audit the page ``session`` already rendered; no second navigation."""
    log.info("accessibility_scan_start", standard=config.standard)
    try:
        axe_path = await asyncio.to_thread(ensure_axe_js, config.assets_dir, config.axe_source)
        result = await asyncio.wait_for(_run_axe(session, axe_path, config),
                                        timeout=config.audit_timeout_ms / 1000.0)
        if not isinstance(result, dict):
            raise RuntimeError("unexpected axe result")
        if result.get("error"):
            raise RuntimeError(f"axe-core: {result['error']}")
        title = await session.document_title()
    except Exception as exc:
        log.error("accessibility_scan_failed", error=str(exc) or exc.__class__.__name__)
        raise AccessibilityError(ErrorCode.AUDIT_FAILED, "Accessibility audit failed", exc) from exc

    findings = findings_from_axe(result, config.include_warnings, config.include_notices)
    log.info("accessibility_scan_complete", issue_count=len(findings))
    return AuditResult(findings=findings, document_title=title or "")
