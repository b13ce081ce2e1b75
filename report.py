import datetime as dt
import html as html_lib
from typing import Any, Dict, List

import pandas as pd
from reportlab.lib import colors
from reportlab.lib.pagesizes import A4
from reportlab.pdfbase.pdfmetrics import stringWidth
from reportlab.pdfgen import canvas

from pipeline import ScanResult

COLUMNS = ["id", "impact", "rule", "wcag", "message", "selector", "visualizable"]
IMPACT_ORDER = {"critical": 0, "serious": 1, "moderate": 2, "minor": 3}
IMPACT_COLORS = {
    "critical": "#991b1b",
    "serious": "#9a3412",
    "moderate": "#92400e",
    "minor": "#155e75",
}


# -----------------------------
# Data shaping
# -----------------------------
def issues_to_df(issues: List[Dict[str, Any]]) -> pd.DataFrame:
    if not issues:
        return pd.DataFrame(columns=COLUMNS)
    df = pd.DataFrame(issues)
    df = df[[c for c in COLUMNS if c in df.columns]]
    df["impact_rank"] = df["impact"].map(lambda s: IMPACT_ORDER.get(str(s).lower(), 9))
    df = df.sort_values(["impact_rank", "id"], kind="stable").drop(columns=["impact_rank"])
    return df.reset_index(drop=True)


def summarize_df(df: pd.DataFrame) -> Dict[str, int]:
    out = {k: 0 for k in IMPACT_ORDER}
    out.update({"total": 0, "visualizable": 0, "nonVisual": 0})
    if df.empty:
        return out
    cts = df["impact"].str.lower().value_counts().to_dict()
    for k in IMPACT_ORDER:
        out[k] = int(cts.get(k, 0))
    out["total"] = int(df.shape[0])
    if "visualizable" in df.columns:
        out["visualizable"] = int(df["visualizable"].astype(bool).sum())
    out["nonVisual"] = out["total"] - out["visualizable"]
    return out


def df_to_csv_bytes(df: pd.DataFrame) -> bytes:  return df.to_csv(index=False).encode("utf-8")
def df_to_json_bytes(df: pd.DataFrame) -> bytes: return df.to_json(orient="records", indent=2).encode("utf-8")


def df_to_html_bytes(df: pd.DataFrame, title: str, url: str, branding: Dict[str, str]) -> bytes:
    now = dt.datetime.now().strftime("%Y-%m-%d %H:%M")
    cts = summarize_df(df)

    df2 = df.copy()
    if "impact" in df2.columns:
        df2["impact"] = df2["impact"].apply(lambda s: f"<span class='badge {s}'>{s}</span>")
    for col in ("message", "selector"):
        if col in df2.columns:
            df2[col] = df2[col].apply(lambda v: html_lib.escape(str(v)) if v is not None else "")
    html_table = df2.to_html(escape=False, index=False)

    css = f"""
    <style>
      body {{ font-family: system-ui, -apple-system, Segoe UI, Roboto, Helvetica, Arial, sans-serif; margin:24px; }}
      h1 {{ color:{branding['primary']}; margin-bottom: 6px; }}
      a {{ color:{branding['primary']}; text-decoration:none; }}
      .summary-top {{ margin: 6px 0 16px 0; font-weight:600; color:#334155; }}
      .generated {{ margin: 4px 0 16px 0; color:#64748b; font-size:12px; }}
      table {{ border-collapse: collapse; width: 100%; }}
      th, td {{ text-align: left; padding: 8px; border-bottom: 1px solid #e2e8f0; vertical-align: top; }}
      th {{ background:#f8fafc; }}
      .badge {{ display:inline-block; padding:2px 8px; border-radius:999px; font-size:12px; font-weight:700; }}
      .critical {{ background:#fee2e2; color:#991b1b; border:1px solid #fecaca; }}
      .serious  {{ background:#ffedd5; color:#9a3412; border:1px solid #fed7aa; }}
      .moderate {{ background:#fef3c7; color:#92400e; border:1px solid #fde68a; }}
      .minor    {{ background:#ecfeff; color:#155e75; border:1px solid #a5f3fc; }}
      .muted {{ color:#64748b; font-size:12px; }}
      .brand {{ font-weight:800;font-size:18px;color:{branding['primary']}; vertical-align:middle; }}
      .brand img {{ height:44px;vertical-align:middle;margin-right:10px; }}
    </style>"""
    safe_url = html_lib.escape(url, quote=True)
    logo = branding.get("logo")
    logo_html = f"<img src='{html_lib.escape(logo, quote=True)}' alt='logo'/>" if logo else ""
    summary_html = (f"<div class='summary-top'><a href='{safe_url}' target='_blank' rel='noopener noreferrer'>{safe_url}</a>"
                    f" • {cts['total']} issue(s) "
                    f"(<span class='badge critical'>critical {cts['critical']}</span> "
                    f"<span class='badge serious'>serious {cts['serious']}</span> "
                    f"<span class='badge moderate'>moderate {cts['moderate']}</span> "
                    f"<span class='badge minor'>minor {cts['minor']}</span>)</div>")
    html = f"""<!doctype html><html><head><meta charset="utf-8"><title>{html_lib.escape(title)}</title>{css}</head>
    <body>
      <div class="brand">{logo_html}{html_lib.escape(branding['name'])}</div>
      <h1>Accessibility Audit Report</h1>
      <div class="generated">Generated: {now}</div>
      {summary_html}
      {html_table}
      <p class="muted">Automated WCAG check with axe-core. Issues without a bounding box are not shown on the snapshot.</p>
    </body></html>"""
    return html.encode("utf-8")


# -----------------------------
# PDF
# -----------------------------
def draw_wrapped(c, text, x, y, max_width, leading=14, font="Helvetica", size=11):
    words = text.split()
    line = ""
    while words and y > 20:
        w = words.pop(0)
        trial = (line + " " + w).strip()
        if stringWidth(trial, font, size) <= max_width or not line:
            line = trial
        else:
            c.drawString(x, y, line)
            y -= leading
            line = w
    if y > 20 and line:
        c.drawString(x, y, line)
        y -= leading
    return y


def export_pdf(path: str, result: ScanResult, max_issues: int = 40) -> str:
    c = canvas.Canvas(path, pagesize=A4)
    W, H = A4

    # Header
    c.setFillColor(colors.HexColor("#0B5ED7"))
    c.rect(0, H - 30, W, 30, fill=True, stroke=False)
    c.setFillColor(colors.white)
    c.setFont("Helvetica-Bold", 14)
    c.drawString(20, H - 22, f"Accessibility Audit: {result.document_title or result.url}"[:90])

    c.setFillColor(colors.black)
    c.setFont("Helvetica", 11)
    y = H - 50
    y = draw_wrapped(c, f"Scanned URL: {result.url}", 20, y, W - 40)
    c.drawString(20, y, f"Scan time: {result.scan_time}  ({result.duration_ms} ms)")
    y -= 16
    s = result.summary
    c.drawString(20, y, f"Issues: {s.total}  critical {s.critical} · serious {s.serious} · "
                        f"moderate {s.moderate} · minor {s.minor}")
    y -= 16
    c.drawString(20, y, f"Shown on snapshot: {s.visualizable}  ·  Not visual: {s.non_visual}")
    y -= 24

    c.setFont("Helvetica-Bold", 12)
    c.drawString(20, y, "Issues:")
    y -= 16
    c.setFont("Helvetica", 11)
    ordered = sorted(result.issues, key=lambda i: IMPACT_ORDER.get(i.impact, 9))
    for issue in ordered[:max_issues]:
        c.setFillColor(colors.HexColor(IMPACT_COLORS.get(issue.impact, "#000000")))
        wcag = f" (WCAG {issue.wcag})" if issue.wcag else ""
        y = draw_wrapped(c, f"• {issue.id} [{issue.impact}] {issue.rule}{wcag}", 26, y, W - 46)
        c.setFillColor(colors.black)
        y = draw_wrapped(c, f" - {issue.message}", 36, y, W - 56)
        if issue.selector:
            y = draw_wrapped(c, f" - {issue.selector}", 36, y, W - 56)
        if y < 60:
            c.showPage(); y = H - 40
            c.setFont("Helvetica", 11)

    if not result.issues:
        c.drawString(26, y, "• No issues detected by axe.")
        y -= 16
    elif len(ordered) > max_issues:
        c.drawString(26, y, f"• +{len(ordered) - max_issues} more issue(s) in the CSV/JSON export.")
        y -= 16

    # Footer note
    c.setFont("Helvetica-Oblique", 9)
    c.setFillColor(colors.gray)
    c.drawString(20, 20, "Note: automated checks find a subset of WCAG failures; manual review is still needed.")

    c.save()
    return path
