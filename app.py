# app.py - Accessibility Snapshot Auditor (Playwright + axe-core, static snapshot / overlay)
# Run: python3 -m streamlit run app.py
from __future__ import annotations

import asyncio
import datetime as dt
import os
from typing import Any, Dict, Optional

import streamlit as st
import streamlit.components.v1 as components

from config import AuditConfig
from errors import AccessibilityError
from logger import configure_logging, get_logger
from pipeline import AccessibilityPipeline, OutputMode, ScanResult, error_response, run_scan
from report import (df_to_csv_bytes, df_to_html_bytes, df_to_json_bytes, export_pdf, issues_to_df,
                    summarize_df)
from store import JsonFileReportStore, persist_scan, regenerate_annotated_html
from utils import safe_filename

# =========================
# Config
# =========================
configure_logging(json_output=os.getenv("LOG_FORMAT", "json") != "console")
CONFIG = AuditConfig.from_env()
CONFIG.ensure_dirs()
STORE = JsonFileReportStore(CONFIG.reports_dir)

# -----------------------------
# Branding
# -----------------------------
PRIMARY = os.getenv("BRAND_PRIMARY", "#0F4C81")
APP_NAME = os.getenv("BRAND_NAME", "Accessibility Snapshot Auditor")
BRAND = {"name": APP_NAME, "primary": PRIMARY, "logo": os.getenv("BRAND_LOGO_URL", "")}

# -----------------------------
# UI
# -----------------------------
st.set_page_config(page_title=APP_NAME, page_icon="✅", layout="wide", initial_sidebar_state="collapsed")
st.markdown(f"""
<style>
#MainMenu{{visibility:hidden}} footer{{visibility:hidden}}
.stButton > button, .stDownloadButton > button {{ background:{PRIMARY}; color:#fff; border:none; border-radius:999px; font-weight:700; }}
</style>
""", unsafe_allow_html=True)

cols_head = st.columns([7,3])
with cols_head[0]:
    st.markdown(f"### {APP_NAME}")
    st.caption("Real-browser **axe-core** audit with a script-free visual snapshot.")
with cols_head[1]:
    st.caption(f"Standard: **{CONFIG.standard}** · Deadline: **{CONFIG.max_scan_timeout_s:.0f}s**")

scan_tab, results_tab, reports_tab = st.tabs(["🔍 Scan","📊 Results","📁 Reports"])

# -----------------------------
# Helpers
# -----------------------------
def _run_async(coro):
    try:
        return asyncio.run(coro)
    except RuntimeError as e:
        if "asyncio.run() cannot be called" not in str(e):
            raise
        loop = asyncio.new_event_loop()
        try:
            asyncio.set_event_loop(loop)
            return loop.run_until_complete(coro)
        finally:
            loop.close()

def _show_error(exc: BaseException) -> None:
    body, status = error_response(exc)
    err = body["error"]
    st.error(f"**{err['code']}** ({status}): {err['message']}")

def _scan(url: str, mode: OutputMode) -> Optional[ScanResult]:
    log = get_logger(url=url)
    try:
        result = run_scan(url, mode, config=CONFIG, log=log)
    except AccessibilityError as e:
        _show_error(e)
        return None
    try:
        doc_id, report = _run_async(persist_scan(STORE, result, log))
        st.session_state["last_report"] = {"doc_id": doc_id, "report_id": report.report_id}
    except OSError as e:
        st.caption(f"Could not save server copy: {e}")
    return result

# -----------------------------
# Session storage
# -----------------------------
if "scan" not in st.session_state: st.session_state["scan"] = None
if "last_report" not in st.session_state: st.session_state["last_report"] = {}

# -----------------------------
# SCAN TAB
# -----------------------------
with scan_tab:
    st.subheader("Run Audit")
    st.caption("Scan one public page. Localhost and private network addresses are refused.")
    url = st.text_input("Page URL", value="https://www.australia.gov.au/", label_visibility="collapsed", key="single_url")
    mode_label = st.radio("Output", ["Static snapshot", "Highlighted overlay"], horizontal=True, key="mode")
    mode = OutputMode.SNAPSHOT if mode_label == "Static snapshot" else OutputMode.OVERLAY
    c1, c2 = st.columns([1,1])
    with c1: run_single = st.button("Run Audit", use_container_width=True, key="btn_run_single")
    with c2: clear_btn  = st.button("Clear Results", use_container_width=True, key="btn_clear")

    if clear_btn:
        st.session_state["scan"] = None; st.session_state["last_report"] = {}
        st.success("Cleared previous results.")

    if run_single:
        with st.spinner("Scanning…"):
            result = _scan(url, mode)
        if result is not None:
            st.session_state["scan"] = result
            st.success(f"Done in {result.duration_ms} ms — found {result.summary.total} issue(s). See the Results tab.")

# -----------------------------
# RESULTS TAB
# -----------------------------
with results_tab:
    result: Optional[ScanResult] = st.session_state.get("scan")
    df = issues_to_df([i.to_dict() for i in result.issues] if result else [])
    cts = summarize_df(df)

    st.subheader("Summary")
    c1,c2,c3,c4,c5,c6 = st.columns(6)
    c1.metric("Critical", cts["critical"]); c2.metric("Serious", cts["serious"]); c3.metric("Moderate", cts["moderate"])
    c4.metric("Minor", cts["minor"]); c5.metric("Total", cts["total"]); c6.metric("Not visual", cts["nonVisual"])

    st.subheader("Issues")
    if df.empty: st.info("No results yet. Run a scan on the **Scan** tab.")
    else:        st.dataframe(df, use_container_width=True, hide_index=True)

    if result is not None:
        if result.mode is OutputMode.SNAPSHOT and result.snapshot:
            st.subheader("Snapshot")
            st.caption(result.snapshot.note)
            components.html(result.snapshot.html, height=min(max(result.snapshot.scroll_height, 600), 4000), scrolling=True)
        elif result.annotated_html:
            st.subheader("Highlighted page")
            components.html(result.annotated_html, height=900, scrolling=True)

    st.subheader("Export Report")
    if result is None:
        st.caption("Nothing to export yet.")
    else:
        now_slug = dt.datetime.now().strftime("%Y%m%d_%H%M")
        base = f"{safe_filename(result.document_title or result.url)}_{now_slug}"
        st.download_button("⬇️ CSV",  data=df_to_csv_bytes(df),  file_name=f"{base}.csv",  mime="text/csv", use_container_width=True)
        st.download_button("⬇️ JSON", data=df_to_json_bytes(df), file_name=f"{base}.json", mime="application/json", use_container_width=True)
        st.download_button("⬇️ HTML", data=df_to_html_bytes(df, title=f"{APP_NAME} — Report", url=result.url, branding=BRAND),
                           file_name=f"{base}.html", mime="text/html", use_container_width=True)
        try:
            pdf_path = export_pdf(os.path.join(CONFIG.exports_dir, f"{base}.pdf"), result)
            with open(pdf_path, "rb") as f:
                st.download_button("⬇️ PDF", data=f.read(), file_name=f"{base}.pdf", mime="application/pdf", use_container_width=True)
        except OSError as e:
            st.caption(f"Could not build PDF: {e}")

# -----------------------------
# REPORTS TAB
# -----------------------------
with reports_tab:
    st.subheader("Saved Reports")
    saved = STORE.list_reports()
    if not saved:
        st.caption("No saved reports yet.")
    else:
        rows: Dict[str, Any] = {}
        for doc_id, rep in saved:
            when = rep.report_datetime.replace("T", " ").split(".")[0]
            rows[f"{when} · {rep.document_title or rep.report_url} ({rep.report_issue_count})"] = rep
        choice = st.selectbox("Report", list(rows.keys()), key="report_choice")
        rep = rows[choice]
        cols = st.columns(3)
        cols[0].metric("Issues", rep.report_issue_count)
        cols[1].metric("Critical", rep.summary.get("critical", 0))
        cols[2].metric("Overlay", "Yes" if rep.report_modified_html else "No")
        st.markdown(f"[{rep.report_url}]({rep.report_url})")
        st.caption(f"Report id: `{rep.report_id}`")

        if st.button("Regenerate highlighted page", use_container_width=True, key="btn_regen"):
            pipeline = AccessibilityPipeline(config=CONFIG, log=get_logger(report_id=rep.report_id))
            with st.spinner("Re-scanning…"):
                try:
                    html = _run_async(regenerate_annotated_html(STORE, rep.report_id, pipeline))
                except AccessibilityError as e:
                    _show_error(e)
                    html = None
            if html:
                st.success("Highlighted page updated.")
                rep.report_modified_html = html

        if rep.report_modified_html:
            components.html(rep.report_modified_html, height=900, scrolling=True)
        elif rep.snapshot:
            components.html(rep.snapshot.get("html", ""), height=900, scrolling=True)
