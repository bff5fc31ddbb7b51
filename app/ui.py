"""
app/ui.py

Shared Streamlit theme and small HTML widgets (cards, metrics, status pills).
"""
from __future__ import annotations

import html

import streamlit as st


def inject_theme() -> None:
    st.markdown(
        """
<style>
/* ============================================================
   MedCore HMS theme
   - Dark navy sidebar, light canvas, white cards
   - Teal accent
   - Status pills (ok / waiting / closed)
   ============================================================ */

/* Hide Streamlit built-in multipage nav (since we have our own router) */
[data-testid="stSidebarNav"] { display: none !important; }

:root{
  --sidebar: 212 72% 16%;          /* clinical navy */
  --accent: 177 60% 38%;           /* teal */
  --sidebar-text: 210 40% 92%;

  --canvas: #F6F8FB;
  --card: #FFFFFF;
  --border: rgba(15,23,42,0.10);
  --muted: rgba(15,23,42,0.55);
  --text: rgba(15,23,42,0.92);

  /* Status tokens */
  --st-ok: 142 70% 33%;
  --st-ok-bg: 142 70% 95%;
  --st-wait: 38 92% 45%;
  --st-wait-bg: 38 92% 95%;
  --st-closed: 215 16% 47%;
  --st-closed-bg: 215 16% 94%;
  --st-bad: 0 72% 45%;
  --st-bad-bg: 0 72% 95%;
}

.stApp { background: var(--canvas); }

/* Readable text on the light canvas */
.stApp, .stMarkdown, .stMarkdown p, .stCaption, .stText, .stAlert, label,
h1, h2, h3, h4, h5, h6, div[data-testid="stMarkdownContainer"] {
  color: var(--text) !important;
}

div.block-container {
  padding-top: 2.2rem;
  padding-bottom: 2.2rem;
}

/* Forms: login, slots, stock, staff */
div[data-testid="stTextInput"] input,
div[data-testid="stTextArea"] textarea {
  background: #FFFFFF !important;
  color: var(--text) !important;
  border: 1px solid var(--border) !important;
  border-radius: 12px !important;
}

/* =========================
   Sidebar (dark navy)
   ========================= */
section[data-testid="stSidebar"]{
  background: hsl(var(--sidebar)) !important;
  border-right: 1px solid rgba(255,255,255,0.07);
}
section[data-testid="stSidebar"] *{
  color: hsl(var(--sidebar-text)) !important;
}
section[data-testid="stSidebar"] hr{
  border-color: rgba(255,255,255,0.10) !important;
}

/* Role navigation */
section[data-testid="stSidebar"] .stRadio div[role="radiogroup"] > label{
  background: rgba(255,255,255,0.03);
  border: 1px solid rgba(255,255,255,0.08);
  border-radius: 14px;
  padding: 10px 12px;
  margin-bottom: 8px;
}

/* =========================
   Buttons
   ========================= */
.stButton>button{
  border-radius: 12px;
  border: 1px solid rgba(15,23,42,0.14);
}

/* Accept, Dispense, Approve, Record outcome */
.stButton>button[kind="primary"]{
  background: hsl(var(--accent)) !important;
  border: 1px solid hsl(var(--accent)) !important;
  color: white !important;
}

/* Decline, Cancel, Remove */
.stButton>button[kind="secondary"]{
  background: #FFFFFF !important;
  color: var(--text) !important;
}

/* =========================
   Cards & metrics
   ========================= */
.mc-card{
  background: var(--card);
  border: 1px solid var(--border);
  border-radius: 16px;
  padding: 16px;
}
.mc-title{ font-weight: 800; font-size: 16px; margin-bottom: 2px; }
.mc-sub{ color: var(--muted); font-size: 13px; }

.mc-metric-label{ color: var(--muted); font-size: 13px; margin-bottom: 6px; }
.mc-metric-value{ font-size: 30px; font-weight: 900; line-height: 1.0; }
.mc-metric-foot{ margin-top: 6px; color: var(--muted); font-size: 12px; }

/* =========================
   Status pills
   ========================= */
.status-badge{
  display:inline-block;
  padding: 6px 10px;
  border-radius: 999px;
  font-size: 12px;
  font-weight: 800;
}
.st-ok{ background: hsl(var(--st-ok-bg)); color: hsl(var(--st-ok)); }
.st-wait{ background: hsl(var(--st-wait-bg)); color: hsl(var(--st-wait)); }
.st-closed{ background: hsl(var(--st-closed-bg)); color: hsl(var(--st-closed)); }
.st-bad{ background: hsl(var(--st-bad-bg)); color: hsl(var(--st-bad)); }

/* Sign-in portal banner */
.mc-portal{
  display:flex; gap:14px; align-items:center;
  padding:16px;
  border-radius:16px;
  border:1px solid var(--border);
  background:#FFFFFF;
}
.mc-portal-ico{
  width:42px; height:42px; border-radius:12px;
  background: hsla(var(--accent),0.12);
  display:flex; align-items:center; justify-content:center;
}
.mc-portal-title{ font-weight: 900; }
.mc-portal-sub{ color: var(--muted); font-size: 13px; }

</style>
        """,
        unsafe_allow_html=True,
    )


def _esc(x: str) -> str:
    """Escape any user/DB-provided strings before injecting into HTML."""
    return html.escape(str(x or ""), quote=True)


def card_open(title: str, subtitle: str = "") -> None:
    sub = f'<div class="mc-sub">{_esc(subtitle)}</div>' if subtitle else ""
    st.markdown(
        f'<div class="mc-card"><div class="mc-title">{_esc(title)}</div>{sub}',
        unsafe_allow_html=True,
    )


def card_close() -> None:
    st.markdown("</div>", unsafe_allow_html=True)


_STATUS_CLASSES = {
    "AVAILABLE": "st-ok",
    "CONFIRMED": "st-ok",
    "BOOKED": "st-ok",
    "APPROVED": "st-ok",
    "DISPENSED": "st-ok",
    "PENDING": "st-wait",
    "REQUESTED": "st-wait",
    "COMPLETED": "st-closed",
    "REMOVED": "st-closed",
    "CANCELLED": "st-bad",
    "LOW": "st-bad",
}


def status_badge(status: str) -> str:
    """A coloured pill for any slot, appointment, prescription or request status."""
    value = getattr(status, "value", status) or ""
    cls = _STATUS_CLASSES.get(str(value).upper(), "st-closed")
    return f'<span class="status-badge {cls}">{_esc(str(value).title())}</span>'


def fmt_slot(slot) -> str:
    """`Mon Mar 03 · 09:00-09:30` for a slot, or a dash when it is missing."""
    if slot is None:
        return "—"
    return f"{slot.date:%a %b %d} · {slot.start_time:%H:%M}-{slot.end_time:%H:%M}"


def metric_card(label: str, value: str, foot: str | None = None) -> None:
    """Plain-text metric tile; label, value and foot are escaped."""
    foot_html = f'<div class="mc-metric-foot">{_esc(foot)}</div>' if foot else ""
    st.markdown(
        f"""
<div class="mc-card">
  <div class="mc-metric-label">{_esc(label)}</div>
  <div class="mc-metric-value">{_esc(value)}</div>
  {foot_html}
</div>
        """,
        unsafe_allow_html=True,
    )


def portal_choice(title: str, subtitle: str, icon_text: str = "•") -> None:
    st.markdown(
        f"""
<div class="mc-portal">
  <div class="mc-portal-ico">{_esc(icon_text)}</div>
  <div>
    <div class="mc-portal-title">{_esc(title)}</div>
    <div class="mc-portal-sub">{_esc(subtitle)}</div>
  </div>
</div>
        """,
        unsafe_allow_html=True,
    )
