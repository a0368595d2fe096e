# app.py - Streamlit console for the apply service (run main.py first)
from __future__ import annotations
import base64
import json
import os

import requests
import streamlit as st
from dotenv import load_dotenv

from reconcile.progress import parse_event

load_dotenv()

API_BASE = os.getenv("APPLY_API_URL", "http://localhost:8000")

st.set_page_config(page_title="AI Code → Sandbox", layout="wide")


# ----------------------------
# Helpers
# ----------------------------
def call_api(method: str, path: str, body: dict | None = None) -> dict:
    try:
        response = requests.request(method, f"{API_BASE}{path}", json=body, timeout=120)
        return response.json()
    except (requests.exceptions.RequestException, ValueError) as e:
        return {"success": False, "error": str(e)}


def stream_events(body: dict):
    """Yield typed events from /api/apply-ai-code-stream, or a single error dict."""
    with requests.post(f"{API_BASE}/api/apply-ai-code-stream", json=body, stream=True, timeout=600) as response:
        if "text/event-stream" not in response.headers.get("content-type", ""):
            yield response.json()
            return
        for line in response.iter_lines(decode_unicode=True):
            if line and line.startswith("data: "):
                yield parse_event(json.loads(line[len("data: "):]))


def render_event(event, log) -> None:
    kind = event.type
    if kind == "start":
        log.info(event.message)
    elif kind == "step":
        log.markdown(f"**Step {event.step}:** {event.message}")
    elif kind == "package-progress":
        if event.status == "error":
            log.error(event.message)
        elif event.status == "warning":
            log.warning(event.message)
        elif event.status == "success":
            log.success(event.message)
        else:
            log.text(event.message)
    elif kind == "file-progress":
        log.text(f"[{event.current}/{event.total}] {event.action} {event.fileName}")
    elif kind == "file-complete":
        log.text(f"✓ {event.fileName} ({event.action})")
    elif kind == "file-error":
        log.error(f"{event.fileName}: {event.error}")
    elif kind == "command-progress":
        log.code(event.command, language="bash")
    elif kind == "command-output":
        log.code(event.output)
    elif kind == "command-complete":
        (log.success if event.success else log.warning)(f"exit {event.exitCode}: {event.command}")
    elif kind == "command-error":
        log.error(f"{event.command}: {event.error}")
    elif kind == "info":
        log.info(event.message)
    elif kind == "warning":
        log.warning(event.message)
    elif kind == "complete":
        log.success(event.message)
        st.session_state.last_results = event.model_dump()
    elif kind == "error":
        log.error(f"{event.kind}: {event.error}")
        st.session_state.last_results = event.model_dump()
    else:
        log.caption(f"Unhandled event '{kind}'")


# ----------------------------
# Session state
# ----------------------------
if "sandbox_url" not in st.session_state:
    st.session_state.sandbox_url = None
if "last_results" not in st.session_state:
    st.session_state.last_results = None

# ----------------------------
# Sidebar: environment & controls
# ----------------------------
st.sidebar.title("Environment")
st.sidebar.write("**API**:", API_BASE)
st.sidebar.write("**E2B_API_KEY**:", "✅ set" if os.getenv("E2B_API_KEY") else "❌ missing")
st.sidebar.write("**MORPH_API_KEY**:", "✅ set" if os.getenv("MORPH_API_KEY") else "➖ edit mode disabled")

with st.sidebar.expander("Sandbox controls"):
    if st.button("Create Sandbox", use_container_width=True):
        resp = call_api("POST", "/api/create-ai-sandbox")
        if resp.get("success"):
            st.session_state.sandbox_url = resp.get("url")
            st.success("Sandbox ready.")
        else:
            st.error(resp.get("error"))
    if st.button("Sandbox Status", use_container_width=True):
        st.json(call_api("GET", "/api/sandbox-status"))
    if st.button("Check Vite Errors", use_container_width=True):
        st.json(call_api("GET", "/api/check-vite-errors"))
    if st.button("Restart Vite", use_container_width=True):
        st.json(call_api("POST", "/api/restart-vite"))
    if st.button("Dev Server Logs", use_container_width=True):
        st.json(call_api("GET", "/api/sandbox-logs"))
    if st.button("Prepare Zip", use_container_width=True):
        resp = call_api("POST", "/api/create-zip")
        if resp.get("success"):
            payload = resp["dataUrl"].split(",", 1)[1]
            st.download_button("Download project.zip", base64.b64decode(payload),
                               file_name=resp.get("fileName", "project.zip"), mime="application/zip")
        else:
            st.error(resp.get("error"))
    if st.button("Kill Sandbox", use_container_width=True):
        st.json(call_api("POST", "/api/kill-sandbox"))
        st.session_state.sandbox_url = None
    if st.session_state.sandbox_url:
        st.link_button("Open Hosted App", st.session_state.sandbox_url, use_container_width=True)

# ----------------------------
# Main: apply a response
# ----------------------------
st.title("Apply AI Output → Sandbox")

response_text = st.text_area("Paste the raw AI response", height=300,
                              placeholder='<file path="src/App.jsx">...</file>')
edit_mode = st.checkbox("Edit mode (apply <edit> blocks)")
extra = st.text_input("Extra packages (comma separated)")

if st.button("Apply", type="primary", disabled=not response_text.strip()):
    body = {
        "responseText": response_text,
        "editMode": edit_mode,
        "explicitPackages": [p.strip() for p in extra.split(",") if p.strip()],
    }
    log = st.container()
    try:
        for event in stream_events(body):
            if isinstance(event, dict):
                log.error(event.get("error"))
                if event.get("parsedFiles"):
                    log.write("Would have applied:", event["parsedFiles"])
                break
            render_event(event, log)
    except requests.exceptions.RequestException as e:
        log.error(f"Stream failed: {e}")

if st.session_state.last_results:
    st.subheader("Last result")
    st.json(st.session_state.last_results)

with st.expander("Sandbox files"):
    if st.button("Fetch files"):
        resp = call_api("GET", "/api/get-sandbox-files")
        if resp.get("success"):
            st.write(f"{resp.get('fileCount', 0)} files")
            st.code(resp.get("structure", ""))
        else:
            st.error(resp.get("error"))
