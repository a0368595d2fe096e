# report_vite_error.py - classify a dev-server/browser error and keep it on the session

from typing import TypedDict, Dict, Any, Optional
from datetime import datetime, timezone
import re

from langchain_core.runnables import RunnableConfig, RunnableLambda
from langgraph.graph import StateGraph, END

from config.app_config import appConfig
from reconcile.session import Session

# Order matters: the first matching pattern decides the type.
ERROR_PATTERNS = [
    ("import-error", re.compile(r"Failed to resolve import ['\"]([^'\"]+)['\"] from ['\"]([^'\"]+)['\"]", re.IGNORECASE)),
    ("syntax-error", re.compile(r"(SyntaxError|Unexpected token|Unterminated string constant)\:? (.+?) \(([0-9]+)\:([0-9]+)\)", re.IGNORECASE)),
    ("reference-error", re.compile(r"ReferenceError\: (.+?) is not defined", re.IGNORECASE)),
    ("type-error", re.compile(r"TypeError\: Cannot read properties of undefined \(reading '(.+?)'\)", re.IGNORECASE)),
]
LOCATION_RE = re.compile(r"((?:[a-zA-Z]\:)?(?:/[\w\.-]+)+[\w\.-]+)\:([0-9]+)\:([0-9]+)")


class GraphState(TypedDict, total=False):
    payload: Dict[str, Any]
    response: Dict[str, Any]


def classify_error(raw_error_msg: str, file: Optional[str] = None) -> Dict[str, Any]:
    """Turn a raw error line into {type, message, file, lineNumber, columnNumber, details?}."""
    error_obj: Dict[str, Any] = {
        "type": "generic-runtime-error",
        "message": raw_error_msg,
        "file": file or "unknown",
        "lineNumber": None,
        "columnNumber": None,
        "timestamp": datetime.now(timezone.utc).isoformat().replace("+00:00", "Z"),
    }

    for error_type, pattern in ERROR_PATTERNS:
        match = pattern.search(raw_error_msg)
        if not match:
            continue
        error_obj["type"] = error_type
        if error_type == "import-error":
            error_obj["details"] = f"Could not import '{match.group(1)}'"
            error_obj["file"] = match.group(2)
        elif error_type == "syntax-error":
            error_obj["message"] = f"{match.group(1)}: {match.group(2)}"
            error_obj["lineNumber"] = int(match.group(3))
            error_obj["columnNumber"] = int(match.group(4))
        elif error_type == "reference-error":
            error_obj["details"] = f"Variable '{match.group(1)}' was used before it was defined."
        elif error_type == "type-error":
            error_obj["details"] = f"Attempted to access a property ('{match.group(1)}') on an undefined object."
        break

    # "at /path/to/file.jsx:12:5"
    if error_obj["lineNumber"] is None:
        location = LOCATION_RE.search(raw_error_msg)
        if location:
            error_obj["file"] = location.group(1)
            error_obj["lineNumber"] = int(location.group(2))
            error_obj["columnNumber"] = int(location.group(3))

    return error_obj


def _process_error_report(payload: Dict[str, Any], config: RunnableConfig) -> Dict[str, Any]:
    session: Session = config["configurable"]["session"]
    try:
        raw_error_msg = payload.get("error")
        if not raw_error_msg or not isinstance(raw_error_msg, str):
            return {"success": False, "error": "Field 'error' is required", "status": 400}

        error_obj = classify_error(raw_error_msg, payload.get("file"))
        session.vite_errors.append(error_obj)
        limit = appConfig.sandbox.viteErrorHistory
        if len(session.vite_errors) > limit:
            del session.vite_errors[:-limit]

        print(f"[report-vite-error] Processed Error: {error_obj['type']} in {error_obj['file']}")
        return {"success": True, "message": "Error reported successfully", "error": error_obj}

    except Exception as e:
        print(f"[report-vite-error] Internal Error: {e}")
        return {"success": False, "error": str(e), "status": 500}


_processor = RunnableLambda(_process_error_report)


def _node(state: GraphState, config: RunnableConfig) -> GraphState:
    return {"response": _processor.invoke(state.get("payload", {}), config=config)}


_sg = StateGraph(GraphState)
_sg.add_node("process", _node)
_sg.set_entry_point("process")
_sg.add_edge("process", END)
_graph = _sg.compile()


def POST(body: Dict[str, Any], session: Session) -> Dict[str, Any]:
    result = _graph.invoke({"payload": body or {}}, config={"configurable": {"session": session}})
    return result.get("response", {})
