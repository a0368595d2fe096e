# check_vite_errors.py - scan the tail of the dev-server log for compile/runtime errors
from typing import Any, Dict, List
import re
import shlex

from config.app_config import appConfig
from reconcile.session import Session
from routes.report_vite_error import classify_error

ANSI_RE = re.compile(r'\x1b\[[0-9;]*m')
ERROR_MARKERS = ("error", "failed to compile", "uncaught", "unexpected token",
                 "is not defined", "cannot read properties", "syntaxerror")
IGNORED_MARKERS = ("eaddrinuse", "hmr")


def find_error_lines(log_output: str) -> List[str]:
    found: List[str] = []
    for line in ANSI_RE.sub('', log_output).splitlines():
        lowered = line.lower()
        if any(m in lowered for m in IGNORED_MARKERS):
            continue
        if any(m in lowered for m in ERROR_MARKERS) and line.strip() not in found:
            found.append(line.strip())
    return found


async def GET(session: Session) -> Dict[str, Any]:
    """Checks the Vite server log for errors, plus anything reported by the browser."""
    if session.executor is None:
        return {"success": False, "error": "No active sandbox", "status": 404}

    try:
        result = await session.executor.run_command(
            f"tail -n 30 {shlex.quote(appConfig.e2b.viteLogFile)}")
    except Exception as e:
        print(f"[check-vite-errors] Error reading log: {e}")
        return {"success": False, "error": str(e), "status": 500}

    errors = [classify_error(line) for line in find_error_lines(result.stdout)]
    errors.extend(session.vite_errors)

    if errors:
        return {"success": True, "hasErrors": True, "errors": errors, "message": "Vite server reported errors."}
    return {"success": True, "hasErrors": False, "errors": [], "message": "Vite server is running without errors."}
