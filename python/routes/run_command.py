# run_command.py - run one shell command in the sandbox app directory
from __future__ import annotations
from typing import Any, Dict

from reconcile.session import Session, SessionBusyError


async def POST(body: Dict[str, Any], session: Session) -> Dict[str, Any]:
    """
    Body (JSON):
      {
        "command": "ls -la src",
        "timeout": 60          # optional, seconds
      }

    Returns:
      {
        "success": bool,
        "stdout": str,
        "stderr": str,
        "exitCode": int
      }
    """
    body = body or {}
    cmd = body.get("command") or ""
    if not cmd or not isinstance(cmd, str):
        return {"success": False, "error": "Missing 'command' string", "status": 400}

    if session.executor is None:
        return {"success": False, "error": "No active sandbox", "status": 404}

    timeout = body.get("timeout")
    try:
        async with session.run_guard():
            result = await session.executor.run_command(cmd, timeout=int(timeout) if timeout else None)
    except SessionBusyError as e:
        return {"success": False, "error": str(e), "status": 409}
    except Exception as e:
        print(f"[run-command] Error running '{cmd}': {e}")
        return {"success": False, "error": str(e), "status": 500}

    print(f"[run-command] '{cmd}' exited with {result.exitCode}")
    return {
        "success": result.success,
        "stdout": result.stdout,
        "stderr": result.stderr,
        "exitCode": result.exitCode,
    }
