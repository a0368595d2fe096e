# kill_sandbox.py - terminate the sandbox and forget everything the session knew about it
from typing import Any, Dict

from reconcile.session import Session, SessionBusyError


async def POST(session: Session) -> Dict[str, Any]:
    if session.run_active:
        return {"success": False, "error": "Cannot kill the sandbox while an apply run is in progress", "status": 409}
    try:
        print('[kill-sandbox] Terminating sandbox and clearing session state...')
        killed = await session.terminate()
        return {
            "success": True,
            "sandboxKilled": killed,
            "stateCleared": True,
            "message": "Sandbox killed successfully" if killed else "No active sandbox to kill",
        }
    except SessionBusyError as error:
        return {"success": False, "error": str(error), "status": 409}
    except Exception as error:
        print(f'[kill-sandbox] Error: {error}')
        return {"success": False, "error": str(error), "status": 500}
