# restart_vite.py - restart the dev server inside the sandbox
from typing import Any, Dict

from reconcile.session import Session, SessionBusyError


async def POST(session: Session) -> Dict[str, Any]:
    try:
        if session.executor is None:
            return {"success": False, "error": "No active sandbox", "status": 404}

        print("[restart-vite] Restarting Vite dev server...")
        async with session.run_guard():
            await session.executor.restart_dev_server()
        session.vite_errors.clear()
        return {"success": True, "message": "Vite restarted successfully"}

    except SessionBusyError as error:
        return {"success": False, "error": str(error), "status": 409}

    except Exception as error:
        print(f"[restart-vite] Error: {error}")
        return {"success": False, "error": str(error), "status": 500}
