# sandbox_status.py - report the session's sandbox lifecycle state
from datetime import datetime
from typing import Any, Dict

from reconcile.session import Session


async def GET(session: Session) -> Dict[str, Any]:
    try:
        info = session.info()
        healthy = False
        if session.executor is not None:
            try:
                check = await session.executor.run_command("true")
                healthy = check.success
            except Exception as error:
                print(f"[sandbox-status] Health check failed: {error}")

        sandbox_data = info["sandboxData"]
        if sandbox_data is not None:
            sandbox_data = {
                "sandboxId": sandbox_data["id"],
                "url": sandbox_data["url"],
                "filesTracked": sorted(session.known_files),
                "lastHealthCheck": datetime.now().isoformat(),
            }

        if healthy:
            message = "Sandbox is active and healthy"
        elif info["active"]:
            message = "Sandbox exists but is not responding"
        else:
            message = "No active sandbox"

        return {
            "success": True,
            "sessionStatus": info["status"],
            "active": info["active"],
            "healthy": healthy,
            "creating": info["creating"],
            "runActive": info["runActive"],
            "sandboxData": sandbox_data,
            "message": message,
        }

    except Exception as error:
        print(f"[sandbox-status] Error: {error}")
        return {"success": False, "active": False, "error": str(error)}
