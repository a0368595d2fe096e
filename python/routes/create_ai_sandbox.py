# create_ai_sandbox.py - start a fresh Vite/React/Tailwind sandbox for the session
from typing import Any, Dict
import traceback

from reconcile.session import Session, SessionBusyError


async def POST(session: Session) -> Dict[str, Any]:
    """
    Creates a sandbox (or joins a creation already in flight) and makes it the
    session's active one. Any previous sandbox is terminated first.
    """
    try:
        print("[create-ai-sandbox] Creating sandbox...")
        executor = await session.create_sandbox()
        info = executor.get_info()

        print(f"[create-ai-sandbox] Sandbox ready at {info.url if info else 'unknown'}")
        return {
            "success": True,
            "sandboxId": info.id if info else None,
            "url": info.url if info else None,
            "message": "Sandbox created with Vite, React, and Tailwind.",
        }

    except SessionBusyError as error:
        return {"success": False, "error": str(error), "status": 409}

    except Exception as error:
        print(f"[create-ai-sandbox] CRITICAL ERROR: {error}")
        return {
            "success": False,
            "error": str(error),
            "details": traceback.format_exc(),
            "status": 500,
        }
