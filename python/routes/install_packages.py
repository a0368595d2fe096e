# install_packages.py - stream the package stage on its own
from typing import Any, Dict
import asyncio

from fastapi.responses import StreamingResponse

from reconcile.models import ReconciliationResult
from reconcile.orchestrator import Reconciler
from reconcile.package_resolver import resolve
from reconcile.progress import CompleteEvent, ErrorEvent, ProgressChannel, StartEvent
from reconcile.executor import SandboxUnavailableError
from reconcile.session import Session, SessionBusyError


async def POST(body: Dict[str, Any], session: Session) -> Any:
    """
    Body: {"packages": ["react-router-dom", "axios@1"], "sandboxId": optional}
    Streams start, step, package-progress and a final complete/error event.
    """
    body = body or {}
    packages = resolve(body.get("packages") or [], [])
    if not packages:
        return {"success": False, "error": "Packages array is required", "status": 400}

    try:
        executor = await session.ensure_sandbox(body.get("sandboxId"))
    except SessionBusyError as e:
        return {"success": False, "error": str(e), "status": 409}
    except Exception as e:
        print(f"[install-packages] Could not obtain a sandbox: {e}")
        return {"success": False, "error": f"No sandbox available: {e}", "status": 500}

    try:
        session.begin_run()
    except SessionBusyError as e:
        return {"success": False, "error": str(e), "status": 409}

    channel = ProgressChannel()
    reconciler = Reconciler(session)

    async def _run() -> None:
        result = ReconciliationResult()
        try:
            await channel.send(StartEvent(message=f"Installing {len(packages)} packages...", totalSteps=1))
            await reconciler.install(packages, executor, channel, result)
            await channel.send(CompleteEvent(
                results=result,
                message=f"Installed {len(result.packagesInstalled)} package(s)",
            ))
        except SandboxUnavailableError as e:
            await channel.send(ErrorEvent(error=str(e), kind='sandbox-unavailable', results=result))
        except Exception as e:
            print(f"[install-packages] Error: {e}")
            await channel.send(ErrorEvent(error=str(e), results=result))
        finally:
            await channel.close()
            session.end_run()

    session.track(asyncio.create_task(_run()))
    return StreamingResponse(channel, media_type="text/event-stream", headers=channel.headers)
