# apply_ai_code.py - same run as apply_ai_code_stream, answered as one JSON document
from typing import Any, Dict

from reconcile.orchestrator import Reconciler
from reconcile.progress import EventCollector
from reconcile.session import Session, SessionBusyError
from routes.apply_ai_code_stream import no_sandbox_response, plan, read_request


async def POST(body: Dict[str, Any], session: Session) -> Dict[str, Any]:
    request, error = read_request(body)
    if error:
        return error

    if session.run_active:
        return {"success": False, "error": "Another apply run is already in progress", "status": 409}

    parsed, edits, precision = plan(request)
    try:
        executor = await session.ensure_sandbox(request.targetId)
    except SessionBusyError as e:
        return {"success": False, "error": str(e), "status": 409}
    except Exception as e:
        print(f"[apply-ai-code] Could not obtain a sandbox: {e}")
        return await no_sandbox_response(session, request, parsed, str(e))

    collector = EventCollector()
    try:
        async with session.run_guard():
            result = await Reconciler(session).apply(
                parsed, edits, executor, collector, request.explicitPackages, precision)
    except SessionBusyError as e:
        return {"success": False, "error": str(e), "status": 409}

    outcome = collector.terminal
    if outcome is None or outcome.type == 'error':
        return {
            "success": False,
            "error": outcome.error if outcome else 'Run ended without a result',
            "kind": outcome.kind if outcome else 'pipeline',
            "results": result.model_dump(),
            "status": 503 if outcome is not None and outcome.kind == 'sandbox-unavailable' else 500,
        }

    return {
        "success": True,
        "results": result.model_dump(),
        "explanation": outcome.explanation,
        "structure": outcome.structure,
        "message": outcome.message,
        "missingImports": list(result.missingImports),
    }
