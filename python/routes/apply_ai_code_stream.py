# apply_ai_code_stream.py - parse an AI response and stream its application to the sandbox
from __future__ import annotations

from typing import Any, Dict, List, Optional, Tuple
import asyncio

from fastapi.responses import StreamingResponse
from pydantic import AliasChoices, BaseModel, Field, ValidationError

from reconcile.edit_extractor import extract_edits, precision_edits_enabled
from reconcile.models import EditInstruction, ParsedResponse
from reconcile.orchestrator import Reconciler
from reconcile.progress import EventCollector, ProgressChannel
from reconcile.response_parser import parse
from reconcile.session import Session, SessionBusyError


class ApplyRequest(BaseModel):
    responseText: Optional[str] = Field(None, validation_alias=AliasChoices('responseText', 'response'))
    editMode: bool = Field(False, validation_alias=AliasChoices('editMode', 'isEdit'))
    explicitPackages: List[Any] = Field(default_factory=list, validation_alias=AliasChoices('explicitPackages', 'packages'))
    targetId: Optional[str] = Field(None, validation_alias=AliasChoices('targetId', 'sandboxId'))


def read_request(body: Optional[Dict[str, Any]]) -> Tuple[Optional[ApplyRequest], Optional[Dict[str, Any]]]:
    """Validate the body; returns (request, None) or (None, error response)."""
    try:
        request = ApplyRequest.model_validate(body or {})
    except ValidationError as e:
        return None, {"success": False, "error": f"Invalid request: {e.errors()[0]['msg']}", "status": 400}
    if not request.responseText:
        return None, {"success": False, "error": "responseText is required", "status": 400}
    return request, None


def plan(request: ApplyRequest) -> Tuple[ParsedResponse, List[EditInstruction], bool]:
    parsed = parse(request.responseText)
    precision = precision_edits_enabled(request.editMode)
    edits = extract_edits(request.responseText) if precision else []
    print(f"[apply-ai-code-stream] Parsed {len(parsed.files)} files, {len(parsed.packages)} packages, "
          f"{len(parsed.commands)} commands, {len(edits)} edits")
    return parsed, edits, precision


async def no_sandbox_response(session: Session, request: ApplyRequest, parsed: ParsedResponse, reason: str) -> Dict[str, Any]:
    """Report what would have been applied; nothing touches a sandbox."""
    collector = EventCollector()
    await Reconciler(session).apply(parsed, [], None, collector, request.explicitPackages)
    outcome = collector.terminal
    return {
        "success": False,
        "error": f"No sandbox available: {reason}",
        "parsedFiles": outcome.parsedFiles or [],
        "parsedPackages": outcome.parsedPackages or [],
        "parsedCommands": outcome.parsedCommands or [],
        "explanation": parsed.explanation,
        "status": 500,
    }


async def POST(body: Dict[str, Any], session: Session) -> Any:
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
        print(f"[apply-ai-code-stream] Could not obtain a sandbox: {e}")
        return await no_sandbox_response(session, request, parsed, str(e))

    try:
        session.begin_run()
    except SessionBusyError as e:
        return {"success": False, "error": str(e), "status": 409}

    channel = ProgressChannel()
    reconciler = Reconciler(session)

    async def _run() -> None:
        try:
            await reconciler.apply(parsed, edits, executor, channel, request.explicitPackages, precision)
        finally:
            await channel.close()
            session.end_run()

    session.track(asyncio.create_task(_run()))
    return StreamingResponse(channel, media_type="text/event-stream", headers=channel.headers)
