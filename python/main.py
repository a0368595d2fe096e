# main.py - FastAPI surface of the sandbox apply service

from __future__ import annotations

from fastapi import FastAPI, Request, Depends
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from contextlib import asynccontextmanager
from typing import Any, Dict
import json
import os
import traceback

import uvicorn

from reconcile.session import Session
from routes import (
    apply_ai_code,
    apply_ai_code_stream,
    check_vite_errors,
    clear_vite_errors_cache,
    conversation_state,
    create_ai_sandbox,
    create_zip,
    detect_and_install_packages,
    get_sandbox_files,
    install_packages,
    kill_sandbox,
    load_project,
    report_vite_error,
    restart_vite,
    run_command,
    sandbox_logs,
    sandbox_status,
)


# --- FastAPI Lifespan & App Initialization ---
@asynccontextmanager
async def lifespan(app: FastAPI):
    print("[main] Backend starting...")
    app.state.session = Session(persist_state=True)
    yield
    print("[main] Backend shutting down...")
    finished = await app.state.session.wait_for_runs()
    if finished:
        print(f"[main] Waited for {finished} apply run(s) to finish")


app = FastAPI(lifespan=lifespan)
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


def get_session(request: Request) -> Session:
    """The one live session. Tests override this dependency."""
    return request.app.state.session


# --- Utility Functions ---
def create_error_response(message: str, status: int = 500) -> JSONResponse:
    print(f"[main] Error Response: {message}")
    return JSONResponse(content={"success": False, "error": message}, status_code=status)


class CustomJSONEncoder(json.JSONEncoder):
    def default(self, obj):
        if isinstance(obj, bytes):
            return obj.decode('utf-8', errors='replace')
        if isinstance(obj, (set, frozenset)):
            return sorted(obj)
        return super().default(obj)


class CustomJSONResponse(JSONResponse):
    def render(self, content: Any) -> bytes:
        return json.dumps(
            content, ensure_ascii=False, allow_nan=False, indent=None,
            separators=(",", ":"), cls=CustomJSONEncoder
        ).encode("utf-8")


def respond(result: Any) -> Any:
    """Pass streams through; lift a handler's integer 'status' into the HTTP status."""
    if hasattr(result, "headers"):
        return result
    if isinstance(result, dict) and isinstance(result.get("status"), int):
        content = {k: v for k, v in result.items() if k != "status"}
        return CustomJSONResponse(content, status_code=result["status"])
    return CustomJSONResponse(result)


async def read_json(request: Request) -> Dict[str, Any]:
    try:
        body = await request.json()
    except (ValueError, UnicodeDecodeError):
        return {}
    return body if isinstance(body, dict) else {}


@app.exception_handler(Exception)
async def unhandled_exception(request: Request, exc: Exception):
    traceback.print_exc()
    return create_error_response(str(exc))


# --- API Endpoints ---

@app.get("/health")
async def health(session: Session = Depends(get_session)):
    return {"status": "healthy", "session": session.info()}


# --- Sandbox Management ---
@app.post("/api/create-ai-sandbox")
async def api_create_ai_sandbox(session: Session = Depends(get_session)):
    return respond(await create_ai_sandbox.POST(session))


@app.post("/api/kill-sandbox")
async def api_kill_sandbox(session: Session = Depends(get_session)):
    return respond(await kill_sandbox.POST(session))


@app.get("/api/sandbox-status")
async def api_sandbox_status(session: Session = Depends(get_session)):
    return respond(await sandbox_status.GET(session))


# --- Code Application ---
@app.post("/api/apply-ai-code-stream")
async def api_apply_ai_code_stream(request: Request, session: Session = Depends(get_session)):
    body = await read_json(request)
    return respond(await apply_ai_code_stream.POST(body, session))


@app.post("/api/apply-ai-code")
async def api_apply_ai_code(request: Request, session: Session = Depends(get_session)):
    body = await read_json(request)
    return respond(await apply_ai_code.POST(body, session))


# --- Conversation Management ---
@app.api_route("/api/conversation-state", methods=["GET", "POST", "DELETE"])
async def api_conversation_state(request: Request, session: Session = Depends(get_session)):
    if request.method == "GET":
        result = conversation_state.GET(session)
    elif request.method == "DELETE":
        result = conversation_state.DELETE(session)
    else:
        result = conversation_state.POST(await read_json(request), session)
    return respond(result)


# --- Additional Sandbox Interaction Endpoints ---
@app.post("/api/restart-vite")
async def api_restart_vite(session: Session = Depends(get_session)):
    return respond(await restart_vite.POST(session))


@app.get("/api/get-sandbox-files")
async def api_get_sandbox_files(session: Session = Depends(get_session)):
    return respond(await get_sandbox_files.GET(session))


@app.get("/api/check-vite-errors")
async def api_check_vite_errors(session: Session = Depends(get_session)):
    return respond(await check_vite_errors.GET(session))


@app.post("/api/clear-vite-errors-cache")
async def api_clear_vite_errors_cache(session: Session = Depends(get_session)):
    return respond(clear_vite_errors_cache.POST(session))


@app.post("/api/report-vite-error")
async def api_report_vite_error(request: Request, session: Session = Depends(get_session)):
    return respond(report_vite_error.POST(await read_json(request), session))


@app.post("/api/install-packages")
async def api_install_packages(request: Request, session: Session = Depends(get_session)):
    return respond(await install_packages.POST(await read_json(request), session))


@app.post("/api/detect-and-install-packages")
async def api_detect_and_install_packages(request: Request, session: Session = Depends(get_session)):
    return respond(await detect_and_install_packages.POST(await read_json(request), session))


@app.post("/api/run-command")
async def api_run_command(request: Request, session: Session = Depends(get_session)):
    return respond(await run_command.POST(await read_json(request), session))


@app.post("/api/load-project")
async def api_load_project(request: Request, session: Session = Depends(get_session)):
    return respond(await load_project.POST(await read_json(request), session))


@app.post("/api/create-zip")
async def api_create_zip(session: Session = Depends(get_session)):
    return respond(await create_zip.POST(session))


@app.get("/api/sandbox-logs")
async def api_sandbox_logs(session: Session = Depends(get_session)):
    return respond(await sandbox_logs.GET(session))


# --- Main Entrypoint ---
if __name__ == "__main__":
    port = int(os.getenv("PORT", "8000"))
    print(f"[main] Backend ready and running on http://localhost:{port}")
    uvicorn.run("main:app", host="0.0.0.0", port=port, reload=False)
