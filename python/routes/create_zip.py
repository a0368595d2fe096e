# create_zip.py - package the sandbox project as a downloadable zip data URL

from typing import TypedDict, Dict, Any
import base64
import binascii
import re
import shlex

from langchain_core.runnables import RunnableConfig, RunnableLambda
from langgraph.graph import StateGraph, END

from config.app_config import appConfig
from reconcile.session import Session

ZIP_PATH = '/tmp/project.zip'
EXCLUDED_DIRS = ('node_modules', '.git', '.next', 'dist', 'build', '__pycache__')
ZIP_SUCCESS_RE = re.compile(r"ZIP_SUCCESS:(\d+):(\d+)")
READ_COMMAND = f"base64 -w 0 {ZIP_PATH}"


class GraphState(TypedDict, total=False):
    payload: Dict[str, Any]
    response: Dict[str, Any]


def zip_command() -> str:
    """Shell command that zips the app directory inside the sandbox and prints ZIP_SUCCESS:<bytes>:<files>."""
    script = f"""
import os, zipfile
app_dir = {appConfig.e2b.appDir!r}
zip_path = {ZIP_PATH!r}
excluded = {EXCLUDED_DIRS!r}
if os.path.exists(zip_path):
    os.remove(zip_path)
added = 0
with zipfile.ZipFile(zip_path, 'w', zipfile.ZIP_DEFLATED, compresslevel=6) as zipf:
    for root, dirs, files in os.walk(app_dir):
        dirs[:] = [d for d in dirs if d not in excluded]
        for name in files:
            if name.startswith('.') or name.endswith(('.pyc', '.log')):
                continue
            path = os.path.join(root, name)
            zipf.write(path, os.path.relpath(path, app_dir))
            added += 1
print(f"ZIP_SUCCESS:{{os.path.getsize(zip_path)}}:{{added}}")
"""
    return f"python3 -c {shlex.quote(script)}"


async def _compute(_: Dict[str, Any], config: RunnableConfig) -> Dict[str, Any]:
    session: Session = config["configurable"]["session"]
    executor = session.executor
    if executor is None:
        return {"success": False, "error": "No active sandbox", "status": 400}

    print("[create-zip] Creating project zip...")
    try:
        created = await executor.run_command(zip_command())
        marker = ZIP_SUCCESS_RE.search(created.stdout)
        if not created.success or not marker:
            detail = created.stderr.strip() or created.stdout.strip() or f"exit code {created.exitCode}"
            return {"success": False, "error": f"Failed to create zip: {detail}", "status": 500}
        size, file_count = int(marker.group(1)), int(marker.group(2))
        print(f"[create-zip] Created project.zip ({size} bytes, {file_count} files)")

        read = await executor.run_command(READ_COMMAND)
        if not read.success:
            return {"success": False, "error": f"Failed to read zip file: {read.stderr.strip()}", "status": 500}

        content = "".join(read.stdout.split())
        if not content:
            return {"success": False, "error": "Zip file is empty", "status": 500}
        try:
            base64.b64decode(content, validate=True)
        except (binascii.Error, ValueError) as e:
            return {"success": False, "error": f"Invalid base64 content: {e}", "status": 500}

        return {
            "success": True,
            "dataUrl": f"data:application/zip;base64,{content}",
            "fileName": "project.zip",
            "size": size,
            "fileCount": file_count,
            "message": "Zip file created successfully",
        }

    except Exception as e:
        print(f"[create-zip] Error: {e}")
        return {"success": False, "error": str(e), "status": 500}


_processor = RunnableLambda(_compute)


async def _node(state: GraphState, config: RunnableConfig) -> GraphState:
    return {"response": await _processor.ainvoke(state.get("payload", {}), config=config)}


_sg = StateGraph(GraphState)
_sg.add_node("process", _node)
_sg.set_entry_point("process")
_sg.add_edge("process", END)
_graph = _sg.compile()


async def POST(session: Session) -> Dict[str, Any]:
    result = await _graph.ainvoke({"payload": {}}, config={"configurable": {"session": session}})
    return result.get("response", {})
