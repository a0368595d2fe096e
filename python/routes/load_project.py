# load_project.py - preload an existing project into the sandbox so the next turn is an edit
#
# Files are written through the executor and registered on the session, so the
# apply pipeline reports later writes to them as updates. The manifest is rebuilt
# from the loaded files without another round-trip to the sandbox.

from typing import Any, Dict, List
import posixpath
import shlex

from reconcile.session import Session, SessionBusyError
from routes.get_sandbox_files import build_manifest


def _clean_path(path: str) -> str:
    return path.strip().lstrip('/')


async def POST(body: Dict[str, Any], session: Session) -> Dict[str, Any]:
    """
    Body: {"files": [{"path": "src/App.jsx", "content": "..."}, ...]}
    """
    files = (body or {}).get("files")
    if not isinstance(files, list) or not files:
        return {"success": False, "error": "files array is required and must not be empty", "status": 400}

    executor = session.executor
    if executor is None:
        return {"success": False, "error": "No active sandbox. Create one first via /api/create-ai-sandbox", "status": 409}

    loaded: Dict[str, str] = {}
    errors: List[str] = []
    try:
        async with session.run_guard():
            for entry in files:
                if not isinstance(entry, dict) or not entry.get("path") or not isinstance(entry.get("content"), str):
                    errors.append("Invalid file entry: missing path or content")
                    continue

                path = _clean_path(entry["path"])
                if '..' in path.split('/') or '\0' in path:
                    errors.append(f"{entry['path']}: path traversal rejected")
                    continue

                try:
                    parent = posixpath.dirname(path)
                    if parent:
                        made = await executor.run_command(f"mkdir -p {shlex.quote(parent)}")
                        if not made.success:
                            raise RuntimeError(made.stderr.strip() or f"mkdir exited with {made.exitCode}")
                    await executor.write_file(path, entry["content"])
                except Exception as e:
                    errors.append(f"{entry['path']}: {e}")
                    continue

                session.record_write(path, entry["content"])
                loaded[path] = entry["content"]
    except SessionBusyError as e:
        return {"success": False, "error": str(e), "status": 409}

    if loaded:
        session.project_preloaded = True
        session.manifest = build_manifest(loaded)

    print(f"[load-project] Loaded {len(loaded)} files, {len(errors)} errors")
    return {
        "success": not errors,
        "loaded": len(loaded),
        "errors": errors,
        "files": list(loaded),
        "preloaded": session.project_preloaded,
    }
