# get_sandbox_files.py - list sandbox files and build the project manifest
#
# The manifest is what an edit-mode prompt gets to see: per-file imports/exports,
# a component tree, router paths, the entry point and the style files.

from typing import Any, Dict, List
import re

from config.app_config import appConfig
from reconcile.conversation import now_ms
from reconcile.models import FileCacheEntry
from reconcile.session import Session

IMPORT_SPEC_RE = re.compile(r"""import\s+(?:[^'"]+?\s+from\s+)?['"]([^'"]+)['"]""")
EXPORT_RE = re.compile(r"""export\s+(?:default\s+)?(?:const|function|class)?\s*([A-Za-z0-9_]+)?""")
COMPONENT_RE = re.compile(r"""(export\s+default\s+function|function\s+[A-Z][A-Za-z0-9_]*\s*\(|<Route|createBrowserRouter)""")
ROUTE_RE = re.compile(r"""path=["']([^"']+)["'].*?(?:element|component)={(.*?)}""", re.DOTALL)
PAGES_RE = re.compile(r"^(src/)?pages/")
SCRIPT_RE = re.compile(r"\.(jsx?|tsx?)$")
ENTRY_POINTS = ("src/main.jsx", "src/index.jsx", "src/main.tsx", "src/index.tsx")


def parse_javascript_file(content: str, full_path: str) -> Dict[str, Any]:
    """Imports, exports and a component/utility guess for one JS/TS file."""
    imports = [m.group(1) for m in IMPORT_SPEC_RE.finditer(content)]
    exports: List[str] = []
    for m in EXPORT_RE.finditer(content):
        name = (m.group(1) or "default").strip()
        if name not in exports:
            exports.append(name)

    has_routes = "<Route" in content or "createBrowserRouter" in content
    return {
        "imports": imports,
        "exports": exports,
        "type": "component" if COMPONENT_RE.search(content) else "utility",
        "hasRoutes": has_routes,
        "path": full_path,
    }


def build_component_tree(files: Dict[str, Dict[str, Any]]) -> Dict[str, Any]:
    return {
        path: {"imports": list(info.get("imports") or []), "type": info.get("type", "utility")}
        for path, info in files.items()
    }


def extract_routes(files: Dict[str, Dict[str, Any]]) -> List[Dict[str, str]]:
    """React Router path= declarations plus pages/ directory conventions."""
    routes: List[Dict[str, str]] = []
    for path, info in files.items():
        content = info.get("content", "")
        relative_path = info.get("relativePath", "")

        if info.get("hasRoutes"):
            for m in ROUTE_RE.finditer(content):
                routes.append({"path": m.group(1), "component": path})

        if PAGES_RE.match(relative_path) and SCRIPT_RE.search(relative_path):
            route_path = "/" + SCRIPT_RE.sub("", PAGES_RE.sub("", relative_path))
            route_path = re.sub(r"/index$", "", route_path) or "/"
            routes.append({"path": route_path, "component": path})
    return routes


def build_manifest(files: Dict[str, str]) -> Dict[str, Any]:
    timestamp = now_ms()
    app_dir = appConfig.e2b.appDir
    manifest: Dict[str, Any] = {
        "files": {},
        "routes": [],
        "componentTree": {},
        "entryPoint": "",
        "styleFiles": [],
        "timestamp": timestamp,
    }

    for relative_path, content in files.items():
        full_path = f"{app_dir}/{relative_path}"
        info: Dict[str, Any] = {
            "content": content,
            "type": "utility",
            "path": full_path,
            "relativePath": relative_path,
            "lastModified": timestamp,
        }
        if SCRIPT_RE.search(relative_path):
            info.update(parse_javascript_file(content, full_path))
            if relative_path in ENTRY_POINTS:
                manifest["entryPoint"] = full_path
            elif relative_path in appConfig.files.entryFiles and not manifest["entryPoint"]:
                manifest["entryPoint"] = full_path
        if relative_path.endswith(".css"):
            manifest["styleFiles"].append(full_path)
            info["type"] = "style"
        manifest["files"][full_path] = info

    manifest["componentTree"] = build_component_tree(manifest["files"])
    manifest["routes"] = extract_routes(manifest["files"])
    return manifest


def _structure(paths: List[str], limit: int = 50) -> str:
    lines: List[str] = []
    seen_dirs = set()
    for path in sorted(paths):
        parts = path.split("/")
        for depth in range(len(parts) - 1):
            directory = "/".join(parts[:depth + 1])
            if directory not in seen_dirs:
                seen_dirs.add(directory)
                lines.append(f"{'  ' * depth}{parts[depth]}/")
        lines.append(f"{'  ' * (len(parts) - 1)}{parts[-1]}")
    return "\n".join(lines[:limit])


async def GET(session: Session) -> Dict[str, Any]:
    try:
        executor = session.executor
        if executor is None:
            return {"success": False, "error": "No active sandbox", "status": 404}

        print("[get-sandbox-files] Fetching and analyzing file structure...")
        paths = await executor.list_files()

        files: Dict[str, str] = {}
        for path in paths:
            if not path.endswith(appConfig.files.manifestExtensions):
                continue
            try:
                content = await executor.read_file(path)
            except FileNotFoundError:
                continue
            if len(content) < appConfig.files.manifestMaxBytes:
                files[path] = content

        manifest = build_manifest(files)

        session.known_files.update(paths)
        for path, content in files.items():
            session.file_cache[path] = FileCacheEntry(content=content, lastModified=manifest["timestamp"])
        session.manifest = manifest

        return {
            "success": True,
            "files": files,
            "structure": _structure(paths),
            "fileCount": len(files),
            "manifest": manifest,
        }

    except Exception as error:
        print("[get-sandbox-files] Error:", error)
        return {"success": False, "error": str(error), "status": 500}
