# detect_and_install_packages.py - scan submitted files for imports and install what is missing
from typing import Any, Dict, List

from reconcile.package_resolver import partition, resolve, scan_imports
from reconcile.session import Session, SessionBusyError


async def POST(body: Dict[str, Any], session: Session) -> Dict[str, Any]:
    """
    Body: {"files": {"src/App.jsx": "<content>", ...}, "sandboxId": optional}
    """
    try:
        body = body or {}
        files = body.get("files")
        if not files or not isinstance(files, dict):
            return {"success": False, "error": "Files object is required", "status": 400}

        scanned: List[str] = []
        for path, content in files.items():
            if isinstance(content, str) and path.endswith(('.js', '.jsx', '.ts', '.tsx')):
                scanned.extend(scan_imports(content))
        packages = resolve([], scanned)
        print("[detect-and-install-packages] Packages detected:", packages)

        if not packages:
            return {"success": True, "packagesInstalled": [], "message": "No new packages to install"}

        executor = await session.ensure_sandbox(body.get("sandboxId"))
        async with session.run_guard():
            already, need = await partition(executor, packages)
            if not need:
                return {
                    "success": True,
                    "packagesInstalled": [],
                    "packagesAlreadyInstalled": already,
                    "message": "All packages already installed",
                }

            print("[detect-and-install-packages] Installing packages:", need)
            outcome = await executor.install_packages(need)

        installed, failed = (need, []) if outcome.success else ([], need)
        if failed:
            print("[detect-and-install-packages] Failed to install:", failed)

        return {
            "success": outcome.success,
            "packagesInstalled": installed,
            "packagesFailed": failed,
            "packagesAlreadyInstalled": already,
            "message": f"Installed {len(installed)} packages",
            "logs": outcome.stdout + outcome.stderr,
        }

    except SessionBusyError as error:
        return {"success": False, "error": str(error), "status": 409}

    except Exception as error:
        print("[detect-and-install-packages] Error:", error)
        return {"success": False, "error": str(error), "status": 500}
