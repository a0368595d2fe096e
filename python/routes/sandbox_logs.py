# sandbox_logs.py - dev-server process state plus the tail of any Vite log files
from typing import Any, Dict, List
import shlex

from reconcile.session import Session
from routes.check_vite_errors import find_error_lines

FIND_LOGS_COMMAND = "find /tmp -name '*vite*' -name '*.log' -type f"


async def GET(session: Session) -> Dict[str, Any]:
    executor = session.executor
    if executor is None:
        return {"success": False, "error": "No active sandbox", "status": 400}

    try:
        print("[sandbox-logs] Fetching Vite dev server logs...")
        logs: List[str] = []
        vite_running = False

        ps = await executor.run_command("ps aux")
        if ps.success:
            processes = [line for line in ps.stdout.splitlines()
                         if 'vite' in line.lower() or 'npm run dev' in line.lower()]
            vite_running = bool(processes)
            if vite_running:
                logs.append("Vite is running")
                logs.extend(processes[:3])
            else:
                logs.append("Vite process not found")

        has_errors = False
        found = await executor.run_command(FIND_LOGS_COMMAND)
        if found.success:
            for log_file in [f.strip() for f in found.stdout.splitlines() if f.strip()][:2]:
                tail = await executor.run_command(f"tail -n 10 {shlex.quote(log_file)}")
                if not tail.success:
                    continue
                logs.append(f"--- {log_file} ---")
                logs.append(tail.stdout)
                has_errors = has_errors or bool(find_error_lines(tail.stdout))

        return {
            "success": True,
            "hasErrors": has_errors,
            "logs": logs,
            "serverStatus": "running" if vite_running else "stopped",
        }

    except Exception as error:
        print("[sandbox-logs] Error:", error)
        return {"success": False, "error": str(error), "status": 500}
