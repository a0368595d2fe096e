# reconcile/executor.py - the sandbox capability consumed by the reconciliation engine
#
# SandboxExecutor is the only surface the orchestrator talks to. E2BExecutor is
# the one implementation: it drives an e2b_code_interpreter AsyncSandbox by
# shipping small Python scripts into it, dispatched through a RunnableLambda.

from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional
import asyncio
import json
import re
import shlex

from e2b import NotFoundException
from e2b_code_interpreter import AsyncSandbox
from langchain_core.runnables import RunnableLambda

from config.app_config import appConfig
from reconcile.models import CommandResult, SandboxInfo

PACKAGE_NAME_RE = re.compile(r'^[@a-zA-Z0-9][\w.\-/@^~]*$')

COMMAND_MARKER = 'COMMAND_RESULT:'
FILES_MARKER = 'FILES_RESULT:'


class SandboxUnavailableError(RuntimeError):
    """The sandbox behind an executor has expired or cannot be reached."""


class SandboxExecutor(ABC):

    @abstractmethod
    async def run_command(self, cmd: str, timeout: Optional[int] = None) -> CommandResult:
        ...

    @abstractmethod
    async def write_file(self, path: str, content: str) -> None:
        ...

    @abstractmethod
    async def read_file(self, path: str) -> str:
        ...

    @abstractmethod
    async def install_packages(self, names: List[str]) -> CommandResult:
        ...

    @abstractmethod
    async def restart_dev_server(self) -> None:
        ...

    @abstractmethod
    def get_info(self) -> Optional[SandboxInfo]:
        ...

    @abstractmethod
    async def list_files(self) -> List[str]:
        ...

    @abstractmethod
    async def terminate(self) -> None:
        ...


def _parse_marker(output: str, marker: str) -> Optional[Any]:
    for line in reversed(output.splitlines()):
        if line.startswith(marker):
            try:
                return json.loads(line[len(marker):])
            except json.JSONDecodeError as e:
                print(f"[e2b-executor] Could not decode {marker} payload: {e}")
                return None
    return None


class E2BExecutor(SandboxExecutor):

    def __init__(self, sandbox: AsyncSandbox, url: Optional[str] = None) -> None:
        self._sandbox = sandbox
        self._info = SandboxInfo(id=sandbox.sandbox_id, url=url or self._build_url(sandbox))
        self._runner = RunnableLambda(self._execute)

    @staticmethod
    def _build_url(sandbox: AsyncSandbox) -> str:
        return f"https://{sandbox.get_host(appConfig.e2b.vitePort)}"

    # ---- construction ----

    @classmethod
    async def create(cls) -> "E2BExecutor":
        """Create a sandbox and scaffold the Vite + React + Tailwind app inside it."""
        print("[e2b-executor] Creating new E2B sandbox...")
        sandbox = await AsyncSandbox.create(
            api_key=appConfig.e2b.apiKey,
            timeout=appConfig.e2b.timeoutMinutes * 60,
        )
        executor = cls(sandbox)
        print(f"[e2b-executor] Sandbox created: {executor._info.id}")
        try:
            await executor.setup_vite_app()
        except Exception:
            await executor.terminate()
            raise
        return executor

    @classmethod
    async def connect(cls, sandbox_id: str) -> "E2BExecutor":
        print(f"[e2b-executor] Reconnecting to sandbox {sandbox_id}...")
        try:
            sandbox = await AsyncSandbox.connect(sandbox_id, api_key=appConfig.e2b.apiKey)
        except NotFoundException as e:
            raise SandboxUnavailableError(f"Sandbox {sandbox_id} no longer exists") from e
        return cls(sandbox)

    # ---- script dispatch ----

    async def _execute(self, payload: Dict[str, Any]) -> Any:
        try:
            return await self._sandbox.run_code(payload["code"], timeout=payload.get("timeout"))
        except NotFoundException as e:
            raise SandboxUnavailableError(f"Sandbox {self._info.id} is no longer available") from e

    async def _run_script(self, code: str, timeout: Optional[int] = None) -> str:
        execution = await self._runner.ainvoke({"code": code, "timeout": timeout})
        if execution.error is not None:
            raise RuntimeError(f"{execution.error.name}: {execution.error.value}")
        return ''.join(execution.logs.stdout)

    def _abs(self, path: str) -> str:
        if path.startswith('/'):
            return path
        return f"{appConfig.e2b.appDir}/{path}"

    # ---- SandboxExecutor ----

    async def run_command(self, cmd: str, timeout: Optional[int] = None) -> CommandResult:
        limit = timeout or appConfig.e2b.commandTimeoutSeconds
        script = f"""
import subprocess, json
cmd = {json.dumps(cmd)}
try:
    proc = subprocess.run(cmd, shell=True, cwd={json.dumps(appConfig.e2b.appDir)},
                          capture_output=True, text=True, timeout={limit})
    result = {{"exitCode": proc.returncode, "stdout": proc.stdout, "stderr": proc.stderr}}
except subprocess.TimeoutExpired:
    result = {{"exitCode": 124, "stdout": "", "stderr": "Command timed out after {limit}s"}}
print({json.dumps(COMMAND_MARKER)} + json.dumps(result))
"""
        output = await self._run_script(script, timeout=limit + 30)
        parsed = _parse_marker(output, COMMAND_MARKER)
        if not isinstance(parsed, dict):
            return CommandResult(stdout=output, stderr='Command produced no result', exitCode=1)
        return CommandResult(**parsed)

    async def write_file(self, path: str, content: str) -> None:
        try:
            await self._sandbox.files.write(self._abs(path), content)
        except NotFoundException as e:
            raise SandboxUnavailableError(f"Sandbox {self._info.id} is no longer available") from e

    async def read_file(self, path: str) -> str:
        try:
            return await self._sandbox.files.read(self._abs(path))
        except NotFoundException as e:
            # files.read raises NotFound for a missing file as well as a missing sandbox
            if not await self._sandbox.is_running():
                raise SandboxUnavailableError(f"Sandbox {self._info.id} is no longer available") from e
            raise FileNotFoundError(path) from e

    async def install_packages(self, names: List[str]) -> CommandResult:
        invalid = [n for n in names if not PACKAGE_NAME_RE.match(n)]
        if invalid:
            return CommandResult(stderr=f"Invalid package names: {', '.join(invalid)}", exitCode=1)
        if not names:
            return CommandResult()

        if appConfig.packages.autoRestartVite:
            await self.run_command("pkill -f vite || true")

        flags = ['--legacy-peer-deps'] if appConfig.packages.useLegacyPeerDeps else []
        cmd = ' '.join(['npm', 'install'] + flags + [shlex.quote(n) for n in names])
        print(f"[e2b-executor] {cmd}")
        result = await self.run_command(cmd, timeout=appConfig.e2b.installTimeoutSeconds)

        if appConfig.packages.autoRestartVite:
            await self.restart_dev_server()
        return result

    async def restart_dev_server(self) -> None:
        app_dir = json.dumps(appConfig.e2b.appDir)
        script = f"""
import subprocess, os, time
subprocess.run(['pkill', '-f', 'vite'], capture_output=True)
time.sleep(1)
env = os.environ.copy()
env['E2B_SANDBOX_ID'] = {json.dumps(self._info.id)}
env['FORCE_COLOR'] = '0'
log = open({json.dumps(appConfig.e2b.viteLogFile)}, 'a')
proc = subprocess.Popen(['npm', 'run', 'dev'], cwd={app_dir}, env=env,
                        stdout=log, stderr=subprocess.STDOUT, preexec_fn=os.setsid)
with open('/tmp/vite-process.pid', 'w') as f:
    f.write(str(proc.pid))
print(f'VITE_STARTED:{{proc.pid}}')
"""
        output = await self._run_script(script)
        if 'VITE_STARTED:' not in output:
            raise RuntimeError("Dev server did not start")
        print("[e2b-executor] Vite dev server restarted")
        await asyncio.sleep(appConfig.e2b.viteStartupDelay / 1000)

    def get_info(self) -> Optional[SandboxInfo]:
        return self._info

    async def list_files(self) -> List[str]:
        script = f"""
import os, json
root = {json.dumps(appConfig.e2b.appDir)}
skip = {{'node_modules', '.git', 'dist', 'build', '.vite'}}
found = []
for current, dirs, names in os.walk(root):
    dirs[:] = [d for d in dirs if d not in skip]
    for name in names:
        found.append(os.path.relpath(os.path.join(current, name), root))
print({json.dumps(FILES_MARKER)} + json.dumps(sorted(found)))
"""
        parsed = _parse_marker(await self._run_script(script), FILES_MARKER)
        return parsed if isinstance(parsed, list) else []

    async def terminate(self) -> None:
        try:
            await self._sandbox.kill()
            print(f"[e2b-executor] Sandbox {self._info.id} killed")
        except NotFoundException:
            print(f"[e2b-executor] Sandbox {self._info.id} was already gone")

    # ---- project scaffold ----

    async def setup_vite_app(self) -> None:
        """Write the base template, install it and start the dev server."""
        print("[e2b-executor] Setting up React app with Vite and Tailwind...")
        app_dir = appConfig.e2b.appDir
        port = appConfig.e2b.vitePort
        package_json = {
            "name": "sandbox-app", "version": "1.0.0", "type": "module",
            "scripts": {
                "dev": f"vite --host 0.0.0.0 --port {port} --strictPort --config vite.config.mjs",
                "build": "vite build --config vite.config.mjs",
                "preview": f"vite preview --host 0.0.0.0 --port {port} --config vite.config.mjs",
            },
            "dependencies": {"react": "^18.2.0", "react-dom": "^18.2.0"},
            "devDependencies": {
                "@vitejs/plugin-react": "^4.3.0", "vite": "^6.0.9",
                "tailwindcss": "^3.3.0", "postcss": "^8.4.31", "autoprefixer": "^10.4.16",
            },
        }
        files = {
            'package.json': json.dumps(package_json, indent=2),
            'vite.config.mjs': _VITE_CONFIG.replace('__PORT__', str(port)),
            'tailwind.config.js': _TAILWIND_CONFIG,
            'postcss.config.js': _POSTCSS_CONFIG,
            'index.html': _INDEX_HTML,
            'src/main.jsx': _MAIN_JSX,
            'src/App.jsx': _APP_JSX,
            'src/index.css': _INDEX_CSS,
        }
        await self.run_command(f"mkdir -p {shlex.quote(app_dir)}/src")
        for path, content in files.items():
            await self.write_file(path, content)
            print(f"[e2b-executor] ✓ {path}")

        print("[e2b-executor] Installing dependencies...")
        install = await self.run_command("npm install", timeout=appConfig.e2b.installTimeoutSeconds)
        if not install.success:
            print(f"[e2b-executor] npm install issues: {install.stderr[-500:]}")

        await self.restart_dev_server()


_VITE_CONFIG = """import { defineConfig } from 'vite'
import react from '@vitejs/plugin-react'
const id = process.env.E2B_SANDBOX_ID
const allowed = ['localhost', '127.0.0.1', '::1', '.e2b.app', '.e2b.dev']
if (id) { allowed.push(`__PORT__-${id}.e2b.app`, `__PORT__-${id}.e2b.dev`) }
export default defineConfig({
  plugins: [react()],
  server: {
    host: '0.0.0.0', port: __PORT__, strictPort: true, allowedHosts: allowed,
    hmr: { clientPort: 443, host: id ? `__PORT__-${id}.e2b.app` : undefined },
    watch: { usePolling: true, interval: 1000 }, cors: true
  },
  preview: { host: '0.0.0.0', port: __PORT__, strictPort: true, allowedHosts: allowed },
  define: { 'process.env': {}, global: 'globalThis' },
  optimizeDeps: { include: ['react', 'react-dom'] }
})"""

_TAILWIND_CONFIG = """/** @type {import('tailwindcss').Config} */
export default {
  content: ["./index.html", "./src/**/*.{js,ts,jsx,tsx}"],
  theme: { extend: {} },
  plugins: [],
}"""

_POSTCSS_CONFIG = """export default {
  plugins: { tailwindcss: {}, autoprefixer: {} },
}"""

_INDEX_HTML = """<!DOCTYPE html><html lang="en"><head><meta charset="UTF-8" /><meta name="viewport" content="width=device-width, initial-scale=1.0" /><title>Sandbox App</title></head><body><div id="root"></div><script type="module" src="/src/main.jsx"></script></body></html>"""

_MAIN_JSX = """import React from 'react'
import ReactDOM from 'react-dom/client'
import App from './App.jsx'
import './index.css'
ReactDOM.createRoot(document.getElementById('root')).render(<React.StrictMode><App /></React.StrictMode>,)"""

_APP_JSX = """function App() {
  return (
    <div className="min-h-screen bg-gray-900 text-white flex items-center justify-center p-4">
      <div className="text-center max-w-2xl">
        <h1 className="text-4xl font-bold mb-4 text-green-400">Sandbox Ready</h1>
        <p className="text-lg text-gray-400">Your React app with Vite and Tailwind CSS is ready for development.</p>
      </div>
    </div>
  )
}
export default App"""

_INDEX_CSS = """@tailwind base;
@tailwind components;
@tailwind utilities;"""


def get_executor_factory(provider: Optional[str] = None):
    """The class whose create()/connect() classmethods produce executors for a provider."""
    name = (provider or appConfig.sandbox.provider or 'e2b').lower()
    if name == 'e2b':
        return E2BExecutor
    raise ValueError(f"Unknown sandbox provider: {name}")
