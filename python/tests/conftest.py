import asyncio
import json
from typing import Dict, List, Optional

import pytest

from reconcile.executor import SandboxExecutor, SandboxUnavailableError
from reconcile.models import CommandResult, SandboxInfo
from reconcile.session import Session

BASE_PACKAGE_JSON = json.dumps({
    "name": "sandbox-app",
    "dependencies": {"react": "^18.2.0", "react-dom": "^18.2.0"},
    "devDependencies": {"vite": "^5.0.0"},
})


class FakeExecutor(SandboxExecutor):
    """In-memory sandbox that records every call and fails where told to."""

    def __init__(self, files: Optional[Dict[str, str]] = None, sandbox_id: str = "sbx-test") -> None:
        self.files: Dict[str, str] = {"package.json": BASE_PACKAGE_JSON}
        self.files.update(files or {})
        self.commands: List[str] = []
        self.writes: List[str] = []
        self.installs: List[List[str]] = []
        self.command_results: Dict[str, CommandResult] = {}
        self.command_errors: Dict[str, Exception] = {}
        self.write_errors: Dict[str, Exception] = {}
        self.install_result = CommandResult(stdout="added 1 package in 2s")
        self.unavailable = False
        self.write_started: Optional[asyncio.Event] = None
        self.write_gate: Optional[asyncio.Event] = None
        self.restarts = 0
        self.terminated = False
        self.info = SandboxInfo(id=sandbox_id, url=f"https://5173-{sandbox_id}.e2b.app")

    def _check(self) -> None:
        if self.unavailable:
            raise SandboxUnavailableError(f"Sandbox {self.info.id} is no longer available")

    async def run_command(self, cmd: str, timeout: Optional[int] = None) -> CommandResult:
        self._check()
        self.commands.append(cmd)
        if cmd in self.command_errors:
            raise self.command_errors[cmd]
        return self.command_results.get(cmd, CommandResult())

    async def write_file(self, path: str, content: str) -> None:
        self._check()
        if self.write_gate is not None:
            self.write_started.set()
            await self.write_gate.wait()
        if path in self.write_errors:
            raise self.write_errors[path]
        self.files[path] = content
        self.writes.append(path)

    async def read_file(self, path: str) -> str:
        self._check()
        if path not in self.files:
            raise FileNotFoundError(path)
        return self.files[path]

    async def install_packages(self, names: List[str]) -> CommandResult:
        self._check()
        self.installs.append(list(names))
        return self.install_result

    async def restart_dev_server(self) -> None:
        self._check()
        self.restarts += 1

    def get_info(self) -> Optional[SandboxInfo]:
        return self.info

    async def list_files(self) -> List[str]:
        self._check()
        return sorted(self.files)

    async def terminate(self) -> None:
        self.terminated = True


class FakeFactory:
    """Stands in for E2BExecutor's create()/connect() classmethods."""

    def __init__(self) -> None:
        self.created: List[FakeExecutor] = []
        self.connected: List[str] = []
        self.create_error: Optional[Exception] = None
        self.live: Dict[str, FakeExecutor] = {}
        self.gate = None

    async def create(self) -> FakeExecutor:
        if self.gate is not None:
            await self.gate.wait()
        if self.create_error is not None:
            raise self.create_error
        executor = FakeExecutor(sandbox_id=f"sbx-{len(self.created) + 1}")
        self.created.append(executor)
        self.live[executor.info.id] = executor
        return executor

    async def connect(self, sandbox_id: str) -> FakeExecutor:
        self.connected.append(sandbox_id)
        if sandbox_id not in self.live:
            raise RuntimeError(f"Sandbox {sandbox_id} not found")
        return self.live[sandbox_id]


@pytest.fixture
def executor():
    return FakeExecutor(files={"src/App.jsx": "function App() { return null }\nexport default App\n"})


@pytest.fixture
def factory():
    return FakeFactory()


@pytest.fixture
def session(executor, factory):
    session = Session(executor_factory=factory)
    session.activate(executor)
    return session


@pytest.fixture
def idle_session(factory):
    return Session(executor_factory=factory)
