# reconcile/session.py - the one live project: its sandbox, what it contains, and who is writing to it

from contextlib import asynccontextmanager
from enum import Enum
from typing import Any, Dict, List, Optional, Set, Tuple
import asyncio

from config.app_config import appConfig
from reconcile.conversation import ConversationStateModel, now_ms
from reconcile.executor import SandboxExecutor, get_executor_factory
from reconcile.models import FileCacheEntry, ReconciliationResult
from reconcile.state_manager import get_sandbox_state, set_sandbox_state


class SessionStatus(str, Enum):
    CREATED = 'created'
    ACTIVE = 'active'
    TERMINATED = 'terminated'


class SessionBusyError(RuntimeError):
    """Raised when a second apply run is attempted while one is in progress."""


class Session:
    """
    Owns everything that used to live in module globals:
      - the active executor and its lifecycle (created -> active -> terminated)
      - the known-files registry used to tell creates from updates
      - the read-through file cache and last file manifest
      - conversation state, run history and reported dev-server errors
      - the in-flight sandbox creation future and the single-run guard
    """

    def __init__(self, executor_factory: Any = None, persist_state: bool = False) -> None:
        self.executor: Optional[SandboxExecutor] = None
        self.status = SessionStatus.CREATED
        self.known_files: Set[str] = set()
        self.file_cache: Dict[str, FileCacheEntry] = {}
        self.manifest: Optional[Dict[str, Any]] = None
        self.conversation: Optional[ConversationStateModel] = None
        self.history: List[Dict[str, Any]] = []
        self.vite_errors: List[Dict[str, Any]] = []
        self.project_preloaded = False
        self._factory = executor_factory
        self._persist = persist_state
        self._creating: Optional[asyncio.Future] = None
        self._run_active = False
        self._tasks: Set[asyncio.Task] = set()

    @property
    def factory(self):
        if self._factory is None:
            self._factory = get_executor_factory()
        return self._factory

    # ---- sandbox lifecycle ----

    @property
    def creating(self) -> bool:
        return self._creating is not None

    async def ensure_sandbox(self, target_id: Optional[str] = None) -> SandboxExecutor:
        """Return the live executor, waiting on or starting a creation when there is none."""
        if self._creating is not None:
            print("[session] Waiting for in-flight sandbox creation...")
            return await asyncio.shield(self._creating)

        if self.executor is not None:
            info = self.executor.get_info()
            if target_id is None or (info is not None and info.id == target_id):
                return self.executor

        if target_id is None and self._persist:
            remembered = get_sandbox_state()
            if remembered:
                target_id = remembered.get('sandboxId')

        return await self.create_sandbox(target_id=target_id)

    async def create_sandbox(self, target_id: Optional[str] = None) -> SandboxExecutor:
        """
        Reconnect to target_id when given, otherwise create a fresh sandbox.
        Concurrent callers share one creation.
        """
        if self._creating is not None:
            return await asyncio.shield(self._creating)
        self._refuse_during_run("replace the sandbox")

        creating = asyncio.get_running_loop().create_future()
        self._creating = creating
        try:
            executor, seeded = None, None
            if target_id:
                executor, seeded = await self._reconnect(target_id)
            if executor is None:
                await self._release_executor()
                executor = await self.factory.create()
            self.activate(executor, known_files=seeded)
            creating.set_result(executor)
            return executor
        except Exception as e:
            print(f"[session] Sandbox creation failed: {e}")
            if self._persist:
                set_sandbox_state(None)
            creating.set_exception(e)
            # Waiters re-raise it; keep asyncio from reporting it as unretrieved
            creating.exception()
            raise
        finally:
            self._creating = None

    async def _reconnect(self, target_id: str) -> Tuple[Optional[SandboxExecutor], Optional[Set[str]]]:
        try:
            executor = await self.factory.connect(target_id)
        except Exception as e:
            print(f"[session] Sandbox {target_id} connection failed: {e}. Creating a new one.")
            return None, None
        try:
            present = set(await executor.list_files())
        except Exception as e:
            print(f"[session] Could not list files of {target_id}: {e}")
            present = None
        return executor, present

    def activate(self, executor: SandboxExecutor, known_files: Optional[Set[str]] = None) -> None:
        self.executor = executor
        self.status = SessionStatus.ACTIVE
        if known_files is None:
            known_files = set(appConfig.files.baseTemplateFiles)
        self.known_files = set(known_files)
        self.file_cache = {}
        self.manifest = None
        self.project_preloaded = False
        info = executor.get_info()
        if info is not None:
            print(f"[session] Active sandbox {info.id} at {info.url}")
            if self._persist:
                set_sandbox_state({"sandboxId": info.id, "url": info.url, "createdAt": now_ms()})

    async def _release_executor(self) -> bool:
        if self.executor is None:
            return False
        executor, self.executor = self.executor, None
        try:
            await executor.terminate()
            return True
        except Exception as e:
            print(f"[session] Failed to terminate sandbox: {e}")
            return False

    async def terminate(self) -> bool:
        self._refuse_during_run("terminate the sandbox")
        killed = await self._release_executor()
        self.status = SessionStatus.TERMINATED
        self.known_files.clear()
        self.file_cache.clear()
        self.manifest = None
        self.conversation = None
        self.vite_errors.clear()
        self.project_preloaded = False
        if self._persist:
            set_sandbox_state(None)
        print("[session] Session terminated")
        return killed

    # ---- single active run ----

    @property
    def run_active(self) -> bool:
        return self._run_active

    def begin_run(self) -> None:
        if self._run_active:
            raise SessionBusyError("Another apply run is already in progress for this sandbox")
        self._run_active = True

    def end_run(self) -> None:
        self._run_active = False

    def _refuse_during_run(self, action: str) -> None:
        if self._run_active:
            raise SessionBusyError(f"Cannot {action} while an apply run is in progress")

    @asynccontextmanager
    async def run_guard(self):
        self.begin_run()
        try:
            yield self
        finally:
            self.end_run()

    def track(self, task: asyncio.Task) -> asyncio.Task:
        """Hold a strong reference to a background run until it finishes."""
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    async def wait_for_runs(self) -> int:
        """Let background runs finish; returns how many were pending."""
        pending = list(self._tasks)
        if pending:
            await asyncio.gather(*pending, return_exceptions=True)
        return len(pending)

    # ---- file registry / cache ----

    def record_write(self, path: str, content: Optional[str]) -> bool:
        """Register a successful write; returns True when the path already existed."""
        existed = path in self.known_files
        self.known_files.add(path)
        if content is not None:
            self.file_cache[path] = FileCacheEntry(content=content, lastModified=now_ms())
        return existed

    def cached_content(self, path: str) -> Optional[str]:
        entry = self.file_cache.get(path)
        return entry.content if entry else None

    # ---- history ----

    def record_run(self, result: ReconciliationResult, explanation: str = '') -> Dict[str, Any]:
        summary = {
            "timestamp": now_ms(),
            "filesCreated": list(result.filesCreated),
            "filesUpdated": list(result.filesUpdated),
            "packagesInstalled": list(result.packagesInstalled),
            "commandsExecuted": list(result.commandsExecuted),
            "errorCount": len(result.errors),
        }
        self.history.append(summary)

        if self.conversation is not None:
            affected = result.filesCreated + result.filesUpdated
            messages = self.conversation.context.messages
            if messages and isinstance(messages[-1], dict) and messages[-1].get('role') == 'user':
                metadata = messages[-1].setdefault('metadata', {})
                metadata['editedFiles'] = affected
            self.conversation.context.projectEvolution.majorChanges.append({
                "timestamp": summary["timestamp"],
                "description": explanation or 'Code applied',
                "filesAffected": affected,
            })
            self.conversation.lastUpdated = summary["timestamp"]
        return summary

    def info(self) -> Dict[str, Any]:
        info = self.executor.get_info() if self.executor else None
        return {
            "status": self.status.value,
            "active": self.executor is not None,
            "creating": self.creating,
            "runActive": self._run_active,
            "sandboxData": info.model_dump() if info else None,
            "knownFiles": len(self.known_files),
            "runs": len(self.history),
            "projectPreloaded": self.project_preloaded,
        }
