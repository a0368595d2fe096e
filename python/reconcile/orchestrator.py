# reconcile/orchestrator.py - applies a parsed AI turn to the sandbox
#
# Stages run strictly in order as a LangGraph pipeline:
#   install -> edits -> files -> commands -> verify
# Each stage pushes its progress events as it goes. Per-item failures are
# recorded in the result and never stop the pipeline.

from typing import Iterable, List, Optional, Set, TypedDict
import posixpath
import re
import shlex
import traceback

from langchain_core.runnables import RunnableConfig
from langgraph.graph import StateGraph, START, END

from config.app_config import appConfig
from reconcile.edit_extractor import EditApplier
from reconcile.executor import SandboxExecutor, SandboxUnavailableError
from reconcile.models import (
    CommandResult, EditInstruction, EditResult, ParsedResponse, ReconciliationResult,
)
from reconcile.package_resolver import partition, resolve
from reconcile.paths import is_scaffold_file, normalize_path
from reconcile.progress import (
    CommandCompleteEvent, CommandErrorEvent, CommandOutputEvent, CommandProgressEvent,
    CompleteEvent, ErrorEvent, FileCompleteEvent, FileErrorEvent, FileProgressEvent,
    InfoEvent, PackageProgressEvent, ProgressSink, StartEvent, StepEvent, WarningEvent,
)
from reconcile.session import Session

SCRIPT_EXTENSIONS = ('.js', '.jsx', '.ts', '.tsx')
CSS_IMPORT_RE = re.compile(r"""import\s+['"]\./[^'"]+\.css['"];?[ \t]*\n?""")
RELATIVE_IMPORT_RE = re.compile(r"""import\s+(?:[^'";]*?\s+from\s+)?['"](\.{1,2}/[^'"]+)['"]""")
RESOLVE_EXTENSIONS = ('.jsx', '.js', '.tsx', '.ts')


def transform_content(path: str, content: str) -> str:
    """Per-file fixups applied right before a write."""
    if path.endswith(SCRIPT_EXTENSIONS):
        return CSS_IMPORT_RE.sub('', content)
    if path.endswith('.css'):
        for invalid, valid in appConfig.files.invalidUtilityClasses.items():
            content = content.replace(invalid, valid)
    return content


def find_missing_imports(entry_path: str, content: str, available: Set[str]) -> List[str]:
    """Relative imports of entry_path that resolve to none of the available paths."""
    missing: List[str] = []
    base_dir = posixpath.dirname(entry_path)
    for m in RELATIVE_IMPORT_RE.finditer(content):
        specifier = m.group(1)
        if specifier.endswith('.css'):
            continue
        target = posixpath.normpath(posixpath.join(base_dir, specifier))
        candidates = [target]
        candidates += [target + ext for ext in RESOLVE_EXTENSIONS]
        candidates += [f"{target}/index{ext}" for ext in RESOLVE_EXTENSIONS]
        if not any(c in available for c in candidates) and specifier not in missing:
            missing.append(specifier)
    return missing


class ReconcileState(TypedDict, total=False):
    parsed: ParsedResponse
    edits: List[EditInstruction]
    packages: List[str]
    result: ReconciliationResult
    edited_paths: List[str]
    written_paths: List[str]
    completed: List[str]


class Reconciler:
    """Runs one orchestration against a session's sandbox."""

    def __init__(self, session: Session, edit_applier: Optional[EditApplier] = None) -> None:
        self.session = session
        self.edit_applier = edit_applier or EditApplier()

    async def apply(
        self,
        parsed: ParsedResponse,
        edits: List[EditInstruction],
        executor: Optional[SandboxExecutor],
        emit: ProgressSink,
        explicit_packages: Iterable = (),
        precision: bool = False,
    ) -> ReconciliationResult:
        """
        Apply parsed files, edits, packages and commands. Emits exactly one
        terminal event ('complete' or 'error') and returns the accumulated result.
        """
        result = ReconciliationResult()
        try:
            await emit(StartEvent(message='Starting code application...'))

            if executor is None:
                return await self._dry_run(parsed, explicit_packages, emit, result)

            if precision:
                await emit(InfoEvent(message='Precision edit mode enabled'))
                await emit(InfoEvent(message=f'Parsed {len(edits)} precision edits'))
                if not edits:
                    print("[reconcile] Edit mode enabled but no <edit> blocks found; falling back to full-file flow")
                    await emit(WarningEvent(
                        message='Edit mode enabled but no <edit> blocks found; falling back to full-file flow'))

            await _pipeline.ainvoke(
                {
                    "parsed": parsed,
                    "edits": list(edits),
                    "packages": resolve(explicit_packages, parsed.packages),
                    "result": result,
                    "completed": [],
                },
                config={"configurable": {"reconciler": self, "executor": executor, "emit": emit}},
            )

            applied = len(result.filesCreated) + len(result.filesUpdated)
            message = f"Successfully applied {applied} files"
            if result.errors:
                message += f" with {len(result.errors)} error(s)"
            await emit(CompleteEvent(
                results=result,
                explanation=parsed.explanation,
                structure=parsed.structure,
                message=message,
            ))
        except SandboxUnavailableError as e:
            print(f"[reconcile] Sandbox unavailable, stopping run: {e}")
            await emit(ErrorEvent(error=str(e), kind='sandbox-unavailable', results=result))
            return result
        except Exception as e:
            print(f"[reconcile] Pipeline error: {e}")
            traceback.print_exc()
            await emit(ErrorEvent(error=str(e), results=result))
            return result

        try:
            self.session.record_run(result, parsed.explanation)
        except Exception as e:
            print(f"[reconcile] Failed to record run history: {e}")
        return result

    async def _dry_run(self, parsed, explicit_packages, emit, result) -> ReconciliationResult:
        print("[reconcile] No sandbox available; reporting parse result only")
        await emit(WarningEvent(message='No sandbox available; nothing was applied'))
        await emit(CompleteEvent(
            results=result,
            explanation=parsed.explanation,
            structure=parsed.structure,
            message=f"Dry run: {len(parsed.files)} files parsed, nothing applied",
            dryRun=True,
            parsedFiles=parsed.file_paths(),
            parsedPackages=resolve(explicit_packages, parsed.packages),
            parsedCommands=list(parsed.commands),
        ))
        return result

    # ---- stage 1: packages ----

    async def install(
        self,
        packages: List[str],
        executor: SandboxExecutor,
        emit: ProgressSink,
        result: ReconciliationResult,
    ) -> None:
        if not packages:
            await emit(StepEvent(step=1, message='No additional packages to install, skipping...'))
            return
        await emit(StepEvent(step=1, message=f'Installing {len(packages)} packages...', packages=packages))

        already, need = await partition(executor, packages)
        result.packagesAlreadyInstalled.extend(already)
        if already:
            await emit(InfoEvent(message=f"Already installed: {', '.join(already)}"))
        if not need:
            await emit(PackageProgressEvent(status='success', message='All packages are already installed', packages=[]))
            return

        await emit(PackageProgressEvent(
            status='start',
            message=f"Installing {len(need)} new package(s): {', '.join(need)}",
            packages=need,
        ))
        try:
            outcome = await executor.install_packages(need)
        except SandboxUnavailableError:
            raise
        except Exception as e:
            result.packagesFailed.extend(need)
            message = f"Package installation failed: {e}"
            result.errors.append(message)
            await emit(WarningEvent(message=f"{message}. Continuing with file creation..."))
            return

        await self._forward_install_output(outcome, emit)

        if outcome.success:
            result.packagesInstalled.extend(need)
            await emit(PackageProgressEvent(
                status='success',
                message=f"Successfully installed: {', '.join(need)}",
                packages=need,
            ))
            return

        result.packagesFailed.extend(need)
        detail = next((line for line in reversed(outcome.stderr.splitlines()) if line.strip()), '')
        message = f"Package installation failed: {detail or f'exit code {outcome.exitCode}'}"
        result.errors.append(message)
        await emit(PackageProgressEvent(status='error', message=message, packages=need))
        await emit(WarningEvent(message=f"{message}. Continuing with file creation..."))

    async def _forward_install_output(self, outcome: CommandResult, emit: ProgressSink) -> None:
        for line in outcome.stdout.splitlines():
            line = line.strip()
            if not line:
                continue
            status = 'warning' if 'npm WARN' in line else 'output'
            await emit(PackageProgressEvent(status=status, message=line))
        for line in outcome.stderr.splitlines():
            line = line.strip()
            if not line:
                continue
            if 'ERESOLVE' in line:
                await emit(PackageProgressEvent(
                    status='warning',
                    message=f"Dependency conflict resolved with --legacy-peer-deps: {line}",
                ))
            elif 'npm WARN' in line:
                await emit(PackageProgressEvent(status='warning', message=line))
            else:
                await emit(PackageProgressEvent(status='error', message=line))

    # ---- stage 2: precision edits ----

    async def apply_edits(
        self,
        edits: List[EditInstruction],
        executor: SandboxExecutor,
        emit: ProgressSink,
        result: ReconciliationResult,
    ) -> List[str]:
        if not edits:
            await emit(StepEvent(step=2, message='No precision edits to apply'))
            return []
        await emit(StepEvent(step=2, message=f'Applying {len(edits)} precision edits...'))

        updated: List[str] = []
        for index, edit in enumerate(edits, 1):
            await emit(FileProgressEvent(
                current=index, total=len(edits), fileName=edit.targetFile, action='edit-applying'))
            try:
                outcome = await self.edit_applier.apply(executor, edit)
            except SandboxUnavailableError:
                raise
            except Exception as e:
                outcome = EditResult(success=False, error=str(e))

            if outcome.success and outcome.normalizedPath:
                path = outcome.normalizedPath
                updated.append(path)
                result.filesUpdated.append(path)
                self.session.record_write(path, outcome.content)
                await emit(FileCompleteEvent(fileName=path, action='edit-updated'))
            else:
                message = outcome.error or 'Unknown edit error'
                print(f"[reconcile] Precision edit failed for {edit.targetFile}: {message}")
                result.errors.append(f"Precision edit failed for {edit.targetFile}: {message}")
                await emit(FileErrorEvent(fileName=edit.targetFile, error=message))
        return updated

    # ---- stage 3: full-file writes ----

    async def write_files(
        self,
        parsed: ParsedResponse,
        executor: SandboxExecutor,
        emit: ProgressSink,
        result: ReconciliationResult,
        edited_paths: Iterable[str] = (),
    ) -> List[str]:
        edited = set(edited_paths)
        pending = []
        for path, entry in parsed.files.items():
            if is_scaffold_file(path):
                print(f"[reconcile] Skipping scaffold file: {path}")
                continue
            if normalize_path(path) in edited:
                print(f"[reconcile] Skipping {path}, already updated by a precision edit")
                continue
            pending.append((path, entry))

        await emit(StepEvent(step=3, message=f'Creating {len(pending)} files...'))

        written: List[str] = []
        for index, (path, entry) in enumerate(pending, 1):
            await emit(FileProgressEvent(current=index, total=len(pending), fileName=path, action='creating'))
            target = normalize_path(path)
            content = transform_content(target, entry.content)
            try:
                parent = posixpath.dirname(target)
                if parent:
                    made = await executor.run_command(f"mkdir -p {shlex.quote(parent)}")
                    if not made.success:
                        raise RuntimeError(made.stderr.strip() or f"mkdir exited with {made.exitCode}")
                await executor.write_file(target, content)
            except SandboxUnavailableError:
                raise
            except Exception as e:
                print(f"[reconcile] Failed to write {target}: {e}")
                result.errors.append(f"Failed to create {target}: {e}")
                await emit(FileErrorEvent(fileName=target, error=str(e)))
                continue

            is_update = self.session.record_write(target, content)
            (result.filesUpdated if is_update else result.filesCreated).append(target)
            written.append(target)
            await emit(FileCompleteEvent(fileName=target, action='updated' if is_update else 'created'))
        return written

    # ---- stage 4: commands ----

    async def run_commands(
        self,
        commands: List[str],
        executor: SandboxExecutor,
        emit: ProgressSink,
        result: ReconciliationResult,
    ) -> None:
        if not commands:
            await emit(StepEvent(step=4, message='No commands to execute'))
            return
        await emit(StepEvent(step=4, message=f'Executing {len(commands)} commands...'))

        for index, command in enumerate(commands, 1):
            await emit(CommandProgressEvent(current=index, total=len(commands), command=command))
            result.commandsExecuted.append(command)
            try:
                outcome = await executor.run_command(command)
            except SandboxUnavailableError:
                raise
            except Exception as e:
                print(f"[reconcile] Command error for '{command}': {e}")
                result.errors.append(f"Failed to execute command: {command}: {e}")
                await emit(CommandErrorEvent(command=command, error=str(e)))
                continue

            if outcome.stdout.strip():
                await emit(CommandOutputEvent(command=command, output=outcome.stdout, stream='stdout'))
            if outcome.stderr.strip():
                await emit(CommandOutputEvent(command=command, output=outcome.stderr, stream='stderr'))
            await emit(CommandCompleteEvent(command=command, exitCode=outcome.exitCode, success=outcome.success))
            if not outcome.success:
                result.errors.append(f"Command failed (exit {outcome.exitCode}): {command}")

    # ---- advisory check ----

    async def verify_imports(self, written: List[str], emit: ProgressSink, result: ReconciliationResult) -> None:
        available = set(written) | self.session.known_files
        for entry_path in appConfig.files.entryFiles:
            if entry_path not in written:
                continue
            content = self.session.cached_content(entry_path) or ''
            missing = find_missing_imports(entry_path, content, available)
            if missing:
                print(f"[reconcile] Missing imports in {entry_path}: {missing}")
                result.missingImports.extend(m for m in missing if m not in result.missingImports)
                await emit(WarningEvent(
                    message=f"{entry_path} imports files that were not generated: {', '.join(missing)}",
                    category='missing-imports',
                    missingImports=missing,
                ))
            break


# ---- LangGraph pipeline ----

def _ctx(config: RunnableConfig):
    c = config["configurable"]
    return c["reconciler"], c["executor"], c["emit"]


def _done(state: ReconcileState, stage: str) -> List[str]:
    return list(state.get("completed", [])) + [stage]


async def _install_node(state: ReconcileState, config: RunnableConfig) -> ReconcileState:
    reconciler, executor, emit = _ctx(config)
    await reconciler.install(state.get("packages", []), executor, emit, state["result"])
    return {"completed": _done(state, "install")}


async def _edits_node(state: ReconcileState, config: RunnableConfig) -> ReconcileState:
    reconciler, executor, emit = _ctx(config)
    edited = await reconciler.apply_edits(state.get("edits", []), executor, emit, state["result"])
    return {"edited_paths": edited, "completed": _done(state, "edits")}


async def _files_node(state: ReconcileState, config: RunnableConfig) -> ReconcileState:
    reconciler, executor, emit = _ctx(config)
    written = await reconciler.write_files(
        state["parsed"], executor, emit, state["result"], state.get("edited_paths", []))
    return {"written_paths": written, "completed": _done(state, "files")}


async def _commands_node(state: ReconcileState, config: RunnableConfig) -> ReconcileState:
    reconciler, executor, emit = _ctx(config)
    await reconciler.run_commands(state["parsed"].commands, executor, emit, state["result"])
    return {"completed": _done(state, "commands")}


async def _verify_node(state: ReconcileState, config: RunnableConfig) -> ReconcileState:
    reconciler, _, emit = _ctx(config)
    await reconciler.verify_imports(state.get("written_paths", []), emit, state["result"])
    return {"completed": _done(state, "verify")}


def _compile_pipeline():
    graph = StateGraph(ReconcileState)
    graph.add_node("install", _install_node)
    graph.add_node("edits", _edits_node)
    graph.add_node("files", _files_node)
    graph.add_node("commands", _commands_node)
    graph.add_node("verify", _verify_node)
    graph.add_edge(START, "install")
    graph.add_edge("install", "edits")
    graph.add_edge("edits", "files")
    graph.add_edge("files", "commands")
    graph.add_edge("commands", "verify")
    graph.add_edge("verify", END)
    return graph.compile()


_pipeline = _compile_pipeline()
