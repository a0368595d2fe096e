import asyncio
import base64

import pytest

from reconcile.models import CommandResult
from reconcile.orchestrator import Reconciler
from reconcile.progress import EventCollector
from reconcile.response_parser import parse
from reconcile.session import SessionBusyError
from routes import (
    apply_ai_code,
    create_ai_sandbox,
    create_zip,
    detect_and_install_packages,
    load_project,
    restart_vite,
    run_command,
    sandbox_logs,
)


def _apply(session, executor, text):
    return Reconciler(session).apply(parse(text), [], executor, EventCollector())


class TestSingleActiveRun:

    @pytest.mark.asyncio
    async def test_create_sandbox_mid_run_is_rejected(self, session, executor, factory):
        executor.write_started = asyncio.Event()
        executor.write_gate = asyncio.Event()

        async def run():
            async with session.run_guard():
                return await _apply(session, executor, '<file path="src/components/A.jsx">export default function A() {}</file>')

        task = asyncio.create_task(run())
        await asyncio.wait_for(executor.write_started.wait(), timeout=5)

        response = await create_ai_sandbox.POST(session)
        executor.write_gate.set()
        result = await task

        assert response["status"] == 409
        assert factory.created == []
        assert executor.terminated is False
        assert session.executor is executor
        assert result.filesCreated == ["src/components/A.jsx"]
        assert "src/components/A.jsx" in session.known_files

    @pytest.mark.asyncio
    async def test_retarget_mid_run_is_rejected(self, session, executor, factory):
        session.begin_run()

        with pytest.raises(SessionBusyError):
            await session.ensure_sandbox("sbx-other")
        response = await apply_ai_code.POST(
            {"responseText": '<file path="src/A.jsx">a</file>', "targetId": "sbx-other"}, session)

        assert response["status"] == 409
        assert factory.connected == []
        assert session.executor is executor

    @pytest.mark.asyncio
    async def test_terminate_mid_run_is_rejected(self, session, executor):
        session.begin_run()
        with pytest.raises(SessionBusyError):
            await session.terminate()
        assert executor.terminated is False

    @pytest.mark.asyncio
    async def test_sandbox_mutations_mid_run_are_rejected(self, session, executor):
        session.begin_run()

        detected = await detect_and_install_packages.POST(
            {"files": {"src/x.jsx": "import axios from 'axios'"}}, session)
        ran = await run_command.POST({"command": "rm -rf src"}, session)
        restarted = await restart_vite.POST(session)

        assert [detected["status"], ran["status"], restarted["status"]] == [409, 409, 409]
        assert executor.installs == []
        assert executor.commands == []
        assert executor.restarts == 0

    @pytest.mark.asyncio
    async def test_guarded_routes_release_the_guard(self, session, executor):
        await run_command.POST({"command": "ls"}, session)
        await restart_vite.POST(session)
        assert session.run_active is False


class TestLoadProject:

    @pytest.mark.asyncio
    async def test_loaded_files_make_the_next_turn_an_edit(self, session, executor):
        response = await load_project.POST({"files": [
            {"path": "/src/components/Hero.jsx", "content": "export default function Hero() {}"},
            {"path": "src/index.css", "content": "body { margin: 0 }"},
            {"path": "../etc/passwd", "content": "x"},
            {"path": "src/Broken.jsx"},
        ]}, session)

        assert response["loaded"] == 2
        assert response["files"] == ["src/components/Hero.jsx", "src/index.css"]
        assert response["success"] is False
        assert len(response["errors"]) == 2
        assert "mkdir -p src/components" in executor.commands
        assert executor.files["src/index.css"] == "body { margin: 0 }"
        assert session.project_preloaded is True
        assert session.manifest["styleFiles"] == ["/home/user/app/src/index.css"]
        assert session.cached_content("src/components/Hero.jsx") == "export default function Hero() {}"

        result = await _apply(session, executor, '<file path="src/components/Hero.jsx">export default function Hero() { return null }</file>')
        assert result.filesUpdated == ["src/components/Hero.jsx"]
        assert result.filesCreated == []

    @pytest.mark.asyncio
    async def test_failed_write_is_reported_per_file(self, session, executor):
        executor.write_errors["src/B.jsx"] = OSError("disk full")
        response = await load_project.POST({"files": [
            {"path": "src/A.jsx", "content": "a"},
            {"path": "src/B.jsx", "content": "b"},
        ]}, session)

        assert response["files"] == ["src/A.jsx"]
        assert response["errors"] == ["src/B.jsx: disk full"]
        assert "src/B.jsx" not in session.known_files

    @pytest.mark.asyncio
    async def test_requires_files_and_sandbox(self, session, idle_session):
        assert (await load_project.POST({"files": []}, session))["status"] == 400
        payload = {"files": [{"path": "src/A.jsx", "content": "a"}]}
        assert (await load_project.POST(payload, idle_session))["status"] == 409

    @pytest.mark.asyncio
    async def test_busy_session_is_rejected(self, session, executor):
        session.begin_run()
        response = await load_project.POST({"files": [{"path": "src/A.jsx", "content": "a"}]}, session)
        assert response["status"] == 409
        assert executor.writes == []


class TestCreateZip:

    @pytest.mark.asyncio
    async def test_returns_data_url(self, session, executor):
        encoded = base64.b64encode(b"PK\x03\x04project").decode()
        executor.command_results[create_zip.zip_command()] = CommandResult(stdout="ZIP_SUCCESS:2048:7\n")
        executor.command_results[create_zip.READ_COMMAND] = CommandResult(stdout=encoded + "\n")

        response = await create_zip.POST(session)

        assert response["success"] is True
        assert response["dataUrl"] == f"data:application/zip;base64,{encoded}"
        assert response["fileName"] == "project.zip"
        assert response["fileCount"] == 7
        assert response["size"] == 2048

    @pytest.mark.asyncio
    async def test_zip_failure(self, session, executor):
        executor.command_results[create_zip.zip_command()] = CommandResult(stderr="python3: not found", exitCode=127)
        response = await create_zip.POST(session)
        assert response["status"] == 500
        assert response["error"] == "Failed to create zip: python3: not found"

    @pytest.mark.asyncio
    async def test_invalid_archive_encoding(self, session, executor):
        executor.command_results[create_zip.zip_command()] = CommandResult(stdout="ZIP_SUCCESS:10:1")
        executor.command_results[create_zip.READ_COMMAND] = CommandResult(stdout="not*base64")
        response = await create_zip.POST(session)
        assert response["status"] == 500
        assert response["error"].startswith("Invalid base64 content")

    @pytest.mark.asyncio
    async def test_requires_sandbox(self, idle_session):
        assert (await create_zip.POST(idle_session))["status"] == 400


class TestSandboxLogs:

    @pytest.mark.asyncio
    async def test_running_server_with_log_errors(self, session, executor):
        executor.command_results["ps aux"] = CommandResult(
            stdout="user 10 node /home/user/app/node_modules/.bin/vite --host\nuser 11 bash\n")
        executor.command_results[sandbox_logs.FIND_LOGS_COMMAND] = CommandResult(stdout="/tmp/vite.log\n")
        executor.command_results["tail -n 10 /tmp/vite.log"] = CommandResult(
            stdout="[vite] Internal server error: Transform failed\n")

        response = await sandbox_logs.GET(session)

        assert response["serverStatus"] == "running"
        assert response["hasErrors"] is True
        assert response["logs"][0] == "Vite is running"
        assert "--- /tmp/vite.log ---" in response["logs"]

    @pytest.mark.asyncio
    async def test_stopped_server(self, session):
        response = await sandbox_logs.GET(session)
        assert response == {
            "success": True,
            "hasErrors": False,
            "logs": ["Vite process not found"],
            "serverStatus": "stopped",
        }

    @pytest.mark.asyncio
    async def test_requires_sandbox(self, idle_session):
        assert (await sandbox_logs.GET(idle_session))["status"] == 400
