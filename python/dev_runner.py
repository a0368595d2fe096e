# dev_runner.py - apply an AI response file without the web server
from __future__ import annotations
import argparse, asyncio, sys
from pathlib import Path

from reconcile.edit_extractor import extract_edits, precision_edits_enabled
from reconcile.orchestrator import Reconciler
from reconcile.progress import ProgressChannel
from reconcile.response_parser import parse
from reconcile.session import Session


async def _run(response_text: str, dry_run: bool, edit_mode: bool, sandbox_id: str | None, packages: list) -> int:
    session = Session()
    parsed = parse(response_text)
    precision = precision_edits_enabled(edit_mode)
    edits = extract_edits(response_text) if precision else []

    executor = None
    if not dry_run:
        executor = await session.ensure_sandbox(sandbox_id)

    channel = ProgressChannel()

    async def _apply():
        try:
            await Reconciler(session).apply(parsed, edits, executor, channel, packages, precision)
        finally:
            await channel.close()

    task = asyncio.create_task(_apply())
    async for chunk in channel:
        sys.stdout.buffer.write(chunk)
        sys.stdout.flush()
    await task

    info = executor.get_info() if executor else None
    if info:
        print(f"[dev-runner] Sandbox {info.id} is live at {info.url}", file=sys.stderr)
    return 0 if channel.terminal_sent else 1


def main():
    p = argparse.ArgumentParser(description="Apply an AI response file to a sandbox and print the SSE stream")
    p.add_argument("response_file", help="File holding the raw AI response ('-' for stdin)")
    p.add_argument("--dry-run", action="store_true", help="Parse only; never touch a sandbox")
    p.add_argument("--edit-mode", action="store_true", help="Apply <edit> blocks through the fast-apply backend")
    p.add_argument("--sandbox-id", help="Reconnect to this sandbox instead of creating one")
    p.add_argument("--package", action="append", default=[], help="Extra package to install (repeatable)")
    args = p.parse_args()

    if args.response_file == "-":
        text = sys.stdin.read()
    else:
        text = Path(args.response_file).read_text(encoding="utf-8")

    sys.exit(asyncio.run(_run(text, args.dry_run, args.edit_mode, args.sandbox_id, args.package)))


if __name__ == "__main__":
    main()
