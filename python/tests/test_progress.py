import json

import pytest

from reconcile.models import ReconciliationResult
from reconcile.progress import (
    CompleteEvent, ErrorEvent, FileProgressEvent, InfoEvent, ProgressChannel, StartEvent,
    UnknownEvent, WarningEvent, decode_stream, encode_event, parse_event,
)


async def _drain(channel):
    return [chunk async for chunk in channel]


class TestEvents:

    def test_encoding_is_sse_without_nulls(self):
        chunk = encode_event(FileProgressEvent(current=1, total=2, fileName="src/App.jsx"))
        assert chunk.startswith(b"data: ") and chunk.endswith(b"\n\n")
        payload = json.loads(chunk[len(b"data: "):])
        assert payload == {
            "type": "file-progress", "current": 1, "total": 2,
            "fileName": "src/App.jsx", "action": "creating",
        }

    def test_parse_event_is_typed(self):
        event = parse_event({"type": "warning", "message": "careful", "category": "missing-imports",
                             "missingImports": ["./Footer"]})
        assert isinstance(event, WarningEvent)
        assert event.missingImports == ["./Footer"]

    def test_unknown_type_does_not_fail(self):
        event = parse_event({"type": "telemetry", "value": 3})
        assert isinstance(event, UnknownEvent)
        assert event.type == "telemetry"

    def test_decode_stream_skips_garbage(self):
        body = (encode_event(InfoEvent(message="a")) + b"data: {not json\n\n" + b": keep-alive\n\n").decode()
        events = decode_stream(body)
        assert [e.type for e in events] == ["info"]


class TestProgressChannel:

    @pytest.mark.asyncio
    async def test_events_after_terminal_are_dropped(self):
        channel = ProgressChannel()
        await channel.send(StartEvent(message="go"))
        await channel.send(CompleteEvent(results=ReconciliationResult(), message="done"))
        await channel.send(InfoEvent(message="late"))
        await channel.send(ErrorEvent(error="late error"))
        await channel.close()

        events = decode_stream(b"".join(await _drain(channel)).decode())
        assert [e.type for e in events] == ["start", "complete"]

    @pytest.mark.asyncio
    async def test_close_without_terminal_emits_error(self):
        channel = ProgressChannel()
        await channel.send(StartEvent(message="go"))
        await channel.close()
        await channel.close()

        events = decode_stream(b"".join(await _drain(channel)).decode())
        assert [e.type for e in events] == ["start", "error"]
        assert events[-1].kind == "pipeline"

    @pytest.mark.asyncio
    async def test_send_after_close_is_ignored(self):
        channel = ProgressChannel()
        await channel.close()
        await channel.send(InfoEvent(message="late"))
        assert len(await _drain(channel)) == 1

    @pytest.mark.asyncio
    async def test_detached_channel_keeps_accepting_sends(self):
        channel = ProgressChannel()
        channel.detach()
        await channel.send(InfoEvent(message="nobody listening"))
        await channel.send(CompleteEvent(results=ReconciliationResult(), message="done"))

        assert channel.detached is True
        assert channel.terminal_sent is True

    @pytest.mark.asyncio
    async def test_channel_is_callable_as_a_sink(self):
        channel = ProgressChannel()
        await channel(InfoEvent(message="via call"))
        await channel.close()
        events = decode_stream(b"".join(await _drain(channel)).decode())
        assert events[0].message == "via call"
