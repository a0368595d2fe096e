# reconcile/progress.py - typed progress events and the SSE progress channel
#
# Every event is a pydantic model tagged by a Literal `type`. The channel is the
# queue-backed stream the HTTP layer hands to StreamingResponse; writes never
# wait on the consumer.

from typing import Annotated, Any, AsyncIterator, Awaitable, Callable, Dict, List, Literal, Optional, Union
import asyncio
import json

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter

from reconcile.models import ReconciliationResult


class StartEvent(BaseModel):
    type: Literal['start'] = 'start'
    message: str
    totalSteps: int = 4


class StepEvent(BaseModel):
    type: Literal['step'] = 'step'
    step: int
    message: str
    packages: Optional[List[str]] = None


class PackageProgressEvent(BaseModel):
    type: Literal['package-progress'] = 'package-progress'
    status: Literal['start', 'output', 'warning', 'error', 'success']
    message: str
    packages: Optional[List[str]] = None


class FileProgressEvent(BaseModel):
    type: Literal['file-progress'] = 'file-progress'
    current: int
    total: int
    fileName: str
    action: str = 'creating'


class FileCompleteEvent(BaseModel):
    type: Literal['file-complete'] = 'file-complete'
    fileName: str
    action: str


class FileErrorEvent(BaseModel):
    type: Literal['file-error'] = 'file-error'
    fileName: str
    error: str


class CommandProgressEvent(BaseModel):
    type: Literal['command-progress'] = 'command-progress'
    current: int
    total: int
    command: str
    action: str = 'executing'


class CommandOutputEvent(BaseModel):
    type: Literal['command-output'] = 'command-output'
    command: str
    output: str
    stream: Literal['stdout', 'stderr']


class CommandCompleteEvent(BaseModel):
    type: Literal['command-complete'] = 'command-complete'
    command: str
    exitCode: int
    success: bool


class CommandErrorEvent(BaseModel):
    type: Literal['command-error'] = 'command-error'
    command: str
    error: str


class InfoEvent(BaseModel):
    type: Literal['info'] = 'info'
    message: str


class WarningEvent(BaseModel):
    type: Literal['warning'] = 'warning'
    message: str
    category: Literal['general', 'missing-imports'] = 'general'
    missingImports: Optional[List[str]] = None


class CompleteEvent(BaseModel):
    type: Literal['complete'] = 'complete'
    results: ReconciliationResult
    explanation: str = ''
    structure: Optional[str] = None
    message: str
    dryRun: bool = False
    parsedFiles: Optional[List[str]] = None
    parsedPackages: Optional[List[str]] = None
    parsedCommands: Optional[List[str]] = None


class ErrorEvent(BaseModel):
    type: Literal['error'] = 'error'
    error: str
    kind: Literal['pipeline', 'sandbox-unavailable'] = 'pipeline'
    results: Optional[ReconciliationResult] = None


class UnknownEvent(BaseModel):
    """Placeholder for event types this build does not know about."""
    model_config = ConfigDict(extra='allow')
    type: str


ProgressEvent = Annotated[
    Union[
        StartEvent, StepEvent, PackageProgressEvent,
        FileProgressEvent, FileCompleteEvent, FileErrorEvent,
        CommandProgressEvent, CommandOutputEvent, CommandCompleteEvent, CommandErrorEvent,
        InfoEvent, WarningEvent, CompleteEvent, ErrorEvent,
    ],
    Field(discriminator='type'),
]

ProgressSink = Callable[[Any], Awaitable[None]]

TERMINAL_TYPES = frozenset({'complete', 'error'})
EVENT_TYPES = frozenset({
    'start', 'step', 'package-progress',
    'file-progress', 'file-complete', 'file-error',
    'command-progress', 'command-output', 'command-complete', 'command-error',
    'info', 'warning', 'complete', 'error',
})

_event_adapter = TypeAdapter(ProgressEvent)


def parse_event(data: Dict[str, Any]) -> BaseModel:
    """Decode one event payload; unknown types come back as UnknownEvent instead of failing."""
    if data.get('type') not in EVENT_TYPES:
        return UnknownEvent(**data)
    return _event_adapter.validate_python(data)


def encode_event(event: BaseModel) -> bytes:
    payload = event.model_dump(mode='json', exclude_none=True)
    return f"data: {json.dumps(payload)}\n\n".encode("utf-8")


def decode_stream(body: str) -> List[BaseModel]:
    """Split an SSE body back into typed events."""
    events = []
    for block in body.split('\n\n'):
        block = block.strip()
        if not block.startswith('data: '):
            continue
        try:
            events.append(parse_event(json.loads(block[len('data: '):])))
        except (ValueError, TypeError) as e:
            print(f"[progress] Skipping undecodable event: {e}")
    return events


class EventCollector:
    """In-memory sink used by the non-streaming route and the CLI."""

    def __init__(self) -> None:
        self.events: List[BaseModel] = []

    async def __call__(self, event: BaseModel) -> None:
        self.events.append(event)

    @property
    def terminal(self) -> Optional[BaseModel]:
        for event in reversed(self.events):
            if event.type in TERMINAL_TYPES:
                return event
        return None


class ProgressChannel:
    """
    Ordered SSE stream with exactly one terminal event:
      - send() enqueues without waiting on the reader
      - events after the terminal one are dropped
      - close() emits a pipeline error first if no terminal event went out
      - once the reader goes away the channel is detached and sends become no-ops
    """

    def __init__(self) -> None:
        self._queue: "asyncio.Queue[Optional[bytes]]" = asyncio.Queue()
        self.headers = {
            "Cache-Control": "no-cache",
            "Connection": "keep-alive",
            "X-Accel-Buffering": "no",
        }
        self._closed = False
        self._detached = False
        self._terminal: Optional[str] = None

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def detached(self) -> bool:
        return self._detached

    @property
    def terminal_sent(self) -> bool:
        return self._terminal is not None

    async def send(self, event: BaseModel) -> None:
        if self._closed:
            print(f"[progress] Channel closed, dropping {event.type}")
            return
        if self._terminal is not None:
            print(f"[progress] Dropping {event.type} after terminal '{self._terminal}'")
            return
        if event.type in TERMINAL_TYPES:
            self._terminal = event.type
        if self._detached:
            return
        self._queue.put_nowait(encode_event(event))

    __call__ = send

    async def close(self) -> None:
        if self._closed:
            return
        if self._terminal is None:
            await self.send(ErrorEvent(error='Stream ended without a result'))
        self._closed = True
        self._queue.put_nowait(None)

    def detach(self) -> None:
        if not self._detached:
            self._detached = True
            print("[progress] Consumer detached; run continues without streaming")

    def __aiter__(self) -> AsyncIterator[bytes]:
        return self._aiter()

    async def _aiter(self) -> AsyncIterator[bytes]:
        try:
            while True:
                chunk = await self._queue.get()
                if chunk is None:
                    break
                yield chunk
        finally:
            if not self._closed:
                self.detach()
