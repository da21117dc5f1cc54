import asyncio
import codecs
import logging

from fastapi import APIRouter, WebSocket, WebSocketDisconnect
from pydantic import ValidationError

from coderunner.config import Settings, get_settings
from coderunner.dependencies import AppSettings, Log, OptionalRuntime, Registry
from coderunner.models.execution import OutboundMessage, RunMessage, inbound_adapter
from coderunner.sandbox.events import EventChannel, EventKind, InputRelay
from coderunner.sandbox.languages import LanguageRegistry
from coderunner.sandbox.runtime import IsolationRuntime
from coderunner.sandbox.service import ExecutionLog, create_session, run_session
from coderunner.sandbox.session import ExecutionRequest, ExecutionSession

router = APIRouter()

_logger = logging.getLogger("coderunner.ws.run")
if not _logger.handlers:
    _handler = logging.StreamHandler()
    _fmt = logging.Formatter("[%(asctime)s] [%(levelname)s] [%(name)s] %(message)s")
    _handler.setFormatter(_fmt)
    _logger.addHandler(_handler)
_logger.setLevel(logging.INFO if get_settings().debug.websocket else logging.WARNING)
_logger.propagate = False


def _describe(exc: ValidationError) -> str:
    first = exc.errors()[0]
    location = ".".join(str(part) for part in first.get("loc", ()))
    return f"{location}: {first['msg']}" if location else first["msg"]


class RunConnection:
    """State owned by one WebSocket connection.

    Holds at most one active run and the input relay that ``stdin`` messages
    feed. Nothing here is shared with other connections.
    """

    def __init__(
        self,
        websocket: WebSocket,
        *,
        runtime: IsolationRuntime | None,
        registry: LanguageRegistry,
        settings: Settings,
        log: ExecutionLog | None = None,
    ) -> None:
        self.websocket = websocket
        self._runtime = runtime
        self._registry = registry
        self._settings = settings
        self._log = log
        self._relay: InputRelay | None = None
        self._task: asyncio.Task | None = None
        self._send_lock = asyncio.Lock()
        self._connected = True

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    async def send(self, message: OutboundMessage) -> None:
        if not self._connected:
            return
        try:
            async with self._send_lock:
                await self.websocket.send_text(message.to_json())
        except Exception as e:
            # The peer went away; the run carries on until teardown.
            self._connected = False
            _logger.info("ws_run.send_failed err=%r", e)

    async def handle(self, raw: str) -> None:
        try:
            message = inbound_adapter.validate_json(raw)
        except ValidationError as e:
            await self.send(OutboundMessage(type="error", data=f"Error: {_describe(e)}"))
            return

        if isinstance(message, RunMessage):
            await self.start_run(message)
        else:
            self.write_stdin(message.input)

    async def start_run(self, message: RunMessage) -> None:
        if self.running:
            await self.send(
                OutboundMessage(type="error", data="Error: A program is already running on this connection")
            )
            return
        if self._runtime is None:
            await self.send(OutboundMessage(type="error", data="Error: Code execution is unavailable"))
            await self.send(OutboundMessage(type="complete"))
            return

        relay = InputRelay()
        channel = EventChannel()
        session = create_session(
            ExecutionRequest(language=message.language, code=message.code),
            runtime=self._runtime,
            registry=self._registry,
            settings=self._settings,
            relay=relay,
            events=channel,
        )
        self._relay = relay
        self._task = asyncio.create_task(self._run(session, channel))
        _logger.info("ws_run.start language=%s", message.language)

    async def _run(self, session: ExecutionSession, channel: EventChannel) -> None:
        pump = asyncio.create_task(self._pump(channel))
        try:
            await run_session(session, self._log)
        finally:
            await pump
            session.relay.close()
            if self._relay is session.relay:
                self._relay = None

    async def _pump(self, channel: EventChannel) -> None:
        decoders = {
            EventKind.OUTPUT: codecs.getincrementaldecoder("utf-8")(errors="replace"),
            EventKind.ERROR: codecs.getincrementaldecoder("utf-8")(errors="replace"),
        }
        async for event in channel:
            if event.kind is EventKind.COMPLETE:
                for kind, decoder in decoders.items():
                    tail = decoder.decode(b"", final=True)
                    if tail:
                        await self.send(OutboundMessage(type=kind.value, data=tail))
                await self.send(OutboundMessage(type="complete"))
                continue
            text = decoders[event.kind].decode(event.data)
            if text:
                await self.send(OutboundMessage(type=event.kind.value, data=text))

    def write_stdin(self, text: str) -> bool:
        if self._relay is None:
            return False
        return self._relay.write(text + "\n")

    async def close(self) -> None:
        """Stop reading input and wait for the active run to tear down."""
        self._connected = False
        if self._relay is not None:
            self._relay.close()
        if self._task is not None:
            await self._task


@router.websocket("/ws")
async def websocket_run(
    websocket: WebSocket,
    runtime: OptionalRuntime,
    registry: Registry,
    settings: AppSettings,
    log: Log,
):
    await websocket.accept()

    client_ip = websocket.headers.get("x-forwarded-for", websocket.client.host if websocket.client else "-")
    if "," in client_ip:
        client_ip = client_ip.split(",")[0].strip()
    _logger.info("ws_run.accept ip=%s", client_ip)

    connection = RunConnection(
        websocket,
        runtime=runtime,
        registry=registry,
        settings=settings,
        log=log,
    )
    try:
        while True:
            message = await websocket.receive()
            if message["type"] == "websocket.disconnect":
                raise WebSocketDisconnect(message.get("code", 1000))
            raw = message.get("text")
            if raw is None:
                await connection.send(OutboundMessage(type="error", data="Error: Only text messages are supported"))
                continue
            await connection.handle(raw)
    except WebSocketDisconnect:
        pass
    finally:
        await connection.close()
        _logger.info("ws_run.close ip=%s", client_ip)
