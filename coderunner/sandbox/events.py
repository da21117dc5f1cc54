"""Per-session channels between the engine and its caller.

``EventChannel`` carries engine output to the caller and enforces that
``complete`` is the last event and is emitted exactly once.
``InputRelay`` carries caller input to the running program.
"""

import asyncio
from collections.abc import AsyncIterator
from dataclasses import dataclass
from enum import Enum


class EventKind(str, Enum):
    OUTPUT = "output"
    ERROR = "error"
    COMPLETE = "complete"


@dataclass(frozen=True, slots=True)
class OutputEvent:
    kind: EventKind
    data: bytes = b""
    # Informational markers emitted by the engine itself, not the program.
    system: bool = False
    # Error kind for terminal errors (``ExecutionError.error``).
    reason: str | None = None


class EventChannel:
    def __init__(self) -> None:
        self._queue: asyncio.Queue[OutputEvent] = asyncio.Queue()
        self._completed = False

    @property
    def completed(self) -> bool:
        return self._completed

    def emit(self, event: OutputEvent) -> None:
        if self._completed:
            raise RuntimeError(f"Cannot emit {event.kind.value} after complete")
        if event.kind is EventKind.COMPLETE:
            self._completed = True
        self._queue.put_nowait(event)

    def output(self, data: bytes | str, *, system: bool = False) -> None:
        if isinstance(data, str):
            data = data.encode("utf-8")
        self.emit(OutputEvent(EventKind.OUTPUT, data, system=system))

    def error(self, data: bytes | str, *, reason: str | None = None) -> None:
        if isinstance(data, str):
            data = data.encode("utf-8")
        self.emit(OutputEvent(EventKind.ERROR, data, reason=reason))

    def complete(self) -> None:
        self.emit(OutputEvent(EventKind.COMPLETE))

    async def __aiter__(self) -> AsyncIterator[OutputEvent]:
        while True:
            event = await self._queue.get()
            yield event
            if event.kind is EventKind.COMPLETE:
                return


class InputRelay:
    """Queue of stdin bytes; ``None`` in the queue marks the end of input."""

    def __init__(self) -> None:
        self._queue: asyncio.Queue[bytes | None] = asyncio.Queue()
        self._closed = False

    @classmethod
    def closed_relay(cls) -> "InputRelay":
        relay = cls()
        relay.close()
        return relay

    @property
    def closed(self) -> bool:
        return self._closed

    def write(self, data: bytes | str) -> bool:
        """Queue ``data`` for the program. Returns ``False`` once closed."""
        if self._closed:
            return False
        if isinstance(data, str):
            data = data.encode("utf-8")
        if data:
            self._queue.put_nowait(data)
        return True

    def close(self) -> None:
        if not self._closed:
            self._closed = True
            self._queue.put_nowait(None)

    async def __aiter__(self) -> AsyncIterator[bytes]:
        while True:
            data = await self._queue.get()
            if data is None:
                return
            yield data
