import os
import struct
import sys
REPO_ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), "..", ".."))
if REPO_ROOT not in sys.path:
    sys.path.insert(0, REPO_ROOT)

import asyncio

import pytest
from fastapi.testclient import TestClient

import coderunner.lifespan as lifespan
from coderunner.sandbox.languages import build_registry

IMAGES = {
    "javascript": "coderunner-js:test",
    "python": "coderunner-python:test",
    "c": "coderunner-c:test",
    "cpp": "coderunner-cpp:test",
    "java": "coderunner-java:test",
}


def frame(stream: int, payload: bytes | str) -> bytes:
    """Encode one multiplexed frame the way the Docker daemon does."""
    if isinstance(payload, str):
        payload = payload.encode()
    return struct.pack(">BxxxL", stream, len(payload)) + payload


class FakeExecStream:
    """Scripted exec stream.

    ``chunks`` are returned by ``read`` in order; an exception instance in
    the list is raised instead. End-of-stream follows the chunks unless
    ``hang`` is set or ``on_input`` drives the stream.
    """

    def __init__(self, chunks=(), *, on_input=None, hang=False):
        self._queue: asyncio.Queue = asyncio.Queue()
        for chunk in chunks:
            self._queue.put_nowait(chunk)
        if not hang and on_input is None:
            self._queue.put_nowait(b"")
        self._on_input = on_input
        self.written: list[bytes] = []
        self.input_closed = False
        self.closed = False

    def push(self, chunk) -> None:
        self._queue.put_nowait(chunk)

    async def read(self, size: int = 4096) -> bytes:
        if self.closed:
            return b""
        chunk = await self._queue.get()
        if isinstance(chunk, BaseException):
            raise chunk
        return chunk

    async def write(self, data: bytes) -> None:
        if self.input_closed or self.closed:
            raise BrokenPipeError("stdin closed")
        self.written.append(data)
        if self._on_input is not None:
            self._on_input(self, data)

    async def close_input(self) -> None:
        self.input_closed = True

    async def close(self) -> None:
        self.closed = True
        self._queue.put_nowait(b"")


def summing_program():
    """Reads two integers, one per line, prints their sum and exits."""
    numbers: list[int] = []
    pending = bytearray()

    def on_input(stream: FakeExecStream, data: bytes) -> None:
        pending.extend(data)
        while b"\n" in pending:
            line, _, rest = bytes(pending).partition(b"\n")
            pending[:] = rest
            numbers.append(int(line))
        if len(numbers) == 2:
            stream.push(frame(1, f"{sum(numbers)}\n"))
            stream.push(b"")

    return on_input


class FakeRuntime:
    """In-memory stand-in for the Docker control API that records calls."""

    def __init__(self):
        self.calls: list[tuple] = []
        self.failures: dict[str, BaseException] = {}
        self.uploads: list[tuple[str, str, bytes]] = []
        self._scripts: list = []
        self.streams: list[FakeExecStream] = []
        self.healthy = True
        self.closed = False

    def script(self, *streams) -> None:
        """Queue exec streams (or factories returning them) in call order."""
        self._scripts.extend(streams)

    def fail(self, method: str, exc: BaseException) -> None:
        self.failures[method] = exc

    def count(self, method: str) -> int:
        return sum(1 for call in self.calls if call[0] == method)

    def _record(self, method: str, *args) -> None:
        self.calls.append((method, *args))
        if method in self.failures:
            raise self.failures[method]

    async def create(self, image, *, command, working_dir, limits, labels=None):
        self._record("create", image, tuple(command), working_dir, limits, labels)
        return "c0ffee0123456789abcdef"

    async def start(self, container_id):
        self._record("start", container_id)

    async def upload(self, container_id, path, archive):
        self._record("upload", container_id, path)
        self.uploads.append((container_id, path, archive))

    async def exec_stream(self, container_id, command, *, working_dir, stdin):
        self._record("exec", container_id, tuple(command), working_dir, stdin)
        stream = self._scripts.pop(0) if self._scripts else FakeExecStream()
        if not isinstance(stream, FakeExecStream):
            stream = stream()
        self.streams.append(stream)
        return stream

    async def stop(self, container_id, timeout=0):
        self._record("stop", container_id, timeout)

    async def remove(self, container_id):
        self._record("remove", container_id)

    async def ping(self):
        return self.healthy

    async def close(self):
        self.closed = True


@pytest.fixture
def fake_runtime():
    return FakeRuntime()


@pytest.fixture
def registry():
    return build_registry(IMAGES)


@pytest.fixture
def client(monkeypatch, fake_runtime):
    monkeypatch.setattr(lifespan, "init_runtime", lambda: fake_runtime)
    monkeypatch.setattr(lifespan, "init_registry", lambda: build_registry(IMAGES))

    import coderunner.main as main

    with TestClient(main.app) as c:
        yield c
