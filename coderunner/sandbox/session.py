"""One end-to-end run of submitted code inside a throwaway container.

Lifecycle::

    CREATED -> PROVISIONING -> UPLOADING -> [COMPILING] -> RUNNING -> COMPLETED
                                   any phase raising ExecutionError -> FAILED

Whatever happens, the container (if one was created) is stopped and removed
exactly once, and ``complete`` is the last event on the channel, emitted
after that teardown.
"""

import asyncio
import hashlib
import logging
import time
from dataclasses import dataclass
from enum import Enum

from coderunner.sandbox.archive import build_archive
from coderunner.sandbox.demux import StreamDemuxer, StreamType, demux
from coderunner.sandbox.errors import (
    CompilationError,
    ExecutionError,
    ExecutionTimeoutError,
    ProvisioningError,
    RuntimeStreamError,
    TeardownError,
    UploadError,
)
from coderunner.sandbox.events import EventChannel, InputRelay
from coderunner.sandbox.languages import LanguageRegistry, ResolvedProfile
from coderunner.sandbox.runtime import LANGUAGE_LABEL, ExecStream, IsolationRuntime, ResourceLimits

_logger = logging.getLogger("coderunner.sandbox")

NOISE_MARKERS = (
    "Picked up JAVA_TOOL_OPTIONS",
    "Picked up _JAVA_OPTIONS",
    "Picked up JDK_JAVA_OPTIONS",
)

MSG_CREATING = "[System] Creating isolated container...\n"
MSG_STARTED = "[System] Container started\n"
MSG_UPLOADED = "[System] Code uploaded\n"
MSG_COMPILING = "[System] Compiling...\n"
MSG_COMPILED = "[System] Compilation successful\n"
MSG_EXECUTING = "[System] Executing...\n\n--- Output ---\n"
MSG_END = "\n--- End ---\n"
MSG_TRUNCATED = "\n... [output truncated, limit of {limit} bytes reached]\n"
DEFAULT_MAX_OUTPUT_BYTES = 1024 * 1024


class Phase(str, Enum):
    CREATED = "created"
    PROVISIONING = "provisioning"
    UPLOADING = "uploading"
    COMPILING = "compiling"
    RUNNING = "running"
    CLEANING = "cleaning"
    COMPLETED = "completed"
    FAILED = "failed"


@dataclass(slots=True)
class ExecutionRequest:
    language: str
    code: str
    stdin: bytes | None = None


@dataclass(frozen=True, slots=True)
class SessionOutcome:
    phase: Phase
    error: ExecutionError | None
    duration_ms: int

    @property
    def succeeded(self) -> bool:
        return self.phase is Phase.COMPLETED


def is_noise(line: str) -> bool:
    return any(marker in line for marker in NOISE_MARKERS)


def compile_diagnostics(stderr: bytes | None) -> list[str]:
    """Compiler stderr lines that are neither blank nor toolchain noise."""
    if not stderr:
        return []
    text = stderr.decode("utf-8", errors="replace").strip()
    return [line for line in text.split("\n") if line.strip() and not is_noise(line)]


def strip_noise(data: bytes) -> bytes:
    """Drop toolchain noise lines from runtime stderr, keeping everything else."""
    if not any(marker.encode() in data for marker in NOISE_MARKERS):
        return data
    lines = data.splitlines(keepends=True)
    return b"".join(line for line in lines if not is_noise(line.decode("utf-8", errors="replace")))


def code_hash(code: str) -> str:
    return hashlib.sha256(code.encode()).hexdigest()[:16]


class ExecutionSession:
    """Drives a single request through the container lifecycle.

    A session is single-use: ``run`` may be awaited once. Events are
    delivered through ``events``; the caller writes program input to
    ``relay`` while the session is running.
    """

    def __init__(
        self,
        request: ExecutionRequest,
        *,
        runtime: IsolationRuntime,
        registry: LanguageRegistry,
        limits: ResourceLimits | None = None,
        run_timeout: float | None = None,
        compile_timeout: float | None = None,
        max_output_bytes: int = DEFAULT_MAX_OUTPUT_BYTES,
        workdir: str = "/app",
        idle_command: tuple[str, ...] = ("/bin/sh",),
        relay: InputRelay | None = None,
        events: EventChannel | None = None,
    ) -> None:
        self.request = request
        self._runtime = runtime
        self._registry = registry
        self._limits = limits or ResourceLimits()
        self._run_timeout = run_timeout or None
        self._compile_timeout = compile_timeout or None
        self._max_output = max_output_bytes
        self._workdir = workdir
        self._idle_command = list(idle_command)
        if relay is None:
            relay = InputRelay()
            if request.stdin:
                relay.write(request.stdin)
            relay.close()
        elif request.stdin:
            relay.write(request.stdin)
        self.relay = relay
        self.events = events or EventChannel()
        self._phase = Phase.CREATED
        self._container_id: str | None = None
        self._stream: ExecStream | None = None
        self.outcome: SessionOutcome | None = None

    @property
    def phase(self) -> Phase:
        return self._phase

    @property
    def container_id(self) -> str | None:
        return self._container_id

    async def run(self) -> SessionOutcome:
        if self._phase is not Phase.CREATED:
            raise RuntimeError("ExecutionSession.run() may only be called once")

        started = time.monotonic()
        final = Phase.FAILED
        error: ExecutionError | None = None
        try:
            profile = self._registry.resolve(self.request.language, self.request.code)
            await self._provision(profile)
            await self._upload(profile)
            if profile.compile_command:
                await self._compile(profile)
            await self._execute(profile)
            final = Phase.COMPLETED
        except ExecutionError as exc:
            error = exc
            self.events.error(exc.message, reason=exc.error)
        except Exception as exc:
            _logger.exception("Unexpected failure in %s phase", self._phase.value)
            error = ExecutionError(str(exc) or exc.__class__.__name__)
            self.events.error(error.message, reason=error.error)
        finally:
            await self._teardown()
            self._phase = final
            self.outcome = SessionOutcome(
                phase=final,
                error=error,
                duration_ms=int((time.monotonic() - started) * 1000),
            )
            _logger.info(
                "Sandbox execution: language=%s phase=%s error=%s duration=%dms code_hash=%s",
                self.request.language,
                final.value,
                error.error if error else "-",
                self.outcome.duration_ms,
                code_hash(self.request.code),
            )
            self.events.complete()
        return self.outcome

    async def _provision(self, profile: ResolvedProfile) -> None:
        self._phase = Phase.PROVISIONING
        self.events.output(MSG_CREATING, system=True)
        try:
            self._container_id = await self._runtime.create(
                profile.image,
                command=self._idle_command,
                working_dir=self._workdir,
                limits=self._limits,
                labels={LANGUAGE_LABEL: profile.language},
            )
            await self._runtime.start(self._container_id)
        except Exception as exc:
            raise ProvisioningError(str(exc), image=profile.image) from exc
        self.events.output(MSG_STARTED, system=True)

    async def _upload(self, profile: ResolvedProfile) -> None:
        self._phase = Phase.UPLOADING
        archive = build_archive(profile.file_name, self.request.code)
        try:
            await self._runtime.upload(self._container_id, self._workdir, archive)
        except Exception as exc:
            raise UploadError(str(exc), file_name=profile.file_name) from exc
        self.events.output(MSG_UPLOADED, system=True)

    async def _compile(self, profile: ResolvedProfile) -> None:
        self._phase = Phase.COMPILING
        self.events.output(MSG_COMPILING, system=True)
        try:
            stream = await self._runtime.exec_stream(
                self._container_id,
                list(profile.compile_command),
                working_dir=self._workdir,
                stdin=False,
            )
        except Exception as exc:
            raise RuntimeStreamError(str(exc), phase="compile") from exc

        try:
            raw, truncated = await asyncio.wait_for(self._collect(stream), timeout=self._compile_timeout)
        except asyncio.TimeoutError as exc:
            raise ExecutionTimeoutError(self._compile_timeout, phase="compile") from exc
        finally:
            await stream.close()

        diagnostics = compile_diagnostics(demux(raw).stderr)
        if truncated and not diagnostics:
            diagnostics = [f"Compiler output exceeded {self._max_output} bytes"]
        if diagnostics:
            raise CompilationError("\n".join(diagnostics), language=profile.language)
        self.events.output(MSG_COMPILED, system=True)

    async def _collect(self, stream: ExecStream) -> tuple[bytes, bool]:
        """Read the compiler's stream to the end, keeping at most the output limit.

        Returns the bytes kept and whether anything past the limit was dropped.
        """
        chunks: list[bytes] = []
        received = 0
        while True:
            chunk = await self._read(stream)
            if not chunk:
                return b"".join(chunks), False
            if received + len(chunk) > self._max_output:
                chunks.append(chunk[: self._max_output - received])
                return b"".join(chunks), True
            chunks.append(chunk)
            received += len(chunk)

    async def _execute(self, profile: ResolvedProfile) -> None:
        self._phase = Phase.RUNNING
        self.events.output(MSG_EXECUTING, system=True)
        try:
            stream = await self._runtime.exec_stream(
                self._container_id,
                list(profile.run_command),
                working_dir=self._workdir,
                stdin=True,
            )
        except Exception as exc:
            raise RuntimeStreamError(str(exc), phase="run") from exc

        self._stream = stream
        forwarder = asyncio.create_task(self._forward_input(stream))
        try:
            await asyncio.wait_for(self._drain_output(stream), timeout=self._run_timeout)
        except asyncio.TimeoutError as exc:
            raise ExecutionTimeoutError(self._run_timeout, phase="run") from exc
        finally:
            forwarder.cancel()
            await asyncio.gather(forwarder, return_exceptions=True)
            await stream.close()
            self._stream = None
        self.events.output(MSG_END, system=True)

    async def _forward_input(self, stream: ExecStream) -> None:
        try:
            async for data in self.relay:
                await stream.write(data)
            await stream.close_input()
        except OSError as exc:
            # Process already exited or closed its stdin.
            _logger.debug("Stopped forwarding input: %s", exc)

    async def _drain_output(self, stream: ExecStream) -> None:
        # The limit counts raw stream bytes, headers included, so it also
        # bounds how many events a flood of tiny frames can queue.
        demuxer = StreamDemuxer()
        received = 0
        truncated = False
        while not truncated:
            chunk = await self._read(stream)
            if not chunk:
                break
            if received + len(chunk) > self._max_output:
                chunk = chunk[: self._max_output - received]
                truncated = True
            received += len(chunk)
            for frame in demuxer.feed(chunk):
                if not frame.payload:
                    continue
                if frame.stream is StreamType.STDOUT:
                    self.events.output(frame.payload)
                else:
                    payload = strip_noise(frame.payload)
                    if payload:
                        self.events.error(payload)
        if demuxer.pending:
            _logger.debug("Dropped %d bytes of an incomplete trailing frame", demuxer.pending)
        if truncated:
            _logger.info("Output limit of %d bytes reached, stopping the program", self._max_output)
            self.events.output(MSG_TRUNCATED.format(limit=self._max_output))

    async def _read(self, stream: ExecStream) -> bytes:
        try:
            return await stream.read()
        except Exception as exc:
            raise RuntimeStreamError(str(exc) or exc.__class__.__name__) from exc

    async def _teardown(self) -> None:
        container_id = self._container_id
        if container_id is None:
            return
        self._phase = Phase.CLEANING
        _logger.info("Cleaning up container %s", container_id[:12])
        try:
            await self._runtime.stop(container_id, timeout=0)
        except Exception as exc:
            self._log_teardown_error(TeardownError(f"stop failed: {exc}", container_id=container_id))
        try:
            await self._runtime.remove(container_id)
        except Exception as exc:
            self._log_teardown_error(TeardownError(f"remove failed: {exc}", container_id=container_id))
        else:
            _logger.info("Container %s removed", container_id[:12])

    def _log_teardown_error(self, error: TeardownError) -> None:
        _logger.warning("Teardown error for container %s: %s", self._container_id[:12], error.detail)
