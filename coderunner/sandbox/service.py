"""Entry points used by the HTTP and WebSocket layers.

``create_session`` builds an ``ExecutionSession`` from application settings,
``run_collected`` is the non-streaming wrapper, and ``ExecutionLog`` keeps a
bounded record of recent runs for diagnostics.
"""

import asyncio
from collections import deque
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any

from coderunner.config import Settings
from coderunner.sandbox.events import EventChannel, EventKind, InputRelay
from coderunner.sandbox.languages import LanguageRegistry
from coderunner.sandbox.runtime import IsolationRuntime, ResourceLimits
from coderunner.sandbox.session import ExecutionRequest, ExecutionSession, SessionOutcome, code_hash


class ExecutionLog:
    def __init__(self, max_entries: int = 1000) -> None:
        self._entries: deque[dict[str, Any]] = deque(maxlen=max_entries)

    def record(self, request: ExecutionRequest, outcome: SessionOutcome) -> dict[str, Any]:
        entry = {
            "timestamp": datetime.now(UTC).isoformat(),
            "language": request.language,
            "code_hash": code_hash(request.code),
            "phase": outcome.phase.value,
            "error": outcome.error.error if outcome.error else None,
            "duration_ms": outcome.duration_ms,
        }
        self._entries.append(entry)
        return entry

    def recent(self, limit: int = 50) -> list[dict[str, Any]]:
        if limit <= 0:
            return []
        return list(self._entries)[-limit:]

    def __len__(self) -> int:
        return len(self._entries)


def resource_limits(settings: Settings) -> ResourceLimits:
    return ResourceLimits(
        memory_bytes=settings.sandbox.memory_limit_bytes,
        cpu_shares=settings.sandbox.cpu_shares,
        pids_limit=settings.sandbox.pids_limit,
        network_disabled=True,
    )


def create_session(
    request: ExecutionRequest,
    *,
    runtime: IsolationRuntime,
    registry: LanguageRegistry,
    settings: Settings,
    relay: InputRelay | None = None,
    events: EventChannel | None = None,
) -> ExecutionSession:
    return ExecutionSession(
        request,
        runtime=runtime,
        registry=registry,
        limits=resource_limits(settings),
        run_timeout=settings.sandbox.timeout_sec,
        compile_timeout=settings.sandbox.compile_timeout_sec,
        max_output_bytes=settings.sandbox.max_output_bytes,
        workdir=settings.sandbox.workdir,
        idle_command=(settings.sandbox.idle_command,),
        relay=relay,
        events=events,
    )


async def run_session(session: ExecutionSession, log: ExecutionLog | None = None) -> SessionOutcome:
    outcome = await session.run()
    if log is not None:
        log.record(session.request, outcome)
    return outcome


@dataclass(slots=True)
class CollectedRun:
    """Accumulated result of a run with no interactive input."""

    output: str
    errors: str
    outcome: SessionOutcome
    events: list[EventKind] = field(default_factory=list)

    @property
    def failed(self) -> bool:
        return bool(self.errors) or self.outcome.error is not None


async def run_collected(
    request: ExecutionRequest,
    *,
    runtime: IsolationRuntime,
    registry: LanguageRegistry,
    settings: Settings,
    log: ExecutionLog | None = None,
) -> CollectedRun:
    """Run ``request`` with a pre-closed input relay and gather its output.

    Only program stdout is accumulated into ``output``; engine markers are
    left out. ``errors`` holds every error event, terminal ones included.
    """
    channel = EventChannel()
    session = create_session(
        request,
        runtime=runtime,
        registry=registry,
        settings=settings,
        relay=InputRelay.closed_relay() if not request.stdin else None,
        events=channel,
    )
    output: list[bytes] = []
    errors: list[bytes] = []
    kinds: list[EventKind] = []

    async def gather_events() -> None:
        async for event in channel:
            kinds.append(event.kind)
            if event.kind is EventKind.OUTPUT and not event.system:
                output.append(event.data)
            elif event.kind is EventKind.ERROR:
                errors.append(event.data)

    collector = asyncio.create_task(gather_events())
    outcome = await run_session(session, log)
    await collector
    return CollectedRun(
        output=b"".join(output).decode("utf-8", errors="replace"),
        errors=b"".join(errors).decode("utf-8", errors="replace"),
        outcome=outcome,
        events=kinds,
    )
