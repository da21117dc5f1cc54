"""Sandboxed execution engine: containers, framing, and the session lifecycle."""

from coderunner.sandbox.errors import ExecutionError
from coderunner.sandbox.events import EventChannel, EventKind, InputRelay, OutputEvent
from coderunner.sandbox.languages import LanguageProfile, LanguageRegistry, build_registry
from coderunner.sandbox.runtime import DockerRuntime, IsolationRuntime, ResourceLimits
from coderunner.sandbox.session import ExecutionRequest, ExecutionSession, Phase, SessionOutcome

__all__ = [
    "DockerRuntime",
    "EventChannel",
    "EventKind",
    "ExecutionError",
    "ExecutionRequest",
    "ExecutionSession",
    "InputRelay",
    "IsolationRuntime",
    "LanguageProfile",
    "LanguageRegistry",
    "OutputEvent",
    "Phase",
    "ResourceLimits",
    "SessionOutcome",
    "build_registry",
]
