"""Dependency injection for FastAPI endpoints.

This module provides FastAPI dependencies for the shared container runtime
client, the language registry and the execution log.

Usage in controllers:
    from coderunner.dependencies import Runtime, Registry

    @router.get("/example")
    async def example(runtime: Runtime, registry: Registry):
        ...
"""

from typing import Annotated

from fastapi import Depends

from coderunner import state
from coderunner.config import Settings, get_settings
from coderunner.errors import ServiceUnavailableError
from coderunner.sandbox.languages import LanguageRegistry
from coderunner.sandbox.runtime import IsolationRuntime
from coderunner.sandbox.service import ExecutionLog


def get_runtime() -> IsolationRuntime:
    """Get the container runtime client.

    Raises:
        ServiceUnavailableError: If execution is disabled or Docker is not connected.

    Returns:
        The shared runtime client.
    """
    if not get_settings().sandbox.enabled:
        raise ServiceUnavailableError(detail="Code execution is disabled")
    if state.runtime is None:
        raise ServiceUnavailableError(detail="Docker not connected")
    return state.runtime


def get_optional_runtime() -> IsolationRuntime | None:
    """Get the runtime client if available and enabled, or None."""
    if not get_settings().sandbox.enabled:
        return None
    return state.runtime


def get_registry() -> LanguageRegistry:
    """Get the language registry.

    Raises:
        ServiceUnavailableError: If the registry is not initialized.
    """
    if state.registry is None:
        raise ServiceUnavailableError(detail="Language registry not initialized")
    return state.registry


def get_execution_log() -> ExecutionLog | None:
    return state.execution_log


Runtime = Annotated[IsolationRuntime, Depends(get_runtime)]
OptionalRuntime = Annotated[IsolationRuntime | None, Depends(get_optional_runtime)]
Registry = Annotated[LanguageRegistry, Depends(get_registry)]
Log = Annotated[ExecutionLog | None, Depends(get_execution_log)]
AppSettings = Annotated[Settings, Depends(get_settings)]
