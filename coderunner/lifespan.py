"""Application startup and shutdown.

Creates the process-wide objects every session shares: the Docker client,
the language registry and the execution log.
"""

import logging
from dataclasses import dataclass

from coderunner import state
from coderunner.config import get_settings
from coderunner.sandbox.languages import LanguageRegistry, build_registry
from coderunner.sandbox.runtime import DockerRuntime, IsolationRuntime
from coderunner.sandbox.service import ExecutionLog

logger = logging.getLogger(__name__)


@dataclass
class LifespanResources:
    """Container for resources initialized during lifespan."""

    runtime: IsolationRuntime | None = None
    registry: LanguageRegistry | None = None
    execution_log: ExecutionLog | None = None


def init_runtime() -> IsolationRuntime | None:
    """Connect to the Docker daemon.

    Returns:
        The runtime client, or None when execution is disabled or the daemon
        cannot be reached. The service still starts so /health can report it.
    """
    settings = get_settings()
    if not settings.sandbox.enabled:
        logger.info("Code execution disabled (SANDBOX_ENABLED=0)")
        return None
    try:
        return DockerRuntime.from_settings(
            base_url=settings.docker.base_url,
            timeout=settings.docker.timeout,
            max_pool_size=settings.docker.max_pool_size,
        )
    except Exception as e:
        logger.warning("Failed to connect to Docker: %s", e)
        return None


def init_registry() -> LanguageRegistry:
    return build_registry(get_settings().images.as_mapping())


async def setup_resources() -> LifespanResources:
    """Set up all shared resources.

    Returns:
        LifespanResources containing all initialized resources.
    """
    settings = get_settings()
    if settings.debug.sandbox:
        logging.getLogger("coderunner.sandbox").setLevel(logging.DEBUG)

    resources = LifespanResources(
        runtime=init_runtime(),
        registry=init_registry(),
        execution_log=ExecutionLog(settings.sandbox.execution_log_size),
    )

    state.runtime = resources.runtime
    state.registry = resources.registry
    state.execution_log = resources.execution_log

    return resources


async def cleanup_resources(resources: LifespanResources) -> None:
    """Clean up all resources on shutdown.

    Args:
        resources: The resources to clean up.
    """
    if resources.runtime:
        try:
            await resources.runtime.close()
        except Exception as e:
            logger.warning("Failed to close Docker client: %s", e)

    state.runtime = None
    state.registry = None
    state.execution_log = None
