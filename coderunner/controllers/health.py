from datetime import UTC, datetime

from fastapi import APIRouter

from coderunner.dependencies import OptionalRuntime
from coderunner.models.execution import HealthResponse

router = APIRouter()


@router.get("/health", response_model=HealthResponse)
async def health(runtime: OptionalRuntime) -> HealthResponse:
    docker_status = "disconnected"
    if runtime is not None:
        docker_status = "healthy" if await runtime.ping() else "unhealthy"

    return HealthResponse(
        status="ok",
        docker=docker_status,
        timestamp=datetime.now(UTC).isoformat(),
    )
