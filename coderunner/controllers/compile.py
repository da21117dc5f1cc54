"""Non-streaming execution: run once with no input and return the result."""

from fastapi import APIRouter

from coderunner.dependencies import AppSettings, Log, Registry, Runtime
from coderunner.errors import from_execution_error
from coderunner.models.execution import CompileRequest, CompileResponse
from coderunner.sandbox.service import run_collected
from coderunner.sandbox.session import ExecutionRequest

router = APIRouter(tags=["execution"])


@router.post("/compile/{language}", response_model=CompileResponse)
async def compile_and_run(
    language: str,
    body: CompileRequest,
    runtime: Runtime,
    registry: Registry,
    settings: AppSettings,
    log: Log,
) -> CompileResponse:
    result = await run_collected(
        ExecutionRequest(language=language, code=body.code),
        runtime=runtime,
        registry=registry,
        settings=settings,
        log=log,
    )
    if result.failed:
        raise from_execution_error(result.outcome.error, result.errors, output=result.output)
    return CompileResponse(output=result.output)
