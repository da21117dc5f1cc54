from fastapi import APIRouter, Query

from coderunner.dependencies import Log
from coderunner.models.execution import ExecutionRecord, ExecutionsResponse

router = APIRouter()


@router.get("/executions", response_model=ExecutionsResponse)
async def recent_executions(
    log: Log,
    limit: int = Query(50, ge=1, le=1000, description="Maximum number of records to return"),
) -> ExecutionsResponse:
    entries = log.recent(limit) if log is not None else []
    return ExecutionsResponse(
        count=len(entries),
        executions=[ExecutionRecord(**entry) for entry in entries],
    )
