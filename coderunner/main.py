import logging

logging.basicConfig(
    level=logging.INFO,
    format="[%(asctime)s] [%(levelname)s] [%(name)s] %(message)s",
)
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from prometheus_fastapi_instrumentator import Instrumentator

from coderunner import __version__
from coderunner.config import get_settings
from coderunner.controllers.compile import router as compile_router
from coderunner.controllers.executions import router as executions_router
from coderunner.controllers.health import router as health_router
from coderunner.controllers.languages import router as languages_router
from coderunner.controllers.ws_run import router as ws_run_router
from coderunner.errors import register_exception_handlers
from coderunner.lifespan import cleanup_resources, setup_resources

settings = get_settings()

app = FastAPI(title="Code Runner API", version=__version__)
register_exception_handlers(app)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors.origins,
    allow_origin_regex=settings.cors.origins_regex or None,
    allow_credentials=settings.cors.allow_credentials,
    allow_methods=["*"],
    allow_headers=["*"],
)


@asynccontextmanager
async def lifespan(_app: FastAPI) -> AsyncIterator[None]:
    resources = await setup_resources()
    try:
        yield
    finally:
        await cleanup_resources(resources)


app.router.lifespan_context = lifespan

app.include_router(health_router)
app.include_router(languages_router)
app.include_router(executions_router)
app.include_router(compile_router)
app.include_router(ws_run_router)

Instrumentator().instrument(app).expose(app, endpoint="/metrics", include_in_schema=False)
