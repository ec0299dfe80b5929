"""Starlette application factory."""

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

import pydantic
from starlette.applications import Starlette
from starlette.requests import Request
from starlette.responses import JSONResponse

from readiness.api.middleware import OrganizationMiddleware
from readiness.api.routes import create_routes
from readiness.lib.errors import (
    NotFound,
    ProviderTransientError,
    ProviderUnavailable,
    ReadinessError,
    ValidationError,
)
from readiness.workflow.engine import ReadinessEngine
from readiness.workflow.worker import WorkerPool

logger = logging.getLogger(__name__)

STATUS_FOR_ERROR = [
    (ValidationError, 400),
    (NotFound, 404),
    (ProviderUnavailable, 503),
    (ProviderTransientError, 502),
]


async def readiness_error_handler(request: Request, exc: Exception) -> JSONResponse:
    status = 500
    for error_class, code in STATUS_FOR_ERROR:
        if isinstance(exc, error_class):
            status = code
            break
    if status == 500:
        logger.error(f"[API] {request.method} {request.url.path}: {exc}")
    return JSONResponse({"error": str(exc), "kind": exc.kind.value}, status_code=status)


async def pydantic_error_handler(request: Request, exc: Exception) -> JSONResponse:
    _ = request  # unused
    details = [
        {"field": ".".join(str(p) for p in err["loc"]), "message": err["msg"]}
        for err in exc.errors()
    ]
    return JSONResponse({"error": "Invalid request body", "kind": "validation", "details": details},
                        status_code=400)


def create_app(engine: ReadinessEngine, pool: WorkerPool | None = None) -> Starlette:
    """Create the Starlette application.

    When a pool is given it is started with the app and stopped on shutdown.
    """

    @asynccontextmanager
    async def lifespan(_app: Starlette) -> AsyncIterator[None]:
        if pool is not None:
            pool.start()
        try:
            yield
        finally:
            if pool is not None:
                pool.stop()

    app = Starlette(
        routes=create_routes(engine, pool),
        lifespan=lifespan,
        exception_handlers={
            ReadinessError: readiness_error_handler,
            pydantic.ValidationError: pydantic_error_handler,
        },
    )
    app.add_middleware(OrganizationMiddleware)
    return app
