"""FastAPI application for QDash.

Routers for uploads, analysis, PPM metrics and health; Prometheus request
metrics at ``/metrics``. Domain errors are mapped to JSON responses here so
routes can let them propagate.
"""

from __future__ import annotations

import time
from contextlib import asynccontextmanager
from uuid import uuid4

import structlog
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from prometheus_fastapi_instrumentator import Instrumentator
from starlette.middleware.base import BaseHTTPMiddleware

from qdash import __version__
from qdash.core.logging import configure_logging
from qdash.db.connection import close_db
from qdash.errors import EmptyFileError, InvalidInputError, PersistenceError
from qdash.web.routes import analysis, health, metrics, uploads

configure_logging()
logger = structlog.get_logger()


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info("app_started", version=__version__)
    yield
    await close_db()


class RequestContextMiddleware(BaseHTTPMiddleware):
    """Bind a request id to every log line emitted while serving a request."""

    async def dispatch(self, request: Request, call_next):
        request_id = request.headers.get("X-Request-ID") or str(uuid4())
        structlog.contextvars.clear_contextvars()
        structlog.contextvars.bind_contextvars(
            request_id=request_id, method=request.method, path=request.url.path
        )
        started = time.perf_counter()
        logger.info("request_started")

        try:
            response = await call_next(request)
        except Exception as exc:
            logger.error("request_failed", error=str(exc))
            raise

        logger.info(
            "request_completed",
            status_code=response.status_code,
            duration_ms=round((time.perf_counter() - started) * 1000, 1),
        )
        response.headers["X-Request-ID"] = request_id
        return response


def _error(status_code: int, message: str, **extra) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"success": False, "message": message, **extra})


async def empty_file_handler(request: Request, exc: EmptyFileError):
    return _error(400, str(exc))


async def bad_input_handler(request: Request, exc: InvalidInputError):
    # Unsupported files, malformed target months and unknown domains
    return _error(400, str(exc))


async def persistence_error_handler(request: Request, exc: PersistenceError):
    logger.error("persistence_error", kind=exc.kind.value, operation=exc.operation)
    return _error(503, exc.message, kind=exc.kind.value, remediation=exc.remediation)


app = FastAPI(
    title="QDash Quality Dashboard",
    description="Spreadsheet ingestion and defect analysis for manufacturing quality data",
    version=__version__,
    lifespan=lifespan,
)

app.add_middleware(RequestContextMiddleware)
app.add_exception_handler(EmptyFileError, empty_file_handler)
app.add_exception_handler(InvalidInputError, bad_input_handler)
app.add_exception_handler(PersistenceError, persistence_error_handler)

Instrumentator().instrument(app).expose(app, include_in_schema=False)

for module in (uploads, analysis, metrics, health):
    app.include_router(module.router)
