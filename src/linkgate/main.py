"""FastAPI application entrypoint."""

import asyncio
import contextlib
import logging
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from linkgate.api.middleware import RequestIDMiddleware, RequestLoggingMiddleware, get_request_id
from linkgate.api.router import api_router
from linkgate.config import settings
from linkgate.database import close_db
from linkgate.services.backend import get_auth_backend
from linkgate.services.errors import AuthError, RateLimitedError, VerificationFailedError
from linkgate.tasks.maintenance import run_periodic_sweep

logger = logging.getLogger(__name__)

# Initialize Sentry for error tracking
if settings.sentry_dsn:
    import sentry_sdk

    sentry_sdk.init(
        dsn=settings.sentry_dsn,
        environment=settings.environment,
        traces_sample_rate=0.1 if settings.is_production else 1.0,
    )
    logger.info("Sentry initialized")


@asynccontextmanager
async def lifespan(_app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan handler."""
    backend = get_auth_backend()
    logger.info(f"Auth backend running in {backend.mode} mode")

    sweep_task: asyncio.Task | None = None
    if settings.token_sweep_interval_seconds > 0:
        sweep_task = asyncio.create_task(
            run_periodic_sweep(backend, settings.token_sweep_interval_seconds)
        )

    yield

    # Shutdown
    if sweep_task is not None:
        sweep_task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await sweep_task
    await close_db()


app = FastAPI(
    title="Linkgate API",
    description="Passwordless magic link authentication",
    version="0.1.0",
    lifespan=lifespan,
    docs_url="/api/docs" if settings.debug_enabled else None,
    redoc_url="/api/redoc" if settings.debug_enabled else None,
    openapi_url="/api/openapi.json" if settings.debug_enabled else None,
)


@app.exception_handler(AuthError)
async def auth_error_handler(_request: Request, exc: AuthError) -> JSONResponse:
    """Render auth failures as ``{error, code, requestId}``."""
    content = exc.to_payload()
    content["requestId"] = get_request_id()

    headers = None
    if isinstance(exc, RateLimitedError):
        headers = {"Retry-After": str(exc.retry_after)}

    return JSONResponse(content, status_code=exc.status_code, headers=headers)


@app.exception_handler(RequestValidationError)
async def validation_error_handler(_request: Request, exc: RequestValidationError) -> JSONResponse:
    """Render malformed requests in the same error shape as auth failures."""
    fields = sorted({str(error["loc"][-1]) for error in exc.errors() if error.get("loc")})
    message = f"Invalid or missing fields: {', '.join(fields)}" if fields else "Invalid request"
    return JSONResponse(
        {"error": message, "code": "invalid_request", "requestId": get_request_id()},
        status_code=400,
    )


@app.exception_handler(StarletteHTTPException)
async def http_error_handler(_request: Request, exc: StarletteHTTPException) -> JSONResponse:
    """Render routing errors (unknown path, wrong method) in the error shape."""
    return JSONResponse(
        {"error": str(exc.detail), "code": "http_error", "requestId": get_request_id()},
        status_code=exc.status_code,
        headers=getattr(exc, "headers", None),
    )


@app.exception_handler(Exception)
async def unhandled_error_handler(request: Request, exc: Exception) -> JSONResponse:
    """Last resort: never leak internals, but keep the error shape."""
    logger.error(f"Unhandled error on {request.url.path}: {exc!r}", exc_info=exc)
    # Runs outside the request ID middleware, so read it back from request state
    content = VerificationFailedError().to_payload()
    content["requestId"] = get_request_id() or getattr(request.state, "request_id", None)
    return JSONResponse(content, status_code=500)


# Request logging, innermost so it sees the request ID
app.add_middleware(RequestLoggingMiddleware)  # type: ignore[arg-type]

# Request ID middleware for distributed tracing
app.add_middleware(RequestIDMiddleware)  # type: ignore[arg-type]

# CORS middleware; echoes the request Origin for allowed origins
app.add_middleware(
    CORSMiddleware,  # type: ignore[arg-type]
    allow_origins=settings.allowed_origins,
    allow_credentials=True,
    allow_methods=["GET", "POST", "OPTIONS"],
    allow_headers=["Content-Type", "X-Requested-With", "X-Request-ID"],
    expose_headers=["X-Request-ID", "Retry-After", "X-RateLimit-Remaining"],
)

app.include_router(api_router, prefix="/api")


if __name__ == "__main__":
    import uvicorn

    from linkgate.logging import get_uvicorn_log_config

    uvicorn.run(
        "linkgate.main:app",
        host="0.0.0.0",
        port=8000,
        reload=settings.is_development,
        log_config=get_uvicorn_log_config(),
    )
