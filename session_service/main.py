import logging
import sys
from contextlib import asynccontextmanager
from datetime import datetime, timezone

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from slowapi import _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded
from starlette.exceptions import HTTPException as StarletteHTTPException

from session_service.api import sessions
from session_service.core.config import settings
from session_service.core.exceptions import (
    KeyGenerationExhausted,
    SessionServiceError,
    StorageError,
)
from session_service.core.limiter import limiter
from session_service.core.logging_config import init_application_logging
from session_service.core.middleware import CorrelationIdMiddleware
from session_service.services.session_repository import SessionRepository
from session_service.storage import create_backend

# Initialize structured logging
init_application_logging()

logger = logging.getLogger("session_service.main")


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Open the table backend for the lifetime of the process"""
    if getattr(app.state, "session_repository", None) is not None:
        # Storage was provided up front (tests, embedding)
        yield
        return

    backend = create_backend(settings)
    await backend.open()
    app.state.session_backend = backend
    app.state.session_repository = SessionRepository.from_settings(backend, settings)
    logger.info(
        "Session storage ready: backend=%s table=%s",
        backend.name,
        settings.TABLE_NAME,
    )
    try:
        yield
    finally:
        app.state.session_repository = None
        app.state.session_backend = None
        await backend.close()


# Create FastAPI app
app = FastAPI(
    title=settings.APP_NAME,
    description="Expiring session store with per-user bulk deletion",
    version=settings.VERSION,
    lifespan=lifespan,
)

# Attach limiter to app.state for access in route decorators
app.state.limiter = limiter

# Consistent HTTP 429 responses with Retry-After headers
app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)

logger.info(
    "Rate limiting initialized with configuration: enabled=%s, read=%s, write=%s",
    settings.rate_limit_enabled,
    settings.rate_limit_read_endpoints,
    settings.rate_limit_write_endpoints,
)

app.add_middleware(CorrelationIdMiddleware)


@app.exception_handler(SessionServiceError)
async def session_service_error_handler(request: Request, exc: SessionServiceError):
    """Translate repository exceptions into status codes"""
    if isinstance(exc, KeyGenerationExhausted):
        logger.error(
            "Session id generation exhausted for %s %s", request.method, request.url.path
        )
    elif isinstance(exc, StorageError):
        logger.warning(
            "Storage failure on %s %s: %s", request.method, request.url.path, exc.message
        )
    return JSONResponse(status_code=exc.status_code, content={"error": exc.message})


@app.exception_handler(RequestValidationError)
async def request_validation_error_handler(request: Request, exc: RequestValidationError):
    """Report malformed requests as 400 rather than 422"""
    details = []
    for error in exc.errors():
        location = ".".join(str(part) for part in error.get("loc", ()) if part != "body")
        details.append(f"{location}: {error.get('msg')}" if location else str(error.get("msg")))
    message = "invalid payload"
    if details:
        message = f"invalid payload, {'; '.join(details)}"
    return JSONResponse(status_code=400, content={"error": message})


@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(request: Request, exc: StarletteHTTPException):
    if exc.status_code == 404:
        content = {"error": f"endpoint {request.url.path} not found"}
    else:
        content = {"error": str(exc.detail)}
    return JSONResponse(status_code=exc.status_code, content=content, headers=exc.headers)


app.include_router(sessions.router)


# Health check endpoints
@app.get("/health")
def health_check():
    """Basic health check endpoint."""
    return {"status": "healthy"}


@app.get("/api/health")
async def api_health_check(request: Request):
    """
    Readiness check.

    Reports the session storage backend status, version and environment.
    Responds 503 when storage is unavailable.
    """
    health_status = {
        "status": "healthy",
        "timestamp": datetime.now(timezone.utc).isoformat().replace("+00:00", "Z"),
        "version": settings.VERSION,
        "environment": {
            "name": settings.ENVIRONMENT,
            "dev_mode": settings.DEV_MODE,
            "python_version": f"{sys.version_info.major}.{sys.version_info.minor}.{sys.version_info.micro}",
        },
        "services": {},
    }

    backend = getattr(request.app.state, "session_backend", None)
    if backend is None:
        storage_health = {
            "type": settings.STORAGE_BACKEND,
            "healthy": False,
            "message": "Session storage is not initialised",
        }
    else:
        storage_health = await backend.health_check()

    health_status["services"]["storage"] = storage_health
    health_status["services"]["rate_limiting"] = {
        "status": "enabled" if settings.rate_limit_enabled else "disabled",
        "storage": "redis" if settings.redis_url else "memory",
        "configuration": {
            "read_endpoints": settings.rate_limit_read_endpoints,
            "write_endpoints": settings.rate_limit_write_endpoints,
        },
    }

    if not storage_health["healthy"]:
        health_status["status"] = "degraded"
        return JSONResponse(status_code=503, content=health_status)
    return health_status
