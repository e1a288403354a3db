"""
api/main.py -- FastAPI application entry point for the business-management API.

Run with:  uvicorn asgi:app --reload
           python asgi.py

Middleware stack (outermost to innermost):
  1. TrustedHostMiddleware -- rejects requests with unexpected Host headers
  2. CORSMiddleware        -- origin, methods and credentials from Settings;
                              credentials must be allowed for the session cookie

Lifespan opens the AuthStore, seeds the default roles and attaches the store
to app.state; shutdown disposes of the connection pool.

Error policy:
  Every AuthError raised by a route becomes {"message": ...} with the status
  the error class carries. Request validation failures answer 401 with the
  first message plus field-level detail. Anything else is logged with its
  traceback and answered with a generic 500 -- internals never reach the
  client. Nothing is retried.
"""

from __future__ import annotations

import logging
import time
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import Depends, FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.trustedhost import TrustedHostMiddleware
from fastapi.openapi.docs import get_redoc_html, get_swagger_ui_html
from fastapi.responses import JSONResponse
from sqlalchemy.exc import SQLAlchemyError
from starlette.exceptions import HTTPException as StarletteHTTPException

from api.models import ErrorResponse, FieldError, HealthResponse
from api.routes.v1.auth import router as auth_router
from api.routes.v1.users import router as users_router
from auth.dependencies import get_session
from auth.errors import AuthError, ValidationError
from auth.models import SessionClaims
from auth.store import AuthStore
from core.config import get_settings

__version__ = "1.0.0"

# ---------------------------------------------------------------------------
# Logging
# ---------------------------------------------------------------------------

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s %(levelname)-5s %(name)s %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
)
logger = logging.getLogger("bizmanager.api")

_settings = get_settings()

# ---------------------------------------------------------------------------
# Lifespan
# ---------------------------------------------------------------------------


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Open the store on startup and dispose of it on shutdown."""
    logger.info("API starting up")
    app.state.auth_store = AuthStore(_settings.database_url)
    seeded = app.state.auth_store.seed_default_roles()
    logger.info("Auth store initialized (%d default roles seeded)", seeded)

    yield

    app.state.auth_store.close()
    logger.info("API shutdown complete")


# ---------------------------------------------------------------------------
# App instantiation
# ---------------------------------------------------------------------------

app = FastAPI(
    title="Business Manager API",
    description="Clients, suppliers, projects and transactions behind cookie sessions and role capabilities.",
    version=__version__,
    lifespan=lifespan,
    # Built-in /docs and /redoc are replaced by session-protected routes below.
    docs_url=None,
    redoc_url=None,
)

# ---------------------------------------------------------------------------
# Middleware stack
# ---------------------------------------------------------------------------

app.add_middleware(
    TrustedHostMiddleware,
    allowed_hosts=_settings.allowed_hosts,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=_settings.cors_origin_list,
    allow_methods=_settings.cors_method_list,
    allow_headers=["Content-Type"],
    allow_credentials=_settings.cors_credentials,
    max_age=3600,
)


@app.middleware("http")
async def log_requests(request: Request, call_next):
    start = time.perf_counter()
    response = await call_next(request)
    ms = (time.perf_counter() - start) * 1000
    logger.info(
        "%s %s %d %.1fms %s",
        request.method,
        request.url.path,
        response.status_code,
        ms,
        request.client.host if request.client else "unknown",
    )
    return response


# ---------------------------------------------------------------------------
# Router registration
# ---------------------------------------------------------------------------

app.include_router(auth_router, prefix="/api/v1", tags=["Auth"])
app.include_router(users_router, prefix="/api/v1", tags=["Users"])


# ---------------------------------------------------------------------------
# Session-protected API documentation
# ---------------------------------------------------------------------------


@app.get("/docs", include_in_schema=False)
async def docs(claims: SessionClaims = Depends(get_session)):
    """Swagger UI -- requires a session."""
    return get_swagger_ui_html(openapi_url="/openapi.json", title=app.title)


@app.get("/redoc", include_in_schema=False)
async def redoc(claims: SessionClaims = Depends(get_session)):
    """ReDoc UI -- requires a session."""
    return get_redoc_html(openapi_url="/openapi.json", title=app.title)


# ---------------------------------------------------------------------------
# Exception handlers
#
# All handlers return the same ErrorResponse envelope: {"message": ...} plus
# "errors" on validation failures.
# ---------------------------------------------------------------------------


def _error_response(status_code: int, message: str, errors: list[FieldError] | None = None) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content=ErrorResponse(message=message, errors=errors).model_dump(exclude_none=True),
    )


@app.exception_handler(AuthError)
async def auth_error_handler(request: Request, exc: AuthError) -> JSONResponse:
    """Translate domain errors from auth/ into HTTP responses."""
    if exc.status_code >= 500:
        logger.error("Internal error on %s %s: %s", request.method, request.url.path, exc.message)
    errors = None
    if isinstance(exc, ValidationError) and exc.errors:
        errors = [FieldError(**e) for e in exc.errors]
    return _error_response(exc.status_code, exc.message, errors)


def _validation_message(error: dict) -> str:
    # Custom validators raise ValueError; pydantic keeps the original in ctx.
    ctx_error = (error.get("ctx") or {}).get("error")
    if ctx_error is not None:
        return str(ctx_error)
    return error.get("msg", "Dados inválidos!")


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Return 401 with the first message and per-field detail when a request fails validation."""
    errors = [
        FieldError(
            field=".".join(str(part) for part in err.get("loc", ())[1:]) or "body",
            message=_validation_message(err),
        )
        for err in exc.errors()
    ]
    message = errors[0].message if errors else "Dados inválidos!"
    return _error_response(ValidationError.status_code, message, errors)


@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    """Unknown routes, wrong methods and similar framework-level errors."""
    return _error_response(exc.status_code, str(exc.detail))


@app.exception_handler(Exception)
async def generic_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Catch-all handler for unexpected server errors.

    The exception and traceback go to the log only; the client receives a
    generic message.
    """
    logger.exception("Unhandled exception on %s %s", request.method, request.url.path)
    return _error_response(500, "Erro no servidor!")


# ---------------------------------------------------------------------------
# Health endpoint
# ---------------------------------------------------------------------------


@app.get("/api/v1/health", include_in_schema=True, tags=["Health"])
def health(request: Request) -> HealthResponse:
    """Return API liveness, version and database status. No session required."""
    database = "ok"
    try:
        request.app.state.auth_store.ping()
    except SQLAlchemyError:
        logger.exception("Health check could not reach the database")
        database = "error"
    return HealthResponse(version=__version__, components={"app": "ok", "database": database})
