"""FastAPI application factory.

Learn: App factory pattern — create_app() returns a configured FastAPI
instance. Lifespan manages startup/shutdown: the profile store's
connection pool is created before the server accepts traffic and
disposed on shutdown. Middleware, exception handlers, and routers are
all registered here.

Errors leave the service in one shape: {"error": ..., "details": ...}.
Malformed bodies are 400 (not FastAPI's default 422) and store failures
are a generic 500; no partial record is ever returned.
"""

from contextlib import asynccontextmanager
from typing import Optional

import structlog
from fastapi import FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from accountflow import __version__
from accountflow.api import api_router
from accountflow.config import settings
from accountflow.db.engine import close_engine, init_engine
from accountflow.errors import StoreError
from accountflow.gateway.base import IdentityAdmin
from accountflow.gateway.local import LocalIdentityProvider
from accountflow.middleware.request_context import RequestContextMiddleware

logger = structlog.get_logger()


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup and shutdown lifecycle.

    Learn: Anything before `yield` runs at startup, after `yield` runs at
    shutdown. A store that cannot be reached fails startup loudly rather
    than serving 500s.
    """
    logger.info(
        "accountflow.starting",
        version=__version__,
        environment=settings.environment,
        port=settings.port,
    )
    await init_engine(create_schema=settings.auto_create_schema)

    yield

    logger.info("accountflow.shutdown")
    await close_engine()


# ─── Exception handlers ──────────────────────────────────


async def http_exception_handler(request: Request, exc: StarletteHTTPException):
    detail = exc.detail
    if isinstance(detail, dict) and "error" in detail:
        content = detail
    else:
        content = {"error": str(detail), "details": None}
    return JSONResponse(
        status_code=exc.status_code,
        content=content,
        headers=getattr(exc, "headers", None),
    )


async def validation_exception_handler(request: Request, exc: RequestValidationError):
    return JSONResponse(
        status_code=400,
        content={
            "error": "Malformed request body",
            "details": jsonable_encoder(exc.errors()),
        },
    )


async def store_error_handler(request: Request, exc: StoreError):
    logger.error("store.request_failed", path=request.url.path, error=exc.message)
    return JSONResponse(
        status_code=500,
        content={"error": "Internal server error", "details": "Profile store failure"},
    )


async def unhandled_error_handler(request: Request, exc: Exception):
    logger.exception("http.unhandled_error", path=request.url.path, exc_info=exc)
    return JSONResponse(
        status_code=500,
        content={"error": "Internal server error", "details": None},
    )


def create_app(identity_admin: Optional[IdentityAdmin] = None) -> FastAPI:
    """Build and return the FastAPI application.

    identity_admin is the server-side identity provider API; without
    one, an in-process LocalIdentityProvider backs the service.
    """
    app = FastAPI(
        title="AccountFlow Profile Service",
        description="Profile records keyed by identity-provider user id",
        version=__version__,
        lifespan=lifespan,
    )
    app.state.identity_admin = identity_admin or LocalIdentityProvider()

    # ── Middleware stack ──────────────────────────────────────
    # Note: Starlette middleware executes in reverse order of registration.
    # Request flow: RequestContext → CORS → handler
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.add_middleware(RequestContextMiddleware)

    app.add_exception_handler(StarletteHTTPException, http_exception_handler)
    app.add_exception_handler(RequestValidationError, validation_exception_handler)
    app.add_exception_handler(StoreError, store_error_handler)
    app.add_exception_handler(Exception, unhandled_error_handler)

    app.include_router(api_router)
    return app


# Default app instance (used by uvicorn: accountflow.main:app)
app = create_app()
