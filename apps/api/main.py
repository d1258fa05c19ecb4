"""
Profile Credits - FastAPI Backend
Main application entry point: auth strategy wiring, error mapping and routing.
"""

import logging
from contextlib import asynccontextmanager
from typing import Optional, Union

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy.exc import SQLAlchemyError
from starlette.exceptions import HTTPException as StarletteHTTPException

from config import settings, validate_security_settings
from database import Base, async_session_maker, engine
import models  # noqa: F401
from routers import auth, billing, health, profile
from services.auth_strategy import AuthStrategy, build_verifier
from services.errors import AppError, MalformedPasswordHash
from services.sessions import purge_expired_sessions

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan handler for startup/shutdown."""
    # Startup
    print(f"🚀 Starting Profile Credits API (auth strategy: {app.state.auth_strategy.value})...")
    validate_security_settings(app.state.auth_strategy.value)
    if settings.AUTO_CREATE_DB_SCHEMA:
        try:
            async with engine.begin() as conn:
                await conn.run_sync(Base.metadata.create_all)
            print("🗄️ Database schema verified.")
        except Exception as e:
            print(f"⚠️ Database bootstrap skipped: {e}")
    if app.state.auth_strategy.issues_sessions:
        try:
            async with async_session_maker() as session:
                purged = await purge_expired_sessions(session)
            if purged:
                print(f"♻️ Purged {purged} expired sessions after startup.")
        except Exception as exc:
            print(f"⚠️ Expired session purge skipped: {exc}")
    yield
    # Shutdown
    await engine.dispose()
    print("👋 Shutting down API...")


def _error_response(status_code: int, message: str, code: str, **extra) -> JSONResponse:
    content = {"success": False, "message": message, "code": code}
    content.update(extra)
    return JSONResponse(status_code=status_code, content=content)


def register_exception_handlers(app: FastAPI) -> None:
    @app.exception_handler(AppError)
    async def app_error_handler(request: Request, exc: AppError):
        return JSONResponse(status_code=exc.status_code, content=exc.to_payload())

    @app.exception_handler(RequestValidationError)
    async def validation_error_handler(request: Request, exc: RequestValidationError):
        errors = [
            {
                "field": ".".join(str(part) for part in error.get("loc", ())[1:]) or "body",
                "message": error.get("msg", "Invalid value"),
            }
            for error in exc.errors()
        ]
        return _error_response(400, "Invalid request data", "validation_error", errors=errors)

    @app.exception_handler(StarletteHTTPException)
    async def http_error_handler(request: Request, exc: StarletteHTTPException):
        response = _error_response(exc.status_code, str(exc.detail), "http_error")
        for key, value in (exc.headers or {}).items():
            response.headers[key] = value
        return response

    @app.exception_handler(MalformedPasswordHash)
    async def malformed_hash_handler(request: Request, exc: MalformedPasswordHash):
        logger.error("Corrupt password hash encountered on %s: %s", request.url.path, exc)
        return _error_response(500, "Internal server error", "internal_error")

    @app.exception_handler(SQLAlchemyError)
    async def storage_error_handler(request: Request, exc: SQLAlchemyError):
        logger.exception("Storage failure on %s %s", request.method, request.url.path)
        return _error_response(500, "Internal server error", "storage_error")


def create_app(strategy: Optional[Union[AuthStrategy, str]] = None) -> FastAPI:
    """Build the API with its auth strategy fixed for the app's lifetime."""
    resolved = strategy if isinstance(strategy, AuthStrategy) else AuthStrategy.parse(strategy or settings.AUTH_STRATEGY)

    app = FastAPI(
        title="Profile Credits API",
        description="Subscription-gated profile editor with per-edit credit accounting",
        version="0.1.0",
        lifespan=lifespan,
    )
    app.state.auth_strategy = resolved
    app.state.auth_verifier = build_verifier(resolved)

    # CORS middleware
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.CORS_ORIGINS,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    register_exception_handlers(app)

    # Include routers
    app.include_router(health.router, tags=["Health"])
    app.include_router(auth.router, prefix="/api", tags=["Authentication"])
    app.include_router(billing.router, prefix="/api", tags=["Subscription"])
    app.include_router(profile.router, prefix="/api", tags=["Profile"])

    @app.get("/")
    async def root():
        """Root endpoint."""
        return {
            "name": "Profile Credits API",
            "version": "0.1.0",
            "status": "running",
        }

    return app


app = create_app()


def run() -> None:
    """Serve ``main:app`` with uvicorn on the configured host and port."""
    import uvicorn

    uvicorn.run("main:app", host=settings.API_HOST, port=settings.API_PORT, reload=False)


if __name__ == "__main__":
    run()
