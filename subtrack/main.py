"""
FastAPI application factory
"""
import logging
import traceback
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.middleware.sessions import SessionMiddleware

from subtrack.api.v1 import auth, categories, fx, push, settings as settings_api, stats, subscriptions
from subtrack.application.rate_limit import RateLimiter
from subtrack.application.scheduler import shutdown_scheduler, start_scheduler
from subtrack.config import get_settings
from subtrack.errors import AppError
from subtrack.infrastructure.db.session import check_db_connection

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)


class ErrorLoggingMiddleware(BaseHTTPMiddleware):
    """Last-resort handler: anything not mapped to an AppError becomes 500 INTERNAL."""

    async def dispatch(self, request, call_next):
        try:
            return await call_next(request)
        except Exception:
            tb_str = traceback.format_exc()
            logger.error(f"\n{'='*60}\nERROR on {request.method} {request.url.path}\n{tb_str}{'='*60}")
            return JSONResponse(
                {"error": {"code": "INTERNAL", "message": "Internal server error", "details": None}},
                status_code=500,
            )


async def app_error_handler(request: Request, exc: AppError) -> JSONResponse:
    if exc.status_code >= 500:
        logger.warning("%s on %s %s: %s", exc.code, request.method, request.url.path, exc.message)
    return JSONResponse(exc.to_dict(), status_code=exc.status_code)


async def request_validation_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    details = [
        {"loc": list(err.get("loc", ())), "msg": err.get("msg", "")}
        for err in exc.errors()
    ]
    return JSONResponse(
        {"error": {"code": "BAD_REQUEST", "message": "Invalid request", "details": details}},
        status_code=400,
    )


@asynccontextmanager
async def lifespan(app: FastAPI):
    scheduler_enabled = get_settings().SCHEDULER_ENABLED
    if scheduler_enabled:
        start_scheduler()
    try:
        yield
    finally:
        if scheduler_enabled:
            shutdown_scheduler()


def create_app() -> FastAPI:
    """
    Application factory

    Returns:
        Configured FastAPI app
    """
    settings = get_settings()

    app = FastAPI(
        title="SubTrack",
        version=settings.APP_VERSION,
        debug=settings.DEBUG,
        lifespan=lifespan,
    )
    app.state.rate_limiter = RateLimiter()

    app.add_exception_handler(AppError, app_error_handler)
    app.add_exception_handler(RequestValidationError, request_validation_handler)

    app.add_middleware(ErrorLoggingMiddleware)
    app.add_middleware(
        SessionMiddleware,
        secret_key=settings.SECRET_KEY
    )

    app.include_router(auth.router)
    app.include_router(settings_api.router)
    app.include_router(categories.router)
    app.include_router(subscriptions.router)
    app.include_router(stats.router)
    app.include_router(fx.router)
    app.include_router(push.router)
    app.include_router(push.notifications_router)

    # Health checks
    @app.get("/health", tags=["system"])
    def health():
        return {"status": "ok", "version": settings.APP_VERSION}

    @app.get("/ready", tags=["system"])
    def ready():
        """Readiness check (database reachable)"""
        check_db_connection()
        return {"status": "ok"}

    return app


# Create app instance
app = create_app()


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "subtrack.main:app",
        host="127.0.0.1",
        port=8000,
        reload=True,
    )
