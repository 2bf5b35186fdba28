"""CampusVisit API application."""

import logging
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager
from datetime import UTC, datetime

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.gzip import GZipMiddleware
from fastapi.responses import JSONResponse

from app.api.v1.router import api_router
from app.config import settings
from app.core.exceptions import AppException
from app.core.middleware import (
    RateLimitMiddleware,
    RequestLoggingMiddleware,
    SecurityHeadersMiddleware,
)
from app.database import close_db, init_db
from app.gateways.razorpay import RazorpayGateway
from app.services.notification_service import NotificationService
from app.services.receipt_service import ReceiptRenderer
from app.services.storage_service import StorageService

logging.basicConfig(
    level=settings.log_level.upper(),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)

logger = logging.getLogger(__name__)


def _warn_unconfigured() -> None:
    if not (settings.razorpay_key_id and settings.razorpay_key_secret):
        logger.warning("Razorpay credentials missing: payment orders will be rejected")
    if not settings.sendgrid_api_key:
        logger.warning("SENDGRID_API_KEY missing: confirmation emails will not be delivered")


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Build the shared upstream clients for the lifetime of the process."""
    if settings.debug:
        await init_db()

    app.state.gateway = RazorpayGateway()
    app.state.renderer = ReceiptRenderer()
    app.state.storage = StorageService()
    app.state.notifier = NotificationService()
    _warn_unconfigured()
    logger.info(f"{settings.app_name} {settings.app_version} ready in {settings.environment}")

    try:
        yield
    finally:
        await app.state.gateway.close()
        await app.state.notifier.close()
        await close_db()
        logger.info(f"{settings.app_name} stopped")


async def handle_app_exception(request: Request, exc: AppException) -> JSONResponse:
    """Render AppException subclasses as ``{"detail": ...}``."""
    if exc.status_code >= 500:
        logger.error(f"{request.method} {request.url.path} -> {exc.status_code}: {exc.detail}")
    return JSONResponse(status_code=exc.status_code, content={"detail": exc.detail}, headers=exc.headers)


def _install_middleware(app: FastAPI) -> None:
    # Starlette runs the last added middleware first; gzip sits closest to the routes.
    app.add_middleware(SecurityHeadersMiddleware)
    if settings.environment != "development":
        app.add_middleware(RateLimitMiddleware, requests_per_minute=settings.rate_limit_per_minute)
    app.add_middleware(RequestLoggingMiddleware)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.add_middleware(GZipMiddleware, minimum_size=1000)


def create_application() -> FastAPI:
    """Assemble the API: routes, error handling, middleware."""
    docs_enabled = settings.debug
    app = FastAPI(
        title=settings.app_name,
        version=settings.app_version,
        description="Institution visit bookings, payments and receipts",
        docs_url="/docs" if docs_enabled else None,
        redoc_url="/redoc" if docs_enabled else None,
        openapi_url="/openapi.json" if docs_enabled else None,
        lifespan=lifespan,
    )
    app.add_exception_handler(AppException, handle_app_exception)
    _install_middleware(app)
    app.include_router(api_router, prefix=settings.api_prefix)

    @app.get("/health", tags=["Health"])
    async def health() -> dict:
        return {
            "status": "ok",
            "service": settings.app_name,
            "version": settings.app_version,
            "time": datetime.now(UTC).isoformat(),
        }

    return app


app = create_application()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "app.main:app",
        host=settings.host,
        port=settings.port,
        reload=settings.debug,
        workers=1 if settings.debug else settings.workers,
    )
