"""
FastAPI application entry point for the content service.
"""

from __future__ import annotations

import logging

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from cms.admin_routes import router as admin_router
from cms.config import get_settings
from cms.errors import CmsError, StoreUnavailableError
from cms.routes import router

logger = logging.getLogger(__name__)


async def cms_error_handler(request: Request, exc: CmsError) -> JSONResponse:
    """
    Converts service errors to JSON responses. The log gets the detail,
    the caller gets the message.
    """
    log = logger.error if isinstance(exc, StoreUnavailableError) else logger.info
    log(
        "%s %s failed: %s (status %d)",
        request.method,
        request.url.path,
        exc.detail,
        exc.status_code,
    )
    return JSONResponse(
        status_code=exc.status_code,
        content={"detail": exc.message, "retryable": isinstance(exc, StoreUnavailableError)},
    )


def create_app() -> FastAPI:
    settings = get_settings()
    logging.basicConfig(level=settings.log_level.upper())
    app = FastAPI(title="Nonprofit Site Content Service", version="0.1.0")
    app.add_exception_handler(CmsError, cms_error_handler)
    app.include_router(router, prefix=settings.api_prefix)
    app.include_router(admin_router, prefix=f"{settings.api_prefix}/admin")
    return app


app = create_app()
