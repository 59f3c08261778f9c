"""FastAPI application entry point."""

from __future__ import annotations

import logging
import sys
from typing import Optional

import structlog
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from picpdf.config import Settings, settings as default_settings
from picpdf.errors import ClientError, PicPdfError
from picpdf.routers.convert import router as convert_router
from picpdf.routers.health import router as health_router
from picpdf.storage.local import TransientStore

# ---------------------------------------------------------------------------
# Structured logging configuration
# ---------------------------------------------------------------------------

structlog.configure(
    processors=[
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.UnicodeDecoder(),
        structlog.processors.JSONRenderer(),
    ],
    context_class=dict,
    logger_factory=structlog.stdlib.LoggerFactory(),
    wrapper_class=structlog.stdlib.BoundLogger,
    cache_logger_on_first_use=True,
)

logging.basicConfig(
    format="%(message)s",
    stream=sys.stdout,
    level=default_settings.log_level.upper(),
)

logger = structlog.get_logger(__name__)


# ---------------------------------------------------------------------------
# Exception handlers
# ---------------------------------------------------------------------------

async def handle_app_error(request: Request, exc: PicPdfError):
    """Render pipeline errors as ``{"error": message}``."""
    if isinstance(exc, ClientError):
        logger.warning(
            "request_rejected",
            endpoint=request.url.path,
            error_code=exc.error_code,
            message=exc.message,
            **exc.details,
        )
    else:
        logger.error(
            "conversion_failed",
            endpoint=request.url.path,
            error_code=exc.error_code,
            http_status=exc.http_status,
            **exc.details,
        )
    return JSONResponse(status_code=exc.http_status, content=exc.to_dict())


async def handle_http_error(request: Request, exc: StarletteHTTPException):
    logger.warning("http_exception", path=request.url.path, status_code=exc.status_code, detail=exc.detail)
    return JSONResponse(
        status_code=exc.status_code,
        content={"error": str(exc.detail)},
        headers=getattr(exc, "headers", None),
    )


async def handle_unknown_error(request: Request, exc: Exception):
    logger.error("unhandled_error", path=request.url.path, error=str(exc), exc_info=exc)
    return JSONResponse(status_code=500, content={"error": "Server error"})


# ---------------------------------------------------------------------------
# App setup
# ---------------------------------------------------------------------------

def create_app(settings: Optional[Settings] = None) -> FastAPI:
    """Build the application around one settings object.

    The transient store, and with it both scratch directories, is created
    here so that the directories exist before the first request.
    """
    settings = settings or default_settings

    app = FastAPI(
        title="picpdf API",
        description="Converts an ordered batch of JPEG/PNG images into a single PDF, one page per image.",
        version="1.0.0",
        docs_url="/docs",
        redoc_url="/redoc",
    )
    app.state.settings = settings
    app.state.store = TransientStore(
        upload_dir=settings.upload_dir,
        generated_dir=settings.generated_dir,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.add_exception_handler(PicPdfError, handle_app_error)
    app.add_exception_handler(StarletteHTTPException, handle_http_error)
    app.add_exception_handler(Exception, handle_unknown_error)

    app.include_router(health_router)
    app.include_router(convert_router)

    logger.info(
        "app_configured",
        upload_dir=str(app.state.store.upload_dir),
        generated_dir=str(app.state.store.generated_dir),
        max_files=settings.max_files,
        max_file_size=settings.max_file_size,
        page_size=settings.page_size,
    )
    return app


app = create_app()
