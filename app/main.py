"""
Sweetlease - FastAPI Application
AI lease extraction: upload a lease PDF, get the key terms and critical
dates, ask questions about it and export reminders.
"""

import logging
import uuid
from contextlib import asynccontextmanager
from pathlib import Path

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware

from app.core.config import get_settings
from app.core.database import close_db, init_db


# =============================================================================
# Logging Setup
# =============================================================================

def setup_logging():
    """Configure logging based on settings."""
    from app.core.logging_config import setup_logging as configure_logging
    settings = get_settings()
    configure_logging(
        level=settings.log_level.upper(),
        json_format=settings.log_json_format,
        log_file=Path(settings.log_file) if settings.log_file else None,
    )


# =============================================================================
# Lifespan (Startup/Shutdown)
# =============================================================================

@asynccontextmanager
async def lifespan(app: FastAPI):
    """Create tables on startup, release the engine and registry on shutdown."""
    settings = get_settings()
    logger = logging.getLogger(__name__)

    logger.info("Starting %s v%s", settings.app_name, settings.app_version)
    await init_db()
    if not settings.ai_configured:
        logger.warning("GEMINI_API_KEY is not set; analysis and Q&A will fail until it is configured")

    yield

    from app.services.lease.orchestrator import get_orchestrator_registry
    get_orchestrator_registry().clear()
    await close_db()
    logger.info("%s stopped", settings.app_name)


# =============================================================================
# Application Factory
# =============================================================================

def create_app() -> FastAPI:
    """
    Application factory.
    Creates and configures the FastAPI application.
    """
    settings = get_settings()
    setup_logging()

    tags_metadata = [
        {
            "name": "Health",
            "description": "Liveness and configuration checks.",
        },
        {
            "name": "Lease Analysis",
            "description": "Lease upload, structured analysis, grounded Q&A, reminders and saved analyses.",
        },
    ]

    app = FastAPI(
        title=settings.app_name,
        description=settings.app_description,
        version=settings.app_version,
        lifespan=lifespan,
        docs_url="/api/docs" if settings.enable_docs else None,
        redoc_url="/api/redoc" if settings.enable_docs else None,
        openapi_url="/api/openapi.json" if settings.enable_docs else None,
        openapi_tags=tags_metadata,
    )

    # =========================================================================
    # Middleware (order matters - first added = last to run)
    # =========================================================================

    from app.core.security_headers import SecurityHeadersMiddleware
    app.add_middleware(SecurityHeadersMiddleware, enable_hsts=not settings.debug)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins_list,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.middleware("http")
    async def add_request_id(request: Request, call_next):
        request_id = request.headers.get("X-Request-Id", str(uuid.uuid4()))
        response = await call_next(request)
        response.headers["X-Request-Id"] = request_id
        return response

    # =========================================================================
    # Exception Handlers
    # =========================================================================
    from app.core.errors import setup_exception_handlers
    setup_exception_handlers(app)

    # =========================================================================
    # Register Routers
    # =========================================================================
    from app.routers import lease
    app.include_router(lease.router, prefix="/api/lease", tags=["Lease Analysis"])

    @app.get("/health", tags=["Health"])
    async def health():
        return {"status": "ok", "ai_configured": get_settings().ai_configured}

    return app


app = create_app()
