"""
Main FastAPI application for the Skale lead qualification service.
"""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from .routes import auth, chat, form_config, leads
from .services import get_services, initialize_services
from .middleware.metrics import MetricsMiddleware, metrics_endpoint
from .middleware.rate_limit import RateLimitMiddleware
from config.settings import get_settings
from database.session import init_db, close_db

logger = logging.getLogger(__name__)

DEFAULT_DATABASE_URL = "sqlite:///./leads.db"


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan manager."""
    settings = get_settings()
    logging.basicConfig(
        level=getattr(logging, settings.log_level.upper(), logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    logger.info("Lead qualification service starting up...")

    database_url = settings.database_url
    if not database_url:
        logger.warning(f"DATABASE_URL not set, using {DEFAULT_DATABASE_URL}")
        database_url = DEFAULT_DATABASE_URL
    await init_db(database_url)

    services = get_services()
    services.reset()
    initialize_services()
    logger.info("Lead qualification service ready")
    yield
    logger.info("Lead qualification service shutting down...")

    await close_db()


def create_app() -> FastAPI:
    """Create and configure the FastAPI application."""
    settings = get_settings()

    app = FastAPI(
        title=settings.api_title,
        description="Lead qualification engine: configurable scoring, form wizard progress and an AI chat agent.",
        version=settings.api_version,
        docs_url="/docs",
        redoc_url="/redoc",
        lifespan=lifespan,
    )

    # CORS middleware
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins_list,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Prometheus metrics middleware
    app.add_middleware(MetricsMiddleware)

    # Rate limiting middleware (chat message ingestion only)
    app.add_middleware(
        RateLimitMiddleware,
        requests_per_minute=settings.chat_rate_limit_per_minute,
    )

    app.include_router(form_config.router, prefix="/api/v1", tags=["Form Config"])
    app.include_router(leads.router, prefix="/api/v1", tags=["Leads"])
    app.include_router(chat.router, prefix="/api/v1", tags=["Chat"])
    app.include_router(auth.router, prefix="/api/v1", tags=["Auth"])

    # --- Prometheus metrics endpoint ---
    app.get("/metrics", tags=["Monitoring"])(metrics_endpoint)

    # Root endpoint
    @app.get("/")
    async def root():
        return {
            "service": settings.api_title,
            "version": settings.api_version,
            "status": "operational",
            "docs": "/docs",
        }

    # Health check
    @app.get("/health")
    async def health():
        services = get_services()
        return {
            "status": "healthy" if services.is_ready else "degraded",
            "services": services.health(),
        }

    return app


# Create app instance
app = create_app()


if __name__ == "__main__":
    import uvicorn
    s = get_settings()
    uvicorn.run(app, host=s.api_host, port=s.api_port)
