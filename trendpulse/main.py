"""
TrendPulse FastAPI application entry point.

Pipeline: collectors → entity resolution → base score → age decay → homepage sections
"""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI

from trendpulse import __version__
from trendpulse.config import get_settings
from trendpulse.db.session import SessionLocal, check_db_connection, engine
from trendpulse.services.entity_resolver import EntityResolver
from trendpulse.services.homepage_sections import HomepageSectionSelector
from trendpulse.services.section_cache import SectionCache

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan: startup and shutdown."""
    logger.info("TrendPulse starting")
    try:
        try:
            check_db_connection()
            logger.info("Database connection verified")
        except Exception as e:
            logger.critical("Database unreachable: %s", e)
            raise
        yield
    finally:
        logger.info("TrendPulse shutting down")
        app.state.section_selector.close()
        engine.dispose()
        logger.info("Database connection pool closed")


def create_app() -> FastAPI:
    """Create and configure the FastAPI application."""
    settings = get_settings()
    app = FastAPI(
        title=settings.app_name,
        version=__version__,
        lifespan=lifespan,
        docs_url="/docs" if settings.debug else None,
        redoc_url="/redoc" if settings.debug else None,
    )

    # Long-lived services shared by all requests
    app.state.resolver = EntityResolver(
        threshold=settings.match_threshold,
        brand_bonus=settings.brand_bonus,
    )
    app.state.section_selector = HomepageSectionSelector(
        SessionLocal,
        SectionCache(settings.section_cache_ttl),
        timeout=settings.section_query_timeout,
        min_price=settings.min_display_price,
    )

    from trendpulse.api.browse import router as browse_router
    from trendpulse.api.entities import router as entities_router
    from trendpulse.api.sections import router as sections_router

    app.include_router(sections_router, prefix="/api/sections", tags=["sections"])
    app.include_router(entities_router, prefix="/api/entities", tags=["entities"])
    app.include_router(browse_router, prefix="/api", tags=["browse"])

    # Internal job and admin endpoints (cron/scripts, token-authenticated)
    from trendpulse.api.internal import router as internal_router

    app.include_router(internal_router, tags=["internal"])

    @app.get("/health")
    def health() -> dict:
        """Health check endpoint. Confirms DB connectivity."""
        from sqlalchemy import text

        try:
            with engine.connect() as conn:
                conn.execute(text("SELECT 1"))
            return {
                "status": "ok",
                "version": __version__,
                "database": "connected",
            }
        except Exception:
            from fastapi.responses import JSONResponse

            return JSONResponse(
                status_code=503,
                content={
                    "status": "unhealthy",
                    "version": __version__,
                    "database": "disconnected",
                },
            )

    return app


app = create_app()
