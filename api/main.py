"""
FastAPI application initialization
"""

from typing import Optional
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from sqlalchemy.ext.asyncio import async_sessionmaker
from api.errors import register_exception_handlers
from api.middleware import RequestContextMiddleware
from api.routes import batches, health, weather
from core.config import Settings, masked_url
from core.database import build_engine, build_session_maker
from core.logging import setup_logging
import logging

logger = logging.getLogger(__name__)


def create_app(
    settings: Optional[Settings] = None,
    session_maker: Optional[async_sessionmaker] = None
) -> FastAPI:
    """
    Build the read API.

    When no session_maker is injected, the startup hook creates an engine
    from settings and the shutdown hook disposes it.
    """
    settings = settings or Settings()

    app = FastAPI(
        title="Weather Forecast API",
        description="Point queries and summaries over ingested weather forecast batches",
        version="1.0.0",
        docs_url="/docs",
        redoc_url="/redoc"
    )
    app.state.settings = settings
    app.state.session_maker = session_maker
    app.state.engine = None

    app.add_middleware(RequestContextMiddleware)
    app.add_middleware(CORSMiddleware, allow_origins=["*"], allow_methods=["GET"], allow_headers=["*"])
    register_exception_handlers(app, development=settings.is_development)

    # Include routers
    app.include_router(health.router)
    app.include_router(weather.router)
    app.include_router(batches.router)

    @app.on_event("startup")
    async def startup_event():
        """Application startup event"""
        logger.info("Starting Weather Forecast API")
        logger.info(f"Environment: {settings.ENVIRONMENT}")
        if app.state.session_maker is None:
            logger.info(f"Database: {masked_url(settings.DATABASE_URL)}")
            app.state.engine = build_engine(settings)
            app.state.session_maker = build_session_maker(app.state.engine)

    @app.on_event("shutdown")
    async def shutdown_event():
        """Application shutdown event"""
        logger.info("Shutting down Weather Forecast API")
        if app.state.engine is not None:
            await app.state.engine.dispose()
            app.state.engine = None

    @app.get("/", include_in_schema=False)
    async def root():
        """Root endpoint"""
        return {
            "message": "Weather Forecast API",
            "version": "1.0.0",
            "docs": "/docs",
            "health": "/health",
            "endpoints": {
                "data": "/weather/data?lat=&lon=",
                "summary": "/weather/summarize?lat=&lon=",
                "batches": "/batches"
            }
        }

    return app


def serve():
    """Run the API with uvicorn"""
    import uvicorn

    settings = Settings()
    setup_logging(settings.LOG_LEVEL)
    uvicorn.run(create_app(settings), host=settings.API_HOST, port=settings.API_PORT)


if __name__ == "__main__":
    serve()
