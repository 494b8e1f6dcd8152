"""FastAPI application entry point for the print-shop API."""

import logging
from contextlib import asynccontextmanager
from typing import Optional

import uvicorn
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from printshop.app.config import get_settings
from printshop.app.routes.auth import router as auth_router
from printshop.app.routes.jobs import router as jobs_router
from printshop.app.routes.quote_pricing import router as quote_pricing_router
from printshop.app.routes.quotes import router as quotes_router
from printshop.app.routes.recommendations import router as recommendations_router
from printshop.app.routes.settings import router as settings_router
from printshop.app.routes.suppliers import router as suppliers_router
from printshop.domain.schemas import HealthResponse
from printshop.infra.database import Database

logger = logging.getLogger(__name__)

settings = get_settings()

# Configure logging
logging.basicConfig(
    level=logging.INFO if settings.debug else logging.WARNING,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    datefmt="%H:%M:%S",
)


def create_app(database: Optional[Database] = None) -> FastAPI:
    """Build the API. Tests pass their own ``Database``; otherwise one is made from settings."""

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Application lifespan: open the database on startup, dispose on shutdown."""
        owned = database is None
        db = database or Database(settings.database_url)
        app.state.database = db
        await db.init_models()
        logger.info("Database ready (%s)", settings.database_url if owned else "injected")
        yield
        if owned:
            await db.dispose()

    app = FastAPI(
        title="Print Shop API",
        lifespan=lifespan,
        debug=settings.debug,
    )
    if database is not None:
        # Available before startup so in-process test clients work without a lifespan run
        app.state.database = database

    # CORS middleware: allow all origins in debug mode for LAN/IP access
    cors_origins = settings.cors_origins_list
    app.add_middleware(
        CORSMiddleware,
        allow_origins=cors_origins,
        allow_credentials=("*" not in cors_origins),
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.include_router(auth_router)
    app.include_router(recommendations_router)
    app.include_router(quotes_router)
    app.include_router(quote_pricing_router)
    app.include_router(jobs_router)
    app.include_router(suppliers_router)
    app.include_router(settings_router)

    @app.get("/health", response_model=HealthResponse, tags=["health"])
    async def health_check():
        """Return service health status."""
        return {"status": "ok", "service": "printshop"}

    return app


app = create_app()


def run() -> None:
    """Run the application with uvicorn (used by project.scripts entry point)."""
    uvicorn.run(
        "printshop.app.main:app",
        host="0.0.0.0",
        port=8000,
        reload=settings.debug,
    )


if __name__ == "__main__":
    run()
