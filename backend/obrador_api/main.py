"""
FastAPI application for the Obrador backend API.

Provides REST endpoints for:
- Ingredients, their aliases and stock
- Recipes, linked sub-recipes, production and scaled batches
- Default steps per ice-cream category

Run with:
    cd backend
    python manage.py serve --reload
"""

import logging
import os
from contextlib import asynccontextmanager
from datetime import datetime, timezone

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from pydantic import BaseModel

from .exception_handlers import setup_exception_handlers
from .routes import default_steps, ingredients, recipes
from .services.database import db_pool


logger = logging.getLogger(__name__)

API_VERSION = "1.0.0"

DEFAULT_CORS_ORIGINS = [
    "http://localhost:5173",  # Vite dev server
    "http://127.0.0.1:5173",
    "http://localhost:3000",  # CRA dev server
    "http://127.0.0.1:3000",
]


def configure_logging():
    """Configure root logging from LOG_LEVEL."""
    logging.basicConfig(
        level=os.getenv("LOG_LEVEL", "INFO").upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


def get_cors_origins():
    """Allowed origins from CORS_ALLOWED_ORIGINS (comma separated)."""
    raw = os.getenv("CORS_ALLOWED_ORIGINS")
    if not raw:
        return DEFAULT_CORS_ORIGINS
    return [origin.strip() for origin in raw.split(",") if origin.strip()]


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Application lifespan handler.

    Initializes database connection on startup and closes it on shutdown.
    """
    # Startup
    configure_logging()
    db_pool.initialize()
    logger.info("Database connection initialized (%s)", db_pool.backend)

    yield

    # Shutdown
    db_pool.close()
    logger.info("Database connection closed")


app = FastAPI(
    title="Obrador API",
    description="Recipe, ingredient and stock management for an ice-cream workshop",
    version=API_VERSION,
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=get_cors_origins(),
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
    expose_headers=["X-Total-Count"],
)

setup_exception_handlers(app)

# Include routers
app.include_router(ingredients.router)
app.include_router(recipes.router)
app.include_router(default_steps.router)


class HealthResponse(BaseModel):
    """Health check response."""
    status: str
    timestamp: datetime
    database: str


@app.get("/api/health", response_model=HealthResponse, tags=["health"])
def health_check():
    """
    Health check endpoint.

    Returns:
        Health status including database connectivity
    """
    db_status = "unknown"

    try:
        with db_pool.get_cursor() as cursor:
            cursor.execute("SELECT 1")
            db_status = f"connected ({db_pool.backend})"
    except Exception as e:
        logger.warning("Health check database error: %s", e)
        db_status = f"error: {str(e)}"

    return HealthResponse(
        status="ok",
        timestamp=datetime.now(timezone.utc),
        database=db_status,
    )


@app.get("/", tags=["root"])
def root():
    """
    Root endpoint with API information.

    Returns:
        API welcome message and documentation link
    """
    return {
        "message": "Obrador API",
        "version": API_VERSION,
        "docs": "/docs",
        "health": "/api/health",
    }
