"""
FastAPI application for the waypoint progression engine.

Provides REST API for:
- Access checks and progress reporting
- Assessment attempt submission
- Course progress overviews and admin overrides
- Roadmap generation, remediation and monitoring
"""

from __future__ import annotations

from contextlib import asynccontextmanager
from datetime import UTC, datetime
from typing import Any

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from loguru import logger
from sqlalchemy import Engine, text
from sqlalchemy.exc import SQLAlchemyError

from waypoint import __version__
from waypoint.config import get_settings
from waypoint.db.database import create_db_engine, create_session_factory, init_db
from waypoint.service import ProgressionService

settings = get_settings()


def _check_database_health(engine: Engine | None) -> tuple[str, str | None]:
    """
    Check database connectivity.

    Returns:
        Tuple of (status, error_message). Status is "ok", "error" or "not_initialized".
    """
    if engine is None:
        return "not_initialized", None
    try:
        with engine.connect() as conn:
            conn.execute(text("SELECT 1"))
        return "ok", None
    except SQLAlchemyError as e:
        return "error", str(e)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan handler for startup/shutdown events."""
    # Startup
    logger.info("Starting waypoint service...")
    engine = create_db_engine(settings.database_url, echo=settings.database_echo)
    init_db(engine)
    app.state.engine = engine
    app.state.service = ProgressionService.from_settings(
        settings, create_session_factory(engine=engine)
    )
    logger.info(f"Service started on {settings.api_host}:{settings.api_port}")

    yield

    # Shutdown
    logger.info("Shutting down waypoint service...")
    engine.dispose()


app = FastAPI(
    title="Waypoint",
    description="""
    Progression control and adaptive roadmaps for a course catalog.

    ## Features

    - **Access control**: Prerequisite, score and attempt-limit gating per student
    - **Progress**: Monotonic progress records with unlock cascades
    - **Roadmaps**: Validated learning paths with a rule-based fallback
    - **Adaptation**: Remedial items after failed assessments, pace scaling
    """,
    version=__version__,
    lifespan=lifespan,
)

# CORS middleware for local development
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],  # Restrict in production
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# ========================================
# Health & Status Endpoints
# ========================================


@app.get("/", tags=["Health"])
def root() -> dict[str, str]:
    """Root endpoint returning service info."""
    return {
        "service": "waypoint",
        "version": __version__,
        "status": "ok",
    }


@app.get("/health", tags=["Health"])
def health_check() -> dict[str, Any]:
    """Health check with a live database probe."""
    db_status, db_error = _check_database_health(getattr(app.state, "engine", None))

    result: dict[str, Any] = {
        "status": "healthy" if db_status == "ok" else "unhealthy",
        "timestamp": datetime.now(UTC).isoformat(),
        "components": {
            "database": db_status,
            "generation": "configured" if settings.has_generation_configured() else "not_configured",
        },
    }
    if db_error:
        result["errors"] = {"database": db_error}
    return result


# ========================================
# Import and mount routers
# ========================================

from waypoint.api.routers import progression_router, roadmap_router  # noqa: E402

app.include_router(progression_router.router, prefix="/api/progression", tags=["Progression"])
app.include_router(roadmap_router.router, prefix="/api/roadmaps", tags=["Roadmaps"])
