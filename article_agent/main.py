"""FastAPI application entry point."""

import asyncio
import logging
import os

import sqlalchemy
from fastapi import Depends, FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from article_agent.deps import get_orchestrator
from article_agent.errors import ConfigError, InvalidRequest, InvalidState, NotFound
from article_agent.routes import articles, stats, topics
from article_agent.services.orchestrator import RunOrchestrator

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)

logger = logging.getLogger(__name__)

# Create FastAPI app
app = FastAPI(
    title="Article Agent",
    description="Staged article generation pipeline driven by versioned topic configs",
    version="0.1.0",
)

# CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Include routers
app.include_router(articles.router)
app.include_router(topics.router)
app.include_router(stats.router)


def _error_response(status_code: int, exc: Exception) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"detail": getattr(exc, "message", str(exc))})


@app.exception_handler(NotFound)
async def not_found_handler(request: Request, exc: NotFound):
    return _error_response(404, exc)


@app.exception_handler(ConfigError)
async def config_error_handler(request: Request, exc: ConfigError):
    return _error_response(400, exc)


@app.exception_handler(InvalidRequest)
async def invalid_request_handler(request: Request, exc: InvalidRequest):
    return _error_response(400, exc)


@app.exception_handler(InvalidState)
async def invalid_state_handler(request: Request, exc: InvalidState):
    return _error_response(409, exc)


def run_migrations():
    """Bring the schema up to date unless the tables already exist."""
    from article_agent.database import engine

    if sqlalchemy.inspect(engine).has_table("runs"):
        logger.info("Database tables already exist, skipping migrations")
        return

    logger.info("Running database migrations...")
    from alembic import command
    from alembic.config import Config

    alembic_cfg = Config(os.path.join(os.path.dirname(os.path.dirname(__file__)), "alembic.ini"))
    command.upgrade(alembic_cfg, "head")
    logger.info("Database migrations completed successfully")


@app.on_event("startup")
async def startup_event():
    """Prepare the database and fail runs orphaned by a previous process."""
    logger.info("Starting application...")

    try:
        run_migrations()
    except Exception as e:
        logger.error(f"Startup database check/migration error: {e}")
        logger.info("Continuing startup - assuming database is ready")

    recovered = await asyncio.to_thread(get_orchestrator().recover_interrupted_runs)
    if recovered:
        logger.warning(f"Marked {recovered} interrupted runs as failed")


@app.on_event("shutdown")
async def shutdown_event():
    """Give in-flight runs a bounded grace period."""
    logger.info("Shutting down application...")
    await get_orchestrator().shutdown()


@app.get("/health")
async def health(orchestrator: RunOrchestrator = Depends(get_orchestrator)):
    """Health check endpoint."""
    return {"status": "healthy", "active_runs": len(orchestrator.active_runs)}


@app.get("/")
async def root():
    return {
        "name": "Article Agent",
        "version": "0.1.0",
        "status": "running",
    }
