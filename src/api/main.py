"""FastAPI application entry point."""

from contextlib import asynccontextmanager

from dotenv import load_dotenv
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

# Load environment variables before importing runtime config/services.
load_dotenv()

from .logging_config import setup_logging

setup_logging()

import logging

from .config import settings
from .routers import orchestration

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Seed configuration files on startup and stop live workflows on shutdown."""
    logger.info("=== Application startup initialization ===")

    # Initialize agent team configuration file if missing.
    from .services.agent_team_service import AgentTeamService

    AgentTeamService(config_path=settings.agent_teams_config_path)
    yield
    await orchestration.shutdown_orchestration_service()
    logger.info("=== Application shutdown complete ===")


app = FastAPI(
    title="Human-in-the-Loop Orchestration API",
    description="Round-robin agent collaboration with streamed turns and human review",
    version="1.0.0",
    lifespan=lifespan,
)

# Configure CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Register routers
app.include_router(orchestration.router)

logger.info("=" * 80)
logger.info("FastAPI Application Started")
logger.info("CORS Origins: %s", settings.cors_origins)
logger.info("Default model: %s", settings.default_model_id)
logger.info("=" * 80)


@app.get("/api/health")
async def health_check():
    """Health check endpoint."""
    return {"status": "ok"}


@app.get("/")
async def root():
    """Service entry point summary."""
    return {
        "name": app.title,
        "websocket": "/api/orchestration/ws",
        "teams": "/api/orchestration/teams",
    }
