"""
FastAPI application for the OODA agent.

Usage:
    # Development server with auto-reload
    uvicorn ooda_agent.api.main:app --reload --host 0.0.0.0 --port 8000

    # Debug mode (verbose logging)
    LOG_LEVEL=DEBUG uvicorn ooda_agent.api.main:app --reload --host 0.0.0.0 --port 8000
"""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from .. import __version__
from ..config import get_config
from ..tools import build_registry
from .routes import health, tasks


def configure_logging():
    """Configure logging based on the configured log level."""
    log_level = getattr(logging, get_config().log_level.upper(), logging.INFO)
    logging.basicConfig(
        level=log_level,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )
    # Set level for our modules
    logging.getLogger("ooda_agent").setLevel(log_level)


configure_logging()
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan handler for startup and shutdown events."""
    config = get_config()
    logger.info("Starting OODA agent API server")

    logger.info("=" * 60)
    logger.info("MODEL CONFIGURATION")
    logger.info(f"  Base URL: {config.model.base_url or 'https://api.openai.com/v1'}")
    logger.info(f"  Model: {config.model.model}")
    logger.info(f"  Temperature: {config.model.temperature}")
    logger.info(f"  Max Steps: {config.loop.max_steps}")
    logger.info(f"  Eviction: {config.loop.eviction}")

    logger.info("-" * 60)
    logger.info("TOOL ENDPOINTS")
    logger.info(f"  SearXNG: {config.tools.searxng.url}")

    logger.info("-" * 60)
    logger.info("REGISTERED TOOLS")
    for name, tool in sorted(build_registry(config.tools).all_tools().items()):
        logger.info(f"  - {name} ({tool.tier.value}): {tool.purpose[:60]}")

    logger.info("=" * 60)

    yield

    logger.info("Shutting down OODA agent API server")


def create_app() -> FastAPI:
    """
    Create and configure the FastAPI application.

    Returns:
        Configured FastAPI application instance.
    """
    app = FastAPI(
        title="OODA Agent API",
        description=(
            "Runs tasks through an observe-orient-decide-act loop in which a "
            "language model calls tools until it concludes."
        ),
        version=__version__,
        lifespan=lifespan,
        docs_url="/docs",
        redoc_url="/redoc",
        openapi_url="/openapi.json",
    )

    # CORS middleware - allow all origins for development
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Include routers
    app.include_router(health.router, tags=["Health"])
    app.include_router(tasks.router, tags=["Tasks"])

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(
        request: Request, exc: RequestValidationError
    ) -> JSONResponse:
        """Log validation errors before returning 400 response."""
        logger.warning(
            f"Validation error on {request.method} {request.url.path}: {exc.errors()}"
        )
        body = await request.body()
        logger.debug(f"Request body: {body.decode('utf-8', errors='replace')[:1000]}")
        return JSONResponse(
            status_code=400,
            content={"detail": exc.errors()},
        )

    return app


# Create the application instance
app = create_app()


def run_server():
    """
    Run the server using uvicorn.

    This is the entry point for running the server programmatically.
    """
    import uvicorn

    config = get_config()
    uvicorn.run(
        "ooda_agent.api.main:app",
        host=config.server.host,
        port=config.server.port,
        reload=config.server.reload,
        workers=1 if config.server.reload else config.server.workers,
    )


if __name__ == "__main__":
    run_server()
