"""FastAPI application entry point."""

from contextlib import asynccontextmanager
from typing import AsyncGenerator

from fastapi import FastAPI, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fastapi.staticfiles import StaticFiles

from battle_engine import __version__
from battle_engine.api.deps import get_store
from battle_engine.api.routes import battle, health, sessions, uploads, video
from battle_engine.config import settings
from battle_engine.domain.errors import BattleEngineError
from battle_engine.logging import get_logger, setup_logging

# Setup logging
setup_logging()
logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan handler."""
    logger.info("application_starting", version=__version__, session_store=settings.session_store)

    # Startup: drop sessions left over from previous runs
    try:
        removed = get_store().expire(settings.session_max_age_seconds)
        logger.info("startup_session_cleanup", removed=removed)
    except Exception as e:
        logger.error("startup_session_cleanup_failed", error=str(e))
        # Don't raise - let health checks report the issue

    yield

    logger.info("application_shutting_down")


app = FastAPI(
    title="Battle Engine",
    description="Two-player battle image and multi-segment video generation",
    version=__version__,
    lifespan=lifespan,
    docs_url="/docs",
    redoc_url="/redoc",
    openapi_url="/openapi.json",
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(BattleEngineError)
async def battle_engine_error_handler(request: Request, exc: BattleEngineError) -> JSONResponse:
    logger.error(
        "request_failed",
        path=request.url.path,
        error_type=type(exc).__name__,
        error=exc.message,
    )
    return JSONResponse(
        status_code=status.HTTP_502_BAD_GATEWAY,
        content={"error": exc.message, "recoverable": exc.recoverable},
    )


# Register routers
app.include_router(health.router)
app.include_router(uploads.router, prefix="/api/v1")
app.include_router(battle.router, prefix="/api/v1")
app.include_router(sessions.router, prefix="/api/v1")
app.include_router(video.router, prefix="/api/v1")

if settings.storage_provider == "local":
    settings.storage_path.mkdir(parents=True, exist_ok=True)
    app.mount("/media", StaticFiles(directory=settings.storage_path), name="media")


@app.get("/", include_in_schema=False)
async def root() -> dict[str, str]:
    """Root endpoint redirect to docs."""
    return {
        "name": "Battle Engine",
        "version": __version__,
        "docs": "/docs",
    }


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "battle_engine.main:app",
        host=settings.api_host,
        port=settings.api_port,
        reload=settings.api_reload,
    )
