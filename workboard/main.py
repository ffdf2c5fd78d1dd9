from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from contextlib import asynccontextmanager
from datetime import datetime, timezone
import uvicorn
import logging

from .config import get_settings
from .database import async_session, create_tables
from .api.v1.router import api_router
from .utils.logging import setup_logging
from .workers.completion_worker import CompletionWorker


# Create FastAPI application
settings = get_settings()


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan events"""
    # Startup
    setup_logging(settings.log_level, settings.log_file)
    logger = logging.getLogger(__name__)
    logger.info("Starting %s", settings.app_name)

    # Create database tables
    await create_tables()

    if settings.completion_worker_enabled:
        worker = CompletionWorker(async_session, max_queue_size=settings.completion_queue_max_size)
        worker.start()
        app.state.completion_worker = worker

    yield

    # Shutdown
    worker = getattr(app.state, "completion_worker", None)
    if worker is not None:
        await worker.stop()
    logger.info("Shutting down %s", settings.app_name)


app = FastAPI(
    title=settings.app_name,
    version=settings.app_version,
    description="Work-item completion cascade and sprint lifecycle service",
    docs_url="/docs" if settings.debug else None,
    redoc_url="/redoc" if settings.debug else None,
    lifespan=lifespan
)

# Add CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.allowed_origins,
    allow_credentials=True,
    allow_methods=["GET", "POST", "PATCH", "PUT", "DELETE"],
    allow_headers=["*"],
)

# Include API routes
app.include_router(api_router, prefix="/api/v1")

# Health check endpoint
@app.get("/health")
async def health_check():
    """Health check endpoint"""
    worker = getattr(app.state, "completion_worker", None)
    return {
        "status": "healthy",
        "version": settings.app_version,
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "completion_worker": {
            "running": bool(worker and worker.running),
            **(worker.stats.as_dict() if worker else {})
        }
    }


if __name__ == "__main__":
    uvicorn.run(
        "workboard.main:app",
        host="0.0.0.0",
        port=8000,
        reload=settings.debug
    )
