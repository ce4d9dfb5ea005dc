"""
FastAPI web application for the media analysis job service.

Accepts media URLs for processing, exposes job status and queue
controls, and runs the job queue for the lifetime of the process.
"""

import asyncio
import logging
import os
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from slowapi import _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded

from src.cache import ResultCache
from src.config import Config
from src.web.job_routes import configure_rate_limit, limiter, result_cache_key
from src.web.job_routes import router as job_router
from src.workflow.factory import create_job_queue
from src.workflow.models import Job, JobStatus
from src.workflow.queue import JobQueue

# Configure logging
log_level = os.environ.get("LOG_LEVEL", "INFO").upper()
logging.basicConfig(
    level=getattr(logging, log_level, logging.INFO),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
)
logger = logging.getLogger(__name__)

SERVICE_NAME = "media-analysis-service"


async def _prune_periodically(job_queue: JobQueue) -> None:
    """Evict finished job records older than the retention window."""
    interval = job_queue.config.prune_interval_seconds
    while True:
        await asyncio.sleep(interval)
        try:
            await asyncio.to_thread(job_queue.prune)
        except Exception:
            logger.exception("Periodic job pruning failed")


def _cache_completed_results(cache: ResultCache, ttl: float):
    """Build a queue listener that stores completed results in the cache."""

    def listener(job: Job) -> None:
        if job.status != JobStatus.COMPLETED or job.result is None:
            return
        cache.set(result_cache_key(job.payload.url, job.payload.options), job.result, ttl)

    return listener


def create_app(
    config: Optional[Config] = None,
    job_queue: Optional[JobQueue] = None,
    cache: Optional[ResultCache] = None,
) -> FastAPI:
    """
    Build the FastAPI application.

    Parameters:
        config: Application configuration; loaded from the environment if omitted.
        job_queue: Queue to serve; built from configuration if omitted. Started
            and stopped with the application lifespan.
        cache: Result cache consulted before submission.

    Returns:
        FastAPI: The configured application.
    """
    config = config or Config()
    job_queue = job_queue or create_job_queue(config)
    cache = cache or ResultCache(default_ttl=config.RESULT_CACHE_TTL)
    job_queue.add_listener(_cache_completed_results(cache, config.RESULT_CACHE_TTL))

    @asynccontextmanager
    async def lifespan(_app: FastAPI):
        """
        FastAPI lifespan context manager.

        Starts the job queue and the pruning task, and stops both on shutdown.
        """
        job_queue.start()
        prune_task = asyncio.create_task(_prune_periodically(job_queue))
        logger.info("Application started")

        yield

        prune_task.cancel()
        try:
            await prune_task
        except asyncio.CancelledError:
            pass
        await asyncio.to_thread(job_queue.stop, False)
        logger.info("Application shutdown")

    app = FastAPI(
        title="Media Analysis Service",
        description="Queue-backed media transcription and content analysis",
        version="1.0.0",
        lifespan=lifespan
    )

    # Add rate limiter to app state
    limiter.enabled = config.WEB_RATE_LIMIT_ENABLED
    configure_rate_limit(config.WEB_RATE_LIMIT)
    app.state.limiter = limiter
    app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)

    # CORS middleware (configurable via environment variable)
    allowed_origins = config.WEB_ALLOWED_ORIGINS.split(",") if config.WEB_ALLOWED_ORIGINS != "*" else ["*"]
    app.add_middleware(
        CORSMiddleware,
        allow_origins=allowed_origins,
        allow_credentials=allowed_origins != ["*"],
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Store collaborators in app state for access in routes
    app.state.config = config
    app.state.job_queue = job_queue
    app.state.result_cache = cache

    app.include_router(job_router)

    @app.exception_handler(Exception)
    async def unhandled_exception(request: Request, exc: Exception):
        logger.exception(f"Unhandled error on {request.method} {request.url.path}")
        return JSONResponse(
            status_code=500,
            content={"success": False, "error": "Internal server error"},
        )

    @app.get("/health")
    async def health():
        """Health check endpoint."""
        return {
            "status": "healthy" if job_queue.running else "starting",
            "service": SERVICE_NAME,
            "queue": job_queue.stats(),
            "paused": job_queue.paused,
            "analysisConfigured": config.analysis_configured,
        }

    return app


app = create_app()
