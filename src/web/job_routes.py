"""API routes for submitting, inspecting and controlling processing jobs.

Provides endpoints for:
- Submitting a media URL for analysis
- Job status and queue listings
- Cancelling a job
- Queue statistics and pause/resume
"""

import asyncio
import logging
import math
from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, Request
from fastapi.responses import JSONResponse
from slowapi import Limiter
from slowapi.util import get_remote_address

from src.cache import make_key
from src.web.auth import require_api_key
from src.web.models import CancelRequest, ProcessVideoRequest
from src.workflow.errors import JobNotFoundError, JobStateError, QueueFullError
from src.workflow.models import Job, JobOptions, JobPayload, JobStatus

logger = logging.getLogger(__name__)

# Average minutes one job holds a slot, used for wait estimates
AVERAGE_JOB_MINUTES = 5

limiter = Limiter(key_func=get_remote_address)

# Submission limit, replaced by create_app from Config.WEB_RATE_LIMIT
_submit_rate_limit = "30/minute"

router = APIRouter(prefix="/api", tags=["jobs"], dependencies=[Depends(require_api_key)])


def configure_rate_limit(limit: str) -> None:
    """Set the per-client submission limit, e.g. "30/minute" (slowapi syntax)."""
    global _submit_rate_limit
    _submit_rate_limit = limit


def _rate_limit() -> str:
    return _submit_rate_limit


def result_cache_key(url: str, options: JobOptions) -> str:
    """Cache key covering only the options that change the result."""
    return make_key(
        url,
        {
            "includeTranscript": options.include_transcript,
            "includeAnalysis": options.include_analysis,
        },
    )


def estimate_wait_minutes(waiting: int, active: int, concurrency_limit: int) -> int:
    """Rough queueing delay for a newly submitted job."""
    slots = max(concurrency_limit, 1)
    return max(1, math.ceil((waiting + active) / slots) * AVERAGE_JOB_MINUTES)


def _format_job(job: Job) -> Dict[str, Any]:
    data = job.to_dict()
    if job.status == JobStatus.FAILED and job.last_error:
        data["error"] = {
            "message": job.last_error,
            "failedAt": data["failedAt"],
            "attempts": job.attempts,
        }
    return data


@router.post("/process-video", status_code=202)
@limiter.limit(_rate_limit)
async def process_video(request: Request, body: ProcessVideoRequest):
    """
    Queue a media URL for processing.

    Answers from the result cache when the same URL was already processed
    with the same options and no webhook is requested.

    Returns:
        202 with the job id and queue position, or 200 with a cached result.
    """
    job_queue = request.app.state.job_queue
    cache = request.app.state.result_cache
    options = body.job_options()

    # Requests carrying a webhook always run so the hook fires
    use_cache = cache is not None and not options.webhook_url
    cached = cache.get(result_cache_key(body.video_url, options)) if use_cache else None
    if cached is not None:
        logger.info(f"Serving cached result for {body.video_url}")
        return JSONResponse(
            status_code=200,
            content={"success": True, "cached": True, "data": {"status": "completed", "result": cached}},
        )

    try:
        receipt = await asyncio.to_thread(
            job_queue.submit, JobPayload(url=body.video_url, options=options)
        )
    except QueueFullError as e:
        logger.warning(f"Queue at capacity: {e}")
        raise HTTPException(
            status_code=503,
            detail={
                "error": "Service temporarily unavailable",
                "message": "Processing queue is at capacity. Please try again later.",
                "queueStats": {
                    "waiting": e.waiting,
                    "active": e.active,
                    "capacity": e.capacity,
                },
            },
        )

    stats = job_queue.stats()
    wait_minutes = estimate_wait_minutes(
        receipt.estimated_position - 1,
        stats["active"],
        job_queue.config.concurrency_limit,
    )

    return JSONResponse(
        status_code=202,
        content={
            "success": True,
            "message": "Video processing request queued successfully",
            "data": {
                **receipt.to_dict(),
                "estimatedWaitMinutes": wait_minutes,
                "endpoints": {
                    "status": f"/api/queue-status?jobId={receipt.job_id}",
                    "cancel": "/api/cancel-request",
                },
            },
            "queueInfo": stats,
        },
    )


@router.get("/queue-status")
async def queue_status(
    request: Request,
    job_id: Optional[str] = Query(default=None, alias="jobId"),
    status: Optional[JobStatus] = Query(default=None),
    limit: int = Query(default=10, ge=1, le=100),
):
    """
    Status of one job (with jobId), or queue stats plus a job listing.
    """
    job_queue = request.app.state.job_queue

    if job_id:
        try:
            job = job_queue.status(job_id)
        except JobNotFoundError as e:
            raise HTTPException(status_code=404, detail=str(e))
        return {"success": True, "data": _format_job(job)}

    jobs = [_format_job(job) for job in job_queue.jobs(status=status, limit=limit)]
    return {
        "success": True,
        "data": {
            "stats": job_queue.stats(),
            "jobs": jobs,
            "pagination": {"limit": limit, "count": len(jobs)},
        },
    }


@router.post("/cancel-request")
async def cancel_request(request: Request, body: CancelRequest):
    """
    Cancel a waiting or active job.

    Waiting jobs fail immediately; active jobs have their running tool
    terminated and fail once the attempt unwinds.
    """
    job_queue = request.app.state.job_queue
    reason = body.reason or "Cancelled by user request"

    try:
        job = await asyncio.to_thread(job_queue.cancel, body.job_id, reason)
    except JobNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except JobStateError as e:
        raise HTTPException(status_code=400, detail=str(e))

    logger.info(f"Cancel accepted for job {body.job_id}: {reason}")
    return {
        "success": True,
        "message": "Job cancellation requested",
        "data": {
            "jobId": job.id,
            "status": job.status.value,
            "reason": reason,
        },
    }


@router.get("/queue/stats")
async def queue_stats(request: Request):
    """Job counts by status."""
    job_queue = request.app.state.job_queue
    return {
        "success": True,
        "data": {**job_queue.stats(), "paused": job_queue.paused},
    }


@router.post("/queue/pause")
async def pause_queue(request: Request):
    """Stop starting new jobs; active jobs continue."""
    await asyncio.to_thread(request.app.state.job_queue.pause)
    return {"success": True, "message": "Queue paused"}


@router.post("/queue/resume")
async def resume_queue(request: Request):
    """Resume dispatching waiting jobs."""
    await asyncio.to_thread(request.app.state.job_queue.resume)
    return {"success": True, "message": "Queue resumed"}
