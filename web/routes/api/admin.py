"""Scheduler and sync operations."""
from typing import Optional

from fastapi import APIRouter, HTTPException, Query, Request

from core.events import events
from core.scheduler import get_scheduler
from core.sync_service import get_sync_service
from web.schemas import JobsResponse
from ._deps import get_logger, limiter

router = APIRouter(prefix="/admin")
logger = get_logger(__name__)


@router.get("/jobs", response_model=JobsResponse)
@limiter.limit("60/minute")
async def get_jobs(request: Request):
    """Background job status with the latest executions."""
    scheduler = get_scheduler()
    if not scheduler.is_running:
        return {"status": "not_running", "jobs": [], "history": []}

    jobs = scheduler.get_jobs()
    history = []
    for job in jobs:
        for execution in scheduler.get_job_history(job["id"], limit=5):
            history.append({"job_id": job["id"], "job_name": job["name"], **execution})
    history.sort(key=lambda h: h.get("finished_at") or "", reverse=True)

    sync_service = await get_sync_service()
    return {
        "status": "running",
        "jobs": jobs,
        "history": history[:20],
        "sync": sync_service.get_sync_stats(),
    }


@router.post("/jobs/{job_id}/run")
@limiter.limit("5/minute")
async def run_job(request: Request, job_id: str):
    """Run a job now. Unknown ids answer 404."""
    scheduler = get_scheduler()
    if not scheduler.is_running:
        raise HTTPException(status_code=503, detail="Scheduler not running")
    return await scheduler.run_job_now(job_id)


@router.post("/sync")
@limiter.limit("2/minute")
async def trigger_sync(
    request: Request,
    full: bool = Query(False, description="Reload the whole window instead of the delta"),
    days: Optional[int] = Query(None, ge=1, le=365, description="Days to reload on a full sync"),
):
    """Sync the DuckDB mirror now."""
    sync_service = await get_sync_service()
    if full:
        logger.info(f"Manual full sync requested ({days or 'default'} days)")
        stats = await sync_service.full_sync(days_back=days)
    else:
        stats = await sync_service.incremental_sync()
    return {"status": "completed", "full": full, "stats": stats}


@router.get("/events")
@limiter.limit("60/minute")
async def get_events(
    request: Request,
    limit: int = Query(20, ge=1, le=100, description="Number of events to return"),
):
    """Recent event history and registered handler counts."""
    return {
        "events": events.get_history(limit=limit),
        "handlers": events.get_handlers(),
    }
