"""
Background job scheduler using APScheduler.

Manages all background tasks:
- Incremental sync of the analytics mirror (every 60 seconds)
- Full sync (weekly on Sunday at 3 AM)
- NFe queue processing (every NFE_PROCESS_INTERVAL_SECONDS)
- DuckDB checkpoint (daily at 4 AM)

Features:
- Job execution history
- Prevents job pile-up (max_instances=1)
- Manual triggering from the admin API
- Graceful shutdown
"""
from datetime import datetime
from typing import Optional, Dict, Any, List, Callable, Awaitable
from dataclasses import dataclass
from enum import Enum
from zoneinfo import ZoneInfo

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger
from apscheduler.triggers.cron import CronTrigger
from apscheduler.events import (
    EVENT_JOB_EXECUTED,
    EVENT_JOB_ERROR,
    EVENT_JOB_MISSED,
    JobExecutionEvent,
)

from core.config import config
from core.events import OrderEvent, events
from core.exceptions import NfeConfigurationError, NotFoundError
from core.observability import add_log_context, clear_log_context, correlation_context, get_logger

logger = get_logger(__name__)

# Timezone for cron triggers
SCHEDULER_TIMEZONE = ZoneInfo(config.dashboard.default_timezone)


class JobStatus(Enum):
    """Job execution status."""
    PENDING = "pending"
    RUNNING = "running"
    SUCCESS = "success"
    FAILED = "failed"
    MISSED = "missed"


@dataclass
class JobExecution:
    """Record of a job execution."""
    job_id: str
    started_at: datetime
    finished_at: Optional[datetime] = None
    status: JobStatus = JobStatus.RUNNING
    error: Optional[str] = None
    result: Optional[Dict[str, Any]] = None


@dataclass
class JobInfo:
    """Information about a scheduled job."""
    id: str
    name: str
    description: str
    next_run: Optional[datetime] = None
    last_run: Optional[datetime] = None
    last_status: Optional[JobStatus] = None
    run_count: int = 0
    error_count: int = 0
    last_error: Optional[str] = None


class BackgroundScheduler:
    """
    Background job scheduler with monitoring.

    Usage:
        scheduler = BackgroundScheduler()
        await scheduler.start()

        # Later...
        scheduler.shutdown()
    """

    def __init__(self):
        self._scheduler: Optional[AsyncIOScheduler] = None
        self._job_history: Dict[str, List[JobExecution]] = {}
        self._job_info: Dict[str, JobInfo] = {}
        self._max_history = 50  # Keep last N executions per job
        self._started = False

    async def start(self) -> None:
        """Start the scheduler and register all jobs."""
        if self._started:
            logger.warning("Scheduler already started")
            return

        self._scheduler = AsyncIOScheduler(timezone=SCHEDULER_TIMEZONE)

        self._scheduler.add_listener(self._on_job_executed, EVENT_JOB_EXECUTED)
        self._scheduler.add_listener(self._on_job_error, EVENT_JOB_ERROR)
        self._scheduler.add_listener(self._on_job_missed, EVENT_JOB_MISSED)

        self._register_jobs()

        self._scheduler.start()
        self._started = True
        self._refresh_next_runs()
        logger.info("Background scheduler started")

    def _register_jobs(self) -> None:
        """Register all background jobs."""
        self._add_job(
            job_id="incremental_sync",
            name="Incremental Sync",
            description="Mirror new/updated orders and inventory into DuckDB",
            func=self._run_incremental_sync,
            trigger=IntervalTrigger(seconds=60),
        )

        self._add_job(
            job_id="full_sync_weekly",
            name="Weekly Full Sync",
            description=f"Re-mirror the last {config.backend.initial_sync_days} days",
            func=self._run_full_sync,
            trigger=CronTrigger(day_of_week="sun", hour=3, minute=0),
        )

        self._add_job(
            job_id="nfe_queue",
            name="NFe Queue",
            description="Send pending NFC-e invoices to Focus NFe",
            func=self._run_nfe_queue,
            trigger=IntervalTrigger(seconds=config.nfe.process_interval_seconds),
        )

        self._add_job(
            job_id="duckdb_checkpoint",
            name="DuckDB Checkpoint",
            description="Flush the DuckDB WAL into the database file",
            func=self._run_checkpoint,
            trigger=CronTrigger(hour=4, minute=0),
        )

        logger.info(f"Registered {len(self._job_info)} background jobs")

    def _add_job(
        self,
        job_id: str,
        name: str,
        description: str,
        func: Callable,
        trigger,
        max_instances: int = 1,
        coalesce: bool = True,
    ) -> None:
        """Add a job to the scheduler."""
        self._scheduler.add_job(
            func,
            trigger=trigger,
            id=job_id,
            name=name,
            max_instances=max_instances,
            coalesce=coalesce,
            replace_existing=True,
        )

        self._job_info[job_id] = JobInfo(id=job_id, name=name, description=description)
        self._job_history[job_id] = []

    def _refresh_next_runs(self) -> None:
        # next_run_time only exists once the scheduler has started
        for job_id, info in self._job_info.items():
            job = self._scheduler.get_job(job_id)
            if job and getattr(job, "next_run_time", None):
                info.next_run = job.next_run_time

    # ═══════════════════════════════════════════════════════════════════════════
    # JOB IMPLEMENTATIONS
    # ═══════════════════════════════════════════════════════════════════════════

    async def _run_instrumented(
        self,
        job_id: str,
        operation: Callable[[], Awaitable[Dict[str, Any]]],
    ) -> Dict[str, Any]:
        """Run a job body under its own correlation id and announce the outcome."""
        with correlation_context():
            add_log_context(job_id=job_id)
            try:
                result = await operation()
            except Exception as e:
                await events.emit(
                    OrderEvent.JOB_FAILED, {"job_id": job_id, "error": str(e)}, source="scheduler"
                )
                raise
            finally:
                clear_log_context()
            await events.emit(OrderEvent.JOB_COMPLETED, {"job_id": job_id}, source="scheduler")
            return result

    async def _run_incremental_sync(self) -> Dict[str, Any]:
        async def operation():
            from core.sync_service import get_sync_service
            sync_service = await get_sync_service()
            stats = await sync_service.incremental_sync()
            logger.debug("Incremental sync job complete", extra={"stats": stats})
            return stats

        return await self._run_instrumented("incremental_sync", operation)

    async def _run_full_sync(self) -> Dict[str, Any]:
        async def operation():
            from core.sync_service import get_sync_service
            logger.info("Starting weekly full sync job")
            sync_service = await get_sync_service()
            return await sync_service.full_sync(days_back=config.backend.initial_sync_days)

        return await self._run_instrumented("full_sync_weekly", operation)

    async def _run_nfe_queue(self) -> Dict[str, Any]:
        async def operation():
            from core.nfe import NfeProcessor
            try:
                result = await NfeProcessor().process_pending()
            except NfeConfigurationError as e:
                # NFe switched off or not configured yet: nothing to do
                logger.debug(f"NFe queue skipped: {e}")
                return {"skipped": True, "reason": str(e)}
            return result

        return await self._run_instrumented("nfe_queue", operation)

    async def _run_checkpoint(self) -> Dict[str, Any]:
        async def operation():
            from core.duckdb_store import get_store
            store = await get_store()
            await store.checkpoint()
            return {"checkpoint": True}

        return await self._run_instrumented("duckdb_checkpoint", operation)

    # ═══════════════════════════════════════════════════════════════════════════
    # EVENT HANDLERS
    # ═══════════════════════════════════════════════════════════════════════════

    def _record(
        self,
        job_id: str,
        status: JobStatus,
        error: Optional[str] = None,
        result: Any = None,
    ) -> Optional[JobInfo]:
        """Update a job's info from a listener event and append to its history."""
        info = self._job_info.get(job_id)
        if info is None:
            return None

        now = datetime.now(SCHEDULER_TIMEZONE)
        info.last_status = status
        if status != JobStatus.MISSED:
            info.last_run = now
            info.run_count += 1
        if status == JobStatus.FAILED:
            info.error_count += 1
            info.last_error = error

        job = self._scheduler.get_job(job_id) if self._scheduler else None
        if job and getattr(job, "next_run_time", None):
            info.next_run = job.next_run_time

        execution = JobExecution(
            job_id=job_id,
            started_at=now,
            finished_at=now,
            status=status,
            error=error,
            result=result if isinstance(result, dict) else None,
        )
        history = self._job_history.setdefault(job_id, [])
        history.append(execution)
        if len(history) > self._max_history:
            self._job_history[job_id] = history[-self._max_history:]
        return info

    def _on_job_executed(self, event: JobExecutionEvent) -> None:
        self._record(event.job_id, JobStatus.SUCCESS, result=getattr(event, "retval", None))

    def _on_job_error(self, event: JobExecutionEvent) -> None:
        error = str(event.exception) if event.exception else "Unknown error"
        if self._record(event.job_id, JobStatus.FAILED, error=error):
            logger.error(
                f"Job {event.job_id} failed: {error}",
                extra={"job_id": event.job_id, "error": error},
            )

    def _on_job_missed(self, event: JobExecutionEvent) -> None:
        if self._record(event.job_id, JobStatus.MISSED):
            logger.warning(
                f"Job {event.job_id} missed scheduled execution",
                extra={"job_id": event.job_id},
            )

    # ═══════════════════════════════════════════════════════════════════════════
    # PUBLIC API
    # ═══════════════════════════════════════════════════════════════════════════

    def _require_job(self, job_id: str):
        if job_id not in self._job_info:
            raise NotFoundError("Job", job_id)
        job = self._scheduler.get_job(job_id) if self._scheduler else None
        if job is None:
            raise NotFoundError("Job", job_id)
        return job

    def get_jobs(self) -> List[Dict[str, Any]]:
        """All registered jobs with their status."""
        jobs = []
        for job_id, info in self._job_info.items():
            job = self._scheduler.get_job(job_id) if self._scheduler else None
            jobs.append({
                "id": info.id,
                "name": info.name,
                "description": info.description,
                "trigger": str(job.trigger) if job else "",
                "next_run": info.next_run.isoformat() if info.next_run else None,
                "last_run": info.last_run.isoformat() if info.last_run else None,
                "last_status": info.last_status.value if info.last_status else None,
                "run_count": info.run_count,
                "error_count": info.error_count,
                "last_error": info.last_error,
            })
        return jobs

    def get_job_history(self, job_id: str, limit: int = 10) -> List[Dict[str, Any]]:
        """Most recent executions of a job, newest first."""
        history = self._job_history.get(job_id, [])[-limit:]
        return [{
            "finished_at": e.finished_at.isoformat() if e.finished_at else None,
            "status": e.status.value,
            "error": e.error,
            "result": e.result,
        } for e in reversed(history)]

    async def run_job_now(self, job_id: str) -> Dict[str, Any]:
        """Move a job's next run to now; the scheduler picks it up immediately."""
        job = self._require_job(job_id)
        logger.info(f"Manually triggering job: {job_id}")
        job.modify(next_run_time=datetime.now(SCHEDULER_TIMEZONE))
        return {"status": "triggered", "job_id": job_id}

    def shutdown(self, wait: bool = True) -> None:
        if self._scheduler and self._started:
            self._scheduler.shutdown(wait=wait)
            self._started = False
            logger.info("Background scheduler stopped")

    @property
    def is_running(self) -> bool:
        return self._started and self._scheduler is not None


# ═══════════════════════════════════════════════════════════════════════════════
# SINGLETON INSTANCE
# ═══════════════════════════════════════════════════════════════════════════════

_scheduler: Optional[BackgroundScheduler] = None


def get_scheduler() -> BackgroundScheduler:
    """Get the singleton scheduler instance."""
    global _scheduler
    if _scheduler is None:
        _scheduler = BackgroundScheduler()
    return _scheduler


async def start_scheduler() -> BackgroundScheduler:
    scheduler = get_scheduler()
    await scheduler.start()
    return scheduler


def stop_scheduler() -> None:
    global _scheduler
    if _scheduler:
        _scheduler.shutdown()
        _scheduler = None
