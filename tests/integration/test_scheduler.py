"""
Integration tests for core/scheduler.py

Starts a real AsyncIOScheduler; job bodies are exercised directly so no
test waits for a trigger to fire.
"""
import pytest
from unittest.mock import AsyncMock, MagicMock, patch

from core.events import OrderEvent, events
from core.exceptions import NfeConfigurationError, NotFoundError
from core.scheduler import BackgroundScheduler, JobInfo, JobStatus

EXPECTED_JOBS = {"incremental_sync", "full_sync_weekly", "nfe_queue", "duckdb_checkpoint"}


@pytest.fixture(autouse=True)
def clean_history():
    events.clear_history()
    yield
    events.clear_history()


class TestSchedulerLifecycle:
    """Tests for start/shutdown and job listing."""

    @pytest.mark.asyncio
    async def test_start_registers_jobs(self):
        scheduler = BackgroundScheduler()
        await scheduler.start()
        try:
            jobs = scheduler.get_jobs()
            assert scheduler.is_running
            assert {j["id"] for j in jobs} == EXPECTED_JOBS
            assert all(j["next_run"] for j in jobs)
            assert all(j["run_count"] == 0 for j in jobs)
        finally:
            scheduler.shutdown(wait=False)
        assert not scheduler.is_running

    @pytest.mark.asyncio
    async def test_start_twice_is_noop(self):
        scheduler = BackgroundScheduler()
        await scheduler.start()
        try:
            await scheduler.start()
            assert len(scheduler.get_jobs()) == len(EXPECTED_JOBS)
        finally:
            scheduler.shutdown(wait=False)

    def test_not_started(self):
        scheduler = BackgroundScheduler()
        assert scheduler.is_running is False
        assert scheduler.get_jobs() == []
        scheduler.shutdown()

    @pytest.mark.asyncio
    async def test_run_unknown_job(self):
        scheduler = BackgroundScheduler()
        await scheduler.start()
        try:
            with pytest.raises(NotFoundError):
                await scheduler.run_job_now("nope")
        finally:
            scheduler.shutdown(wait=False)

    @pytest.mark.asyncio
    async def test_run_job_now(self):
        """The job is moved to run now rather than executed inline."""
        scheduler = BackgroundScheduler()
        scheduler._job_info["duckdb_checkpoint"] = JobInfo(
            id="duckdb_checkpoint", name="DuckDB Checkpoint", description=""
        )
        job = MagicMock()
        scheduler._scheduler = MagicMock()
        scheduler._scheduler.get_job.return_value = job

        result = await scheduler.run_job_now("duckdb_checkpoint")

        assert result == {"status": "triggered", "job_id": "duckdb_checkpoint"}
        job.modify.assert_called_once()
        assert "next_run_time" in job.modify.call_args.kwargs


class TestJobHistory:
    """Tests for listener bookkeeping."""

    @pytest.mark.asyncio
    async def test_record_success_and_failure(self):
        scheduler = BackgroundScheduler()
        await scheduler.start()
        try:
            scheduler._on_job_executed(MagicMock(job_id="nfe_queue", retval={"processed": 2}))
            scheduler._on_job_error(MagicMock(job_id="nfe_queue", exception=RuntimeError("down")))

            job = next(j for j in scheduler.get_jobs() if j["id"] == "nfe_queue")
            history = scheduler.get_job_history("nfe_queue")
        finally:
            scheduler.shutdown(wait=False)

        assert job["run_count"] == 2
        assert job["error_count"] == 1
        assert job["last_status"] == JobStatus.FAILED.value
        assert job["last_error"] == "down"
        # Newest first
        assert history[0]["status"] == "failed"
        assert history[1]["result"] == {"processed": 2}

    @pytest.mark.asyncio
    async def test_missed_does_not_count_as_run(self):
        scheduler = BackgroundScheduler()
        await scheduler.start()
        try:
            scheduler._on_job_missed(MagicMock(job_id="incremental_sync"))
            job = next(j for j in scheduler.get_jobs() if j["id"] == "incremental_sync")
        finally:
            scheduler.shutdown(wait=False)

        assert job["run_count"] == 0
        assert job["last_status"] == "missed"

    def test_unknown_job_ignored(self):
        scheduler = BackgroundScheduler()
        assert scheduler._record("ghost", JobStatus.SUCCESS) is None

    def test_history_is_bounded(self):
        scheduler = BackgroundScheduler()
        scheduler._job_info["job"] = JobInfo(id="job", name="Job", description="")
        scheduler._max_history = 3
        for _ in range(5):
            scheduler._record("job", JobStatus.SUCCESS)

        assert len(scheduler.get_job_history("job", limit=10)) == 3


class TestJobBodies:
    """Tests for the instrumented job functions."""

    @pytest.mark.asyncio
    async def test_instrumented_success(self):
        scheduler = BackgroundScheduler()

        result = await scheduler._run_instrumented("job", AsyncMock(return_value={"ok": 1}))

        assert result == {"ok": 1}
        completed = events.get_history(OrderEvent.JOB_COMPLETED)
        assert completed[-1]["data"] == {"job_id": "job"}
        assert completed[-1]["correlation_id"]

    @pytest.mark.asyncio
    async def test_instrumented_failure(self):
        scheduler = BackgroundScheduler()

        with pytest.raises(RuntimeError):
            await scheduler._run_instrumented("job", AsyncMock(side_effect=RuntimeError("bad")))

        failed = events.get_history(OrderEvent.JOB_FAILED)
        assert failed[-1]["data"] == {"job_id": "job", "error": "bad"}
        assert not events.get_history(OrderEvent.JOB_COMPLETED)

    @pytest.mark.asyncio
    async def test_nfe_job_skips_when_not_configured(self):
        scheduler = BackgroundScheduler()
        processor = MagicMock()
        processor.process_pending = AsyncMock(side_effect=NfeConfigurationError("NFe disabled"))

        with patch("core.nfe.NfeProcessor", return_value=processor):
            result = await scheduler._run_nfe_queue()

        assert result == {"skipped": True, "reason": "NFe disabled"}
        assert events.get_history(OrderEvent.JOB_COMPLETED)

    @pytest.mark.asyncio
    async def test_incremental_sync_job(self):
        scheduler = BackgroundScheduler()
        sync_service = MagicMock()
        sync_service.incremental_sync = AsyncMock(return_value={"orders": 3, "items": 5})

        with patch("core.sync_service.get_sync_service", AsyncMock(return_value=sync_service)):
            result = await scheduler._run_incremental_sync()

        assert result == {"orders": 3, "items": 5}

    @pytest.mark.asyncio
    async def test_checkpoint_job(self):
        scheduler = BackgroundScheduler()
        store = MagicMock()
        store.checkpoint = AsyncMock()

        with patch("core.duckdb_store.get_store", AsyncMock(return_value=store)):
            result = await scheduler._run_checkpoint()

        assert result == {"checkpoint": True}
        store.checkpoint.assert_awaited_once()
