"""
Tests for the background job scheduler registry.
"""

from unittest.mock import AsyncMock

import pytest
from apscheduler.triggers.interval import IntervalTrigger

from enrollment_hub.core import scheduler


@pytest.fixture(autouse=True)
def clean_registry():
    scheduler.clear_registry()
    yield
    scheduler.clear_registry()


@pytest.mark.asyncio
async def test_manual_trigger_returns_job_result():
    job = AsyncMock(return_value={"total_expired": 2})
    scheduler.register_job("sweep", job, IntervalTrigger(minutes=5))

    outcome = await scheduler.trigger_job_manually("sweep")

    assert outcome["status"] == "success"
    assert outcome["result"] == {"total_expired": 2}
    job.assert_awaited_once()


@pytest.mark.asyncio
async def test_manual_trigger_reports_errors():
    job = AsyncMock(side_effect=RuntimeError("database down"))
    scheduler.register_job("sweep", job, IntervalTrigger(minutes=5))

    outcome = await scheduler.trigger_job_manually("sweep")

    assert outcome["status"] == "error"
    assert outcome["error"] == "database down"


@pytest.mark.asyncio
async def test_unknown_job():
    with pytest.raises(ValueError, match="not found"):
        await scheduler.trigger_job_manually("missing")


@pytest.mark.asyncio
async def test_start_schedules_registered_jobs():
    scheduler.register_job("sweep", AsyncMock(), IntervalTrigger(minutes=5))

    running = await scheduler.start_scheduler()
    try:
        assert running.get_job("sweep") is not None
        [listed] = scheduler.list_registered_jobs()
        assert listed["job_id"] == "sweep"
        assert listed["next_run_time"] is not None
    finally:
        await scheduler.stop_scheduler()

    assert scheduler.get_scheduler() is None


def test_list_without_scheduler():
    scheduler.register_job("sweep", AsyncMock(), IntervalTrigger(minutes=5))

    assert scheduler.list_registered_jobs() == [{"job_id": "sweep", "next_run_time": None}]
