"""UTC enforcement and naive-UTC timestamp tests."""

import importlib
import os
from datetime import datetime, timezone

import pytest

from animegen.core import timezone as tz_module
from animegen.core.timezone import utcnow
from animegen.models.generation_job import GenerationJob


def test_importing_timezone_module_pins_process_to_utc(monkeypatch):
    monkeypatch.setenv("TZ", "Asia/Tokyo")

    importlib.reload(tz_module)

    assert os.environ["TZ"] == "UTC"


def test_utcnow_is_naive_utc():
    before = datetime.now(timezone.utc).replace(tzinfo=None)
    now = utcnow()

    assert now.tzinfo is None
    assert abs((now - before).total_seconds()) < 5


@pytest.mark.asyncio
async def test_naive_timestamps_round_trip_through_database(uow_factory):
    """Naive UTC timestamps are accepted on write and come back unchanged."""
    heartbeat = datetime(2025, 1, 15, 12, 30, 0)

    async with await uow_factory() as uow:
        job = await uow.generation_jobs.add(
            GenerationJob(prompt="x", guidance=7.5, steps=20, width=1024, height=1024)
        )
        job.mark_processing()
        job.heartbeat_at = heartbeat
        await uow.generation_jobs.save(job)
        job_id = job.id

    async with await uow_factory() as uow:
        stored = await uow.generation_jobs.get_by_id(job_id)

    assert stored.heartbeat_at == heartbeat
    assert stored.created_at.tzinfo is None
