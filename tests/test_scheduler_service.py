"""Tests for the collection scheduler (harborwatch/services/scheduler.py)."""

import asyncio
from datetime import timedelta
from unittest.mock import AsyncMock, MagicMock

import pytest
from apscheduler.triggers.interval import IntervalTrigger

from harborwatch.services import scheduler
from harborwatch.services.scheduler import JOB_ID, SchedulerService
from harborwatch.services.settings_service import SettingsService


@pytest.fixture
def mock_collector():
    collector = MagicMock()
    collector.tick = AsyncMock()
    collector.tick_count = 5
    collector.last_tick_duration = 0.25
    return collector


class TestSchedulerLifecycle:
    """Test suite for start/stop and job registration."""

    async def test_start_registers_interval_job(self, mock_collector):
        service = SchedulerService()
        await service.start(mock_collector)
        try:
            job = service.scheduler.get_job(JOB_ID)
            assert isinstance(job.trigger, IntervalTrigger)
            assert job.trigger.interval == timedelta(seconds=1)
            assert job.max_instances == 1
            assert job.coalesce is True
            assert service.get_status()["running"] is True
        finally:
            await service.stop()

        assert service.get_status()["running"] is False

    async def test_custom_interval(self, mock_collector):
        SettingsService.set("collection_interval", "2.5")
        service = SchedulerService()
        await service.start(mock_collector)
        try:
            job = service.scheduler.get_job(JOB_ID)
            assert job.trigger.interval == timedelta(seconds=2.5)
        finally:
            await service.stop()

    async def test_invalid_interval_falls_back(self, mock_collector):
        SettingsService.set("collection_interval", "0")
        service = SchedulerService()
        await service.start(mock_collector)
        try:
            assert service.get_status()["interval_seconds"] == 1.0
        finally:
            await service.stop()

    async def test_stop_without_start(self):
        service = SchedulerService()
        await service.stop()
        assert service.get_next_run_time() is None


class TestTickJob:
    async def test_run_tick_calls_collector(self, mock_collector):
        service = SchedulerService()
        service.collector = mock_collector

        await service._run_tick()

        mock_collector.tick.assert_awaited_once()
        status = service.get_status()
        assert status["last_tick"] is not None
        assert status["tick_count"] == 5
        assert status["last_tick_duration"] == 0.25

    async def test_run_tick_without_collector(self):
        service = SchedulerService()
        await service._run_tick()
        assert service.get_status()["tick_count"] == 0


class TestShutdownDrain:
    """Test suite for stop() while a tick is in flight."""

    async def test_stop_waits_for_running_tick(self, mock_collector):
        finished = []

        async def slow_tick():
            await asyncio.sleep(0.05)
            finished.append(True)

        mock_collector.tick = slow_tick
        service = SchedulerService()
        service.collector = mock_collector

        task = asyncio.create_task(service._run_tick())
        await asyncio.sleep(0)
        await service.stop()

        assert finished == [True]
        assert task.done()
        assert service.get_status()["last_tick"] is not None

    async def test_stop_cancels_tick_after_drain_timeout(self, mock_collector, monkeypatch):
        monkeypatch.setattr(scheduler, "SHUTDOWN_DRAIN_SECONDS", 0.01)

        async def stuck_tick():
            await asyncio.sleep(10)

        mock_collector.tick = stuck_tick
        service = SchedulerService()
        service.collector = mock_collector

        task = asyncio.create_task(service._run_tick())
        await asyncio.sleep(0)
        await service.stop()

        assert task.cancelled()
        assert service.get_status()["last_tick"] is None
