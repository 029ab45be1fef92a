"""Tests for tick orchestration (harborwatch/services/collector.py)."""

from unittest.mock import patch

import pytest
import requests

from harborwatch.services.collector import Collector
from harborwatch.services.container_monitor import ContainerMonitorService
from harborwatch.services.history_store import HOST_KEY
from harborwatch.services.host_stats import HostStatsService
from harborwatch.services.name_mapping import ContainerNameMapper

C1 = "c1" * 32
C2 = "c2" * 32


@pytest.fixture
def collector(docker_service, fake_psutil, history, rates, publisher):
    containers = ContainerMonitorService(docker_service, ContainerNameMapper(), history, rates)
    host = HostStatsService(history=history, provider=fake_psutil, cpu_model_reader=dict)
    return Collector(containers, host, history, rates, publisher)


class TestTick:
    """Test suite for Collector.tick()."""

    async def test_publishes_snapshot(self, collector, publisher):
        snapshot = await collector.tick()

        assert publisher.current() is snapshot
        assert snapshot.tick == 1
        assert snapshot.collected_at > 0
        assert [c.name for c in snapshot.containers] == ["web"]
        assert snapshot.system_info.running_containers == 1
        assert snapshot.system_info.total_ram == 8192.0
        assert collector.last_tick_duration is not None

    async def test_tick_counter_increments(self, collector):
        await collector.tick()
        snapshot = await collector.tick()
        assert snapshot.tick == 2
        assert collector.tick_count == 2

    async def test_containers_sorted_by_name(self, collector, mock_api_client):
        mock_api_client.containers.return_value = [
            {"Id": "z" * 64, "Names": ["/zeta"], "State": "running"},
            {"Id": "a" * 64, "Names": ["/alpha"], "State": "exited"},
        ]

        snapshot = await collector.tick()

        assert [c.name for c in snapshot.containers] == ["alpha", "zeta"]
        # Status comes from inspect, which reports running for both here
        assert snapshot.system_info.running_containers == 2

    async def test_running_count_uses_record_status(self, collector, mock_api_client, inspect_payload):
        mock_api_client.inspect_container.return_value = inspect_payload(status="exited")
        snapshot = await collector.tick()
        assert snapshot.system_info.running_containers == 0


class TestFailureIsolation:
    """Container and host failures degrade independently."""

    async def test_enumeration_failure_still_publishes_host(self, collector, mock_api_client):
        mock_api_client.containers.side_effect = requests.exceptions.ConnectionError("refused")

        snapshot = await collector.tick()

        assert snapshot.tick == 1
        assert snapshot.containers == ()
        assert snapshot.system_info.memory_info["total"] == 8192 * 1024 * 1024
        assert snapshot.system_info.running_containers == 0

    async def test_enumeration_failure_skips_reconcile(self, collector, mock_api_client, history):
        await collector.tick()
        assert C1 in history

        mock_api_client.containers.side_effect = requests.exceptions.ConnectionError("refused")
        await collector.tick()

        assert C1 in history

    async def test_host_failure_keeps_containers(self, collector, fake_psutil):
        fake_psutil.fail_memory = True

        snapshot = await collector.tick()

        assert len(snapshot.containers) == 1
        assert snapshot.system_info.total_ram == 0.0
        assert snapshot.system_info.resource_data.cpu[0].value == 0.0
        assert snapshot.system_info.running_containers == 1

    async def test_unexpected_error_keeps_previous_snapshot(self, collector, publisher):
        first = await collector.tick()

        with patch.object(collector.host, "build_record", side_effect=RuntimeError("bug")):
            result = await collector.tick()

        assert result is first
        assert publisher.current() is first


class TestReconcile:
    async def test_vanished_container_state_is_dropped(
        self, collector, mock_api_client, history, rates
    ):
        """A container gone after tick N has no history or rates after tick N+1."""
        mock_api_client.containers.return_value = [
            {"Id": C1, "Names": ["/one"], "State": "running"},
            {"Id": C2, "Names": ["/two"], "State": "running"},
        ]
        await collector.tick()
        assert C2 in history
        assert rates.previous((C2, "rx")) is not None

        mock_api_client.containers.return_value = [
            {"Id": C1, "Names": ["/one"], "State": "running"},
        ]
        snapshot = await collector.tick()

        assert [c.id for c in snapshot.containers] == [C1]
        assert C2 not in history
        assert rates.previous((C2, "rx")) is None
        assert rates.previous((C1, "rx")) is not None
        assert HOST_KEY in history
