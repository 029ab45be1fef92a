"""Pytest configuration and fixtures."""

import os
from collections import namedtuple
from typing import AsyncGenerator
from unittest.mock import MagicMock

import pytest

# Keep test runs away from a real dashboard build
os.environ.setdefault("HARBORWATCH_STATIC_DIR", "/nonexistent-harborwatch-static")

from harborwatch.services.docker_stats import DockerStatsService
from harborwatch.services.history_store import HistoryStore
from harborwatch.services.rate_calculator import RateCalculator
from harborwatch.services.settings_service import SettingsService
from harborwatch.services.snapshot_publisher import SnapshotPublisher

MB = 1024 * 1024

CpuTimes = namedtuple(
    "CpuTimes", "user nice system idle iowait irq softirq steal guest guest_nice"
)
VirtualMemory = namedtuple(
    "VirtualMemory", "total available percent used free buffers cached"
)
SwapMemory = namedtuple("SwapMemory", "total used free percent")
DiskUsage = namedtuple("DiskUsage", "total used free percent")
NetIO = namedtuple("NetIO", "bytes_sent bytes_recv")
CpuFreq = namedtuple("CpuFreq", "current min max")


@pytest.fixture(autouse=True)
def reset_settings():
    """Drop setting overrides between tests."""
    SettingsService.reset()
    yield
    SettingsService.reset()


# ---------------------------------------------------------------------------
# Docker
# ---------------------------------------------------------------------------


def make_stats_payload(
    cpu_total=200,
    precpu_total=100,
    system=2000,
    presystem=1000,
    mem_usage=50 * MB,
    mem_limit=200 * MB,
    rx=0,
    tx=0,
    blkio=None,
):
    """Build a one-shot stats payload the way the Engine API returns it."""
    return {
        "cpu_stats": {"cpu_usage": {"total_usage": cpu_total}, "system_cpu_usage": system},
        "precpu_stats": {"cpu_usage": {"total_usage": precpu_total}, "system_cpu_usage": presystem},
        "memory_stats": {"usage": mem_usage, "limit": mem_limit},
        "networks": {"eth0": {"rx_bytes": rx, "tx_bytes": tx}},
        "blkio_stats": {"io_service_bytes_recursive": blkio},
    }


def make_inspect_payload(status="running", started_at="2024-01-01T00:00:00.123456789Z",
                         finished_at="0001-01-01T00:00:00Z"):
    return {
        "Id": "ignored",
        "State": {
            "Status": status,
            "Running": status == "running",
            "StartedAt": started_at,
            "FinishedAt": finished_at,
        },
    }


@pytest.fixture
def stats_payload():
    """Factory for container stats payloads."""
    return make_stats_payload


@pytest.fixture
def inspect_payload():
    """Factory for container inspect payloads."""
    return make_inspect_payload


@pytest.fixture
def mock_api_client():
    """Mock low-level docker APIClient with one running container."""
    client = MagicMock()
    client.containers.return_value = [
        {"Id": "c1" * 32, "Names": ["/web"], "State": "running"},
    ]
    client.inspect_container.return_value = make_inspect_payload()
    client.stats.return_value = make_stats_payload()
    return client


@pytest.fixture
def docker_service(mock_api_client):
    """DockerStatsService backed by the mock API client."""
    return DockerStatsService(client=mock_api_client)


# ---------------------------------------------------------------------------
# Host
# ---------------------------------------------------------------------------


class FakePsutil:
    """Stand-in for the psutil module with settable counters."""

    def __init__(self):
        self.per_cpu = [
            CpuTimes(100.0, 0.0, 50.0, 850.0, 0.0, 0.0, 0.0, 0.0, 0.0, 0.0),
            CpuTimes(100.0, 0.0, 50.0, 850.0, 0.0, 0.0, 0.0, 0.0, 0.0, 0.0),
        ]
        self.vmem = VirtualMemory(
            total=8192 * MB, available=4096 * MB, percent=50.0,
            used=4096 * MB, free=2048 * MB, buffers=512 * MB, cached=1024 * MB,
        )
        self.swap = SwapMemory(total=1024 * MB, used=0, free=1024 * MB, percent=0.0)
        self.disk = DiskUsage(total=100_000 * MB, used=25_000 * MB, free=75_000 * MB, percent=25.0)
        self.nics = {"eth0": NetIO(bytes_sent=1000, bytes_recv=5000)}
        self.boot = 1_000.0
        self.fail_cpu = False
        self.fail_memory = False

    def cpu_times(self, percpu=False):
        if self.fail_cpu:
            raise OSError("cpu times unavailable")
        return list(self.per_cpu)

    def cpu_count(self, logical=True):
        return 2 if logical else 1

    def cpu_freq(self):
        return CpuFreq(2400.0, 800.0, 3600.0)

    def virtual_memory(self):
        if self.fail_memory:
            raise OSError("meminfo unavailable")
        return self.vmem

    def swap_memory(self):
        return self.swap

    def disk_usage(self, path):
        return self.disk

    def net_io_counters(self, pernic=False):
        return dict(self.nics)

    def boot_time(self):
        return self.boot

    def set_interface(self, name, sent, recv):
        self.nics[name] = NetIO(bytes_sent=sent, bytes_recv=recv)

    def advance_cpu(self, busy, idle):
        """Add busy (user) and idle time to every core."""
        self.per_cpu = [
            t._replace(user=t.user + busy, idle=t.idle + idle) for t in self.per_cpu
        ]


@pytest.fixture
def fake_psutil():
    """Fake psutil provider."""
    return FakePsutil()


@pytest.fixture
def history():
    return HistoryStore()


@pytest.fixture
def rates():
    return RateCalculator()


@pytest.fixture
def publisher():
    return SnapshotPublisher()


# ---------------------------------------------------------------------------
# HTTP
# ---------------------------------------------------------------------------


@pytest.fixture
async def app():
    """Create FastAPI app for testing (lifespan is not run)."""
    from harborwatch.main import app as fastapi_app

    return fastapi_app


@pytest.fixture
async def client(app) -> AsyncGenerator:
    """Create test HTTP client."""
    from httpx import ASGITransport, AsyncClient

    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac
