"""Tests for the HTTP surface (harborwatch/main.py, harborwatch/api/).

Tests:
- GET /health - Liveness
- GET /metrics - Prometheus metrics
- GET /api/v1/snapshot - Latest snapshot
- GET /api/v1/system/info - Collector status
"""

import pytest
from fastapi import status

from harborwatch import __version__
from harborwatch.schemas.metrics import CombinedSnapshot, ContainerRecord, HostRecord
from harborwatch.services.snapshot_publisher import snapshot_publisher


@pytest.fixture
def published_snapshot():
    """Publish a known snapshot into the global publisher."""
    snapshot = CombinedSnapshot(
        system_info=HostRecord(cpu_cores=4, running_containers=1),
        containers=(ContainerRecord(id="abc", name="web", status="running"),),
        tick=3,
        collected_at=1000,
    )
    snapshot_publisher.publish(snapshot)
    yield snapshot
    snapshot_publisher.publish(CombinedSnapshot())


class TestHealthEndpoint:
    async def test_health(self, client):
        response = await client.get("/health")
        assert response.status_code == status.HTTP_200_OK
        assert response.json() == {"status": "healthy", "service": "harborwatch"}

    async def test_security_headers(self, client):
        response = await client.get("/health")
        assert response.headers["X-Content-Type-Options"] == "nosniff"
        assert response.headers["X-Frame-Options"] == "DENY"
        assert "frame-ancestors 'none'" in response.headers["Content-Security-Policy"]

    async def test_root_without_dashboard_build(self, client):
        response = await client.get("/")
        assert response.status_code == status.HTTP_200_OK
        assert response.json()["stream"] == "/ws"


class TestMetricsEndpoint:
    async def test_prometheus_format(self, client):
        response = await client.get("/metrics")
        assert response.status_code == status.HTTP_200_OK
        assert response.headers["content-type"].startswith("text/plain")
        assert "harborwatch_ticks_total" in response.text
        assert "harborwatch_app_info" in response.text


class TestSnapshotEndpoint:
    """Test suite for GET /api/v1/snapshot."""

    async def test_returns_latest_snapshot(self, client, published_snapshot):
        response = await client.get("/api/v1/snapshot")

        assert response.status_code == status.HTTP_200_OK
        data = response.json()
        assert data["tick"] == 3
        assert data["systemInfo"]["cpuCores"] == 4
        assert data["containers"][0]["name"] == "web"

    async def test_empty_before_first_tick(self, client):
        response = await client.get("/api/v1/snapshot")
        data = response.json()
        assert data["tick"] == 0
        assert data["containers"] == []


class TestSystemInfoEndpoint:
    """Test suite for GET /api/v1/system/info."""

    async def test_system_info(self, client, published_snapshot):
        response = await client.get("/api/v1/system/info")

        assert response.status_code == status.HTTP_200_OK
        data = response.json()
        assert data["version"] == __version__
        assert data["scheduler"]["running"] is False
        assert data["scheduler"]["tick_count"] == 0
        assert data["last_snapshot"]["tick"] == 3
        assert data["last_snapshot"]["containers"] == 1
        assert "collection_interval" in data["settings"]
