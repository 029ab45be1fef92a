"""Docker runtime access and container metric derivations."""

import logging
import re
import threading
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any, Dict, List, Optional, Tuple

import docker
import requests
from docker.errors import APIError, DockerException, NotFound

from harborwatch.exceptions import (
    ContainerNotFoundError,
    DecodeFailureError,
    SourceUnavailableError,
)
from harborwatch.services.settings_service import SettingsService
from harborwatch.utils.security import short_id

logger = logging.getLogger(__name__)

BYTES_PER_MB = 1024 * 1024
NEVER_FINISHED = "0001-01-01T00:00:00Z"

_FRACTION_RE = re.compile(r"\.(\d+)")


@dataclass(frozen=True)
class ContainerSummary:
    """One entry of the container list call."""

    id: str
    names: Tuple[str, ...]
    state: str

    @property
    def raw_name(self) -> str:
        return self.names[0].lstrip("/") if self.names else self.id[:12]


@dataclass(frozen=True)
class ContainerDetail:
    """State fields of the container inspect call."""

    status: str
    running: bool
    started_at: str = ""
    finished_at: str = ""


@dataclass(frozen=True)
class ContainerStats:
    """Relevant parts of a one-shot container stats payload."""

    cpu_total_usage: int = 0
    precpu_total_usage: int = 0
    system_cpu_usage: int = 0
    presystem_cpu_usage: int = 0
    memory_usage: int = 0
    memory_limit: int = 0
    networks: Dict[str, Tuple[int, int]] = field(default_factory=dict)
    blkio_entries: Tuple[Tuple[str, int], ...] = ()


# ---------------------------------------------------------------------------
# Payload parsing
# ---------------------------------------------------------------------------


def parse_summary(entry: Any) -> ContainerSummary:
    """Parse one element of ``GET /containers/json``."""
    if not isinstance(entry, dict) or not entry.get("Id"):
        raise DecodeFailureError("docker", "container list entry without Id", entry)
    names = entry.get("Names") or []
    return ContainerSummary(
        id=str(entry["Id"]),
        names=tuple(str(n) for n in names),
        state=str(entry.get("State") or "unknown"),
    )


def parse_detail(payload: Any) -> ContainerDetail:
    """Parse the ``State`` block of ``GET /containers/{id}/json``."""
    if not isinstance(payload, dict) or not isinstance(payload.get("State"), dict):
        raise DecodeFailureError("docker", "inspect payload without State", payload)
    state = payload["State"]
    return ContainerDetail(
        status=str(state.get("Status") or "unknown"),
        running=bool(state.get("Running", False)),
        started_at=str(state.get("StartedAt") or ""),
        finished_at=str(state.get("FinishedAt") or ""),
    )


def parse_stats(payload: Any) -> ContainerStats:
    """Parse ``GET /containers/{id}/stats?stream=0``.

    Docker sends ``null`` for sections that do not apply (no networks on
    ``--network none``, no blkio entries on some cgroup v2 hosts), so every
    section is optional.
    """
    if not isinstance(payload, dict):
        raise DecodeFailureError("docker", "stats payload is not an object", payload)

    try:
        cpu_stats = payload.get("cpu_stats") or {}
        precpu_stats = payload.get("precpu_stats") or {}
        memory_stats = payload.get("memory_stats") or {}

        networks = {
            str(name): (int(net.get("rx_bytes", 0)), int(net.get("tx_bytes", 0)))
            for name, net in (payload.get("networks") or {}).items()
        }

        blkio = (payload.get("blkio_stats") or {}).get("io_service_bytes_recursive") or []
        blkio_entries = tuple(
            (str(entry.get("op", "")), int(entry.get("value", 0))) for entry in blkio
        )

        return ContainerStats(
            cpu_total_usage=int((cpu_stats.get("cpu_usage") or {}).get("total_usage", 0)),
            precpu_total_usage=int((precpu_stats.get("cpu_usage") or {}).get("total_usage", 0)),
            system_cpu_usage=int(cpu_stats.get("system_cpu_usage") or 0),
            presystem_cpu_usage=int(precpu_stats.get("system_cpu_usage") or 0),
            memory_usage=int(memory_stats.get("usage") or 0),
            memory_limit=int(memory_stats.get("limit") or 0),
            networks=networks,
            blkio_entries=blkio_entries,
        )
    except (AttributeError, TypeError, ValueError) as e:
        raise DecodeFailureError("docker", f"malformed stats payload: {e}", payload)


def parse_docker_timestamp(value: str) -> Optional[datetime]:
    """Parse an RFC 3339 timestamp as Docker prints it (nanosecond precision).

    Returns:
        Timezone-aware datetime, or None if the value cannot be parsed
    """
    if not value:
        return None
    text = value.strip().replace("Z", "+00:00")
    # datetime only keeps microseconds
    text = _FRACTION_RE.sub(lambda m: "." + m.group(1)[:6].ljust(6, "0"), text, count=1)
    try:
        parsed = datetime.fromisoformat(text)
    except ValueError:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=UTC)
    return parsed


# ---------------------------------------------------------------------------
# Derivations
# ---------------------------------------------------------------------------


def clamp_percent(value: float) -> float:
    """Clamp a percentage into [0, 100]."""
    if value != value:  # NaN
        return 0.0
    return max(0.0, min(100.0, value))


def calculate_cpu_percent(stats: ContainerStats) -> float:
    """CPU usage as a percentage of total host capacity.

    Docker returns the current and the trailing previous counter pair in
    every stats payload, so no state across ticks is needed.
    """
    cpu_delta = stats.cpu_total_usage - stats.precpu_total_usage
    system_delta = stats.system_cpu_usage - stats.presystem_cpu_usage
    if system_delta > 0 and cpu_delta > 0:
        return clamp_percent((cpu_delta / system_delta) * 100.0)
    return 0.0


def memory_mb(byte_count: int) -> float:
    """Convert bytes to MB (2^20)."""
    return byte_count / BYTES_PER_MB


def calculate_network_totals(stats: ContainerStats) -> Tuple[int, int]:
    """Sum rx/tx bytes across all interfaces."""
    rx_total = sum(rx for rx, _ in stats.networks.values())
    tx_total = sum(tx for _, tx in stats.networks.values())
    return rx_total, tx_total


def calculate_block_io(stats: ContainerStats) -> Tuple[int, int]:
    """Sum Read- and Write-tagged block I/O byte counters."""
    read_bytes = 0
    write_bytes = 0
    for op, value in stats.blkio_entries:
        op = op.lower()
        if op == "read":
            read_bytes += value
        elif op == "write":
            write_bytes += value
    return read_bytes, write_bytes


def calculate_uptime(detail: ContainerDetail, now: Optional[datetime] = None) -> int:
    """Seconds since the container started, 0 unless it is running."""
    if not detail.running:
        return 0
    started = parse_docker_timestamp(detail.started_at)
    if started is None:
        logger.debug(f"Unparseable StartedAt timestamp: {detail.started_at!r}")
        return 0
    now = now or datetime.now(UTC)
    return max(0, int((now - started).total_seconds()))


def calculate_finished_at(detail: ContainerDetail) -> int:
    """Epoch milliseconds of the last exit, 0 if running or never finished."""
    if detail.running or detail.status == "running":
        return 0
    if not detail.finished_at or detail.finished_at == NEVER_FINISHED:
        return 0
    finished = parse_docker_timestamp(detail.finished_at)
    if finished is None or finished.year <= 1:
        return 0
    return int(finished.timestamp() * 1000)


# ---------------------------------------------------------------------------
# Runtime client
# ---------------------------------------------------------------------------


class DockerStatsService:
    """Read-only access to the Docker Engine API.

    Wraps the low-level docker SDK client pinned to a fixed API version. All
    methods are blocking and are meant to be called from a worker thread.
    Third-party errors are translated into HarborWatch exceptions here.
    """

    def __init__(self, client: Optional[docker.APIClient] = None) -> None:
        self._client = client
        self._lock = threading.Lock()

    @property
    def client(self) -> docker.APIClient:
        """Lazily build the API client so import never touches the socket."""
        with self._lock:
            if self._client is None:
                base_url = SettingsService.get("docker_host")
                try:
                    self._client = docker.APIClient(
                        base_url=base_url,
                        version=SettingsService.get("docker_api_version"),
                        timeout=SettingsService.get_int("docker_timeout", 5),
                    )
                except DockerException as e:
                    raise SourceUnavailableError("docker", f"cannot create client for {base_url}: {e}")
            return self._client

    def list_containers(self) -> List[ContainerSummary]:
        """List all containers, including stopped ones."""
        try:
            payload = self.client.containers(all=True)
        except (APIError, DockerException, requests.exceptions.RequestException) as e:
            raise SourceUnavailableError("docker", f"listing containers failed: {e}")

        if not isinstance(payload, list):
            raise DecodeFailureError("docker", "container list is not an array", payload)
        return [parse_summary(entry) for entry in payload]

    def get_detail(self, container_id: str) -> ContainerDetail:
        """Inspect one container."""
        try:
            payload = self.client.inspect_container(container_id)
        except NotFound:
            raise ContainerNotFoundError(container_id)
        except (APIError, DockerException, requests.exceptions.RequestException) as e:
            raise SourceUnavailableError("docker", f"inspect {short_id(container_id)} failed: {e}")
        return parse_detail(payload)

    def get_stats(self, container_id: str) -> ContainerStats:
        """Fetch one stats sample (no stream) for a container."""
        try:
            payload = self.client.stats(container_id, stream=False)
        except NotFound:
            raise ContainerNotFoundError(container_id)
        except (APIError, DockerException, requests.exceptions.RequestException) as e:
            raise SourceUnavailableError("docker", f"stats {short_id(container_id)} failed: {e}")
        return parse_stats(payload)

    def close(self) -> None:
        """Close the underlying HTTP session."""
        with self._lock:
            if self._client is not None:
                self._client.close()
                self._client = None
