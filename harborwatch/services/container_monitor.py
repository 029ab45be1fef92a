"""Per-tick container inspection: fan out, fan in, merge into history."""

import asyncio
import logging
from dataclasses import dataclass
from datetime import UTC, datetime
from typing import List, Optional

from harborwatch.exceptions import (
    ContainerNotFoundError,
    DecodeFailureError,
    SourceUnavailableError,
)
from harborwatch.schemas.metrics import ContainerRecord, MemoryPoint, MetricPoint
from harborwatch.services import metrics
from harborwatch.services.docker_stats import (
    ContainerDetail,
    ContainerStats,
    ContainerSummary,
    DockerStatsService,
    calculate_block_io,
    calculate_cpu_percent,
    calculate_finished_at,
    calculate_network_totals,
    calculate_uptime,
    memory_mb,
)
from harborwatch.services.history_store import HistoryStore, MetricKind
from harborwatch.services.name_mapping import ContainerNameMapper
from harborwatch.services.rate_calculator import RateCalculator
from harborwatch.utils.error_handling import log_and_continue
from harborwatch.utils.security import sanitize_log_message, short_id
from harborwatch.utils.spikes import is_spike

logger = logging.getLogger(__name__)

# Minimum jump above the recent median before a point is flagged as a spike
SPIKE_FLOORS = {
    MetricKind.CPU: 10.0,  # percent
    MetricKind.MEMORY: 32.0,  # MB
    MetricKind.NETWORK_RX: 64 * 1024.0,  # bytes per interval
    MetricKind.NETWORK_TX: 64 * 1024.0,
}

_PROBE_ERRORS = (SourceUnavailableError, ContainerNotFoundError, DecodeFailureError)


@dataclass(frozen=True)
class ContainerProbe:
    """Raw result of inspecting one container during a tick.

    ``detail`` and ``stats`` are None when the respective call failed;
    ``failed_step`` then names the step ("container_detail" or
    "container_stats").
    """

    summary: ContainerSummary
    detail: Optional[ContainerDetail] = None
    stats: Optional[ContainerStats] = None
    failed_step: Optional[str] = None


class ContainerMonitorService:
    """Inspect every container once per tick and build its published record.

    Network probes run concurrently in worker threads; the results are merged
    into the shared history store and rate calculator by the caller's task
    after every probe completed, one container at a time.
    """

    def __init__(
        self,
        docker_service: DockerStatsService,
        name_mapper: ContainerNameMapper,
        history: HistoryStore,
        rates: RateCalculator,
        max_concurrency: int = 16,
        call_timeout: float = 5.0,
    ) -> None:
        self.docker = docker_service
        self.name_mapper = name_mapper
        self.history = history
        self.rates = rates
        self.max_concurrency = max(1, max_concurrency)
        self.call_timeout = call_timeout

    async def list_containers(self) -> List[ContainerSummary]:
        """Enumerate containers.

        Raises:
            SourceUnavailableError: If the daemon is unreachable or times out
            DecodeFailureError: If the daemon answered with garbage
        """
        try:
            return await asyncio.wait_for(
                asyncio.to_thread(self.docker.list_containers), timeout=self.call_timeout
            )
        except TimeoutError:
            raise SourceUnavailableError("docker", "listing containers timed out")

    async def probe(
        self, summary: ContainerSummary, semaphore: Optional[asyncio.Semaphore] = None
    ) -> ContainerProbe:
        """Fetch detail and stats for one container, never raising for source errors."""
        semaphore = semaphore or asyncio.Semaphore(1)
        async with semaphore:
            try:
                detail = await self._call(self.docker.get_detail, summary.id)
            except _PROBE_ERRORS as e:
                log_and_continue(
                    logger, e, f"Error getting detailed info for container {self._label(summary)}"
                )
                metrics.tick_failures_total.labels(source="container_detail").inc()
                return ContainerProbe(summary=summary, failed_step="container_detail")

            try:
                stats = await self._call(self.docker.get_stats, summary.id)
            except _PROBE_ERRORS as e:
                log_and_continue(
                    logger, e, f"Error getting stats for container {self._label(summary)}"
                )
                metrics.tick_failures_total.labels(source="container_stats").inc()
                return ContainerProbe(summary=summary, detail=detail, failed_step="container_stats")

        return ContainerProbe(summary=summary, detail=detail, stats=stats)

    async def probe_all(self, summaries: List[ContainerSummary]) -> List[ContainerProbe]:
        """Probe all containers concurrently, bounded by ``max_concurrency``."""
        if not summaries:
            return []
        semaphore = asyncio.Semaphore(self.max_concurrency)
        return list(await asyncio.gather(*(self.probe(s, semaphore) for s in summaries)))

    def build_record(
        self, probe: ContainerProbe, timestamp: int, now: Optional[datetime] = None
    ) -> ContainerRecord:
        """Turn a probe into a record, updating history and rate state on success."""
        summary = probe.summary
        name = self.name_mapper.display_name(summary.raw_name)

        if probe.detail is None or probe.stats is None:
            return self._zero_record(probe, name, timestamp, now)

        detail, stats = probe.detail, probe.stats
        container_id = summary.id

        cpu = calculate_cpu_percent(stats)
        ram = memory_mb(stats.memory_usage)
        rx_total, tx_total = calculate_network_totals(stats)
        rx_rate = self.rates.rate((container_id, "rx"), rx_total)
        tx_rate = self.rates.rate((container_id, "tx"), tx_total)
        block_read, block_write = calculate_block_io(stats)

        self._append(container_id, MetricKind.CPU, MetricPoint, cpu, timestamp)
        self._append(
            container_id,
            MetricKind.MEMORY,
            MemoryPoint,
            ram,
            timestamp,
            total_memory=memory_mb(stats.memory_limit),
        )
        self._append(container_id, MetricKind.NETWORK_RX, MetricPoint, rx_rate, timestamp)
        self._append(container_id, MetricKind.NETWORK_TX, MetricPoint, tx_rate, timestamp)

        return ContainerRecord(
            id=container_id,
            name=name,
            status=detail.status,
            cpu_usage=self.history.get(container_id, MetricKind.CPU),
            ram_usage=self.history.get(container_id, MetricKind.MEMORY),
            network_rx_bytes=self.history.get(container_id, MetricKind.NETWORK_RX),
            network_tx_bytes=self.history.get(container_id, MetricKind.NETWORK_TX),
            uptime=calculate_uptime(detail, now),
            finished_at=calculate_finished_at(detail),
            total_rx_bytes=rx_total,
            total_tx_bytes=tx_total,
            block_read=block_read,
            block_write=block_write,
        )

    async def collect(self, timestamp: Optional[int] = None) -> tuple[List[ContainerRecord], List[str]]:
        """Run one container collection pass.

        Returns:
            (records, enumerated container ids)

        Raises:
            SourceUnavailableError, DecodeFailureError: If enumeration failed
        """
        summaries = await self.list_containers()
        probes = await self.probe_all(summaries)

        timestamp = timestamp if timestamp is not None else now_millis()
        now = datetime.now(UTC)
        records = [self.build_record(probe, timestamp, now) for probe in probes]
        return records, [s.id for s in summaries]

    async def _call(self, func, container_id: str):
        try:
            return await asyncio.wait_for(
                asyncio.to_thread(func, container_id), timeout=self.call_timeout
            )
        except TimeoutError:
            raise SourceUnavailableError("docker", f"{func.__name__} timed out for {short_id(container_id)}")

    def _append(self, container_id: str, kind: MetricKind, point_cls, value: float, timestamp: int, **extra) -> None:
        spike = is_spike(
            self.history.values(container_id, kind), value, min_jump=SPIKE_FLOORS[kind]
        )
        self.history.append(
            container_id,
            kind,
            point_cls(value=value, timestamp=timestamp, is_spike=spike, **extra),
        )

    def _zero_record(
        self, probe: ContainerProbe, name: str, timestamp: int, now: Optional[datetime]
    ) -> ContainerRecord:
        """Record for a container whose detail or stats could not be fetched."""
        detail = probe.detail
        zero = MetricPoint(value=0.0, timestamp=timestamp)
        return ContainerRecord(
            id=probe.summary.id,
            name=name,
            status=detail.status if detail else probe.summary.state,
            cpu_usage=(zero,),
            ram_usage=(MemoryPoint(value=0.0, timestamp=timestamp, total_memory=0.0),),
            network_rx_bytes=(zero,),
            network_tx_bytes=(zero,),
            uptime=calculate_uptime(detail, now) if detail else 0,
            finished_at=calculate_finished_at(detail) if detail else 0,
        )

    @staticmethod
    def _label(summary: ContainerSummary) -> str:
        return f"{sanitize_log_message(summary.raw_name)} ({short_id(summary.id)})"


def now_millis() -> int:
    """Current wall-clock time in epoch milliseconds."""
    return int(datetime.now(UTC).timestamp() * 1000)
