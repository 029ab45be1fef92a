"""Collection tick orchestration."""

import asyncio
import logging
import time
from typing import List, Optional, Tuple

from harborwatch.exceptions import DecodeFailureError, SourceUnavailableError
from harborwatch.schemas.metrics import CombinedSnapshot, ContainerRecord
from harborwatch.services import metrics
from harborwatch.services.container_monitor import ContainerMonitorService, now_millis
from harborwatch.services.docker_stats import DockerStatsService
from harborwatch.services.history_store import HistoryStore
from harborwatch.services.host_stats import HostReading, HostStatsService
from harborwatch.services.name_mapping import ContainerNameMapper
from harborwatch.services.rate_calculator import RateCalculator
from harborwatch.services.settings_service import SettingsService
from harborwatch.services.snapshot_publisher import SnapshotPublisher, snapshot_publisher
from harborwatch.utils.error_handling import log_and_continue

logger = logging.getLogger(__name__)


class Collector:
    """Run one collection tick: containers and host, merge, reconcile, publish.

    The container pass and the host pass run concurrently and fail
    independently. Reconciliation uses the ids enumerated in the same tick,
    so a published snapshot never carries history of a vanished container.
    """

    def __init__(
        self,
        containers: ContainerMonitorService,
        host: HostStatsService,
        history: HistoryStore,
        rates: RateCalculator,
        publisher: SnapshotPublisher,
    ) -> None:
        self.containers = containers
        self.host = host
        self.history = history
        self.rates = rates
        self.publisher = publisher
        self.tick_count = 0
        self.last_tick_duration: Optional[float] = None

    @classmethod
    def from_settings(
        cls,
        name_mapper: Optional[ContainerNameMapper] = None,
        docker_service: Optional[DockerStatsService] = None,
        publisher: Optional[SnapshotPublisher] = None,
    ) -> "Collector":
        """Wire a collector from the environment settings."""
        history = HistoryStore(SettingsService.get_int("history_size", 60))
        rates = RateCalculator()
        containers = ContainerMonitorService(
            docker_service=docker_service or DockerStatsService(),
            name_mapper=name_mapper or ContainerNameMapper(),
            history=history,
            rates=rates,
            max_concurrency=SettingsService.get_int("max_concurrent_inspections", 16),
            call_timeout=SettingsService.get_float("docker_timeout", 5.0),
        )
        host = HostStatsService(
            history=history,
            disk_path=SettingsService.get("disk_path") or "/",
            coolify_paths=SettingsService.get_list("coolify_paths"),
            coolify_interval=SettingsService.get_float("coolify_disk_interval", 60.0),
        )
        return cls(containers, host, history, rates, publisher or snapshot_publisher)

    async def tick(self) -> CombinedSnapshot:
        """Collect, publish and return one snapshot. Never raises."""
        started = time.perf_counter()
        timestamp = now_millis()

        try:
            (records, ids), host_reading = await asyncio.gather(
                self._collect_containers(timestamp),
                self._read_host(),
            )

            if ids is not None:
                dropped = self.history.reconcile(ids)
                self.rates.reconcile(ids)
                if dropped:
                    logger.info(f"Dropped state for {len(dropped)} vanished containers")

            records = sorted(records, key=lambda r: (r.name, r.id))
            running = sum(1 for r in records if r.status == "running")

            if host_reading is None:
                host_record = HostStatsService.zero_record(running, timestamp)
            else:
                host_record = self.host.build_record(host_reading, running, timestamp)

            self.tick_count += 1
            snapshot = CombinedSnapshot(
                system_info=host_record,
                containers=tuple(records),
                tick=self.tick_count,
                collected_at=timestamp,
            )
            self.publisher.publish(snapshot)

            metrics.containers_total.set(len(records))
            metrics.containers_running.set(running)
            metrics.history_keys.set(len(self.history))
            metrics.ticks_total.inc()
            return snapshot
        except Exception as e:
            # Unexpected bug in the merge path; keep the previous snapshot and
            # let the scheduler fire the next tick
            log_and_continue(logger, e, "Collection tick failed", log_level="error", exc_info=True)
            metrics.tick_failures_total.labels(source="tick").inc()
            return self.publisher.current()
        finally:
            self.last_tick_duration = time.perf_counter() - started
            metrics.tick_duration.observe(self.last_tick_duration)
            logger.debug(f"Tick {self.tick_count} took {self.last_tick_duration:.3f}s")

    async def _collect_containers(
        self, timestamp: int
    ) -> Tuple[List[ContainerRecord], Optional[List[str]]]:
        """Container pass; ids are None when enumeration failed."""
        try:
            return await self.containers.collect(timestamp)
        except (SourceUnavailableError, DecodeFailureError) as e:
            log_and_continue(logger, e, "Error listing containers", log_level="error")
            metrics.tick_failures_total.labels(source="containers").inc()
            return [], None

    async def _read_host(self) -> Optional[HostReading]:
        try:
            return await asyncio.to_thread(self.host.read)
        except SourceUnavailableError as e:
            log_and_continue(logger, e, "Error collecting host metrics", log_level="error")
            metrics.tick_failures_total.labels(source="host").inc()
            return None

