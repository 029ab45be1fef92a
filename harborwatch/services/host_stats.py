"""Host resource metrics from the OS counters exposed by psutil."""

import logging
import os
import platform
import threading
import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Sequence, Tuple

import psutil

from harborwatch.exceptions import SourceUnavailableError
from harborwatch.schemas.metrics import HostRecord, MemoryPoint, MetricPoint, ResourceData
from harborwatch.services.docker_stats import BYTES_PER_MB, clamp_percent
from harborwatch.services.history_store import HOST_KEY, HistoryStore, MetricKind
from harborwatch.services.rate_calculator import RateCalculator
from harborwatch.utils.error_handling import log_and_continue
from harborwatch.utils.spikes import is_spike

logger = logging.getLogger(__name__)

CPU_TIME_FIELDS = (
    "user",
    "nice",
    "system",
    "idle",
    "iowait",
    "irq",
    "softirq",
    "steal",
    "guest",
    "guest_nice",
)

SPIKE_FLOORS = {
    MetricKind.CPU: 10.0,  # percent
    MetricKind.MEMORY: 5.0,  # percent
    MetricKind.DISK: 2.0,  # percent
    MetricKind.NETWORK: 256 * 1024.0,  # bytes per interval
}

_OS_ERRORS = (psutil.Error, OSError, RuntimeError, NotImplementedError)


@dataclass(frozen=True)
class HostReading:
    """Everything read from the OS during one tick, before history is applied."""

    cpu_percent: float = 0.0
    cpu_per_core: Tuple[float, ...] = ()
    memory_percent: float = 0.0
    memory_total_mb: float = 0.0
    disk_percent: float = 0.0
    disk_total_bytes: float = 0.0
    bytes_recv_per_interval: float = 0.0
    bytes_sent_per_interval: float = 0.0
    uptime: int = 0
    cpu_cores: int = 0
    coolify_disk_mb: float = 0.0
    cpu_info: Dict[str, Any] = field(default_factory=dict)
    memory_info: Dict[str, Any] = field(default_factory=dict)
    disk_info: Dict[str, Any] = field(default_factory=dict)
    network_info: Dict[str, Any] = field(default_factory=dict)


def cpu_total(times: Any) -> float:
    """Sum every CPU time bucket the platform reports."""
    return sum(float(getattr(times, name, 0.0) or 0.0) for name in CPU_TIME_FIELDS)


def usage_percent(prev: Tuple[float, float], curr: Tuple[float, float]) -> float:
    """CPU usage between two (total, idle) samples, clamped to [0, 100]."""
    total_delta = curr[0] - prev[0]
    idle_delta = curr[1] - prev[1]
    if total_delta <= 0:
        return 0.0
    return clamp_percent((1 - idle_delta / total_delta) * 100)


def directory_size_mb(path: str) -> float:
    """Total size of regular files below ``path`` in MB.

    A missing path, or one that is not a directory, counts as 0. Unreadable
    entries are skipped.
    """
    root = Path(path)
    if not root.is_dir():
        return 0.0

    total = 0
    for dirpath, _dirnames, filenames in os.walk(root):
        for filename in filenames:
            try:
                total += os.lstat(os.path.join(dirpath, filename)).st_size
            except OSError:
                continue
    return total / BYTES_PER_MB


def read_cpu_model() -> Dict[str, Any]:
    """Best-effort CPU model name and cache size from /proc/cpuinfo."""
    info = {"modelName": platform.processor() or platform.machine(), "cacheSize": 0}
    try:
        with open("/proc/cpuinfo", encoding="utf-8") as f:
            for line in f:
                key, _, value = line.partition(":")
                key = key.strip()
                if key == "model name":
                    info["modelName"] = value.strip()
                elif key == "cache size":
                    try:
                        info["cacheSize"] = int(value.strip().split()[0])
                    except (ValueError, IndexError):
                        pass
                elif not line.strip() and info["modelName"]:
                    break  # first processor block is enough
    except OSError:
        pass
    return info


class HostStatsService:
    """Sample host CPU, memory, disk, network and uptime once per tick.

    CPU usage is derived from successive cumulative time samples, so the
    first tick after start reports 0 and only sets the baseline. Network
    throughput goes through the host's own RateCalculator under the fixed
    keys ``"total-rx"`` and ``"total-tx"``.
    """

    def __init__(
        self,
        history: HistoryStore,
        provider: Any = psutil,
        disk_path: str = "/",
        coolify_paths: Sequence[str] = (),
        coolify_interval: float = 60.0,
        cpu_model_reader: Callable[[], Dict[str, Any]] = read_cpu_model,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.history = history
        self.provider = provider
        self.disk_path = disk_path
        self.coolify_paths = tuple(coolify_paths)
        self.coolify_interval = coolify_interval
        self.rates = RateCalculator()
        self._cpu_model_reader = cpu_model_reader
        self._cpu_model: Optional[Dict[str, Any]] = None
        self._clock = clock
        self._lock = threading.Lock()
        self._prev_total: Optional[Tuple[float, float]] = None
        self._prev_per_core: List[Tuple[float, float]] = []
        self._coolify_mb = 0.0
        self._coolify_scanned_at: Optional[float] = None

    # ------------------------------------------------------------------
    # Sampling
    # ------------------------------------------------------------------

    def read(self) -> HostReading:
        """Read all host counters. Blocking; run it in a worker thread.

        Raises:
            SourceUnavailableError: If memory, disk, boot time or CPU topology
                cannot be read
        """
        cpu_percent, per_core, cpu_times_pct = self._sample_cpu()

        try:
            vmem = self.provider.virtual_memory()
            swap = self.provider.swap_memory()
            disk = self.provider.disk_usage(self.disk_path)
            boot_time = self.provider.boot_time()
            logical = self.provider.cpu_count(logical=True) or 0
            physical = self.provider.cpu_count(logical=False) or logical
        except _OS_ERRORS as e:
            raise SourceUnavailableError("host", f"reading OS counters failed: {e}")

        rx_total, tx_total, interfaces = self._sample_network()
        rx_rate = self.rates.rate("total-rx", rx_total)
        tx_rate = self.rates.rate("total-tx", tx_total)

        cpu_info = dict(self._static_cpu_info())
        cpu_info.update(
            {
                "cores": physical,
                "threads": logical,
                "mhz": self._cpu_mhz(),
                "cpuTimes": cpu_times_pct,
            }
        )

        return HostReading(
            cpu_percent=cpu_percent,
            cpu_per_core=tuple(per_core),
            memory_percent=float(vmem.percent),
            memory_total_mb=vmem.total / BYTES_PER_MB,
            disk_percent=float(disk.percent),
            disk_total_bytes=float(disk.total),
            bytes_recv_per_interval=rx_rate,
            bytes_sent_per_interval=tx_rate,
            uptime=max(0, int(self._clock() - boot_time)),
            cpu_cores=int(logical),
            coolify_disk_mb=self.coolify_disk_usage(),
            cpu_info=cpu_info,
            memory_info={
                "total": vmem.total,
                "available": vmem.available,
                "used": vmem.used,
                "free": vmem.free,
                "usedPercent": (vmem.used / vmem.total * 100) if vmem.total else 0.0,
                "buffers": getattr(vmem, "buffers", 0),
                "cached": getattr(vmem, "cached", 0),
                "swapTotal": swap.total,
                "swapUsed": swap.used,
                "swapFree": swap.free,
                "swapUsedPercent": float(swap.percent),
            },
            disk_info={
                "path": self.disk_path,
                "total": disk.total,
                "free": disk.free,
                "used": disk.used,
                "usedPercent": float(disk.percent),
            },
            network_info={
                "totalBytesSent": tx_total,
                "totalBytesRecv": rx_total,
                "interfaces": interfaces,
            },
        )

    def coolify_disk_usage(self, force: bool = False) -> float:
        """Summed size (MB) of the configured Coolify directories.

        Walking docker volumes is expensive, so the value is rescanned at most
        every ``coolify_interval`` seconds.
        """
        now = time.monotonic()
        if (
            not force
            and self._coolify_scanned_at is not None
            and now - self._coolify_scanned_at < self.coolify_interval
        ):
            return self._coolify_mb

        total = 0.0
        for path in self.coolify_paths:
            try:
                total += directory_size_mb(path)
            except OSError as e:
                log_and_continue(logger, e, f"Could not size {path}", log_level="debug")
        self._coolify_mb = total
        self._coolify_scanned_at = now
        return total

    def _sample_cpu(self) -> Tuple[float, List[float], Dict[str, float]]:
        try:
            per_core_times = list(self.provider.cpu_times(percpu=True))
        except _OS_ERRORS as e:
            log_and_continue(logger, e, "Failed to get CPU times", log_level="error")
            return 0.0, [], {}

        current = [(cpu_total(t), float(getattr(t, "idle", 0.0))) for t in per_core_times]
        aggregate = (sum(c[0] for c in current), sum(c[1] for c in current))

        with self._lock:
            cpu_percent = usage_percent(self._prev_total, aggregate) if self._prev_total else 0.0

            if self._prev_per_core and len(self._prev_per_core) == len(current):
                per_core = [usage_percent(p, c) for p, c in zip(self._prev_per_core, current)]
            else:
                # First run or core hot-plug: report zeros and start over
                per_core = [0.0] * len(current)

            self._prev_total = aggregate
            self._prev_per_core = current

        return cpu_percent, per_core, self._cpu_time_shares(per_core_times, aggregate[0])

    @staticmethod
    def _cpu_time_shares(per_core_times: List[Any], total: float) -> Dict[str, float]:
        """Share of each CPU state in the cumulative time since boot, in percent."""
        if total <= 0:
            return {}
        shares = {}
        for name in CPU_TIME_FIELDS:
            value = sum(float(getattr(t, name, 0.0) or 0.0) for t in per_core_times)
            key = "guestNice" if name == "guest_nice" else name
            shares[key] = value / total * 100
        return shares

    def _sample_network(self) -> Tuple[int, int, Dict[str, Dict[str, int]]]:
        try:
            counters = self.provider.net_io_counters(pernic=True) or {}
        except _OS_ERRORS as e:
            raise SourceUnavailableError("host", f"reading network counters failed: {e}")

        interfaces = {
            name: {"bytesRecv": int(c.bytes_recv), "bytesSent": int(c.bytes_sent)}
            for name, c in counters.items()
        }
        rx_total = sum(i["bytesRecv"] for i in interfaces.values())
        tx_total = sum(i["bytesSent"] for i in interfaces.values())
        return rx_total, tx_total, interfaces

    def _static_cpu_info(self) -> Dict[str, Any]:
        if self._cpu_model is None:
            self._cpu_model = self._cpu_model_reader()
        return self._cpu_model

    def _cpu_mhz(self) -> float:
        try:
            freq = self.provider.cpu_freq()
        except _OS_ERRORS:
            return 0.0
        return float(freq.current) if freq else 0.0

    # ------------------------------------------------------------------
    # Records
    # ------------------------------------------------------------------

    def build_record(self, reading: HostReading, running_containers: int, timestamp: int) -> HostRecord:
        """Append the reading to the host history and build the published record."""
        network_rate = reading.bytes_recv_per_interval + reading.bytes_sent_per_interval

        self._append(MetricKind.CPU, MetricPoint, reading.cpu_percent, timestamp)
        self._append(
            MetricKind.MEMORY,
            MemoryPoint,
            reading.memory_percent,
            timestamp,
            total_memory=reading.memory_total_mb,
        )
        self._append(
            MetricKind.DISK,
            MetricPoint,
            reading.disk_percent,
            timestamp,
            total=reading.disk_total_bytes / BYTES_PER_MB,
        )
        self._append(MetricKind.NETWORK, MetricPoint, network_rate, timestamp)

        return HostRecord(
            resource_data=ResourceData(
                cpu=self.history.get(HOST_KEY, MetricKind.CPU),
                network=self.history.get(HOST_KEY, MetricKind.NETWORK),
                memory=self.history.get(HOST_KEY, MetricKind.MEMORY),
                disk=self.history.get(HOST_KEY, MetricKind.DISK),
                cpu_per_core=tuple(
                    MetricPoint(value=v, timestamp=timestamp) for v in reading.cpu_per_core
                ),
            ),
            coolify_disk_usage=MetricPoint(value=reading.coolify_disk_mb, timestamp=timestamp),
            uptime=reading.uptime,
            cpu_cores=reading.cpu_cores,
            total_ram=reading.memory_total_mb,
            total_disk=reading.disk_total_bytes,
            running_containers=running_containers,
            cpu_info=reading.cpu_info,
            memory_info=reading.memory_info,
            disk_info=reading.disk_info,
            network_info=reading.network_info,
            bytes_recv_per_second=reading.bytes_recv_per_interval,
            bytes_sent_per_second=reading.bytes_sent_per_interval,
            cpu_per_core=reading.cpu_per_core,
        )

    @staticmethod
    def zero_record(running_containers: int, timestamp: int) -> HostRecord:
        """Host record published when the OS counters could not be read."""
        zero = MetricPoint(value=0.0, timestamp=timestamp)
        return HostRecord(
            resource_data=ResourceData(
                cpu=(zero,),
                network=(zero,),
                memory=(MemoryPoint(value=0.0, timestamp=timestamp),),
                disk=(zero,),
            ),
            coolify_disk_usage=zero,
            running_containers=running_containers,
        )

    def _append(self, kind: MetricKind, point_cls, value: float, timestamp: int, **extra) -> None:
        spike = is_spike(self.history.values(HOST_KEY, kind), value, min_jump=SPIKE_FLOORS[kind])
        self.history.append(
            HOST_KEY, kind, point_cls(value=value, timestamp=timestamp, is_spike=spike, **extra)
        )
