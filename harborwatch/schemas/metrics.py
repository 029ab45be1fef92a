"""Pydantic schemas for published telemetry snapshots.

All models are frozen: a snapshot is built once per tick and never mutated
after publication. Field names are snake_case in Python and camelCase on the
wire, matching what the dashboard consumes.

Units:
    - CPU points: percent of host capacity, clamped to [0, 100]
    - Host memory points: percent used in ``value``, total MB in ``total_memory``
    - Container memory points: MB used in ``value``, limit MB in ``total_memory``
    - Network points: bytes transferred during one collection interval
    - Host disk points: percent used in ``value``, total MB in ``total``
"""

from typing import Any, Dict, Optional, Tuple

from pydantic import BaseModel, Field
from pydantic.alias_generators import to_camel

_WIRE_CONFIG = {
    "frozen": True,
    "populate_by_name": True,
    "alias_generator": to_camel,
}


class MetricPoint(BaseModel):
    """One observation of a metric."""

    value: float = 0.0
    timestamp: int = 0  # epoch milliseconds
    is_spike: bool = False
    total: Optional[float] = None

    model_config = _WIRE_CONFIG


class MemoryPoint(BaseModel):
    """Memory observation carrying the capacity it is measured against."""

    value: float = 0.0
    timestamp: int = 0
    is_spike: bool = False
    total_memory: float = 0.0

    model_config = _WIRE_CONFIG


class ContainerRecord(BaseModel):
    """Per-container view published in every snapshot."""

    id: str
    name: str
    status: str
    cpu_usage: Tuple[MetricPoint, ...] = ()
    ram_usage: Tuple[MemoryPoint, ...] = ()
    network_rx_bytes: Tuple[MetricPoint, ...] = ()
    network_tx_bytes: Tuple[MetricPoint, ...] = ()
    uptime: int = 0  # seconds, 0 unless running
    finished_at: int = 0  # epoch milliseconds, 0 if running or never finished
    total_rx_bytes: int = 0
    total_tx_bytes: int = 0
    block_read: int = 0
    block_write: int = 0

    model_config = _WIRE_CONFIG


class ResourceData(BaseModel):
    """Host metric histories."""

    cpu: Tuple[MetricPoint, ...] = ()
    network: Tuple[MetricPoint, ...] = ()
    memory: Tuple[MemoryPoint, ...] = ()
    disk: Tuple[MetricPoint, ...] = ()
    cpu_per_core: Tuple[MetricPoint, ...] = ()

    model_config = _WIRE_CONFIG


class HostRecord(BaseModel):
    """Host-level view published in every snapshot."""

    resource_data: ResourceData = Field(default_factory=ResourceData)
    coolify_disk_usage: MetricPoint = Field(default_factory=MetricPoint)
    uptime: int = 0
    cpu_cores: int = 0
    total_ram: float = Field(default=0.0, alias="totalRAM")  # MB
    total_disk: float = 0.0  # bytes
    running_containers: int = 0
    cpu_info: Dict[str, Any] = Field(default_factory=dict)
    memory_info: Dict[str, Any] = Field(default_factory=dict)
    disk_info: Dict[str, Any] = Field(default_factory=dict)
    network_info: Dict[str, Any] = Field(default_factory=dict)
    bytes_recv_per_second: float = 0.0
    bytes_sent_per_second: float = 0.0
    cpu_per_core: Tuple[float, ...] = ()

    model_config = _WIRE_CONFIG


class CombinedSnapshot(BaseModel):
    """Unit of publication: host and containers as of one tick."""

    system_info: HostRecord = Field(default_factory=HostRecord)
    containers: Tuple[ContainerRecord, ...] = ()
    tick: int = 0
    collected_at: int = 0  # epoch milliseconds

    model_config = _WIRE_CONFIG

    def to_wire(self) -> Dict[str, Any]:
        """Serialize for the stream and the REST snapshot endpoint."""
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)
