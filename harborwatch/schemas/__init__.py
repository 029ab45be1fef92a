"""Pydantic schemas for published snapshots."""

from harborwatch.schemas.metrics import (
    CombinedSnapshot,
    ContainerRecord,
    HostRecord,
    MemoryPoint,
    MetricPoint,
    ResourceData,
)

__all__ = [
    "CombinedSnapshot",
    "ContainerRecord",
    "HostRecord",
    "MemoryPoint",
    "MetricPoint",
    "ResourceData",
]
