"""Bounded in-memory metric histories for sparkline display."""

import logging
import threading
from collections import deque
from enum import Enum
from typing import Deque, Dict, Iterable, Tuple, Union

from harborwatch.schemas.metrics import MemoryPoint, MetricPoint

logger = logging.getLogger(__name__)

DEFAULT_HISTORY_SIZE = 60  # 1 minute at a 1-second interval
HOST_KEY = "__host__"

Point = Union[MetricPoint, MemoryPoint]


class MetricKind(str, Enum):
    """Metric histories kept per key."""

    CPU = "cpu"
    MEMORY = "memory"
    NETWORK_RX = "network_rx"
    NETWORK_TX = "network_tx"
    NETWORK = "network"
    DISK = "disk"


class HistoryStore:
    """Ring buffers keyed by entity (container id or ``HOST_KEY``) and metric kind.

    Buffers are created lazily on the first append for a key and dropped
    together by ``evict`` or ``reconcile``. Every public method holds the
    store lock for the duration of one dictionary operation only.
    """

    def __init__(self, capacity: int = DEFAULT_HISTORY_SIZE) -> None:
        if capacity < 1:
            raise ValueError(f"History capacity must be positive, got {capacity}")
        self.capacity = capacity
        self._histories: Dict[str, Dict[MetricKind, Deque[Point]]] = {}
        self._lock = threading.Lock()

    def append(self, key: str, kind: MetricKind, point: Point) -> None:
        """Append ``point``, dropping the oldest point when the buffer is full."""
        with self._lock:
            per_key = self._histories.setdefault(key, {})
            buffer = per_key.get(kind)
            if buffer is None:
                buffer = deque(maxlen=self.capacity)
                per_key[kind] = buffer
            buffer.append(point)

    def get(self, key: str, kind: MetricKind) -> Tuple[Point, ...]:
        """Return a copy of the buffer, oldest first (empty if unknown)."""
        with self._lock:
            buffer = self._histories.get(key, {}).get(kind)
            return tuple(buffer) if buffer else ()

    def values(self, key: str, kind: MetricKind) -> Tuple[float, ...]:
        """Return just the point values, oldest first."""
        return tuple(point.value for point in self.get(key, kind))

    def evict(self, key: str) -> bool:
        """Remove every metric kind stored for ``key``.

        Returns:
            True if the key existed
        """
        with self._lock:
            return self._histories.pop(key, None) is not None

    def reconcile(self, current_keys: Iterable[str]) -> list[str]:
        """Remove every stored key not present in ``current_keys``.

        ``HOST_KEY`` is never removed.

        Returns:
            Sorted list of evicted keys
        """
        alive = set(current_keys)
        alive.add(HOST_KEY)
        with self._lock:
            stale = [key for key in self._histories if key not in alive]
            for key in stale:
                del self._histories[key]

        if stale:
            logger.debug(f"Evicted history for {len(stale)} vanished entities")
        return sorted(stale)

    def keys(self) -> list[str]:
        """Return all keys that currently hold history."""
        with self._lock:
            return sorted(self._histories)

    def __contains__(self, key: object) -> bool:
        with self._lock:
            return key in self._histories

    def __len__(self) -> int:
        with self._lock:
            return len(self._histories)
