"""Per-interval rates from cumulative counters."""

import logging
import threading
from typing import Dict, Hashable, Iterable, Optional

logger = logging.getLogger(__name__)


class RateCalculator:
    """Turn cumulative counters into per-interval deltas.

    The collection interval is fixed, so the delta between two consecutive
    samples already is the per-interval rate. Keys are either plain strings
    (host counters such as ``"total-rx"``) or ``(entity_id, direction)``
    tuples (container counters), which lets ``forget`` and ``reconcile``
    drop every direction of an entity at once.
    """

    def __init__(self) -> None:
        self._previous: Dict[Hashable, float] = {}
        self._lock = threading.Lock()

    def rate(self, key: Hashable, current: float) -> float:
        """Return the delta since the last sample for ``key``.

        Yields 0 when no baseline exists yet or the counter went backwards
        (daemon restart, counter wrap). The baseline is always advanced to
        ``current``, so a reset counter starts a fresh baseline.
        """
        with self._lock:
            previous = self._previous.get(key)
            self._previous[key] = current

        if previous is None:
            return 0.0
        if current < previous:
            logger.debug(f"Counter {key!r} went backwards ({previous} -> {current})")
            return 0.0
        return float(current - previous)

    def previous(self, key: Hashable) -> Optional[float]:
        """Return the stored baseline for ``key`` or None."""
        with self._lock:
            return self._previous.get(key)

    def forget(self, entity_id: str) -> None:
        """Drop every counter belonging to ``entity_id``."""
        with self._lock:
            for key in [k for k in self._previous if _entity_of(k) == entity_id]:
                del self._previous[key]

    def reconcile(self, current_ids: Iterable[str]) -> list[str]:
        """Drop counters of entities absent from ``current_ids``.

        Returns:
            Sorted list of entity ids that were dropped
        """
        alive = set(current_ids)
        with self._lock:
            stale = [k for k in self._previous if _entity_of(k) not in alive]
            for key in stale:
                del self._previous[key]
        return sorted({str(_entity_of(k)) for k in stale})

    def __len__(self) -> int:
        with self._lock:
            return len(self._previous)


def _entity_of(key: Hashable) -> Hashable:
    if isinstance(key, tuple) and key:
        return key[0]
    return key
