"""Single-slot holder for the most recent snapshot."""

import threading

from harborwatch.schemas.metrics import CombinedSnapshot


class SnapshotPublisher:
    """Hand the latest snapshot from the collector to any number of readers.

    Snapshots are immutable, so publishing is a reference swap and readers
    never observe a partially built snapshot.
    """

    def __init__(self) -> None:
        self._snapshot = CombinedSnapshot()
        self._lock = threading.Lock()

    def publish(self, snapshot: CombinedSnapshot) -> None:
        """Replace the held snapshot."""
        with self._lock:
            self._snapshot = snapshot

    def current(self) -> CombinedSnapshot:
        """Return the latest snapshot (an empty one before the first tick)."""
        with self._lock:
            return self._snapshot


# Global publisher instance
snapshot_publisher = SnapshotPublisher()
