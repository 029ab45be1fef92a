"""Origin allow-list checks for the snapshot stream handshake."""

from typing import Iterable, Optional


def normalize_origin(entry: str) -> str:
    """Strip an allow-list entry and give scheme-less entries ``http://``."""
    entry = entry.strip()
    if entry and entry != "*" and "://" not in entry:
        entry = f"http://{entry}"
    return entry


def is_origin_allowed(origin: Optional[str], allowed: Iterable[str]) -> bool:
    """Return True if ``origin`` matches an allow-list entry.

    An entry matches when the origin starts with it, so ``localhost`` admits
    ``http://localhost:5173``. A ``*`` entry admits any origin. Handshakes
    without an Origin header are never allowed.

    Args:
        origin: Value of the Origin request header
        allowed: Allow-list entries, e.g. ``["localhost", "https://dash.example.com"]``
    """
    if not origin:
        return False

    for entry in allowed:
        entry = normalize_origin(entry)
        if not entry:
            continue
        if entry == "*" or origin.startswith(entry):
            return True
    return False
