"""Spike flagging for sparkline points."""

import statistics
from typing import Sequence

# Scale MAD -> approx stddev for normal dist.
MAD_TO_STD = 1.4826


def median_mad(values: Sequence[float]) -> tuple[float, float]:
    """Return (median, median absolute deviation) of ``values``."""
    if not values:
        return 0.0, 0.0
    med = statistics.median(values)
    mad = statistics.median(abs(v - med) for v in values)
    return float(med), float(mad)


def is_spike(
    history: Sequence[float],
    value: float,
    *,
    sigma: float = 4.0,
    min_samples: int = 10,
    min_jump: float = 1.0,
) -> bool:
    """Decide whether ``value`` stands out against recent ``history``.

    Uses a robust MAD threshold so one earlier spike does not mask the next.
    The jump must also exceed half the median (and ``min_jump``) so that a
    perfectly flat history does not flag every tiny wobble.

    Args:
        history: Previous values, oldest first
        value: Candidate value
        sigma: MAD-based sigma threshold multiplier
        min_samples: Minimum history length before anything is flagged
        min_jump: Absolute floor for the jump above the median
    """
    if len(history) < min_samples:
        return False
    med, mad = median_mad(history)
    floor = max(abs(med) * 0.5, min_jump)
    return value - med >= max(sigma * MAD_TO_STD * mad, floor)
