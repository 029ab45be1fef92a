"""Tests for sparkline spike flagging (harborwatch/utils/spikes.py)."""

import pytest

from harborwatch.utils.spikes import is_spike, median_mad


class TestMedianMad:
    def test_empty(self):
        assert median_mad([]) == (0.0, 0.0)

    def test_values(self):
        med, mad = median_mad([1.0, 2.0, 3.0, 4.0, 100.0])
        assert med == 3.0
        assert mad == 1.0


class TestIsSpike:
    """Test suite for is_spike()."""

    def test_short_history_never_flags(self):
        assert is_spike([10.0] * 5, 1000.0) is False

    def test_jump_over_flat_history(self):
        assert is_spike([10.0] * 10, 50.0) is True

    def test_small_wobble_over_flat_history(self):
        """Flat history has zero MAD; the relative floor keeps wobbles quiet."""
        assert is_spike([10.0] * 10, 12.0) is False

    def test_drop_is_not_a_spike(self):
        assert is_spike([50.0] * 20, 0.0) is False

    @pytest.mark.parametrize("value,expected", [(14.0, False), (200.0, True)])
    def test_noisy_history(self, value, expected):
        history = [10.0, 12.0, 9.0, 11.0, 10.0, 13.0, 8.0, 10.0, 12.0, 11.0]
        assert is_spike(history, value) is expected

    def test_min_jump_floor(self):
        history = [0.0] * 10
        assert is_spike(history, 5.0, min_jump=10.0) is False
        assert is_spike(history, 15.0, min_jump=10.0) is True
