"""Unit tests for pagepilot.browser.jitter."""

from __future__ import annotations

import random

import pytest

from pagepilot.browser.jitter import KEYSTROKE_DELAY_MS, FixedJitter, Jitter


class TestJitter:
    def test_delay_within_half_open_range(self) -> None:
        jitter = Jitter(random.Random(1))
        for _ in range(200):
            value = jitter.delay_ms(KEYSTROKE_DELAY_MS)
            assert 50 <= value < 200

    def test_seeded_is_reproducible(self) -> None:
        a = Jitter(random.Random(42))
        b = Jitter(random.Random(42))
        assert [a.fraction() for _ in range(5)] == [b.fraction() for _ in range(5)]

    def test_chance_zero_never_fires(self) -> None:
        jitter = Jitter(random.Random(3))
        assert not any(jitter.chance(0.0) for _ in range(100))


class TestFixedJitter:
    def test_replays_values_cyclically(self) -> None:
        jitter = FixedJitter([0.0, 0.5])
        assert [jitter.fraction() for _ in range(4)] == [0.0, 0.5, 0.0, 0.5]

    def test_low_end_of_range(self) -> None:
        assert FixedJitter([0.0]).delay_ms((500.0, 1500.0)) == 500.0

    def test_chance(self) -> None:
        assert FixedJitter([0.05]).chance(0.1) is True
        assert FixedJitter([0.5]).chance(0.1) is False

    @pytest.mark.parametrize("bad", [[], [1.0], [-0.1]])
    def test_rejects_invalid_values(self, bad) -> None:
        with pytest.raises(ValueError):
            FixedJitter(bad)
