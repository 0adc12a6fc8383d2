"""Tests for indicator computation and bounded history."""

import pytest

from treasury.services.indicators import (
    NEUTRAL_RSI,
    average_volume,
    compute_indicators,
    compute_momentum,
    compute_rsi,
    is_liquidity_sufficient,
    is_volume_confirmed,
    push_bounded,
)


# ---------------------------------------------------------------------------
# History
# ---------------------------------------------------------------------------

class TestPushBounded:
    def test_appends_until_capacity(self):
        assert push_bounded([1.0, 2.0], 3.0, capacity=5) == [1.0, 2.0, 3.0]

    def test_evicts_oldest(self):
        assert push_bounded([1.0, 2.0, 3.0], 4.0, capacity=3) == [2.0, 3.0, 4.0]

    def test_does_not_mutate_input(self):
        history = [1.0]
        push_bounded(history, 2.0, capacity=5)
        assert history == [1.0]


# ---------------------------------------------------------------------------
# RSI
# ---------------------------------------------------------------------------

class TestRsi:
    def test_insufficient_history_is_neutral(self):
        assert compute_rsi([1.0] * 14, period=14) == NEUTRAL_RSI

    def test_only_gains_is_100(self):
        history = [float(i) for i in range(1, 17)]
        assert compute_rsi(history, period=14) == 100.0

    def test_only_losses_is_0(self):
        history = [float(i) for i in range(16, 0, -1)]
        assert compute_rsi(history, period=14) == 0.0

    def test_flat_history_is_100(self):
        # No losses at all
        assert compute_rsi([1.0] * 15, period=14) == 100.0

    def test_equal_gains_and_losses_is_50(self):
        history = [1.0, 2.0, 1.0, 2.0, 1.0]
        assert compute_rsi(history, period=4) == 50.0

    def test_uses_last_period_plus_one_samples(self):
        # A big early loss outside the window must not count
        history = [100.0, 1.0, 2.0, 3.0, 4.0, 5.0]
        assert compute_rsi(history, period=4) == 100.0

    def test_rounded_to_two_decimals(self):
        history = [1.0, 1.3, 1.2, 1.5, 1.1]
        rsi = compute_rsi(history, period=4)
        assert rsi == round(rsi, 2)
        assert 0 < rsi < 100


# ---------------------------------------------------------------------------
# Momentum
# ---------------------------------------------------------------------------

class TestMomentum:
    def test_insufficient_history(self):
        assert compute_momentum([1.0, 2.0], period=15) == 0.0

    def test_percent_change_from_period_back(self):
        history = [2.0, 9.0, 9.0, 3.0]
        # history[-4] == 2.0 -> 3.0 is +50%
        assert compute_momentum(history, period=4) == pytest.approx(50.0)

    def test_zero_past_price(self):
        assert compute_momentum([0.0, 1.0, 2.0], period=3) == 0.0


# ---------------------------------------------------------------------------
# Volume and liquidity
# ---------------------------------------------------------------------------

class TestVolume:
    def test_average_of_history(self):
        assert average_volume([100.0, 200.0, 300.0]) == pytest.approx(200.0)

    def test_empty_history_uses_fallback(self):
        assert average_volume([], fallback=42.0) == 42.0

    def test_confirmed_at_threshold(self):
        assert is_volume_confirmed(50.0, 100.0, 0.5) is True

    def test_rejected_below_threshold(self):
        assert is_volume_confirmed(49.9, 100.0, 0.5) is False

    def test_zero_average_fails_open(self):
        assert is_volume_confirmed(0.0, 0.0, 0.5) is True


class TestLiquidity:
    def test_trade_below_impact_limit(self):
        # 0.1 SOL * $100 = $10 < 5% of $1000 = $50
        assert is_liquidity_sufficient(1_000.0, 0.1, 100.0, 5.0) is True

    def test_trade_at_limit_is_insufficient(self):
        # $50 is not strictly below $50
        assert is_liquidity_sufficient(1_000.0, 0.5, 100.0, 5.0) is False

    def test_zero_liquidity(self):
        assert is_liquidity_sufficient(0.0, 0.1, 100.0, 5.0) is False


def test_compute_indicators_bundles_values():
    snap = compute_indicators([1.0, 2.0], [100.0, 300.0], current_volume=300.0, rsi_period=14)
    assert snap.rsi == NEUTRAL_RSI
    assert snap.avg_volume == pytest.approx(200.0)
    assert snap.current_volume == 300.0
    assert snap.to_dict()["avg_volume"] == 200.0
