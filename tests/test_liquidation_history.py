"""Tests for daily liquidation aggregation."""

from datetime import datetime, timezone

import pytest

from models.liquidation_history import (
    LiquidationEvent,
    aggregate_liquidations_by_day,
    summarize_liquidations,
)


def _ts(day: int, hour: int = 12) -> int:
    return int(datetime(2024, 5, day, hour, tzinfo=timezone.utc).timestamp() * 1000)


EVENTS = [
    LiquidationEvent(_ts(3, 1), 500.0, pool_reward=10.0),
    LiquidationEvent(_ts(1), 1000.0, pool_reward=20.0, pool_default=50.0),
    LiquidationEvent(_ts(3, 23), 250.0, pool_reward=5.0, pool_default=25.0),
    LiquidationEvent(_ts(2), 100.0),
]


class TestAggregateByDay:
    def test_grouped_oldest_first(self):
        daily = aggregate_liquidations_by_day(EVENTS)
        assert [d.date_key for d in daily] == ["2024-05-01", "2024-05-02", "2024-05-03"]

    def test_daily_totals(self):
        day3 = aggregate_liquidations_by_day(EVENTS)[-1]
        assert day3.liquidation_count == 2
        assert day3.liquidation_amount == pytest.approx(750.0)
        assert day3.bad_debt == pytest.approx(25.0)
        assert day3.total_rewards == pytest.approx(15.0)

    def test_empty(self):
        assert aggregate_liquidations_by_day([]) == []


class TestSummary:
    def test_totals(self):
        summary = summarize_liquidations(EVENTS)
        assert summary.total_liquidations == 4
        assert summary.total_volume == pytest.approx(1850.0)
        assert summary.total_bad_debt == pytest.approx(75.0)
        assert summary.total_rewards == pytest.approx(35.0)
        assert summary.bad_debt_share_pct == pytest.approx(75.0 / 1850.0 * 100.0)
        assert summary.days_with_bad_debt == 2

    def test_no_liquidations(self):
        summary = summarize_liquidations([])
        assert summary.total_liquidations == 0
        assert summary.bad_debt_share_pct == 0.0
        assert summary.days_with_bad_debt == 0
