"""Daily aggregation of executed liquidations, including bad debt."""

from dataclasses import dataclass

from models.liquidity_history import utc_day


@dataclass(frozen=True)
class LiquidationEvent:
    """One executed liquidation; amounts already scaled to token units."""
    timestamp_ms: int
    liquidation_amount: float
    pool_reward: float = 0.0
    pool_default: float = 0.0
    # Shortfall the pool absorbed (bad debt)


@dataclass
class DailyLiquidationStats:
    date_key: str
    liquidation_amount: float = 0.0
    liquidation_count: int = 0
    bad_debt: float = 0.0
    total_rewards: float = 0.0


@dataclass(frozen=True)
class LiquidationSummary:
    total_liquidations: int
    total_volume: float
    total_bad_debt: float
    total_rewards: float
    bad_debt_share_pct: float
    days_with_bad_debt: int


def aggregate_liquidations_by_day(events: list[LiquidationEvent]) -> list[DailyLiquidationStats]:
    """Group by UTC day, oldest day first."""
    by_day: dict[str, DailyLiquidationStats] = {}
    for event in events:
        key = utc_day(event.timestamp_ms).isoformat()
        stats = by_day.setdefault(key, DailyLiquidationStats(date_key=key))
        stats.liquidation_amount += event.liquidation_amount
        stats.liquidation_count += 1
        stats.bad_debt += event.pool_default
        stats.total_rewards += event.pool_reward
    return [by_day[key] for key in sorted(by_day)]


def summarize_liquidations(events: list[LiquidationEvent]) -> LiquidationSummary:
    daily = aggregate_liquidations_by_day(events)
    volume = sum(e.liquidation_amount for e in events)
    bad_debt = sum(e.pool_default for e in events)
    return LiquidationSummary(
        total_liquidations=len(events),
        total_volume=volume,
        total_bad_debt=bad_debt,
        total_rewards=sum(e.pool_reward for e in events),
        bad_debt_share_pct=(bad_debt / volume * 100.0) if volume > 0.0 else 0.0,
        days_with_bad_debt=sum(1 for d in daily if d.bad_debt > 0.0),
    )
