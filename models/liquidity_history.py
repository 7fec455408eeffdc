"""
Historical liquidity reconstruction for a lending pool.

Only the current supply/borrow totals are known exactly. Past state is
derived by walking the supply/withdraw/borrow/repay deltas backward from the
present:

    supply event   -> supply was lower before it   (subtract)
    withdraw event -> supply was higher before it  (add back)
    borrow event   -> borrow was lower before it   (subtract)
    repay event    -> borrow was higher before it  (add back)

Running totals are clamped at zero after every step to absorb float drift.
The walk is a fold over the newest-first event list; no counters outlive a
call, so the same reconstructor can be reused across pools and ranges.
"""

from dataclasses import dataclass
from datetime import date, datetime, timedelta, timezone
from enum import Enum
from itertools import accumulate

import numpy as np

from config.params import LIQUIDITY_STRESS, LiquidityStressParams


class FlowType(str, Enum):
    SUPPLY = "supply"
    WITHDRAW = "withdraw"
    BORROW = "borrow"
    REPAY = "repay"


@dataclass(frozen=True)
class FlowEvent:
    timestamp_ms: int
    type: FlowType
    amount: float


@dataclass(frozen=True)
class DailySnapshot:
    """Pool state as of the start of a UTC calendar day."""
    date_key: str
    supply_usd: float
    borrow_usd: float
    is_today: bool = False

    @property
    def available_liquidity_usd(self) -> float:
        return max(0.0, self.supply_usd - self.borrow_usd)

    @property
    def utilization_pct(self) -> float:
        if self.supply_usd <= 0.0:
            return 0.0
        return min(max(self.borrow_usd / self.supply_usd * 100.0, 0.0), 100.0)


@dataclass(frozen=True)
class LiquidityStress:
    """What-if liquidity under higher utilization or borrow demand."""
    current_utilization_pct: float
    available_at_target_usd: float
    target_utilization_pct: float
    target_is_relevant: bool
    borrow_increase_usd: float
    available_after_increase_usd: float
    utilization_after_increase_pct: float


def utc_day(timestamp_ms: int) -> date:
    return datetime.fromtimestamp(timestamp_ms / 1000.0, tz=timezone.utc).date()


def day_start_ms(day: date) -> int:
    start = datetime(day.year, day.month, day.day, tzinfo=timezone.utc)
    return int(start.timestamp() * 1000)


def apply_event(state: tuple[float, float], event: FlowEvent) -> tuple[float, float]:
    """Forward effect of one event on (supply, borrow)."""
    supply, borrow = state
    if event.type is FlowType.SUPPLY:
        supply += event.amount
    elif event.type is FlowType.WITHDRAW:
        supply -= event.amount
    elif event.type is FlowType.BORROW:
        borrow += event.amount
    elif event.type is FlowType.REPAY:
        borrow -= event.amount
    return supply, borrow


def invert_event(state: tuple[float, float], event: FlowEvent) -> tuple[float, float]:
    """State just before ``event``, clamped at zero."""
    supply, borrow = state
    if event.type is FlowType.SUPPLY:
        supply -= event.amount
    elif event.type is FlowType.WITHDRAW:
        supply += event.amount
    elif event.type is FlowType.BORROW:
        borrow -= event.amount
    elif event.type is FlowType.REPAY:
        borrow += event.amount
    return max(0.0, supply), max(0.0, borrow)


class LiquidityHistoryReconstructor:
    """Daily supply/borrow series from a live snapshot plus flow events."""

    def reconstruct(
        self,
        current_supply: float,
        current_borrow: float,
        events: list[FlowEvent],
        range_start: date,
        range_end: date,
        today: date | None = None,
    ) -> list[DailySnapshot]:
        """
        One ``DailySnapshot`` per day in ``[range_start, range_end]``.

        A day with events records the state before its first event. A day
        without events repeats the nearest earlier day; the first day is seeded
        with the exact state at the start of ``range_start`` (events older than
        the range are not undone). ``today`` always shows the live totals.
        """
        if range_end < range_start:
            return []
        if today is None:
            today = datetime.now(timezone.utc).date()

        current = (max(0.0, float(current_supply)), max(0.0, float(current_borrow)))
        newest_first = sorted(events, key=lambda e: e.timestamp_ms, reverse=True)
        # states[i] is the pool state just after newest_first[i - 1] was undone
        states = list(accumulate(newest_first, invert_event, initial=current))

        day_states: dict[date, tuple[float, float]] = {}
        for event, state in zip(newest_first, states[1:]):
            # later writes are earlier in time within the same day
            day_states[utc_day(event.timestamp_ms)] = state

        range_start_ms = day_start_ms(range_start)
        n_in_range = sum(1 for e in newest_first if e.timestamp_ms >= range_start_ms)
        carry = states[n_in_range]

        snapshots = []
        day = range_start
        while day <= range_end:
            if day == today:
                carry = current
            elif day in day_states:
                carry = day_states[day]
            snapshots.append(DailySnapshot(
                date_key=day.isoformat(),
                supply_usd=carry[0],
                borrow_usd=carry[1],
                is_today=(day == today),
            ))
            day += timedelta(days=1)
        return snapshots

    def reconstruct_recent(
        self,
        current_supply: float,
        current_borrow: float,
        events: list[FlowEvent],
        days: int,
        today: date | None = None,
    ) -> list[DailySnapshot]:
        """Daily series from ``today - days`` through ``today`` inclusive."""
        if today is None:
            today = datetime.now(timezone.utc).date()
        return self.reconstruct(
            current_supply,
            current_borrow,
            events,
            range_start=today - timedelta(days=days),
            range_end=today,
            today=today,
        )


def to_series(snapshots: list[DailySnapshot]) -> dict[str, np.ndarray | list[str]]:
    """Column form of a snapshot list for charting."""
    return {
        "date": [s.date_key for s in snapshots],
        "supply_usd": np.asarray([s.supply_usd for s in snapshots], dtype=float),
        "borrow_usd": np.asarray([s.borrow_usd for s in snapshots], dtype=float),
        "available_liquidity_usd": np.asarray(
            [s.available_liquidity_usd for s in snapshots], dtype=float
        ),
        "utilization_pct": np.asarray([s.utilization_pct for s in snapshots], dtype=float),
    }


def liquidity_stress(supply: float, borrow: float,
                     params: LiquidityStressParams = LIQUIDITY_STRESS) -> LiquidityStress:
    """Available liquidity at the target utilization and after a borrow surge."""
    supply = max(0.0, float(supply))
    borrow = max(0.0, float(borrow))
    current_util_pct = DailySnapshot("", supply, borrow).utilization_pct

    available_at_target = supply - supply * params.target_utilization
    boosted_borrow = borrow * (1.0 + params.borrow_increase)
    util_after = boosted_borrow / supply * 100.0 if supply > 0.0 else 0.0

    return LiquidityStress(
        current_utilization_pct=current_util_pct,
        available_at_target_usd=available_at_target,
        target_utilization_pct=params.target_utilization * 100.0,
        target_is_relevant=current_util_pct < params.target_utilization * 100.0,
        borrow_increase_usd=borrow * params.borrow_increase,
        available_after_increase_usd=max(0.0, supply - boosted_borrow),
        utilization_after_increase_pct=min(util_after, 100.0),
    )
