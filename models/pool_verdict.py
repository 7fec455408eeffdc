"""
Pool health verdict: robust / watch / fragile.

Derived only from the zero-shock scenario, the pool-wide nearest trigger and
the position count, so the same inputs always yield the same verdict.
"""

from dataclasses import dataclass
from enum import Enum

from config.params import VERDICT, VerdictParams
from models.liquidation_distance import TriggerDistance
from models.stress_tests import ScenarioResult


class PoolHealth(str, Enum):
    ROBUST = "robust"
    WATCH = "watch"
    FRAGILE = "fragile"


@dataclass(frozen=True)
class PoolVerdict:
    tier: PoolHealth
    nearest_trigger_pct: float | None
    label: str
    reason: str


def _plural(count: int, noun: str) -> str:
    return f"{count} {noun}{'' if count == 1 else 's'}"


class PoolVerdictAggregator:
    """Combines current liquidations and trigger distance into a verdict."""

    def __init__(self, params: VerdictParams = VERDICT):
        self.fragile_distance_pct = params.fragile_distance_pct
        self.watch_distance_pct = params.watch_distance_pct
        self.critical_share_watch = params.critical_share_watch

    def verdict(self, zero_shock: ScenarioResult, nearest: TriggerDistance,
                total_positions: int) -> PoolVerdict:
        """
        Rules, first match wins:
        1. any position liquidatable now -> fragile
        2. no positions -> robust
        3. nearest trigger < fragile distance -> fragile
        4. nearest trigger < watch distance, or critical share above limit -> watch
        5. otherwise robust
        """
        nearest_signed = nearest.nearest_signed_pct
        distance = nearest.nearest_abs_pct

        if zero_shock.liquidatable_count > 0:
            return PoolVerdict(
                tier=PoolHealth.FRAGILE,
                nearest_trigger_pct=nearest_signed,
                label="Fragile",
                reason=(
                    f"{_plural(zero_shock.liquidatable_count, 'position')} can be "
                    f"liquidated now (${zero_shock.total_debt_at_risk_usd:,.0f} debt)"
                ),
            )

        if total_positions <= 0:
            return PoolVerdict(
                tier=PoolHealth.ROBUST,
                nearest_trigger_pct=None,
                label="Robust",
                reason="No open positions - zero counterparty risk",
            )

        if distance is not None and distance < self.fragile_distance_pct:
            return PoolVerdict(
                tier=PoolHealth.FRAGILE,
                nearest_trigger_pct=nearest_signed,
                label="Fragile",
                reason=f"First liquidation at just {distance:.1f}% price move",
            )

        critical_share = zero_shock.critical_count / total_positions
        if distance is not None and distance < self.watch_distance_pct:
            return PoolVerdict(
                tier=PoolHealth.WATCH,
                nearest_trigger_pct=nearest_signed,
                label="Watch",
                reason=f"First liquidation at {distance:.1f}% price move",
            )
        if critical_share > self.critical_share_watch:
            return PoolVerdict(
                tier=PoolHealth.WATCH,
                nearest_trigger_pct=nearest_signed,
                label="Watch",
                reason=f"{critical_share:.0%} of positions are in the critical tier",
            )

        return PoolVerdict(
            tier=PoolHealth.ROBUST,
            nearest_trigger_pct=nearest_signed,
            label="Robust",
            reason="All positions well-collateralized",
        )
