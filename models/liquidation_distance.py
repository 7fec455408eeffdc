"""
Distance-to-liquidation solver.

For a position that is not yet liquidatable, solves the base-asset price move
``x`` (fraction) at which

    collateral + x * net_base_exposure == threshold * debt

i.e. ``x = (threshold * debt - collateral) / net_base_exposure``. This is the
same first-order model the price-shock simulator uses: the target collateral
is held fixed and only net base exposure responds to the move. A long-leaning
position (positive exposure) gets a drop trigger, a short-leaning one a rise
trigger. Exposure within ``exposure_epsilon_usd`` of zero has no finite
trigger under a pure base-price shock.
"""

from dataclasses import dataclass

from config.params import RISK_TIERS, RiskTierParams
from models.position_model import Position, price_buffer_pct
from models.risk_classifier import RiskClassifier


@dataclass(frozen=True)
class TriggerDistance:
    """Signed price moves in percent: ``drop_pct`` < 0, ``rise_pct`` > 0."""
    drop_pct: float | None = None
    rise_pct: float | None = None

    @property
    def nearest_abs_pct(self) -> float | None:
        """min(|drop|, rise), or None when neither trigger exists."""
        candidates = []
        if self.drop_pct is not None:
            candidates.append(abs(self.drop_pct))
        if self.rise_pct is not None:
            candidates.append(self.rise_pct)
        if not candidates:
            return None
        return min(candidates)

    @property
    def nearest_signed_pct(self) -> float | None:
        """The nearer of the two triggers, keeping its sign (drop wins ties)."""
        if self.drop_pct is None:
            return self.rise_pct
        if self.rise_pct is None or abs(self.drop_pct) <= self.rise_pct:
            return self.drop_pct
        return self.rise_pct


@dataclass
class BufferStats:
    """Count and USD totals for a group of positions."""
    count: int
    debt_usd: float
    collateral_usd: float


def _stats(positions: list[Position]) -> BufferStats:
    return BufferStats(
        count=len(positions),
        debt_usd=sum(p.debt_value_usd for p in positions),
        collateral_usd=sum(p.collateral_value_usd for p in positions),
    )


class DistanceToLiquidationSolver:
    """Inverse search for the nearest liquidation trigger, per position and pool-wide."""

    def __init__(self, params: RiskTierParams = RISK_TIERS,
                 classifier: RiskClassifier | None = None):
        self.exposure_epsilon_usd = params.exposure_epsilon_usd
        self.classifier = classifier or RiskClassifier(params)

    def change_needed(self, position: Position) -> float | None:
        """
        Fractional base price change that brings the ratio to the threshold.

        Returns None for debt-free or price-insensitive positions.
        """
        if not position.has_debt:
            return None
        exposure = position.net_base_exposure_usd
        if abs(exposure) <= self.exposure_epsilon_usd:
            return None
        target_collateral = position.liquidation_threshold * position.debt_value_usd
        return (target_collateral - position.collateral_value_usd) / exposure

    def nearest_trigger(self, position: Position) -> TriggerDistance:
        """
        Trigger distance for a single position.

        Liquidatable positions have zero distance and are reported elsewhere,
        so they (and debt-free ones) yield an empty ``TriggerDistance``.
        """
        if self.classifier.is_liquidatable(position):
            return TriggerDistance()
        change = self.change_needed(position)
        if change is None:
            return TriggerDistance()
        pct = change * 100.0
        if pct < 0.0:
            return TriggerDistance(drop_pct=pct)
        if pct > 0.0:
            return TriggerDistance(rise_pct=pct)
        return TriggerDistance()

    def pool_nearest_trigger(self, positions: list[Position]) -> TriggerDistance:
        """
        Reduce per-position triggers to the pool's nearest drop and nearest rise.

        The two reductions are independent: the drop closest to zero (max of
        negatives) and the smallest positive rise.
        """
        closest_drop = None
        closest_rise = None
        for position in positions:
            trigger = self.nearest_trigger(position)
            if trigger.drop_pct is not None:
                if closest_drop is None or trigger.drop_pct > closest_drop:
                    closest_drop = trigger.drop_pct
            if trigger.rise_pct is not None:
                if closest_rise is None or trigger.rise_pct < closest_rise:
                    closest_rise = trigger.rise_pct
        return TriggerDistance(drop_pct=closest_drop, rise_pct=closest_rise)

    def positions_within_buffer(self, positions: list[Position],
                                buffer_pct: float) -> BufferStats:
        """Non-liquidatable indebted positions whose price buffer is <= ``buffer_pct``."""
        selected = [
            p for p in positions
            if p.has_debt
            and not self.classifier.is_liquidatable(p)
            and price_buffer_pct(p) <= buffer_pct
        ]
        return _stats(selected)

    def liquidatable_stats(self, positions: list[Position]) -> BufferStats:
        return _stats([p for p in positions if self.classifier.is_liquidatable(p)])

    def closest_position(self, positions: list[Position]) -> Position | None:
        """Indebted, non-liquidatable position with the smallest price buffer."""
        candidates = [
            p for p in positions
            if p.has_debt and not self.classifier.is_liquidatable(p)
        ]
        if not candidates:
            return None
        return min(candidates, key=price_buffer_pct)
