"""
Margin position model: one account's collateral/debt split by base and
quote asset, already valued in USD by the upstream oracle step.

PRICE SENSITIVITY NOTE:
Only the base-asset legs (``base_asset_usd``, ``base_debt_usd``) move when
the base asset's price changes; quote legs are the price-stable numeraire.
This first-order model is shared by the distance solver and the price-shock
simulator (no debt accrual, no cross-asset correlation).
"""

from dataclasses import dataclass, replace

from config.params import RISK_TIERS, ZERO_DEBT_RISK_RATIO


@dataclass(frozen=True)
class Position:
    """Immutable, USD-valued snapshot of one margin account."""
    id: str
    base_asset_usd: float
    quote_asset_usd: float
    base_debt_usd: float
    quote_debt_usd: float
    liquidation_threshold: float
    base_margin_pool_id: str | None = None
    quote_margin_pool_id: str | None = None

    @property
    def collateral_value_usd(self) -> float:
        return self.base_asset_usd + self.quote_asset_usd

    @property
    def debt_value_usd(self) -> float:
        return self.base_debt_usd + self.quote_debt_usd

    @property
    def has_debt(self) -> bool:
        return self.debt_value_usd > 0.0

    @property
    def risk_ratio(self) -> float:
        """Collateral / debt, or the zero-debt sentinel when nothing is owed."""
        debt = self.debt_value_usd
        if debt <= 0.0:
            return ZERO_DEBT_RISK_RATIO
        return self.collateral_value_usd / debt

    @property
    def net_base_exposure_usd(self) -> float:
        """Positive = long the base asset, negative = short it."""
        return self.base_asset_usd - self.base_debt_usd

    def with_price_change(self, price_change_pct: float) -> "Position":
        """
        Return a new position with base legs scaled by ``1 + pct/100``.

        Quote legs are unchanged. Scaled legs are clamped at zero so shocks
        beyond -100% cannot produce negative balances.
        """
        multiplier = 1.0 + price_change_pct / 100.0
        return replace(
            self,
            base_asset_usd=max(0.0, self.base_asset_usd * multiplier),
            base_debt_usd=max(0.0, self.base_debt_usd * multiplier),
        )

    def touches_pool(self, pool_id: str) -> bool:
        return pool_id in (self.base_margin_pool_id, self.quote_margin_pool_id)


def price_buffer_pct(position: Position) -> float:
    """Relative headroom of the risk ratio above the liquidation threshold, in %."""
    threshold = position.liquidation_threshold
    if threshold <= 0.0:
        return 0.0
    return (position.risk_ratio - threshold) / threshold * 100.0


def filter_positions_for_pool(positions: list[Position],
                              pool_id: str | None) -> list[Position]:
    """Positions that borrow from or lend into ``pool_id`` (all if no id)."""
    if not pool_id:
        return list(positions)
    return [p for p in positions if p.touches_pool(pool_id)]


def pool_liquidation_threshold(positions: list[Position],
                               default: float = RISK_TIERS.default_liquidation_threshold) -> float:
    """Threshold for pool-level displays: read from the first position."""
    if not positions:
        return default
    return positions[0].liquidation_threshold
