"""
Risk classifier: risk ratio -> Liquidatable / Critical / Watch / Healthy.

Boundaries are inclusive (``<=``): a position exactly at its liquidation
threshold is Liquidatable, exactly at ``threshold * critical_multiplier`` is
Critical. Debt-free positions are always Healthy.

``classify`` is the scalar reference; ``classify_batch`` and
``tier_codes`` are the vectorised forms used for pool aggregates and must
agree with it position by position.
"""

from dataclasses import dataclass
from enum import Enum

import numpy as np

from config.params import (
    RISK_DISTRIBUTION,
    RISK_TIERS,
    ZERO_DEBT_RISK_RATIO,
    RiskDistributionParams,
    RiskTierParams,
)
from models.position_model import Position


class RiskTier(str, Enum):
    LIQUIDATABLE = "liquidatable"
    CRITICAL = "critical"
    WATCH = "watch"
    HEALTHY = "healthy"


# Ordered by severity; index == tier code used by the vectorised path.
TIER_ORDER = (RiskTier.LIQUIDATABLE, RiskTier.CRITICAL, RiskTier.WATCH, RiskTier.HEALTHY)


@dataclass
class RiskBucket:
    """One bar of the risk-ratio histogram."""
    band: str
    label: str
    min_ratio: float
    max_ratio: float
    count: int
    total_debt_usd: float
    is_liquidatable: bool


def position_arrays(positions: list[Position]) -> tuple[np.ndarray, ...]:
    """Column arrays (base_asset, quote_asset, base_debt, quote_debt, threshold)."""
    if not positions:
        empty = np.array([], dtype=float)
        return empty, empty, empty, empty, empty
    data = np.asarray(
        [
            (p.base_asset_usd, p.quote_asset_usd, p.base_debt_usd,
             p.quote_debt_usd, p.liquidation_threshold)
            for p in positions
        ],
        dtype=float,
    )
    return data[:, 0], data[:, 1], data[:, 2], data[:, 3], data[:, 4]


class RiskClassifier:
    """Pure tier classification against per-position liquidation thresholds."""

    def __init__(self, params: RiskTierParams = RISK_TIERS):
        self.critical_multiplier = params.critical_multiplier
        self.watch_multiplier = params.watch_multiplier

    def classify(self, position: Position) -> RiskTier:
        if not position.has_debt:
            return RiskTier.HEALTHY
        ratio = position.risk_ratio
        threshold = position.liquidation_threshold
        if ratio <= threshold:
            return RiskTier.LIQUIDATABLE
        if ratio <= threshold * self.critical_multiplier:
            return RiskTier.CRITICAL
        if ratio <= threshold * self.watch_multiplier:
            return RiskTier.WATCH
        return RiskTier.HEALTHY

    def is_liquidatable(self, position: Position) -> bool:
        return self.classify(position) is RiskTier.LIQUIDATABLE

    def risk_ratios(self, collateral: np.ndarray, debt: np.ndarray) -> np.ndarray:
        with np.errstate(divide="ignore", invalid="ignore"):
            ratios = collateral / debt
        return np.where(debt > 0.0, ratios, ZERO_DEBT_RISK_RATIO)

    def tier_codes(self, collateral: np.ndarray, debt: np.ndarray,
                   thresholds: np.ndarray) -> np.ndarray:
        """
        Vectorised ``classify``: returns indices into ``TIER_ORDER``.

        collateral, debt, thresholds: (n_positions,) USD values and thresholds
        """
        ratios = self.risk_ratios(collateral, debt)
        codes = np.full(ratios.shape, TIER_ORDER.index(RiskTier.HEALTHY), dtype=int)
        codes = np.where(ratios <= thresholds * self.watch_multiplier, 2, codes)
        codes = np.where(ratios <= thresholds * self.critical_multiplier, 1, codes)
        codes = np.where(ratios <= thresholds, 0, codes)
        return np.where(debt > 0.0, codes, TIER_ORDER.index(RiskTier.HEALTHY))

    def classify_batch(self, positions: list[Position]) -> dict[RiskTier, int]:
        """Count positions per tier; every tier is present, possibly with 0."""
        base_asset, quote_asset, base_debt, quote_debt, thresholds = position_arrays(positions)
        codes = self.tier_codes(base_asset + quote_asset, base_debt + quote_debt, thresholds)
        counts = np.bincount(codes, minlength=len(TIER_ORDER))
        return {tier: int(counts[i]) for i, tier in enumerate(TIER_ORDER)}

    def risk_distribution(
        self,
        positions: list[Position],
        liquidation_threshold: float,
        params: RiskDistributionParams = RISK_DISTRIBUTION,
    ) -> list[RiskBucket]:
        """
        Histogram of risk ratios with edges relative to the pool threshold.

        Buckets are upper-inclusive (``lo < ratio <= hi``), so the first bucket
        holds exactly the positions ``classify`` calls Liquidatable when they
        share the pool threshold. Debt-free positions land in the top bucket.
        """
        edges = [liquidation_threshold * m for m in params.edge_multipliers]
        lows = [0.0] + edges
        highs = edges + [float("inf")]

        buckets = []
        for i, (lo, hi) in enumerate(zip(lows, highs)):
            if i == 0:
                label = f"<= {hi:.2f}"
            elif np.isinf(hi):
                label = f"{lo:.2f}+"
            else:
                label = f"{lo:.2f}-{hi:.2f}"
            buckets.append(RiskBucket(
                band=params.labels[i] if i < len(params.labels) else label,
                label=label,
                min_ratio=lo,
                max_ratio=hi,
                count=0,
                total_debt_usd=0.0,
                is_liquidatable=(i == 0),
            ))

        if not positions:
            return buckets

        base_asset, quote_asset, base_debt, quote_debt, _ = position_arrays(positions)
        debt = base_debt + quote_debt
        ratios = self.risk_ratios(base_asset + quote_asset, debt)
        idx = np.searchsorted(np.asarray(edges, dtype=float), ratios, side="left")
        for bucket_idx, debt_usd in zip(idx, debt):
            bucket = buckets[int(bucket_idx)]
            bucket.count += 1
            bucket.total_debt_usd += float(debt_usd)
        return buckets
