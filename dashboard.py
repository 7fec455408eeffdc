"""
Dashboard orchestrator: runs the risk engine over one pool snapshot and
assembles a JSON-ready report.

Pipeline:
1. Pool filter (positions touching the selected margin pool)
2. Tier counts and risk-ratio distribution
3. Price-shock scenario grid + the selected shock
4. Nearest liquidation trigger (drop / rise) and cliff point
5. Pool verdict (robust / watch / fragile)
6. Liquidity history reconstruction and liquidity stress
7. Liquidation history (volume, rewards, bad debt)

Every run recomputes from scratch; callers poll and re-run on fresh data.
"""

import json
import logging
from dataclasses import asdict, dataclass, is_dataclass
from datetime import date, datetime, timezone
from enum import Enum

import numpy as np

from config.params import load_params
from data.snapshot_loader import PoolSnapshot
from models.liquidation_distance import DistanceToLiquidationSolver
from models.liquidation_history import aggregate_liquidations_by_day, summarize_liquidations
from models.liquidity_history import LiquidityHistoryReconstructor, liquidity_stress
from models.pool_verdict import PoolVerdictAggregator
from models.position_model import (
    filter_positions_for_pool,
    pool_liquidation_threshold,
    price_buffer_pct,
)
from models.risk_classifier import RiskClassifier
from models.stress_tests import PriceShockSimulator

LOGGER = logging.getLogger(__name__)

TOP_LIQUIDATABLE = 3


@dataclass
class DashboardOutput:
    """Complete dashboard output."""
    timestamp: str
    pool_summary: dict
    tier_counts: dict
    risk_distribution: list
    scenarios: list
    selected_scenario: dict
    nearest_trigger: dict
    verdict: dict
    cliff_point: dict | None
    top_liquidatable: list
    liquidity_history: list
    liquidity_stress: dict
    liquidation_history: dict
    warnings: list

    def to_dict(self) -> dict:
        return json.loads(self.to_json())

    def to_json(self, indent: int = 2) -> str:
        return json.dumps(asdict(self), indent=indent, default=_json_default)


def _json_default(obj):
    if isinstance(obj, Enum):
        return obj.value
    if isinstance(obj, np.ndarray):
        return obj.tolist()
    if isinstance(obj, (np.float64, np.float32)):
        return float(obj)
    if isinstance(obj, (np.int64, np.int32)):
        return int(obj)
    raise TypeError(f"Object of type {type(obj)} is not JSON serializable")


def _plain(obj) -> dict:
    """Dataclass -> dict with enums flattened to their values."""
    data = asdict(obj) if is_dataclass(obj) else dict(obj)
    return {k: (v.value if isinstance(v, Enum) else v) for k, v in data.items()}


def _finite(value: float | None) -> float | None:
    if value is None or not np.isfinite(value):
        return None
    return float(value)


class Dashboard:
    """
    Wires the engine components for a single pool snapshot.

    All components are stateless; the instance only holds parameters and the
    snapshot, so ``run`` can be called repeatedly with different shocks.
    """

    def __init__(self, snapshot: PoolSnapshot, params: dict | None = None,
                 pool_id: str | None = None):
        self.params = params if params is not None else load_params()
        self.snapshot = snapshot
        self.pool_id = pool_id or snapshot.pool_id

        self.classifier = RiskClassifier(self.params["risk_tiers"])
        self.solver = DistanceToLiquidationSolver(self.params["risk_tiers"], self.classifier)
        self.simulator = PriceShockSimulator(self.classifier, self.params["scenario_grid"])
        self.aggregator = PoolVerdictAggregator(self.params["verdict"])
        self.reconstructor = LiquidityHistoryReconstructor()

        self.positions = filter_positions_for_pool(snapshot.positions, self.pool_id)
        if self.pool_id and not self.positions and snapshot.positions:
            LOGGER.warning("No positions reference pool %s", self.pool_id)

    def _pool_summary(self, threshold: float) -> dict:
        positions = self.positions
        return {
            "pool_id": self.pool_id,
            "position_count": len(positions),
            "liquidation_threshold": threshold,
            "total_collateral_usd": sum(p.collateral_value_usd for p in positions),
            "total_debt_usd": sum(p.debt_value_usd for p in positions),
            "supply_usd": self.snapshot.supply_usd,
            "borrow_usd": self.snapshot.borrow_usd,
            "liquidatable": _plain(self.solver.liquidatable_stats(positions)),
            "within_10pct_buffer": _plain(self.solver.positions_within_buffer(positions, 10.0)),
        }

    def _top_liquidatable(self) -> list[dict]:
        liquidatable = [p for p in self.positions if self.classifier.is_liquidatable(p)]
        liquidatable.sort(key=lambda p: p.debt_value_usd, reverse=True)
        return [
            {
                "id": p.id,
                "risk_ratio": p.risk_ratio,
                "debt_usd": p.debt_value_usd,
                "collateral_usd": p.collateral_value_usd,
                "price_buffer_pct": price_buffer_pct(p),
            }
            for p in liquidatable[:TOP_LIQUIDATABLE]
        ]

    def run(self, price_change_pct: float = 0.0, today: date | None = None,
            time_range: str | None = None) -> DashboardOutput:
        positions = self.positions
        threshold = pool_liquidation_threshold(
            positions, self.params["risk_tiers"].default_liquidation_threshold
        )

        tier_counts = self.classifier.classify_batch(positions)
        distribution = self.classifier.risk_distribution(
            positions, threshold, self.params["risk_distribution"]
        )

        scenarios = self.simulator.run_grid(positions)
        zero_shock = self.simulator.simulate(positions, 0.0)
        selected = self.simulator.simulate(positions, price_change_pct)

        nearest = self.solver.pool_nearest_trigger(positions)
        verdict = self.aggregator.verdict(zero_shock, nearest, len(positions))
        cliff = self.simulator.find_cliff_point(positions)
        closest = self.solver.closest_position(positions)

        days = self.params["history"].days_for(time_range)
        history = self.reconstructor.reconstruct_recent(
            self.snapshot.supply_usd,
            self.snapshot.borrow_usd,
            self.snapshot.flow_events,
            days=days,
            today=today,
        )
        stress = liquidity_stress(
            self.snapshot.supply_usd, self.snapshot.borrow_usd, self.params["liquidity_stress"]
        )

        liquidations = self.snapshot.liquidation_events
        return DashboardOutput(
            timestamp=datetime.now(timezone.utc).isoformat(),
            pool_summary=self._pool_summary(threshold),
            tier_counts={tier.value: count for tier, count in tier_counts.items()},
            risk_distribution=[
                {**asdict(b), "max_ratio": _finite(b.max_ratio)} for b in distribution
            ],
            scenarios=[_plain(s) for s in scenarios],
            selected_scenario=_plain(selected),
            nearest_trigger={
                "drop_pct": nearest.drop_pct,
                "rise_pct": nearest.rise_pct,
                "closest_position_id": closest.id if closest else None,
                "closest_position_buffer_pct": price_buffer_pct(closest) if closest else None,
            },
            verdict=_plain(verdict),
            cliff_point=_plain(cliff) if cliff else None,
            top_liquidatable=self._top_liquidatable(),
            liquidity_history=[
                {
                    **asdict(s),
                    "available_liquidity_usd": s.available_liquidity_usd,
                    "utilization_pct": s.utilization_pct,
                }
                for s in history
            ],
            liquidity_stress=asdict(stress),
            liquidation_history={
                "daily": [asdict(d) for d in aggregate_liquidations_by_day(liquidations)],
                "summary": asdict(summarize_liquidations(liquidations)),
            },
            warnings=list(self.snapshot.metadata.warnings),
        )
