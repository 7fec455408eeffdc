"""
Risk-engine parameters for the margin lending pool dashboard.

All thresholds used by the classifier, solver, simulator and verdict live
here so every consumer compares against the same boundaries. Values can be
overridden from the environment (``MARGIN_RISK_*``) via ``load_params``.
"""

import os
from dataclasses import dataclass, field, replace

# Risk ratio reported for debt-free accounts by both Position.risk_ratio and
# RiskClassifier.risk_ratios. Not configurable.
ZERO_DEBT_RISK_RATIO = 999.0


@dataclass(frozen=True)
class RiskTierParams:
    """Tier boundaries, expressed as multiples of the liquidation threshold."""
    critical_multiplier: float = 1.2
    # Within 20% relative buffer of the threshold
    watch_multiplier: float = 1.25
    exposure_epsilon_usd: float = 0.01
    # |base collateral - base debt| at or below this is price-insensitive
    default_liquidation_threshold: float = 1.05
    # Protocol default when a pool has no positions to read it from


@dataclass(frozen=True)
class VerdictParams:
    """Pool health verdict cut-offs (price-move distances in percent)."""
    fragile_distance_pct: float = 5.0
    watch_distance_pct: float = 15.0
    critical_share_watch: float = 0.3
    # Share of positions in the Critical tier that forces Watch


@dataclass(frozen=True)
class ScenarioGridParams:
    """Base-asset price shocks shown on the scenario chart."""
    price_changes_pct: tuple = (-20.0, -15.0, -10.0, -5.0, 0.0, 5.0, 10.0)
    cliff_scan_start_pct: float = 0.0
    cliff_scan_end_pct: float = -50.0
    cliff_scan_step_pct: float = 2.0
    cliff_min_multiplier: float = 2.0
    # Debt-at-risk must at least double between steps to count as a cliff


@dataclass(frozen=True)
class RiskDistributionParams:
    """Risk-ratio histogram edges as multiples of the liquidation threshold."""
    edge_multipliers: tuple = (1.0, 1.05, 1.15, 1.4)
    labels: tuple = ("Liquidatable", "Critical", "Warning", "Safe", "Very Safe")


@dataclass(frozen=True)
class LiquidityStressParams:
    """What-if scenarios for the liquidity view."""
    target_utilization: float = 0.80
    borrow_increase: float = 0.20


@dataclass(frozen=True)
class HistoryParams:
    """Historical reconstruction window."""
    lookback_days: int = 30
    ranges: dict = field(default_factory=lambda: {"7D": 7, "1M": 30})

    def days_for(self, time_range: str | None) -> int:
        if time_range is None:
            return self.lookback_days
        return int(self.ranges.get(time_range.upper(), self.lookback_days))


ENV_PREFIX = "MARGIN_RISK_"

# Environment variable suffix -> (params key, field name)
_ENV_OVERRIDES = {
    "CRITICAL_MULTIPLIER": ("risk_tiers", "critical_multiplier"),
    "WATCH_MULTIPLIER": ("risk_tiers", "watch_multiplier"),
    "EXPOSURE_EPSILON_USD": ("risk_tiers", "exposure_epsilon_usd"),
    "DEFAULT_LIQUIDATION_THRESHOLD": ("risk_tiers", "default_liquidation_threshold"),
    "FRAGILE_DISTANCE_PCT": ("verdict", "fragile_distance_pct"),
    "WATCH_DISTANCE_PCT": ("verdict", "watch_distance_pct"),
    "CRITICAL_SHARE_WATCH": ("verdict", "critical_share_watch"),
    "TARGET_UTILIZATION": ("liquidity_stress", "target_utilization"),
    "BORROW_INCREASE": ("liquidity_stress", "borrow_increase"),
}


def _env_float(name: str, default: float) -> float:
    value = os.getenv(name)
    if value is None:
        return default
    try:
        return float(value)
    except ValueError:
        return default


def _env_int(name: str, default: int) -> int:
    value = os.getenv(name)
    if value is None:
        return default
    try:
        return int(value)
    except ValueError:
        return default


def _env_grid(name: str, default: tuple) -> tuple:
    """Parse a comma-separated list of percentages, e.g. ``-30,-10,0,10``."""
    value = os.getenv(name)
    if not value:
        return default
    try:
        grid = tuple(float(part) for part in value.split(",") if part.strip())
    except ValueError:
        return default
    return grid or default


def load_params() -> dict:
    """
    Build the parameter set, applying ``MARGIN_RISK_*`` environment overrides.

    Entry points call ``load_dotenv`` before this, so a local ``.env`` file
    works the same as exported variables. Unparseable values keep defaults.
    """
    params = {
        "risk_tiers": RiskTierParams(),
        "verdict": VerdictParams(),
        "scenario_grid": ScenarioGridParams(),
        "risk_distribution": RiskDistributionParams(),
        "liquidity_stress": LiquidityStressParams(),
        "history": HistoryParams(),
    }

    for suffix, (key, attr) in _ENV_OVERRIDES.items():
        current = getattr(params[key], attr)
        value = _env_float(ENV_PREFIX + suffix, current)
        if value != current:
            params[key] = replace(params[key], **{attr: value})

    grid = _env_grid(ENV_PREFIX + "PRICE_GRID", SCENARIO_GRID.price_changes_pct)
    params["scenario_grid"] = replace(params["scenario_grid"], price_changes_pct=grid)
    params["history"] = replace(
        params["history"],
        lookback_days=_env_int(ENV_PREFIX + "LOOKBACK_DAYS", HISTORY.lookback_days),
    )
    return params


# Convenient default instances (used throughout codebase)
RISK_TIERS = RiskTierParams()
VERDICT = VerdictParams()
SCENARIO_GRID = ScenarioGridParams()
RISK_DISTRIBUTION = RiskDistributionParams()
LIQUIDITY_STRESS = LiquidityStressParams()
HISTORY = HistoryParams()
