"""Tests for parameter defaults and environment overrides."""

import pytest

from config.params import (
    HISTORY,
    RISK_TIERS,
    SCENARIO_GRID,
    ZERO_DEBT_RISK_RATIO,
    HistoryParams,
    load_params,
)


class TestDefaults:
    def test_tier_multipliers(self):
        assert RISK_TIERS.critical_multiplier == pytest.approx(1.2)
        assert RISK_TIERS.watch_multiplier > RISK_TIERS.critical_multiplier
        assert ZERO_DEBT_RISK_RATIO == 999.0
        assert not hasattr(RISK_TIERS, "zero_debt_ratio")

    def test_default_grid(self):
        assert SCENARIO_GRID.price_changes_pct == (-20.0, -15.0, -10.0, -5.0, 0.0, 5.0, 10.0)

    def test_history_ranges(self):
        assert HISTORY.days_for(None) == 30
        assert HISTORY.days_for("7D") == 7
        assert HISTORY.days_for("1m") == 30
        assert HistoryParams(lookback_days=14).days_for("unknown") == 14

    def test_load_params_without_env(self, monkeypatch):
        for name in ("MARGIN_RISK_CRITICAL_MULTIPLIER", "MARGIN_RISK_PRICE_GRID",
                     "MARGIN_RISK_LOOKBACK_DAYS"):
            monkeypatch.delenv(name, raising=False)
        params = load_params()
        assert params["risk_tiers"] == RISK_TIERS
        assert params["scenario_grid"] == SCENARIO_GRID


class TestEnvOverrides:
    def test_float_override(self, monkeypatch):
        monkeypatch.setenv("MARGIN_RISK_CRITICAL_MULTIPLIER", "1.3")
        monkeypatch.setenv("MARGIN_RISK_FRAGILE_DISTANCE_PCT", "8")
        params = load_params()
        assert params["risk_tiers"].critical_multiplier == pytest.approx(1.3)
        assert params["verdict"].fragile_distance_pct == pytest.approx(8.0)
        # untouched fields keep defaults
        assert params["risk_tiers"].watch_multiplier == RISK_TIERS.watch_multiplier

    def test_invalid_value_keeps_default(self, monkeypatch):
        monkeypatch.setenv("MARGIN_RISK_TARGET_UTILIZATION", "lots")
        assert load_params()["liquidity_stress"].target_utilization == pytest.approx(0.80)

    def test_price_grid(self, monkeypatch):
        monkeypatch.setenv("MARGIN_RISK_PRICE_GRID", "-30, -10,0,25")
        assert load_params()["scenario_grid"].price_changes_pct == (-30.0, -10.0, 0.0, 25.0)

    def test_bad_price_grid(self, monkeypatch):
        monkeypatch.setenv("MARGIN_RISK_PRICE_GRID", "-30,abc")
        assert load_params()["scenario_grid"].price_changes_pct == SCENARIO_GRID.price_changes_pct

    def test_lookback_days(self, monkeypatch):
        monkeypatch.setenv("MARGIN_RISK_LOOKBACK_DAYS", "14")
        history = load_params()["history"]
        assert history.lookback_days == 14
        assert history.days_for("7D") == 7
