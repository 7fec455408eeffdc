"""Dashboard, CLI and API integration tests over a small pool snapshot."""

import http.client
import json
import threading
from datetime import date, datetime, timezone
from http.server import ThreadingHTTPServer

import pytest

import api
import run_dashboard
from config.params import load_params
from dashboard import Dashboard
from data.snapshot_loader import snapshot_from_dict

TODAY = date(2024, 3, 10)


def _ms(day: int, hour: int = 12) -> int:
    return int(datetime(2024, 3, day, hour, tzinfo=timezone.utc).timestamp() * 1000)


def _payload() -> dict:
    return {
        "supply_usd": 1000.0,
        "borrow_usd": 600.0,
        "positions": [
            {"id": "long", "base_asset_usd": 200.0, "quote_asset_usd": 0.0,
             "base_debt_usd": 0.0, "quote_debt_usd": 150.0, "liquidation_threshold": 1.1,
             "base_margin_pool_id": "pool-sui", "quote_margin_pool_id": "pool-usdc"},
            {"id": "under", "base_asset_usd": 0.0, "quote_asset_usd": 100.0,
             "base_debt_usd": 0.0, "quote_debt_usd": 100.0, "liquidation_threshold": 1.1,
             "base_margin_pool_id": "pool-deep", "quote_margin_pool_id": "pool-usdc"},
            {"id": "safe", "base_asset_usd": 0.0, "quote_asset_usd": 1000.0,
             "base_debt_usd": 0.0, "quote_debt_usd": 100.0, "liquidation_threshold": 1.1,
             "base_margin_pool_id": "pool-sui", "quote_margin_pool_id": "pool-wal"},
            {"id": "free", "base_asset_usd": 50.0, "quote_asset_usd": 0.0,
             "base_debt_usd": 0.0, "quote_debt_usd": 0.0, "liquidation_threshold": 1.1,
             "base_margin_pool_id": "pool-sui", "quote_margin_pool_id": "pool-usdc"},
        ],
        "flow_events": [
            {"timestamp_ms": _ms(5), "type": "supply", "amount": 200.0},
            {"timestamp_ms": _ms(7), "type": "borrow", "amount": 100.0},
        ],
        "liquidation_events": [
            {"timestamp_ms": _ms(6), "liquidation_amount": 40.0,
             "pool_reward": 1.0, "pool_default": 0.5},
        ],
    }


def _run(pool_id=None, **kwargs):
    dashboard = Dashboard(snapshot_from_dict(_payload()), pool_id=pool_id)
    return dashboard.run(today=TODAY, **kwargs)


def test_full_pipeline_output_schema():
    output = _run(time_range="7D")
    data = json.loads(output.to_json())

    for key in ("timestamp", "pool_summary", "tier_counts", "risk_distribution",
                "scenarios", "selected_scenario", "nearest_trigger", "verdict",
                "cliff_point", "top_liquidatable", "liquidity_history",
                "liquidity_stress", "liquidation_history", "warnings"):
        assert key in data
    assert data["tier_counts"] == {"liquidatable": 1, "critical": 0, "watch": 1, "healthy": 2}
    assert len(data["scenarios"]) == 7
    assert data["risk_distribution"][-1]["max_ratio"] is None
    assert data["warnings"] == []


def test_current_state_verdict_and_trigger():
    output = _run()
    assert output.verdict["tier"] == "fragile"
    assert output.nearest_trigger["drop_pct"] == pytest.approx(-17.5)
    assert output.nearest_trigger["rise_pct"] is None
    assert output.nearest_trigger["closest_position_id"] == "long"
    assert [p["id"] for p in output.top_liquidatable] == ["under"]
    assert output.pool_summary["liquidatable"]["count"] == 1


def test_selected_scenario_reports_newly_liquidated():
    data = _run(price_change_pct=-20.0).to_dict()
    selected = data["selected_scenario"]
    assert selected["price_change_pct"] == pytest.approx(-20.0)
    assert selected["liquidatable_count"] == 2
    assert selected["positions_newly_liquidated"] == ["long"]


def test_cliff_point_at_first_new_liquidation():
    cliff = _run().cliff_point
    assert cliff["shock_pct"] == pytest.approx(-18.0)
    assert cliff["debt_multiplier"] == pytest.approx(2.5)


def test_pool_filter():
    output = _run(pool_id="pool-wal")
    assert output.pool_summary["position_count"] == 1
    assert output.verdict["tier"] == "robust"
    assert output.nearest_trigger["drop_pct"] is None

    assert _run(pool_id="pool-usdc").pool_summary["position_count"] == 3


def test_liquidity_history_window():
    output = _run(time_range="7D")
    history = output.liquidity_history
    assert len(history) == 8
    assert history[-1]["is_today"]
    assert history[-1]["supply_usd"] == pytest.approx(1000.0)
    assert history[-1]["utilization_pct"] == pytest.approx(60.0)
    assert output.liquidity_stress["available_at_target_usd"] == pytest.approx(200.0)
    assert output.liquidation_history["summary"]["total_liquidations"] == 1


def test_empty_snapshot():
    output = Dashboard(snapshot_from_dict({})).run(today=TODAY)
    data = output.to_dict()
    assert data["verdict"]["tier"] == "robust"
    assert data["cliff_point"] is None
    assert data["nearest_trigger"]["closest_position_id"] is None
    assert sum(data["tier_counts"].values()) == 0


def test_cli_json_output(tmp_path, capsys):
    path = tmp_path / "snapshot.json"
    path.write_text(json.dumps(_payload()))

    assert run_dashboard.main(["--input", str(path), "--json", "--price-change", "-10"]) == 0
    data = json.loads(capsys.readouterr().out)
    assert data["selected_scenario"]["price_change_pct"] == pytest.approx(-10.0)


def test_cli_text_output(tmp_path, capsys):
    path = tmp_path / "snapshot.json"
    path.write_text(json.dumps(_payload()))

    assert run_dashboard.main(["--input", str(path), "--range", "7D"]) == 0
    out = capsys.readouterr().out
    assert "POOL VERDICT" in out
    assert "PRICE SHOCK SCENARIOS" in out
    assert "[DATA] Loaded 4 positions" in out


def test_cli_missing_input(tmp_path, capsys):
    assert run_dashboard.main(["--input", str(tmp_path / "nope.json")]) == 1
    assert "[ERROR]" in capsys.readouterr().err


def test_api_risk_report():
    data = json.loads(api.run_risk_report(_payload(), pool_id="pool-usdc", price_change_pct=-20.0))
    assert data["pool_summary"]["position_count"] == 3
    assert data["selected_scenario"]["liquidatable_count"] == 2


def test_api_rejects_non_object_payload():
    with pytest.raises(ValueError):
        api.run_risk_report(["not", "a", "snapshot"])


def test_api_query_options():
    options = api._query_options({"pool_id": ["pool-usdc"], "price_change": ["-5"], "range": ["1M"]})
    assert options == {"pool_id": "pool-usdc", "price_change_pct": -5.0, "time_range": "1M"}
    with pytest.raises(ValueError):
        api._query_options({"price_change": ["abc"]})


def _reject_constant(name):
    raise ValueError(f"non-standard JSON constant {name}")


def test_non_finite_inputs_give_strict_json():
    payload = _payload()
    payload["supply_usd"] = "inf"
    payload["positions"][0]["base_asset_usd"] = "nan"
    payload["flow_events"][0]["amount"] = "NaN"

    text = Dashboard(snapshot_from_dict(payload)).run(today=TODAY).to_json()
    data = json.loads(text, parse_constant=_reject_constant)
    assert "NaN" not in text
    assert data["pool_summary"]["position_count"] == 4
    assert len(data["warnings"]) == 3


@pytest.mark.parametrize("timestamp", ["inf", 1e20])
def test_out_of_range_timestamps_skipped(timestamp):
    payload = _payload()
    payload["flow_events"].append({"timestamp_ms": timestamp, "type": "supply", "amount": 5.0})
    payload["liquidation_events"].append({"timestamp_ms": timestamp, "liquidation_amount": 5.0})

    output = Dashboard(snapshot_from_dict(payload)).run(today=TODAY, time_range="7D")
    assert output.liquidation_history["summary"]["total_liquidations"] == 1
    assert sum("invalid timestamp" in w for w in output.warnings) == 2

    data = json.loads(api.run_risk_report(payload))
    assert data["liquidation_history"]["summary"]["total_liquidations"] == 1


@pytest.fixture
def api_server():
    server = ThreadingHTTPServer(("127.0.0.1", 0), api.APIHandler)
    server.params = load_params()
    server.input_path = None
    thread = threading.Thread(target=server.serve_forever, daemon=True)
    thread.start()
    yield server.server_address
    server.shutdown()
    server.server_close()


def _post(address, body: bytes, content_length: str):
    conn = http.client.HTTPConnection(*address, timeout=10)
    try:
        conn.putrequest("POST", "/api/risk")
        conn.putheader("Content-Type", "application/json")
        conn.putheader("Content-Length", content_length)
        conn.endheaders()
        if body:
            conn.send(body)
        response = conn.getresponse()
        return response.status, json.loads(response.read())
    finally:
        conn.close()


def test_api_rejects_non_numeric_content_length(api_server):
    status, body = _post(api_server, b"", "abc")
    assert status == 400
    assert "Content-Length" in body["error"]


def test_api_post_risk_over_http(api_server):
    body = json.dumps(_payload()).encode("utf-8")
    status, data = _post(api_server, body, str(len(body)))
    assert status == 200
    assert data["pool_summary"]["position_count"] == 4

    status, _ = _post(api_server, b"", "0")
    assert status == 400
