"""
CLI entry point for the margin pool risk dashboard.

Usage:
    python run_dashboard.py --input snapshot.json
    python run_dashboard.py --input snapshot.json --pool-id 0xabc --price-change -10
    python run_dashboard.py --input snapshot.json --range 7D --json
"""

import argparse
import logging
import sys
import time
from pathlib import Path

from dotenv import load_dotenv

load_dotenv(Path(__file__).parent / ".env")

from config.params import load_params
from dashboard import Dashboard
from data.snapshot_loader import load_snapshot


def _usd(value: float) -> str:
    if value >= 1_000_000:
        return f"${value / 1_000_000:.1f}M"
    if value >= 1_000:
        return f"${value / 1_000:.1f}K"
    if 0 < value < 1:
        return f"${value:.2f}"
    return f"${value:.0f}"


def _pct(value: float | None) -> str:
    return "n/a" if value is None else f"{value:+.1f}%"


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Margin pool position risk & liquidation dashboard"
    )
    parser.add_argument("--input", required=True,
                        help="Path to a pool snapshot JSON file")
    parser.add_argument("--pool-id", default=None,
                        help="Only include positions touching this margin pool")
    parser.add_argument("--price-change", type=float, default=0.0,
                        help="Base-asset price shock in percent for the selected scenario (default: 0)")
    parser.add_argument("--range", dest="time_range", choices=["7D", "1M"], default=None,
                        help="Liquidity history window (default: MARGIN_RISK_LOOKBACK_DAYS or 30 days)")
    parser.add_argument("--json", action="store_true",
                        help="Output raw JSON instead of formatted text")
    parser.add_argument("--verbose", action="store_true",
                        help="Enable debug logging")
    return parser


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    try:
        snapshot = load_snapshot(args.input)
    except ValueError as exc:
        print(f"  [ERROR] {exc}", file=sys.stderr)
        return 1

    start = time.time()
    dashboard = Dashboard(snapshot, params=load_params(), pool_id=args.pool_id)
    output = dashboard.run(price_change_pct=args.price_change, time_range=args.time_range)
    elapsed = time.time() - start

    if args.json:
        print(output.to_json())
        return 0

    ps = output.pool_summary
    print("=" * 70)
    print("  Margin Pool Risk Dashboard")
    print("=" * 70)
    print(f"  Pool: {ps['pool_id'] or 'all'} | Positions: {ps['position_count']}"
          f" | Liquidation threshold: {ps['liquidation_threshold']:.2f}")
    print("=" * 70)
    print()
    print(f"  [DATA] Loaded {snapshot.metadata.position_count} positions, "
          f"{len(snapshot.flow_events)} flow events, "
          f"{len(snapshot.liquidation_events)} liquidations from {snapshot.metadata.source}")
    for warning in output.warnings:
        print(f"  [WARN] {warning}")
    print()

    v = output.verdict
    print("POOL VERDICT")
    print("-" * 40)
    print(f"  {v['label']:<22} {v['reason']}")
    print(f"  Nearest trigger:       {_pct(v['nearest_trigger_pct'])}")
    print()

    print("POSITIONS")
    print("-" * 40)
    print(f"  Total Collateral:      {_usd(ps['total_collateral_usd'])}")
    print(f"  Total Debt:            {_usd(ps['total_debt_usd'])}")
    for tier, count in output.tier_counts.items():
        print(f"  {tier.capitalize() + ':':<22} {count}")
    print(f"  Within 10% buffer:     {ps['within_10pct_buffer']['count']}"
          f" ({_usd(ps['within_10pct_buffer']['debt_usd'])} debt)")
    print()

    nt = output.nearest_trigger
    print("DISTANCE TO FIRST LIQUIDATION")
    print("-" * 40)
    print(f"  Price drop:            {_pct(nt['drop_pct'])}")
    print(f"  Price rise:            {_pct(nt['rise_pct'])}")
    if nt["closest_position_id"]:
        print(f"  Closest position:      {nt['closest_position_id']}"
              f" (buffer {nt['closest_position_buffer_pct']:.1f}%)")
    if output.cliff_point:
        cp = output.cliff_point
        print(f"  Cliff point:           {cp['shock_pct']:+.0f}%"
              f" ({cp['debt_multiplier']:.1f}x debt at risk)")
    print()

    print("PRICE SHOCK SCENARIOS")
    print("-" * 40)
    print(f"  {'Shock':>7}  {'Liquidatable':>12}  {'Critical':>8}  {'Debt at risk':>12}")
    for s in output.scenarios:
        print(f"  {s['price_change_pct']:>+6.0f}%  {s['liquidatable_count']:>12}"
              f"  {s['critical_count']:>8}  {_usd(s['total_debt_at_risk_usd']):>12}")
    sel = output.selected_scenario
    if sel["price_change_pct"] != 0.0:
        print(f"  Selected {sel['price_change_pct']:+.1f}%: "
              f"{sel['liquidatable_count']} liquidatable, "
              f"{len(sel['positions_newly_liquidated'])} newly")
    print()

    print("RISK DISTRIBUTION")
    print("-" * 40)
    for b in output.risk_distribution:
        print(f"  {b['band']:<13} {b['label']:<12} {b['count']:>5}  {_usd(b['total_debt_usd'])}")
    print()

    history = output.liquidity_history
    if history:
        first, last = history[0], history[-1]
        print(f"LIQUIDITY ({first['date_key']} -> {last['date_key']})")
        print("-" * 40)
        print(f"  Supply:                {_usd(first['supply_usd'])} -> {_usd(last['supply_usd'])}")
        print(f"  Borrow:                {_usd(first['borrow_usd'])} -> {_usd(last['borrow_usd'])}")
        print(f"  Utilization:           {first['utilization_pct']:.1f}% -> {last['utilization_pct']:.1f}%")
        stress = output.liquidity_stress
        print(f"  Borrow +20%:           {_usd(stress['available_after_increase_usd'])} available"
              f" ({stress['utilization_after_increase_pct']:.1f}% utilization)")
        print()

    lh = output.liquidation_history["summary"]
    print("LIQUIDATION HISTORY")
    print("-" * 40)
    print(f"  Liquidations:          {lh['total_liquidations']}")
    print(f"  Volume:                {_usd(lh['total_volume'])}")
    print(f"  Bad debt:              {_usd(lh['total_bad_debt'])}"
          f" ({lh['days_with_bad_debt']} days)")
    print()
    print(f"  Completed in {elapsed:.2f}s")
    return 0


if __name__ == "__main__":
    sys.exit(main())
