"""
Pool snapshot loader: turns already-resolved JSON payloads into engine inputs.

Fetching from the indexer and pricing via the oracle happen upstream; this
module only coerces their output. Payload shape (snake_case or camelCase):

    {
      "pool_id": "0x...",
      "supply_usd": 1250000.0,
      "borrow_usd": 830000.0,
      "positions": [{"id": ..., "base_asset_usd": ..., "quote_asset_usd": ...,
                     "base_debt_usd": ..., "quote_debt_usd": ...,
                     "liquidation_threshold": 1.1}, ...],
      "flow_events": [{"timestamp_ms": ..., "type": "supply", "amount": ...}],
      "liquidation_events": [{"timestamp_ms": ..., "liquidation_amount": ...,
                              "pool_reward": ..., "pool_default": ...}]
    }

Malformed rows are skipped with a warning; only a non-object payload or an
unreadable file raises ``ValueError``.
"""

from __future__ import annotations

import json
import logging
import math
from dataclasses import dataclass, field
from datetime import date, datetime, timezone
from pathlib import Path
from typing import Any

from config.params import RISK_TIERS
from models.liquidation_history import LiquidationEvent
from models.liquidity_history import FlowEvent, FlowType, day_start_ms
from models.position_model import Position

LOGGER = logging.getLogger(__name__)

# Last UTC day start `datetime` can convert back from epoch milliseconds
MAX_TIMESTAMP_MS = day_start_ms(date.max)


@dataclass
class SnapshotMetadata:
    loaded_at: str
    source: str
    position_count: int
    warnings: list[str] = field(default_factory=list)


@dataclass
class PoolSnapshot:
    pool_id: str | None
    supply_usd: float
    borrow_usd: float
    positions: list[Position]
    flow_events: list[FlowEvent]
    liquidation_events: list[LiquidationEvent]
    metadata: SnapshotMetadata


def _to_float(value: Any, default: float | None = 0.0) -> float | None:
    """``float(value)``, or ``default`` for unparseable, NaN or infinite input."""
    try:
        result = float(value)
    except (TypeError, ValueError):
        return default
    if not math.isfinite(result):
        return default
    return result


def _pick(row: dict, *keys: str, default: Any = None) -> Any:
    """First present key; lets snake_case and camelCase payloads share a parser."""
    for key in keys:
        if key in row and row[key] is not None:
            return row[key]
    return default


def _finite(row: dict, warnings: list[str], label: str, *keys: str,
            default: float = 0.0) -> float:
    raw = _pick(row, *keys)
    if raw is None:
        return default
    value = _to_float(raw, None)
    if value is None:
        warnings.append(f"{label}: invalid {keys[0]} {raw!r} replaced with {default:g}")
        return default
    return value


def _non_negative(row: dict, warnings: list[str], label: str, *keys: str) -> float:
    value = _finite(row, warnings, label, *keys)
    if value < 0.0:
        warnings.append(f"{label}: negative {keys[0]} clamped to 0")
        return 0.0
    return value


def _timestamp_ms(raw: Any) -> int | None:
    """Epoch milliseconds ``datetime`` can represent, else None."""
    value = _to_float(raw, None)
    if value is None or not 0.0 <= value <= MAX_TIMESTAMP_MS:
        return None
    return int(value)


def position_from_dict(row: Any, warnings: list[str],
                       default_threshold: float = RISK_TIERS.default_liquidation_threshold) -> Position | None:
    if isinstance(row, Position):
        return row
    if not isinstance(row, dict):
        warnings.append(f"Skipped position row of type {type(row).__name__}")
        return None

    position_id = str(_pick(row, "id", "margin_manager_id", "marginManagerId", default="")).strip()
    if not position_id:
        warnings.append("Skipped position without id")
        return None

    threshold = _finite(
        row, warnings, position_id, "liquidation_threshold", "liquidationThreshold",
        default=default_threshold,
    )
    if threshold <= 0.0:
        warnings.append(f"{position_id}: non-positive liquidation threshold, using default")
        threshold = default_threshold

    return Position(
        id=position_id,
        base_asset_usd=_non_negative(row, warnings, position_id, "base_asset_usd", "baseAssetUsd"),
        quote_asset_usd=_non_negative(row, warnings, position_id, "quote_asset_usd", "quoteAssetUsd"),
        base_debt_usd=_non_negative(row, warnings, position_id, "base_debt_usd", "baseDebtUsd"),
        quote_debt_usd=_non_negative(row, warnings, position_id, "quote_debt_usd", "quoteDebtUsd"),
        liquidation_threshold=threshold,
        base_margin_pool_id=_pick(row, "base_margin_pool_id", "baseMarginPoolId"),
        quote_margin_pool_id=_pick(row, "quote_margin_pool_id", "quoteMarginPoolId"),
    )


def flow_event_from_dict(row: Any, warnings: list[str]) -> FlowEvent | None:
    if isinstance(row, FlowEvent):
        return row
    if not isinstance(row, dict):
        warnings.append(f"Skipped flow event of type {type(row).__name__}")
        return None
    try:
        event_type = FlowType(str(_pick(row, "type", default="")).strip().lower())
    except ValueError:
        warnings.append(f"Skipped flow event with unknown type {row.get('type')!r}")
        return None
    raw_timestamp = _pick(row, "timestamp_ms", "timestampMs", "checkpoint_timestamp_ms")
    timestamp = _timestamp_ms(raw_timestamp)
    if timestamp is None:
        warnings.append(f"Skipped flow event with invalid timestamp {raw_timestamp!r}")
        return None
    amount = _to_float(_pick(row, "amount"), None)
    if amount is None:
        warnings.append(f"Skipped flow event with invalid amount {row.get('amount')!r}")
        return None
    return FlowEvent(timestamp_ms=timestamp, type=event_type, amount=abs(amount))


def liquidation_event_from_dict(row: Any, warnings: list[str]) -> LiquidationEvent | None:
    if isinstance(row, LiquidationEvent):
        return row
    if not isinstance(row, dict):
        warnings.append(f"Skipped liquidation event of type {type(row).__name__}")
        return None
    raw_timestamp = _pick(row, "timestamp_ms", "timestampMs", "checkpoint_timestamp_ms")
    timestamp = _timestamp_ms(raw_timestamp)
    if timestamp is None:
        warnings.append(f"Skipped liquidation event with invalid timestamp {raw_timestamp!r}")
        return None
    label = f"liquidation at {timestamp}"
    return LiquidationEvent(
        timestamp_ms=timestamp,
        liquidation_amount=_finite(row, warnings, label, "liquidation_amount", "liquidationAmount"),
        pool_reward=_finite(row, warnings, label, "pool_reward", "poolReward"),
        pool_default=_finite(row, warnings, label, "pool_default", "poolDefault"),
    )


def _coerce_rows(rows: Any, parser, warnings: list[str], label: str) -> list:
    if rows is None:
        return []
    if not isinstance(rows, list):
        warnings.append(f"Ignored {label}: expected a list")
        return []
    parsed = []
    for row in rows:
        item = parser(row, warnings)
        if item is not None:
            parsed.append(item)
    return parsed


def snapshot_from_dict(payload: Any, source: str = "inline") -> PoolSnapshot:
    """Coerce a decoded JSON payload into a ``PoolSnapshot``."""
    if not isinstance(payload, dict):
        raise ValueError("Snapshot payload must be a JSON object")

    warnings: list[str] = []
    positions = _coerce_rows(
        _pick(payload, "positions", default=[]), position_from_dict, warnings, "positions"
    )
    flow_events = _coerce_rows(
        _pick(payload, "flow_events", "flowEvents", default=[]),
        flow_event_from_dict, warnings, "flow_events",
    )
    liquidation_events = _coerce_rows(
        _pick(payload, "liquidation_events", "liquidationEvents", "liquidations", default=[]),
        liquidation_event_from_dict, warnings, "liquidation_events",
    )

    supply = _finite(payload, warnings, "pool", "supply_usd", "supplyUsd", "supply")
    borrow = _finite(payload, warnings, "pool", "borrow_usd", "borrowUsd", "borrow")
    if supply < 0.0 or borrow < 0.0:
        warnings.append("Negative pool totals clamped to 0")
        supply, borrow = max(0.0, supply), max(0.0, borrow)

    for warning in warnings:
        LOGGER.warning("%s: %s", source, warning)

    pool_id = _pick(payload, "pool_id", "poolId", "margin_pool_id")
    return PoolSnapshot(
        pool_id=str(pool_id) if pool_id is not None else None,
        supply_usd=supply,
        borrow_usd=borrow,
        positions=positions,
        flow_events=flow_events,
        liquidation_events=liquidation_events,
        metadata=SnapshotMetadata(
            loaded_at=datetime.now(timezone.utc).isoformat(),
            source=source,
            position_count=len(positions),
            warnings=warnings,
        ),
    )


def load_snapshot(path: str | Path) -> PoolSnapshot:
    """Read a snapshot JSON file from disk."""
    path = Path(path)
    try:
        raw = path.read_text(encoding="utf-8")
    except OSError as exc:
        raise ValueError(f"Could not read snapshot file {path}: {exc}") from exc
    try:
        payload = json.loads(raw)
    except json.JSONDecodeError as exc:
        raise ValueError(f"Snapshot file {path} is not valid JSON: {exc}") from exc
    return snapshot_from_dict(payload, source=str(path))


def flow_events_from_indexer(
    supplied: list[dict],
    withdrawn: list[dict],
    borrowed: list[dict],
    repaid: list[dict],
    decimals: int = 9,
) -> list[FlowEvent]:
    """
    Convert raw indexer rows into ``FlowEvent``s.

    Amounts arrive as integer strings in the coin's base units and are scaled
    by ``10**decimals``. Rows with an unparseable amount or timestamp are
    dropped.
    """
    scale = 10 ** decimals if decimals > 0 else 1
    sources = (
        (supplied, FlowType.SUPPLY, "amount"),
        (withdrawn, FlowType.WITHDRAW, "amount"),
        (borrowed, FlowType.BORROW, "loan_amount"),
        (repaid, FlowType.REPAY, "repay_amount"),
    )
    events = []
    for rows, event_type, amount_key in sources:
        for row in rows or []:
            if not isinstance(row, dict):
                continue
            amount = _to_float(row.get(amount_key), None)
            timestamp = _timestamp_ms(row.get("checkpoint_timestamp_ms"))
            if amount is None or timestamp is None:
                LOGGER.warning(
                    "Dropped %s row with invalid amount/timestamp: %r/%r",
                    event_type.value, row.get(amount_key), row.get("checkpoint_timestamp_ms"),
                )
                continue
            events.append(FlowEvent(
                timestamp_ms=timestamp,
                type=event_type,
                amount=amount / scale,
            ))
    return events
