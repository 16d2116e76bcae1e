"""
Normalisation of heterogeneous vault / pool records into AssetMarket.

Sources hand over plain dicts in whatever shape their upstream API uses; the
helpers here pick the known aliases for each field, convert units and
validate the result.
"""
import logging
from datetime import datetime, timezone as dt_timezone
from typing import Any, Dict, Iterable, List, Optional

from django.utils.dateparse import parse_datetime

from ..types import AssetMarket, LPPosition, SourceKind, StrategyType, VaultPosition
from ..utils.apy import approximate_borrow_apy, kinked_supply_apy, to_fraction, to_percent

logger = logging.getLogger(__name__)

SUPPLY_APY_KEYS = ("supply_apy", "supplyAPY", "current_apy", "apy", "apyBase")
BORROW_APY_KEYS = ("borrow_apy", "borrowAPY", "apyBaseBorrow")
UTILIZATION_KEYS = ("utilization", "util", "utilisation")
TOTAL_ASSETS_KEYS = ("total_assets", "totalAssets", "tvl", "tvlUsd", "totalSupplyUsd")
AVAILABLE_KEYS = ("available_liquidity", "availableLiquidity")
BORROWED_KEYS = ("total_borrowed", "totalBorrowed", "totalBorrowUsd")

_STRATEGY_ALIASES = {
    "lending": StrategyType.LENDING,
    "lp": StrategyType.LP,
    "leveragedlp": StrategyType.LEVERAGED_LP,
    "leveraged lp": StrategyType.LEVERAGED_LP,
    "leveraged_lp": StrategyType.LEVERAGED_LP,
    "arbitrage": StrategyType.ARBITRAGE,
    "yieldfarming": StrategyType.YIELD_FARMING,
    "yield farming": StrategyType.YIELD_FARMING,
    "yield_farming": StrategyType.YIELD_FARMING,
}

_DEFAULT_STRATEGY = {
    SourceKind.LENDING: StrategyType.LENDING,
    SourceKind.LP: StrategyType.LP,
    SourceKind.CROSS_PROTOCOL: StrategyType.LENDING,
}


def _first(record: Dict[str, Any], keys: Iterable[str]) -> Optional[Any]:
    for key in keys:
        if record.get(key) is not None:
            return record[key]
    return None


def _number(value: Any, field_name: str, default: Optional[float] = None) -> float:
    if value is None:
        if default is None:
            raise ValueError(f"missing or invalid '{field_name}'")
        return default
    try:
        return float(value)
    except (TypeError, ValueError):
        raise ValueError(f"missing or invalid '{field_name}': {value!r}")


def _apy(value: Any, unit: str) -> float:
    if value is None:
        return 0.0
    if unit == "fraction":
        return float(value) * 100.0
    if unit == "auto":
        return to_percent(value)
    if isinstance(value, str):
        return float(value.strip().rstrip('%'))
    return float(value)


def parse_strategy_type(value: Any, kind: SourceKind) -> StrategyType:
    if value is None:
        return _DEFAULT_STRATEGY[kind]
    if isinstance(value, StrategyType):
        return value
    key = str(value).strip().lower()
    if key not in _STRATEGY_ALIASES:
        raise ValueError(f"unknown strategy type {value!r}")
    return _STRATEGY_ALIASES[key]


def _timestamp(value: Any) -> Optional[datetime]:
    if value is None or isinstance(value, datetime):
        return value
    if isinstance(value, (int, float)):
        return datetime.fromtimestamp(float(value), tz=dt_timezone.utc)
    return parse_datetime(str(value))


def normalize_market(record: Dict[str, Any], kind: SourceKind, protocol: Optional[str] = None,
                     apy_unit: str = "percent") -> AssetMarket:
    """
    Build an AssetMarket from a raw source record.

    Args:
        record: Raw dict from the source
        kind: Which source family produced it
        protocol: Protocol name to use when the record does not carry one
        apy_unit: "percent", "fraction" or "auto" for the APY fields

    Raises:
        ValueError: When a required field is missing or out of range
    """
    if not isinstance(record, dict):
        raise ValueError(f"market record must be a dict, got {type(record).__name__}")

    asset = record.get("asset") or record.get("asset_symbol") or record.get("assetSymbol") or record.get("symbol")
    if not asset:
        raise ValueError("missing required 'asset' field")
    protocol = record.get("protocol") or record.get("project") or protocol
    if not protocol:
        raise ValueError(f"{asset}: missing required 'protocol' field")

    total_assets = _number(_first(record, TOTAL_ASSETS_KEYS), "total_assets", default=0.0)
    if total_assets < 0:
        raise ValueError(f"{protocol}/{asset}: total_assets must be >= 0")

    raw_util = _first(record, UTILIZATION_KEYS)
    borrowed = _first(record, BORROWED_KEYS)
    if raw_util is not None:
        utilization = to_fraction(raw_util)
    elif borrowed is not None and total_assets > 0:
        utilization = float(borrowed) / total_assets
    else:
        utilization = 0.0
    if not (0.0 <= utilization <= 1.0):
        raise ValueError(f"{protocol}/{asset}: utilization must be in [0, 1]. Got {utilization}")

    supply_raw = _first(record, SUPPLY_APY_KEYS)
    if supply_raw is None and all(k in record for k in ("kink", "slope1", "slope2", "reserve_factor")):
        supply_apy = kinked_supply_apy(
            utilization,
            float(record["kink"]),
            float(record["slope1"]),
            float(record["slope2"]),
            float(record["reserve_factor"]),
        )
    else:
        supply_apy = _apy(supply_raw, apy_unit)

    borrow_raw = _first(record, BORROW_APY_KEYS)
    borrow_apy = _apy(borrow_raw, apy_unit) if borrow_raw is not None else approximate_borrow_apy(supply_apy)

    available = _first(record, AVAILABLE_KEYS)
    if available is None:
        available_liquidity = max(0.0, total_assets * (1 - utilization))
    else:
        available_liquidity = _number(available, "available_liquidity")

    gas = record.get("gas_cost_usd", record.get("estimatedGasUSD"))

    return AssetMarket(
        asset=str(asset),
        protocol=str(protocol),
        supply_apy=supply_apy,
        borrow_apy=borrow_apy,
        utilization=utilization,
        total_assets=total_assets,
        available_liquidity=available_liquidity,
        kind=kind,
        strategy_type=parse_strategy_type(record.get("strategy_type", record.get("strategyType")), kind),
        address=str(record.get("address") or record.get("pool") or record.get("pool_address") or ""),
        gas_cost_usd=float(gas) if gas is not None else None,
        updated_at=_timestamp(record.get("updated_at") or record.get("lastUpdateTimestamp")),
    )


def normalize_markets(records: Iterable[Dict[str, Any]], kind: SourceKind, source_name: str,
                      protocol: Optional[str] = None, apy_unit: str = "percent") -> List[AssetMarket]:
    """Normalise a batch, dropping (and logging) records that fail validation."""
    markets = []
    for record in records:
        try:
            markets.append(normalize_market(record, kind, protocol=protocol, apy_unit=apy_unit))
        except ValueError as e:
            logger.warning(f"Skipping malformed market record from {source_name}: {str(e)}")
    return markets


def normalize_vault_position(record: Dict[str, Any], protocol: Optional[str] = None) -> VaultPosition:
    protocol = record.get("protocol") or protocol
    asset = record.get("asset") or record.get("assetSymbol")
    if not protocol or not asset:
        raise ValueError("vault position requires 'protocol' and 'asset'")
    value = _number(record.get("value_usd", record.get("assetsUSD")), "value_usd", default=0.0)
    borrow = _number(record.get("borrow_value_usd", record.get("borrowBalanceUSD")), "borrow_value_usd", default=0.0)
    health = record.get("health_factor", record.get("healthFactor"))
    if health is None and borrow > 0 and record.get("collateral_value_usd") is not None:
        health = float(record["collateral_value_usd"]) / borrow
    return VaultPosition(
        protocol=str(protocol),
        vault_address=str(record.get("vault_address") or record.get("vaultAddress") or ""),
        asset=str(asset),
        value_usd=value,
        supply_apy=_number(record.get("supply_apy", record.get("supplyAPY")), "supply_apy", default=0.0),
        borrow_value_usd=borrow,
        borrow_apy=_number(record.get("borrow_apy", record.get("borrowAPY")), "borrow_apy", default=0.0),
        health_factor=float(health) if health is not None else None,
        risk_score=_number(record.get("risk_score"), "risk_score", default=2.0),
    )


def normalize_lp_position(record: Dict[str, Any], protocol: Optional[str] = None) -> LPPosition:
    protocol = record.get("protocol") or protocol
    token0 = record.get("token0")
    token1 = record.get("token1")
    if isinstance(token0, dict):
        token0 = token0.get("symbol")
    if isinstance(token1, dict):
        token1 = token1.get("symbol")
    if not protocol or not token0 or not token1:
        raise ValueError("LP position requires 'protocol', 'token0' and 'token1'")
    return LPPosition(
        protocol=str(protocol),
        pool_address=str(record.get("pool_address") or record.get("poolAddress") or ""),
        token0=str(token0),
        token1=str(token1),
        value_usd=_number(record.get("value_usd", record.get("valueUSD")), "value_usd", default=0.0),
        apy=_number(record.get("apy"), "apy", default=0.0),
        entry_price0=_number(record.get("entry_price0", record.get("entryPrice0")), "entry_price0"),
        entry_price1=_number(record.get("entry_price1", record.get("entryPrice1")), "entry_price1"),
        risk_score=_number(record.get("risk_score"), "risk_score", default=5.0),
    )
