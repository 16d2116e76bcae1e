"""
Opportunity scanner: turns AssetMarket snapshots into ranked YieldOpportunity records.
"""
import logging
from dataclasses import dataclass
from datetime import timedelta
from typing import Iterable, List, Optional, Tuple

from django.utils import timezone

from .conf import engine_lookup, engine_setting
from .types import (AssetMarket, MarketSnapshot, RiskTolerance, SourceError,
                    YieldOpportunity)
from .utils.risk import (clamp_score, market_liquidity_score, market_risk_score,
                         risk_level, within_tolerance)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ScanResult:
    asset: str
    opportunities: Tuple[YieldOpportunity, ...]
    source_errors: Tuple[SourceError, ...] = ()

    @property
    def is_partial(self) -> bool:
        return bool(self.source_errors)


def gas_cost_as_apy(gas_cost_usd: float, amount: float, price: float = 1.0) -> float:
    """
    One entry cost amortised over a year, as APY percentage points.

    Args:
        gas_cost_usd: Cost of entering the position
        amount: Deposit size in units of the asset
        price: USD price of one unit
    """
    if amount <= 0:
        raise ValueError(f"amount must be > 0. Got {amount}")
    if price <= 0:
        raise ValueError(f"price must be > 0. Got {price}")
    return max(0.0, gas_cost_usd) / (amount * price) * 100


def market_confidence(market: AssetMarket) -> float:
    """Base confidence for the strategy type, discounted for stressed or stale markets."""
    confidence = float(engine_lookup("BASE_CONFIDENCE", market.strategy_type.value, 0.5))
    if market.utilization > 0.9:
        confidence *= 0.9
    if market.total_assets > 0 and market.available_liquidity / market.total_assets < 0.05:
        confidence *= 0.9
    if market.updated_at is not None:
        max_age = timedelta(seconds=engine_setting("MAX_DATA_AGE_SECONDS"))
        if timezone.now() - market.updated_at > max_age:
            confidence *= 0.85
    return max(0.0, min(1.0, confidence))


def build_opportunity(market: AssetMarket, amount: float, price: float = 1.0) -> YieldOpportunity:
    strategy = market.strategy_type.value
    multiplier = float(engine_lookup("PROJECTION_MULTIPLIER", strategy, 1.0))
    gas_cost = market.gas_cost_usd
    if gas_cost is None:
        gas_cost = float(engine_lookup("GAS_COST_USD", strategy, 0.0))

    projected = market.supply_apy * multiplier
    net = projected - gas_cost_as_apy(gas_cost, amount, price)
    risk = market_risk_score(market)
    return YieldOpportunity(
        protocol=market.protocol,
        strategy_type=market.strategy_type,
        asset=market.asset,
        current_apy=market.supply_apy,
        projected_apy=projected,
        risk_score=risk,
        liquidity_score=clamp_score(market_liquidity_score(market)),
        gas_cost_usd=gas_cost,
        net_apy_after_gas=net,
        confidence=market_confidence(market),
        market_address=market.address,
        tvl=market.total_assets,
        risk_level=risk_level(risk),
    )


def rank_opportunities(opportunities: Iterable[YieldOpportunity]) -> List[YieldOpportunity]:
    """Net APY desc, then confidence desc, then liquidity desc. Stable."""
    return sorted(
        opportunities,
        key=lambda o: (-o.net_apy_after_gas, -o.confidence, -o.liquidity_score),
    )


def filter_by_risk(opportunities: Iterable[YieldOpportunity], tolerance: RiskTolerance) -> List[YieldOpportunity]:
    return [o for o in opportunities if within_tolerance(o.risk_score, tolerance)]


def scan(snapshot: MarketSnapshot, amount: float, risk_tolerance: RiskTolerance,
         price: Optional[float] = None) -> ScanResult:
    """
    Rank every market in ``snapshot`` for a deposit of ``amount`` units.

    Opportunities are fully built before the risk filter runs. Malformed
    markets are dropped and logged; failed sources are already recorded on
    the snapshot and carried through.
    """
    if amount <= 0:
        raise ValueError(f"amount must be > 0. Got {amount}")
    price = price if price and price > 0 else 1.0

    for error in snapshot.source_errors:
        logger.info(f"Scan for {snapshot.asset} omits {error.source}: {error.message}")

    built = []
    for market in snapshot.markets:
        try:
            built.append(build_opportunity(market, amount, price))
        except (TypeError, ValueError) as e:
            logger.warning(f"Skipping market {market.protocol}/{market.asset}: {str(e)}")

    ranked = rank_opportunities(filter_by_risk(built, risk_tolerance))
    logger.info(f"Scan for {snapshot.asset}: {len(built)} built, {len(ranked)} within {risk_tolerance.value} tolerance")
    return ScanResult(asset=snapshot.asset, opportunities=tuple(ranked), source_errors=snapshot.source_errors)
