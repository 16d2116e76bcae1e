"""
Deterministic yield forecasts from the current market snapshot.

There is no model behind these numbers: the best market for an asset is
projected forward using its utilization pressure, and the scenario spread
widens with the square root of the horizon.
"""
import logging
import math
from dataclasses import dataclass
from typing import Iterable, List, Optional, Tuple

from .scanner import market_confidence
from .types import AssetMarket, MarketSnapshot

logger = logging.getLogger(__name__)

TIMEFRAME_DAYS = {"1d": 1, "7d": 7, "30d": 30, "90d": 90}

# Utilization above this pushes rates up, below it pulls them down
TARGET_UTILIZATION = 0.8
PRESSURE_SENSITIVITY = 0.25
MONTHLY_SPREAD = 0.15

SCENARIO_PROBABILITIES = (("Bullish", 0.3), ("Base", 0.5), ("Bearish", 0.2))


@dataclass(frozen=True)
class ForecastFactor:
    factor: str
    impact: float
    confidence: float


@dataclass(frozen=True)
class ForecastScenario:
    scenario: str
    probability: float
    apy: float
    reasoning: str


@dataclass(frozen=True)
class YieldForecast:
    asset: str
    protocol: str
    timeframe: str
    current_apy: float
    forecasted_apy: float
    confidence: float
    factors: Tuple[ForecastFactor, ...]
    scenarios: Tuple[ForecastScenario, ...]


def best_market(markets: Iterable[AssetMarket]) -> Optional[AssetMarket]:
    # Ties keep the first market seen, so results follow source order
    best = None
    for market in markets:
        if best is None or market.supply_apy > best.supply_apy:
            best = market
    return best


def forecast_market(market: AssetMarket, asset: str, timeframe: str = "30d") -> YieldForecast:
    if timeframe not in TIMEFRAME_DAYS:
        raise ValueError(f"timeframe must be one of {sorted(TIMEFRAME_DAYS)}. Got {timeframe!r}")
    days = TIMEFRAME_DAYS[timeframe]
    current = market.supply_apy

    pressure = market.utilization - TARGET_UTILIZATION
    demand_impact = current * pressure * PRESSURE_SENSITIVITY
    free_share = market.available_liquidity / market.total_assets if market.total_assets > 0 else 0.0
    # Deep idle liquidity dilutes the supply rate
    liquidity_impact = -current * max(0.0, free_share - 0.5) * 0.1

    base = max(0.0, current + demand_impact + liquidity_impact)
    spread = MONTHLY_SPREAD * math.sqrt(days / 30)
    bullish = base * (1 + spread + max(0.0, pressure))
    bearish = max(0.0, base * (1 - spread - max(0.0, -pressure)))

    confidence = market_confidence(market) * math.exp(-days / 365)
    factors = (
        ForecastFactor("Borrowing Demand", demand_impact, round(min(1.0, confidence + 0.1), 4)),
        ForecastFactor("Liquidity Depth", liquidity_impact, round(confidence, 4)),
    )
    scenario_apys = {"Bullish": bullish, "Base": base, "Bearish": bearish}
    reasoning = {
        "Bullish": "Borrowing demand rises and utilization climbs",
        "Base": "Utilization drifts toward its current pressure",
        "Bearish": "Demand falls and idle liquidity dilutes rates",
    }
    scenarios = tuple(
        ForecastScenario(name, probability, scenario_apys[name], reasoning[name])
        for name, probability in SCENARIO_PROBABILITIES
    )
    return YieldForecast(
        asset=asset,
        protocol=market.protocol,
        timeframe=timeframe,
        current_apy=current,
        forecasted_apy=sum(s.probability * s.apy for s in scenarios),
        confidence=confidence,
        factors=factors,
        scenarios=scenarios,
    )


def generate_forecasts(snapshots: Iterable[MarketSnapshot], timeframe: str = "30d") -> List[YieldForecast]:
    """One forecast per snapshot that has at least one market."""
    forecasts = []
    for snapshot in snapshots:
        market = best_market(snapshot.markets)
        if market is None:
            logger.info(f"No markets for {snapshot.asset}, skipping forecast")
            continue
        forecasts.append(forecast_market(market, snapshot.asset, timeframe))
    return forecasts
