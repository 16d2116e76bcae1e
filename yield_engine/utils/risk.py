"""
Risk and liquidity heuristics shared by the scanner, analytics and strategies.
"""
from typing import Iterable, Tuple

from ..conf import engine_setting
from ..types import AssetMarket, RiskTolerance, StrategyType

# Base risk per strategy family before market-specific adjustments
BASE_RISK = {
    StrategyType.LENDING: 1.0,
    StrategyType.LP: 4.0,
    StrategyType.LEVERAGED_LP: 6.5,
    StrategyType.YIELD_FARMING: 5.0,
    StrategyType.ARBITRAGE: 7.0,
}

RISK_TOLERANCE_CEILING = {
    RiskTolerance.LOW: 3.0,
    RiskTolerance.MEDIUM: 6.0,
    RiskTolerance.HIGH: 10.0,
}


def clamp_score(value: float, low: float = 0.0, high: float = 10.0) -> float:
    return max(low, min(high, value))


def is_stable(symbol: str) -> bool:
    stables = {s.upper() for s in engine_setting("STABLE_ASSETS")}
    return symbol.upper() in stables


def pair_volatility_class(assets: Iterable[str]) -> str:
    """'stable' when every leg is a stablecoin, 'mixed' when one is, else 'volatile'."""
    flags = [is_stable(a) for a in assets]
    if not flags:
        return "volatile"
    if all(flags):
        return "stable"
    if any(flags):
        return "mixed"
    return "volatile"


def market_risk_score(market: AssetMarket) -> float:
    """
    0-10 risk score for a market.

    Lending: utilization driven, capped at 8 (a fully lent vault is hard to exit
    but the principal is not exposed to price).
    Pools: strategy base risk plus a pair volatility premium.
    """
    if market.strategy_type == StrategyType.LENDING:
        return clamp_score(min(market.utilization * 10, 8.0))

    base = BASE_RISK.get(market.strategy_type, 5.0)
    volatility = pair_volatility_class(market.pair_assets)
    if volatility == "stable":
        base -= 2.0
    elif volatility == "mixed":
        base += 1.0
    else:
        base += 3.0
    # Thin pools are riskier to exit
    if market.total_assets > 0 and market.available_liquidity / market.total_assets < 0.1:
        base += 1.0
    return clamp_score(base)


def market_liquidity_score(market: AssetMarket) -> float:
    """0-10 score of how easily a position can be exited."""
    if market.strategy_type == StrategyType.LENDING:
        return 9.0 if market.utilization < 0.9 else 6.0
    if market.total_assets <= 0:
        return 0.0
    free_share = market.available_liquidity / market.total_assets
    # Deep pools (>= $10M) start at 8, shallow ones lower
    depth = 8.0 if market.total_assets >= 10_000_000 else 6.0 if market.total_assets >= 1_000_000 else 4.0
    return clamp_score(depth + 2.0 * free_share)


def risk_level(score: float) -> RiskTolerance:
    """Bucket a numeric score into the tolerance band that would admit it."""
    if score <= RISK_TOLERANCE_CEILING[RiskTolerance.LOW]:
        return RiskTolerance.LOW
    if score <= RISK_TOLERANCE_CEILING[RiskTolerance.MEDIUM]:
        return RiskTolerance.MEDIUM
    return RiskTolerance.HIGH


def within_tolerance(score: float, tolerance: RiskTolerance) -> bool:
    return score <= RISK_TOLERANCE_CEILING[tolerance]


def volatility_proxy(weighted_items: Iterable[Tuple[float, float]]) -> float:
    """
    Annual volatility estimate (percent) from (weight, risk_score) pairs.

    There is no return history in a single snapshot, so volatility is proxied
    by the weighted risk score times VOLATILITY_PER_RISK_POINT.
    """
    per_point = float(engine_setting("VOLATILITY_PER_RISK_POINT"))
    return sum(weight * score * per_point for weight, score in weighted_items)


def sharpe_ratio(apy_pct: float, volatility_pct: float) -> float:
    if volatility_pct <= 0:
        return 0.0
    risk_free = float(engine_setting("RISK_FREE_RATE"))
    return (apy_pct - risk_free) / volatility_pct
