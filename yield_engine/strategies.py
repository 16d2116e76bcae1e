"""
Template driven strategy composer.

Each risk tier has a fixed allocation template. Reference APYs are used
unless live market data for the same protocol, asset and strategy type is
supplied, in which case the live supply APY wins.
"""
import logging
from dataclasses import dataclass
from typing import Dict, Iterable, List, Optional, Tuple

from .conf import engine_setting
from .types import (AssetMarket, OptimizationStrategy, PortfolioAllocation, RiskTier,
                    StrategyType)
from .utils.risk import sharpe_ratio, volatility_proxy

logger = logging.getLogger(__name__)

PERCENTAGE_EPSILON = 1e-6


@dataclass(frozen=True)
class AllocationTemplate:
    protocol: str
    strategy: str
    asset: str
    percentage: float
    strategy_type: StrategyType
    reference_apy: Optional[float]
    risk_score: float


@dataclass(frozen=True)
class StrategyTemplate:
    id: str
    name: str
    description: str
    risk_tier: RiskTier
    allocations: Tuple[AllocationTemplate, ...]
    rebalance_frequency: str
    rebalance_threshold: float
    max_slippage: float


STRATEGY_TEMPLATES = (
    StrategyTemplate(
        id="conservative-yield",
        name="Conservative Yield Strategy",
        description="Low-risk strategy focused on stable lending yields",
        risk_tier=RiskTier.CONSERVATIVE,
        allocations=(
            AllocationTemplate("Euler Vaults", "USDC Lending", "USDC", 60, StrategyType.LENDING, 5.5, 2),
            AllocationTemplate("Euler Vaults", "WETH Lending", "WETH", 30, StrategyType.LENDING, 6.8, 3),
            AllocationTemplate("EulerSwap", "USDC/DAI LP", "USDC-DAI", 10, StrategyType.LP, 12.2, 2),
        ),
        rebalance_frequency="Weekly",
        rebalance_threshold=2.0,
        max_slippage=0.5,
    ),
    StrategyTemplate(
        id="balanced-yield",
        name="Balanced Yield Strategy",
        description="Balanced approach combining LP fees and leveraged lending",
        risk_tier=RiskTier.MODERATE,
        allocations=(
            AllocationTemplate("EulerSwap", "WETH/USDC LP", "WETH-USDC", 40, StrategyType.LP, 15.2, 5),
            AllocationTemplate("Euler Vaults", "Leveraged WETH", "WETH", 35, StrategyType.LEVERAGED_LP, 12.8, 6),
            AllocationTemplate("Euler Vaults", "USDC Lending", "USDC", 25, StrategyType.LENDING, 5.5, 2),
        ),
        rebalance_frequency="Threshold-based",
        rebalance_threshold=3.0,
        max_slippage=1.0,
    ),
    StrategyTemplate(
        id="aggressive-yield",
        name="High-Yield Aggressive Strategy",
        description="Maximum yield through volatile-pair LP, leverage and arbitrage",
        risk_tier=RiskTier.AGGRESSIVE,
        allocations=(
            AllocationTemplate("EulerSwap", "WETH/WBTC LP", "WETH-WBTC", 50, StrategyType.LP, 28.7, 8),
            AllocationTemplate("Euler Vaults", "Leveraged WBTC", "WBTC", 30, StrategyType.LEVERAGED_LP, 22.1, 7),
            AllocationTemplate("EulerSwap", "Arbitrage Bot", "Multi", 20, StrategyType.ARBITRAGE, 18.5, 9),
        ),
        rebalance_frequency="Daily",
        rebalance_threshold=5.0,
        max_slippage=2.0,
    ),
)

TIER_ORDER = (RiskTier.CONSERVATIVE, RiskTier.MODERATE, RiskTier.AGGRESSIVE)


def tiers_for(risk_tier: RiskTier) -> Tuple[RiskTier, ...]:
    """A tier sees its own strategies and every lower-risk tier's."""
    return TIER_ORDER[:TIER_ORDER.index(risk_tier) + 1]


def _market_key(protocol: str, asset: str, strategy_type: StrategyType):
    return (protocol.lower(), asset.upper(), strategy_type)


def live_apy_table(markets: Iterable[AssetMarket]) -> Dict[tuple, float]:
    """Best live supply APY per (protocol, asset, strategy type)."""
    table = {}
    for market in markets:
        key = _market_key(market.protocol, market.asset, market.strategy_type)
        table[key] = max(table.get(key, 0.0), market.supply_apy)
    return table


def build_strategy(template: StrategyTemplate, capital: float,
                   live_apys: Optional[Dict[tuple, float]] = None) -> Optional[OptimizationStrategy]:
    live_apys = live_apys or {}
    allocations = []
    for item in template.allocations:
        apy = live_apys.get(_market_key(item.protocol, item.asset, item.strategy_type), item.reference_apy)
        if apy is None:
            logger.info(f"Omitting strategy {template.id}: no APY data for {item.protocol} {item.strategy}")
            return None
        allocations.append(PortfolioAllocation(
            protocol=item.protocol,
            strategy=item.strategy,
            asset=item.asset,
            percentage=item.percentage,
            amount=capital * item.percentage / 100,
            current_apy=apy,
            risk_score=item.risk_score,
        ))

    total_pct = sum(a.percentage for a in allocations)
    if abs(total_pct - 100) > PERCENTAGE_EPSILON:
        raise ValueError(f"Strategy template {template.id} allocates {total_pct}%, expected 100%")

    weights = [(a.percentage / 100, a.risk_score) for a in allocations]
    total_apy = sum(a.percentage / 100 * a.current_apy for a in allocations)
    weighted_risk = sum(w * r for w, r in weights)

    return OptimizationStrategy(
        id=template.id,
        name=template.name,
        description=template.description,
        risk_tier=template.risk_tier,
        allocations=tuple(allocations),
        total_apy=total_apy,
        sharpe_ratio=sharpe_ratio(total_apy, volatility_proxy(weights)),
        max_drawdown=weighted_risk * float(engine_setting("DRAWDOWN_PER_RISK_POINT")),
        required_capital=capital,
        rebalance_frequency=template.rebalance_frequency,
        rebalance_threshold=template.rebalance_threshold,
        max_slippage=template.max_slippage,
    )


def compose(capital: float, risk_tier: RiskTier, markets: Iterable[AssetMarket] = (),
            templates: Tuple[StrategyTemplate, ...] = STRATEGY_TEMPLATES) -> List[OptimizationStrategy]:
    """
    Strategies available to ``risk_tier``, most conservative first.
    """
    if capital <= 0:
        raise ValueError(f"capital must be > 0. Got {capital}")
    allowed = tiers_for(risk_tier)
    live_apys = live_apy_table(markets)

    strategies = []
    for tier in allowed:
        for template in templates:
            if template.risk_tier != tier:
                continue
            strategy = build_strategy(template, capital, live_apys)
            if strategy is not None:
                strategies.append(strategy)
    return strategies
