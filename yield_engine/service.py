"""
Public surface of the yield engine.

YieldOptimizationService wires the gateway and price oracle into the pure
scanner / analytics / strategy / rebalance / gate functions.
"""
import logging
from dataclasses import dataclass, replace
from typing import Iterable, List, Optional, Sequence, Tuple

from .analytics import analyze
from .conf import engine_setting
from .exceptions import InvalidConfigurationError, PriceUnavailableError
from .forecast import YieldForecast, generate_forecasts
from .gate import GateResult, evaluate
from .gateway import ChainDataGateway
from .oracle import CoinGeckoPriceOracle, PriceOracle, StaticPriceOracle
from .quality import DataQualityReport, run_quality_checks
from .rebalance import RebalancePolicy, recommend
from .scanner import ScanResult, rank_opportunities, scan
from .sources import build_sources_from_settings
from .strategies import STRATEGY_TEMPLATES, compose
from .types import (AutoRebalanceConfig, OptimizationStrategy, RebalanceAction, RiskTier,
                    RiskTolerance, YieldAnalytics, YieldOpportunity)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PortfolioAnalysis:
    analytics: YieldAnalytics
    actions: Tuple[RebalanceAction, ...]


def held_assets(analytics: YieldAnalytics) -> List[str]:
    """Every asset the account is exposed to, LP legs included, in first-seen order."""
    assets = []
    for position in analytics.positions:
        for asset in position.pair or (position.asset,):
            if asset not in assets:
                assets.append(asset)
    return assets


class YieldOptimizationService:

    def __init__(self, gateway: ChainDataGateway, price_oracle: Optional[PriceOracle] = None,
                 policy: Optional[RebalancePolicy] = None):
        self.gateway = gateway
        self.price_oracle = price_oracle
        self.policy = policy

    def _price(self, asset: str) -> Optional[float]:
        if self.price_oracle is None:
            return None
        try:
            return self.price_oracle.get_price(asset)
        except PriceUnavailableError:
            logger.warning(f"No price for {asset}, treating amount as USD")
            return None

    # -----------------------------
    # Opportunities
    # -----------------------------
    def scan_asset(self, asset: str, amount: float, risk_tolerance: RiskTolerance,
                   amount_in_usd: bool = False) -> ScanResult:
        if amount <= 0:
            raise ValueError(f"amount must be > 0. Got {amount}")
        snapshot = self.gateway.get_markets(asset)
        price = 1.0 if amount_in_usd else self._price(asset)
        return scan(snapshot, amount, risk_tolerance, price=price)

    def find_yield_opportunities(self, asset: str, amount: float,
                                 risk_tolerance: RiskTolerance) -> List[YieldOpportunity]:
        return list(self.scan_asset(asset, amount, risk_tolerance).opportunities)

    # -----------------------------
    # Strategies
    # -----------------------------
    def generate_optimization_strategies(self, capital: float, risk_tier: RiskTier,
                                         live: bool = False) -> List[OptimizationStrategy]:
        markets = []
        if live:
            assets = sorted({a.asset for t in STRATEGY_TEMPLATES for a in t.allocations})
            for snapshot in self.gateway.get_markets_for_assets(assets):
                markets.extend(snapshot.markets)
        return compose(capital, risk_tier, markets)

    # -----------------------------
    # Portfolio
    # -----------------------------
    def analyze_portfolio(self, address: str, target_apy: Optional[float] = None,
                          risk_tolerance: RiskTolerance = RiskTolerance.MEDIUM,
                          config: Optional[AutoRebalanceConfig] = None) -> PortfolioAnalysis:
        positions = self.gateway.get_user_positions(address)
        analytics = analyze(positions, self.price_oracle)

        if config is not None:
            policy = RebalancePolicy.from_config(config)
        else:
            policy = self.policy or RebalancePolicy.from_settings()
        if target_apy is not None:
            policy = replace(policy, target_apy=target_apy)

        opportunities = {}
        if analytics.total_value > 0:
            for snapshot in self.gateway.get_markets_for_assets(held_assets(analytics)):
                result = scan(snapshot, analytics.total_value, risk_tolerance, price=1.0)
                for opportunity in result.opportunities:
                    # Pair pools show up once per leg
                    key = (opportunity.protocol, opportunity.asset, opportunity.strategy_type, opportunity.market_address)
                    opportunities.setdefault(key, opportunity)

        actions = recommend(analytics, rank_opportunities(opportunities.values()), policy)
        return PortfolioAnalysis(analytics=analytics, actions=tuple(actions))

    # -----------------------------
    # Gate
    # -----------------------------
    def evaluate_auto_execution(self, actions: Iterable[RebalanceAction],
                                config: AutoRebalanceConfig) -> GateResult:
        return evaluate(actions, config)

    def filter_for_auto_execution(self, actions: Iterable[RebalanceAction],
                                  config: AutoRebalanceConfig) -> List[RebalanceAction]:
        return list(evaluate(actions, config).approved)

    # -----------------------------
    # Market data
    # -----------------------------
    def check_market_quality(self, asset: str) -> DataQualityReport:
        snapshot = self.gateway.get_markets(asset)
        return run_quality_checks(snapshot, source_count=len(self.gateway.sources))

    def forecast_yields(self, assets: Sequence[str], timeframe: str = "30d") -> List[YieldForecast]:
        return generate_forecasts(self.gateway.get_markets_for_assets(assets), timeframe)


def build_price_oracle(definition: Optional[dict] = None) -> PriceOracle:
    definition = definition if definition is not None else engine_setting("PRICE_ORACLE")
    oracle_type = definition.get("type", "coingecko")
    if oracle_type == "static":
        return StaticPriceOracle(definition.get("prices", {}))
    if oracle_type == "coingecko":
        return CoinGeckoPriceOracle()
    raise InvalidConfigurationError(f"unknown price oracle type {oracle_type!r}")


def build_default_service() -> YieldOptimizationService:
    """Service wired from settings.YIELD_ENGINE."""
    oracle = build_price_oracle()
    gateway = ChainDataGateway(build_sources_from_settings(price_oracle=oracle))
    return YieldOptimizationService(gateway, price_oracle=oracle)
