"""
Data model for the yield engine.

Every record is a frozen dataclass and collections are stored as tuples, so a
snapshot handed out by the engine can never be mutated by a caller.
APY values are percentages (5.5 == 5.5%). Impermanent loss is a signed
fraction where negative values mean a loss relative to holding.
"""
import math
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Optional, Tuple

from django.utils import timezone


class SourceKind(str, Enum):
    LENDING = "Lending"
    LP = "LP"
    CROSS_PROTOCOL = "CrossProtocol"


class StrategyType(str, Enum):
    LENDING = "Lending"
    LP = "LP"
    LEVERAGED_LP = "LeveragedLP"
    ARBITRAGE = "Arbitrage"
    YIELD_FARMING = "YieldFarming"


class RiskTolerance(str, Enum):
    LOW = "Low"
    MEDIUM = "Medium"
    HIGH = "High"


class RiskTier(str, Enum):
    CONSERVATIVE = "Conservative"
    MODERATE = "Moderate"
    AGGRESSIVE = "Aggressive"


class ActionType(str, Enum):
    DEPOSIT = "Deposit"
    WITHDRAW = "Withdraw"
    SWAP = "Swap"
    MIGRATE = "Migrate"
    COMPOUND = "Compound"
    REPAY = "Repay"


class Priority(str, Enum):
    LOW = "Low"
    MEDIUM = "Medium"
    HIGH = "High"
    CRITICAL = "Critical"

    @property
    def rank(self) -> int:
        return _PRIORITY_RANK[self]


_PRIORITY_RANK = {
    Priority.LOW: 0,
    Priority.MEDIUM: 1,
    Priority.HIGH: 2,
    Priority.CRITICAL: 3,
}


# -----------------------------
# Market data
# -----------------------------
@dataclass(frozen=True)
class AssetMarket:
    asset: str
    protocol: str
    supply_apy: float
    borrow_apy: float
    utilization: float
    total_assets: float
    available_liquidity: float
    kind: SourceKind = SourceKind.LENDING
    strategy_type: StrategyType = StrategyType.LENDING
    address: str = ""
    gas_cost_usd: Optional[float] = None
    updated_at: Optional[datetime] = None

    def __post_init__(self):
        if not (0.0 <= self.utilization <= 1.0):
            raise ValueError(f"{self.protocol}/{self.asset}: utilization must be in [0, 1]. Got {self.utilization}")
        if self.supply_apy < 0 or self.borrow_apy < 0:
            raise ValueError(f"{self.protocol}/{self.asset}: APY must be >= 0")

    @property
    def pair_assets(self) -> Tuple[str, ...]:
        """Component symbols for pair markets ("WETH-USDC" -> ("WETH", "USDC"))."""
        return tuple(part for part in self.asset.replace("/", "-").split("-") if part)

    def matches_asset(self, symbol: str) -> bool:
        symbol = symbol.upper()
        if self.asset.upper() == symbol:
            return True
        return self.kind == SourceKind.LP and symbol in (a.upper() for a in self.pair_assets)


@dataclass(frozen=True)
class SourceError:
    """Per-source failure tag attached to partial results."""
    source: str
    kind: SourceKind
    message: str
    timed_out: bool = False


@dataclass(frozen=True)
class MarketSnapshot:
    asset: str
    markets: Tuple[AssetMarket, ...] = ()
    source_errors: Tuple[SourceError, ...] = ()
    fetched_at: datetime = field(default_factory=timezone.now)

    @property
    def is_partial(self) -> bool:
        return bool(self.source_errors)


# -----------------------------
# Opportunities and strategies
# -----------------------------
@dataclass(frozen=True)
class YieldOpportunity:
    protocol: str
    strategy_type: StrategyType
    asset: str
    current_apy: float
    projected_apy: float
    risk_score: float
    liquidity_score: float
    gas_cost_usd: float
    net_apy_after_gas: float
    confidence: float
    market_address: str = ""
    tvl: float = 0.0
    risk_level: RiskTolerance = RiskTolerance.LOW

    def __post_init__(self):
        if self.net_apy_after_gas > self.projected_apy:
            raise ValueError(f"{self.protocol}/{self.asset}: net APY after gas exceeds projected APY")


@dataclass(frozen=True)
class PortfolioAllocation:
    protocol: str
    strategy: str
    asset: str
    percentage: float
    amount: float
    current_apy: float
    risk_score: float


@dataclass(frozen=True)
class OptimizationStrategy:
    id: str
    name: str
    description: str
    risk_tier: RiskTier
    allocations: Tuple[PortfolioAllocation, ...]
    total_apy: float
    sharpe_ratio: float
    max_drawdown: float
    required_capital: float
    rebalance_frequency: str = "Weekly"
    rebalance_threshold: float = 2.0
    max_slippage: float = 0.5

    @property
    def allocated_percentage(self) -> float:
        return sum(a.percentage for a in self.allocations)


# -----------------------------
# Positions
# -----------------------------
@dataclass(frozen=True)
class VaultPosition:
    protocol: str
    vault_address: str
    asset: str
    value_usd: float
    supply_apy: float
    borrow_value_usd: float = 0.0
    borrow_apy: float = 0.0
    health_factor: Optional[float] = None
    risk_score: float = 2.0

    @property
    def net_apy(self) -> float:
        """Supply APY net of the cost of any debt carried against the deposit."""
        if self.value_usd <= 0:
            return 0.0
        if self.borrow_value_usd <= 0:
            return self.supply_apy
        earned = self.value_usd * self.supply_apy - self.borrow_value_usd * self.borrow_apy
        return earned / self.value_usd


@dataclass(frozen=True)
class LPPosition:
    protocol: str
    pool_address: str
    token0: str
    token1: str
    value_usd: float
    apy: float
    entry_price0: float
    entry_price1: float
    risk_score: float = 5.0

    @property
    def asset(self) -> str:
        return f"{self.token0}-{self.token1}"


@dataclass(frozen=True)
class UserPositions:
    address: str
    vault_positions: Tuple[VaultPosition, ...] = ()
    lp_positions: Tuple[LPPosition, ...] = ()
    source_errors: Tuple[SourceError, ...] = ()


# -----------------------------
# Analytics
# -----------------------------
@dataclass(frozen=True)
class PositionMetrics:
    protocol: str
    asset: str
    kind: SourceKind
    value_usd: float
    apy: float
    risk_score: float
    impermanent_loss: Optional[float] = None
    health_factor: Optional[float] = None
    borrow_value_usd: float = 0.0
    pair: Tuple[str, ...] = ()

    @property
    def key(self) -> Tuple[str, str]:
        return (self.protocol, self.asset)


@dataclass(frozen=True)
class YieldAnalytics:
    account: str
    total_value: float
    weighted_average_apy: float
    yield_24h: float
    yield_7d: float
    yield_30d: float
    sharpe_ratio: float
    diversification_score: float
    impermanent_loss_pct: float
    benchmark_strategy: str
    benchmark_apy: float
    net_return_vs_benchmark: float
    positions: Tuple[PositionMetrics, ...] = ()
    partial_data: bool = False
    partial_data_reasons: Tuple[str, ...] = ()
    source_errors: Tuple[SourceError, ...] = ()
    generated_at: datetime = field(default_factory=timezone.now)

    @property
    def held_keys(self) -> frozenset:
        return frozenset(p.key for p in self.positions if p.value_usd > 0)


# -----------------------------
# Rebalancing
# -----------------------------
@dataclass(frozen=True)
class RebalanceAction:
    id: str
    type: ActionType
    to_protocol: str
    asset: str
    amount: float
    reason: str
    expected_gain: float
    gas_estimate: float
    priority: Priority
    slippage_tolerance: float
    auto_execute: bool
    from_protocol: Optional[str] = None
    account_key: str = ""
    trigger: str = ""


@dataclass(frozen=True)
class EmergencyWithdrawRule:
    enabled: bool = False
    trigger_conditions: Tuple[str, ...] = ()
    target_asset: str = ""


@dataclass(frozen=True)
class AutoRebalanceConfig:
    enabled: bool
    max_slippage: float
    min_yield_difference: float
    max_gas_per_rebalance: float
    apy_threshold: float = 0.0
    il_threshold: float = 5.0
    risk_tolerance_change: float = 2.0
    whitelisted_protocols: Tuple[str, ...] = ()
    blacklisted_protocols: Tuple[str, ...] = ()
    emergency_withdraw: EmergencyWithdrawRule = EmergencyWithdrawRule()
    rebalance_frequency_hours: float = 24.0

    def validation_errors(self) -> Tuple[str, ...]:
        problems = []
        numeric = {
            "max_slippage": self.max_slippage,
            "min_yield_difference": self.min_yield_difference,
            "max_gas_per_rebalance": self.max_gas_per_rebalance,
            "apy_threshold": self.apy_threshold,
            "il_threshold": self.il_threshold,
            "risk_tolerance_change": self.risk_tolerance_change,
            "rebalance_frequency_hours": self.rebalance_frequency_hours,
        }
        for name, value in numeric.items():
            if value is None or isinstance(value, bool) or not isinstance(value, (int, float)):
                problems.append(f"{name} must be a number")
            elif math.isnan(value) or value < 0:
                problems.append(f"{name} must be >= 0. Got {value}")
        if isinstance(self.max_slippage, (int, float)) and self.max_slippage > 100:
            problems.append(f"max_slippage must be a percentage <= 100. Got {self.max_slippage}")
        for label, protocols in (("whitelisted_protocols", self.whitelisted_protocols),
                                 ("blacklisted_protocols", self.blacklisted_protocols)):
            if any(not isinstance(p, str) or not p.strip() for p in protocols):
                problems.append(f"{label} must not contain empty protocol names")
        overlap = set(self.whitelisted_protocols) & set(self.blacklisted_protocols)
        if overlap:
            problems.append(f"protocols cannot be both whitelisted and blacklisted: {sorted(overlap)}")
        rule = self.emergency_withdraw
        if rule.enabled:
            if not rule.target_asset or not rule.target_asset.strip():
                problems.append("emergency_withdraw.target_asset is required when the rule is enabled")
            if not rule.trigger_conditions:
                problems.append("emergency_withdraw.trigger_conditions must not be empty when the rule is enabled")
        return tuple(problems)
