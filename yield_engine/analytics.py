"""
Portfolio analytics over a user's vault and LP positions.
"""
import logging
from collections import defaultdict
from typing import Dict, Iterable, List, Optional, Tuple

from .conf import engine_setting
from .exceptions import PriceUnavailableError
from .types import LPPosition, PositionMetrics, SourceKind, UserPositions, VaultPosition, YieldAnalytics
from .utils.apy import trailing_yield
from .utils.impermanent_loss import impermanent_loss
from .utils.risk import sharpe_ratio, volatility_proxy

logger = logging.getLogger(__name__)

# N_eff at which the diversification score saturates
FULLY_DIVERSIFIED_POSITIONS = 5


def weighted_average_apy(items: Iterable[Tuple[float, float]]) -> float:
    """Value-weighted APY over (value, apy) pairs, ignoring non-positive values."""
    items = [(value, apy) for value, apy in items if value > 0]
    total = sum(value for value, _ in items)
    if total <= 0:
        return 0.0
    if len(items) == 1:
        return items[0][1]
    return sum(value * apy for value, apy in items) / total


def diversification_score(bucket_values: Iterable[float]) -> float:
    """
    0-10 score from the inverse Herfindahl index of bucket weights.

    One bucket scores 0; five or more equally sized buckets score 10.
    """
    values = [v for v in bucket_values if v > 0]
    total = sum(values)
    if total <= 0:
        return 0.0
    hhi = sum((v / total) ** 2 for v in values)
    effective = 1.0 / hhi
    score = 10.0 * (effective - 1.0) / (FULLY_DIVERSIFIED_POSITIONS - 1)
    return max(0.0, min(10.0, score))


def vault_health_factor(position: VaultPosition) -> Optional[float]:
    """Reported health factor, else collateral / debt. None means nothing borrowed."""
    if position.health_factor is not None:
        return position.health_factor
    if position.borrow_value_usd <= 0:
        return None
    return position.value_usd / position.borrow_value_usd


def _vault_metrics(position: VaultPosition) -> PositionMetrics:
    return PositionMetrics(
        protocol=position.protocol,
        asset=position.asset,
        kind=SourceKind.LENDING,
        value_usd=position.value_usd,
        apy=position.net_apy,
        risk_score=position.risk_score,
        health_factor=vault_health_factor(position),
        borrow_value_usd=position.borrow_value_usd,
    )


def _lp_metrics(position: LPPosition, price_oracle) -> Tuple[PositionMetrics, Optional[str]]:
    il = None
    reason = None
    if price_oracle is None:
        reason = f"{position.protocol}/{position.asset}: no price oracle, IL not computed"
    else:
        try:
            current0 = price_oracle.get_price(position.token0)
            current1 = price_oracle.get_price(position.token1)
            il = impermanent_loss(position.entry_price0, position.entry_price1, current0, current1)
        except PriceUnavailableError as e:
            reason = f"{position.protocol}/{position.asset}: missing price for {e.symbol}, excluded from IL"
        except ValueError as e:
            reason = f"{position.protocol}/{position.asset}: {str(e)}, excluded from IL"
    metrics = PositionMetrics(
        protocol=position.protocol,
        asset=position.asset,
        kind=SourceKind.LP,
        value_usd=position.value_usd,
        apy=position.apy,
        risk_score=position.risk_score,
        impermanent_loss=il,
        pair=(position.token0, position.token1),
    )
    return metrics, reason


def analyze(positions: UserPositions, price_oracle=None, benchmark: Optional[Dict] = None) -> YieldAnalytics:
    """
    Build a fresh YieldAnalytics snapshot for one account.

    LP legs without a price are left out of the IL aggregate but stay in every
    value total; the result is then flagged as partial with a reason.
    """
    metrics: List[PositionMetrics] = []
    reasons: List[str] = []

    for vault in positions.vault_positions:
        metrics.append(_vault_metrics(vault))
    for pool in positions.lp_positions:
        pool_metrics, reason = _lp_metrics(pool, price_oracle)
        metrics.append(pool_metrics)
        if reason:
            logger.warning(f"Partial analytics for {positions.address}: {reason}")
            reasons.append(reason)
    for error in positions.source_errors:
        reasons.append(f"source {error.source} unavailable: {error.message}")

    live = [m for m in metrics if m.value_usd > 0]
    total_value = sum(m.value_usd for m in live)
    apy = weighted_average_apy((m.value_usd, m.apy) for m in live)

    volatility = volatility_proxy((m.value_usd / total_value, m.risk_score) for m in live) if total_value > 0 else 0.0

    buckets = defaultdict(float)
    for m in live:
        buckets[m.key] += m.value_usd

    with_il = [m for m in live if m.kind == SourceKind.LP and m.impermanent_loss is not None]
    il_value = sum(m.value_usd for m in with_il)
    il_pct = sum(m.value_usd * m.impermanent_loss for m in with_il) / il_value * 100 if il_value > 0 else 0.0

    benchmark = benchmark or engine_setting("BENCHMARK")
    benchmark_apy = float(benchmark.get("apy", 0.0))

    return YieldAnalytics(
        account=positions.address,
        total_value=total_value,
        weighted_average_apy=apy,
        yield_24h=trailing_yield(total_value, apy, 1),
        yield_7d=trailing_yield(total_value, apy, 7),
        yield_30d=trailing_yield(total_value, apy, 30),
        sharpe_ratio=sharpe_ratio(apy, volatility),
        diversification_score=diversification_score(buckets.values()),
        impermanent_loss_pct=il_pct,
        benchmark_strategy=str(benchmark.get("strategy", "")),
        benchmark_apy=benchmark_apy,
        net_return_vs_benchmark=apy - benchmark_apy,
        positions=tuple(metrics),
        partial_data=bool(reasons),
        partial_data_reasons=tuple(reasons),
        source_errors=positions.source_errors,
    )
