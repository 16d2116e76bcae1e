"""
Market data quality checks.

Runs a fixed set of rules over a MarketSnapshot and rolls them up into a
0-100 score and a healthy / warning / critical status.
"""
import logging
from collections import Counter
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Callable, Dict, List, Optional, Tuple

from django.utils import timezone

from .conf import engine_setting
from .types import MarketSnapshot, SourceKind, StrategyType

logger = logging.getLogger(__name__)

SEVERITY_LEVELS = {"low": 1, "medium": 2, "high": 3, "critical": 4}

STATUS_HEALTHY = "healthy"
STATUS_WARNING = "warning"
STATUS_CRITICAL = "critical"


@dataclass(frozen=True)
class QualityCheckResult:
    rule_id: str
    rule_name: str
    passed: bool
    score: float
    message: str
    severity: str
    details: Dict = field(default_factory=dict)


@dataclass(frozen=True)
class DataQualityReport:
    data_source: str
    overall_score: float
    results: Tuple[QualityCheckResult, ...]
    status: str
    generated_at: datetime = field(default_factory=timezone.now)

    @property
    def total_checks(self) -> int:
        return len(self.results)

    @property
    def passed_checks(self) -> int:
        return sum(1 for r in self.results if r.passed)

    @property
    def failed_checks(self) -> int:
        return self.total_checks - self.passed_checks


def _share(good: int, total: int) -> float:
    return good / total * 100 if total > 0 else 100.0


def check_apy_sanity(snapshot: MarketSnapshot, source_count: Optional[int]) -> QualityCheckResult:
    max_apy = float(engine_setting("MAX_SANE_APY"))
    apys = [m.supply_apy for m in snapshot.markets] + [m.borrow_apy for m in snapshot.markets]
    valid = sum(1 for apy in apys if 0 <= apy <= max_apy)
    score = _share(valid, len(apys))
    return QualityCheckResult(
        rule_id="apy-sanity-check",
        rule_name="APY Sanity Check",
        passed=score >= 90,
        score=score,
        message=f"{valid}/{len(apys)} APY values within 0-{max_apy:g}%",
        severity="medium",
        details={"valid": valid, "total": len(apys), "max_apy": max_apy},
    )


def check_utilization_consistency(snapshot: MarketSnapshot, source_count: Optional[int]) -> QualityCheckResult:
    # Only lending markets publish utilization that must agree with their liquidity
    lending = [m for m in snapshot.markets
               if m.strategy_type == StrategyType.LENDING and m.kind != SourceKind.CROSS_PROTOCOL and m.total_assets > 0]
    consistent = 0
    for market in lending:
        implied = 1 - market.available_liquidity / market.total_assets
        if abs(implied - market.utilization) <= 0.05:
            consistent += 1
    score = _share(consistent, len(lending))
    return QualityCheckResult(
        rule_id="utilization-consistency",
        rule_name="Utilization Consistency",
        passed=score >= 90,
        score=score,
        message=f"{consistent}/{len(lending)} lending markets report utilization matching their liquidity",
        severity="medium",
        details={"consistent": consistent, "total": len(lending)},
    )


def check_liquidity_consistency(snapshot: MarketSnapshot, source_count: Optional[int]) -> QualityCheckResult:
    markets = snapshot.markets
    consistent = sum(1 for m in markets if 0 <= m.available_liquidity <= m.total_assets and m.total_assets >= 0)
    score = _share(consistent, len(markets))
    return QualityCheckResult(
        rule_id="liquidity-consistency",
        rule_name="Liquidity Consistency",
        passed=consistent == len(markets),
        score=score,
        message=f"{consistent}/{len(markets)} markets have 0 <= available liquidity <= total assets",
        severity="high",
        details={"consistent": consistent, "total": len(markets)},
    )


def check_data_freshness(snapshot: MarketSnapshot, source_count: Optional[int]) -> QualityCheckResult:
    max_age_seconds = engine_setting("MAX_DATA_AGE_SECONDS")
    max_age = timedelta(seconds=max_age_seconds)
    now = timezone.now()
    fresh = sum(1 for m in snapshot.markets if now - (m.updated_at or snapshot.fetched_at) <= max_age)
    score = _share(fresh, len(snapshot.markets))
    return QualityCheckResult(
        rule_id="data-freshness",
        rule_name="Data Freshness Check",
        passed=score >= 80,
        score=score,
        message=f"{fresh}/{len(snapshot.markets)} markets updated within {max_age_seconds}s",
        severity="medium",
        details={"fresh": fresh, "total": len(snapshot.markets), "max_age_seconds": max_age_seconds},
    )


def check_duplicates(snapshot: MarketSnapshot, source_count: Optional[int]) -> QualityCheckResult:
    keys = Counter((m.protocol, m.asset, m.strategy_type, m.address) for m in snapshot.markets)
    duplicates = sum(count - 1 for count in keys.values() if count > 1)
    pct = duplicates / len(snapshot.markets) * 100 if snapshot.markets else 0.0
    return QualityCheckResult(
        rule_id="duplicate-detection",
        rule_name="Duplicate Data Detection",
        passed=pct <= 1,
        score=max(0.0, 100 - pct),
        message=f"{duplicates} duplicate market records",
        severity="low",
        details={"duplicates": duplicates},
    )


def check_source_availability(snapshot: MarketSnapshot, source_count: Optional[int]) -> QualityCheckResult:
    failed = len(snapshot.source_errors)
    total = source_count if source_count is not None else failed
    score = _share(total - failed, total)
    return QualityCheckResult(
        rule_id="source-availability",
        rule_name="Source Availability",
        passed=failed == 0,
        score=score,
        message=f"{failed} of {total} sources unavailable" if failed else "all sources answered",
        # Losing every source is not a degraded snapshot, it is no snapshot
        severity="critical" if total and failed == total else "high",
        details={"unavailable": [e.source for e in snapshot.source_errors]},
    )


QUALITY_CHECKS: Tuple[Callable[[MarketSnapshot, Optional[int]], QualityCheckResult], ...] = (
    check_apy_sanity,
    check_utilization_consistency,
    check_liquidity_consistency,
    check_data_freshness,
    check_duplicates,
    check_source_availability,
)


def determine_status(score: float, results: List[QualityCheckResult]) -> str:
    failed = [r for r in results if not r.passed]
    if any(r.severity == "critical" for r in failed) or score < 60:
        return STATUS_CRITICAL
    if any(r.severity == "high" for r in failed) or score < 80:
        return STATUS_WARNING
    return STATUS_HEALTHY


def run_quality_checks(snapshot: MarketSnapshot, source_count: Optional[int] = None) -> DataQualityReport:
    results = []
    for check in QUALITY_CHECKS:
        try:
            results.append(check(snapshot, source_count))
        except Exception as e:
            logger.error(f"Error executing quality check {check.__name__}: {str(e)}")
            results.append(QualityCheckResult(
                rule_id=check.__name__,
                rule_name=check.__name__,
                passed=False,
                score=0.0,
                message=f"Rule execution failed: {str(e)}",
                severity="medium",
            ))

    passed = sum(1 for r in results if r.passed)
    overall = passed / len(results) * 100 if results else 0.0
    status = determine_status(overall, results)
    if status != STATUS_HEALTHY:
        logger.warning(f"Market data for {snapshot.asset} is {status} (score {overall:.1f})")
    return DataQualityReport(
        data_source=snapshot.asset,
        overall_score=overall,
        results=tuple(results),
        status=status,
    )
