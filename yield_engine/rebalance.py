"""
Rebalance engine: compares portfolio analytics with ranked opportunities and
emits candidate RebalanceActions.

The engine only recommends. Nothing here signs, submits or mutates its inputs;
execution goes through execution.submit_serialized.
"""
import logging
import uuid
from dataclasses import dataclass
from typing import Iterable, List, Optional, Sequence

from .conf import engine_setting
from .types import (ActionType, AutoRebalanceConfig, PositionMetrics, Priority, RebalanceAction,
                    SourceKind, StrategyType, YieldAnalytics, YieldOpportunity)

logger = logging.getLogger(__name__)

TRIGGER_LOW_YIELD = "low_yield"
TRIGGER_HIGH_IL = "high_il"
TRIGGER_HEALTH_FACTOR = "health_factor"

TRIGGERS = (TRIGGER_LOW_YIELD, TRIGGER_HIGH_IL, TRIGGER_HEALTH_FACTOR)


@dataclass(frozen=True)
class RebalancePolicy:
    target_apy: float
    il_threshold_pct: float
    il_catastrophic_multiple: float
    health_factor_margin: float
    slippage_tolerance: float

    @classmethod
    def from_settings(cls, **overrides) -> "RebalancePolicy":
        values = {
            "target_apy": float(engine_setting("TARGET_APY")),
            "il_threshold_pct": float(engine_setting("IL_THRESHOLD_PCT")),
            "il_catastrophic_multiple": float(engine_setting("IL_CATASTROPHIC_MULTIPLE")),
            "health_factor_margin": float(engine_setting("HEALTH_FACTOR_SAFETY_MARGIN")),
            "slippage_tolerance": float(engine_setting("DEFAULT_SLIPPAGE_TOLERANCE")),
        }
        values.update({k: v for k, v in overrides.items() if v is not None})
        return cls(**values)

    @classmethod
    def from_config(cls, config: AutoRebalanceConfig) -> "RebalancePolicy":
        """Policy for an account's auto-rebalance config; zero thresholds keep the defaults."""
        return cls.from_settings(
            target_apy=config.apy_threshold or None,
            il_threshold_pct=config.il_threshold or None,
            slippage_tolerance=config.max_slippage or None,
        )


def _new_action_id() -> str:
    return uuid.uuid4().hex


def yield_gain_priority(gain: float) -> Priority:
    if gain < 1.0:
        return Priority.LOW
    if gain < 5.0:
        return Priority.MEDIUM
    return Priority.HIGH


def il_priority(loss_pct: float, policy: RebalancePolicy) -> Optional[Priority]:
    """Priority for an IL loss (positive percent); None when under threshold."""
    threshold = policy.il_threshold_pct
    if loss_pct <= threshold:
        return None
    if loss_pct >= threshold * policy.il_catastrophic_multiple:
        return Priority.CRITICAL
    if loss_pct >= threshold * 2:
        return Priority.HIGH
    return Priority.MEDIUM


def sort_actions(actions: Iterable[RebalanceAction]) -> List[RebalanceAction]:
    """Critical > High > Medium > Low, then expected gain desc."""
    return sorted(actions, key=lambda a: (-a.priority.rank, -a.expected_gain))


def _low_yield_action(analytics: YieldAnalytics, opportunities: Sequence[YieldOpportunity],
                      policy: RebalancePolicy) -> Optional[RebalanceAction]:
    current = analytics.weighted_average_apy
    if analytics.total_value <= 0 or current >= policy.target_apy:
        return None

    held = [p for p in analytics.positions if p.value_usd > 0]
    if not held:
        return None
    held_keys = analytics.held_keys
    best = next((o for o in opportunities if (o.protocol, o.asset) not in held_keys), None)
    if best is None:
        logger.info(f"{analytics.account}: APY {current:.2f}% under target but no unheld opportunity")
        return None

    gain = best.net_apy_after_gas - current
    if gain <= 0:
        return None
    weakest = min(held, key=lambda p: p.apy)
    return RebalanceAction(
        id=_new_action_id(),
        type=ActionType.MIGRATE,
        from_protocol=weakest.protocol,
        to_protocol=best.protocol,
        asset=best.asset,
        amount=weakest.value_usd,
        reason=(f"Portfolio APY {current:.2f}% is below target {policy.target_apy:.2f}%; "
                f"{best.protocol} {best.asset} nets {best.net_apy_after_gas:.2f}% after gas"),
        expected_gain=gain,
        gas_estimate=best.gas_cost_usd,
        priority=yield_gain_priority(gain),
        slippage_tolerance=policy.slippage_tolerance,
        auto_execute=True,
        account_key=analytics.account,
        trigger=TRIGGER_LOW_YIELD,
    )


def _lending_exit(position: PositionMetrics, opportunities: Sequence[YieldOpportunity]) -> Optional[YieldOpportunity]:
    legs = {a.upper() for a in position.pair}
    return next(
        (o for o in opportunities if o.strategy_type == StrategyType.LENDING and o.asset.upper() in legs),
        None,
    )


def _high_il_actions(analytics: YieldAnalytics, opportunities: Sequence[YieldOpportunity],
                     policy: RebalancePolicy) -> List[RebalanceAction]:
    actions = []
    for position in analytics.positions:
        if position.kind != SourceKind.LP or position.impermanent_loss is None or position.value_usd <= 0:
            continue
        loss_pct = -position.impermanent_loss * 100
        priority = il_priority(loss_pct, policy)
        if priority is None:
            continue

        target = _lending_exit(position, opportunities)
        reason = f"Impermanent loss {loss_pct:.2f}% on {position.protocol} {position.asset} exceeds {policy.il_threshold_pct:.2f}%"
        if target is not None:
            actions.append(RebalanceAction(
                id=_new_action_id(),
                type=ActionType.MIGRATE,
                from_protocol=position.protocol,
                to_protocol=target.protocol,
                asset=target.asset,
                amount=position.value_usd,
                reason=f"{reason}; moving into {target.asset} lending",
                expected_gain=max(0.0, target.net_apy_after_gas - position.apy),
                gas_estimate=target.gas_cost_usd,
                priority=priority,
                slippage_tolerance=policy.slippage_tolerance,
                auto_execute=True,
                account_key=analytics.account,
                trigger=TRIGGER_HIGH_IL,
            ))
        else:
            actions.append(RebalanceAction(
                id=_new_action_id(),
                type=ActionType.WITHDRAW,
                from_protocol=position.protocol,
                to_protocol=position.protocol,
                asset=position.asset,
                amount=position.value_usd,
                reason=f"{reason}; no lending market for either leg, withdrawing",
                expected_gain=0.0,
                gas_estimate=0.0,
                priority=priority,
                slippage_tolerance=policy.slippage_tolerance,
                auto_execute=True,
                account_key=analytics.account,
                trigger=TRIGGER_HIGH_IL,
            ))
    return actions


def _health_factor_actions(analytics: YieldAnalytics, policy: RebalancePolicy) -> List[RebalanceAction]:
    actions = []
    margin = policy.health_factor_margin
    for position in analytics.positions:
        hf = position.health_factor
        if hf is None or hf >= margin or position.borrow_value_usd <= 0:
            continue
        # Debt to repay so collateral / debt climbs back to the margin
        repay = position.borrow_value_usd * (1 - hf / margin)
        actions.append(RebalanceAction(
            id=_new_action_id(),
            type=ActionType.REPAY,
            from_protocol=position.protocol,
            to_protocol=position.protocol,
            asset=position.asset,
            amount=repay,
            reason=f"Health factor {hf:.2f} on {position.protocol} {position.asset} is below {margin:.2f}",
            expected_gain=0.0,
            gas_estimate=0.0,
            priority=Priority.CRITICAL,
            slippage_tolerance=policy.slippage_tolerance,
            auto_execute=True,
            account_key=analytics.account,
            trigger=TRIGGER_HEALTH_FACTOR,
        ))
    return actions


def recommend(analytics: YieldAnalytics, opportunities: Sequence[YieldOpportunity],
              policy: Optional[RebalancePolicy] = None) -> List[RebalanceAction]:
    """
    Candidate actions for one account, ordered by priority then expected gain.

    ``opportunities`` should already be ranked best first.
    """
    policy = policy or RebalancePolicy.from_settings()
    opportunities = tuple(opportunities)

    actions = []
    low_yield = _low_yield_action(analytics, opportunities, policy)
    if low_yield is not None:
        actions.append(low_yield)
    actions.extend(_high_il_actions(analytics, opportunities, policy))
    actions.extend(_health_factor_actions(analytics, policy))

    if actions:
        logger.info(f"{analytics.account}: {len(actions)} rebalance actions recommended")
    return sort_actions(actions)
