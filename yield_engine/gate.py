"""
Auto-rebalance gate.

Applies an AutoRebalanceConfig to candidate actions. Checks run in a fixed
order and stop at the first failure; every dropped action is returned with
the check that rejected it.
"""
import logging
from dataclasses import dataclass
from typing import Iterable, List, Optional, Tuple

from .exceptions import InvalidConfigurationError
from .types import AutoRebalanceConfig, Priority, RebalanceAction

logger = logging.getLogger(__name__)

CHECK_ENABLED = "enabled"
CHECK_MIN_YIELD_DIFFERENCE = "min_yield_difference"
CHECK_GAS_CAP = "max_gas_per_rebalance"
CHECK_PROTOCOL_POLICY = "protocol_policy"
CHECK_AUTO_EXECUTION = "auto_execution"

GATE_CHECKS = (
    CHECK_ENABLED,
    CHECK_MIN_YIELD_DIFFERENCE,
    CHECK_GAS_CAP,
    CHECK_PROTOCOL_POLICY,
    CHECK_AUTO_EXECUTION,
)


@dataclass(frozen=True)
class Rejection:
    action: RebalanceAction
    check: str
    detail: str


@dataclass(frozen=True)
class GateResult:
    approved: Tuple[RebalanceAction, ...]
    rejected: Tuple[Rejection, ...]


def validate_config(config: AutoRebalanceConfig):
    problems = config.validation_errors()
    if problems:
        raise InvalidConfigurationError(problems)


def first_failing_check(action: RebalanceAction, config: AutoRebalanceConfig) -> Optional[Tuple[str, str]]:
    """(check, detail) for the first check ``action`` fails, or None when it passes."""
    if not config.enabled:
        return CHECK_ENABLED, "auto-rebalance is disabled"
    # Written as pass conditions so a NaN gain or gas estimate is rejected
    if not action.expected_gain >= config.min_yield_difference:
        return (CHECK_MIN_YIELD_DIFFERENCE,
                f"expected gain {action.expected_gain:.4f} < minimum {config.min_yield_difference:.4f}")
    if not action.gas_estimate <= config.max_gas_per_rebalance:
        return CHECK_GAS_CAP, f"gas {action.gas_estimate:.4f} > cap {config.max_gas_per_rebalance:.4f}"
    if config.whitelisted_protocols and action.to_protocol not in config.whitelisted_protocols:
        return CHECK_PROTOCOL_POLICY, f"{action.to_protocol} is not whitelisted"
    if action.to_protocol in config.blacklisted_protocols:
        return CHECK_PROTOCOL_POLICY, f"{action.to_protocol} is blacklisted"
    if not action.auto_execute:
        return CHECK_AUTO_EXECUTION, "action is not marked for automatic execution"
    if action.priority == Priority.LOW:
        return CHECK_AUTO_EXECUTION, "low priority actions need manual approval"
    return None


def evaluate(actions: Iterable[RebalanceAction], config: AutoRebalanceConfig) -> GateResult:
    """
    Split ``actions`` into approved and rejected.

    Raises:
        InvalidConfigurationError: if ``config`` is malformed. Raised before
            any action is inspected.
    """
    validate_config(config)

    approved: List[RebalanceAction] = []
    rejected: List[Rejection] = []
    for action in actions:
        failure = first_failing_check(action, config)
        if failure is None:
            approved.append(action)
            continue
        check, detail = failure
        logger.info(f"Gate rejected {action.type.value} {action.id} ({action.to_protocol}) at {check}: {detail}")
        rejected.append(Rejection(action=action, check=check, detail=detail))
    return GateResult(approved=tuple(approved), rejected=tuple(rejected))


def filter_actions(actions: Iterable[RebalanceAction], config: AutoRebalanceConfig) -> List[RebalanceAction]:
    """Actions eligible for unattended execution."""
    return list(evaluate(actions, config).approved)
