"""
Interest rate annualisation helpers.

Rates coming out of vault contracts and pool APIs arrive in several shapes
(per-second rates scaled by 1e18, percentages, fractions). Everything here
returns APY as a percentage.
"""
import math
from typing import Union

SECONDS_PER_YEAR = 365 * 24 * 60 * 60  # 31536000
RATE_SCALE = 1e18
BORROW_APY_APPROXIMATION = 1.2


def to_fraction(v: Union[str, float, int, None]) -> float:
    """Convert percent or fraction to fraction. None -> 0.0"""
    if v is None:
        return 0.0
    if isinstance(v, (int, float)):
        vv = float(v)
        return vv / 100.0 if vv > 1.0 else vv
    s = str(v).strip()
    if s.endswith('%'):
        s = s[:-1].strip()
    try:
        vv = float(s)
    except ValueError:
        raise ValueError(f"Expected numeric rate but got: {v!r}")
    return vv / 100.0 if vv > 1.0 else vv


def to_percent(v: Union[str, float, int, None]) -> float:
    """Normalise an APY that may be quoted as a fraction or a percentage."""
    if v is None:
        return 0.0
    if isinstance(v, str) and v.strip().endswith('%'):
        return float(v.strip()[:-1])
    value = float(v)
    # Values at or below 1.0 are treated as fractions (0.05 == 5%)
    return value * 100.0 if abs(value) <= 1.0 else value


def per_second_rate_to_apy(rate_per_second_scaled: Union[int, float], utilization: float = 1.0) -> float:
    """
    Annualise a per-second interest rate scaled by 1e18.

    Args:
        rate_per_second_scaled: Interest rate per second (1e18 == 100% per second)
        utilization: Pool utilization as a fraction, the share of deposits earning interest

    Returns:
        Supply APY as a percentage, clamped to [0, 100]
    """
    rate_per_second = float(rate_per_second_scaled) / RATE_SCALE
    if rate_per_second <= 0:
        return 0.0

    # Compound every second over a year
    apy = (math.pow(1 + rate_per_second, SECONDS_PER_YEAR) - 1) * 100 * utilization
    return min(max(apy, 0.0), 100.0)


def kinked_supply_apy(utilization: float, kink: float, slope1: float, slope2: float, reserve_factor: float) -> float:
    """
    Supply APY for a pool using a kinked (jump-rate) interest model.

    Args:
        utilization: Pool utilization as a fraction (0.0-1.0)
        kink: Utilization at which slope2 kicks in
        slope1: Borrow APR at the kink
        slope2: Additional borrow APR from kink to 100% utilization
        reserve_factor: Share of interest kept by the protocol

    Returns:
        Supply APY as a percentage
    """
    u = max(0.01, min(0.99, utilization))

    if u <= kink:
        borrow_apr = (u / kink) * slope1
    else:
        borrow_apr = slope1 + ((u - kink) / (1 - kink)) * slope2

    supply_apr = borrow_apr * u * (1 - reserve_factor)
    return (math.exp(supply_apr) - 1) * 100


def approximate_borrow_apy(supply_apy: float) -> float:
    """Borrow APY estimate for sources that only publish the supply side."""
    return supply_apy * BORROW_APY_APPROXIMATION


def trailing_yield(total_value: float, apy_pct: float, days: float) -> float:
    """Yield (USD) earned over ``days`` at a constant APY."""
    if total_value <= 0 or apy_pct == 0:
        return 0.0
    return total_value * (apy_pct / 100.0) * days / 365.0
