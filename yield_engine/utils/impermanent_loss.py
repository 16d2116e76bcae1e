import math


def price_ratio_change(entry_price0: float, entry_price1: float, current_price0: float, current_price1: float) -> float:
    """r = (c1/c0) / (e1/e0), the relative move of token1 against token0 since entry."""
    for label, price in (("entry_price0", entry_price0), ("entry_price1", entry_price1),
                         ("current_price0", current_price0), ("current_price1", current_price1)):
        if price is None or price <= 0:
            raise ValueError(f"{label} must be > 0. Got {price}")
    return (current_price1 / current_price0) / (entry_price1 / entry_price0)


def impermanent_loss(entry_price0: float, entry_price1: float, current_price0: float, current_price1: float) -> float:
    """
    Impermanent loss of a constant-product pool position.

    IL = 2 * sqrt(r) / (1 + r) - 1, as a fraction. Zero when prices moved
    together, negative (a loss relative to holding) otherwise.
    """
    r = price_ratio_change(entry_price0, entry_price1, current_price0, current_price1)
    return 2 * math.sqrt(r) / (1 + r) - 1


def impermanent_loss_usd(value_usd: float, il_fraction: float) -> float:
    """Dollar amount lost to IL for a position currently worth ``value_usd``."""
    # value_lp = value_hold * (1 + IL)  =>  loss = value_lp * -IL / (1 + IL)
    if value_usd <= 0 or il_fraction >= 0:
        return 0.0
    return value_usd * -il_fraction / (1 + il_fraction)
