from .apy import per_second_rate_to_apy, kinked_supply_apy, to_fraction, to_percent, trailing_yield
from .impermanent_loss import impermanent_loss, impermanent_loss_usd, price_ratio_change

__all__ = [
    'per_second_rate_to_apy',
    'kinked_supply_apy',
    'to_fraction',
    'to_percent',
    'trailing_yield',
    'impermanent_loss',
    'impermanent_loss_usd',
    'price_ratio_change',
]
