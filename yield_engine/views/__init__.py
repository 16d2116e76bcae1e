from .health_views import health_check
from .optimization_views import (
    get_yield_opportunities,
    get_optimization_strategies,
    analyze_portfolio,
    auto_filter_actions,
    get_market_quality,
    get_yield_forecasts,
)
from .utils import log_error, get_service

__all__ = [
    'health_check',
    'get_yield_opportunities',
    'get_optimization_strategies',
    'analyze_portfolio',
    'auto_filter_actions',
    'get_market_quality',
    'get_yield_forecasts',
    'log_error',
    'get_service',
]
