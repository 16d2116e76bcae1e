from django.urls import path

from .views import (analyze_portfolio, auto_filter_actions, get_market_quality, get_optimization_strategies,
                    get_yield_forecasts, get_yield_opportunities, health_check)

urlpatterns = [
    path('health/', health_check, name='health_check'),
    path('opportunities/', get_yield_opportunities, name='get_yield_opportunities'),
    path('strategies/', get_optimization_strategies, name='get_optimization_strategies'),
    path('portfolio/<str:address>/analysis/', analyze_portfolio, name='analyze_portfolio'),
    path('rebalance/auto-filter/', auto_filter_actions, name='auto_filter_actions'),
    path('markets/quality/', get_market_quality, name='get_market_quality'),
    path('forecasts/', get_yield_forecasts, name='get_yield_forecasts'),
]
