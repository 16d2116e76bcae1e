from .engine_serializers import (
    EnumValueField,
    SourceErrorSerializer,
    YieldOpportunitySerializer,
    PortfolioAllocationSerializer,
    OptimizationStrategySerializer,
    PositionMetricsSerializer,
    YieldAnalyticsSerializer,
    RebalanceActionSerializer,
    RejectionSerializer,
    DataQualityReportSerializer,
    YieldForecastSerializer,
)
from .request_serializers import (
    OpportunityQuerySerializer,
    StrategyQuerySerializer,
    PortfolioQuerySerializer,
    ForecastQuerySerializer,
    RebalanceActionInputSerializer,
    AutoRebalanceConfigSerializer,
    AutoFilterRequestSerializer,
)

__all__ = [
    # Output serializers
    'EnumValueField',
    'SourceErrorSerializer',
    'YieldOpportunitySerializer',
    'PortfolioAllocationSerializer',
    'OptimizationStrategySerializer',
    'PositionMetricsSerializer',
    'YieldAnalyticsSerializer',
    'RebalanceActionSerializer',
    'RejectionSerializer',
    'DataQualityReportSerializer',
    'YieldForecastSerializer',

    # Request serializers
    'OpportunityQuerySerializer',
    'StrategyQuerySerializer',
    'PortfolioQuerySerializer',
    'ForecastQuerySerializer',
    'RebalanceActionInputSerializer',
    'AutoRebalanceConfigSerializer',
    'AutoFilterRequestSerializer',
]
