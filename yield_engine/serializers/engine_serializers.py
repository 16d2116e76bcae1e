from rest_framework import serializers


class EnumValueField(serializers.Field):
    """Read-only field rendering a str Enum as its value."""

    def __init__(self, **kwargs):
        kwargs['read_only'] = True
        super().__init__(**kwargs)

    def to_representation(self, value):
        return getattr(value, 'value', value)


class SourceErrorSerializer(serializers.Serializer):
    source = serializers.CharField()
    kind = EnumValueField()
    message = serializers.CharField()
    timed_out = serializers.BooleanField()


class YieldOpportunitySerializer(serializers.Serializer):
    protocol = serializers.CharField()
    strategy_type = EnumValueField()
    asset = serializers.CharField()
    current_apy = serializers.FloatField()
    projected_apy = serializers.FloatField()
    risk_score = serializers.FloatField()
    risk_level = EnumValueField()
    liquidity_score = serializers.FloatField()
    gas_cost_usd = serializers.FloatField()
    net_apy_after_gas = serializers.FloatField()
    confidence = serializers.FloatField()
    market_address = serializers.CharField()
    tvl = serializers.FloatField()


class PortfolioAllocationSerializer(serializers.Serializer):
    protocol = serializers.CharField()
    strategy = serializers.CharField()
    asset = serializers.CharField()
    percentage = serializers.FloatField()
    amount = serializers.FloatField()
    current_apy = serializers.FloatField()
    risk_score = serializers.FloatField()


class OptimizationStrategySerializer(serializers.Serializer):
    id = serializers.CharField()
    name = serializers.CharField()
    description = serializers.CharField()
    risk_tier = EnumValueField()
    allocations = PortfolioAllocationSerializer(many=True)
    allocated_percentage = serializers.FloatField()
    total_apy = serializers.FloatField()
    sharpe_ratio = serializers.FloatField()
    max_drawdown = serializers.FloatField()
    required_capital = serializers.FloatField()
    rebalance_frequency = serializers.CharField()
    rebalance_threshold = serializers.FloatField()
    max_slippage = serializers.FloatField()


class PositionMetricsSerializer(serializers.Serializer):
    protocol = serializers.CharField()
    asset = serializers.CharField()
    kind = EnumValueField()
    value_usd = serializers.FloatField()
    apy = serializers.FloatField()
    risk_score = serializers.FloatField()
    impermanent_loss = serializers.FloatField(allow_null=True)
    health_factor = serializers.FloatField(allow_null=True)
    borrow_value_usd = serializers.FloatField()
    pair = serializers.ListField(child=serializers.CharField())


class YieldAnalyticsSerializer(serializers.Serializer):
    account = serializers.CharField()
    total_value = serializers.FloatField()
    weighted_average_apy = serializers.FloatField()
    yield_24h = serializers.FloatField()
    yield_7d = serializers.FloatField()
    yield_30d = serializers.FloatField()
    sharpe_ratio = serializers.FloatField()
    diversification_score = serializers.FloatField()
    impermanent_loss_pct = serializers.FloatField()
    benchmark_strategy = serializers.CharField()
    benchmark_apy = serializers.FloatField()
    net_return_vs_benchmark = serializers.FloatField()
    positions = PositionMetricsSerializer(many=True)
    partial_data = serializers.BooleanField()
    partial_data_reasons = serializers.ListField(child=serializers.CharField())
    source_errors = SourceErrorSerializer(many=True)
    generated_at = serializers.DateTimeField()


class RebalanceActionSerializer(serializers.Serializer):
    id = serializers.CharField()
    type = EnumValueField()
    from_protocol = serializers.CharField(allow_null=True)
    to_protocol = serializers.CharField()
    asset = serializers.CharField()
    amount = serializers.FloatField()
    reason = serializers.CharField()
    expected_gain = serializers.FloatField()
    gas_estimate = serializers.FloatField()
    priority = EnumValueField()
    slippage_tolerance = serializers.FloatField()
    auto_execute = serializers.BooleanField()
    account_key = serializers.CharField()
    trigger = serializers.CharField()


class RejectionSerializer(serializers.Serializer):
    action = RebalanceActionSerializer()
    check = serializers.CharField()
    detail = serializers.CharField()


class QualityCheckResultSerializer(serializers.Serializer):
    rule_id = serializers.CharField()
    rule_name = serializers.CharField()
    passed = serializers.BooleanField()
    score = serializers.FloatField()
    message = serializers.CharField()
    severity = serializers.CharField()
    details = serializers.DictField()


class DataQualityReportSerializer(serializers.Serializer):
    data_source = serializers.CharField()
    overall_score = serializers.FloatField()
    total_checks = serializers.IntegerField()
    passed_checks = serializers.IntegerField()
    failed_checks = serializers.IntegerField()
    status = serializers.CharField()
    results = QualityCheckResultSerializer(many=True)
    generated_at = serializers.DateTimeField()


class ForecastFactorSerializer(serializers.Serializer):
    factor = serializers.CharField()
    impact = serializers.FloatField()
    confidence = serializers.FloatField()


class ForecastScenarioSerializer(serializers.Serializer):
    scenario = serializers.CharField()
    probability = serializers.FloatField()
    apy = serializers.FloatField()
    reasoning = serializers.CharField()


class YieldForecastSerializer(serializers.Serializer):
    asset = serializers.CharField()
    protocol = serializers.CharField()
    timeframe = serializers.CharField()
    current_apy = serializers.FloatField()
    forecasted_apy = serializers.FloatField()
    confidence = serializers.FloatField()
    factors = ForecastFactorSerializer(many=True)
    scenarios = ForecastScenarioSerializer(many=True)
