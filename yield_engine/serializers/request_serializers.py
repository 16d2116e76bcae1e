"""
Input serializers. Field types are checked here; business validation of an
auto-rebalance config (ranges, list overlap) stays in the engine so the HTTP
layer and the worker reject exactly the same configs.
"""
import uuid

from rest_framework import serializers

from ..forecast import TIMEFRAME_DAYS
from ..types import (ActionType, AutoRebalanceConfig, EmergencyWithdrawRule, Priority,
                     RebalanceAction, RiskTier, RiskTolerance)


def _choices(enum_cls):
    return [member.value for member in enum_cls]


class OpportunityQuerySerializer(serializers.Serializer):
    asset = serializers.CharField(max_length=64)
    amount = serializers.FloatField()
    risk_tolerance = serializers.ChoiceField(choices=_choices(RiskTolerance), default=RiskTolerance.MEDIUM.value)

    def validate_amount(self, value):
        if value <= 0:
            raise serializers.ValidationError("amount must be greater than 0")
        return value


class StrategyQuerySerializer(serializers.Serializer):
    capital = serializers.FloatField()
    risk_tier = serializers.ChoiceField(choices=_choices(RiskTier), default=RiskTier.MODERATE.value)
    live = serializers.BooleanField(default=False)

    def validate_capital(self, value):
        if value <= 0:
            raise serializers.ValidationError("capital must be greater than 0")
        return value


class PortfolioQuerySerializer(serializers.Serializer):
    target_apy = serializers.FloatField(required=False, allow_null=True)
    risk_tolerance = serializers.ChoiceField(choices=_choices(RiskTolerance), default=RiskTolerance.MEDIUM.value)


class ForecastQuerySerializer(serializers.Serializer):
    assets = serializers.CharField()
    timeframe = serializers.ChoiceField(choices=list(TIMEFRAME_DAYS), default="30d")

    def validate_assets(self, value):
        assets = [a.strip() for a in value.split(",") if a.strip()]
        if not assets:
            raise serializers.ValidationError("at least one asset is required")
        return assets


class RebalanceActionInputSerializer(serializers.Serializer):
    id = serializers.CharField(required=False)
    type = serializers.ChoiceField(choices=_choices(ActionType))
    from_protocol = serializers.CharField(required=False, allow_null=True, allow_blank=True)
    to_protocol = serializers.CharField()
    asset = serializers.CharField()
    amount = serializers.FloatField()
    reason = serializers.CharField(required=False, allow_blank=True, default="")
    expected_gain = serializers.FloatField()
    gas_estimate = serializers.FloatField()
    priority = serializers.ChoiceField(choices=_choices(Priority))
    slippage_tolerance = serializers.FloatField(required=False, default=0.5)
    auto_execute = serializers.BooleanField()
    account_key = serializers.CharField(required=False, allow_blank=True, default="")
    trigger = serializers.CharField(required=False, allow_blank=True, default="")

    @staticmethod
    def to_action(data) -> RebalanceAction:
        return RebalanceAction(
            id=data.get("id") or uuid.uuid4().hex,
            type=ActionType(data["type"]),
            from_protocol=data.get("from_protocol") or None,
            to_protocol=data["to_protocol"],
            asset=data["asset"],
            amount=data["amount"],
            reason=data.get("reason", ""),
            expected_gain=data["expected_gain"],
            gas_estimate=data["gas_estimate"],
            priority=Priority(data["priority"]),
            slippage_tolerance=data.get("slippage_tolerance", 0.5),
            auto_execute=data["auto_execute"],
            account_key=data.get("account_key", ""),
            trigger=data.get("trigger", ""),
        )


class EmergencyWithdrawSerializer(serializers.Serializer):
    enabled = serializers.BooleanField(default=False)
    trigger_conditions = serializers.ListField(child=serializers.CharField(), default=list)
    target_asset = serializers.CharField(required=False, allow_blank=True, default="")


class AutoRebalanceConfigSerializer(serializers.Serializer):
    enabled = serializers.BooleanField()
    max_slippage = serializers.FloatField()
    min_yield_difference = serializers.FloatField()
    max_gas_per_rebalance = serializers.FloatField()
    apy_threshold = serializers.FloatField(required=False, default=0.0)
    il_threshold = serializers.FloatField(required=False, default=5.0)
    risk_tolerance_change = serializers.FloatField(required=False, default=2.0)
    whitelisted_protocols = serializers.ListField(child=serializers.CharField(allow_blank=True), default=list)
    blacklisted_protocols = serializers.ListField(child=serializers.CharField(allow_blank=True), default=list)
    emergency_withdraw = EmergencyWithdrawSerializer(required=False)
    rebalance_frequency_hours = serializers.FloatField(required=False, default=24.0)

    @staticmethod
    def to_config(data) -> AutoRebalanceConfig:
        rule = data.get("emergency_withdraw") or {}
        return AutoRebalanceConfig(
            enabled=data["enabled"],
            max_slippage=data["max_slippage"],
            min_yield_difference=data["min_yield_difference"],
            max_gas_per_rebalance=data["max_gas_per_rebalance"],
            apy_threshold=data.get("apy_threshold", 0.0),
            il_threshold=data.get("il_threshold", 5.0),
            risk_tolerance_change=data.get("risk_tolerance_change", 2.0),
            whitelisted_protocols=tuple(data.get("whitelisted_protocols", ())),
            blacklisted_protocols=tuple(data.get("blacklisted_protocols", ())),
            emergency_withdraw=EmergencyWithdrawRule(
                enabled=rule.get("enabled", False),
                trigger_conditions=tuple(rule.get("trigger_conditions", ())),
                target_asset=rule.get("target_asset", ""),
            ),
            rebalance_frequency_hours=data.get("rebalance_frequency_hours", 24.0),
        )


class AutoFilterRequestSerializer(serializers.Serializer):
    actions = RebalanceActionInputSerializer(many=True)
    config = AutoRebalanceConfigSerializer()
