import logging

from drf_spectacular.utils import OpenApiExample, OpenApiParameter, OpenApiResponse, extend_schema
from rest_framework import status
from rest_framework.decorators import api_view, authentication_classes, permission_classes
from rest_framework.response import Response

from ..exceptions import InvalidConfigurationError
from ..serializers import (AutoFilterRequestSerializer, AutoRebalanceConfigSerializer,
                           DataQualityReportSerializer, ForecastQuerySerializer,
                           OpportunityQuerySerializer, OptimizationStrategySerializer,
                           PortfolioQuerySerializer, RebalanceActionInputSerializer,
                           RebalanceActionSerializer, RejectionSerializer, SourceErrorSerializer,
                           StrategyQuerySerializer, YieldAnalyticsSerializer, YieldForecastSerializer,
                           YieldOpportunitySerializer)
from ..types import RiskTier, RiskTolerance
from .utils import get_service, log_error

logger = logging.getLogger(__name__)


def _server_error(e, context):
    error_context = log_error(e, context)
    return Response({
        'error': 'Internal server error',
        'error_type': error_context['error_type'],
        'detail': error_context['error_message'],
    }, status=status.HTTP_500_INTERNAL_SERVER_ERROR)


@extend_schema(
    summary="Yield Opportunities",
    description="Rank yield opportunities for an asset across every configured protocol, filtered by risk tolerance.",
    parameters=[
        OpenApiParameter("asset", str, description="Asset symbol, e.g. USDC", required=True),
        OpenApiParameter("amount", float, description="Deposit size in units of the asset", required=True),
        OpenApiParameter("risk_tolerance", str, enum=["Low", "Medium", "High"], description="Defaults to Medium"),
    ],
    responses={
        200: OpenApiResponse(
            description="Opportunities ordered by net APY after gas",
            examples=[
                OpenApiExample(
                    "Opportunities",
                    value={
                        "asset": "USDC",
                        "results": [
                            {
                                "protocol": "Euler Vaults",
                                "strategy_type": "Lending",
                                "asset": "USDC",
                                "current_apy": 5.5,
                                "projected_apy": 5.775,
                                "risk_score": 6.5,
                                "risk_level": "Medium",
                                "liquidity_score": 9.0,
                                "gas_cost_usd": 25.0,
                                "net_apy_after_gas": 5.525,
                                "confidence": 0.95,
                                "market_address": "0x1234567890",
                                "tvl": 12500000.0
                            }
                        ],
                        "count": 1,
                        "partial_data": False,
                        "source_errors": []
                    }
                )
            ]
        ),
        400: OpenApiResponse(description="Invalid query parameters"),
    },
    tags=["Yield Optimization"]
)
@api_view(['GET'])
@authentication_classes([])
@permission_classes([])
def get_yield_opportunities(request):
    """
    Rank yield opportunities for one asset.
    Sources that fail or time out are omitted and listed in source_errors.
    """
    query = OpportunityQuerySerializer(data=request.query_params)
    if not query.is_valid():
        return Response(query.errors, status=status.HTTP_400_BAD_REQUEST)
    params = query.validated_data

    try:
        result = get_service().scan_asset(
            params['asset'], params['amount'], RiskTolerance(params['risk_tolerance'])
        )
    except ValueError as e:
        return Response({'error': str(e)}, status=status.HTTP_400_BAD_REQUEST)
    except Exception as e:
        return _server_error(e, {'view': 'get_yield_opportunities', 'params': dict(params)})

    return Response({
        'asset': result.asset,
        'results': YieldOpportunitySerializer(result.opportunities, many=True).data,
        'count': len(result.opportunities),
        'partial_data': result.is_partial,
        'source_errors': SourceErrorSerializer(result.source_errors, many=True).data,
    }, status=status.HTTP_200_OK)


@extend_schema(
    summary="Optimization Strategies",
    description=("Template allocation strategies for a capital amount. A risk tier also receives every "
                 "lower-risk tier's strategies; results are ordered Conservative, Moderate, Aggressive."),
    parameters=[
        OpenApiParameter("capital", float, description="Capital to allocate (USD)", required=True),
        OpenApiParameter("risk_tier", str, enum=["Conservative", "Moderate", "Aggressive"]),
        OpenApiParameter("live", bool, description="Use live market APYs where available"),
    ],
    responses={
        200: OpenApiResponse(description="Strategies, most conservative first"),
        400: OpenApiResponse(description="Invalid query parameters"),
    },
    tags=["Yield Optimization"]
)
@api_view(['GET'])
@authentication_classes([])
@permission_classes([])
def get_optimization_strategies(request):
    query = StrategyQuerySerializer(data=request.query_params)
    if not query.is_valid():
        return Response(query.errors, status=status.HTTP_400_BAD_REQUEST)
    params = query.validated_data

    try:
        strategies = get_service().generate_optimization_strategies(
            params['capital'], RiskTier(params['risk_tier']), live=params['live']
        )
    except ValueError as e:
        return Response({'error': str(e)}, status=status.HTTP_400_BAD_REQUEST)
    except Exception as e:
        return _server_error(e, {'view': 'get_optimization_strategies', 'params': dict(params)})

    return Response({
        'results': OptimizationStrategySerializer(strategies, many=True).data,
        'count': len(strategies),
    }, status=status.HTTP_200_OK)


@extend_schema(
    summary="Portfolio Analysis",
    description="Analytics for an account's vault and LP positions plus recommended rebalance actions.",
    parameters=[
        OpenApiParameter("target_apy", float, description="Override the target APY for the low-yield trigger"),
        OpenApiParameter("risk_tolerance", str, enum=["Low", "Medium", "High"],
                         description="Risk tolerance for migration targets"),
    ],
    responses={
        200: OpenApiResponse(description="Analytics snapshot and rebalance actions"),
        400: OpenApiResponse(description="Invalid query parameters"),
    },
    tags=["Yield Optimization"]
)
@api_view(['GET'])
@authentication_classes([])
@permission_classes([])
def analyze_portfolio(request, address):
    query = PortfolioQuerySerializer(data=request.query_params)
    if not query.is_valid():
        return Response(query.errors, status=status.HTTP_400_BAD_REQUEST)
    params = query.validated_data

    try:
        analysis = get_service().analyze_portfolio(
            address,
            target_apy=params.get('target_apy'),
            risk_tolerance=RiskTolerance(params['risk_tolerance']),
        )
    except ValueError as e:
        return Response({'error': str(e)}, status=status.HTTP_400_BAD_REQUEST)
    except Exception as e:
        return _server_error(e, {'view': 'analyze_portfolio', 'address': address})

    return Response({
        'analytics': YieldAnalyticsSerializer(analysis.analytics).data,
        'rebalance_actions': RebalanceActionSerializer(analysis.actions, many=True).data,
    }, status=status.HTTP_200_OK)


@extend_schema(
    summary="Auto-Rebalance Filter",
    description=("Apply an auto-rebalance config to candidate actions. Approved actions are eligible for "
                 "unattended execution; every rejected action carries the check that rejected it."),
    request=AutoFilterRequestSerializer,
    responses={
        200: OpenApiResponse(
            description="Approved and rejected actions",
            examples=[
                OpenApiExample(
                    "Gate Result",
                    value={
                        "approved": [],
                        "rejected": [
                            {
                                "action": {"id": "a1", "type": "Migrate", "to_protocol": "EulerSwap"},
                                "check": "min_yield_difference",
                                "detail": "expected gain 0.5000 < minimum 1.0000"
                            }
                        ],
                        "approved_count": 0,
                        "rejected_count": 1
                    }
                )
            ]
        ),
        400: OpenApiResponse(description="Malformed request or invalid configuration"),
    },
    tags=["Rebalancing"]
)
@api_view(['POST'])
@authentication_classes([])
@permission_classes([])
def auto_filter_actions(request):
    payload = AutoFilterRequestSerializer(data=request.data)
    if not payload.is_valid():
        return Response(payload.errors, status=status.HTTP_400_BAD_REQUEST)

    actions = [RebalanceActionInputSerializer.to_action(a) for a in payload.validated_data['actions']]
    config = AutoRebalanceConfigSerializer.to_config(payload.validated_data['config'])

    try:
        result = get_service().evaluate_auto_execution(actions, config)
    except InvalidConfigurationError as e:
        return Response({'error': 'Invalid configuration', 'problems': e.problems},
                        status=status.HTTP_400_BAD_REQUEST)
    except Exception as e:
        return _server_error(e, {'view': 'auto_filter_actions'})

    return Response({
        'approved': RebalanceActionSerializer(result.approved, many=True).data,
        'rejected': RejectionSerializer(result.rejected, many=True).data,
        'approved_count': len(result.approved),
        'rejected_count': len(result.rejected),
    }, status=status.HTTP_200_OK)


@extend_schema(
    summary="Market Data Quality",
    description="Run data quality checks over the current market snapshot for an asset.",
    parameters=[OpenApiParameter("asset", str, description="Asset symbol", required=True)],
    responses={
        200: OpenApiResponse(description="Quality report with overall score and status"),
        400: OpenApiResponse(description="Missing asset"),
    },
    tags=["Market Data"]
)
@api_view(['GET'])
@authentication_classes([])
@permission_classes([])
def get_market_quality(request):
    asset = request.query_params.get('asset', '').strip()
    if not asset:
        return Response({'asset': ['This field is required.']}, status=status.HTTP_400_BAD_REQUEST)

    try:
        report = get_service().check_market_quality(asset)
    except Exception as e:
        return _server_error(e, {'view': 'get_market_quality', 'asset': asset})

    return Response(DataQualityReportSerializer(report).data, status=status.HTTP_200_OK)


@extend_schema(
    summary="Yield Forecasts",
    description="Bullish / base / bearish APY scenarios for each asset's best current market.",
    parameters=[
        OpenApiParameter("assets", str, description="Comma separated symbols, e.g. USDC,WETH", required=True),
        OpenApiParameter("timeframe", str, enum=["1d", "7d", "30d", "90d"]),
    ],
    responses={
        200: OpenApiResponse(description="One forecast per asset with market data"),
        400: OpenApiResponse(description="Invalid query parameters"),
    },
    tags=["Market Data"]
)
@api_view(['GET'])
@authentication_classes([])
@permission_classes([])
def get_yield_forecasts(request):
    query = ForecastQuerySerializer(data=request.query_params)
    if not query.is_valid():
        return Response(query.errors, status=status.HTTP_400_BAD_REQUEST)
    params = query.validated_data

    try:
        forecasts = get_service().forecast_yields(params['assets'], params['timeframe'])
    except Exception as e:
        return _server_error(e, {'view': 'get_yield_forecasts', 'assets': params['assets']})

    return Response({
        'results': YieldForecastSerializer(forecasts, many=True).data,
        'count': len(forecasts),
    }, status=status.HTTP_200_OK)
