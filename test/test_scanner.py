from datetime import timedelta

from django.test import SimpleTestCase, override_settings
from django.utils import timezone

from yield_engine.scanner import (build_opportunity, filter_by_risk, gas_cost_as_apy, market_confidence,
                                  rank_opportunities, scan)
from yield_engine.types import MarketSnapshot, RiskTolerance, SourceError, SourceKind, StrategyType

from .factories import make_market, make_opportunity


class GasCostTests(SimpleTestCase):

    def test_gas_cost_amortised_over_deposit(self):
        self.assertAlmostEqual(gas_cost_as_apy(25.0, 10_000, 1.0), 0.25)
        self.assertAlmostEqual(gas_cost_as_apy(25.0, 4, 2500.0), 0.25)

    def test_invalid_amount(self):
        with self.assertRaises(ValueError):
            gas_cost_as_apy(25.0, 0)
        with self.assertRaises(ValueError):
            gas_cost_as_apy(25.0, 100, price=0)


class BuildOpportunityTests(SimpleTestCase):

    def test_projection_and_net_apy(self):
        market = make_market(supply_apy=5.0, utilization=0.2, gas_cost_usd=20.0)
        opportunity = build_opportunity(market, amount=10_000)
        self.assertAlmostEqual(opportunity.projected_apy, 5.25)
        self.assertAlmostEqual(opportunity.net_apy_after_gas, 5.25 - 0.2)
        self.assertEqual(opportunity.gas_cost_usd, 20.0)
        self.assertEqual(opportunity.risk_level, RiskTolerance.LOW)

    def test_net_never_exceeds_projected(self):
        for apy in (0.0, 1.0, 25.0):
            for amount in (1, 100, 1_000_000):
                opportunity = build_opportunity(make_market(supply_apy=apy), amount)
                self.assertLessEqual(opportunity.net_apy_after_gas, opportunity.projected_apy)

    @override_settings(YIELD_ENGINE={"GAS_COST_USD": {"Lending": 40.0}})
    def test_default_gas_from_settings(self):
        opportunity = build_opportunity(make_market(), amount=10_000)
        self.assertEqual(opportunity.gas_cost_usd, 40.0)

    def test_confidence_discounted_for_stressed_and_stale_markets(self):
        healthy = market_confidence(make_market(utilization=0.5))
        stressed = market_confidence(make_market(utilization=0.97))
        stale = market_confidence(make_market(utilization=0.5, updated_at=timezone.now() - timedelta(hours=2)))
        self.assertAlmostEqual(healthy, 0.95)
        self.assertAlmostEqual(stressed, 0.95 * 0.9 * 0.9)
        self.assertAlmostEqual(stale, 0.95 * 0.85)


class RankingTests(SimpleTestCase):

    def test_risk_filter_medium_keeps_low_scores(self):
        opportunities = [make_opportunity(protocol=f"P{score}", risk_score=score) for score in (1, 4, 7, 9)]
        kept = filter_by_risk(opportunities, RiskTolerance.MEDIUM)
        self.assertEqual([o.risk_score for o in kept], [1, 4])

    def test_order_is_net_then_confidence_then_liquidity(self):
        a = make_opportunity(protocol="A", net_apy=5.0, confidence=0.8, liquidity_score=9)
        b = make_opportunity(protocol="B", net_apy=6.0, confidence=0.5, liquidity_score=1)
        c = make_opportunity(protocol="C", net_apy=5.0, confidence=0.9, liquidity_score=2)
        d = make_opportunity(protocol="D", net_apy=5.0, confidence=0.9, liquidity_score=8)
        ranked = rank_opportunities([a, b, c, d])
        self.assertEqual([o.protocol for o in ranked], ["B", "D", "C", "A"])

    def test_ties_keep_input_order(self):
        first = make_opportunity(protocol="First")
        second = make_opportunity(protocol="Second")
        self.assertEqual([o.protocol for o in rank_opportunities([first, second])], ["First", "Second"])


class ScanTests(SimpleTestCase):

    def setUp(self):
        self.snapshot = MarketSnapshot(
            asset="USDC",
            markets=(
                make_market(protocol="Euler Vaults", supply_apy=5.5, utilization=0.6),
                make_market(protocol="Aave", supply_apy=4.0, utilization=0.4),
                make_market(protocol="EulerSwap", asset="WETH-USDC", supply_apy=15.2, utilization=0.0,
                            kind=SourceKind.LP, strategy_type=StrategyType.LP),
                make_market(protocol="Degen", asset="WETH-USDC", supply_apy=80.0, utilization=0.0,
                            kind=SourceKind.LP, strategy_type=StrategyType.LEVERAGED_LP),
            ),
            source_errors=(SourceError("yields", SourceKind.CROSS_PROTOCOL, "timed out", timed_out=True),),
        )

    def test_scan_is_deterministic(self):
        first = scan(self.snapshot, 10_000, RiskTolerance.MEDIUM)
        second = scan(self.snapshot, 10_000, RiskTolerance.MEDIUM)
        self.assertEqual([(o.protocol, o.asset) for o in first.opportunities],
                         [(o.protocol, o.asset) for o in second.opportunities])

    def test_scan_filters_risk_and_carries_source_errors(self):
        result = scan(self.snapshot, 10_000, RiskTolerance.MEDIUM)
        protocols = [o.protocol for o in result.opportunities]
        self.assertNotIn("Degen", protocols)
        self.assertEqual(protocols[0], "EulerSwap")
        self.assertTrue(result.is_partial)
        self.assertEqual(result.source_errors[0].source, "yields")

    def test_high_tolerance_admits_everything(self):
        result = scan(self.snapshot, 10_000, RiskTolerance.HIGH)
        self.assertEqual(len(result.opportunities), 4)
        self.assertEqual(result.opportunities[0].protocol, "Degen")

    def test_empty_snapshot_gives_empty_result(self):
        result = scan(MarketSnapshot(asset="XYZ"), 100, RiskTolerance.LOW)
        self.assertEqual(result.opportunities, ())
        self.assertFalse(result.is_partial)

    def test_non_positive_amount_rejected(self):
        with self.assertRaises(ValueError):
            scan(self.snapshot, 0, RiskTolerance.LOW)
