from django.test import SimpleTestCase

from yield_engine.strategies import (STRATEGY_TEMPLATES, AllocationTemplate, StrategyTemplate, build_strategy,
                                     compose, live_apy_table, tiers_for)
from yield_engine.types import RiskTier, SourceKind, StrategyType

from .factories import make_market


class ComposeTests(SimpleTestCase):

    def test_allocations_sum_to_one_hundred(self):
        for tier in RiskTier:
            for strategy in compose(250_000, tier):
                self.assertAlmostEqual(strategy.allocated_percentage, 100.0, delta=1e-6)
                self.assertAlmostEqual(sum(a.amount for a in strategy.allocations), 250_000, places=6)

    def test_tiers_are_cumulative_and_ordered(self):
        self.assertEqual([s.risk_tier for s in compose(1_000, RiskTier.CONSERVATIVE)], [RiskTier.CONSERVATIVE])
        self.assertEqual([s.risk_tier for s in compose(1_000, RiskTier.AGGRESSIVE)],
                         [RiskTier.CONSERVATIVE, RiskTier.MODERATE, RiskTier.AGGRESSIVE])
        self.assertEqual(tiers_for(RiskTier.MODERATE), (RiskTier.CONSERVATIVE, RiskTier.MODERATE))

    def test_conservative_metrics(self):
        strategy = compose(100_000, RiskTier.CONSERVATIVE)[0]
        expected_apy = 0.6 * 5.5 + 0.3 * 6.8 + 0.1 * 12.2
        weighted_risk = 0.6 * 2 + 0.3 * 3 + 0.1 * 2
        self.assertAlmostEqual(strategy.total_apy, expected_apy)
        self.assertAlmostEqual(strategy.max_drawdown, weighted_risk * 3.0)
        self.assertAlmostEqual(strategy.sharpe_ratio, (expected_apy - 4.0) / (weighted_risk * 2.5))
        self.assertEqual(strategy.required_capital, 100_000)

    def test_live_apy_overrides_reference(self):
        live = [make_market(protocol="euler vaults", asset="usdc", supply_apy=9.0)]
        strategy = compose(100_000, RiskTier.CONSERVATIVE, markets=live)[0]
        usdc = [a for a in strategy.allocations if a.asset == "USDC"][0]
        self.assertEqual(usdc.current_apy, 9.0)

    def test_live_table_keeps_best_market(self):
        table = live_apy_table([
            make_market(supply_apy=3.0),
            make_market(supply_apy=7.0),
            make_market(asset="WETH-USDC", kind=SourceKind.LP, strategy_type=StrategyType.LP, supply_apy=20.0),
        ])
        self.assertEqual(table[("euler vaults", "USDC", StrategyType.LENDING)], 7.0)
        self.assertEqual(len(table), 2)

    def test_non_positive_capital_rejected(self):
        with self.assertRaises(ValueError):
            compose(0, RiskTier.MODERATE)


class BuildStrategyTests(SimpleTestCase):

    def _template(self, *allocations):
        return StrategyTemplate(
            id="custom", name="Custom", description="", risk_tier=RiskTier.MODERATE,
            allocations=allocations, rebalance_frequency="Weekly", rebalance_threshold=2.0, max_slippage=0.5,
        )

    def test_missing_apy_omits_strategy(self):
        template = self._template(
            AllocationTemplate("A", "A Lending", "USDC", 50, StrategyType.LENDING, 5.0, 2),
            AllocationTemplate("B", "B Lending", "DAI", 50, StrategyType.LENDING, None, 2),
        )
        self.assertIsNone(build_strategy(template, 1_000))
        self.assertEqual(compose(1_000, RiskTier.MODERATE, templates=(template,)), [])

    def test_missing_apy_filled_from_live_data(self):
        template = self._template(
            AllocationTemplate("A", "A Lending", "USDC", 50, StrategyType.LENDING, 5.0, 2),
            AllocationTemplate("B", "B Lending", "DAI", 50, StrategyType.LENDING, None, 2),
        )
        live = live_apy_table([make_market(protocol="B", asset="DAI", supply_apy=4.0)])
        strategy = build_strategy(template, 1_000, live)
        self.assertAlmostEqual(strategy.total_apy, 4.5)

    def test_bad_template_percentages_raise(self):
        template = self._template(AllocationTemplate("A", "A Lending", "USDC", 90, StrategyType.LENDING, 5.0, 2))
        with self.assertRaises(ValueError):
            build_strategy(template, 1_000)

    def test_shipped_templates_cover_every_tier(self):
        self.assertEqual({t.risk_tier for t in STRATEGY_TEMPLATES}, set(RiskTier))
