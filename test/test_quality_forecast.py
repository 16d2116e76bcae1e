from datetime import timedelta

from django.test import SimpleTestCase
from django.utils import timezone

from yield_engine.forecast import best_market, forecast_market, generate_forecasts
from yield_engine.quality import (STATUS_CRITICAL, STATUS_HEALTHY, STATUS_WARNING, QualityCheckResult,
                                  determine_status, run_quality_checks)
from yield_engine.types import MarketSnapshot, SourceError, SourceKind

from .factories import make_market


def _results(report):
    return {r.rule_id: r for r in report.results}


class QualityCheckTests(SimpleTestCase):

    def test_clean_snapshot_is_healthy(self):
        snapshot = MarketSnapshot(asset="USDC", markets=(
            make_market(protocol="A", address="0xa"),
            make_market(protocol="B", address="0xb", utilization=0.7),
        ))
        report = run_quality_checks(snapshot, source_count=2)
        self.assertEqual(report.status, STATUS_HEALTHY)
        self.assertEqual(report.overall_score, 100.0)
        self.assertEqual(report.failed_checks, 0)
        self.assertEqual(report.total_checks, 6)

    def test_inconsistent_liquidity_is_warning(self):
        snapshot = MarketSnapshot(asset="USDC", markets=(
            make_market(protocol="A", total_assets=1_000, available_liquidity=5_000),
        ))
        results = _results(run_quality_checks(snapshot, source_count=1))
        self.assertFalse(results["liquidity-consistency"].passed)
        self.assertFalse(results["utilization-consistency"].passed)
        self.assertEqual(run_quality_checks(snapshot, source_count=1).status, STATUS_WARNING)

    def test_insane_apy_and_stale_data_detected(self):
        stale = timezone.now() - timedelta(hours=1)
        snapshot = MarketSnapshot(asset="USDC", markets=(
            make_market(protocol="A", supply_apy=5_000.0, updated_at=stale),
        ))
        results = _results(run_quality_checks(snapshot, source_count=1))
        self.assertFalse(results["apy-sanity-check"].passed)
        self.assertFalse(results["data-freshness"].passed)

    def test_duplicates_detected(self):
        market = make_market(protocol="A", address="0xa")
        results = _results(run_quality_checks(MarketSnapshot(asset="USDC", markets=(market, market)), 1))
        self.assertFalse(results["duplicate-detection"].passed)
        self.assertEqual(results["duplicate-detection"].details["duplicates"], 1)

    def test_every_source_down_is_critical(self):
        snapshot = MarketSnapshot(asset="USDC", source_errors=(
            SourceError("a", SourceKind.LENDING, "down"),
            SourceError("b", SourceKind.LP, "down"),
        ))
        report = run_quality_checks(snapshot, source_count=2)
        self.assertEqual(_results(report)["source-availability"].severity, "critical")
        self.assertEqual(report.status, STATUS_CRITICAL)

    def test_status_thresholds(self):
        passing = QualityCheckResult("r", "r", True, 100.0, "", "low")
        failing_low = QualityCheckResult("f", "f", False, 0.0, "", "low")
        self.assertEqual(determine_status(100.0, [passing]), STATUS_HEALTHY)
        self.assertEqual(determine_status(75.0, [passing, failing_low]), STATUS_WARNING)
        self.assertEqual(determine_status(50.0, [failing_low]), STATUS_CRITICAL)


class ForecastTests(SimpleTestCase):

    def test_best_market_by_supply_apy(self):
        markets = [make_market(protocol="A", supply_apy=3.0), make_market(protocol="B", supply_apy=7.0)]
        self.assertEqual(best_market(markets).protocol, "B")
        self.assertIsNone(best_market([]))

    def test_scenarios_bracket_base_case(self):
        forecast = forecast_market(make_market(supply_apy=6.0, utilization=0.9), "USDC", "30d")
        bullish, base, bearish = forecast.scenarios
        self.assertEqual([s.scenario for s in forecast.scenarios], ["Bullish", "Base", "Bearish"])
        self.assertAlmostEqual(sum(s.probability for s in forecast.scenarios), 1.0)
        self.assertGreater(bullish.apy, base.apy)
        self.assertGreater(base.apy, bearish.apy)
        # High utilization pushes the rate up
        self.assertGreater(base.apy, forecast.current_apy)
        self.assertAlmostEqual(forecast.forecasted_apy, sum(s.probability * s.apy for s in forecast.scenarios))

    def test_confidence_falls_with_horizon(self):
        market = make_market()
        short = forecast_market(market, "USDC", "1d")
        long = forecast_market(market, "USDC", "90d")
        self.assertGreater(short.confidence, long.confidence)

    def test_deterministic(self):
        market = make_market(supply_apy=4.0, utilization=0.6)
        self.assertEqual(forecast_market(market, "USDC", "7d"), forecast_market(market, "USDC", "7d"))

    def test_unknown_timeframe(self):
        with self.assertRaises(ValueError):
            forecast_market(make_market(), "USDC", "1y")

    def test_assets_without_markets_are_skipped(self):
        snapshots = [MarketSnapshot(asset="USDC", markets=(make_market(),)), MarketSnapshot(asset="XYZ")]
        forecasts = generate_forecasts(snapshots, "7d")
        self.assertEqual([f.asset for f in forecasts], ["USDC"])
