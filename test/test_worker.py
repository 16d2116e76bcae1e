from io import StringIO
from unittest import mock

from django.core.management import call_command
from django.test import SimpleTestCase, override_settings

from yield_engine.alerts import InMemoryCooldownStore, LoggingNotifier, RebalanceAlerter, TelegramNotifier
from yield_engine.service import build_default_service
from yield_engine.types import Priority
from yield_engine.workers.rebalance_monitor_worker import (MonitoredAccount, RebalanceMonitorWorker,
                                                           build_notifier, build_signer,
                                                           parse_monitored_accounts)

from .factories import ACCOUNT, STATIC_ENGINE_SETTINGS, make_config
from .test_alerts import FakeClock
from .test_execution import RecordingSigner

CONFIG_ENTRY = {
    "enabled": True,
    "max_slippage": 1.0,
    "min_yield_difference": 1.0,
    "max_gas_per_rebalance": 100.0,
}


@override_settings(YIELD_ENGINE=STATIC_ENGINE_SETTINGS)
class RebalanceMonitorWorkerTests(SimpleTestCase):

    def setUp(self):
        self.notifier = LoggingNotifier()
        self.alerter = RebalanceAlerter(self.notifier, InMemoryCooldownStore(FakeClock()), cooldown_minutes=60)
        self.signer = RecordingSigner()

    def _worker(self, accounts, signer=None):
        return RebalanceMonitorWorker(service=build_default_service(), alerter=self.alerter,
                                      signer=signer, accounts=accounts, interval=1)

    def test_cycle_recommends_gates_alerts_and_submits(self):
        account = MonitoredAccount(ACCOUNT, make_config(max_gas_per_rebalance=100.0))
        worker = self._worker([account], signer=self.signer)
        [result] = worker.run_monitoring_cycle()

        self.assertIsNone(result.error)
        self.assertEqual(len(result.recommended), 1)
        self.assertEqual(result.recommended[0].to_protocol, "EulerSwap")
        self.assertEqual(result.recommended[0].priority, Priority.HIGH)
        self.assertEqual(len(result.approved), 1)
        self.assertEqual(len(result.alerted), 1)
        self.assertEqual(len(self.notifier.sent), 1)
        self.assertEqual(self.signer.calls, [(ACCOUNT, result.approved[0].id)])
        self.assertTrue(result.submissions[0].submitted)

    def test_alerts_cool_down_across_cycles(self):
        account = MonitoredAccount(ACCOUNT, make_config(max_gas_per_rebalance=100.0))
        worker = self._worker([account])
        first = worker.run_monitoring_cycle()[0]
        second = worker.run_monitoring_cycle()[0]
        self.assertEqual(len(first.alerted), 1)
        self.assertEqual(len(second.approved), 1)
        self.assertEqual(second.alerted, ())
        self.assertEqual(len(self.notifier.sent), 1)

    def test_gas_cap_rejection_blocks_alert_and_submission(self):
        # The LP target costs 75 USD to enter
        account = MonitoredAccount(ACCOUNT, make_config(max_gas_per_rebalance=50.0))
        result = self._worker([account], signer=self.signer).run_monitoring_cycle()[0]
        self.assertEqual(result.approved, ())
        self.assertEqual([r.check for r in result.rejected], ["max_gas_per_rebalance"])
        self.assertEqual(result.alerted, ())
        self.assertEqual(self.signer.calls, [])

    def test_without_signer_nothing_is_submitted(self):
        account = MonitoredAccount(ACCOUNT, make_config(max_gas_per_rebalance=100.0))
        result = self._worker([account]).run_monitoring_cycle()[0]
        self.assertEqual(result.submissions, [])

    def test_invalid_config_does_not_stop_other_accounts(self):
        broken = MonitoredAccount("0xbroken", make_config(min_yield_difference=-1.0))
        healthy = MonitoredAccount(ACCOUNT, make_config(max_gas_per_rebalance=100.0))
        results = self._worker([broken, healthy]).run_monitoring_cycle()
        self.assertEqual([r.address for r in results], ["0xbroken", ACCOUNT])
        self.assertIsNotNone(results[0].error)
        self.assertIsNone(results[1].error)
        self.assertEqual(len(results[1].approved), 1)

    def test_unexpected_error_is_isolated(self):
        worker = self._worker([MonitoredAccount("0xa", make_config()), MonitoredAccount("0xb", make_config())])
        original = worker.service.analyze_portfolio

        def flaky(address, **kwargs):
            if address == "0xa":
                raise RuntimeError("rpc down")
            return original(address, **kwargs)

        with mock.patch.object(worker.service, "analyze_portfolio", side_effect=flaky):
            results = worker.run_monitoring_cycle()
        self.assertEqual(results[0].error, "rpc down")
        self.assertIsNone(results[1].error)

    def test_start_without_loop_runs_once(self):
        worker = self._worker([MonitoredAccount(ACCOUNT, make_config())])
        results = worker.start(loop=False)
        self.assertEqual(len(results), 1)
        worker.stop()


class ParseMonitoredAccountsTests(SimpleTestCase):

    def test_valid_entries(self):
        [account] = parse_monitored_accounts([
            {"address": ACCOUNT, "target_apy": 6.0,
             "config": dict(CONFIG_ENTRY, blacklisted_protocols=["Shady"])},
        ])
        self.assertEqual(account.address, ACCOUNT)
        self.assertEqual(account.target_apy, 6.0)
        self.assertEqual(account.config.blacklisted_protocols, ("Shady",))

    def test_invalid_entries_skipped(self):
        accounts = parse_monitored_accounts([
            {"config": CONFIG_ENTRY},
            {"address": "0xb", "config": {"enabled": True}},
            {"address": "0xc", "config": CONFIG_ENTRY},
        ])
        self.assertEqual([a.address for a in accounts], ["0xc"])


class WiringTests(SimpleTestCase):

    @override_settings(TELEGRAM_BOT_TOKEN="", TELEGRAM_CHAT_IDS=[])
    def test_logging_notifier_without_telegram(self):
        self.assertIsInstance(build_notifier(), LoggingNotifier)

    @override_settings(TELEGRAM_BOT_TOKEN="token", TELEGRAM_CHAT_IDS=[1])
    def test_telegram_notifier_when_configured(self):
        self.assertIsInstance(build_notifier(), TelegramNotifier)

    @override_settings(YIELD_ENGINE={"EXECUTION_SIGNER": None})
    def test_no_signer_by_default(self):
        self.assertIsNone(build_signer())

    @override_settings(YIELD_ENGINE={"EXECUTION_SIGNER": "test.test_execution.RecordingSigner"})
    def test_signer_loaded_from_dotted_path(self):
        self.assertIsInstance(build_signer(), RecordingSigner)


@override_settings(
    YIELD_ENGINE=dict(STATIC_ENGINE_SETTINGS, MONITORED_ACCOUNTS=[{"address": ACCOUNT, "config": CONFIG_ENTRY}]),
    TELEGRAM_BOT_TOKEN="",
    TELEGRAM_CHAT_IDS=[],
)
class RunRebalanceMonitorCommandTests(SimpleTestCase):

    def test_single_cycle(self):
        out = StringIO()
        with mock.patch("yield_engine.management.commands.run_rebalance_monitor.signal.signal"):
            call_command("run_rebalance_monitor", stdout=out)
        output = out.getvalue()
        self.assertIn(f"{ACCOUNT}: 1 recommended, 1 approved", output)
        self.assertIn("(0 failures)", output)
