import itertools
import math

from django.test import SimpleTestCase

from yield_engine.exceptions import InvalidConfigurationError
from yield_engine.gate import (CHECK_AUTO_EXECUTION, CHECK_ENABLED, CHECK_GAS_CAP, CHECK_MIN_YIELD_DIFFERENCE,
                               CHECK_PROTOCOL_POLICY, evaluate, filter_actions)
from yield_engine.types import EmergencyWithdrawRule, Priority

from .factories import make_action, make_config


class GateTests(SimpleTestCase):

    def test_gain_below_minimum_never_approved(self):
        config = make_config(min_yield_difference=1.0, whitelisted_protocols=("EulerSwap",))
        combos = itertools.product(
            (0.0, 0.5, 0.999),
            (0.0, 10.0, 500.0),
            tuple(Priority),
            (True, False),
            ("EulerSwap", "Other"),
        )
        for gain, gas, priority, auto, protocol in combos:
            action = make_action(expected_gain=gain, gas_estimate=gas, priority=priority,
                                 auto_execute=auto, to_protocol=protocol)
            result = evaluate([action], config)
            self.assertEqual(result.approved, ())
            self.assertEqual(result.rejected[0].check, CHECK_MIN_YIELD_DIFFERENCE)

    def test_disabled_gate_approves_nothing(self):
        actions = [make_action(f"a{i}", expected_gain=10.0, priority=Priority.CRITICAL) for i in range(5)]
        result = evaluate(actions, make_config(enabled=False))
        self.assertEqual(filter_actions(actions, make_config(enabled=False)), [])
        self.assertEqual({r.check for r in result.rejected}, {CHECK_ENABLED})

    def test_checks_run_in_order(self):
        config = make_config(blacklisted_protocols=("Risky",))
        cases = [
            (make_action(gas_estimate=99.0, to_protocol="Risky", auto_execute=False), CHECK_GAS_CAP),
            (make_action(to_protocol="Risky", auto_execute=False), CHECK_PROTOCOL_POLICY),
            (make_action(auto_execute=False), CHECK_AUTO_EXECUTION),
            (make_action(priority=Priority.LOW), CHECK_AUTO_EXECUTION),
        ]
        for action, check in cases:
            self.assertEqual(evaluate([action], config).rejected[0].check, check)

    def test_nan_gain_or_gas_never_approved(self):
        config = make_config(min_yield_difference=1.0, max_gas_per_rebalance=50.0)
        no_gain = make_action("no-gain", expected_gain=math.nan, priority=Priority.HIGH)
        no_gas = make_action("no-gas", gas_estimate=math.nan, priority=Priority.HIGH)
        result = evaluate([no_gain, no_gas], config)
        self.assertEqual(result.approved, ())
        self.assertEqual([r.check for r in result.rejected], [CHECK_MIN_YIELD_DIFFERENCE, CHECK_GAS_CAP])

    def test_whitelist(self):
        config = make_config(whitelisted_protocols=("EulerSwap",))
        result = evaluate([make_action("in"), make_action("out", to_protocol="Aave")], config)
        self.assertEqual([a.id for a in result.approved], ["in"])
        self.assertEqual(result.rejected[0].check, CHECK_PROTOCOL_POLICY)

    def test_passing_action_approved_in_order(self):
        actions = [make_action("first"), make_action("second", expected_gain=3.0)]
        self.assertEqual([a.id for a in filter_actions(actions, make_config())], ["first", "second"])


class ConfigValidationTests(SimpleTestCase):

    def test_negative_thresholds_rejected_before_inspection(self):
        with self.assertRaises(InvalidConfigurationError) as ctx:
            evaluate([make_action()], make_config(min_yield_difference=-1.0, max_gas_per_rebalance=-5.0))
        self.assertEqual(len(ctx.exception.problems), 2)

    def test_invalid_config_raises_even_without_actions(self):
        with self.assertRaises(InvalidConfigurationError):
            evaluate([], make_config(max_slippage=150.0))

    def test_overlapping_protocol_lists(self):
        config = make_config(whitelisted_protocols=("A",), blacklisted_protocols=("A",))
        with self.assertRaises(InvalidConfigurationError):
            evaluate([], config)

    def test_enabled_emergency_rule_needs_target(self):
        rule = EmergencyWithdrawRule(enabled=True, trigger_conditions=("health_factor",), target_asset="")
        with self.assertRaises(InvalidConfigurationError):
            evaluate([], make_config(emergency_withdraw=rule))

    def test_is_a_value_error(self):
        with self.assertRaises(ValueError):
            evaluate([], make_config(max_gas_per_rebalance=float("nan")))
