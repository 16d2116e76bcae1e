import threading

from django.test import SimpleTestCase

from yield_engine.exceptions import ExecutionInProgressError
from yield_engine.execution import AccountLockRegistry, group_by_account, submit_serialized

from .factories import make_action


class RecordingSigner:

    def __init__(self, fail_ids=()):
        self.fail_ids = set(fail_ids)
        self.calls = []

    def submit(self, action, account_key):
        self.calls.append((account_key, action.id))
        if action.id in self.fail_ids:
            raise RuntimeError("nonce too low")
        return f"0xtx-{action.id}"


class AccountLockRegistryTests(SimpleTestCase):

    def test_second_batch_for_same_account_refused(self):
        registry = AccountLockRegistry()
        with registry.hold("0xa"):
            self.assertTrue(registry.is_locked("0xa"))
            with self.assertRaises(ExecutionInProgressError):
                with registry.hold("0xa"):
                    pass
            # Other accounts are independent
            with registry.hold("0xb"):
                pass
        self.assertFalse(registry.is_locked("0xa"))

    def test_lock_released_after_error(self):
        registry = AccountLockRegistry()
        with self.assertRaises(RuntimeError):
            with registry.hold("0xa"):
                raise RuntimeError("boom")
        self.assertFalse(registry.is_locked("0xa"))

    def test_refused_from_another_thread(self):
        registry = AccountLockRegistry()
        errors = []

        def contender():
            try:
                with registry.hold("0xa"):
                    pass
            except ExecutionInProgressError as e:
                errors.append(e)

        with registry.hold("0xa"):
            thread = threading.Thread(target=contender)
            thread.start()
            thread.join()
        self.assertEqual(len(errors), 1)
        self.assertEqual(errors[0].account_key, "0xa")


class SubmitSerializedTests(SimpleTestCase):

    def test_submits_grouped_by_account_in_order(self):
        actions = [make_action("a1", account_key="0xa"), make_action("b1", account_key="0xb"),
                   make_action("a2", account_key="0xa")]
        signer = RecordingSigner()
        results = submit_serialized(actions, signer, AccountLockRegistry())
        self.assertEqual(signer.calls, [("0xa", "a1"), ("0xa", "a2"), ("0xb", "b1")])
        self.assertTrue(all(r.submitted for r in results))
        self.assertEqual(results[0].handle, "0xtx-a1")

    def test_failure_skips_rest_of_account_batch(self):
        actions = [make_action("a1", account_key="0xa"), make_action("a2", account_key="0xa"),
                   make_action("b1", account_key="0xb")]
        signer = RecordingSigner(fail_ids={"a1"})
        results = submit_serialized(actions, signer, AccountLockRegistry())
        by_id = {r.action.id: r for r in results}
        self.assertEqual(by_id["a1"].error, "nonce too low")
        self.assertIn("skipped", by_id["a2"].error)
        self.assertTrue(by_id["b1"].submitted)
        self.assertNotIn(("0xa", "a2"), signer.calls)

    def test_in_flight_account_refused(self):
        registry = AccountLockRegistry()
        with registry.hold("0xa"):
            with self.assertRaises(ExecutionInProgressError):
                submit_serialized([make_action(account_key="0xa")], RecordingSigner(), registry)

    def test_actions_need_account_key(self):
        with self.assertRaises(ValueError):
            group_by_account([make_action(account_key="")])
