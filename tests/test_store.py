"""
GlucoGuard Result Store Test Suite
"""

import unittest

from glucoguard.handles import EMPTY_HANDLE, derive_handle
from glucoguard.store import OperationKind, ResultStore, RiskResult


class TestResultStore(unittest.TestCase):

    def setUp(self):
        self.store = ResultStore()
        self.glucose = derive_handle("glucose", 1)
        self.risk = derive_handle("risk", 1)

    def test_starts_empty(self):
        self.assertEqual(self.store.glucose_handle, EMPTY_HANDLE)
        self.assertEqual(self.store.risk_result, RiskResult())
        self.assertFalse(self.store.has_value(OperationKind.SUBMIT))
        self.assertFalse(self.store.has_value(OperationKind.CHECK))

    def test_kinds_are_separate(self):
        self.store.commit(OperationKind.SUBMIT, self.glucose)
        self.assertEqual(self.store.glucose_handle, self.glucose)
        self.assertEqual(self.store.handle(OperationKind.CHECK), EMPTY_HANDLE)

        self.store.commit(OperationKind.CHECK, self.risk)
        self.assertEqual(self.store.glucose_handle, self.glucose)
        self.assertEqual(self.store.risk_result.encrypted_handle, self.risk)

    def test_commit_accepts_kind_value(self):
        self.store.commit("submit", self.glucose)
        self.assertTrue(self.store.has_value(OperationKind.SUBMIT))

    def test_commit_rejects_empty_handle(self):
        for handle in (EMPTY_HANDLE, "", None):
            with self.subTest(handle=handle):
                with self.assertRaises(ValueError):
                    self.store.commit(OperationKind.SUBMIT, handle)
        self.assertEqual(self.store.glucose_handle, EMPTY_HANDLE)

    def test_decrypt_kind_commits_nothing(self):
        with self.assertRaises(ValueError):
            self.store.commit(OperationKind.DECRYPT, self.risk)
        self.assertEqual(self.store.risk_result.encrypted_handle, EMPTY_HANDLE)

    def test_commit_normalizes_case(self):
        self.store.commit(OperationKind.SUBMIT, self.glucose.upper().replace("0X", "0x"))
        self.assertEqual(self.store.glucose_handle, self.glucose)

    def test_disclosure_only_for_current_handle(self):
        self.store.commit(OperationKind.CHECK, self.risk)

        self.assertFalse(self.store.record_disclosure(derive_handle("other"), True))
        self.assertIsNone(self.store.risk_result.decrypted_value)

        self.assertTrue(self.store.record_disclosure(self.risk, True))
        self.assertTrue(self.store.risk_result.is_high_risk())

    def test_new_risk_handle_clears_disclosure(self):
        self.store.commit(OperationKind.CHECK, self.risk)
        self.store.record_disclosure(self.risk, False)
        self.store.commit(OperationKind.CHECK, derive_handle("risk", 2))
        self.assertIsNone(self.store.risk_result.decrypted_value)

    def test_resubmission_keeps_risk_result(self):
        self.store.commit(OperationKind.CHECK, self.risk)
        self.store.record_disclosure(self.risk, True)
        self.store.commit(OperationKind.SUBMIT, self.glucose)
        self.assertTrue(self.store.risk_result.decrypted_value)

    def test_history_bounded_and_ordered(self):
        for value in (80, 90, 100, 110):
            self.store.record_submission(value)
        self.assertEqual(self.store.history(), [90, 100, 110])

    def test_submission_sequence_is_monotonic(self):
        first = self.store.record_submission(80)
        second = self.store.record_submission(90)
        self.assertLess(first.sequence, second.sequence)

    def test_custom_history_size(self):
        store = ResultStore(history_size=1)
        store.record_submission(80)
        store.record_submission(90)
        self.assertEqual(store.history(), [90])

    def test_clear(self):
        self.store.commit(OperationKind.SUBMIT, self.glucose)
        self.store.commit(OperationKind.CHECK, self.risk)
        self.store.record_submission(100)
        self.store.set_message("done")

        self.store.clear()

        self.assertEqual(self.store.to_dict(), {
            "glucose_handle": EMPTY_HANDLE,
            "risk_handle": EMPTY_HANDLE,
            "risk_value": None,
            "history": [],
            "message": "",
        })


if __name__ == "__main__":
    unittest.main()
