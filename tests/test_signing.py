"""
GlucoGuard Decryption Signature Test Suite
"""

import unittest
from datetime import datetime, timedelta, timezone

from glucoguard.signing import (
    DecryptionSignatureStore,
    KeyRing,
    SignerKey,
    load_or_sign,
)

ALICE = "0xA11CE00000000000000000000000000000000001"
CONTRACT = "0x" + "ab" * 20


class TestDecryptionSignature(unittest.TestCase):

    def setUp(self):
        self.key = SignerKey.generate(ALICE)

    def test_signed_authorization_verifies(self):
        sig = self.key.sign_decryption(31337, [CONTRACT])
        self.assertTrue(sig.verify())
        self.assertTrue(sig.is_current())
        self.assertEqual(sig.signer_id, ALICE.lower())

    def test_validity_window(self):
        now = datetime(2026, 1, 1, tzinfo=timezone.utc)
        sig = self.key.sign_decryption(31337, [CONTRACT], validity_days=10, now=now)
        self.assertTrue(sig.is_current(now + timedelta(days=10)))
        self.assertFalse(sig.is_current(now + timedelta(days=11)))
        self.assertFalse(sig.is_current(now - timedelta(seconds=1)))

    def test_covers_is_case_insensitive(self):
        sig = self.key.sign_decryption(31337, [CONTRACT.upper().replace("0X", "0x")])
        self.assertTrue(sig.covers(CONTRACT))
        self.assertFalse(sig.covers("0x" + "cd" * 20))

    def test_tampering_breaks_signature(self):
        sig = self.key.sign_decryption(31337, [CONTRACT])
        sig.network_id = 1
        self.assertFalse(sig.verify())

    def test_foreign_public_key_breaks_signature(self):
        sig = self.key.sign_decryption(31337, [CONTRACT])
        sig.public_key = SignerKey.generate(ALICE).verify_key
        self.assertFalse(sig.verify())

    def test_garbage_signature_does_not_raise(self):
        sig = self.key.sign_decryption(31337, [CONTRACT])
        sig.signature = b"short"
        self.assertFalse(sig.verify())

    def test_to_dict(self):
        d = self.key.sign_decryption(31337, [CONTRACT]).to_dict()
        self.assertEqual(d["network_id"], 31337)
        self.assertEqual(d["contract_addresses"], [CONTRACT])
        self.assertTrue(d["valid_from"].endswith("Z"))
        self.assertIn("signature", d)


class TestDecryptionSignatureStore(unittest.TestCase):

    def setUp(self):
        self.store = DecryptionSignatureStore()
        self.key = SignerKey.generate(ALICE)

    def test_put_and_get(self):
        sig = self.key.sign_decryption(31337, [CONTRACT])
        self.store.put(sig)
        self.assertIs(self.store.get(31337, ALICE, CONTRACT.upper().replace("0X", "0x")), sig)
        self.assertIsNone(self.store.get(1, ALICE, CONTRACT))

    def test_one_entry_per_contract(self):
        other = "0x" + "cd" * 20
        self.store.put(self.key.sign_decryption(31337, [CONTRACT, other]))
        self.assertEqual(len(self.store), 2)

    def test_expired_entries_evicted(self):
        past = datetime.now(timezone.utc) - timedelta(days=30)
        self.store.put(self.key.sign_decryption(31337, [CONTRACT], validity_days=1, now=past))
        self.assertIsNone(self.store.get(31337, ALICE, CONTRACT))
        self.assertEqual(len(self.store), 0)

    def test_clear(self):
        self.store.put(self.key.sign_decryption(31337, [CONTRACT]))
        self.store.clear()
        self.assertEqual(len(self.store), 0)


class TestLoadOrSign(unittest.TestCase):

    def test_signs_once_then_reuses(self):
        store, keyring = DecryptionSignatureStore(), KeyRing()
        first = load_or_sign(store, keyring, 31337, ALICE, CONTRACT)
        second = load_or_sign(store, keyring, 31337, ALICE.lower(), CONTRACT)
        self.assertIs(first, second)
        self.assertTrue(first.verify())

    def test_keyring_reuses_keys(self):
        keyring = KeyRing()
        self.assertIs(keyring.key_for(ALICE), keyring.key_for(ALICE.lower()))

    def test_keyring_requires_signer(self):
        with self.assertRaises(ValueError):
            KeyRing().key_for("")


if __name__ == "__main__":
    unittest.main()
