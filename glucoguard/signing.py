"""
GlucoGuard Decryption Signatures

Before a ciphertext is disclosed to a user, the user signs a decryption
request naming the contracts and network it covers and its validity
window. The engine verifies that signature before decrypting.

Uses Ed25519 (RFC 8032) via PyNaCl.
"""

import base64
import threading
from dataclasses import dataclass, field
from datetime import datetime, timezone, timedelta
from typing import Any, Dict, List, Optional, Tuple

from nacl.exceptions import BadSignatureError
from nacl.signing import SigningKey, VerifyKey

from . import config
from .environment import normalize_signer
from .handles import canonicalize


@dataclass
class DecryptionSignature:
    """A signer's authorization to decrypt handles of the named contracts."""
    signer_id: str
    network_id: int
    contract_addresses: List[str]
    valid_from: datetime
    valid_until: datetime
    public_key: bytes
    signature: bytes = b""

    def payload(self) -> Dict[str, Any]:
        """The signed content; excludes the signature itself."""
        return {
            "signer_id": normalize_signer(self.signer_id),
            "network_id": self.network_id,
            "contract_addresses": sorted(a.lower() for a in self.contract_addresses),
            "valid_from": self.valid_from.isoformat().replace("+00:00", "Z"),
            "valid_until": self.valid_until.isoformat().replace("+00:00", "Z"),
            "public_key": base64.b64encode(self.public_key).decode('utf-8'),
        }

    def is_current(self, now: Optional[datetime] = None) -> bool:
        now = now or datetime.now(timezone.utc)
        return self.valid_from <= now <= self.valid_until

    def covers(self, contract_address: str) -> bool:
        return contract_address.lower() in (a.lower() for a in self.contract_addresses)

    def verify(self) -> bool:
        """Check the Ed25519 signature over the canonical payload."""
        try:
            VerifyKey(self.public_key).verify(canonicalize(self.payload()), self.signature)
            return True
        except (BadSignatureError, ValueError, TypeError):
            return False

    def to_dict(self) -> Dict[str, Any]:
        d = self.payload()
        d["signature"] = base64.b64encode(self.signature).decode('utf-8')
        return d


@dataclass
class SignerKey:
    """Ed25519 key pair standing in for a wallet's signing capability."""
    signer_id: str
    signing_key: bytes = field(repr=False)

    @classmethod
    def generate(cls, signer_id: str) -> "SignerKey":
        return cls(signer_id=normalize_signer(signer_id), signing_key=bytes(SigningKey.generate()))

    @property
    def verify_key(self) -> bytes:
        return bytes(SigningKey(self.signing_key).verify_key)

    def sign_decryption(
        self,
        network_id: int,
        contract_addresses: List[str],
        validity_days: int = config.DECRYPTION_SIGNATURE_TTL_DAYS,
        now: Optional[datetime] = None,
    ) -> DecryptionSignature:
        """Produce a signed decryption authorization."""
        now = now or datetime.now(timezone.utc)
        sig = DecryptionSignature(
            signer_id=self.signer_id,
            network_id=network_id,
            contract_addresses=list(contract_addresses),
            valid_from=now,
            valid_until=now + timedelta(days=validity_days),
            public_key=self.verify_key,
        )
        sig.signature = SigningKey(self.signing_key).sign(canonicalize(sig.payload())).signature
        return sig


class DecryptionSignatureStore:
    """
    In-memory cache of decryption signatures.

    Keyed by (network, signer, contract). Expired entries are evicted on
    read. Not persistent across restarts.
    """

    def __init__(self):
        self._entries: Dict[Tuple[int, str, str], DecryptionSignature] = {}
        self._lock = threading.Lock()

    @staticmethod
    def _key(network_id: int, signer_id: str, contract_address: str) -> Tuple[int, str, str]:
        return (network_id, normalize_signer(signer_id), contract_address.lower())

    def put(self, signature: DecryptionSignature) -> None:
        with self._lock:
            for address in signature.contract_addresses:
                self._entries[self._key(signature.network_id, signature.signer_id, address)] = signature

    def get(
        self,
        network_id: int,
        signer_id: str,
        contract_address: str,
        now: Optional[datetime] = None,
    ) -> Optional[DecryptionSignature]:
        key = self._key(network_id, signer_id, contract_address)
        with self._lock:
            sig = self._entries.get(key)
            if sig is None:
                return None
            if not sig.is_current(now):
                del self._entries[key]
                return None
            return sig

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)


class KeyRing:
    """Signer keys known to this process, generated on first use."""

    def __init__(self):
        self._keys: Dict[str, SignerKey] = {}
        self._lock = threading.Lock()

    def key_for(self, signer_id: str) -> SignerKey:
        signer_id = normalize_signer(signer_id)
        if signer_id is None:
            raise ValueError("signer_id must not be empty")
        with self._lock:
            if signer_id not in self._keys:
                self._keys[signer_id] = SignerKey.generate(signer_id)
            return self._keys[signer_id]


def load_or_sign(
    store: DecryptionSignatureStore,
    keyring: KeyRing,
    network_id: int,
    signer_id: str,
    contract_address: str,
) -> DecryptionSignature:
    """Return a cached signature or sign and cache a new one."""
    cached = store.get(network_id, signer_id, contract_address)
    if cached is not None:
        return cached
    sig = keyring.key_for(signer_id).sign_decryption(network_id, [contract_address])
    store.put(sig)
    return sig
