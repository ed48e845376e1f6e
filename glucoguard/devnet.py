"""
GlucoGuard Local Development Network

An in-process stand-in for the local chain (id 31337) and its mock
encryption engine, so the coordinator can be exercised end to end
without a node or relayer.

    devnet = Devnet()
    bootstrap = DevnetBootstrap(devnet)
    ledger = DevnetLedger(devnet)

Each network gets a DevnetCoprocessor holding its key material
(PyNaCl SecretBox), every ciphertext by handle, and an access list of
which accounts may use or decrypt which handle. Ciphertexts never leave
the coprocessor in plaintext except through an authorized decrypt.

Latency and failures are injectable. pause()/resume() hold an operation
at its suspension point so tests can change the environment mid-flight.
"""

import asyncio
import json
import logging
import threading
from collections import defaultdict
from typing import Any, Dict, Iterable, Optional, Set, Tuple

import nacl.utils
from nacl.exceptions import CryptoError
from nacl.secret import SecretBox

from . import config
from .engine import CryptoInstance, EncryptedInput, EngineBootstrap
from .environment import normalize_signer
from .errors import DecryptionError, LedgerError
from .handles import EMPTY_HANDLE, derive_handle, normalize_handle
from .ledger import Ledger, PendingTransaction, TransactionReceipt, TransactionStatus
from .signing import DecryptionSignature

logger = logging.getLogger(__name__)


class _Gate:
    """Optional latency plus a pause switch for one suspension point."""

    def __init__(self, delay: float = 0.0):
        self.delay = delay
        self._event: Optional[asyncio.Event] = None
        self.waiting = 0

    def pause(self) -> None:
        if self._event is None:
            self._event = asyncio.Event()

    def resume(self) -> None:
        if self._event is not None:
            self._event.set()
            self._event = None

    async def pass_through(self) -> None:
        if self.delay:
            await asyncio.sleep(self.delay)
        else:
            await asyncio.sleep(0)
        event = self._event
        if event is not None:
            self.waiting += 1
            try:
                await event.wait()
            finally:
                self.waiting -= 1


class DevnetCoprocessor:
    """Key material, ciphertext registry and access list of one network."""

    def __init__(self, network_id: int):
        self.network_id = network_id
        self._box = SecretBox(nacl.utils.random(SecretBox.KEY_SIZE))
        self._ciphertexts: Dict[str, bytes] = {}
        self._acl: Dict[str, Set[str]] = defaultdict(set)
        self._counter = 0
        self._lock = threading.Lock()

    def encrypt_input(self, value: int, contract_address: str, signer_id: str) -> EncryptedInput:
        """Produce an input ciphertext bound to a contract and signer."""
        plaintext = json.dumps({
            "type": "uint32",
            "value": int(value),
            "contract": contract_address.lower(),
            "signer": normalize_signer(signer_id),
        }).encode("utf-8")
        ciphertext = bytes(self._box.encrypt(plaintext))
        return EncryptedInput(handle=derive_handle("input", self.network_id, ciphertext), proof=ciphertext)

    def ingest(self, encrypted: EncryptedInput, contract_address: str, signer_id: str) -> str:
        """
        Verify an input ciphertext and register it for the signer.

        Raises:
            LedgerError: proof does not match handle, or was bound to
                another contract or signer
        """
        if derive_handle("input", self.network_id, encrypted.proof) != normalize_handle(encrypted.handle):
            raise LedgerError("Input proof does not match handle", transient=False)
        payload = self._open(encrypted.proof)
        if payload.get("contract") != contract_address.lower() or payload.get("signer") != normalize_signer(signer_id):
            raise LedgerError("Input proof was created for another contract or signer", transient=False)
        with self._lock:
            self._counter += 1
            handle = derive_handle("stored", self.network_id, encrypted.handle, self._counter)
            self._ciphertexts[handle] = encrypted.proof
        self.allow(handle, signer_id)
        self.allow(handle, contract_address)
        return handle

    def greater_than(self, handle: str, threshold: int) -> str:
        """Evaluate value > threshold over a stored ciphertext; returns a new handle."""
        payload = self._open(self._ciphertext(handle))
        result = json.dumps({"type": "bool", "value": payload["value"] > threshold}).encode("utf-8")
        with self._lock:
            self._counter += 1
            new_handle = derive_handle("computed", self.network_id, normalize_handle(handle), self._counter)
            self._ciphertexts[new_handle] = bytes(self._box.encrypt(result))
        return new_handle

    def allow(self, handle: str, account: str) -> None:
        with self._lock:
            self._acl[normalize_handle(handle)].add(account.lower())

    def is_allowed(self, handle: str, account: Optional[str]) -> bool:
        if not account:
            return False
        with self._lock:
            return account.lower() in self._acl.get(normalize_handle(handle), ())

    def reveal(self, handle: str) -> Any:
        """Plaintext of a stored handle. Callers check authorization first."""
        return self._open(self._ciphertext(handle))["value"]

    def _ciphertext(self, handle: str) -> bytes:
        with self._lock:
            ciphertext = self._ciphertexts.get(normalize_handle(handle))
        if ciphertext is None:
            raise LedgerError(f"Unknown handle {handle}", transient=False)
        return ciphertext

    def _open(self, ciphertext: bytes) -> Dict[str, Any]:
        try:
            return json.loads(self._box.decrypt(ciphertext).decode("utf-8"))
        except CryptoError as e:
            raise LedgerError("Ciphertext was not produced on this network", transient=False) from e


class Devnet:
    """Set of simulated networks, created on first use."""

    def __init__(self):
        self._coprocessors: Dict[int, DevnetCoprocessor] = {}
        self._lock = threading.Lock()

    def coprocessor(self, network_id: int) -> DevnetCoprocessor:
        with self._lock:
            if network_id not in self._coprocessors:
                self._coprocessors[network_id] = DevnetCoprocessor(network_id)
            return self._coprocessors[network_id]


class DevnetCryptoInstance(CryptoInstance):
    """Mock encryption engine bound to one devnet network."""

    def __init__(self, coprocessor: DevnetCoprocessor, delay: float = 0.0):
        self.network_id = coprocessor.network_id
        self._coprocessor = coprocessor
        self.encrypt_gate = _Gate(delay)
        self.decrypt_gate = _Gate(delay)

    async def encrypt(self, value: int, contract_address: str, signer_id: str) -> EncryptedInput:
        await self.encrypt_gate.pass_through()
        return self._coprocessor.encrypt_input(value, contract_address, signer_id)

    async def decrypt(self, handle: str, contract_address: str, signature: DecryptionSignature) -> Any:
        """
        Decrypt a handle for the signer named in the signature.

        Raises:
            DecryptionError: signature invalid, expired, for another
                network or contract, or signer not allowed on the handle
        """
        await self.decrypt_gate.pass_through()
        if signature is None:
            raise DecryptionError("Decryption signature required")
        if signature.network_id != self.network_id:
            raise DecryptionError("Decryption signature is for another network")
        if not signature.covers(contract_address):
            raise DecryptionError("Decryption signature does not cover this contract")
        if not signature.is_current():
            raise DecryptionError("Decryption signature expired")
        if not signature.verify():
            raise DecryptionError("Decryption signature invalid")
        if not self._coprocessor.is_allowed(handle, signature.signer_id):
            raise DecryptionError(f"Signer is not allowed to decrypt {handle}")
        try:
            return self._coprocessor.reveal(handle)
        except LedgerError as e:
            raise DecryptionError(str(e)) from e


class DevnetBootstrap(EngineBootstrap):
    """
    Builds mock engine instances for supported devnet networks.

    Unsupported networks fail as an unreachable relayer would.
    """

    def __init__(
        self,
        devnet: Devnet,
        supported_networks: Optional[Iterable[int]] = None,
        delay: float = 0.0,
        instance_delay: float = 0.0,
    ):
        self.devnet = devnet
        if supported_networks is None:
            supported_networks = config.mock_chains_for(config.LOCAL_CHAIN_ID).keys()
        self.supported_networks = set(supported_networks)
        self.instance_delay = instance_delay
        self.gate = _Gate(delay)
        self.attempts = 0
        self._failures = []

    def inject_failure(self, error: Exception) -> None:
        """Fail the next bootstrap attempt with error."""
        self._failures.append(error)

    async def create(self, network_id: int) -> DevnetCryptoInstance:
        self.attempts += 1
        await self.gate.pass_through()
        if self._failures:
            raise self._failures.pop(0)
        if network_id not in self.supported_networks:
            raise ConnectionError(f"No encryption engine available for network {network_id}")
        logger.debug("Devnet engine created for network %s", network_id)
        return DevnetCryptoInstance(self.devnet.coprocessor(network_id), delay=self.instance_delay)


class DevnetLedger(Ledger):
    """
    The glucose-check contract on devnet networks.

    Contract state changes when a transaction is confirmed, not when it
    is sent. A confirmed transaction is never rolled back.
    """

    OPERATIONS = ("submit_glucose", "check_risk", "confirm", "read")

    def __init__(
        self,
        devnet: Devnet,
        deployed_on: Optional[Iterable[int]] = None,
        risk_threshold: int = config.RISK_THRESHOLD,
        delay: float = 0.0,
    ):
        self.devnet = devnet
        self.deployed_on = set(deployed_on) if deployed_on is not None else {config.LOCAL_CHAIN_ID}
        self.risk_threshold = risk_threshold
        self.send_gate = _Gate(delay)
        self.confirm_gate = _Gate(delay)
        self._glucose: Dict[Tuple[int, str], str] = {}
        self._risk: Dict[Tuple[int, str], str] = {}
        self._blocks: Dict[int, int] = defaultdict(int)
        self._failures: Dict[str, list] = defaultdict(list)
        self._reverts = 0
        self.sent = 0

    def inject_failure(self, operation: str, error: Exception) -> None:
        """Fail the next call of operation with error."""
        if operation not in self.OPERATIONS:
            raise ValueError(f"Unknown operation: {operation}")
        self._failures[operation].append(error)

    def revert_next(self) -> None:
        """Mine the next confirmed transaction as reverted, without applying it."""
        self._reverts += 1

    def _maybe_fail(self, operation: str) -> None:
        if self._failures[operation]:
            raise self._failures[operation].pop(0)

    def is_deployed(self, network_id: Optional[int]) -> bool:
        return network_id in self.deployed_on

    def contract_address(self, network_id: int) -> str:
        return "0x" + derive_handle("GlucoseCheck", network_id)[2:42]

    def _require(self, network_id: int, signer_id: Optional[str]) -> str:
        if not self.is_deployed(network_id):
            raise LedgerError(f"GlucoseCheck is not deployed on network {network_id}", transient=False)
        signer_id = normalize_signer(signer_id)
        if signer_id is None:
            raise LedgerError("No signer connected", transient=False)
        return signer_id

    async def submit_glucose(self, network_id: int, signer_id: str, encrypted: EncryptedInput) -> PendingTransaction:
        signer_id = self._require(network_id, signer_id)
        await self.send_gate.pass_through()
        self._maybe_fail("submit_glucose")
        coprocessor = self.devnet.coprocessor(network_id)
        contract = self.contract_address(network_id)

        def apply():
            self._glucose[(network_id, signer_id)] = coprocessor.ingest(encrypted, contract, signer_id)

        return self._send(network_id, "submitGlucose", signer_id, apply)

    async def check_risk(self, network_id: int, signer_id: str, glucose_handle: str) -> PendingTransaction:
        signer_id = self._require(network_id, signer_id)
        await self.send_gate.pass_through()
        self._maybe_fail("check_risk")
        coprocessor = self.devnet.coprocessor(network_id)
        if not coprocessor.is_allowed(glucose_handle, signer_id):
            raise LedgerError("Signer is not allowed to use this glucose handle", transient=False)

        def apply():
            risk_handle = coprocessor.greater_than(glucose_handle, self.risk_threshold)
            coprocessor.allow(risk_handle, signer_id)
            coprocessor.allow(risk_handle, self.contract_address(network_id))
            self._risk[(network_id, signer_id)] = risk_handle

        return self._send(network_id, "checkRisk", signer_id, apply)

    async def get_glucose_handle(self, network_id: int, signer_id: str) -> str:
        signer_id = self._require(network_id, signer_id)
        await asyncio.sleep(0)
        self._maybe_fail("read")
        return self._glucose.get((network_id, signer_id), EMPTY_HANDLE)

    async def get_risk_handle(self, network_id: int, signer_id: str) -> str:
        signer_id = self._require(network_id, signer_id)
        await asyncio.sleep(0)
        self._maybe_fail("read")
        return self._risk.get((network_id, signer_id), EMPTY_HANDLE)

    def _send(self, network_id: int, method: str, signer_id: str, apply) -> PendingTransaction:
        self.sent += 1
        tx_hash = derive_handle("tx", network_id, method, signer_id, self.sent)

        async def confirm() -> TransactionReceipt:
            await self.confirm_gate.pass_through()
            if self._failures["confirm"]:
                error = self._failures["confirm"].pop(0)
                self._blocks[network_id] += 1
                logger.debug("Transaction %s reverted: %s", tx_hash, error)
                raise error
            if self._reverts:
                self._reverts -= 1
                self._blocks[network_id] += 1
                return TransactionReceipt(
                    tx_hash=tx_hash,
                    status=TransactionStatus.REVERTED,
                    block_number=self._blocks[network_id],
                )
            apply()
            self._blocks[network_id] += 1
            return TransactionReceipt(
                tx_hash=tx_hash,
                status=TransactionStatus.CONFIRMED,
                block_number=self._blocks[network_id],
            )

        return PendingTransaction(tx_hash, confirm)
