"""
GlucoGuard Encryption Engine Lifecycle

Owns the single process-wide encryption-engine instance. The instance is
bound to one network; a network change tears it down and the next
caller rebuilds it.

State machine:

    UNINITIALIZED --ensure_ready--> INITIALIZING --ok--> READY
    INITIALIZING --fail--> ERROR
    READY / ERROR / INITIALIZING --network change--> UNINITIALIZED

Bootstrap is single-flight per network: callers that arrive while an
attempt is in flight await that attempt instead of starting another.
"""

import asyncio
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import Enum
from typing import Any, Optional

from .errors import InitializationError
from .logging_config import audit_log

logger = logging.getLogger(__name__)


class InstanceStatus(str, Enum):
    UNINITIALIZED = "UNINITIALIZED"
    INITIALIZING = "INITIALIZING"
    READY = "READY"
    ERROR = "ERROR"


@dataclass
class EncryptedInput:
    """Ciphertext produced by an instance, ready to send to the ledger."""
    handle: str
    proof: bytes


class CryptoInstance(ABC):
    """
    Opaque, network-scoped encryption capability.

    Only valid on the network it was built for.
    """

    network_id: int

    @abstractmethod
    async def encrypt(self, value: int, contract_address: str, signer_id: str) -> EncryptedInput:
        """Encrypt a value for use by a contract on behalf of a signer."""
        pass

    @abstractmethod
    async def decrypt(self, handle: str, contract_address: str, signature: Any) -> Any:
        """Request decryption of a handle; returns the plaintext."""
        pass


class EngineBootstrap(ABC):
    """Builds a CryptoInstance for a network. May be slow; may fail."""

    @abstractmethod
    async def create(self, network_id: int) -> CryptoInstance:
        pass


@dataclass
class CryptoInstanceState:
    """Read-only view of the manager state."""
    status: InstanceStatus
    network_id: Optional[int]
    last_error: Optional[BaseException] = None

    def to_dict(self):
        return {
            "status": self.status.value,
            "network_id": self.network_id,
            "last_error": str(self.last_error) if self.last_error else None,
        }


class CryptoInstanceManager:
    """
    Lifecycle owner of the encryption-engine instance.

    Usage:
        manager = CryptoInstanceManager(bootstrap)
        environment.subscribe(manager.on_environment_change)

        instance = await manager.ensure_ready(network_id)

    Only this class writes the instance slot. Callers read it through
    ensure_ready() and nothing else.
    """

    def __init__(self, bootstrap: EngineBootstrap):
        self.bootstrap = bootstrap
        self._status = InstanceStatus.UNINITIALIZED
        self._network_id: Optional[int] = None
        self._instance: Optional[CryptoInstance] = None
        self._last_error: Optional[BaseException] = None
        self._pending: Optional[asyncio.Task] = None
        self._generation = 0

    @property
    def status(self) -> InstanceStatus:
        return self._status

    @property
    def network_id(self) -> Optional[int]:
        return self._network_id

    @property
    def last_error(self) -> Optional[BaseException]:
        return self._last_error

    def state(self) -> CryptoInstanceState:
        return CryptoInstanceState(self._status, self._network_id, self._last_error)

    def is_ready_for(self, network_id: Optional[int]) -> bool:
        return self._status == InstanceStatus.READY and self._network_id == network_id

    async def ensure_ready(self, network_id: Optional[int]) -> CryptoInstance:
        """
        Return a ready instance for network_id, bootstrapping if needed.

        Raises:
            InitializationError: bootstrap failed, or no network is selected
        """
        if self.is_ready_for(network_id):
            return self._instance

        if network_id is None:
            raise InitializationError(None, ValueError("No network selected"))

        if not (self._status == InstanceStatus.INITIALIZING and self._network_id == network_id):
            self._begin(network_id)

        # shield: one caller being cancelled must not cancel the shared attempt
        return await asyncio.shield(self._pending)

    def invalidate(self) -> None:
        """Drop the instance and any in-flight attempt; back to UNINITIALIZED."""
        if self._status == InstanceStatus.UNINITIALIZED and self._pending is None:
            return
        previous = self._network_id
        self._generation += 1
        self._status = InstanceStatus.UNINITIALIZED
        self._network_id = None
        self._instance = None
        self._last_error = None
        self._pending = None
        audit_log.engine_event("invalidated", previous)

    def on_environment_change(self, previous, current) -> None:
        """EnvironmentSource listener: only network changes invalidate."""
        if previous.network_id != current.network_id:
            self.invalidate()

    def _begin(self, network_id: int) -> None:
        self._generation += 1
        self._status = InstanceStatus.INITIALIZING
        self._network_id = network_id
        self._instance = None
        self._last_error = None
        audit_log.engine_event("initializing", network_id)
        self._pending = asyncio.ensure_future(self._bootstrap(network_id, self._generation))

    async def _bootstrap(self, network_id: int, generation: int) -> CryptoInstance:
        try:
            instance = await self.bootstrap.create(network_id)
        except asyncio.CancelledError:
            raise
        except Exception as e:
            error = InitializationError(network_id, e)
            if generation == self._generation:
                self._status = InstanceStatus.ERROR
                self._last_error = error
                self._pending = None
                audit_log.engine_event("error", network_id, error=str(e))
            raise error from e

        # A newer attempt or an invalidation superseded this one; the caller
        # still gets its instance but the slot is left alone.
        if generation == self._generation:
            self._status = InstanceStatus.READY
            self._instance = instance
            self._pending = None
            audit_log.engine_event("ready", network_id)
        else:
            logger.debug("Discarding superseded engine bootstrap for network %s", network_id)
        return instance
