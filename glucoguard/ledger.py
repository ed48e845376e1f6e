"""
GlucoGuard Ledger Interface

The ledger is the on-chain glucose-check contract. It accepts an
encrypted value and records a handle for the caller; it evaluates the
risk predicate over the caller's stored value and records a result
handle. Both are transactions: send, then wait for confirmation, then
read the resulting handle with a getter.

Failures may be transient (congestion, user rejection) or permanent
(contract absent on this network). This module does not retry.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, Optional

from .engine import EncryptedInput


class TransactionStatus(str, Enum):
    CONFIRMED = "CONFIRMED"
    REVERTED = "REVERTED"


@dataclass
class TransactionReceipt:
    """Confirmation of a mined transaction."""
    tx_hash: str
    status: TransactionStatus
    block_number: int
    confirmed_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def succeeded(self) -> bool:
        return self.status == TransactionStatus.CONFIRMED

    def to_dict(self) -> Dict[str, Any]:
        return {
            "tx_hash": self.tx_hash,
            "status": self.status.value,
            "block_number": self.block_number,
            "confirmed_at": self.confirmed_at.isoformat().replace("+00:00", "Z"),
        }


class PendingTransaction:
    """A sent transaction; wait() suspends until it is mined."""

    def __init__(self, tx_hash: str, confirm: Callable[[], Awaitable[TransactionReceipt]]):
        self.tx_hash = tx_hash
        self._confirm = confirm
        self._receipt: Optional[TransactionReceipt] = None

    async def wait(self) -> TransactionReceipt:
        if self._receipt is None:
            self._receipt = await self._confirm()
        return self._receipt


class Ledger(ABC):
    """Glucose-check contract as seen by the coordinator."""

    @abstractmethod
    def is_deployed(self, network_id: Optional[int]) -> bool:
        """Whether the contract exists on a network. Never suspends."""
        pass

    @abstractmethod
    def contract_address(self, network_id: int) -> str:
        pass

    @abstractmethod
    async def submit_glucose(self, network_id: int, signer_id: str, encrypted: EncryptedInput) -> PendingTransaction:
        pass

    @abstractmethod
    async def get_glucose_handle(self, network_id: int, signer_id: str) -> str:
        """Caller's stored glucose handle, or the empty handle."""
        pass

    @abstractmethod
    async def check_risk(self, network_id: int, signer_id: str, glucose_handle: str) -> PendingTransaction:
        """Evaluate the risk predicate over a glucose handle the signer may use."""
        pass

    @abstractmethod
    async def get_risk_handle(self, network_id: int, signer_id: str) -> str:
        """Caller's latest risk-result handle, or the empty handle."""
        pass
