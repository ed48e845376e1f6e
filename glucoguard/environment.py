"""
GlucoGuard Environment Snapshot and Identity Guard

A workflow captures the live environment (network, signer) when it
starts and checks it again after its last suspension point. If either
changed in between, the result was computed for someone else's context
and must not be committed.

    snapshot = guard.capture()
    ... await slow work ...
    if not guard.still_valid(snapshot):
        discard

The guard never caches: every call re-reads the EnvironmentSource.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Callable, List, Optional


def normalize_signer(signer_id: Optional[str]) -> Optional[str]:
    """Strip and lower-case a signer identity; empty becomes None."""
    if signer_id is None:
        return None
    signer_id = signer_id.strip().lower()
    return signer_id or None


@dataclass(frozen=True)
class EnvironmentSnapshot:
    """Immutable capture of {network, signer} at one point in time."""
    network_id: Optional[int]
    signer_id: Optional[str]

    def __post_init__(self):
        object.__setattr__(self, "signer_id", normalize_signer(self.signer_id))

    def same_network(self, network_id: Optional[int]) -> bool:
        return self.network_id == network_id

    def same_signer(self, signer_id: Optional[str]) -> bool:
        return self.signer_id == normalize_signer(signer_id)

    def to_dict(self):
        return {"network_id": self.network_id, "signer_id": self.signer_id}


class EnvironmentSource(ABC):
    """
    Live wallet/network state.

    All reads are synchronous and must reflect the current state at the
    moment of the call.
    """

    @abstractmethod
    def network_id(self) -> Optional[int]:
        """Current network identifier, or None if unknown."""
        pass

    @abstractmethod
    def signer_id(self) -> Optional[str]:
        """Current signer identity, or None if no signer."""
        pass

    def is_connected(self) -> bool:
        return self.signer_id() is not None


EnvironmentListener = Callable[[EnvironmentSnapshot, EnvironmentSnapshot], None]


class LiveEnvironment(EnvironmentSource):
    """
    In-process wallet provider.

    State changes notify listeners synchronously with (previous, current)
    snapshots, so the engine manager can invalidate on network change
    before any other coroutine runs.
    """

    def __init__(self, network_id: Optional[int] = None, signer_id: Optional[str] = None):
        self._network_id = network_id
        self._signer_id = normalize_signer(signer_id)
        self._listeners: List[EnvironmentListener] = []

    def network_id(self) -> Optional[int]:
        return self._network_id

    def signer_id(self) -> Optional[str]:
        return self._signer_id

    def subscribe(self, listener: EnvironmentListener) -> Callable[[], None]:
        """Register a change listener. Returns an unsubscribe callable."""
        self._listeners.append(listener)

        def unsubscribe():
            if listener in self._listeners:
                self._listeners.remove(listener)
        return unsubscribe

    def connect(self, network_id: int, signer_id: str) -> None:
        self._update(network_id, signer_id)

    def disconnect(self) -> None:
        self._update(self._network_id, None)

    def switch_network(self, network_id: Optional[int]) -> None:
        self._update(network_id, self._signer_id)

    def switch_signer(self, signer_id: Optional[str]) -> None:
        self._update(self._network_id, signer_id)

    def snapshot(self) -> EnvironmentSnapshot:
        return EnvironmentSnapshot(self._network_id, self._signer_id)

    def _update(self, network_id: Optional[int], signer_id: Optional[str]) -> None:
        previous = self.snapshot()
        self._network_id = network_id
        self._signer_id = normalize_signer(signer_id)
        current = self.snapshot()
        if current == previous:
            return
        for listener in list(self._listeners):
            listener(previous, current)


class IdentityGuard:
    """
    Answers "is this still the environment the work was started in?"

    Network ids compare by exact equality, signer ids case-insensitively.
    A value that was present at capture and is absent now (or the other
    way round) is a change.
    """

    def __init__(self, source: EnvironmentSource):
        self.source = source

    def capture(self) -> EnvironmentSnapshot:
        return EnvironmentSnapshot(
            network_id=self.source.network_id(),
            signer_id=self.source.signer_id(),
        )

    def same_network(self, snapshot: EnvironmentSnapshot) -> bool:
        return snapshot.same_network(self.source.network_id())

    def same_signer(self, snapshot: EnvironmentSnapshot) -> bool:
        return snapshot.same_signer(self.source.signer_id())

    def still_valid(self, snapshot: EnvironmentSnapshot) -> bool:
        return self.same_network(snapshot) and self.same_signer(snapshot)
