"""
Wiring for a complete coordinator stack on the local devnet.
"""

from dataclasses import dataclass, field
from typing import Callable, Iterable, Optional

from . import config
from .coordinator import OperationCoordinator
from .devnet import Devnet, DevnetBootstrap, DevnetLedger
from .engine import CryptoInstanceManager
from .environment import IdentityGuard, LiveEnvironment


@dataclass
class DevnetSession:
    environment: LiveEnvironment
    devnet: Devnet
    bootstrap: DevnetBootstrap
    ledger: DevnetLedger
    manager: CryptoInstanceManager
    coordinator: OperationCoordinator
    unsubscribe: Callable[[], None] = field(default=lambda: None, repr=False)

    def close(self) -> None:
        """Stop invalidating the engine on environment changes."""
        self.unsubscribe()


def build_devnet_session(
    network_id: Optional[int] = config.LOCAL_CHAIN_ID,
    signer_id: Optional[str] = None,
    networks: Optional[Iterable[int]] = None,
    delay: float = 0.0,
) -> DevnetSession:
    """
    Build environment, engine manager, ledger and coordinator.

    networks lists the devnet networks that have both an engine and a
    deployed contract; defaults to the local chain only.
    """
    networks = set(networks) if networks is not None else {config.LOCAL_CHAIN_ID}
    environment = LiveEnvironment(network_id, signer_id)
    devnet = Devnet()
    bootstrap = DevnetBootstrap(devnet, supported_networks=networks, delay=delay, instance_delay=delay)
    ledger = DevnetLedger(devnet, deployed_on=networks, delay=delay)
    manager = CryptoInstanceManager(bootstrap)
    coordinator = OperationCoordinator(IdentityGuard(environment), manager, ledger)
    return DevnetSession(
        environment, devnet, bootstrap, ledger, manager, coordinator,
        unsubscribe=environment.subscribe(manager.on_environment_change),
    )
