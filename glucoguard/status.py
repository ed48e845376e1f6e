"""
Derived status text for the presentation layer.
"""

from typing import Any, Dict, Optional

from . import config
from .engine import InstanceStatus

STATUS_CONNECT_WALLET = "Please connect your wallet"
STATUS_ENGINE_LOADING = "Initializing FHEVM..."
STATUS_NOT_DEPLOYED = "Contract not deployed on this network"
STATUS_READY = "Ready for glucose assessment"


def network_label(network_id: Optional[int]) -> str:
    if network_id == config.LOCAL_CHAIN_ID:
        return "Local Hardhat"
    if network_id is None:
        return "Unknown"
    return f"Chain {network_id}"


def describe_system_status(connected: bool, engine_status: InstanceStatus, deployed: bool) -> str:
    """
    One-line system status.

    Precedence: ready, then wallet, then engine, then deployment.
    """
    engine_ready = engine_status == InstanceStatus.READY
    if connected and engine_ready and deployed:
        return STATUS_READY
    if not connected:
        return STATUS_CONNECT_WALLET
    if not engine_ready:
        return STATUS_ENGINE_LOADING
    return STATUS_NOT_DEPLOYED


def status_report(coordinator) -> Dict[str, Any]:
    """Everything the status panel shows, read from live state."""
    source = coordinator.guard.source
    network_id = source.network_id()
    connected = source.is_connected()
    deployed = coordinator.ledger.is_deployed(network_id)
    engine_status = coordinator.manager.status
    return {
        "connection": "Connected" if connected else "Disconnected",
        "network": network_label(network_id),
        "engine": "Ready" if engine_status == InstanceStatus.READY else "Loading...",
        "status": describe_system_status(connected, engine_status, deployed),
        "message": coordinator.store.message,
        "can_submit": coordinator.can_submit,
        "can_check_risk": coordinator.can_check_risk,
        "can_decrypt": coordinator.can_decrypt,
        "recent_submissions": coordinator.store.history(),
    }
