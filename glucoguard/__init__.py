"""
GlucoGuard: Encrypted Glucose Check Coordinator

Version: 1.0.0

A user submits a private glucose reading; the ledger evaluates the risk
predicate (glucose > 140 mg/dL) over the ciphertext; the user may later
decrypt the result. This package coordinates those asynchronous steps
so that a slow operation never commits a result after the user's
network or signer changed underneath it.

Usage:
    from glucoguard import build_devnet_session, OperationKind

    session = build_devnet_session(signer_id="0xabc...")
    coordinator = session.coordinator

    outcome = await coordinator.start(OperationKind.SUBMIT, "150")
    if outcome.succeeded():
        outcome = await coordinator.check_risk(disclose=True)

    if outcome.is_stale():
        # network or signer changed; nothing was committed
        print(outcome.notice)
"""

__version__ = "1.0.0"
__license__ = "Apache-2.0"

# Errors
from .errors import (
    GlucoGuardError,
    InputValidationError,
    BusyError,
    InitializationError,
    ActionError,
    LedgerError,
    DecryptionError,
)

# Handles
from .handles import (
    EMPTY_HANDLE,
    derive_handle,
    is_empty_handle,
    has_value,
)

# Environment
from .environment import (
    EnvironmentSnapshot,
    EnvironmentSource,
    LiveEnvironment,
    IdentityGuard,
)

# Engine lifecycle
from .engine import (
    CryptoInstance,
    CryptoInstanceManager,
    CryptoInstanceState,
    EncryptedInput,
    EngineBootstrap,
    InstanceStatus,
)

# Ledger
from .ledger import (
    Ledger,
    PendingTransaction,
    TransactionReceipt,
    TransactionStatus,
)

# Results
from .store import (
    OperationKind,
    ResultStore,
    RiskResult,
    GlucoseSubmission,
)

# Coordinator
from .coordinator import (
    OperationCoordinator,
    OperationOutcome,
    OperationPhase,
    OperationState,
    CheckRequest,
    parse_glucose,
    parse_check_request,
    STALE_NOTICE,
)

# Signatures
from .signing import (
    DecryptionSignature,
    DecryptionSignatureStore,
    KeyRing,
    SignerKey,
)

# Devnet
from .devnet import (
    Devnet,
    DevnetBootstrap,
    DevnetCryptoInstance,
    DevnetLedger,
)
from .session import DevnetSession, build_devnet_session

# Presentation
from .status import describe_system_status, network_label, status_report


__all__ = [
    "__version__",

    # Errors
    "GlucoGuardError",
    "InputValidationError",
    "BusyError",
    "InitializationError",
    "ActionError",
    "LedgerError",
    "DecryptionError",

    # Handles
    "EMPTY_HANDLE",
    "derive_handle",
    "is_empty_handle",
    "has_value",

    # Environment
    "EnvironmentSnapshot",
    "EnvironmentSource",
    "LiveEnvironment",
    "IdentityGuard",

    # Engine
    "CryptoInstance",
    "CryptoInstanceManager",
    "CryptoInstanceState",
    "EncryptedInput",
    "EngineBootstrap",
    "InstanceStatus",

    # Ledger
    "Ledger",
    "PendingTransaction",
    "TransactionReceipt",
    "TransactionStatus",

    # Results
    "OperationKind",
    "ResultStore",
    "RiskResult",
    "GlucoseSubmission",

    # Coordinator
    "OperationCoordinator",
    "OperationOutcome",
    "OperationPhase",
    "OperationState",
    "CheckRequest",
    "parse_glucose",
    "parse_check_request",
    "STALE_NOTICE",

    # Signatures
    "DecryptionSignature",
    "DecryptionSignatureStore",
    "KeyRing",
    "SignerKey",

    # Devnet
    "Devnet",
    "DevnetBootstrap",
    "DevnetCryptoInstance",
    "DevnetLedger",
    "DevnetSession",
    "build_devnet_session",

    # Presentation
    "describe_system_status",
    "network_label",
    "status_report",
]
