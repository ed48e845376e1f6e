"""
GlucoGuard error taxonomy.

Two errors are raised synchronously by `OperationCoordinator.start`
before any workflow begins:
    InputValidationError  - input out of range or non-numeric
    BusyError             - a workflow of the same kind is already running

The rest are captured at the failing suspension point and attached to
the terminal phase of the workflow; they are returned, not raised.
"""

from typing import Any, Optional


class GlucoGuardError(Exception):
    """Base class for all GlucoGuard errors."""


class InputValidationError(GlucoGuardError, ValueError):
    """Submission input rejected before any async work started."""

    def __init__(self, message: str, raw_input: Any = None):
        self.raw_input = raw_input
        super().__init__(message)


class BusyError(GlucoGuardError):
    """A second start() for a kind whose workflow is still running."""

    def __init__(self, kind: str):
        self.kind = kind
        super().__init__(f"A {kind} operation is already running")


class InitializationError(GlucoGuardError):
    """Encryption engine bootstrap failed for a network."""

    def __init__(self, network_id: Optional[int], cause: Optional[BaseException] = None):
        self.network_id = network_id
        self.cause = cause
        detail = f": {cause}" if cause else ""
        super().__init__(f"Encryption engine initialization failed for network {network_id}{detail}")


class LedgerError(GlucoGuardError):
    """The ledger collaborator rejected or failed a call."""

    def __init__(self, message: str, transient: bool = True):
        self.transient = transient
        super().__init__(message)


class DecryptionError(GlucoGuardError):
    """A decryption request was refused or failed."""


class ActionError(GlucoGuardError):
    """A domain action (encrypt, send, confirm, read) failed."""

    def __init__(self, kind: str, step: str, cause: BaseException):
        self.kind = kind
        self.step = step
        self.cause = cause
        super().__init__(f"{kind} failed during {step}: {cause}")
