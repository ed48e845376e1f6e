"""
GlucoGuard Operation Coordinator

Runs the user-facing workflows, submit, check and decrypt, as independent
single-flight state machines:

    IDLE -> RUNNING -> SUCCEEDED | FAILED | STALE -> IDLE

The terminal phase is a transient signal; every attempt ends back in
IDLE so the next one can start.

A workflow captures the environment when it starts. After its last
suspension point it asks the IdentityGuard whether the network and
signer are unchanged:

    action failed                  -> FAILED (even if the environment changed)
    action ok, environment changed -> STALE, nothing committed
    action ok, environment same    -> SUCCEEDED, handle committed

A STALE action did happen on the ledger; only its local effect is
dropped, so a result is never attributed to an identity that did not
produce it.

Usage:
    coordinator = OperationCoordinator(guard, manager, ledger)

    task = coordinator.start(OperationKind.SUBMIT, "140")   # may raise now
    outcome = await task
"""

import asyncio
import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, List, Optional

from pydantic import BaseModel, Field, ValidationError, field_validator

from . import config
from .engine import CryptoInstance, CryptoInstanceManager, InstanceStatus
from .environment import EnvironmentSnapshot, IdentityGuard
from .errors import ActionError, BusyError, InitializationError, InputValidationError, LedgerError
from .handles import is_empty_handle
from .ledger import Ledger
from .logging_config import audit_log, new_operation_id, operation_id_var
from .signing import DecryptionSignatureStore, KeyRing, load_or_sign
from .store import OperationKind, ResultStore

logger = logging.getLogger(__name__)

STALE_NOTICE = "Your wallet or network changed while this was running. The result was discarded; please try again."


class OperationPhase(str, Enum):
    IDLE = "IDLE"
    RUNNING = "RUNNING"
    SUCCEEDED = "SUCCEEDED"
    FAILED = "FAILED"
    STALE = "STALE"


class GlucoseInput(BaseModel):
    """User-entered glucose value in mg/dL."""
    raw_value: int = Field(ge=config.GLUCOSE_MIN, le=config.GLUCOSE_MAX)

    @field_validator("raw_value", mode="before")
    @classmethod
    def _numeric_only(cls, value: Any) -> Any:
        if isinstance(value, bool):
            raise ValueError("must be a number")
        if isinstance(value, str):
            value = value.strip()
        return value


class CheckRequest(BaseModel):
    """Options for a risk check."""
    disclose: bool = False


def parse_glucose(raw_input: Any) -> int:
    """
    Validate a submission value.

    Raises:
        InputValidationError: non-numeric, non-integral, or outside
            GLUCOSE_MIN..GLUCOSE_MAX
    """
    try:
        return GlucoseInput(raw_value=raw_input).raw_value
    except ValidationError as e:
        reason = e.errors()[0].get("msg", "invalid value") if e.errors() else "invalid value"
        raise InputValidationError(
            f"Glucose value must be a whole number from {config.GLUCOSE_MIN} to {config.GLUCOSE_MAX} ({reason})",
            raw_input=raw_input,
        ) from e


def parse_check_request(payload: Any) -> CheckRequest:
    """
    Normalize check options: None, a bool, a mapping or a CheckRequest.

    Raises:
        InputValidationError: payload is not a valid set of check options
    """
    if payload is None:
        return CheckRequest()
    if isinstance(payload, CheckRequest):
        return payload
    if isinstance(payload, bool):
        return CheckRequest(disclose=payload)
    try:
        return CheckRequest.model_validate(payload)
    except ValidationError as e:
        reason = e.errors()[0].get("msg", "invalid value") if e.errors() else "invalid value"
        raise InputValidationError(f"Invalid check options ({reason})", raw_input=payload) from e


@dataclass
class OperationState:
    """Current phase of one workflow kind."""
    phase: OperationPhase = OperationPhase.IDLE
    started_snapshot: Optional[EnvironmentSnapshot] = None
    operation_id: Optional[str] = None


@dataclass
class OperationOutcome:
    """Terminal result of one workflow attempt."""
    kind: OperationKind
    phase: OperationPhase
    operation_id: str
    snapshot: EnvironmentSnapshot
    handle: Optional[str] = None
    error: Optional[BaseException] = None
    notice: Optional[str] = None
    tx_hash: Optional[str] = None
    decrypted_value: Optional[Any] = None
    decryption_error: Optional[BaseException] = None

    def succeeded(self) -> bool:
        return self.phase == OperationPhase.SUCCEEDED

    def failed(self) -> bool:
        return self.phase == OperationPhase.FAILED

    def is_stale(self) -> bool:
        return self.phase == OperationPhase.STALE

    def to_dict(self) -> Dict[str, Any]:
        return {
            "kind": self.kind.value,
            "phase": self.phase.value,
            "operation_id": self.operation_id,
            "snapshot": self.snapshot.to_dict(),
            "handle": self.handle,
            "error": str(self.error) if self.error else None,
            "notice": self.notice,
            "tx_hash": self.tx_hash,
            "decrypted_value": self.decrypted_value,
            "decryption_error": str(self.decryption_error) if self.decryption_error else None,
        }


@dataclass
class _ActionResult:
    handle: str
    tx_hash: Optional[str] = None
    decrypted_value: Optional[Any] = None
    decryption_error: Optional[BaseException] = None


PhaseListener = Callable[[OperationKind, OperationPhase], None]


class OperationCoordinator:
    """
    Drives the submit, check and decrypt workflows.

    The busy guard, input validation and the RUNNING transition all
    happen synchronously inside start(), before any await, so two calls
    on the same loop can never both pass the guard.
    """

    def __init__(
        self,
        guard: IdentityGuard,
        manager: CryptoInstanceManager,
        ledger: Ledger,
        store: Optional[ResultStore] = None,
        signatures: Optional[DecryptionSignatureStore] = None,
        keyring: Optional[KeyRing] = None,
    ):
        self.guard = guard
        self.manager = manager
        self.ledger = ledger
        self.store = store or ResultStore()
        self.signatures = signatures or DecryptionSignatureStore()
        self.keyring = keyring or KeyRing()
        self._states: Dict[OperationKind, OperationState] = {k: OperationState() for k in OperationKind}
        self._committed_in: Dict[OperationKind, EnvironmentSnapshot] = {}
        self._last_outcomes: Dict[OperationKind, OperationOutcome] = {}
        self._listeners: List[PhaseListener] = []

    # ------------------------------------------------------------------
    # Observation
    # ------------------------------------------------------------------

    def phase(self, kind: OperationKind) -> OperationPhase:
        return self._states[OperationKind(kind)].phase

    def state(self, kind: OperationKind) -> OperationState:
        return self._states[OperationKind(kind)]

    def last_outcome(self, kind: OperationKind) -> Optional[OperationOutcome]:
        return self._last_outcomes.get(OperationKind(kind))

    def subscribe(self, listener: PhaseListener) -> Callable[[], None]:
        """Register a phase listener. Returns an unsubscribe callable."""
        self._listeners.append(listener)

        def unsubscribe():
            if listener in self._listeners:
                self._listeners.remove(listener)
        return unsubscribe

    @property
    def is_submitting(self) -> bool:
        return self.phase(OperationKind.SUBMIT) == OperationPhase.RUNNING

    @property
    def is_checking(self) -> bool:
        return self.phase(OperationKind.CHECK) == OperationPhase.RUNNING

    @property
    def is_decrypting(self) -> bool:
        return self.phase(OperationKind.DECRYPT) == OperationPhase.RUNNING

    @property
    def can_submit(self) -> bool:
        network_id = self.guard.source.network_id()
        return (
            self.guard.source.is_connected()
            and self.ledger.is_deployed(network_id)
            and self.manager.status != InstanceStatus.INITIALIZING
            and not self.is_submitting
        )

    @property
    def can_check_risk(self) -> bool:
        return (
            self.guard.source.is_connected()
            and self.store.has_value(OperationKind.SUBMIT)
            and not self.is_checking
        )

    @property
    def can_decrypt(self) -> bool:
        risk = self.store.risk_result
        return (
            self.guard.source.is_connected()
            and risk.has_value()
            and risk.decrypted_value is None
            and not self.is_checking
            and not self.is_decrypting
        )

    # ------------------------------------------------------------------
    # Workflows
    # ------------------------------------------------------------------

    def start(self, kind: OperationKind, payload: Any = None) -> "asyncio.Task[OperationOutcome]":
        """
        Start a workflow and return the task that runs it.

        Raises:
            RuntimeError: no running event loop; no transition
            BusyError: a workflow of this kind is running
            InputValidationError: submit value or check options rejected;
                no transition
        """
        loop = asyncio.get_running_loop()
        kind = OperationKind(kind)
        state = self._states[kind]
        if state.phase == OperationPhase.RUNNING:
            audit_log.operation_rejected(kind.value, "busy")
            raise BusyError(kind.value)

        try:
            if kind == OperationKind.SUBMIT:
                payload = parse_glucose(payload)
            elif kind == OperationKind.CHECK:
                payload = parse_check_request(payload)
            else:
                # decrypt acts on the risk result current at start
                payload = self.store.risk_result.encrypted_handle
        except InputValidationError as e:
            audit_log.operation_rejected(kind.value, str(e))
            raise

        snapshot = self.guard.capture()
        operation_id = new_operation_id(kind.value)
        self._set_phase(kind, OperationPhase.RUNNING, snapshot, operation_id)
        if kind == OperationKind.SUBMIT:
            self.store.record_submission(payload)
        return loop.create_task(self._run(kind, payload, snapshot, operation_id))

    async def submit_glucose(self, raw_value: Any) -> OperationOutcome:
        return await self.start(OperationKind.SUBMIT, raw_value)

    async def check_risk(self, disclose: bool = False) -> OperationOutcome:
        return await self.start(OperationKind.CHECK, CheckRequest(disclose=disclose))

    async def decrypt_risk(self) -> OperationOutcome:
        """Decrypt the committed risk result without a new check."""
        return await self.start(OperationKind.DECRYPT)

    async def _run(
        self,
        kind: OperationKind,
        payload: Any,
        snapshot: EnvironmentSnapshot,
        operation_id: str,
    ) -> OperationOutcome:
        operation_id_var.set(operation_id)
        audit_log.operation_started(kind.value, snapshot.network_id, snapshot.signer_id)
        outcome = OperationOutcome(kind=kind, phase=OperationPhase.RUNNING, operation_id=operation_id, snapshot=snapshot)
        try:
            try:
                instance = await self.manager.ensure_ready(snapshot.network_id)
            except InitializationError as e:
                return self._fail(outcome, e)

            try:
                if kind == OperationKind.SUBMIT:
                    result = await self._submit(instance, snapshot, payload)
                elif kind == OperationKind.CHECK:
                    result = await self._check(instance, snapshot, payload)
                else:
                    result = await self._decrypt(instance, snapshot, payload)
            except ActionError as e:
                return self._fail(outcome, e)
            except Exception as e:
                logger.exception("Unexpected error during %s", kind.value)
                return self._fail(outcome, e)

            outcome.handle = result.handle
            outcome.tx_hash = result.tx_hash
            if not self.guard.still_valid(snapshot):
                return self._discard(outcome)
            outcome.decrypted_value = result.decrypted_value
            outcome.decryption_error = result.decryption_error
            return self._commit(outcome)
        finally:
            self._last_outcomes[kind] = outcome
            self._set_phase(kind, OperationPhase.IDLE)

    async def _step(self, kind: OperationKind, step: str, awaitable: Awaitable) -> Any:
        try:
            return await awaitable
        except ActionError:
            raise
        except Exception as e:
            raise ActionError(kind.value, step, e) from e

    async def _submit(self, instance: CryptoInstance, snapshot: EnvironmentSnapshot, raw_value: int) -> _ActionResult:
        kind = OperationKind.SUBMIT
        network_id, signer_id = snapshot.network_id, snapshot.signer_id
        contract = self._contract(kind, network_id)

        self.store.set_message("Encrypting glucose value...")
        encrypted = await self._step(kind, "encrypt", instance.encrypt(raw_value, contract, signer_id))

        self.store.set_message("Submitting encrypted glucose value...")
        tx = await self._step(kind, "send", self.ledger.submit_glucose(network_id, signer_id, encrypted))
        await self._confirm(kind, tx)

        handle = await self._step(kind, "read", self.ledger.get_glucose_handle(network_id, signer_id))
        if is_empty_handle(handle):
            raise ActionError(kind.value, "read", LedgerError("Ledger returned no glucose handle"))
        return _ActionResult(handle=handle, tx_hash=tx.tx_hash)

    async def _check(self, instance: CryptoInstance, snapshot: EnvironmentSnapshot, request: CheckRequest) -> _ActionResult:
        kind = OperationKind.CHECK
        network_id, signer_id = snapshot.network_id, snapshot.signer_id
        contract = self._contract(kind, network_id)

        glucose_handle = self._submission_handle_for(snapshot)
        if glucose_handle is None:
            glucose_handle = await self._step(kind, "read", self.ledger.get_glucose_handle(network_id, signer_id))
        if is_empty_handle(glucose_handle):
            raise ActionError(kind.value, "read", LedgerError("No glucose value submitted for this account"))

        self.store.set_message("Checking risk...")
        tx = await self._step(kind, "send", self.ledger.check_risk(network_id, signer_id, glucose_handle))
        await self._confirm(kind, tx)

        handle = await self._step(kind, "read", self.ledger.get_risk_handle(network_id, signer_id))
        if is_empty_handle(handle):
            raise ActionError(kind.value, "read", LedgerError("Ledger returned no risk handle"))

        result = _ActionResult(handle=handle, tx_hash=tx.tx_hash)
        if request.disclose:
            try:
                result.decrypted_value = await self._disclose(instance, snapshot, contract, handle)
            except Exception as e:
                # disclosure is optional; the check itself already happened
                logger.warning("Risk result decryption failed: %s", e)
                result.decryption_error = e
        return result

    async def _decrypt(self, instance: CryptoInstance, snapshot: EnvironmentSnapshot, handle: str) -> _ActionResult:
        kind = OperationKind.DECRYPT
        if is_empty_handle(handle):
            raise ActionError(kind.value, "read", LedgerError("No risk result to decrypt"))
        contract = self._contract(kind, snapshot.network_id)
        try:
            value = await self._disclose(instance, snapshot, contract, handle)
        except Exception as e:
            raise ActionError(kind.value, "decrypt", e) from e
        return _ActionResult(handle=handle, decrypted_value=value)

    async def _disclose(self, instance: CryptoInstance, snapshot: EnvironmentSnapshot, contract: str, handle: str) -> bool:
        self.store.set_message("Decrypting risk result...")
        signature = load_or_sign(self.signatures, self.keyring, snapshot.network_id, snapshot.signer_id, contract)
        return bool(await instance.decrypt(handle, contract, signature))

    async def _confirm(self, kind: OperationKind, tx) -> None:
        receipt = await self._step(kind, "confirm", tx.wait())
        if not receipt.succeeded():
            raise ActionError(kind.value, "confirm", LedgerError(f"Transaction {tx.tx_hash} reverted"))

    def _contract(self, kind: OperationKind, network_id: int) -> str:
        try:
            return self.ledger.contract_address(network_id)
        except Exception as e:
            raise ActionError(kind.value, "resolve", e) from e

    def _submission_handle_for(self, snapshot: EnvironmentSnapshot) -> Optional[str]:
        """The committed submission handle, if it was committed in this environment."""
        if self._committed_in.get(OperationKind.SUBMIT) != snapshot:
            return None
        if not self.store.has_value(OperationKind.SUBMIT):
            return None
        return self.store.handle(OperationKind.SUBMIT)

    # ------------------------------------------------------------------
    # Terminal transitions
    # ------------------------------------------------------------------

    def _commit(self, outcome: OperationOutcome) -> OperationOutcome:
        kind = outcome.kind
        if kind == OperationKind.DECRYPT:
            # a check that committed meanwhile owns the risk slot now
            if self.store.record_disclosure(outcome.handle, outcome.decrypted_value):
                verdict = "HIGH RISK" if outcome.decrypted_value else "normal"
                self.store.set_message(f"Risk result decrypted: {verdict}.")
            else:
                self.store.set_message("A newer risk check replaced this result; decrypt it again.")
        else:
            self.store.commit(kind, outcome.handle)
            self._committed_in[kind] = outcome.snapshot
            if kind == OperationKind.SUBMIT:
                self.store.set_message("Glucose value submitted.")
            elif outcome.decrypted_value is not None:
                self.store.record_disclosure(outcome.handle, outcome.decrypted_value)
                verdict = "HIGH RISK" if outcome.decrypted_value else "normal"
                self.store.set_message(f"Risk check complete: {verdict}.")
            elif outcome.decryption_error is not None:
                self.store.set_message(f"Risk check complete; decryption failed: {outcome.decryption_error}")
            else:
                self.store.set_message("Risk check complete.")
        outcome.phase = OperationPhase.SUCCEEDED
        self._set_phase(kind, OperationPhase.SUCCEEDED)
        audit_log.operation_succeeded(kind.value, outcome.handle)
        return outcome

    def _fail(self, outcome: OperationOutcome, error: BaseException) -> OperationOutcome:
        outcome.error = error
        outcome.phase = OperationPhase.FAILED
        self.store.set_message(f"{outcome.kind.value.capitalize()} failed: {error}. Please try again.")
        self._set_phase(outcome.kind, OperationPhase.FAILED)
        audit_log.operation_failed(outcome.kind.value, str(error))
        return outcome

    def _discard(self, outcome: OperationOutcome) -> OperationOutcome:
        outcome.notice = STALE_NOTICE
        outcome.phase = OperationPhase.STALE
        self.store.set_message(STALE_NOTICE)
        self._set_phase(outcome.kind, OperationPhase.STALE)
        audit_log.operation_stale(
            outcome.kind.value,
            network_changed=not self.guard.same_network(outcome.snapshot),
            signer_changed=not self.guard.same_signer(outcome.snapshot),
        )
        return outcome

    def _set_phase(
        self,
        kind: OperationKind,
        phase: OperationPhase,
        snapshot: Optional[EnvironmentSnapshot] = None,
        operation_id: Optional[str] = None,
    ) -> None:
        state = self._states[kind]
        state.phase = phase
        if phase == OperationPhase.RUNNING:
            state.started_snapshot = snapshot
            state.operation_id = operation_id
        elif phase == OperationPhase.IDLE:
            state.started_snapshot = None
            state.operation_id = None
        for listener in list(self._listeners):
            listener(kind, phase)
