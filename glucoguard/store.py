"""
GlucoGuard Result Store

Last committed handles per workflow kind, the decrypted risk value (when
disclosed), recent submissions, and a free-form status message for
display.

Only commit() and clear() change handles. A commit always supersedes
the previous handle of its kind; the kinds never share a field.
"""

from collections import deque
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Deque, Dict, List, Optional

from . import config
from .handles import EMPTY_HANDLE, has_value, is_empty_handle, normalize_handle


class OperationKind(str, Enum):
    SUBMIT = "submit"
    CHECK = "check"
    DECRYPT = "decrypt"


# Kinds that commit a handle; DECRYPT only fills in the risk value
RESULT_KINDS = (OperationKind.SUBMIT, OperationKind.CHECK)


@dataclass
class RiskResult:
    """Risk-result handle plus its plaintext once disclosed."""
    encrypted_handle: str = EMPTY_HANDLE
    decrypted_value: Optional[bool] = None

    def has_value(self) -> bool:
        return has_value(self.encrypted_handle)

    def is_high_risk(self) -> Optional[bool]:
        return self.decrypted_value


@dataclass
class GlucoseSubmission:
    """An accepted submission; order is the monotonic sequence number."""
    raw_value: int
    sequence: int
    submitted_at: datetime


class ResultStore:
    """
    Committed results, partitioned by kind.

    Usage:
        store = ResultStore()
        store.commit(OperationKind.SUBMIT, handle)
        if store.has_value(OperationKind.SUBMIT):
            ...
    """

    def __init__(self, history_size: int = config.HISTORY_SIZE):
        self._handles: Dict[OperationKind, str] = {kind: EMPTY_HANDLE for kind in RESULT_KINDS}
        self._risk_value: Optional[bool] = None
        self._history: Deque[GlucoseSubmission] = deque(maxlen=history_size)
        self._sequence = 0
        self.message = ""

    def commit(self, kind: OperationKind, handle: str) -> None:
        """
        Record the handle of a succeeded workflow.

        Raises:
            ValueError: handle is empty or the empty sentinel, or kind
                does not commit handles
        """
        kind = OperationKind(kind)
        if kind not in RESULT_KINDS:
            raise ValueError(f"{kind.value} does not commit a handle")
        if is_empty_handle(handle):
            raise ValueError("Cannot commit the empty handle")
        self._handles[kind] = normalize_handle(handle)
        if kind == OperationKind.CHECK:
            # a new risk handle invalidates any earlier disclosure
            self._risk_value = None

    def record_disclosure(self, handle: str, value: bool) -> bool:
        """Attach a decrypted value if it belongs to the current risk handle."""
        if normalize_handle(handle) != self._handles[OperationKind.CHECK]:
            return False
        self._risk_value = bool(value)
        return True

    def record_submission(self, raw_value: int) -> GlucoseSubmission:
        self._sequence += 1
        submission = GlucoseSubmission(
            raw_value=raw_value,
            sequence=self._sequence,
            submitted_at=datetime.now(timezone.utc),
        )
        self._history.append(submission)
        return submission

    def clear(self) -> None:
        """Forget every committed result and the message."""
        for kind in RESULT_KINDS:
            self._handles[kind] = EMPTY_HANDLE
        self._risk_value = None
        self._history.clear()
        self.message = ""

    def set_message(self, message: str) -> None:
        self.message = message

    def handle(self, kind: OperationKind) -> str:
        return self._handles[OperationKind(kind)]

    def has_value(self, kind: OperationKind) -> bool:
        return has_value(self._handles[OperationKind(kind)])

    @property
    def glucose_handle(self) -> str:
        return self._handles[OperationKind.SUBMIT]

    @property
    def risk_result(self) -> RiskResult:
        return RiskResult(self._handles[OperationKind.CHECK], self._risk_value)

    def history(self) -> List[int]:
        """Raw values of recent accepted submissions, oldest first."""
        return [s.raw_value for s in self._history]

    def to_dict(self):
        return {
            "glucose_handle": self.glucose_handle,
            "risk_handle": self._handles[OperationKind.CHECK],
            "risk_value": self._risk_value,
            "history": self.history(),
            "message": self.message,
        }
