"""
Logging configuration for GlucoGuard.

Provides structured JSON logging for operation audit trails, plus a
scoped filter that keeps known third-party noise out of the log.
"""

import json
import logging
import sys
import time
import uuid
from contextvars import ContextVar
from typing import Iterable, List, Optional

# Context variable for per-attempt operation tracking.
# Each asyncio task gets its own copy, so concurrent workflows never mix ids.
operation_id_var: ContextVar[str] = ContextVar('operation_id', default='')


class StructuredFormatter(logging.Formatter):
    """
    JSON formatter for structured logging.

    Outputs logs in a consistent JSON format suitable for
    log aggregation systems.
    """

    def format(self, record: logging.LogRecord) -> str:
        log_data = {
            "timestamp": time.strftime('%Y-%m-%dT%H:%M:%SZ', time.gmtime(record.created)),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "module": record.module,
            "function": record.funcName,
            "line": record.lineno,
        }

        operation_id = operation_id_var.get()
        if operation_id:
            log_data["operation_id"] = operation_id

        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)

        if hasattr(record, 'extra_fields'):
            log_data.update(record.extra_fields)

        return json.dumps(log_data, default=str)


class OperationAuditLogger:
    """
    Specialized logger for workflow and engine lifecycle events.

    Every terminal transition of a workflow is logged exactly once,
    so the log alone can reconstruct what the user saw.
    """

    def __init__(self, name: str = "glucoguard.audit"):
        self._logger = logging.getLogger(name)

    def _log(self, level: int, event_type: str, **kwargs) -> None:
        """Internal logging method with extra fields."""
        extra = {
            "event_type": event_type,
            "operation_id": operation_id_var.get(),
            **kwargs
        }

        record = self._logger.makeRecord(
            self._logger.name,
            level,
            "",
            0,
            f"{event_type}: {kwargs.get('message', '')}",
            (),
            None
        )
        record.extra_fields = extra
        self._logger.handle(record)

    def operation_started(self, kind: str, network_id: Optional[int], signer_id: Optional[str]) -> None:
        self._log(
            logging.INFO,
            "OPERATION_STARTED",
            kind=kind,
            network_id=network_id,
            signer_id=signer_id,
            message=f"{kind} started"
        )

    def operation_rejected(self, kind: str, reason: str) -> None:
        self._log(
            logging.WARNING,
            "OPERATION_REJECTED",
            kind=kind,
            reason=reason,
            message=f"{kind} rejected: {reason}"
        )

    def operation_succeeded(self, kind: str, handle: Optional[str]) -> None:
        self._log(
            logging.INFO,
            "OPERATION_SUCCEEDED",
            kind=kind,
            handle=handle,
            message=f"{kind} succeeded"
        )

    def operation_failed(self, kind: str, error: str) -> None:
        self._log(
            logging.ERROR,
            "OPERATION_FAILED",
            kind=kind,
            error=error,
            message=f"{kind} failed: {error}"
        )

    def operation_stale(self, kind: str, network_changed: bool, signer_changed: bool) -> None:
        """Log a result that was computed but discarded."""
        self._log(
            logging.WARNING,
            "OPERATION_STALE",
            kind=kind,
            network_changed=network_changed,
            signer_changed=signer_changed,
            message=f"{kind} result discarded after environment change"
        )

    def engine_event(self, status: str, network_id: Optional[int], error: Optional[str] = None) -> None:
        """Log an encryption engine lifecycle transition."""
        level = logging.ERROR if error else logging.INFO
        self._log(
            level,
            f"ENGINE_{status.upper()}",
            network_id=network_id,
            error=error,
            message=f"Encryption engine {status.lower()} for network {network_id}"
        )


# Substrings of known non-actionable third-party messages
DEFAULT_NOISE_PATTERNS = (
    "Base Account SDK requires the Cross-Origin-Opener-Policy",
    "Cross-Origin-Opener-Policy header to not be set to 'same-origin'",
    "Analytics SDK",
    "cca-lite.coinbase.com",
    "NotSameOriginAfterDefaultedToSameOriginByCoep",
    "ERR_BLOCKED_BY_RESPONSE",
    "relayer.testnet.zama.cloud",
    "ERR_CONNECTION_CLOSED",
    "relayer-sdk-js.umd.cjs",
)


class NoiseFilter(logging.Filter):
    """
    Drops records whose message contains a known noise substring.

    Must be installed explicitly and uninstalled when the scope ends;
    it never touches loggers it was not installed on.

    Usage:
        noise = NoiseFilter()
        noise.install()
        try:
            ...
        finally:
            noise.uninstall()
    """

    def __init__(self, patterns: Iterable[str] = DEFAULT_NOISE_PATTERNS):
        super().__init__()
        self.patterns = tuple(patterns)
        self._installed_on: List[logging.Handler] = []

    def filter(self, record: logging.LogRecord) -> bool:
        try:
            message = record.getMessage()
        except (TypeError, ValueError):
            message = str(record.msg)
        return not any(p in message for p in self.patterns)

    def install(self, logger: Optional[logging.Logger] = None) -> None:
        """Attach to every handler of the given logger (root by default)."""
        if self._installed_on:
            return
        target = logger or logging.getLogger()
        for handler in target.handlers:
            handler.addFilter(self)
            self._installed_on.append(handler)

    def uninstall(self) -> None:
        """Detach from every handler this filter was installed on."""
        for handler in self._installed_on:
            handler.removeFilter(self)
        self._installed_on = []

    @property
    def installed(self) -> bool:
        return bool(self._installed_on)


def configure_logging(
    level: str = "INFO",
    json_format: bool = True,
    log_file: Optional[str] = None
) -> None:
    """
    Configure logging for the application.

    Args:
        level: Log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        json_format: Use JSON formatting
        log_file: Optional file path for log output
    """
    root_logger = logging.getLogger()
    root_logger.setLevel(getattr(logging, level.upper()))

    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    if json_format:
        formatter = StructuredFormatter()
    else:
        formatter = logging.Formatter(
            '%(asctime)s - %(name)s - %(levelname)s - %(message)s'
        )

    console_handler = logging.StreamHandler(sys.stderr)
    console_handler.setFormatter(formatter)
    root_logger.addHandler(console_handler)

    if log_file:
        file_handler = logging.FileHandler(log_file)
        file_handler.setFormatter(formatter)
        root_logger.addHandler(file_handler)


def new_operation_id(kind: str) -> str:
    """Generate an operation ID for one workflow attempt."""
    return f"{kind}-{uuid.uuid4().hex[:12]}"


def get_operation_id() -> str:
    """Get the current operation ID."""
    return operation_id_var.get()


# Global audit logger instance
audit_log = OperationAuditLogger()
