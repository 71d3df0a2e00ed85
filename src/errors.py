"""Error taxonomy and the error sink that failures are reported to.

Every failure inside the analysis pipeline is a ``FishbowlError`` carrying a
kind, a category and a severity. Nothing here renders or delivers anything to
the user; the sink only logs and keeps a short history that a UI can read.
"""

from __future__ import annotations

import logging
import re
import threading
from collections import deque
from datetime import datetime
from enum import StrEnum
from pathlib import Path
from typing import Protocol

from pydantic import BaseModel

logger = logging.getLogger(__name__)


class Severity(StrEnum):
    """How badly a failure affects the application."""

    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


class GatewayErrorKind(StrEnum):
    MODEL_UNAVAILABLE = "model_unavailable"
    INVALID_REQUEST = "invalid_request"
    NETWORK_ERROR = "network_error"
    RESPONSE_PARSING_ERROR = "response_parsing_error"
    SERVER_ERROR = "server_error"
    UNKNOWN = "unknown"


class CodecErrorKind(StrEnum):
    MALFORMED = "malformed"
    MISSING_FIELD = "missing_field"
    SCHEMA_MISMATCH = "schema_mismatch"


class PersistenceErrorKind(StrEnum):
    READ_FAILED = "read_failed"
    WRITE_FAILED = "write_failed"
    CORRUPTED = "corrupted"


_PATH_RE = re.compile(r"/[^/\s]+(?:/[^/\s]+)+")


class FishbowlError(Exception):
    """Base error for everything the pipeline reports."""

    category = "unknown"

    def __init__(self, message: str = "", *, kind: str = "unknown") -> None:
        super().__init__(message or kind)
        self.kind = kind

    @property
    def severity(self) -> Severity:
        return Severity.HIGH

    @property
    def technical_description(self) -> str:
        return str(self)

    @property
    def user_message(self) -> str:
        """The technical description with file paths and the home dir scrubbed."""
        text = self.technical_description.replace(str(Path.home()), "[home directory]")
        return _PATH_RE.sub("[file path]", text)


_GATEWAY_SEVERITY: dict[GatewayErrorKind, Severity] = {
    GatewayErrorKind.MODEL_UNAVAILABLE: Severity.HIGH,
    GatewayErrorKind.INVALID_REQUEST: Severity.LOW,
    GatewayErrorKind.NETWORK_ERROR: Severity.MEDIUM,
    GatewayErrorKind.RESPONSE_PARSING_ERROR: Severity.MEDIUM,
    GatewayErrorKind.SERVER_ERROR: Severity.MEDIUM,
    GatewayErrorKind.UNKNOWN: Severity.HIGH,
}


class GatewayError(FishbowlError):
    """Raised when talking to the local model endpoint fails."""

    category = "gateway"

    def __init__(
        self,
        kind: GatewayErrorKind,
        detail: str = "",
        *,
        status_code: int | None = None,
    ) -> None:
        self.detail = detail
        self.status_code = status_code
        super().__init__(self._describe(kind, detail, status_code), kind=kind)

    @staticmethod
    def _describe(kind: GatewayErrorKind, detail: str, status_code: int | None) -> str:
        if kind == GatewayErrorKind.MODEL_UNAVAILABLE:
            base = "AI model is not available; is Ollama running with the model installed?"
        elif kind == GatewayErrorKind.INVALID_REQUEST:
            base = "Invalid request"
        elif kind == GatewayErrorKind.NETWORK_ERROR:
            base = "Network error"
        elif kind == GatewayErrorKind.RESPONSE_PARSING_ERROR:
            base = "Failed to parse model response"
        elif kind == GatewayErrorKind.SERVER_ERROR:
            base = f"Server returned error {status_code}"
        else:
            base = "Unknown gateway error"
        return f"{base}: {detail}" if detail else base

    @property
    def severity(self) -> Severity:
        if (
            self.kind == GatewayErrorKind.SERVER_ERROR
            and self.status_code is not None
            and self.status_code >= 500
        ):
            return Severity.HIGH
        return _GATEWAY_SEVERITY[GatewayErrorKind(self.kind)]


class CodecError(FishbowlError):
    """Raised when model output cannot be decoded into a typed result."""

    category = "codec"

    def __init__(self, kind: CodecErrorKind, detail: str = "") -> None:
        super().__init__(f"{kind.value}: {detail}" if detail else kind.value, kind=kind)

    @property
    def severity(self) -> Severity:
        return Severity.MEDIUM


class PersistenceError(FishbowlError):
    """Raised when a persisted record cannot be read or written."""

    category = "persistence"

    def __init__(self, kind: PersistenceErrorKind, path: Path | str, detail: str = "") -> None:
        self.path = Path(path)
        message = f"{kind.value} at {path}"
        if detail:
            message += f": {detail}"
        super().__init__(message, kind=kind)

    @property
    def severity(self) -> Severity:
        if self.kind == PersistenceErrorKind.WRITE_FAILED:
            return Severity.HIGH
        return Severity.MEDIUM


def as_fishbowl_error(exc: BaseException) -> FishbowlError:
    """Wrap an unexpected exception so it can be reported like any other."""
    if isinstance(exc, FishbowlError):
        return exc
    return FishbowlError(f"{type(exc).__name__}: {exc}", kind="unexpected")


# ---------------------------------------------------------------------------
# Reporting
# ---------------------------------------------------------------------------


class ErrorReport(BaseModel):
    """One reported failure, as seen by the error sink."""

    kind: str
    category: str
    severity: Severity
    message: str
    context: str = ""
    timestamp: datetime

    @classmethod
    def from_error(cls, error: FishbowlError, context: str = "") -> ErrorReport:
        return cls(
            kind=str(error.kind),
            category=error.category,
            severity=error.severity,
            message=error.technical_description,
            context=context,
            timestamp=datetime.now().astimezone(),
        )


class ErrorSink(Protocol):
    """Anything that accepts failure reports from the pipeline."""

    def report(self, error: FishbowlError, context: str = "") -> None: ...


_LOG_LEVELS: dict[Severity, int] = {
    Severity.LOW: logging.INFO,
    Severity.MEDIUM: logging.WARNING,
    Severity.HIGH: logging.ERROR,
    Severity.CRITICAL: logging.CRITICAL,
}


class LoggingErrorSink:
    """Logs each report and keeps the most recent ones for readers."""

    def __init__(self, history_size: int = 50) -> None:
        self._history: deque[ErrorReport] = deque(maxlen=history_size)
        self._lock = threading.Lock()

    def report(self, error: FishbowlError, context: str = "") -> None:
        entry = ErrorReport.from_error(error, context)
        suffix = f" (context: {context})" if context else ""
        logger.log(
            _LOG_LEVELS[entry.severity],
            "[%s/%s] %s%s",
            entry.category,
            entry.kind,
            entry.message,
            suffix,
        )
        with self._lock:
            self._history.append(entry)

    @property
    def history(self) -> list[ErrorReport]:
        with self._lock:
            return list(self._history)

    def clear(self) -> None:
        with self._lock:
            self._history.clear()
