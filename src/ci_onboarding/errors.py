"""Error taxonomy and injectable error reporting sinks."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any, Protocol

if TYPE_CHECKING:
    from .storage import ChromaStore


class ApiError(RuntimeError):
    """Base class for failures talking to the onboarding API."""


class UnauthorizedError(ApiError):
    """Raised when the API answers 401; the session is invalidated globally."""

    def __init__(self, message: str = "Unauthorized") -> None:
        super().__init__(message)


class TransportError(ApiError):
    """Raised for non-2xx responses, malformed envelopes and network failures."""

    def __init__(self, message: str, *, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class NotFoundError(TransportError):
    """Raised when the API reports the requested resource as unknown."""


class ErrorSink(Protocol):
    """Receives errors that are handled locally but worth reporting."""

    def report(self, source: str, error: BaseException, **context: Any) -> None:
        ...


class LoggingErrorSink:
    """Report errors to the standard logging tree."""

    def __init__(self, logger: logging.Logger | None = None) -> None:
        self._logger = logger or logging.getLogger("ci_onboarding.errors")

    def report(self, source: str, error: BaseException, **context: Any) -> None:
        self._logger.warning(
            "%s error: %s",
            source,
            error,
            extra={"source": source, "error_type": type(error).__name__, **context},
        )


class JournalErrorSink(LoggingErrorSink):
    """Log errors and record them in the Chroma event journal."""

    def __init__(self, store: "ChromaStore", logger: logging.Logger | None = None) -> None:
        super().__init__(logger)
        self._store = store

    def report(self, source: str, error: BaseException, **context: Any) -> None:
        super().report(source, error, **context)
        self._store.record_event(
            session_id=f"errors::{source}",
            event_type="error",
            body={"source": source, "message": str(error), **context},
            metadata={**context, "source": source, "error_type": type(error).__name__},
        )


__all__ = [
    "ApiError",
    "ErrorSink",
    "JournalErrorSink",
    "LoggingErrorSink",
    "NotFoundError",
    "TransportError",
    "UnauthorizedError",
]
