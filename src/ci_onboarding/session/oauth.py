"""Hand off to the external login provider and complete the return trip."""

from __future__ import annotations

import hashlib
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Mapping, Protocol

from ..api import ApiClient
from ..errors import ApiError, ErrorSink, LoggingErrorSink
from ..navigation import GROUPS, LOGIN, Location, Navigator
from .manager import SessionManager
from .store import SessionStore

logger = logging.getLogger(__name__)

NO_CODE_MESSAGE = "No authorization code received"
AUTH_FAILED_MESSAGE = "Authentication failed"
CODE_REUSED_MESSAGE = "Authorization code already used"


class OAuthCallbackError(RuntimeError):
    """Raised internally to report a rejected callback to the error sink."""


def _digest(code: str) -> str:
    return hashlib.sha256(code.encode("utf-8")).hexdigest()


class CallbackLedger(Protocol):
    """Remembers which authorization codes have already been redeemed."""

    def seen(self, code: str) -> bool:
        ...

    def record(self, code: str) -> None:
        ...


class MemoryCallbackLedger:
    def __init__(self) -> None:
        self._digests: set[str] = set()

    def seen(self, code: str) -> bool:
        return _digest(code) in self._digests

    def record(self, code: str) -> None:
        self._digests.add(_digest(code))


class FileCallbackLedger:
    """Ledger persisted as one digest per line so reloads cannot replay a code.

    Only the most recent ``max_entries`` digests are kept; an authorization
    code expires long before that many logins have happened.
    """

    def __init__(self, path: Path, *, max_entries: int = 500) -> None:
        if max_entries < 1:
            raise ValueError("max_entries must be >= 1")
        self._path = Path(path)
        self._max_entries = max_entries

    def _load(self) -> list[str]:
        try:
            lines = self._path.read_text(encoding="utf-8").splitlines()
        except FileNotFoundError:
            return []
        return [line.strip() for line in lines if line.strip()]

    def seen(self, code: str) -> bool:
        return _digest(code) in self._load()

    def record(self, code: str) -> None:
        digests = self._load()
        digests.append(_digest(code))
        self._path.parent.mkdir(parents=True, exist_ok=True)
        self._path.write_text(
            "".join(f"{digest}\n" for digest in digests[-self._max_entries:]),
            encoding="utf-8",
        )


@dataclass(slots=True, frozen=True)
class CallbackOutcome:
    success: bool
    location: Location
    error: str | None = None


class OAuthHandoff:
    """Start the external login redirect and redeem the returned code once."""

    def __init__(
        self,
        api: ApiClient,
        store: SessionStore,
        manager: SessionManager,
        navigator: Navigator,
        *,
        ledger: CallbackLedger | None = None,
        error_sink: ErrorSink | None = None,
    ) -> None:
        self._api = api
        self._store = store
        self._manager = manager
        self._navigator = navigator
        self._ledger = ledger or MemoryCallbackLedger()
        self._error_sink = error_sink or LoggingErrorSink()
        self.login_error: str | None = None

    async def begin_login(self) -> str | None:
        """Ask the API for the provider URL and redirect to it."""

        self.login_error = None
        try:
            auth_url = await self._api.begin_login()
        except ApiError as exc:
            self._error_sink.report("login", exc)
            self.login_error = str(exc)
            return None
        self._navigator.redirect_external(auth_url)
        return auth_url

    def _fail(self, message: str) -> CallbackOutcome:
        location = self._navigator.go(LOGIN, {"error": message})
        return CallbackOutcome(success=False, location=location, error=message)

    async def complete(self, query: Mapping[str, str]) -> CallbackOutcome:
        """Handle the provider's return trip to the callback route."""

        error = query.get("error")
        if error:
            self._error_sink.report("oauth_callback", OAuthCallbackError(error))
            return self._fail(error)

        code = query.get("code")
        if not code:
            return self._fail(NO_CODE_MESSAGE)

        if self._ledger.seen(code):
            self._error_sink.report("oauth_callback", OAuthCallbackError(CODE_REUSED_MESSAGE))
            return self._fail(CODE_REUSED_MESSAGE)
        self._ledger.record(code)

        try:
            grant = await self._api.complete_login(code)
        except ApiError as exc:
            self._error_sink.report("oauth_callback", exc)
            return self._fail(AUTH_FAILED_MESSAGE)

        self._store.set(grant.token)
        self._manager.establish(grant.user)
        logger.info("Login completed", extra={"username": grant.user.username})
        return CallbackOutcome(success=True, location=self._navigator.go(GROUPS))


__all__ = [
    "AUTH_FAILED_MESSAGE",
    "CODE_REUSED_MESSAGE",
    "CallbackLedger",
    "CallbackOutcome",
    "FileCallbackLedger",
    "MemoryCallbackLedger",
    "NO_CODE_MESSAGE",
    "OAuthCallbackError",
    "OAuthHandoff",
]
