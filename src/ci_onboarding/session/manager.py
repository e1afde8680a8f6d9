"""Session lifecycle: derive the current identity and own logout."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Callable

from ..api import ApiClient, User
from ..errors import ApiError, ErrorSink, LoggingErrorSink
from ..navigation import LOGIN, Navigator
from .store import SessionStore

logger = logging.getLogger(__name__)


class LoadState(str, Enum):
    LOADING = "loading"
    RESOLVED = "resolved"


@dataclass(slots=True, frozen=True)
class Session:
    """Snapshot of the session as seen by consumers."""

    identity: User | None
    credential: str | None
    load_state: LoadState

    @property
    def authenticated(self) -> bool:
        return self.load_state is LoadState.RESOLVED and self.identity is not None


SessionListener = Callable[[Session], None]


class SessionManager:
    """Owns the identity derived from the stored credential.

    ``initialize`` issues at most one identity lookup per manager; later calls
    await the same lookup. Any 401 seen by the API client lands in
    :meth:`invalidate`, which tears the session down and routes to the login
    entry point.
    """

    def __init__(
        self,
        store: SessionStore,
        api: ApiClient,
        navigator: Navigator,
        *,
        error_sink: ErrorSink | None = None,
    ) -> None:
        self._store = store
        self._api = api
        self._navigator = navigator
        self._error_sink = error_sink or LoggingErrorSink()
        self._identity: User | None = None
        self._load_state = LoadState.LOADING
        self._init_task: asyncio.Task[None] | None = None
        self._listeners: list[SessionListener] = []
        api.set_unauthorized_handler(self.invalidate)

    @property
    def session(self) -> Session:
        credential = self._store.get()
        identity = self._identity if credential else None
        return Session(identity=identity, credential=credential, load_state=self._load_state)

    def subscribe(self, listener: SessionListener) -> Callable[[], None]:
        """Register a listener notified after every session change."""

        self._listeners.append(listener)

        def _unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return _unsubscribe

    def _notify(self) -> None:
        snapshot = self.session
        for listener in list(self._listeners):
            listener(snapshot)

    async def initialize(self) -> Session:
        if self._init_task is None and self._load_state is LoadState.RESOLVED:
            # already settled by a completed login or a logout
            return self.session
        if self._init_task is None:
            self._init_task = asyncio.get_running_loop().create_task(self._resolve())
        await self._init_task
        return self.session

    async def _resolve(self) -> None:
        token = self._store.get()
        if not token:
            self._finish(None)
            return

        try:
            user = await self._api.current_user()
        except ApiError as exc:
            self._store.clear()
            self._error_sink.report("identity_lookup", exc)
            self._finish(None)
            return
        self._finish(user)

    def _finish(self, identity: User | None) -> None:
        self._identity = identity
        self._load_state = LoadState.RESOLVED
        logger.debug(
            "Session resolved",
            extra={"authenticated": identity is not None},
        )
        self._notify()

    def establish(self, identity: User) -> None:
        """Adopt an identity obtained from a completed login."""

        if self._store.get() is None:
            raise RuntimeError("Cannot establish a session without a stored credential")
        self._finish(identity)

    def invalidate(self) -> None:
        """Drop the credential and identity and route to the login entry point."""

        self._store.clear()
        self._identity = None
        if self._navigator.current.path != LOGIN:
            self._navigator.go(LOGIN)
        self._notify()

    async def logout(self) -> None:
        """Log out remotely if possible; the local session is always torn down."""

        try:
            await self._api.logout()
        except Exception as exc:  # noqa: BLE001 - logout never fails for the user
            self._error_sink.report("logout", exc)
        finally:
            self._store.clear()
            self._identity = None
            self._load_state = LoadState.RESOLVED
            self._navigator.go(LOGIN)
            logger.info("Logged out")
            self._notify()

    def teardown(self) -> None:
        if self._init_task is not None and not self._init_task.done():
            self._init_task.cancel()
        self._listeners.clear()
        self._api.set_unauthorized_handler(None)


__all__ = ["LoadState", "Session", "SessionListener", "SessionManager"]
