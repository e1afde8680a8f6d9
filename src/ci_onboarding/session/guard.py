"""Admit or redirect navigation into protected areas."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Awaitable, Callable

from ..api import User
from ..navigation import LOGIN, Navigator
from .manager import LoadState, Session, SessionManager


class Access(str, Enum):
    SUSPEND = "suspend"
    REDIRECT = "redirect"
    ADMIT = "admit"


@dataclass(slots=True, frozen=True)
class AuthenticatedChrome:
    """What an admitted view wraps its content with."""

    identity: User
    logout: Callable[[], Awaitable[None]]


@dataclass(slots=True, frozen=True)
class GuardDecision:
    access: Access
    redirect_to: str | None = None
    chrome: AuthenticatedChrome | None = None


def evaluate_access(
    session: Session, logout: Callable[[], Awaitable[None]]
) -> GuardDecision:
    """Pure mapping from session state to an access decision."""

    if session.load_state is LoadState.LOADING:
        return GuardDecision(Access.SUSPEND)
    if session.identity is None:
        return GuardDecision(Access.REDIRECT, redirect_to=LOGIN)
    return GuardDecision(
        Access.ADMIT, chrome=AuthenticatedChrome(identity=session.identity, logout=logout)
    )


class NavigationGuard:
    """Re-evaluate access on every entry and every session change."""

    def __init__(self, manager: SessionManager, navigator: Navigator) -> None:
        self._manager = manager
        self._navigator = navigator

    def check(self) -> GuardDecision:
        decision = evaluate_access(self._manager.session, self._manager.logout)
        if decision.access is Access.REDIRECT and self._navigator.current.path != LOGIN:
            self._navigator.go(LOGIN)
        return decision

    def watch(self, on_decision: Callable[[GuardDecision], None]) -> Callable[[], None]:
        """Call ``on_decision`` with a fresh decision after each session change."""

        return self._manager.subscribe(lambda _session: on_decision(self.check()))


__all__ = ["Access", "AuthenticatedChrome", "GuardDecision", "NavigationGuard", "evaluate_access"]
