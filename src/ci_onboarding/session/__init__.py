"""Session store, lifecycle, navigation guard and login handoff."""

from .guard import Access, AuthenticatedChrome, GuardDecision, NavigationGuard, evaluate_access
from .manager import LoadState, Session, SessionManager
from .oauth import (
    CallbackOutcome,
    FileCallbackLedger,
    MemoryCallbackLedger,
    OAuthHandoff,
)
from .store import FileSessionStore, MemorySessionStore, SessionStore

__all__ = [
    "Access",
    "AuthenticatedChrome",
    "CallbackOutcome",
    "FileCallbackLedger",
    "FileSessionStore",
    "GuardDecision",
    "LoadState",
    "MemoryCallbackLedger",
    "MemorySessionStore",
    "NavigationGuard",
    "OAuthHandoff",
    "Session",
    "SessionManager",
    "SessionStore",
    "evaluate_access",
]
