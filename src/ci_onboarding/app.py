"""Composition root wiring the session, selection and workflow layers."""

from __future__ import annotations

import logging
from typing import Any, Awaitable, Callable

import httpx

from .api import ApiClient, SubmissionReceipt, SubmissionRecord
from .config import OnboardingSettings, get_settings
from .errors import ErrorSink, JournalErrorSink, LoggingErrorSink
from .navigation import WORKFLOW, Location, Navigator, status_path
from .selection import GroupListing, RepositorySelection, SelectionContext
from .session import (
    FileCallbackLedger,
    FileSessionStore,
    GuardDecision,
    NavigationGuard,
    OAuthHandoff,
    Session,
    SessionManager,
    SessionStore,
)
from .session.oauth import CallbackLedger
from .storage import ChromaEvent, ChromaStore
from .workflow import PollHandle, StatusPoller, TemplateLoader, WorkflowEditor

logger = logging.getLogger(__name__)


class OnboardingApp:
    """Holds one user's session context and the step controllers built on it.

    The session context is created here and handed to every consumer rather
    than living in a module-level singleton. Call :meth:`init` once on start
    and :meth:`teardown` when done.
    """

    def __init__(
        self,
        settings: OnboardingSettings | None = None,
        *,
        store: SessionStore | None = None,
        http_client: httpx.AsyncClient | None = None,
        ledger: CallbackLedger | None = None,
        journal: ChromaStore | None = None,
        error_sink: ErrorSink | None = None,
        sleep: Callable[[float], Awaitable[None]] | None = None,
    ) -> None:
        self.settings = settings or get_settings()
        self.store: SessionStore = store or FileSessionStore(self.settings.token_path)
        self.navigator = Navigator()
        self.api = ApiClient(self.settings.api_base_url, self.store.get, http_client=http_client)
        self.journal = journal
        if error_sink is None:
            error_sink = JournalErrorSink(journal) if journal is not None else LoggingErrorSink()
        self.error_sink = error_sink

        self.session = SessionManager(
            self.store, self.api, self.navigator, error_sink=self.error_sink
        )
        self.guard = NavigationGuard(self.session, self.navigator)
        self.oauth = OAuthHandoff(
            self.api,
            self.store,
            self.session,
            self.navigator,
            ledger=ledger or FileCallbackLedger(self.settings.callback_ledger_path),
            error_sink=self.error_sink,
        )
        self.groups = GroupListing(self.api, self.navigator)
        self.repositories = RepositorySelection(self.api, self.navigator)
        self.templates = TemplateLoader(self.settings.template_paths)
        self.editor = WorkflowEditor(
            self.api,
            self.navigator,
            templates=self.templates,
            error_sink=self.error_sink,
            on_submitted=self._journal_submission,
        )
        poller_kwargs: dict[str, Any] = {}
        if sleep is not None:
            poller_kwargs["sleep"] = sleep
        self.poller = StatusPoller(
            self.api,
            self.navigator,
            interval=self.settings.poll_interval,
            max_attempts=self.settings.poll_max_attempts,
            on_terminal=self._journal_outcome,
            **poller_kwargs,
        )
        self.status_handle: PollHandle | None = None
        self._detach = [
            self.navigator.subscribe(self._on_navigate),
            self.session.subscribe(self._on_session),
        ]

    async def init(self) -> Session:
        return await self.session.initialize()

    def protected(self) -> GuardDecision:
        """Evaluate the navigation guard for entry into a protected step."""

        return self.guard.check()

    def watch_status(self, submission_id: str | None) -> PollHandle:
        """Open the status view for ``submission_id``, closing any previous one."""

        self.leave_status()
        self.status_handle = self.poller.start(submission_id)
        return self.status_handle

    def submission_history(self, submission_id: str) -> list[ChromaEvent]:
        """Journaled events for a submission, oldest first; empty without a journal."""

        if self.journal is None:
            return []
        return self.journal.submission_events(submission_id)

    def leave_status(self) -> None:
        if self.status_handle is not None:
            self.status_handle.cancel()
            self.status_handle = None

    def _on_navigate(self, location: Location) -> None:
        handle = self.status_handle
        if handle is not None:
            submission_id = handle.view.submission_id
            if submission_id is None or location.path != status_path(submission_id):
                self.leave_status()
        if self.editor.active and location.path != WORKFLOW:
            self.editor.leave()

    def _on_session(self, session: Session) -> None:
        # losing the identity ends every protected view, wherever the user is
        if session.identity is None:
            self.leave_status()
            self.editor.leave()

    async def teardown(self) -> None:
        self.leave_status()
        self.editor.leave()
        for detach in self._detach:
            detach()
        self.session.teardown()
        await self.api.aclose()

    def _journal(self, submission_id: str, event_type: str, body: dict[str, Any], **metadata: Any) -> None:
        if self.journal is None:
            return
        try:
            self.journal.record_submission(
                submission_id=submission_id, event_type=event_type, body=body, metadata=metadata
            )
        except Exception as exc:  # noqa: BLE001 - journal writes are best effort
            logger.warning(
                "Failed to journal submission event",
                extra={"submission_id": submission_id, "event_type": event_type, "error": str(exc)},
            )

    def _journal_submission(self, receipt: SubmissionReceipt, context: SelectionContext) -> None:
        self._journal(
            receipt.submission_id,
            "submission_dispatched",
            {
                "group_id": context.group_id,
                "repository_ids": sorted(context.repository_ids),
                "repository_count": receipt.repository_count,
            },
            group_id=context.group_id,
            status=receipt.status.value,
        )

    def _journal_outcome(self, record: SubmissionRecord) -> None:
        self._journal(
            record.submission_id,
            "submission_finished",
            record.model_dump(mode="json"),
            status=record.status.value,
            repository_count=record.repository_count,
        )


__all__ = ["OnboardingApp"]
