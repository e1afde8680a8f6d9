"""Status polling state machine for a dispatched submission."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Awaitable, Callable

from ..api import ApiClient, SubmissionRecord, SubmissionStatus
from ..errors import ApiError, NotFoundError
from ..navigation import GROUPS, Navigator

logger = logging.getLogger(__name__)

STATUS_TITLES = {
    SubmissionStatus.PROCESSING: "Processing Workflow...",
    SubmissionStatus.COMPLETED: "Workflow Submitted Successfully!",
    SubmissionStatus.FAILED: "Workflow Submission Failed",
    SubmissionStatus.PARTIAL_SUCCESS: "Partial Success",
}


class PollPhase(str, Enum):
    LOADING = "loading"
    PROCESSING = "processing"
    TERMINAL = "terminal"
    NOT_FOUND = "not_found"
    ERROR = "error"
    EXPIRED = "expired"
    REDIRECTED = "redirected"


FINISHED_PHASES = frozenset(
    {PollPhase.TERMINAL, PollPhase.NOT_FOUND, PollPhase.ERROR, PollPhase.EXPIRED, PollPhase.REDIRECTED}
)


@dataclass(slots=True)
class StatusView:
    """Render-agnostic state of the status view."""

    submission_id: str | None
    phase: PollPhase = PollPhase.LOADING
    record: SubmissionRecord | None = None
    error: str | None = None
    fetch_count: int = 0

    @property
    def finished(self) -> bool:
        return self.phase in FINISHED_PHASES

    @property
    def title(self) -> str:
        if self.phase is PollPhase.NOT_FOUND:
            return "Submission not found."
        if self.phase is PollPhase.ERROR:
            return f"Error: {self.error}"
        if self.record is None:
            return "Loading submission status..."
        return STATUS_TITLES[self.record.status]

    def as_dict(self) -> dict[str, object]:
        record = self.record
        return {
            "submission_id": self.submission_id,
            "phase": self.phase.value,
            "title": self.title,
            "status": record.status.value if record else None,
            "repository_count": record.repository_count if record else None,
            "created_at": record.created_at.isoformat() if record else None,
            "completed_at": record.completed_at.isoformat() if record and record.completed_at else None,
            "error_message": record.error_message if record else None,
            "error": self.error,
            "fetch_count": self.fetch_count,
        }


class PollHandle:
    """Handle returned by :meth:`StatusPoller.start`; cancel it when leaving the view."""

    def __init__(self, view: StatusView) -> None:
        self.view = view
        self._task: asyncio.Task[None] | None = None
        self._cancelled = False

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    @property
    def done(self) -> bool:
        return self._task is None or self._task.done()

    def cancel(self) -> None:
        self._cancelled = True
        if self._task is not None and not self._task.done():
            self._task.cancel()

    async def wait(self) -> StatusView:
        if self._task is not None:
            try:
                await self._task
            except asyncio.CancelledError:
                if not self._cancelled:
                    raise
        return self.view


class StatusPoller:
    """Fetch a submission's status until it reaches a terminal state.

    Fetches are strictly sequential: the next one is scheduled ``interval``
    seconds after the previous one resolved with ``processing``.
    """

    def __init__(
        self,
        api: ApiClient,
        navigator: Navigator,
        *,
        interval: float = 2.0,
        max_attempts: int | None = None,
        on_terminal: Callable[[SubmissionRecord], None] | None = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self._api = api
        self._navigator = navigator
        self._interval = interval
        self._max_attempts = max_attempts
        self._on_terminal = on_terminal
        self._sleep = sleep

    def start(self, submission_id: str | None) -> PollHandle:
        handle = PollHandle(StatusView(submission_id))
        if not submission_id:
            handle.view.phase = PollPhase.REDIRECTED
            self._navigator.go(GROUPS)
            return handle
        handle._task = asyncio.get_running_loop().create_task(self._run(handle))
        return handle

    async def _run(self, handle: PollHandle) -> None:
        view = handle.view
        assert view.submission_id is not None
        while True:
            view.fetch_count += 1
            try:
                record = await self._api.submission_status(view.submission_id)
            except NotFoundError:
                if not handle.cancelled:
                    view.phase = PollPhase.NOT_FOUND
                return
            except ApiError as exc:
                if not handle.cancelled:
                    view.phase = PollPhase.ERROR
                    view.error = str(exc) or "Failed to fetch status"
                return

            if handle.cancelled:
                return
            view.record = record
            if record.status.is_terminal:
                view.phase = PollPhase.TERMINAL
                logger.info(
                    "Submission reached terminal state",
                    extra={"submission_id": record.submission_id, "status": record.status.value},
                )
                if self._on_terminal is not None:
                    self._on_terminal(record)
                return

            view.phase = PollPhase.PROCESSING
            if self._max_attempts is not None and view.fetch_count >= self._max_attempts:
                view.phase = PollPhase.EXPIRED
                logger.warning(
                    "Stopped polling a submission that is still processing",
                    extra={"submission_id": view.submission_id, "attempts": view.fetch_count},
                )
                return
            await self._sleep(self._interval)
            if handle.cancelled:
                return


__all__ = ["FINISHED_PHASES", "PollHandle", "PollPhase", "STATUS_TITLES", "StatusPoller", "StatusView"]
