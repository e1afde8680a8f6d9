from __future__ import annotations

import asyncio

import httpx

from ci_onboarding.api import SubmissionStatus
from ci_onboarding.navigation import GROUPS, Navigator
from ci_onboarding.workflow import PollPhase, StatusPoller


def _record(status: str, count: int = 2) -> dict:
    return {
        "submission_id": "sub-1",
        "status": status,
        "repository_count": count,
        "created_at": "2025-01-01T00:00:00Z",
        "completed_at": None if status == "processing" else "2025-01-01T00:01:00Z",
    }


class SequentialScript:
    """Serves scripted status responses and records fetch overlap."""

    def __init__(self, responses: list[dict]) -> None:
        self._responses = list(responses)
        self.in_flight = 0
        self.max_in_flight = 0
        self.fetches = 0

    async def __call__(self, request: httpx.Request) -> httpx.Response:
        self.fetches += 1
        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)
        await asyncio.sleep(0)
        self.in_flight -= 1
        payload = self._responses.pop(0) if len(self._responses) > 1 else self._responses[0]
        return httpx.Response(200, json={"data": payload})


def test_polls_until_terminal_without_overlap(api_stub, make_api) -> None:
    script = SequentialScript([_record("processing"), _record("processing"), _record("completed", 1)])
    api_stub.add("GET", "/workflow/status/sub-1", script)
    delays: list[float] = []

    async def fake_sleep(delay: float) -> None:
        delays.append(delay)

    poller = StatusPoller(make_api(), Navigator(), interval=2.0, sleep=fake_sleep)

    async def scenario():
        handle = poller.start("sub-1")
        view = await handle.wait()
        await asyncio.sleep(0)
        return view

    view = asyncio.run(scenario())

    assert script.fetches == 3
    assert script.max_in_flight == 1
    assert delays == [2.0, 2.0]
    assert view.phase is PollPhase.TERMINAL
    assert view.record.status is SubmissionStatus.COMPLETED
    assert view.record.repository_count == 1
    assert view.title == "Workflow Submitted Successfully!"


def test_missing_id_redirects_without_fetch(api_stub, make_api) -> None:
    navigator = Navigator()
    poller = StatusPoller(make_api(), navigator)

    async def scenario():
        handle = poller.start(None)
        return await handle.wait()

    view = asyncio.run(scenario())

    assert view.phase is PollPhase.REDIRECTED
    assert navigator.current.path == GROUPS
    assert api_stub.requests == []


def test_unknown_submission_is_not_found(api_stub, make_api) -> None:
    api_stub.add("GET", "/workflow/status/ghost", httpx.Response(404))
    poller = StatusPoller(make_api(), Navigator(), interval=0)

    async def scenario():
        return await poller.start("ghost").wait()

    view = asyncio.run(scenario())

    assert view.phase is PollPhase.NOT_FOUND
    assert view.title == "Submission not found."
    assert view.fetch_count == 1


def test_transport_error_stops_polling(api_stub, make_api) -> None:
    api_stub.add("GET", "/workflow/status/sub-1", _record("processing"), httpx.Response(502))
    poller = StatusPoller(make_api(), Navigator(), interval=0)

    async def scenario():
        return await poller.start("sub-1").wait()

    view = asyncio.run(scenario())

    assert view.phase is PollPhase.ERROR
    assert view.error == "HTTP 502: Bad Gateway"
    assert view.record is not None
    assert len(api_stub.requests) == 2


def test_failed_and_partial_success_are_terminal(api_stub, make_api) -> None:
    api_stub.add("GET", "/workflow/status/sub-1", _record("partial_success"))
    poller = StatusPoller(make_api(), Navigator(), interval=0)

    async def scenario():
        return await poller.start("sub-1").wait()

    view = asyncio.run(scenario())

    assert view.phase is PollPhase.TERMINAL
    assert view.title == "Partial Success"
    assert len(api_stub.requests) == 1


def test_cancel_stops_pending_fetches(api_stub, make_api) -> None:
    api_stub.add("GET", "/workflow/status/sub-1", _record("processing"))
    poller = StatusPoller(make_api(), Navigator(), interval=10.0)

    async def scenario():
        handle = poller.start("sub-1")
        while handle.view.fetch_count < 1 or handle.view.record is None:
            await asyncio.sleep(0)
        handle.cancel()
        view = await handle.wait()
        return handle, view

    handle, view = asyncio.run(scenario())

    assert handle.cancelled
    assert handle.done
    assert view.phase is PollPhase.PROCESSING
    assert len(api_stub.requests) == 1


def test_cancel_discards_in_flight_result(api_stub, make_api) -> None:
    release = None

    async def slow(request: httpx.Request) -> httpx.Response:
        await release.wait()
        return httpx.Response(200, json={"data": _record("completed")})

    api_stub.add("GET", "/workflow/status/sub-1", slow)
    poller = StatusPoller(make_api(), Navigator(), interval=0)

    async def scenario():
        nonlocal release
        release = asyncio.Event()
        handle = poller.start("sub-1")
        await asyncio.sleep(0.01)
        handle.cancel()
        release.set()
        return await handle.wait()

    view = asyncio.run(scenario())

    assert view.record is None
    assert view.phase is PollPhase.LOADING


def test_max_attempts_expires_processing_submission(api_stub, make_api) -> None:
    api_stub.add("GET", "/workflow/status/sub-1", _record("processing"))
    poller = StatusPoller(make_api(), Navigator(), interval=0, max_attempts=3)

    async def scenario():
        return await poller.start("sub-1").wait()

    view = asyncio.run(scenario())

    assert view.phase is PollPhase.EXPIRED
    assert view.fetch_count == 3
    assert len(api_stub.requests) == 3


def test_on_terminal_receives_final_record(api_stub, make_api) -> None:
    api_stub.add("GET", "/workflow/status/sub-1", _record("failed"))
    finished: list[str] = []
    poller = StatusPoller(
        make_api(), Navigator(), interval=0, on_terminal=lambda record: finished.append(record.status.value)
    )

    async def scenario():
        return await poller.start("sub-1").wait()

    view = asyncio.run(scenario())

    assert finished == ["failed"]
    assert view.title == "Workflow Submission Failed"
