from __future__ import annotations

import asyncio
from datetime import datetime, timezone
import json
from pathlib import Path

import httpx

from ci_onboarding.storage import ChromaEvent
from ci_onboarding.tools import register_tools
from ci_onboarding.workflow import DEFAULT_WORKFLOW

GRANT = {
    "token": "tok-abc",
    "user": {"id": 7, "name": "Ada", "username": "ada", "email": "ada@example.com"},
}


class StubTool:
    def __init__(self, fn, name):
        self.fn = fn
        self.name = name


class StubServer:
    def __init__(self) -> None:
        self._tools: dict[str, StubTool] = {}

    def tool(self, *args, **kwargs):
        provided_name = None
        if args and isinstance(args[0], str):
            provided_name = args[0]
        provided_name = kwargs.get("name", provided_name)

        def decorator(fn):
            tool_name = provided_name or fn.__name__
            tool = StubTool(fn, tool_name)
            self._tools[tool_name] = tool
            return tool

        return decorator


def _status(status: str, count: int) -> dict:
    return {
        "submission_id": "sub-1",
        "status": status,
        "repository_count": count,
        "created_at": "2025-01-01T00:00:00Z",
        "completed_at": None if status == "processing" else "2025-01-01T00:00:05Z",
    }


def test_registers_every_flow_tool(make_app) -> None:
    server = StubServer()
    register_tools(server, app=make_app())  # type: ignore[arg-type]

    assert set(server._tools) == {
        "begin_login",
        "complete_login",
        "session_status",
        "logout",
        "list_groups",
        "select_group",
        "toggle_repository",
        "select_all_repositories",
        "clear_repository_selection",
        "continue_to_workflow",
        "reset_workflow",
        "back_to_repositories",
        "validate_workflow",
        "submit_workflow",
        "submission_status",
        "submission_history",
    }


def test_protected_tools_redirect_without_session(api_stub, make_app) -> None:
    app = make_app()
    handles = register_tools(StubServer(), app=app)  # type: ignore[arg-type]

    result = asyncio.run(handles.list_groups.fn())  # type: ignore[attr-defined]

    assert result == {"access": "redirect", "redirect": "/"}
    assert api_stub.requests == []


def test_login_to_completed_submission(api_stub, make_app) -> None:
    api_stub.add("GET", "/auth/login", {"auth_url": "https://vcs.example/oauth/authorize"})
    api_stub.add("GET", "/auth/callback", GRANT)
    api_stub.add("GET", "/groups", [{"id": 1, "name": "Team"}])
    api_stub.add("GET", "/repositories", [{"id": 10, "name": "api"}, {"id": 11, "name": "web"}])
    api_stub.add(
        "POST",
        "/workflow/submit",
        {"submission_id": "sub-1", "status": "processing", "repository_count": 1},
    )
    api_stub.add(
        "GET",
        "/workflow/status/sub-1",
        _status("processing", 1),
        _status("completed", 1),
    )
    app = make_app()
    handles = register_tools(StubServer(), app=app)  # type: ignore[arg-type]

    async def scenario():
        steps = {}
        steps["initial"] = await handles.session_status.fn()
        steps["login"] = await handles.begin_login.fn()
        steps["callback"] = await handles.complete_login.fn(code="abc")
        steps["groups"] = await handles.list_groups.fn()
        steps["repositories"] = await handles.select_group.fn(group_id=1)
        steps["toggle"] = await handles.toggle_repository.fn(repository_id=10)
        steps["continue"] = await handles.continue_to_workflow.fn()
        steps["submit"] = await handles.submit_workflow.fn()
        steps["status"] = await handles.submission_status.fn(wait=True)
        await app.teardown()
        return steps

    steps = asyncio.run(scenario())

    assert steps["initial"]["authenticated"] is False
    assert steps["login"]["auth_url"] == "https://vcs.example/oauth/authorize"
    assert steps["callback"] == {"success": True, "location": "/groups", "error": None}
    assert [group["name"] for group in steps["groups"]["groups"]] == ["Team"]
    assert [repo["id"] for repo in steps["repositories"]["repositories"]] == [10, 11]
    assert steps["toggle"]["selected"] == [10]
    assert steps["continue"]["location"] == "/workflow?group_id=1&repo_ids=10"
    assert steps["submit"]["submission_id"] == "sub-1"
    assert steps["status"]["title"] == "Workflow Submitted Successfully!"
    assert steps["status"]["repository_count"] == 1
    assert steps["status"]["fetch_count"] == 2
    assert steps["status"]["finished"] is True

    submitted = json.loads(api_stub.calls("POST", "/workflow/submit")[0].content)
    assert submitted["group_id"] == 1
    assert submitted["repository_ids"] == [10]
    assert "stages" in submitted["workflow_content"]
    assert api_stub.calls("GET", "/user") == []


def test_continue_without_selection_is_refused(api_stub, make_app) -> None:
    api_stub.add("GET", "/user", GRANT["user"])
    api_stub.add("GET", "/repositories", [{"id": 10, "name": "api"}])
    app = make_app(token="tok")
    handles = register_tools(StubServer(), app=app)  # type: ignore[arg-type]

    async def scenario():
        await handles.select_group.fn(group_id=3)
        return await handles.continue_to_workflow.fn()

    result = asyncio.run(scenario())

    assert result["error"] == "Select at least one repository"
    assert result["location"] == "/repositories?group_id=3"


def test_validate_reports_blank_draft_as_skipped(api_stub, make_app) -> None:
    api_stub.add("GET", "/user", GRANT["user"])
    app = make_app(token="tok")
    app.navigator.go("/workflow", {"group_id": "1", "repo_ids": "10"})
    handles = register_tools(StubServer(), app=app)  # type: ignore[arg-type]

    result = asyncio.run(handles.validate_workflow.fn(content="  "))  # type: ignore[attr-defined]

    assert result == {"valid": False, "errors": [], "skipped": True}
    assert api_stub.calls("POST", "/workflow/validate") == []


def test_submit_failure_is_returned_inline(api_stub, make_app, sink) -> None:
    api_stub.add("GET", "/user", GRANT["user"])
    api_stub.add("POST", "/workflow/submit", httpx.Response(500))
    app = make_app(token="tok")
    app.navigator.go("/workflow", {"group_id": "1", "repo_ids": "10,11"})
    handles = register_tools(StubServer(), app=app)  # type: ignore[arg-type]

    result = asyncio.run(handles.submit_workflow.fn())  # type: ignore[attr-defined]

    assert result == {"submitted": False, "error": "HTTP 500: Internal Server Error"}
    assert app.status_handle is None
    assert sink.sources == ["submit"]


def test_logout_always_returns_to_login(api_stub, make_app) -> None:
    api_stub.add("GET", "/user", GRANT["user"])
    api_stub.add("POST", "/auth/logout", httpx.Response(500))
    app = make_app(token="tok")
    handles = register_tools(StubServer(), app=app)  # type: ignore[arg-type]

    async def scenario():
        await handles.session_status.fn()
        return await handles.logout.fn()

    result = asyncio.run(scenario())

    assert result == {"location": "/"}
    assert app.store.get() is None


class StubJournal:
    def __init__(self) -> None:
        self.events: list[ChromaEvent] = []

    def record_submission(self, *, submission_id, event_type, body, metadata=None) -> ChromaEvent:
        event = ChromaEvent(
            id=f"submission::{submission_id}:{len(self.events) + 1}",
            session_id=f"submission::{submission_id}",
            event_type=event_type,
            document=json.dumps({"submission_id": submission_id, **body}),
            metadata={"sequence": len(self.events) + 1, **(metadata or {})},
            timestamp=datetime(2025, 1, 1, tzinfo=timezone.utc),
        )
        self.events.append(event)
        return event

    def submission_events(self, submission_id: str) -> list[ChromaEvent]:
        return [event for event in self.events if event.session_id == f"submission::{submission_id}"]


def _fetches(api_stub, submission_id: str = "sub-1") -> int:
    return len(api_stub.calls("GET", f"/workflow/status/{submission_id}"))


def test_leaving_status_view_stops_polling(api_stub, make_app) -> None:
    api_stub.add("GET", "/user", GRANT["user"])
    api_stub.add("GET", "/workflow/status/sub-1", _status("processing", 1))
    api_stub.add("GET", "/repositories", [{"id": 10, "name": "api"}])
    app = make_app(token="tok")
    handles = register_tools(StubServer(), app=app)  # type: ignore[arg-type]

    async def scenario():
        await handles.submission_status.fn(submission_id="sub-1")
        handle = app.status_handle
        while _fetches(api_stub) < 3:
            await asyncio.sleep(0)
        location = await handles.select_group.fn(group_id=1)
        before = _fetches(api_stub)
        await asyncio.sleep(0.02)
        return handle, location, before

    handle, location, before = asyncio.run(scenario())

    assert location["group_id"] == 1
    assert handle.cancelled and handle.done
    assert app.status_handle is None
    assert _fetches(api_stub) == before


def test_chrome_logout_stops_polling(api_stub, make_app) -> None:
    api_stub.add("GET", "/user", GRANT["user"])
    api_stub.add("GET", "/workflow/status/sub-1", _status("processing", 1))
    api_stub.add("POST", "/auth/logout", httpx.Response(204))
    app = make_app(token="tok")
    handles = register_tools(StubServer(), app=app)  # type: ignore[arg-type]

    async def scenario():
        await handles.submission_status.fn(submission_id="sub-1")
        handle = app.status_handle
        while _fetches(api_stub) < 2:
            await asyncio.sleep(0)
        decision = app.protected()
        await decision.chrome.logout()
        before = _fetches(api_stub)
        await asyncio.sleep(0.02)
        return handle, before

    handle, before = asyncio.run(scenario())

    assert handle.cancelled
    assert app.navigator.current.path == "/"
    assert _fetches(api_stub) == before


def test_unauthorized_validation_is_not_applied(api_stub, make_app) -> None:
    api_stub.add("GET", "/user", GRANT["user"])
    api_stub.add("POST", "/workflow/validate", httpx.Response(401))
    app = make_app(token="tok")
    app.navigator.go("/workflow", {"group_id": "1", "repo_ids": "10"})
    handles = register_tools(StubServer(), app=app)  # type: ignore[arg-type]

    result = asyncio.run(handles.validate_workflow.fn(content="x: 1"))  # type: ignore[attr-defined]

    assert result == {"access": "redirect", "redirect": "/"}
    assert app.editor.validation is None
    assert app.editor.active is False
    assert app.store.get() is None


def test_unknown_template_is_reported_inline(api_stub, make_app) -> None:
    api_stub.add("GET", "/user", GRANT["user"])
    app = make_app(token="tok")
    app.navigator.go("/workflow", {"group_id": "1", "repo_ids": "10"})
    handles = register_tools(StubServer(), app=app)  # type: ignore[arg-type]

    result = asyncio.run(handles.validate_workflow.fn(template_id="rust"))  # type: ignore[attr-defined]

    assert result["skipped"] is True
    assert "rust" in result["error"]
    assert app.editor.draft.content == DEFAULT_WORKFLOW
    assert api_stub.calls("POST", "/workflow/validate") == []


def test_broken_template_file_keeps_the_editor_usable(api_stub, make_app, settings, sink) -> None:
    template_dir = Path(settings.template_paths[0])
    template_dir.mkdir(parents=True)
    (template_dir / "broken.yml").write_text("id: broken\ntitle: Broken\n", encoding="utf-8")
    api_stub.add("GET", "/user", GRANT["user"])
    api_stub.add("GET", "/repositories", [{"id": 10, "name": "api"}])
    app = make_app(token="tok")
    handles = register_tools(StubServer(), app=app)  # type: ignore[arg-type]

    async def scenario():
        await handles.select_group.fn(group_id=1)
        await handles.toggle_repository.fn(repository_id=10)
        return await handles.continue_to_workflow.fn()

    result = asyncio.run(scenario())

    assert result["content"] == DEFAULT_WORKFLOW
    assert "broken.yml" in result["template_error"]
    assert app.editor.active
    assert sink.sources == ["templates"]


def test_selection_edits_require_a_group(api_stub, make_app) -> None:
    api_stub.add("GET", "/user", GRANT["user"])
    app = make_app(token="tok")
    handles = register_tools(StubServer(), app=app)  # type: ignore[arg-type]

    async def scenario():
        return [
            await handles.toggle_repository.fn(repository_id=10),
            await handles.select_all_repositories.fn(),
            await handles.clear_repository_selection.fn(),
        ]

    results = asyncio.run(scenario())

    assert all(result == {"error": "Choose a group first", "location": "/groups"} for result in results)
    assert app.repositories.selected == frozenset()


def test_reset_and_back_keep_the_selection(api_stub, make_app) -> None:
    api_stub.add("GET", "/user", GRANT["user"])
    api_stub.add("GET", "/repositories", [{"id": 10, "name": "api"}, {"id": 11, "name": "web"}])
    app = make_app(token="tok")
    handles = register_tools(StubServer(), app=app)  # type: ignore[arg-type]

    async def scenario():
        await handles.select_group.fn(group_id=1)
        await handles.select_all_repositories.fn()
        await handles.continue_to_workflow.fn()
        app.editor.edit("stages: [lint]")
        reset = await handles.reset_workflow.fn()
        back = await handles.back_to_repositories.fn()
        return reset, back

    reset, back = asyncio.run(scenario())

    assert reset == {"content": DEFAULT_WORKFLOW, "template_error": None}
    assert back["selected"] == [10, 11]
    assert back["location"] == "/repositories?group_id=1&repo_ids=10%2C11"
    assert app.editor.active is False


def test_submission_history_reads_the_journal(api_stub, make_app) -> None:
    api_stub.add("GET", "/user", GRANT["user"])
    api_stub.add(
        "POST",
        "/workflow/submit",
        {"submission_id": "sub-1", "status": "processing", "repository_count": 1},
    )
    api_stub.add("GET", "/workflow/status/sub-1", _status("failed", 1))
    journal = StubJournal()
    app = make_app(token="tok", journal=journal)
    app.navigator.go("/workflow", {"group_id": "1", "repo_ids": "10"})
    handles = register_tools(StubServer(), app=app)  # type: ignore[arg-type]

    async def scenario():
        await handles.submit_workflow.fn()
        await handles.submission_status.fn(wait=True)
        return await handles.submission_history.fn(submission_id="sub-1")

    history = asyncio.run(scenario())

    assert history["journal_available"] is True
    assert [event["event_type"] for event in history["events"]] == [
        "submission_dispatched",
        "submission_finished",
    ]
    assert history["events"][0]["body"]["repository_ids"] == [10]
    assert history["events"][1]["body"]["status"] == "failed"


def test_submission_history_without_journal(api_stub, make_app) -> None:
    api_stub.add("GET", "/user", GRANT["user"])
    handles = register_tools(StubServer(), app=make_app(token="tok"))  # type: ignore[arg-type]

    history = asyncio.run(handles.submission_history.fn(submission_id="sub-1"))  # type: ignore[attr-defined]

    assert history == {"submission_id": "sub-1", "journal_available": False, "events": []}
