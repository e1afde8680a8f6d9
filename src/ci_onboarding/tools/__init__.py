"""Tool registration for the onboarding MCP server."""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from typing import Any

from fastmcp import Context, FastMCP

from ..app import OnboardingApp
from ..navigation import GROUPS, WORKFLOW, status_path
from ..session import Access
from ..storage import ChromaEvent
from ..workflow import StatusView

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class ToolHandles:
    begin_login: Any
    complete_login: Any
    session_status: Any
    logout: Any
    list_groups: Any
    select_group: Any
    toggle_repository: Any
    select_all_repositories: Any
    clear_repository_selection: Any
    continue_to_workflow: Any
    reset_workflow: Any
    back_to_repositories: Any
    validate_workflow: Any
    submit_workflow: Any
    submission_status: Any
    submission_history: Any


def _selection_payload(app: OnboardingApp) -> dict[str, Any]:
    step = app.repositories
    return {
        "group_id": step.group_id,
        "repositories": [
            {
                "id": repo.id,
                "name": repo.name,
                "default_branch": repo.default_branch,
                "has_gitlab_ci": repo.has_gitlab_ci,
                "selected": repo.id in step.selected,
            }
            for repo in step.repositories
        ],
        "selected": sorted(step.selected),
        "can_continue": step.can_continue,
        "error": step.error,
    }


def _status_payload(view: StatusView) -> dict[str, Any]:
    payload = view.as_dict()
    payload["finished"] = view.finished
    return payload


def _event_payload(event: ChromaEvent) -> dict[str, Any]:
    try:
        body: Any = json.loads(event.document)
    except ValueError:
        body = event.document
    return {
        "id": event.id,
        "event_type": event.event_type,
        "timestamp": event.timestamp.isoformat(),
        "sequence": event.metadata.get("sequence"),
        "body": body,
    }


def register_tools(server: FastMCP, *, app: OnboardingApp) -> ToolHandles:
    """Register the onboarding flow's MCP tools on the server."""

    async def _gate() -> dict[str, Any] | None:
        await app.init()
        decision = app.protected()
        if decision.access is Access.ADMIT:
            return None
        return {"access": decision.access.value, "redirect": app.navigator.current.url}

    async def _begin_login(context: Context | None = None) -> dict[str, Any]:
        """Request the provider authorization URL."""

        auth_url = await app.oauth.begin_login()
        _emit_log(context, "info", "Login requested", extra={"ok": auth_url is not None})
        return {"auth_url": auth_url, "error": app.oauth.login_error}

    async def _complete_login(
        code: str | None = None,
        error: str | None = None,
        context: Context | None = None,
    ) -> dict[str, Any]:
        """Complete the provider return trip with its ``code`` or ``error``."""

        query = {key: value for key, value in {"code": code, "error": error}.items() if value}
        outcome = await app.oauth.complete(query)
        _emit_log(context, "info", "Login callback handled", extra={"success": outcome.success})
        return {"success": outcome.success, "location": outcome.location.url, "error": outcome.error}

    async def _session_status(context: Context | None = None) -> dict[str, Any]:
        """Resolve the session and report the current identity."""

        session = await app.init()
        identity = session.identity
        return {
            "load_state": session.load_state.value,
            "authenticated": session.authenticated,
            "user": identity.model_dump() if identity else None,
            "location": app.navigator.current.url,
        }

    async def _logout(context: Context | None = None) -> dict[str, Any]:
        """Log out; the local session is always cleared."""

        await app.session.logout()
        _emit_log(context, "info", "Logged out")
        return {"location": app.navigator.current.url}

    async def _list_groups(context: Context | None = None) -> dict[str, Any]:
        """List the groups the user administers."""

        if (redirect := await _gate()) is not None:
            return redirect
        groups = await app.groups.load()
        _emit_log(context, "debug", "Listed groups", extra={"count": len(groups)})
        return {
            "groups": [group.model_dump() for group in groups],
            "error": app.groups.error,
        }

    async def _select_group(group_id: int, context: Context | None = None) -> dict[str, Any]:
        """Choose a group and load its repositories."""

        if (redirect := await _gate()) is not None:
            return redirect
        location = app.groups.choose(group_id)
        await app.repositories.enter(location.params)
        return _selection_payload(app)

    def _require_group() -> dict[str, Any] | None:
        if app.repositories.group_id is None:
            location = app.navigator.go(GROUPS)
            return {"error": "Choose a group first", "location": location.url}
        return None

    async def _toggle_repository(repository_id: int, context: Context | None = None) -> dict[str, Any]:
        """Add a repository to the selection, or remove it if already selected."""

        if (redirect := await _gate()) is not None:
            return redirect
        if (problem := _require_group()) is not None:
            return problem
        app.repositories.toggle(repository_id)
        return _selection_payload(app)

    async def _select_all_repositories(context: Context | None = None) -> dict[str, Any]:
        if (redirect := await _gate()) is not None:
            return redirect
        if (problem := _require_group()) is not None:
            return problem
        app.repositories.select_all()
        return _selection_payload(app)

    async def _clear_repository_selection(context: Context | None = None) -> dict[str, Any]:
        if (redirect := await _gate()) is not None:
            return redirect
        if (problem := _require_group()) is not None:
            return problem
        app.repositories.clear()
        return _selection_payload(app)

    async def _continue_to_workflow(context: Context | None = None) -> dict[str, Any]:
        """Carry the selection into the workflow editor."""

        if (redirect := await _gate()) is not None:
            return redirect
        location = app.repositories.proceed()
        if location is None:
            return {"error": "Select at least one repository", "location": app.navigator.current.url}
        app.editor.enter(location.params)
        editor_context = app.editor.context
        return {
            "location": location.url,
            "group_id": editor_context.group_id if editor_context else None,
            "repository_ids": sorted(editor_context.repository_ids) if editor_context else [],
            "content": app.editor.draft.content,
            "template_error": app.editor.template_error,
        }

    def _require_editor() -> dict[str, Any] | None:
        current = app.navigator.current
        if app.editor.active:
            return None
        if current.path != WORKFLOW or not app.editor.enter(current.params):
            return {"error": "No repositories selected", "location": app.navigator.current.url}
        return None

    def _left_editor() -> dict[str, Any] | None:
        if app.editor.active:
            return None
        decision = app.protected()
        if decision.access is not Access.ADMIT:
            return {"access": decision.access.value, "redirect": app.navigator.current.url}
        return {"error": "The workflow step was left", "location": app.navigator.current.url}

    async def _reset_workflow(context: Context | None = None) -> dict[str, Any]:
        """Replace the draft with the example pipeline."""

        if (redirect := await _gate()) is not None:
            return redirect
        if (problem := _require_editor()) is not None:
            return problem
        return {"content": app.editor.reset_to_example(), "template_error": app.editor.template_error}

    async def _back_to_repositories(context: Context | None = None) -> dict[str, Any]:
        """Leave the editor for the repository step with the selection intact."""

        if (redirect := await _gate()) is not None:
            return redirect
        if app.navigator.current.path != WORKFLOW:
            return {"error": "Not in the workflow step", "location": app.navigator.current.url}
        location = app.editor.back()
        if await app.repositories.enter(location.params):
            payload = _selection_payload(app)
        else:
            payload = {}
        payload["location"] = app.navigator.current.url
        return payload

    async def _validate_workflow(
        content: str | None = None,
        template_id: str | None = None,
        context: Context | None = None,
    ) -> dict[str, Any]:
        """Validate the current draft, optionally replacing it first."""

        if (redirect := await _gate()) is not None:
            return redirect
        if (problem := _require_editor()) is not None:
            return problem
        if template_id is not None and app.editor.use_template(template_id) is None:
            return {"valid": False, "errors": [], "skipped": True, "error": app.editor.template_error}
        if content is not None:
            app.editor.edit(content)
        result = await app.editor.validate()
        if result is None:
            if (problem := _left_editor()) is not None:
                return problem
            return {"valid": False, "errors": [], "skipped": True}
        _emit_log(context, "debug", "Validated workflow", extra={"valid": result.valid})
        return {"valid": result.valid, "errors": list(result.errors), "skipped": False}

    async def _submit_workflow(
        content: str | None = None,
        context: Context | None = None,
    ) -> dict[str, Any]:
        """Submit the draft to every selected repository and start tracking it."""

        if (redirect := await _gate()) is not None:
            return redirect
        if (problem := _require_editor()) is not None:
            return problem
        if content is not None:
            app.editor.edit(content)
        receipt = await app.editor.submit()
        if receipt is None:
            if (problem := _left_editor()) is not None:
                return problem
            return {"submitted": False, "error": app.editor.submit_error}
        app.watch_status(receipt.submission_id)
        _emit_log(
            context,
            "info",
            "Workflow submitted",
            extra={"submission_id": receipt.submission_id},
        )
        return {
            "submitted": True,
            "submission_id": receipt.submission_id,
            "repository_count": receipt.repository_count,
            "location": app.navigator.current.url,
        }

    async def _submission_status(
        submission_id: str | None = None,
        wait: bool = False,
        context: Context | None = None,
    ) -> dict[str, Any]:
        """Report the status view for a submission; ``wait`` blocks until it settles."""

        if (redirect := await _gate()) is not None:
            return redirect
        handle = app.status_handle
        if handle is None or (submission_id and handle.view.submission_id != submission_id):
            if submission_id:
                app.navigator.go(status_path(submission_id))
            handle = app.watch_status(submission_id)
        if wait:
            await handle.wait()
        payload = _status_payload(handle.view)
        payload["location"] = app.navigator.current.url
        return payload

    async def _submission_history(submission_id: str, context: Context | None = None) -> dict[str, Any]:
        """List journaled events for a submission (dispatch, outcome)."""

        if (redirect := await _gate()) is not None:
            return redirect
        events = app.submission_history(submission_id)
        _emit_log(
            context,
            "debug",
            "Read submission history",
            extra={"submission_id": submission_id, "count": len(events)},
        )
        return {
            "submission_id": submission_id,
            "journal_available": app.journal is not None,
            "events": [_event_payload(event) for event in events],
        }

    tool_begin_login = server.tool(
        name="begin_login",
        description="Request the version-control host's authorization URL for login.",
    )(_begin_login)
    tool_complete_login = server.tool(
        name="complete_login",
        description="Redeem the authorization code (or report the error) returned by the host.",
    )(_complete_login)
    tool_session_status = server.tool(
        name="session_status",
        description="Show whether a user is logged in and where the flow currently is.",
    )(_session_status)
    tool_logout = server.tool(
        name="logout",
        description="Log out and clear the stored credential.",
    )(_logout)
    tool_list_groups = server.tool(
        name="list_groups",
        description="List groups administered by the logged-in user.",
    )(_list_groups)
    tool_select_group = server.tool(
        name="select_group",
        description="Pick a group and list its repositories.",
    )(_select_group)
    tool_toggle = server.tool(
        name="toggle_repository",
        description="Toggle one repository in the selection.",
    )(_toggle_repository)
    tool_select_all = server.tool(
        name="select_all_repositories",
        description="Select every repository of the chosen group.",
    )(_select_all_repositories)
    tool_clear = server.tool(
        name="clear_repository_selection",
        description="Empty the repository selection.",
    )(_clear_repository_selection)
    tool_continue = server.tool(
        name="continue_to_workflow",
        description="Open the workflow editor for the selected repositories.",
    )(_continue_to_workflow)
    tool_reset = server.tool(
        name="reset_workflow",
        description="Replace the pipeline draft with the example pipeline.",
    )(_reset_workflow)
    tool_back = server.tool(
        name="back_to_repositories",
        description="Return from the workflow editor to the repository selection.",
    )(_back_to_repositories)
    tool_validate = server.tool(
        name="validate_workflow",
        description="Validate the pipeline definition (optionally replacing it or loading a template).",
    )(_validate_workflow)
    tool_submit = server.tool(
        name="submit_workflow",
        description="Submit the pipeline definition to all selected repositories.",
        annotations={
            "safety": {
                "level": "caution",
                "notes": "Writes .gitlab-ci.yml to every selected repository",
            }
        },
    )(_submit_workflow)
    tool_status = server.tool(
        name="submission_status",
        description="Track a submission until it completes, fails, or partially succeeds.",
    )(_submission_status)
    tool_history = server.tool(
        name="submission_history",
        description="Show the journaled dispatch and outcome events of a submission.",
    )(_submission_history)

    return ToolHandles(
        begin_login=tool_begin_login,
        complete_login=tool_complete_login,
        session_status=tool_session_status,
        logout=tool_logout,
        list_groups=tool_list_groups,
        select_group=tool_select_group,
        toggle_repository=tool_toggle,
        select_all_repositories=tool_select_all,
        clear_repository_selection=tool_clear,
        continue_to_workflow=tool_continue,
        reset_workflow=tool_reset,
        back_to_repositories=tool_back,
        validate_workflow=tool_validate,
        submit_workflow=tool_submit,
        submission_status=tool_status,
        submission_history=tool_history,
    )


def _emit_log(
    context: Context | None,
    level: str,
    message: str,
    *,
    extra: dict[str, Any] | None = None,
) -> None:
    """Best-effort logging that prefers the MCP context logger when available."""

    payload = extra or {}

    if context is not None:
        ctx_logger = getattr(context, "logger", None)
        if ctx_logger is not None:
            log_method = getattr(ctx_logger, level, None)
            if callable(log_method):
                log_method(message, extra=payload)
                return

    fallback = getattr(logger, level, logger.info)
    fallback(message, extra=payload)


__all__ = ["register_tools", "ToolHandles"]
