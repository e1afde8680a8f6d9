"""FastMCP server bootstrap for the onboarding client."""

import json
import logging
from datetime import datetime, timezone
from typing import Optional

from fastmcp import FastMCP

from . import __version__
from .app import OnboardingApp
from .config import OnboardingSettings, configure_logging, get_settings
from .storage import ChromaStore, ChromaUnavailableError
from .tools import register_tools


def open_journal(settings: OnboardingSettings) -> tuple[ChromaStore | None, dict]:
    """Open the optional Chroma event journal and describe its availability."""

    metadata = {
        "available": False,
        "path": str(settings.chroma_persist_path) if settings.chroma_persist_path else None,
        "error": None,
    }
    if settings.chroma_persist_path is None:
        return None, metadata

    try:
        store = ChromaStore(settings.chroma_persist_path)
        store.ping()
    except ChromaUnavailableError as exc:
        metadata["error"] = str(exc)
        return None, metadata
    metadata["available"] = True
    return store, metadata


def create_server(
    settings: Optional[OnboardingSettings] = None,
    app: OnboardingApp | None = None,
) -> FastMCP:
    """Instantiate the FastMCP server around one onboarding session."""

    settings = settings or get_settings()

    if app is None:
        journal, journal_metadata = open_journal(settings)
        app = OnboardingApp(settings, journal=journal)
    else:
        journal_metadata = {
            "available": app.journal is not None,
            "path": str(app.journal.path) if app.journal is not None else None,
            "error": None,
        }

    server = FastMCP(
        name="CI Onboarding",
        version=__version__,
        instructions=(
            "Onboard a CI pipeline definition onto many repositories at once. Log in, "
            "pick a group, select repositories, validate and submit the pipeline, then "
            "track the submission until it finishes."
        ),
    )

    handles = register_tools(server, app=app)

    @server.resource(
        "resource://ci-onboarding/status",
        name="ci_onboarding_status",
        description="Current session, location and journal status of the onboarding client.",
        mime_type="application/json",
        tags={"status", "health"},
    )
    def status_resource() -> str:
        """Return a JSON string summarizing basic runtime state."""

        session = app.session.session
        handle = app.status_handle
        payload = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "server_version": __version__,
            "log_level": settings.log_level,
            "api_base_url": settings.api_base_url,
            "session": {
                "load_state": session.load_state.value,
                "authenticated": session.authenticated,
                "username": session.identity.username if session.identity else None,
            },
            "location": app.navigator.current.url,
            "polling": {
                "interval": settings.poll_interval,
                "max_attempts": settings.poll_max_attempts,
                "active": handle is not None and not handle.done,
                "submission_id": handle.view.submission_id if handle is not None else None,
            },
            "journal": journal_metadata,
        }
        return json.dumps(payload)

    setattr(server, "onboarding_app", app)
    setattr(server, "journal_metadata", journal_metadata)
    setattr(server, "tool_handles", handles)
    return server


def main() -> None:
    """Entry point for running the onboarding MCP server via CLI."""

    settings = get_settings()
    configure_logging(settings.log_level)

    server = create_server(settings)
    logging.getLogger(__name__).info(
        "Launching CI onboarding MCP server",
        extra={
            "version": __version__,
            "log_level": settings.log_level,
            "api_base_url": settings.api_base_url,
            "journal_available": getattr(server, "journal_metadata", {}).get("available"),
        },
    )
    server.run()


if __name__ == "__main__":
    main()
