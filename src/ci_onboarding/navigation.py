"""Routes and the navigator that records where the user is."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Callable, Mapping
from urllib.parse import urlencode

logger = logging.getLogger(__name__)

LOGIN = "/"
CALLBACK = "/callback"
GROUPS = "/groups"
REPOSITORIES = "/repositories"
WORKFLOW = "/workflow"
STATUS = "/status"


def status_path(submission_id: str) -> str:
    return f"{STATUS}/{submission_id}"


@dataclass(slots=True, frozen=True)
class Location:
    """A navigable position: a route path plus its query parameters."""

    path: str
    params: Mapping[str, str] = field(default_factory=dict)

    @property
    def url(self) -> str:
        if not self.params:
            return self.path
        return f"{self.path}?{urlencode(dict(self.params))}"


class Navigator:
    """In-process history of locations plus a slot for external redirects."""

    def __init__(self, start: Location | None = None) -> None:
        self._history: list[Location] = [start or Location(LOGIN)]
        self._external_url: str | None = None
        self._listeners: list[Callable[[Location], None]] = []

    @property
    def current(self) -> Location:
        return self._history[-1]

    @property
    def history(self) -> list[Location]:
        return list(self._history)

    @property
    def external_url(self) -> str | None:
        """Last full-page redirect target outside the application, if any."""

        return self._external_url

    def subscribe(self, listener: Callable[[Location], None]) -> Callable[[], None]:
        """Call ``listener`` with the new current location after every move."""

        self._listeners.append(listener)

        def _unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return _unsubscribe

    def _moved(self) -> Location:
        location = self.current
        for listener in list(self._listeners):
            listener(location)
        return location

    def go(self, path: str, params: Mapping[str, str] | None = None) -> Location:
        location = Location(path, dict(params or {}))
        self._history.append(location)
        logger.debug("Navigate", extra={"location": location.url})
        return self._moved()

    def replace(self, path: str, params: Mapping[str, str] | None = None) -> Location:
        """Swap the current location without adding a history entry."""

        self._history[-1] = Location(path, dict(params or {}))
        return self._moved()

    def back(self) -> Location:
        if len(self._history) > 1:
            self._history.pop()
        return self._moved()

    def redirect_external(self, url: str) -> None:
        logger.info("Redirecting to external URL", extra={"location": url})
        self._external_url = url


__all__ = [
    "CALLBACK",
    "GROUPS",
    "LOGIN",
    "Location",
    "Navigator",
    "REPOSITORIES",
    "STATUS",
    "WORKFLOW",
    "status_path",
]
