"""Group → repository selection and its navigable encoding."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Mapping

from .api import ApiClient, Group, Repository
from .errors import ApiError
from .navigation import GROUPS, REPOSITORIES, WORKFLOW, Location, Navigator

logger = logging.getLogger(__name__)

GROUP_PARAM = "group_id"
REPOSITORIES_PARAM = "repo_ids"


@dataclass(slots=True, frozen=True)
class SelectionContext:
    """A chosen group and the set of repositories picked under it."""

    group_id: int
    repository_ids: frozenset[int] = frozenset()

    @property
    def usable(self) -> bool:
        return bool(self.repository_ids)


def _parse_id(raw: str | None) -> int | None:
    if raw is None:
        return None
    try:
        return int(raw.strip())
    except ValueError:
        return None


def encode_selection(context: SelectionContext) -> dict[str, str]:
    """Encode a selection as query parameters; ids are written in ascending order."""

    params = {GROUP_PARAM: str(context.group_id)}
    if context.repository_ids:
        params[REPOSITORIES_PARAM] = ",".join(str(item) for item in sorted(context.repository_ids))
    return params


def decode_group_id(params: Mapping[str, str]) -> int | None:
    return _parse_id(params.get(GROUP_PARAM))


def decode_selection(params: Mapping[str, str]) -> SelectionContext | None:
    """Inverse of :func:`encode_selection`; ``None`` when the parameters are unusable."""

    group_id = decode_group_id(params)
    if group_id is None:
        return None

    repository_ids: set[int] = set()
    for part in (params.get(REPOSITORIES_PARAM) or "").split(","):
        if not part.strip():
            continue
        parsed = _parse_id(part)
        if parsed is None:
            return None
        repository_ids.add(parsed)
    return SelectionContext(group_id=group_id, repository_ids=frozenset(repository_ids))


class GroupListing:
    """First step: list the groups the user administers."""

    def __init__(self, api: ApiClient, navigator: Navigator) -> None:
        self._api = api
        self._navigator = navigator
        self.groups: list[Group] = []
        self.loading = False
        self.error: str | None = None

    async def load(self) -> list[Group]:
        self.loading = True
        self.error = None
        try:
            self.groups = await self._api.list_groups()
        except ApiError as exc:
            self.groups = []
            self.error = str(exc) or "Failed to fetch groups"
        finally:
            self.loading = False
        logger.debug("Loaded groups", extra={"count": len(self.groups)})
        return self.groups

    def choose(self, group_id: int) -> Location:
        return self._navigator.go(REPOSITORIES, encode_selection(SelectionContext(group_id)))


class RepositorySelection:
    """Second step: multi-select repositories under the chosen group.

    Selection operations each swap in a new frozenset, so observers never see
    a half-applied change.
    """

    def __init__(self, api: ApiClient, navigator: Navigator) -> None:
        self._api = api
        self._navigator = navigator
        self.group_id: int | None = None
        self.repositories: list[Repository] = []
        self.selected: frozenset[int] = frozenset()
        self.loading = False
        self.error: str | None = None

    async def enter(self, params: Mapping[str, str]) -> bool:
        """Enter the step from navigable state; redirect to groups without a group id."""

        group_id = decode_group_id(params)
        if group_id is None:
            self._navigator.go(GROUPS)
            return False

        restored = decode_selection(params)
        self.group_id = group_id
        self.selected = restored.repository_ids if restored is not None else frozenset()
        self.repositories = []
        self.error = None
        self.loading = True
        try:
            self.repositories = await self._api.list_repositories(group_id)
        except ApiError as exc:
            self.error = str(exc) or "Failed to fetch repositories"
        finally:
            self.loading = False
        return True

    def toggle(self, repository_id: int) -> frozenset[int]:
        if repository_id in self.selected:
            self.selected = self.selected - {repository_id}
        else:
            self.selected = self.selected | {repository_id}
        return self.selected

    def select_all(self) -> frozenset[int]:
        self.selected = frozenset(repo.id for repo in self.repositories)
        return self.selected

    def clear(self) -> frozenset[int]:
        self.selected = frozenset()
        return self.selected

    @property
    def can_continue(self) -> bool:
        return self.group_id is not None and bool(self.selected)

    @property
    def context(self) -> SelectionContext | None:
        if self.group_id is None:
            return None
        return SelectionContext(group_id=self.group_id, repository_ids=self.selected)

    def proceed(self) -> Location | None:
        """Advance to the workflow step carrying the encoded selection."""

        context = self.context
        if context is None or not context.usable:
            return None
        params = encode_selection(context)
        # keep the selection on the history entry so back-navigation restores it
        self._navigator.replace(REPOSITORIES, params)
        return self._navigator.go(WORKFLOW, params)


__all__ = [
    "GroupListing",
    "RepositorySelection",
    "SelectionContext",
    "decode_group_id",
    "decode_selection",
    "encode_selection",
]
