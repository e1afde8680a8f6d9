"""Async client for the onboarding API."""

from __future__ import annotations

import logging
from typing import Any, Callable, Iterable, TypeVar
from urllib.parse import quote

import httpx
from pydantic import BaseModel, ValidationError

from ..errors import NotFoundError, TransportError, UnauthorizedError
from .models import (
    Group,
    LoginGrant,
    LoginRedirect,
    Repository,
    SubmissionReceipt,
    SubmissionRecord,
    User,
    ValidationResult,
)

logger = logging.getLogger(__name__)

ModelT = TypeVar("ModelT", bound=BaseModel)

ENDPOINTS = {
    "login": "/auth/login",
    "callback": "/auth/callback",
    "logout": "/auth/logout",
    "user": "/user",
    "groups": "/groups",
    "repositories": "/repositories",
    "validate": "/workflow/validate",
    "submit": "/workflow/submit",
    "status": "/workflow/status",
}


class ApiClient:
    """Talk to the onboarding API, unwrapping ``{"data": ...}`` envelopes.

    Every request attaches the stored credential as a bearer token when one is
    available. A 401 from any endpoint triggers the unauthorized handler before
    :class:`UnauthorizedError` is raised, so the session can be torn down
    regardless of which operation was in flight.
    """

    def __init__(
        self,
        base_url: str,
        token_provider: Callable[[], str | None],
        *,
        on_unauthorized: Callable[[], None] | None = None,
        http_client: httpx.AsyncClient | None = None,
    ) -> None:
        self._base_url = base_url.rstrip("/")
        self._token_provider = token_provider
        self._on_unauthorized = on_unauthorized
        self._client = http_client or httpx.AsyncClient(timeout=None)
        self._owns_client = http_client is None

    @property
    def base_url(self) -> str:
        return self._base_url

    def set_unauthorized_handler(self, handler: Callable[[], None] | None) -> None:
        self._on_unauthorized = handler

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    # ------------------------------------------------------------------
    # helpers
    # ------------------------------------------------------------------
    def _headers(self) -> dict[str, str]:
        headers = {"Content-Type": "application/json"}
        token = self._token_provider()
        if token:
            headers["Authorization"] = f"Bearer {token}"
        return headers

    async def _request(
        self,
        method: str,
        endpoint: str,
        *,
        params: dict[str, Any] | None = None,
        json: Any | None = None,
        expect_body: bool = True,
    ) -> Any:
        url = f"{self._base_url}{endpoint}"
        logger.debug("API request", extra={"method": method, "url": url})
        try:
            response = await self._client.request(
                method, url, params=params, json=json, headers=self._headers()
            )
        except httpx.HTTPError as exc:
            raise TransportError(f"Network error: {exc}" if str(exc) else "Network error") from exc

        if response.status_code == 401:
            logger.info("API returned 401; invalidating session", extra={"url": url})
            if self._on_unauthorized is not None:
                self._on_unauthorized()
            raise UnauthorizedError()
        if response.status_code == 404:
            raise NotFoundError(
                f"HTTP 404: {response.reason_phrase}", status_code=response.status_code
            )
        if not response.is_success:
            raise TransportError(
                f"HTTP {response.status_code}: {response.reason_phrase}",
                status_code=response.status_code,
            )

        if not expect_body:
            return None
        try:
            body = response.json()
        except ValueError as exc:
            raise TransportError("Malformed response body", status_code=response.status_code) from exc
        if not isinstance(body, dict) or "data" not in body:
            raise TransportError(
                "Response is missing the data envelope", status_code=response.status_code
            )
        return body["data"]

    @staticmethod
    def _parse(model: type[ModelT], payload: Any) -> ModelT:
        try:
            return model.model_validate(payload)
        except ValidationError as exc:
            raise TransportError(f"Unexpected {model.__name__} payload: {exc}") from exc

    @classmethod
    def _parse_many(cls, model: type[ModelT], payload: Any) -> list[ModelT]:
        if payload is None:
            return []
        if not isinstance(payload, list):
            raise TransportError(f"Expected a list of {model.__name__} payloads")
        return [cls._parse(model, item) for item in payload]

    # ------------------------------------------------------------------
    # operations
    # ------------------------------------------------------------------
    async def begin_login(self) -> str:
        data = await self._request("GET", ENDPOINTS["login"])
        return self._parse(LoginRedirect, data).auth_url

    async def complete_login(self, code: str) -> LoginGrant:
        data = await self._request("GET", ENDPOINTS["callback"], params={"code": code})
        return self._parse(LoginGrant, data)

    async def logout(self) -> None:
        await self._request("POST", ENDPOINTS["logout"], expect_body=False)

    async def current_user(self) -> User:
        data = await self._request("GET", ENDPOINTS["user"])
        return self._parse(User, data)

    async def list_groups(self) -> list[Group]:
        data = await self._request("GET", ENDPOINTS["groups"])
        return self._parse_many(Group, data)

    async def list_repositories(self, group_id: int) -> list[Repository]:
        data = await self._request(
            "GET", ENDPOINTS["repositories"], params={"group_id": group_id}
        )
        return self._parse_many(Repository, data)

    async def validate_workflow(self, content: str) -> ValidationResult:
        data = await self._request(
            "POST", ENDPOINTS["validate"], json={"workflow_content": content}
        )
        return self._parse(ValidationResult, data)

    async def submit_workflow(
        self,
        group_id: int,
        repository_ids: Iterable[int],
        content: str,
    ) -> SubmissionReceipt:
        data = await self._request(
            "POST",
            ENDPOINTS["submit"],
            json={
                "group_id": group_id,
                "repository_ids": sorted(repository_ids),
                "workflow_content": content,
            },
        )
        return self._parse(SubmissionReceipt, data)

    async def submission_status(self, submission_id: str) -> SubmissionRecord:
        data = await self._request(
            "GET", f"{ENDPOINTS['status']}/{quote(submission_id, safe='')}"
        )
        if not data:
            raise NotFoundError("Submission not found", status_code=None)
        return self._parse(SubmissionRecord, data)


__all__ = ["ApiClient", "ENDPOINTS"]
