from __future__ import annotations

from pathlib import Path
from typing import Any, Callable

import httpx
import pytest

from ci_onboarding.app import OnboardingApp
from ci_onboarding.api import ApiClient
from ci_onboarding.config import OnboardingSettings
from ci_onboarding.session import MemoryCallbackLedger, MemorySessionStore

BASE_URL = "http://api.test/api"


class ApiStub:
    """Scripted onboarding API served through ``httpx.MockTransport``.

    Each route holds a queue of responses; the last one repeats. A plain value
    is wrapped as ``{"data": value}``, an ``httpx.Response`` is returned as-is,
    an exception is raised, and a callable receives the request.
    """

    def __init__(self, base_url: str = BASE_URL) -> None:
        self.base_url = base_url
        self._prefix = httpx.URL(base_url).path.rstrip("/")
        self.routes: dict[tuple[str, str], list[Any]] = {}
        self.requests: list[httpx.Request] = []

    def add(self, method: str, path: str, *responses: Any) -> "ApiStub":
        self.routes[(method, path)] = list(responses)
        return self

    def calls(self, method: str, path: str) -> list[httpx.Request]:
        return [
            request
            for request in self.requests
            if request.method == method and self._route_path(request) == path
        ]

    def _route_path(self, request: httpx.Request) -> str:
        return request.url.path[len(self._prefix):]

    def handler(self, request: httpx.Request):
        self.requests.append(request)
        queue = self.routes.get((request.method, self._route_path(request)))
        if not queue:
            return httpx.Response(501, json={"error": "no route"})
        item = queue.pop(0) if len(queue) > 1 else queue[0]
        if isinstance(item, BaseException):
            raise item
        if callable(item):
            return item(request)
        if isinstance(item, httpx.Response):
            return item
        return httpx.Response(200, json={"data": item})

    def client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(transport=httpx.MockTransport(self.handler))


class RecordingSink:
    def __init__(self) -> None:
        self.reports: list[tuple[str, BaseException, dict[str, Any]]] = []

    def report(self, source: str, error: BaseException, **context: Any) -> None:
        self.reports.append((source, error, context))

    @property
    def sources(self) -> list[str]:
        return [source for source, _error, _context in self.reports]


@pytest.fixture
def api_stub() -> ApiStub:
    return ApiStub()


@pytest.fixture
def sink() -> RecordingSink:
    return RecordingSink()


@pytest.fixture
def make_api(api_stub: ApiStub) -> Callable[..., ApiClient]:
    def _factory(store: MemorySessionStore | None = None, **kwargs: Any) -> ApiClient:
        token_store = store or MemorySessionStore()
        return ApiClient(api_stub.base_url, token_store.get, http_client=api_stub.client(), **kwargs)

    return _factory


@pytest.fixture
def settings(tmp_path: Path) -> OnboardingSettings:
    return OnboardingSettings(
        CI_ONBOARDING_API_BASE_URL=BASE_URL,
        CI_ONBOARDING_TOKEN_PATH=str(tmp_path / "token"),
        CI_ONBOARDING_CALLBACK_LEDGER=str(tmp_path / "ledger"),
        CI_ONBOARDING_POLL_INTERVAL=0,
        CI_ONBOARDING_TEMPLATE_PATHS=str(tmp_path / "templates"),
    )


@pytest.fixture
def make_app(api_stub: ApiStub, settings: OnboardingSettings, sink: RecordingSink) -> Callable[..., OnboardingApp]:
    def _factory(token: str | None = None, **kwargs: Any) -> OnboardingApp:
        kwargs.setdefault("store", MemorySessionStore(token))
        kwargs.setdefault("ledger", MemoryCallbackLedger())
        kwargs.setdefault("error_sink", sink)
        return OnboardingApp(settings, http_client=api_stub.client(), **kwargs)

    return _factory
