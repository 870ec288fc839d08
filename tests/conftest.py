"""Shared fixtures: in-memory stores, a scripted upstream and the ASGI app.

Every outbound HTTP call (token endpoint, Workflow, the SharePoint flows)
goes through one ``httpx.MockTransport`` backed by :class:`UpstreamDouble`,
which answers like the real services and records each request by
operation name.
"""

from __future__ import annotations

import itertools
import json
from typing import Any

import httpx
import pytest
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

import cphb_events.domain  # noqa: F401
from cphb_events.core.config import Settings
from cphb_events.db.base import Base, make_engine
from cphb_events.services.document_sync import DocumentSyncClient
from cphb_events.services.events import EventPipeline
from cphb_events.services.identity import ApplicationTokenProvider, IdentityClient
from cphb_events.services.session_guard import AuthContext
from cphb_events.services.workflow import WorkflowClient

FLOWS_HOST = "flows.test"


def package_actions(package_id: int, granted: bool = True) -> dict[str, Any]:
    return {
        "canView": True,
        "canEdit": granted,
        "canSign": False,
        "canVoid": False,
        "canInitiatorVoid": granted,
        "canAddApprover": False,
        "canVoidAfter": False,
        "packageId": package_id,
        "signatureId": None,
    }


class UpstreamDouble:
    """Plays the identity provider, Workflow and the SharePoint flows."""

    def __init__(self) -> None:
        self.calls: list[tuple[str, httpx.Request]] = []
        self.failures: dict[str, httpx.Response | Exception] = {}
        self.package_ids = itertools.count(1001)
        self.removed: set[int] = set()
        self.outsiders: set[int] = set()

    @property
    def operations(self) -> list[str]:
        return [operation for operation, _ in self.calls]

    def requests(self, operation: str) -> list[httpx.Request]:
        return [request for op, request in self.calls if op == operation]

    def body(self, operation: str, index: int = -1) -> Any:
        return json.loads(self.requests(operation)[index].content)

    def fail(self, operation: str, status: int = 500, text: str = "upstream exploded") -> None:
        self.failures[operation] = httpx.Response(status, text=text)

    def raise_on(self, operation: str, exc: Exception) -> None:
        self.failures[operation] = exc

    def deny(self, package_id: int) -> None:
        """Workflow grants the caller nothing on ``package_id``."""
        self.outsiders.add(package_id)

    def _classify(self, request: httpx.Request) -> str:
        path, method = request.url.path, request.method
        if path.endswith("/token.page"):
            return "token"
        if request.url.host == FLOWS_HOST:
            return f"sync_{path.strip('/')}"
        if path.endswith("/packages/actions"):
            return "permissions"
        if method == "POST" and path.endswith("/packages"):
            return "create"
        if path.endswith("/entry"):
            return "update"
        if path.endswith("/remove"):
            return "remove"
        if method == "PUT":
            return "void"
        raise AssertionError(f"Unexpected request {method} {request.url}")

    def __call__(self, request: httpx.Request) -> httpx.Response:
        operation = self._classify(request)
        self.calls.append((operation, request))
        failure = self.failures.get(operation)
        if isinstance(failure, Exception):
            raise failure
        if failure is not None:
            return failure

        if operation == "token":
            return httpx.Response(200, json={"access_token": "app-token", "expires_in": 3600})
        if operation == "create":
            package_id = next(self.package_ids)
            return httpx.Response(
                200,
                json={"id": package_id, "state": "ROUTING", "actions": package_actions(package_id)},
            )
        if operation == "permissions":
            ids = request.url.params.get_list("id")
            return httpx.Response(
                200,
                json=[package_actions(int(i), int(i) not in self.outsiders) for i in ids],
            )
        if operation == "remove":
            package_id = int(request.url.path.split("/")[-2])
            if package_id in self.removed:
                return httpx.Response(404, text=f"Package {package_id} not found")
            self.removed.add(package_id)
        if operation.startswith("sync_"):
            return httpx.Response(202)
        return httpx.Response(200, json={})


def event_form(**overrides: Any) -> dict[str, Any]:
    form: dict[str, Any] = {
        "userEmail": "x@uiowa.edu",
        "eventName": "Curing Cancer",
        "date": "2018-08-01",
        "startTime": "8:00 AM",
        "endTime": "12:00 PM",
        "roomNumber": "XC100",
        "numPeople": 1,
        "setupRequired": False,
        "items": [],
    }
    form.update(overrides)
    return form


FURNITURE = [
    {"id": "t1", "furnitureKind": "circle", "x": 100, "y": 200},
    {"id": "c1", "furnitureKind": "chair", "x": 120, "y": 230},
]


@pytest.fixture
def test_settings() -> Settings:
    return Settings(
        app_env="test",
        frontend_url="https://events.test",
        uiowa_client_id="client-id",
        uiowa_client_secret="client-secret",
        uiowa_scopes="workflow",
        identity_base_url="https://login.test/uip/",
        redirect_uri="https://api.test/api/v1/auth",
        workflow_base_url="https://workflow.test/workflow",
        workflow_env="test",
        workflow_form_id="6025",
        sharepoint_create_url=f"https://{FLOWS_HOST}/create",
        sharepoint_update_url=f"https://{FLOWS_HOST}/update",
        sharepoint_delete_url=f"https://{FLOWS_HOST}/delete",
        session_cookie_secure=False,
    )


@pytest.fixture
async def engine():
    engine = make_engine("sqlite+aiosqlite:///:memory:")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine):
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


@pytest.fixture
async def session(session_factory):
    async with session_factory() as session:
        yield session


@pytest.fixture
def upstream() -> UpstreamDouble:
    return UpstreamDouble()


@pytest.fixture
async def http_client(upstream):
    async with httpx.AsyncClient(transport=httpx.MockTransport(upstream)) as client:
        yield client


@pytest.fixture
def identity(http_client, test_settings) -> IdentityClient:
    return IdentityClient(http_client, test_settings)


@pytest.fixture
def workflow(http_client, identity, test_settings) -> WorkflowClient:
    return WorkflowClient(http_client, ApplicationTokenProvider(identity), test_settings)


@pytest.fixture
def document_sync(http_client, test_settings) -> DocumentSyncClient:
    return DocumentSyncClient(http_client, test_settings)


@pytest.fixture
def pipeline(session, workflow, document_sync, test_settings) -> EventPipeline:
    return EventPipeline(session, workflow, document_sync, test_settings)


@pytest.fixture
def auth() -> AuthContext:
    return AuthContext(token="user-token", ip="10.0.0.7", hawk_id="x", session_id="sid-1")
