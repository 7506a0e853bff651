import os
from collections import defaultdict, deque

os.environ["APP_ENV"] = "test"
os.environ["API_BASE_URL"] = "http://testserver"
os.environ["LOG_TO_FILE"] = "false"

import httpx
import pytest
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse, Response

from core.session import SessionContext, SessionGate
from model.events import TrackerEvent
from service.document_api_client import DocumentApiClient
from service.job_tracker import JobTracker
from core.sequencing import SequenceGuard

NETWORK_ERROR = object()


class FakeBackend:
    """Scriptable stand-in for the formatting server; records every request."""

    def __init__(self) -> None:
        self.app = FastAPI()
        self.requests: list[tuple[str, str, str | None]] = []
        self._scripts: dict[str, deque] = defaultdict(deque)
        self._defaults: dict[str, tuple[int, object]] = {}

        @self.app.api_route("/{path:path}", methods=["GET", "POST"])
        async def _catch_all(request: Request, path: str):
            return self._reply(request)

    def script(self, path: str, *responses: tuple[int, object]) -> None:
        self._scripts[path].extend(responses)

    def default(self, path: str, status: int, body: object) -> None:
        self._defaults[path] = (status, body)

    def calls(self, path: str) -> int:
        return sum(1 for _, p, _ in self.requests if p == path)

    def _reply(self, request: Request) -> Response:
        path = request.url.path
        self.requests.append(
            (request.method, path, request.headers.get("authorization"))
        )
        if self._scripts[path]:
            status, body = self._scripts[path].popleft()
        elif path in self._defaults:
            status, body = self._defaults[path]
        else:
            status, body = 404, {"error": "not scripted"}
        if isinstance(body, bytes):
            return Response(content=body, status_code=status)
        return JSONResponse(status_code=status, content=body)


class FlakyTransport(httpx.AsyncBaseTransport):
    """ASGI transport that can drop the next N requests on the floor."""

    def __init__(self, app: FastAPI) -> None:
        self._inner = httpx.ASGITransport(app=app)
        self.fail_next = 0

    async def handle_async_request(self, request: httpx.Request) -> httpx.Response:
        if self.fail_next > 0:
            self.fail_next -= 1
            raise httpx.ConnectError("connection refused", request=request)
        return await self._inner.handle_async_request(request)


class RecordingScheduler:
    """Scheduler double: remembers entries instead of running them."""

    def __init__(self) -> None:
        self.entries: dict[str, list] = {}
        self.cancelled: list[str] = []
        self.triggered: list[str] = []

    def schedule(self, key, interval, fn, *, delay=None) -> None:
        self.entries[key] = [interval, fn]

    def set_interval(self, key, interval) -> None:
        if key in self.entries:
            self.entries[key][0] = interval

    def interval(self, key):
        entry = self.entries.get(key)
        return entry[0] if entry else None

    def trigger(self, key) -> bool:
        self.triggered.append(key)
        return key in self.entries

    def cancel(self, key) -> bool:
        if key not in self.entries:
            return False
        del self.entries[key]
        self.cancelled.append(key)
        return True

    def cancel_all(self) -> int:
        keys = list(self.entries)
        for key in keys:
            self.cancel(key)
        return len(keys)

    def is_scheduled(self, key) -> bool:
        return key in self.entries

    def keys(self) -> list[str]:
        return list(self.entries)

    async def fire(self, key: str) -> None:
        await self.entries[key][1]()


def job_payload(job_id: str, status: str, **extra) -> dict:
    body = {
        "fileId": job_id,
        "originalFilename": f"{job_id}.docx",
        "status": status,
        "originalSize": 2048,
        "processedSize": None,
        "processingStartedAt": None,
        "processingCompletedAt": None,
        "errorMessage": None,
    }
    body.update(extra)
    return body


@pytest.fixture()
def backend() -> FakeBackend:
    return FakeBackend()


@pytest.fixture()
def transport(backend) -> FlakyTransport:
    return FlakyTransport(backend.app)


@pytest.fixture()
def session() -> SessionContext:
    return SessionContext("test-token")


@pytest.fixture()
def gate(session) -> SessionGate:
    return SessionGate(session)


@pytest.fixture()
def client(session, transport) -> DocumentApiClient:
    return DocumentApiClient(session, base_url="http://testserver", transport=transport)


@pytest.fixture()
def scheduler() -> RecordingScheduler:
    return RecordingScheduler()


@pytest.fixture()
def guard() -> SequenceGuard:
    return SequenceGuard()


@pytest.fixture()
def tracker(client, gate, scheduler, guard) -> JobTracker:
    return JobTracker(client, gate, scheduler=scheduler, guard=guard)


@pytest.fixture()
def events(tracker) -> list[TrackerEvent]:
    seen: list[TrackerEvent] = []
    tracker.subscribe(seen.append)
    return seen
