"""
Shared pytest fixtures for LeadStitch Sync tests.

Provides in-process fakes for the Socket.IO client and the jobs REST client,
plus temporary handle stores and a recording notifier.
"""

import asyncio
import inspect
from typing import Any, Callable, Dict, List, Optional, Tuple

import pytest
from socketio.exceptions import ConnectionError as SocketConnectionError

from leadstitch_sync.api_clients.exceptions import JobNotFoundError
from leadstitch_sync.config import PushConfig
from leadstitch_sync.sync.handle_store import JobHandleStore
from leadstitch_sync.sync.notifier import RecordingNotifier
from leadstitch_sync.sync.push_channel import PushChannel


async def _invoke(handler: Callable[..., Any], *args: Any) -> None:
    result = handler(*args)
    if inspect.isawaitable(result):
        await result


class FakeSocketClient:
    """Stands in for socketio.AsyncClient; the test plays the server."""

    def __init__(self) -> None:
        self.handlers: Dict[str, Callable[..., Any]] = {}
        self.connected = False
        self.connect_calls: List[Dict[str, Any]] = []
        self.emitted: List[Tuple[str, Any]] = []
        self.fail_connects = 0

    def on(self, event: str, handler: Callable[..., Any]) -> None:
        self.handlers[event] = handler

    async def connect(self, url: str, **kwargs: Any) -> None:
        self.connect_calls.append({"url": url, **kwargs})
        if self.fail_connects > 0:
            self.fail_connects -= 1
            raise SocketConnectionError("Connection refused by the server")
        self.connected = True
        if "connect" in self.handlers:
            await _invoke(self.handlers["connect"])

    async def emit(self, event: str, data: Any = None) -> None:
        self.emitted.append((event, data))

    async def disconnect(self) -> None:
        self.connected = False

    async def server_drop(self, reason: str = "transport close") -> None:
        """Simulate the server side closing the connection."""
        self.connected = False
        await _invoke(self.handlers["disconnect"], reason)

    async def server_emit(self, event: str, data: Any) -> None:
        """Simulate a server event reaching the client."""
        if event in self.handlers:
            await _invoke(self.handlers[event], data)


class FakeJobsClient:
    """Scripted replacement for JobsAPIClient.

    ``statuses[job_id]`` is a list of responses (dicts or exceptions) served in
    order; the last one repeats.
    """

    def __init__(self) -> None:
        self.statuses: Dict[str, List[Any]] = {}
        self.launch_result: Any = "job-1"
        self.launch_calls: List[Tuple[str, str, Dict[str, Any]]] = []
        self.status_calls: List[str] = []

    async def launch_job(self, job_type: str, resource_id: str, **params: Any) -> str:
        self.launch_calls.append((job_type, resource_id, params))
        if isinstance(self.launch_result, Exception):
            raise self.launch_result
        return self.launch_result

    async def get_job_status(self, job_id: str) -> Dict[str, Any]:
        self.status_calls.append(job_id)
        responses = self.statuses.get(job_id)
        if not responses:
            raise JobNotFoundError(job_id)
        response = responses.pop(0) if len(responses) > 1 else responses[0]
        if isinstance(response, Exception):
            raise response
        return response

    async def close(self) -> None:
        pass


async def wait_until(predicate: Callable[[], bool], timeout: float = 2.0) -> None:
    """Yield to the event loop until predicate() holds or timeout expires."""
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while not predicate():
        if loop.time() > deadline:
            raise AssertionError("Condition not met before timeout")
        await asyncio.sleep(0.005)


@pytest.fixture
def wait_for() -> Callable[..., Any]:
    """Provide the wait_until helper to tests."""
    return wait_until


@pytest.fixture
def fake_socket() -> FakeSocketClient:
    """Fake Socket.IO client."""
    return FakeSocketClient()


@pytest.fixture
def push_config() -> PushConfig:
    """Push configuration with fast reconnection for tests."""
    return PushConfig(
        reconnection_attempts=3,
        reconnection_delay=0.01,
        reconnection_delay_max=0.02,
        connect_timeout=1.0,
    )


@pytest.fixture
def push_channel(fake_socket, push_config) -> PushChannel:
    """Push channel wired to the fake Socket.IO client."""
    return PushChannel(
        "http://localhost:5000", push_config, client_factory=lambda: fake_socket
    )


@pytest.fixture
def jobs_client() -> FakeJobsClient:
    """Scripted jobs client."""
    return FakeJobsClient()


@pytest.fixture
def handle_store(tmp_path) -> JobHandleStore:
    """Handle store in a temporary directory."""
    return JobHandleStore(tmp_path / "job-handles.json", namespace="scraping_job")


@pytest.fixture
def notifier() -> RecordingNotifier:
    """Notifier that records notifications."""
    return RecordingNotifier()


@pytest.fixture
def status_payload() -> Callable[..., Dict[str, Any]]:
    """Build a raw status payload in the server's camelCase shape."""

    def build(status: str, job_id: Optional[str] = "job-1", **extra: Any) -> Dict[str, Any]:
        payload: Dict[str, Any] = {"status": status}
        if job_id is not None:
            payload["jobId"] = job_id
        payload.update(extra)
        return payload

    return build
