"""
Tests for the LeadStitch REST clients.

HTTP traffic is served by httpx.MockTransport handlers so requests, headers and
error classification are exercised end to end without a server.
"""

import json

import httpx
import pytest
import pytest_asyncio

from leadstitch_sync.api_clients.exceptions import (
    APIClientError,
    AuthenticationError,
    JobNotFoundError,
    NetworkConnectionError,
    NetworkTimeoutError,
    RateLimitError,
    ServerError,
)
from leadstitch_sync.api_clients.jobs_client import JobsAPIClient
from leadstitch_sync.api_clients.network_error_handler import RetryConfig
from leadstitch_sync.api_clients.profiles_client import ProfilesAPIClient

API_URL = "http://localhost:5000/api"
FAST_RETRY = RetryConfig(
    max_retries=2, initial_delay=0.001, max_delay=0.002, jitter_enabled=False
)


class MockServer:
    """Routes requests to scripted responses and records what it saw."""

    def __init__(self):
        self.requests = []
        self.responses = {}

    def add(self, method, path, *responses):
        self.responses[(method, path)] = list(responses)

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        scripted = self.responses.get((request.method, request.url.path))
        if not scripted:
            return httpx.Response(404, json={"message": "Not found"})
        response = scripted.pop(0) if len(scripted) > 1 else scripted[0]
        if isinstance(response, Exception):
            raise response
        return response

    @property
    def transport(self):
        return httpx.MockTransport(self.handler)


@pytest.fixture
def server():
    return MockServer()


@pytest_asyncio.fixture
async def jobs_api(server):
    """JobsAPIClient against the mock server."""
    client = JobsAPIClient(
        API_URL, "token-123", transport=server.transport, retry_config=FAST_RETRY
    )
    yield client
    await client.close()


@pytest_asyncio.fixture
async def profiles_api(server):
    """ProfilesAPIClient against the mock server with a token provider."""
    client = ProfilesAPIClient(
        API_URL, lambda: "fresh-token", transport=server.transport, retry_config=FAST_RETRY
    )
    yield client
    await client.close()


class TestJobsAPIClient:
    """Job launch and status requests."""

    async def test_launch_job_posts_body_and_returns_id(self, jobs_api, server):
        server.add("POST", "/api/jobs", httpx.Response(201, json={"jobId": "job-42"}))

        job_id = await jobs_api.launch_job("profile_search", "req-1", limit=25)

        assert job_id == "job-42"
        request = server.requests[0]
        assert request.headers["Authorization"] == "Bearer token-123"
        assert json.loads(request.content) == {
            "type": "profile_search",
            "resourceId": "req-1",
            "limit": 25,
        }

    async def test_launch_job_accepts_snake_case_id(self, jobs_api, server):
        server.add("POST", "/api/jobs", httpx.Response(200, json={"job_id": 7}))
        assert await jobs_api.launch_job("campaign_send", "c-1") == "7"

    async def test_launch_without_id_is_an_error(self, jobs_api, server):
        server.add("POST", "/api/jobs", httpx.Response(200, json={"ok": True}))
        with pytest.raises(APIClientError):
            await jobs_api.launch_job("campaign_send", "c-1")

    async def test_launch_timeout_is_not_resent(self, jobs_api, server):
        """A timed out launch may have started a job, so it is sent exactly once."""
        server.add(
            "POST",
            "/api/jobs",
            httpx.ReadTimeout("timed out"),
            httpx.Response(201, json={"jobId": "job-2"}),
        )
        with pytest.raises(NetworkTimeoutError):
            await jobs_api.launch_job("profile_search", "req-1")
        assert len(server.requests) == 1

    async def test_launch_server_error_is_not_retried(self, jobs_api, server):
        server.add(
            "POST",
            "/api/jobs",
            httpx.Response(503, json={"message": "Overloaded"}),
            httpx.Response(201, json={"jobId": "job-1"}),
        )
        with pytest.raises(ServerError):
            await jobs_api.launch_job("profile_search", "req-1")
        assert len(server.requests) == 1

    async def test_launch_does_not_retry_auth_errors(self, jobs_api, server):
        server.add("POST", "/api/jobs", httpx.Response(401, json={"message": "Token expired"}))
        with pytest.raises(AuthenticationError) as exc_info:
            await jobs_api.launch_job("profile_search", "req-1")
        assert "Token expired" in str(exc_info.value)
        assert len(server.requests) == 1

    async def test_get_job_status(self, jobs_api, server):
        server.add(
            "GET",
            "/api/jobs/job-1/status",
            httpx.Response(200, json={"status": "processing", "progress": 12}),
        )
        assert await jobs_api.get_job_status("job-1") == {"status": "processing", "progress": 12}

    async def test_get_job_status_404_is_job_not_found(self, jobs_api):
        with pytest.raises(JobNotFoundError) as exc_info:
            await jobs_api.get_job_status("job-gone")
        assert exc_info.value.job_id == "job-gone"
        assert exc_info.value.status_code == 404

    async def test_rate_limit_carries_retry_after(self, jobs_api, server):
        server.add(
            "GET",
            "/api/jobs/job-1/status",
            httpx.Response(429, headers={"Retry-After": "30"}, json={"message": "Slow down"}),
        )
        with pytest.raises(RateLimitError) as exc_info:
            await jobs_api.get_job_status("job-1")
        assert exc_info.value.retry_after == 30
        assert exc_info.value.payload == {"message": "Slow down"}

    async def test_server_error_keeps_payload(self, jobs_api, server):
        body = {"error_details": {"primary_error": {"error_code": "DB_DOWN"}}}
        server.add("GET", "/api/jobs/job-1/status", httpx.Response(500, json=body))
        with pytest.raises(ServerError) as exc_info:
            await jobs_api.get_job_status("job-1")
        assert exc_info.value.payload == body

    async def test_connection_failure_is_classified(self, jobs_api, server):
        server.add(
            "GET",
            "/api/jobs/job-1/status",
            httpx.ConnectError("[Errno 111] Connection refused"),
        )
        with pytest.raises(NetworkConnectionError):
            await jobs_api.get_job_status("job-1")

    async def test_non_object_status_is_rejected(self, jobs_api, server):
        server.add("GET", "/api/jobs/job-1/status", httpx.Response(200, json=["running"]))
        with pytest.raises(APIClientError):
            await jobs_api.get_job_status("job-1")


class TestProfilesAPIClient:
    """Profile listing and email enrichment requests."""

    async def test_list_profiles_uses_requirement_filter(self, profiles_api, server):
        server.add("GET", "/api/profiles", httpx.Response(200, json=[{"id": 1}, "junk"]))

        profiles = await profiles_api.list_profiles("req-1")

        assert profiles == [{"id": 1}]
        request = server.requests[0]
        assert request.url.params["requirementId"] == "req-1"
        assert request.headers["Authorization"] == "Bearer fresh-token"

    async def test_list_profiles_retries_server_errors(self, profiles_api, server):
        server.add(
            "GET",
            "/api/profiles",
            httpx.Response(503, json={"message": "Overloaded"}),
            httpx.Response(200, json=[{"id": 2}]),
        )
        assert await profiles_api.list_profiles("req-1") == [{"id": 2}]
        assert len(server.requests) == 2

    async def test_enrich_with_emails(self, profiles_api, server):
        server.add(
            "POST", "/api/profiles/enrich-emails", httpx.Response(200, json={"profiles": []})
        )

        result = await profiles_api.enrich_with_emails([1, 3])

        assert result == {"profiles": []}
        assert json.loads(server.requests[0].content) == {"profileIds": [1, 3]}

    async def test_enrich_requires_ids(self, profiles_api):
        with pytest.raises(APIClientError):
            await profiles_api.enrich_with_emails([])
