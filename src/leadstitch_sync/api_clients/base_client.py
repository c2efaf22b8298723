"""Base LeadStitch API Client.

Provides common HTTP functionality, bearer authentication and error
classification for all LeadStitch REST operations.
"""

import logging
from typing import Any, Callable, Dict, Optional, Union

import httpx

from ..config import ServerConfig
from .exceptions import (
    APIClientError,
    AuthenticationError,
    NetworkError,
)
from .network_error_handler import NetworkErrorHandler, RetryConfig

logger = logging.getLogger(__name__)

TokenProvider = Callable[[], Optional[str]]


class LeadStitchAPIClient:
    """Base API client with bearer authentication and common HTTP functionality."""

    def __init__(
        self,
        server_url: str,
        token: Union[str, TokenProvider, None] = None,
        server_config: Optional[ServerConfig] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        retry_config: Optional[RetryConfig] = None,
    ):
        """Initialize base API client.

        Args:
            server_url: Base URL of the LeadStitch REST API (including /api)
            token: Bearer token, or a callable returning the current token
            server_config: Timeout settings (defaults used if None)
            transport: Optional httpx transport (used by tests)
            retry_config: Retry policy for operations that opt into retries
        """
        self.server_url = server_url.rstrip("/")
        self._token = token
        self._server_config = server_config or ServerConfig(api_url=server_url)
        self._transport = transport
        self._session: Optional[httpx.AsyncClient] = None
        self._network_error_handler = NetworkErrorHandler()
        self._retry_config = retry_config or RetryConfig(
            max_retries=3,
            initial_delay=1.0,
            max_delay=30.0,
            backoff_multiplier=2.0,
            jitter_enabled=True,
        )

    @property
    def session(self) -> httpx.AsyncClient:
        """Get or create the HTTP session."""
        if self._session is None or self._session.is_closed:
            timeouts = httpx.Timeout(
                connect=self._server_config.connect_timeout,
                read=self._server_config.read_timeout,
                write=10.0,
                pool=5.0,
            )
            self._session = httpx.AsyncClient(
                timeout=timeouts,
                headers={"Content-Type": "application/json"},
                follow_redirects=True,
                transport=self._transport,
            )
        return self._session

    def _current_token(self) -> Optional[str]:
        if callable(self._token):
            return self._token()
        return self._token

    async def _request(
        self, method: str, endpoint: str, **kwargs: Any
    ) -> httpx.Response:
        """Make an authenticated HTTP request and classify failures.

        Args:
            method: HTTP method (GET, POST, etc.)
            endpoint: API endpoint path, relative to the server URL
            **kwargs: Additional arguments for httpx request

        Returns:
            Successful (< 400) HTTP response

        Raises:
            AuthenticationError: If the server rejects the credential
            NetworkConnectionError: If connection fails
            NetworkTimeoutError: If request times out
            ServerError: If server returns 5xx error
            RateLimitError: If rate limited (429)
            APIClientError: If API returns other error status
        """
        url = f"{self.server_url}{endpoint}"
        headers: Dict[str, str] = kwargs.pop("headers", {})
        token = self._current_token()
        if token:
            headers["Authorization"] = f"Bearer {token}"

        try:
            response = await self.session.request(method, url, headers=headers, **kwargs)
        except (httpx.NetworkError, httpx.TimeoutException) as e:
            self._network_error_handler.classify_network_error(e)
        except httpx.HTTPError as e:
            raise NetworkError(f"HTTP error during {method} {endpoint}: {e}")

        if response.status_code >= 400:
            logger.debug(f"{method} {endpoint} returned HTTP {response.status_code}")
        self._network_error_handler.raise_for_response(response)
        return response

    async def _request_with_retry(
        self, method: str, endpoint: str, **kwargs: Any
    ) -> httpx.Response:
        """Make a request, retrying transient failures with exponential backoff."""

        async def operation() -> httpx.Response:
            return await self._request(method, endpoint, **dict(kwargs))

        response: httpx.Response = await self._network_error_handler.retry_with_backoff(
            operation, self._retry_config
        )
        return response

    async def get(self, endpoint: str, **kwargs: Any) -> httpx.Response:
        """Make authenticated GET request."""
        return await self._request("GET", endpoint, **kwargs)

    async def post(self, endpoint: str, **kwargs: Any) -> httpx.Response:
        """Make authenticated POST request."""
        return await self._request("POST", endpoint, **kwargs)

    @staticmethod
    def _json_body(response: httpx.Response, context: str) -> Any:
        try:
            return response.json()
        except ValueError as e:
            raise APIClientError(
                f"Invalid JSON in {context} response: {e}", response.status_code
            )

    async def close(self) -> None:
        """Close the HTTP session."""
        if self._session and not self._session.is_closed:
            await self._session.aclose()

    async def __aenter__(self):
        """Async context manager entry."""
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        """Async context manager exit."""
        await self.close()


__all__ = [
    "LeadStitchAPIClient",
    "TokenProvider",
    "APIClientError",
    "AuthenticationError",
    "NetworkError",
]
