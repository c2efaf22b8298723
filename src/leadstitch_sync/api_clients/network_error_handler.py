"""Network Error Handler for LeadStitch API clients.

Provides network error classification and retry logic with exponential backoff
for REST calls made against the LeadStitch backend.
"""

import asyncio
import json
import logging
import random
import re
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, NoReturn, Optional

import httpx

from .exceptions import (
    APIClientError,
    AuthenticationError,
    DNSResolutionError,
    NetworkConnectionError,
    NetworkTimeoutError,
    RateLimitError,
    ServerError,
    SSLCertificateError,
)

logger = logging.getLogger(__name__)


@dataclass
class RetryConfig:
    """Configuration for retry logic with exponential backoff."""

    max_retries: int = 3
    initial_delay: float = 1.0
    max_delay: float = 30.0
    backoff_multiplier: float = 2.0
    jitter_enabled: bool = True


def extract_error_detail(response: httpx.Response) -> tuple[Optional[Any], str]:
    """Return the parsed JSON body (if any) and a short human readable detail."""
    status_code = response.status_code
    try:
        payload = response.json()
    except (json.JSONDecodeError, ValueError):
        text = response.text if response.text else f"HTTP {status_code}"
        return None, text

    detail = f"HTTP {status_code}"
    if isinstance(payload, dict):
        for key in ("detail", "message", "error"):
            value = payload.get(key)
            if isinstance(value, str) and value:
                detail = value
                break
    return payload, detail


class NetworkErrorHandler:
    """Handles network error classification and retry logic."""

    def __init__(self):
        self._dns_error_patterns = [
            r"name.*resolution.*failed",
            r"name.*or.*service.*not.*known",
            r"nodename.*nor.*servname.*provided",
            r"temporary.*failure.*in.*name.*resolution",
        ]
        self._connection_error_patterns = [
            r"connection.*refused",
            r"connection.*reset",
            r"network.*is.*unreachable",
            r"no.*route.*to.*host",
        ]
        self._ssl_error_patterns = [
            r"ssl.*certificate.*verification.*failed",
            r"certificate.*verify.*failed",
            r"ssl.*handshake.*failed",
            r"bad.*certificate",
        ]

    def classify_network_error(self, error: Exception) -> NoReturn:
        """Classify an httpx error and raise the matching specific exception.

        Args:
            error: The original httpx exception

        Raises:
            Specific network error exception based on classification
        """
        error_message = str(error).lower()

        if isinstance(error, httpx.ConnectError):
            self._handle_connect_error(error, error_message)
        elif isinstance(error, httpx.TimeoutException):
            self._handle_timeout_error(error_message)
        elif isinstance(error, httpx.HTTPStatusError):
            self.raise_for_response(error.response)
        elif isinstance(error, httpx.NetworkError):
            raise NetworkConnectionError(f"Network error: {error}")
        raise NetworkConnectionError(f"Unknown network error: {error}")

    def _handle_connect_error(
        self, error: httpx.ConnectError, error_message: str
    ) -> NoReturn:
        """Handle connection errors with specific classification."""
        if any(re.search(p, error_message) for p in self._dns_error_patterns):
            raise DNSResolutionError(
                "Cannot resolve server address. Check your internet connection and server URL."
            )

        if any(re.search(p, error_message) for p in self._ssl_error_patterns):
            raise SSLCertificateError(
                "SSL certificate verification failed. Server may be using invalid certificate."
            )

        if any(re.search(p, error_message) for p in self._connection_error_patterns):
            raise NetworkConnectionError(
                "Cannot connect to backend server. Please make sure the backend is running."
            )

        raise NetworkConnectionError(f"Connection failed: {error}")

    def _handle_timeout_error(self, error_message: str) -> NoReturn:
        if "connect" in error_message:
            raise NetworkTimeoutError(
                "Connection timed out. Check your network connection or try again later."
            )
        raise NetworkTimeoutError(
            "Request timed out. Check your network connection or try again later."
        )

    def raise_for_response(self, response: httpx.Response) -> None:
        """Raise the classified exception for an error response (>= 400).

        Successful responses pass through without raising.
        """
        status_code = response.status_code
        if status_code < 400:
            return

        payload, error_detail = extract_error_detail(response)

        if status_code == 429:
            retry_after = None
            if "Retry-After" in response.headers:
                try:
                    retry_after = int(response.headers["Retry-After"])
                except ValueError:
                    retry_after = 60
            raise RateLimitError(error_detail, retry_after=retry_after, payload=payload)

        if status_code in (401, 403):
            raise AuthenticationError(
                f"Authentication failed: {error_detail}",
                status_code=status_code,
                payload=payload,
            )

        if 500 <= status_code < 600:
            raise ServerError(
                f"Server is experiencing issues: {error_detail}",
                status_code=status_code,
                payload=payload,
            )

        client_error = APIClientError(error_detail, status_code=status_code, payload=payload)
        client_error.is_retryable = status_code == 408
        raise client_error

    def is_error_retryable(self, error: Exception) -> bool:
        """Determine if an error is retryable.

        Only errors that are likely to be transient are retried.
        """
        if isinstance(error, (ServerError, RateLimitError, NetworkTimeoutError)):
            return True

        if isinstance(error, DNSResolutionError):
            return True

        if isinstance(error, SSLCertificateError):
            return False

        if isinstance(error, NetworkConnectionError):
            return "connection refused" not in str(error).lower()

        if isinstance(error, APIClientError):
            return error.is_retryable and not isinstance(error, AuthenticationError)

        return False

    async def retry_with_backoff(
        self,
        operation: Callable[[], Awaitable[Any]],
        config: RetryConfig,
    ) -> Any:
        """Execute operation with retry logic and exponential backoff.

        Args:
            operation: Async function to execute
            config: Retry configuration

        Returns:
            Result of successful operation

        Raises:
            Original exception if not retryable or retries are exhausted
        """
        for attempt in range(config.max_retries + 1):
            try:
                return await operation()
            except Exception as e:
                if not self.is_error_retryable(e) or attempt == config.max_retries:
                    raise

                delay = min(
                    config.initial_delay * (config.backoff_multiplier**attempt),
                    config.max_delay,
                )
                if config.jitter_enabled:
                    delay = delay + delay * 0.1 * random.random()

                logger.warning(
                    f"Request failed (attempt {attempt + 1}/{config.max_retries + 1}): {e}. "
                    f"Retrying in {delay:.1f}s"
                )
                await asyncio.sleep(delay)

        raise RuntimeError("retry_with_backoff exhausted without result")
