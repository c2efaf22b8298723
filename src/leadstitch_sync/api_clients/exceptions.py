"""Exception classes for LeadStitch API clients."""

from typing import Any, Optional


class APIClientError(Exception):
    """Base exception for API client errors."""

    def __init__(
        self,
        message: str,
        status_code: Optional[int] = None,
        payload: Optional[Any] = None,
    ):
        super().__init__(message)
        self.status_code = status_code
        # Parsed JSON body of the failing response, if any
        self.payload = payload
        self.is_retryable: bool = True


class AuthenticationError(APIClientError):
    """Exception raised when the server rejects the bearer credential."""

    def __init__(
        self,
        message: str,
        status_code: Optional[int] = 401,
        payload: Optional[Any] = None,
    ):
        super().__init__(message, status_code, payload)
        self.is_retryable = False


class JobNotFoundError(APIClientError):
    """Exception raised when the server no longer knows a job id (HTTP 404)."""

    def __init__(self, job_id: str, payload: Optional[Any] = None):
        super().__init__(f"Job not found: {job_id}", 404, payload)
        self.job_id = job_id
        self.is_retryable = False


class NetworkError(APIClientError):
    """Exception raised when network operations fail."""

    pass


class NetworkConnectionError(NetworkError):
    """Exception raised for connection-related network failures."""

    pass


class NetworkTimeoutError(NetworkError):
    """Exception raised for timeout-related network failures."""

    pass


class DNSResolutionError(NetworkError):
    """Exception raised for DNS resolution failures."""

    pass


class SSLCertificateError(NetworkError):
    """Exception raised for SSL certificate verification failures."""

    def __init__(self, message: str):
        super().__init__(message)
        self.is_retryable = False


class ServerError(APIClientError):
    """Exception raised for server-side errors (5xx responses)."""

    pass


class RateLimitError(APIClientError):
    """Exception raised for rate limiting errors (429 responses)."""

    def __init__(
        self,
        message: str,
        retry_after: Optional[int] = None,
        payload: Optional[Any] = None,
    ):
        super().__init__(message, 429, payload)
        self.retry_after = retry_after
