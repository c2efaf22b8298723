"""API Client Abstractions for LeadStitch Remote Operations.

All HTTP functionality is contained within dedicated API client classes.
"""

from .base_client import LeadStitchAPIClient, TokenProvider
from .exceptions import (
    APIClientError,
    AuthenticationError,
    DNSResolutionError,
    JobNotFoundError,
    NetworkConnectionError,
    NetworkError,
    NetworkTimeoutError,
    RateLimitError,
    ServerError,
    SSLCertificateError,
)
from .jobs_client import JobsAPIClient
from .network_error_handler import NetworkErrorHandler, RetryConfig
from .profiles_client import ProfilesAPIClient

__all__ = [
    # Base client
    "LeadStitchAPIClient",
    "TokenProvider",
    # Domain clients
    "JobsAPIClient",
    "ProfilesAPIClient",
    # Error handling
    "NetworkErrorHandler",
    "RetryConfig",
    "APIClientError",
    "AuthenticationError",
    "JobNotFoundError",
    "NetworkError",
    "NetworkConnectionError",
    "NetworkTimeoutError",
    "DNSResolutionError",
    "SSLCertificateError",
    "ServerError",
    "RateLimitError",
]
