"""Error Classifier for job failures and transport errors.

Turns any failure (server error payload, HTTP error, transport exception,
plain string) into a ClassifiedError. Precedence is structured server details,
then the HTTP status code, then a generic network/unknown classification.
``classify`` never raises.
"""

import logging
from typing import Any, Mapping, Optional

import httpx

from ..api_clients.exceptions import (
    APIClientError,
    NetworkError,
)
from .models import ClassifiedError, ErrorCategory

logger = logging.getLogger(__name__)

_CATEGORY_ALIASES = {
    "auth_error": ErrorCategory.AUTH,
    "auth": ErrorCategory.AUTH,
    "authentication": ErrorCategory.AUTH,
    "rate_limit_error": ErrorCategory.RATE_LIMIT,
    "rate_limit": ErrorCategory.RATE_LIMIT,
    "network_error": ErrorCategory.NETWORK,
    "network": ErrorCategory.NETWORK,
    "system_error": ErrorCategory.SYSTEM,
    "system": ErrorCategory.SYSTEM,
    "user_error": ErrorCategory.USER,
    "user": ErrorCategory.USER,
    "validation_error": ErrorCategory.USER,
}

_DEFAULT_MESSAGES = {
    ErrorCategory.AUTH: "Authentication failed. Please check your credentials and sign in again.",
    ErrorCategory.RATE_LIMIT: "Too many requests. Please wait a moment and try again.",
    ErrorCategory.NETWORK: "Cannot reach the server. Check your connection and try again.",
    ErrorCategory.SYSTEM: "The server ran into a problem. Please try again later.",
    ErrorCategory.USER: "The request could not be completed. Please review your input.",
}

GENERIC_MESSAGE = "An unexpected error occurred. Please try again."


def category_for_status(status_code: int) -> ErrorCategory:
    """Map a raw HTTP status code to an error category."""
    if status_code in (401, 403):
        return ErrorCategory.AUTH
    if status_code == 429:
        return ErrorCategory.RATE_LIMIT
    if status_code == 408:
        return ErrorCategory.NETWORK
    if status_code >= 500:
        return ErrorCategory.SYSTEM
    return ErrorCategory.USER


def _parse_category(value: Any) -> Optional[ErrorCategory]:
    if not isinstance(value, str):
        return None
    return _CATEGORY_ALIASES.get(value.strip().lower())


def _as_bool(value: Any) -> Optional[bool]:
    return value if isinstance(value, bool) else None


def _text(value: Any) -> Optional[str]:
    if isinstance(value, str) and value.strip():
        return value
    return None


def _structured_error(payload: Mapping[str, Any]) -> Optional[Mapping[str, Any]]:
    """Pick the primary structured error out of a server payload."""
    details = payload.get("error_details")
    if isinstance(details, Mapping):
        primary = details.get("primary_error")
        if isinstance(primary, Mapping) and primary:
            return primary
        errors = details.get("errors")
        if isinstance(errors, list) and errors and isinstance(errors[0], Mapping):
            return errors[0]

    if payload.get("error_code") is not None or payload.get("category") is not None:
        return payload
    return None


def _summary(payload: Mapping[str, Any]) -> Mapping[str, Any]:
    details = payload.get("error_details")
    if isinstance(details, Mapping):
        summary = details.get("error_summary")
        if isinstance(summary, Mapping):
            return summary
    return {}


def _from_payload(
    payload: Mapping[str, Any],
    status_code: Optional[int],
    fallback_message: Optional[str],
) -> ClassifiedError:
    structured = _structured_error(payload) or {}
    summary = _summary(payload)

    if status_code is None:
        status_code = _as_int_status(payload.get("status_code"))

    category = _parse_category(structured.get("category"))
    if category is None and status_code is not None:
        category = category_for_status(status_code)
    if category is None:
        category = ErrorCategory.SYSTEM

    code = _text(structured.get("error_code"))
    if code is None:
        code = f"HTTP_{status_code}" if status_code is not None else "UNKNOWN_ERROR"

    retryable = _as_bool(structured.get("retry"))
    if retryable is None:
        retryable = _as_bool(summary.get("can_retry"))
    if retryable is None:
        retryable = category.default_retryable

    actionable = _as_bool(structured.get("actionable"))
    if actionable is None:
        actionable = _as_bool(summary.get("actionable"))
    if actionable is None:
        actionable = category.default_actionable

    user_message = (
        _text(structured.get("user_message"))
        or _text(structured.get("message"))
        or _text(payload.get("error"))
        or _text(payload.get("message"))
        or fallback_message
        or _DEFAULT_MESSAGES[category]
    )

    return ClassifiedError(
        code=code,
        category=category,
        user_message=user_message,
        retryable=retryable,
        actionable=actionable,
    )


def _as_int_status(value: Any) -> Optional[int]:
    if isinstance(value, int) and not isinstance(value, bool):
        return value
    return None


def _network_error(message: Optional[str] = None) -> ClassifiedError:
    return ClassifiedError(
        code="NETWORK_ERROR",
        category=ErrorCategory.NETWORK,
        user_message=message or _DEFAULT_MESSAGES[ErrorCategory.NETWORK],
        retryable=True,
        actionable=False,
    )


def _unknown_error(message: Optional[str] = None) -> ClassifiedError:
    return ClassifiedError(
        code="UNKNOWN_ERROR",
        category=ErrorCategory.SYSTEM,
        user_message=message or GENERIC_MESSAGE,
        retryable=True,
        actionable=False,
    )


def _classify(raw: Any) -> ClassifiedError:
    if isinstance(raw, ClassifiedError):
        return raw

    if raw is None:
        return _unknown_error()

    if isinstance(raw, str):
        return _unknown_error(_text(raw))

    if isinstance(raw, Mapping):
        return _from_payload(raw, None, None)

    if isinstance(raw, APIClientError):
        payload = raw.payload if isinstance(raw.payload, Mapping) else {}
        if raw.status_code is None and isinstance(raw, NetworkError) and not payload:
            return _network_error(_text(str(raw)))
        if raw.status_code is None and not _structured_error(payload):
            return _unknown_error(_text(str(raw)))
        return _from_payload(payload, raw.status_code, None)

    if isinstance(raw, httpx.HTTPStatusError):
        payload = {}
        try:
            body = raw.response.json()
            payload = body if isinstance(body, Mapping) else {}
        except ValueError:
            pass
        return _from_payload(payload, raw.response.status_code, None)

    if isinstance(raw, (httpx.TransportError, ConnectionError, TimeoutError)):
        return _network_error()

    return _unknown_error()


def classify(raw: Any) -> ClassifiedError:
    """Classify an arbitrary failure. Never raises."""
    try:
        return _classify(raw)
    except Exception as e:
        logger.warning(f"Error classification failed, using generic error: {e}")
        return _unknown_error()
