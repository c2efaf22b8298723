"""Normalization boundary for raw status payloads.

Both channels hand every raw payload to ``parse_snapshot`` so the reducer never
has to sniff camelCase/snake_case variants or infer steps from loosely-typed
fields.
"""

import logging
import re
from typing import Any, Dict, Mapping, Optional

from .models import JobStatus, LoginState, StatusSnapshot, StepId

logger = logging.getLogger(__name__)


class SnapshotParseError(ValueError):
    """Raised when a payload cannot be interpreted as a status snapshot."""

    pass


_STATUS_ALIASES = {
    "pending": JobStatus.PENDING,
    "queued": JobStatus.PENDING,
    "waiting": JobStatus.PENDING,
    "in_progress": JobStatus.RUNNING,
    "processing": JobStatus.RUNNING,
    "running": JobStatus.RUNNING,
    "sending": JobStatus.RUNNING,
    "scraping": JobStatus.RUNNING,
    "active": JobStatus.RUNNING,
    "started": JobStatus.RUNNING,
    "completed": JobStatus.COMPLETED,
    "complete": JobStatus.COMPLETED,
    "done": JobStatus.COMPLETED,
    "finished": JobStatus.COMPLETED,
    "succeeded": JobStatus.COMPLETED,
    "success": JobStatus.COMPLETED,
    "sent": JobStatus.COMPLETED,
    "failed": JobStatus.FAILED,
    "error": JobStatus.FAILED,
    "cancelled": JobStatus.FAILED,
    "canceled": JobStatus.FAILED,
}

_STEP_ALIASES = {
    "pending": StepId.INITIALIZING,
    "queued": StepId.INITIALIZING,
    "initializing": StepId.INITIALIZING,
    "browser_ready": StepId.INITIALIZING,
    "logging_in": StepId.LOGGING_IN,
    "login": StepId.LOGGING_IN,
    "login_success": StepId.LOGGED_IN,
    "logged_in": StepId.LOGGED_IN,
    "scraping": StepId.RUNNING,
    "searching": StepId.RUNNING,
    "sending": StepId.RUNNING,
    "running": StepId.RUNNING,
    "completed": StepId.COMPLETED,
}

# Top-level integer fields treated as counters, after snake_casing
_COUNTER_FIELDS = {
    "total",
    "sent",
    "failed",
    "found",
    "delivered",
    "opened",
    "clicked",
    "replied",
    "bounced",
    "total_roles",
    "roles_completed",
}

_COUNTER_RENAMES = {"profiles_scraped": "found"}

_ITEM_KEYS = ("recipient_id", "item_id", "profile_id")

_CAMEL_RE = re.compile(r"(?<!^)(?=[A-Z])")


def _snake(key: str) -> str:
    return _CAMEL_RE.sub("_", key).lower()


def _normalized_keys(raw: Mapping[str, Any]) -> Dict[str, Any]:
    """Snake-case every key; an explicit snake_case key wins over its camelCase twin."""
    result: Dict[str, Any] = {}
    for key, value in raw.items():
        if not isinstance(key, str):
            continue
        snake = _snake(key)
        if snake == key or snake not in result:
            result[snake] = value
    return result


def _as_int(value: Any) -> Optional[int]:
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, float):
        return int(value)
    if isinstance(value, str):
        try:
            return int(float(value))
        except ValueError:
            return None
    return None


def _as_float(value: Any) -> Optional[float]:
    if isinstance(value, bool) or value is None:
        return None
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


def _parse_status(value: Any) -> Optional[JobStatus]:
    if not isinstance(value, str):
        return None
    status = _STATUS_ALIASES.get(value.strip().lower())
    if status is None:
        logger.debug(f"Ignoring unknown job status {value!r}")
    return status


def _parse_step(value: Any) -> Optional[StepId]:
    if not isinstance(value, str):
        return None
    return _STEP_ALIASES.get(value.strip().lower())


def _parse_counters(fields: Mapping[str, Any]) -> Dict[str, int]:
    counters: Dict[str, int] = {}

    for key, value in fields.items():
        name = _COUNTER_RENAMES.get(key, key)
        if name in _COUNTER_FIELDS:
            number = _as_int(value)
            if number is not None:
                counters[name] = number

    for nested_key in ("counters", "stats"):
        nested = fields.get(nested_key)
        if isinstance(nested, Mapping):
            for key, value in _normalized_keys(nested).items():
                number = _as_int(value)
                if number is not None:
                    counters[_COUNTER_RENAMES.get(key, key)] = number

    return counters


def _parse_login_state(fields: Mapping[str, Any]) -> Optional[LoginState]:
    outcome = fields.get("login_status")
    attempt = _as_int(fields.get("login_attempt"))
    max_attempts = _as_int(fields.get("login_max_attempts"))
    if outcome is None and attempt is None and max_attempts is None:
        return None
    return LoginState(
        attempt=attempt,
        max_attempts=max_attempts,
        outcome=str(outcome) if outcome is not None else None,
    )


def _parse_error(fields: Mapping[str, Any]) -> Optional[Dict[str, Any]]:
    error: Dict[str, Any] = {}
    details = fields.get("error_details")
    if isinstance(details, Mapping):
        error["error_details"] = dict(details)
    for key in ("error", "error_code", "category", "status_code"):
        if fields.get(key) is not None:
            error[key] = fields[key]
    return error or None


def parse_snapshot(raw: Any) -> StatusSnapshot:
    """Parse a raw status payload from either channel into a StatusSnapshot.

    Raises:
        SnapshotParseError: If the payload is not a mapping
    """
    if not isinstance(raw, Mapping):
        raise SnapshotParseError(
            f"Status payload must be an object, got {type(raw).__name__}"
        )

    fields = _normalized_keys(raw)

    step_details = fields.get("step_details")
    step_fields = (
        _normalized_keys(step_details) if isinstance(step_details, Mapping) else {}
    )

    step = _parse_step(fields.get("current_step")) or _parse_step(step_fields.get("step"))

    step_message = step_fields.get("message")
    if not isinstance(step_message, str) or not step_message:
        step_message = fields.get("message") if isinstance(fields.get("message"), str) else None

    progress = _as_float(fields.get("progress"))
    if progress is None:
        progress = _as_float(step_fields.get("progress"))

    job_id = fields.get("job_id")

    # Item-level updates (one recipient, one profile) carry the item's status
    status = None
    if not any(key in fields for key in _ITEM_KEYS):
        status = _parse_status(fields.get("status"))

    return StatusSnapshot(
        status=status,
        job_id=str(job_id) if job_id is not None else None,
        progress=progress,
        counters=_parse_counters(fields),
        step=step,
        step_message=step_message or None,
        login_state=_parse_login_state(fields),
        error=_parse_error(fields),
    )
