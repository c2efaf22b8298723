"""Data model for job progress synchronization."""

from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Mapping, Optional


class JobStatus(str, Enum):
    """Raw job status reported by the server, after normalization."""

    PENDING = "pending"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in (JobStatus.COMPLETED, JobStatus.FAILED)


class StepId(str, Enum):
    """Ordered job steps. Declaration order is the progression order."""

    INITIALIZING = "initializing"
    LOGGING_IN = "logging_in"
    LOGGED_IN = "logged_in"
    RUNNING = "running"
    COMPLETED = "completed"

    @property
    def index(self) -> int:
        return _STEP_ORDER.index(self)


_STEP_ORDER = list(StepId)


class JobPhase(str, Enum):
    """Phase of the locally derived job state."""

    IDLE = "idle"
    INITIALIZING = "initializing"
    LOGGING_IN = "logging_in"
    LOGGED_IN = "logged_in"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"

    @classmethod
    def for_step(cls, step: StepId) -> "JobPhase":
        return cls(step.value)


class ConnectionState(str, Enum):
    """Push channel connection state."""

    CONNECTED = "connected"
    DISCONNECTED = "disconnected"
    RECONNECTING = "reconnecting"


class ControllerState(str, Enum):
    """Lifecycle state of a SyncController."""

    IDLE = "idle"
    RESTORING = "restoring"
    SYNCING = "syncing"
    TERMINAL = "terminal"


class SourceKind(str, Enum):
    """Tag of an active status source."""

    PUSH = "push"
    POLL = "poll"


class ErrorCategory(str, Enum):
    AUTH = "auth"
    RATE_LIMIT = "rate_limit"
    NETWORK = "network"
    SYSTEM = "system"
    USER = "user"

    @property
    def default_retryable(self) -> bool:
        return self in (ErrorCategory.NETWORK, ErrorCategory.RATE_LIMIT, ErrorCategory.SYSTEM)

    @property
    def default_actionable(self) -> bool:
        return self in (ErrorCategory.AUTH, ErrorCategory.USER)


@dataclass(frozen=True)
class ClassifiedError:
    """A failure turned into a typed, user-actionable classification."""

    code: str
    category: ErrorCategory
    user_message: str
    retryable: bool
    actionable: bool


@dataclass(frozen=True)
class LoginState:
    """Login progress of a scraping job."""

    attempt: Optional[int] = None
    max_attempts: Optional[int] = None
    outcome: Optional[str] = None  # pending, success, failed, challenge_required


@dataclass(frozen=True)
class StatusSnapshot:
    """One normalized point-in-time status report for a job.

    Transient: snapshots are reduced into a JobState and never persisted.
    """

    status: Optional[JobStatus] = None
    job_id: Optional[str] = None
    progress: Optional[float] = None
    counters: Mapping[str, int] = field(default_factory=dict)
    step: Optional[StepId] = None
    step_message: Optional[str] = None
    login_state: Optional[LoginState] = None
    error: Optional[Dict[str, Any]] = None


@dataclass(frozen=True)
class JobState:
    """Normalized job state derived from a stream of snapshots.

    Once is_terminal is True the state is fenced: nothing mutates it further.
    """

    phase: JobPhase = JobPhase.IDLE
    job_id: Optional[str] = None
    progress: float = 0.0
    counters: Mapping[str, int] = field(default_factory=dict)
    current_step: Optional[StepId] = None
    step_message: Optional[str] = None
    login_state: Optional[LoginState] = None
    last_error: Optional[ClassifiedError] = None
    is_terminal: bool = False

    @classmethod
    def idle(cls) -> "JobState":
        return cls()

    @classmethod
    def initializing(cls, job_id: Optional[str]) -> "JobState":
        return cls(phase=JobPhase.INITIALIZING, job_id=job_id)

    @classmethod
    def launch_failed(cls, error: ClassifiedError) -> "JobState":
        """State surfaced when a job could not even be launched."""
        return cls(phase=JobPhase.FAILED, last_error=error, is_terminal=True)

    def evolve(self, **changes: Any) -> "JobState":
        return replace(self, **changes)


@dataclass(frozen=True)
class JobHandle:
    """Persisted identity of an in-flight job for one resource."""

    resource_id: str
    job_id: str
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))


@dataclass(frozen=True)
class Notification:
    """A user-facing message emitted through an injected Notifier."""

    level: str  # info, warning, error, success
    title: str
    message: str
    retryable: bool = False
