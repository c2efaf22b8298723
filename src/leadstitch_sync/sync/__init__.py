"""Job progress synchronization: channels, reducer and controller."""

from .completion import (
    AutoEnrichEmailsHook,
    CompletionHook,
    CompletionHookFailure,
    RefreshResourceHook,
    run_completion_hook,
)
from .controller import JobAlreadyActiveError, SyncController
from .error_classifier import classify
from .factories import create_campaign_send_sync, create_profile_search_sync
from .handle_store import HandleStoreError, HandleStoreLockTimeoutError, JobHandleStore
from .models import (
    ClassifiedError,
    ConnectionState,
    ControllerState,
    ErrorCategory,
    JobHandle,
    JobPhase,
    JobState,
    JobStatus,
    LoginState,
    Notification,
    SourceKind,
    StatusSnapshot,
    StepId,
)
from .notifier import LoggingNotifier, Notifier, RecordingNotifier
from .poll_channel import PollChannel
from .push_channel import PushChannel
from .reducer import reduce
from .snapshot_parser import SnapshotParseError, parse_snapshot
from .subscription import Subscription

__all__ = [
    # Controller
    "SyncController",
    "JobAlreadyActiveError",
    "create_campaign_send_sync",
    "create_profile_search_sync",
    # Channels
    "PollChannel",
    "PushChannel",
    "Subscription",
    # State
    "reduce",
    "parse_snapshot",
    "SnapshotParseError",
    "classify",
    "JobHandleStore",
    "HandleStoreError",
    "HandleStoreLockTimeoutError",
    # Completion and notifications
    "CompletionHook",
    "CompletionHookFailure",
    "AutoEnrichEmailsHook",
    "RefreshResourceHook",
    "run_completion_hook",
    "Notifier",
    "LoggingNotifier",
    "RecordingNotifier",
    # Models
    "ClassifiedError",
    "ConnectionState",
    "ControllerState",
    "ErrorCategory",
    "JobHandle",
    "JobPhase",
    "JobState",
    "JobStatus",
    "LoginState",
    "Notification",
    "SourceKind",
    "StatusSnapshot",
    "StepId",
]
