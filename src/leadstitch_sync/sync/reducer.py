"""Status reducer: pure mapping from (previous state, snapshot) to next state.

Snapshots are absolute and may arrive duplicated or out of order from either
channel, so the reducer is idempotent and monotonic: terminal states are
fenced, steps never move backwards and progress never decreases.
"""

from typing import Any, Callable, Dict, Optional

from .error_classifier import classify
from .models import (
    ClassifiedError,
    JobPhase,
    JobState,
    JobStatus,
    StatusSnapshot,
    StepId,
)

Classifier = Callable[[Any], ClassifiedError]


def clamp_progress(value: float) -> float:
    return max(0.0, min(100.0, float(value)))


def derive_progress(counters: Dict[str, int]) -> Optional[float]:
    """Derive a percentage from sent/total counters when possible."""
    total = counters.get("total")
    sent = counters.get("sent")
    if not total or total <= 0 or sent is None:
        return None
    return float(min(100, round(sent / total * 100)))


def _next_step(prev: Optional[StepId], reported: Optional[StepId]) -> Optional[StepId]:
    if reported is None:
        return prev
    if prev is None or reported.index > prev.index:
        return reported
    return prev


_ACTIVE_PHASES = (
    JobPhase.IDLE,
    JobPhase.INITIALIZING,
    JobPhase.LOGGING_IN,
    JobPhase.LOGGED_IN,
    JobPhase.RUNNING,
)


def _reported_phase(status: Optional[JobStatus], step: Optional[StepId]) -> Optional[JobPhase]:
    if step is not None:
        phase = JobPhase.for_step(step)
        # A completed step without a terminal status is still running.
        return phase if phase in _ACTIVE_PHASES else JobPhase.RUNNING
    if status == JobStatus.PENDING:
        return JobPhase.INITIALIZING
    if status == JobStatus.RUNNING:
        return JobPhase.RUNNING
    return None


def _non_terminal_phase(
    prev: JobState, status: Optional[JobStatus], step: Optional[StepId]
) -> JobPhase:
    """Advance the phase along the step ordering; stale reports never move it back."""
    current = prev.phase if prev.phase in _ACTIVE_PHASES else JobPhase.IDLE
    reported = _reported_phase(status, step)
    if reported is None:
        return JobPhase.INITIALIZING if current == JobPhase.IDLE else current
    if _ACTIVE_PHASES.index(reported) > _ACTIVE_PHASES.index(current):
        return reported
    return current


def reduce(
    prev: JobState, snapshot: StatusSnapshot, classifier: Classifier = classify
) -> JobState:
    """Fold one snapshot into the job state.

    Returns ``prev`` itself when the snapshot changes nothing, so callers can
    detect no-op updates with an identity check.
    """
    if prev.is_terminal:
        return prev

    counters = dict(prev.counters)
    counters.update(snapshot.counters)

    step = _next_step(prev.current_step, snapshot.step)
    step_advanced = snapshot.step is not None and step == snapshot.step
    step_message = snapshot.step_message if step_advanced or snapshot.step is None else None
    if step_message is None:
        step_message = prev.step_message

    progress = prev.progress
    if snapshot.progress is not None:
        candidate: Optional[float] = clamp_progress(snapshot.progress)
    else:
        candidate = derive_progress(counters)
    if candidate is not None:
        progress = max(progress, candidate)

    login_state = snapshot.login_state if snapshot.login_state is not None else prev.login_state

    status = snapshot.status
    last_error = prev.last_error
    is_terminal = False

    if status == JobStatus.COMPLETED:
        phase = JobPhase.COMPLETED
        step = StepId.COMPLETED
        progress = 100.0
        is_terminal = True
    elif status == JobStatus.FAILED:
        phase = JobPhase.FAILED
        last_error = classifier(snapshot.error)
        is_terminal = True
    else:
        phase = _non_terminal_phase(prev, status, snapshot.step)

    next_state = prev.evolve(
        phase=phase,
        job_id=prev.job_id or snapshot.job_id,
        progress=progress,
        counters=counters,
        current_step=step,
        step_message=step_message,
        login_state=login_state,
        last_error=last_error,
        is_terminal=is_terminal,
    )
    return prev if next_state == prev else next_state
