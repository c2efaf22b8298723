"""Sync Controller: owns one resource's job lifecycle.

Restores an in-flight job from the handle store, launches new jobs, picks the
status source (push when connected, poll otherwise), folds snapshots through
the reducer and, on the first terminal state, stops every source, clears the
handle and runs the completion hook exactly once.
"""

import asyncio
import logging
from typing import (
    Any,
    Awaitable,
    Callable,
    Dict,
    FrozenSet,
    Optional,
    Sequence,
    Set,
    Union,
)

from ..api_clients.base_client import TokenProvider
from ..api_clients.exceptions import JobNotFoundError
from ..api_clients.jobs_client import JobsAPIClient
from .completion import CompletionHook, run_completion_hook
from .error_classifier import classify
from .handle_store import HandleStoreError, JobHandleStore
from .models import (
    ConnectionState,
    ControllerState,
    JobPhase,
    JobState,
    Notification,
    SourceKind,
    StatusSnapshot,
)
from .notifier import LoggingNotifier, Notifier, error_notification
from .poll_channel import PollChannel
from .push_channel import PushChannel
from .reducer import reduce
from .snapshot_parser import parse_snapshot
from .subscription import Subscription

logger = logging.getLogger(__name__)

StateListener = Callable[[JobState], None]
Cleanup = Callable[[], Awaitable[Any]]


class JobAlreadyActiveError(Exception):
    """Raised when launching while a job for the resource is still active."""

    def __init__(self, resource_id: str, job_id: Optional[str]):
        self.resource_id = resource_id
        self.job_id = job_id
        super().__init__(
            f"Resource {resource_id} already has an active job ({job_id or 'launching'})"
        )


class SyncController:
    """Keeps the local JobState of one resource in sync with the server.

    The controller surface is state, not exceptions: launch failures, job
    failures and vanished jobs all show up in ``state`` and through the
    notifier. Only caller errors raise.
    """

    def __init__(
        self,
        resource_id: str,
        job_type: str,
        jobs_client: JobsAPIClient,
        handle_store: JobHandleStore,
        poll_channel: Optional[PollChannel] = None,
        push_channel: Optional[PushChannel] = None,
        notifier: Optional[Notifier] = None,
        completion_hook: Optional[CompletionHook] = None,
        poll_interval: float = 2.0,
        push_token: Union[str, TokenProvider, None] = None,
        room: Optional[str] = None,
        on_state_change: Optional[StateListener] = None,
        cleanups: Sequence[Cleanup] = (),
    ):
        """Initialize controller.

        Args:
            resource_id: Resource the job belongs to (requirement, campaign)
            job_type: Job type posted on launch
            jobs_client: REST client for launching and fetching jobs
            handle_store: Durable store of the in-flight job id
            poll_channel: Poll source (built from jobs_client if None)
            push_channel: Optional push source; poll only when None
            notifier: Receives user-facing notifications
            completion_hook: Run once per job on its terminal state
            poll_interval: Seconds between status fetches
            push_token: Token (or provider) used to authenticate the push channel
            room: Push room to join (defaults to resource_id)
            on_state_change: Called after every effective JobState change
            cleanups: Coroutines awaited at unmount to release owned resources
        """
        self.resource_id = str(resource_id)
        self.job_type = job_type
        self.jobs_client = jobs_client
        self.handle_store = handle_store
        self.poll_channel = poll_channel or PollChannel(jobs_client.get_job_status)
        self.push_channel = push_channel
        self.notifier: Notifier = notifier or LoggingNotifier()
        self.completion_hook = completion_hook
        self.poll_interval = poll_interval
        self.room = room or self.resource_id
        self.on_state_change = on_state_change

        self._push_token = push_token
        self._cleanups = list(cleanups)
        self._state = JobState.idle()
        self._controller_state = ControllerState.IDLE
        self._job_id: Optional[str] = None
        self._sources: Dict[SourceKind, Subscription] = {}
        self._teardown = Subscription()
        self._background: Set[asyncio.Task] = set()
        self._handle_writes: Set[asyncio.Task] = set()
        self._hook_task: Optional[asyncio.Task] = None
        self._completion_fired = False
        self._launching = False
        self._mounted = False
        self._disposed = False

    @property
    def state(self) -> JobState:
        return self._state

    @property
    def controller_state(self) -> ControllerState:
        return self._controller_state

    @property
    def job_id(self) -> Optional[str]:
        return self._job_id

    @property
    def active_sources(self) -> FrozenSet[SourceKind]:
        return frozenset(kind for kind, sub in self._sources.items() if not sub.stopped)

    async def mount(self) -> JobState:
        """Restore a persisted job, if any, then attach to the push channel.

        A restored job is polled while the push connection is still being
        opened; polling stops once push reports connected.
        """
        if self._disposed:
            raise RuntimeError("Controller has been unmounted")
        if self._mounted:
            return self._state
        self._mounted = True

        if self.push_channel is not None:
            self._teardown.add(
                self.push_channel.on_connection_state(self._on_connection_state)
            )

        job_id = await asyncio.to_thread(self.handle_store.load, self.resource_id)
        if job_id is None:
            logger.debug(f"No persisted job for resource {self.resource_id}")
        else:
            await self._restore(job_id)

        if self.push_channel is not None and not self._disposed:
            await self.push_channel.connect(self._current_push_token())
        return self._state

    async def launch(self, **params: Any) -> Optional[str]:
        """Launch a new job for the resource.

        Returns:
            The new job id, or None when the launch failed (see ``state``)

        Raises:
            JobAlreadyActiveError: If a job is still restoring or syncing
        """
        if self._disposed:
            raise RuntimeError("Controller has been unmounted")
        if self._launching or self._controller_state not in (
            ControllerState.IDLE,
            ControllerState.TERMINAL,
        ):
            raise JobAlreadyActiveError(self.resource_id, self._job_id)

        self._launching = True
        try:
            try:
                job_id = await self.jobs_client.launch_job(
                    self.job_type, self.resource_id, **params
                )
            except Exception as e:
                error = classify(e)
                logger.warning(
                    f"Launching {self.job_type} job for {self.resource_id} failed: {error.code}"
                )
                self._set_state(JobState.launch_failed(error))
                self._set_controller_state(ControllerState.TERMINAL)
                self._notify(error_notification("Could not start job", error))
                return None

            try:
                await asyncio.to_thread(self.handle_store.save, self.resource_id, job_id)
            except HandleStoreError as e:
                logger.warning(f"Could not persist job handle for {self.resource_id}: {e}")
        finally:
            self._launching = False

        if self._disposed:
            return job_id

        self._stop_sources()
        self._job_id = job_id
        self._completion_fired = False
        self._set_state(JobState.initializing(job_id))
        self._begin_syncing()
        return job_id

    async def unmount(self) -> None:
        """Stop every source and make late callbacks no-ops.

        The persisted handle is kept so a later mount restores the job.
        """
        if self._disposed:
            return
        self._disposed = True
        self._stop_sources()
        self._teardown.stop()

        if self._background:
            await asyncio.gather(*list(self._background), return_exceptions=True)
        await self.wait_for_completion()

        for cleanup in self._cleanups:
            try:
                await cleanup()
            except Exception as e:
                logger.warning(f"Cleanup after unmount failed: {e}")
        logger.debug(f"Controller for {self.resource_id} unmounted")

    async def wait_for_completion(self) -> None:
        """Wait for pending handle writes and a running completion hook to finish."""
        if self._handle_writes:
            await asyncio.gather(*list(self._handle_writes), return_exceptions=True)
        if self._hook_task is not None:
            await self._hook_task

    async def __aenter__(self) -> "SyncController":
        await self.mount()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.unmount()

    async def _restore(self, job_id: str) -> None:
        self._job_id = job_id
        self._completion_fired = False
        self._set_controller_state(ControllerState.RESTORING)
        logger.info(f"Restoring job {job_id} for resource {self.resource_id}")

        try:
            raw = await self.jobs_client.get_job_status(job_id)
            snapshot = parse_snapshot(raw)
        except JobNotFoundError:
            self._on_not_found(job_id)
            return
        except Exception as e:
            if self._disposed:
                return
            logger.warning(
                f"Could not fetch status of restored job {job_id}, polling will retry: {e}"
            )
            self._set_state(JobState.initializing(job_id))
            self._begin_syncing()
            return

        if self._disposed:
            return
        self._set_state(JobState.initializing(job_id))
        self._on_snapshot(snapshot, SourceKind.POLL)
        if self._controller_state == ControllerState.RESTORING:
            self._begin_syncing()

    def _begin_syncing(self) -> None:
        self._set_controller_state(ControllerState.SYNCING)
        if self.push_channel is not None:
            self._start_push()
        self._select_transport()

    def _select_transport(self) -> None:
        if self._disposed or self._controller_state != ControllerState.SYNCING:
            return
        if (
            self.push_channel is not None
            and self.push_channel.connection_state == ConnectionState.CONNECTED
        ):
            self._stop_source(SourceKind.POLL)
        else:
            self._start_poll()

    def _start_push(self) -> None:
        if self._is_active(SourceKind.PUSH):
            return
        push = self.push_channel
        room = self.room
        subscription = Subscription(
            push.on_snapshot(lambda s: self._on_snapshot(s, SourceKind.PUSH)),
            lambda: self._spawn(push.leave_room(room)),
        )
        self._sources[SourceKind.PUSH] = subscription
        self._spawn(push.join_room(room))
        logger.debug(f"Push source active for job {self._job_id} in room {room}")

    def _start_poll(self) -> None:
        if self._is_active(SourceKind.POLL):
            return
        self._sources[SourceKind.POLL] = self.poll_channel.start(
            self._job_id,
            self.poll_interval,
            on_snapshot=lambda s: self._on_snapshot(s, SourceKind.POLL),
            on_error=self._on_poll_error,
            on_not_found=self._on_not_found,
        )
        logger.debug(f"Poll source active for job {self._job_id}")

    def _is_active(self, kind: SourceKind) -> bool:
        subscription = self._sources.get(kind)
        return subscription is not None and not subscription.stopped

    def _stop_source(self, kind: SourceKind) -> None:
        subscription = self._sources.pop(kind, None)
        if subscription is not None:
            subscription.stop()
            logger.debug(f"{kind.value} source stopped for job {self._job_id}")

    def _stop_sources(self) -> None:
        for kind in list(self._sources):
            self._stop_source(kind)

    def _on_snapshot(self, snapshot: StatusSnapshot, source: SourceKind) -> None:
        if self._disposed or self._controller_state not in (
            ControllerState.RESTORING,
            ControllerState.SYNCING,
        ):
            return
        if snapshot.job_id and self._job_id and snapshot.job_id != self._job_id:
            logger.debug(
                f"Discarding {source.value} snapshot for job {snapshot.job_id}, "
                f"tracking {self._job_id}"
            )
            return

        next_state = reduce(self._state, snapshot)
        if next_state is self._state:
            return
        self._set_state(next_state)
        if next_state.is_terminal:
            self._enter_terminal()

    def _on_poll_error(self, error: Exception) -> None:
        if self._disposed:
            return
        logger.debug(f"Transient status error for job {self._job_id}: {classify(error).code}")

    def _on_connection_state(self, connection_state: ConnectionState) -> None:
        if self._disposed or self._controller_state != ControllerState.SYNCING:
            return
        logger.info(
            f"Push connection {connection_state.value}, re-selecting status source "
            f"for job {self._job_id}"
        )
        self._select_transport()

    def _on_not_found(self, job_id: str) -> None:
        if self._disposed or job_id != self._job_id:
            return
        logger.info(f"Job {job_id} no longer exists, resetting resource {self.resource_id}")
        self._stop_sources()
        self._clear_handle()
        self._job_id = None
        self._set_state(JobState.idle())
        self._set_controller_state(ControllerState.IDLE)
        self._notify(
            Notification(
                level="warning",
                title="Job not found",
                message="The previous job no longer exists. Please start a new one.",
            )
        )

    def _enter_terminal(self) -> None:
        self._stop_sources()
        self._set_controller_state(ControllerState.TERMINAL)
        self._clear_handle()

        state = self._state
        if state.phase == JobPhase.COMPLETED:
            logger.info(f"Job {self._job_id} completed")
            self._notify(
                Notification(
                    level="success",
                    title="Job completed",
                    message="The job finished successfully.",
                )
            )
        elif state.last_error is not None:
            logger.info(f"Job {self._job_id} failed: {state.last_error.code}")
            self._notify(error_notification("Job failed", state.last_error))

        self._fire_completion(state)

    def _fire_completion(self, state: JobState) -> None:
        if self._completion_fired:
            return
        self._completion_fired = True
        if self.completion_hook is None:
            return
        self._hook_task = asyncio.get_running_loop().create_task(
            run_completion_hook(self.completion_hook, self.resource_id, self._job_id, state)
        )

    def _clear_handle(self) -> None:
        task = asyncio.get_running_loop().create_task(self._clear_stored_handle(self._job_id))
        self._handle_writes.add(task)
        task.add_done_callback(self._handle_writes.discard)

    async def _clear_stored_handle(self, job_id: Optional[str]) -> None:
        # Only this job's handle: a newer launch may already have replaced it.
        try:
            await asyncio.to_thread(self.handle_store.clear, self.resource_id, job_id)
        except HandleStoreError as e:
            logger.warning(f"Could not clear job handle for {self.resource_id}: {e}")

    def _notify(self, notification: Notification) -> None:
        try:
            self.notifier.notify(notification)
        except Exception as e:
            logger.warning(f"Notifier failed on {notification.title!r}: {e}")

    def _set_state(self, state: JobState) -> None:
        self._state = state
        if self.on_state_change is not None:
            try:
                self.on_state_change(state)
            except Exception as e:
                logger.warning(f"State change listener failed: {e}")

    def _set_controller_state(self, controller_state: ControllerState) -> None:
        if controller_state != self._controller_state:
            logger.debug(
                f"Controller {self.resource_id}: {self._controller_state.value} -> "
                f"{controller_state.value}"
            )
        self._controller_state = controller_state

    def _current_push_token(self) -> Optional[str]:
        if callable(self._push_token):
            return self._push_token()
        return self._push_token

    def _spawn(self, coro: Awaitable[Any]) -> None:
        task = asyncio.get_running_loop().create_task(coro)
        self._background.add(task)
        task.add_done_callback(self._background.discard)
