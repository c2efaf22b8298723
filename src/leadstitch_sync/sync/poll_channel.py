"""Poll Channel: pull-based status source.

Fetches a job's status on a fixed interval until told to stop. The channel has
no notion of terminal states; the caller decides when to stop it. Transient
fetch failures are reported and polling continues. A 404 (job no longer known
to the server) is a hard stop reported separately.
"""

import asyncio
import logging
from typing import Any, Awaitable, Callable, Dict, Optional

from ..api_clients.exceptions import JobNotFoundError
from .models import StatusSnapshot
from .snapshot_parser import parse_snapshot
from .subscription import Subscription

logger = logging.getLogger(__name__)

FetchStatus = Callable[[str], Awaitable[Dict[str, Any]]]
SnapshotHandler = Callable[[StatusSnapshot], None]
ErrorHandler = Callable[[Exception], None]
NotFoundHandler = Callable[[str], None]


class PollChannel:
    """Interval-driven status source backed by a status fetch coroutine.

    Only one poll loop runs per channel; starting again stops the previous
    loop. A generation counter, bumped on every start and stop, discards
    responses from requests that were in flight when the loop was stopped.
    """

    def __init__(self, fetch_status: FetchStatus):
        """Initialize poll channel.

        Args:
            fetch_status: Coroutine returning the raw status payload for a job
                id; raises JobNotFoundError when the job is unknown
        """
        self._fetch_status = fetch_status
        self._generation = 0
        self._loop_task: Optional[asyncio.Task] = None
        self._inflight: Optional[asyncio.Task] = None
        self._subscription: Optional[Subscription] = None

    @property
    def is_polling(self) -> bool:
        return self._loop_task is not None and not self._loop_task.done()

    def start(
        self,
        job_id: str,
        interval: float,
        on_snapshot: SnapshotHandler,
        on_error: ErrorHandler,
        on_not_found: Optional[NotFoundHandler] = None,
    ) -> Subscription:
        """Start polling a job.

        Fetches once immediately and then every ``interval`` seconds.

        Args:
            job_id: Job to poll
            interval: Seconds between fetches
            on_snapshot: Called with each parsed snapshot
            on_error: Called with each fetch or parse failure
            on_not_found: Called once when the server reports the job unknown

        Returns:
            Subscription whose stop() ends polling
        """
        if interval <= 0:
            raise ValueError("interval must be positive")

        if self._subscription is not None:
            self._subscription.stop()

        self._generation += 1
        generation = self._generation
        logger.debug(f"Starting poll loop for job {job_id} every {interval}s")

        self._loop_task = asyncio.get_running_loop().create_task(
            self._run(job_id, interval, generation, on_snapshot, on_error, on_not_found)
        )
        subscription = Subscription(lambda: self._stop(generation))
        self._subscription = subscription
        return subscription

    def stop(self) -> None:
        """Stop the current poll loop, if any. Safe to call repeatedly."""
        if self._subscription is not None:
            self._subscription.stop()

    def _stop(self, generation: int) -> None:
        if generation != self._generation:
            return
        self._generation += 1
        self._subscription = None
        if self._loop_task is not None and not self._loop_task.done():
            self._loop_task.cancel()
        inflight = self._inflight
        if (
            inflight is not None
            and not inflight.done()
            and inflight is not asyncio.current_task()
        ):
            inflight.cancel()
        self._loop_task = None
        self._inflight = None
        logger.debug("Poll loop stopped")

    def _is_current(self, generation: int) -> bool:
        return generation == self._generation

    async def _run(
        self,
        job_id: str,
        interval: float,
        generation: int,
        on_snapshot: SnapshotHandler,
        on_error: ErrorHandler,
        on_not_found: Optional[NotFoundHandler],
    ) -> None:
        loop = asyncio.get_running_loop()
        while self._is_current(generation):
            if self._inflight is None or self._inflight.done():
                self._inflight = loop.create_task(
                    self._fetch_once(
                        job_id, generation, on_snapshot, on_error, on_not_found
                    )
                )
            else:
                logger.debug(f"Previous status fetch for job {job_id} still running, skipping tick")
            await asyncio.sleep(interval)

    async def _fetch_once(
        self,
        job_id: str,
        generation: int,
        on_snapshot: SnapshotHandler,
        on_error: ErrorHandler,
        on_not_found: Optional[NotFoundHandler],
    ) -> None:
        try:
            raw = await self._fetch_status(job_id)
            snapshot = parse_snapshot(raw)
        except asyncio.CancelledError:
            raise
        except JobNotFoundError:
            if not self._is_current(generation):
                return
            logger.info(f"Job {job_id} no longer exists on the server, stopping poll loop")
            self._stop(generation)
            if on_not_found is not None:
                on_not_found(job_id)
            return
        except Exception as e:
            if not self._is_current(generation):
                return
            logger.warning(f"Status fetch for job {job_id} failed: {e}")
            on_error(e)
            return

        if not self._is_current(generation):
            logger.debug(f"Discarding stale status response for job {job_id}")
            return
        on_snapshot(snapshot)
