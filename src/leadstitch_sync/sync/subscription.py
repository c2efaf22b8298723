"""Scoped subscriptions with a single idempotent teardown."""

import logging
from typing import Callable, List, Union

logger = logging.getLogger(__name__)

Teardown = Callable[[], None]


class Subscription:
    """Aggregates teardown callables behind one idempotent ``stop()``.

    Every start/connect/on call returns one of these; owners add child
    subscriptions or plain callables and release them all with a single stop.
    Teardowns run once, newest first. A teardown added after stop runs
    immediately.
    """

    def __init__(self, *teardowns: Union[Teardown, "Subscription"]):
        self._teardowns: List[Teardown] = []
        self._stopped = False
        for teardown in teardowns:
            self.add(teardown)

    @property
    def stopped(self) -> bool:
        return self._stopped

    def add(self, teardown: Union[Teardown, "Subscription"]) -> "Subscription":
        callback = teardown.stop if isinstance(teardown, Subscription) else teardown
        if self._stopped:
            self._run(callback)
        else:
            self._teardowns.append(callback)
        return self

    def stop(self) -> None:
        if self._stopped:
            return
        self._stopped = True
        teardowns, self._teardowns = self._teardowns, []
        for callback in reversed(teardowns):
            self._run(callback)

    @staticmethod
    def _run(callback: Teardown) -> None:
        try:
            callback()
        except Exception as e:
            logger.warning(f"Error during subscription teardown: {e}")

    def __enter__(self) -> "Subscription":
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.stop()
