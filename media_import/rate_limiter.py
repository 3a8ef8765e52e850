"""
Serialized dispatch gate for rate-limited outbound requests.

The gate is a leaky bucket of capacity one: each dispatch start is spaced
at least ``interval`` seconds after the previous one. Callers are served
strictly in arrival order no matter how many worker threads are waiting.
"""

import logging
import threading
import time
from typing import Callable

logger = logging.getLogger(__name__)


class DispatchGate:
    """
    FIFO gate allowing one dispatch start per ``interval`` seconds.

    Attributes:
        interval: Minimum spacing, in seconds, between dispatch starts.
        next_available_dispatch_time: Clock value before which no further
            dispatch may start.
    """

    def __init__(
        self,
        interval: float = 1.1,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], None] = time.sleep
    ):
        """
        Initialize the gate.

        Args:
            interval: Minimum seconds between consecutive dispatch starts.
            clock: Monotonic time source.
            sleep: Function used to wait for the next slot.
        """
        if interval < 0:
            raise ValueError(f"Interval must not be negative: {interval}")

        self.interval = interval
        self._clock = clock
        self._sleep = sleep
        self._condition = threading.Condition()
        self._next_ticket = 0
        self._now_serving = 0
        self.next_available_dispatch_time = float("-inf")
        self.dispatch_count = 0

    def acquire(self) -> float:
        """
        Block until this caller may start a dispatch, then free the gate.

        Returns:
            Clock value at which the caller's dispatch slot started.
        """
        self._wait_turn()
        try:
            return self._start_slot()
        finally:
            self._pass_turn()

    def run(self, func: Callable, *args, **kwargs):
        """
        Call ``func`` in the next slot, holding the gate until it returns.

        Dispatches made through ``run`` never overlap, so the start of one
        request is always at least ``interval`` after the start of the one
        before it.
        """
        self._wait_turn()
        try:
            self._start_slot()
            return func(*args, **kwargs)
        finally:
            self._pass_turn()

    def _wait_turn(self) -> None:
        with self._condition:
            ticket = self._next_ticket
            self._next_ticket += 1
            while ticket != self._now_serving:
                self._condition.wait()

    def _start_slot(self) -> float:
        # Only the ticket holder calls this, so the slot state is ours
        delay = self.next_available_dispatch_time - self._clock()
        if delay > 0:
            logger.debug(f"Dispatch gate waiting {delay:.2f}s")
            self._sleep(delay)
        started = self._clock()
        self.next_available_dispatch_time = started + self.interval
        self.dispatch_count += 1
        return started

    def _pass_turn(self) -> None:
        with self._condition:
            self._now_serving += 1
            self._condition.notify_all()

