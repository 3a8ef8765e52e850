"""
Bounded worker pool for CPU-bound pipeline work.

Metadata extraction and transcoding run here, one phase after the other.
Work starts in submission order; completion order is not guaranteed.
"""

import logging
from concurrent.futures import Future, ThreadPoolExecutor
from typing import Callable, Iterable, TypeVar

from media_import.config import default_concurrency

logger = logging.getLogger(__name__)

T = TypeVar("T")
R = TypeVar("R")


class ConcurrencyScheduler:
    """
    Runs units of work on at most ``max_workers`` threads at once.

    Attributes:
        max_workers: Upper bound on concurrently executing units.
    """

    def __init__(self, max_workers: int | None = None):
        self.max_workers = max_workers if max_workers is not None else default_concurrency()
        if self.max_workers <= 0:
            raise ValueError(f"max_workers must be positive: {self.max_workers}")
        self._executor = ThreadPoolExecutor(
            max_workers=self.max_workers,
            thread_name_prefix="media-import"
        )
        logger.debug(f"Scheduler started with {self.max_workers} workers")

    def submit(self, func: Callable[..., R], *args, **kwargs) -> Future:
        """Queue one unit of work and return its future."""
        return self._executor.submit(func, *args, **kwargs)

    def map(self, func: Callable[[T], R], items: Iterable[T]) -> list[R]:
        """
        Run ``func`` over ``items`` and wait for every result.

        Returns:
            Results in submission order.

        Raises:
            Exception: The first exception raised by ``func``, after all
                submitted work has finished.
        """
        futures = [self.submit(func, item) for item in items]
        errors = [f.exception() for f in futures]
        for error in errors:
            if error is not None:
                raise error
        return [f.result() for f in futures]

    def shutdown(self) -> None:
        self._executor.shutdown(wait=True)
        logger.debug("Scheduler shut down")

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.shutdown()
        return False
