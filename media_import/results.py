"""
Per-item stage results and the single recovery policy for them.

Extraction, geocoding and transcoding never let an exception escape for a
single item. Each stage wraps its work with ``capture`` and turns a failure
into a fallback value with ``recover``, which logs one warning naming the
affected file or coordinate pair and counts the failure by kind.
"""

import logging
import threading
from collections import Counter
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Generic, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")


class ErrorKind(Enum):
    """Recoverable per-item failure categories."""
    EXTRACTION = "extraction"
    GEOCODE = "geocode"
    TRANSCODE = "transcode"


@dataclass
class StageResult(Generic[T]):
    """Outcome of one stage for one item: a value or a classified error."""
    value: T | None = None
    error_kind: ErrorKind | None = None
    error: str | None = None
    subject: str = ""

    @property
    def ok(self) -> bool:
        return self.error_kind is None

    @classmethod
    def success(cls, value: T, subject: str = "") -> "StageResult[T]":
        return cls(value=value, subject=subject)

    @classmethod
    def failure(
        cls,
        kind: ErrorKind,
        subject: str,
        error: str
    ) -> "StageResult[T]":
        return cls(error_kind=kind, error=error, subject=subject)


class ErrorTally:
    """Thread-safe failure counter shared by the stages of one run."""

    def __init__(self):
        self._counts: Counter = Counter()
        self._lock = threading.Lock()

    def record(self, kind: ErrorKind) -> None:
        with self._lock:
            self._counts[kind] += 1

    def count(self, kind: ErrorKind) -> int:
        with self._lock:
            return self._counts[kind]

    @property
    def total(self) -> int:
        with self._lock:
            return sum(self._counts.values())


def capture(
    kind: ErrorKind,
    subject: str,
    func: Callable[..., T],
    *args,
    **kwargs
) -> StageResult[T]:
    """
    Run a stage function, converting any exception into a failed result.

    Args:
        kind: Failure category reported if ``func`` raises.
        subject: File path or coordinate pair the stage works on.
        func: Stage function to call.

    Returns:
        StageResult holding either the return value or the error.
    """
    try:
        return StageResult.success(func(*args, **kwargs), subject=subject)
    except Exception as e:
        return StageResult.failure(kind, subject, f"{type(e).__name__}: {e}")


def recover(
    result: StageResult[T],
    fallback: Callable[[], T],
    tally: ErrorTally | None = None
) -> T:
    """
    Return the result value, or log the failure and return ``fallback()``.

    Args:
        result: Result produced by a stage.
        fallback: Builds the default value used in place of a failed stage.
        tally: Optional counter updated on failure.

    Returns:
        The stage value or the fallback value.
    """
    if result.ok:
        return result.value

    logger.warning(
        f"{result.error_kind.value} failed for {result.subject}: {result.error}"
    )
    if tally is not None:
        tally.record(result.error_kind)
    return fallback()
