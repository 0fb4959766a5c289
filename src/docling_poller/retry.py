"""
Bounded retry loop used by the task poller.

`retry_until` keeps calling an operation until its value satisfies a terminal
predicate, the attempt budget runs out, or the optional deadline would be
crossed by the next wait. Sleep and clock are injectable so callers can test
without waiting in real time.
"""
from __future__ import annotations

import time
from dataclasses import dataclass
from typing import Callable, Generic, Optional, Protocol, TypeVar

T = TypeVar("T")


class BackoffPolicy(Protocol):
    def delay(self, attempt: int) -> float:
        ...


@dataclass(frozen=True)
class FixedBackoff:
    interval_seconds: float

    def __post_init__(self) -> None:
        if self.interval_seconds < 0:
            raise ValueError("interval_seconds must be >= 0")

    def delay(self, attempt: int) -> float:
        return self.interval_seconds


class AttemptsExhausted(Exception, Generic[T]):
    def __init__(self, last_value: T, attempts: int, *, deadline_hit: bool = False):
        reason = "deadline reached" if deadline_hit else "attempt budget exhausted"
        super().__init__(f"{reason} after {attempts} attempt(s)")
        self.last_value = last_value
        self.attempts = attempts
        self.deadline_hit = deadline_hit


def retry_until(
    operation: Callable[[], T],
    is_terminal: Callable[[T], bool],
    *,
    max_attempts: int,
    backoff: BackoffPolicy,
    sleep: Callable[[float], None] = time.sleep,
    clock: Callable[[], float] = time.monotonic,
    deadline_seconds: Optional[float] = None,
    on_attempt: Optional[Callable[[int, T], None]] = None,
) -> tuple[T, int]:
    """
    Returns (terminal value, attempts used). Raises AttemptsExhausted otherwise.
    Exceptions from `operation` propagate untouched.
    """
    if max_attempts < 1:
        raise ValueError("max_attempts must be >= 1")

    started = clock()
    attempt = 0

    while True:
        attempt += 1
        value = operation()
        if on_attempt is not None:
            on_attempt(attempt, value)

        if is_terminal(value):
            return value, attempt

        if attempt >= max_attempts:
            raise AttemptsExhausted(value, attempt)

        wait = backoff.delay(attempt)
        if deadline_seconds is not None and clock() + wait - started > deadline_seconds:
            raise AttemptsExhausted(value, attempt, deadline_hit=True)

        sleep(wait)
