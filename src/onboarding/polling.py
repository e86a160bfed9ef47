"""Retry-with-deadline primitive.

The only place a run waits on wall-clock time. The clock and sleep
functions are injectable so the loop can be driven by a fake clock.
"""

from __future__ import annotations

import logging
import time
from collections.abc import Callable
from dataclasses import dataclass

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PollResult:
    """Result of a bounded poll."""

    satisfied: bool
    attempts: int
    elapsed_seconds: float

    def __bool__(self) -> bool:
        return self.satisfied


def poll_until(
    check: Callable[[], bool],
    *,
    interval_seconds: float,
    timeout_seconds: float,
    clock: Callable[[], float] = time.monotonic,
    sleep: Callable[[float], None] = time.sleep,
) -> PollResult:
    """Call ``check`` every ``interval_seconds`` until it returns True.

    ``check`` is only called while the clock is strictly before the deadline,
    so the number of attempts is bounded by roughly timeout / interval. A
    check that returns True only after the deadline has passed does not count.
    Exceptions raised by ``check`` propagate to the caller.

    Args:
        check: Predicate to evaluate on each attempt.
        interval_seconds: Fixed delay between attempts.
        timeout_seconds: Wall-clock bound measured from the call.
        clock: Monotonic clock returning seconds.
        sleep: Blocking sleep function.

    Returns:
        PollResult with ``satisfied`` True iff ``check`` succeeded before the deadline.
    """
    if interval_seconds <= 0:
        raise ValueError("interval_seconds must be positive")
    if timeout_seconds <= 0:
        raise ValueError("timeout_seconds must be positive")

    start = clock()
    deadline = start + timeout_seconds
    attempts = 0

    while clock() < deadline:
        attempts += 1
        if check():
            now = clock()
            if now < deadline:
                return PollResult(satisfied=True, attempts=attempts, elapsed_seconds=now - start)
            break
        sleep(interval_seconds)

    logger.debug(
        "Poll deadline reached",
        extra={"attempts": attempts, "timeout_seconds": timeout_seconds},
    )
    return PollResult(satisfied=False, attempts=attempts, elapsed_seconds=clock() - start)
