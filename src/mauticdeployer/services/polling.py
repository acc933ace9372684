"""Bounded wait-with-timeout primitive shared by readiness checks."""

import time
from typing import Callable


def wait_until(
    predicate: Callable[[], bool],
    interval: float,
    timeout: float,
    sleep: Callable[[float], None] = time.sleep,
    clock: Callable[[], float] = time.monotonic,
) -> bool:
    """Poll ``predicate`` until it returns true or ``timeout`` seconds elapse.

    The predicate is evaluated immediately and then once per ``interval``.
    Returns ``False`` once the budget is exhausted; it never raises on timeout,
    so callers decide whether an expired wait is fatal.
    """
    start = clock()
    while True:
        if predicate():
            return True

        elapsed = clock() - start
        if elapsed >= timeout:
            return False

        sleep(min(interval, timeout - elapsed))
