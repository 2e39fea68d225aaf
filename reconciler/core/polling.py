# reconciler/core/polling.py
import time
from typing import Callable


def wait_until(predicate: Callable[[], bool], timeout: float, interval: float) -> bool:
    """Polls ``predicate`` for a fixed window. Returns its last value."""
    deadline = time.monotonic() + timeout
    while True:
        if predicate():
            return True
        remaining = deadline - time.monotonic()
        if remaining <= 0:
            return False
        time.sleep(min(interval, remaining))
