import logging
import random
import threading
import time
from contextlib import contextmanager

from pyenvoy.exceptions import LockTimeoutError

log = logging.getLogger(__name__)


def acquire_with_exponential_backoff(
    lock: threading.Lock,
    timeout: float,
    initial_delay: float = 0.1,
    factor: int = 2,
    max_delay: float = 2,
    jitter: float = 0.1
) -> bool:
    """
    Attempts to acquire a lock using exponential backoff with jitter.

    The lock is tried without blocking. While another thread holds it (for example
    during an in-flight gateway login) the caller sleeps for a delay that doubles on
    every failed attempt, plus a random jitter, until the lock is acquired or the
    total elapsed time exceeds the timeout.

    Args:
        lock (threading.Lock): The lock instance to acquire.
        timeout (float): Total time (in seconds) to keep trying.
        initial_delay (float, optional): First retry delay in seconds. Defaults to 0.1.
        factor (int, optional): Multiplier applied to the delay after each attempt. Defaults to 2.
        max_delay (float, optional): Upper bound for a single delay in seconds. Defaults to 2.
        jitter (float, optional): Maximum random delay added to each sleep. Defaults to 0.1.

    Returns:
        bool: True if the lock was acquired within the timeout period, otherwise False.
    """
    start_time = time.perf_counter()
    delay = initial_delay

    elapsed = 0.0
    while elapsed < timeout:
        if lock.acquire(blocking=False):
            return True
        remaining_time = timeout - elapsed
        # Never sleep past the deadline
        sleep_time = min(delay, remaining_time) + random.uniform(0, jitter)
        time.sleep(sleep_time)
        delay = min(delay * factor, max_delay)
        elapsed = time.perf_counter() - start_time
        log.debug(f"Waiting for {lock} ({elapsed:.1f}s)")

    return False


@contextmanager
def acquire_lock_with_backoff(lock: threading.Lock, timeout: float, **backoff_kwargs):
    """
    Context manager for acquiring a lock using exponential backoff with jitter.
    Raises LockTimeoutError if the lock is not acquired in the given timeout.
    """
    if not acquire_with_exponential_backoff(lock, timeout, **backoff_kwargs):
        raise LockTimeoutError(f"Unable to acquire lock within {timeout}s")
    try:
        yield
    finally:
        lock.release()
