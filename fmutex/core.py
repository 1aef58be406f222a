import logging
import threading
from typing import Optional

from .lock import (
    DEFAULT_DEAD_AGE,
    DEFAULT_PULSE,
    DEFAULT_REFRESH,
    FileMutex,
    LockStatus,
)

logger = logging.getLogger(__name__)


def acquire(root: str,
            lock_id: str,
            pulse: float = DEFAULT_PULSE,
            refresh: float = DEFAULT_REFRESH,
            dead_age: float = DEFAULT_DEAD_AGE,
            timeout: float = 0,
            cancel: Optional[threading.Event] = None,
            progress_callback: Optional[callable] = None) -> FileMutex:
    """Lock the mutex root/lock_id and return it.

    A timeout <= 0 waits forever. Raises LockExpiredError on timeout or
    cancellation and MutexIOError on filesystem failures.
    """
    mutex = FileMutex(root, lock_id,
                      pulse=pulse,
                      refresh=refresh,
                      dead_age=dead_age,
                      progress_callback=progress_callback)
    logger.info(f"locking: {mutex.lock_path}")
    mutex.try_lock(timeout, cancel)
    return mutex


def release(root: str, lock_id: str) -> None:
    """Unlock the mutex root/lock_id; LockNotHeldError if it is not locked"""
    mutex = FileMutex(root, lock_id)
    logger.info(f"releasing: {mutex.lock_path}")
    mutex.try_unlock()


def status(root: str, lock_id: str) -> LockStatus:
    return FileMutex(root, lock_id).status()
