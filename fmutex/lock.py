"""Lock mechanism for filesystem-based mutual exclusion"""

import contextlib
import errno
import logging
import os
import tempfile
import threading
import time
from datetime import datetime
from typing import Callable, NamedTuple, Optional

from .errors import (
    FatalMutexError,
    LockExpiredError,
    LockNotHeldError,
    MutexConfigError,
    MutexIOError,
)
from .utils import (
    ZERO_TIME,
    is_empty,
    millis_to_datetime,
    now_millis,
    read_timestamp,
    to_millis,
    write_timestamp,
)

logger = logging.getLogger(__name__)

# Delay between subsequent locking attempts (seconds)
DEFAULT_PULSE = 0.5

# How often the timestamp in a locking file is rewritten (seconds)
DEFAULT_REFRESH = 10.0

# Age of an unrefreshed timestamp after which a mutex is "dead" (seconds)
DEFAULT_DEAD_AGE = 60 * 60.0

CANDIDATE_PREFIX = '{}-candidate-'
CANDIDATE_SUFFIX = '.tmp'
LOCK_TEMPLATE = '{}-mutex.lck'


class LockStatus(NamedTuple):
    locked: bool
    since: Optional[datetime] = None


class FileMutex:
    """Mutual exclusion lock whose whole state lives on a (shared) filesystem.

    Any number of instances, in any number of processes, constructed with the
    same root and (case-insensitive) id refer to the same lock. The lock file
    is published with ``os.link``, which fails if the name already exists;
    liveness is tracked only through the timestamp stored in that file.
    """

    def __init__(self,
                 root: str,
                 lock_id: str,
                 pulse: float = DEFAULT_PULSE,
                 refresh: float = DEFAULT_REFRESH,
                 dead_age: float = DEFAULT_DEAD_AGE,
                 progress_callback: Optional[Callable[[str, str], None]] = None):
        if is_empty(lock_id):
            raise MutexConfigError("mutex id must not be empty")
        lock_id = lock_id.strip().lower()
        if os.sep in lock_id or (os.altsep and os.altsep in lock_id) or lock_id in ('.', '..'):
            raise MutexConfigError(f"invalid mutex id: {lock_id!r}")

        root = os.path.abspath(root)
        self.id = lock_id
        self.directory = os.path.join(root, lock_id)
        try:
            os.makedirs(self.directory, mode=0o700, exist_ok=True)
        except OSError as e:
            raise MutexIOError(f"cannot create directory ({root}): {e}") from e

        self.pulse = pulse if pulse > 0 else DEFAULT_PULSE
        self.refresh_interval = refresh if refresh > 0 else DEFAULT_REFRESH
        # <= 0 turns dead lock recovery off
        self.dead_age = dead_age
        self.progress_callback = progress_callback or (lambda event, path: None)

    def __repr__(self):
        return f"FileMutex(id={self.id!r}, directory={self.directory!r})"

    def __enter__(self):
        self.lock()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.unlock()

    @property
    def lock_path(self) -> str:
        """Absolute path of the lock file"""
        return os.path.join(self.directory, LOCK_TEMPLATE.format(self.id))

    def when(self) -> datetime:
        """Time of the last refresh of a held mutex, ZERO_TIME if unlocked"""
        timestamp = read_timestamp(self.lock_path)
        if timestamp:
            try:
                return millis_to_datetime(timestamp)
            except (OverflowError, ValueError):
                # out of datetime range, same as unparseable
                pass
        return ZERO_TIME

    def status(self) -> LockStatus:
        since = self.when()
        if since == ZERO_TIME:
            return LockStatus(False)
        return LockStatus(True, since)

    def lock(self):
        """Lock unconditionally; any failure is fatal"""
        try:
            self.try_lock(0)
        except Exception as e:
            raise FatalMutexError(f"cannot lock mutex {self.id!r}: {e}") from e

    def unlock(self):
        """Unlock; any failure is fatal"""
        try:
            self.try_unlock()
        except Exception as e:
            raise FatalMutexError(f"cannot unlock mutex {self.id!r}: {e}") from e

    def try_unlock(self):
        """Remove the lock file. No ownership check is made."""
        try:
            os.remove(self.lock_path)
        except FileNotFoundError:
            raise LockNotHeldError(errno.ENOENT, f"mutex {self.id!r} is not locked", self.lock_path) from None
        except OSError as e:
            raise MutexIOError(f"cannot unlock mutex {self.id}: {e}") from e
        logger.debug(f"released: {self.id}")

    def refresh(self):
        """Rewrite the timestamp of a held lock so contenders see it alive"""
        try:
            write_timestamp(self.lock_path, mode='r+')
        except FileNotFoundError:
            raise LockNotHeldError(errno.ENOENT, f"mutex {self.id!r} is not locked", self.lock_path) from None
        except OSError as e:
            raise MutexIOError(f"cannot refresh timestamp of mutex {self.id}: {e}") from e

    def try_lock(self, timeout: float = 0, cancel: Optional[threading.Event] = None):
        """Acquire the mutex, waiting at most timeout seconds (forever if <= 0).

        Raises LockExpiredError when the timeout passes or cancel is set
        before the lock is obtained, MutexIOError on filesystem failures.
        """
        deadline = time.monotonic() + timeout if timeout > 0 else None
        try:
            fd, candidate = tempfile.mkstemp(prefix=CANDIDATE_PREFIX.format(self.id),
                                             suffix=CANDIDATE_SUFFIX,
                                             dir=self.directory)
        except OSError as e:
            raise MutexIOError(f"cannot create candidate lock {self.id}: {e}") from e
        os.close(fd)

        try:
            self._acquire(candidate, deadline, cancel)
        finally:
            with contextlib.suppress(OSError):
                os.remove(candidate)

    def _acquire(self, candidate: str, deadline: Optional[float], cancel: Optional[threading.Event]):
        target = self.lock_path
        refresh_ms = to_millis(self.refresh_interval)
        last_timestamp = 0

        while True:
            if last_timestamp == 0 or now_millis() - last_timestamp > refresh_ms:
                try:
                    last_timestamp = write_timestamp(candidate)
                except OSError as e:
                    raise MutexIOError(
                        f"cannot write current timestamp for candidate lock {self.id}: {e}") from e
                if self.dead_age > 0:
                    self._reclaim_dead(target, deadline, cancel)

            try:
                os.link(candidate, target)
            except FileExistsError:
                pass
            except OSError as e:
                raise MutexIOError(f"cannot link candidate lock {self.id}: {e}") from e
            else:
                if now_millis() - last_timestamp > refresh_ms:
                    try:
                        write_timestamp(target)
                    except OSError as e:
                        raise MutexIOError(
                            f"cannot write current timestamp for target lock {self.id}: {e}") from e
                logger.debug(f"acquired: {self.id}")
                self.progress_callback('acquired', target)
                return

            self.progress_callback('wait', target)
            if self._sleep_or_done(self.pulse, deadline, cancel):
                raise LockExpiredError(f"expired: cannot acquire mutex {self.id}")

    def _reclaim_dead(self, target: str, deadline: Optional[float], cancel: Optional[threading.Event]):
        other_timestamp = read_timestamp(target)
        if not other_timestamp:
            return
        age = now_millis() - other_timestamp
        if age <= to_millis(self.dead_age):
            return

        logger.warning(f"removing dead mutex {self.id} (last refresh {age / 1000:.1f}s ago)")
        try:
            os.remove(target)
        except FileNotFoundError:
            pass
        except OSError as e:
            raise MutexIOError(f"cannot remove dead mutex {self.id}: {e}") from e
        self.progress_callback('reclaim', target)
        if self._sleep_or_done(self.pulse * 2, deadline, cancel):
            raise LockExpiredError(f"expired: cannot acquire mutex {self.id}")

    @staticmethod
    def _sleep_or_done(delay: float, deadline: Optional[float], cancel: Optional[threading.Event]) -> bool:
        """Sleep for delay seconds; True if the deadline or cancel fired first"""
        expires = False
        if deadline is not None:
            remaining = deadline - time.monotonic()
            if remaining <= delay:
                delay, expires = max(remaining, 0.0), True
        if cancel is not None:
            if cancel.wait(delay):
                return True
        else:
            time.sleep(delay)
        return expires
