"""Custom errors for fmutex."""


class FMutexError(Exception):
    """Base fmutex exception."""


class MutexConfigError(FMutexError):
    """Raised when a mutex or CLI setting is invalid."""


class MutexIOError(FMutexError):
    """Raised when the lock directory or a lock file cannot be created, written or removed."""


class LockNotHeldError(MutexIOError, FileNotFoundError):
    """Raised when releasing or refreshing a lock whose file does not exist."""


class LockExpiredError(FMutexError, TimeoutError):
    """Raised when an acquisition attempt times out or is cancelled."""


class FatalMutexError(BaseException):
    """Raised by the must-succeed lock/unlock variants; not meant to be handled."""
