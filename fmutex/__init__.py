"""File-based mutexes shared through a (network) filesystem"""

from .core import acquire, release, status
from .errors import (
    FMutexError,
    FatalMutexError,
    LockExpiredError,
    LockNotHeldError,
    MutexConfigError,
    MutexIOError,
)
from .lock import (
    DEFAULT_DEAD_AGE,
    DEFAULT_PULSE,
    DEFAULT_REFRESH,
    FileMutex,
    LockStatus,
)
from .utils import ZERO_TIME

__version__ = '0.1.0'

__all__ = [
    'acquire',
    'release',
    'status',
    'FileMutex',
    'LockStatus',
    'ZERO_TIME',
    'DEFAULT_PULSE',
    'DEFAULT_REFRESH',
    'DEFAULT_DEAD_AGE',
    'FMutexError',
    'FatalMutexError',
    'LockExpiredError',
    'LockNotHeldError',
    'MutexConfigError',
    'MutexIOError',
]
