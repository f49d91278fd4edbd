"""
Advisory lock keeping backup runs against the same locations serialized.
"""

import fcntl
import os
from pathlib import Path


class ConcurrentRunError(Exception):
    """Raised when another backup run already holds the lock."""

    def __init__(self, lock_path):
        self.lock_path = lock_path
        super().__init__(f"Another backup run holds {lock_path}")


class RunLock:
    """
    Exclusive, non-blocking ``flock`` on a sidecar file.

    The lock is released when the context exits or the process dies, so a
    killed run never leaves a stale lock behind.
    """

    def __init__(self, path):
        self.path = Path(path)
        self._handle = None

    def acquire(self):
        """
        Raises:
            ConcurrentRunError: If the lock is held by another process
        """
        handle = self.path.open('a+')
        try:
            fcntl.flock(handle.fileno(), fcntl.LOCK_EX | fcntl.LOCK_NB)
        except BlockingIOError:
            handle.close()
            raise ConcurrentRunError(self.path)

        handle.seek(0)
        handle.truncate()
        handle.write(f"{os.getpid()}\n")
        handle.flush()
        self._handle = handle

    def release(self):
        if self._handle is None:
            return
        try:
            fcntl.flock(self._handle.fileno(), fcntl.LOCK_UN)
        finally:
            self._handle.close()
            self._handle = None

    @property
    def locked(self) -> bool:
        return self._handle is not None

    def __enter__(self):
        self.acquire()
        return self

    def __exit__(self, exc_type, exc, tb):
        self.release()
