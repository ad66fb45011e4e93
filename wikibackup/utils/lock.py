"""
Inter-process run lock.

Only one backup run may touch the backup directory at a time. The lock is an
exclusive, non-blocking flock on a lock file; the kernel drops it when the
process exits, so a crashed run never leaves a stale lock behind.
"""

import os
import fcntl


class RunLockedError(Exception):
    """Raised when another run already holds the lock."""
    pass


class RunLock:
    """Context manager holding an exclusive flock on path."""

    def __init__(self, path: str):
        self.path = path
        self._fd = None

    def acquire(self):
        """
        Acquire the lock without blocking.

        Raises:
            RunLockedError: If another process holds the lock
            OSError: If the lock file cannot be opened
        """
        if self._fd is not None:
            return

        lock_dir = os.path.dirname(os.path.abspath(self.path))
        os.makedirs(lock_dir, exist_ok=True)

        fd = os.open(self.path, os.O_RDWR | os.O_CREAT, 0o644)
        try:
            fcntl.flock(fd, fcntl.LOCK_EX | fcntl.LOCK_NB)
        except BlockingIOError:
            os.close(fd)
            raise RunLockedError(f"Another backup run is already in progress (lock: {self.path})")

        # Record the holder for anyone inspecting the file
        os.ftruncate(fd, 0)
        os.write(fd, f"{os.getpid()}\n".encode())
        self._fd = fd

    def release(self):
        if self._fd is None:
            return
        try:
            fcntl.flock(self._fd, fcntl.LOCK_UN)
        finally:
            os.close(self._fd)
            self._fd = None

    @property
    def is_held(self) -> bool:
        return self._fd is not None

    def __enter__(self):
        self.acquire()
        return self

    def __exit__(self, exc_type, exc, tb):
        self.release()
        return False
