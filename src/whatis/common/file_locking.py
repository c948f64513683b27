"""
Module: common.file_locking

Purpose:
    Process-wide advisory lock guarding the on-disk package cache.
    Uses portalocker for Mac, Windows, and Linux compatibility.

Key Functions:
    - package_cache_lock: Shared lock instance for a cache root
    - PackageCacheLock.hold: Scoped, reentrant acquisition
    - atomic_write_json: Replace a JSON file without exposing partial writes

Used By:
    - registry.index_cache: Index updates (lock and atomic writes)
    - download.fetcher: Manifest record writes (atomic writes)
"""

from __future__ import annotations

import json
import logging
import os
import tempfile
import threading
from contextlib import contextmanager
from pathlib import Path
from typing import IO, Any, Dict, Generator, Optional

import portalocker

from ..constants import Constants
from ..errors import LockContention

logger = logging.getLogger(__name__)

_locks: Dict[Path, "PackageCacheLock"] = {}
_locks_guard = threading.Lock()


class PackageCacheLock:
    """Exclusive advisory lock on ``<cache_root>/.package-cache.lock``.

    Nested acquisitions from the same process only bump a depth counter; the
    file lock is taken on the outermost entry and released on its exit.
    Another process holding the file lock makes acquisition fail immediately
    with ``LockContention``; the core never waits or retries.
    """

    def __init__(self, path: Path):
        self.path = path
        self._guard = threading.RLock()
        self._depth = 0
        self._handle: Optional[IO[str]] = None

    @property
    def held(self) -> bool:
        """True while at least one scope holds the lock."""
        return self._depth > 0

    @contextmanager
    def hold(self) -> Generator["PackageCacheLock", None, None]:
        """
        Hold the lock for the duration of the ``with`` block.

        Raises:
            LockContention: The lock file is held by another process.

        Example:
            >>> with package_cache_lock(root).hold():
            ...     write_index_entry()
        """
        with self._guard:
            if self._depth == 0:
                self._acquire()
            self._depth += 1
            try:
                yield self
            finally:
                self._depth -= 1
                if self._depth == 0:
                    self._release()

    def _acquire(self) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        handle = open(self.path, "a", encoding="utf-8")
        try:
            portalocker.lock(handle, portalocker.LOCK_EX | portalocker.LOCK_NB)
        except portalocker.exceptions.LockException as exc:
            handle.close()
            logger.error("Package cache is locked by another process: %s", self.path)
            raise LockContention(str(self.path)) from exc
        self._handle = handle
        logger.debug("Acquired package cache lock %s", self.path)

    def _release(self) -> None:
        handle, self._handle = self._handle, None
        if handle is None:
            return
        try:
            portalocker.unlock(handle)
        finally:
            handle.close()
        logger.debug("Released package cache lock %s", self.path)


def package_cache_lock(cache_root: Path) -> PackageCacheLock:
    """Return the single lock object for ``cache_root`` in this process."""
    path = (Path(cache_root) / Constants.LOCK_FILE_NAME).resolve()
    with _locks_guard:
        lock = _locks.get(path)
        if lock is None:
            lock = _locks[path] = PackageCacheLock(path)
        return lock


def atomic_write_json(path: Path, data: Any) -> None:
    """
    Write ``data`` as JSON to ``path`` via a temp file and ``os.replace``.

    Readers never observe a half-written file.
    """
    path.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp_name = tempfile.mkstemp(prefix=f".{path.name}.", dir=path.parent)
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as fh:
            json.dump(data, fh, ensure_ascii=False)
        os.replace(tmp_name, path)
    except BaseException:
        if os.path.exists(tmp_name):
            os.unlink(tmp_name)
        raise
