"""Tests for the package cache lock and atomic writes."""

import json

import portalocker
import pytest

from whatis.common.file_locking import PackageCacheLock, atomic_write_json, package_cache_lock
from whatis.errors import LockContention


class TestPackageCacheLock:
    """Scoped, reentrant, non-blocking advisory lock."""

    def test_reentrant_within_process(self, tmp_path):
        lock = PackageCacheLock(tmp_path / ".package-cache.lock")
        with lock.hold():
            with lock.hold():
                assert lock.held
            assert lock.held
        assert not lock.held

    def test_released_on_error(self, tmp_path):
        lock = PackageCacheLock(tmp_path / ".package-cache.lock")
        with pytest.raises(RuntimeError):
            with lock.hold():
                raise RuntimeError("boom")
        assert not lock.held
        with lock.hold():
            assert lock.held

    def test_contention_raises(self, tmp_path):
        """A lock held through another file handle is reported, never waited on."""
        path = tmp_path / ".package-cache.lock"
        with open(path, "a", encoding="utf-8") as other:
            portalocker.lock(other, portalocker.LOCK_EX | portalocker.LOCK_NB)
            try:
                with pytest.raises(LockContention) as excinfo:
                    with PackageCacheLock(path).hold():
                        pass
                assert str(path) in str(excinfo.value)
            finally:
                portalocker.unlock(other)

    def test_one_lock_per_cache_root(self, tmp_path):
        assert package_cache_lock(tmp_path) is package_cache_lock(tmp_path / ".")
        assert package_cache_lock(tmp_path) is not package_cache_lock(tmp_path / "other")


class TestAtomicWrite:
    def test_writes_json_and_leaves_no_temp_files(self, tmp_path):
        target = tmp_path / "nested" / "entry.json"
        atomic_write_json(target, {"lines": ["a"]})
        atomic_write_json(target, {"lines": ["b"]})
        assert json.loads(target.read_text(encoding="utf-8")) == {"lines": ["b"]}
        assert [p.name for p in target.parent.iterdir()] == ["entry.json"]
