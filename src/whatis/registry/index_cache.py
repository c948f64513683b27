"""Durable local mirror of registry index files, one file per package name.

Only the names that are asked for are ever fetched. Each stored entry keeps
the raw index lines together with the ``ETag``/``Last-Modified`` validators
of the response so later updates are conditional requests.
"""

from __future__ import annotations

import json
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Any, Dict, FrozenSet, List, Optional, Tuple

from ..common.file_locking import PackageCacheLock, atomic_write_json
from ..common.logging_utils import extra_context, is_debug_enabled
from ..constants import Constants
from ..errors import FormatError
from ..versioning.models import SourceId, Summary
from .index_format import index_path, line_version, parse_index, split_lines

logger = logging.getLogger(__name__)


class FetchStatus(Enum):
    """Outcome of a conditional index request."""

    MODIFIED = "modified"
    NOT_MODIFIED = "not_modified"
    NOT_FOUND = "not_found"


@dataclass(frozen=True)
class IndexResponse:
    """Transport-neutral answer for one index file."""

    status: FetchStatus
    text: str = ""
    etag: Optional[str] = None
    last_modified: Optional[str] = None


class IndexTransport(ABC):
    """Fetches raw index files relative to an index root."""

    @abstractmethod
    def fetch(
        self,
        path: str,
        etag: Optional[str] = None,
        last_modified: Optional[str] = None,
    ) -> IndexResponse:
        """Fetch ``path``; validators turn the request into a conditional one.

        Raises:
            NetworkError: On any transport failure.
        """


@dataclass
class _Entry:
    lines: List[str]
    etag: Optional[str] = None
    last_modified: Optional[str] = None

    def to_json(self) -> Dict[str, Any]:
        return {"etag": self.etag, "last_modified": self.last_modified, "lines": self.lines}


class IndexCache:
    """Index records per package name, persisted under ``root``."""

    def __init__(
        self,
        root: Path,
        source_id: SourceId,
        transport: IndexTransport,
        lock: PackageCacheLock,
    ):
        """Initialize the cache.

        Args:
            root: Directory holding this source's index files.
            source_id: Source every parsed summary belongs to.
            transport: Fetcher for raw index files.
            lock: Process-wide lock guarding on-disk mutation.
        """
        self.root = Path(root)
        self.source_id = source_id
        self._transport = transport
        self._lock = lock
        self._summaries: Dict[str, Tuple[Summary, ...]] = {}
        self._config: Optional[Dict[str, Any]] = None

    def update(self, name: str) -> bool:
        """Fetch and merge the latest index records for ``name``.

        Running it again with no upstream change leaves the cache unchanged.

        Args:
            name: Package name as requested.

        Returns:
            bool: True when upstream knows the name (or it was cached before).

        Raises:
            NetworkError: Transport failure.
            FormatError: Upstream index data is malformed.
            LockContention: Another process holds the package cache lock.
        """
        rel_path = index_path(name)
        with self._lock.hold():
            stored = self._read_entry(rel_path)
            response = self._transport.fetch(
                rel_path,
                etag=stored.etag if stored else None,
                last_modified=stored.last_modified if stored else None,
            )

            if response.status is FetchStatus.NOT_MODIFIED:
                self._log_update(name, "not_modified")
                return stored is not None
            if response.status is FetchStatus.NOT_FOUND:
                self._log_update(name, "not_found")
                return stored is not None

            upstream = split_lines(response.text)
            summaries = parse_index("\n".join(upstream), self.source_id, name)
            merged = self._merge(stored.lines if stored else [], upstream)
            entry = _Entry(merged, response.etag, response.last_modified)
            if stored is None or stored.to_json() != entry.to_json():
                atomic_write_json(self._entry_path(rel_path), entry.to_json())
                outcome = "updated"
            else:
                outcome = "unchanged"
            if merged != upstream:
                summaries = parse_index("\n".join(merged), self.source_id, name)
            self._summaries[rel_path] = summaries
            self._log_update(name, outcome, versions=len(merged))
            return True

    def lookup(self, name: str) -> FrozenSet[Summary]:
        """Return every cached summary for ``name`` (empty when unknown)."""
        return frozenset(self.summaries(name))

    def summaries(self, name: str) -> Tuple[Summary, ...]:
        """Cached summaries for ``name`` in index declaration order."""
        rel_path = index_path(name)
        cached = self._summaries.get(rel_path)
        if cached is not None:
            return cached
        stored = self._read_entry(rel_path)
        if stored is None:
            return ()
        summaries = parse_index("\n".join(stored.lines), self.source_id, name)
        self._summaries[rel_path] = summaries
        return summaries

    def index_config(self) -> Dict[str, Any]:
        """Return the index ``config.json`` (download template ``dl``, ``api``).

        Fetched at most once per cache object; the stored copy is reused when
        upstream answers "not modified".
        """
        if self._config is not None:
            return self._config
        rel_path = Constants.INDEX_CONFIG_FILE
        with self._lock.hold():
            stored = self._read_entry(rel_path)
            response = self._transport.fetch(
                rel_path,
                etag=stored.etag if stored else None,
                last_modified=stored.last_modified if stored else None,
            )
            if response.status is FetchStatus.MODIFIED:
                text = response.text
                atomic_write_json(
                    self._entry_path(rel_path),
                    _Entry([text], response.etag, response.last_modified).to_json(),
                )
            elif response.status is FetchStatus.NOT_MODIFIED and stored is not None:
                text = "\n".join(stored.lines)
            else:
                raise FormatError(f"registry index {self.source_id.url} has no {rel_path}")

        try:
            config = json.loads(text)
        except json.JSONDecodeError as exc:
            raise FormatError(f"invalid {rel_path} in {self.source_id.url}: {exc.msg}") from exc
        if not isinstance(config, dict) or not isinstance(config.get("dl"), str):
            raise FormatError(f"{rel_path} in {self.source_id.url} lacks a 'dl' download URL")
        self._config = config
        return config

    @staticmethod
    def _merge(existing: List[str], upstream: List[str]) -> List[str]:
        """Append-only merge keyed by version.

        Versions already present keep their position and take the upstream
        line (only the yanked flag may differ); new versions are appended;
        versions missing upstream are kept.
        """
        upstream_by_version: Dict[str, str] = {}
        for line in upstream:
            vers = line_version(line)
            if vers is not None:
                upstream_by_version.setdefault(vers, line)

        merged: List[str] = []
        seen = set()
        for line in existing:
            vers = line_version(line)
            if vers is not None and vers in upstream_by_version:
                line = upstream_by_version[vers]
            merged.append(line)
            seen.add(vers)
        for line in upstream:
            vers = line_version(line)
            if vers not in seen:
                merged.append(line)
                seen.add(vers)
        return merged

    def _entry_path(self, rel_path: str) -> Path:
        return self.root / rel_path

    def _read_entry(self, rel_path: str) -> Optional[_Entry]:
        path = self._entry_path(rel_path)
        if not path.is_file():
            return None
        try:
            with open(path, "r", encoding="utf-8") as fh:
                data = json.load(fh)
        except (OSError, json.JSONDecodeError) as exc:
            raise FormatError(f"corrupt index cache file {path}: {exc}") from exc
        if not isinstance(data, dict) or not isinstance(data.get("lines"), list):
            raise FormatError(f"corrupt index cache file {path}")
        return _Entry(list(data["lines"]), data.get("etag"), data.get("last_modified"))

    def _log_update(self, name: str, outcome: str, versions: Optional[int] = None) -> None:
        if is_debug_enabled(logger):
            logger.debug(
                "Index update",
                extra=extra_context(
                    event="index_update",
                    component="index_cache",
                    action="update",
                    outcome=outcome,
                    target=name,
                    versions=versions,
                ),
            )
