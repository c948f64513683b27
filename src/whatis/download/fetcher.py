"""Batch download of package manifests with single-flight per package id.

A ``DownloadSession`` tracks every requested id through
``PENDING -> IN_FLIGHT -> DONE | FAILED`` in a table guarded by a condition
variable. Transfers run on a thread pool; a second ``start`` for an id that
is already in flight never issues another transfer, the caller waits with
``wait_for_any`` and polls again.
"""

from __future__ import annotations

import json
import logging
import threading
import urllib.parse
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Dict, Iterable, List, Optional, Sequence

from ..common.file_locking import atomic_write_json
from ..common.http_client import HttpClient
from ..common.logging_utils import Timer, extra_context, is_debug_enabled, safe_url
from ..constants import Constants
from ..errors import NetworkError, NotFound, WhatisError
from ..registry.source import Source
from ..versioning.models import PackageId, PackageRecord, is_valid_name
from .manifest import record_from_archive

logger = logging.getLogger(__name__)


class TransferState(Enum):
    """Lifecycle of one package id inside a session."""

    PENDING = "pending"
    IN_FLIGHT = "in_flight"
    DONE = "done"
    FAILED = "failed"


class StartOutcome(Enum):
    """What ``DownloadSession.start`` did for an id."""

    READY = "ready"  # record available now
    STARTED = "started"  # this call launched the transfer
    PENDING = "pending"  # a transfer is already in flight; wait_for_any and poll again
    FAILED = "failed"  # terminal failure, see DownloadSession.failures


@dataclass
class _Slot:
    state: TransferState = TransferState.PENDING
    record: Optional[PackageRecord] = None
    error: Optional[BaseException] = None


class DownloadSession:
    """One batch of downloads; its state is never shared with other sessions."""

    def __init__(self, fetcher: "PackageFetcher", ids: Iterable[PackageId] = ()):
        self._fetcher = fetcher
        self._slots: Dict[PackageId, _Slot] = {pid: _Slot() for pid in ids}
        self._cond = threading.Condition()
        self._completed: List[PackageId] = []
        self._in_flight = 0
        workers = max(1, min(len(self._slots) or 1, fetcher.jobs))
        self._executor = ThreadPoolExecutor(max_workers=workers, thread_name_prefix="whatis-dl")

    def __enter__(self) -> "DownloadSession":
        return self

    def __exit__(self, *exc) -> None:
        self.close()

    def close(self) -> None:
        """Wait for running transfers and stop the worker pool."""
        self._executor.shutdown(wait=True)

    @property
    def in_flight(self) -> int:
        with self._cond:
            return self._in_flight

    def state(self, package_id: PackageId) -> TransferState:
        with self._cond:
            slot = self._slots.get(package_id)
            return slot.state if slot else TransferState.PENDING

    def start(self, package_id: PackageId) -> StartOutcome:
        """Make ``package_id`` available, starting its transfer if nobody has.

        Returns:
            StartOutcome: READY when the record is available (memory or disk
            cache), STARTED when this call launched the transfer, PENDING when
            a transfer was already in flight, FAILED when it failed terminally.
        """
        with self._cond:
            slot = self._slots.setdefault(package_id, _Slot())
            if slot.state is TransferState.DONE:
                return StartOutcome.READY
            if slot.state is TransferState.FAILED:
                return StartOutcome.FAILED
            if slot.state is TransferState.IN_FLIGHT:
                return StartOutcome.PENDING
            # claim the id before any I/O so concurrent callers see it in flight
            slot.state = TransferState.IN_FLIGHT
            self._in_flight += 1

        try:
            cached = self._fetcher.load_cached(package_id)
            if cached is not None:
                self._finish(package_id, cached, None)
                return StartOutcome.READY
            url, checksum = self._fetcher.locate(package_id)
        except WhatisError as exc:
            self._finish(package_id, None, exc)
            return StartOutcome.FAILED
        except BaseException as exc:
            self._finish(package_id, None, exc)
            raise

        self._executor.submit(self._transfer, package_id, url, checksum)
        return StartOutcome.STARTED

    def wait_for_any(self) -> List[PackageId]:
        """Block until at least one in-flight transfer finishes.

        Returns:
            List[PackageId]: Ids finished since the previous call (empty when
            nothing was in flight).
        """
        with self._cond:
            while not self._completed and self._in_flight:
                self._cond.wait()
            done, self._completed = self._completed, []
            return done

    def get(self, package_id: PackageId) -> PackageRecord:
        """Return the record of a finished id, re-raising its failure."""
        with self._cond:
            slot = self._slots.get(package_id)
            if slot is None or slot.state in (TransferState.PENDING, TransferState.IN_FLIGHT):
                raise KeyError(f"{package_id} has not finished downloading")
            if slot.state is TransferState.FAILED:
                raise slot.error
            return slot.record

    def records(self) -> Dict[PackageId, PackageRecord]:
        with self._cond:
            return {
                pid: slot.record
                for pid, slot in self._slots.items()
                if slot.state is TransferState.DONE
            }

    @property
    def failures(self) -> Dict[PackageId, BaseException]:
        with self._cond:
            return {
                pid: slot.error
                for pid, slot in self._slots.items()
                if slot.state is TransferState.FAILED
            }

    def _transfer(self, package_id: PackageId, url: str, checksum: Optional[str]) -> None:
        record: Optional[PackageRecord] = None
        error: Optional[BaseException] = None
        try:
            record = self._fetcher.download(package_id, url, checksum)
        except Exception as exc:  # pylint: disable=broad-exception-caught
            # handed to whoever calls get(); waiters must always be woken
            error = exc
        self._finish(package_id, record, error)

    def _finish(
        self,
        package_id: PackageId,
        record: Optional[PackageRecord],
        error: Optional[BaseException],
    ) -> None:
        with self._cond:
            slot = self._slots[package_id]
            if error is None:
                slot.state, slot.record = TransferState.DONE, record
            else:
                slot.state, slot.error = TransferState.FAILED, error
            self._in_flight -= 1
            self._completed.append(package_id)
            self._cond.notify_all()


class PackageFetcher:
    """Downloads package archives and keeps their manifest records on disk."""

    def __init__(
        self,
        source: Source,
        http: HttpClient,
        cache_dir: Path,
        jobs: int = Constants.DOWNLOAD_JOBS,
    ):
        """Initialize the fetcher.

        Args:
            source: Source that knows checksums and download URLs.
            http: HTTP client used for archive downloads.
            cache_dir: Directory holding ``<name>-<version>.json`` records.
            jobs: Upper bound on parallel transfers per session.
        """
        self._source = source
        self._http = http
        self.cache_dir = Path(cache_dir)
        self.jobs = max(1, int(jobs))
        self._auth_host = urllib.parse.urlsplit(source.source_id.url).netloc

    def session(self, ids: Iterable[PackageId] = ()) -> DownloadSession:
        return DownloadSession(self, ids)

    def fetch_all(
        self,
        ids: Sequence[PackageId],
        strict: bool = True,
    ) -> Dict[PackageId, PackageRecord]:
        """Fetch every id, blocking until each one is done or failed.

        Args:
            ids: Requested ids; duplicates share one transfer.
            strict: Raise when any id failed (default). Otherwise return the
                successful records only.

        Returns:
            Dict[PackageId, PackageRecord]: Records keyed by id.

        Raises:
            NetworkError: Any transfer failed at the transport level.
            NotFound: An id is not published (or its archive is missing).
            FormatError: An archive or manifest is invalid.
        """
        with self.session(dict.fromkeys(ids)) as session:
            for pid in ids:
                while session.start(pid) is StartOutcome.PENDING:
                    session.wait_for_any()
            while session.in_flight:
                session.wait_for_any()
            records = session.records()
            failures = session.failures

        for pid, exc in failures.items():
            logger.error(
                "Failed to download %s: %s",
                pid,
                exc,
                extra=extra_context(event="download", component="fetcher", outcome="failed", target=str(pid)),
            )
        if failures and strict:
            raise _batch_error(failures)
        return records

    def locate(self, package_id: PackageId):
        """Return ``(download_url, checksum)`` for ``package_id``."""
        summary = self._source.summary(package_id)
        return self._source.download_url(package_id, summary.checksum or ""), summary.checksum

    def download(self, package_id: PackageId, url: str, checksum: Optional[str]) -> PackageRecord:
        """Transfer one archive, validate it and store its record.

        Raises:
            NetworkError: Transport failure or unexpected HTTP status.
            NotFound: The archive does not exist upstream.
            FormatError: Checksum mismatch or invalid manifest.
        """
        authenticated = urllib.parse.urlsplit(url).netloc == self._auth_host
        with Timer() as t:
            res = self._http.get(url, context="download", authenticated=authenticated)
        if res.status_code in Constants.NOT_FOUND_STATUSES:
            raise NotFound(package_id.name, f"={package_id.version}", "package archive is missing")
        if res.status_code != 200:
            raise NetworkError(safe_url(url), f"HTTP {res.status_code}", status_code=res.status_code)

        record = record_from_archive(res.content, package_id, checksum)
        atomic_write_json(self._record_path(package_id), record.to_dict())
        if is_debug_enabled(logger):
            logger.debug(
                "Downloaded package",
                extra=extra_context(
                    event="download",
                    component="fetcher",
                    outcome="success",
                    target=str(package_id),
                    bytes=len(res.content),
                    duration_ms=t.duration_ms(),
                ),
            )
        return record

    def load_cached(self, package_id: PackageId) -> Optional[PackageRecord]:
        """Return the stored record for ``package_id`` or None.

        Raises:
            NotFound: ``package_id`` does not carry a valid package name.
        """
        path = self._record_path(package_id)
        if not path.is_file():
            return None
        try:
            with open(path, "r", encoding="utf-8") as fh:
                return PackageRecord.from_dict(json.load(fh))
        except (OSError, ValueError, KeyError, TypeError) as exc:
            logger.warning("Ignoring unreadable cached record %s: %s", path, exc)
            return None

    def _record_path(self, package_id: PackageId) -> Path:
        if not is_valid_name(package_id.name):
            raise NotFound(str(package_id.name), f"={package_id.version}", "invalid package name")
        return self.cache_dir / f"{package_id.name.lower()}-{package_id.version}.json"


def _batch_error(failures: Dict[PackageId, BaseException]) -> BaseException:
    """Pick the error to raise: transport failures first, then the first failure."""
    errors = list(failures.values())
    chosen = next((e for e in errors if isinstance(e, NetworkError)), errors[0])
    if isinstance(chosen, WhatisError):
        chosen.failures = dict(failures)
    return chosen


__all__ = [
    "DownloadSession",
    "PackageFetcher",
    "StartOutcome",
    "TransferState",
]
