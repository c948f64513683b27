"""Remote registry reached through the sparse HTTP index protocol.

Index files are plain HTTPS resources under the index root
(``https://index.crates.io/se/rd/serde``), so a single-name query costs one
conditional GET. Archives are downloaded from the ``dl`` template published
in the index ``config.json``.
"""

from __future__ import annotations

import hashlib
import logging
import urllib.parse
from pathlib import Path
from typing import Dict, List, Optional

from ..common.file_locking import PackageCacheLock, package_cache_lock
from ..common.http_client import HttpClient
from ..common.logging_utils import extra_context, is_debug_enabled
from ..config import Config
from ..constants import Constants
from ..errors import NetworkError, NotFound
from ..versioning.models import Dependency, PackageId, SourceId, Summary, is_valid_name, normalize_name, same_name
from ..versioning.semver import version_sort_key
from .index_cache import FetchStatus, IndexCache, IndexResponse, IndexTransport
from .index_format import index_path
from .source import Source

logger = logging.getLogger(__name__)


class SparseIndexTransport(IndexTransport):
    """Fetches index files over HTTP(S) with conditional requests."""

    def __init__(self, http: HttpClient, index_url: str):
        self._http = http
        self._base = index_url.rstrip("/") + "/"

    def url_for(self, path: str) -> str:
        return urllib.parse.urljoin(self._base, path)

    def fetch(
        self,
        path: str,
        etag: Optional[str] = None,
        last_modified: Optional[str] = None,
    ) -> IndexResponse:
        headers: Dict[str, str] = {}
        if etag:
            headers["If-None-Match"] = etag
        elif last_modified:
            headers["If-Modified-Since"] = last_modified

        url = self.url_for(path)
        res = self._http.get(url, context="index", headers=headers)

        if res.status_code == 304:
            return IndexResponse(FetchStatus.NOT_MODIFIED)
        if res.status_code in Constants.NOT_FOUND_STATUSES:
            return IndexResponse(FetchStatus.NOT_FOUND)
        if res.status_code != 200:
            logger.warning(
                "Unexpected index response",
                extra=extra_context(
                    event="http_response",
                    component="sparse_index",
                    outcome="unexpected_status",
                    status_code=res.status_code,
                    target=path,
                ),
            )
            raise NetworkError(url, f"HTTP {res.status_code}", status_code=res.status_code)
        return IndexResponse(
            FetchStatus.MODIFIED,
            text=res.text,
            etag=res.headers.get("ETag"),
            last_modified=res.headers.get("Last-Modified"),
        )


def source_dir_name(url: str) -> str:
    """Cache directory for one index: ``<host>-<short hash of the URL>``."""
    host = urllib.parse.urlsplit(url).hostname or "registry"
    digest = hashlib.sha256(url.encode("utf-8")).hexdigest()[:16]
    return f"{host}-{digest}"


def name_variants(name: str) -> List[str]:
    """Spellings to try: as given, then with ``-`` and ``_`` swapped."""
    name = normalize_name(name)
    variants = [name]
    if "-" in name:
        variants.append(name.replace("-", "_"))
    elif "_" in name:
        variants.append(name.replace("_", "-"))
    return variants


class RemoteRegistrySource(Source):
    """Registry client over a sparse HTTP index with a local index cache."""

    def __init__(
        self,
        config: Config,
        http: Optional[HttpClient] = None,
        lock: Optional[PackageCacheLock] = None,
        transport: Optional[IndexTransport] = None,
    ):
        """Initialize the source.

        Args:
            config: Runtime configuration (index URL, cache root, network).
            http: Shared HTTP client; built from ``config`` when omitted.
            lock: Package cache lock; the process-wide one for the cache root by default.
            transport: Index transport override, mostly for tests.
        """
        self._config = config
        self._http = http or HttpClient(config)
        self._source_id = SourceId.sparse(config.index_url)
        self.lock = lock or package_cache_lock(config.cache_root)
        self._transport = transport or SparseIndexTransport(self._http, config.index_url)
        self.index = IndexCache(
            root=Path(config.cache_root) / Constants.INDEX_DIR_NAME / source_dir_name(self._source_id.url),
            source_id=self._source_id,
            transport=self._transport,
            lock=self.lock,
        )
        self._known: Dict[str, bool] = {}

    @property
    def source_id(self) -> SourceId:
        return self._source_id

    @property
    def http(self) -> HttpClient:
        return self._http

    def update(self, name: str) -> bool:
        """Update the index entry for ``name`` once per session."""
        if not is_valid_name(name):
            return False
        key = index_path(name)
        if key not in self._known:
            self._known[key] = self.index.update(name)
        return self._known[key]

    def query_best(self, dependency: Dependency) -> List[Summary]:
        """Return non-yanked summaries matching ``dependency``, newest first.

        Raises:
            NetworkError: Transport failure while updating the index.
            FormatError: Malformed index data.
            LockContention: Package cache lock held by another process.
        """
        target = dependency.target_name
        if not is_valid_name(target):
            logger.debug("Invalid package name %r; nothing to query", target)
            return []
        summaries: List[Summary] = []
        for candidate in name_variants(target):
            self.update(candidate)
            summaries = [s for s in self.ordered(candidate) if same_name(s.name, target)]
            if summaries:
                break

        matching = [
            s for s in summaries
            if not s.yanked and dependency.constraint.matches(s.version)
        ]
        key = version_sort_key()
        # sorted() is stable, so equal versions keep index order
        result = sorted(matching, key=lambda s: key(s.version), reverse=True)

        if is_debug_enabled(logger):
            logger.debug(
                "Registry query",
                extra=extra_context(
                    event="registry_query",
                    component="registry_client",
                    action="query_best",
                    target=target,
                    constraint=str(dependency.constraint),
                    candidate_count=len(summaries),
                    match_count=len(result),
                ),
            )
        return result

    def ordered(self, name: str) -> List[Summary]:
        """Cached summaries for ``name`` in index declaration order."""
        return list(self.index.summaries(name))

    def summary(self, package_id: PackageId) -> Summary:
        """Find the index summary for ``package_id`` (updating the name if needed)."""
        if not is_valid_name(package_id.name):
            raise NotFound(str(package_id.name), f"={package_id.version}", "invalid package name")
        self.update(package_id.name)
        for summary in self.index.summaries(package_id.name):
            if summary.version == package_id.version and same_name(summary.name, package_id.name):
                return summary
        raise NotFound(package_id.name, f"={package_id.version}")

    def download_url(self, package_id: PackageId, checksum: str) -> str:
        """Expand the index ``dl`` template for ``package_id``."""
        template = self.index.index_config()["dl"]
        name = package_id.name
        version = str(package_id.version)
        if not any(marker in template for marker in Constants.DOWNLOAD_MARKERS):
            return Constants.DEFAULT_DOWNLOAD_TEMPLATE.format(
                dl=template.rstrip("/"), crate=name, version=version
            )
        prefix = _prefix(name)
        return (
            template.replace("{crate}", name)
            .replace("{version}", version)
            .replace("{prefix}", prefix)
            .replace("{lowerprefix}", prefix.lower())
            .replace("{sha256-checksum}", checksum or "")
        )

    def close(self) -> None:
        self._http.close()


def _prefix(name: str) -> str:
    if len(name) == 1:
        return "1"
    if len(name) == 2:
        return "2"
    if len(name) == 3:
        return f"3/{name[0]}"
    return f"{name[0:2]}/{name[2:4]}"
