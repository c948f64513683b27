"""Describe a package, and optionally its direct dependencies.

This is the single entry point the presentation layer talks to:
resolve the main package, resolve each declared dependency, download every
resolved package in one batch and assemble a ``DescribeResult``.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import List, Optional

from .common.http_client import HttpClient
from .common.logging_utils import Timer, extra_context, is_debug_enabled
from .config import Config
from .constants import Constants
from .download.fetcher import PackageFetcher
from .registry.source import Source
from .registry.sparse import RemoteRegistrySource, source_dir_name
from .versioning.models import DescribeResult, PackageId
from .versioning.resolver import Resolver
from .versioning.semver import parse_constraint

logger = logging.getLogger(__name__)


class QueryOrchestrator:
    """Composes the resolver and the package fetcher."""

    def __init__(self, source: Source, fetcher: PackageFetcher, resolver: Optional[Resolver] = None):
        self.source = source
        self.fetcher = fetcher
        self.resolver = resolver or Resolver(source)

    @classmethod
    def from_config(cls, config: Config) -> "QueryOrchestrator":
        """Build the default remote-registry pipeline for ``config``."""
        http = HttpClient(config)
        source = RemoteRegistrySource(config, http=http)
        cache_dir = (
            Path(config.cache_root)
            / Constants.PACKAGES_DIR_NAME
            / source_dir_name(source.source_id.url)
        )
        fetcher = PackageFetcher(source, http, cache_dir, jobs=config.jobs)
        return cls(source, fetcher)

    def __enter__(self) -> "QueryOrchestrator":
        return self

    def __exit__(self, *exc) -> None:
        self.close()

    def close(self) -> None:
        self.source.close()

    def describe(
        self,
        name: str,
        version_text: Optional[str] = None,
        include_deps: bool = False,
    ) -> DescribeResult:
        """Describe ``name`` at the best version matching ``version_text``.

        Args:
            name: Package name.
            version_text: Version requirement (``"1.0"``, ``"=2.0.0"``, ``">=1, <2"``);
                any version when omitted.
            include_deps: Also describe the direct dependencies.

        Returns:
            DescribeResult: Main record plus dependency records in declared order.

        Raises:
            InvalidConstraint: ``version_text`` does not parse.
            NotFound: The package, or any one of its dependencies, has no match.
            NetworkError: Transport failure while querying or downloading.
            FormatError: Malformed index or manifest data.
            LockContention: Another process holds the package cache lock.
        """
        constraint = parse_constraint(version_text)
        with Timer() as t:
            main = self.resolver.resolve(name, constraint)
            ids: List[PackageId] = [main.package_id]
            if include_deps:
                for dependency in main.dependencies:
                    # any unresolved dependency fails the whole call
                    pid = self.resolver.resolve_dependency(dependency).package_id
                    if pid not in ids:
                        ids.append(pid)

            records = self.fetcher.fetch_all(ids)

        if is_debug_enabled(logger):
            logger.debug(
                "Describe finished",
                extra=extra_context(
                    event="describe",
                    component="query",
                    outcome="success",
                    target=str(main.package_id),
                    dependency_count=len(ids) - 1,
                    duration_ms=t.duration_ms(),
                ),
            )
        return DescribeResult(
            main=records[ids[0]],
            deps=tuple(records[pid] for pid in ids[1:]),
        )


def describe(
    name: str,
    version_text: Optional[str] = None,
    include_deps: bool = False,
    config: Optional[Config] = None,
) -> DescribeResult:
    """One-shot ``describe`` against the configured registry."""
    with QueryOrchestrator.from_config(config or Config.load()) as orchestrator:
        return orchestrator.describe(name, version_text, include_deps)
