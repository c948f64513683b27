"""Abstract package source: anything that can list and locate package versions."""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import List

from ..versioning.models import Dependency, PackageId, SourceId, Summary


class Source(ABC):
    """A source of packages (remote registry today, local mirrors later)."""

    @property
    @abstractmethod
    def source_id(self) -> SourceId:
        """Identity shared by every package id this source produces."""

    @abstractmethod
    def update(self, name: str) -> bool:
        """Refresh what the source knows about ``name``.

        Returns:
            bool: True when the name exists in the source.
        """

    @abstractmethod
    def query_best(self, dependency: Dependency) -> List[Summary]:
        """Return summaries matching ``dependency``, newest first (may be empty)."""

    @abstractmethod
    def summary(self, package_id: PackageId) -> Summary:
        """Return the index summary for an exact package id.

        Raises:
            NotFound: The source does not publish that version.
        """

    @abstractmethod
    def download_url(self, package_id: PackageId, checksum: str) -> str:
        """Return the URL of the package archive for ``package_id``."""

    def close(self) -> None:
        """Release network resources; no-op by default."""
