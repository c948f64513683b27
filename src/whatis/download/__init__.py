"""Package archive downloads with single-flight batching."""

from .fetcher import DownloadSession, PackageFetcher, StartOutcome

__all__ = ["DownloadSession", "PackageFetcher", "StartOutcome"]
