"""Registry access: index file format, local index cache and package sources."""

from .source import Source
from .sparse import RemoteRegistrySource

__all__ = ["Source", "RemoteRegistrySource"]
