"""whatis: show the description of a crate (and its direct dependencies).

The public entry point is :func:`describe`; :class:`QueryOrchestrator` is the
reusable form for callers that issue several queries against one registry.
"""

__version__ = "0.3.0"

from .query import QueryOrchestrator, describe  # noqa: E402

__all__ = ["QueryOrchestrator", "describe", "__version__"]
