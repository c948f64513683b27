"""Select the best matching version of a package from a source."""

from __future__ import annotations

import logging
from typing import Optional, Union

from ..common.logging_utils import extra_context
from ..errors import NotFound
from ..registry.source import Source
from .models import Dependency, Summary, is_valid_name
from .semver import VersionConstraint, parse_constraint, version_sort_key

logger = logging.getLogger(__name__)


class Resolver:
    """Resolves ``name + requirement`` to the newest matching ``Summary``.

    Equal versions (which a registry should never publish twice) resolve to
    the first one the source returned.
    """

    def __init__(self, source: Source):
        self.source = source

    def resolve(
        self,
        name: str,
        constraint: Union[VersionConstraint, str, None] = None,
    ) -> Summary:
        """Resolve a top-level request.

        Args:
            name: Package name.
            constraint: Parsed constraint, requirement text, or None for any version.

        Returns:
            Summary: Highest matching version.

        Raises:
            InvalidConstraint: ``constraint`` text does not parse.
            NotFound: Nothing matches or ``name`` is not a valid package name;
                the message names package and requirement.
        """
        if not isinstance(constraint, VersionConstraint):
            constraint = parse_constraint(constraint)
        return self.resolve_dependency(Dependency(name=name, constraint=constraint))

    def resolve_dependency(self, dependency: Dependency) -> Summary:
        """Resolve a declared dependency (renamed ones resolve the real package)."""
        if not is_valid_name(dependency.target_name):
            logger.info("Rejecting invalid package name %r", dependency.target_name)
            raise NotFound(str(dependency.target_name), str(dependency.constraint), "invalid package name")
        candidates = self.source.query_best(dependency)
        best = self._pick(candidates)
        if best is None:
            logger.info(
                "No version of %s matches %s",
                dependency.target_name,
                dependency.constraint,
                extra=extra_context(
                    event="resolve",
                    component="resolver",
                    outcome="not_found",
                    target=dependency.target_name,
                    constraint=str(dependency.constraint),
                ),
            )
            raise NotFound(dependency.target_name, str(dependency.constraint))
        logger.debug("Resolved %s %s to %s", dependency.target_name, dependency.constraint, best.version)
        return best

    @staticmethod
    def _pick(candidates) -> Optional[Summary]:
        if not candidates:
            return None
        key = version_sort_key()
        # max() returns the first of several equal maxima
        return max(candidates, key=lambda s: key(s.version))
