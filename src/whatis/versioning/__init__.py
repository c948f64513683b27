"""Version model, package identity types and version resolution."""

from .semver import Ordering, VersionConstraint, compare, matches, parse_constraint, parse_version

__all__ = [
    "Ordering",
    "VersionConstraint",
    "compare",
    "matches",
    "parse_constraint",
    "parse_version",
]
