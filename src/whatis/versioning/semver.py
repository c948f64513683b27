"""Semantic versions and Cargo-style version requirements.

Parsing and precedence ordering come from ``semantic_version``; this module
only normalizes the Cargo requirement grammar (bare versions mean caret,
partial versions, ``*``/``x`` wildcards, spaces after operators) into explicit
``(operator, Version)`` bounds.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from enum import Enum
from functools import cmp_to_key
from typing import FrozenSet, Iterable, List, Optional, Tuple

from semantic_version import Version

from ..errors import InvalidConstraint, InvalidVersion

ANY = "*"

_WILDCARDS = ("*", "x", "X")
_COMPARATOR = re.compile(
    r"""^
    (?P<op>\^|~|==|=|>=|>|<=|<)?
    (?P<major>\d+|[*xX])
    (?:\.(?P<minor>\d+|[*xX])
        (?:\.(?P<patch>\d+|[*xX])
            (?:-(?P<pre>[0-9A-Za-z.-]+))?
            (?:\+(?P<build>[0-9A-Za-z.-]+))?
        )?
    )?
    $""",
    re.VERBOSE,
)


class Ordering(Enum):
    """Result of comparing two versions."""

    LESS = -1
    EQUAL = 0
    GREATER = 1


def parse_version(text: str) -> Version:
    """Parse a strict ``major.minor.patch[-pre][+build]`` version.

    Raises:
        InvalidVersion: If ``text`` is not valid semantic versioning.
    """
    if not isinstance(text, str):
        raise InvalidVersion(repr(text), "not a string")
    try:
        return Version(text.strip())
    except ValueError as exc:
        raise InvalidVersion(text, str(exc)) from exc


def compare(v1: Version, v2: Version) -> Ordering:
    """Compare by SemVer precedence; build metadata is ignored."""
    k1, k2 = v1.precedence_key, v2.precedence_key
    if k1 < k2:
        return Ordering.LESS
    if k1 > k2:
        return Ordering.GREATER
    return Ordering.EQUAL


def version_sort_key():
    """Key function ordering versions by precedence, for ``sorted``/``max``."""
    return cmp_to_key(lambda a, b: compare(a, b).value)


_OPERATORS = {
    "==": lambda order: order is Ordering.EQUAL,
    ">": lambda order: order is Ordering.GREATER,
    ">=": lambda order: order is not Ordering.LESS,
    "<": lambda order: order is Ordering.LESS,
    "<=": lambda order: order is not Ordering.GREATER,
}


@dataclass(frozen=True)
class VersionConstraint:
    """A parsed version requirement.

    ``comparators`` holds explicit ``(operator, version)`` pairs that must all
    hold; an empty tuple means any version.
    """

    raw: str
    comparators: Tuple[Tuple[str, Version], ...] = ()
    prerelease_bases: FrozenSet[Tuple[int, int, int]] = frozenset()

    @property
    def is_any(self) -> bool:
        return not self.comparators

    def matches(self, version: Version) -> bool:
        """Return True when ``version`` satisfies every comparator.

        A pre-release only matches when some comparator names a pre-release
        of the same ``major.minor.patch``.
        """
        if version.prerelease:
            base = (version.major, version.minor, version.patch)
            if base not in self.prerelease_bases:
                return False
        return all(_OPERATORS[op](compare(version, target)) for op, target in self.comparators)

    def __str__(self) -> str:
        return self.raw


def parse_constraint(text: Optional[str]) -> VersionConstraint:
    """Parse a Cargo version requirement such as ``^1.2``, ``>=1, <2`` or ``1.*``.

    ``None``, empty and ``*`` mean any version.

    Raises:
        InvalidConstraint: If any comparator cannot be parsed.
    """
    if text is None:
        return VersionConstraint(raw=ANY)
    if not isinstance(text, str):
        raise InvalidConstraint(repr(text), "not a string")
    raw = text.strip()
    if raw in ("", ANY):
        return VersionConstraint(raw=ANY)

    comparators: List[Tuple[str, Version]] = []
    prerelease_bases = set()
    for part in raw.split(","):
        token = re.sub(r"\s+", "", part)
        if not token:
            raise InvalidConstraint(text, "empty comparator")
        match = _COMPARATOR.match(token)
        if match is None:
            raise InvalidConstraint(text, f"unexpected comparator {part.strip()!r}")
        try:
            comparators.extend(_translate(match))
        except ValueError as exc:
            raise InvalidConstraint(text, str(exc)) from exc
        if match.group("pre"):
            prerelease_bases.add(
                (int(match.group("major")), int(match.group("minor")), int(match.group("patch")))
            )

    return VersionConstraint(
        raw=_normalize_raw(raw),
        comparators=tuple(comparators),
        prerelease_bases=frozenset(prerelease_bases),
    )


def matches(constraint: VersionConstraint, version: Version) -> bool:
    """Module-level alias for ``constraint.matches(version)``."""
    return constraint.matches(version)


def select_matching(constraint: VersionConstraint, versions: Iterable[Version]) -> List[Version]:
    """Return the versions satisfying ``constraint``, newest first."""
    found = [v for v in versions if constraint.matches(v)]
    return sorted(found, key=version_sort_key(), reverse=True)


def _normalize_raw(raw: str) -> str:
    return ", ".join(re.sub(r"\s+", "", part) for part in raw.split(","))


def _component(value: Optional[str]) -> Optional[int]:
    if value is None or value in _WILDCARDS:
        return None
    return int(value)


def _translate(match: "re.Match[str]") -> List[Tuple[str, Version]]:
    """Expand one Cargo comparator into explicit ``(operator, version)`` bounds."""
    op = match.group("op") or "^"
    raw_major, raw_minor, raw_patch = match.group("major", "minor", "patch")
    pre = match.group("pre")
    parts = [raw_major, raw_minor, raw_patch]

    if any(v in _WILDCARDS for v in parts if v is not None):
        if match.group("op") not in (None, "=", "=="):
            raise ValueError(f"wildcard not allowed with operator {op!r}")
        if pre:
            raise ValueError("wildcard cannot carry a pre-release")
        first = next(i for i, v in enumerate(parts) if v in _WILDCARDS)
        if any(v is not None and v not in _WILDCARDS for v in parts[first:]):
            raise ValueError("numbers cannot follow a wildcard")
        if first == 0:
            return []
        raw_minor = raw_minor if first > 1 else None
        raw_patch = None
        op = "="

    major, minor, patch = _component(raw_major), _component(raw_minor), _component(raw_patch)
    lower = Version(_fmt(major, minor or 0, patch or 0, pre))

    if op in ("=", "=="):
        if patch is not None:
            return [("==", lower)]
        return [(">=", lower), ("<", _next(major, minor))]
    if op == ">":
        if patch is not None:
            return [(">", lower)]
        return [(">=", _next(major, minor))]
    if op == ">=":
        return [(">=", lower)]
    if op == "<":
        return [("<", lower)]
    if op == "<=":
        if patch is not None:
            return [("<=", lower)]
        return [("<", _next(major, minor))]
    if op == "~":
        return [(">=", lower), ("<", _next(major, minor))]
    # caret: the left-most non-zero component may not change
    if major > 0 or minor is None:
        upper = Version(f"{major + 1}.0.0")
    elif minor > 0 or patch is None:
        upper = Version(f"0.{minor + 1}.0")
    else:
        upper = Version(f"0.0.{patch + 1}")
    return [(">=", lower), ("<", upper)]


def _next(major: int, minor: Optional[int]) -> Version:
    """Smallest version above every ``major[.minor].*``."""
    if minor is None:
        return Version(f"{major + 1}.0.0")
    return Version(f"{major}.{minor + 1}.0")


def _fmt(major: int, minor: int, patch: int, pre: Optional[str]) -> str:
    text = f"{major}.{minor}.{patch}"
    return f"{text}-{pre}" if pre else text
