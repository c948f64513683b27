"""Data models for package identity, index summaries and fetched records."""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import Optional, Tuple

from semantic_version import Version

from ..constants import DependencyKind
from .semver import VersionConstraint, parse_constraint


_NAME_PATTERN = re.compile(r"^[A-Za-z0-9][A-Za-z0-9_-]{0,63}$")


def is_valid_name(name) -> bool:
    """Return True for registry package names: ASCII alphanumerics, ``-`` and ``_``.

    The first character is alphanumeric and names are at most 64 characters,
    so a valid name is always safe to use as a cache file name.
    """
    return isinstance(name, str) and _NAME_PATTERN.match(name) is not None


def validate_name(name) -> str:
    """Return ``name`` unchanged or raise ``ValueError`` when it is not a package name."""
    if not is_valid_name(name):
        raise ValueError(f"invalid package name {name!r}")
    return name


def normalize_name(name: str) -> str:
    """Lowercase a package name for index lookups; registries fold case."""
    return name.strip().lower()


def canonical_name(name: str) -> str:
    """Identity key: case-insensitive and ``-``/``_`` agnostic."""
    return re.sub(r"[-_]", "-", normalize_name(name))


def same_name(a: str, b: str) -> bool:
    """Return True when two names denote the same package."""
    return canonical_name(a) == canonical_name(b)


@dataclass(frozen=True)
class SourceId:
    """Identifies one registry (the kind of transport plus its URL)."""

    kind: str
    url: str

    @classmethod
    def sparse(cls, url: str) -> "SourceId":
        return cls(kind="sparse", url=url.rstrip("/") + "/")

    def __str__(self) -> str:
        return f"{self.kind}+{self.url}"


@dataclass(frozen=True)
class PackageId:
    """One immutable published package within one source."""

    name: str
    version: Version
    source_id: SourceId

    def __str__(self) -> str:
        return f"{self.name} v{self.version}"


@dataclass(frozen=True)
class Dependency:
    """A declared dependency: the name it is imported as plus its requirement.

    ``package`` is set when the dependency renames a crate
    (``foo = { package = "bar" }``); ``target_name`` is what must be resolved.
    """

    name: str
    constraint: VersionConstraint
    kind: DependencyKind = DependencyKind.NORMAL
    optional: bool = False
    package: Optional[str] = None
    registry: Optional[str] = None

    @property
    def target_name(self) -> str:
        return self.package or self.name

    @classmethod
    def parse(cls, name: str, constraint_text: Optional[str] = None, **kwargs) -> "Dependency":
        """Build a dependency from a name and a requirement string."""
        return cls(name=name, constraint=parse_constraint(constraint_text), **kwargs)


@dataclass(frozen=True)
class Summary:
    """Index-derived metadata for one published version."""

    name: str
    version: Version
    source_id: SourceId
    dependencies: Tuple[Dependency, ...] = ()
    checksum: Optional[str] = None
    yanked: bool = False
    links: Optional[str] = None

    @property
    def package_id(self) -> PackageId:
        return PackageId(self.name, self.version, self.source_id)


@dataclass(frozen=True)
class PackageRecord:
    """Manifest data extracted from a downloaded package."""

    name: str
    version: Version
    description: Optional[str] = None
    dependencies: Tuple[str, ...] = ()
    license: Optional[str] = None
    repository: Optional[str] = None
    homepage: Optional[str] = None
    documentation: Optional[str] = None

    def to_dict(self) -> dict:
        return {
            "name": self.name,
            "version": str(self.version),
            "description": self.description,
            "dependencies": list(self.dependencies),
            "license": self.license,
            "repository": self.repository,
            "homepage": self.homepage,
            "documentation": self.documentation,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "PackageRecord":
        return cls(
            name=data["name"],
            version=Version(data["version"]),
            description=data.get("description"),
            dependencies=tuple(data.get("dependencies") or ()),
            license=data.get("license"),
            repository=data.get("repository"),
            homepage=data.get("homepage"),
            documentation=data.get("documentation"),
        )


@dataclass(frozen=True)
class DescribeResult:
    """Main package record plus its resolved direct dependencies in declared order."""

    main: PackageRecord
    deps: Tuple[PackageRecord, ...] = field(default_factory=tuple)
