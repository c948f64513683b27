"""Registry index file layout and line parsing.

Each package has one index file holding one JSON document per line, one line
per published version::

    {"name": "foo", "vers": "1.2.0", "deps": [...], "cksum": "...", "yanked": false}
"""
from __future__ import annotations

import json
import logging
from typing import Any, Dict, List, Optional, Tuple

from ..constants import DependencyKind
from ..errors import FormatError, InvalidConstraint, InvalidVersion
from ..versioning.models import Dependency, SourceId, Summary, is_valid_name, normalize_name, validate_name
from ..versioning.semver import parse_constraint, parse_version

logger = logging.getLogger(__name__)

_REQUIRED_FIELDS = ("name", "vers", "deps")


def index_path(name: str) -> str:
    """Return the relative index path for ``name``.

    Names are lowercased; 1-3 character names live under ``1/``, ``2/`` and
    ``3/<first char>/``, longer ones under ``<ab>/<cd>/``.

    Raises:
        ValueError: ``name`` is not a valid package name.
    """
    name = normalize_name(validate_name(name))
    if len(name) == 1:
        return f"1/{name}"
    if len(name) == 2:
        return f"2/{name}"
    if len(name) == 3:
        return f"3/{name[0]}/{name}"
    return f"{name[0:2]}/{name[2:4]}/{name}"


def split_lines(text: str) -> List[str]:
    """Return the non-blank lines of an index file."""
    return [line for line in text.splitlines() if line.strip()]


def parse_line(line: str, source_id: SourceId, *, package: str, lineno: int) -> Optional[Summary]:
    """Parse one index line into a ``Summary``.

    Structural damage (invalid JSON, missing fields, fields of the wrong type,
    invalid package names) raises ``FormatError``.
    A line whose version or requirement strings are not understood returns
    ``None`` so that one odd historical release does not hide the others.

    Args:
        line: Raw JSON line.
        source_id: Source the index belongs to.
        package: Package name, for error messages.
        lineno: 1-based line number, for error messages.

    Returns:
        Optional[Summary]: Parsed summary or None when the line is skipped.
    """
    try:
        data = json.loads(line)
    except json.JSONDecodeError as exc:
        raise FormatError(f"index of `{package}` line {lineno}: invalid JSON ({exc.msg})") from exc
    if not isinstance(data, dict):
        raise FormatError(f"index of `{package}` line {lineno}: expected an object")
    missing = [key for key in _REQUIRED_FIELDS if key not in data]
    if missing:
        raise FormatError(
            f"index of `{package}` line {lineno}: missing field(s) {', '.join(missing)}"
        )
    if not isinstance(data["deps"], list):
        raise FormatError(f"index of `{package}` line {lineno}: 'deps' must be a list")
    name = _checked_name(data["name"], "package", package, lineno)
    checksum = _field(data, "cksum", str, package, lineno)
    yanked = _field(data, "yanked", bool, package, lineno, default=False)
    links = _field(data, "links", str, package, lineno)

    try:
        version = parse_version(data["vers"])
        deps = tuple(_parse_dependency(dep, package, lineno) for dep in data["deps"])
    except (InvalidVersion, InvalidConstraint) as exc:
        logger.warning("Skipping index entry of `%s` line %d: %s", package, lineno, exc)
        return None

    return Summary(
        name=name,
        version=version,
        source_id=source_id,
        dependencies=deps,
        checksum=checksum,
        yanked=yanked,
        links=links,
    )


def _field(
    data: Dict[str, Any],
    key: str,
    kind: type,
    package: str,
    lineno: int,
    default: Any = None,
) -> Any:
    """Return ``data[key]`` when it has type ``kind``; absent or null gives ``default``."""
    value = data.get(key)
    if value is None:
        return default
    if not isinstance(value, kind):
        raise FormatError(
            f"index of `{package}` line {lineno}: '{key}' must be a {kind.__name__}, got {value!r}"
        )
    return value


def _checked_name(value: Any, what: str, package: str, lineno: int) -> str:
    if not is_valid_name(value):
        raise FormatError(f"index of `{package}` line {lineno}: invalid {what} name {value!r}")
    return value


def _parse_dependency(dep: Any, package: str, lineno: int) -> Dependency:
    if not isinstance(dep, dict) or "name" not in dep:
        raise FormatError(f"index of `{package}` line {lineno}: malformed dependency {dep!r}")
    name = _checked_name(dep["name"], "dependency", package, lineno)
    renamed = _field(dep, "package", str, package, lineno)
    if renamed is not None:
        _checked_name(renamed, "dependency", package, lineno)
    req = _field(dep, "req", str, package, lineno)
    kind_text = _field(dep, "kind", str, package, lineno) or DependencyKind.NORMAL.value
    try:
        kind = DependencyKind(kind_text)
    except ValueError as exc:
        raise FormatError(
            f"index of `{package}` line {lineno}: unknown dependency kind {kind_text!r}"
        ) from exc
    return Dependency(
        name=name,
        constraint=parse_constraint(req),
        kind=kind,
        optional=_field(dep, "optional", bool, package, lineno, default=False),
        package=renamed,
        registry=_field(dep, "registry", str, package, lineno),
    )


def parse_index(text: str, source_id: SourceId, package: str) -> Tuple[Summary, ...]:
    """Parse a whole index file, keeping declaration order."""
    summaries = []
    for lineno, line in enumerate(split_lines(text), start=1):
        summary = parse_line(line, source_id, package=package, lineno=lineno)
        if summary is not None:
            summaries.append(summary)
    return tuple(summaries)


def line_version(line: str) -> Optional[str]:
    """Return the raw ``vers`` of a line without full parsing (None if unreadable)."""
    try:
        data: Dict[str, Any] = json.loads(line)
    except json.JSONDecodeError:
        return None
    vers = data.get("vers") if isinstance(data, dict) else None
    return vers if isinstance(vers, str) else None
