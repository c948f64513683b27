"""Validate a downloaded package archive and extract its manifest.

A ``.crate`` file is a gzip'd tarball with every path under
``<name>-<version>/``; the manifest is ``<name>-<version>/Cargo.toml``.
"""

from __future__ import annotations

import hashlib
import io
import logging
import tarfile
import tomllib
from typing import Any, Dict, Optional

from ..errors import FormatError, InvalidVersion
from ..versioning.models import PackageId, PackageRecord
from ..versioning.semver import parse_version

logger = logging.getLogger(__name__)

MANIFEST_NAME = "Cargo.toml"


def verify_checksum(data: bytes, expected: Optional[str], package_id: PackageId) -> None:
    """Compare the archive's sha256 with the index checksum.

    Raises:
        FormatError: On mismatch.
    """
    if not expected:
        logger.debug("No checksum published for %s; skipping verification", package_id)
        return
    actual = hashlib.sha256(data).hexdigest()
    if actual != expected.lower():
        raise FormatError(
            f"checksum mismatch for {package_id}: expected {expected}, got {actual}"
        )


def read_manifest(data: bytes, package_id: PackageId) -> Dict[str, Any]:
    """Return the parsed ``Cargo.toml`` from a package archive.

    Raises:
        FormatError: The archive is unreadable or has no valid manifest.
    """
    expected = f"{package_id.name}-{package_id.version}/{MANIFEST_NAME}".lower()
    try:
        with tarfile.open(fileobj=io.BytesIO(data), mode="r:gz") as archive:
            member = next(
                (m for m in archive.getmembers() if m.isfile() and m.name.lower() == expected),
                None,
            )
            if member is None:
                raise FormatError(f"{package_id}: archive has no {MANIFEST_NAME}")
            extracted = archive.extractfile(member)
            raw = extracted.read() if extracted is not None else b""
    except (tarfile.TarError, OSError, EOFError) as exc:
        raise FormatError(f"{package_id}: unreadable package archive ({exc})") from exc

    try:
        return tomllib.loads(raw.decode("utf-8"))
    except (UnicodeDecodeError, tomllib.TOMLDecodeError) as exc:
        raise FormatError(f"{package_id}: invalid {MANIFEST_NAME} ({exc})") from exc


def record_from_manifest(manifest: Dict[str, Any], package_id: PackageId) -> PackageRecord:
    """Build a ``PackageRecord``; absent optional fields stay None."""
    package = manifest.get("package") or manifest.get("project")
    if not isinstance(package, dict):
        raise FormatError(f"{package_id}: {MANIFEST_NAME} has no [package] table")

    version = package_id.version
    if isinstance(package.get("version"), str):
        try:
            version = parse_version(package["version"])
        except InvalidVersion as exc:
            raise FormatError(f"{package_id}: {exc}") from exc

    deps = manifest.get("dependencies") or {}
    return PackageRecord(
        name=_text(package.get("name")) or package_id.name,
        version=version,
        description=_text(package.get("description")),
        dependencies=tuple(deps) if isinstance(deps, dict) else (),
        license=_text(package.get("license")),
        repository=_text(package.get("repository")),
        homepage=_text(package.get("homepage")),
        documentation=_text(package.get("documentation")),
    )


def record_from_archive(data: bytes, package_id: PackageId, checksum: Optional[str]) -> PackageRecord:
    """Verify, unpack and summarize one package archive."""
    verify_checksum(data, checksum, package_id)
    return record_from_manifest(read_manifest(data, package_id), package_id)


def _text(value: Any) -> Optional[str]:
    return value if isinstance(value, str) else None
