"""Shared fakes: an in-memory index transport, a fake HTTP client and crate builders."""

import hashlib
import io
import json
import tarfile
import threading
from collections import Counter
from typing import Dict, Optional

import pytest

from whatis.config import Config
from whatis.registry.index_cache import FetchStatus, IndexResponse, IndexTransport
from whatis.registry.index_format import index_path
from whatis.registry.sparse import RemoteRegistrySource

DL_ROOT = "https://static.test/crates"
INDEX_URL = "https://index.test/"
INDEX_CONFIG_PATH = "config.json"


def index_line(name, vers, deps=(), yanked=False, cksum=None, **extra):
    """One registry index line; ``deps`` items are ``(name, req)`` or dicts."""
    dep_objs = []
    for dep in deps:
        if isinstance(dep, dict):
            dep_objs.append(dep)
        else:
            dep_name, req = dep
            dep_objs.append({"name": dep_name, "req": req, "kind": "normal", "optional": False})
    data = {"name": name, "vers": vers, "deps": dep_objs, "cksum": cksum or "", "yanked": yanked}
    data.update(extra)
    return json.dumps(data)


def make_crate(name, version, description=None, dependencies=(), **package_fields):
    """Build an in-memory ``.crate`` (gzip tar) holding ``name-version/Cargo.toml``."""
    lines = ["[package]", f'name = "{name}"', f'version = "{version}"']
    if description is not None:
        lines.append(f"description = {json.dumps(description)}")
    for key, value in package_fields.items():
        lines.append(f"{key} = {json.dumps(value)}")
    lines.append("")
    lines.append("[dependencies]")
    for dep in dependencies:
        lines.append(f'{dep} = "*"')
    manifest = ("\n".join(lines) + "\n").encode("utf-8")

    buf = io.BytesIO()
    with tarfile.open(fileobj=buf, mode="w:gz") as archive:
        info = tarfile.TarInfo(f"{name}-{version}/Cargo.toml")
        info.size = len(manifest)
        archive.addfile(info, io.BytesIO(manifest))
    return buf.getvalue()


def sha256(data):
    return hashlib.sha256(data).hexdigest()


class FakeTransport(IndexTransport):
    """Serves index files from a dict and honours ETag revalidation."""

    def __init__(self):
        self.files: Dict[str, str] = {INDEX_CONFIG_PATH: json.dumps({"dl": DL_ROOT})}
        self.etags: Dict[str, str] = {}
        self.calls = Counter()
        self.conditional = Counter()

    def publish(self, name, *lines):
        """Replace the index file of ``name`` with ``lines``."""
        path = index_path(name)
        self.files[path] = "\n".join(lines) + "\n"
        self.etags[path] = f'"{sha256(self.files[path].encode())[:12]}"'

    def fetch(self, path, etag=None, last_modified=None):
        self.calls[path] += 1
        if etag is not None:
            self.conditional[path] += 1
        if path not in self.files:
            return IndexResponse(FetchStatus.NOT_FOUND)
        current = self.etags.get(path)
        if etag is not None and etag == current:
            return IndexResponse(FetchStatus.NOT_MODIFIED)
        return IndexResponse(FetchStatus.MODIFIED, text=self.files[path], etag=current)


class FakeResponse:
    """Minimal stand-in for ``requests.Response``."""

    def __init__(self, status_code=200, content=b"", headers=None):
        self.status_code = status_code
        self.content = content
        self.headers = headers or {}

    @property
    def text(self):
        return self.content.decode("utf-8")


class FakeHttp:
    """Answers GETs from a URL map; optionally blocks transfers until released."""

    def __init__(self):
        self.responses: Dict[str, FakeResponse] = {}
        self.calls = Counter()
        self.auth_flags = []
        self.gate: Optional[threading.Event] = None
        self.closed = False
        self._lock = threading.Lock()

    def serve_crate(self, name, version, data, status_code=200):
        self.responses[f"{DL_ROOT}/{name}/{version}/download"] = FakeResponse(status_code, data)

    def get(self, url, *, context, headers=None, authenticated=True, **kwargs):
        with self._lock:
            self.calls[url] += 1
            self.auth_flags.append(authenticated)
        if self.gate is not None:
            self.gate.wait(timeout=5)
        return self.responses.get(url, FakeResponse(404))

    def close(self):
        self.closed = True


class FakeRegistry:
    """Publishes crates to a ``FakeTransport`` and ``FakeHttp`` in one call."""

    def __init__(self, transport, http):
        self.transport = transport
        self.http = http
        self._lines: Dict[str, list] = {}

    def publish(self, name, version, deps=(), description=None, yanked=False, checksum=None, manifest_deps=None):
        if manifest_deps is None:
            manifest_deps = [d["name"] if isinstance(d, dict) else d[0] for d in deps]
        data = make_crate(name, version, description, manifest_deps)
        self.http.serve_crate(name, version, data)
        line = index_line(name, version, deps, yanked=yanked, cksum=checksum or sha256(data))
        self._lines.setdefault(name, []).append(line)
        self.transport.publish(name, *self._lines[name])
        return data


@pytest.fixture
def config(tmp_path):
    return Config(cache_root=tmp_path / "cache", index_url=INDEX_URL)


@pytest.fixture
def transport():
    return FakeTransport()


@pytest.fixture
def http():
    return FakeHttp()


@pytest.fixture
def registry(transport, http):
    return FakeRegistry(transport, http)


@pytest.fixture
def source(config, transport, http):
    return RemoteRegistrySource(config, http=http, transport=transport)
