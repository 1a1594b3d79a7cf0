"""Shared fixtures: in-memory wheels and a fake PyPI client."""

import hashlib
import io
import json
import zipfile
from contextlib import asynccontextmanager

import pytest

from packaging.tags import Tag
from packaging.utils import canonicalize_name

from versioning.models import PackageIdentity, ResolutionError, ResolutionErrorKind
from registry.pypi.client import ReleaseInfo
from registry.pypi.wheels import read_metadata_dependencies

PURE_TAG = Tag("py3", "none", "any")


def build_wheel(name, version, requires=(), modules=None, tag="py3-none-any"):
    """Return ``(filename, bytes)`` for a minimal wheel."""
    dist = canonicalize_name(name).replace("-", "_")
    modules = modules if modules is not None else {f"{dist}/__init__.py": f"VERSION = {version!r}\n"}
    buf = io.BytesIO()
    with zipfile.ZipFile(buf, "w") as zf:
        for path, text in modules.items():
            zf.writestr(path, text)
        metadata = [
            "Metadata-Version: 2.1",
            f"Name: {name}",
            f"Version: {version}",
        ]
        metadata.extend(f"Requires-Dist: {r}" for r in requires)
        zf.writestr(f"{dist}-{version}.dist-info/METADATA", "\n".join(metadata) + "\n")
        zf.writestr(f"{dist}-{version}.dist-info/WHEEL", f"Wheel-Version: 1.0\nTag: {tag}\n")
    return f"{dist}-{version}-{tag}.whl", buf.getvalue()


class FakePyPIClient:
    """Stand-in for PyPIClient serving wheels from memory and counting calls."""

    def __init__(self):
        self.packages = {}  # canonical name -> {version: (files, blobs)}
        self.release_calls = []
        self.download_calls = []
        self.requirement_calls = []
        self.failures = {}  # canonical name -> ResolutionError

    def add(self, name, version, requires=(), modules=None, tag="py3-none-any"):
        filename, content = build_wheel(name, version, requires, modules, tag)
        entry = {
            "filename": filename,
            "packagetype": "bdist_wheel",
            "url": f"https://files.example/{filename}",
            "digests": {"sha256": hashlib.sha256(content).hexdigest()},
        }
        versions = self.packages.setdefault(canonicalize_name(name), {})
        files, blobs = versions.setdefault(version, ([], {}))
        files.append(entry)
        blobs[entry["url"]] = content
        return entry

    def fail(self, name, kind, message="boom"):
        self.failures[canonicalize_name(name)] = ResolutionError(name, "", message, kind)

    @asynccontextmanager
    async def session(self):
        yield self

    async def fetch_release(self, identity):
        self.release_calls.append(identity.key)
        canonical = canonicalize_name(identity.name)
        if canonical in self.failures:
            failure = self.failures[canonical]
            return None, ResolutionError(identity.name, identity.version, failure.message, failure.kind)
        versions = self.packages.get(canonical)
        if not versions:
            return None, ResolutionError(
                identity.name, identity.version, "not found", ResolutionErrorKind.NOT_FOUND
            )
        if identity.version == "latest":
            version = sorted(versions)[-1]
        elif identity.version in versions:
            version = identity.version
        else:
            return None, ResolutionError(
                identity.name, identity.version, "version not found", ResolutionErrorKind.NOT_FOUND
            )
        files, _ = versions[version]
        return ReleaseInfo(identity.name, version, list(files)), None

    async def download(self, identity, entry):
        self.download_calls.append(identity.key)
        for versions in self.packages.values():
            for _, blobs in versions.values():
                if entry["url"] in blobs:
                    return blobs[entry["url"]], None
        return None, ResolutionError(identity.name, identity.version, "missing", ResolutionErrorKind.NOT_FOUND)

    async def fetch_requirements(self, identity):
        self.requirement_calls.append(identity.key)
        versions = self.packages.get(canonicalize_name(identity.name)) or {}
        if identity.version not in versions:
            return None, ResolutionError(identity.name, identity.version, "not found", ResolutionErrorKind.NOT_FOUND)
        _, blobs = versions[identity.version]
        content = next(iter(blobs.values()))
        with zipfile.ZipFile(io.BytesIO(content)) as zf:
            meta = next(n for n in zf.namelist() if n.endswith(".dist-info/METADATA"))
            return read_metadata_dependencies(zf.read(meta).decode()), None


@pytest.fixture
def fake_client():
    return FakePyPIClient()


@pytest.fixture
def identity():
    return PackageIdentity("demo-pkg", "1.0.0")


class FakeResponse:
    def __init__(self, status=200, body=b""):
        self.status = status
        self._body = body

    async def read(self):
        return self._body

    async def __aenter__(self):
        return self

    async def __aexit__(self, *exc):
        return False


class FakeSession:
    """Minimal aiohttp.ClientSession stand-in routing GETs by exact URL.

    A route value is a FakeResponse, an exception instance to raise, or a
    list of either consumed one per request.
    """

    def __init__(self, routes=None):
        self.routes = dict(routes or {})
        self.requests = []

    def get(self, url, headers=None, timeout=None):
        self.requests.append(url)
        route = self.routes.get(url, FakeResponse(404, b"{}"))
        if isinstance(route, list):
            route = route.pop(0) if len(route) > 1 else route[0]
        if isinstance(route, BaseException):
            raise route
        return route


def json_response(data, status=200):
    return FakeResponse(status, json.dumps(data).encode("utf-8"))


@pytest.fixture
def no_retry_delay(monkeypatch):
    from constants import Constants
    monkeypatch.setattr(Constants, "HTTP_RETRY_BASE_DELAY_SEC", 0)
