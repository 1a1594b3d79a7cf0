"""PyPI registry client: release lookup, wheel download and manifest reads."""
from __future__ import annotations

import hashlib
import logging
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple

import aiohttp
from packaging.specifiers import InvalidSpecifier, SpecifierSet
from packaging.version import InvalidVersion, Version

from constants import Constants
from common.http_client import HttpResult, default_headers, get_json, robust_get
from common.logging_utils import extra_context, is_debug_enabled, safe_url, Timer
from versioning.models import (
    DependencySpec,
    PackageIdentity,
    ResolutionError,
    ResolutionErrorKind,
)

from .wheels import read_metadata_dependencies

logger = logging.getLogger(__name__)


@dataclass
class ReleaseInfo:
    """A concrete release picked for a requested identity."""
    name: str
    version: str
    files: List[Dict[str, Any]] = field(default_factory=list)
    requires_dist: Optional[List[str]] = None

    @property
    def identity(self) -> PackageIdentity:
        return PackageIdentity(self.name, self.version)


def _parse_version(text: str) -> Optional[Version]:
    try:
        return Version(text)
    except InvalidVersion:
        return None


def _live_files(files: Any) -> List[Dict[str, Any]]:
    if not isinstance(files, list):
        return []
    return [f for f in files if isinstance(f, dict) and not f.get("yanked")]


class PyPIClient:
    """Async client for the PyPI JSON API."""

    def __init__(
        self,
        base_url: Optional[str] = None,
        timeout: Optional[float] = None,
        session: Optional[aiohttp.ClientSession] = None,
    ):
        """Initialize the client.

        Args:
            base_url: JSON API root, defaults to ``Constants.REGISTRY_URL_PYPI``.
            timeout: Per-request bound in seconds, defaults to ``Constants.REQUEST_TIMEOUT``.
            session: Externally owned session; when omitted one is opened per batch.
        """
        self._base_url = (base_url or Constants.REGISTRY_URL_PYPI).rstrip("/") + "/"
        self._timeout = timeout
        self._session = session
        self._owns_session = session is None

    @property
    def timeout(self) -> float:
        return self._timeout if self._timeout is not None else Constants.REQUEST_TIMEOUT

    @asynccontextmanager
    async def session(self):
        """Open an HTTP session for a batch of calls unless one is already active."""
        if self._session is not None:
            yield self._session
            return
        connector = aiohttp.TCPConnector(limit=Constants.MAX_CONCURRENT_DOWNLOADS * 2)
        self._session = aiohttp.ClientSession(connector=connector)
        try:
            yield self._session
        finally:
            if self._owns_session:
                await self._session.close()
                self._session = None

    def _require_session(self) -> aiohttp.ClientSession:
        if self._session is None:
            raise RuntimeError("PyPIClient used outside of an open session")
        return self._session

    def _error(self, identity: PackageIdentity, result: HttpResult) -> ResolutionError:
        if result.status == 404:
            return ResolutionError(
                identity.name,
                identity.version,
                f"Package '{identity.name}' version '{identity.version}' not found",
                ResolutionErrorKind.NOT_FOUND,
            )
        if result.timed_out:
            return ResolutionError(
                identity.name,
                identity.version,
                f"Network operation timed out after {self.timeout} seconds",
                ResolutionErrorKind.NETWORK_TIMEOUT,
            )
        message = result.error or f"Registry returned HTTP {result.status}"
        return ResolutionError(identity.name, identity.version, message, ResolutionErrorKind.OTHER)

    async def _get_json(self, url: str) -> Tuple[HttpResult, Optional[Any]]:
        return await get_json(self._require_session(), url, timeout=self.timeout)

    async def fetch_release(
        self, identity: PackageIdentity
    ) -> Tuple[Optional[ReleaseInfo], Optional[ResolutionError]]:
        """Resolve ``identity`` to a concrete release and its files.

        ``latest`` maps to the project's current version, an exact version is
        looked up directly (falling back to version equality over the release
        list), and anything else is treated as a specifier set.
        """
        logger.debug(
            "Fetching release",
            extra=extra_context(
                event="release_lookup",
                component="pypi_client",
                package=identity.name,
                requested=identity.version,
            ),
        )
        requested = identity.version.strip()
        if requested.lower() == Constants.LATEST_VERSION:
            return await self._fetch_project_release(identity, None)

        exact = _parse_version(requested)
        if exact is not None:
            url = f"{self._base_url}{identity.name}/{requested}/json"
            result, data = await self._get_json(url)
            if result.ok and isinstance(data, dict):
                return self._release_from_version_doc(identity, data)
            if result.status != 404:
                return None, self._error(identity, result)
            return await self._fetch_project_release(identity, SpecifierSet(f"=={exact}"))

        try:
            specifiers = SpecifierSet(requested)
        except InvalidSpecifier:
            return None, ResolutionError(
                identity.name,
                identity.version,
                f"Invalid version or range '{requested}'",
                ResolutionErrorKind.OTHER,
            )
        return await self._fetch_project_release(identity, specifiers)

    def _release_from_version_doc(
        self, identity: PackageIdentity, data: Dict[str, Any]
    ) -> Tuple[Optional[ReleaseInfo], Optional[ResolutionError]]:
        info = data.get("info") or {}
        version = str(info.get("version") or identity.version)
        return (
            ReleaseInfo(
                name=str(info.get("name") or identity.name),
                version=version,
                files=_live_files(data.get("urls")),
                requires_dist=info.get("requires_dist"),
            ),
            None,
        )

    async def _fetch_project_release(
        self, identity: PackageIdentity, specifiers: Optional[SpecifierSet]
    ) -> Tuple[Optional[ReleaseInfo], Optional[ResolutionError]]:
        url = f"{self._base_url}{identity.name}/json"
        result, data = await self._get_json(url)
        if not result.ok:
            return None, self._error(identity, result)
        if not isinstance(data, dict):
            return None, ResolutionError(
                identity.name,
                identity.version,
                "Registry returned an unreadable project document",
                ResolutionErrorKind.OTHER,
            )
        info = data.get("info") or {}
        name = str(info.get("name") or identity.name)
        releases = data.get("releases") or {}

        if specifiers is None:
            latest = info.get("version")
            if latest and latest in releases:
                return (
                    ReleaseInfo(name, latest, _live_files(releases[latest]), info.get("requires_dist")),
                    None,
                )
            if latest:
                return self._release_from_version_doc(identity, data)

        candidates = {}
        for text, files in releases.items():
            parsed = _parse_version(text)
            if parsed is not None and _live_files(files):
                candidates[parsed] = text
        if specifiers is not None:
            matching = list(specifiers.filter(candidates.keys()))
        else:
            matching = [v for v in candidates if not v.is_prerelease] or list(candidates)
        if not matching:
            return None, ResolutionError(
                identity.name,
                identity.version,
                f"No release of '{identity.name}' matches '{identity.version}'",
                ResolutionErrorKind.NOT_FOUND,
            )
        chosen = candidates[max(matching)]
        return ReleaseInfo(name, chosen, _live_files(releases[chosen])), None

    async def download(
        self, identity: PackageIdentity, file_entry: Dict[str, Any]
    ) -> Tuple[Optional[bytes], Optional[ResolutionError]]:
        """Download one release file and verify its published sha256 digest."""
        url = file_entry.get("url") or ""
        with Timer() as t:
            result = await robust_get(
                self._require_session(),
                url,
                headers=default_headers("application/octet-stream"),
                timeout=self.timeout,
            )
        if not result.ok:
            return None, self._error(identity, result)
        expected = (file_entry.get("digests") or {}).get("sha256")
        if expected and hashlib.sha256(result.body).hexdigest() != expected.lower():
            return None, ResolutionError(
                identity.name,
                identity.version,
                f"Checksum mismatch for {file_entry.get('filename')}",
                ResolutionErrorKind.OTHER,
            )
        if is_debug_enabled(logger):
            logger.debug(
                "Downloaded archive",
                extra=extra_context(
                    event="download",
                    component="pypi_client",
                    target=safe_url(url),
                    size=len(result.body),
                    duration_ms=t.duration_ms(),
                ),
            )
        return result.body, None

    async def fetch_requirements(
        self, identity: PackageIdentity
    ) -> Tuple[Optional[List[DependencySpec]], Optional[ResolutionError]]:
        """Read declared dependencies from the registry manifest without downloading binaries."""
        release, error = await self.fetch_release(identity)
        if error is not None or release is None:
            return None, error
        requires = release.requires_dist
        if requires is None:
            url = f"{self._base_url}{release.name}/{release.version}/json"
            result, data = await self._get_json(url)
            if not result.ok or not isinstance(data, dict):
                return None, self._error(identity, result)
            requires = (data.get("info") or {}).get("requires_dist")
        text = "".join(f"Requires-Dist: {line}\n" for line in requires or [])
        return read_metadata_dependencies(text), None
