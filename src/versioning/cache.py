"""Artifact cache: durable on-disk package store plus in-memory session maps.

On disk, each concrete identity owns ``<root>/<name>.<version>/lib/<tag>/``
holding the importable contents of one wheel. The directory is written once
and its existence means "already downloaded". The in-memory maps (resolved
identities, dependency lists, requested-to-concrete aliases) only spare work
within one process.
"""

from __future__ import annotations

import logging
import os
import shutil
import tempfile
import threading
from typing import Dict, Iterable, List, Optional, Sequence, Set, Tuple

from packaging.specifiers import InvalidSpecifier, SpecifierSet
from packaging.tags import Tag, parse_tag
from packaging.version import InvalidVersion, Version

from constants import Constants
from common.logging_utils import extra_context
from registry.pypi.wheels import read_metadata_dependencies

from .models import DependencySpec, PackageIdentity

logger = logging.getLogger(__name__)

LIB_DIR = "lib"
ARTIFACT_SUFFIXES = (".py", ".so", ".pyd")
_SKIPPED_SUFFIXES = (".dist-info", ".data")


def default_root() -> str:
    """Cache root from configuration, else ``<tempdir>/<PACKAGES_DIR_NAME>``."""
    if Constants.PACKAGES_ROOT:
        return os.path.abspath(os.path.expanduser(Constants.PACKAGES_ROOT))
    return os.path.join(tempfile.gettempdir(), Constants.PACKAGES_DIR_NAME)


def is_concrete(version: str) -> bool:
    """True when ``version`` names a single release rather than a range or "latest"."""
    try:
        Version(version)
    except InvalidVersion:
        return False
    return True


class ArtifactCache:
    """Package store shared by every resolution of one resolver instance."""

    def __init__(self, root: Optional[str] = None, supported: Optional[Sequence[Tag]] = None):
        """Initialize the cache.

        Args:
            root: Directory holding ``<name>.<version>`` entries.
            supported: Interpreter tags, best first, used to pick a tag directory.
        """
        self._root = root or default_root()
        self._ranks = {tag: i for i, tag in enumerate(supported or [])}
        self._lock = threading.Lock()
        self._resolved: Set[str] = set()
        self._dependencies: Dict[str, List[DependencySpec]] = {}
        self._aliases: Dict[str, PackageIdentity] = {}

    @property
    def root(self) -> str:
        return self._root

    # Session maps

    def canonical(self, identity: PackageIdentity) -> PackageIdentity:
        """Concrete identity previously resolved for ``identity``, else ``identity``."""
        with self._lock:
            return self._aliases.get(identity.key, identity)

    def add_alias(self, requested: PackageIdentity, resolved: PackageIdentity) -> None:
        if requested.key == resolved.key:
            return
        with self._lock:
            self._aliases.setdefault(requested.key, resolved)

    def is_resolved(self, identity: PackageIdentity) -> bool:
        with self._lock:
            return identity.key in self._resolved

    def mark_resolved(self, identity: PackageIdentity) -> None:
        with self._lock:
            self._resolved.add(identity.key)

    def get_dependencies(self, identity: PackageIdentity) -> Optional[List[DependencySpec]]:
        with self._lock:
            deps = self._dependencies.get(identity.key)
            return list(deps) if deps is not None else None

    def set_dependencies(
        self, identity: PackageIdentity, dependencies: Iterable[DependencySpec]
    ) -> List[DependencySpec]:
        """Insert if absent; returns the stored list."""
        with self._lock:
            stored = self._dependencies.setdefault(identity.key, list(dependencies))
            return list(stored)

    # On-disk store

    def package_path(self, identity: PackageIdentity) -> str:
        return os.path.join(self._root, identity.dir_name)

    def lib_path(self, identity: PackageIdentity) -> str:
        return os.path.join(self.package_path(identity), LIB_DIR)

    def has_artifacts(self, identity: PackageIdentity) -> bool:
        if not is_concrete(identity.version):
            return False
        return self._tag_dir(identity) is not None

    def find_stored(self, identity: PackageIdentity) -> Optional[PackageIdentity]:
        """Highest stored release satisfying a ``latest`` or range request."""
        if is_concrete(identity.version):
            return None
        requested = identity.version.strip()
        specifiers = None
        if requested.lower() != Constants.LATEST_VERSION:
            try:
                specifiers = SpecifierSet(requested)
            except InvalidSpecifier:
                return None
        prefix = f"{identity.canonical_name}."
        try:
            names = os.listdir(self._root)
        except OSError:
            return None
        best: Optional[Tuple[Version, PackageIdentity]] = None
        for name in names:
            if not name.startswith(prefix):
                continue
            text = name[len(prefix):]
            try:
                version = Version(text)
            except InvalidVersion:
                continue
            if specifiers is not None and not specifiers.contains(version, prereleases=True):
                continue
            candidate = PackageIdentity(identity.name, text)
            if (best is None or version > best[0]) and self.has_artifacts(candidate):
                best = (version, candidate)
        return best[1] if best else None

    def store_artifacts(
        self,
        identity: PackageIdentity,
        tag: str,
        members: Iterable[Tuple[str, bytes]],
    ) -> str:
        """Write wheel members under ``lib/<tag>/`` and return that directory.

        Members are staged in a sibling directory and renamed into place. If
        another writer got there first its copy is kept; contents for one
        identity are identical either way.
        """
        if not is_concrete(identity.version):
            raise ValueError(f"Refusing to store non-concrete version '{identity.version}'")
        package_dir = self.package_path(identity)
        os.makedirs(package_dir, exist_ok=True)
        staging = tempfile.mkdtemp(prefix=".lib-", dir=package_dir)
        try:
            tag_dir = os.path.join(staging, tag)
            os.makedirs(tag_dir, exist_ok=True)
            base = os.path.realpath(tag_dir)
            count = 0
            for relative, content in members:
                target = os.path.realpath(os.path.join(tag_dir, relative))
                if not target.startswith(base + os.sep):
                    raise ValueError(f"Archive member escapes target directory: {relative}")
                os.makedirs(os.path.dirname(target), exist_ok=True)
                with open(target, "wb") as fh:
                    fh.write(content)
                count += 1
            try:
                os.rename(staging, self.lib_path(identity))
            except OSError:
                if not os.path.isdir(self.lib_path(identity)):
                    raise
                logger.debug("Artifacts for %s already written by another resolution", identity.key)
                shutil.rmtree(staging, ignore_errors=True)
        except BaseException:
            shutil.rmtree(staging, ignore_errors=True)
            raise
        logger.debug(
            "Stored artifacts",
            extra=extra_context(
                event="cache_store",
                component="artifact_cache",
                package=identity.key,
                tag=tag,
                files=count,
            ),
        )
        return os.path.join(self.lib_path(identity), tag)

    def _tag_dir(self, identity: PackageIdentity) -> Optional[str]:
        lib = self.lib_path(identity)
        try:
            names = sorted(
                name for name in os.listdir(lib) if os.path.isdir(os.path.join(lib, name))
            )
        except OSError:
            return None
        if not names:
            return None

        def rank(name: str) -> int:
            try:
                tags = parse_tag(name)
            except ValueError:
                return len(self._ranks)
            return min((self._ranks.get(t, len(self._ranks)) for t in tags), default=len(self._ranks))

        return os.path.join(lib, min(names, key=lambda n: (rank(n), n)))

    def search_path(self, identity: PackageIdentity) -> Optional[str]:
        """Directory to put on ``sys.path`` for this identity."""
        if not is_concrete(identity.version):
            return None
        return self._tag_dir(identity)

    def artifacts_for(self, identity: PackageIdentity) -> List[str]:
        """Top-level importable entries (packages and modules) of the stored set."""
        tag_dir = self.search_path(identity)
        if tag_dir is None:
            return []
        artifacts = []
        for name in sorted(os.listdir(tag_dir)):
            if name.startswith(".") or name == "__pycache__" or name.endswith(_SKIPPED_SUFFIXES):
                continue
            full = os.path.join(tag_dir, name)
            if os.path.isdir(full) or os.path.splitext(name)[1] in ARTIFACT_SUFFIXES:
                artifacts.append(full)
        return artifacts

    def read_manifest_dependencies(self, identity: PackageIdentity) -> Optional[List[DependencySpec]]:
        """Dependencies from the stored ``*.dist-info/METADATA``, or None when absent."""
        tag_dir = self.search_path(identity)
        if tag_dir is None:
            return None
        for name in sorted(os.listdir(tag_dir)):
            metadata = os.path.join(tag_dir, name, "METADATA")
            if name.endswith(".dist-info") and os.path.isfile(metadata):
                with open(metadata, "r", encoding="utf-8", errors="replace") as fh:
                    return read_metadata_dependencies(fh.read())
        return None

    def stats(self) -> Dict[str, int]:
        with self._lock:
            return {
                "resolved": len(self._resolved),
                "dependency_lists": len(self._dependencies),
                "aliases": len(self._aliases),
            }
