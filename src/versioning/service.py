"""Package resolution service.

Turns package identities into importable artifacts by walking the declared
dependency graph breadth-first. Work items carry their own depth, so graph
depth never becomes call-stack depth, and every level's frontier is fetched
concurrently under a semaphore.
"""
from __future__ import annotations

import asyncio
import logging
import os
import zipfile
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Optional, Sequence, Set, Tuple

from packaging.tags import Tag

from constants import Constants
from common.logging_utils import extra_context, is_debug_enabled, Timer
from registry.pypi.client import PyPIClient, ReleaseInfo
from registry.pypi.wheels import (
    open_wheel,
    read_metadata_dependencies,
    select_wheel,
    supported_tags,
    wheel_dependencies,
    wheel_members,
)

from .cache import ArtifactCache
from .models import (
    DependencySpec,
    Directive,
    PackageIdentity,
    ResolutionError,
    ResolutionErrorKind,
    ResolutionReport,
    ResolveResult,
)
from .policy import DependencyPolicy

logger = logging.getLogger(__name__)


@dataclass
class _Node:
    identity: PackageIdentity
    artifacts: List[str] = field(default_factory=list)
    search_path: Optional[str] = None
    dependencies: List[DependencySpec] = field(default_factory=list)


def logical_name(path: str) -> str:
    """Artifact name without directory or extension(s)."""
    return os.path.basename(path.rstrip("/\\")).split(".", 1)[0]


def dedupe_artifacts(paths: Iterable[str]) -> List[str]:
    """Keep one artifact per logical name, preferring the longer path.

    First-occurrence order of names is preserved.
    """
    chosen: Dict[str, str] = {}
    order: List[str] = []
    for path in paths:
        name = logical_name(path)
        current = chosen.get(name)
        if current is None:
            order.append(name)
            chosen[name] = path
        elif len(path) > len(current):
            chosen[name] = path
    return [chosen[name] for name in order]


def _unique(values: Iterable[str]) -> List[str]:
    seen: Set[str] = set()
    out = []
    for value in values:
        if value not in seen:
            seen.add(value)
            out.append(value)
    return out


class PackageResolver:
    """Resolves packages and their transitive dependencies into artifacts.

    One instance owns its cache maps; create one per process and hand it to
    whatever serves requests.
    """

    def __init__(
        self,
        cache: Optional[ArtifactCache] = None,
        client: Optional[PyPIClient] = None,
        policy: Optional[DependencyPolicy] = None,
        max_depth: Optional[int] = None,
        supported: Optional[Sequence[Tag]] = None,
        concurrency: Optional[int] = None,
    ):
        self.supported = list(supported) if supported is not None else supported_tags()
        self.cache = cache or ArtifactCache(supported=self.supported)
        self.client = client or PyPIClient()
        self.policy = policy or DependencyPolicy()
        self.max_depth = Constants.MAX_RECURSION_DEPTH if max_depth is None else max_depth
        self.concurrency = concurrency or Constants.MAX_CONCURRENT_DOWNLOADS

    async def resolve_directives(self, directives: Sequence[Directive]) -> ResolutionReport:
        """Resolve every directive in source order and aggregate the outcome."""
        report = ResolutionReport()
        if not directives:
            return report
        with Timer() as t:
            try:
                async with self.client.session():
                    for directive in directives:
                        result = await self.resolve(directive.identity)
                        if result.error is not None:
                            report.errors.append(result.error)
                            continue
                        report.artifacts.extend(result.artifacts)
                        report.search_paths.extend(result.search_paths)
                        report.warnings.extend(result.warnings)
            except Exception as exc:  # pylint: disable=broad-exception-caught
                logger.error("Package resolution could not start: %s", exc, exc_info=True)
                report.errors.append(
                    ResolutionError("", "", str(exc) or type(exc).__name__,
                                    ResolutionErrorKind.INITIALIZATION_FAILURE)
                )
        report.artifacts = dedupe_artifacts(report.artifacts)
        report.search_paths = _unique(report.search_paths)
        if report.warnings:
            logger.warning(
                "Resolved with %d transitive dependency warning(s): %s",
                len(report.warnings),
                "; ".join(w.describe() for w in report.warnings),
            )
        logger.info(
            "Resolved %d directive(s) into %d artifact(s)",
            len(directives),
            len(report.artifacts),
            extra=extra_context(
                event="resolve_directives",
                component="resolver",
                errors=len(report.errors),
                duration_ms=t.duration_ms(),
            ),
        )
        return report

    async def resolve(self, identity: PackageIdentity) -> ResolveResult:
        """Resolve ``identity`` and its dependencies down to ``max_depth``.

        An error is returned only for the top-level identity. Dependency
        failures are either expected (logged at DEBUG and dropped) or
        collected as warnings; neither stops sibling dependencies.
        """
        semaphore = asyncio.Semaphore(self.concurrency)
        result = ResolveResult(identity=identity)
        visited: Set[str] = {identity.key}
        frontier: List[Tuple[PackageIdentity, int]] = [(identity, 0)]

        while frontier:
            outcomes = await asyncio.gather(
                *(self._resolve_one(item, semaphore) for item, _ in frontier)
            )
            next_frontier: List[Tuple[PackageIdentity, int]] = []
            for (item, depth), (node, error) in zip(frontier, outcomes):
                if error is not None or node is None:
                    if depth == 0:
                        result.error = error
                        return result
                    self._record_dependency_failure(item, error, result.warnings)
                    continue
                visited.add(node.identity.key)
                result.artifacts.extend(node.artifacts)
                if node.search_path:
                    result.search_paths.append(node.search_path)
                if depth >= self.max_depth:
                    logger.debug("Depth limit %d reached at %s", self.max_depth, node.identity.key)
                    continue
                for dependency in node.dependencies:
                    if not self.policy.should_resolve(dependency.name):
                        continue
                    child = PackageIdentity(
                        dependency.name,
                        self.policy.best_version(dependency.name, dependency.version_range),
                    )
                    key = self.cache.canonical(child).key
                    if child.key in visited or key in visited:
                        continue
                    visited.update((child.key, key))
                    next_frontier.append((child, depth + 1))
            frontier = next_frontier

        result.artifacts = dedupe_artifacts(result.artifacts)
        result.search_paths = _unique(result.search_paths)
        return result

    def _record_dependency_failure(
        self,
        identity: PackageIdentity,
        error: Optional[ResolutionError],
        warnings: List[ResolutionError],
    ) -> None:
        if error is None:
            return
        if error.is_expected_miss() and self.policy.is_platform_package(identity.name):
            logger.debug("Skipping unavailable platform package %s: %s", identity.key, error.message)
            return
        logger.warning("Could not resolve dependency %s: %s", identity.key, error.message)
        warnings.append(error)

    async def _resolve_one(
        self, identity: PackageIdentity, semaphore: asyncio.Semaphore
    ) -> Tuple[Optional[_Node], Optional[ResolutionError]]:
        identity = self.cache.canonical(identity)
        try:
            stored = self.cache.find_stored(identity)
            if stored is not None:
                self.cache.add_alias(identity, stored)
                identity = stored
            if self.cache.is_resolved(identity) and self.cache.has_artifacts(identity):
                if is_debug_enabled(logger):
                    logger.debug(
                        "Session cache hit",
                        extra=extra_context(event="cache_hit", component="resolver", package=identity.key),
                    )
                dependencies = self.cache.get_dependencies(identity)
                if dependencies is None:
                    return await self._from_disk(identity, None), None
                return self._node(identity, dependencies), None
            if self.cache.has_artifacts(identity):
                return await self._from_disk(identity, None), None
            async with semaphore:
                return await self._download(identity)
        except (OSError, zipfile.BadZipFile, ValueError) as exc:
            return None, ResolutionError(
                identity.name, identity.version, str(exc), ResolutionErrorKind.OTHER
            )

    def _node(self, identity: PackageIdentity, dependencies: List[DependencySpec]) -> _Node:
        return _Node(
            identity=identity,
            artifacts=self.cache.artifacts_for(identity),
            search_path=self.cache.search_path(identity),
            dependencies=dependencies,
        )

    async def _from_disk(
        self, identity: PackageIdentity, release: Optional[ReleaseInfo]
    ) -> _Node:
        """Use an existing on-disk set; dependencies never require a binary download."""
        self.cache.mark_resolved(identity)
        dependencies = self.cache.get_dependencies(identity)
        if dependencies is None:
            dependencies = self.cache.read_manifest_dependencies(identity)
        if dependencies is None and release is not None and release.requires_dist is not None:
            text = "".join(f"Requires-Dist: {line}\n" for line in release.requires_dist)
            dependencies = read_metadata_dependencies(text)
        if dependencies is None:
            dependencies, error = await self.client.fetch_requirements(identity)
            if error is not None:
                logger.warning("Could not read dependencies of %s: %s", identity.key, error.message)
                dependencies = []
        dependencies = self.cache.set_dependencies(identity, dependencies or [])
        return self._node(identity, dependencies)

    async def _download(
        self, identity: PackageIdentity
    ) -> Tuple[Optional[_Node], Optional[ResolutionError]]:
        release, error = await self.client.fetch_release(identity)
        if error is not None or release is None:
            return None, error
        concrete = release.identity
        self.cache.add_alias(identity, concrete)
        if self.cache.has_artifacts(concrete):
            return await self._from_disk(concrete, release), None

        choice = select_wheel(release.files, self.supported)
        if choice is None:
            return None, ResolutionError(
                identity.name,
                identity.version,
                f"No compatible wheel found for package '{release.name}' {release.version}",
                ResolutionErrorKind.INCOMPATIBLE_PLATFORM,
            )
        entry, tag = choice
        content, error = await self.client.download(concrete, entry)
        if error is not None or content is None:
            return None, error

        with open_wheel(content) as archive:
            dependencies = self.cache.set_dependencies(concrete, wheel_dependencies(archive))
            self.cache.store_artifacts(concrete, str(tag), wheel_members(archive))
        self.cache.mark_resolved(concrete)
        logger.info("Downloaded %s %s (%s)", release.name, release.version, tag)
        return self._node(concrete, dependencies), None
