"""Data models for package directives and dependency resolution."""

from dataclasses import dataclass, field
from enum import Enum
from typing import List, Optional

from packaging.utils import canonicalize_name

from constants import Constants

EXPECTED_FORMAT = f'#r "{Constants.DIRECTIVE_SCHEME}: PackageName, Version"'


class ResolutionErrorKind(Enum):
    """Closed set of ways a package can fail to resolve."""
    NOT_FOUND = "not_found"
    INCOMPATIBLE_PLATFORM = "incompatible_platform"
    NETWORK_TIMEOUT = "network_timeout"
    MALFORMED_DIRECTIVE = "malformed_directive"
    INITIALIZATION_FAILURE = "initialization_failure"
    OTHER = "other"


@dataclass(frozen=True)
class PackageIdentity:
    """A (name, version) pair; version may be an exact version, a specifier or "latest"."""
    name: str
    version: str

    @property
    def canonical_name(self) -> str:
        return canonicalize_name(self.name)

    @property
    def key(self) -> str:
        return f"{self.canonical_name}@{self.version}"

    @property
    def dir_name(self) -> str:
        return f"{self.canonical_name}.{self.version}"

    def __str__(self) -> str:
        return f"{self.name} {self.version}"


@dataclass(frozen=True)
class DependencySpec:
    """A declared dependency: distribution name plus the raw specifier text."""
    name: str
    version_range: str = ""


@dataclass
class ResolutionError:
    """Typed failure for one package or directive."""
    package_id: str
    requested_version: str
    message: str
    kind: ResolutionErrorKind = ResolutionErrorKind.OTHER

    def describe(self) -> str:
        """Caller-facing single line for this error."""
        if self.kind == ResolutionErrorKind.MALFORMED_DIRECTIVE:
            return (
                f"Invalid PyPI directive syntax: {self.message}. "
                f"Expected format: {EXPECTED_FORMAT}"
            )
        if self.kind == ResolutionErrorKind.INITIALIZATION_FAILURE:
            return f"Package initialization failed: {self.message}"
        return (
            f"Failed to resolve PyPI package '{self.package_id}' "
            f"version '{self.requested_version}': {self.message}"
        )

    def is_expected_miss(self) -> bool:
        """True for failures that mean "this package does not apply here".

        Typed kinds decide first; message text is only consulted for
        untyped errors raised by third-party code.
        """
        if self.kind in (ResolutionErrorKind.NOT_FOUND, ResolutionErrorKind.INCOMPATIBLE_PLATFORM):
            return True
        if self.kind != ResolutionErrorKind.OTHER:
            return False
        text = self.message.lower()
        return "not found" in text or "no compatible" in text


@dataclass(frozen=True)
class Directive:
    """A well-formed package directive found in source text."""
    name: str
    version: str
    text: str

    @property
    def identity(self) -> PackageIdentity:
        return PackageIdentity(self.name, self.version)


@dataclass
class ResolveResult:
    """Outcome of resolving one top-level identity."""
    identity: PackageIdentity
    artifacts: List[str] = field(default_factory=list)
    search_paths: List[str] = field(default_factory=list)
    error: Optional[ResolutionError] = None
    warnings: List[ResolutionError] = field(default_factory=list)


@dataclass
class ResolutionReport:
    """Aggregate outcome of resolving every directive of one request."""
    artifacts: List[str] = field(default_factory=list)
    search_paths: List[str] = field(default_factory=list)
    errors: List[ResolutionError] = field(default_factory=list)
    warnings: List[ResolutionError] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.errors
