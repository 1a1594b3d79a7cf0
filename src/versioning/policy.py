"""Dependency skip policy and version selection for transitive dependencies."""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple

from packaging.specifiers import InvalidSpecifier, SpecifierSet
from packaging.utils import canonicalize_name
from packaging.version import InvalidVersion, Version

from constants import Constants


def _canonical_list(values) -> List[str]:
    # Prefixes keep a trailing separator, so canonicalize only the name part.
    out = []
    for value in values or []:
        text = str(value).strip()
        if not text:
            continue
        trailing = "-" if text[-1] in "-_." else ""
        out.append(canonicalize_name(text.rstrip("-_.")) + trailing)
    return out


@dataclass
class DependencyPolicy:
    """Data-driven allow/deny rules applied to declared dependencies.

    Names matching ``extensions_prefix`` are always resolved and pinned to
    ``extensions_version``. Otherwise a dependency is skipped when its
    canonical name equals an entry of ``skip_exact`` or starts with an entry
    of ``skip_prefixes``; those are assumed to be provided by the interpreter.
    ``platform_prefixes`` name packages that only exist on other operating
    systems; failures for them are expected.
    """

    extensions_prefix: str = Constants.EXTENSIONS_PREFIX
    extensions_version: str = Constants.EXTENSIONS_PINNED_VERSION
    skip_exact: List[str] = field(default_factory=lambda: list(Constants.SKIP_EXACT))
    skip_prefixes: List[str] = field(default_factory=lambda: list(Constants.SKIP_PREFIXES))
    platform_prefixes: List[str] = field(default_factory=lambda: list(Constants.PLATFORM_PREFIXES))

    def __post_init__(self) -> None:
        self.extensions_prefix = (_canonical_list([self.extensions_prefix]) or [""])[0]
        self.skip_exact = _canonical_list(self.skip_exact)
        self.skip_prefixes = _canonical_list(self.skip_prefixes)
        self.platform_prefixes = _canonical_list(self.platform_prefixes)

    @classmethod
    def from_config(cls, cfg: Optional[Dict[str, Any]]) -> "DependencyPolicy":
        """Build a policy from the ``resolver`` section of the YAML config."""
        cfg = cfg or {}
        kwargs: Dict[str, Any] = {}
        for key in ("extensions_prefix", "extensions_version"):
            if cfg.get(key) is not None:
                kwargs[key] = str(cfg[key])
        for key in ("skip_exact", "skip_prefixes", "platform_prefixes"):
            if isinstance(cfg.get(key), list):
                kwargs[key] = list(cfg[key])
        return cls(**kwargs)

    def is_extension(self, name: str) -> bool:
        return bool(self.extensions_prefix) and canonicalize_name(name).startswith(
            self.extensions_prefix
        )

    def should_resolve(self, name: str) -> bool:
        """Return True when the dependency must be resolved recursively."""
        if self.is_extension(name):
            return True
        canonical = canonicalize_name(name)
        if canonical in self.skip_exact:
            return False
        return not any(canonical.startswith(prefix) for prefix in self.skip_prefixes)

    def is_platform_package(self, name: str) -> bool:
        """True for built-in or other-platform packages whose misses are expected."""
        if self.is_extension(name):
            return False
        canonical = canonicalize_name(name)
        if any(canonical.startswith(prefix) for prefix in self.platform_prefixes):
            return True
        return not self.should_resolve(name)

    def best_version(self, name: str, version_range: str) -> str:
        """Pick the version to request for a declared dependency.

        Extensions are pinned. Otherwise the highest lower bound wins, then the
        lowest inclusive maximum, provided the whole range admits it; failing
        that the raw range text, and "latest" when nothing is declared.
        """
        if self.is_extension(name):
            return self.extensions_version
        text = (version_range or "").strip()
        if not text:
            return Constants.LATEST_VERSION
        try:
            specifiers = SpecifierSet(text)
        except InvalidSpecifier:
            return text

        lower: List[Tuple[Version, str]] = []
        upper: List[Tuple[Version, str]] = []
        for spec in specifiers:
            if spec.version.endswith(".*"):
                continue
            try:
                bound = Version(spec.version)
            except InvalidVersion:
                continue
            if spec.operator in ("==", "===", ">=", "~="):
                lower.append((bound, spec.version))
            elif spec.operator == "<=":
                upper.append((bound, spec.version))
        if lower:
            candidate = max(lower)
        elif upper:
            candidate = min(upper)
        else:
            return text
        # The tightest bound can still be excluded by the rest of the set (">=1.0,!=1.0").
        if specifiers.contains(candidate[0], prereleases=True):
            return candidate[1]
        return text
