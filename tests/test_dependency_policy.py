"""Tests for the dependency skip policy and version selection."""

import pytest

from versioning.policy import DependencyPolicy


@pytest.fixture
def policy():
    return DependencyPolicy(
        extensions_prefix="opentelemetry-",
        extensions_version="1.27.0",
        skip_exact=["pip", "setuptools", "Typing"],
        skip_prefixes=["backports."],
        platform_prefixes=["pywin32", "pyobjc-"],
    )


class TestShouldResolve:
    """Tests for DependencyPolicy.should_resolve."""

    def test_regular_package_resolved(self, policy):
        assert policy.should_resolve("requests")

    def test_exact_names_skipped_case_insensitively(self, policy):
        assert not policy.should_resolve("pip")
        assert not policy.should_resolve("typing")
        assert not policy.should_resolve("SetupTools")

    def test_exact_match_does_not_skip_longer_names(self, policy):
        assert policy.should_resolve("pip-audit")

    def test_prefix_skipped_after_normalization(self, policy):
        assert not policy.should_resolve("backports.zoneinfo")
        assert not policy.should_resolve("backports_tarfile")

    def test_extensions_always_resolved(self):
        """The extensions namespace wins even if a deny entry would match."""
        policy = DependencyPolicy(skip_prefixes=["opentelemetry"])

        assert policy.should_resolve("opentelemetry-api")
        assert not policy.should_resolve("opentelemetry")


class TestIsPlatformPackage:
    """Tests for DependencyPolicy.is_platform_package."""

    def test_platform_prefixes(self, policy):
        assert policy.is_platform_package("pywin32")
        assert policy.is_platform_package("pyobjc-core")

    def test_skipped_names_count_as_builtin(self, policy):
        assert policy.is_platform_package("setuptools")

    def test_regular_package_is_not_platform(self, policy):
        assert not policy.is_platform_package("requests")
        assert not policy.is_platform_package("opentelemetry-sdk")


class TestBestVersion:
    """Tests for DependencyPolicy.best_version."""

    def test_extensions_pinned(self, policy):
        assert policy.best_version("opentelemetry-api", ">=1.0") == "1.27.0"

    def test_minimum_preferred(self, policy):
        assert policy.best_version("idna", ">=2.5,<4") == "2.5"

    def test_exact_pin(self, policy):
        assert policy.best_version("six", "==1.16.0") == "1.16.0"

    def test_compatible_release_minimum(self, policy):
        assert policy.best_version("attrs", "~=23.1") == "23.1"

    def test_inclusive_maximum_when_no_minimum(self, policy):
        assert policy.best_version("idna", "<=3.7") == "3.7"

    def test_exclusive_bounds_fall_back_to_range_text(self, policy):
        assert policy.best_version("idna", "<4") == "<4"
        assert policy.best_version("idna", ">2") == ">2"

    def test_highest_lower_bound_wins(self, policy):
        assert policy.best_version("foo", ">=1.0,>=1.2") == "1.2"
        assert policy.best_version("foo", ">=1.10,>=1.9") == "1.10"

    def test_excluded_bound_falls_back_to_range_text(self, policy):
        assert policy.best_version("foo", ">=1.0,!=1.0") == ">=1.0,!=1.0"

    def test_conflicting_pin_and_bound_fall_back_to_range_text(self, policy):
        assert policy.best_version("foo", "==1.0,>=2") == "==1.0,>=2"

    def test_wildcard_pin_falls_back_to_range_text(self, policy):
        assert policy.best_version("idna", "==3.*") == "==3.*"

    def test_empty_range_is_latest(self, policy):
        assert policy.best_version("idna", "") == "latest"

    def test_unparsable_range_returned_verbatim(self, policy):
        assert policy.best_version("idna", "not a range") == "not a range"


class TestFromConfig:
    """Tests for building a policy from YAML config."""

    def test_defaults_when_missing(self):
        policy = DependencyPolicy.from_config(None)

        assert policy.extensions_prefix == "opentelemetry-"
        assert not policy.should_resolve("pip")

    def test_overrides(self):
        policy = DependencyPolicy.from_config(
            {"extensions_prefix": "azure-", "extensions_version": "2.0", "skip_exact": ["requests"]}
        )

        assert policy.best_version("azure-core", ">=1") == "2.0"
        assert not policy.should_resolve("requests")
        assert policy.should_resolve("pip")
