"""Tests for the on-disk artifact store and session maps."""

import os
import threading

import pytest

from packaging.tags import Tag

from versioning.cache import ArtifactCache, is_concrete
from versioning.models import DependencySpec, PackageIdentity

PURE = Tag("py3", "none", "any")
LINUX = Tag("cp312", "cp312", "manylinux_2_17_x86_64")


@pytest.fixture
def cache(tmp_path):
    return ArtifactCache(root=str(tmp_path / "packages"), supported=[LINUX, PURE])


class TestOnDiskStore:
    """Tests for storing and listing artifacts."""

    def test_layout(self, cache, identity):
        tag_dir = cache.store_artifacts(
            identity, "py3-none-any", [("demo_pkg/__init__.py", b"x = 1\n")]
        )

        assert tag_dir == os.path.join(cache.root, "demo-pkg.1.0.0", "lib", "py3-none-any")
        assert os.path.isfile(os.path.join(tag_dir, "demo_pkg", "__init__.py"))
        assert cache.has_artifacts(identity)

    def test_artifacts_list_top_level_entries(self, cache, identity):
        cache.store_artifacts(
            identity,
            "py3-none-any",
            [
                ("demo_pkg/__init__.py", b""),
                ("helper.py", b""),
                ("_speedups.cpython-312-x86_64-linux-gnu.so", b""),
                ("demo_pkg-1.0.0.dist-info/METADATA", b"Name: demo-pkg\n"),
                ("README.txt", b""),
            ],
        )

        names = [os.path.basename(p) for p in cache.artifacts_for(identity)]

        assert names == ["_speedups.cpython-312-x86_64-linux-gnu.so", "demo_pkg", "helper.py"]

    def test_missing_set(self, cache, identity):
        assert not cache.has_artifacts(identity)
        assert cache.artifacts_for(identity) == []
        assert cache.read_manifest_dependencies(identity) is None

    def test_non_concrete_versions_never_on_disk(self, cache):
        assert not cache.has_artifacts(PackageIdentity("demo", "latest"))
        with pytest.raises(ValueError):
            cache.store_artifacts(PackageIdentity("demo", ">=1"), "py3-none-any", [])

    def test_member_escaping_target_rejected(self, cache, identity):
        with pytest.raises(ValueError, match="escapes"):
            cache.store_artifacts(identity, "py3-none-any", [("../../evil.py", b"")])

        assert not cache.has_artifacts(identity)
        leftovers = os.listdir(cache.package_path(identity))
        assert leftovers == []

    def test_second_writer_keeps_first_copy(self, cache, identity):
        cache.store_artifacts(identity, "py3-none-any", [("first.py", b"")])
        cache.store_artifacts(identity, "py3-none-any", [("second.py", b"")])

        names = [os.path.basename(p) for p in cache.artifacts_for(identity)]
        assert names == ["first.py"]

    def test_best_ranked_tag_directory_used(self, cache, identity):
        lib = cache.lib_path(identity)
        os.makedirs(os.path.join(lib, "py3-none-any"))
        os.makedirs(os.path.join(lib, "cp312-cp312-manylinux_2_17_x86_64"))
        open(os.path.join(lib, "cp312-cp312-manylinux_2_17_x86_64", "fast.py"), "w").close()

        assert cache.search_path(identity).endswith("cp312-cp312-manylinux_2_17_x86_64")

    def test_find_stored_matches_latest_and_ranges(self, cache):
        for version in ("1.0", "1.5", "2.0"):
            cache.store_artifacts(PackageIdentity("demo", version), "py3-none-any", [("demo.py", b"")])

        assert cache.find_stored(PackageIdentity("Demo", "latest")).version == "2.0"
        assert cache.find_stored(PackageIdentity("demo", ">=1,<2")).version == "1.5"
        assert cache.find_stored(PackageIdentity("demo", ">=3")) is None
        assert cache.find_stored(PackageIdentity("demo", "1.0")) is None
        assert cache.find_stored(PackageIdentity("demo-extra", "latest")) is None

    def test_manifest_dependencies_from_disk(self, cache, identity):
        metadata = b"Name: demo-pkg\nRequires-Dist: six>=1.16\n"
        cache.store_artifacts(
            identity, "py3-none-any", [("demo_pkg-1.0.0.dist-info/METADATA", metadata)]
        )

        deps = cache.read_manifest_dependencies(identity)

        assert deps == [DependencySpec("six", ">=1.16")]


class TestSessionMaps:
    """Tests for the in-memory maps."""

    def test_resolved_flag(self, cache, identity):
        assert not cache.is_resolved(identity)
        cache.mark_resolved(identity)
        assert cache.is_resolved(PackageIdentity("Demo_Pkg", "1.0.0"))

    def test_dependencies_insert_if_absent(self, cache, identity):
        first = cache.set_dependencies(identity, [DependencySpec("six", "")])
        second = cache.set_dependencies(identity, [DependencySpec("idna", "")])

        assert first == second == [DependencySpec("six", "")]
        assert cache.get_dependencies(identity) == [DependencySpec("six", "")]
        assert cache.get_dependencies(PackageIdentity("other", "1")) is None

    def test_alias(self, cache):
        requested = PackageIdentity("demo", "latest")
        resolved = PackageIdentity("demo", "2.0")

        assert cache.canonical(requested) == requested
        cache.add_alias(requested, resolved)
        assert cache.canonical(requested) == resolved

    def test_concurrent_inserts(self, cache):
        def worker(n):
            for i in range(200):
                ident = PackageIdentity(f"pkg{i}", "1.0")
                cache.mark_resolved(ident)
                cache.set_dependencies(ident, [DependencySpec(f"dep{n}", "")])

        threads = [threading.Thread(target=worker, args=(n,)) for n in range(8)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        stats = cache.stats()
        assert stats["resolved"] == 200
        assert stats["dependency_lists"] == 200


def test_is_concrete():
    assert is_concrete("1.0.0")
    assert not is_concrete("latest")
    assert not is_concrete(">=1,<2")
