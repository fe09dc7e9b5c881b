"""Tests for bpm.core.installer module."""

import sys
from http.client import IncompleteRead
from unittest.mock import Mock, patch

import pytest

from bpm.core.installer import Installer, InstallRequest
from bpm.core.package import PackageSpec
from bpm.core.resolver import Resolver
from bpm.errors import CyclicDependencyError, ParseError, UnresolvedError
from bpm.registry.cache import LocalCache
from bpm.utils.version import SemVer, VersionConstraint


@pytest.fixture
def installer(registry, cache: LocalCache) -> Installer:
    return Installer(Resolver(cache, registry.client), max_workers=4)


def names(specs) -> list[str]:
    return [spec.name for spec in specs]


class TestInstall:
    """Tests for Installer.install()."""

    def test_single_package(self, registry, installer: Installer):
        """A package without dependencies installs alone."""
        registry.publish("foo", "1.0.0")

        specs = installer.install("foo")

        assert [str(spec) for spec in specs] == ["foo (1.0.0)"]

    def test_dependencies_come_first(self, registry, installer: Installer, cache: LocalCache):
        """The closure is returned dependencies first, root last."""
        registry.publish("baz", "1.0.0")
        registry.publish("bar", "1.2.0", dependencies={"baz": ">= 1.0"})
        registry.publish("foo", "1.0.0", dependencies={"bar": "~> 1.0"})

        specs = installer.install("foo")

        assert names(specs) == ["baz", "bar", "foo"]
        assert len(cache.entries()) == 3

    def test_shared_dependency_installed_once(self, registry, installer: Installer):
        """A dependency reached twice is resolved once."""
        registry.publish("c", "1.0.0")
        registry.publish("a", "1.0.0", dependencies={"c": ">= 1.0"})
        registry.publish("b", "1.0.0", dependencies={"c": ">= 0.5"})
        registry.publish("app", "1.0.0", dependencies={"a": ">= 0", "b": ">= 0"})

        specs = installer.install("app")

        assert names(specs).count("c") == 1
        assert names(specs)[-1] == "app"
        assert names(specs).index("c") < names(specs).index("a")

    def test_each_dependency_uses_its_own_constraint(self, registry, installer: Installer):
        """An incompatible earlier pick is not reused."""
        registry.publish("c", "1.0.0")
        registry.publish("c", "2.0.0")
        registry.publish("a", "1.0.0", dependencies={"c": "= 1.0.0"})
        registry.publish("b", "1.0.0", dependencies={"c": ">= 2.0"})
        registry.publish("app", "1.0.0", dependencies={"a": ">= 0", "b": ">= 0"})

        specs = installer.install("app")

        versions = {str(spec.version) for spec in specs if spec.name == "c"}
        assert versions == {"1.0.0", "2.0.0"}

    def test_cycle_detected(self, registry, installer: Installer):
        """A depends on B depends on A is reported, not recursed."""
        registry.publish("a", "1.0.0", dependencies={"b": ">= 0"})
        registry.publish("b", "1.0.0", dependencies={"a": ">= 0"})

        with pytest.raises(CyclicDependencyError) as exc_info:
            installer.install("a")

        assert exc_info.value.chain == ["a", "b", "a"]
        assert str(exc_info.value) == "Circular dependency detected: a -> b -> a"

    def test_self_dependency(self, registry, installer: Installer):
        """A package depending on itself is a cycle."""
        registry.publish("a", "1.0.0", dependencies={"a": ">= 0"})

        with pytest.raises(CyclicDependencyError):
            installer.install("a")

    def test_visited_names_from_caller(self, registry, installer: Installer):
        """Names the caller is already installing count as visited."""
        registry.publish("a", "1.0.0")

        with pytest.raises(CyclicDependencyError) as exc_info:
            installer.install("a", visited=["root", "a"])

        assert exc_info.value.chain == ["root", "a", "a"]

    def test_long_chain_is_not_recursive(self):
        """Dependency chains deeper than the recursion limit still install."""
        depth = sys.getrecursionlimit() + 100
        specs_by_name = {
            f"p{i}": PackageSpec(
                f"p{i}",
                SemVer(1, 0, 0),
                dependencies=((f"p{i - 1}", VersionConstraint()),) if i else (),
            )
            for i in range(depth)
        }
        resolver = Mock()
        resolver.resolve.side_effect = lambda name, *args: specs_by_name[name]

        specs = Installer(resolver).install(f"p{depth - 1}")

        assert names(specs) == [f"p{i}" for i in range(depth)]

    def test_missing_dependency(self, registry, installer: Installer):
        """An unresolvable dependency names the dependency."""
        registry.publish("foo", "1.0.0", dependencies={"ghost": "~> 1.0"})

        with pytest.raises(UnresolvedError, match="Can't find package ghost ~> 1.0"):
            installer.install("foo")

    def test_dependency_prerelease_needs_explicit_constraint(
        self, registry, installer: Installer
    ):
        """allow_prerelease applies to the requested package only."""
        registry.publish("lib", "1.1.0-beta")
        registry.publish("app", "1.0.0-rc.1", dependencies={"lib": ">= 1.0"})

        with pytest.raises(UnresolvedError, match="lib"):
            installer.install("app", allow_prerelease=True)

    def test_dependency_constraint_naming_prerelease(self, registry, installer: Installer):
        """A dependency constraint naming a prerelease may pick one."""
        registry.publish("lib", "1.1.0-beta")
        registry.publish("app", "1.0.0", dependencies={"lib": ">= 1.1.0-alpha"})

        specs = installer.install("app")

        assert specs[0].version == SemVer.parse("1.1.0-beta")

    def test_invalid_constraint(self, installer: Installer):
        """Malformed constraints raise ParseError."""
        with pytest.raises(ParseError):
            installer.install("foo", ">> 1")

    def test_reinstall_is_idempotent(self, registry, installer: Installer, cache: LocalCache):
        """Installing twice yields the same specs without downloading again."""
        registry.publish("bar", "1.0.0")
        registry.publish("foo", "1.0.0", dependencies={"bar": ">= 1.0"})
        first = installer.install("foo")

        with patch.object(registry.client, "download") as download:
            second = installer.install("foo")

        assert second == first
        download.assert_not_called()
        assert len(cache.entries()) == 2


class TestInstallMany:
    """Tests for Installer.install_many()."""

    def test_failures_do_not_abort_siblings(self, registry, installer: Installer):
        """One unresolved package is reported next to the successes."""
        registry.publish("foo", "1.0.0")
        registry.publish("bar", "1.0.0")

        result = installer.install_many(
            [InstallRequest("foo"), InstallRequest("missing"), InstallRequest("bar")]
        )

        assert [o.name for o in result.outcomes] == ["foo", "missing", "bar"]
        assert result.success_count == 2
        assert result.failure_count == 1
        assert not result.all_successful
        failure = result.outcomes[1]
        assert isinstance(failure.error, UnresolvedError)
        assert failure.specs == []
        assert names(result.outcomes[0].specs) == ["foo"]

    def test_unexpected_error_stays_with_its_package(self):
        """A transport error escaping one install does not abort the batch."""

        def resolve(name, *args):
            if name == "foo":
                raise IncompleteRead(b"partial", 100)
            return PackageSpec(name, SemVer(1, 0, 0))

        resolver = Mock()
        resolver.resolve.side_effect = resolve

        result = Installer(resolver, max_workers=2).install_many(
            [InstallRequest("foo"), InstallRequest("bar")]
        )

        assert [o.name for o in result.outcomes] == ["foo", "bar"]
        assert isinstance(result.outcomes[0].error, IncompleteRead)
        assert names(result.outcomes[1].specs) == ["bar"]
        assert result.failure_count == 1

    def test_order_matches_input(self, registry, installer: Installer):
        """Outcomes follow request order regardless of completion order."""
        requested = [f"pkg{i}" for i in range(10)]
        for name in requested:
            registry.publish(name, "1.0.0")

        result = installer.install_many([InstallRequest(name) for name in reversed(requested)])

        assert [o.name for o in result.outcomes] == list(reversed(requested))
        assert result.all_successful

    def test_sequential_with_one_worker(self, registry, cache: LocalCache):
        """A single worker installs in the calling thread."""
        registry.publish("foo", "1.0.0")
        installer = Installer(Resolver(cache, registry.client), max_workers=1)

        with patch("bpm.core.installer.ThreadPoolExecutor") as executor:
            result = installer.install_many([InstallRequest("foo"), InstallRequest("foo")])

        executor.assert_not_called()
        assert result.all_successful

    def test_same_package_in_parallel(self, registry, installer: Installer, cache: LocalCache):
        """Concurrent installs of one package converge on a single entry."""
        registry.publish("foo", "1.0.0")

        result = installer.install_many([InstallRequest("foo")] * 6)

        assert result.all_successful
        assert len(cache.entries()) == 1

    def test_constraint_recorded(self, registry, installer: Installer):
        """Outcomes carry the requested constraint text."""
        result = installer.install_many(
            [InstallRequest("foo", ">= 2.0"), InstallRequest("bar")]
        )

        assert [o.constraint for o in result.outcomes] == [">= 2.0", ">= 0"]
        assert len(result.errors) == 2

    def test_empty_batch(self, installer: Installer):
        """An empty batch is trivially successful."""
        result = installer.install_many([])

        assert result.outcomes == []
        assert result.all_successful
