"""Version resolution for bpm.

This module picks the concrete version of a package that satisfies a
constraint, preferring packages already in the local cache over remote ones.
"""

import logging
from collections.abc import Iterable
from dataclasses import dataclass
from typing import Literal

from bpm.config.schemas import DEFAULT_PLATFORM
from bpm.core.fetcher import Fetcher
from bpm.core.package import PackageSpec
from bpm.errors import UnresolvedError
from bpm.registry.base import RegistryClient
from bpm.registry.cache import LocalCache
from bpm.utils.version import SemVer, VersionConstraint

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Candidate:
    """A selected package and where it will come from."""

    name: str
    version: SemVer
    platform: str
    source: Literal["cache", "remote"]


def as_constraint(constraint: VersionConstraint | str | None) -> VersionConstraint:
    if isinstance(constraint, VersionConstraint):
        return constraint
    return VersionConstraint(constraint)


class Resolver:
    """Selects the best version of a package.

    Resolution order:
    1. Cached packages satisfying the constraint
    2. Remote packages satisfying the constraint, fetched into the cache

    Among matches the highest version wins; equal versions are ordered by
    the configured platform preference.
    """

    def __init__(
        self,
        cache: LocalCache,
        client: RegistryClient,
        fetcher: Fetcher | None = None,
        platforms: list[str] | None = None,
    ):
        """Initialize the resolver.

        Args:
            cache: Local package cache
            client: Registry used when the cache has no match
            fetcher: Fetcher used to materialize remote matches
            platforms: Accepted platforms, most preferred first
        """
        self.cache = cache
        self.client = client
        self.fetcher = fetcher or Fetcher(cache, client)
        self.platforms = platforms or [DEFAULT_PLATFORM]

    def _accepts(self, platform: str) -> bool:
        return platform == DEFAULT_PLATFORM or platform in self.platforms

    def _rank(self, version: SemVer, platform: str) -> tuple[SemVer, int]:
        if platform in self.platforms:
            preference = -self.platforms.index(platform)
        else:
            preference = -len(self.platforms)
        return (version, preference)

    def _best(
        self,
        pairs: Iterable[tuple[SemVer, str]],
        constraint: VersionConstraint,
        allow_prerelease: bool,
    ) -> tuple[SemVer, str] | None:
        matching = [
            (version, platform)
            for version, platform in pairs
            if self._accepts(platform) and constraint.matches(version, allow_prerelease)
        ]
        if not matching:
            return None
        return max(matching, key=lambda pair: self._rank(*pair))

    def select_cached(
        self,
        name: str,
        constraint: VersionConstraint | str | None = None,
        allow_prerelease: bool = False,
    ) -> Candidate | None:
        """Choose a cached package, or None when the cache has no match."""
        constraint = as_constraint(constraint)

        cached = self.cache.find(name, constraint, allow_prerelease)
        best = self._best(
            ((e.spec.version, e.spec.platform) for e in cached), constraint, allow_prerelease
        )
        if best is None:
            return None
        logger.debug("Resolved %s %s to cached %s (%s)", name, constraint, *best)
        return Candidate(name, best[0], best[1], "cache")

    def select(
        self,
        name: str,
        constraint: VersionConstraint | str | None = None,
        allow_prerelease: bool = False,
    ) -> Candidate:
        """Choose a package without fetching it.

        Raises:
            UnresolvedError: If no cached or remote version satisfies the constraint
        """
        constraint = as_constraint(constraint)

        candidate = self.select_cached(name, constraint, allow_prerelease)
        if candidate is not None:
            return candidate

        remote = self.client.search(name)
        best = self._best(remote.query(name), constraint, allow_prerelease)
        if best is not None:
            logger.debug("Resolved %s %s to remote %s (%s)", name, constraint, *best)
            return Candidate(name, best[0], best[1], "remote")

        logger.info("No version of %s satisfies %s", name, constraint)
        raise UnresolvedError(name, str(constraint))

    def resolve(
        self,
        name: str,
        constraint: VersionConstraint | str | None = None,
        allow_prerelease: bool = False,
    ) -> PackageSpec:
        """Resolve a package to a concrete, cached spec.

        Args:
            name: Package name
            constraint: Version constraint (defaults to any release)
            allow_prerelease: Accept prerelease versions

        Returns:
            PackageSpec of the cached package

        Raises:
            UnresolvedError: If no version satisfies the constraint
            NotFoundError, NetworkError, VerificationError: If fetching fails
        """
        candidate = self.select(name, constraint, allow_prerelease)

        if candidate.source == "cache":
            entry = self.cache.get(candidate.name, candidate.version, candidate.platform)
            if entry is not None:
                return entry.spec

        entry = self.fetcher.fetch(candidate.name, candidate.version, candidate.platform)
        return entry.spec
