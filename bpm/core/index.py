"""Queryable set of known (name, version, platform) triples."""

from __future__ import annotations

from collections.abc import Iterable, Iterator

from bpm.errors import EmptyResultError
from bpm.utils.version import SemVer

IndexEntry = tuple[str, SemVer, str]


class PackageIndex:
    """In-memory package index.

    Maps each name to a de-duplicated set of (version, platform) pairs.
    Sorting only happens when results are queried for reporting.
    """

    def __init__(self, entries: Iterable[IndexEntry] = ()):
        self._packages: dict[str, set[tuple[SemVer, str]]] = {}
        for name, version, platform in entries:
            self.add(name, version, platform)

    def add(self, name: str, version: SemVer | str, platform: str) -> None:
        if isinstance(version, str):
            version = SemVer.parse(version)
        self._packages.setdefault(name, set()).add((version, platform))

    def query(self, name: str) -> set[tuple[SemVer, str]]:
        """Get every (version, platform) known for a name."""
        return set(self._packages.get(name, ()))

    def names(self) -> list[str]:
        return sorted(self._packages)

    def merge(self, other: PackageIndex) -> PackageIndex:
        """Union of two indexes. Neither input is modified."""
        return PackageIndex([*self, *other])

    def all_names(self, names: Iterable[str] | None = None) -> dict[str, list[SemVer]]:
        """Group versions by name, newest first.

        Args:
            names: Only report these names; empty or None reports everything

        Returns:
            Mapping of name to versions in descending order

        Raises:
            EmptyResultError: If nothing matches
        """
        wanted = set(names or ())
        result: dict[str, list[SemVer]] = {}
        for name in self.names():
            if wanted and name not in wanted:
                continue
            versions = {version for version, _ in self._packages[name]}
            if versions:
                result[name] = sorted(versions, reverse=True)

        if not result:
            raise EmptyResultError(sorted(wanted))
        return result

    def latest_only(self) -> PackageIndex:
        """Keep only the newest version of each name (all of its platforms)."""
        latest = PackageIndex()
        for name, pairs in self._packages.items():
            newest = max(version for version, _ in pairs)
            for version, platform in pairs:
                if version == newest:
                    latest.add(name, version, platform)
        return latest

    def without_prereleases(self) -> PackageIndex:
        return PackageIndex(entry for entry in self if not entry[1].is_prerelease)

    def __iter__(self) -> Iterator[IndexEntry]:
        for name in self.names():
            for version, platform in sorted(self._packages[name]):
                yield (name, version, platform)

    def __len__(self) -> int:
        return sum(len(pairs) for pairs in self._packages.values())

    def __contains__(self, entry: object) -> bool:
        if not isinstance(entry, tuple) or len(entry) != 3:
            return False
        name, version, platform = entry
        return (version, platform) in self._packages.get(name, set())

    def __repr__(self) -> str:
        return f"PackageIndex({len(self)} entries)"
