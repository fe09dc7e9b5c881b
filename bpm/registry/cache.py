"""Local package cache."""

from __future__ import annotations

import json
import logging
import shutil
import time
from dataclasses import dataclass
from pathlib import Path

from pydantic import ValidationError

from bpm.config.parser import save_json
from bpm.config.schemas import CacheMetadata
from bpm.core.index import PackageIndex
from bpm.core.package import PackageSpec
from bpm.errors import AccessDeniedError
from bpm.utils.filesystem import (
    extract_tarball,
    make_staging_directory,
    publish_directory,
)
from bpm.utils.version import SemVer, VersionConstraint

logger = logging.getLogger(__name__)

ARCHIVE_NAME = "package.bpkg"
METADATA_NAME = "metadata.json"
UNPACK_NAME = "unpacked"


@dataclass(frozen=True)
class CacheEntry:
    """A verified package stored in the local cache."""

    spec: PackageSpec
    archive_path: Path
    unpack_path: Path | None
    fetched_at: float
    checksum: str


class LocalCache:
    """Write-once, file-based store of fetched package archives.

    Cache structure:
        cache_dir/
            <name>-<version>-<platform>/
                package.bpkg      # The verified archive
                metadata.json     # fetched_at, checksum, dependencies
                unpacked/         # Extracted contents (optional)
            .<key>-*.tmp/         # In-progress writes, never read

    An entry becomes visible only when its fully written staging directory
    is renamed into place, so readers never see a partial entry and never
    need a lock. Entries are never modified once published.
    """

    def __init__(self, cache_dir: Path):
        """Initialize the local cache.

        Args:
            cache_dir: Directory to store cached packages
        """
        self._cache_dir = cache_dir
        logger.debug("Initialized local cache at %s", cache_dir)

    @property
    def cache_dir(self) -> Path:
        """Get the cache directory."""
        return self._cache_dir

    def _entry_dir(self, name: str, version: SemVer, platform: str) -> Path:
        return self._cache_dir / f"{name}-{version}-{platform}"

    def _load_entry(self, entry_dir: Path) -> CacheEntry | None:
        """Read a published entry directory, or None if it is unusable."""
        metadata_file = entry_dir / METADATA_NAME
        archive = entry_dir / ARCHIVE_NAME
        if not metadata_file.is_file() or not archive.is_file():
            return None

        try:
            with open(metadata_file, encoding="utf-8") as f:
                metadata = CacheMetadata.model_validate(json.load(f))
        except PermissionError as e:
            raise AccessDeniedError(
                f"Permission denied reading {metadata_file}", str(metadata_file)
            ) from e
        except (OSError, json.JSONDecodeError, ValidationError):
            logger.warning("Ignoring unreadable cache entry %s", entry_dir)
            return None

        unpack_path = entry_dir / UNPACK_NAME
        return CacheEntry(
            spec=PackageSpec.from_metadata(metadata),
            archive_path=archive,
            unpack_path=unpack_path if unpack_path.is_dir() else None,
            fetched_at=metadata.fetched_at,
            checksum=metadata.checksum,
        )

    def get(self, name: str, version: SemVer, platform: str) -> CacheEntry | None:
        """Get the cache entry for an exact package identity.

        Returns:
            CacheEntry if present, None otherwise
        """
        entry_dir = self._entry_dir(name, version, platform)
        if not entry_dir.is_dir():
            logger.debug("Cache miss for %s %s (%s)", name, version, platform)
            return None

        entry = self._load_entry(entry_dir)
        if entry is not None:
            logger.debug("Cache hit for %s %s (%s)", name, version, platform)
        return entry

    def contains(self, name: str, version: SemVer, platform: str) -> bool:
        return self.get(name, version, platform) is not None

    def entries(self, name: str | None = None) -> list[CacheEntry]:
        """List published entries, optionally for a single package name."""
        if not self._cache_dir.is_dir():
            return []

        result: list[CacheEntry] = []
        prefix = f"{name}-" if name else ""
        for entry_dir in sorted(self._cache_dir.iterdir()):
            if entry_dir.name.startswith(".") or not entry_dir.name.startswith(prefix):
                continue
            if not entry_dir.is_dir():
                continue
            entry = self._load_entry(entry_dir)
            if entry is None:
                continue
            # Prefix match alone would also pick up "foo-bar" for "foo"
            if name is None or entry.spec.name == name:
                result.append(entry)
        return result

    def find(
        self,
        name: str,
        constraint: VersionConstraint,
        allow_prerelease: bool = False,
    ) -> list[CacheEntry]:
        """Get entries of a package whose version satisfies a constraint."""
        return [
            entry
            for entry in self.entries(name)
            if constraint.matches(entry.spec.version, allow_prerelease)
        ]

    def index(self) -> PackageIndex:
        """Build a PackageIndex of everything in the cache."""
        return PackageIndex(entry.spec.identity for entry in self.entries())

    def put(
        self,
        spec: PackageSpec,
        archive_path: Path,
        checksum: str,
        unpack: bool = False,
    ) -> CacheEntry:
        """Commit a verified archive to the cache.

        The archive is copied into a staging directory together with its
        metadata record and then renamed into place. If the entry already
        exists this is a no-op that returns the existing entry.

        Args:
            spec: Package the archive was verified against
            archive_path: Verified archive to store
            checksum: Checksum of the archive
            unpack: Also store the extracted contents

        Returns:
            The published CacheEntry
        """
        existing = self.get(spec.name, spec.version, spec.platform)
        if existing is not None:
            logger.debug("%s already cached, keeping existing entry", spec.cache_key)
            return existing

        try:
            staging = make_staging_directory(self._cache_dir, spec.cache_key)
        except PermissionError as e:
            raise AccessDeniedError(
                f"Permission denied writing to cache {self._cache_dir}", str(self._cache_dir)
            ) from e

        try:
            shutil.copy2(archive_path, staging / ARCHIVE_NAME)
            if unpack:
                extract_tarball(staging / ARCHIVE_NAME, staging / UNPACK_NAME)

            metadata = CacheMetadata(
                name=spec.name,
                version=str(spec.version),
                platform=spec.platform,
                dependencies=[(dep_name, str(dep)) for dep_name, dep in spec.dependencies],
                fetched_at=time.time(),
                checksum=checksum,
            )
            save_json(staging / METADATA_NAME, metadata.model_dump(mode="json"))

            dest = self._entry_dir(spec.name, spec.version, spec.platform)
            if publish_directory(staging, dest):
                logger.info("Cached %s at %s", spec.cache_key, dest)
            else:
                logger.debug("Another writer published %s first", spec.cache_key)
        except PermissionError as e:
            shutil.rmtree(staging, ignore_errors=True)
            raise AccessDeniedError(
                f"Permission denied writing to cache {self._cache_dir}", str(self._cache_dir)
            ) from e
        except BaseException:
            shutil.rmtree(staging, ignore_errors=True)
            raise

        entry = self._load_entry(dest)
        assert entry is not None
        return entry

    def remove(self, name: str, version: SemVer, platform: str) -> bool:
        """Remove a cache entry.

        Returns:
            True if an entry was removed
        """
        entry_dir = self._entry_dir(name, version, platform)
        if not entry_dir.exists():
            return False
        # Rename first so concurrent readers see the entry vanish at once
        trash = make_staging_directory(self._cache_dir, f"{entry_dir.name}-removed")
        trash.rmdir()
        entry_dir.rename(trash)
        shutil.rmtree(trash)
        logger.info("Removed %s from cache", entry_dir.name)
        return True

    def cleanup_temporary(self) -> int:
        """Remove leftovers of interrupted writes.

        Returns:
            Number of staging directories removed
        """
        if not self._cache_dir.is_dir():
            return 0

        removed = 0
        for item in self._cache_dir.iterdir():
            if item.name.startswith(".") and item.name.endswith(".tmp") and item.is_dir():
                logger.debug("Removing stale staging directory %s", item)
                shutil.rmtree(item, ignore_errors=True)
                removed += 1
        return removed

    def clear(self) -> None:
        """Remove every cache entry."""
        entries = self.entries()
        logger.info("Clearing cache (%d entries)", len(entries))
        for entry in entries:
            self.remove(entry.spec.name, entry.spec.version, entry.spec.platform)
        self.cleanup_temporary()
